"""Kernel services - sequences, tenant settings, audit sink."""
