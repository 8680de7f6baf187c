"""Domain layer - pure value objects and functions (clock, workflow, ledger, context)."""
