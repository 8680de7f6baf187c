"""
Amendments Module (``backoffice_modules.amendments``).

Change requests against issued purchase orders.  A proposal stores a full
snapshot of the proposed order; approval overwrites the order from it,
rejection leaves the order untouched.
"""
