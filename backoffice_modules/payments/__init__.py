"""
Payment Reconciliation Module (``backoffice_modules.payments``).

Records payments against vendor bills: the capping rule, payment-status
derivation, the ledger line, and the optional bank withdrawal all commit as
one unit.
"""
