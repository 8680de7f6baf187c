"""
Transaction Ledger Module (``backoffice_modules.ledger``).

Append-only record of every money or stock movement: goods received,
invoice payments, petty-cash reloads and approved expenses.  Rows are never
updated or deleted; ``db.immutability`` listeners refuse both.
"""
