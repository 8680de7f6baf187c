"""
Purchasing Module (``backoffice_modules.purchasing``).

Purchase orders from draft through receipt: creation, draft edits, item
appends with atomic total recomputation, the status transition table,
goods receipt into inventory lots, and ancillary order expenses.
"""
