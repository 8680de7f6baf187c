"""
Back-office Modules (``backoffice_modules``).

One package per component of the financial document lifecycle:

* ``purchasing``  -- purchase order state machine, items, receipts, landed cost
* ``amendments``  -- proposed changes to issued orders, applied on approval
* ``billing``     -- company bills and vendor bills with coverage exclusivity
* ``payments``    -- payment reconciliation against vendor bills
* ``petty_cash``  -- card balances, expenses, monthly limits
* ``ledger``      -- append-only transaction records
* ``cash``        -- bank accounts and bank transactions

Each package follows the same layout: ``models.py`` (frozen DTOs, enums and
typed inputs), ``orm.py`` (SQLAlchemy persistence with ``to_dto()``),
``workflows.py`` where a state machine exists, and ``service.py`` (the
facade that owns the transaction boundary).
"""
