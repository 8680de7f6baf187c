"""
Module: backoffice_kernel.db.types
Responsibility: Column precision constants shared by the ORM base and the
    ledger primitives.

Invariants enforced:
    - Every Decimal column is Numeric(MONEY_PRECISION, MONEY_PLACES) via the
      Base type_annotation_map.  Values are quantized to MONEY_PLACES by
      ``backoffice_kernel.domain.ledger.quantize_money`` before storage.
    - No floats anywhere.
"""

from decimal import Decimal

from sqlalchemy import Numeric

MONEY_PRECISION = 18
MONEY_PLACES = 3

MoneyColumn = Numeric(MONEY_PRECISION, MONEY_PLACES, asdecimal=True)

ZERO_MONEY = Decimal("0.000")
