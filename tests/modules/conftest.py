"""
Shared fixtures for module tests.

Master data (suppliers, materials, branches, projects) lives outside the
core and is referenced by id only, so these well-known UUIDs need no
parent rows.

DESIGN RULE: Every fixture is opt-in.  No autouse.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from backoffice_modules.amendments.service import AmendmentService
from backoffice_modules.billing.service import BillingService
from backoffice_modules.cash.models import OpenAccountInput
from backoffice_modules.cash.service import CashService
from backoffice_modules.payments.service import PaymentReconciliationService
from backoffice_modules.petty_cash.service import PettyCashService
from backoffice_modules.purchasing.models import CreateOrderInput, NewOrderItem
from backoffice_modules.purchasing.service import PurchasingService

# ---------------------------------------------------------------------------
# Deterministic master-data IDs
# ---------------------------------------------------------------------------

TEST_SUPPLIER_ID = UUID("00000000-0000-4000-a000-000000000001")
TEST_OTHER_SUPPLIER_ID = UUID("00000000-0000-4000-a000-000000000002")
TEST_MATERIAL_ID = UUID("00000000-0000-4000-a000-000000000010")
TEST_OTHER_MATERIAL_ID = UUID("00000000-0000-4000-a000-000000000011")
TEST_BRANCH_ID = UUID("00000000-0000-4000-a000-000000000020")
TEST_PROJECT_ID = UUID("00000000-0000-4000-a000-000000000030")


@pytest.fixture
def supplier_id():
    return TEST_SUPPLIER_ID


@pytest.fixture
def other_supplier_id():
    return TEST_OTHER_SUPPLIER_ID


@pytest.fixture
def material_id():
    return TEST_MATERIAL_ID


@pytest.fixture
def other_material_id():
    return TEST_OTHER_MATERIAL_ID


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def purchasing(session, deterministic_clock, settings, audit_sink):
    return PurchasingService(session, deterministic_clock, settings, audit_sink)


@pytest.fixture
def amendments(session, deterministic_clock, settings, audit_sink):
    return AmendmentService(session, deterministic_clock, settings, audit_sink)


@pytest.fixture
def billing(session, deterministic_clock, settings, audit_sink):
    return BillingService(session, deterministic_clock, settings, audit_sink)


@pytest.fixture
def payments(session, deterministic_clock, audit_sink):
    return PaymentReconciliationService(session, deterministic_clock, audit_sink)


@pytest.fixture
def cash(session, deterministic_clock, audit_sink):
    return CashService(session, deterministic_clock, audit_sink)


@pytest.fixture
def petty_cash(session, deterministic_clock, settings, audit_sink):
    return PettyCashService(session, deterministic_clock, settings, audit_sink=audit_sink)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_order(purchasing, actor):
    """Create a draft order: ``make_order(("10", "100"), shipping="20")``."""

    def _make(*lines, supplier=TEST_SUPPLIER_ID, shipping="0", discount="0", **kwargs):
        items = tuple(
            NewOrderItem(
                material_id=TEST_MATERIAL_ID,
                quantity=Decimal(quantity),
                unit_price=Decimal(unit_price),
            )
            for quantity, unit_price in lines
        )
        return purchasing.create_order(
            actor,
            CreateOrderInput(
                supplier_id=supplier,
                order_date=date(2025, 3, 1),
                branch_id=TEST_BRANCH_ID,
                project_id=TEST_PROJECT_ID,
                shipping_cost=Decimal(shipping),
                discount_amount=Decimal(discount),
                items=items,
                **kwargs,
            ),
        )

    return _make


@pytest.fixture
def approved_order(make_order, purchasing, actor):
    """Build an approved order totalling 1050 (1000 + 5% VAT)."""

    def _make(supplier=TEST_SUPPLIER_ID):
        order = make_order(("10", "100"), supplier=supplier)
        return purchasing.approve(actor, order.id)

    return _make


@pytest.fixture
def bank_account(cash, actor):
    return cash.open_account(
        actor,
        OpenAccountInput(
            account_name="Operating",
            account_number="001-234567",
            bank_name="First Bank",
            opening_balance=Decimal("10000"),
        ),
    )
