"""
Typed Exception Hierarchy for the Back-office Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (route handlers, batch jobs, tests) must branch on the KIND of a
failure, never on its message.  Every exception in this module therefore:

  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Stores the relevant identifiers as attributes (not just a string)

Example - WRONG way to handle errors:
    try:
        service.record_payment(...)
    except Exception as e:
        if "exceeds" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        service.record_payment(...)
    except AmountExceedsBalanceError as e:
        api_response(code=e.code, balance_due=e.balance_due)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BackofficeError:

    BackofficeError (base)
    |
    +-- NotFoundError
    +-- ValidationError
    +-- UnauthorizedActorError
    |
    +-- StateError
    |   +-- InvalidTransitionError
    |   +-- AlreadyProcessedError
    |   +-- NotAmendableError
    |   +-- OrderNotEditableError
    |   +-- CardNotActiveError
    |
    +-- ExclusivityError
    |   +-- AmendmentPendingError
    |   +-- AlreadyLinkedError
    |   +-- DuplicateActiveCardError
    |   +-- DuplicateInvoiceNumberError
    |
    +-- LedgerBoundError
    |   +-- AmountExceedsBalanceError
    |   +-- InsufficientBalanceError
    |   +-- MonthlyLimitExceededError
    |
    +-- WrongVariantError
    |   +-- CompanyBillNotPayableError
    |   +-- WrongBillTypeError
    |
    +-- HasPaymentsError
    +-- ImmutabilityViolationError
    +-- TenantNotConfiguredError
    +-- InternalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lookup          | NOT_FOUND                   | Referenced aggregate absent
Input           | VALIDATION                  | Malformed input, raised before any write
Authorization   | UNAUTHORIZED_ACTOR          | Business-level actor check failed
----------------|-----------------------------|-----------------------------------------
State           | INVALID_TRANSITION          | Target not in current state's allowed set
                | ALREADY_PROCESSED           | Resolved amendment/expense re-targeted
                | NOT_AMENDABLE               | Order is draft or cancelled
                | ORDER_NOT_EDITABLE          | Item append/draft edit in wrong status
                | CARD_NOT_ACTIVE             | Card is suspended/expired/closed
----------------|-----------------------------|-----------------------------------------
Exclusivity     | AMENDMENT_PENDING           | Order already has a pending amendment
                | ALREADY_LINKED              | Bill/PO already claimed by another bill
                | DUPLICATE_ACTIVE_CARD       | Assignee already holds an active card
                | DUPLICATE_INVOICE_NUMBER    | Invoice number already used
----------------|-----------------------------|-----------------------------------------
Ledger          | AMOUNT_EXCEEDS_BALANCE      | Payment > balance due + tolerance
                | INSUFFICIENT_BALANCE        | Card debit > current balance
                | MONTHLY_LIMIT_EXCEEDED      | Approved month spend would pass limit
----------------|-----------------------------|-----------------------------------------
Variant         | COMPANY_BILL_NOT_PAYABLE    | Payment attempted on a company bill
                | WRONG_BILL_TYPE             | Company-bill operation on a vendor bill
----------------|-----------------------------|-----------------------------------------
Deletion        | HAS_PAYMENTS                | Invoice with paid_amount > 0
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
Tenancy         | TENANT_NOT_CONFIGURED       | No database configured for company
Infrastructure  | INTERNAL                    | Unexpected storage failure
===============================================================================
"""

from decimal import Decimal
from typing import Any


class BackofficeError(Exception):
    """
    Base exception for all back-office errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BACKOFFICE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured representation: code, message, and public attributes."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                payload[key] = value
        return payload


class NotFoundError(BackofficeError):
    """Referenced aggregate does not exist in this tenant."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class ValidationError(BackofficeError):
    """Malformed input detected before any mutating statement."""

    code: str = "VALIDATION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class UnauthorizedActorError(BackofficeError):
    """Business-level authorization check failed for the acting user."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: Any, action: str, reason: str):
        self.actor_id = str(actor_id)
        self.action = action
        self.reason = reason
        super().__init__(f"User {actor_id} may not {action}: {reason}")


# State-machine exceptions


class StateError(BackofficeError):
    """Base exception for lifecycle/state violations."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """Requested target state is not reachable from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: Any, from_state: str, to_state: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Cannot transition {entity_type} {entity_id} "
            f"from '{from_state}' to '{to_state}'"
        )


class AlreadyProcessedError(StateError):
    """A resolved (terminal) entity was targeted for resolution again."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, entity_type: str, entity_id: Any, status: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.status = status
        super().__init__(f"{entity_type} {entity_id} has already been {status}")


class NotAmendableError(StateError):
    """Order is in a status that does not accept amendments."""

    code: str = "NOT_AMENDABLE"

    def __init__(self, order_id: Any, status: str, reason: str):
        self.order_id = str(order_id)
        self.status = status
        self.reason = reason
        super().__init__(f"Purchase order {order_id} ({status}) cannot be amended: {reason}")


class OrderNotEditableError(StateError):
    """Order status no longer allows direct edits or item appends."""

    code: str = "ORDER_NOT_EDITABLE"

    def __init__(self, order_id: Any, status: str, action: str):
        self.order_id = str(order_id)
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} on purchase order {order_id} in status '{status}'")


class CardNotActiveError(StateError):
    """Petty-cash card is not active."""

    code: str = "CARD_NOT_ACTIVE"

    def __init__(self, card_id: Any, status: str):
        self.card_id = str(card_id)
        self.status = status
        super().__init__(f"Petty cash card {card_id} is {status}, not active")


# Uniqueness / exclusivity exceptions


class ExclusivityError(BackofficeError):
    """Base exception for uniqueness or exclusivity invariants."""

    code: str = "EXCLUSIVITY_ERROR"


class AmendmentPendingError(ExclusivityError):
    """The order already has an unresolved amendment."""

    code: str = "AMENDMENT_PENDING"

    def __init__(self, order_id: Any, amendment_id: Any, amendment_number: int):
        self.order_id = str(order_id)
        self.amendment_id = str(amendment_id)
        self.amendment_number = amendment_number
        super().__init__(
            f"Purchase order {order_id} already has pending amendment "
            f"#{amendment_number} ({amendment_id})"
        )


class AlreadyLinkedError(ExclusivityError):
    """One or more references are already claimed by another bill."""

    code: str = "ALREADY_LINKED"

    def __init__(self, reference_type: str, conflicts: dict[str, str]):
        # conflicts: referenced id -> number of the bill already holding it
        self.reference_type = reference_type
        self.conflicts = dict(conflicts)
        listing = ", ".join(
            f"{ref} (linked to {bill})" for ref, bill in sorted(self.conflicts.items())
        )
        super().__init__(f"{reference_type} already linked: {listing}")


class DuplicateActiveCardError(ExclusivityError):
    """The assignee already holds an active petty-cash card."""

    code: str = "DUPLICATE_ACTIVE_CARD"

    def __init__(self, assigned_to: Any, existing_card_number: str):
        self.assigned_to = str(assigned_to)
        self.existing_card_number = existing_card_number
        super().__init__(
            f"User {assigned_to} already has active card {existing_card_number}"
        )


class DuplicateInvoiceNumberError(ExclusivityError):
    """Invoice number is already in use."""

    code: str = "DUPLICATE_INVOICE_NUMBER"

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice number already exists: {invoice_number}")


# Ledger bound exceptions


class LedgerBoundError(BackofficeError):
    """Base exception for monetary bound violations."""

    code: str = "LEDGER_BOUND_ERROR"


class AmountExceedsBalanceError(LedgerBoundError):
    """Requested payment exceeds the remaining balance beyond tolerance."""

    code: str = "AMOUNT_EXCEEDS_BALANCE"

    def __init__(self, invoice_id: Any, requested: Decimal, balance_due: Decimal):
        self.invoice_id = str(invoice_id)
        self.requested = requested
        self.balance_due = balance_due
        super().__init__(
            f"Payment {requested} exceeds balance due {balance_due} "
            f"on invoice {invoice_id}"
        )


class InsufficientBalanceError(LedgerBoundError):
    """Card balance is lower than the requested debit."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, card_id: Any, requested: Decimal, current_balance: Decimal):
        self.card_id = str(card_id)
        self.requested = requested
        self.current_balance = current_balance
        super().__init__(
            f"Insufficient balance on card {card_id}: "
            f"requested {requested}, available {current_balance}"
        )


class MonthlyLimitExceededError(LedgerBoundError):
    """Approved spend for the month would pass the card's monthly limit."""

    code: str = "MONTHLY_LIMIT_EXCEEDED"

    def __init__(
        self,
        card_id: Any,
        monthly_limit: Decimal,
        approved_spend: Decimal,
        requested: Decimal,
    ):
        self.card_id = str(card_id)
        self.monthly_limit = monthly_limit
        self.approved_spend = approved_spend
        self.requested = requested
        super().__init__(
            f"Monthly limit {monthly_limit} on card {card_id} would be exceeded: "
            f"approved {approved_spend} + requested {requested}"
        )


# Wrong-variant exceptions


class WrongVariantError(BackofficeError):
    """Base exception for operations invoked on the wrong document kind."""

    code: str = "WRONG_VARIANT"


class CompanyBillNotPayableError(WrongVariantError):
    """Payments are recorded against vendor bills, never company bills."""

    code: str = "COMPANY_BILL_NOT_PAYABLE"

    def __init__(self, invoice_id: Any, covering_vendor_bill: str | None):
        self.invoice_id = str(invoice_id)
        self.covering_vendor_bill = covering_vendor_bill
        if covering_vendor_bill:
            hint = f"record the payment on vendor bill {covering_vendor_bill}"
        else:
            hint = "create a vendor bill covering it first"
        super().__init__(f"Company bill {invoice_id} is not payable; {hint}")


class WrongBillTypeError(WrongVariantError):
    """Operation applies to a different bill type."""

    code: str = "WRONG_BILL_TYPE"

    def __init__(self, invoice_id: Any, bill_type: str, operation: str):
        self.invoice_id = str(invoice_id)
        self.bill_type = bill_type
        self.operation = operation
        super().__init__(f"{operation} is not allowed on {bill_type} bill {invoice_id}")


class HasPaymentsError(BackofficeError):
    """Invoice with recorded payments cannot be deleted or edited."""

    code: str = "HAS_PAYMENTS"

    def __init__(self, invoice_id: Any, paid_amount: Decimal):
        self.invoice_id = str(invoice_id)
        self.paid_amount = paid_amount
        super().__init__(f"Invoice {invoice_id} has payments recorded ({paid_amount})")


class ImmutabilityViolationError(BackofficeError):
    """Attempt to update or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class TenantNotConfiguredError(BackofficeError):
    """No database is registered for the requested company."""

    code: str = "TENANT_NOT_CONFIGURED"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"No database configured for company {company_id}")


class InternalError(BackofficeError):
    """Unexpected infrastructure failure (connection loss, constraint, ...)."""

    code: str = "INTERNAL"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Internal failure during {operation}: {detail}")
