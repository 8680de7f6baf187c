"""
Cash Module Service (``backoffice_modules.cash.service``).

``CashService`` is the facade for bank-account maintenance and owns its
transaction boundary.  ``BankLedger`` is the non-committing collaborator
used by payments and petty cash to post a withdrawal inside the caller's
transaction.

A withdrawal locks the bank account row, appends a ``bank_transactions``
row carrying the resulting balance, and decrements ``current_balance``.
Balances may go negative (overdraft); the bank is the authority on funds.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.db.locking import lock_row_or_raise
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.context import ActorContext
from backoffice_kernel.domain.ledger import ZERO, quantize_money
from backoffice_kernel.exceptions import NotFoundError, ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.audit_sink import AuditSink, emit_audit
from backoffice_modules._service_helpers import unit_of_work
from backoffice_modules.cash.models import (
    BankAccount,
    BankTransaction,
    BankTransactionType,
    OpenAccountInput,
)
from backoffice_modules.cash.orm import BankAccountModel, BankTransactionModel

logger = get_logger("modules.cash.service")


class BankLedger:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def post_withdrawal(
        self,
        *,
        bank_account_id: UUID,
        amount: Decimal,
        description: str,
        actor_id: UUID,
        reference_type: str,
        reference_id: UUID,
        category: str | None = None,
        transaction_date: date | None = None,
        notes: str | None = None,
    ) -> BankTransactionModel:
        """Lock the account, append a withdrawal and decrement the balance.  Does not commit."""
        value = quantize_money(amount)
        if value <= ZERO:
            raise ValidationError("amount", "withdrawal must be positive")

        account = lock_row_or_raise(
            self._session, BankAccountModel, bank_account_id, "BankAccount"
        )
        if not account.is_active:
            raise ValidationError("bank_account_id", f"bank account {bank_account_id} is inactive")

        new_balance = quantize_money(account.current_balance - value)
        txn = BankTransactionModel(
            bank_account_id=account.id,
            transaction_type=BankTransactionType.WITHDRAWAL.value,
            amount=value,
            balance_after=new_balance,
            transaction_date=transaction_date or self._clock.today(),
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            category=category,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(txn)
        account.current_balance = new_balance
        account.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "bank_withdrawal_posted",
            extra={
                "bank_account_id": str(account.id),
                "amount": str(value),
                "balance_after": str(new_balance),
                "reference_type": reference_type,
                "reference_id": str(reference_id),
            },
        )
        return txn


class CashService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_sink

    def open_account(self, ctx: ActorContext, data: OpenAccountInput) -> BankAccount:
        with unit_of_work(self._session, "cash.open_account", ctx):
            account = BankAccountModel(
                account_name=data.account_name,
                account_number=data.account_number,
                bank_name=data.bank_name,
                current_balance=data.opening_balance,
                is_active=True,
                created_by_id=ctx.user_id,
            )
            self._session.add(account)
            self._session.flush()
            result = account.to_dto()

        emit_audit(self._audit, "BANK_ACCOUNT_OPENED", ctx.user_id, {
            "bank_account_id": str(result.id),
            "account_number": result.account_number,
        })
        return result

    def get_account(self, account_id: UUID) -> BankAccount:
        account = self._session.get(BankAccountModel, account_id)
        if account is None:
            raise NotFoundError("BankAccount", account_id)
        return account.to_dto()

    def list_transactions(self, account_id: UUID) -> Sequence[BankTransaction]:
        rows = self._session.execute(
            select(BankTransactionModel)
            .where(BankTransactionModel.bank_account_id == account_id)
            .order_by(BankTransactionModel.created_at, BankTransactionModel.id)
        ).scalars()
        return tuple(row.to_dto() for row in rows)
