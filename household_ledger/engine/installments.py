"""
Installment Lifecycle

A purchase split into N installments becomes N transactions sharing a
parent purchase id, numbered 1..N, one calendar month apart.

DESIGN DECISIONS:
- Installment i is dated `anchor + i months` using relativedelta, always
  counted from the anchor rather than from the previous installment. A
  purchase on the 31st is billed on the last day of shorter months and
  returns to the 31st afterwards (2024-01-31, 2024-02-29, 2024-03-31).
- Every installment gets `round(total / N, 2, half-up)`. Leftover cents are
  absorbed by rounding, so a group may sum to a cent more or less than the
  purchase.
- The group size is fixed at creation. Deleting a single row of a
  multi-installment group is refused; the whole group is deleted instead.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID, uuid4

from dateutil.relativedelta import relativedelta
import structlog

from household_ledger.audit.logger import AuditLogger
from household_ledger.models.competency import Competency
from household_ledger.models.ledger import InstallmentGroup, Transaction
from household_ledger.models.money import ZERO, format_money, split_evenly, to_money
from household_ledger.services.storage.interface import (
    CreditCardStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)
from household_ledger.validation.validator import (
    BadRequestError,
    RequestValidator,
    ensure_valid,
)

logger = structlog.get_logger(__name__)


def installment_date(anchor: date, index: int) -> date:
    """Date of the installment `index` months after the anchor (0-based)."""
    return anchor + relativedelta(months=index)


def create_installments(purchase: Transaction, total_installments: int) -> list[Transaction]:
    """
    Split a purchase into installment transactions.

    Args:
        purchase: The purchase; its value is the total and its date the anchor
        total_installments: N >= 1

    Returns:
        [purchase] without a group when N == 1, otherwise N new transactions

    Raises:
        BadRequestError: if N < 1
    """
    ensure_valid(RequestValidator.installment_count(total_installments))

    if total_installments == 1:
        return [purchase.model_copy(update={"installment_group": None})]

    parent_id = uuid4()
    value = split_evenly(purchase.value, total_installments)
    installments = []
    for index in range(total_installments):
        when = installment_date(purchase.date, index)
        installments.append(purchase.model_copy(update={
            "id": uuid4(),
            "date": when,
            "competency": Competency.from_date(when),
            "value": value,
            "installment_group": InstallmentGroup(
                parent_purchase_id=parent_id,
                installment_number=index + 1,
                total_installments=total_installments,
            ),
        }))
    return installments


def reflow_installments(
    siblings: Iterable[Transaction],
    new_total_value: Optional[Decimal] = None,
    new_purchase_date: Optional[date] = None,
) -> list[Transaction]:
    """
    Recompute the value, date and competency of every row of a group.

    The total defaults to the sum of the current values (so manual edits to
    single rows are respected) and the anchor to the first installment's
    date. Installment numbers never change.

    Raises:
        NotFoundError: if `siblings` is empty
    """
    group = sorted(siblings, key=lambda t: t.installment_group.installment_number)
    if not group:
        raise NotFoundError("No installments found for the purchase")

    size = len(group)
    total = to_money(new_total_value) if new_total_value is not None else sum(
        (t.value for t in group), ZERO
    )
    anchor = new_purchase_date or group[0].date
    value = split_evenly(total, size)

    reflowed = []
    for index, installment in enumerate(group):
        when = installment_date(anchor, index)
        reflowed.append(installment.model_copy(update={
            "date": when,
            "competency": Competency.from_date(when),
            "value": value,
            "installment_group": installment.installment_group.model_copy(
                update={"total_installments": size}
            ),
        }))
    return reflowed


class InstallmentService:
    """Stores installment groups; each operation is one storage unit."""

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        cards: Optional[CreditCardStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._transactions = transactions
        self._cards = cards
        self._audit = audit_logger or AuditLogger()

    async def create_purchase(
        self,
        purchase: Transaction,
        total_installments: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Split and store a purchase.

        Raises:
            BadRequestError: if the installment count is below 1
            NotFoundError: if the purchase names an unknown credit card
        """
        if purchase.credit_card_id is not None and self._cards is not None:
            if await self._cards.get_card(purchase.credit_card_id) is None:
                raise NotFoundError(f"Credit card not found: {purchase.credit_card_id}")

        rows = create_installments(purchase, total_installments)
        stored = await self._transactions.save_transactions(rows)

        if total_installments > 1:
            parent_id = stored[0].parent_purchase_id
            logger.info(
                "installments_created",
                parent_purchase_id=str(parent_id),
                total_installments=total_installments,
            )
            await self._audit.log_installments_created(
                parent_purchase_id=parent_id,
                total_installments=total_installments,
                installment_value=format_money(stored[0].value),
                correlation_id=correlation_id,
            )
        return stored

    async def list_group(self, parent_purchase_id: UUID) -> list[Transaction]:
        return await self._transactions.list_installment_group(parent_purchase_id)

    async def reflow(
        self,
        parent_purchase_id: UUID,
        new_total_value: Optional[Decimal] = None,
        new_purchase_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Re-split a stored group after a value or date change.

        Returns:
            The updated rows ordered by installment number

        Raises:
            NotFoundError: if no row carries the parent purchase id
        """
        siblings = await self._transactions.list_installment_group(parent_purchase_id)
        if not siblings:
            raise NotFoundError(f"No installments found for purchase: {parent_purchase_id}")

        reflowed = reflow_installments(siblings, new_total_value, new_purchase_date)
        stored = await self._transactions.save_transactions(reflowed)

        await self._audit.log_installments_reflowed(
            parent_purchase_id=parent_purchase_id,
            total_value=format_money(sum((t.value for t in stored), ZERO)),
            anchor_date=stored[0].date.isoformat(),
            total_installments=len(stored),
            correlation_id=correlation_id,
        )
        return stored

    async def delete_group(
        self,
        parent_purchase_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Delete every row of a group. Returns the number of rows removed."""
        removed = await self._transactions.delete_installment_group(parent_purchase_id)
        if removed == 0:
            raise NotFoundError(f"No installments found for purchase: {parent_purchase_id}")
        await self._audit.log_installments_deleted(parent_purchase_id, removed, correlation_id)
        return removed

    async def delete_transaction(self, transaction_id: UUID) -> None:
        """
        Delete a single transaction.

        Raises:
            NotFoundError: if the transaction does not exist
            BadRequestError: if it belongs to a multi-installment group
        """
        transaction = await self._transactions.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        if transaction.total_installments > 1:
            raise BadRequestError.single(
                field="transaction_id",
                issue_type="installment_group",
                message=(
                    "This transaction is one installment of a group; "
                    f"delete the whole group {transaction.parent_purchase_id} instead"
                ),
            )
        await self._transactions.delete_transaction(transaction_id)
