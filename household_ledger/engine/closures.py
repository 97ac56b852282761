"""
Month Closure and Credit-Card Invoices

A closed month is a competency the household has reconciled. Invoices track
whether each card's bill for a reference month has been paid; a card with no
stored invoice for the month reads as unpaid.
"""

from datetime import datetime, timezone
from typing import Optional, Union
from uuid import UUID

from household_ledger.audit.logger import AuditLogger
from household_ledger.models.competency import Competency
from household_ledger.models.ledger import CreditCard, CreditCardInvoice, InvoiceStatus
from household_ledger.services.storage.interface import (
    ClosureStorageInterface,
    CreditCardStorageInterface,
    DuplicateError,
    NotFoundError,
)
from household_ledger.validation.validator import (
    BadRequestError,
    RequestValidator,
    ensure_valid,
)

MonthInput = Union[Competency, str, None]


def _parse_month(value: MonthInput) -> Competency:
    if isinstance(value, Competency):
        return value
    try:
        return Competency.parse(value)
    except ValueError as e:
        raise BadRequestError.single("reference_month", "invalid_value", str(e))


class MonthClosureService:

    def __init__(
        self,
        closures: ClosureStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._closures = closures
        self._audit = audit_logger or AuditLogger()

    async def list_closed(self) -> list[Competency]:
        """Closed competencies in chronological order."""
        return sorted(await self._closures.list_closed_months())

    async def close_month(self, competency: Competency) -> list[Competency]:
        """
        Close a month.

        Raises:
            BadRequestError: the month is already closed
        """
        try:
            await self._closures.add_closed_month(competency)
        except DuplicateError:
            raise BadRequestError.single(
                field="competency",
                issue_type="duplicate",
                message=f"Month already closed: {competency}",
            )
        await self._audit.log_month_status_changed(str(competency), True)
        return await self.list_closed()

    async def reopen_month(self, competency: Competency) -> list[Competency]:
        """Reopen a month. Reopening an open month is a no-op."""
        if await self._closures.remove_closed_month(competency):
            await self._audit.log_month_status_changed(str(competency), False)
        return await self.list_closed()


class CreditCardInvoiceService:

    def __init__(
        self,
        closures: ClosureStorageInterface,
        cards: CreditCardStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._closures = closures
        self._cards = cards
        self._audit = audit_logger or AuditLogger()

    @staticmethod
    def _status(card: CreditCard, invoice: Optional[CreditCardInvoice], month: Competency) -> InvoiceStatus:
        return InvoiceStatus(
            credit_card_id=card.id,
            card_name=card.name,
            reference_month=month,
            paid=invoice.paid if invoice else False,
            paid_at=invoice.paid_at if invoice else None,
        )

    async def _invoices_by_card(self, month: Competency) -> dict[UUID, CreditCardInvoice]:
        return {i.credit_card_id: i for i in await self._closures.list_invoices(month)}

    async def list_by_month(self, reference_month: MonthInput) -> list[InvoiceStatus]:
        """Every card with its invoice state for the month, ordered by card name."""
        ensure_valid(RequestValidator.invoice_update(reference_month, paid=False))
        month = _parse_month(reference_month)

        invoices = await self._invoices_by_card(month)
        return [
            self._status(card, invoices.get(card.id), month)
            for card in await self._cards.list_cards()
        ]

    async def update_status(
        self,
        card_id: UUID,
        reference_month: MonthInput,
        paid: Optional[bool],
    ) -> InvoiceStatus:
        """
        Mark one card's invoice as paid or unpaid.

        Raises:
            BadRequestError: missing reference month or paid flag
            NotFoundError: unknown card
        """
        ensure_valid(RequestValidator.invoice_update(reference_month, paid))
        month = _parse_month(reference_month)

        card = await self._cards.get_card(card_id)
        if card is None:
            raise NotFoundError(f"Credit card not found: {card_id}")

        invoice = (await self._invoices_by_card(month)).get(card_id) or CreditCardInvoice(
            credit_card_id=card_id,
            reference_month=month,
        )
        invoice = invoice.model_copy(update={
            "paid": paid,
            "paid_at": datetime.now(timezone.utc) if paid else None,
        })
        await self._closures.save_invoices([invoice])

        await self._audit.log_invoice_status_changed(card_id, str(month), paid)
        return self._status(card, invoice, month)

    async def update_all_status(
        self,
        reference_month: MonthInput,
        paid: Optional[bool],
    ) -> list[InvoiceStatus]:
        """Mark every card's invoice for the month, in one unit."""
        ensure_valid(RequestValidator.invoice_update(reference_month, paid))
        month = _parse_month(reference_month)

        cards = await self._cards.list_cards()
        if not cards:
            return []

        invoices = await self._invoices_by_card(month)
        paid_at = datetime.now(timezone.utc) if paid else None
        updated = []
        for card in cards:
            invoice = invoices.get(card.id) or CreditCardInvoice(
                credit_card_id=card.id,
                reference_month=month,
            )
            updated.append(invoice.model_copy(update={"paid": paid, "paid_at": paid_at}))
        await self._closures.save_invoices(updated)

        for card in cards:
            await self._audit.log_invoice_status_changed(card.id, str(month), paid)
        return [self._status(card, invoice, month) for card, invoice in zip(cards, updated)]
