"""
Recurring-Transaction Generator

Projects recurring definitions onto one competency, producing at most one
transaction per definition.

DESIGN DECISION: Generation is best-effort per definition. A definition that
cannot be projected (its card is gone, its data no longer validates) becomes
an entry in `GenerationResult.errors` and the others still generate.

Generation is NOT idempotent: projecting the same month twice yields two
sets of rows. Every generated row carries `recurring_definition_id` so the
caller can detect earlier generations (RecurringGenerationFlow offers this
as `skip_already_generated`).
"""

from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from household_ledger.models.competency import Competency
from household_ledger.models.ledger import (
    GenerationError,
    GenerationResult,
    RecurringDefinition,
    Transaction,
)
from household_ledger.services.storage.interface import (
    CreditCardStorageInterface,
    NotFoundError,
    RecurringStorageInterface,
)

logger = structlog.get_logger(__name__)


def project_definition(
    definition: RecurringDefinition,
    competency: Competency,
) -> Optional[Transaction]:
    """
    The transaction a single definition produces in `competency`, if any.

    Returns None when the definition is inactive, does not overlap the month,
    or its (clamped) generation day falls outside its start/end dates.
    """
    if not definition.active:
        return None

    month_start = competency.first_day
    month_end = competency.last_day
    if definition.start_date > month_end:
        return None
    if definition.end_date is not None and definition.end_date < month_start:
        return None

    # Day 31 becomes 28/29/30 in shorter months
    transaction_date = competency.day(definition.day_of_month)
    if transaction_date < definition.start_date:
        return None
    if definition.end_date is not None and transaction_date > definition.end_date:
        return None

    return Transaction(
        date=transaction_date,
        type=definition.type,
        payment_method=definition.payment_method,
        person=definition.person,
        category=definition.category,
        description=definition.description,
        value=definition.value,
        competency=competency,
        credit_card_id=definition.credit_card_id,
        recurring_definition_id=definition.id,
    )


def generate_for_month(
    competency: Competency,
    definitions: Iterable[RecurringDefinition],
    card_exists: Optional[Callable[[UUID], bool]] = None,
) -> GenerationResult:
    """
    Project every definition onto `competency`.

    Args:
        competency: Target month
        definitions: Definitions to project (inactive ones are skipped)
        card_exists: Optional check for a definition's card; a definition
                     whose card fails it is reported as an error

    Returns:
        GenerationResult with the new transactions, per-definition errors,
        and the ids of definitions with no occurrence in the month
    """
    result = GenerationResult(competency=competency)

    for definition in definitions:
        try:
            if (
                card_exists is not None
                and definition.credit_card_id is not None
                and not card_exists(definition.credit_card_id)
            ):
                raise NotFoundError(f"Credit card not found: {definition.credit_card_id}")
            transaction = project_definition(definition, competency)
        except (NotFoundError, ValueError) as e:
            logger.warning(
                "recurring_definition_failed",
                definition_id=str(definition.id),
                competency=str(competency),
                error=str(e),
            )
            result.errors.append(GenerationError(definition_id=definition.id, message=str(e)))
            continue

        if transaction is None:
            result.skipped_definitions.append(definition.id)
        else:
            result.transactions.append(transaction)

    return result


class RecurringService:
    """Maintains recurring definitions."""

    def __init__(
        self,
        definitions: RecurringStorageInterface,
        cards: CreditCardStorageInterface,
    ):
        self._definitions = definitions
        self._cards = cards

    async def _check_card(self, definition: RecurringDefinition) -> None:
        if definition.credit_card_id is not None:
            if await self._cards.get_card(definition.credit_card_id) is None:
                raise NotFoundError(f"Credit card not found: {definition.credit_card_id}")

    async def create_definition(self, definition: RecurringDefinition) -> RecurringDefinition:
        await self._check_card(definition)
        return await self._definitions.save_definition(definition)

    async def update_definition(self, definition: RecurringDefinition) -> RecurringDefinition:
        if await self._definitions.get_definition(definition.id) is None:
            raise NotFoundError(f"Recurring definition not found: {definition.id}")
        await self._check_card(definition)
        return await self._definitions.save_definition(definition)

    async def deactivate_definition(self, definition_id: UUID) -> RecurringDefinition:
        """Stop future generations while keeping history pointing at the definition."""
        definition = await self._definitions.get_definition(definition_id)
        if definition is None:
            raise NotFoundError(f"Recurring definition not found: {definition_id}")
        definition.active = False
        return await self._definitions.save_definition(definition)

    async def list_active(self) -> list[RecurringDefinition]:
        return await self._definitions.list_active_definitions()
