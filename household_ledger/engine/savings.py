"""
Savings Goals and Deposits

A goal's `current_amount` is a cached sum of its deposits. The service never
touches it directly: adding, editing and removing a deposit all go through
the storage's `apply_deposit_change`, which writes the deposit and moves the
goal by `new - old` in one serialized unit.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from household_ledger.audit.logger import AuditLogger
from household_ledger.models.ledger import (
    IndividualRef,
    PersonRef,
    SavingsDeposit,
    SavingsGoal,
)
from household_ledger.models.money import ZERO, format_money
from household_ledger.services.storage.interface import (
    DuplicateError,
    NotFoundError,
    PersonStorageInterface,
    SavingsStorageInterface,
)

logger = structlog.get_logger(__name__)


class SavingsService:
    """Savings goals and the deposits that fund them."""

    def __init__(
        self,
        savings: SavingsStorageInterface,
        persons: PersonStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._savings = savings
        self._persons = persons
        self._audit = audit_logger or AuditLogger()

    async def _require_person(self, ref: Optional[PersonRef]) -> None:
        if isinstance(ref, IndividualRef):
            if await self._persons.get_person(ref.person_id) is None:
                raise NotFoundError(f"Person not found: {ref.person_id}")

    async def _require_goal(self, goal_id: UUID) -> SavingsGoal:
        goal = await self._savings.get_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Savings goal not found: {goal_id}")
        return goal

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def create_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """Store a new goal. It always starts at zero, whatever the input says."""
        await self._require_person(goal.owner)
        return await self._savings.save_goal(goal.model_copy(update={"current_amount": ZERO}))

    async def update_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """Change a goal's descriptive fields. The current amount is kept."""
        await self._require_goal(goal.id)
        await self._require_person(goal.owner)
        return await self._savings.save_goal(goal)

    async def delete_goal(self, goal_id: UUID) -> None:
        if not await self._savings.delete_goal(goal_id):
            raise NotFoundError(f"Savings goal not found: {goal_id}")

    async def list_goals(self) -> list[SavingsGoal]:
        return await self._savings.list_goals()

    # -------------------------------------------------------------------------
    # Deposits
    # -------------------------------------------------------------------------

    async def add_deposit(
        self,
        deposit: SavingsDeposit,
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        """
        Record a new deposit and add its amount to the goal.

        Raises:
            NotFoundError: unknown goal or depositing person
            DuplicateError: a deposit with this id already exists
        """
        await self._require_goal(deposit.goal_id)
        await self._require_person(deposit.person)
        if await self._savings.get_deposit(deposit.id) is not None:
            raise DuplicateError(f"Deposit already exists: {deposit.id}")
        return await self._apply(deposit.id, deposit, correlation_id)

    async def update_deposit(
        self,
        deposit_id: UUID,
        amount: Decimal,
        deposit_date: date,
        person: Optional[PersonRef] = None,
        note: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        """
        Replace a deposit's fields; the goal moves by the amount difference.

        Raises:
            NotFoundError: unknown deposit or person
        """
        existing = await self._savings.get_deposit(deposit_id)
        if existing is None:
            raise NotFoundError(f"Deposit not found: {deposit_id}")
        await self._require_person(person)

        updated = SavingsDeposit(
            id=deposit_id,
            goal_id=existing.goal_id,
            amount=amount,
            date=deposit_date,
            person=person,
            note=note,
        )
        return await self._apply(deposit_id, updated, correlation_id)

    async def delete_deposit(
        self,
        deposit_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        """Remove a deposit and subtract its amount from the goal."""
        return await self._apply(deposit_id, None, correlation_id)

    async def list_deposits(self, goal_id: Optional[UUID] = None) -> list[SavingsDeposit]:
        """Deposits, newest first."""
        return await self._savings.list_deposits(goal_id)

    async def _apply(
        self,
        deposit_id: UUID,
        deposit: Optional[SavingsDeposit],
        correlation_id: Optional[UUID],
    ) -> SavingsGoal:
        goal, delta = await self._savings.apply_deposit_change(deposit_id, deposit)
        logger.info(
            "deposit_applied",
            goal_id=str(goal.id),
            deposit_id=str(deposit_id),
            delta=format_money(delta),
        )
        await self._audit.log_deposit_applied(
            goal_id=goal.id,
            deposit_id=deposit_id,
            delta=format_money(delta),
            current_amount=format_money(goal.current_amount),
            correlation_id=correlation_id,
        )
        return goal
