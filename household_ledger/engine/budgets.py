"""
Budget Allocation

A budget is a spending limit for one (competency, category, person). Its
amount is either given directly or taken as a percentage of the person's
effective income for the competency.

DESIGN DECISION: The amount is resolved once, when the budget is created,
and stored as a snapshot. Income edited later never changes an existing
budget; `percentage` is kept next to the amount for display only.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from household_ledger.audit.logger import AuditLogger
from household_ledger.engine.income import total_income
from household_ledger.models.ledger import (
    Budget,
    BudgetRequest,
    BudgetType,
    IndividualRef,
)
from household_ledger.models.money import format_money, percent_of
from household_ledger.services.storage.interface import (
    BudgetStorageInterface,
    NotFoundError,
    PersonStorageInterface,
    TransactionStorageInterface,
)
from household_ledger.validation.validator import RequestValidator, ensure_valid

logger = structlog.get_logger(__name__)


def resolve_budget_amount(request: BudgetRequest, income: Decimal) -> Decimal:
    """
    Final amount of a budget.

    Args:
        request: The budget request (already validated)
        income: Effective income of the request's person for its competency

    Returns:
        The fixed amount, or `income * percentage / 100` rounded half-up
    """
    if request.budget_type == BudgetType.PERCENTAGE:
        return percent_of(income, request.percentage)
    return request.amount


class BudgetService:
    """Creates, lists and deletes budgets."""

    def __init__(
        self,
        persons: PersonStorageInterface,
        transactions: TransactionStorageInterface,
        budgets: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._persons = persons
        self._transactions = transactions
        self._budgets = budgets
        self._audit = audit_logger or AuditLogger()

    async def create_budget(
        self,
        request: BudgetRequest,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Resolve and store a budget.

        Raises:
            BadRequestError: amount or percentage missing for the budget type
            NotFoundError: the request names a person that does not exist
        """
        ensure_valid(RequestValidator.budget_request(request))

        if isinstance(request.person, IndividualRef):
            person = await self._persons.get_person(request.person.person_id)
            if person is None:
                raise NotFoundError(f"Person not found: {request.person.person_id}")

        if request.budget_type == BudgetType.PERCENTAGE:
            income_rows = await self._transactions.list_income_for_competency(request.competency)
            income = total_income(request.competency, request.person, income_rows)
        else:
            income = None
        amount = resolve_budget_amount(request, income)

        budget = await self._budgets.save_budget(Budget(
            competency=request.competency,
            category=request.category,
            person=request.person,
            budget_type=request.budget_type,
            amount=amount,
            percentage=request.percentage,
        ))

        logger.info(
            "budget_created",
            budget_id=str(budget.id),
            competency=str(budget.competency),
            budget_type=budget.budget_type.value,
        )
        await self._audit.log_budget_created(
            budget_id=budget.id,
            competency=str(budget.competency),
            category=budget.category,
            amount=format_money(budget.amount),
            budget_type=budget.budget_type.value,
            correlation_id=correlation_id,
        )
        return budget

    async def list_budgets(self) -> list[Budget]:
        """All budgets ordered by competency (chronologically), then category."""
        budgets = await self._budgets.list_budgets()
        budgets.sort(key=lambda b: (b.competency, b.category))
        return budgets

    async def delete_budget(self, budget_id: UUID, correlation_id: Optional[UUID] = None) -> None:
        if not await self._budgets.delete_budget(budget_id):
            raise NotFoundError(f"Budget not found: {budget_id}")
        await self._audit.log_budget_deleted(budget_id, correlation_id)
