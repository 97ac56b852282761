"""Tests for budget allocation."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.engine import BudgetService, resolve_budget_amount
from household_ledger.models import (
    JOINT,
    AuditEventType,
    BudgetRequest,
    BudgetType,
    Competency,
    individual,
)
from household_ledger.services.storage import NotFoundError
from household_ledger.validation import BadRequestError

from conftest import make_income


def percentage_request(person, percentage: str, competency: str = "03/2024") -> BudgetRequest:
    return BudgetRequest(
        competency=competency,
        category="Lazer",
        person=person,
        budget_type=BudgetType.PERCENTAGE,
        percentage=Decimal(percentage),
    )


class TestResolveBudgetAmount:
    """Tests for the pure amount resolution."""

    def test_fixed_amount_is_unchanged(self):
        request = BudgetRequest(
            competency="03/2024",
            category="Mercado",
            person=JOINT,
            amount="750.50",
        )
        assert resolve_budget_amount(request, Decimal("99999.00")) == Decimal("750.50")

    def test_percentage_of_income(self):
        assert resolve_budget_amount(percentage_request(JOINT, "10"), Decimal("1000.00")) == Decimal("100.00")

    def test_percentage_rounds_half_up(self):
        assert resolve_budget_amount(percentage_request(JOINT, "33.33"), Decimal("100.00")) == Decimal("33.33")
        assert resolve_budget_amount(percentage_request(JOINT, "12.5"), Decimal("0.20")) == Decimal("0.03")


class TestBudgetService:
    """Tests for BudgetService against in-memory storage."""

    def _service(self, storage, audit_logger=None):
        return BudgetService(storage, storage, storage, audit_logger)

    def test_percentage_budget_uses_shared_income(self, storage, kaio, audit_storage, audit_logger):
        async def scenario():
            await storage.save_person(kaio)
            await storage.save_transactions([
                make_income(kaio.ref, "3000.00"),
                make_income(JOINT, "1000.00"),
            ])
            service = self._service(storage, audit_logger)
            budget = await service.create_budget(percentage_request(kaio.ref, "10"))
            return budget, await audit_storage.get_recent_events()

        budget, events = asyncio.run(scenario())
        assert budget.amount == Decimal("350.00")
        assert budget.percentage == Decimal("10")
        assert events[0].event_type == AuditEventType.BUDGET_CREATED

    def test_amount_is_a_snapshot(self, storage, kaio):
        async def scenario():
            await storage.save_person(kaio)
            await storage.save_transactions([make_income(kaio.ref, "1000.00")])
            service = self._service(storage)
            created = await service.create_budget(percentage_request(kaio.ref, "10"))
            # Income recorded later does not move the stored budget
            await storage.save_transactions([make_income(kaio.ref, "5000.00")])
            return created, await service.list_budgets()

        created, budgets = asyncio.run(scenario())
        assert created.amount == Decimal("100.00")
        assert budgets[0].amount == Decimal("100.00")

    def test_unknown_person_is_not_found(self, storage):
        service = self._service(storage)
        with pytest.raises(NotFoundError):
            asyncio.run(service.create_budget(percentage_request(individual(uuid4()), "10")))

    def test_percentage_without_percentage_is_bad_request(self, storage):
        service = self._service(storage)
        request = BudgetRequest(
            competency="03/2024",
            category="Lazer",
            person=JOINT,
            budget_type=BudgetType.PERCENTAGE,
        )
        with pytest.raises(BadRequestError) as exc_info:
            asyncio.run(service.create_budget(request))
        assert exc_info.value.issues[0].field == "percentage"

    def test_fixed_without_amount_is_bad_request(self, storage):
        service = self._service(storage)
        request = BudgetRequest(competency="03/2024", category="Lazer", person=JOINT)
        with pytest.raises(BadRequestError):
            asyncio.run(service.create_budget(request))

    def test_list_is_ordered_by_competency_then_category(self, storage):
        async def scenario():
            service = self._service(storage)
            for competency, category in [
                ("01/2025", "Alimentação"),
                ("12/2024", "Transporte"),
                ("12/2024", "Casa"),
            ]:
                await service.create_budget(BudgetRequest(
                    competency=competency,
                    category=category,
                    person=JOINT,
                    amount="100",
                ))
            return await service.list_budgets()

        budgets = asyncio.run(scenario())
        assert [(str(b.competency), b.category) for b in budgets] == [
            ("12/2024", "Casa"),
            ("12/2024", "Transporte"),
            ("01/2025", "Alimentação"),
        ]

    def test_delete(self, storage):
        async def scenario():
            service = self._service(storage)
            budget = await service.create_budget(BudgetRequest(
                competency=Competency.parse("03/2024"),
                category="Casa",
                person=JOINT,
                amount="100",
            ))
            await service.delete_budget(budget.id)
            return await service.list_budgets()

        assert asyncio.run(scenario()) == []

    def test_delete_missing_is_not_found(self, storage):
        with pytest.raises(NotFoundError):
            asyncio.run(self._service(storage).delete_budget(uuid4()))
