"""Tests for the person registry and person removal."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.config import LedgerSettings
from household_ledger.engine import PersonService
from household_ledger.models import (
    JOINT,
    AuditEventType,
    Budget,
    BudgetType,
    CreditCard,
    Investment,
    InvestmentType,
    SavingsDeposit,
    SavingsGoal,
)
from household_ledger.services.storage import NotFoundError
from household_ledger.validation import BadRequestError

from conftest import make_transaction


def service_for(storage, audit_logger=None) -> PersonService:
    return PersonService(storage, storage, audit_logger)


async def seed_household(storage, kaio, gabriela):
    """Kaio and Gabriela split with each other and each own a few records."""
    await storage.save_person(kaio.model_copy(update={"split_with": {gabriela.id}}))
    await storage.save_person(gabriela.model_copy(update={"split_with": {kaio.id}}))
    await storage.save_transactions([
        make_transaction(kaio.ref, value="10.00"),
        make_transaction(kaio.ref, value="20.00"),
        make_transaction(gabriela.ref, value="30.00"),
        make_transaction(JOINT, value="40.00"),
    ])
    await storage.save_card(CreditCard(name="Nubank", owner=kaio.ref))
    await storage.save_budget(Budget(
        competency="03/2024",
        category="Lazer",
        person=kaio.ref,
        budget_type=BudgetType.FIXED,
        amount="300.00",
    ))
    await storage.save_investment(Investment(
        name="Tesouro Selic",
        type=InvestmentType.TREASURY,
        owner=kaio.ref,
        invested_amount="1000.00",
        investment_date=date(2024, 1, 15),
    ))


class TestRegistry:
    """Tests for creating and editing people."""

    def test_create_and_list_ordered_by_name(self, storage):
        async def scenario():
            service = service_for(storage)
            await service.create_person("Gabriela")
            await service.create_person("kaio")
            await service.create_person("Ana")
            return await service.list_active()

        assert [p.name for p in asyncio.run(scenario())] == ["Ana", "Gabriela", "kaio"]

    def test_duplicate_name_is_bad_request(self, storage):
        async def scenario():
            service = service_for(storage)
            await service.create_person("Kaio")
            await service.create_person(" Kaio ")

        with pytest.raises(BadRequestError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.issues[0].issue_type == "duplicate"

    def test_names_differing_only_in_case_or_accents_collide(self, storage):
        async def scenario():
            service = service_for(storage)
            await service.create_person("Júlia")
            await service.create_person("julia")

        with pytest.raises(BadRequestError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.issues[0].issue_type == "duplicate"

    def test_joint_label_is_reserved(self, storage):
        service = PersonService(storage, storage, settings=LedgerSettings(joint_label="Ambos"))
        for name in ("Ambos", "ambos", "JOINT"):
            with pytest.raises(BadRequestError) as exc_info:
                asyncio.run(service.create_person(name))
            assert exc_info.value.issues[0].issue_type == "reserved"

    def test_blank_name_is_bad_request(self, storage):
        async def scenario():
            service = service_for(storage)
            kaio = await service.create_person("Kaio")
            await service.update_person(kaio.id, "   ")

        with pytest.raises(BadRequestError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.issues[0].issue_type == "missing"

    def test_blank_name_leaves_person_unchanged(self, storage):
        async def scenario():
            service = service_for(storage)
            kaio = await service.create_person("Kaio")
            with pytest.raises(BadRequestError):
                await service.update_person(kaio.id, "   ")
            return await storage.get_person(kaio.id)

        assert asyncio.run(scenario()).name == "Kaio"

    def test_rename_changing_only_case_is_allowed(self, storage):
        async def scenario():
            service = service_for(storage)
            kaio = await service.create_person("kaio")
            return await service.update_person(kaio.id, "Kaio")

        assert asyncio.run(scenario()).name == "Kaio"

    def test_rename_to_taken_name_is_bad_request(self, storage):
        async def scenario():
            service = service_for(storage)
            kaio = await service.create_person("Kaio")
            await service.create_person("Gabriela")
            await service.update_person(kaio.id, "Gabriela")

        with pytest.raises(BadRequestError):
            asyncio.run(scenario())

    def test_cannot_split_with_self(self, storage):
        async def scenario():
            service = service_for(storage)
            kaio = await service.create_person("Kaio")
            await service.update_person(kaio.id, "Kaio", allow_split=True, split_with=[kaio.id])

        with pytest.raises(BadRequestError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.issues[0].field == "split_with"

    def test_unknown_split_partner_is_not_found(self, storage):
        with pytest.raises(NotFoundError):
            asyncio.run(service_for(storage).create_person("Kaio", True, [uuid4()]))

    def test_update_keeps_split_when_omitted(self, storage):
        async def scenario():
            service = service_for(storage)
            gabriela = await service.create_person("Gabriela")
            kaio = await service.create_person("Kaio", allow_split=True, split_with=[gabriela.id])
            updated = await service.update_person(kaio.id, "Kaio Silva")
            return gabriela, updated

        gabriela, updated = asyncio.run(scenario())
        assert updated.name == "Kaio Silva"
        assert updated.allow_split is True
        assert updated.split_with == {gabriela.id}

    def test_get_unknown_person(self, storage):
        with pytest.raises(NotFoundError):
            asyncio.run(service_for(storage).get_person(uuid4()))


class TestDeletionChoice:
    """Exactly one of migrate or delete must be chosen."""

    def test_neither(self, storage, kaio):
        async def scenario():
            await storage.save_person(kaio)
            await service_for(storage).delete_person(kaio.id)

        with pytest.raises(BadRequestError):
            asyncio.run(scenario())

    def test_both(self, storage, kaio, gabriela):
        with pytest.raises(BadRequestError):
            asyncio.run(service_for(storage).delete_person(kaio.id, migrate_to=gabriela.id, delete_owned=True))

    def test_migrate_to_self(self, storage, kaio):
        with pytest.raises(BadRequestError):
            asyncio.run(service_for(storage).delete_person(kaio.id, migrate_to=kaio.id))

    def test_unknown_target(self, storage, kaio):
        async def scenario():
            await storage.save_person(kaio)
            await service_for(storage).delete_person(kaio.id, migrate_to=uuid4())

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())


class TestMigration:
    """Migrating re-points every owned record at the target."""

    def test_migrate_rewrites_records(self, storage, kaio, gabriela, audit_storage, audit_logger):
        async def scenario():
            await seed_household(storage, kaio, gabriela)
            counts = await service_for(storage, audit_logger).delete_person(kaio.id, migrate_to=gabriela.id)
            return (
                counts,
                await storage.list_transactions(),
                await storage.list_cards(),
                await storage.list_budgets(),
                await storage.list_investments(),
                await storage.list_active_persons(),
                await audit_storage.get_recent_events(),
            )

        counts, transactions, cards, budgets, investments, persons, events = asyncio.run(scenario())
        assert counts["transactions"] == 2
        assert len(transactions) == 4
        assert not any(t.person == kaio.ref for t in transactions)
        assert sum(1 for t in transactions if t.person == gabriela.ref) == 3
        assert cards[0].owner == gabriela.ref
        assert budgets[0].person == gabriela.ref
        assert investments[0].owner == gabriela.ref
        assert [p.name for p in persons] == ["Gabriela"]
        # The target no longer splits with the removed person, nor with itself
        assert persons[0].split_with == set()
        assert events[0].event_type == AuditEventType.PERSON_MIGRATED

    def test_third_person_split_moves_to_target(self, storage, kaio, gabriela):
        async def scenario():
            service = service_for(storage)
            await storage.save_person(kaio)
            await storage.save_person(gabriela)
            ana = await service.create_person("Ana", allow_split=True, split_with=[kaio.id])
            await service.delete_person(kaio.id, migrate_to=gabriela.id)
            return await storage.get_person(ana.id)

        ana = asyncio.run(scenario())
        assert ana.split_with == {gabriela.id}


class TestPurge:
    """Deleting removes every owned record and keeps other goals consistent."""

    def test_purge_deletes_owned_records(self, storage, kaio, gabriela, audit_storage, audit_logger):
        async def scenario():
            await seed_household(storage, kaio, gabriela)
            counts = await service_for(storage, audit_logger).delete_person(kaio.id, delete_owned=True)
            return (
                counts,
                await storage.list_transactions(),
                await storage.list_cards(),
                await storage.list_budgets(),
                await storage.list_investments(),
                await storage.get_person(gabriela.id),
                await audit_storage.get_recent_events(),
            )

        counts, transactions, cards, budgets, investments, gabriela_after, events = asyncio.run(scenario())
        assert counts["transactions"] == 2
        assert sorted(t.value for t in transactions) == [Decimal("30.00"), Decimal("40.00")]
        assert cards == []
        assert budgets == []
        assert investments == []
        assert gabriela_after.split_with == set()
        assert events[0].event_type == AuditEventType.PERSON_DELETED

    def test_purge_adjusts_other_goals(self, storage, kaio, gabriela):
        async def scenario():
            await storage.save_person(kaio)
            await storage.save_person(gabriela)
            own_goal = await storage.save_goal(SavingsGoal(name="Moto", target_amount="9000", owner=kaio.ref))
            shared = await storage.save_goal(SavingsGoal(name="Casa", target_amount="90000", owner=JOINT))

            for goal, person, amount in (
                (own_goal, kaio.ref, "500.00"),
                (shared, kaio.ref, "100.00"),
                (shared, gabriela.ref, "250.00"),
            ):
                deposit = SavingsDeposit(goal_id=goal.id, amount=amount, date=date(2024, 3, 1), person=person)
                await storage.apply_deposit_change(deposit.id, deposit)

            await service_for(storage).delete_person(kaio.id, delete_owned=True)
            return (
                await storage.get_goal(own_goal.id),
                await storage.get_goal(shared.id),
                await storage.list_deposits(),
            )

        own_goal, shared, deposits = asyncio.run(scenario())
        assert own_goal is None
        assert shared.current_amount == Decimal("250.00")
        assert [d.person for d in deposits] == [gabriela.ref]
