"""
In-Memory Storage Implementation

Backs every ledger interface with plain dicts. Used by the test-suite, by
embedders that bring their own persistence, and as the working set of the
Google Sheets adapter (which loads worksheets into these dicts and flushes
them back after each unit of work).

DESIGN DECISION: One asyncio.Lock serializes every mutating method. A unit
of work (an installment reflow, a deposit delta, a person migration) reads,
computes and writes under the lock, then calls `_commit` with the names of
the collections it touched while still holding it.
"""

import asyncio
from decimal import Decimal
from typing import Iterable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from household_ledger.models.audit import AuditEvent
from household_ledger.models.competency import Competency
from household_ledger.models.ledger import (
    Budget,
    CreditCard,
    CreditCardInvoice,
    IndividualRef,
    Investment,
    Person,
    RecurringDefinition,
    SavingsDeposit,
    SavingsGoal,
    Transaction,
    TransactionType,
    individual,
    normalize_label,
)
from household_ledger.models.money import ZERO, quantize_money
from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ClosureStorageInterface,
    CreditCardStorageInterface,
    DuplicateError,
    InvestmentStorageInterface,
    NotFoundError,
    OwnershipStorageInterface,
    PersonStorageInterface,
    RecurringStorageInterface,
    SavingsStorageInterface,
    TransactionStorageInterface,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection names, also used as worksheet names by the Sheets adapter
PERSONS = "persons"
CARDS = "credit_cards"
TRANSACTIONS = "transactions"
RECURRING = "recurring_definitions"
BUDGETS = "budgets"
GOALS = "savings_goals"
DEPOSITS = "savings_deposits"
INVESTMENTS = "investments"
CLOSED_MONTHS = "closed_months"
INVOICES = "credit_card_invoices"

COLLECTION_MODELS: dict[str, type[BaseModel]] = {
    PERSONS: Person,
    CARDS: CreditCard,
    TRANSACTIONS: Transaction,
    RECURRING: RecurringDefinition,
    BUDGETS: Budget,
    GOALS: SavingsGoal,
    DEPOSITS: SavingsDeposit,
    INVESTMENTS: Investment,
    INVOICES: CreditCardInvoice,
}


def _copy(model: ModelT) -> ModelT:
    return model.model_copy(deep=True)


def _owned_by(ref: object, person_id: UUID) -> bool:
    return isinstance(ref, IndividualRef) and ref.person_id == person_id


class InMemoryLedgerStorage(
    PersonStorageInterface,
    CreditCardStorageInterface,
    TransactionStorageInterface,
    RecurringStorageInterface,
    BudgetStorageInterface,
    SavingsStorageInterface,
    InvestmentStorageInterface,
    ClosureStorageInterface,
    OwnershipStorageInterface,
):
    """Dict-backed implementation of every ledger storage interface."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._collections: dict[str, dict[UUID, BaseModel]] = {
            name: {} for name in COLLECTION_MODELS
        }
        self._closed_months: set[Competency] = set()

    async def _commit(self, touched: Iterable[str]) -> None:
        """Hook called at the end of every unit of work, under the lock."""
        return None

    def _rows(self, name: str) -> dict[UUID, BaseModel]:
        return self._collections[name]

    def _get(self, name: str, entity_id: UUID):
        row = self._collections[name].get(entity_id)
        return _copy(row) if row is not None else None

    async def _put(self, name: str, model: ModelT) -> ModelT:
        async with self._lock:
            self._collections[name][model.id] = _copy(model)
            await self._commit([name])
        return _copy(model)

    async def _remove(self, name: str, entity_id: UUID) -> bool:
        async with self._lock:
            removed = self._collections[name].pop(entity_id, None) is not None
            if removed:
                await self._commit([name])
        return removed

    # -------------------------------------------------------------------------
    # Persons
    # -------------------------------------------------------------------------

    async def get_person(self, person_id: UUID) -> Optional[Person]:
        return self._get(PERSONS, person_id)

    async def find_person_by_name(self, name: str) -> Optional[Person]:
        key = normalize_label(name)
        for person in self._rows(PERSONS).values():
            if normalize_label(person.name) == key:
                return _copy(person)
        return None

    async def list_active_persons(self) -> list[Person]:
        persons = [_copy(p) for p in self._rows(PERSONS).values() if p.active]
        persons.sort(key=lambda p: p.name.casefold())
        return persons

    async def save_person(self, person: Person) -> Person:
        return await self._put(PERSONS, person)

    # -------------------------------------------------------------------------
    # Credit cards
    # -------------------------------------------------------------------------

    async def get_card(self, card_id: UUID) -> Optional[CreditCard]:
        return self._get(CARDS, card_id)

    async def find_card_by_name(self, name: str) -> Optional[CreditCard]:
        wanted = name.strip().casefold()
        for card in self._rows(CARDS).values():
            if card.name.casefold() == wanted:
                return _copy(card)
        return None

    async def list_cards(self) -> list[CreditCard]:
        cards = [_copy(c) for c in self._rows(CARDS).values()]
        cards.sort(key=lambda c: c.name.casefold())
        return cards

    async def save_card(self, card: CreditCard) -> CreditCard:
        return await self._put(CARDS, card)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def save_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        if not transactions:
            return []
        async with self._lock:
            rows = self._rows(TRANSACTIONS)
            for transaction in transactions:
                rows[transaction.id] = _copy(transaction)
            await self._commit([TRANSACTIONS])
        return [_copy(t) for t in transactions]

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._get(TRANSACTIONS, transaction_id)

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return await self._remove(TRANSACTIONS, transaction_id)

    async def list_transactions(self) -> list[Transaction]:
        """Every transaction, newest date first."""
        rows = [_copy(t) for t in self._rows(TRANSACTIONS).values()]
        rows.sort(key=lambda t: t.date, reverse=True)
        return rows

    async def list_income_for_competency(self, competency: Competency) -> list[Transaction]:
        return [
            _copy(t) for t in self._rows(TRANSACTIONS).values()
            if t.type == TransactionType.INCOME and t.competency == competency
        ]

    async def list_installment_group(self, parent_purchase_id: UUID) -> list[Transaction]:
        group = [
            _copy(t) for t in self._rows(TRANSACTIONS).values()
            if t.parent_purchase_id == parent_purchase_id
        ]
        group.sort(key=lambda t: t.installment_group.installment_number)
        return group

    async def delete_installment_group(self, parent_purchase_id: UUID) -> int:
        async with self._lock:
            rows = self._rows(TRANSACTIONS)
            doomed = [tid for tid, t in rows.items() if t.parent_purchase_id == parent_purchase_id]
            for tid in doomed:
                del rows[tid]
            if doomed:
                await self._commit([TRANSACTIONS])
        return len(doomed)

    async def has_generated(self, definition_id: UUID, competency: Competency) -> bool:
        return any(
            t.recurring_definition_id == definition_id and t.competency == competency
            for t in self._rows(TRANSACTIONS).values()
        )

    # -------------------------------------------------------------------------
    # Recurring definitions
    # -------------------------------------------------------------------------

    async def save_definition(self, definition: RecurringDefinition) -> RecurringDefinition:
        return await self._put(RECURRING, definition)

    async def get_definition(self, definition_id: UUID) -> Optional[RecurringDefinition]:
        return self._get(RECURRING, definition_id)

    async def list_active_definitions(self) -> list[RecurringDefinition]:
        active = [_copy(d) for d in self._rows(RECURRING).values() if d.active]
        active.sort(key=lambda d: (d.start_date, str(d.id)))
        return active

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def save_budget(self, budget: Budget) -> Budget:
        return await self._put(BUDGETS, budget)

    async def list_budgets(self) -> list[Budget]:
        return [_copy(b) for b in self._rows(BUDGETS).values()]

    async def delete_budget(self, budget_id: UUID) -> bool:
        return await self._remove(BUDGETS, budget_id)

    # -------------------------------------------------------------------------
    # Savings
    # -------------------------------------------------------------------------

    async def save_goal(self, goal: SavingsGoal) -> SavingsGoal:
        async with self._lock:
            goals = self._rows(GOALS)
            stored = goals.get(goal.id)
            current = stored.current_amount if stored is not None else goal.current_amount
            goals[goal.id] = goal.model_copy(update={"current_amount": current}, deep=True)
            await self._commit([GOALS])
            return _copy(goals[goal.id])

    async def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        return self._get(GOALS, goal_id)

    async def list_goals(self) -> list[SavingsGoal]:
        return [_copy(g) for g in self._rows(GOALS).values()]

    async def delete_goal(self, goal_id: UUID) -> bool:
        async with self._lock:
            if self._rows(GOALS).pop(goal_id, None) is None:
                return False
            deposits = self._rows(DEPOSITS)
            for deposit_id in [d.id for d in deposits.values() if d.goal_id == goal_id]:
                del deposits[deposit_id]
            await self._commit([GOALS, DEPOSITS])
        return True

    async def get_deposit(self, deposit_id: UUID) -> Optional[SavingsDeposit]:
        return self._get(DEPOSITS, deposit_id)

    async def list_deposits(self, goal_id: Optional[UUID] = None) -> list[SavingsDeposit]:
        deposits = [
            _copy(d) for d in self._rows(DEPOSITS).values()
            if goal_id is None or d.goal_id == goal_id
        ]
        deposits.sort(key=lambda d: d.date, reverse=True)
        return deposits

    async def apply_deposit_change(
        self,
        deposit_id: UUID,
        deposit: Optional[SavingsDeposit],
    ) -> tuple[SavingsGoal, Decimal]:
        async with self._lock:
            goal, delta = self._apply_deposit_change(deposit_id, deposit)
            await self._commit([GOALS, DEPOSITS])
        return _copy(goal), delta

    def _apply_deposit_change(
        self,
        deposit_id: UUID,
        deposit: Optional[SavingsDeposit],
    ) -> tuple[SavingsGoal, Decimal]:
        # Caller holds the lock. Every change to a goal's aggregate lands here.
        deposits = self._rows(DEPOSITS)
        goals = self._rows(GOALS)
        previous = deposits.get(deposit_id)

        if deposit is None:
            if previous is None:
                raise NotFoundError(f"Deposit not found: {deposit_id}")
            goal_id = previous.goal_id
        else:
            if previous is not None and previous.goal_id != deposit.goal_id:
                raise ValueError("A deposit cannot be moved to another goal")
            goal_id = deposit.goal_id

        goal = goals.get(goal_id)
        if goal is None:
            raise NotFoundError(f"Savings goal not found: {goal_id}")

        old_amount = previous.amount if previous is not None else ZERO
        new_amount = deposit.amount if deposit is not None else ZERO
        delta = quantize_money(new_amount - old_amount)

        if deposit is None:
            del deposits[deposit_id]
        else:
            deposits[deposit_id] = _copy(deposit)
        goal.current_amount = quantize_money(goal.current_amount + delta)
        return goal, delta

    # -------------------------------------------------------------------------
    # Investments
    # -------------------------------------------------------------------------

    async def save_investment(self, investment: Investment) -> Investment:
        return await self._put(INVESTMENTS, investment)

    async def list_investments(self) -> list[Investment]:
        investments = [_copy(i) for i in self._rows(INVESTMENTS).values()]
        investments.sort(key=lambda i: i.investment_date, reverse=True)
        return investments

    # -------------------------------------------------------------------------
    # Month closure & invoices
    # -------------------------------------------------------------------------

    async def list_closed_months(self) -> list[Competency]:
        return sorted(self._closed_months)

    async def add_closed_month(self, competency: Competency) -> None:
        async with self._lock:
            if competency in self._closed_months:
                raise DuplicateError(f"Month already closed: {competency}")
            self._closed_months.add(competency)
            await self._commit([CLOSED_MONTHS])

    async def remove_closed_month(self, competency: Competency) -> bool:
        async with self._lock:
            if competency not in self._closed_months:
                return False
            self._closed_months.discard(competency)
            await self._commit([CLOSED_MONTHS])
        return True

    async def list_invoices(self, reference_month: Competency) -> list[CreditCardInvoice]:
        return [
            _copy(i) for i in self._rows(INVOICES).values()
            if i.reference_month == reference_month
        ]

    async def save_invoices(self, invoices: list[CreditCardInvoice]) -> list[CreditCardInvoice]:
        async with self._lock:
            rows = self._rows(INVOICES)
            for invoice in invoices:
                rows[invoice.id] = _copy(invoice)
            await self._commit([INVOICES])
        return [_copy(i) for i in invoices]

    # -------------------------------------------------------------------------
    # Person removal
    # -------------------------------------------------------------------------

    # (collection, attribute holding the owning PersonRef)
    _OWNERSHIP = (
        (TRANSACTIONS, "person"),
        (BUDGETS, "person"),
        (RECURRING, "person"),
        (DEPOSITS, "person"),
        (CARDS, "owner"),
        (GOALS, "owner"),
        (INVESTMENTS, "owner"),
    )

    async def migrate_person(self, person_id: UUID, target_id: UUID) -> dict[str, int]:
        async with self._lock:
            if person_id not in self._rows(PERSONS):
                raise NotFoundError(f"Person not found: {person_id}")
            if target_id not in self._rows(PERSONS):
                raise NotFoundError(f"Target person not found: {target_id}")

            target_ref = individual(target_id)
            counts = {}
            for name, attr in self._OWNERSHIP:
                rows = self._rows(name)
                count = 0
                for row_id, row in rows.items():
                    if _owned_by(getattr(row, attr), person_id):
                        rows[row_id] = row.model_copy(update={attr: target_ref})
                        count += 1
                counts[name] = count

            self._drop_person(person_id, replacement=target_id)
            await self._commit([PERSONS] + [name for name, _ in self._OWNERSHIP])
        return counts

    async def purge_person(self, person_id: UUID) -> dict[str, int]:
        async with self._lock:
            if person_id not in self._rows(PERSONS):
                raise NotFoundError(f"Person not found: {person_id}")

            counts = {}
            goals = self._rows(GOALS)
            deposits = self._rows(DEPOSITS)

            # Goals go first, taking their deposits with them
            doomed_goals = [gid for gid, g in goals.items() if _owned_by(g.owner, person_id)]
            for gid in doomed_goals:
                del goals[gid]
            orphaned = [did for did, d in deposits.items() if d.goal_id in doomed_goals]
            for did in orphaned:
                del deposits[did]
            counts[GOALS] = len(doomed_goals)

            # Remaining deposits made by the person still count toward other
            # people's goals, so they leave through the delta path
            own_deposits = [did for did, d in deposits.items() if _owned_by(d.person, person_id)]
            for did in own_deposits:
                self._apply_deposit_change(did, None)
            counts[DEPOSITS] = len(orphaned) + len(own_deposits)

            for name, attr in self._OWNERSHIP:
                if name in (GOALS, DEPOSITS):
                    continue
                rows = self._rows(name)
                doomed = [rid for rid, row in rows.items() if _owned_by(getattr(row, attr), person_id)]
                for rid in doomed:
                    del rows[rid]
                counts[name] = len(doomed)

            self._drop_person(person_id, replacement=None)
            await self._commit([PERSONS] + [name for name, _ in self._OWNERSHIP])
        return counts

    def _drop_person(self, person_id: UUID, replacement: Optional[UUID]) -> None:
        persons = self._rows(PERSONS)
        del persons[person_id]
        for pid, person in persons.items():
            if person_id not in person.split_with:
                continue
            partners = set(person.split_with) - {person_id}
            if replacement is not None and replacement != pid:
                partners.add(replacement)
            persons[pid] = person.model_copy(update={"split_with": partners})


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
