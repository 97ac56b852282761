"""
Abstract Storage Interface

DESIGN DECISION: The engines never talk to a database. They call these
narrow interfaces, which allows us to:
1. Keep every calculation pure and testable with in-memory storage
2. Swap Google Sheets for a real database later
3. Put the all-or-nothing boundary in one place (each mutating method here
   is one unit of work)

The interface is intentionally simple - we're not building a full ORM.
Just the reads and writes the ledger operations need.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
from uuid import UUID

from household_ledger.models.audit import AuditEvent
from household_ledger.models.competency import Competency
from household_ledger.models.ledger import (
    Budget,
    CreditCard,
    CreditCardInvoice,
    Investment,
    Person,
    RecurringDefinition,
    SavingsDeposit,
    SavingsGoal,
    Transaction,
)


class PersonStorageInterface(ABC):
    """Read/write access to the person registry."""

    @abstractmethod
    async def get_person(self, person_id: UUID) -> Optional[Person]:
        pass

    @abstractmethod
    async def find_person_by_name(self, name: str) -> Optional[Person]:
        """Name lookup ignoring case and accents, used for uniqueness checks."""
        pass

    @abstractmethod
    async def list_active_persons(self) -> list[Person]:
        """Active persons ordered by name."""
        pass

    @abstractmethod
    async def save_person(self, person: Person) -> Person:
        """Insert or replace a person."""
        pass


class CreditCardStorageInterface(ABC):

    @abstractmethod
    async def get_card(self, card_id: UUID) -> Optional[CreditCard]:
        pass

    @abstractmethod
    async def find_card_by_name(self, name: str) -> Optional[CreditCard]:
        """Case-insensitive name lookup (used by CSV import)."""
        pass

    @abstractmethod
    async def list_cards(self) -> list[CreditCard]:
        """All cards ordered by name."""
        pass

    @abstractmethod
    async def save_card(self, card: CreditCard) -> CreditCard:
        pass


class TransactionStorageInterface(ABC):
    """
    Storage of ledger entries.

    `save_transactions` writes its whole list as one unit: either every row
    is stored or none is. Installment creation and reflow depend on this.
    """

    @abstractmethod
    async def save_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        """
        Insert or replace a batch of transactions atomically.

        Returns:
            The stored transactions, in the order given
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Returns True if a row was removed."""
        pass

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """Every transaction, newest date first."""
        pass

    @abstractmethod
    async def list_income_for_competency(self, competency: Competency) -> list[Transaction]:
        """All income-type transactions booked in the competency."""
        pass

    @abstractmethod
    async def list_installment_group(self, parent_purchase_id: UUID) -> list[Transaction]:
        """Rows sharing the parent purchase id, ordered by installment number."""
        pass

    @abstractmethod
    async def delete_installment_group(self, parent_purchase_id: UUID) -> int:
        """Remove every row of the group in one unit. Returns the count removed."""
        pass

    @abstractmethod
    async def has_generated(self, definition_id: UUID, competency: Competency) -> bool:
        """Whether a recurring definition already produced a row for the competency."""
        pass


class RecurringStorageInterface(ABC):

    @abstractmethod
    async def save_definition(self, definition: RecurringDefinition) -> RecurringDefinition:
        pass

    @abstractmethod
    async def get_definition(self, definition_id: UUID) -> Optional[RecurringDefinition]:
        pass

    @abstractmethod
    async def list_active_definitions(self) -> list[RecurringDefinition]:
        """Definitions flagged active, ordered by start date."""
        pass


class BudgetStorageInterface(ABC):

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    async def list_budgets(self) -> list[Budget]:
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID) -> bool:
        """Returns True if a budget was removed."""
        pass


class SavingsStorageInterface(ABC):
    """
    Storage of savings goals and their deposits.

    A goal's `current_amount` is only ever changed by `apply_deposit_change`.
    """

    @abstractmethod
    async def save_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """
        Insert or replace a goal's descriptive fields.

        Implementations keep the stored `current_amount` of an existing goal.
        """
        pass

    @abstractmethod
    async def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        pass

    @abstractmethod
    async def list_goals(self) -> list[SavingsGoal]:
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: UUID) -> bool:
        """Remove a goal together with its deposits. Returns True if it existed."""
        pass

    @abstractmethod
    async def get_deposit(self, deposit_id: UUID) -> Optional[SavingsDeposit]:
        pass

    @abstractmethod
    async def list_deposits(self, goal_id: Optional[UUID] = None) -> list[SavingsDeposit]:
        """Deposits, newest first, optionally restricted to one goal."""
        pass

    @abstractmethod
    async def apply_deposit_change(
        self,
        deposit_id: UUID,
        deposit: Optional[SavingsDeposit],
    ) -> tuple[SavingsGoal, Decimal]:
        """
        Write or remove a deposit and move its goal's aggregate by the delta.

        The stored amount of `deposit_id` (zero if new) is read, the deposit is
        written (or removed when `deposit` is None), and the goal's
        `current_amount` is increased by `new - old`, all in one serialized
        unit. Concurrent calls against the same goal must not lose updates.

        Returns:
            (updated goal, delta applied)

        Raises:
            NotFoundError: if the goal does not exist, or a removal targets
                           a deposit that does not exist
        """
        pass


class InvestmentStorageInterface(ABC):

    @abstractmethod
    async def save_investment(self, investment: Investment) -> Investment:
        pass

    @abstractmethod
    async def list_investments(self) -> list[Investment]:
        """Newest investment date first."""
        pass


class ClosureStorageInterface(ABC):
    """Closed months and per-month credit-card invoice flags."""

    @abstractmethod
    async def list_closed_months(self) -> list[Competency]:
        pass

    @abstractmethod
    async def add_closed_month(self, competency: Competency) -> None:
        """
        Raises:
            DuplicateError: if the month is already closed
        """
        pass

    @abstractmethod
    async def remove_closed_month(self, competency: Competency) -> bool:
        pass

    @abstractmethod
    async def list_invoices(self, reference_month: Competency) -> list[CreditCardInvoice]:
        pass

    @abstractmethod
    async def save_invoices(self, invoices: list[CreditCardInvoice]) -> list[CreditCardInvoice]:
        """Insert or replace invoices as one unit."""
        pass


class OwnershipStorageInterface(ABC):
    """
    Person removal across every owning collection.

    Both methods delete the person record itself in the same unit of work.
    """

    @abstractmethod
    async def migrate_person(self, person_id: UUID, target_id: UUID) -> dict[str, int]:
        """
        Point every record owned by `person_id` at `target_id`, then delete
        the person.

        Returns:
            Count of rewritten records per collection
        """
        pass

    @abstractmethod
    async def purge_person(self, person_id: UUID) -> dict[str, int]:
        """
        Delete every record owned by `person_id`, then the person.

        Returns:
            Count of deleted records per collection
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
