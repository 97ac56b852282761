"""
Core Data Models for the Household Ledger

These models define the schemas for every record the engines read or
produce. They are designed to:
1. Enforce the ledger invariants at construction time
2. Keep money as two-place Decimals end to end
3. Be serializable for storage, CSV export and audit logging

DESIGN DECISION: People are data, not an enumeration. A transaction, budget
or card points at either a concrete person (IndividualRef) or the Joint
pseudo-person (JointRef). Income splitting checks the variant, never a
display name.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
import unicodedata
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from household_ledger.models.competency import Competency
from household_ledger.models.money import ZERO, Money


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_label(text: str) -> str:
    """Strip accents and case so "Crédito", "credito" and "CREDITO" compare equal."""
    decomposed = unicodedata.normalize("NFD", text.strip())
    return "".join(c for c in decomposed if not unicodedata.combining(c)).upper()


# =============================================================================
# ENUMS - Finite set of valid values, each with a display label
# =============================================================================

class LabeledEnum(str, Enum):
    """
    Enum whose members carry a human display label.

    Labels are what users see and what CSV files contain. Parsing accepts the
    label (case- and accent-insensitive) or the member name.
    """

    @classmethod
    def labels(cls) -> dict:
        return {}

    @property
    def label(self) -> str:
        return type(self).labels().get(self, self.name)

    @classmethod
    def from_label(cls, text: str) -> "LabeledEnum":
        if text is None:
            raise ValueError(f"{cls.__name__} label cannot be empty")
        target = normalize_label(text)
        for member in cls:
            if normalize_label(member.label) == target:
                return member
        try:
            return cls[text.strip().upper()]
        except KeyError:
            accepted = ", ".join(f"'{m.label}'" for m in cls)
            raise ValueError(f"Invalid {cls.__name__}: {text!r}. Use {accepted}")


class TransactionType(LabeledEnum):
    EXPENSE = "expense"
    INCOME = "income"

    @classmethod
    def labels(cls) -> dict:
        return {cls.EXPENSE: "Despesa", cls.INCOME: "Receita"}


class PaymentMethod(LabeledEnum):
    CREDIT = "credit"
    DEBIT = "debit"
    CASH = "cash"
    PIX = "pix"

    @classmethod
    def labels(cls) -> dict:
        return {
            cls.CREDIT: "Crédito",
            cls.DEBIT: "Débito",
            cls.CASH: "Dinheiro",
            cls.PIX: "PIX",
        }


class BudgetType(str, Enum):
    """How a budget's amount is obtained."""
    FIXED = "fixed"            # amount given by the user
    PERCENTAGE = "percentage"  # share of the person's income for the competency


class InvestmentType(LabeledEnum):
    TREASURY = "treasury"
    CDB = "cdb"
    SAVINGS_ACCOUNT = "savings_account"
    LCI = "lci"
    LCA = "lca"
    FUND = "fund"
    STOCK = "stock"
    REAL_ESTATE_FUND = "real_estate_fund"
    OTHER = "other"

    @classmethod
    def labels(cls) -> dict:
        return {
            cls.TREASURY: "Tesouro Direto",
            cls.CDB: "CDB",
            cls.SAVINGS_ACCOUNT: "Poupança",
            cls.LCI: "LCI",
            cls.LCA: "LCA",
            cls.FUND: "Fundo de Investimento",
            cls.STOCK: "Ação",
            cls.REAL_ESTATE_FUND: "FII",
            cls.OTHER: "Outros",
        }


# =============================================================================
# PEOPLE
# =============================================================================

class IndividualRef(BaseModel):
    """Reference to one concrete person."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["individual"] = "individual"
    person_id: UUID


class JointRef(BaseModel):
    """The Joint pseudo-person: an amount shared equally by the household."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["joint"] = "joint"


PersonRef = Annotated[Union[IndividualRef, JointRef], Field(discriminator="kind")]

JOINT = JointRef()


def individual(person_id: UUID) -> IndividualRef:
    return IndividualRef(person_id=person_id)


def is_joint(ref: Optional[PersonRef]) -> bool:
    return isinstance(ref, JointRef)


class Person(BaseModel):
    """
    A member of the household.

    `split_with` lists the people this person shares expenses with. A person
    never splits with itself, and the Joint pseudo-person is not a Person, so
    it can never appear there either.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    active: bool = True
    allow_split: bool = False
    split_with: set[UUID] = Field(default_factory=set)

    @model_validator(mode='after')
    def validate_split(self) -> 'Person':
        if self.id in self.split_with:
            raise ValueError("A person cannot split expenses with themself")
        return self

    @property
    def ref(self) -> IndividualRef:
        return individual(self.id)


class CreditCard(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    owner: PersonRef
    closing_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    limit: Optional[Money] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class InstallmentGroup(BaseModel):
    """Position of a transaction inside a purchase split into installments."""
    model_config = ConfigDict(frozen=True)

    parent_purchase_id: UUID
    installment_number: int = Field(..., ge=1)
    total_installments: int = Field(..., ge=1)

    @model_validator(mode='after')
    def validate_position(self) -> 'InstallmentGroup':
        if self.installment_number > self.total_installments:
            raise ValueError(
                f"Installment {self.installment_number} exceeds group size {self.total_installments}"
            )
        return self


class Transaction(BaseModel):
    """
    One ledger entry.

    `competency` is the accounting month, which may differ from the month of
    `date` (e.g. a card purchase billed next month).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    date: date
    type: TransactionType
    payment_method: PaymentMethod
    person: PersonRef
    category: str = Field(..., max_length=100)
    description: str = Field(default="", max_length=500)
    value: Money
    competency: Competency
    credit_card_id: Optional[UUID] = None
    installment_group: Optional[InstallmentGroup] = None

    # Set on rows produced from a recurring definition
    recurring_definition_id: Optional[UUID] = None

    @property
    def total_installments(self) -> int:
        if self.installment_group is None:
            return 1
        return self.installment_group.total_installments

    @property
    def parent_purchase_id(self) -> Optional[UUID]:
        if self.installment_group is None:
            return None
        return self.installment_group.parent_purchase_id


class RecurringDefinition(BaseModel):
    """
    Template for a charge or income that repeats every month.

    Deactivated rather than deleted once it has produced transactions, so the
    history keeps pointing at a real definition.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., max_length=500)
    type: TransactionType
    payment_method: PaymentMethod
    person: PersonRef
    category: str = Field(..., max_length=100)
    value: Money
    start_date: date
    end_date: Optional[date] = None
    day_of_month: int = Field(default=1, ge=1, le=31)
    credit_card_id: Optional[UUID] = None
    active: bool = True
    base_competency: Optional[Competency] = None

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurringDefinition':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetRequest(BaseModel):
    """What the caller asks for; resolved into a Budget by the allocation engine."""
    model_config = ConfigDict(str_strip_whitespace=True)

    competency: Competency
    category: str = Field(..., min_length=1, max_length=100)
    person: PersonRef
    budget_type: BudgetType = BudgetType.FIXED
    amount: Optional[Money] = None
    percentage: Optional[Decimal] = Field(default=None, ge=0)


class Budget(BaseModel):
    """
    A spending limit for one (competency, category, person).

    `amount` is resolved once when the budget is created. Percentage budgets
    keep `percentage` for display only and are never re-resolved.
    """
    id: UUID = Field(default_factory=uuid4)
    competency: Competency
    category: str
    person: PersonRef
    budget_type: BudgetType
    amount: Money
    percentage: Optional[Decimal] = None


# =============================================================================
# SAVINGS & INVESTMENTS
# =============================================================================

class SavingsGoal(BaseModel):
    """
    A savings target.

    `current_amount` is a cached aggregate of the goal's deposits. It is
    changed only by storage when a deposit is written or removed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Money
    current_amount: Money = ZERO
    deadline: Optional[date] = None
    owner: PersonRef
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def progress(self) -> Decimal:
        """Fraction of the target reached, 0 when the target is zero."""
        if not self.target_amount:
            return Decimal("0")
        return self.current_amount / self.target_amount


class SavingsDeposit(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    amount: Money
    date: date
    person: Optional[PersonRef] = None
    note: Optional[str] = Field(default=None, max_length=500)


class Investment(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    type: InvestmentType
    owner: PersonRef
    invested_amount: Money
    investment_date: date
    annual_rate: Optional[Decimal] = None
    current_value: Optional[Money] = None
    institution: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)


# =============================================================================
# MONTH CLOSURE & CARD INVOICES
# =============================================================================

class CreditCardInvoice(BaseModel):
    """Paid flag of one card's bill for one reference month."""
    id: UUID = Field(default_factory=uuid4)
    credit_card_id: UUID
    reference_month: Competency
    paid: bool = False
    paid_at: Optional[datetime] = None


class InvoiceStatus(BaseModel):
    """A card paired with its invoice state for a month (unpaid when no invoice exists)."""
    credit_card_id: UUID
    card_name: str
    reference_month: Competency
    paid: bool
    paid_at: Optional[datetime] = None


# =============================================================================
# RESULT MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found in a request before any write."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class GenerationError(BaseModel):
    definition_id: UUID
    message: str


class GenerationResult(BaseModel):
    """Outcome of projecting recurring definitions onto one competency."""

    competency: Competency
    transactions: list[Transaction] = Field(default_factory=list)
    errors: list[GenerationError] = Field(default_factory=list)
    skipped_definitions: list[UUID] = Field(
        default_factory=list,
        description="Definitions with no occurrence in the month"
    )


class SkippedRow(BaseModel):
    """A CSV line that could not be parsed at all."""

    line_number: int = Field(..., ge=1)
    message: str


class ImportSummary(BaseModel):
    """
    Result of one CSV import.

    `total` counts the rows the codec recognized. Lines that could not be
    parsed are reported in `skipped` and are not part of `total` or `failed`.
    """

    total: int = Field(default=0, ge=0)
    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    skipped: list[SkippedRow] = Field(default_factory=list)
    imported_ids: list[UUID] = Field(default_factory=list)
