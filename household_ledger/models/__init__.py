"""
Data Models Package

This package contains the primitives (money, competency) and every pydantic
record the ledger engines read and produce.
"""

from household_ledger.models.competency import Competency
from household_ledger.models.money import (
    Money,
    ZERO,
    format_money,
    halve,
    percent_of,
    quantize_money,
    split_evenly,
    to_money,
)
from household_ledger.models.ledger import (
    JOINT,
    Budget,
    BudgetRequest,
    BudgetType,
    CreditCard,
    CreditCardInvoice,
    GenerationError,
    GenerationResult,
    ImportSummary,
    IndividualRef,
    InstallmentGroup,
    Investment,
    InvestmentType,
    InvoiceStatus,
    JointRef,
    LabeledEnum,
    PaymentMethod,
    Person,
    PersonRef,
    RecurringDefinition,
    SavingsDeposit,
    SavingsGoal,
    SkippedRow,
    Transaction,
    TransactionType,
    ValidationIssue,
    individual,
    is_joint,
    normalize_label,
)
from household_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Primitives
    "Competency",
    "Money",
    "ZERO",
    "format_money",
    "halve",
    "percent_of",
    "quantize_money",
    "split_evenly",
    "to_money",
    # Ledger models
    "JOINT",
    "Budget",
    "BudgetRequest",
    "BudgetType",
    "CreditCard",
    "CreditCardInvoice",
    "GenerationError",
    "GenerationResult",
    "ImportSummary",
    "IndividualRef",
    "InstallmentGroup",
    "Investment",
    "InvestmentType",
    "InvoiceStatus",
    "JointRef",
    "LabeledEnum",
    "PaymentMethod",
    "Person",
    "PersonRef",
    "RecurringDefinition",
    "SavingsDeposit",
    "SavingsGoal",
    "SkippedRow",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "individual",
    "is_joint",
    "normalize_label",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
