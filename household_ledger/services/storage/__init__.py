"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
an in-memory store and a Google Sheets store built on top of it.
"""

from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ClosureStorageInterface,
    ConnectionError,
    CreditCardStorageInterface,
    DuplicateError,
    InvestmentStorageInterface,
    NotFoundError,
    OwnershipStorageInterface,
    PersonStorageInterface,
    RecurringStorageInterface,
    SavingsStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from household_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from household_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ClosureStorageInterface",
    "CreditCardStorageInterface",
    "InvestmentStorageInterface",
    "OwnershipStorageInterface",
    "PersonStorageInterface",
    "RecurringStorageInterface",
    "SavingsStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
