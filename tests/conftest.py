"""
Shared test helpers.

Every test builds its own in-memory storage; async services are driven with
asyncio.run, one event loop per test.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from household_ledger.audit import AuditLogger
from household_ledger.models import (
    Competency,
    PaymentMethod,
    Person,
    Transaction,
    TransactionType,
)
from household_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


def make_transaction(
    person,
    value: str = "100.00",
    when: date = date(2024, 3, 10),
    type: TransactionType = TransactionType.EXPENSE,
    competency: Optional[Competency] = None,
    **overrides,
) -> Transaction:
    fields = dict(
        date=when,
        type=type,
        payment_method=PaymentMethod.PIX,
        person=person,
        category="Mercado",
        description="Compra",
        value=Decimal(value),
        competency=competency or Competency.from_date(when),
    )
    fields.update(overrides)
    return Transaction(**fields)


def make_income(person, value: str, competency: str = "03/2024") -> Transaction:
    month = Competency.parse(competency)
    return make_transaction(
        person,
        value=value,
        when=month.first_day,
        type=TransactionType.INCOME,
        category="Salário",
    )


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def kaio() -> Person:
    return Person(name="Kaio")


@pytest.fixture
def gabriela() -> Person:
    return Person(name="Gabriela")
