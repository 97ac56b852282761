"""
Shared-Income Calculator

Effective income of a person for one competency. Income booked to the Joint
pseudo-person belongs to the whole household: the Joint total is the sum of
every income, and each individual is credited half of every Joint income on
top of their own.
"""

from decimal import Decimal
from typing import Iterable

from household_ledger.models.competency import Competency
from household_ledger.models.ledger import (
    IndividualRef,
    PersonRef,
    Transaction,
    TransactionType,
    is_joint,
)
from household_ledger.models.money import ZERO, halve, quantize_money


def total_income(
    competency: Competency,
    person: PersonRef,
    income_transactions: Iterable[Transaction],
) -> Decimal:
    """
    Effective income of `person` in `competency`.

    Args:
        competency: Month to total
        person: An individual or the Joint pseudo-person
        income_transactions: Candidate rows; anything that is not income for
                             this competency is ignored

    Returns:
        Two-place Decimal, 0.00 when nothing matches
    """
    relevant = [
        t for t in income_transactions
        if t.type == TransactionType.INCOME and t.competency == competency
    ]

    if is_joint(person):
        return quantize_money(sum((t.value for t in relevant), ZERO))

    total = ZERO
    for transaction in relevant:
        if is_joint(transaction.person):
            # Rounded per row, so the result does not depend on row order
            total += halve(transaction.value)
        elif _same_person(transaction.person, person):
            total += transaction.value
    return quantize_money(total)


def _same_person(a: PersonRef, b: PersonRef) -> bool:
    return (
        isinstance(a, IndividualRef)
        and isinstance(b, IndividualRef)
        and a.person_id == b.person_id
    )
