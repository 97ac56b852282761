"""
Request Validation

DESIGN DECISION: Requests are checked before any storage write. A check
collects every problem it finds as a ValidationIssue instead of stopping at
the first one, and the service raises a single BadRequestError carrying the
whole list. Nothing is written when a request has issues.

Checks that need storage (does the person exist? is the name taken?) live in
the services; the checks here only look at the request itself.

IMPORTANT: Validation NEVER silently fixes issues.
"""

from typing import Iterable, Optional
from uuid import UUID

from household_ledger.models.ledger import (
    BudgetRequest,
    BudgetType,
    ValidationIssue,
    normalize_label,
)


class BadRequestError(ValueError):
    """
    The request is malformed or violates a business rule.

    Raised before any write, so the ledger is unchanged.
    """

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        super().__init__("; ".join(issue.message for issue in self.issues))

    @classmethod
    def single(cls, field: str, issue_type: str, message: str) -> "BadRequestError":
        return cls([ValidationIssue(field=field, issue_type=issue_type, message=message)])


def ensure_valid(issues: Iterable[ValidationIssue]) -> None:
    """Raise BadRequestError when any issue was found."""
    issues = list(issues)
    if issues:
        raise BadRequestError(issues)


class RequestValidator:
    """Stateless checks for the requests the services accept."""

    @staticmethod
    def budget_request(request: BudgetRequest) -> list[ValidationIssue]:
        issues = []

        if request.budget_type == BudgetType.PERCENTAGE:
            if request.percentage is None:
                issues.append(ValidationIssue(
                    field="percentage",
                    issue_type="missing",
                    message="A percentage budget needs a percentage",
                ))
        elif request.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="A fixed budget needs an amount",
            ))
        elif request.amount < 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Budget amount cannot be negative",
            ))

        return issues

    @staticmethod
    def installment_count(total_installments: int) -> list[ValidationIssue]:
        if total_installments < 1:
            return [ValidationIssue(
                field="total_installments",
                issue_type="invalid_value",
                message=f"Installment count must be at least 1, got {total_installments}",
            )]
        return []

    @staticmethod
    def person_name(name: str, joint_label: str) -> list[ValidationIssue]:
        """A name must not be blank nor read as the joint pseudo-person."""
        if not name.strip():
            return [ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is required",
            )]
        if normalize_label(name) in (normalize_label(joint_label), "JOINT"):
            return [ValidationIssue(
                field="name",
                issue_type="reserved",
                message=f"{name.strip()!r} is reserved for joint records",
            )]
        return []

    @staticmethod
    def split_partners(person_id: UUID, split_with: Iterable[UUID]) -> list[ValidationIssue]:
        if person_id in set(split_with):
            return [ValidationIssue(
                field="split_with",
                issue_type="invalid_value",
                message="A person cannot split expenses with themself",
            )]
        return []

    @staticmethod
    def person_deletion(
        person_id: UUID,
        migrate_to: Optional[UUID],
        delete_owned: bool,
    ) -> list[ValidationIssue]:
        """Exactly one of migrate / delete-all must be chosen."""
        if migrate_to is not None and delete_owned:
            return [ValidationIssue(
                field="migrate_to",
                issue_type="conflict",
                message="Choose either migrating the records or deleting them, not both",
            )]
        if migrate_to is None and not delete_owned:
            return [ValidationIssue(
                field="migrate_to",
                issue_type="missing",
                message="Deleting a person requires migrate_to or delete_owned=True",
            )]
        if migrate_to == person_id:
            return [ValidationIssue(
                field="migrate_to",
                issue_type="invalid_value",
                message="Records cannot be migrated to the person being deleted",
            )]
        return []

    @staticmethod
    def invoice_update(reference_month, paid: Optional[bool]) -> list[ValidationIssue]:
        issues = []
        if reference_month is None or (isinstance(reference_month, str) and not reference_month.strip()):
            issues.append(ValidationIssue(
                field="reference_month",
                issue_type="missing",
                message="The reference month is required",
            ))
        if paid is None:
            issues.append(ValidationIssue(
                field="paid",
                issue_type="missing",
                message="The paid flag is required",
            ))
        return issues
