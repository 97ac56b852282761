"""
Audit Models for the Household Ledger

Every operation that changes the ledger is logged for audit purposes.
This provides:
1. Traceability of who changed which amounts and when
2. Debugging information when a batch (CSV import, month generation) half-fails
3. The ability to reconstruct how a snapshot amount was obtained

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_DELETED = "budget_deleted"

    # Recurring projection
    RECURRING_GENERATED = "recurring_generated"
    RECURRING_DEFINITION_FAILED = "recurring_definition_failed"

    # Installments
    INSTALLMENTS_CREATED = "installments_created"
    INSTALLMENTS_REFLOWED = "installments_reflowed"
    INSTALLMENTS_DELETED = "installments_deleted"

    # CSV import
    CSV_IMPORTED = "csv_imported"
    CSV_ROW_SKIPPED = "csv_row_skipped"

    # Savings
    DEPOSIT_APPLIED = "deposit_applied"

    # People
    PERSON_MIGRATED = "person_migrated"
    PERSON_DELETED = "person_deleted"

    # Month closure and invoices
    MONTH_CLOSED = "month_closed"
    MONTH_REOPENED = "month_reopened"
    INVOICE_STATUS_CHANGED = "invoice_status_changed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'budget', 'installment_group', 'import')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all rows of one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.budget_created(budget_id, "03/2024", "Food", "150.00")
        event = AuditEventBuilder.csv_imported(summary_counts, correlation_id)
    """

    @staticmethod
    def budget_created(
        budget_id: UUID,
        competency: str,
        category: str,
        amount: str,
        budget_type: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget created: {category} {competency} = {amount}",
            details={
                "competency": competency,
                "category": category,
                "amount": amount,
                "budget_type": budget_type,
            },
        )

    @staticmethod
    def budget_deleted(
        budget_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_DELETED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description="Budget deleted",
        )

    @staticmethod
    def recurring_generated(
        competency: str,
        generated: int,
        failed: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_GENERATED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="competency",
            correlation_id=correlation_id,
            description=f"Recurring transactions generated for {competency}: {generated} created, {failed} failed",
            details={
                "competency": competency,
                "generated": generated,
                "failed": failed,
            },
        )

    @staticmethod
    def recurring_definition_failed(
        definition_id: UUID,
        competency: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_DEFINITION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="recurring_definition",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description=f"Recurring definition could not be generated for {competency}",
            error_message=error_message,
            details={"competency": competency},
        )

    @staticmethod
    def installments_created(
        parent_purchase_id: UUID,
        total_installments: int,
        installment_value: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENTS_CREATED,
            entity_type="installment_group",
            entity_id=parent_purchase_id,
            correlation_id=correlation_id,
            description=f"Purchase split into {total_installments} installments of {installment_value}",
            details={
                "total_installments": total_installments,
                "installment_value": installment_value,
            },
        )

    @staticmethod
    def installments_reflowed(
        parent_purchase_id: UUID,
        total_value: str,
        anchor_date: str,
        total_installments: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENTS_REFLOWED,
            entity_type="installment_group",
            entity_id=parent_purchase_id,
            correlation_id=correlation_id,
            description=f"Installment group reflowed: {total_value} over {total_installments} from {anchor_date}",
            details={
                "total_value": total_value,
                "anchor_date": anchor_date,
                "total_installments": total_installments,
            },
        )

    @staticmethod
    def installments_deleted(
        parent_purchase_id: UUID,
        removed: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENTS_DELETED,
            entity_type="installment_group",
            entity_id=parent_purchase_id,
            correlation_id=correlation_id,
            description=f"Installment group deleted ({removed} rows)",
            details={"removed": removed},
        )

    @staticmethod
    def csv_imported(
        total: int,
        succeeded: int,
        failed: int,
        skipped: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORTED,
            severity=AuditSeverity.WARNING if failed or skipped else AuditSeverity.INFO,
            entity_type="import",
            entity_id=correlation_id,
            correlation_id=correlation_id,
            description=f"CSV import: {succeeded}/{total} rows imported",
            details={
                "total": total,
                "succeeded": succeeded,
                "failed": failed,
                "skipped": skipped,
            },
        )

    @staticmethod
    def csv_row_skipped(
        line_number: int,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_ROW_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="import",
            entity_id=correlation_id,
            correlation_id=correlation_id,
            description=f"CSV line {line_number} skipped",
            error_message=error_message,
            details={"line_number": line_number},
        )

    @staticmethod
    def deposit_applied(
        goal_id: UUID,
        deposit_id: UUID,
        delta: str,
        current_amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEPOSIT_APPLIED,
            entity_type="savings_goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Deposit applied to goal: {delta} (now {current_amount})",
            details={
                "deposit_id": str(deposit_id),
                "delta": delta,
                "current_amount": current_amount,
            },
        )

    @staticmethod
    def person_deleted(
        person_id: UUID,
        migrated_to: Optional[UUID],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        if migrated_to is not None:
            return AuditEvent(
                event_type=AuditEventType.PERSON_MIGRATED,
                entity_type="person",
                entity_id=person_id,
                correlation_id=correlation_id,
                description="Person deleted; owned records migrated",
                details={"migrated_to": str(migrated_to)},
            )
        return AuditEvent(
            event_type=AuditEventType.PERSON_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="person",
            entity_id=person_id,
            correlation_id=correlation_id,
            description="Person deleted together with every owned record",
        )

    @staticmethod
    def month_status_changed(
        competency: str,
        closed: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_CLOSED if closed else AuditEventType.MONTH_REOPENED,
            entity_type="competency",
            correlation_id=correlation_id,
            description=f"Month {competency} {'closed' if closed else 'reopened'}",
            details={"competency": competency},
        )

    @staticmethod
    def invoice_status_changed(
        card_id: UUID,
        reference_month: str,
        paid: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVOICE_STATUS_CHANGED,
            entity_type="credit_card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Invoice {reference_month} marked {'paid' if paid else 'unpaid'}",
            details={"reference_month": reference_month, "paid": paid},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
