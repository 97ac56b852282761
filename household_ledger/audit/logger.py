"""
Audit Logger

DESIGN DECISION: Every operation that changes the ledger is logged.
This provides:
1. Complete traceability of amounts (budgets, installments, deposits)
2. Debugging capability for partially failed batches
3. A history the household can read in the audit sheet

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from household_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from household_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_budget_created(
        self,
        budget_id: UUID,
        competency: str,
        category: str,
        amount: str,
        budget_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a budget snapshot."""
        event = AuditEventBuilder.budget_created(
            budget_id=budget_id,
            competency=competency,
            category=category,
            amount=amount,
            budget_type=budget_type,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_deleted(
        self,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_deleted(budget_id, correlation_id))

    async def log_recurring_generated(
        self,
        competency: str,
        generated: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of a month generation."""
        event = AuditEventBuilder.recurring_generated(
            competency=competency,
            generated=generated,
            failed=failed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_definition_failed(
        self,
        definition_id: UUID,
        competency: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a definition that could not be projected."""
        event = AuditEventBuilder.recurring_definition_failed(
            definition_id=definition_id,
            competency=competency,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_installments_created(
        self,
        parent_purchase_id: UUID,
        total_installments: int,
        installment_value: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.installments_created(
            parent_purchase_id=parent_purchase_id,
            total_installments=total_installments,
            installment_value=installment_value,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_installments_reflowed(
        self,
        parent_purchase_id: UUID,
        total_value: str,
        anchor_date: str,
        total_installments: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a group re-split after a value or date change."""
        event = AuditEventBuilder.installments_reflowed(
            parent_purchase_id=parent_purchase_id,
            total_value=total_value,
            anchor_date=anchor_date,
            total_installments=total_installments,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_installments_deleted(
        self,
        parent_purchase_id: UUID,
        removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.installments_deleted(
            parent_purchase_id=parent_purchase_id,
            removed=removed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_imported(
        self,
        total: int,
        succeeded: int,
        failed: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        """Log the summary of an import batch."""
        event = AuditEventBuilder.csv_imported(
            total=total,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_row_skipped(
        self,
        line_number: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.csv_row_skipped(
            line_number=line_number,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_deposit_applied(
        self,
        goal_id: UUID,
        deposit_id: UUID,
        delta: str,
        current_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a change to a goal's total."""
        event = AuditEventBuilder.deposit_applied(
            goal_id=goal_id,
            deposit_id=deposit_id,
            delta=delta,
            current_amount=current_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_person_deleted(
        self,
        person_id: UUID,
        migrated_to: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a person removal, migrated or purged."""
        event = AuditEventBuilder.person_deleted(
            person_id=person_id,
            migrated_to=migrated_to,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_month_status_changed(
        self,
        competency: str,
        closed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.month_status_changed(
            competency=competency,
            closed=closed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_invoice_status_changed(
        self,
        card_id: UUID,
        reference_month: str,
        paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.invoice_status_changed(
            card_id=card_id,
            reference_month=reference_month,
            paid=paid,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a batch (e.g., a CSV import or a month
    generation) and pass it through every event the batch produces.
    """
    return uuid4()
