"""
Main Orchestrator for the Household Ledger

This module ties together the engines and storage and defines the
end-to-end flows for:
1. CSV import (text → decode → resolve people/cards → store row by row)
2. CSV export (stored transactions → CSV text)
3. Month generation (active definitions → projected rows → stored as one unit)

DESIGN DECISION: Batches degrade row by row. A CSV line that cannot be
decoded is skipped, a row that cannot be stored is counted as failed, and
in both cases the batch carries on. Only unreadable input aborts an import.

Every batch gets a correlation id and is audited.
"""

from typing import Optional, Union
from uuid import UUID, uuid4

import structlog

from household_ledger.audit import AuditLogger, create_correlation_id
from household_ledger.codec.csv_transactions import (
    DecodedRow,
    decode_transactions,
    encode_transactions,
)
from household_ledger.config import LedgerSettings, get_settings
from household_ledger.engine import (
    BudgetService,
    CreditCardInvoiceService,
    InstallmentService,
    MonthClosureService,
    PersonService,
    RecurringService,
    SavingsService,
    generate_for_month,
)
from household_ledger.models.competency import Competency
from household_ledger.models.ledger import (
    JOINT,
    GenerationResult,
    ImportSummary,
    IndividualRef,
    InstallmentGroup,
    PersonRef,
    Transaction,
    normalize_label,
)
from household_ledger.services.storage import (
    AuditStorageInterface,
    CreditCardStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    PersonStorageInterface,
    RecurringStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

logger = structlog.get_logger(__name__)


class RowResolutionError(ValueError):
    """A decoded row names a person or card that does not exist."""
    pass


class TransactionImportFlow:
    """
    Imports transactions from CSV text.

    Flow:
    1. Decode → rows plus skipped (undecodable) lines
    2. Resolve → person label and card name of each row
    3. Store → one storage unit per row
    4. Summarize → ImportSummary, audited under one correlation id

    Rows with more than one installment are stored as a single transaction
    carrying the installment count; the group is not expanded on import.
    """

    def __init__(
        self,
        persons: PersonStorageInterface,
        cards: CreditCardStorageInterface,
        transactions: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._persons = persons
        self._cards = cards
        self._transactions = transactions
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    async def _person_lookup(self) -> dict[str, PersonRef]:
        lookup: dict[str, PersonRef] = {}
        for person in await self._persons.list_active_persons():
            lookup[normalize_label(person.name)] = person.ref
        lookup[normalize_label(self._settings.joint_label)] = JOINT
        lookup["JOINT"] = JOINT
        return lookup

    async def _to_transaction(
        self,
        row: DecodedRow,
        people: dict[str, PersonRef],
        card_ids: dict[str, UUID],
    ) -> Transaction:
        person = people.get(normalize_label(row.person_label))
        if person is None:
            raise RowResolutionError(f"Unknown person: {row.person_label!r}")

        card_id = None
        if row.credit_card_name:
            key = row.credit_card_name.casefold()
            if key not in card_ids:
                card = await self._cards.find_card_by_name(row.credit_card_name)
                if card is None:
                    raise RowResolutionError(f"Credit card not found: {row.credit_card_name!r}")
                card_ids[key] = card.id
            card_id = card_ids[key]

        group = None
        if row.installments > 1:
            group = InstallmentGroup(
                parent_purchase_id=uuid4(),
                installment_number=1,
                total_installments=row.installments,
            )

        return Transaction(
            date=row.date,
            type=row.type,
            payment_method=row.payment_method,
            person=person,
            category=row.category,
            description=row.description,
            value=row.value,
            competency=row.competency,
            credit_card_id=card_id,
            installment_group=group,
        )

    async def import_csv(
        self,
        content: Union[str, bytes],
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Import every decodable row of a CSV file.

        Returns:
            ImportSummary. `total` counts decoded rows; undecodable lines
            are listed in `skipped` and are not part of `total` or `failed`.

        Raises:
            CsvDecodeError: if the content is not readable text
        """
        correlation_id = correlation_id or create_correlation_id()
        decoded = decode_transactions(
            content,
            header_token=self._settings.import_header_token,
            default_installments=self._settings.default_installments,
        )

        summary = ImportSummary(total=len(decoded.rows), skipped=decoded.skipped)

        for skipped in decoded.skipped:
            await self._audit_logger.log_csv_row_skipped(
                line_number=skipped.line_number,
                error_message=skipped.message,
                correlation_id=correlation_id,
            )

        people = await self._person_lookup()
        card_ids: dict[str, UUID] = {}

        for row in decoded.rows:
            try:
                transaction = await self._to_transaction(row, people, card_ids)
                stored = await self._transactions.save_transactions([transaction])
            except (ValueError, StorageError) as e:
                summary.failed += 1
                summary.errors.append(f"Line {row.line_number}: {e}")
                logger.warning(
                    "csv_row_failed",
                    line_number=row.line_number,
                    error=str(e),
                    correlation_id=str(correlation_id),
                )
                continue
            summary.succeeded += 1
            summary.imported_ids.append(stored[0].id)

        logger.info(
            "csv_import_finished",
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=len(summary.skipped),
            correlation_id=str(correlation_id),
        )
        await self._audit_logger.log_csv_imported(
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=len(summary.skipped),
            correlation_id=correlation_id,
        )
        return summary


class TransactionExportFlow:
    """Renders stored transactions as CSV text."""

    def __init__(
        self,
        persons: PersonStorageInterface,
        cards: CreditCardStorageInterface,
        transactions: TransactionStorageInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._persons = persons
        self._cards = cards
        self._transactions = transactions
        self._settings = settings or get_settings().ledger

    async def export_csv(self, transactions: Optional[list[Transaction]] = None) -> str:
        """
        Export the given transactions, or every stored one (newest first).
        """
        if transactions is None:
            transactions = await self._transactions.list_transactions()

        labels = {p.id: p.name for p in await self._persons.list_active_persons()}
        for transaction in transactions:
            ref = transaction.person
            if isinstance(ref, IndividualRef) and ref.person_id not in labels:
                # Inactive people are not listed but can still own rows
                person = await self._persons.get_person(ref.person_id)
                if person is not None:
                    labels[person.id] = person.name

        card_names = {c.id: c.name for c in await self._cards.list_cards()}
        return encode_transactions(
            transactions,
            labels,
            card_names,
            joint_label=self._settings.joint_label,
        )


class RecurringGenerationFlow:
    """
    Generates a month's recurring transactions.

    Flow:
    1. Load active definitions (optionally dropping those already generated)
    2. Project them onto the month
    3. Store every projected row as one unit
    4. Audit the batch and each failed definition
    """

    def __init__(
        self,
        definitions: RecurringStorageInterface,
        transactions: TransactionStorageInterface,
        cards: CreditCardStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._definitions = definitions
        self._transactions = transactions
        self._cards = cards
        self._audit_logger = audit_logger or AuditLogger()

    async def generate(
        self,
        competency: Competency,
        skip_already_generated: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> GenerationResult:
        """
        Generate and store the month's recurring transactions.

        Args:
            competency: Target month
            skip_already_generated: Skip definitions that already produced a
                                    row for this competency. Off by default:
                                    generating twice duplicates rows.

        Returns:
            GenerationResult whose transactions are the stored rows
        """
        correlation_id = correlation_id or create_correlation_id()

        definitions = await self._definitions.list_active_definitions()
        already_generated = []
        if skip_already_generated:
            pending = []
            for definition in definitions:
                if await self._transactions.has_generated(definition.id, competency):
                    already_generated.append(definition.id)
                else:
                    pending.append(definition)
            definitions = pending

        card_ids = {card.id for card in await self._cards.list_cards()}
        result = generate_for_month(competency, definitions, card_exists=card_ids.__contains__)
        result.skipped_definitions.extend(already_generated)
        try:
            result.transactions = await self._transactions.save_transactions(result.transactions)
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type="recurring_generation_failed",
                error_message=str(e),
                details={"competency": str(competency), "rows": len(result.transactions)},
                correlation_id=correlation_id,
            )
            raise

        for error in result.errors:
            await self._audit_logger.log_recurring_definition_failed(
                definition_id=error.definition_id,
                competency=str(competency),
                error_message=error.message,
                correlation_id=correlation_id,
            )
        await self._audit_logger.log_recurring_generated(
            competency=str(competency),
            generated=len(result.transactions),
            failed=len(result.errors),
            correlation_id=correlation_id,
        )
        return result


class LedgerComponents:
    """Every service and flow, wired to one storage backend."""

    def __init__(
        self,
        storage: InMemoryLedgerStorage,
        audit_storage: AuditStorageInterface,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.storage = storage
        self.audit_storage = audit_storage
        self.sheets_client = sheets_client
        self.audit_logger = AuditLogger(audit_storage)

        audit = self.audit_logger
        self.persons = PersonService(storage, storage, audit)
        self.budgets = BudgetService(storage, storage, storage, audit)
        self.installments = InstallmentService(storage, storage, audit)
        self.recurring = RecurringService(storage, storage)
        self.savings = SavingsService(storage, storage, audit)
        self.closures = MonthClosureService(storage, audit)
        self.invoices = CreditCardInvoiceService(storage, storage, audit)
        self.import_flow = TransactionImportFlow(storage, storage, storage, audit)
        self.export_flow = TransactionExportFlow(storage, storage, storage)
        self.generation_flow = RecurringGenerationFlow(storage, storage, storage, audit)


async def create_app_components(
    use_storage: Optional[bool] = None,
) -> LedgerComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to back the ledger with Google Sheets. Defaults
                    to the `use_google_sheets` app setting. When Sheets cannot
                    be reached, the components fall back to memory.

    Returns:
        LedgerComponents with the storage already loaded
    """
    if use_storage is None:
        use_storage = get_settings().app.use_google_sheets

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            await storage.load()
            return LedgerComponents(
                storage=storage,
                audit_storage=GoogleSheetsAuditStorage(sheets_client),
                sheets_client=sheets_client,
            )
        except (StorageError, ValueError) as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))

    return LedgerComponents(
        storage=InMemoryLedgerStorage(),
        audit_storage=InMemoryAuditStorage(),
    )
