"""
Person Registry

People are records, not an enumeration: any number of household members,
each with its own split configuration. The Joint pseudo-person is not a
record here; it is the JOINT reference value.

DESIGN DECISION: Removing a person is one explicit operation with exactly
one of two outcomes, chosen up front:
- migrate: every record the person owns is re-pointed at another person
- delete_owned: every record the person owns is deleted
Either way the storage performs the rewrite and removes the person in a
single unit, so no record is ever left pointing at a missing person.
"""

from typing import Iterable, Optional
from uuid import UUID

import structlog

from household_ledger.audit.logger import AuditLogger
from household_ledger.config import LedgerSettings, get_settings
from household_ledger.models.ledger import Person
from household_ledger.services.storage.interface import (
    NotFoundError,
    OwnershipStorageInterface,
    PersonStorageInterface,
)
from household_ledger.validation.validator import (
    BadRequestError,
    RequestValidator,
    ensure_valid,
)

logger = structlog.get_logger(__name__)


class PersonService:
    """Create, edit, list and remove household members."""

    def __init__(
        self,
        persons: PersonStorageInterface,
        ownership: OwnershipStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._persons = persons
        self._ownership = ownership
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    async def list_active(self) -> list[Person]:
        """Active persons ordered by name."""
        return await self._persons.list_active_persons()

    async def get_person(self, person_id: UUID) -> Person:
        person = await self._persons.get_person(person_id)
        if person is None:
            raise NotFoundError(f"Person not found: {person_id}")
        return person

    async def _check_name_free(self, name: str, person_id: Optional[UUID] = None) -> None:
        ensure_valid(RequestValidator.person_name(name, self._settings.joint_label))
        existing = await self._persons.find_person_by_name(name)
        if existing is not None and existing.id != person_id:
            raise BadRequestError.single(
                field="name",
                issue_type="duplicate",
                message=f"A person named {existing.name!r} already exists",
            )

    async def _resolve_partners(self, person_id: UUID, split_with: Iterable[UUID]) -> set[UUID]:
        partners = set(split_with)
        ensure_valid(RequestValidator.split_partners(person_id, partners))
        for partner_id in partners:
            if await self._persons.get_person(partner_id) is None:
                raise NotFoundError(f"Split partner not found: {partner_id}")
        return partners

    async def create_person(
        self,
        name: str,
        allow_split: bool = False,
        split_with: Optional[Iterable[UUID]] = None,
    ) -> Person:
        """
        Register a new person.

        Raises:
            BadRequestError: the name is blank, reserved for joint records,
                             or already taken (ignoring case and accents)
            NotFoundError: a split partner does not exist
        """
        await self._check_name_free(name)
        person = Person(name=name, allow_split=allow_split)
        if split_with:
            person.split_with = await self._resolve_partners(person.id, split_with)
        return await self._persons.save_person(person)

    async def update_person(
        self,
        person_id: UUID,
        name: str,
        allow_split: Optional[bool] = None,
        split_with: Optional[Iterable[UUID]] = None,
    ) -> Person:
        """
        Rename a person and optionally change its split configuration.

        `allow_split` and `split_with` left as None keep their current values.

        Raises:
            NotFoundError: unknown person or split partner
            BadRequestError: the new name is taken, or the person lists itself
                             as a split partner
        """
        person = await self.get_person(person_id)
        await self._check_name_free(name, person_id)

        updates = {"name": name.strip()}
        if allow_split is not None:
            updates["allow_split"] = allow_split
        if split_with is not None:
            updates["split_with"] = await self._resolve_partners(person_id, split_with)

        return await self._persons.save_person(Person.model_validate({**person.model_dump(), **updates}))

    async def delete_person(
        self,
        person_id: UUID,
        migrate_to: Optional[UUID] = None,
        delete_owned: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, int]:
        """
        Remove a person, migrating or deleting everything it owns.

        Args:
            person_id: Person to remove
            migrate_to: Person that takes over the owned records
            delete_owned: Delete the owned records instead

        Returns:
            Number of records rewritten (or deleted) per collection

        Raises:
            BadRequestError: both or neither of migrate_to/delete_owned given,
                             or migrate_to is the person itself
            NotFoundError: unknown person or migration target
        """
        ensure_valid(RequestValidator.person_deletion(person_id, migrate_to, delete_owned))
        await self.get_person(person_id)

        if migrate_to is not None:
            if await self._persons.get_person(migrate_to) is None:
                raise NotFoundError(f"Migration target not found: {migrate_to}")
            counts = await self._ownership.migrate_person(person_id, migrate_to)
        else:
            counts = await self._ownership.purge_person(person_id)

        logger.info(
            "person_removed",
            person_id=str(person_id),
            migrated_to=str(migrate_to) if migrate_to else None,
            records=sum(counts.values()),
        )
        await self._audit.log_person_deleted(person_id, migrate_to, correlation_id)
        return counts
