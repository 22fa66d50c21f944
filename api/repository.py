from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from api.db_models import DocumentFileRecord, DocumentRecord, GroupRecord
from contracts.access_types import (
    INHERITED,
    DocumentSecurity,
    FileSecurity,
    Group,
    Overridden,
    Override,
)
from engine.classification import ClassificationLattice
from engine.errors import EntityNotFound, UnknownClassification
from engine.groups import GroupRegistry

log = logging.getLogger("filegate.db")


class FileRepository:
    """
    Persistence for documents, their files and the group table.

    Bound to one session; callers own the transaction boundary.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def add_group(
        self, name: str, *, is_default: bool = False, group_id: Optional[str] = None
    ) -> GroupRecord:
        row = GroupRecord(name=name, is_default=is_default)
        if group_id:
            row.id = group_id
        self.session.add(row)
        self.session.flush()
        return row

    def group_registry(self) -> GroupRegistry:
        rows = self.session.execute(select(GroupRecord)).scalars().all()
        return GroupRegistry(
            Group(group_id=r.id, name=r.name, is_default=bool(r.is_default)) for r in rows
        )

    def _group_rows(self, ids: Iterable[str]) -> List[GroupRecord]:
        wanted = sorted(set(ids))
        if not wanted:
            return []
        stmt = select(GroupRecord).where(GroupRecord.id.in_(wanted))
        return list(self.session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(
        self,
        title: str,
        classification: str,
        *,
        releasable_to: Iterable[str] = (),
        eyes_only: Iterable[str] = (),
        document_id: Optional[str] = None,
    ) -> DocumentRecord:
        row = DocumentRecord(title=title, classification=classification)
        if document_id:
            row.id = document_id
        row.releasable_to = self._group_rows(releasable_to)
        row.eyes_only = self._group_rows(eyes_only)
        self.session.add(row)
        self.session.flush()
        return row

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self.session.get(DocumentRecord, document_id)

    def require_document(self, document_id: str) -> DocumentRecord:
        row = self.get_document(document_id)
        if row is None:
            raise EntityNotFound("document", document_id)
        return row

    def set_document_security(
        self,
        document: DocumentRecord,
        *,
        classification: Optional[str] = None,
        releasable_to: Optional[Iterable[str]] = None,
        eyes_only: Optional[Iterable[str]] = None,
    ) -> None:
        if classification is not None:
            document.classification = classification
        if releasable_to is not None:
            document.releasable_to = self._group_rows(releasable_to)
        if eyes_only is not None:
            document.eyes_only = self._group_rows(eyes_only)
        self.session.flush()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def get_file(self, file_id: str) -> Optional[DocumentFileRecord]:
        return self.session.get(DocumentFileRecord, file_id)

    def require_file(self, file_id: str) -> DocumentFileRecord:
        row = self.get_file(file_id)
        if row is None:
            raise EntityNotFound("file", file_id)
        return row

    def list_files(self, document_id: str) -> List[DocumentFileRecord]:
        stmt = (
            select(DocumentFileRecord)
            .where(DocumentFileRecord.document_id == document_id)
            .order_by(DocumentFileRecord.registration_date, DocumentFileRecord.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def add_file(self, document: DocumentRecord, **fields) -> DocumentFileRecord:
        row = DocumentFileRecord(**fields)
        document.files.append(row)
        self.session.flush()
        return row

    def delete_file(self, row: DocumentFileRecord) -> None:
        self.session.delete(row)
        self.session.flush()

    def apply_overrides(
        self,
        row: DocumentFileRecord,
        *,
        classification: Optional[Override] = None,
        releasable_to: Optional[Override] = None,
        eyes_only: Optional[Override] = None,
    ) -> None:
        """
        Write override variants onto the row. ``None`` leaves a field alone.

        Flag and value are always written together.
        """
        if classification is not None:
            if isinstance(classification, Overridden):
                row.override_classification = True
                row.classification = classification.value.name
            else:
                row.override_classification = False
                row.classification = None

        if releasable_to is not None:
            if isinstance(releasable_to, Overridden):
                row.override_releasable_to = True
                row.releasable_to = self._group_rows(releasable_to.value)
            else:
                row.override_releasable_to = False
                row.releasable_to = []

        if eyes_only is not None:
            if isinstance(eyes_only, Overridden):
                row.override_eyes_only = True
                row.eyes_only = self._group_rows(eyes_only.value)
            else:
                row.override_eyes_only = False
                row.eyes_only = []


# ---------------------------------------------------------------------------
# Row -> security snapshot
# ---------------------------------------------------------------------------


def _stored_level(lattice: ClassificationLattice, name: str, owner: str):
    try:
        return lattice.get(name)
    except UnknownClassification:
        # Level no longer configured; treat as the most restrictive one.
        log.error("%s carries unknown classification %r", owner, name)
        return lattice.highest


def document_security(
    row: DocumentRecord, lattice: ClassificationLattice
) -> DocumentSecurity:
    return DocumentSecurity(
        document_id=row.id,
        classification=_stored_level(lattice, row.classification, f"document {row.id}"),
        releasable_to=frozenset(g.id for g in row.releasable_to),
        eyes_only=frozenset(g.id for g in row.eyes_only),
    )


def file_security(row: DocumentFileRecord, lattice: ClassificationLattice) -> FileSecurity:
    classification: Override = INHERITED
    if row.override_classification:
        if row.classification is None:
            # Fail closed: an override flag without a level means "highest".
            log.error("file %s overrides classification without a value", row.id)
            classification = Overridden(lattice.highest)
        else:
            classification = Overridden(
                _stored_level(lattice, row.classification, f"file {row.id}")
            )

    releasable_to: Override = INHERITED
    if row.override_releasable_to:
        releasable_to = Overridden(frozenset(g.id for g in row.releasable_to))

    eyes_only: Override = INHERITED
    if row.override_eyes_only:
        eyes_only = Overridden(frozenset(g.id for g in row.eyes_only))

    return FileSecurity(
        file_id=row.id,
        document_id=row.document_id,
        classification=classification,
        releasable_to=releasable_to,
        eyes_only=eyes_only,
    )
