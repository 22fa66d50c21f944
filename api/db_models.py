from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

log = logging.getLogger("filegate.db")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


def _json_default(o: Any) -> Any:
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    if isinstance(o, bytes):
        return o.decode("utf-8", errors="replace")
    return str(o)


def dumps_metadata(obj: Any) -> Optional[str]:
    if obj is None:
        return None
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def loads_metadata(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        log.warning("discarding unreadable file metadata")
        return None
    return value if isinstance(value, dict) else {"value": value}


def _group_link(name: str, owner_table: str, owner_column: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column(
            owner_column,
            String(36),
            ForeignKey(f"{owner_table}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        Column(
            "group_id",
            String(36),
            ForeignKey("groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


document_releasable_to = _group_link("document_releasable_to", "documents", "document_id")
document_eyes_only = _group_link("document_eyes_only", "documents", "document_id")
file_releasable_to = _group_link("file_releasable_to", "document_files", "file_id")
file_eyes_only = _group_link("file_eyes_only", "document_files", "file_id")


class GroupRecord(Base):
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class DocumentRecord(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    classification: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    releasable_to: Mapped[List[GroupRecord]] = relationship(
        secondary=document_releasable_to, lazy="selectin"
    )
    eyes_only: Mapped[List[GroupRecord]] = relationship(
        secondary=document_eyes_only, lazy="selectin"
    )

    files: Mapped[List["DocumentFileRecord"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentFileRecord.registration_date",
    )


class DocumentFileRecord(Base):
    """
    A stored file owned by exactly one document.

    Each security field is a flag plus a value column. The value columns are
    only populated while the flag is set (see api/repository.py).
    """

    __tablename__ = "document_files"
    __table_args__ = (
        Index("ix_document_files_document_registration", "document_id", "registration_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    document_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    filename: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    file_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    registration_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    modification_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    registered_by: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    last_modified_by: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    preview: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    storage_handle: Mapped[str] = mapped_column(String(512), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sha256: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    override_classification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    classification: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    override_releasable_to: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    override_eyes_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Optimistic concurrency: a stale writer fails instead of tearing the row.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    releasable_to: Mapped[List[GroupRecord]] = relationship(
        secondary=file_releasable_to, lazy="selectin"
    )
    eyes_only: Mapped[List[GroupRecord]] = relationship(
        secondary=file_eyes_only, lazy="selectin"
    )
    document: Mapped[DocumentRecord] = relationship(back_populates="files")

    __mapper_args__ = {"version_id_col": version}
