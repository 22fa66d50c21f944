"""
FileGate - File Lifecycle Service

Get, download, list, create, update and delete document files. Every
operation resolves the file's effective security profile and passes it
through the access decision engine before touching anything.

Callers get tagged results (Ok / Denied / NotFound / ValidationFailed).
The precise denial reason always reaches the audit log. Callers without read
rights on the owning document get NotFound instead of Denied so a file's
existence cannot be probed.

Writes to one file are serialized in-process; the row's version counter
catches writers in other processes.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from api.db_models import DocumentFileRecord, DocumentRecord, dumps_metadata, loads_metadata, utcnow
from api.file_store import FileStore
from api.metrics import STORAGE_INCONSISTENCIES, record_operation
from api.repository import FileRepository, document_security, file_security
from api.schemas import FileCreate, FileDetails, FilePatch
from contracts.access_types import (
    Action,
    Denied,
    DocumentSecurity,
    Inherited,
    NotFound,
    Ok,
    Overridden,
    Override,
    Principal,
    Result,
    SecurityProfile,
    ValidationFailed,
    field_errors,
)
from engine.access import AccessDecisionEngine
from engine.classification import ClassificationLattice
from engine.errors import (
    AccessDenied,
    ConcurrentModification,
    EntityNotFound,
    InvalidArgument,
    InvalidGroupReference,
    StorageInconsistency,
    UnknownClassification,
)
from engine.policy_fingerprint import fingerprint_snapshot
from engine.releasability import (
    document_profile,
    inherit,
    override_classification,
    override_eyes_only,
    override_releasable_to,
    resolve_profile,
)
from services.audit import AuditLogger, Outcome

log = logging.getLogger("filegate.files")
_security_log = logging.getLogger("filegate.security")

_NOT_NULL_PATCH_FIELDS = ("title", "visible", "preview")
_OVERRIDE_PATCH_FIELDS = {
    "override_classification",
    "classification",
    "override_releasable_to",
    "releasable_to",
    "override_eyes_only",
    "eyes_only",
}


@dataclass(frozen=True)
class FileDownload:
    details: FileDetails
    stream: BinaryIO


@dataclass
class _Context:
    session: Session
    repo: FileRepository
    engine: AccessDecisionEngine
    policy_hash: str


class _Abort(Exception):
    """Ends an operation early with an already-audited result."""

    def __init__(self, result: Result) -> None:
        super().__init__(type(result).__name__)
        self.result = result


class _FileLocks:
    """Per-file locks, dropped once the last holder releases them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, file_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(file_id, threading.Lock())
            self._holders[file_id] = self._holders.get(file_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                remaining = self._holders[file_id] - 1
                if remaining:
                    self._holders[file_id] = remaining
                else:
                    del self._holders[file_id]
                    del self._locks[file_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def file_details(row: DocumentFileRecord) -> FileDetails:
    return FileDetails(
        file_id=row.id,
        document_id=row.document_id,
        title=row.title,
        filename=row.filename,
        mime_type=row.mime_type,
        file_date=row.file_date,
        registration_date=row.registration_date,
        modification_date=row.modification_date,
        registered_by=row.registered_by,
        last_modified_by=row.last_modified_by,
        source_url=row.source_url,
        metadata=loads_metadata(row.metadata_json),
        visible=bool(row.visible),
        preview=bool(row.preview),
        auto_generated=bool(row.auto_generated),
        size_bytes=int(row.size_bytes or 0),
        sha256=row.sha256,
        override_classification=bool(row.override_classification),
        classification=row.classification if row.override_classification else None,
        override_releasable_to=bool(row.override_releasable_to),
        releasable_to=sorted(g.id for g in row.releasable_to),
        override_eyes_only=bool(row.override_eyes_only),
        eyes_only=sorted(g.id for g in row.eyes_only),
    )


def _pydantic_errors(exc: ValidationError) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "__root__"
        out.setdefault(loc, []).append(str(err.get("msg", "invalid value")))
    return out


class FileLifecycleService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store: FileStore,
        lattice: ClassificationLattice,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._lattice = lattice
        self._audit_logger = audit or AuditLogger()
        self._locks = _FileLocks()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _context(self) -> Iterator[_Context]:
        with self._session_factory() as session:
            repo = FileRepository(session)
            # Registry and lattice are snapshotted for the whole operation.
            registry = repo.group_registry()
            yield _Context(
                session=session,
                repo=repo,
                engine=AccessDecisionEngine(lattice=self._lattice, registry=registry),
                policy_hash=fingerprint_snapshot(self._lattice, registry).policy_hash,
            )

    def _audit(
        self,
        ctx: Optional[_Context],
        principal: Principal,
        action: Action,
        outcome: Outcome,
        *,
        target_id: Optional[str] = None,
        document_id: Optional[str] = None,
        reason: Optional[str] = None,
        **details: Any,
    ) -> None:
        if ctx is not None:
            details.setdefault("policy_hash", ctx.policy_hash)
        record_operation(action.value, outcome, reason)
        self._audit_logger.record(
            action=action.value,
            outcome=outcome,
            principal_id=principal.principal_id,
            username=principal.username,
            target_id=target_id,
            document_id=document_id,
            reason=reason,
            details=details,
        )

    def _refuse(
        self,
        ctx: _Context,
        principal: Principal,
        action: Action,
        exc: AccessDenied,
        parent: DocumentSecurity,
        *,
        target_id: str,
    ) -> Result:
        parent_visible = ctx.engine.decide(
            principal, document_profile(parent), Action.VIEW
        ).allowed
        _security_log.warning(
            "access denied user=%s action=%s target=%s reason=%s code=%s",
            principal.username,
            action.value,
            target_id,
            exc.reason.value,
            exc.code,
        )
        self._audit(
            ctx,
            principal,
            action,
            "denied",
            target_id=target_id,
            document_id=parent.document_id,
            reason=exc.reason.value,
            hidden=not parent_visible,
        )
        if not parent_visible:
            return NotFound()
        return Denied(exc.reason)

    def _authorize_file(
        self, ctx: _Context, principal: Principal, file_id: str, action: Action
    ) -> Tuple[DocumentFileRecord, DocumentSecurity, SecurityProfile]:
        try:
            row = ctx.repo.require_file(file_id)
        except EntityNotFound:
            self._audit(ctx, principal, action, "not_found", target_id=file_id)
            raise _Abort(NotFound()) from None

        parent = document_security(row.document, self._lattice)
        profile = resolve_profile(
            parent, file_security(row, self._lattice), ctx.engine.registry
        )
        try:
            ctx.engine.require(principal, profile, action)
        except AccessDenied as exc:
            raise _Abort(
                self._refuse(ctx, principal, action, exc, parent, target_id=file_id)
            ) from None
        return row, parent, profile

    def _authorize_document(
        self, ctx: _Context, principal: Principal, document_id: str, action: Action
    ) -> Tuple[DocumentRecord, DocumentSecurity]:
        try:
            row = ctx.repo.require_document(document_id)
        except EntityNotFound:
            self._audit(ctx, principal, action, "not_found", document_id=document_id)
            raise _Abort(NotFound()) from None

        security = document_security(row, self._lattice)
        try:
            ctx.engine.require(principal, document_profile(security), action)
        except AccessDenied as exc:
            raise _Abort(
                self._refuse(ctx, principal, action, exc, security, target_id=document_id)
            ) from None
        return row, security

    def _inconsistent(
        self,
        ctx: _Context,
        principal: Principal,
        file_id: str,
        document_id: str,
        handle: str,
        detail: str,
    ) -> StorageInconsistency:
        exc = StorageInconsistency(file_id, handle, detail)
        STORAGE_INCONSISTENCIES.inc()
        log.error(
            "STORAGE INCONSISTENCY file=%s handle=%s code=%s: %s",
            file_id,
            handle,
            exc.code,
            detail,
        )
        self._audit(
            ctx,
            principal,
            Action.DELETE,
            "error",
            target_id=file_id,
            document_id=document_id,
            reason=exc.code,
            handle=handle,
            detail=detail,
        )
        return exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, principal: Principal, file_id: str) -> Result:
        with self._context() as ctx:
            try:
                row, parent, _ = self._authorize_file(ctx, principal, file_id, Action.VIEW)
            except _Abort as abort:
                return abort.result
            details = file_details(row)
            self._audit(
                ctx, principal, Action.VIEW, "success",
                target_id=file_id, document_id=parent.document_id,
            )
        return Ok(details)

    def download(self, principal: Principal, file_id: str) -> Result:
        with self._context() as ctx:
            try:
                row, parent, _ = self._authorize_file(
                    ctx, principal, file_id, Action.DOWNLOAD
                )
            except _Abort as abort:
                return abort.result
            details = file_details(row)
            handle = row.storage_handle

            try:
                stream = self._store.open(handle)
            except FileNotFoundError:
                log.error("content missing for file=%s handle=%s", file_id, handle)
                self._audit(
                    ctx, principal, Action.DOWNLOAD, "not_found",
                    target_id=file_id, document_id=parent.document_id,
                    reason="content_missing",
                )
                return NotFound()
            except OSError as exc:
                log.exception("FAILED to open content for file=%s handle=%s", file_id, handle)
                self._audit(
                    ctx, principal, Action.DOWNLOAD, "error",
                    target_id=file_id, document_id=parent.document_id,
                    reason="content_unreadable", error=type(exc).__name__,
                )
                raise

            self._audit(
                ctx, principal, Action.DOWNLOAD, "success",
                target_id=file_id, document_id=parent.document_id,
            )
        return Ok(FileDownload(details=details, stream=stream))

    def list_files(self, principal: Principal, document_id: str) -> Result:
        with self._context() as ctx:
            try:
                _, parent = self._authorize_document(
                    ctx, principal, document_id, Action.VIEW
                )
            except _Abort as abort:
                return abort.result

            listed: List[FileDetails] = []
            withheld = 0
            for row in ctx.repo.list_files(document_id):
                profile = resolve_profile(parent, file_security(row, self._lattice))
                if ctx.engine.decide(principal, profile, Action.VIEW).allowed:
                    listed.append(file_details(row))
                else:
                    withheld += 1

            self._audit(
                ctx, principal, Action.VIEW, "success",
                document_id=document_id, listed=len(listed), withheld=withheld,
            )
        return Ok(listed)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        principal: Principal,
        document_id: str,
        content: bytes,
        metadata: Union[FileCreate, Mapping[str, Any], None] = None,
    ) -> Result:
        with self._context() as ctx:
            try:
                document, _ = self._authorize_document(
                    ctx, principal, document_id, Action.EDIT
                )
            except _Abort as abort:
                return abort.result

            errors: Dict[str, List[str]] = {}
            if not content:
                errors.update(field_errors(content="Uploaded file is empty."))
            meta: Optional[FileCreate] = None
            if isinstance(metadata, FileCreate):
                meta = metadata
            else:
                try:
                    meta = FileCreate.model_validate(dict(metadata or {}))
                except ValidationError as exc:
                    errors.update(_pydantic_errors(exc))
            if errors or meta is None:
                self._audit(
                    ctx, principal, Action.EDIT, "invalid",
                    document_id=document_id, fields=sorted(errors),
                )
                return ValidationFailed(errors)

            handle = self._store.store(bytes(content))
            try:
                row = ctx.repo.add_file(
                    document,
                    title=meta.title or meta.filename or "Untitled",
                    filename=meta.filename,
                    mime_type=meta.mime_type,
                    file_date=meta.file_date,
                    source_url=meta.source_url,
                    metadata_json=dumps_metadata(meta.metadata),
                    auto_generated=meta.auto_generated,
                    visible=True,
                    preview=True,
                    registered_by=principal.username,
                    last_modified_by=principal.username,
                    storage_handle=handle,
                    size_bytes=len(content),
                    sha256=hashlib.sha256(content).hexdigest(),
                )
                ctx.session.commit()
            except Exception:
                log.exception("FAILED to record file for document=%s", document_id)
                ctx.session.rollback()
                if not self._store.delete(handle):
                    log.error("orphaned content left behind handle=%s", handle)
                raise

            details = file_details(row)
            self._audit(
                ctx, principal, Action.EDIT, "success",
                target_id=row.id, document_id=document_id, operation="create",
                size_bytes=len(content),
            )
        return Ok(details)

    def update(
        self,
        principal: Principal,
        file_id: str,
        patch: Union[FilePatch, Mapping[str, Any]],
    ) -> Result:
        with self._locks.hold(file_id), self._context() as ctx:
            # Authorized against the profile as it is now, before the patch.
            try:
                row, parent, _ = self._authorize_file(ctx, principal, file_id, Action.EDIT)
            except _Abort as abort:
                return abort.result

            try:
                parsed = (
                    patch if isinstance(patch, FilePatch)
                    else FilePatch.model_validate(dict(patch or {}))
                )
                overrides = self._overrides_from_patch(ctx, row, parsed)
            except ValidationError as exc:
                return self._invalid(ctx, principal, file_id, parent, _pydantic_errors(exc))
            except InvalidArgument as exc:
                return self._invalid(ctx, principal, file_id, parent, exc.errors)

            changes = parsed.model_dump(exclude_unset=True)
            for key, value in changes.items():
                if key in _OVERRIDE_PATCH_FIELDS:
                    continue
                if key == "metadata":
                    row.metadata_json = dumps_metadata(value)
                else:
                    setattr(row, key, value)
            ctx.repo.apply_overrides(row, **overrides)
            row.last_modified_by = principal.username
            row.modification_date = utcnow()

            try:
                ctx.session.commit()
            except StaleDataError as exc:
                ctx.session.rollback()
                self._audit(
                    ctx, principal, Action.EDIT, "error",
                    target_id=file_id, document_id=parent.document_id,
                    reason="concurrent_modification",
                )
                raise ConcurrentModification(file_id) from exc

            details = file_details(row)
            self._audit(
                ctx, principal, Action.EDIT, "success",
                target_id=file_id, document_id=parent.document_id,
                operation="update", fields=sorted(changes),
            )
        return Ok(details)

    def _invalid(
        self,
        ctx: _Context,
        principal: Principal,
        file_id: str,
        parent: DocumentSecurity,
        errors: Dict[str, List[str]],
    ) -> ValidationFailed:
        self._audit(
            ctx, principal, Action.EDIT, "invalid",
            target_id=file_id, document_id=parent.document_id, fields=sorted(errors),
        )
        return ValidationFailed(errors)

    def _overrides_from_patch(
        self, ctx: _Context, row: DocumentFileRecord, patch: FilePatch
    ) -> Dict[str, Override]:
        """
        Turn the patch's override fields into variants, validating them
        against the lattice and the group registry. Raises InvalidArgument
        with every problem found; nothing is assigned on failure.
        """
        errors: Dict[str, List[str]] = {}
        out: Dict[str, Override] = {}
        current = file_security(row, self._lattice)
        registry = ctx.engine.registry

        for name in _NOT_NULL_PATCH_FIELDS:
            if name in patch.model_fields_set and getattr(patch, name) is None:
                errors[name] = ["This field may not be null."]

        flag, level = patch.override_classification, patch.classification
        if flag is False:
            if level is not None:
                errors["classification"] = [
                    "Cannot set a classification while inheriting it from the document."
                ]
            else:
                out["classification"] = inherit()
        elif level is not None:
            try:
                out["classification"] = override_classification(self._lattice, level)
            except UnknownClassification as exc:
                errors["classification"] = [exc.message]
        elif flag is True and not isinstance(current.classification, Overridden):
            errors["classification"] = [
                "A classification is required when override_classification is set."
            ]

        for field, flag, ids, existing, build in (
            (
                "releasable_to",
                patch.override_releasable_to,
                patch.releasable_to,
                current.releasable_to,
                override_releasable_to,
            ),
            (
                "eyes_only",
                patch.override_eyes_only,
                patch.eyes_only,
                current.eyes_only,
                override_eyes_only,
            ),
        ):
            if flag is False:
                if ids:
                    errors[field] = [
                        f"Cannot set {field} groups while inheriting them from the document."
                    ]
                else:
                    out[field] = inherit()
            elif ids is not None:
                try:
                    out[field] = build(registry, ids)
                except InvalidGroupReference as exc:
                    errors[field] = [exc.message]
            elif flag is True and isinstance(existing, Inherited):
                out[field] = build(registry, ())

        if errors:
            raise InvalidArgument(errors)
        return out

    def delete(self, principal: Principal, file_id: str) -> Result:
        with self._locks.hold(file_id), self._context() as ctx:
            try:
                row, parent, _ = self._authorize_file(ctx, principal, file_id, Action.DELETE)
            except _Abort as abort:
                return abort.result

            handle = row.storage_handle
            document_id = parent.document_id
            try:
                ctx.repo.delete_file(row)
            except StaleDataError as exc:
                ctx.session.rollback()
                self._audit(
                    ctx, principal, Action.DELETE, "error",
                    target_id=file_id, document_id=document_id,
                    reason="concurrent_modification",
                )
                raise ConcurrentModification(file_id) from exc

            # Record removal is pending; content goes first so a failure here
            # can still roll the record back.
            if not self._store.delete(handle):
                ctx.session.rollback()
                raise self._inconsistent(
                    ctx, principal, file_id, document_id, handle,
                    "content deletion failed; record retained",
                )

            try:
                ctx.session.commit()
            except SQLAlchemyError as exc:
                ctx.session.rollback()
                raise self._inconsistent(
                    ctx, principal, file_id, document_id, handle,
                    "content removed but record deletion failed",
                ) from exc

            self._audit(
                ctx, principal, Action.DELETE, "success",
                target_id=file_id, document_id=document_id,
            )
        return Ok(file_id)
