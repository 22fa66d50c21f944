"""
FileGate - error taxonomy

Every error carries a deterministic code so audit events and logs can be
correlated without parsing messages.

Access denials are kept distinct for audit purposes. Callers only ever see a
single authorization failure (see services/file_lifecycle.py).
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from contracts.access_types import DenyReason

ERR_INSUFFICIENT_CLEARANCE = "FG-ACC-001"
ERR_NOT_RELEASABLE = "FG-ACC-002"
ERR_EYES_ONLY_RESTRICTED = "FG-ACC-003"
ERR_INVALID_GROUP_REFERENCE = "FG-GRP-001"
ERR_UNKNOWN_GROUP_KIND = "FG-GRP-002"
ERR_UNKNOWN_CLASSIFICATION = "FG-CLS-001"
ERR_NOT_FOUND = "FG-FILE-001"
ERR_VALIDATION_FAILED = "FG-FILE-002"
ERR_STORAGE_INCONSISTENCY = "FG-FILE-003"
ERR_CONCURRENT_MODIFICATION = "FG-FILE-004"


class FileGateError(Exception):
    code = "FG-000"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


# ---------------------------------------------------------------------------
# Access denials
# ---------------------------------------------------------------------------


class AccessDenied(FileGateError):
    reason: DenyReason

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason.value)


class InsufficientClearance(AccessDenied):
    code = ERR_INSUFFICIENT_CLEARANCE
    reason = DenyReason.INSUFFICIENT_CLEARANCE


class NotReleasable(AccessDenied):
    code = ERR_NOT_RELEASABLE
    reason = DenyReason.NOT_RELEASABLE


class EyesOnlyRestricted(AccessDenied):
    code = ERR_EYES_ONLY_RESTRICTED
    reason = DenyReason.EYES_ONLY_RESTRICTED


_DENIALS: Dict[DenyReason, type] = {
    DenyReason.INSUFFICIENT_CLEARANCE: InsufficientClearance,
    DenyReason.NOT_RELEASABLE: NotReleasable,
    DenyReason.EYES_ONLY_RESTRICTED: EyesOnlyRestricted,
}


def access_denied_for(reason: DenyReason, message: str = "") -> AccessDenied:
    return _DENIALS[reason](message)


# ---------------------------------------------------------------------------
# Reference errors
# ---------------------------------------------------------------------------


class UnknownGroupKind(FileGateError):
    code = ERR_UNKNOWN_GROUP_KIND

    def __init__(self, group_ids: Iterable[str]) -> None:
        self.group_ids = sorted(set(group_ids))
        super().__init__(f"unknown group id(s): {', '.join(self.group_ids)}")


class InvalidGroupReference(FileGateError):
    code = ERR_INVALID_GROUP_REFERENCE

    def __init__(self, field: str, group_ids: Iterable[str]) -> None:
        self.field = field
        self.group_ids = sorted(set(group_ids))
        super().__init__(
            f"{field} references unknown group id(s): {', '.join(self.group_ids)}"
        )


class UnknownClassification(FileGateError):
    code = ERR_UNKNOWN_CLASSIFICATION

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unknown classification: {name!r}")


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------


class EntityNotFound(FileGateError):
    code = ERR_NOT_FOUND

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id!r} does not exist")


class InvalidArgument(FileGateError):
    code = ERR_VALIDATION_FAILED

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{k}: {', '.join(v)}" for k, v in errors.items()))


class StorageInconsistency(FileGateError):
    """Record and stored content diverged; needs out-of-band remediation."""

    code = ERR_STORAGE_INCONSISTENCY

    def __init__(
        self,
        file_id: str,
        handle: Optional[str],
        detail: str,
    ) -> None:
        self.file_id = file_id
        self.handle = handle
        self.detail = detail
        super().__init__(f"file {file_id!r} handle={handle!r}: {detail}")


class ConcurrentModification(FileGateError):
    code = ERR_CONCURRENT_MODIFICATION

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"file {file_id!r} was modified concurrently")
