from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Generic, List, TypeVar, Union

T = TypeVar("T")


class Action(str, Enum):
    VIEW = "view"
    DOWNLOAD = "download"
    EDIT = "edit"
    DELETE = "delete"


class DenyReason(str, Enum):
    INSUFFICIENT_CLEARANCE = "InsufficientClearance"
    NOT_RELEASABLE = "NotReleasable"
    EYES_ONLY_RESTRICTED = "EyesOnlyRestricted"


@dataclass(frozen=True)
class Classification:
    name: str
    rank: int

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Group:
    group_id: str
    name: str
    is_default: bool = False


@dataclass(frozen=True)
class Principal:
    principal_id: str
    username: str
    clearance: Classification
    groups: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class SecurityProfile:
    classification: Classification
    releasable_to: FrozenSet[str] = frozenset()
    eyes_only: FrozenSet[str] = frozenset()


# ---------------------------------------------------------------------------
# Per-field overrides: a file either inherits a field from its document or
# carries its own value. There is no flag that can disagree with the value.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Inherited:
    pass


@dataclass(frozen=True)
class Overridden(Generic[T]):
    value: T


Override = Union[Inherited, Overridden]

INHERITED = Inherited()


@dataclass(frozen=True)
class DocumentSecurity:
    document_id: str
    classification: Classification
    releasable_to: FrozenSet[str] = frozenset()
    eyes_only: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class FileSecurity:
    file_id: str
    document_id: str
    classification: Override = INHERITED
    releasable_to: Override = INHERITED
    eyes_only: Override = INHERITED


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Allow:
    action: Action

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    action: Action
    reason: DenyReason

    @property
    def allowed(self) -> bool:
        return False


Decision = Union[Allow, Deny]


# ---------------------------------------------------------------------------
# Tagged results returned by the file lifecycle operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Denied:
    reason: DenyReason


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class ValidationFailed:
    field_errors: Dict[str, List[str]] = field(default_factory=dict)


Result = Union[Ok, Denied, NotFound, ValidationFailed]


def field_errors(**errors: Any) -> Dict[str, List[str]]:
    """Normalize keyword errors into the ``{field: [message, ...]}`` shape."""
    out: Dict[str, List[str]] = {}
    for key, value in errors.items():
        if isinstance(value, (list, tuple)):
            out[key] = [str(v) for v in value]
        else:
            out[key] = [str(value)]
    return out
