from __future__ import annotations

"""
Effective security profile of a document file.

Each of the three security fields is resolved independently:
  - file overrides the field  -> the file's stored value
  - file inherits the field   -> the owning document's current value

Override values are validated and normalized when they are assigned
(override_* helpers below), never lazily at read time. In particular a
releasable-to override is stored with the default groups already removed, so
a later change to which groups are default cannot widen or narrow what was
explicitly set.
"""

from typing import FrozenSet, Iterable, Optional

from contracts.access_types import (
    INHERITED,
    Classification,
    DocumentSecurity,
    FileSecurity,
    Inherited,
    Overridden,
    Override,
    SecurityProfile,
)
from engine.classification import ClassificationLattice
from engine.errors import InvalidGroupReference, UnknownGroupKind
from engine.groups import GroupRegistry


def _pick(override: Override, inherited):
    if isinstance(override, Overridden):
        return override.value
    return inherited


def document_profile(document: DocumentSecurity) -> SecurityProfile:
    return SecurityProfile(
        classification=document.classification,
        releasable_to=frozenset(document.releasable_to),
        eyes_only=frozenset(document.eyes_only),
    )


def resolve_profile(
    document: DocumentSecurity,
    file: FileSecurity,
    registry: Optional[GroupRegistry] = None,
) -> SecurityProfile:
    """
    Compute the effective profile of ``file`` under ``document``.

    When a registry is given, group ids referenced by the file's overrides are
    checked against it and InvalidGroupReference is raised for unknown ones.
    """
    if file.document_id != document.document_id:
        raise ValueError(
            f"file {file.file_id!r} does not belong to document {document.document_id!r}"
        )

    if registry is not None:
        _check_known(registry, "releasable_to", file.releasable_to)
        _check_known(registry, "eyes_only", file.eyes_only)

    return SecurityProfile(
        classification=_pick(file.classification, document.classification),
        releasable_to=frozenset(_pick(file.releasable_to, document.releasable_to)),
        eyes_only=frozenset(_pick(file.eyes_only, document.eyes_only)),
    )


def _check_known(registry: GroupRegistry, field: str, override: Override) -> None:
    if isinstance(override, Overridden):
        _resolve_ids(registry, field, override.value)


def _resolve_ids(registry: GroupRegistry, field: str, ids: Iterable[str]) -> FrozenSet[str]:
    try:
        groups = registry.resolve(ids)
    except UnknownGroupKind as exc:
        raise InvalidGroupReference(field, exc.group_ids) from exc
    return frozenset(g.group_id for g in groups)


# ---------------------------------------------------------------------------
# Assignment-time builders
# ---------------------------------------------------------------------------


def inherit() -> Inherited:
    return INHERITED


def override_classification(
    lattice: ClassificationLattice, name: str
) -> Overridden[Classification]:
    return Overridden(lattice.get(name))


def override_releasable_to(
    registry: GroupRegistry, ids: Iterable[str]
) -> Overridden[FrozenSet[str]]:
    resolved = _resolve_ids(registry, "releasable_to", ids)
    return Overridden(resolved - registry.default_group_ids())


def override_eyes_only(
    registry: GroupRegistry, ids: Iterable[str]
) -> Overridden[FrozenSet[str]]:
    return Overridden(_resolve_ids(registry, "eyes_only", ids))
