from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Iterable, Iterator, Optional

from contracts.access_types import Group
from engine.errors import UnknownGroupKind


class GroupRegistry:
    """Immutable snapshot of the known groups, built once per request."""

    def __init__(self, groups: Iterable[Group] = ()) -> None:
        by_id = {}
        for g in groups:
            by_id[g.group_id] = g
        self._by_id = MappingProxyType(by_id)
        self._defaults: FrozenSet[Group] = frozenset(
            g for g in by_id.values() if g.is_default
        )

    def get(self, group_id: str) -> Optional[Group]:
        return self._by_id.get(group_id)

    def resolve(self, ids: Iterable[str]) -> FrozenSet[Group]:
        wanted = set(ids)
        missing = [gid for gid in wanted if gid not in self._by_id]
        if missing:
            raise UnknownGroupKind(missing)
        return frozenset(self._by_id[gid] for gid in wanted)

    def default_groups(self) -> FrozenSet[Group]:
        return self._defaults

    def default_group_ids(self) -> FrozenSet[str]:
        return frozenset(g.group_id for g in self._defaults)

    def is_default(self, group_id: str) -> bool:
        g = self._by_id.get(group_id)
        return bool(g and g.is_default)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._by_id

    def __iter__(self) -> Iterator[Group]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)
