from __future__ import annotations

import pytest

from contracts.access_types import Group
from engine.errors import UnknownGroupKind
from engine.groups import GroupRegistry


def _registry() -> GroupRegistry:
    return GroupRegistry(
        [
            Group("g1", "Analysts"),
            Group("g2", "Operators"),
            Group("all", "Everyone", is_default=True),
        ]
    )


def test_resolve_returns_group_records():
    registry = _registry()
    resolved = registry.resolve({"g1", "all"})
    assert {g.name for g in resolved} == {"Analysts", "Everyone"}
    assert registry.resolve([]) == frozenset()


def test_resolve_rejects_unknown_ids():
    registry = _registry()
    with pytest.raises(UnknownGroupKind) as exc:
        registry.resolve({"g1", "nope", "zzz"})
    assert exc.value.group_ids == ["nope", "zzz"]
    assert exc.value.code == "FG-GRP-002"


def test_default_groups():
    registry = _registry()
    assert registry.default_groups() == frozenset({Group("all", "Everyone", is_default=True)})
    assert registry.default_group_ids() == frozenset({"all"})
    assert registry.is_default("all")
    assert not registry.is_default("g1")
    assert not registry.is_default("missing")


def test_registry_is_a_snapshot():
    groups = [Group("g1", "Analysts")]
    registry = GroupRegistry(groups)
    groups.append(Group("g2", "Operators"))

    assert len(registry) == 1
    assert "g2" not in registry
    assert registry.get("g1") == Group("g1", "Analysts")
