from __future__ import annotations

import json

from contracts.access_types import Group
from engine.classification import ClassificationLattice
from engine.groups import GroupRegistry
from engine.policy_fingerprint import POLICY_ID, fingerprint_snapshot

_REGISTRY = GroupRegistry([Group("g1", "G1"), Group("all", "Everyone", is_default=True)])


def test_fingerprint_is_stable():
    a = fingerprint_snapshot(ClassificationLattice(), _REGISTRY)
    b = fingerprint_snapshot(ClassificationLattice(), _REGISTRY)
    assert a == b
    assert a.policy_id == POLICY_ID
    assert len(a.policy_hash) == 64


def test_fingerprint_ignores_non_default_groups():
    more = GroupRegistry(list(_REGISTRY) + [Group("g2", "G2")])
    assert (
        fingerprint_snapshot(ClassificationLattice(), more).policy_hash
        == fingerprint_snapshot(ClassificationLattice(), _REGISTRY).policy_hash
    )


def test_fingerprint_changes_with_levels_and_defaults():
    base = fingerprint_snapshot(ClassificationLattice(), _REGISTRY).policy_hash

    fewer_levels = ClassificationLattice(["PUBLIC", "SECRET"])
    assert fingerprint_snapshot(fewer_levels, _REGISTRY).policy_hash != base

    no_defaults = GroupRegistry([Group("g1", "G1"), Group("all", "Everyone")])
    assert fingerprint_snapshot(ClassificationLattice(), no_defaults).policy_hash != base


def test_fingerprint_bytes_are_canonical_json():
    fp = fingerprint_snapshot(ClassificationLattice(), _REGISTRY)
    payload = json.loads(fp.policy_bytes)
    assert payload["default_groups"] == ["all"]
    assert payload["check_order"] == ["clearance", "releasability", "eyes_only"]
    assert fp.policy_bytes == json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
