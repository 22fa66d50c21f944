from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from engine.classification import ClassificationLattice
from engine.groups import GroupRegistry

POLICY_ID = "filegate-access-v1"

_CHECK_ORDER = ["clearance", "releasability", "eyes_only"]


@dataclass(frozen=True)
class PolicyFingerprint:
    policy_id: str
    policy_hash: str
    policy_bytes: bytes


def _snapshot_definition(
    lattice: ClassificationLattice, registry: GroupRegistry
) -> dict[str, Any]:
    return {
        "policy_id": POLICY_ID,
        "check_order": _CHECK_ORDER,
        "levels": [c.name for c in lattice.levels()],
        "default_groups": sorted(registry.default_group_ids()),
    }


def _canonical_policy_bytes(definition: dict[str, Any]) -> bytes:
    payload = json.dumps(
        definition,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return payload.encode("utf-8")


def _sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def fingerprint_snapshot(
    lattice: ClassificationLattice, registry: GroupRegistry
) -> PolicyFingerprint:
    """Hash of the lattice + default groups a decision was taken under."""
    policy_bytes = _canonical_policy_bytes(_snapshot_definition(lattice, registry))
    return PolicyFingerprint(
        policy_id=POLICY_ID,
        policy_hash=_sha256_hex(policy_bytes),
        policy_bytes=policy_bytes,
    )
