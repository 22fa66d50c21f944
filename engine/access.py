from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from contracts.access_types import (
    Action,
    Allow,
    Decision,
    Deny,
    DenyReason,
    Principal,
    SecurityProfile,
)
from engine.classification import ClassificationLattice
from engine.errors import access_denied_for
from engine.groups import GroupRegistry

log = logging.getLogger("filegate.access")

Check = Callable[["AccessDecisionEngine", Principal, SecurityProfile], Optional[DenyReason]]


def _check_clearance(
    engine: "AccessDecisionEngine", principal: Principal, profile: SecurityProfile
) -> Optional[DenyReason]:
    if engine.lattice.at_least_as_restrictive(principal.clearance, profile.classification):
        return None
    return DenyReason.INSUFFICIENT_CLEARANCE


def _check_releasability(
    engine: "AccessDecisionEngine", principal: Principal, profile: SecurityProfile
) -> Optional[DenyReason]:
    # Empty set: no restriction beyond clearance.
    if not profile.releasable_to:
        return None
    if principal.groups & profile.releasable_to:
        return None
    if principal.groups & engine.registry.default_group_ids():
        return None
    return DenyReason.NOT_RELEASABLE


def _check_eyes_only(
    engine: "AccessDecisionEngine", principal: Principal, profile: SecurityProfile
) -> Optional[DenyReason]:
    # Conjunctive: every listed group is required.
    if profile.eyes_only <= principal.groups:
        return None
    return DenyReason.EYES_ONLY_RESTRICTED


_CHECKS: Tuple[Check, ...] = (
    _check_clearance,
    _check_releasability,
    _check_eyes_only,
)


@dataclass(frozen=True)
class AccessDecisionEngine:
    """
    Pure allow/deny evaluation for a principal against an effective profile.

    Checks run in a fixed order and the first failing one names the denial.
    The action is carried through to the decision but every action is gated
    the same way today.
    """

    lattice: ClassificationLattice
    registry: GroupRegistry

    def decide(
        self, principal: Principal, profile: SecurityProfile, action: Action
    ) -> Decision:
        for check in _CHECKS:
            reason = check(self, principal, profile)
            if reason is not None:
                log.debug(
                    "deny principal=%s action=%s reason=%s",
                    principal.principal_id,
                    action.value,
                    reason.value,
                )
                return Deny(action=action, reason=reason)
        return Allow(action=action)

    def require(
        self, principal: Principal, profile: SecurityProfile, action: Action
    ) -> Allow:
        """Like decide(), but raise the matching AccessDenied subtype on deny."""
        decision = self.decide(principal, profile, action)
        if isinstance(decision, Deny):
            raise access_denied_for(decision.reason)
        return decision
