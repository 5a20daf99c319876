"""Default/override precedence across the gateway -> route hierarchy.

Direct policies are the claim winners recorded in each kind's back-reference
plan. A policy that lost its claim, never got to claim, or holds a claim while
failing validation does not govern its target and does not make a route
non-free.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping

from policy_controller.policy_engine.backrefs import BackReferencePlan
from policy_controller.policy_engine.kinds import kind_spec
from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    ObjectKey,
    PolicyLike,
    PolicyRef,
    TargetId,
    stable_order_key,
)
from policy_controller.policy_engine.topology import Topology

ResolutionOutcome = Literal["resolved", "target_not_found", "invalid_hierarchy"]
EnforcementState = Literal[
    "enforced",
    "partially_enforced",
    "overridden",
    "no_free_routes",
    "no_gateway_parents",
    "target_not_found",
    "invalid_hierarchy",
]


@dataclass(frozen=True)
class EffectivePolicySet:
    target: TargetId
    kind: str
    policies: tuple[ObjectKey, ...] = ()
    superseded: tuple[ObjectKey, ...] = ()
    gateway_parents: tuple[TargetId, ...] = ()
    overriding_parents: tuple[TargetId, ...] = ()
    child_routes: tuple[TargetId, ...] = ()
    free_routes: tuple[TargetId, ...] = ()
    outcome: ResolutionOutcome = "resolved"


@dataclass(frozen=True)
class EnforcementOutcome:
    state: EnforcementState
    overriding: tuple[ObjectKey, ...] = ()


class HierarchyResolver:
    def __init__(self, topology: Topology, plans: Mapping[str, BackReferencePlan]):
        self._topology = topology
        self._plans = dict(plans)

    def claimant(self, target_id: TargetId, kind: str) -> ObjectKey | None:
        plan = self._plans.get(kind)
        return plan.owner_of(target_id) if plan is not None else None

    def direct_policy(self, target_id: TargetId, kind: str) -> PolicyLike | None:
        plan = self._plans.get(kind)
        if plan is None:
            return None
        owner = plan.governing_owner(target_id)
        if owner is None:
            return None
        return self._topology.policy(PolicyRef(kind, owner))

    def free_routes(self, gateway_id: TargetId, kind: str) -> tuple[TargetId, ...]:
        return tuple(
            route_id
            for route_id in self._topology.child_routes(gateway_id)
            if self.direct_policy(route_id, kind) is None
        )

    def effective_policies(self, target_id: TargetId, kind: str) -> EffectivePolicySet:
        target = self._topology.get(target_id)
        if target is None:
            return EffectivePolicySet(target=target_id, kind=kind, outcome="target_not_found")

        own = self.direct_policy(target_id, kind)

        if target.kind == GATEWAY_KIND:
            return EffectivePolicySet(
                target=target_id,
                kind=kind,
                policies=(own.key,) if own is not None else (),
                child_routes=self._topology.child_routes(target_id),
                free_routes=self.free_routes(target_id, kind),
            )

        ancestry = self._topology.gateway_ancestry(target_id)
        if not ancestry.valid:
            return EffectivePolicySet(target=target_id, kind=kind, outcome="invalid_hierarchy")

        overrides: list[PolicyLike] = []
        defaults: list[PolicyLike] = []
        overriding_parents: list[TargetId] = []
        for gateway_id in ancestry.gateways:
            gateway_policy = self.direct_policy(gateway_id, kind)
            if gateway_policy is None:
                continue
            if gateway_policy.is_override():
                overriding_parents.append(gateway_id)
                overrides.append(gateway_policy)
            else:
                defaults.append(gateway_policy)

        superseded: tuple[ObjectKey, ...] = ()
        if overrides:
            selected = _unique_ordered(overrides)
            fully_overridden = len(overriding_parents) == len(ancestry.gateways)
            if own is not None:
                if fully_overridden:
                    superseded = (own.key,)
                else:
                    selected = selected + (own.key,)
            elif not fully_overridden:
                selected = selected + _unique_ordered(defaults)
        elif own is not None:
            selected = (own.key,)
        else:
            selected = _unique_ordered(defaults)

        return EffectivePolicySet(
            target=target_id,
            kind=kind,
            policies=selected,
            superseded=superseded,
            gateway_parents=ancestry.gateways,
            overriding_parents=tuple(overriding_parents),
        )

    def enforcement(self, policy_ref: PolicyRef) -> EnforcementOutcome:
        policy = self._topology.policy(policy_ref)
        target = self._topology.target_of(policy_ref)
        if policy is None or target is None:
            return EnforcementOutcome(state="target_not_found")

        if target.kind == GATEWAY_KIND:
            if not kind_spec(policy.kind).route_dependent:
                return EnforcementOutcome(state="enforced")
            children = self._topology.child_routes(target.id)
            if not children:
                return EnforcementOutcome(state="no_free_routes")
            if policy.is_override():
                return EnforcementOutcome(state="enforced")
            free = self.free_routes(target.id, policy.kind)
            if len(free) == len(children):
                return EnforcementOutcome(state="enforced")
            if free:
                return EnforcementOutcome(state="partially_enforced")
            return EnforcementOutcome(state="no_free_routes")

        effective = self.effective_policies(target.id, policy.kind)
        if effective.outcome == "invalid_hierarchy":
            return EnforcementOutcome(state="invalid_hierarchy")
        if not effective.gateway_parents:
            return EnforcementOutcome(state="no_gateway_parents")
        if len(effective.overriding_parents) == len(effective.gateway_parents):
            overriding = tuple(k for k in effective.policies if k != policy.key)
            return EnforcementOutcome(state="overridden", overriding=overriding)
        if effective.overriding_parents:
            return EnforcementOutcome(state="partially_enforced")
        return EnforcementOutcome(state="enforced")


def _unique_ordered(policies: list[PolicyLike]) -> tuple[ObjectKey, ...]:
    seen: set[ObjectKey] = set()
    ordered: list[ObjectKey] = []
    for policy in sorted(policies, key=stable_order_key):
        if policy.key in seen:
            continue
        seen.add(policy.key)
        ordered.append(policy.key)
    return tuple(ordered)
