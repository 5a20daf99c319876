"""Snapshot -> conditions for every policy.

``resolve`` is pure: the same snapshot and configuration always produce the
same conditions and the same resolution hash. Back-reference changes are only
planned here; applying them is the reconciler's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from policy_controller.policy_engine.backrefs import BackReferencePlan, plan_back_references
from policy_controller.policy_engine.canonical_hash import domain_hash
from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.hierarchy import EffectivePolicySet, HierarchyResolver
from policy_controller.policy_engine.logger import log_event
from policy_controller.policy_engine.model import (
    Condition,
    PolicyConditions,
    PolicyRef,
    Snapshot,
    TargetId,
)
from policy_controller.policy_engine.status import CalculationContext, admission_error, calculate
from policy_controller.policy_engine.target_status import target_conditions
from policy_controller.policy_engine.topology import Topology, build_topology

RESOLUTION_HASH_DOMAIN = "policy_engine.resolution.v1"


@dataclass(frozen=True)
class Resolution:
    conditions: Mapping[PolicyRef, PolicyConditions]
    effective: Mapping[tuple[TargetId, str], EffectivePolicySet]
    plans: Mapping[str, BackReferencePlan]
    target_conditions: Mapping[TargetId, tuple[Condition, ...]]
    resolution_hash: str
    topology: Topology | None = field(default=None, compare=False, repr=False)

    def accepted(self) -> list[PolicyRef]:
        return sorted(ref for ref, c in self.conditions.items() if c.accepted.status == "True")

    def rejected(self) -> list[PolicyRef]:
        return sorted(ref for ref, c in self.conditions.items() if c.accepted.status != "True")


def resolution_hash(
    conditions: Mapping[PolicyRef, PolicyConditions],
    targets: Mapping[TargetId, tuple[Condition, ...]] | None = None,
) -> str:
    payload = {
        "policies": {
            str(ref): [c.to_dict() for c in conditions[ref].as_tuple()]
            for ref in sorted(conditions)
        },
        "targets": {
            str(target_id): [c.to_dict() for c in (targets or {})[target_id]]
            for target_id in sorted(targets or {})
        },
    }
    return domain_hash(RESOLUTION_HASH_DOMAIN, payload)


def resolve_snapshot(snapshot: Snapshot, config: EngineConfig | None = None) -> Resolution:
    config = config or EngineConfig()

    active = Snapshot(
        gateways=snapshot.gateways,
        routes=snapshot.routes,
        policies=tuple(p for p in snapshot.policies if not p.deletion_pending),
        health=snapshot.health,
    )
    topology = build_topology(active, config.policy_kinds, config.max_hierarchy_depth)

    plans: dict[str, BackReferencePlan] = {}
    for kind in config.policy_kinds:
        eligible = [
            policy.ref
            for policy in topology.policies(kind)
            if admission_error(policy, topology, config) is None
        ]
        plans[kind] = plan_back_references(topology, kind, eligible, config)

    resolver = HierarchyResolver(topology, plans)
    context = CalculationContext(
        topology=topology,
        resolver=resolver,
        plans=plans,
        health=dict(snapshot.health),
        config=config,
    )

    conditions: dict[PolicyRef, PolicyConditions] = {}
    for policy in topology.policies():
        result = calculate(policy.ref, context)
        conditions[policy.ref] = result
        enforced = result.enforced
        log_event(
            "resolve",
            (
                f"policy={policy.ref} accepted={result.accepted.status} "
                f"reason={result.accepted.reason} "
                f"enforced={enforced.status if enforced else '-'} "
                f"enforced_reason={enforced.reason if enforced else '-'}"
            ),
        )

    effective = {
        (target.id, kind): resolver.effective_policies(target.id, kind)
        for target in topology.targetables()
        for kind in config.policy_kinds
    }
    targets = target_conditions(topology, conditions, resolver, config)
    digest = resolution_hash(conditions, targets)
    log_event(
        "resolve",
        f"resolved policies={len(conditions)} targets={len(targets)} resolution_hash={digest}",
    )
    return Resolution(
        conditions=conditions,
        effective=effective,
        plans=plans,
        target_conditions=targets,
        resolution_hash=digest,
        topology=topology,
    )


def resolve(snapshot: Snapshot, config: EngineConfig | None = None) -> dict[PolicyRef, PolicyConditions]:
    return dict(resolve_snapshot(snapshot, config).conditions)
