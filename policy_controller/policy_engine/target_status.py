from __future__ import annotations

from typing import Mapping

from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.errors import REASON_ACCEPTED, REASON_UNKNOWN
from policy_controller.policy_engine.hierarchy import HierarchyResolver
from policy_controller.policy_engine.kinds import affected_condition_type
from policy_controller.policy_engine.model import (
    Condition,
    PolicyConditions,
    PolicyRef,
    TargetId,
)
from policy_controller.policy_engine.topology import Topology


def build_affected_condition(
    policy_ref: PolicyRef,
    conditions: PolicyConditions | None,
    generation: int,
    config: EngineConfig,
) -> Condition:
    condition_type = affected_condition_type(policy_ref.kind, config.annotation_domain)
    if conditions is not None and conditions.accepted.status == "True":
        return Condition(
            type=condition_type,
            status="True",
            reason=REASON_ACCEPTED,
            message=f"Object affected by {policy_ref.kind} {policy_ref.key}",
            observed_generation=generation,
        )
    reason = conditions.accepted.reason if conditions is not None else REASON_UNKNOWN
    return Condition(
        type=condition_type,
        status="False",
        reason=reason,
        message=f"Object unaffected by {policy_ref.kind} {policy_ref.key}, policy is not accepted",
        observed_generation=generation,
    )


def target_conditions(
    topology: Topology,
    conditions: Mapping[PolicyRef, PolicyConditions],
    resolver: HierarchyResolver,
    config: EngineConfig,
) -> dict[TargetId, tuple[Condition, ...]]:
    """Policy-affected conditions for every targetable, one per policy kind.

    The governing policy is the first of the target's effective set. Targets
    only reached by rejected policies report the back-reference holder, or
    else the earliest of them, as not affecting the object.
    """

    result: dict[TargetId, tuple[Condition, ...]] = {}
    for target in topology.targetables():
        target_conds: list[Condition] = []
        for kind in config.policy_kinds:
            effective = resolver.effective_policies(target.id, kind)
            claimant = resolver.claimant(target.id, kind)
            if effective.policies:
                governing = PolicyRef(kind, effective.policies[0])
            elif claimant is not None:
                governing = PolicyRef(kind, claimant)
            else:
                attached = topology.policies_targeting(target.id, kind)
                if not attached:
                    continue
                governing = attached[0].ref
            target_conds.append(
                build_affected_condition(governing, conditions.get(governing), target.generation, config)
            )
        if target_conds:
            result[target.id] = tuple(sorted(target_conds, key=lambda c: c.type))
    return result
