"""Accepted/Enforced condition calculation.

The pipeline short-circuits on the first failure:

1. local validation of the policy spec
2. target resolution, hostname hierarchy and parent-cycle checks
3. direct back-reference conflict
4. hierarchy outcome (overrides, defaults, free routes)
5. enforcement backend health, only once the policy is accepted

``Enforced`` is left out whenever ``Accepted`` is not true.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from policy_controller.policy_engine.backrefs import BackReferencePlan
from policy_controller.policy_engine.conditions import accepted_condition, enforced_condition
from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.errors import (
    ConflictPolicyError,
    InvalidPolicyError,
    OverriddenPolicyError,
    PolicyError,
    TargetNotFoundError,
    UnknownPolicyError,
)
from policy_controller.policy_engine.hierarchy import HierarchyResolver
from policy_controller.policy_engine.kinds import kind_spec
from policy_controller.policy_engine.model import (
    HealthStatus,
    Policy,
    PolicyConditions,
    PolicyRef,
)
from policy_controller.policy_engine.topology import Topology
from policy_controller.policy_engine.validation import (
    validate_hierarchical_hostnames,
    validate_policy_spec,
)

NO_GATEWAY_PARENTS = "the targeted route has not been accepted by any gateway parent"


@dataclass(frozen=True)
class CalculationContext:
    topology: Topology
    resolver: HierarchyResolver
    plans: Mapping[str, BackReferencePlan]
    health: Mapping[str, HealthStatus]
    config: EngineConfig


def admission_error(policy: Policy, topology: Topology, config: EngineConfig) -> PolicyError | None:
    """Steps 1 and 2: everything that must hold before a policy may claim its target."""

    spec = kind_spec(policy.kind)
    err = validate_policy_spec(policy, spec)
    if err is not None:
        return err

    target = topology.target_of(policy.ref)
    if target is None:
        return TargetNotFoundError(policy.kind, policy.target_ref.name)

    ancestry = topology.gateway_ancestry(target.id)
    if ancestry.cyclic:
        return InvalidPolicyError(policy.kind, f"target {target.id} has a cyclic parent reference chain")
    if ancestry.depth_exceeded:
        return InvalidPolicyError(
            policy.kind,
            f"target {target.id} parent reference chain exceeds depth {config.max_hierarchy_depth}",
        )

    return validate_hierarchical_hostnames(policy, target, spec)


def calculate(policy_ref: PolicyRef, context: CalculationContext) -> PolicyConditions:
    topology = context.topology
    policy = topology.policy(policy_ref)
    if policy is None:
        raise ValueError(f"policy_engine.status.invalid unknown_policy={policy_ref}")
    generation = policy.generation

    err = admission_error(policy, topology, context.config)
    if err is not None:
        return PolicyConditions(accepted=accepted_condition(policy.kind, err, generation))

    target = topology.target_of(policy_ref)
    plan = context.plans.get(policy.kind)
    owner = plan.owner_of(target.id) if plan is not None else None
    if owner is None:
        err = UnknownPolicyError(policy.kind, f"the {target.kind} target {target.key} has not been claimed")
        return PolicyConditions(accepted=accepted_condition(policy.kind, err, generation))
    if owner != policy.key:
        err = ConflictPolicyError(
            policy.kind,
            str(owner),
            f"the {target.kind} target {target.key} is already referenced by policy {owner}",
        )
        return PolicyConditions(accepted=accepted_condition(policy.kind, err, generation))

    accepted = accepted_condition(policy.kind, None, generation)
    enforced = _enforced(policy, context)
    return PolicyConditions(accepted=accepted, enforced=enforced)


def _enforced(policy: Policy, context: CalculationContext):
    generation = policy.generation
    outcome = context.resolver.enforcement(policy.ref)

    if outcome.state == "overridden":
        err = OverriddenPolicyError(policy.kind, [str(k) for k in outcome.overriding])
        return enforced_condition(policy.kind, err, generation=generation)
    if outcome.state == "no_free_routes":
        err = UnknownPolicyError(policy.kind, kind_spec(policy.kind).no_routes_message)
        return enforced_condition(policy.kind, err, generation=generation)
    if outcome.state == "no_gateway_parents":
        return enforced_condition(
            policy.kind, UnknownPolicyError(policy.kind, NO_GATEWAY_PARENTS), generation=generation
        )
    if outcome.state not in ("enforced", "partially_enforced"):
        err = UnknownPolicyError(policy.kind, f"unexpected hierarchy outcome {outcome.state}")
        return enforced_condition(policy.kind, err, generation=generation)

    health_err = _health_error(policy.kind, context)
    if health_err is not None:
        return enforced_condition(policy.kind, health_err, generation=generation)

    return enforced_condition(policy.kind, None, fully=outcome.state == "enforced", generation=generation)


def _health_error(kind: str, context: CalculationContext) -> PolicyError | None:
    subresource = kind_spec(kind).subresource
    health = context.health.get(kind)
    if health is None:
        return UnknownPolicyError(kind, f"{subresource} health has not been reported yet")
    if health.error:
        return UnknownPolicyError(kind, f"failed to read {subresource} health: {health.error}")
    if not health.ready:
        detail = f"{subresource} is not ready"
        if health.reason:
            detail = f"{detail}: {health.reason}"
        return UnknownPolicyError(kind, detail)
    return None
