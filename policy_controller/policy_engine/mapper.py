"""Change-to-affected-policy fan-out.

Given a changed gateway, route or policy, list every policy whose conditions
could change and therefore needs another resolution pass. The relations are
the ones the resolver uses: parent/child, direct target and override scope.
"""

from __future__ import annotations

from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    PolicyRef,
    TargetId,
)
from policy_controller.policy_engine.topology import Topology


def _policies_on(topology: Topology, target_ids, kind=None) -> set[PolicyRef]:
    refs: set[PolicyRef] = set()
    for target_id in target_ids:
        for policy in topology.policies_targeting(target_id, kind):
            refs.add(policy.ref)
    return refs


def _gateway_subtree(topology: Topology, gateway_id: TargetId) -> list[TargetId]:
    return [gateway_id, *topology.child_routes(gateway_id)]


def _related_gateways(topology: Topology, target_id: TargetId) -> tuple[TargetId, ...]:
    if target_id.kind == GATEWAY_KIND:
        return (target_id,)
    return topology.gateway_ancestry(target_id).gateways


def policies_affected_by_target(topology: Topology, target_id: TargetId) -> list[PolicyRef]:
    refs = _policies_on(topology, [target_id])
    if target_id.kind == GATEWAY_KIND:
        refs |= _policies_on(topology, topology.child_routes(target_id))
    else:
        refs |= _policies_on(topology, topology.gateway_ancestry(target_id).gateways)
    return sorted(refs)


def policies_affected_by_policy(topology: Topology, policy_ref: PolicyRef) -> list[PolicyRef]:
    refs = {policy_ref}
    policy = topology.policy(policy_ref)
    if policy is None:
        return sorted(refs)
    target_id = policy.target_id()
    if target_id is None:
        return sorted(refs)

    refs |= _policies_on(topology, [target_id], policy_ref.kind)
    for gateway_id in _related_gateways(topology, target_id):
        refs |= _policies_on(topology, _gateway_subtree(topology, gateway_id), policy_ref.kind)
    return sorted(refs)


def affected_policies(topology: Topology, changed: TargetId | PolicyRef) -> list[PolicyRef]:
    if isinstance(changed, PolicyRef):
        return policies_affected_by_policy(topology, changed)
    return policies_affected_by_target(topology, changed)
