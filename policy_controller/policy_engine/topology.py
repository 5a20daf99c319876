"""Topology of targetable resources and the policies attached to them.

The graph is built once per pass from a snapshot and never mutated. Bad input
(unknown parents, dangling target references, cyclic parent chains) is kept as
graph state so later stages can report it through conditions.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from policy_controller.policy_engine.config import DEFAULT_MAX_HIERARCHY_DEPTH
from policy_controller.policy_engine.logger import log_event
from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    ROUTE_KIND,
    TARGETABLE_KINDS,
    ParentRef,
    Policy,
    PolicyRef,
    Snapshot,
    TargetId,
    Targetable,
    stable_order_key,
)


@dataclass(frozen=True)
class GatewayAncestry:
    gateways: tuple[TargetId, ...] = ()
    cyclic: bool = False
    depth_exceeded: bool = False

    @property
    def valid(self) -> bool:
        return not (self.cyclic or self.depth_exceeded)


class Topology:
    def __init__(
        self,
        targetables: Mapping[TargetId, Targetable],
        policies: Mapping[PolicyRef, Policy],
        parents: Mapping[TargetId, tuple[TargetId, ...]],
        unresolved_parents: Mapping[TargetId, tuple[ParentRef, ...]],
        policy_targets: Mapping[PolicyRef, TargetId],
        target_policies: Mapping[TargetId, tuple[PolicyRef, ...]],
        orphans: tuple[PolicyRef, ...],
        missing_target_refs: tuple[PolicyRef, ...],
        max_depth: int,
    ):
        self._targetables = MappingProxyType(dict(targetables))
        self._policies = MappingProxyType(dict(policies))
        self._parents = MappingProxyType(dict(parents))
        self._unresolved_parents = MappingProxyType(dict(unresolved_parents))
        self._policy_targets = MappingProxyType(dict(policy_targets))
        self._target_policies = MappingProxyType(dict(target_policies))
        self._orphans = orphans
        self._missing_target_refs = missing_target_refs
        self._max_depth = max_depth
        self._ancestry = MappingProxyType(
            {target_id: self._walk_ancestry(target_id) for target_id in self._targetables}
        )
        self._children = MappingProxyType(self._index_children())

    @property
    def orphans(self) -> tuple[PolicyRef, ...]:
        return self._orphans

    @property
    def missing_target_refs(self) -> tuple[PolicyRef, ...]:
        return self._missing_target_refs

    def get(self, target_id: TargetId) -> Targetable | None:
        return self._targetables.get(target_id)

    def targetables(self, kind: str | None = None) -> tuple[Targetable, ...]:
        items = [t for t in self._targetables.values() if kind is None or t.kind == kind]
        return tuple(sorted(items, key=stable_order_key))

    def gateways(self) -> tuple[Targetable, ...]:
        return self.targetables(GATEWAY_KIND)

    def routes(self) -> tuple[Targetable, ...]:
        return self.targetables(ROUTE_KIND)

    def policy(self, ref: PolicyRef) -> Policy | None:
        return self._policies.get(ref)

    def policies(self, kind: str | None = None) -> tuple[Policy, ...]:
        items = [p for p in self._policies.values() if kind is None or p.kind == kind]
        return tuple(sorted(items, key=stable_order_key))

    def target_of(self, ref: PolicyRef) -> Targetable | None:
        target_id = self._policy_targets.get(ref)
        if target_id is None:
            return None
        return self._targetables.get(target_id)

    def policies_targeting(self, target_id: TargetId, kind: str | None = None) -> tuple[Policy, ...]:
        refs = self._target_policies.get(target_id, ())
        items = [self._policies[r] for r in refs if kind is None or r.kind == kind]
        return tuple(sorted(items, key=stable_order_key))

    def parents(self, target_id: TargetId) -> tuple[TargetId, ...]:
        return self._parents.get(target_id, ())

    def unresolved_parents(self, target_id: TargetId) -> tuple[ParentRef, ...]:
        return self._unresolved_parents.get(target_id, ())

    def gateway_ancestry(self, target_id: TargetId) -> GatewayAncestry:
        return self._ancestry.get(target_id, GatewayAncestry())

    def child_routes(self, gateway_id: TargetId) -> tuple[TargetId, ...]:
        """Routes whose valid parent chain reaches the gateway, in stable order."""
        return self._children.get(gateway_id, ())

    def _walk_ancestry(self, target_id: TargetId) -> GatewayAncestry:
        if target_id.kind == GATEWAY_KIND:
            return GatewayAncestry(gateways=(target_id,))

        found: set[TargetId] = set()
        cyclic = False
        depth_exceeded = False
        stack = [(target_id, (target_id,))]
        while stack:
            node, path = stack.pop()
            for parent in self.parents(node):
                if parent.kind == GATEWAY_KIND:
                    found.add(parent)
                    continue
                if parent in path:
                    cyclic = True
                    continue
                if len(path) >= self._max_depth:
                    depth_exceeded = True
                    continue
                stack.append((parent, path + (parent,)))
        return GatewayAncestry(
            gateways=tuple(sorted(found)),
            cyclic=cyclic,
            depth_exceeded=depth_exceeded,
        )

    def _index_children(self) -> dict[TargetId, tuple[TargetId, ...]]:
        index: dict[TargetId, list[Targetable]] = {}
        for route in self.routes():
            ancestry = self._ancestry[route.id]
            if not ancestry.valid:
                continue
            for gateway_id in ancestry.gateways:
                index.setdefault(gateway_id, []).append(route)
        return {
            gateway_id: tuple(r.id for r in sorted(routes, key=stable_order_key))
            for gateway_id, routes in index.items()
        }


def build_topology(
    snapshot: Snapshot,
    kinds: Iterable[str] | None = None,
    max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
) -> Topology:
    selected_kinds = set(kinds) if kinds is not None else None

    targetables: dict[TargetId, Targetable] = {}
    for obj in tuple(snapshot.gateways) + tuple(snapshot.routes):
        if obj.kind not in TARGETABLE_KINDS:
            continue
        targetables[obj.id] = obj

    parents: dict[TargetId, tuple[TargetId, ...]] = {}
    unresolved_parents: dict[TargetId, tuple[ParentRef, ...]] = {}
    for route in (t for t in targetables.values() if t.kind == ROUTE_KIND):
        resolved: list[TargetId] = []
        unresolved: list[ParentRef] = []
        for parent_ref in route.parent_refs:
            parent_id = parent_ref.resolve(route.key.namespace)
            parent = targetables.get(parent_id)
            if parent is None or (parent.kind == GATEWAY_KIND and not parent.programmed):
                unresolved.append(parent_ref)
                continue
            if parent_id not in resolved:
                resolved.append(parent_id)
        parents[route.id] = tuple(resolved)
        if unresolved:
            unresolved_parents[route.id] = tuple(unresolved)

    policies: dict[PolicyRef, Policy] = {}
    policy_targets: dict[PolicyRef, TargetId] = {}
    target_policies: dict[TargetId, list[PolicyRef]] = {}
    orphans: list[PolicyRef] = []
    missing_target_refs: list[PolicyRef] = []
    for policy in sorted(snapshot.policies, key=stable_order_key):
        if selected_kinds is not None and policy.kind not in selected_kinds:
            continue
        policies[policy.ref] = policy
        target_id = policy.target_id()
        if target_id is None:
            missing_target_refs.append(policy.ref)
            continue
        if target_id not in targetables:
            orphans.append(policy.ref)
            continue
        policy_targets[policy.ref] = target_id
        target_policies.setdefault(target_id, []).append(policy.ref)

    topology = Topology(
        targetables=targetables,
        policies=policies,
        parents=parents,
        unresolved_parents=unresolved_parents,
        policy_targets=policy_targets,
        target_policies={k: tuple(v) for k, v in target_policies.items()},
        orphans=tuple(orphans),
        missing_target_refs=tuple(missing_target_refs),
        max_depth=max_depth,
    )
    log_event(
        "topology",
        (
            f"built gateways={len(topology.gateways())} routes={len(topology.routes())} "
            f"policies={len(policies)} orphans={len(orphans)} "
            f"missing_target_refs={len(missing_target_refs)} "
            f"unresolved_parents={sum(len(v) for v in unresolved_parents.values())}"
        ),
    )
    return topology
