"""Direct back-references from a target to the policy claiming it.

``claim`` and ``release`` are the only operations that mutate a
back-reference. They run against any ``BackReferenceStore``: the in-process
``LocalBackReferences`` used to plan a pass, or the cluster-backed store used
to apply the plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol

from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.kinds import back_reference_key
from policy_controller.policy_engine.logger import log_event
from policy_controller.policy_engine.model import ObjectKey, PolicyRef, TargetId


class BackReferenceStore(Protocol):
    def get(self, target_id: TargetId, key: str) -> ObjectKey | None: ...

    def set(self, target_id: TargetId, key: str, owner: ObjectKey) -> None: ...

    def clear(self, target_id: TargetId, key: str) -> None: ...


@dataclass(frozen=True)
class ClaimResult:
    ok: bool
    conflicting: PolicyRef | None = None


@dataclass(frozen=True)
class BackReferencePlan:
    kind: str
    owners: Mapping[TargetId, ObjectKey]
    claims: tuple[tuple[PolicyRef, TargetId], ...] = ()
    releases: tuple[tuple[PolicyRef, TargetId], ...] = ()
    eligible: frozenset[PolicyRef] = frozenset()

    def owner_of(self, target_id: TargetId) -> ObjectKey | None:
        return self.owners.get(target_id)

    def governing_owner(self, target_id: TargetId) -> ObjectKey | None:
        """The owner, unless it holds the reference while failing validation."""
        owner = self.owners.get(target_id)
        if owner is None or PolicyRef(self.kind, owner) not in self.eligible:
            return None
        return owner

    def owns(self, policy_ref: PolicyRef, target_id: TargetId) -> bool:
        return policy_ref.kind == self.kind and self.owners.get(target_id) == policy_ref.key


class LocalBackReferences:
    """Dict-backed store seeded from target annotations."""

    def __init__(self, initial: Mapping[tuple[TargetId, str], ObjectKey] | None = None):
        self._refs: dict[tuple[TargetId, str], ObjectKey] = dict(initial or {})

    def get(self, target_id: TargetId, key: str) -> ObjectKey | None:
        return self._refs.get((target_id, key))

    def set(self, target_id: TargetId, key: str, owner: ObjectKey) -> None:
        self._refs[(target_id, key)] = owner

    def clear(self, target_id: TargetId, key: str) -> None:
        self._refs.pop((target_id, key), None)

    def items(self) -> list[tuple[tuple[TargetId, str], ObjectKey]]:
        return sorted(self._refs.items())


def claim(
    store: BackReferenceStore,
    policy_ref: PolicyRef,
    target_id: TargetId,
    config: EngineConfig,
) -> ClaimResult:
    key = back_reference_key(policy_ref.kind, config.annotation_domain)
    current = store.get(target_id, key)
    if current is None:
        store.set(target_id, key, policy_ref.key)
        log_event("backrefs", f"claimed target={target_id} policy={policy_ref}")
        return ClaimResult(ok=True)
    if current == policy_ref.key:
        return ClaimResult(ok=True)
    log_event("backrefs", f"claim_conflict target={target_id} policy={policy_ref} owner={current}")
    return ClaimResult(ok=False, conflicting=PolicyRef(policy_ref.kind, current))


def release(
    store: BackReferenceStore,
    policy_ref: PolicyRef,
    target_id: TargetId,
    config: EngineConfig,
) -> bool:
    key = back_reference_key(policy_ref.kind, config.annotation_domain)
    current = store.get(target_id, key)
    if current is None or current != policy_ref.key:
        return False
    store.clear(target_id, key)
    log_event("backrefs", f"released target={target_id} policy={policy_ref}")
    return True


def plan_back_references(
    topology,
    kind: str,
    eligible: Iterable[PolicyRef],
    config: EngineConfig,
) -> BackReferencePlan:
    """Simulate one pass of releases and claims for a policy kind.

    A stored reference is released only when its owner is gone, pending
    deletion or retargeted. An owner that fails validation keeps its target;
    it just does not govern it. Eligible policies then claim their targets in
    stable order, so an existing owner keeps its target and later claimants
    observe it.
    """

    key = back_reference_key(kind, config.annotation_domain)
    eligible_refs = set(eligible)

    seed: dict[tuple[TargetId, str], ObjectKey] = {}
    for target in topology.targetables():
        value = target.annotation(key)
        if value:
            seed[(target.id, key)] = ObjectKey.parse(value, target.key.namespace)
    store = LocalBackReferences(seed)

    releases: list[tuple[PolicyRef, TargetId]] = []
    for (target_id, _), owner in store.items():
        owner_ref = PolicyRef(kind, owner)
        owner_policy = topology.policy(owner_ref)
        stale = (
            owner_policy is None
            or owner_policy.deletion_pending
            or owner_policy.target_id() != target_id
        )
        if stale and release(store, owner_ref, target_id, config):
            releases.append((owner_ref, target_id))

    claims: list[tuple[PolicyRef, TargetId]] = []
    for policy in topology.policies(kind):
        if policy.ref not in eligible_refs:
            continue
        target_id = policy.target_id()
        if target_id is None:
            continue
        already_owned = store.get(target_id, key) == policy.key
        result = claim(store, policy.ref, target_id, config)
        if result.ok and not already_owned:
            claims.append((policy.ref, target_id))

    owners = {target_id: owner for (target_id, _), owner in store.items()}
    return BackReferencePlan(
        kind=kind,
        owners=owners,
        claims=tuple(claims),
        releases=tuple(releases),
        eligible=frozenset(eligible_refs),
    )
