"""Cluster access used by the reconciler.

Every write carries the resource version the caller read; a stale version
raises ``ConflictError`` and the caller re-reads on the next pass.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Protocol

from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.errors import ClusterClientError, ConflictError
from policy_controller.policy_engine.logger import log_event
from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    ROUTE_KIND,
    Condition,
    HealthStatus,
    ObjectKey,
    Policy,
    PolicyRef,
    Snapshot,
    TargetId,
    Targetable,
)


class ClusterClient(Protocol):
    def list_targetables(self, kind: str) -> list[Targetable]: ...

    def list_policies(self, kind: str) -> list[Policy]: ...

    def get_back_reference(self, target_id: TargetId, key: str) -> tuple[ObjectKey | None, int]: ...

    def set_back_reference(self, target_id: TargetId, key: str, owner: ObjectKey, version: int) -> None: ...

    def clear_back_reference(self, target_id: TargetId, key: str, version: int) -> None: ...

    def update_policy_status(
        self,
        policy_ref: PolicyRef,
        conditions: tuple[Condition, ...],
        observed_generation: int,
        version: int,
    ) -> None: ...

    def update_target_status(
        self,
        target_id: TargetId,
        conditions: tuple[Condition, ...],
        version: int,
    ) -> None: ...

    def subresource_health(self, kind: str, namespace: str) -> HealthStatus | None: ...


class InMemoryCluster:
    """Versioned in-process cluster state.

    Every successful write bumps the object's resource version. ``fail_next``
    queues an exception for the next call of a named operation.
    """

    def __init__(
        self,
        targetables: Iterable[Targetable] = (),
        policies: Iterable[Policy] = (),
        health: dict[str, HealthStatus] | None = None,
    ):
        self._targetables: dict[TargetId, Targetable] = {}
        self._policies: dict[PolicyRef, Policy] = {}
        self._health: dict[str, HealthStatus] = dict(health or {})
        self._failures: dict[str, list[Exception]] = {}
        self.writes: list[str] = []
        for target in targetables:
            self.apply_targetable(target)
        for policy in policies:
            self.apply_policy(policy)

    def apply_targetable(self, target: Targetable) -> Targetable:
        current = self._targetables.get(target.id)
        version = current.resource_version + 1 if current is not None else 1
        stored = replace(target, resource_version=version)
        self._targetables[target.id] = stored
        return stored

    def apply_policy(self, policy: Policy) -> Policy:
        current = self._policies.get(policy.ref)
        version = current.resource_version + 1 if current is not None else 1
        stored = replace(policy, resource_version=version)
        self._policies[policy.ref] = stored
        return stored

    def mark_deleting(self, policy_ref: PolicyRef) -> None:
        policy = self._require_policy(policy_ref)
        self._policies[policy_ref] = replace(
            policy,
            deletion_pending=True,
            resource_version=policy.resource_version + 1,
        )

    def delete_policy(self, policy_ref: PolicyRef) -> None:
        self._policies.pop(policy_ref, None)

    def set_health(self, kind: str, health: HealthStatus | None) -> None:
        if health is None:
            self._health.pop(kind, None)
            return
        self._health[kind] = health

    def fail_next(self, operation: str, exc: Exception) -> None:
        self._failures.setdefault(operation, []).append(exc)

    def targetable(self, target_id: TargetId) -> Targetable | None:
        return self._targetables.get(target_id)

    def policy(self, policy_ref: PolicyRef) -> Policy | None:
        return self._policies.get(policy_ref)

    def list_targetables(self, kind: str) -> list[Targetable]:
        self._maybe_fail("list_targetables")
        return sorted(
            (t for t in self._targetables.values() if t.kind == kind),
            key=lambda t: t.key,
        )

    def list_policies(self, kind: str) -> list[Policy]:
        self._maybe_fail("list_policies")
        return sorted(
            (p for p in self._policies.values() if p.kind == kind),
            key=lambda p: p.key,
        )

    def get_back_reference(self, target_id: TargetId, key: str) -> tuple[ObjectKey | None, int]:
        self._maybe_fail("get_back_reference")
        target = self._require_targetable(target_id)
        value = target.annotation(key)
        owner = ObjectKey.parse(value, target.key.namespace) if value else None
        return owner, target.resource_version

    def set_back_reference(self, target_id: TargetId, key: str, owner: ObjectKey, version: int) -> None:
        self._maybe_fail("set_back_reference")
        target = self._require_current_target(target_id, version)
        annotations = dict(target.annotations)
        annotations[key] = str(owner)
        self._store_target(target.with_annotations(annotations))
        self.writes.append(f"set_back_reference {target_id} {key}={owner}")

    def clear_back_reference(self, target_id: TargetId, key: str, version: int) -> None:
        self._maybe_fail("clear_back_reference")
        target = self._require_current_target(target_id, version)
        annotations = dict(target.annotations)
        annotations.pop(key, None)
        self._store_target(target.with_annotations(annotations))
        self.writes.append(f"clear_back_reference {target_id} {key}")

    def update_policy_status(
        self,
        policy_ref: PolicyRef,
        conditions: tuple[Condition, ...],
        observed_generation: int,
        version: int,
    ) -> None:
        self._maybe_fail("update_policy_status")
        policy = self._require_policy(policy_ref)
        if policy.resource_version != version:
            raise ConflictError(
                f"policy {policy_ref} version conflict: have={policy.resource_version} want={version}"
            )
        self._policies[policy_ref] = replace(
            policy,
            conditions=tuple(conditions),
            observed_generation=observed_generation,
            resource_version=policy.resource_version + 1,
        )
        self.writes.append(f"update_policy_status {policy_ref}")

    def update_target_status(
        self,
        target_id: TargetId,
        conditions: tuple[Condition, ...],
        version: int,
    ) -> None:
        self._maybe_fail("update_target_status")
        target = self._require_current_target(target_id, version)
        self._store_target(replace(target, conditions=tuple(conditions)))
        self.writes.append(f"update_target_status {target_id}")

    def subresource_health(self, kind: str, namespace: str) -> HealthStatus | None:
        self._maybe_fail("subresource_health")
        return self._health.get(kind)

    def _maybe_fail(self, operation: str) -> None:
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def _require_targetable(self, target_id: TargetId) -> Targetable:
        target = self._targetables.get(target_id)
        if target is None:
            raise ClusterClientError(f"targetable {target_id} not found")
        return target

    def _require_current_target(self, target_id: TargetId, version: int) -> Targetable:
        target = self._require_targetable(target_id)
        if target.resource_version != version:
            raise ConflictError(
                f"targetable {target_id} version conflict: have={target.resource_version} want={version}"
            )
        return target

    def _require_policy(self, policy_ref: PolicyRef) -> Policy:
        policy = self._policies.get(policy_ref)
        if policy is None:
            raise ClusterClientError(f"policy {policy_ref} not found")
        return policy

    def _store_target(self, target: Targetable) -> None:
        self._targetables[target.id] = replace(target, resource_version=target.resource_version + 1)


class ClusterBackReferences:
    """``BackReferenceStore`` over a cluster client.

    Each write uses the version observed by the preceding ``get`` of the same
    back-reference, so claim and release stay compare-and-set.
    """

    def __init__(self, client: ClusterClient):
        self._client = client
        self._versions: dict[tuple[TargetId, str], int] = {}

    def get(self, target_id: TargetId, key: str) -> ObjectKey | None:
        owner, version = self._client.get_back_reference(target_id, key)
        self._versions[(target_id, key)] = version
        return owner

    def set(self, target_id: TargetId, key: str, owner: ObjectKey) -> None:
        version = self._version(target_id, key)
        self._client.set_back_reference(target_id, key, owner, version)

    def clear(self, target_id: TargetId, key: str) -> None:
        version = self._version(target_id, key)
        self._client.clear_back_reference(target_id, key, version)

    def _version(self, target_id: TargetId, key: str) -> int:
        version = self._versions.pop((target_id, key), None)
        if version is None:
            raise ClusterClientError(f"back-reference {target_id} {key} written without a prior read")
        return version


def read_snapshot(client: ClusterClient, config: EngineConfig) -> Snapshot:
    gateways = tuple(client.list_targetables(GATEWAY_KIND))
    routes = tuple(client.list_targetables(ROUTE_KIND))

    policies: list[Policy] = []
    health: dict[str, HealthStatus] = {}
    for kind in config.policy_kinds:
        policies.extend(client.list_policies(kind))
        try:
            status = client.subresource_health(kind, config.namespace)
        except ClusterClientError as exc:
            log_event("cluster", f"health_read_failed kind={kind} namespace={config.namespace} error={exc}")
            status = HealthStatus(ready=False, error=str(exc))
        if status is not None:
            health[kind] = status

    log_event(
        "cluster",
        f"snapshot gateways={len(gateways)} routes={len(routes)} policies={len(policies)} health={len(health)}",
    )
    return Snapshot(gateways=gateways, routes=routes, policies=tuple(policies), health=health)
