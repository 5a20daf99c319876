"""One resolution pass against a cluster.

Order of effects: back-reference releases, then claims, then status writes.
A lost claim or a version conflict ends the pass before any status is
written and asks for a requeue; the next pass starts from a fresh read.
"""

from __future__ import annotations

from dataclasses import dataclass

from policy_controller.policy_engine.backrefs import claim, release
from policy_controller.policy_engine.cluster import ClusterBackReferences, ClusterClient, read_snapshot
from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.errors import ConflictError
from policy_controller.policy_engine.logger import log_event, utc_iso8601
from policy_controller.policy_engine.model import PolicyRef
from policy_controller.policy_engine.resolve import Resolution, resolve_snapshot
from policy_controller.policy_engine.status_writer import write_policy_status, write_target_status

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class PassResult:
    requeue: bool
    resolution: Resolution | None = None
    releases: int = 0
    claims: int = 0
    policy_writes: int = 0
    target_writes: int = 0
    reason: str = ""


def _apply_back_references(
    client: ClusterClient,
    resolution: Resolution,
    config: EngineConfig,
) -> tuple[int, int, PolicyRef | None]:
    store = ClusterBackReferences(client)
    released = 0
    for kind in sorted(resolution.plans):
        for policy_ref, target_id in resolution.plans[kind].releases:
            if release(store, policy_ref, target_id, config):
                released += 1

    claimed = 0
    for kind in sorted(resolution.plans):
        for policy_ref, target_id in resolution.plans[kind].claims:
            result = claim(store, policy_ref, target_id, config)
            if not result.ok:
                return released, claimed, policy_ref
            claimed += 1
    return released, claimed, None


def run_resolution_pass(client: ClusterClient, config: EngineConfig, now: str | None = None) -> PassResult:
    snapshot = read_snapshot(client, config)
    resolution = resolve_snapshot(snapshot, config)

    try:
        released, claimed, lost = _apply_back_references(client, resolution, config)
    except ConflictError as exc:
        log_event("reconciler", f"requeue reason=backref_conflict error={exc}")
        return PassResult(requeue=True, resolution=resolution, reason="backref_conflict")
    if lost is not None:
        log_event("reconciler", f"requeue reason=claim_lost policy={lost}")
        return PassResult(
            requeue=True,
            resolution=resolution,
            releases=released,
            claims=claimed,
            reason="claim_lost",
        )

    now = now or utc_iso8601()
    policies = {p.ref: p for p in snapshot.policies}
    references_changed = bool(released or claimed)
    policy_writes = 0
    target_writes = 0
    try:
        for policy_ref in sorted(resolution.conditions):
            if write_policy_status(client, policies[policy_ref], resolution.conditions[policy_ref], now):
                policy_writes += 1
        # Targets were rewritten by the claims above; their status waits for a fresh read.
        if not references_changed and resolution.topology is not None:
            for target in resolution.topology.targetables():
                computed = resolution.target_conditions.get(target.id, ())
                if write_target_status(client, target, computed, config, now):
                    target_writes += 1
    except ConflictError as exc:
        log_event("reconciler", f"requeue reason=status_conflict error={exc}")
        return PassResult(
            requeue=True,
            resolution=resolution,
            releases=released,
            claims=claimed,
            policy_writes=policy_writes,
            target_writes=target_writes,
            reason="status_conflict",
        )

    log_event(
        "reconciler",
        (
            f"pass_complete releases={released} claims={claimed} policy_writes={policy_writes} "
            f"target_writes={target_writes} resolution_hash={resolution.resolution_hash}"
        ),
    )
    return PassResult(
        requeue=references_changed,
        resolution=resolution,
        releases=released,
        claims=claimed,
        policy_writes=policy_writes,
        target_writes=target_writes,
        reason="references_changed" if references_changed else "",
    )


def reconcile(
    client: ClusterClient,
    config: EngineConfig,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    now: str | None = None,
) -> PassResult:
    if max_attempts < 1:
        raise ValueError("policy_engine.reconcile.invalid max_attempts")

    result = None
    for attempt in range(1, max_attempts + 1):
        result = run_resolution_pass(client, config, now=now)
        if not result.requeue:
            return result
        log_event("reconciler", f"attempt={attempt} requeue reason={result.reason}")
    log_event("reconciler", f"attempts_exhausted max_attempts={max_attempts} reason={result.reason}")
    return result
