from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.errors import ConflictError, StatusWriteError
from policy_controller.policy_engine.kinds import affected_condition_type
from policy_controller.policy_engine.logger import log_event, utc_iso8601
from policy_controller.policy_engine.model import (
    CONDITION_ACCEPTED,
    CONDITION_ENFORCED,
    Condition,
    Policy,
    PolicyConditions,
    Targetable,
)

POLICY_CONDITION_TYPES = frozenset({CONDITION_ACCEPTED, CONDITION_ENFORCED})


def merge_managed_conditions(
    existing: Iterable[Condition],
    computed: Iterable[Condition],
    managed_types: Iterable[str],
    now: str,
) -> tuple[Condition, ...]:
    """Replace the managed condition types, keep everything else.

    A managed type missing from ``computed`` is removed. ``lastTransitionTime``
    only moves when the status value changes.
    """

    managed = set(managed_types)
    existing = tuple(existing)
    previous = {c.type: c for c in existing}

    merged = [c for c in existing if c.type not in managed]
    for condition in computed:
        prior = previous.get(condition.type)
        if prior is not None and prior.status == condition.status and prior.last_transition_time:
            transition = prior.last_transition_time
        else:
            transition = now
        merged.append(replace(condition, last_transition_time=transition))
    return tuple(sorted(merged, key=lambda c: c.type))


def merge_conditions(existing: Iterable[Condition], computed: PolicyConditions, now: str) -> tuple[Condition, ...]:
    return merge_managed_conditions(existing, computed.as_tuple(), POLICY_CONDITION_TYPES, now)


def _same_conditions(left: Iterable[Condition], right: Iterable[Condition]) -> bool:
    def _key(conditions):
        return [c.to_dict() for c in sorted(conditions, key=lambda c: c.type)]

    return _key(left) == _key(right)


def needs_update(policy: Policy, merged: tuple[Condition, ...]) -> bool:
    if policy.observed_generation != policy.generation:
        return True
    return not _same_conditions(policy.conditions, merged)


def write_policy_status(client, policy: Policy, computed: PolicyConditions, now: str | None = None) -> bool:
    merged = merge_conditions(policy.conditions, computed, now or utc_iso8601())
    if not needs_update(policy, merged):
        return False

    try:
        client.update_policy_status(policy.ref, merged, policy.generation, policy.resource_version)
    except ConflictError:
        log_event("status_writer", f"policy={policy.ref} result=conflict")
        raise
    except Exception as exc:
        log_event("status_writer", f"policy={policy.ref} result=error")
        raise StatusWriteError(f"Status write failed: policy={policy.ref} error={exc}") from exc

    log_event(
        "status_writer",
        (
            f"policy={policy.ref} result=written accepted={computed.accepted.status} "
            f"enforced={computed.enforced.status if computed.enforced else '-'} "
            f"observed_generation={policy.generation}"
        ),
    )
    return True


def write_target_status(
    client,
    target: Targetable,
    computed: tuple[Condition, ...],
    config: EngineConfig,
    now: str | None = None,
) -> bool:
    managed = {affected_condition_type(kind, config.annotation_domain) for kind in config.policy_kinds}
    merged = merge_managed_conditions(target.conditions, computed, managed, now or utc_iso8601())
    if _same_conditions(target.conditions, merged):
        return False

    try:
        client.update_target_status(target.id, merged, target.resource_version)
    except ConflictError:
        log_event("status_writer", f"target={target.id} result=conflict")
        raise
    except Exception as exc:
        log_event("status_writer", f"target={target.id} result=error")
        raise StatusWriteError(f"Status write failed: target={target.id} error={exc}") from exc

    log_event("status_writer", f"target={target.id} result=written conditions={len(computed)}")
    return True
