"""Immutable value types shared by every engine component.

Nothing here performs I/O. Objects are read from a snapshot and never
mutated; changes are expressed as new values.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal, Mapping, Protocol

GATEWAY_KIND = "Gateway"
ROUTE_KIND = "HTTPRoute"
GATEWAY_API_GROUP = "gateway.networking.k8s.io"

TARGETABLE_KINDS = (GATEWAY_KIND, ROUTE_KIND)

CONDITION_ACCEPTED = "Accepted"
CONDITION_ENFORCED = "Enforced"

ConditionStatus = Literal["True", "False", "Unknown"]


@dataclass(frozen=True, order=True)
class ObjectKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str, default_namespace: str = "default") -> "ObjectKey":
        value = (value or "").strip()
        if "/" in value:
            namespace, name = value.split("/", 1)
            return cls(namespace=namespace or default_namespace, name=name)
        return cls(namespace=default_namespace, name=value)


@dataclass(frozen=True, order=True)
class TargetId:
    kind: str
    key: ObjectKey

    def __str__(self) -> str:
        return f"{self.kind}/{self.key}"


@dataclass(frozen=True, order=True)
class PolicyRef:
    kind: str
    key: ObjectKey

    def __str__(self) -> str:
        return f"{self.kind}/{self.key}"


@dataclass(frozen=True)
class ParentRef:
    name: str
    kind: str = GATEWAY_KIND
    namespace: str | None = None

    def resolve(self, default_namespace: str) -> TargetId:
        return TargetId(self.kind, ObjectKey(self.namespace or default_namespace, self.name))


@dataclass(frozen=True)
class TargetRef:
    kind: str
    name: str
    namespace: str | None = None
    group: str = GATEWAY_API_GROUP

    def resolve(self, default_namespace: str) -> TargetId:
        return TargetId(self.kind, ObjectKey(self.namespace or default_namespace, self.name))


@dataclass(frozen=True)
class Condition:
    type: str
    status: ConditionStatus
    reason: str
    message: str
    observed_generation: int = 0
    last_transition_time: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "observedGeneration": self.observed_generation,
            "lastTransitionTime": self.last_transition_time,
        }


@dataclass(frozen=True)
class PolicyConditions:
    accepted: Condition
    enforced: Condition | None = None

    def __post_init__(self) -> None:
        if self.accepted.type != CONDITION_ACCEPTED:
            raise ValueError("policy_engine.conditions.invalid accepted_type")
        if self.enforced is not None:
            if self.enforced.type != CONDITION_ENFORCED:
                raise ValueError("policy_engine.conditions.invalid enforced_type")
            if self.accepted.status != "True":
                raise ValueError("policy_engine.conditions.invalid enforced_without_accepted")

    def as_tuple(self) -> tuple[Condition, ...]:
        if self.enforced is None:
            return (self.accepted,)
        return (self.accepted, self.enforced)


@dataclass(frozen=True)
class Targetable:
    kind: str
    key: ObjectKey
    generation: int = 1
    creation_timestamp: str = ""
    parent_refs: tuple[ParentRef, ...] = ()
    hostnames: tuple[str, ...] = ()
    annotations: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)
    programmed: bool = True
    resource_version: int = 0
    conditions: tuple[Condition, ...] = field(default=(), compare=False)

    @property
    def id(self) -> TargetId:
        return TargetId(self.kind, self.key)

    def annotation(self, key: str) -> str | None:
        return self.annotations.get(key)

    def with_annotations(self, annotations: Mapping[str, str]) -> "Targetable":
        return replace(self, annotations=dict(annotations))


class PolicyLike(Protocol):
    """Capability set every policy kind exposes to the engine."""

    kind: str
    key: ObjectKey
    creation_timestamp: str

    def get_target_ref(self) -> TargetRef | None: ...

    def get_conditions(self) -> tuple[Condition, ...]: ...

    def is_override(self) -> bool: ...


@dataclass(frozen=True)
class Policy:
    kind: str
    key: ObjectKey
    target_ref: TargetRef | None
    generation: int = 1
    creation_timestamp: str = ""
    defaults: Mapping[str, Any] | None = field(default=None, compare=False, hash=False)
    overrides: Mapping[str, Any] | None = field(default=None, compare=False, hash=False)
    rules: Mapping[str, Any] | None = field(default=None, compare=False, hash=False)
    hostnames: tuple[str, ...] = ()
    deletion_pending: bool = False
    conditions: tuple[Condition, ...] = ()
    observed_generation: int = 0
    resource_version: int = 0

    @property
    def ref(self) -> PolicyRef:
        return PolicyRef(self.kind, self.key)

    def get_target_ref(self) -> TargetRef | None:
        return self.target_ref

    def get_conditions(self) -> tuple[Condition, ...]:
        return self.conditions

    def is_override(self) -> bool:
        return self.overrides is not None

    def target_id(self) -> TargetId | None:
        if self.target_ref is None or not self.target_ref.name:
            return None
        return self.target_ref.resolve(self.key.namespace)

    def condition(self, condition_type: str) -> Condition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


@dataclass(frozen=True)
class HealthStatus:
    ready: bool
    reason: str = ""
    error: str | None = None


@dataclass(frozen=True)
class Snapshot:
    gateways: tuple[Targetable, ...] = ()
    routes: tuple[Targetable, ...] = ()
    policies: tuple[Policy, ...] = ()
    health: Mapping[str, HealthStatus] = field(default_factory=dict, compare=False, hash=False)


def stable_order_key(obj: Targetable | PolicyLike) -> tuple[str, str]:
    return (obj.creation_timestamp, str(obj.key))
