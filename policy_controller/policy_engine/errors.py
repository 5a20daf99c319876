"""Policy error values and collaborator exceptions.

``PolicyError`` subclasses describe why a policy is not accepted or not
enforced. They carry the condition reason and render the condition message;
the engine turns them into status conditions and never raises them out of a
resolution pass.

The remaining exception classes are raised to the caller.
"""

from __future__ import annotations

from typing import Sequence

REASON_ACCEPTED = "Accepted"
REASON_TARGET_NOT_FOUND = "TargetNotFound"
REASON_INVALID = "Invalid"
REASON_CONFLICT = "Conflict"
REASON_ENFORCED = "Enforced"
REASON_OVERRIDDEN = "Overridden"
REASON_UNKNOWN = "Unknown"


class PolicyError(Exception):
    reason = REASON_UNKNOWN

    def __init__(self, kind: str, detail: str):
        self.kind = kind
        self.detail = detail
        super().__init__(self.message())

    def message(self) -> str:
        return f"{self.kind} has encountered some issues: {self.detail}"


class TargetNotFoundError(PolicyError):
    reason = REASON_TARGET_NOT_FOUND

    def __init__(self, kind: str, target_name: str):
        self.target_name = target_name
        super().__init__(kind, target_name)

    def message(self) -> str:
        return f"{self.kind} target {self.target_name} was not found"


class InvalidPolicyError(PolicyError):
    reason = REASON_INVALID

    def message(self) -> str:
        return f"{self.kind} target is invalid: {self.detail}"


class ConflictPolicyError(PolicyError):
    reason = REASON_CONFLICT

    def __init__(self, kind: str, owner: str, detail: str):
        self.owner = owner
        super().__init__(kind, detail)

    def message(self) -> str:
        return f"{self.kind} is conflicted by {self.owner}: {self.detail}"


class OverriddenPolicyError(PolicyError):
    reason = REASON_OVERRIDDEN

    def __init__(self, kind: str, overriding: Sequence[str]):
        self.overriding = tuple(overriding)
        super().__init__(kind, ", ".join(self.overriding))

    def message(self) -> str:
        return f"{self.kind} is overridden by [{', '.join(self.overriding)}]"


class UnknownPolicyError(PolicyError):
    reason = REASON_UNKNOWN


class UnknownPolicyKind(ValueError):
    pass


class ClusterClientError(Exception):
    pass


class ConflictError(ClusterClientError):
    """Optimistic-concurrency write conflict; re-read and retry."""


class StatusWriteError(ClusterClientError):
    pass


class ConfigLoadError(Exception):
    pass


class SnapshotLoadError(Exception):
    pass
