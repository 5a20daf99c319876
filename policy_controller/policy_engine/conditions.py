from __future__ import annotations

from policy_controller.policy_engine.errors import (
    REASON_ACCEPTED,
    REASON_ENFORCED,
    PolicyError,
)
from policy_controller.policy_engine.model import (
    CONDITION_ACCEPTED,
    CONDITION_ENFORCED,
    Condition,
)


def accepted_condition(kind: str, err: PolicyError | None, generation: int = 0) -> Condition:
    if err is None:
        return Condition(
            type=CONDITION_ACCEPTED,
            status="True",
            reason=REASON_ACCEPTED,
            message=f"{kind} has been accepted",
            observed_generation=generation,
        )
    return Condition(
        type=CONDITION_ACCEPTED,
        status="False",
        reason=err.reason,
        message=err.message(),
        observed_generation=generation,
    )


def enforced_condition(
    kind: str,
    err: PolicyError | None,
    fully: bool = True,
    generation: int = 0,
) -> Condition:
    if err is None:
        message = f"{kind} has been successfully enforced"
        if not fully:
            message = f"{kind} has been partially enforced"
        return Condition(
            type=CONDITION_ENFORCED,
            status="True",
            reason=REASON_ENFORCED,
            message=message,
            observed_generation=generation,
        )
    return Condition(
        type=CONDITION_ENFORCED,
        status="False",
        reason=err.reason,
        message=err.message(),
        observed_generation=generation,
    )
