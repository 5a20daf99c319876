import json
import os

from policy_controller.policy_engine.canonical_hash import canon_json_bytes_v1
from policy_controller.policy_engine.logger import log_event


def _summary(resolution):
    return {
        "resolution_hash": resolution.resolution_hash,
        "policies": len(resolution.conditions),
        "accepted": [str(ref) for ref in resolution.accepted()],
        "rejected": {
            str(ref): resolution.conditions[ref].accepted.reason for ref in resolution.rejected()
        },
    }


def resolution_report(resolution, config_hash=""):
    payload = _summary(resolution)
    payload["config_hash"] = config_hash
    return "POLICY_RESOLUTION_REPORT " + json.dumps(payload, sort_keys=True)


def write_resolution_artifact(resolution, config_hash="", root="artifacts/policy-engine"):
    os.makedirs(root, exist_ok=True)
    payload = _summary(resolution)
    payload["config_hash"] = config_hash
    payload["conditions"] = {
        str(ref): [c.to_dict() for c in resolution.conditions[ref].as_tuple()]
        for ref in sorted(resolution.conditions)
    }
    payload["effective"] = {
        f"{target_id}#{kind}": [str(key) for key in effective.policies]
        for (target_id, kind), effective in sorted(resolution.effective.items())
        if effective.policies
    }
    payload["back_references"] = {
        kind: {str(target_id): str(owner) for target_id, owner in sorted(plan.owners.items())}
        for kind, plan in sorted(resolution.plans.items())
    }
    path = os.path.join(root, f"resolution-{resolution.resolution_hash[:16]}.json")
    with open(path, "wb") as f:
        f.write(canon_json_bytes_v1(payload))
        f.write(b"\n")
    rejected = len(payload["rejected"])
    log_event(
        "artifact",
        f"wrote resolution-{resolution.resolution_hash[:16]}.json policies={payload['policies']} rejected={rejected}",
    )
    return path
