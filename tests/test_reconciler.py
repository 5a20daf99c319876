from policy_controller.policy_engine.cluster import InMemoryCluster
from policy_controller.policy_engine.config import EngineConfig
from policy_controller.policy_engine.errors import ConflictError
from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    ROUTE_KIND,
    HealthStatus,
    ObjectKey,
    ParentRef,
    Policy,
    PolicyRef,
    TargetId,
    TargetRef,
    Targetable,
)
from policy_controller.reconciler import reconcile, run_resolution_pass

NOW = "2024-02-01T00:00:00Z"
KEY = "kuadrant.io/ratelimitpolicy"
ROUTE_ID = TargetId(ROUTE_KIND, ObjectKey("default", "r1"))
CONFIG = EngineConfig(policy_kinds=("RateLimitPolicy",))


def _ref(name):
    return PolicyRef("RateLimitPolicy", ObjectKey("default", name))


def _cluster():
    return InMemoryCluster(
        targetables=[
            Targetable(kind=GATEWAY_KIND, key=ObjectKey("default", "gw")),
            Targetable(kind=ROUTE_KIND, key=ObjectKey("default", "r1"), parent_refs=(ParentRef(name="gw"),)),
        ],
        policies=[
            Policy(
                kind="RateLimitPolicy",
                key=ObjectKey("default", "p1"),
                target_ref=TargetRef(kind=ROUTE_KIND, name="r1"),
                creation_timestamp="2024-01-02T00:00:00Z",
            ),
            Policy(
                kind="RateLimitPolicy",
                key=ObjectKey("default", "p2"),
                target_ref=TargetRef(kind=ROUTE_KIND, name="r1"),
                creation_timestamp="2024-01-03T00:00:00Z",
            ),
        ],
        health={"RateLimitPolicy": HealthStatus(ready=True)},
    )


def _accepted(cluster, name):
    return cluster.policy(_ref(name)).condition("Accepted")


def test_first_pass_claims_and_writes_status(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    cluster = _cluster()

    result = run_resolution_pass(cluster, CONFIG, now=NOW)

    assert result.claims == 1
    assert result.policy_writes == 2
    assert result.requeue
    assert cluster.targetable(ROUTE_ID).annotation(KEY) == "default/p1"
    assert _accepted(cluster, "p1").status == "True"
    assert _accepted(cluster, "p2").reason == "Conflict"


def test_second_pass_is_quiet_and_writes_target_status(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    cluster = _cluster()
    run_resolution_pass(cluster, CONFIG, now=NOW)

    result = run_resolution_pass(cluster, CONFIG, now=NOW)

    assert not result.requeue
    assert result.claims == 0
    assert result.policy_writes == 0
    assert result.target_writes == 1
    (affected,) = cluster.targetable(ROUTE_ID).conditions
    assert affected.type == "kuadrant.io/RateLimitPolicyAffected"
    assert affected.status == "True"


def test_deleted_owner_hands_target_to_waiting_policy(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    cluster = _cluster()
    reconcile(cluster, CONFIG, now=NOW)
    assert _accepted(cluster, "p2").reason == "Conflict"

    cluster.delete_policy(_ref("p1"))
    result = run_resolution_pass(cluster, CONFIG, now=NOW)

    assert result.releases == 1
    assert result.claims == 1
    assert cluster.targetable(ROUTE_ID).annotation(KEY) == "default/p2"
    assert _accepted(cluster, "p2").status == "True"


def test_deletion_pending_owner_releases_before_removal(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    cluster = _cluster()
    reconcile(cluster, CONFIG, now=NOW)

    cluster.mark_deleting(_ref("p1"))
    result = reconcile(cluster, CONFIG, now=NOW)

    assert not result.requeue
    assert cluster.targetable(ROUTE_ID).annotation(KEY) == "default/p2"
    assert _accepted(cluster, "p2").status == "True"


def test_back_reference_conflict_requeues_without_status_writes(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    cluster = _cluster()
    cluster.fail_next("set_back_reference", ConflictError("resource version changed"))

    result = run_resolution_pass(cluster, CONFIG, now=NOW)

    assert result.requeue
    assert result.reason == "backref_conflict"
    assert not any(w.startswith("update_") for w in cluster.writes)
    assert _accepted(cluster, "p1") is None


def test_reconcile_settles_within_attempts(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    cluster = _cluster()
    cluster.fail_next("set_back_reference", ConflictError("resource version changed"))

    result = reconcile(cluster, CONFIG, max_attempts=3, now=NOW)

    assert not result.requeue
    assert cluster.targetable(ROUTE_ID).annotation(KEY) == "default/p1"
    assert "[reconciler] requeue reason=backref_conflict" in (tmp_path / "policy-engine.log").read_text(
        encoding="utf-8"
    )
