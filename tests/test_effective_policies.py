from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    ROUTE_KIND,
    HealthStatus,
    ObjectKey,
    ParentRef,
    Policy,
    Snapshot,
    TargetId,
    TargetRef,
    Targetable,
)
from policy_controller.policy_engine.resolve import resolve_snapshot

RLP = "RateLimitPolicy"


def _gw(name):
    return Targetable(kind=GATEWAY_KIND, key=ObjectKey("default", name), creation_timestamp="2024-01-01T00:00:00Z")


def _route(name, parents):
    return Targetable(
        kind=ROUTE_KIND,
        key=ObjectKey("default", name),
        creation_timestamp="2024-01-01T00:00:00Z",
        parent_refs=tuple(ParentRef(name=p) for p in parents),
    )


def _policy(name, target_kind, target_name, ts="2024-01-02T00:00:00Z", **kwargs):
    return Policy(
        kind=RLP,
        key=ObjectKey("default", name),
        target_ref=TargetRef(kind=target_kind, name=target_name),
        creation_timestamp=ts,
        **kwargs,
    )


def _effective(resolution, kind, name):
    return resolution.effective[(TargetId(kind, ObjectKey("default", name)), RLP)]


def _names(keys):
    return [k.name for k in keys]


def _resolve(gateways, routes, policies):
    snapshot = Snapshot(
        gateways=tuple(gateways),
        routes=tuple(routes),
        policies=tuple(policies),
        health={RLP: HealthStatus(ready=True)},
    )
    return resolve_snapshot(snapshot)


def test_free_route_inherits_gateway_defaults():
    resolution = _resolve(
        [_gw("gw")],
        [_route("r1", ["gw"]), _route("r2", ["gw"])],
        [
            _policy("gw-defaults", GATEWAY_KIND, "gw", defaults={"limits": {}}),
            _policy("r1-own", ROUTE_KIND, "r1", ts="2024-01-03T00:00:00Z"),
        ],
    )

    assert _names(_effective(resolution, ROUTE_KIND, "r1").policies) == ["r1-own"]
    assert _names(_effective(resolution, ROUTE_KIND, "r2").policies) == ["gw-defaults"]
    gateway = _effective(resolution, GATEWAY_KIND, "gw")
    assert [t.key.name for t in gateway.free_routes] == ["r2"]


def test_full_override_supersedes_route_policy():
    resolution = _resolve(
        [_gw("gw")],
        [_route("r1", ["gw"])],
        [
            _policy("gw-overrides", GATEWAY_KIND, "gw", overrides={"limits": {}}),
            _policy("r1-own", ROUTE_KIND, "r1", ts="2024-01-03T00:00:00Z"),
        ],
    )
    effective = _effective(resolution, ROUTE_KIND, "r1")

    assert _names(effective.policies) == ["gw-overrides"]
    assert _names(effective.superseded) == ["r1-own"]


def test_partial_override_keeps_route_policy_for_other_parent():
    resolution = _resolve(
        [_gw("gw-a"), _gw("gw-b")],
        [_route("r1", ["gw-a", "gw-b"])],
        [
            _policy("a-overrides", GATEWAY_KIND, "gw-a", overrides={"limits": {}}),
            _policy("r1-own", ROUTE_KIND, "r1", ts="2024-01-03T00:00:00Z"),
        ],
    )
    effective = _effective(resolution, ROUTE_KIND, "r1")

    assert _names(effective.policies) == ["a-overrides", "r1-own"]
    assert effective.superseded == ()
    assert [g.key.name for g in effective.overriding_parents] == ["gw-a"]


def test_defaults_from_every_parent_apply_in_creation_order():
    resolution = _resolve(
        [_gw("gw-a"), _gw("gw-b")],
        [_route("r1", ["gw-a", "gw-b"])],
        [
            _policy("b-defaults", GATEWAY_KIND, "gw-b", ts="2024-01-02T00:00:00Z"),
            _policy("a-defaults", GATEWAY_KIND, "gw-a", ts="2024-01-03T00:00:00Z"),
        ],
    )

    assert _names(_effective(resolution, ROUTE_KIND, "r1").policies) == ["b-defaults", "a-defaults"]


def test_rejected_route_policy_leaves_route_free():
    resolution = _resolve(
        [_gw("gw")],
        [_route("r1", ["gw"])],
        [
            _policy("gw-defaults", GATEWAY_KIND, "gw"),
            _policy("broken", ROUTE_KIND, "r1", ts="2024-01-03T00:00:00Z", defaults={}, rules={}),
        ],
    )

    assert _names(_effective(resolution, ROUTE_KIND, "r1").policies) == ["gw-defaults"]
    gateway_policy = [c for ref, c in resolution.conditions.items() if ref.key.name == "gw-defaults"][0]
    assert gateway_policy.enforced.status == "True"
