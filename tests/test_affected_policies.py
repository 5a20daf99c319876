from policy_controller.policy_engine.mapper import affected_policies
from policy_controller.policy_engine.model import (
    GATEWAY_KIND,
    ROUTE_KIND,
    ObjectKey,
    ParentRef,
    Policy,
    PolicyRef,
    Snapshot,
    TargetId,
    TargetRef,
    Targetable,
)
from policy_controller.policy_engine.topology import build_topology


def _topology():
    gateways = (
        Targetable(kind=GATEWAY_KIND, key=ObjectKey("default", "gw")),
        Targetable(kind=GATEWAY_KIND, key=ObjectKey("default", "other-gw")),
    )
    routes = (
        Targetable(kind=ROUTE_KIND, key=ObjectKey("default", "r1"), parent_refs=(ParentRef(name="gw"),)),
        Targetable(kind=ROUTE_KIND, key=ObjectKey("default", "r2"), parent_refs=(ParentRef(name="gw"),)),
    )
    policies = (
        Policy(kind="RateLimitPolicy", key=ObjectKey("default", "gw-rlp"), target_ref=TargetRef(GATEWAY_KIND, "gw")),
        Policy(kind="RateLimitPolicy", key=ObjectKey("default", "r1-rlp"), target_ref=TargetRef(ROUTE_KIND, "r1")),
        Policy(kind="AuthPolicy", key=ObjectKey("default", "r2-auth"), target_ref=TargetRef(ROUTE_KIND, "r2")),
        Policy(
            kind="RateLimitPolicy",
            key=ObjectKey("default", "other-rlp"),
            target_ref=TargetRef(GATEWAY_KIND, "other-gw"),
        ),
    )
    return build_topology(Snapshot(gateways=gateways, routes=routes, policies=policies))


def _names(refs):
    return [ref.key.name for ref in refs]


def test_gateway_change_reaches_policies_on_its_routes():
    changed = TargetId(GATEWAY_KIND, ObjectKey("default", "gw"))

    assert _names(affected_policies(_topology(), changed)) == ["r2-auth", "gw-rlp", "r1-rlp"]


def test_route_change_reaches_gateway_policies():
    changed = TargetId(ROUTE_KIND, ObjectKey("default", "r1"))

    assert _names(affected_policies(_topology(), changed)) == ["gw-rlp", "r1-rlp"]


def test_policy_change_stays_within_kind_and_subtree():
    changed = PolicyRef("RateLimitPolicy", ObjectKey("default", "r1-rlp"))

    assert _names(affected_policies(_topology(), changed)) == ["gw-rlp", "r1-rlp"]


def test_unknown_policy_maps_to_itself():
    changed = PolicyRef("RateLimitPolicy", ObjectKey("default", "gone"))

    assert affected_policies(_topology(), changed) == [changed]
