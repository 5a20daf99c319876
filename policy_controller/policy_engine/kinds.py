from __future__ import annotations

from dataclasses import dataclass

from policy_controller.policy_engine.errors import UnknownPolicyKind
from policy_controller.policy_engine.model import GATEWAY_KIND, ROUTE_KIND

NO_FREE_ROUTES = "no free routes to enforce policy"
NO_LISTENER_ROUTES = "no routes attached for listeners"


@dataclass(frozen=True)
class PolicyKindSpec:
    kind: str
    short_name: str
    subresource: str
    target_kinds: frozenset[str]
    supports_overrides: bool
    validates_hostnames: bool
    route_dependent: bool = True
    no_routes_message: str = NO_FREE_ROUTES


POLICY_KINDS = {
    "AuthPolicy": PolicyKindSpec(
        kind="AuthPolicy",
        short_name="authpolicy",
        subresource="Authorino",
        target_kinds=frozenset({GATEWAY_KIND, ROUTE_KIND}),
        supports_overrides=True,
        validates_hostnames=True,
    ),
    "RateLimitPolicy": PolicyKindSpec(
        kind="RateLimitPolicy",
        short_name="ratelimitpolicy",
        subresource="Limitador",
        target_kinds=frozenset({GATEWAY_KIND, ROUTE_KIND}),
        supports_overrides=True,
        validates_hostnames=True,
    ),
    "TLSPolicy": PolicyKindSpec(
        kind="TLSPolicy",
        short_name="tlspolicy",
        subresource="cert-manager",
        target_kinds=frozenset({GATEWAY_KIND}),
        supports_overrides=False,
        validates_hostnames=False,
        route_dependent=False,
    ),
    "DNSPolicy": PolicyKindSpec(
        kind="DNSPolicy",
        short_name="dnspolicy",
        subresource="DNSRecord",
        target_kinds=frozenset({GATEWAY_KIND}),
        supports_overrides=False,
        validates_hostnames=False,
        no_routes_message=NO_LISTENER_ROUTES,
    ),
}


def kind_spec(kind: str) -> PolicyKindSpec:
    spec = POLICY_KINDS.get(kind)
    if spec is None:
        raise UnknownPolicyKind(f"policy_engine.kinds.unknown kind={kind}")
    return spec


def back_reference_key(kind: str, annotation_domain: str) -> str:
    return f"{annotation_domain}/{kind_spec(kind).short_name}"


def affected_condition_type(kind: str, annotation_domain: str) -> str:
    return f"{annotation_domain}/{kind}Affected"
