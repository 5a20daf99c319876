from __future__ import annotations

from policy_controller.policy_engine.errors import InvalidPolicyError, PolicyError
from policy_controller.policy_engine.kinds import PolicyKindSpec
from policy_controller.policy_engine.model import GATEWAY_KIND, Policy, Targetable


def is_subdomain(subdomain: str, domain: str) -> bool:
    """Gateway API hostname matching: ``*`` and ``*.`` wildcards on the parent."""
    subdomain = subdomain.lower()
    domain = domain.lower()
    if domain == "*" or subdomain == domain:
        return True
    if domain.startswith("*."):
        suffix = domain[1:]
        if subdomain.startswith("*."):
            return subdomain[1:].endswith(suffix)
        return subdomain.endswith(suffix) and len(subdomain) > len(suffix)
    return False


def valid_subdomains(domains, subdomains):
    for subdomain in subdomains:
        if not any(is_subdomain(subdomain, domain) for domain in domains):
            return False, subdomain
    return True, ""


def target_hostnames(target: Targetable) -> tuple[str, ...]:
    if not target.hostnames:
        return ("*",)
    return tuple(target.hostnames)


def validate_policy_spec(policy: Policy, spec: PolicyKindSpec) -> PolicyError | None:
    """Checks that need nothing but the policy itself."""

    target_ref = policy.get_target_ref()
    if target_ref is None or not target_ref.name:
        return InvalidPolicyError(policy.kind, "targetRef is required")
    if not target_ref.kind:
        return InvalidPolicyError(policy.kind, "targetRef.kind is required")
    if target_ref.kind not in spec.target_kinds:
        allowed = ", ".join(sorted(spec.target_kinds))
        return InvalidPolicyError(
            policy.kind,
            f"invalid targetRef.Kind {target_ref.kind}. The only supported kinds are {allowed}",
        )
    if target_ref.namespace and target_ref.namespace != policy.key.namespace:
        return InvalidPolicyError(
            policy.kind,
            (
                f"invalid targetRef.Namespace {target_ref.namespace}. "
                "Currently only supporting references to the same namespace"
            ),
        )

    has_defaults = policy.defaults is not None
    has_overrides = policy.overrides is not None
    has_rules = policy.rules is not None
    if has_defaults and has_overrides:
        return InvalidPolicyError(policy.kind, "Overrides and explicit defaults are mutually exclusive")
    if has_overrides and has_rules:
        return InvalidPolicyError(policy.kind, "Overrides and implicit defaults are mutually exclusive")
    if has_defaults and has_rules:
        return InvalidPolicyError(policy.kind, "Implicit and explicit defaults are mutually exclusive")
    if has_overrides and not spec.supports_overrides:
        return InvalidPolicyError(policy.kind, f"Overrides are not supported by {policy.kind}")
    if has_overrides and target_ref.kind != GATEWAY_KIND:
        return InvalidPolicyError(
            policy.kind, "Overrides are only allowed for policies targeting a Gateway resource"
        )
    return None


def validate_hierarchical_hostnames(
    policy: Policy,
    target: Targetable,
    spec: PolicyKindSpec,
) -> PolicyError | None:
    if not spec.validates_hostnames or not policy.hostnames:
        return None
    hostnames = target_hostnames(target)
    valid, invalid_host = valid_subdomains(hostnames, policy.hostnames)
    if valid:
        return None
    return InvalidPolicyError(
        policy.kind,
        (
            f"rule host ({invalid_host}) does not follow any hierarchical constraints, "
            f"for the {policy.kind} to be validated, it must match with at least one of "
            f"the target network hostnames [{', '.join(hostnames)}]"
        ),
    )
