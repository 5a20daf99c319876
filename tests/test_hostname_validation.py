import pytest

from policy_controller.policy_engine.errors import UnknownPolicyKind
from policy_controller.policy_engine.kinds import affected_condition_type, back_reference_key, kind_spec
from policy_controller.policy_engine.validation import is_subdomain, valid_subdomains


@pytest.mark.parametrize(
    "subdomain,domain,expected",
    [
        ("api.example.com", "api.example.com", True),
        ("api.example.com", "*.example.com", True),
        ("*.api.example.com", "*.example.com", True),
        ("example.com", "*.example.com", False),
        ("api.example.org", "*.example.com", False),
        ("anything.io", "*", True),
        ("API.Example.com", "api.example.com", True),
    ],
)
def test_is_subdomain(subdomain, domain, expected):
    assert is_subdomain(subdomain, domain) is expected


def test_valid_subdomains_reports_first_offender():
    assert valid_subdomains(["*.example.com"], ["a.example.com", "b.example.org", "c.example.net"]) == (
        False,
        "b.example.org",
    )
    assert valid_subdomains(["*.example.com"], []) == (True, "")


def test_kind_table_lookups():
    assert back_reference_key("RateLimitPolicy", "kuadrant.io") == "kuadrant.io/ratelimitpolicy"
    assert affected_condition_type("DNSPolicy", "example.io") == "example.io/DNSPolicyAffected"
    assert kind_spec("TLSPolicy").target_kinds == frozenset({"Gateway"})
    with pytest.raises(UnknownPolicyKind, match="kind=QuotaPolicy"):
        kind_spec("QuotaPolicy")
