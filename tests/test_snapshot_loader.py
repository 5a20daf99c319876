import textwrap

import pytest

from policy_controller.policy_engine.errors import SnapshotLoadError
from policy_controller.policy_engine.model import GATEWAY_KIND, ROUTE_KIND, ObjectKey
from policy_controller.policy_engine.resolve import resolve
from policy_controller.policy_engine.snapshot_loader import load_snapshot, snapshot_from_objects

MANIFESTS = """
apiVersion: gateway.networking.k8s.io/v1
kind: Gateway
metadata:
  name: gw
  namespace: apps
  creationTimestamp: "2024-01-01T00:00:00Z"
spec:
  listeners:
    - name: http
      hostname: "*.example.com"
status:
  conditions:
    - type: Programmed
      status: "True"
---
apiVersion: gateway.networking.k8s.io/v1
kind: HTTPRoute
metadata:
  name: api
  namespace: apps
  annotations:
    kuadrant.io/ratelimitpolicy: apps/api-limits
spec:
  parentRefs:
    - name: gw
  hostnames: ["api.example.com"]
---
apiVersion: kuadrant.io/v1beta2
kind: RateLimitPolicy
metadata:
  name: api-limits
  namespace: apps
  generation: 3
  creationTimestamp: "2024-01-02T00:00:00Z"
spec:
  targetRef:
    group: gateway.networking.k8s.io
    kind: HTTPRoute
    name: api
  limits:
    per-user:
      rates: [{limit: 5, duration: 10, unit: second}]
      routeSelectors:
        - hostnames: ["api.example.com"]
---
apiVersion: kuadrant.io/v1beta2
kind: AuthPolicy
metadata:
  name: leaving
  namespace: apps
  deletionTimestamp: "2024-01-05T00:00:00Z"
spec:
  targetRef:
    kind: Gateway
    name: gw
  overrides: {}
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: unrelated
"""


def test_load_snapshot_parses_manifests(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    path = tmp_path / "snapshot.yaml"
    path.write_text(textwrap.dedent(MANIFESTS), encoding="utf-8")

    snapshot, snapshot_hash = load_snapshot(str(path), health={"RateLimitPolicy": {"ready": True}})

    assert len(snapshot_hash) == 64
    (gateway,) = snapshot.gateways
    assert gateway.kind == GATEWAY_KIND
    assert gateway.key == ObjectKey("apps", "gw")
    assert gateway.hostnames == ("*.example.com",)
    assert gateway.programmed

    (route,) = snapshot.routes
    assert route.kind == ROUTE_KIND
    assert route.parent_refs[0].resolve("apps").key == ObjectKey("apps", "gw")
    assert route.annotation("kuadrant.io/ratelimitpolicy") == "apps/api-limits"

    limits, leaving = sorted(snapshot.policies, key=lambda p: p.kind, reverse=True)
    assert limits.generation == 3
    assert limits.rules is not None
    assert limits.hostnames == ("api.example.com",)
    assert leaving.deletion_pending
    assert leaving.is_override()

    conditions = resolve(snapshot)
    (ref,) = conditions
    assert ref.key == ObjectKey("apps", "api-limits")
    assert conditions[ref].enforced.status == "True"


def test_list_documents_are_flattened():
    snapshot = snapshot_from_objects(
        [
            {
                "kind": "List",
                "items": [
                    {"kind": "Gateway", "metadata": {"name": "gw"}},
                    {"kind": "HTTPRoute", "metadata": {"name": "r1"}, "spec": {"parentRefs": [{"name": "gw"}]}},
                ],
            }
        ]
    )

    assert [g.key.name for g in snapshot.gateways] == ["gw"]
    assert [r.key.namespace for r in snapshot.routes] == ["default"]


def test_unprogrammed_gateway_is_flagged():
    snapshot = snapshot_from_objects(
        [
            {
                "kind": "Gateway",
                "metadata": {"name": "gw"},
                "status": {"conditions": [{"type": "Programmed", "status": "False"}]},
            }
        ]
    )

    assert not snapshot.gateways[0].programmed


def test_missing_name_is_rejected():
    with pytest.raises(SnapshotLoadError, match="metadata.name"):
        snapshot_from_objects([{"kind": "Gateway", "metadata": {}}])


def test_invalid_yaml_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(tmp_path / "policy-engine.log"))
    path = tmp_path / "broken.yaml"
    path.write_text("kind: [unterminated\n", encoding="utf-8")

    with pytest.raises(SnapshotLoadError):
        load_snapshot(str(path))


def test_selector_hostnames_are_deduplicated_as_strings():
    snapshot = snapshot_from_objects(
        [
            {
                "kind": "RateLimitPolicy",
                "metadata": {"name": "p"},
                "spec": {
                    "targetRef": {"kind": "HTTPRoute", "name": "r1"},
                    "limits": {"x": {"routeSelectors": [{"hostnames": [1, "1"]}]}},
                },
            }
        ]
    )

    assert snapshot.policies[0].hostnames == ("1",)
