"""Build a ``Snapshot`` from Kubernetes-style YAML manifests.

Documents are plain ``kind``/``metadata``/``spec``/``status`` mappings, either
one per YAML document or wrapped in a ``List``. Kinds the engine does not
know are skipped.
"""

import hashlib
from pathlib import Path

import yaml

from policy_controller.policy_engine.errors import SnapshotLoadError
from policy_controller.policy_engine.kinds import POLICY_KINDS
from policy_controller.policy_engine.logger import log_event
from policy_controller.policy_engine.model import (
    GATEWAY_API_GROUP,
    GATEWAY_KIND,
    ROUTE_KIND,
    Condition,
    HealthStatus,
    ObjectKey,
    ParentRef,
    Policy,
    Snapshot,
    TargetRef,
    Targetable,
)

DEFAULT_NAMESPACE = "default"

# Top-level spec fields that hold implicit defaults, per policy kind.
IMPLICIT_RULE_FIELDS = {
    "AuthPolicy": ("rules",),
    "RateLimitPolicy": ("limits",),
}


def _mapping(value, where):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SnapshotLoadError(f"{where} must be a mapping")
    return value


def _sequence(value, where):
    if value is None:
        return []
    if not isinstance(value, list):
        raise SnapshotLoadError(f"{where} must be a list")
    return value


def _int(value, where, default=0):
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SnapshotLoadError(f"{where} must be an integer") from exc


def _metadata(doc):
    kind = doc.get("kind")
    metadata = _mapping(doc.get("metadata"), f"{kind}.metadata")
    name = metadata.get("name")
    if not name:
        raise SnapshotLoadError(f"{kind} is missing metadata.name")
    key = ObjectKey(namespace=str(metadata.get("namespace") or DEFAULT_NAMESPACE), name=str(name))
    where = f"{kind} {key}"
    return key, metadata, where


def _conditions(status, where):
    conditions = []
    for item in _sequence(status.get("conditions"), f"{where} status.conditions"):
        item = _mapping(item, f"{where} status.conditions[]")
        conditions.append(
            Condition(
                type=str(item.get("type") or ""),
                status=str(item.get("status") or "Unknown"),
                reason=str(item.get("reason") or ""),
                message=str(item.get("message") or ""),
                observed_generation=_int(item.get("observedGeneration"), f"{where} observedGeneration"),
                last_transition_time=str(item.get("lastTransitionTime") or ""),
            )
        )
    return tuple(conditions)


def _programmed(conditions):
    for condition in conditions:
        if condition.type == "Programmed":
            return condition.status == "True"
    return True


def _gateway(doc):
    key, metadata, where = _metadata(doc)
    spec = _mapping(doc.get("spec"), f"{where} spec")
    status = _mapping(doc.get("status"), f"{where} status")
    hostnames = []
    for listener in _sequence(spec.get("listeners"), f"{where} spec.listeners"):
        listener = _mapping(listener, f"{where} spec.listeners[]")
        hostname = listener.get("hostname")
        if hostname and str(hostname) not in hostnames:
            hostnames.append(str(hostname))
    conditions = _conditions(status, where)
    return Targetable(
        kind=GATEWAY_KIND,
        key=key,
        generation=_int(metadata.get("generation"), f"{where} generation", default=1),
        creation_timestamp=str(metadata.get("creationTimestamp") or ""),
        hostnames=tuple(hostnames),
        annotations=dict(_mapping(metadata.get("annotations"), f"{where} annotations")),
        programmed=_programmed(conditions),
        resource_version=_int(metadata.get("resourceVersion"), f"{where} resourceVersion"),
        conditions=conditions,
    )


def _route(doc):
    key, metadata, where = _metadata(doc)
    spec = _mapping(doc.get("spec"), f"{where} spec")
    status = _mapping(doc.get("status"), f"{where} status")
    parent_refs = []
    for ref in _sequence(spec.get("parentRefs"), f"{where} spec.parentRefs"):
        ref = _mapping(ref, f"{where} spec.parentRefs[]")
        if not ref.get("name"):
            raise SnapshotLoadError(f"{where} parentRef is missing name")
        parent_refs.append(
            ParentRef(
                name=str(ref["name"]),
                kind=str(ref.get("kind") or GATEWAY_KIND),
                namespace=ref.get("namespace"),
            )
        )
    hostnames = tuple(str(h) for h in _sequence(spec.get("hostnames"), f"{where} spec.hostnames"))
    return Targetable(
        kind=ROUTE_KIND,
        key=key,
        generation=_int(metadata.get("generation"), f"{where} generation", default=1),
        creation_timestamp=str(metadata.get("creationTimestamp") or ""),
        parent_refs=tuple(parent_refs),
        hostnames=hostnames,
        annotations=dict(_mapping(metadata.get("annotations"), f"{where} annotations")),
        resource_version=_int(metadata.get("resourceVersion"), f"{where} resourceVersion"),
        conditions=_conditions(status, where),
    )


def _selector_hostnames(value, found):
    if isinstance(value, dict):
        for selector in value.get("routeSelectors") or []:
            if isinstance(selector, dict):
                for hostname in selector.get("hostnames") or []:
                    hostname = str(hostname)
                    if hostname not in found:
                        found.append(hostname)
        for item in value.values():
            _selector_hostnames(item, found)
    elif isinstance(value, list):
        for item in value:
            _selector_hostnames(item, found)
    return found


def _target_ref(spec, where):
    raw = spec.get("targetRef")
    if raw is None:
        return None
    raw = _mapping(raw, f"{where} spec.targetRef")
    return TargetRef(
        kind=str(raw.get("kind") or ""),
        name=str(raw.get("name") or ""),
        namespace=raw.get("namespace"),
        group=str(raw.get("group") or GATEWAY_API_GROUP),
    )


def _policy(doc):
    kind = doc["kind"]
    key, metadata, where = _metadata(doc)
    spec = _mapping(doc.get("spec"), f"{where} spec")
    status = _mapping(doc.get("status"), f"{where} status")

    rules = None
    implicit = {f: spec[f] for f in IMPLICIT_RULE_FIELDS.get(kind, ()) if f in spec}
    if implicit:
        rules = implicit

    defaults = spec.get("defaults")
    overrides = spec.get("overrides")
    return Policy(
        kind=kind,
        key=key,
        target_ref=_target_ref(spec, where),
        generation=_int(metadata.get("generation"), f"{where} generation", default=1),
        creation_timestamp=str(metadata.get("creationTimestamp") or ""),
        defaults=_mapping(defaults, f"{where} spec.defaults") if defaults is not None else None,
        overrides=_mapping(overrides, f"{where} spec.overrides") if overrides is not None else None,
        rules=rules,
        hostnames=tuple(_selector_hostnames(spec, [])),
        deletion_pending=bool(metadata.get("deletionTimestamp")),
        conditions=_conditions(status, where),
        observed_generation=_int(status.get("observedGeneration"), f"{where} observedGeneration"),
        resource_version=_int(metadata.get("resourceVersion"), f"{where} resourceVersion"),
    )


def _flatten(documents):
    for doc in documents:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise SnapshotLoadError("Snapshot documents must be mappings")
        if doc.get("kind") == "List":
            yield from _flatten(_sequence(doc.get("items"), "List.items"))
            continue
        yield doc


def snapshot_from_objects(objects, health=None):
    gateways = []
    routes = []
    policies = []
    skipped = 0
    for doc in _flatten(objects):
        kind = doc.get("kind")
        if kind == GATEWAY_KIND:
            gateways.append(_gateway(doc))
        elif kind == ROUTE_KIND:
            routes.append(_route(doc))
        elif kind in POLICY_KINDS:
            policies.append(_policy(doc))
        else:
            skipped += 1

    health_map = {}
    for kind, value in (health or {}).items():
        if isinstance(value, HealthStatus):
            health_map[kind] = value
            continue
        value = _mapping(value, f"health.{kind}")
        health_map[kind] = HealthStatus(
            ready=bool(value.get("ready", False)),
            reason=str(value.get("reason") or ""),
            error=value.get("error"),
        )

    log_event(
        "snapshot_loader",
        (
            f"parsed gateways={len(gateways)} routes={len(routes)} "
            f"policies={len(policies)} skipped={skipped}"
        ),
    )
    return Snapshot(
        gateways=tuple(gateways),
        routes=tuple(routes),
        policies=tuple(policies),
        health=health_map,
    )


def load_snapshot(snapshot_path, health=None):
    path = Path(snapshot_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        log_event("snapshot_loader", f"load_failed path={path} error={exc}")
        raise SnapshotLoadError(f"Failed to read snapshot: {exc}") from exc

    try:
        documents = list(yaml.safe_load_all(raw))
    except yaml.YAMLError as exc:
        log_event("snapshot_loader", f"parse_failed path={path} error={exc}")
        raise SnapshotLoadError(f"Failed to parse snapshot YAML: {exc}") from exc

    snapshot = snapshot_from_objects(documents, health)
    snapshot_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    log_event("snapshot_loader", f"loaded path={path} snapshot_hash={snapshot_hash}")
    return snapshot, snapshot_hash
