import hashlib
from dataclasses import dataclass
from pathlib import Path

import yaml

from policy_controller.policy_engine.errors import ConfigLoadError
from policy_controller.policy_engine.kinds import POLICY_KINDS
from policy_controller.policy_engine.logger import log_event


REQUIRED_KEYS = {
    "version",
    "namespace",
    "policy_kinds",
}

DEFAULT_ANNOTATION_DOMAIN = "kuadrant.io"
DEFAULT_CONTROLLER_NAME = "kuadrant.io/policy-controller"
DEFAULT_MAX_HIERARCHY_DEPTH = 8


@dataclass(frozen=True)
class EngineConfig:
    namespace: str = "kuadrant-system"
    annotation_domain: str = DEFAULT_ANNOTATION_DOMAIN
    policy_kinds: tuple[str, ...] = tuple(sorted(POLICY_KINDS))
    max_hierarchy_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH
    controller_name: str = DEFAULT_CONTROLLER_NAME


def validate_engine_config(config):
    if not config.namespace:
        raise ConfigLoadError("policy_engine.config.invalid namespace")
    if not config.annotation_domain:
        raise ConfigLoadError("policy_engine.config.invalid annotation_domain")
    unknown = sorted(set(config.policy_kinds) - set(POLICY_KINDS))
    if unknown:
        raise ConfigLoadError(f"policy_engine.config.invalid policy_kinds unknown={','.join(unknown)}")
    if not config.policy_kinds:
        raise ConfigLoadError("policy_engine.config.invalid policy_kinds empty")
    if not isinstance(config.max_hierarchy_depth, int) or config.max_hierarchy_depth < 1:
        raise ConfigLoadError("policy_engine.config.invalid max_hierarchy_depth")


def load_config(config_path="config/policy-engine.yaml"):
    path = Path(config_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        log_event("config_loader", f"load_failed path={path} error={exc}")
        raise ConfigLoadError(f"Failed to read config: {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        log_event("config_loader", f"parse_failed path={path} error={exc}")
        raise ConfigLoadError(f"Failed to parse config YAML: {exc}") from exc

    if not isinstance(data, dict):
        log_event("config_loader", f"invalid_mapping path={path}")
        raise ConfigLoadError("Config YAML must be a mapping")

    missing = sorted(REQUIRED_KEYS - set(data.keys()))
    if missing:
        log_event("config_loader", f"missing_keys path={path} missing={','.join(missing)}")
        raise ConfigLoadError(f"Config missing required keys: {', '.join(missing)}")

    kinds = data.get("policy_kinds") or []
    if not isinstance(kinds, list):
        raise ConfigLoadError("policy_kinds must be a list")

    config = EngineConfig(
        namespace=str(data["namespace"] or ""),
        annotation_domain=str(data.get("annotation_domain") or DEFAULT_ANNOTATION_DOMAIN),
        policy_kinds=tuple(sorted(str(k) for k in kinds)),
        max_hierarchy_depth=data.get("max_hierarchy_depth", DEFAULT_MAX_HIERARCHY_DEPTH),
        controller_name=str(data.get("controller_name") or DEFAULT_CONTROLLER_NAME),
    )
    try:
        validate_engine_config(config)
    except ConfigLoadError as exc:
        log_event("config_loader", f"invalid_config path={path} error={exc}")
        raise

    config_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    log_event(
        "config_loader",
        f"loaded path={path} kinds={','.join(config.policy_kinds)} config_hash={config_hash}",
    )
    return config, config_hash
