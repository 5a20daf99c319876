"""Canonical JSON encoding and domain-separated hashing.

Used to fingerprint a resolution and to write artifacts, so repeated passes
over the same snapshot can be compared byte for byte.
"""

from __future__ import annotations

import json
import math
from hashlib import sha256
from typing import Any, Mapping


def canon_json_bytes_v1(obj: Mapping[str, Any]) -> bytes:
    _ensure_mapping(obj)
    _validate_json_value(obj)
    rendered = json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return rendered.encode("utf-8")


def domain_hash(domain: str, obj: Mapping[str, Any]) -> str:
    if not domain:
        raise ValueError("policy_engine.hash.invalid domain")
    digest_input = domain.encode("utf-8") + b"\n" + canon_json_bytes_v1(obj)
    return sha256(digest_input).hexdigest()


def _ensure_mapping(value: Any) -> None:
    if not isinstance(value, Mapping):
        raise ValueError("policy_engine.hash.invalid mapping_required")


def _validate_json_value(value: Any) -> None:
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("policy_engine.hash.invalid non_finite_float")
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _validate_json_value(item)
        return
    if isinstance(value, Mapping):
        for key in value.keys():
            if not isinstance(key, str):
                raise ValueError("policy_engine.hash.invalid key_type")
        for item in value.values():
            _validate_json_value(item)
        return
    raise ValueError("policy_engine.hash.invalid value_type")
