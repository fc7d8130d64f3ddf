"""Canonical hashing helpers for step cache keys and plan identity.

Cache keys chain: each step's key covers its parent's key, so a key
identifies the whole prefix of the plan up to and including that step.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import Any

from cudalis.models.plan import BuildStep


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_step_cache_key(parent_key: str | None, step: BuildStep) -> str:
    """SHA-256 of canonical(parent key + step kind + step parameters)."""
    payload = {"parent": parent_key or "", **step.identity()}
    return sha256_hex(canonical_json_bytes(payload))


def compute_cache_keys(steps: Iterable[BuildStep]) -> list[str]:
    """Chain cache keys over an ordered step sequence."""
    keys: list[str] = []
    parent: str | None = None
    for step in steps:
        parent = compute_step_cache_key(parent, step)
        keys.append(parent)
    return keys


def compute_plan_id(image_reference: str, steps: Iterable[BuildStep]) -> str:
    """SHA-256 over the image reference and every step identity, in order."""
    payload = {
        "image_reference": image_reference,
        "steps": [step.identity() for step in steps],
    }
    return sha256_hex(canonical_json_bytes(payload))
