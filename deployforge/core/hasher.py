"""Canonical hashing helpers for ledger sealing and structural fingerprints."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

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


def compute_entry_hash(entry_dict: dict[str, Any]) -> str:
    """SHA-256 of a ledger entry (excluding the entry_hash field itself).

    This is the seal that makes each entry tamper-evident.
    """
    d = {k: v for k, v in entry_dict.items() if k != "entry_hash"}
    return sha256_hex(canonical_json_bytes(d))


def _mask(obj: Any, replacements: dict[str, str]) -> Any:
    if isinstance(obj, str):
        return replacements.get(obj, obj)
    if isinstance(obj, dict):
        return {_mask(k, replacements): _mask(v, replacements) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_mask(v, replacements) for v in obj]
    return obj


def structural_fingerprint(obj: Any, masked: dict[str, str]) -> str:
    """SHA-256 of *obj* with every profile-derived value replaced by a placeholder.

    *masked* maps placeholder -> concrete value (``{"<stack>": "SvcPPD"}``).
    Only strings and keys equal to a concrete value are replaced; a shared
    string that merely contains one is left as is.  Two objects built by the
    same routine from different profiles yield the same fingerprint.
    """
    replacements = {value: placeholder for placeholder, value in masked.items() if value}
    return sha256_hex(canonical_json_bytes(_mask(obj, replacements)))
