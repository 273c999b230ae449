"""
Content hashing for rows and table configurations.

The hash is computed over a canonical JSON text (sorted keys, compact
separators, ``_hash`` members removed at every level, integral floats
written as integers) and encoded as the first 22 characters of the
url-safe base64 SHA-256 digest.
"""
from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Dict

from .errors import UnsupportedValueTypeError

HASH_KEY = "_hash"
HASH_LENGTH = 22


def _canonical(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _canonical(v) for k, v in value.items() if k != HASH_KEY}
    if isinstance(value, list):
        return [_canonical(v) for v in value]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def hash_json(value: Any) -> str:
    try:
        text = json.dumps(
            _canonical(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    except (TypeError, ValueError) as exc:
        raise UnsupportedValueTypeError(f"Value cannot be hashed: {exc}") from exc
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:HASH_LENGTH]


def with_hash(row: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``row`` with ``_hash`` filled in; an existing hash is kept."""
    if row.get(HASH_KEY):
        return row
    hashed = dict(row)
    hashed[HASH_KEY] = hash_json(row)
    return hashed
