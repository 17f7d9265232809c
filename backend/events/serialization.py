# events/serialization.py
"""
Canonical serialization for event payloads.

Identical payloads produce identical hashes regardless of dict ordering,
so the stored hash can be used to verify a payload after retrieval.
"""

import hashlib
import json
from typing import Any, Dict


def canonical_json(data: Dict[str, Any]) -> str:
    """
    Convert a dictionary to a canonical JSON string.

    Example:
        >>> canonical_json({"b": 2, "a": 1})
        '{"a":1,"b":2}'
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )


def compute_payload_hash(data: Dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON representation."""
    canonical = canonical_json(data)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()
