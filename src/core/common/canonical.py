import hashlib
import json
from typing import Any


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def sha256_hex_digest(payload: Any) -> str:
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def blank_key(payload: dict[str, Any], *, key: str, value: Any = "") -> dict[str, Any]:
    """Shallow copy of ``payload`` with ``key`` forced to ``value``."""
    return {**payload, key: value}
