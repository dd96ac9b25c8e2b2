"""
Canonical JSON serialization and package checksums

The same (metadata, rules) content always produces the same checksum,
regardless of key order in the source document.
"""
import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel


def _default_serializer(obj: Any) -> Any:
    """Serialize the non-JSON types that can appear in rule content"""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_json(obj: Any) -> str:
    """
    Serialize an object to a canonical JSON string

    Example:
        >>> canonical_json({"b": 1, "a": 2})
        '{"a":2,"b":1}'
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        default=_default_serializer,
        ensure_ascii=False,
    )


def calculate_checksum(data: Dict[str, Any]) -> str:
    """
    Compute the SHA-256 checksum of a package's metadata and rules

    Only the metadata and rules keys take part; checksum and signature are
    excluded so a package can carry its own checksum.

    Args:
        data: Package dict (or anything with metadata and rules keys)

    Returns:
        Hex-encoded SHA-256 digest
    """
    content = {
        "metadata": data.get("metadata"),
        "rules": data.get("rules", []),
    }
    return hashlib.sha256(canonical_json(content).encode("utf-8")).hexdigest()


def verify_checksum(data: Dict[str, Any]) -> bool:
    """True if the package has no checksum or its checksum matches its content"""
    expected = data.get("checksum")
    if not expected:
        return True
    return calculate_checksum(data) == expected
