"""
Version parsing, formatting, comparison and increment helpers
"""
import re
from typing import Any, Dict, Literal, Union

from ..models.rule import RuleVersion

VersionLike = Union[RuleVersion, str, Dict[str, Any]]
IncrementLevel = Literal["major", "minor", "patch"]

_NUMBER = re.compile(r"^\d+$")

# Higher rank sorts newer when labels are compared; unknown labels rank lowest
LABEL_RANK = {
    None: 4,
    "rc": 3,
    "beta": 2,
    "alpha": 1,
}


def parse_version_parts(version_str: str) -> Dict[str, Any]:
    """
    Split a version string into its components

    Accepts 2 to 4 dot-separated parts (major.minor[.patch[.label]]) and a
    trailing "-label" on the last numeric part.

    Args:
        version_str: Version string such as "1.2", "1.2.3" or "1.2.3-beta"

    Returns:
        Dict with major, minor, patch and label

    Raises:
        ValueError: If the string is not a valid version
    """
    if not isinstance(version_str, str) or not version_str.strip():
        raise ValueError(f"Invalid version format: {version_str!r}")

    text = version_str.strip()
    label = None
    parts = text.split(".")
    if len(parts) < 2 or len(parts) > 4:
        raise ValueError(f"Invalid version format: {version_str}")

    if len(parts) == 4:
        label = parts[3] or None
        parts = parts[:3]
    elif "-" in parts[-1]:
        last, label = parts[-1].split("-", 1)
        parts[-1] = last
        label = label or None

    if len(parts) == 2:
        parts.append("0")

    if not all(_NUMBER.match(p) for p in parts):
        raise ValueError(f"Invalid version format: {version_str}")

    return {
        "major": int(parts[0]),
        "minor": int(parts[1]),
        "patch": int(parts[2]),
        "label": label,
    }


def parse_version(version_str: str) -> RuleVersion:
    """Parse a version string into a RuleVersion"""
    return RuleVersion(**parse_version_parts(version_str))


def to_version(value: VersionLike) -> RuleVersion:
    """Coerce a string, dict or RuleVersion into a RuleVersion"""
    if isinstance(value, RuleVersion):
        return value
    if isinstance(value, str):
        return parse_version(value)
    return RuleVersion.model_validate(value)


def format_version(version: VersionLike) -> str:
    """Render major.minor.patch[-label]"""
    v = to_version(version)
    base = f"{v.major}.{v.minor}.{v.patch}"
    return f"{base}-{v.label}" if v.label else base


def _label_key(label):
    return (LABEL_RANK.get(label, 0), label or "")


def compare_versions(a: VersionLike, b: VersionLike, label_aware: bool = False) -> int:
    """
    Compare two versions

    Args:
        a: First version
        b: Second version
        label_aware: Break major/minor/patch ties by label
            (release > rc > beta > alpha > other)

    Returns:
        Negative if a < b, zero if equal, positive if a > b
    """
    va, vb = to_version(a), to_version(b)
    for left, right in ((va.major, vb.major), (va.minor, vb.minor), (va.patch, vb.patch)):
        if left != right:
            return left - right

    if not label_aware:
        return 0

    ka, kb = _label_key(va.label), _label_key(vb.label)
    if ka == kb:
        return 0
    return 1 if ka > kb else -1


def is_newer_version(a: VersionLike, b: VersionLike, label_aware: bool = False) -> bool:
    """True if a is strictly newer than b"""
    return compare_versions(a, b, label_aware=label_aware) > 0


def increment_version(version: VersionLike, level: IncrementLevel) -> RuleVersion:
    """
    Increment a version, resetting every lower-order field to zero

    The label is dropped; an incremented version is a release.
    """
    v = to_version(version)
    if level == "major":
        return RuleVersion(major=v.major + 1, minor=0, patch=0)
    if level == "minor":
        return RuleVersion(major=v.major, minor=v.minor + 1, patch=0)
    if level == "patch":
        return RuleVersion(major=v.major, minor=v.minor, patch=v.patch + 1)
    raise ValueError(f"Invalid increment level: {level}")
