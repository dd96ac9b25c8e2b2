"""
Utility functions for the Benefit Rules Engine
"""

from .versions import (
    parse_version,
    format_version,
    compare_versions,
    increment_version,
    is_newer_version
)
from .checksum import (
    canonical_json,
    calculate_checksum,
    verify_checksum
)
from .validators import (
    validate_rule_definition,
    validate_rule_package,
    create_rule_template
)
from .field_names import format_field_name

__all__ = [
    "parse_version",
    "format_version",
    "compare_versions",
    "increment_version",
    "is_newer_version",
    "canonical_json",
    "calculate_checksum",
    "verify_checksum",
    "validate_rule_definition",
    "validate_rule_package",
    "create_rule_template",
    "format_field_name"
]
