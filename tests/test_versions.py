"""
Tests for version parsing, comparison and increment

Tests cover:
- Parsing 2-4 part versions and labels
- Label-insensitive total order
- Label-aware comparison
- Increment semantics
"""
import random
from functools import cmp_to_key

import pytest

from benefits_engine.models.rule import RuleVersion
from benefits_engine.utils.versions import (
    compare_versions,
    format_version,
    increment_version,
    is_newer_version,
    parse_version,
    parse_version_parts,
    to_version,
)


class TestParseVersion:
    """Tests for parse_version and parse_version_parts."""

    def test_three_parts(self):
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch, v.label) == (1, 2, 3, None)

    def test_two_parts_defaults_patch(self):
        v = parse_version("4.7")
        assert (v.major, v.minor, v.patch) == (4, 7, 0)

    def test_dash_label(self):
        v = parse_version("1.2.3-beta")
        assert v.patch == 3
        assert v.label == "beta"

    def test_fourth_part_is_label(self):
        assert parse_version("2.0.1.rc").label == "rc"

    @pytest.mark.parametrize("text", ["1", "", "a.b.c", "1.2.3.4.5", "1.x.0", None])
    def test_invalid_versions_raise(self, text):
        with pytest.raises(ValueError, match="Invalid version format"):
            parse_version_parts(text)

    def test_rule_version_accepts_string(self):
        assert RuleVersion.model_validate("3.1.4-alpha") == RuleVersion(major=3, minor=1, patch=4, label="alpha")

    def test_format_round_trip(self):
        for text in ["0.1.0", "1.2.3-beta", "10.20.30"]:
            assert format_version(parse_version(text)) == text

    def test_to_version_accepts_dict(self):
        assert format_version(to_version({"major": 1, "minor": 0, "patch": 2})) == "1.0.2"


class TestCompareVersions:
    """Tests for compare_versions."""

    def test_orders_by_major_minor_patch(self):
        assert compare_versions("1.0.0", "2.0.0") < 0
        assert compare_versions("1.2.0", "1.1.9") > 0
        assert compare_versions("1.1.2", "1.1.10") < 0

    def test_labels_ignored_by_default(self):
        assert compare_versions("1.0.0-beta", "1.0.0") == 0
        assert compare_versions("1.0.0-alpha", "1.0.0-rc") == 0

    def test_label_aware_order(self):
        ordered = ["1.0.0-custom", "1.0.0-alpha", "1.0.0-beta", "1.0.0-rc", "1.0.0"]
        for older, newer in zip(ordered, ordered[1:]):
            assert compare_versions(older, newer, label_aware=True) < 0
            assert compare_versions(newer, older, label_aware=True) > 0

    def test_total_order(self):
        versions = [f"{a}.{b}.{c}" for a in range(3) for b in range(3) for c in range(3)]
        shuffled = versions[:]
        random.Random(7).shuffle(shuffled)

        result = sorted(shuffled, key=cmp_to_key(compare_versions))
        assert result == versions

        # Antisymmetry and transitivity over every triple of a sample
        sample = [parse_version(v) for v in versions[::4]]
        for a in sample:
            assert compare_versions(a, a) == 0
            for b in sample:
                assert (compare_versions(a, b) > 0) == (compare_versions(b, a) < 0)
                for c in sample:
                    if compare_versions(a, b) <= 0 and compare_versions(b, c) <= 0:
                        assert compare_versions(a, c) <= 0

    def test_is_newer_version(self):
        assert is_newer_version("1.0.1", "1.0.0")
        assert not is_newer_version("1.0.0", "1.0.0")


class TestIncrementVersion:
    """Tests for increment_version."""

    def test_major_resets_lower_parts(self):
        assert format_version(increment_version("1.4.7", "major")) == "2.0.0"

    def test_minor_resets_patch(self):
        assert format_version(increment_version("1.4.7", "minor")) == "1.5.0"

    def test_patch(self):
        assert format_version(increment_version("1.4.7", "patch")) == "1.4.8"

    def test_label_dropped(self):
        assert increment_version("1.0.0-beta", "patch").label is None

    def test_increment_is_strictly_newer(self):
        for level in ("major", "minor", "patch"):
            assert compare_versions(increment_version("2.3.4", level), "2.3.4") > 0

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            increment_version("1.0.0", "build")
