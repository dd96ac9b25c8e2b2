"""
Pytest configuration and fixtures for Benefit Rules Engine tests.

Provides factories that build raw (camelCase JSON) rules and packages the
way rule files are authored, plus isolated service fixtures.
"""
import pytest

from benefits_engine.services.eligibility_service import EligibilityService
from benefits_engine.services.import_export_service import ImportExportService
from benefits_engine.services.logic_evaluator import LogicEvaluator
from benefits_engine.services.performance_monitor import PerformanceMonitor
from benefits_engine.services.rule_store import InMemoryRuleStore
from benefits_engine.services.versioning_service import VersioningService
from benefits_engine.utils.checksum import calculate_checksum
from benefits_engine.utils.versions import parse_version_parts

NOW_MS = 1704067200000  # 2024-01-01T00:00:00Z

SNAP_INCOME_LOGIC = {
    "snap_income_eligible": [{"var": "householdIncome"}, {"var": "householdSize"}]
}


# =============================================================================
# Factory Helpers
# =============================================================================

def make_version(version: str = "1.0.0") -> dict:
    """Version object as it appears in rule files."""
    parts = parse_version_parts(version)
    if parts["label"] is None:
        parts.pop("label")
    return parts


def make_rule(
    rule_id: str = "snap-federal-gross-income",
    program_id: str = "snap-federal",
    logic=None,
    version: str = "1.0.0",
    rule_type: str = "eligibility",
    active: bool = True,
    draft: bool = False,
    **extra,
) -> dict:
    """Create a raw rule definition with required fields."""
    rule = {
        "id": rule_id,
        "programId": program_id,
        "name": extra.pop("name", rule_id.replace("-", " ").title()),
        "ruleLogic": SNAP_INCOME_LOGIC if logic is None else logic,
        "ruleType": rule_type,
        "version": make_version(version),
        "active": active,
        "draft": draft,
    }
    rule.update(extra)
    return rule


def make_snap_income_rule(**extra) -> dict:
    """SNAP gross income test at 130% of poverty."""
    extra.setdefault("explanation", "Your household's gross monthly income must be at or below 130% of the poverty line")
    extra.setdefault("requiredFields", ["householdIncome", "householdSize"])
    return make_rule("snap-federal-gross-income", logic=SNAP_INCOME_LOGIC, **extra)


def make_citizenship_rule(**extra) -> dict:
    extra.setdefault("explanation", "You must be a U.S. citizen or qualified non-citizen")
    extra.setdefault("requiredFields", ["citizenship"])
    return make_rule(
        "snap-federal-citizenship",
        logic={"in": [{"var": "citizenship"}, ["us_citizen", "permanent_resident", "refugee", "asylee"]]},
        **extra,
    )


def make_package(
    rules: list,
    package_id: str = "snap-federal-package",
    name: str = "SNAP Federal Rules",
    version: str = "1.0.0",
    with_checksum: bool = True,
    **metadata,
) -> dict:
    """Create a raw rule package, checksummed by default."""
    package = {
        "metadata": {
            "id": package_id,
            "name": name,
            "version": make_version(version),
            "createdAt": NOW_MS,
            "updatedAt": NOW_MS,
            **metadata,
        },
        "rules": rules,
    }
    if with_checksum:
        package["checksum"] = calculate_checksum(package)
    return package


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    """Empty in-memory rule store."""
    return InMemoryRuleStore()


@pytest.fixture
def monitor():
    """Performance monitor private to one test."""
    return PerformanceMonitor()


@pytest.fixture
def evaluator(monitor):
    """Isolated evaluator with benefit operators."""
    return LogicEvaluator(monitor=monitor)


@pytest.fixture
def import_service(store, evaluator):
    return ImportExportService(store=store, evaluator=evaluator)


@pytest.fixture
def versioning(store):
    return VersioningService(store=store)


@pytest.fixture
def eligibility(store, evaluator):
    return EligibilityService(evaluator=evaluator, store=store)
