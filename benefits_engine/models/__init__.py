"""
Models package for the Benefit Rules Engine
"""

from .rule import (
    RuleVersion,
    RuleDefinition,
    RuleClassification,
    RequiredDocument,
    NextStep,
    RuleTestCase,
    RuleChange,
    RuleRecord
)

from .package import (
    RulePackage,
    RulePackageMetadata
)

from .imports import (
    ImportOptions,
    ImportResult,
    ImportState,
    ExportOptions
)

from .evaluation import (
    EvaluationResult,
    LogicValidationResult,
    SchemaValidationResult,
    RuleTestRunResult
)

from .eligibility import (
    ProgramEligibilityResult,
    EligibilityResults,
    EvaluationRequest
)

from .performance import (
    PerformanceMetric,
    PerformanceStats,
    RulePerformanceProfile
)

from .versioning import (
    VersionedRule,
    VersionMigration,
    MigrationReport
)

__all__ = [
    # Rule models
    "RuleVersion",
    "RuleDefinition",
    "RuleClassification",
    "RequiredDocument",
    "NextStep",
    "RuleTestCase",
    "RuleChange",
    "RuleRecord",

    # Package models
    "RulePackage",
    "RulePackageMetadata",

    # Import/export models
    "ImportOptions",
    "ImportResult",
    "ImportState",
    "ExportOptions",

    # Evaluation models
    "EvaluationResult",
    "LogicValidationResult",
    "SchemaValidationResult",
    "RuleTestRunResult",

    # Eligibility models
    "ProgramEligibilityResult",
    "EligibilityResults",
    "EvaluationRequest",

    # Performance models
    "PerformanceMetric",
    "PerformanceStats",
    "RulePerformanceProfile",

    # Versioning models
    "VersionedRule",
    "VersionMigration",
    "MigrationReport"
]
