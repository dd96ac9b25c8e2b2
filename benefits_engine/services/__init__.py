"""
Services package for the Benefit Rules Engine
"""

from .logic_evaluator import LogicEvaluator
from .logic_validator import LogicValidator
from .rule_store import RuleStore, MongoRuleStore, InMemoryRuleStore
from .import_export_service import ImportExportService
from .import_manager import ImportManager
from .versioning_service import VersioningService
from .eligibility_service import EligibilityService
from .performance_monitor import PerformanceMonitor

__all__ = [
    "LogicEvaluator",
    "LogicValidator",
    "RuleStore",
    "MongoRuleStore",
    "InMemoryRuleStore",
    "ImportExportService",
    "ImportManager",
    "VersioningService",
    "EligibilityService",
    "PerformanceMonitor"
]
