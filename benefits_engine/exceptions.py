"""
Exception hierarchy for the Benefit Rules Engine

Every error carries a stable machine-readable code and, where it concerns a
single rule, the rule id for correlation.
"""
from typing import Any, Dict, Optional


class ErrorCode:
    """Stable error codes surfaced in import results and API responses"""

    # Import / export
    DUPLICATE_ID = "DUPLICATE_ID"
    INVALID_FORMAT = "INVALID_FORMAT"
    CHECKSUM_MISMATCH = "CHECKSUM_MISMATCH"
    TEST_FAILED = "TEST_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PREVIOUS_FAILURE = "PREVIOUS_FAILURE"
    IMPORT_TIMEOUT = "IMPORT_TIMEOUT"

    # Evaluation
    EVAL_TIMEOUT = "EVAL_TIMEOUT"
    EVAL_INVALID_RULE = "EVAL_INVALID_RULE"
    EVAL_INVALID_DATA = "EVAL_INVALID_DATA"
    EVAL_MAX_DEPTH = "EVAL_MAX_DEPTH"
    EVAL_OPERATOR_ERROR = "EVAL_OPERATOR_ERROR"
    EVAL_UNKNOWN = "EVAL_UNKNOWN"

    # Logic validation
    VAL_INVALID_STRUCTURE = "VAL_INVALID_STRUCTURE"
    VAL_UNKNOWN_OPERATOR = "VAL_UNKNOWN_OPERATOR"
    VAL_DISALLOWED_OPERATOR = "VAL_DISALLOWED_OPERATOR"
    VAL_MAX_DEPTH = "VAL_MAX_DEPTH"
    VAL_MAX_COMPLEXITY = "VAL_MAX_COMPLEXITY"
    VAL_INVALID_OPERANDS = "VAL_INVALID_OPERANDS"

    # Versioning
    MIGRATION_GAP = "MIGRATION_GAP"
    RULE_NOT_FOUND = "RULE_NOT_FOUND"


class RuleEngineError(Exception):
    """
    Base exception for all rule engine errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
        rule_id: Associated rule id if applicable
    """

    default_code = "RULE_ENGINE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, rule_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.rule_id = rule_id

    def __str__(self) -> str:
        if self.rule_id:
            return f"[{self.code}] {self.message} (rule: {self.rule_id})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/API responses"""
        result: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.rule_id:
            result["rule_id"] = self.rule_id
        return result


class RuleNotFoundError(RuleEngineError):
    """Requested rule does not exist in the store"""
    default_code = ErrorCode.RULE_NOT_FOUND


class RuleStoreError(RuleEngineError):
    """Rule store operation failed"""
    default_code = ErrorCode.DATABASE_ERROR


class DuplicateRuleError(RuleStoreError):
    """Insert of a rule id that already exists"""
    default_code = ErrorCode.DUPLICATE_ID


class ChecksumMismatchError(RuleEngineError):
    """Package content does not match its declared checksum"""
    default_code = ErrorCode.CHECKSUM_MISMATCH


class MigrationError(RuleEngineError):
    """No migration chain covers the requested version gap"""
    default_code = ErrorCode.MIGRATION_GAP


class ImportTimeoutError(RuleEngineError):
    """An import attempt exceeded its time bound"""
    default_code = ErrorCode.IMPORT_TIMEOUT


class LogicEvaluationError(RuleEngineError):
    """Expression tree could not be evaluated"""
    default_code = ErrorCode.EVAL_UNKNOWN
