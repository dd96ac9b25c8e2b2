"""
Pydantic models for logic evaluation, logic validation and embedded tests
"""
from typing import Any, Dict, List, Optional
from pydantic import Field

from .rule import CamelModel


class EvaluationResult(CamelModel):
    """Outcome of evaluating one expression tree; never raised, always returned"""
    success: bool
    result: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    execution_time: Optional[float] = Field(None, description="Milliseconds")
    context: Optional[Dict[str, Any]] = None


class ValidationIssue(CamelModel):
    """Problem found in an expression tree"""
    code: str
    message: str
    path: str = ""
    severity: str = "error"


class LogicValidationResult(CamelModel):
    """Structural report on an expression tree"""
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    complexity: float = 0
    depth: int = 0
    operators: List[str] = Field(default_factory=list)
    variables: List[str] = Field(default_factory=list)


class SchemaFieldError(CamelModel):
    """Field-level schema violation"""
    path: str
    message: str
    expected: Optional[str] = None
    received: Optional[str] = None


class SchemaValidationResult(CamelModel):
    """Result of validating a raw rule or package"""
    success: bool
    data: Any = None
    errors: List[SchemaFieldError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class RuleTestCaseResult(CamelModel):
    """Outcome of one embedded test case"""
    id: str
    description: str
    passed: bool
    expected: Any = None
    actual: Any = None
    error: Optional[str] = None
    execution_time: float = 0.0


class RuleTestRunResult(CamelModel):
    """Outcome of all embedded test cases of one rule"""
    rule_id: str
    total: int = 0
    passed: int = 0
    failed: int = 0
    results: List[RuleTestCaseResult] = Field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return self.failed == 0
