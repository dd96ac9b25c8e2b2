"""
Pydantic models for eligibility evaluation results
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import Field, ConfigDict

from .rule import CamelModel, RequiredDocument, NextStep


def get_current_utc_time():
    """Get current UTC time for default values"""
    return datetime.now(timezone.utc)


EligibilityStatus = Literal["qualified", "likely", "maybe", "unlikely", "not-qualified", "indeterminate"]
ConfidenceLevel = Literal["high", "medium", "low"]


class Calculation(CamelModel):
    """Structured figure shown alongside an explanation"""
    label: str
    value: Union[str, int, float]
    comparison: Optional[str] = None


class EligibilityExplanation(CamelModel):
    """Why a program got its status"""
    reason: str
    details: List[str] = Field(default_factory=list)
    rules_cited: List[str] = Field(default_factory=list)
    calculations: Optional[List[Calculation]] = None


class ProgramEligibilityResult(CamelModel):
    """Eligibility verdict for one program, recomputed on every request"""
    program_id: str
    program_name: str
    program_description: str = ""
    jurisdiction: str
    status: EligibilityStatus
    confidence: ConfidenceLevel
    confidence_score: int = Field(..., ge=0, le=100)
    explanation: EligibilityExplanation
    required_documents: List[RequiredDocument] = Field(default_factory=list)
    next_steps: List[NextStep] = Field(default_factory=list)
    evaluated_at: datetime = Field(default_factory=get_current_utc_time)
    rules_version: str = ""
    income_hard_stop: bool = Field(default=False, description="Income rule failed and evaluation stopped")
    failed_rule_ids: List[str] = Field(default_factory=list)
    categorical_failure: bool = Field(default=False, description="A rule classified categorical failed")


class EligibilityResults(CamelModel):
    """Programs partitioned by outcome"""
    qualified: List[ProgramEligibilityResult] = Field(default_factory=list)
    likely: List[ProgramEligibilityResult] = Field(default_factory=list)
    maybe: List[ProgramEligibilityResult] = Field(default_factory=list)
    not_qualified: List[ProgramEligibilityResult] = Field(default_factory=list)
    income_hard_stops: List[ProgramEligibilityResult] = Field(default_factory=list)
    total_programs: int = 0
    evaluated_at: datetime = Field(default_factory=get_current_utc_time)


class EvaluationRequest(CamelModel):
    """Request body for evaluating a household against stored or supplied rules"""
    profile: Dict[str, Any] = Field(..., description="Flat household field to value map")
    program_ids: Optional[List[str]] = Field(None, description="Restrict to these programs")
    packages: Optional[List[Dict[str, Any]]] = Field(None, description="Inline rule packages to evaluate")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "profile": {"householdIncome": 2000, "householdSize": 2, "age": 34, "citizenship": "us_citizen"},
                "programIds": ["snap-federal"]
            }
        }
    )
