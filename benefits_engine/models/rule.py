"""
Pydantic models for rule definitions and their versions
"""
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic.alias_generators import to_camel


def get_current_timestamp_ms() -> int:
    """Get current epoch time in milliseconds"""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump to the camelCase JSON shape used in rule files"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


RuleType = Literal["eligibility", "benefit_amount", "document_requirements", "conditional"]


class RuleClassification(str, Enum):
    """Explicit authoring-time classification of a rule's role in a decision"""
    INCOME = "income"
    CATEGORICAL = "categorical"
    DOCUMENT = "document"
    OTHER = "other"


class RuleVersion(CamelModel):
    """Semantic version of a rule or package"""
    major: int = Field(..., ge=0, description="Major version")
    minor: int = Field(..., ge=0, description="Minor version")
    patch: int = Field(..., ge=0, description="Patch version")
    label: Optional[str] = Field(None, max_length=50, description="Pre-release label, e.g. beta")

    @model_validator(mode="before")
    @classmethod
    def parse_version_string(cls, data):
        # Persisted records and hand-written files may carry "1.2.3-beta"
        if isinstance(data, str):
            from ..utils.versions import parse_version_parts
            return parse_version_parts(data)
        return data

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.label}" if self.label else base


class RequiredDocument(CamelModel):
    """Document an applicant must provide"""
    id: str = Field(..., min_length=1, description="Document identifier")
    name: str = Field(..., min_length=1, description="Document name")
    description: Optional[str] = None
    required: bool = Field(default=True, description="Whether the document is mandatory")
    alternatives: Optional[List[str]] = Field(None, description="Acceptable substitute documents")
    where: Optional[str] = Field(None, description="Where to obtain the document")


class NextStep(CamelModel):
    """Action the applicant should take"""
    step: str = Field(..., min_length=1, description="Step description")
    url: Optional[str] = None
    priority: Optional[Literal["high", "medium", "low"]] = None
    estimated_time: Optional[str] = None


class RuleAuthor(CamelModel):
    """Author of a rule or package"""
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    organization: Optional[str] = None


class RuleCitation(CamelModel):
    """Legal or policy source backing a rule"""
    title: str = Field(..., min_length=1)
    url: Optional[str] = None
    document: Optional[str] = None
    date: Optional[str] = Field(None, description="Citation date (YYYY-MM-DD)")
    legal_reference: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        if v is not None and not re.match(r"^\d{4}-\d{2}-\d{2}$", v):
            raise ValueError("Citation date must be YYYY-MM-DD")
        return v


class RuleTestCase(CamelModel):
    """Embedded input/expected pair exercised on import"""
    id: str = Field(..., min_length=1)
    description: str = Field(..., description="What the case checks")
    input: Dict[str, Any] = Field(default_factory=dict, description="Test input data")
    expected: Any = Field(None, description="Expected evaluation result")
    tags: Optional[List[str]] = None


class RuleChange(CamelModel):
    """One changelog entry"""
    version: RuleVersion
    date: int = Field(..., gt=0, description="Change timestamp (epoch ms)")
    author: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    breaking: bool = False


class RuleDefinition(CamelModel):
    """A single evaluable unit of eligibility or benefit logic for one program"""
    id: str = Field(..., min_length=1, max_length=128, description="Globally unique rule identifier")
    program_id: str = Field(..., min_length=1, description="Program this rule belongs to")
    name: str = Field(..., min_length=1, max_length=200, description="Rule name")
    description: Optional[str] = None
    rule_logic: Any = Field(..., description="JSON-encoded expression tree")
    rule_type: RuleType = Field(default="eligibility")
    classification: Optional[RuleClassification] = Field(
        None, description="Role of the rule in a decision; inferred from id/name when absent"
    )
    explanation: Optional[str] = Field(None, description="Plain-language explanation")
    required_fields: Optional[List[str]] = None
    required_documents: Optional[List[RequiredDocument]] = None
    next_steps: Optional[List[NextStep]] = None
    version: RuleVersion
    effective_date: Optional[int] = Field(None, gt=0)
    expiration_date: Optional[int] = Field(None, gt=0)
    supersedes: Optional[str] = Field(None, max_length=128, description="Previous rule id this replaces")
    author: Optional[RuleAuthor] = None
    citations: Optional[List[RuleCitation]] = None
    source: Optional[str] = None
    legal_reference: Optional[str] = None
    active: bool = Field(..., description="Whether the rule participates in evaluation")
    draft: bool = False
    priority: Optional[int] = Field(None, ge=0)
    test_cases: Optional[List[RuleTestCase]] = None
    changelog: Optional[List[RuleChange]] = None
    created_at: Optional[int] = Field(None, gt=0)
    updated_at: Optional[int] = Field(None, gt=0)
    created_by: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    jurisdiction: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("source")
    @classmethod
    def validate_source(cls, v):
        if v is not None and not re.match(r"^https?://", v):
            raise ValueError("source must be an http(s) URL")
        return v

    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
        json_schema_extra={
            "example": {
                "id": "snap-federal-gross-income",
                "programId": "snap-federal",
                "name": "SNAP gross income test",
                "ruleLogic": {"snap_income_eligible": [{"var": "householdIncome"}, {"var": "householdSize"}]},
                "ruleType": "eligibility",
                "classification": "income",
                "explanation": "Your household's gross monthly income must be at or below 130% of the poverty line",
                "requiredFields": ["householdIncome", "householdSize"],
                "version": {"major": 1, "minor": 0, "patch": 0},
                "active": True,
                "testCases": [
                    {"id": "t1", "description": "Under limit", "input": {"householdIncome": 2000, "householdSize": 2}, "expected": True}
                ]
            }
        }
    )


class RuleRecord(BaseModel):
    """Rule as persisted in the rule store (version stored as a string)"""
    rule_id: str
    program_id: str
    name: str
    version: str
    active: bool
    draft: bool = False
    rule_type: str = "eligibility"
    rule_logic: Any = None
    definition: Dict[str, Any] = Field(default_factory=dict, description="Remaining definition fields, camelCase")
    created_at: int = Field(default_factory=get_current_timestamp_ms)
    updated_at: int = Field(default_factory=get_current_timestamp_ms)
