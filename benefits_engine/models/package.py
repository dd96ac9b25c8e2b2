"""
Pydantic models for rule packages
"""
from typing import List, Optional
from pydantic import Field, model_validator

from .rule import CamelModel, RuleAuthor, RuleDefinition, RuleVersion


class RulePackageMetadata(CamelModel):
    """Shared metadata of a rule package"""
    id: str = Field(..., min_length=1, max_length=128, description="Package identifier")
    name: str = Field(..., min_length=1, max_length=200, description="Package name")
    description: Optional[str] = None
    version: RuleVersion
    author: Optional[RuleAuthor] = None
    license: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    jurisdiction: Optional[str] = None
    programs: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    created_at: int = Field(..., gt=0, description="Creation timestamp (epoch ms)")
    updated_at: int = Field(..., gt=0, description="Last update timestamp (epoch ms)")


class RulePackage(CamelModel):
    """Versioned, checksum-verifiable bundle of rules"""
    metadata: RulePackageMetadata
    rules: List[RuleDefinition] = Field(default_factory=list)
    checksum: Optional[str] = Field(None, max_length=128, description="SHA-256 over metadata and rules")
    signature: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_unique_rule_ids(self):
        seen = set()
        for rule in self.rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id in package: {rule.id}")
            seen.add(rule.id)
        return self
