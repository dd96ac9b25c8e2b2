"""
Pydantic models for rule versioning and migrations
"""
from typing import Any, Callable, Dict, List, Literal, Optional
from pydantic import Field

from .rule import CamelModel, RuleRecord, RuleVersion


class VersionedRule(CamelModel):
    """A stored rule paired with its parsed version"""
    record: RuleRecord
    version: RuleVersion


class VersionMigration(CamelModel):
    """Transforms a rule definition from one version to the next"""
    from_version: RuleVersion
    to_version: RuleVersion
    description: str = ""
    migrate: Callable[[Dict[str, Any]], Any] = Field(..., exclude=True, description="Sync or async transform")


class MigrationFailure(CamelModel):
    """A rule that could not be migrated"""
    rule_id: str
    error: str


class MigrationReport(CamelModel):
    """Outcome of migrating every rule of a program"""
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: List[MigrationFailure] = Field(default_factory=list)


class CreateVersionRequest(CamelModel):
    """Request body for creating a new rule version"""
    level: Literal["major", "minor", "patch"] = "patch"
    changes: str = Field(..., min_length=1, description="Description of the changes")
    author: Optional[str] = None


class MigrateProgramRequest(CamelModel):
    """Request body for migrating a program's rules"""
    target_version: Optional[RuleVersion] = Field(None, description="Defaults to the next major version")
