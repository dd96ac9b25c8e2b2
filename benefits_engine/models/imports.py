"""
Pydantic models for import and export operations
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import Field

from .rule import CamelModel

ImportMode = Literal["create", "update", "upsert", "replace"]


class ImportOptions(CamelModel):
    """How an import resolves conflicts and what it checks"""
    mode: ImportMode = Field(default="upsert", description="Conflict resolution mode")
    validate_logic: bool = Field(default=True, alias="validate", description="Validate rule logic before import")
    skip_tests: bool = Field(default=False, description="Skip embedded test cases")
    overwrite_existing: bool = Field(default=True, description="Overwrite rules that already exist")
    dry_run: bool = Field(default=False, description="Run every check but persist nothing")


class ImportIssue(CamelModel):
    """An error raised while importing"""
    rule_id: Optional[str] = None
    message: str
    code: Optional[str] = None


class ImportWarning(CamelModel):
    """A non-blocking notice raised while importing"""
    rule_id: Optional[str] = None
    message: str
    code: Optional[str] = None


class ImportResult(CamelModel):
    """Outcome of an import call"""
    success: bool = True
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[ImportIssue] = Field(default_factory=list)
    warnings: List[ImportWarning] = Field(default_factory=list)
    dry_run: bool = False

    def add_error(self, message: str, code: Optional[str] = None, rule_id: Optional[str] = None):
        self.errors.append(ImportIssue(rule_id=rule_id, message=message, code=code))

    def add_warning(self, message: str, rule_id: Optional[str] = None, code: Optional[str] = None):
        self.warnings.append(ImportWarning(rule_id=rule_id, message=message, code=code))

    def merge(self, other: "ImportResult"):
        """Fold another result into this one"""
        self.imported += other.imported
        self.skipped += other.skipped
        self.failed += other.failed
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.success = self.success and other.success


class ExportOptions(CamelModel):
    """What an export keeps"""
    include_tests: bool = Field(default=True, description="Keep embedded test cases")
    include_metadata: bool = Field(default=True, description="Keep authoring metadata")
    pretty: bool = Field(default=True, description="Indent JSON output")


class PackageExportRequest(CamelModel):
    """Request body for building a package from stored rules"""
    metadata: Dict[str, Any]
    rule_ids: Optional[List[str]] = None
    program_id: Optional[str] = None
    options: ExportOptions = Field(default_factory=ExportOptions)


class RuleImportRequest(CamelModel):
    """Request body for importing raw rules"""
    rules: List[Any]
    options: ImportOptions = Field(default_factory=ImportOptions)
    import_key: Optional[str] = Field(None, description="Key used to coalesce duplicate imports")
    force: bool = False


class ImportState(CamelModel):
    """Tracked state of one import key"""
    is_importing: bool = False
    last_import_time: int = Field(default=0, description="Epoch ms of the last successful import")
    import_count: int = 0
    last_failed: bool = False
    last_succeeded: bool = False
    last_error: Optional[str] = None


class PackageImportRequest(CamelModel):
    """Request body for importing a rule package"""
    package: Dict[str, Any]
    options: ImportOptions = Field(default_factory=ImportOptions)


class JsonImportRequest(CamelModel):
    """Request body for importing a JSON document (package, rule list or single rule)"""
    content: str = Field(..., min_length=1)
    options: ImportOptions = Field(default_factory=ImportOptions)
