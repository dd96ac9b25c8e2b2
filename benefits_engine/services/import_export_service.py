"""
Import/export service for rule definitions and rule packages
"""
import json
import logging
from typing import Any, Dict, List, Optional

from ..exceptions import DuplicateRuleError, ErrorCode, RuleStoreError
from ..models.imports import ExportOptions, ImportOptions, ImportResult
from ..models.rule import RuleDefinition, RuleRecord, get_current_timestamp_ms
from ..utils.checksum import calculate_checksum
from ..utils.validators import validate_rule_definition, validate_rule_package
from ..utils.versions import compare_versions, format_version, to_version
from .logic_evaluator import LogicEvaluator
from .logic_validator import LogicValidator
from .rule_store import RuleStore, mongo_rule_store
from .rule_tester import run_rule_tests

logger = logging.getLogger(__name__)

# Definition keys held in dedicated record columns
RECORD_COLUMNS = {
    "id", "programId", "name", "version", "active", "draft",
    "ruleType", "ruleLogic", "createdAt", "updatedAt"
}

# Authoring metadata dropped when exporting without metadata
METADATA_KEYS = {"metadata", "changelog", "author", "createdBy", "createdAt", "updatedAt"}


def rule_definition_to_record(rule: RuleDefinition) -> RuleRecord:
    """
    Convert a rule definition to its persisted form

    Args:
        rule: Validated rule definition

    Returns:
        RuleRecord with the version stored as a formatted string
    """
    now = get_current_timestamp_ms()
    definition = {k: v for k, v in rule.to_json_dict().items() if k not in RECORD_COLUMNS}
    return RuleRecord(
        rule_id=rule.id,
        program_id=rule.program_id,
        name=rule.name,
        version=format_version(rule.version),
        active=rule.active,
        draft=rule.draft,
        rule_type=rule.rule_type,
        rule_logic=rule.rule_logic,
        definition=definition,
        created_at=rule.created_at or now,
        updated_at=rule.updated_at or now
    )


def record_to_rule_definition(record: RuleRecord, options: Optional[ExportOptions] = None) -> Dict[str, Any]:
    """
    Convert a persisted record back to rule file (camelCase JSON) form

    Args:
        record: Stored rule
        options: What to keep

    Returns:
        Rule definition dict
    """
    options = options or ExportOptions()
    definition: Dict[str, Any] = {
        "id": record.rule_id,
        "programId": record.program_id,
        "name": record.name,
        "ruleLogic": record.rule_logic,
        "ruleType": record.rule_type,
        "version": to_version(record.version).to_json_dict(),
        "active": record.active,
        "draft": record.draft,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }
    for key, value in record.definition.items():
        if key not in RECORD_COLUMNS:
            definition[key] = value

    if not options.include_tests:
        definition.pop("testCases", None)
    if not options.include_metadata:
        for key in METADATA_KEYS:
            definition.pop(key, None)
    return definition


class ImportExportService:
    """Validates, tests, resolves conflicts and persists rules; exports them back"""

    def __init__(
        self,
        store: Optional[RuleStore] = None,
        evaluator: Optional[LogicEvaluator] = None,
        validator: Optional[LogicValidator] = None
    ):
        self.store = store if store is not None else mongo_rule_store
        self.evaluator = evaluator or LogicEvaluator(monitor=None)
        self.validator = validator or LogicValidator()

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_rule(self, raw: Any, options: Optional[ImportOptions] = None) -> ImportResult:
        """
        Import a single rule

        Steps: schema validation, logic validation, embedded tests (warnings
        only), conflict resolution against the store, persist unless dry run.

        Args:
            raw: Rule definition (dict or RuleDefinition)
            options: Import options

        Returns:
            ImportResult for this rule
        """
        options = options or ImportOptions()
        result = ImportResult(dry_run=options.dry_run)

        if isinstance(raw, RuleDefinition):
            raw = raw.to_json_dict()
        raw_id = raw.get("id") if isinstance(raw, dict) else None

        # 1. Schema
        validation = validate_rule_definition(raw)
        if not validation.success:
            for err in validation.errors:
                location = f"{err.path}: " if err.path else ""
                result.add_error(f"Invalid rule format - {location}{err.message}", ErrorCode.INVALID_FORMAT, raw_id)
            result.failed = 1
            result.success = False
            return result

        rule: RuleDefinition = validation.data
        for message in validation.warnings:
            result.add_warning(message, rule.id)

        # 2. Logic
        if options.validate_logic:
            logic_report = self.validator.validate(rule.rule_logic)
            if not logic_report.valid:
                for issue in logic_report.errors:
                    result.add_error(f"Logic validation failed: {issue.message}", ErrorCode.INVALID_FORMAT, rule.id)
                result.failed = 1
                result.success = False
                return result
            for issue in logic_report.warnings:
                result.add_warning(issue.message, rule.id, issue.code)

        # 3. Embedded tests never block
        if not options.skip_tests and rule.test_cases:
            test_run = run_rule_tests(rule, self.evaluator)
            if test_run.failed:
                for case in test_run.results:
                    if not case.passed:
                        detail = case.error or f"expected {case.expected!r}, got {case.actual!r}"
                        result.add_warning(
                            f"Test case '{case.description}' failed: {detail}", rule.id, ErrorCode.TEST_FAILED
                        )
                result.add_warning("Continuing import despite test failures", rule.id, ErrorCode.TEST_FAILED)

        # 4. Conflicts
        try:
            existing = await self.store.find_by_id(rule.id)
        except RuleStoreError as e:
            result.add_error(f"Failed to check existing rule: {e.message}", ErrorCode.DATABASE_ERROR, rule.id)
            result.failed = 1
            result.success = False
            return result

        if existing is not None:
            if options.mode == "create":
                result.add_error(f"Rule with ID {rule.id} already exists", ErrorCode.DUPLICATE_ID, rule.id)
                result.failed = 1
                result.success = False
                return result
            if not options.overwrite_existing:
                result.add_warning("Rule exists and overwrite is disabled", rule.id)
                result.skipped = 1
                return result
            try:
                if compare_versions(rule.version, existing.version) <= 0:
                    result.add_warning("Importing older or same version over newer version", rule.id)
            except ValueError:
                logger.warning(f"Stored rule {rule.id} has unparseable version {existing.version!r}")
        elif options.mode == "update":
            result.add_warning("Rule does not exist and mode is update", rule.id)
            result.skipped = 1
            return result

        # 5. Persist
        if options.dry_run:
            result.add_warning("Dry run - rule not actually imported", rule.id)
            result.imported = 1
            return result

        record = rule_definition_to_record(rule)
        if existing is not None:
            record.created_at = existing.created_at
            record.updated_at = get_current_timestamp_ms()
        try:
            if options.mode == "create":
                await self.store.insert(record)
            else:
                await self.store.upsert(record)
        except DuplicateRuleError as e:
            result.add_error(e.message, ErrorCode.DUPLICATE_ID, rule.id)
            result.failed = 1
            result.success = False
            return result
        except RuleStoreError as e:
            result.add_error(f"Failed to save rule: {e.message}", ErrorCode.DATABASE_ERROR, rule.id)
            result.failed = 1
            result.success = False
            return result

        result.imported = 1
        logger.info(f"Imported rule {rule.id} v{format_version(rule.version)} ({options.mode})")
        return result

    async def import_rules(self, raws: List[Any], options: Optional[ImportOptions] = None) -> ImportResult:
        """
        Import a batch of rules; one rule's failure does not stop the others

        Args:
            raws: Rule definitions
            options: Import options shared by every rule

        Returns:
            Aggregated ImportResult
        """
        options = options or ImportOptions()
        total = ImportResult(dry_run=options.dry_run)
        for raw in raws:
            total.merge(await self.import_rule(raw, options))

        logger.info(
            f"Rule import finished: {total.imported} imported, {total.skipped} skipped, {total.failed} failed"
        )
        return total

    async def import_rule_package(self, raw: Any, options: Optional[ImportOptions] = None) -> ImportResult:
        """
        Import a rule package after verifying its checksum

        A schema failure or checksum mismatch rejects the whole package
        before any rule is imported.
        """
        options = options or ImportOptions()
        result = ImportResult(dry_run=options.dry_run)
        raw_rules = raw.get("rules") if isinstance(raw, dict) else None
        rule_count = len(raw_rules) if isinstance(raw_rules, list) else 1

        validation = validate_rule_package(raw)
        if not validation.success:
            for err in validation.errors:
                location = f"{err.path}: " if err.path else ""
                result.add_error(f"Invalid package format - {location}{err.message}", ErrorCode.INVALID_FORMAT)
            result.failed = rule_count
            result.success = False
            return result

        package = validation.data
        if package.checksum:
            actual = calculate_checksum(raw)
            if actual != package.checksum:
                logger.error(f"Checksum mismatch for package {package.metadata.id}")
                result.add_error(
                    "Package checksum mismatch - package may be corrupted", ErrorCode.CHECKSUM_MISMATCH
                )
                result.failed = rule_count
                result.success = False
                return result

        rules_result = await self.import_rules(raw_rules, options)
        rules_result.add_warning(
            f"Imported package: {package.metadata.name} v{format_version(package.metadata.version)}"
        )
        return rules_result

    async def import_from_json(self, text: str, options: Optional[ImportOptions] = None) -> ImportResult:
        """
        Import from a JSON document, choosing package, rule list or single
        rule by the document's shape
        """
        options = options or ImportOptions()
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            result = ImportResult(success=False, failed=1, dry_run=options.dry_run)
            result.add_error(f"Invalid JSON: {e}", ErrorCode.INVALID_FORMAT)
            return result

        if isinstance(data, dict) and "metadata" in data and "rules" in data:
            return await self.import_rule_package(data, options)
        if isinstance(data, list):
            return await self.import_rules(data, options)
        return await self.import_rule(data, options)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_rule(self, rule_id: str, options: Optional[ExportOptions] = None) -> Optional[Dict[str, Any]]:
        """Export one stored rule, or None if it does not exist"""
        record = await self.store.find_by_id(rule_id)
        if record is None:
            return None
        return record_to_rule_definition(record, options)

    async def export_rules(self, rule_ids: List[str], options: Optional[ExportOptions] = None) -> List[Dict[str, Any]]:
        """Export stored rules in the given order, skipping missing ids"""
        rules = []
        for rule_id in rule_ids:
            rule = await self.export_rule(rule_id, options)
            if rule is not None:
                rules.append(rule)
        return rules

    async def export_program_rules(self, program_id: str, options: Optional[ExportOptions] = None) -> List[Dict[str, Any]]:
        """Export every stored rule of a program"""
        records = await self.store.find_by_program_id(program_id)
        return [record_to_rule_definition(r, options) for r in sorted(records, key=lambda r: r.rule_id)]

    async def export_rule_package(
        self,
        package_name: str,
        rule_ids: Optional[List[str]] = None,
        program_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        options: Optional[ExportOptions] = None
    ) -> Dict[str, Any]:
        """
        Build a checksummed package from stored rules

        Args:
            package_name: Package name
            rule_ids: Rules to include
            program_id: Include every rule of this program instead
            metadata: Extra metadata fields (camelCase), e.g. version or jurisdiction
            options: Export options

        Returns:
            Package dict with checksum
        """
        if rule_ids is not None:
            rules = await self.export_rules(rule_ids, options)
        elif program_id is not None:
            rules = await self.export_program_rules(program_id, options)
        else:
            raise ValueError("Either rule_ids or program_id is required")

        now = get_current_timestamp_ms()
        package_metadata: Dict[str, Any] = {
            "id": f"package-{now}",
            "name": package_name,
            "version": {"major": 1, "minor": 0, "patch": 0},
            "createdAt": now,
            "updatedAt": now,
        }
        if program_id and not rule_ids:
            package_metadata["programs"] = [program_id]
        package_metadata.update(metadata or {})
        package_metadata["name"] = package_name

        package = {"metadata": package_metadata, "rules": rules}
        package["checksum"] = calculate_checksum(package)
        logger.info(f"Exported package {package_name} with {len(rules)} rules")
        return package

    async def export_to_json(self, rule_ids: List[str], options: Optional[ExportOptions] = None) -> str:
        options = options or ExportOptions()
        rules = await self.export_rules(rule_ids, options)
        return json.dumps(rules, indent=2 if options.pretty else None, ensure_ascii=False)

    async def export_package_to_json(
        self,
        package_name: str,
        rule_ids: Optional[List[str]] = None,
        program_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        options: Optional[ExportOptions] = None
    ) -> str:
        options = options or ExportOptions()
        package = await self.export_rule_package(package_name, rule_ids, program_id, metadata, options)
        return json.dumps(package, indent=2 if options.pretty else None, ensure_ascii=False)


# Global import/export service instance
import_export_service = ImportExportService()
