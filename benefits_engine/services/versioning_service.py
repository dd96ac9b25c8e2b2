"""
Rule version lineage, migrations and version cleanup
"""
import copy
import inspect
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import settings
from ..exceptions import MigrationError, RuleNotFoundError
from ..models.rule import RuleChange, RuleDefinition, RuleVersion, get_current_timestamp_ms
from ..models.versioning import MigrationFailure, MigrationReport, VersionedRule, VersionMigration
from ..utils.versions import IncrementLevel, VersionLike, compare_versions, format_version, increment_version, to_version
from .import_export_service import record_to_rule_definition, rule_definition_to_record
from .rule_store import RuleStore, mongo_rule_store

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "0.1.0"


def _record_version(record) -> RuleVersion:
    return to_version(record.version or DEFAULT_VERSION)


def is_rule_version_id(rule_id: str, base_id: str) -> bool:
    """True for the base rule and for ids of the form {base_id}-v{version}"""
    pattern = rf"{re.escape(base_id)}(-v\d+\.\d+\.\d+(-[\w.-]+)?)?"
    return re.fullmatch(pattern, rule_id) is not None


def is_version_compatible(rule_version: VersionLike, target_version: VersionLike, allow_minor_mismatch: bool = True) -> bool:
    """
    Check whether a rule version can serve a target version

    Major versions must match. With allow_minor_mismatch the rule's minor
    may be ahead of the target, otherwise it must be equal.
    """
    rv, tv = to_version(rule_version), to_version(target_version)
    if rv.major != tv.major:
        return False
    if allow_minor_mismatch:
        return rv.minor >= tv.minor
    return rv.minor == tv.minor


def find_breaking_changes(rule: RuleDefinition, from_version: VersionLike, upto_version: VersionLike) -> List[RuleChange]:
    """Breaking changelog entries in (from_version, upto_version]"""
    return [
        change for change in rule.changelog or []
        if change.breaking
        and compare_versions(change.version, from_version) > 0
        and compare_versions(change.version, upto_version) <= 0
    ]


def get_version_changelog(rule: RuleDefinition, from_version: Optional[VersionLike] = None) -> str:
    """
    Render a rule's changelog as markdown

    Args:
        rule: Rule with changelog
        from_version: Only include entries newer than this

    Returns:
        Markdown text, or "No changelog available"
    """
    if not rule.changelog:
        return "No changelog available"

    changes = rule.changelog
    if from_version is not None:
        changes = [c for c in changes if compare_versions(c.version, from_version) > 0]

    lines = []
    for change in changes:
        date = datetime.fromtimestamp(change.date / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        breaking = " [BREAKING]" if change.breaking else ""
        lines.append(f"## Version {format_version(change.version)}{breaking} ({date})")
        lines.append(f"**Author:** {change.author}")
        lines.append(f"**Changes:** {change.description}")
        lines.append("")
    return "\n".join(lines)


class VersioningService:
    """Manages rule versions and per-program migration registries"""

    def __init__(self, store: Optional[RuleStore] = None):
        self.store = store if store is not None else mongo_rule_store
        self._migrations: Dict[str, List[VersionMigration]] = {}

    # ------------------------------------------------------------------
    # Lineage
    # ------------------------------------------------------------------

    async def get_all_rule_versions(self, rule_id: str) -> List[VersionedRule]:
        """The base rule and its "-v{version}" successors, newest first"""
        records = [r for r in await self.store.find_by_id_prefix(rule_id) if is_rule_version_id(r.rule_id, rule_id)]
        versions = [VersionedRule(record=r, version=_record_version(r)) for r in records]
        versions.sort(key=lambda v: (v.version.major, v.version.minor, v.version.patch), reverse=True)
        return versions

    async def get_latest_rule_version(self, rule_id: str) -> Optional[VersionedRule]:
        versions = await self.get_all_rule_versions(rule_id)
        return versions[0] if versions else None

    async def create_rule_version(
        self,
        rule_id: str,
        level: IncrementLevel,
        changes: str,
        author: Optional[str] = None,
        persist: bool = False
    ) -> RuleDefinition:
        """
        Derive a new version of a rule from its latest stored version

        Args:
            rule_id: Base rule id
            level: Which version part to increment
            changes: Description for the changelog entry
            author: Who made the change (defaults to "system")
            persist: Insert the new version into the store

        Returns:
            The new RuleDefinition with id "{rule_id}-v{version}"

        Raises:
            RuleNotFoundError: If no version of the rule exists
        """
        latest = await self.get_latest_rule_version(rule_id)
        if latest is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found", rule_id=rule_id)

        new_version = increment_version(latest.version, level)
        now = get_current_timestamp_ms()
        change = RuleChange(
            version=new_version,
            date=now,
            author=author or "system",
            description=changes,
            breaking=level == "major"
        )

        definition = record_to_rule_definition(latest.record)
        definition.update({
            "id": f"{rule_id}-v{format_version(new_version)}",
            "version": new_version.to_json_dict(),
            "supersedes": latest.record.rule_id,
            "createdAt": now,
            "updatedAt": now,
            "changelog": (definition.get("changelog") or []) + [change.to_json_dict()],
        })
        new_rule = RuleDefinition.model_validate(definition)

        if persist:
            await self.store.insert(rule_definition_to_record(new_rule))
        logger.info(f"Created version {format_version(new_version)} of rule {rule_id}")
        return new_rule

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    def register_migration(self, program_id: str, migration: VersionMigration):
        self._migrations.setdefault(program_id, []).append(migration)
        logger.debug(
            f"Registered migration {format_version(migration.from_version)} -> "
            f"{format_version(migration.to_version)} for {program_id}"
        )

    def get_migrations(self, program_id: str, from_version: VersionLike, upto_version: VersionLike) -> List[VersionMigration]:
        """Registered migrations inside [from_version, upto_version], ascending by from_version"""
        candidates = [
            m for m in self._migrations.get(program_id, [])
            if compare_versions(m.from_version, from_version) >= 0
            and compare_versions(m.to_version, upto_version) <= 0
        ]
        return sorted(candidates, key=lambda m: (m.from_version.major, m.from_version.minor, m.from_version.patch))

    async def migrate_rule(self, rule: Dict[str, Any], target_version: VersionLike) -> Dict[str, Any]:
        """
        Migrate a rule definition to the target version

        The applied migrations must form a contiguous chain starting at the
        rule's current version and ending exactly at the target.

        Args:
            rule: Rule definition dict (camelCase)
            target_version: Version to reach

        Returns:
            Migrated rule definition dict (the input is returned when it is
            already at or beyond the target)

        Raises:
            MigrationError: If the chain has a gap or does not reach the target
        """
        current = to_version(rule.get("version") or DEFAULT_VERSION)
        target = to_version(target_version)
        if compare_versions(current, target) >= 0:
            return rule

        gap_error = MigrationError(
            f"No migrations available from {format_version(current)} to {format_version(target)}",
            rule_id=rule.get("id")
        )
        available = self.get_migrations(rule.get("programId", ""), current, target)

        migrated = copy.deepcopy(rule)
        while compare_versions(current, target) < 0:
            step = next(
                (m for m in available
                 if compare_versions(m.from_version, current) == 0
                 and compare_versions(m.to_version, current) > 0),
                None
            )
            if step is None:
                raise gap_error

            outcome = step.migrate(migrated)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            migrated = outcome
            migrated["version"] = step.to_version.to_json_dict()
            current = step.to_version

        return migrated

    async def migrate_all_program_rules(self, program_id: str, target_version: Optional[VersionLike] = None) -> MigrationReport:
        """
        Migrate every stored rule of a program

        Each rule targets target_version, or its own next major version when
        none is given. A failing rule is reported and the batch continues.
        """
        records = await self.store.find_by_program_id(program_id)
        report = MigrationReport(total=len(records))

        for record in records:
            try:
                current = _record_version(record)
                target = to_version(target_version) if target_version is not None else RuleVersion(
                    major=current.major + 1, minor=0, patch=0
                )
                if compare_versions(current, target) >= 0:
                    report.skipped += 1
                    continue

                migrated = await self.migrate_rule(record_to_rule_definition(record), target)
                migrated.update({
                    "id": record.rule_id,
                    "createdAt": record.created_at,
                    "updatedAt": get_current_timestamp_ms(),
                })
                await self.store.upsert(rule_definition_to_record(RuleDefinition.model_validate(migrated)))
                report.migrated += 1
            except Exception as e:
                message = e.message if isinstance(e, MigrationError) else str(e)
                logger.warning(f"Migration of rule {record.rule_id} failed: {message}")
                report.errors.append(MigrationFailure(rule_id=record.rule_id, error=message))

        logger.info(
            f"Program {program_id} migration: {report.migrated} migrated, "
            f"{report.skipped} skipped, {len(report.errors)} failed"
        )
        return report

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def archive_old_versions(self, rule_id: str, keep_versions: Optional[int] = None) -> int:
        """Deactivate every version older than the newest keep_versions; returns how many"""
        keep = settings.archive_keep_versions if keep_versions is None else keep_versions
        versions = await self.get_all_rule_versions(rule_id)
        to_archive = versions[keep:]
        for entry in to_archive:
            await self.store.update(entry.record.rule_id, {"active": False, "draft": True})
        if to_archive:
            logger.info(f"Archived {len(to_archive)} old versions of {rule_id}")
        return len(to_archive)

    async def delete_old_versions(self, rule_id: str, keep_versions: Optional[int] = None) -> int:
        """Permanently remove every version older than the newest keep_versions"""
        keep = settings.delete_keep_versions if keep_versions is None else keep_versions
        versions = await self.get_all_rule_versions(rule_id)
        to_delete = versions[keep:]
        for entry in to_delete:
            await self.store.remove(entry.record.rule_id)
        if to_delete:
            logger.warning(f"Deleted {len(to_delete)} old versions of {rule_id}")
        return len(to_delete)


# Global versioning service instance
versioning_service = VersioningService()
