"""
API routes for rule versions and migrations
"""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, HTTPException, Query

from ..exceptions import RuleNotFoundError, RuleEngineError
from ..models.rule import RuleDefinition
from ..models.versioning import CreateVersionRequest, MigrateProgramRequest, MigrationReport
from ..services.import_export_service import record_to_rule_definition
from ..services.versioning_service import get_version_changelog, versioning_service
from ..utils.versions import format_version

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/versions", tags=["versions"])


@router.get("/{rule_id}")
async def get_rule_versions(rule_id: str) -> List[Dict[str, Any]]:
    """All stored versions of a rule, newest first"""
    try:
        versions = await versioning_service.get_all_rule_versions(rule_id)
        return [
            {
                "ruleId": entry.record.rule_id,
                "version": format_version(entry.version),
                "active": entry.record.active,
                "draft": entry.record.draft,
                "updatedAt": entry.record.updated_at
            }
            for entry in versions
        ]
    except Exception as e:
        logger.error(f"Error getting versions of {rule_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{rule_id}")
async def create_rule_version(
    rule_id: str,
    request: CreateVersionRequest,
    persist: bool = Query(True, description="Store the new version")
) -> Dict[str, Any]:
    """Create the next version of a rule"""
    try:
        new_rule = await versioning_service.create_rule_version(
            rule_id,
            request.level,
            request.changes,
            author=request.author,
            persist=persist
        )
        return new_rule.to_json_dict()

    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except RuleEngineError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Error creating version of {rule_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{rule_id}/changelog")
async def get_changelog(rule_id: str, since: Optional[str] = Query(None, description="Only entries newer than this version")):
    """Markdown changelog of the latest version of a rule"""
    try:
        latest = await versioning_service.get_latest_rule_version(rule_id)
        if latest is None:
            raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
        rule = RuleDefinition.model_validate(record_to_rule_definition(latest.record))
        return {"ruleId": latest.record.rule_id, "changelog": get_version_changelog(rule, since)}

    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting changelog of {rule_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/program/{program_id}/migrate", response_model=MigrationReport)
async def migrate_program_rules(program_id: str, request: MigrateProgramRequest):
    """Migrate every rule of a program through the registered migrations"""
    try:
        return await versioning_service.migrate_all_program_rules(program_id, request.target_version)
    except Exception as e:
        logger.error(f"Error migrating rules of {program_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{rule_id}/archive")
async def archive_old_versions(rule_id: str, keep: Optional[int] = Query(None, ge=0, description="Versions to keep active")):
    """Deactivate all but the newest versions of a rule"""
    try:
        archived = await versioning_service.archive_old_versions(rule_id, keep)
        return {"ruleId": rule_id, "archived": archived}
    except Exception as e:
        logger.error(f"Error archiving versions of {rule_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/{rule_id}/old")
async def delete_old_versions(rule_id: str, keep: Optional[int] = Query(None, ge=0, description="Versions to keep")):
    """Permanently delete all but the newest versions of a rule"""
    try:
        deleted = await versioning_service.delete_old_versions(rule_id, keep)
        return {"ruleId": rule_id, "deleted": deleted}
    except Exception as e:
        logger.error(f"Error deleting versions of {rule_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
