"""
API routes for importing and exporting rules
"""
import logging
from typing import Any, Dict, List
from fastapi import APIRouter, HTTPException, Query

from ..exceptions import RuleEngineError
from ..models.imports import (
    ExportOptions,
    ImportResult,
    JsonImportRequest,
    PackageExportRequest,
    PackageImportRequest,
    RuleImportRequest
)
from ..services.import_export_service import import_export_service
from ..services.import_manager import import_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rules", tags=["rules"])


@router.post("/import", response_model=ImportResult)
async def import_rules(request: RuleImportRequest):
    """
    Import a batch of rule definitions

    With an importKey the batch goes through the import manager, which
    coalesces duplicate concurrent imports and retries failures.
    """
    try:
        if request.import_key:
            return await import_manager.import_rules(
                request.import_key,
                request.rules,
                request.options,
                force=request.force
            )
        return await import_export_service.import_rules(request.rules, request.options)

    except RuleEngineError as e:
        logger.error(f"Rule import failed: {e}")
        raise HTTPException(status_code=400, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Error importing rules: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/import/package", response_model=ImportResult)
async def import_package(request: PackageImportRequest):
    """Import a checksummed rule package"""
    try:
        return await import_export_service.import_rule_package(request.package, request.options)
    except Exception as e:
        logger.error(f"Error importing package: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/import/json", response_model=ImportResult)
async def import_json(request: JsonImportRequest):
    """Import a JSON document holding a package, a rule list or a single rule"""
    try:
        return await import_export_service.import_from_json(request.content, request.options)
    except Exception as e:
        logger.error(f"Error importing JSON: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{rule_id}/export")
async def export_rule(
    rule_id: str,
    include_tests: bool = Query(True, description="Keep embedded test cases"),
    include_metadata: bool = Query(True, description="Keep authoring metadata")
) -> Dict[str, Any]:
    """Export a stored rule as a rule definition"""
    try:
        options = ExportOptions(include_tests=include_tests, include_metadata=include_metadata)
        rule = await import_export_service.export_rule(rule_id, options)
        if rule is None:
            raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")
        return rule

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting rule {rule_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/program/{program_id}/export")
async def export_program_rules(
    program_id: str,
    include_tests: bool = Query(True, description="Keep embedded test cases"),
    include_metadata: bool = Query(True, description="Keep authoring metadata")
) -> List[Dict[str, Any]]:
    """Export every stored rule of a program"""
    try:
        options = ExportOptions(include_tests=include_tests, include_metadata=include_metadata)
        return await import_export_service.export_program_rules(program_id, options)
    except Exception as e:
        logger.error(f"Error exporting rules for program {program_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/export/package")
async def export_package(request: PackageExportRequest) -> Dict[str, Any]:
    """Build a checksummed package from stored rules"""
    name = request.metadata.get("name")
    if not name:
        raise HTTPException(status_code=400, detail="Package metadata must include a name")

    try:
        return await import_export_service.export_rule_package(
            name,
            rule_ids=request.rule_ids,
            program_id=request.program_id,
            metadata=request.metadata,
            options=request.options
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error exporting package {name}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
