"""
API routes for evaluation performance data
"""
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query

from ..models.performance import PerformanceWarning, RulePerformanceProfile
from ..services.performance_monitor import performance_monitor

router = APIRouter(prefix="/performance", tags=["performance"])


@router.get("/report")
async def get_report():
    """Plain-text report with overall stats, warnings and per-rule timings"""
    return {"report": performance_monitor.generate_report()}


@router.get("/warnings", response_model=List[PerformanceWarning])
async def get_warnings(threshold_ms: Optional[float] = Query(None, gt=0, description="Slow evaluation threshold")):
    """Slow evaluation patterns"""
    return performance_monitor.get_warnings(threshold_ms)


@router.get("/rules/{rule_id}", response_model=RulePerformanceProfile)
async def get_rule_profile(rule_id: str):
    """Performance history of one rule"""
    profile = performance_monitor.get_rule_profile(rule_id)
    if profile.evaluation_count == 0:
        raise HTTPException(status_code=404, detail=f"No performance data for rule {rule_id}")
    return profile
