"""
Pydantic models for evaluation performance data
"""
from typing import List, Literal, Optional
from pydantic import Field

from .rule import CamelModel


class PerformanceMetric(CamelModel):
    """Timing of a single evaluation"""
    id: str
    rule_id: Optional[str] = None
    execution_time: float = Field(..., ge=0, description="Milliseconds")
    timestamp: float = Field(..., description="Epoch milliseconds")
    success: bool = True
    depth: Optional[int] = None


class PerformanceStats(CamelModel):
    """Aggregate statistics over a set of metrics"""
    total_evaluations: int = 0
    average_time: float = 0.0
    median_time: float = 0.0
    min_time: float = 0.0
    max_time: float = 0.0
    p95_time: float = 0.0
    p99_time: float = 0.0
    std_deviation: float = 0.0
    evaluations_per_second: float = 0.0


class RulePerformanceProfile(CamelModel):
    """Performance history of one rule"""
    rule_id: str
    evaluation_count: int
    stats: PerformanceStats
    slowest_evaluations: List[PerformanceMetric] = Field(default_factory=list)
    fastest_evaluations: List[PerformanceMetric] = Field(default_factory=list)
    trend: Literal["improving", "stable", "degrading"] = "stable"


class PerformanceWarning(CamelModel):
    """A slow evaluation pattern worth attention"""
    message: str
    severity: Literal["info", "warning", "critical"] = "warning"
    rule_id: Optional[str] = None
    metric: str
    value: float
    threshold: float
