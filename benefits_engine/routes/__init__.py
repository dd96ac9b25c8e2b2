"""
API routes for the Benefit Rules Engine
"""

from .rules import router as rules_router
from .versions import router as versions_router
from .eligibility import router as eligibility_router
from .performance import router as performance_router

__all__ = [
    "rules_router",
    "versions_router",
    "eligibility_router",
    "performance_router"
]
