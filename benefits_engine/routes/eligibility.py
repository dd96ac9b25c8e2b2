"""
API routes for eligibility evaluation
"""
import logging
from fastapi import APIRouter, HTTPException

from ..exceptions import RuleEngineError
from ..models.eligibility import EligibilityResults, EvaluationRequest
from ..services.eligibility_service import eligibility_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/eligibility", tags=["eligibility"])


@router.post("/evaluate", response_model=EligibilityResults)
async def evaluate_eligibility(request: EvaluationRequest):
    """
    Evaluate a household profile against every program's rules

    Rules come from the inline packages when supplied, otherwise from the
    rule store.
    """
    try:
        if not request.profile:
            raise HTTPException(status_code=400, detail="Household profile must not be empty")

        return await eligibility_service.check_eligibility(request)

    except HTTPException:
        raise
    except RuleEngineError as e:
        logger.warning(f"Rejected evaluation request: {e}")
        raise HTTPException(status_code=422, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Error evaluating eligibility: {e}")
        raise HTTPException(status_code=500, detail="Failed to evaluate eligibility")
