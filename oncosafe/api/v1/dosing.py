"""
Dosing adjustment endpoints.
"""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from oncosafe.core.rate_limit import limiter
from oncosafe.dependencies import get_dosing_adjuster
from oncosafe.schemas.dosing import DosingAdjustRequest, DosingAdjustResponse
from oncosafe.services.dosing_adjuster import DosingAdjuster

router = APIRouter()


@router.post("/dosing/adjust", response_model=DosingAdjustResponse)
@limiter.limit("60/minute")
async def adjust_dosing(
    request: Request,
    body: DosingAdjustRequest,
    adjuster: DosingAdjuster = Depends(get_dosing_adjuster)
):
    """
    Recommend per-component dose modifications for a regimen.

    Safety thresholds (labs) are evaluated before pharmacogenomic rules; a
    hold from either pass always wins over a reduction.
    """
    return adjuster.adjust(body.regimen_id, body.labs, body.phenotypes)
