"""
Regimen template endpoints.
"""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from oncosafe.core.rate_limit import limiter
from oncosafe.dependencies import get_regimen_store
from oncosafe.schemas.regimens import Regimen, RegimenListResponse
from oncosafe.services.regimen_store import RegimenStore

router = APIRouter()


@router.get("/regimens", response_model=RegimenListResponse)
@limiter.limit("100/minute")
async def list_regimens(
    request: Request,
    regimens: RegimenStore = Depends(get_regimen_store)
):
    """List all regimen templates."""
    items = regimens.list()
    return RegimenListResponse(count=len(items), regimens=items)


@router.get("/regimens/{regimen_id}", response_model=Regimen)
@limiter.limit("100/minute")
async def get_regimen(
    request: Request,
    regimen_id: str,
    regimens: RegimenStore = Depends(get_regimen_store)
):
    """Get one regimen template (id is case-insensitive)."""
    return regimens.get(regimen_id)
