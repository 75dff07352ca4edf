"""
Reference data administration endpoints.
"""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from oncosafe.core.auth import verify_api_key
from oncosafe.core.logging import get_logger
from oncosafe.core.rate_limit import limiter
from oncosafe.dependencies import get_reload_target
from oncosafe.schemas.reference import ReferenceValidateRequest, ReloadResponse, ValidationReport
from oncosafe.services.reference_store import ReferenceStore
from oncosafe.services.validator import validate_reference_data

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/reference/validate",
    response_model=ValidationReport,
    dependencies=[Depends(verify_api_key)]
)
@limiter.limit("30/minute")
async def validate_reference(
    request: Request,
    body: ReferenceValidateRequest
):
    """
    Validate reference documents without loading them.

    Returns every violation found, with its document and field path.
    """
    report, _ = validate_reference_data(body.aliases, body.interactions, body.regimens)
    return report


@router.post(
    "/reference/reload",
    response_model=ReloadResponse,
    dependencies=[Depends(verify_api_key)]
)
@limiter.limit("10/minute")
async def reload_reference(
    request: Request,
    store: ReferenceStore = Depends(get_reload_target)
):
    """
    Re-read the configured reference files and swap them in.

    A file that fails validation is rejected with 422 and the data already
    loaded keeps serving.
    """
    snapshot = await run_in_threadpool(store.load_configured)
    summary = snapshot.summary()
    logger.info("Reference data reloaded via API")

    return ReloadResponse(
        success=True,
        message="Reference data reloaded",
        counts={k: v for k, v in summary.items() if isinstance(v, int)}
    )
