"""
Drug-drug interaction endpoints.
"""

import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from starlette.requests import Request
from starlette.responses import Response

from oncosafe.core.rate_limit import limiter
from oncosafe.dependencies import get_interaction_engine
from oncosafe.schemas.interactions import (
    DrugInteractionsResponse,
    InteractionCheckRequest,
    InteractionCheckResponse,
    KnownInteractionsResponse,
)
from oncosafe.services.interaction_engine import InteractionMergeEngine, export_interactions

router = APIRouter()

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "tsv": "text/tab-separated-values; charset=utf-8",
}


def _export_filename(view: str, filters: dict[str, Optional[str]]) -> str:
    parts = [
        f"{name}-{re.sub(r'[^A-Za-z0-9]+', '-', value).strip('-')}"
        for name, value in filters.items()
        if value
    ]
    stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%SZ")
    return f"curated-interactions_{'_'.join(parts) or 'all'}_{stamp}.{view}"


@router.post("/interactions/check", response_model=InteractionCheckResponse)
@limiter.limit("60/minute")
async def check_interactions(
    request: Request,
    body: InteractionCheckRequest,
    engine: InteractionMergeEngine = Depends(get_interaction_engine)
):
    """
    Check every pair among 2-10 canonical drug identifiers.

    Curated records are authoritative; external records for the same pair are
    returned alongside them and flagged as non-primary. If the external
    service is unavailable the result is marked partial.
    """
    return await engine.check(body.drugs)


@router.get("/interactions/known", response_model=KnownInteractionsResponse)
@limiter.limit("100/minute")
async def known_interactions(
    request: Request,
    drug: Optional[str] = Query(None, description="RxCUI or drug name substring"),
    drug_a: Optional[str] = Query(None, description="One member of a pair, in either order"),
    drug_b: Optional[str] = Query(None, description="The other member of the pair"),
    severity: Optional[str] = Query(None, description="minor, moderate, major or contraindicated"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    view: str = Query("json", pattern="^(json|csv|tsv)$"),
    engine: InteractionMergeEngine = Depends(get_interaction_engine)
):
    """
    List curated interactions, optionally filtered.

    ``view=csv`` or ``view=tsv`` downloads the same rows as a file.
    """
    records, total = engine.known(
        drug=drug, severity=severity, limit=limit, drug_a=drug_a, drug_b=drug_b
    )
    filters = {"drug": drug, "drug_a": drug_a, "drug_b": drug_b, "severity": severity}

    if view != "json":
        return Response(
            content=export_interactions(records, view),
            media_type=EXPORT_MEDIA_TYPES[view],
            headers={
                "Content-Disposition": f'attachment; filename="{_export_filename(view, filters)}"'
            }
        )

    return KnownInteractionsResponse(
        count=len(records),
        total=total,
        filters={**filters, "limit": str(limit) if limit else None},
        interactions=records
    )


@router.get("/interactions/drug/{rxcui}", response_model=DrugInteractionsResponse)
@limiter.limit("60/minute")
async def drug_interactions(
    request: Request,
    rxcui: str,
    engine: InteractionMergeEngine = Depends(get_interaction_engine)
):
    """
    List every curated and external interaction partner of one drug, with a
    count of partners per severity level.
    """
    return await engine.for_drug(rxcui)
