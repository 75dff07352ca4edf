"""
Drug identity endpoints.
"""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from oncosafe.core.errors import NotFoundError
from oncosafe.core.rate_limit import limiter
from oncosafe.dependencies import get_identity_resolver, get_store
from oncosafe.schemas.interactions import DrugResponse, ResolveRequest, ResolveResponse
from oncosafe.services.identity_resolver import DrugIdentityResolver
from oncosafe.services.reference_store import ReferenceStore

router = APIRouter()


@router.post("/drugs/resolve", response_model=ResolveResponse)
@limiter.limit("60/minute")
async def resolve_drugs(
    request: Request,
    body: ResolveRequest,
    resolver: DrugIdentityResolver = Depends(get_identity_resolver)
):
    """
    Resolve names, brand names and identifiers to canonical RxCUIs.

    Identifiers the local alias table does not know are looked up in one
    batched call to the external vocabulary.
    """
    return await resolver.resolve(body.identifiers)


@router.get("/drugs/{rxcui}", response_model=DrugResponse)
@limiter.limit("100/minute")
async def get_drug(
    request: Request,
    rxcui: str,
    store: ReferenceStore = Depends(get_store)
):
    """Get a catalog entry by RxCUI or any known alias."""
    snapshot = store.snapshot
    drug = snapshot.drugs.get(rxcui)
    if drug is None:
        canonical = snapshot.resolve_alias(rxcui)
        drug = snapshot.drugs.get(canonical) if canonical else None
    if drug is None:
        raise NotFoundError(f"Drug not found: {rxcui}", {"rxcui": rxcui})

    return DrugResponse(
        rxcui=drug.rxcui,
        name=drug.name,
        generic_name=drug.generic_name,
        brand_names=list(drug.brand_names),
        aliases=list(drug.aliases)
    )
