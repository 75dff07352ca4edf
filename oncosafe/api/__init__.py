"""API routes for the OncoSafeRx Interaction & Dosing Engine."""

from fastapi import APIRouter

from oncosafe.api.v1 import dosing, drugs, health, interactions, reference, regimens

# Create main API router
api_router = APIRouter()

# Include all v1 routes
api_router.include_router(health.router, tags=["health"])
api_router.include_router(interactions.router, tags=["interactions"])
api_router.include_router(drugs.router, tags=["drugs"])
api_router.include_router(regimens.router, tags=["regimens"])
api_router.include_router(dosing.router, tags=["dosing"])

# Reference data administration (API key protected)
api_router.include_router(reference.router, tags=["reference"])

__all__ = ["api_router"]
