"""API v1 routes."""

from oncosafe.api.v1 import dosing, drugs, health, interactions, reference, regimens

__all__ = ["dosing", "drugs", "health", "interactions", "reference", "regimens"]
