"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from journey_backend.app.api.v1.endpoints import journeys, network

router = APIRouter()

# Journey planning and lifecycle
router.include_router(journeys.router)

# Network snapshot
router.include_router(network.router)
