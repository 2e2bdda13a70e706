"""
Network API Endpoints.

Inspect and refresh the transit network snapshot used for route resolution.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from journey_backend.app.core.dependencies import get_graph_cache
from journey_backend.app.db.session import get_db
from journey_backend.app.schemas.network import NetworkRefreshResponse, NetworkSummaryResponse
from journey_backend.app.services.audit import AuditAction, log_event
from journey_backend.app.services.graph_cache import NetworkGraphCache

logger = logging.getLogger("journeys.network")

router = APIRouter(prefix="/network", tags=["Network"])


@router.post("/refresh", response_model=NetworkRefreshResponse)
async def refresh_network(
    db: AsyncSession = Depends(get_db),
    graph_cache: NetworkGraphCache = Depends(get_graph_cache)
):
    """
    Rebuild the network graph after ranks or routes changed.

    Bumps the shared network version so every worker picks up the change.
    """
    version = await graph_cache.invalidate()
    graph = await graph_cache.get_graph(db)

    await log_event(
        db,
        AuditAction.NETWORK_REFRESHED,
        metadata={"version": version, "rank_count": graph.rank_count, "edge_count": graph.edge_count}
    )
    await db.commit()
    logger.info("Network refreshed to version %s", version)

    return NetworkRefreshResponse(version=version, summary=graph_cache.summary())


@router.get("/summary", response_model=NetworkSummaryResponse)
async def get_network_summary(
    db: AsyncSession = Depends(get_db),
    graph_cache: NetworkGraphCache = Depends(get_graph_cache)
):
    """Current snapshot, loading it first if needed."""
    await graph_cache.get_graph(db)
    return graph_cache.summary()
