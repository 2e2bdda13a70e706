"""
Network graph cache.

Holds the current NetworkGraph snapshot for this process. The snapshot is
rebuilt when the shared network version in Redis moves, or when its TTL
runs out. Redis is read through the circuit breaker; while it is
unavailable the cache falls back to TTL-only refresh.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from journey_backend.app.core.config import settings
from journey_backend.app.core.redis_client import redis_client
from journey_backend.app.core.reliability import CircuitBreaker, redis_circuit_breaker
from journey_backend.app.domain.network.graph_builder import NetworkGraph, build_graph
from journey_backend.app.models.taxi_rank import TaxiRank
from journey_backend.app.models.transit_route import TransitRoute

logger = logging.getLogger("journeys.graph_cache")

# Version reported when the key has never been bumped
INITIAL_VERSION = "0"


class NetworkGraphCache:

    def __init__(
        self,
        redis=None,
        ttl_seconds: int = 300,
        version_key: str = "network:graph:version",
        breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.version_key = version_key
        self.breaker = breaker or CircuitBreaker(failure_threshold=3, reset_timeout=30)
        self.clock = clock
        self._graph: Optional[NetworkGraph] = None
        self._loaded_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> Optional[NetworkGraph]:
        return self._graph

    async def current_version(self) -> Tuple[bool, Optional[str]]:
        """
        Read the shared network version.

        Returns:
            (available, version); available is False when Redis could not be
            reached and the caller must rely on the TTL
        """
        if self.redis is None:
            return False, None
        try:
            version = await self.breaker.call(self.redis.get, self.version_key)
        except Exception as e:
            logger.warning("Network version unavailable, using TTL refresh: %s", e)
            return False, None
        return True, str(version) if version is not None else INITIAL_VERSION

    def _is_stale(self, available: bool, version: Optional[str]) -> bool:
        if self._graph is None:
            return True
        if self.clock() - self._loaded_at >= self.ttl_seconds:
            return True
        return available and self._graph.version != version

    async def _load(self, db: AsyncSession, version: Optional[str]) -> NetworkGraph:
        ranks = (await db.execute(select(TaxiRank).where(TaxiRank.is_active == True))).scalars().all()
        routes = (await db.execute(select(TransitRoute).where(TransitRoute.is_active == True))).scalars().all()
        return build_graph(ranks, routes, version=version)

    async def get_graph(self, db: AsyncSession) -> NetworkGraph:
        """Return the current snapshot, rebuilding it first if it is stale."""
        available, version = await self.current_version()
        if not self._is_stale(available, version):
            return self._graph

        async with self._lock:
            # Another task may have rebuilt while we waited
            if not self._is_stale(available, version):
                return self._graph
            graph = await self._load(db, version if available else None)
            self._graph = graph
            self._loaded_at = self.clock()
            logger.info(
                "Network graph rebuilt (version=%s, ranks=%s, edges=%s)",
                graph.version, graph.rank_count, graph.edge_count
            )
            return graph

    def clear(self) -> None:
        """Drop the local snapshot; the next read rebuilds it."""
        self._graph = None
        self._loaded_at = 0.0

    async def invalidate(self) -> Optional[str]:
        """
        Mark the network as changed.

        Drops the local snapshot and bumps the shared version so other
        workers rebuild too.

        Returns:
            The new version, or None when Redis is unavailable
        """
        self.clear()
        if self.redis is None:
            return None
        try:
            version = await self.breaker.call(self.redis.incr, self.version_key)
        except Exception as e:
            logger.warning("Could not bump network version, other workers refresh on TTL: %s", e)
            return None
        return str(version)

    def summary(self) -> Dict[str, Any]:
        graph = self._graph
        if graph is None:
            return {"loaded": False, "version": None, "rank_count": 0, "edge_count": 0, "built_at": None}
        return {
            "loaded": True,
            "version": graph.version,
            "rank_count": graph.rank_count,
            "edge_count": graph.edge_count,
            "built_at": graph.built_at,
        }


network_graph_cache = NetworkGraphCache(
    redis=redis_client,
    ttl_seconds=settings.graph_cache_ttl_seconds,
    version_key=settings.network_version_key,
    breaker=redis_circuit_breaker,
)
