"""
Shared FastAPI dependencies.

The graph cache is injected so tests can swap in one backed by a fake Redis.
"""

from journey_backend.app.services.graph_cache import NetworkGraphCache, network_graph_cache


async def get_graph_cache() -> NetworkGraphCache:
    """FastAPI dependency returning the process-wide network graph cache."""
    return network_graph_cache
