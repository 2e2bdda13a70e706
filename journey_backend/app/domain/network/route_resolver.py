"""
Route Resolver.

Weighted shortest-path search over a NetworkGraph snapshot, restricted to
paths with at most `max_hops` edges.

The search runs Dijkstra over (rank, hops used) states with a
lexicographic key:

    (weight, hops, duration, distance, rank-id sequence, route-id sequence)

so equal-weight paths are ordered by fewer hops, then lower duration, then
lower distance, then the lowest rank ids. Every component only grows when a
path is extended, which keeps Dijkstra's pop order valid for the whole key.
"""

import enum
import heapq
import itertools
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from journey_backend.app.core.config import settings
from journey_backend.app.core.exceptions import InvalidInputError
from journey_backend.app.domain.network.graph_builder import GraphEdge, NetworkGraph
from journey_backend.app.models.journey_enums import OptimizeFor

logger = logging.getLogger("journeys.resolver")

# Float sums are compared at this precision so equal-cost paths tie
KEY_PRECISION = 6


class NoRouteReason(str, enum.Enum):
    SAME_RANK = "same_rank"
    EMPTY_NETWORK = "empty_network"
    RANK_NOT_IN_NETWORK = "rank_not_in_network"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class RoutingConstraints:
    """
    Resolution constraints.

    max_hops=None means the search is bounded only by the size of the graph.
    """
    max_hops: Optional[int] = 4
    optimize_for: OptimizeFor = OptimizeFor.FARE

    @classmethod
    def with_defaults(cls, max_hops: Optional[int] = None, optimize_for: Optional[OptimizeFor] = None) -> "RoutingConstraints":
        """Fill missing values from application settings."""
        return cls(
            max_hops=max_hops if max_hops is not None else settings.default_max_hops,
            optimize_for=OptimizeFor(optimize_for or settings.default_optimize_for),
        )

    def hop_limit(self, graph: NetworkGraph) -> int:
        if self.max_hops is None:
            return max(graph.rank_count, 1)
        if isinstance(self.max_hops, bool) or not isinstance(self.max_hops, int) or self.max_hops < 1:
            raise InvalidInputError(
                "max_hops must be a positive integer",
                details={"max_hops": self.max_hops}
            )
        return self.max_hops


@dataclass(frozen=True)
class NoRoute:
    """No path within the constraints. A valid outcome, not an error."""
    origin_rank_id: int
    destination_rank_id: int
    reason: NoRouteReason
    optimize_for: OptimizeFor = OptimizeFor.FARE
    max_hops: Optional[int] = None


@dataclass(frozen=True)
class ResolvedPath:
    """An ordered list of hops from origin to destination."""
    origin_rank_id: int
    destination_rank_id: int
    edges: Tuple[GraphEdge, ...]
    optimize_for: OptimizeFor = OptimizeFor.FARE
    max_hops: Optional[int] = None

    @property
    def hop_count(self) -> int:
        return len(self.edges)

    @property
    def rank_path(self) -> List[int]:
        return [self.origin_rank_id] + [edge.to_rank_id for edge in self.edges]

    @property
    def route_ids(self) -> List[int]:
        return [edge.route_id for edge in self.edges]

    @property
    def total_fare(self) -> float:
        return round(sum(edge.fare for edge in self.edges), 2)

    @property
    def travel_minutes(self) -> float:
        """Riding time only; waiting time is added by the assembler."""
        return round(sum(edge.duration_minutes for edge in self.edges), 2)

    @property
    def total_distance_km(self) -> float:
        return round(sum(edge.distance_km for edge in self.edges), 2)

    @property
    def cost(self) -> float:
        return round(sum(edge.weight(self.optimize_for) for edge in self.edges), 2)

    def signature(self) -> Tuple[Tuple[int, int, bool], ...]:
        return tuple((edge.route_id, edge.segment_index, edge.reverse) for edge in self.edges)


ResolutionResult = Union[ResolvedPath, NoRoute]


def _search(
    graph: NetworkGraph,
    origin: int,
    destination: int,
    hop_limit: int,
    optimize_for: OptimizeFor
) -> Optional[Tuple[GraphEdge, ...]]:
    counter = itertools.count()
    # (key, tie, rank, hops, weight, duration, distance, ranks, routes, edges)
    heap = [((0.0, 0, 0.0, 0.0, (origin,), ()), next(counter), origin, 0, 0.0, 0.0, 0.0, (origin,), (), ())]
    # Fewest hops with which each rank has been settled
    settled_hops = {}

    while heap:
        _, _, rank, hops, weight, duration, distance, ranks, routes, edges = heapq.heappop(heap)

        # A rank settled earlier with no more hops dominates this label
        if settled_hops.get(rank, hop_limit + 1) <= hops:
            continue
        settled_hops[rank] = hops

        if rank == destination:
            return edges
        if hops >= hop_limit:
            continue

        for edge in graph.edges_from(rank):
            next_hops = hops + 1
            if settled_hops.get(edge.to_rank_id, hop_limit + 1) <= next_hops:
                continue
            next_weight = weight + edge.weight(optimize_for)
            next_duration = duration + edge.duration_minutes
            next_distance = distance + edge.distance_km
            next_ranks = ranks + (edge.to_rank_id,)
            next_routes = routes + (edge.route_id,)
            key = (
                round(next_weight, KEY_PRECISION),
                next_hops,
                round(next_duration, KEY_PRECISION),
                round(next_distance, KEY_PRECISION),
                next_ranks,
                next_routes,
            )
            heapq.heappush(heap, (
                key, next(counter), edge.to_rank_id, next_hops,
                next_weight, next_duration, next_distance,
                next_ranks, next_routes, edges + (edge,)
            ))
    return None


def resolve(
    graph: NetworkGraph,
    origin: int,
    destination: int,
    constraints: Optional[RoutingConstraints] = None
) -> ResolutionResult:
    """
    Find the best path from origin to destination.

    Returns:
        ResolvedPath, or NoRoute when the ranks are the same, not in the
        network, or not connected within the hop limit
    """
    constraints = constraints or RoutingConstraints()
    hop_limit = constraints.hop_limit(graph)

    def no_route(reason: NoRouteReason) -> NoRoute:
        logger.debug("No route %s -> %s: %s", origin, destination, reason.value)
        return NoRoute(
            origin_rank_id=origin,
            destination_rank_id=destination,
            reason=reason,
            optimize_for=constraints.optimize_for,
            max_hops=constraints.max_hops,
        )

    if origin == destination:
        return no_route(NoRouteReason.SAME_RANK)
    if graph.is_empty:
        return no_route(NoRouteReason.EMPTY_NETWORK)
    if not graph.has_rank(origin) or not graph.has_rank(destination):
        return no_route(NoRouteReason.RANK_NOT_IN_NETWORK)

    edges = _search(graph, origin, destination, hop_limit, constraints.optimize_for)
    if edges is None:
        return no_route(NoRouteReason.UNREACHABLE)

    return ResolvedPath(
        origin_rank_id=origin,
        destination_rank_id=destination,
        edges=edges,
        optimize_for=constraints.optimize_for,
        max_hops=constraints.max_hops,
    )


def resolve_options(
    graph: NetworkGraph,
    origin: int,
    destination: int,
    max_hops: Optional[int] = 4,
    preferred: OptimizeFor = OptimizeFor.FARE
) -> List[ResolvedPath]:
    """
    Best path for each optimisation criterion, duplicates removed.

    The path for `preferred` comes first. Empty when no route exists.
    """
    order = [preferred] + [criterion for criterion in OptimizeFor if criterion != preferred]
    options: List[ResolvedPath] = []
    seen = set()
    for criterion in order:
        result = resolve(graph, origin, destination, RoutingConstraints(max_hops=max_hops, optimize_for=criterion))
        if isinstance(result, NoRoute):
            return []
        if result.signature() in seen:
            continue
        seen.add(result.signature())
        options.append(result)
    return options
