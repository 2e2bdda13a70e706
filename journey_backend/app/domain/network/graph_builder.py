"""
Network Graph Builder.

Materializes an immutable in-memory graph of taxi ranks (nodes) and
transit routes (edges) from persisted rank/route rows.

Every route is expanded into a chain of unit edges, one per consecutive
pair of waypoints. Each unit edge remembers the route it came from and its
position in that route's chain, so the assembler can rebuild per-segment
fares, durations and distances without knowing route shapes.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from journey_backend.app.domain.network.geo import haversine_distance
from journey_backend.app.models.journey_enums import OptimizeFor

logger = logging.getLogger("journeys.graph")

WEIGHT_FIELDS = ("fare", "duration_minutes", "distance_km")


@dataclass(frozen=True)
class RankNode:
    """A rank as seen by the resolver."""
    rank_id: int
    name: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]


@dataclass(frozen=True)
class GraphEdge:
    """
    One unit edge between two ranks.

    segment_index is the 0-based position of the edge in the direction of
    travel; reverse is True for the mirrored chain of a bidirectional route.
    """
    from_rank_id: int
    to_rank_id: int
    route_id: int
    segment_index: int
    segment_count: int
    fare: float
    duration_minutes: float
    distance_km: float
    transfer_time_minutes: Optional[float] = None
    reverse: bool = False

    def weight(self, optimize_for: OptimizeFor) -> float:
        if optimize_for == OptimizeFor.DURATION:
            return self.duration_minutes
        if optimize_for == OptimizeFor.DISTANCE:
            return self.distance_km
        return self.fare

    def continues_into(self, other: "GraphEdge") -> bool:
        """True when `other` is the next unit edge of the same route chain."""
        return (
            other.route_id == self.route_id
            and other.reverse == self.reverse
            and other.from_rank_id == self.to_rank_id
            and other.segment_index == self.segment_index + 1
        )


@dataclass(frozen=True)
class NetworkGraph:
    """Read-only snapshot of the transit network."""
    nodes: Mapping[int, RankNode]
    adjacency: Mapping[int, Tuple[GraphEdge, ...]]
    version: Optional[str] = None
    built_at: datetime = field(default_factory=datetime.utcnow)

    def has_rank(self, rank_id: int) -> bool:
        return rank_id in self.nodes

    def edges_from(self, rank_id: int) -> Tuple[GraphEdge, ...]:
        return self.adjacency.get(rank_id, ())

    @property
    def is_empty(self) -> bool:
        return not self.nodes or self.edge_count == 0

    @property
    def rank_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self.adjacency.values())


def _is_active(obj: Any) -> bool:
    # Transient objects without an explicit flag count as active
    return getattr(obj, "is_active", True) is not False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _waypoint_chain(route: Any) -> Optional[List[Tuple[int, Dict[str, Any]]]]:
    """
    Return the route's waypoint chain as (rank_id, explicit segment weights).

    Entries without a rank id are shape geometry and are skipped. Origin and
    destination are added when the chain omits them. Returns None when a
    waypoint cannot be read.
    """
    chain: List[Tuple[int, Dict[str, Any]]] = []
    for point in getattr(route, "route_points", None) or []:
        if isinstance(point, bool):
            continue
        if isinstance(point, int):
            rank_id, weights = point, {}
        elif isinstance(point, dict) and point.get("rank_id") is not None:
            try:
                rank_id = int(point["rank_id"])
            except (TypeError, ValueError):
                logger.warning("Skipping route %s with unreadable waypoint %r", route.id, point)
                return None
            weights = {name: point[name] for name in WEIGHT_FIELDS if point.get(name) is not None}
            if not all(_is_number(value) for value in weights.values()):
                logger.warning("Skipping route %s with non-numeric segment weights: %r", route.id, point)
                return None
        else:
            continue
        if chain and chain[-1][0] == rank_id:
            continue
        chain.append((rank_id, weights))

    if not chain or chain[0][0] != route.origin_rank_id:
        chain.insert(0, (route.origin_rank_id, {}))
    if chain[-1][0] != route.destination_rank_id:
        chain.append((route.destination_rank_id, {}))
    return chain


def _geo_shares(chain: List[Tuple[int, Dict[str, Any]]], nodes: Mapping[int, RankNode]) -> List[float]:
    """Great-circle length of every chain segment, or equal shares when unknown."""
    shares = []
    for (a, _), (b, _) in zip(chain, chain[1:]):
        node_a, node_b = nodes.get(a), nodes.get(b)
        if (
            node_a is None or node_b is None
            or None in (node_a.latitude, node_a.longitude, node_b.latitude, node_b.longitude)
        ):
            return [1.0] * (len(chain) - 1)
        shares.append(haversine_distance(node_a.latitude, node_a.longitude, node_b.latitude, node_b.longitude))
    if sum(shares) <= 0:
        return [1.0] * len(shares)
    return shares


def _distribute(amount: float, shares: List[float], indices: List[int], values: List[Optional[float]]) -> None:
    share_total = sum(shares[i] for i in indices)
    for i in indices[:-1]:
        values[i] = round(amount * shares[i] / share_total, 2) if share_total else 0.0
    assigned = sum(values[i] for i in indices[:-1])
    values[indices[-1]] = max(round(amount - assigned, 2), 0.0)


def _split_weight(total: Optional[float], explicit: List[Optional[float]], shares: List[float]) -> List[float]:
    """
    Split a route total across its segments.

    Explicit per-segment values are kept when they fit inside the total; the
    remainder is spread over the other segments in proportion to `shares`.
    When explicit values overshoot the total, or cover every segment without
    matching it, they become proportions of the total instead. A missing
    total is the sum of the explicit values.

    Values are rounded to cents and the last segment of each group absorbs
    the rounding remainder, so the result always sums to the total.
    """
    values = [round(float(v), 2) if v is not None else None for v in explicit]
    explicit_sum = round(sum(v for v in values if v is not None), 2)
    if total is None:
        total = explicit_sum
    free = [i for i, v in enumerate(values) if v is None]

    if free and explicit_sum <= total:
        _distribute(total - explicit_sum, shares, free, values)
        return values
    if not free and math.isclose(explicit_sum, total, abs_tol=1e-9):
        return values

    # Explicit values no longer fit: scale them to the total
    weights = [v if v is not None else 0.0 for v in values]
    if explicit_sum <= 0:
        weights = shares
    _distribute(total, weights, list(range(len(values))), values)
    return values


def _expand_route(route: Any, nodes: Mapping[int, RankNode]) -> List[GraphEdge]:
    totals = {name: getattr(route, name, None) for name in WEIGHT_FIELDS}
    if any(value is not None and not _is_number(value) for value in totals.values()):
        logger.warning("Skipping route %s with non-numeric weights: %s", route.id, totals)
        return []
    if any(value is not None and value < 0 for value in totals.values()):
        logger.warning("Skipping route %s with negative weights: %s", route.id, totals)
        return []

    chain = _waypoint_chain(route)
    if chain is None:
        return []
    explicit = {name: [weights.get(name) for _, weights in chain[1:]] for name in WEIGHT_FIELDS}
    if any(v is not None and v < 0 for values in explicit.values() for v in values):
        logger.warning("Skipping route %s with negative segment weights", route.id)
        return []

    shares = _geo_shares(chain, nodes)
    split = {name: _split_weight(totals[name], explicit[name], shares) for name in WEIGHT_FIELDS}
    segment_count = len(chain) - 1
    transfer_time = getattr(route, "transfer_time_minutes", None)

    edges: List[GraphEdge] = []
    for index in range(segment_count):
        from_rank_id, to_rank_id = chain[index][0], chain[index + 1][0]
        if from_rank_id not in nodes or to_rank_id not in nodes:
            logger.debug(
                "Route %s segment %s (%s->%s) touches an inactive rank",
                route.id, index, from_rank_id, to_rank_id
            )
            continue

        edge = GraphEdge(
            from_rank_id=from_rank_id,
            to_rank_id=to_rank_id,
            route_id=route.id,
            segment_index=index,
            segment_count=segment_count,
            fare=split["fare"][index],
            duration_minutes=split["duration_minutes"][index],
            distance_km=split["distance_km"][index],
            transfer_time_minutes=transfer_time,
        )
        edges.append(edge)

        if getattr(route, "is_bidirectional", False):
            edges.append(replace(
                edge,
                from_rank_id=to_rank_id,
                to_rank_id=from_rank_id,
                segment_index=segment_count - 1 - index,
                reverse=True,
            ))
    return edges


def build_graph(ranks: Iterable[Any], routes: Iterable[Any], version: Optional[str] = None) -> NetworkGraph:
    """
    Build a network graph snapshot.

    Args:
        ranks: Taxi ranks (ORM rows or any object with the same attributes)
        routes: Transit routes
        version: Network version the snapshot was built from

    Returns:
        NetworkGraph; empty when there are no active ranks or routes
    """
    nodes: Dict[int, RankNode] = {}
    for rank in ranks:
        if not _is_active(rank):
            continue
        nodes[rank.id] = RankNode(
            rank_id=rank.id,
            name=getattr(rank, "name", None),
            latitude=getattr(rank, "latitude", None),
            longitude=getattr(rank, "longitude", None),
        )

    adjacency: Dict[int, List[GraphEdge]] = {}
    skipped = 0
    for route in sorted(routes, key=lambda r: r.id):
        if not _is_active(route):
            continue
        edges = _expand_route(route, nodes)
        if not edges:
            skipped += 1
        for edge in edges:
            adjacency.setdefault(edge.from_rank_id, []).append(edge)

    frozen = {
        rank_id: tuple(sorted(edges, key=lambda e: (e.to_rank_id, e.route_id, e.segment_index, e.reverse)))
        for rank_id, edges in adjacency.items()
    }
    graph = NetworkGraph(
        nodes=MappingProxyType(nodes),
        adjacency=MappingProxyType(frozen),
        version=version,
    )
    logger.debug(
        "Built network graph: %s ranks, %s edges, %s routes unusable",
        graph.rank_count, graph.edge_count, skipped
    )
    return graph
