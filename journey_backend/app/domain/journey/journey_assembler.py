"""
Journey Assembler.

Turns a resolution result into a Journey draft plus its RouteConnection
drafts. Totals are always recomputed from the segments and checked
against the journey invariants before anything is handed to persistence.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from journey_backend.app.core.exceptions import InconsistentStateError, InvalidInputError
from journey_backend.app.domain.network.route_resolver import NoRoute, ResolutionResult, ResolvedPath
from journey_backend.app.models.journey_enums import JourneyStatus, JourneyType, OptimizeFor

TOTALS_TOLERANCE = 1e-6


@dataclass(frozen=True)
class JourneyRequest:
    """Input of PlanJourney."""
    user_id: str
    origin_rank_id: int
    destination_rank_id: int
    max_hops: Optional[int] = None
    optimize_for: Optional[OptimizeFor] = None


@dataclass(frozen=True)
class ConnectionDraft:
    sequence_order: int
    route_id: int
    connection_rank_id: Optional[int]
    route_segment_index: int
    segment_fare: float
    segment_duration_minutes: float
    segment_distance_km: float
    waiting_time_minutes: float


@dataclass(frozen=True)
class JourneyDraft:
    user_id: str
    origin_rank_id: int
    destination_rank_id: int
    journey_type: JourneyType
    hop_count: int
    total_fare: float
    total_duration_minutes: float
    total_distance_km: float
    route_path: Tuple[int, ...]
    connections: Tuple[ConnectionDraft, ...] = ()
    status: JourneyStatus = JourneyStatus.PLANNED
    metadata: Dict[str, Any] = field(default_factory=dict)


def compute_totals(connections: Iterable[Any]) -> Tuple[float, float, float]:
    """(fare, duration including waiting, distance) summed over segments."""
    connections = list(connections)
    fare = round(sum(c.segment_fare for c in connections), 2)
    duration = round(
        sum(c.segment_duration_minutes for c in connections)
        + sum(c.waiting_time_minutes for c in connections),
        2
    )
    distance = round(sum(c.segment_distance_km for c in connections), 2)
    return fare, duration, distance


def verify_invariants(journey: Any, connections: Iterable[Any]) -> None:
    """
    Check a journey (draft or ORM row) against its connections.

    Raises:
        InconsistentStateError: naming the first broken invariant
    """
    connections = sorted(connections, key=lambda c: c.sequence_order)
    journey_type = JourneyType(journey.journey_type)
    route_path = list(journey.route_path or [])

    def fail(message: str, **details):
        raise InconsistentStateError(message, details={"journey_type": journey_type.value, **details})

    if journey.hop_count != len(connections):
        fail("hop_count does not match connection count", hop_count=journey.hop_count, connections=len(connections))

    orders = [c.sequence_order for c in connections]
    if orders != list(range(1, len(connections) + 1)):
        fail("sequence_order must be 1..N without gaps", sequence_orders=orders)

    fare, duration, distance = compute_totals(connections)
    for name, expected, actual in (
        ("total_fare", fare, journey.total_fare),
        ("total_duration_minutes", duration, journey.total_duration_minutes),
        ("total_distance_km", distance, journey.total_distance_km),
    ):
        if not math.isclose(expected, actual, abs_tol=TOTALS_TOLERANCE):
            fail(f"{name} does not match segment sum", expected=expected, actual=actual)

    if len(route_path) != journey.hop_count + 1:
        fail("route_path length must be hop_count + 1", route_path=route_path)
    if route_path[0] != journey.origin_rank_id:
        fail("route_path must start at the origin rank", route_path=route_path)

    if journey_type == JourneyType.NO_ROUTE_FOUND:
        if journey.hop_count != 0 or journey.total_fare != 0:
            fail("no_route_found journeys carry no hops and no fare")
        return

    if route_path[-1] != journey.destination_rank_id:
        fail("route_path must end at the destination rank", route_path=route_path)
    if journey_type == JourneyType.DIRECT and journey.hop_count != 1:
        fail("direct journeys have exactly one hop", hop_count=journey.hop_count)
    if journey_type == JourneyType.CONNECTED and journey.hop_count < 2:
        fail("connected journeys have at least two hops", hop_count=journey.hop_count)

    final = connections[-1]
    if final.connection_rank_id is not None or final.waiting_time_minutes != 0:
        fail("the final hop has no connection rank and no waiting time")
    for connection, next_rank in zip(connections[:-1], route_path[1:-1]):
        if connection.connection_rank_id != next_rank:
            fail(
                "connection_rank_id must be the rank where the hop ends",
                sequence_order=connection.sequence_order,
            )


def _waiting_minutes(path: ResolvedPath, index: int, transfer_buffer_minutes: float) -> float:
    edges = path.edges
    if index == len(edges) - 1:
        return 0.0
    edge = edges[index]
    if edge.continues_into(edges[index + 1]):
        return 0.0
    if edge.transfer_time_minutes is not None:
        return round(max(float(edge.transfer_time_minutes), 0.0), 2)
    return round(max(float(transfer_buffer_minutes), 0.0), 2)


def _check_ranks_active(rank_ids: Iterable[int], active_rank_ids: Set[int]) -> None:
    inactive = sorted(set(rank_ids) - set(active_rank_ids))
    if inactive:
        raise InvalidInputError(
            "Journey references inactive taxi ranks",
            details={"inactive_rank_ids": inactive}
        )


def assemble(
    result: ResolutionResult,
    request: JourneyRequest,
    active_rank_ids: Set[int],
    transfer_buffer_minutes: float = 0.0
) -> JourneyDraft:
    """
    Build a planned journey draft from a resolution result.

    Args:
        result: ResolvedPath or NoRoute from the resolver
        request: The planning request
        active_rank_ids: Ranks active at assembly time (fresh read)
        transfer_buffer_minutes: Waiting time for transfers when the route
            has no transfer time of its own

    Raises:
        InvalidInputError: inactive rank, or a path forwarded for a
            same-rank request
        InconsistentStateError: the result disagrees with the request or
            breaks an invariant
    """
    origin, destination = request.origin_rank_id, request.destination_rank_id

    if (result.origin_rank_id, result.destination_rank_id) != (origin, destination):
        raise InconsistentStateError(
            "Resolution result does not belong to this request",
            details={
                "request": [origin, destination],
                "result": [result.origin_rank_id, result.destination_rank_id],
            }
        )

    if isinstance(result, NoRoute):
        _check_ranks_active({origin, destination}, active_rank_ids)
        draft = JourneyDraft(
            user_id=request.user_id,
            origin_rank_id=origin,
            destination_rank_id=destination,
            journey_type=JourneyType.NO_ROUTE_FOUND,
            hop_count=0,
            total_fare=0.0,
            total_duration_minutes=0.0,
            total_distance_km=0.0,
            route_path=(origin,),
            metadata={
                "optimize_for": result.optimize_for.value,
                "max_hops": result.max_hops,
                "no_route_reason": result.reason.value,
            },
        )
        verify_invariants(draft, draft.connections)
        return draft

    if origin == destination:
        raise InvalidInputError(
            "Origin and destination ranks must differ",
            details={"origin_rank_id": origin, "destination_rank_id": destination}
        )

    rank_path = result.rank_path
    _check_ranks_active(rank_path, active_rank_ids)

    for previous, edge in zip(result.edges, result.edges[1:]):
        if previous.to_rank_id != edge.from_rank_id:
            raise InconsistentStateError(
                "Resolved path is not contiguous",
                details={"route_path": rank_path}
            )

    connections: List[ConnectionDraft] = []
    last = len(result.edges) - 1
    for index, edge in enumerate(result.edges):
        connections.append(ConnectionDraft(
            sequence_order=index + 1,
            route_id=edge.route_id,
            connection_rank_id=edge.to_rank_id if index < last else None,
            route_segment_index=edge.segment_index,
            segment_fare=edge.fare,
            segment_duration_minutes=edge.duration_minutes,
            segment_distance_km=edge.distance_km,
            waiting_time_minutes=_waiting_minutes(result, index, transfer_buffer_minutes),
        ))

    fare, duration, distance = compute_totals(connections)
    draft = JourneyDraft(
        user_id=request.user_id,
        origin_rank_id=origin,
        destination_rank_id=destination,
        journey_type=JourneyType.DIRECT if len(connections) == 1 else JourneyType.CONNECTED,
        hop_count=len(connections),
        total_fare=fare,
        total_duration_minutes=duration,
        total_distance_km=distance,
        route_path=tuple(rank_path),
        connections=tuple(connections),
        metadata={
            "optimize_for": result.optimize_for.value,
            "max_hops": result.max_hops,
            "route_ids": result.route_ids,
        },
    )
    verify_invariants(draft, draft.connections)
    return draft
