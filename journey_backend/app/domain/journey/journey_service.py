"""
Journey Service (Domain Logic).

Composes graph snapshot, resolver, assembler and lifecycle manager into the
operations exposed to the API. Every write is atomic: the journey, its
connections and the audit entry are committed together or not at all.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from journey_backend.app.core.config import settings
from journey_backend.app.core.exceptions import (
    AppException,
    ConcurrentModificationError,
    InvalidInputError,
    ResourceNotFoundError,
)
from journey_backend.app.domain.journey.journey_assembler import JourneyDraft, JourneyRequest, assemble
from journey_backend.app.domain.journey import lifecycle
from journey_backend.app.domain.journey.lifecycle import TransitionParams
from journey_backend.app.domain.network.route_resolver import (
    NoRoute,
    RoutingConstraints,
    resolve,
    resolve_options,
)
from journey_backend.app.models.journey import Journey
from journey_backend.app.models.journey_enums import JourneyEvent, JourneyStatus, JourneyType, OptimizeFor
from journey_backend.app.models.route_connection import RouteConnection
from journey_backend.app.models.taxi_rank import TaxiRank
from journey_backend.app.services.audit import AuditAction, log_event, log_journey_transition
from journey_backend.app.services.graph_cache import NetworkGraphCache

logger = logging.getLogger("journeys.service")


@dataclass(frozen=True)
class JourneySearchParams:
    """Filters and pagination for journey search."""
    user_id: Optional[str] = None
    status: Optional[JourneyStatus] = None
    journey_type: Optional[JourneyType] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    page: int = 1
    page_size: int = 20


def _parse_journey_id(journey_id: str) -> str:
    try:
        return str(uuid.UUID(str(journey_id)))
    except ValueError:
        raise InvalidInputError("Malformed journey id", details={"journey_id": journey_id})


def _check_rank_id(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInputError(f"{name} must be a positive integer", details={name: value})
    return value


class JourneyService:

    @staticmethod
    def _validate_request(request: JourneyRequest) -> JourneyRequest:
        if not request.user_id or not str(request.user_id).strip():
            raise InvalidInputError("user_id is required")
        _check_rank_id("origin_rank_id", request.origin_rank_id)
        _check_rank_id("destination_rank_id", request.destination_rank_id)
        if request.optimize_for is not None:
            try:
                OptimizeFor(request.optimize_for)
            except ValueError:
                raise InvalidInputError(
                    "optimize_for must be one of fare, duration, distance",
                    details={"optimize_for": request.optimize_for}
                )
        return request

    @staticmethod
    async def _load_ranks(db: AsyncSession, rank_ids) -> Dict[int, TaxiRank]:
        result = await db.execute(select(TaxiRank).where(TaxiRank.id.in_(set(rank_ids))))
        return {rank.id: rank for rank in result.scalars().all()}

    @staticmethod
    async def _require_endpoints(db: AsyncSession, origin: int, destination: int) -> Dict[int, TaxiRank]:
        ranks = await JourneyService._load_ranks(db, {origin, destination})
        for rank_id in (origin, destination):
            if rank_id not in ranks:
                raise ResourceNotFoundError("TaxiRank", rank_id)
        return ranks

    @staticmethod
    def _to_journey(draft: JourneyDraft, ranks: Dict[int, TaxiRank], graph_version: Optional[str]) -> Journey:
        waypoints = [
            {"rank_id": rank_id, "latitude": ranks[rank_id].latitude, "longitude": ranks[rank_id].longitude}
            for rank_id in draft.route_path
        ]
        journey = Journey(
            journey_id=str(uuid.uuid4()),
            user_id=draft.user_id,
            origin_rank_id=draft.origin_rank_id,
            destination_rank_id=draft.destination_rank_id,
            total_fare=draft.total_fare,
            total_duration_minutes=draft.total_duration_minutes,
            total_distance_km=draft.total_distance_km,
            hop_count=draft.hop_count,
            route_path=list(draft.route_path),
            waypoints=waypoints,
            journey_type=draft.journey_type,
            status=draft.status,
            meta_data={**draft.metadata, "graph_version": graph_version},
        )
        journey.connections = [
            RouteConnection(
                route_id=c.route_id,
                sequence_order=c.sequence_order,
                connection_rank_id=c.connection_rank_id,
                route_segment_index=c.route_segment_index,
                segment_fare=c.segment_fare,
                segment_duration_minutes=c.segment_duration_minutes,
                segment_distance_km=c.segment_distance_km,
                waiting_time_minutes=c.waiting_time_minutes,
            )
            for c in draft.connections
        ]
        return journey

    @staticmethod
    async def _commit(db: AsyncSession, journey_id: str) -> None:
        try:
            await db.commit()
        except StaleDataError:
            await db.rollback()
            logger.info("Stale write rejected for journey %s", journey_id)
            raise ConcurrentModificationError(journey_id)
        except Exception:
            await db.rollback()
            raise

    @staticmethod
    async def plan_journey(
        db: AsyncSession,
        graph_cache: NetworkGraphCache,
        request: JourneyRequest
    ) -> Journey:
        """
        Resolve, assemble and persist a journey.

        Flow:
        1. Validate request, confirm both ranks exist
        2. Resolve over the current graph snapshot
        3. Assemble against a fresh read of rank activity
        4. Commit journey + connections + audit entry atomically

        A missing route is not an error: the journey is stored as
        no_route_found.

        Raises:
            InvalidInputError, ResourceNotFoundError, InconsistentStateError
        """
        JourneyService._validate_request(request)
        origin, destination = request.origin_rank_id, request.destination_rank_id
        await JourneyService._require_endpoints(db, origin, destination)

        graph = await graph_cache.get_graph(db)
        constraints = RoutingConstraints.with_defaults(request.max_hops, request.optimize_for)
        result = resolve(graph, origin, destination, constraints)

        rank_ids = {origin, destination}
        if not isinstance(result, NoRoute):
            rank_ids.update(result.rank_path)
        ranks = await JourneyService._load_ranks(db, rank_ids)
        active_rank_ids = {rank_id for rank_id, rank in ranks.items() if rank.is_active}

        draft = assemble(result, request, active_rank_ids, settings.transfer_buffer_minutes)
        journey = JourneyService._to_journey(draft, ranks, graph.version)

        try:
            db.add(journey)
            await db.flush()
            await log_event(
                db,
                AuditAction.JOURNEY_PLANNED,
                actor_id=request.user_id,
                journey_id=journey.journey_id,
                metadata={
                    "journey_type": draft.journey_type.value,
                    "hop_count": draft.hop_count,
                    "total_fare": draft.total_fare,
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Planned journey %s: %s -> %s, %s, %s hops",
            journey.journey_id, origin, destination, draft.journey_type.value, draft.hop_count
        )
        return await JourneyService.get_journey(db, journey.journey_id, refresh=True)

    @staticmethod
    async def preview_options(
        db: AsyncSession,
        graph_cache: NetworkGraphCache,
        request: JourneyRequest
    ) -> List[Tuple[OptimizeFor, JourneyDraft]]:
        """
        Best path per optimisation criterion, assembled but not persisted.

        Returns:
            (criterion, draft) pairs, the requested criterion first; empty
            when no route exists
        """
        JourneyService._validate_request(request)
        origin, destination = request.origin_rank_id, request.destination_rank_id
        ranks = await JourneyService._require_endpoints(db, origin, destination)
        inactive = sorted(rank_id for rank_id, rank in ranks.items() if not rank.is_active)
        if inactive:
            raise InvalidInputError("Journey references inactive taxi ranks", details={"inactive_rank_ids": inactive})

        graph = await graph_cache.get_graph(db)
        constraints = RoutingConstraints.with_defaults(request.max_hops, request.optimize_for)
        paths = resolve_options(graph, origin, destination, constraints.max_hops, constraints.optimize_for)

        active_rank_ids = set(graph.nodes)
        return [
            (path.optimize_for, assemble(path, request, active_rank_ids, settings.transfer_buffer_minutes))
            for path in paths
        ]

    @staticmethod
    async def get_journey(db: AsyncSession, journey_id: str, refresh: bool = False) -> Journey:
        """
        Load a journey with its connections.

        refresh=True overwrites any copy already held by the session.
        """
        journey_id = _parse_journey_id(journey_id)
        stmt = (
            select(Journey)
            .options(selectinload(Journey.connections))
            .where(Journey.journey_id == journey_id)
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        journey = (await db.execute(stmt)).scalar_one_or_none()
        if journey is None:
            raise ResourceNotFoundError("Journey", journey_id)
        return journey

    @staticmethod
    async def list_journeys(db: AsyncSession, params: JourneySearchParams) -> Tuple[List[Journey], int]:
        """Search journeys, newest first. Returns (page items, total matches)."""
        if params.page < 1 or params.page_size < 1:
            raise InvalidInputError("page and page_size must be positive")
        if params.date_from and params.date_to and params.date_from > params.date_to:
            raise InvalidInputError("date_from must not be after date_to")

        filters = []
        if params.user_id:
            filters.append(Journey.user_id == params.user_id)
        if params.status:
            filters.append(Journey.status == JourneyStatus(params.status))
        if params.journey_type:
            filters.append(Journey.journey_type == JourneyType(params.journey_type))
        if params.date_from:
            filters.append(Journey.created_at >= params.date_from)
        if params.date_to:
            filters.append(Journey.created_at <= params.date_to)

        total = (await db.execute(select(func.count(Journey.id)).where(*filters))).scalar() or 0
        stmt = (
            select(Journey)
            .options(selectinload(Journey.connections))
            .where(*filters)
            .order_by(Journey.created_at.desc(), Journey.id.desc())
            .offset((params.page - 1) * params.page_size)
            .limit(params.page_size)
        )
        items = (await db.execute(stmt)).scalars().all()
        return list(items), total

    @staticmethod
    async def transition_journey(
        db: AsyncSession,
        journey_id: str,
        event: JourneyEvent,
        params: Optional[TransitionParams] = None,
        actor_id: Optional[str] = None
    ) -> Journey:
        """
        Apply a lifecycle event and persist it.

        A rejected event rolls the session back, which expires every object
        it holds; read ids into locals before calling.

        Raises:
            InvalidTransitionError, AlreadyRatedError, InvalidInputError,
            ConcurrentModificationError, ResourceNotFoundError
        """
        try:
            event = JourneyEvent(event)
        except ValueError:
            raise InvalidInputError("Unknown lifecycle event", details={"event": event})

        journey = await JourneyService.get_journey(db, journey_id)
        external_id = journey.journey_id
        previous_status = JourneyStatus(journey.status)

        try:
            lifecycle.apply_event(
                journey, event, params,
                rating_range=(settings.rating_min, settings.rating_max)
            )
            await log_journey_transition(db, journey, event, previous_status, actor_id=actor_id)
        except StaleDataError:
            await db.rollback()
            raise ConcurrentModificationError(external_id)
        except AppException:
            await db.rollback()
            raise

        new_status = JourneyStatus(journey.status)
        await JourneyService._commit(db, external_id)
        logger.info("Journey %s: %s (%s -> %s)", external_id, event.value, previous_status.value, new_status.value)
        return await JourneyService.get_journey(db, external_id, refresh=True)

    @staticmethod
    async def correct_waiting_time(
        db: AsyncSession,
        journey_id: str,
        sequence_order: int,
        minutes: float,
        expected_version: Optional[int] = None,
        actor_id: Optional[str] = None
    ) -> Journey:
        """
        Correct the waiting time of one hop of a planned journey.

        Like transition_journey, a rejected correction rolls the session back
        and expires objects already loaded from it.
        """
        journey = await JourneyService.get_journey(db, journey_id)
        external_id = journey.journey_id

        try:
            lifecycle.check_expectations(journey, expected_version=expected_version)
            previous_total = journey.total_duration_minutes
            connection = lifecycle.correct_waiting_time(journey, sequence_order, minutes)
            # Touch the journey row so its version moves with every correction
            journey.updated_at = datetime.utcnow()
            await log_event(
                db,
                AuditAction.JOURNEY_WAITING_CORRECTED,
                actor_id=actor_id if actor_id is not None else journey.user_id,
                journey_id=external_id,
                metadata={
                    "sequence_order": connection.sequence_order,
                    "waiting_time_minutes": connection.waiting_time_minutes,
                    "previous_total_duration_minutes": previous_total,
                    "total_duration_minutes": journey.total_duration_minutes,
                },
            )
        except StaleDataError:
            await db.rollback()
            raise ConcurrentModificationError(external_id)
        except AppException:
            await db.rollback()
            raise

        await JourneyService._commit(db, external_id)
        return await JourneyService.get_journey(db, external_id, refresh=True)
