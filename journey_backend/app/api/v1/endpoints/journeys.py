"""
Journey API Endpoints.

Plan journeys, preview alternatives, browse history and drive the journey
lifecycle. Static paths are declared before /{journey_id}.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from journey_backend.app.core.dependencies import get_graph_cache
from journey_backend.app.db.session import get_db
from journey_backend.app.domain.journey.journey_assembler import JourneyRequest
from journey_backend.app.domain.journey.journey_service import JourneySearchParams, JourneyService
from journey_backend.app.domain.journey.lifecycle import TransitionParams
from journey_backend.app.models.journey_enums import JourneyStatus, JourneyType, OptimizeFor
from journey_backend.app.schemas.journey import (
    JourneyListResponse,
    JourneyResponse,
    JourneyStatsResponse,
    JourneyTransitionRequest,
    PlanJourneyRequest,
    PopularRouteResponse,
    RouteConnectionResponse,
    RouteOptionResponse,
    RouteOptionsResponse,
    WaitingTimeUpdate,
)
from journey_backend.app.services.graph_cache import NetworkGraphCache
from journey_backend.app.services.journey_analytics import JourneyAnalytics

router = APIRouter(prefix="/journeys", tags=["Journeys"])


@router.post("", response_model=JourneyResponse, status_code=status.HTTP_201_CREATED)
async def plan_journey(
    payload: PlanJourneyRequest,
    db: AsyncSession = Depends(get_db),
    graph_cache: NetworkGraphCache = Depends(get_graph_cache)
):
    """
    Plan a journey between two ranks.

    A journey is always created; when the ranks are not connected it is
    stored with journey_type `no_route_found`.
    """
    request = JourneyRequest(**payload.model_dump())
    return await JourneyService.plan_journey(db, graph_cache, request)


@router.get("/options", response_model=RouteOptionsResponse)
async def preview_route_options(
    origin_rank_id: int = Query(...),
    destination_rank_id: int = Query(...),
    max_hops: Optional[int] = Query(None),
    optimize_for: Optional[OptimizeFor] = Query(None),
    db: AsyncSession = Depends(get_db),
    graph_cache: NetworkGraphCache = Depends(get_graph_cache)
):
    """Best path for each optimisation criterion. Nothing is persisted."""
    request = JourneyRequest(
        user_id="preview",
        origin_rank_id=origin_rank_id,
        destination_rank_id=destination_rank_id,
        max_hops=max_hops,
        optimize_for=optimize_for,
    )
    options = await JourneyService.preview_options(db, graph_cache, request)
    return RouteOptionsResponse(
        origin_rank_id=origin_rank_id,
        destination_rank_id=destination_rank_id,
        options=[
            RouteOptionResponse(
                optimize_for=criterion,
                journey_type=draft.journey_type,
                hop_count=draft.hop_count,
                total_fare=draft.total_fare,
                total_duration_minutes=draft.total_duration_minutes,
                total_distance_km=draft.total_distance_km,
                route_path=list(draft.route_path),
                connections=[RouteConnectionResponse.model_validate(c) for c in draft.connections],
            )
            for criterion, draft in options
        ],
    )


@router.get("", response_model=JourneyListResponse)
async def list_journeys(
    user_id: Optional[str] = Query(None),
    status_filter: Optional[JourneyStatus] = Query(None, alias="status"),
    journey_type: Optional[JourneyType] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Search journeys, newest first."""
    params = JourneySearchParams(
        user_id=user_id,
        status=status_filter,
        journey_type=journey_type,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    journeys, total = await JourneyService.list_journeys(db, params)
    return JourneyListResponse(
        journeys=[JourneyResponse.model_validate(j) for j in journeys],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/stats", response_model=JourneyStatsResponse)
async def get_journey_stats(
    user_id: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Journey counts, spend and averages."""
    return await JourneyAnalytics.get_journey_stats(db, user_id, date_from, date_to)


@router.get("/popular-routes", response_model=List[PopularRouteResponse])
async def get_popular_routes(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Most frequently planned origin/destination pairs."""
    return await JourneyAnalytics.get_popular_routes(db, limit)


@router.get("/{journey_id}", response_model=JourneyResponse)
async def get_journey(
    journey_id: str = Path(..., description="Journey UUID"),
    db: AsyncSession = Depends(get_db)
):
    return await JourneyService.get_journey(db, journey_id)


@router.post("/{journey_id}/transitions", response_model=JourneyResponse)
async def transition_journey(
    payload: JourneyTransitionRequest,
    journey_id: str = Path(..., description="Journey UUID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a lifecycle event: start, complete, cancel or rate.

    Send expected_version (or expected_status) to have the change rejected
    with 409 when someone else changed the journey first.
    """
    params = TransitionParams(
        cancellation_reason=payload.cancellation_reason,
        rating=payload.rating,
        feedback=payload.feedback,
        expected_status=payload.expected_status,
        expected_version=payload.expected_version,
    )
    return await JourneyService.transition_journey(db, journey_id, payload.event, params)


@router.patch("/{journey_id}/connections/{sequence_order}", response_model=JourneyResponse)
async def correct_waiting_time(
    payload: WaitingTimeUpdate,
    journey_id: str = Path(..., description="Journey UUID"),
    sequence_order: int = Path(..., description="Hop number, 1-based"),
    db: AsyncSession = Depends(get_db)
):
    """Correct the waiting time after one hop of a planned journey."""
    return await JourneyService.correct_waiting_time(
        db,
        journey_id,
        sequence_order,
        payload.waiting_time_minutes,
        expected_version=payload.expected_version,
    )
