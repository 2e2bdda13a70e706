"""
Journey service tests against the in-memory database.
"""

import pytest
from sqlalchemy import select

from journey_backend.app.core.exceptions import (
    AlreadyRatedError,
    ConcurrentModificationError,
    InvalidInputError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from journey_backend.app.domain.journey.journey_assembler import JourneyRequest
from journey_backend.app.domain.journey.journey_service import JourneySearchParams, JourneyService
from journey_backend.app.domain.journey.lifecycle import TransitionParams
from journey_backend.app.models.journey import Journey
from journey_backend.app.models.journey_enums import JourneyEvent, JourneyStatus, JourneyType, OptimizeFor
from journey_backend.app.models.route_connection import RouteConnection
from journey_backend.app.models.taxi_rank import TaxiRank
from journey_backend.app.services.audit import AuditAction, get_journey_audit_trail
from journey_backend.app.services.journey_analytics import JourneyAnalytics


def plan_request(network, origin, destination, **kwargs):
    return JourneyRequest(
        user_id=kwargs.pop("user_id", "traveller-1"),
        origin_rank_id=network[origin],
        destination_rank_id=network[destination],
        **kwargs
    )


async def test_plan_connected_journey(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))

    assert journey.journey_type == JourneyType.CONNECTED
    assert journey.status == JourneyStatus.PLANNED
    assert journey.hop_count == 2
    assert journey.total_fare == 25
    assert journey.total_duration_minutes == 45
    assert journey.route_path == [network["A"], network["B"], network["C"]]
    assert journey.version == 1
    assert [c.sequence_order for c in journey.connections] == [1, 2]
    assert journey.connections[0].connection_rank_id == network["B"]
    assert journey.connections[1].connection_rank_id is None
    assert [w["rank_id"] for w in journey.waypoints] == journey.route_path
    assert journey.meta_data["optimize_for"] == "fare"

    stored = (await db_session.execute(
        select(RouteConnection).where(RouteConnection.journey_id == journey.journey_id)
    )).scalars().all()
    assert len(stored) == 2

    trail = await get_journey_audit_trail(db_session, journey_id=journey.journey_id)
    assert [entry.action for entry in trail] == [AuditAction.JOURNEY_PLANNED]


async def test_plan_isolated_destination(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "D"))

    assert journey.journey_type == JourneyType.NO_ROUTE_FOUND
    assert journey.hop_count == 0
    assert journey.total_fare == 0
    assert journey.connections == []
    assert journey.route_path == [network["A"]]


async def test_plan_with_hop_limit_one(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(
        db_session, test_graph_cache, plan_request(network, "A", "C", max_hops=1)
    )

    assert journey.journey_type == JourneyType.NO_ROUTE_FOUND
    assert journey.meta_data["no_route_reason"] == "unreachable"
    assert journey.meta_data["max_hops"] == 1


async def test_plan_same_rank(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "B", "B"))

    assert journey.journey_type == JourneyType.NO_ROUTE_FOUND
    assert journey.route_path == [network["B"]]
    assert journey.total_duration_minutes == 0
    assert journey.meta_data["no_route_reason"] == "same_rank"


async def test_plan_is_repeatable(db_session, network, test_graph_cache):
    first = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    second = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))

    assert first.journey_id != second.journey_id
    for field in ("journey_type", "hop_count", "total_fare", "total_duration_minutes", "total_distance_km", "route_path"):
        assert getattr(first, field) == getattr(second, field)


async def test_plan_unknown_rank(db_session, network, test_graph_cache):
    request = JourneyRequest(user_id="traveller-1", origin_rank_id=network["A"], destination_rank_id=9999)

    with pytest.raises(ResourceNotFoundError):
        await JourneyService.plan_journey(db_session, test_graph_cache, request)


@pytest.mark.parametrize("kwargs", [
    {"user_id": "  "},
    {"max_hops": 0},
    {"optimize_for": "speed"},
])
async def test_plan_invalid_input(db_session, network, test_graph_cache, kwargs):
    with pytest.raises(InvalidInputError):
        await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C", **kwargs))

    count = (await db_session.execute(select(Journey))).scalars().all()
    assert count == []


async def test_plan_from_inactive_rank(db_session, network, test_graph_cache):
    rank = await db_session.get(TaxiRank, network["A"])
    rank.is_active = False
    await db_session.commit()

    with pytest.raises(InvalidInputError):
        await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))


async def test_plan_uses_requested_criterion(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(
        db_session, test_graph_cache, plan_request(network, "A", "C", optimize_for=OptimizeFor.DURATION)
    )

    assert journey.meta_data["optimize_for"] == "duration"
    assert journey.journey_type == JourneyType.CONNECTED


async def test_preview_options(db_session, network, test_graph_cache):
    options = await JourneyService.preview_options(db_session, test_graph_cache, plan_request(network, "A", "C"))

    assert len(options) == 1
    criterion, draft = options[0]
    assert criterion == OptimizeFor.FARE
    assert draft.total_fare == 25
    assert (await db_session.execute(select(Journey))).scalars().all() == []


async def test_lifecycle_through_service(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    journey_id = journey.journey_id

    journey = await JourneyService.transition_journey(db_session, journey_id, JourneyEvent.START)
    assert journey.status == JourneyStatus.ACTIVE
    assert journey.started_at is not None
    assert journey.version == 2

    journey = await JourneyService.transition_journey(db_session, journey_id, "complete")
    assert journey.status == JourneyStatus.COMPLETED

    journey = await JourneyService.transition_journey(
        db_session, journey_id, JourneyEvent.RATE, TransitionParams(rating=5, feedback="On time")
    )
    assert journey.rating == 5
    assert journey.version == 4

    with pytest.raises(AlreadyRatedError):
        await JourneyService.transition_journey(db_session, journey_id, JourneyEvent.RATE, TransitionParams(rating=1))

    trail = await get_journey_audit_trail(db_session, journey_id=journey_id)
    assert {entry.action for entry in trail} == {
        AuditAction.JOURNEY_PLANNED,
        AuditAction.JOURNEY_STARTED,
        AuditAction.JOURNEY_COMPLETED,
        AuditAction.JOURNEY_RATED,
    }


async def test_rejected_transition_changes_nothing(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    journey_id = journey.journey_id

    with pytest.raises(InvalidTransitionError):
        await JourneyService.transition_journey(db_session, journey_id, JourneyEvent.COMPLETE)

    reloaded = await JourneyService.get_journey(db_session, journey_id, refresh=True)
    assert reloaded.status == JourneyStatus.PLANNED
    assert reloaded.version == 1


async def test_transition_unknown_or_malformed_journey(db_session, network):
    with pytest.raises(ResourceNotFoundError):
        await JourneyService.transition_journey(db_session, "8e0a2d4c-1111-4c2e-9f00-0123456789ab", "start")
    with pytest.raises(InvalidInputError):
        await JourneyService.transition_journey(db_session, "not-a-uuid", "start")
    with pytest.raises(InvalidInputError):
        await JourneyService.transition_journey(db_session, "8e0a2d4c-1111-4c2e-9f00-0123456789ab", "teleport")


async def test_concurrent_transitions_one_wins(db_session, network, test_graph_cache, session_factory):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    journey_id = journey.journey_id

    async with session_factory() as other_session:
        # Both sessions hold version 1
        stale = await JourneyService.get_journey(other_session, journey_id)
        assert stale.version == 1

        started = await JourneyService.transition_journey(db_session, journey_id, JourneyEvent.START)
        assert started.version == 2

        with pytest.raises(ConcurrentModificationError):
            await JourneyService.transition_journey(
                other_session, journey_id, JourneyEvent.CANCEL,
                TransitionParams(cancellation_reason="Changed plans")
            )

    final = await JourneyService.get_journey(db_session, journey_id, refresh=True)
    assert final.status == JourneyStatus.ACTIVE
    assert final.cancelled_at is None
    trail = await get_journey_audit_trail(db_session, journey_id=journey_id, action=AuditAction.JOURNEY_CANCELLED)
    assert trail == []


async def test_expected_version_guards_transition(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    await JourneyService.transition_journey(db_session, journey.journey_id, JourneyEvent.START)

    with pytest.raises(ConcurrentModificationError):
        await JourneyService.transition_journey(
            db_session, journey.journey_id, JourneyEvent.CANCEL,
            TransitionParams(cancellation_reason="Too late", expected_version=1)
        )


async def test_correct_waiting_time(db_session, network, test_graph_cache):
    journey = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    journey_id = journey.journey_id

    journey = await JourneyService.correct_waiting_time(db_session, journey_id, 1, 6.5, expected_version=1)

    assert journey.connections[0].waiting_time_minutes == 6.5
    assert journey.total_duration_minutes == 51.5
    assert journey.version == 2

    with pytest.raises(InvalidInputError):
        await JourneyService.correct_waiting_time(db_session, journey_id, 2, 1)
    with pytest.raises(ConcurrentModificationError):
        await JourneyService.correct_waiting_time(db_session, journey_id, 1, 2, expected_version=1)


async def test_list_journeys_filters_and_paginates(db_session, network, test_graph_cache):
    for _ in range(3):
        await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "D"))
    await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "B", user_id="traveller-2"))

    items, total = await JourneyService.list_journeys(db_session, JourneySearchParams(user_id="traveller-1", page_size=2))
    assert total == 4
    assert len(items) == 2

    items, total = await JourneyService.list_journeys(
        db_session, JourneySearchParams(journey_type=JourneyType.NO_ROUTE_FOUND)
    )
    assert total == 1
    assert items[0].destination_rank_id == network["D"]

    _, total = await JourneyService.list_journeys(db_session, JourneySearchParams(status=JourneyStatus.ACTIVE))
    assert total == 0

    with pytest.raises(InvalidInputError):
        await JourneyService.list_journeys(db_session, JourneySearchParams(page=0))


async def test_journey_stats_and_popular_routes(db_session, network, test_graph_cache):
    first = await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "C"))
    await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "B"))
    await JourneyService.plan_journey(db_session, test_graph_cache, plan_request(network, "A", "D"))

    await JourneyService.transition_journey(db_session, first.journey_id, JourneyEvent.START)
    await JourneyService.transition_journey(db_session, first.journey_id, JourneyEvent.COMPLETE)
    await JourneyService.transition_journey(
        db_session, first.journey_id, JourneyEvent.RATE, TransitionParams(rating=4)
    )

    stats = await JourneyAnalytics.get_journey_stats(db_session, user_id="traveller-1")
    assert stats.total_journeys == 4
    assert stats.by_status["planned"] == 3
    assert stats.by_status["completed"] == 1
    assert stats.by_type["no_route_found"] == 1
    assert stats.completed_journeys == 1
    assert stats.total_fare_spent == 25
    assert stats.average_rating == 4

    popular = await JourneyAnalytics.get_popular_routes(db_session, limit=5)
    assert [(p.origin_rank_id, p.destination_rank_id, p.journey_count) for p in popular] == [
        (network["A"], network["C"], 2),
        (network["A"], network["B"], 1),
    ]
    assert popular[0].origin_name == "Rank A"
    assert popular[0].average_fare == 25
