"""
Journey Lifecycle Manager.

State machine for journeys after assembly:

    planned --start--> active --complete--> completed --rate (once)
       |                  |
       +-----cancel-------+--> cancelled

All validation happens before the journey is touched, so a rejected event
leaves it exactly as it was.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from journey_backend.app.core.exceptions import (
    AlreadyRatedError,
    ConcurrentModificationError,
    InvalidInputError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from journey_backend.app.domain.journey.journey_assembler import compute_totals, verify_invariants
from journey_backend.app.models.journey_enums import JourneyEvent, JourneyStatus


# (event) -> (states it may be applied from, resulting state)
TRANSITIONS: Dict[JourneyEvent, Tuple[FrozenSet[JourneyStatus], JourneyStatus]] = {
    JourneyEvent.START: (frozenset({JourneyStatus.PLANNED}), JourneyStatus.ACTIVE),
    JourneyEvent.COMPLETE: (frozenset({JourneyStatus.ACTIVE}), JourneyStatus.COMPLETED),
    JourneyEvent.CANCEL: (frozenset({JourneyStatus.PLANNED, JourneyStatus.ACTIVE}), JourneyStatus.CANCELLED),
    JourneyEvent.RATE: (frozenset({JourneyStatus.COMPLETED}), JourneyStatus.COMPLETED),
}


@dataclass(frozen=True)
class TransitionParams:
    """Event payload plus the caller's view of the journey's pre-state."""
    cancellation_reason: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    expected_status: Optional[JourneyStatus] = None
    expected_version: Optional[int] = None


def allowed_events(status: JourneyStatus) -> List[JourneyEvent]:
    """Events that may legally be applied from `status`."""
    status = JourneyStatus(status)
    return [event for event, (sources, _) in TRANSITIONS.items() if status in sources]


def check_expectations(journey: Any, expected_status=None, expected_version=None) -> None:
    """
    Compare the caller's expected pre-state with the loaded journey.

    Raises:
        ConcurrentModificationError: when either expectation does not hold
    """
    if expected_status is not None and JourneyStatus(expected_status) != JourneyStatus(journey.status):
        raise ConcurrentModificationError(
            journey.journey_id,
            details={"expected_status": JourneyStatus(expected_status).value, "status": JourneyStatus(journey.status).value}
        )
    if expected_version is not None and expected_version != journey.version:
        raise ConcurrentModificationError(
            journey.journey_id,
            details={"expected_version": expected_version, "version": journey.version}
        )


def _validate_rating(journey: Any, params: TransitionParams, rating_range: Tuple[int, int]) -> Dict[str, Any]:
    if params.rating is None and params.feedback is None:
        raise InvalidInputError("Rating or feedback is required")

    changes: Dict[str, Any] = {}
    if params.rating is not None:
        if journey.rating is not None:
            raise AlreadyRatedError("rating")
        low, high = rating_range
        if isinstance(params.rating, bool) or not isinstance(params.rating, int) or not low <= params.rating <= high:
            raise InvalidInputError(
                f"Rating must be an integer between {low} and {high}",
                details={"rating": params.rating}
            )
        changes["rating"] = params.rating

    if params.feedback is not None:
        if journey.feedback is not None:
            raise AlreadyRatedError("feedback")
        if not params.feedback.strip():
            raise InvalidInputError("Feedback must not be blank")
        changes["feedback"] = params.feedback.strip()
    return changes


def apply_event(
    journey: Any,
    event: JourneyEvent,
    params: Optional[TransitionParams] = None,
    now: Optional[datetime] = None,
    rating_range: Tuple[int, int] = (1, 5)
) -> Any:
    """
    Apply a lifecycle event to a journey in place.

    Args:
        journey: Journey row (or any object with the same attributes)
        event: Event to apply
        params: Event payload and expected pre-state
        now: Timestamp to record (defaults to utcnow)
        rating_range: Inclusive bounds for ratings

    Returns:
        The same journey, mutated

    Raises:
        ConcurrentModificationError: expected pre-state does not match
        InvalidTransitionError: event not legal from the current state
        AlreadyRatedError: rating or feedback already attached
        InvalidInputError: missing cancellation reason, bad rating
    """
    params = params or TransitionParams()
    event = JourneyEvent(event)
    current = JourneyStatus(journey.status)

    check_expectations(journey, params.expected_status, params.expected_version)

    sources, target = TRANSITIONS[event]
    if current not in sources:
        raise InvalidTransitionError(current_state=current.value, requested=event.value)

    now = now or datetime.utcnow()

    if event == JourneyEvent.START:
        journey.status = target
        journey.started_at = now
    elif event == JourneyEvent.COMPLETE:
        journey.status = target
        journey.completed_at = now
    elif event == JourneyEvent.CANCEL:
        reason = (params.cancellation_reason or "").strip()
        if not reason:
            raise InvalidInputError("A cancellation reason is required")
        journey.status = target
        journey.cancelled_at = now
        journey.cancellation_reason = reason
    else:
        for name, value in _validate_rating(journey, params, rating_range).items():
            setattr(journey, name, value)

    return journey


def correct_waiting_time(journey: Any, sequence_order: int, minutes: float) -> Any:
    """
    Change the waiting time of one hop before departure.

    Only planned journeys can be corrected and the final hop never waits.
    total_duration_minutes is recomputed from the segments.

    Returns:
        The corrected connection
    """
    current = JourneyStatus(journey.status)
    if current != JourneyStatus.PLANNED:
        raise InvalidTransitionError(
            current_state=current.value,
            requested="correct_waiting_time",
            message=f"Waiting times can only be corrected before departure (state '{current.value}')"
        )
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) \
            or not math.isfinite(minutes) or minutes < 0:
        raise InvalidInputError("Waiting time must be a finite non-negative number", details={"minutes": str(minutes)})

    connections = sorted(journey.connections, key=lambda c: c.sequence_order)
    target = next((c for c in connections if c.sequence_order == sequence_order), None)
    if target is None:
        raise ResourceNotFoundError("RouteConnection", sequence_order)
    if target.sequence_order == connections[-1].sequence_order:
        raise InvalidInputError(
            "The final hop has no waiting time",
            details={"sequence_order": sequence_order}
        )

    target.waiting_time_minutes = round(float(minutes), 2)
    _, duration, _ = compute_totals(connections)
    journey.total_duration_minutes = duration
    verify_invariants(journey, connections)
    return target
