"""
Journey and network enumerations.
"""

import enum


class JourneyStatus(str, enum.Enum):
    """Journey lifecycle state."""
    PLANNED = "planned"  # Assembled, not yet started
    ACTIVE = "active"  # Traveller has started the journey
    COMPLETED = "completed"  # Terminal
    CANCELLED = "cancelled"  # Terminal


class JourneyType(str, enum.Enum):
    """Shape of a resolved journey."""
    DIRECT = "direct"  # Exactly one hop
    CONNECTED = "connected"  # Two or more hops
    NO_ROUTE_FOUND = "no_route_found"  # Zero hops, zero totals


class JourneyEvent(str, enum.Enum):
    """Lifecycle events accepted by the lifecycle manager."""
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    RATE = "rate"


class OptimizeFor(str, enum.Enum):
    """Edge weight minimised by the route resolver."""
    FARE = "fare"
    DURATION = "duration"
    DISTANCE = "distance"


class RouteType(str, enum.Enum):
    """Transit route mode."""
    TAXI = "taxi"
    BUS = "bus"
    MIXED = "mixed"
    WALKING = "walking"
