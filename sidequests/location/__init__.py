from .presence import PresenceSnapshot, PresenceTracker
from .provider import (
    AuthorizationStatus,
    CoordinateLocationProvider,
    LocationProvider,
    Region,
    RegionEvent,
    RegionState,
)

__all__ = [
    "AuthorizationStatus",
    "CoordinateLocationProvider",
    "LocationProvider",
    "PresenceSnapshot",
    "PresenceTracker",
    "Region",
    "RegionEvent",
    "RegionState",
]
