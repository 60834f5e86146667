"""
Location provider interface and a coordinate-driven implementation.

A provider owns the platform side of location: permission tiers, one-shot
fixes and region (geofence) monitoring. Results are reported back to the
bound delegate (normally a ``PresenceTracker``) through its ``handle_*``
callbacks, possibly from another thread.
"""
from __future__ import annotations

import abc
import enum
import logging
import threading
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..models import Coordinate

log = logging.getLogger(__name__)


class AuthorizationStatus(str, enum.Enum):
    NOT_DETERMINED = "notDetermined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED_WHEN_IN_USE = "authorizedWhenInUse"
    AUTHORIZED_ALWAYS = "authorizedAlways"

    @property
    def can_locate(self) -> bool:
        return self in (AuthorizationStatus.AUTHORIZED_WHEN_IN_USE, AuthorizationStatus.AUTHORIZED_ALWAYS)


class RegionEvent(str, enum.Enum):
    ENTER = "enter"
    EXIT = "exit"


class RegionState(str, enum.Enum):
    INSIDE = "inside"
    OUTSIDE = "outside"
    UNKNOWN = "unknown"


class Region(BaseModel):
    """A circular monitored region."""
    model_config = ConfigDict(frozen=True)

    identifier: str
    center: Coordinate
    radius_m: float = Field(..., gt=0)

    def contains(self, coordinate: Coordinate) -> bool:
        return self.center.distance_to(coordinate) <= self.radius_m


class LocationDelegate(Protocol):
    def handle_authorization_change(self, status: AuthorizationStatus) -> None: ...
    def handle_location_update(self, coordinate: Coordinate) -> None: ...
    def handle_location_error(self, error: Exception) -> None: ...
    def handle_region_event(self, region_id: str, event: RegionEvent) -> None: ...
    def handle_region_state(self, region_id: str, state: RegionState) -> None: ...
    def handle_monitoring_failed(self, region_id: str, error: Exception) -> None: ...


class LocationProvider(abc.ABC):
    def __init__(self) -> None:
        self.delegate: Optional[LocationDelegate] = None

    def bind(self, delegate: LocationDelegate) -> None:
        self.delegate = delegate

    @abc.abstractmethod
    def authorization_status(self) -> AuthorizationStatus: ...

    @abc.abstractmethod
    def request_always_authorization(self) -> None: ...

    @abc.abstractmethod
    def request_location(self) -> None:
        """Asks for a single fix, delivered later via ``handle_location_update``."""

    @abc.abstractmethod
    def start_monitoring(self, region: Region) -> None: ...

    @abc.abstractmethod
    def stop_monitoring(self, region_id: str) -> None: ...

    @abc.abstractmethod
    def request_state(self, region_id: str) -> None: ...

    @abc.abstractmethod
    def monitored_regions(self) -> List[Region]: ...

    def stop_all_monitoring(self) -> None:
        for region in self.monitored_regions():
            self.stop_monitoring(region.identifier)


class CoordinateLocationProvider(LocationProvider):
    """
    Software provider for hosts without a platform geofencing API.

    Position is pushed in with ``update_location`` (from GPS, a phone
    companion, a CLI flag...). Region membership is decided by great-circle
    distance and enter/exit events fire on transitions.
    """

    def __init__(
        self,
        authorization: AuthorizationStatus = AuthorizationStatus.AUTHORIZED_ALWAYS,
        current: Optional[Coordinate] = None,
        grant_always_on_request: bool = True,
    ):
        super().__init__()
        self._lock = threading.RLock()
        self._authorization = authorization
        self._current = current
        self._grant_always_on_request = grant_always_on_request
        self._regions: Dict[str, Region] = {}
        self._inside: Dict[str, Optional[bool]] = {}
        self._fix_requested = False

    @property
    def current_location(self) -> Optional[Coordinate]:
        return self._current

    # --------------- authorization ----------------------------------------
    def authorization_status(self) -> AuthorizationStatus:
        return self._authorization

    def set_authorization(self, status: AuthorizationStatus) -> None:
        with self._lock:
            changed = status != self._authorization
            self._authorization = status
        if changed and self.delegate:
            self.delegate.handle_authorization_change(status)

    def request_always_authorization(self) -> None:
        if self._authorization in (AuthorizationStatus.DENIED, AuthorizationStatus.RESTRICTED):
            log.info("Always authorization requested but access is denied; nothing to do.")
            return
        if self._grant_always_on_request:
            self.set_authorization(AuthorizationStatus.AUTHORIZED_ALWAYS)

    # --------------- one-shot fixes ---------------------------------------
    def request_location(self) -> None:
        with self._lock:
            current = self._current
            self._fix_requested = current is None
        if current is not None and self.delegate:
            self.delegate.handle_location_update(current)
        elif current is None:
            log.debug("No position known yet; fix will be delivered on the next update.")

    def fail_location(self, error: Exception) -> None:
        with self._lock:
            self._fix_requested = False
        if self.delegate:
            self.delegate.handle_location_error(error)

    def update_location(self, coordinate: Coordinate) -> None:
        """Reports a new position: answers a pending fix and evaluates regions."""
        transitions = []
        determinations = []
        with self._lock:
            self._current = coordinate
            deliver_fix, self._fix_requested = self._fix_requested, False
            for region_id, region in self._regions.items():
                inside = region.contains(coordinate)
                previous = self._inside.get(region_id)
                if previous is None:
                    determinations.append((region_id, RegionState.INSIDE if inside else RegionState.OUTSIDE))
                elif previous != inside:
                    transitions.append((region_id, RegionEvent.ENTER if inside else RegionEvent.EXIT))
                self._inside[region_id] = inside
        if not self.delegate:
            return
        if deliver_fix:
            self.delegate.handle_location_update(coordinate)
        for region_id, state in determinations:
            self.delegate.handle_region_state(region_id, state)
        for region_id, event in transitions:
            self.delegate.handle_region_event(region_id, event)

    # --------------- regions ----------------------------------------------
    def start_monitoring(self, region: Region) -> None:
        if not self._authorization.can_locate:
            if self.delegate:
                self.delegate.handle_monitoring_failed(
                    region.identifier,
                    RuntimeError(f"location authorization is {self._authorization.value}"),
                )
            return
        with self._lock:
            self._regions[region.identifier] = region
            self._inside[region.identifier] = None
        log.debug(f"Monitoring region '{region.identifier}' ({region.radius_m:.0f} m)")

    def stop_monitoring(self, region_id: str) -> None:
        with self._lock:
            self._regions.pop(region_id, None)
            self._inside.pop(region_id, None)

    def monitored_regions(self) -> List[Region]:
        with self._lock:
            return list(self._regions.values())

    def request_state(self, region_id: str) -> None:
        with self._lock:
            region = self._regions.get(region_id)
            if region is None:
                return
            if self._current is None:
                state = RegionState.UNKNOWN
            else:
                inside = region.contains(self._current)
                self._inside[region_id] = inside
                state = RegionState.INSIDE if inside else RegionState.OUTSIDE
        if self.delegate:
            self.delegate.handle_region_state(region_id, state)
