"""
Home presence tracking.

Answers "is the user at home right now?" from geofence transitions around a
configured home coordinate. The answer is tri-state: ``None`` until the first
region-state determination, then ``True``/``False`` until the home is cleared.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import (
    LocationError,
    LocationRequestInProgress,
    LocationTimeout,
    LocationUnavailable,
    MonitoringFailed,
    PermissionDenied,
)
from ..events import Subscribers
from ..models import Coordinate
from ..storage import PreferenceStore
from .provider import AuthorizationStatus, LocationProvider, Region, RegionEvent, RegionState

log = logging.getLogger(__name__)

HOME_LOCATION_KEY = "homeLocation"
DEFAULT_REGION_ID = "homeRegion"
DEFAULT_RADIUS_M = 500.0
DEFAULT_TIMEOUT_S = 10.0


class PresenceSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    home_location: Optional[Coordinate] = None
    is_at_home: Optional[bool] = None
    authorization_status: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED
    last_error: Optional[LocationError] = None


class PendingLocationRequest:
    """A one-shot completion handle. Only the first resolution counts."""

    def __init__(self) -> None:
        self._future: Future = Future()

    def resolve(self, coordinate: Coordinate) -> None:
        self._future.set_result(coordinate)

    def fail(self, error: LocationError) -> None:
        self._future.set_exception(error)

    def wait(self, timeout: Optional[float] = None) -> Coordinate:
        return self._future.result(timeout=timeout)


class PresenceTracker:
    def __init__(
        self,
        provider: LocationProvider,
        preferences: PreferenceStore,
        region_id: str = DEFAULT_REGION_ID,
        radius_m: float = DEFAULT_RADIUS_M,
        request_timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.provider = provider
        self.preferences = preferences
        self.region_id = region_id
        self.radius_m = radius_m
        self.request_timeout_s = request_timeout_s

        self._lock = threading.RLock()
        self._changes = Subscribers("presence")
        self._pending: Optional[PendingLocationRequest] = None

        self.home_location: Optional[Coordinate] = None
        self.is_at_home: Optional[bool] = None
        self.authorization_status = provider.authorization_status()
        self.last_error: Optional[LocationError] = None

        provider.bind(self)
        self._load_home_location()

    # ---------------------------------------------------------------------------
    # OBSERVATION
    # ---------------------------------------------------------------------------
    def snapshot(self) -> PresenceSnapshot:
        with self._lock:
            return PresenceSnapshot(
                home_location=self.home_location,
                is_at_home=self.is_at_home,
                authorization_status=self.authorization_status,
                last_error=self.last_error,
            )

    def subscribe(self, callback: Callable[[PresenceSnapshot], None]) -> Callable[[], None]:
        return self._changes.subscribe(callback)

    def _publish(self) -> None:
        self._changes.notify(self.snapshot())

    def dismiss_error(self) -> None:
        with self._lock:
            self.last_error = None
        self._publish()

    # ---------------------------------------------------------------------------
    # HOME CONFIGURATION
    # ---------------------------------------------------------------------------
    def configure_home(self, coordinate: Coordinate) -> None:
        """Sets, persists and starts monitoring a new home. Replaces any previous region."""
        with self._lock:
            self.provider.stop_all_monitoring()
            self.home_location = coordinate
            self._save_home_location()
            region = Region(identifier=self.region_id, center=coordinate, radius_m=self.radius_m)
            try:
                self.provider.start_monitoring(region)
                # Immediately ask for the current state
                self.provider.request_state(self.region_id)
            except Exception as e:
                log.error(f"Geofence monitoring failed to start: {e}", exc_info=True)
                self.last_error = MonitoringFailed(cause=e)
            log.info(f"Home set to ({coordinate.latitude:.5f}, {coordinate.longitude:.5f}), radius {self.radius_m:.0f} m")
        self._publish()

    def clear_home(self) -> None:
        with self._lock:
            self.home_location = None
            self.is_at_home = None
            self.provider.stop_all_monitoring()
            self._save_home_location()
            log.info("Home location cleared.")
        self._publish()

    def request_permission_upgrade(self) -> None:
        """Asks for 'always' access; the outcome arrives via handle_authorization_change."""
        self.provider.request_always_authorization()

    def capture_current_location_as_home(self) -> Coordinate:
        """
        Sets home to the device's current position.

        Blocks until exactly one of: a fix arrives (home is configured and the
        coordinate returned), the provider reports an error
        (LocationUnavailable), or the request timeout passes (LocationTimeout).

        Raises PermissionDenied without asking for a fix when location access
        has not been granted, and LocationRequestInProgress when another
        capture is still waiting.
        """
        with self._lock:
            if not self.authorization_status.can_locate:
                raise PermissionDenied()
            if self._pending is not None:
                raise LocationRequestInProgress()
            request = PendingLocationRequest()
            self._pending = request
            self.last_error = None

        log.info("Requesting current location to use as home...")
        try:
            self.provider.request_location()
        except Exception as e:
            if self._take_pending(request):
                self._fail_request(request, LocationUnavailable(cause=e))

        try:
            return request.wait(self.request_timeout_s)
        except FutureTimeoutError:
            if not self._take_pending(request):
                # A fix or an error won the race just before the timeout.
                return request.wait()
            log.warning(f"Location request timed out after {self.request_timeout_s}s")
            error = LocationTimeout()
            self._record_error(error)
            raise error from None

    def _take_pending(self, request: Optional[PendingLocationRequest] = None) -> Optional[PendingLocationRequest]:
        """Atomically clears the pending slot. With ``request``, only if it still holds it."""
        with self._lock:
            pending = self._pending
            if pending is None or (request is not None and pending is not request):
                return None
            self._pending = None
            return pending

    @property
    def has_pending_request(self) -> bool:
        return self._pending is not None

    # ---------------------------------------------------------------------------
    # PROVIDER CALLBACKS
    # ---------------------------------------------------------------------------
    def handle_authorization_change(self, status: AuthorizationStatus) -> None:
        with self._lock:
            self.authorization_status = status
            home = self.home_location
            log.info(f"Location authorization is now {status.value}")
        if status == AuthorizationStatus.AUTHORIZED_ALWAYS and home is not None:
            # Restart monitoring with the elevated tier
            self.configure_home(home)
        else:
            self._publish()

    def handle_location_update(self, coordinate: Coordinate) -> None:
        request = self._take_pending()
        if request is None:
            log.debug("Location update with no pending request ignored.")
            return
        try:
            self.configure_home(coordinate)
        finally:
            request.resolve(coordinate)

    def handle_location_error(self, error: Exception) -> None:
        log.error(f"Location error: {error}")
        request = self._take_pending()
        if request is not None:
            self._fail_request(request, LocationUnavailable(cause=error))
        else:
            self._record_error(LocationUnavailable(cause=error))

    def handle_region_event(self, region_id: str, event: RegionEvent) -> None:
        if region_id != self.region_id:
            return
        with self._lock:
            self.is_at_home = event == RegionEvent.ENTER
            log.info(f"{'Entered' if self.is_at_home else 'Left'} home region")
        self._publish()

    def handle_region_state(self, region_id: str, state: RegionState) -> None:
        if region_id != self.region_id:
            return
        with self._lock:
            # Outside and undetermined both count as away
            self.is_at_home = state == RegionState.INSIDE
            log.debug(f"Home region state determined: {state.value}")
        self._publish()

    def handle_monitoring_failed(self, region_id: str, error: Exception) -> None:
        log.error(f"Geofence monitoring failed for '{region_id}': {error}")
        self._record_error(MonitoringFailed(cause=error))

    def _record_error(self, error: LocationError) -> None:
        with self._lock:
            self.last_error = error
        self._publish()

    def _fail_request(self, request: PendingLocationRequest, error: LocationError) -> None:
        self._record_error(error)
        request.fail(error)

    # ---------------------------------------------------------------------------
    # PERSISTENCE
    # ---------------------------------------------------------------------------
    def _load_home_location(self) -> None:
        data = self.preferences.get(HOME_LOCATION_KEY)
        if data is None:
            return
        try:
            coordinate = Coordinate.model_validate(data)
        except ValidationError as e:
            log.error(f"Failed to load home location: {e}")
            self.preferences.remove(HOME_LOCATION_KEY)
            return
        self.configure_home(coordinate)

    def _save_home_location(self) -> None:
        if self.home_location is None:
            self.preferences.remove(HOME_LOCATION_KEY)
        else:
            self.preferences.set(HOME_LOCATION_KEY, self.home_location.model_dump())
