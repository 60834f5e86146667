import threading
import time
from unittest.mock import MagicMock

import pytest

from sidequests.errors import (
    LocationRequestInProgress,
    LocationTimeout,
    LocationUnavailable,
    MonitoringFailed,
    PermissionDenied,
)
from sidequests.location.presence import HOME_LOCATION_KEY, PresenceTracker
from sidequests.location.provider import AuthorizationStatus, LocationProvider, RegionEvent, RegionState
from sidequests.models import Coordinate

HOME = Coordinate(latitude=49.2827, longitude=-123.1207)


@pytest.fixture
def provider():
    provider = MagicMock(spec=LocationProvider)
    provider.authorization_status.return_value = AuthorizationStatus.AUTHORIZED_ALWAYS
    provider.monitored_regions.return_value = []
    return provider


@pytest.fixture
def tracker(provider, preferences):
    return PresenceTracker(provider, preferences, request_timeout_s=0.05)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


# --------------- home configuration ---------------------------------------
def test_configure_home_monitors_and_persists(tracker, provider, preferences):
    tracker.configure_home(HOME)

    region = provider.start_monitoring.call_args.args[0]
    assert region.identifier == "homeRegion"
    assert region.center == HOME
    assert region.radius_m == 500
    provider.request_state.assert_called_once_with("homeRegion")
    provider.stop_all_monitoring.assert_called()
    assert preferences.get(HOME_LOCATION_KEY) == {"latitude": HOME.latitude, "longitude": HOME.longitude}


def test_home_restored_on_startup(provider, preferences):
    preferences.set(HOME_LOCATION_KEY, HOME.model_dump())
    tracker = PresenceTracker(provider, preferences)
    assert tracker.home_location == HOME
    provider.start_monitoring.assert_called_once()


def test_corrupt_home_discarded(provider, preferences):
    preferences.set(HOME_LOCATION_KEY, {"latitude": "north"})
    tracker = PresenceTracker(provider, preferences)
    assert tracker.home_location is None
    assert HOME_LOCATION_KEY not in preferences


def test_clear_home_resets_presence(tracker, provider, preferences):
    tracker.configure_home(HOME)
    tracker.handle_region_state("homeRegion", RegionState.INSIDE)

    tracker.clear_home()

    assert tracker.home_location is None
    assert tracker.is_at_home is None
    assert HOME_LOCATION_KEY not in preferences


def test_monitoring_failure_is_recorded(tracker, provider):
    provider.start_monitoring.side_effect = RuntimeError("region limit")
    tracker.configure_home(HOME)
    assert tracker.home_location == HOME
    assert isinstance(tracker.last_error, MonitoringFailed)
    assert "region limit" in tracker.last_error.message

    tracker.dismiss_error()
    assert tracker.last_error is None


# --------------- region callbacks -----------------------------------------
def test_presence_follows_region_callbacks(tracker):
    tracker.configure_home(HOME)
    assert tracker.is_at_home is None

    tracker.handle_region_state("homeRegion", RegionState.INSIDE)
    assert tracker.is_at_home is True
    tracker.handle_region_event("homeRegion", RegionEvent.EXIT)
    assert tracker.is_at_home is False
    tracker.handle_region_event("homeRegion", RegionEvent.ENTER)
    assert tracker.is_at_home is True


def test_unknown_region_state_counts_as_away(tracker):
    tracker.handle_region_state("homeRegion", RegionState.UNKNOWN)
    assert tracker.is_at_home is False


def test_other_regions_ignored(tracker):
    tracker.handle_region_event("office", RegionEvent.ENTER)
    tracker.handle_region_state("office", RegionState.INSIDE)
    assert tracker.is_at_home is None


def test_subscribers_receive_snapshots(tracker):
    seen = []
    tracker.subscribe(seen.append)
    tracker.configure_home(HOME)
    tracker.handle_region_state("homeRegion", RegionState.OUTSIDE)
    assert seen[-1].home_location == HOME
    assert seen[-1].is_at_home is False


# --------------- authorization --------------------------------------------
def test_always_authorization_restarts_monitoring(tracker, provider):
    tracker.configure_home(HOME)
    provider.start_monitoring.reset_mock()

    tracker.handle_authorization_change(AuthorizationStatus.AUTHORIZED_ALWAYS)

    provider.start_monitoring.assert_called_once()
    assert tracker.authorization_status == AuthorizationStatus.AUTHORIZED_ALWAYS


def test_authorization_change_without_home(tracker, provider):
    tracker.handle_authorization_change(AuthorizationStatus.DENIED)
    assert tracker.authorization_status == AuthorizationStatus.DENIED
    provider.start_monitoring.assert_not_called()


def test_permission_upgrade_delegates_to_provider(tracker, provider):
    tracker.request_permission_upgrade()
    provider.request_always_authorization.assert_called_once()


# --------------- capture current location ---------------------------------
@pytest.mark.parametrize("status", [
    AuthorizationStatus.NOT_DETERMINED,
    AuthorizationStatus.DENIED,
    AuthorizationStatus.RESTRICTED,
])
def test_capture_without_permission(tracker, provider, status):
    tracker.handle_authorization_change(status)
    with pytest.raises(PermissionDenied):
        tracker.capture_current_location_as_home()
    provider.request_location.assert_not_called()


def test_capture_succeeds(tracker, provider):
    provider.request_location.side_effect = lambda: tracker.handle_location_update(HOME)

    assert tracker.capture_current_location_as_home() == HOME
    assert tracker.home_location == HOME
    assert not tracker.has_pending_request


def test_capture_with_when_in_use_permission(tracker, provider):
    tracker.handle_authorization_change(AuthorizationStatus.AUTHORIZED_WHEN_IN_USE)
    provider.request_location.side_effect = lambda: tracker.handle_location_update(HOME)
    assert tracker.capture_current_location_as_home() == HOME


def test_capture_provider_error(tracker, provider):
    provider.request_location.side_effect = lambda: tracker.handle_location_error(OSError("no signal"))

    with pytest.raises(LocationUnavailable) as exc_info:
        tracker.capture_current_location_as_home()

    assert exc_info.value.message == "Failed to get location: no signal"
    assert tracker.home_location is None
    assert not tracker.has_pending_request
    assert tracker.last_error is exc_info.value


def test_capture_times_out_once(tracker, provider):
    with pytest.raises(LocationTimeout) as exc_info:
        tracker.capture_current_location_as_home()
    assert exc_info.value.message == "Failed to get location: Location request timed out"
    assert not tracker.has_pending_request
    assert isinstance(tracker.last_error, LocationTimeout)

    # A fix arriving after the timeout is ignored
    tracker.handle_location_update(HOME)
    assert tracker.home_location is None
    provider.start_monitoring.assert_not_called()


def test_concurrent_capture_rejected(provider, preferences):
    tracker = PresenceTracker(provider, preferences, request_timeout_s=2.0)
    results = []
    worker = threading.Thread(target=lambda: results.append(tracker.capture_current_location_as_home()))
    worker.start()
    _wait_for(lambda: tracker.has_pending_request)

    with pytest.raises(LocationRequestInProgress):
        tracker.capture_current_location_as_home()

    tracker.handle_location_update(HOME)
    worker.join(timeout=2.0)
    assert results == [HOME]
    assert provider.request_location.call_count == 1


def test_error_without_pending_request_is_surfaced(tracker):
    tracker.handle_location_error(OSError("gps off"))
    assert isinstance(tracker.last_error, LocationUnavailable)


def test_request_location_raising_is_surfaced(tracker, provider):
    provider.request_location.side_effect = RuntimeError("service down")
    seen = []
    tracker.subscribe(seen.append)

    with pytest.raises(LocationUnavailable):
        tracker.capture_current_location_as_home()

    assert isinstance(tracker.last_error, LocationUnavailable)
    assert isinstance(seen[-1].last_error, LocationUnavailable)
