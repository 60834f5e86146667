from unittest.mock import MagicMock

import pytest

from sidequests.location.provider import (
    AuthorizationStatus,
    CoordinateLocationProvider,
    Region,
    RegionEvent,
    RegionState,
)
from sidequests.models import Coordinate

HOME = Coordinate(latitude=49.2827, longitude=-123.1207)
NEXT_DOOR = Coordinate(latitude=49.2830, longitude=-123.1210)
DOWNTOWN = Coordinate(latitude=49.3000, longitude=-123.1207)
REGION = Region(identifier="homeRegion", center=HOME, radius_m=500)


@pytest.fixture
def delegate():
    return MagicMock()


@pytest.fixture
def provider(delegate):
    provider = CoordinateLocationProvider()
    provider.bind(delegate)
    return provider


def test_region_contains():
    assert REGION.contains(NEXT_DOOR)
    assert not REGION.contains(DOWNTOWN)


def test_request_state_unknown_without_fix(provider, delegate):
    provider.start_monitoring(REGION)
    provider.request_state("homeRegion")
    delegate.handle_region_state.assert_called_once_with("homeRegion", RegionState.UNKNOWN)


def test_first_fix_determines_state_then_transitions(provider, delegate):
    provider.start_monitoring(REGION)

    provider.update_location(NEXT_DOOR)
    delegate.handle_region_state.assert_called_once_with("homeRegion", RegionState.INSIDE)

    provider.update_location(DOWNTOWN)
    provider.update_location(HOME)
    assert [c.args for c in delegate.handle_region_event.call_args_list] == [
        ("homeRegion", RegionEvent.EXIT),
        ("homeRegion", RegionEvent.ENTER),
    ]


def test_request_state_with_fix(provider, delegate):
    provider.update_location(DOWNTOWN)
    provider.start_monitoring(REGION)
    provider.request_state("homeRegion")
    delegate.handle_region_state.assert_called_once_with("homeRegion", RegionState.OUTSIDE)


def test_pending_fix_delivered_on_next_update(provider, delegate):
    provider.request_location()
    delegate.handle_location_update.assert_not_called()

    provider.update_location(HOME)
    provider.update_location(DOWNTOWN)
    delegate.handle_location_update.assert_called_once_with(HOME)


def test_known_fix_delivered_immediately(delegate):
    provider = CoordinateLocationProvider(current=HOME)
    provider.bind(delegate)
    provider.request_location()
    delegate.handle_location_update.assert_called_once_with(HOME)


def test_fail_location(provider, delegate):
    error = OSError("no signal")
    provider.fail_location(error)
    delegate.handle_location_error.assert_called_once_with(error)


def test_monitoring_without_permission_fails(delegate):
    provider = CoordinateLocationProvider(authorization=AuthorizationStatus.DENIED)
    provider.bind(delegate)
    provider.start_monitoring(REGION)
    delegate.handle_monitoring_failed.assert_called_once()
    assert provider.monitored_regions() == []


def test_stop_all_monitoring(provider):
    provider.start_monitoring(REGION)
    provider.start_monitoring(Region(identifier="office", center=DOWNTOWN, radius_m=100))
    provider.stop_all_monitoring()
    assert provider.monitored_regions() == []


def test_always_authorization_request(delegate):
    provider = CoordinateLocationProvider(authorization=AuthorizationStatus.AUTHORIZED_WHEN_IN_USE)
    provider.bind(delegate)
    provider.request_always_authorization()
    assert provider.authorization_status() == AuthorizationStatus.AUTHORIZED_ALWAYS
    delegate.handle_authorization_change.assert_called_once_with(AuthorizationStatus.AUTHORIZED_ALWAYS)


def test_always_authorization_not_granted_when_denied(delegate):
    provider = CoordinateLocationProvider(authorization=AuthorizationStatus.DENIED)
    provider.bind(delegate)
    provider.request_always_authorization()
    assert provider.authorization_status() == AuthorizationStatus.DENIED
    delegate.handle_authorization_change.assert_not_called()
