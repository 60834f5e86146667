"""
Day phase clock.

Classifies "now" as night / sunrise / day / sunset from the sunrise and sunset
times at the home coordinate, and re-arms a one-shot scheduler job for the
next phase boundary instead of polling.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional, Protocol
from zoneinfo import ZoneInfo

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger
from astral import Observer
from astral.sun import sunrise, sunset

from .events import Subscribers
from .location.presence import PresenceSnapshot, PresenceTracker
from .models import Coordinate, TimeOfDay

log = logging.getLogger(__name__)

BOUNDARY_JOB_ID = "day_phase_boundary"
DEFAULT_TWILIGHT_WINDOW = timedelta(hours=1)
DEFAULT_BOUNDARY_GUARD = timedelta(seconds=1)


@dataclass(frozen=True)
class SunTimes:
    sunrise: datetime
    sunset: datetime


class SolarCalculator(Protocol):
    def sun_times(self, day: date, coordinate: Coordinate, tz: tzinfo) -> Optional[SunTimes]: ...


class AstralSolarCalculator:
    """
    Sunrise/sunset from the astral package. None where the sun never rises or sets.

    Only sunrise and sunset are computed: at high latitudes in summer the sun
    can rise and set without ever reaching civil dawn or dusk.
    """

    def sun_times(self, day: date, coordinate: Coordinate, tz: tzinfo) -> Optional[SunTimes]:
        observer = Observer(latitude=coordinate.latitude, longitude=coordinate.longitude)
        try:
            rise = sunrise(observer, date=day, tzinfo=tz)
            set_ = sunset(observer, date=day, tzinfo=tz)
        except ValueError as e:
            # Polar day / polar night
            log.debug(f"No sunrise/sunset on {day} at {coordinate}: {e}")
            return None
        return SunTimes(sunrise=rise, sunset=set_)


def solar_timezone(coordinate: Coordinate) -> timezone:
    """Fixed offset of mean solar time at the coordinate (15 degrees of longitude per hour)."""
    return timezone(timedelta(minutes=round(coordinate.longitude * 4)))


def classify(now: datetime, times: SunTimes, window: timedelta = DEFAULT_TWILIGHT_WINDOW) -> TimeOfDay:
    if times.sunrise <= now <= times.sunset:
        return TimeOfDay.DAY
    if times.sunrise - window <= now < times.sunrise:
        return TimeOfDay.SUNRISE
    if times.sunset < now <= times.sunset + window:
        return TimeOfDay.SUNSET
    return TimeOfDay.NIGHT


def boundaries(times: SunTimes, window: timedelta = DEFAULT_TWILIGHT_WINDOW) -> List[datetime]:
    return [
        times.sunrise - window,
        times.sunrise,
        times.sunset,
        times.sunset + window,
    ]


class DayPhaseClock:
    def __init__(
        self,
        presence: PresenceTracker,
        scheduler: BaseScheduler,
        solar: Optional[SolarCalculator] = None,
        local_tz: str = "UTC",
        twilight_window: timedelta = DEFAULT_TWILIGHT_WINDOW,
        boundary_guard: timedelta = DEFAULT_BOUNDARY_GUARD,
        rollover: bool = True,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.presence = presence
        self.scheduler = scheduler
        self.solar = solar or AstralSolarCalculator()
        self.tz = ZoneInfo(local_tz)
        self.twilight_window = twilight_window
        self.boundary_guard = boundary_guard
        self.rollover = rollover
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._lock = threading.RLock()
        self._changes = Subscribers("day_phase")
        self._home_used: Optional[Coordinate] = None
        self._started = False

        # Exposes the current period so prompts can be filtered
        self.current: TimeOfDay = TimeOfDay.DAY
        self.next_boundary: Optional[datetime] = None

        presence.subscribe(self._on_presence_change)

    def subscribe(self, callback: Callable[[TimeOfDay], None]) -> Callable[[], None]:
        return self._changes.subscribe(callback)

    # ---------------------------------------------------------------------------
    # LIFECYCLE
    # ---------------------------------------------------------------------------
    def start(self) -> TimeOfDay:
        self._started = True
        return self.update_and_schedule()

    def stop(self) -> None:
        self._started = False
        self._cancel_job()

    def handle_clock_change(self) -> TimeOfDay:
        """System clock, DST or timezone changed: recompute and re-arm right away."""
        log.info("System clock changed; recomputing day phase.")
        return self.update_and_schedule()

    def _on_presence_change(self, snapshot: PresenceSnapshot) -> None:
        if self._started and snapshot.home_location != self._home_used:
            log.debug("Home location changed; recomputing day phase.")
            self.update_and_schedule()

    def _on_boundary(self) -> None:
        """Scheduled job fired at a phase boundary."""
        try:
            self.update_and_schedule()
        except Exception as e:
            log.error(f"Error during day phase recompute: {e}", exc_info=True)

    # ---------------------------------------------------------------------------
    # COMPUTATION
    # ---------------------------------------------------------------------------
    def home_date(self, now: datetime, home: Coordinate) -> date:
        """Calendar day at the home, from its solar time rather than the display timezone."""
        return now.astimezone(solar_timezone(home)).date()

    def sun_times_for(self, day: date) -> Optional[SunTimes]:
        home = self.presence.home_location
        if home is None:
            return None
        times = self.solar.sun_times(day, home, solar_timezone(home))
        if times is not None and not times.sunrise < times.sunset:
            log.warning(f"Ignoring sun times for {day}: sunrise {times.sunrise} is not before sunset {times.sunset}")
            return None
        return times

    def compute_current(self, now: Optional[datetime] = None) -> TimeOfDay:
        now = now or self._now()
        home = self.presence.home_location
        if home is None:
            return TimeOfDay.DAY
        times = self.sun_times_for(self.home_date(now, home))
        if times is None:
            return TimeOfDay.DAY
        return classify(now, times, self.twilight_window)

    def compute_next_boundary(self, now: Optional[datetime] = None) -> Optional[datetime]:
        now = now or self._now()
        home = self.presence.home_location
        if home is None:
            return None
        today = self.home_date(now, home)
        days = [today, today + timedelta(days=1)] if self.rollover else [today]
        for day in days:
            times = self.sun_times_for(day)
            if times is None:
                if day == today:
                    return None
                continue
            upcoming = [b for b in boundaries(times, self.twilight_window) if b > now]
            if upcoming:
                return min(upcoming)
        return None

    def update_and_schedule(self) -> TimeOfDay:
        with self._lock:
            now = self._now()
            previous = self.current
            self._home_used = self.presence.home_location
            self.current = self.compute_current(now)
            self.next_boundary = self.compute_next_boundary(now)
            self._arm(self.next_boundary)
            current = self.current
        if current != previous:
            log.info(f"Day phase changed: {previous.value} -> {current.value}")
            self._changes.notify(current)
        return current

    # ---------------------------------------------------------------------------
    # SCHEDULING
    # ---------------------------------------------------------------------------
    def _arm(self, boundary: Optional[datetime]) -> None:
        if boundary is None:
            self._cancel_job()
            log.debug("No day phase boundary left to schedule.")
            return
        fire_at = boundary + self.boundary_guard
        self.scheduler.add_job(
            self._on_boundary,
            trigger=DateTrigger(run_date=fire_at),
            id=BOUNDARY_JOB_ID,
            name="Day Phase Boundary",
            replace_existing=True,
            misfire_grace_time=None,  # Always run, even if the host was asleep
        )
        log.info(f"Next day phase boundary at {boundary.astimezone(self.tz).isoformat()}")

    def _cancel_job(self) -> None:
        try:
            self.scheduler.remove_job(BOUNDARY_JOB_ID)
        except JobLookupError:
            pass
