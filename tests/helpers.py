import json
from datetime import datetime, time
from typing import List, Optional
from uuid import UUID, uuid4

from sidequests.day_phase import SunTimes
from sidequests.models import LocationContext, Prompt, PromptMetadata, PromptPack, TimeOfDay

ALL_TIMES = [TimeOfDay.NIGHT, TimeOfDay.SUNRISE, TimeOfDay.DAY, TimeOfDay.SUNSET]


def make_prompt(
    text: str = "Do something",
    location: LocationContext = LocationContext.ANY,
    times: Optional[List[TimeOfDay]] = None,
    prompt_id: Optional[UUID] = None,
) -> Prompt:
    return Prompt(
        id=prompt_id or uuid4(),
        text=text,
        metadata=PromptMetadata(
            duration_in_minutes=10,
            tools=[],
            times_of_day=ALL_TIMES if times is None else times,
            location_context=location,
        ),
    )


def make_pack(name: str, prompts: List[Prompt], pack_id: Optional[UUID] = None) -> PromptPack:
    return PromptPack(id=pack_id or uuid4(), name=name, icon_name="star", prompts=prompts)


def pack_json(name: str, prompts: list, pack_id: Optional[str] = None) -> str:
    return json.dumps({
        "id": pack_id or str(uuid4()),
        "name": name,
        "iconName": "star",
        "prompts": prompts,
    })


def prompt_dict(text: str = "Walk", **metadata) -> dict:
    meta = {"durationInMinutes": 10, "tools": [], "timesOfDay": ["day"]}
    meta.update(metadata)
    return {"id": str(uuid4()), "text": text, "metadata": meta}


class FixedSolar:
    """Sunrise and sunset at fixed local hours, or no sun at all."""

    def __init__(self, sunrise: time = time(6, 0), sunset: time = time(18, 0), polar: bool = False):
        self.sunrise = sunrise
        self.sunset = sunset
        self.polar = polar
        self.calls = []

    def sun_times(self, day, coordinate, tz):
        self.calls.append(day)
        if self.polar:
            return None
        return SunTimes(
            sunrise=datetime.combine(day, self.sunrise, tzinfo=tz),
            sunset=datetime.combine(day, self.sunset, tzinfo=tz),
        )


