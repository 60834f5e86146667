from __future__ import annotations

import enum
import math
from typing import Iterable, List, Optional, Set
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Reserved pseudo-pack id for the synthetic Favorites pack. Never a catalog id.
FAVORITES_PACK_ID = UUID("00000000-0000-0000-0000-000000000000")
FAVORITES_PACK_NAME = "Favorites"
FAVORITES_ICON_NAME = "heart.fill"
UNKNOWN_PACK_NAME = "Unknown Pack"

EARTH_RADIUS_M = 6_371_000.0


class TimeOfDay(str, enum.Enum):
    """The time of day for a prompt."""
    NIGHT = "night"
    SUNRISE = "sunrise"
    DAY = "day"
    SUNSET = "sunset"


class LocationContext(str, enum.Enum):
    HOME = "home"
    NOT_HOME = "notHome"
    ANY = "any"


class Coordinate(BaseModel):
    """A WGS84 latitude/longitude pair in decimal degrees."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def distance_to(self, other: Coordinate) -> float:
        """Great-circle distance in meters (haversine)."""
        lat1, lat2 = math.radians(self.latitude), math.radians(other.latitude)
        dlat = lat2 - lat1
        dlon = math.radians(other.longitude - self.longitude)
        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


class PromptMetadata(BaseModel):
    """Metadata associated with a prompt."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    vibe: Optional[str] = None  # informational only
    duration_in_minutes: int = Field(..., alias="durationInMinutes", ge=0)
    tools: List[str] = Field(default_factory=list)
    times_of_day: List[TimeOfDay] = Field(..., alias="timesOfDay")
    # Older pack files have no locationContext
    location_context: LocationContext = Field(LocationContext.ANY, alias="locationContext")


class Prompt(BaseModel):
    """
    A single activity prompt.

    The pack name is stamped on at load time and is not part of the
    serialized form, so a prompt decoded on its own reports "Unknown Pack".
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: UUID
    text: str
    metadata: PromptMetadata
    pack_name: str = Field(UNKNOWN_PACK_NAME, exclude=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class PromptPack(BaseModel):
    """A collection of related prompts."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: UUID
    name: str
    icon_name: str = Field(..., alias="iconName")
    prompts: List[Prompt] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def stamp_pack_name(cls, data):
        if not isinstance(data, dict) or "name" not in data:
            return data
        name = data["name"]
        stamped = []
        for prompt in data.get("prompts") or []:
            if isinstance(prompt, Prompt):
                stamped.append(prompt.model_copy(update={"pack_name": name}))
            elif isinstance(prompt, dict):
                stamped.append({**prompt, "pack_name": name})
            else:
                stamped.append(prompt)
        return {**data, "prompts": stamped}


def all_prompts(packs: Iterable[PromptPack]) -> List[Prompt]:
    return [prompt for pack in packs for prompt in pack.prompts]


def build_favorites_pack(packs: Iterable[PromptPack], favorite_ids: Set[UUID]) -> PromptPack:
    """Synthesizes the Favorites pack from whichever prompts are currently starred."""
    favorites = [p for p in all_prompts(packs) if p.id in favorite_ids]
    # Built directly so the prompts keep the name of the pack they came from
    return PromptPack.model_construct(
        id=FAVORITES_PACK_ID,
        name=FAVORITES_PACK_NAME,
        icon_name=FAVORITES_ICON_NAME,
        prompts=favorites,
    )
