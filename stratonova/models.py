from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .exceptions import InvalidInput
from .numeric_utils import as_float, as_int


def parse_utc(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _non_negative(payload: dict[str, Any], key: str) -> float:
    value = as_float(payload.get(key))
    if value is None:
        return 0.0
    if value < 0:
        raise InvalidInput(f"{key} cannot be negative: {value}")
    return value


@dataclass(frozen=True)
class Lap:
    max_speed: float = 0.0
    average_speed: float = 0.0
    average_cadence: float = 0.0
    average_heartrate: float = 0.0

    @classmethod
    def from_strava(cls, payload: dict[str, Any]) -> "Lap":
        if not isinstance(payload, dict):
            raise InvalidInput("Lap payload must be an object.")
        return cls(
            max_speed=_non_negative(payload, "max_speed"),
            average_speed=_non_negative(payload, "average_speed"),
            average_cadence=_non_negative(payload, "average_cadence"),
            average_heartrate=_non_negative(payload, "average_heartrate"),
        )


@dataclass(frozen=True)
class Workout:
    """A completed Strava activity, reduced to the fields the summary needs."""

    id: int
    name: str
    start_date: datetime
    distance: float = 0.0
    total_elevation_gain: float = 0.0
    moving_time: int = 0
    sport_type: str = ""
    laps: tuple[Lap, ...] = field(default_factory=tuple)
    start_latlng: tuple[float, float] | None = None
    average_speed: float = 0.0
    average_heartrate: float = 0.0

    @classmethod
    def from_strava(cls, payload: dict[str, Any]) -> "Workout":
        if not isinstance(payload, dict):
            raise InvalidInput("Activity payload must be an object.")

        activity_id = as_int(payload.get("id"))
        if activity_id is None:
            raise InvalidInput(f"Activity payload has no usable id: {payload.get('id')!r}")

        start_date = parse_utc(payload.get("start_date"))
        if start_date is None:
            raise InvalidInput(f"Activity {activity_id} has no usable start_date.")

        moving_time = as_int(payload.get("moving_time")) or 0
        if moving_time < 0:
            raise InvalidInput(f"moving_time cannot be negative: {moving_time}")

        raw_laps = payload.get("laps") or []
        if not isinstance(raw_laps, list):
            raise InvalidInput(f"Activity {activity_id} laps must be a list.")

        start_latlng = None
        raw_latlng = payload.get("start_latlng")
        if isinstance(raw_latlng, (list, tuple)) and len(raw_latlng) == 2:
            lat, lon = as_float(raw_latlng[0]), as_float(raw_latlng[1])
            if lat is not None and lon is not None:
                start_latlng = (lat, lon)

        return cls(
            id=activity_id,
            name=str(payload.get("name") or "").strip(),
            start_date=start_date,
            distance=_non_negative(payload, "distance"),
            total_elevation_gain=as_float(payload.get("total_elevation_gain")) or 0.0,
            moving_time=moving_time,
            sport_type=str(payload.get("sport_type") or payload.get("type") or "").strip(),
            laps=tuple(Lap.from_strava(lap) for lap in raw_laps),
            start_latlng=start_latlng,
            average_speed=_non_negative(payload, "average_speed"),
            average_heartrate=_non_negative(payload, "average_heartrate"),
        )
