"""Pure geo and clock helpers shared by the engine, executor and batch validator."""

import math
import re

from backend.itinerary_engine.models.common import CommuteMethod, Coordinates

EARTH_RADIUS_M = 6_371_000.0
EARTH_RADIUS_KM = 6_371.0

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

# Average speeds (meters per minute) and fixed overheads (minutes)
_SPEED_M_PER_MIN: dict[CommuteMethod, float] = {
    CommuteMethod.WALK: 80,
    CommuteMethod.TRANSIT: 500,
    CommuteMethod.TAXI: 400,
    CommuteMethod.DRIVE: 400,
    CommuteMethod.CAR: 400,
    CommuteMethod.BUS: 300,
}
_TRANSIT_WAIT_MIN = 10
_COMMUTE_BUFFER_MIN = 5
WALKING_LIMIT_M = 3_000

CATEGORY_DURATIONS: dict[str, int] = {
    "temple": 60,
    "shrine": 45,
    "museum": 120,
    "gallery": 90,
    "park": 60,
    "garden": 60,
    "viewpoint": 30,
    "tower": 45,
    "landmark": 45,
    "castle": 90,
    "palace": 90,
    "shopping": 90,
    "mall": 120,
    "market": 60,
    "entertainment": 180,
    "theme park": 300,
    "amusement": 180,
    "arcade": 60,
    "karaoke": 90,
    "restaurant": 60,
    "cafe": 45,
}
DEFAULT_CATEGORY_DURATION = 90


def parse_time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight.

    Raises:
        ValueError: If the value is not a valid 24h clock time
    """
    match = _CLOCK_RE.match(value.strip()) if value else None
    if not match:
        raise ValueError(f"invalid clock time: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes > 0):
        raise ValueError(f"invalid clock time: {value!r}")
    return hours * 60 + minutes


def try_parse_time(value: str | None) -> int | None:
    """Lenient variant returning None for missing or malformed values."""
    if not value:
        return None
    try:
        return parse_time_to_minutes(value)
    except ValueError:
        return None


def format_minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM", clamped to the same day."""
    minutes = max(0, min(int(minutes), 23 * 60 + 59))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_duration(minutes: int) -> str:
    """Human-readable duration, e.g. "1h 30m", "45m", "2h"."""
    minutes = max(0, int(minutes))
    hours, rest = divmod(minutes, 60)
    if hours and rest:
        return f"{hours}h {rest}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"


def haversine_distance_m(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in meters."""
    return _haversine(a, b, EARTH_RADIUS_M)


def haversine_distance_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in kilometers."""
    return _haversine(a, b, EARTH_RADIUS_KM)


def _haversine(a: Coordinates, b: Coordinates, radius: float) -> float:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return radius * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def infer_commute_method(distance_m: float) -> CommuteMethod:
    """Walk short hops, take transit otherwise."""
    return CommuteMethod.WALK if distance_m < WALKING_LIMIT_M else CommuteMethod.TRANSIT


def estimate_commute_minutes(distance_m: float, method: CommuteMethod | None = None) -> int:
    """Rough door-to-door duration for a leg of the given length."""
    method = method or infer_commute_method(distance_m)
    speed = _SPEED_M_PER_MIN.get(method, _SPEED_M_PER_MIN[CommuteMethod.TRANSIT])
    minutes = distance_m / speed
    if method == CommuteMethod.TRANSIT:
        minutes += _TRANSIT_WAIT_MIN
    return math.ceil(minutes + _COMMUTE_BUFFER_MIN)


def category_duration(category: str | None) -> int:
    """Typical visit length in minutes for an activity category."""
    if not category:
        return DEFAULT_CATEGORY_DURATION
    return CATEGORY_DURATIONS.get(category.lower(), DEFAULT_CATEGORY_DURATION)
