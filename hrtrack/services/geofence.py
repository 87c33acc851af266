"""
Geofence policy service.
Uses Haversine formula to calculate distance between points, and a weekday table
to decide how far from the office an attendance action may happen.
"""
import math
from dataclasses import dataclass, field
from typing import Optional, Dict, Union

from ..config import Settings

EARTH_RADIUS_M = 6371000

MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class DistanceLimit:
    meters: float


@dataclass(frozen=True)
class Unbounded:
    """Any distance is accepted."""


@dataclass(frozen=True)
class Blocked:
    """The action is refused for the whole day, whatever the distance."""


UNBOUNDED = Unbounded()
BLOCKED = Blocked()

MaxDistance = Union[DistanceLimit, Unbounded, Blocked]


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    label: Optional[str] = None

    def as_dict(self) -> Dict:
        data = {"latitude": self.latitude, "longitude": self.longitude}
        if self.accuracy is not None:
            data["accuracy"] = self.accuracy
        if self.label:
            data["label"] = self.label
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["GeoPoint"]:
        if not data:
            return None
        lat = data.get("latitude")
        lng = data.get("longitude")
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            return None
        return cls(float(lat), float(lng), data.get("accuracy"), data.get("label"))


@dataclass(frozen=True)
class GeofenceDecision:
    allowed: bool
    distance: float
    max_allowed: MaxDistance

    @property
    def max_allowed_meters(self) -> Optional[float]:
        if isinstance(self.max_allowed, DistanceLimit):
            return self.max_allowed.meters
        return None


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def _default_rules() -> Dict[int, MaxDistance]:
    return {
        MONDAY: DistanceLimit(15000),
        TUESDAY: DistanceLimit(15000),
        WEDNESDAY: DistanceLimit(15000),
        THURSDAY: DistanceLimit(15000),
        FRIDAY: UNBOUNDED,
        SATURDAY: DistanceLimit(100),
        SUNDAY: BLOCKED,
    }


@dataclass(frozen=True)
class GeofencePolicy:
    """
    Weekday distance rules around a single office.

    Weekdays follow ``date.weekday()``: Monday is 0, Sunday is 6.
    """
    office: GeoPoint
    rules: Dict[int, MaxDistance] = field(default_factory=_default_rules)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeofencePolicy":
        weekday = DistanceLimit(float(settings.weekday_max_distance_m))
        rules = _default_rules()
        for day in (MONDAY, TUESDAY, WEDNESDAY, THURSDAY):
            rules[day] = weekday
        rules[SATURDAY] = DistanceLimit(float(settings.saturday_max_distance_m))
        office = GeoPoint(settings.office_latitude, settings.office_longitude, label=settings.office_address)
        return cls(office=office, rules=rules)

    def max_allowed_distance(self, weekday: int) -> MaxDistance:
        return self.rules.get(weekday, BLOCKED)

    def is_blocked_day(self, weekday: int) -> bool:
        return isinstance(self.max_allowed_distance(weekday), Blocked)

    def validate(self, location: GeoPoint, weekday: int) -> GeofenceDecision:
        return validate(location, self.office, weekday, self.rules)


def max_allowed_distance(weekday: int, rules: Optional[Dict[int, MaxDistance]] = None) -> MaxDistance:
    return (rules or _default_rules()).get(weekday, BLOCKED)


def validate(
    location: GeoPoint,
    office: GeoPoint,
    weekday: int,
    rules: Optional[Dict[int, MaxDistance]] = None,
) -> GeofenceDecision:
    """
    Decide whether ``location`` is close enough to ``office`` on ``weekday``.
    A distance equal to the limit is allowed.
    """
    meters = distance(location, office)
    limit = max_allowed_distance(weekday, rules)

    if isinstance(limit, Unbounded):
        return GeofenceDecision(True, meters, limit)
    if isinstance(limit, Blocked):
        return GeofenceDecision(False, meters, limit)
    return GeofenceDecision(meters <= limit.meters, meters, limit)


def location_status(location: Optional[GeoPoint], office: GeoPoint, threshold_m: float = 100) -> str:
    """onsite | remote | unknown, used for reports (not for enforcement)."""
    if location is None:
        return "unknown"
    return "onsite" if distance(location, office) <= threshold_m else "remote"
