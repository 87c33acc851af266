import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import pytz

from hrtrack.services.geofence import EARTH_RADIUS_M, GeoPoint

LAGOS = pytz.timezone("Africa/Lagos")
OFFICE = GeoPoint(6.5244, 3.3792)


def lagos(year, month, day, hour=0, minute=0, second=0) -> datetime:
    """Local Lagos wall time as an aware UTC datetime."""
    return LAGOS.localize(datetime(year, month, day, hour, minute, second)).astimezone(pytz.UTC)


def point_north(meters: float) -> GeoPoint:
    """A point ``meters`` due north of the office."""
    return GeoPoint(OFFICE.latitude + math.degrees(meters / EARTH_RADIUS_M), OFFICE.longitude)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def set(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@dataclass
class RecordingNotifier:
    sent: List[tuple] = field(default_factory=list)

    def send(self, recipient, template_key: str, payload: Optional[Dict] = None) -> int:
        self.sent.append((recipient, template_key, payload))
        return 1
