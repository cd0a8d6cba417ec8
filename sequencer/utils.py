# courier-task-sequencer/sequencer/utils.py
"""
Utility functions for the Courier Task Sequencer.

Provides geographic calculations and time manipulation utilities.
All distances are straight-line (great-circle); there is no road network.
"""

from __future__ import annotations

import math
import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from . import config
from .exceptions import InvalidLocation
from .models import GeoPoint, Task

# Configure logging
logger = logging.getLogger(__name__)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute the distance between two GPS coordinates.
    NaN inputs propagate as NaN; coordinates are not range-checked here.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> haversine_distance(0.0, 0.0, 0.0, 1.0)
        111.19  # one degree of longitude at the equator
    """
    # Convert decimal degrees to radians
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    # Haversine formula
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return config.EARTH_RADIUS_KM * c


def point_distance(a: Optional[GeoPoint], b: Optional[GeoPoint]) -> float:
    """
    Distance in km between two optional points.

    A missing point is treated as infinitely far away, so it never wins a
    "nearest" comparison against a located candidate.
    """
    if a is None or b is None:
        return math.inf
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def task_distance(a: Task, b: Task) -> float:
    """Distance in km between two tasks' locations (inf when either is unknown)."""
    return point_distance(a.location, b.location)


def travel_time_minutes(distance_km: float) -> int:
    """
    Convert a distance into whole travel minutes at the configured speed.

    Rounds up, so any non-zero leg costs at least one minute.

    Example:
        >>> travel_time_minutes(11.12)  # 11.12km at 30km/h
        23
    """
    if config.AVG_SPEED_KMH <= 0:
        raise ValueError("AVG_SPEED_KMH must be positive")
    return int(math.ceil((distance_km / config.AVG_SPEED_KMH) * 60))


def leg_travel_minutes(a: Task, b: Task) -> int:
    """
    Travel minutes between two consecutive tasks.

    Unlike ``task_distance``, a leg with an unknown end costs nothing: the
    estimators and the feasibility simulation simply cannot account for it.
    """
    if a.location is None or b.location is None:
        return 0
    return travel_time_minutes(task_distance(a, b))


def leg_distance(a: Task, b: Task) -> float:
    """Distance of a leg for estimation purposes (0.0 when either end is unknown)."""
    if a.location is None or b.location is None:
        return 0.0
    return task_distance(a, b)


def validate_coordinates(latitude: float, longitude: float) -> None:
    """
    Raise InvalidLocation when a coordinate pair is out of range.

    NaN fails the check as well, since it compares false against both bounds.
    """
    if not -90.0 <= latitude <= 90.0:
        raise InvalidLocation(f"Latitude out of range [-90, 90]: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise InvalidLocation(f"Longitude out of range [-180, 180]: {longitude}")


def validate_location(location: Optional[GeoPoint]) -> None:
    """Validate a task location when coordinate hardening is enabled."""
    if location is None or not config.VALIDATE_COORDINATES:
        return
    validate_coordinates(location.latitude, location.longitude)


def add_minutes(base: datetime, minutes_to_add: Union[int, float]) -> datetime:
    """Return ``base`` shifted by a number of minutes (can be negative)."""
    return base + timedelta(minutes=minutes_to_add)


def minutes_between(start: datetime, end: datetime) -> int:
    """
    Whole minutes from ``start`` to ``end``, truncated toward zero.

    Example:
        >>> minutes_between(datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 9, 59, 59))
        59
    """
    return int((end - start).total_seconds() / 60)


def format_time_duration(minutes: float) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"


def hhmm(dt: Optional[datetime]) -> str:
    """Format a datetime as HH:MM, or '-' when absent."""
    if dt is None:
        return "-"
    return dt.strftime("%H:%M")
