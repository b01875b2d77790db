"""Geographic utility functions.

Routing and path filtering treat lat/lng as a flat plane; haversine is only
used for human-readable lengths.
"""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from .logger import Logger, NULL_LOGGER

if TYPE_CHECKING:
    from .models import Location


def planar_distance(a: "Location", b: "Location") -> float:
    """Euclidean distance in raw coordinate units"""
    return math.hypot(a.lat - b.lat, a.lng - b.lng)


def nearest_point(target: "Location", points: Iterable["Location"]) -> Optional["Location"]:
    """Point closest to target; the first one seen wins a tie"""
    min_dist = float("inf")
    nearest = None
    for p in points:
        dist = planar_distance(p, target)
        if dist < min_dist:
            min_dist = dist
            nearest = p
    return nearest


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula"""
    R = 6371000  # Earth's radius in meters

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def polyline_length(points: Sequence["Location"]) -> float:
    """Length of a polyline in meters"""
    return sum(
        haversine_distance(a.lat, a.lng, b.lat, b.lng)
        for a, b in zip(points, points[1:])
    )


def bounds(points: Iterable["Location"]) -> Optional[tuple[tuple[float, float], tuple[float, float]]]:
    """((south, west), (north, east)) of the points, or None if there are none"""
    lats = []
    lngs = []
    for p in points:
        lats.append(p.lat)
        lngs.append(p.lng)
    if not lats:
        return None
    return (min(lats), min(lngs)), (max(lats), max(lngs))


def retry_with_backoff(func, max_time: float = 30.0, initial_delay: float = 1.0,
                       max_delay: float = 8.0, description: str = "operation",
                       logger: Optional[Logger] = None):
    """Call func until it returns a truthy value or max_time runs out.

    Delays double from initial_delay up to max_delay. Retries and the final
    failure go to the logger. Returns None if every attempt failed.
    """
    logger = logger or NULL_LOGGER
    start_time = time.time()
    delay = initial_delay
    attempt = 1

    while True:
        result = func()
        if result:
            return result

        elapsed = time.time() - start_time
        if elapsed >= max_time:
            logger.log(f"Gave up on {description}", {
                "attempts": attempt,
                "elapsed_s": round(elapsed, 1),
            })
            return None

        sleep_time = min(delay, max_time - elapsed, max_delay)
        if sleep_time > 0:
            logger.log(f"Retrying {description}", {
                "attempt": attempt,
                "delay_s": round(sleep_time, 2),
            })
            time.sleep(sleep_time)

        delay = min(delay * 2, max_delay)
        attempt += 1
