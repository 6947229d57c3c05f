import math
import numbers
from typing import Tuple

import numpy as np

EARTH_RADIUS_KM = 6371.0

Point = Tuple[float, float]  # (lat, lng)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate haversine distance between two points in kilometers"""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (math.sin(dlat/2)**2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng/2)**2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def vectorized_haversine(lat1, lng1, lats, lngs) -> np.ndarray:
    """Vectorized haversine distance (km) from one point to many using numpy"""
    lat1, lng1, lats, lngs = map(np.radians, [lat1, lng1, np.asarray(lats, dtype=float), np.asarray(lngs, dtype=float)])

    dlat = lats - lat1
    dlng = lngs - lng1

    a = np.sin(dlat/2)**2 + np.cos(lat1) * np.cos(lats) * np.sin(dlng/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def point_distance(a: Point, b: Point) -> float:
    """Haversine distance (km) between two (lat, lng) tuples"""
    return haversine_distance(a[0], a[1], b[0], b[1])


def estimate_time_minutes(distance_km: float, speed_kmh: float) -> float:
    """Travel time in minutes at a constant speed; non-positive speed never arrives"""
    if speed_kmh <= 0:
        return math.inf
    return distance_km / speed_kmh * 60


def is_finite_coordinate(value) -> bool:
    """True for real numbers that are neither NaN nor infinite (bools excluded)"""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)
