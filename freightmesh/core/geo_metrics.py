"""Distance primitives for proximity matching.

Great-circle distance uses the spherical law of cosines
(acos/cos/sin composition) with Earth radius 6371 km, the same formula the
store-side radius queries use, so in-memory scans and database filters
agree on what lies inside a geofence.
"""

from typing import Iterable, List, Optional, Tuple, TypeVar
import math

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in km."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlng = math.radians(lng2) - math.radians(lng1)

    cos_angle = math.cos(phi1) * math.cos(phi2) * math.cos(dlng) + math.sin(phi1) * math.sin(phi2)

    # Rounding can push identical points just past 1.0
    cos_angle = max(-1.0, min(1.0, cos_angle))

    return EARTH_RADIUS_KM * math.acos(cos_angle)


def midpoint(lat1: float, lng1: float, lat2: float, lng2: float) -> Tuple[float, float]:
    """Center point of two nearby positions.

    Arithmetic mean of coordinates; adequate at geofence scale (a few km).
    """
    return (lat1 + lat2) / 2, (lng1 + lng2) / 2


def within_radius(
    lat: float,
    lng: float,
    points: Iterable[Tuple[T, float, float]],
    radius_km: float,
    inclusive: bool = False,
) -> List[Tuple[T, float]]:
    """Filter (item, lat, lng) triples to those within radius_km of a point.

    Input order is preserved. Returns (item, distance_km) pairs.
    """
    matches = []
    for item, item_lat, item_lng in points:
        distance = haversine_distance(lat, lng, item_lat, item_lng)
        inside = distance <= radius_km if inclusive else distance < radius_km
        if inside:
            matches.append((item, distance))
    return matches


def nearest(candidates: List[Tuple[T, float]]) -> Optional[Tuple[T, float]]:
    """Closest (item, distance) pair, first one wins on ties."""
    best = None
    for item, distance in candidates:
        if best is None or distance < best[1]:
            best = (item, distance)
    return best
