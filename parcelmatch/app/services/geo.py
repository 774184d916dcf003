"""
Great-circle distance helpers used by match scoring and fee estimation.
"""

import math


EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    NaN inputs propagate as NaN; callers validate coordinates first.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    # Clamp rounding drift so sqrt(1 - a) never sees a negative number
    if a > 1.0:
        a = 1.0
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def proximity_score(distance_km: float, max_distance_km: float) -> float:
    """
    Linear closeness score in [0, 100].

    100 at zero distance, 0 at or beyond max_distance_km.
    """
    if distance_km >= max_distance_km:
        return 0.0
    if distance_km <= 0:
        return 100.0

    score = 100.0 * (1.0 - distance_km / max_distance_km)
    return max(0.0, min(100.0, score))
