"""Great-circle distance and delivery-time estimate.

纯函数，无 I/O；缺少坐标时返回固定默认区间而不是报错。
"""

import math

from src.core.config import settings
from src.modules.catalog.domain.entities import Restaurant

EARTH_RADIUS_KM = 6371.0
BASE_DELIVERY_MINUTES = 15
MINUTES_PER_KM = 2
RANGE_SPREAD_MINUTES = 5


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two (lat, lon) points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def estimated_delivery_range_minutes(km: float | None) -> tuple[int, int]:
    """配送时间区间（分钟）。

    total = round(15 + 2*km), min = max(15, total-5), max = total+5；
    km 为 None 时返回默认区间。
    """
    if km is None:
        return (
            settings.DEFAULT_DELIVERY_MIN_MINUTES,
            settings.DEFAULT_DELIVERY_MAX_MINUTES,
        )
    # halves round up, matching the mobile client
    total = math.floor(BASE_DELIVERY_MINUTES + MINUTES_PER_KM * km + 0.5)
    return (
        max(BASE_DELIVERY_MINUTES, total - RANGE_SPREAD_MINUTES),
        total + RANGE_SPREAD_MINUTES,
    )


def parse_coordinates(record: Restaurant) -> tuple[float, float] | None:
    """Read (lat, lon) from a catalog restaurant; ``None`` when unusable."""
    lat, lon = record.latitude, record.longitude
    if lat is None or lon is None:
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


def distance_to_record(
    user_lat: float | None, user_lon: float | None, record: Restaurant
) -> float | None:
    if user_lat is None or user_lon is None:
        return None
    coords = parse_coordinates(record)
    if coords is None:
        return None
    return haversine_km(user_lat, user_lon, *coords)


def format_delivery_range(minutes: tuple[int, int]) -> str:
    low, high = minutes
    return f"{low}-{high} min"
