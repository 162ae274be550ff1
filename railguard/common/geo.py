"""
Geographic utilities for RailGuard.

This module provides great-circle distance and
coordinate validation helpers. All distances are in miles.
"""

import math

# 지구 반지름 (마일)
EARTH_RADIUS_MILES = 3959


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    두 지점 간의 Haversine 거리를 계산합니다 (마일).

    Args:
        lat1: 첫 번째 지점의 위도
        lon1: 첫 번째 지점의 경도
        lat2: 두 번째 지점의 위도
        lon2: 두 번째 지점의 경도

    Returns:
        두 지점 간의 거리 (마일)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def validate_coordinates(lat: float, lon: float) -> bool:
    """
    좌표가 유효한지 확인합니다.

    Args:
        lat: 위도
        lon: 경도

    Returns:
        좌표가 유효하면 True
    """
    if lat is None or lon is None:
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180
