"""
Track geometry projection for RailGuard.

This module projects a GPS point onto a subdivision's ordered
milepost geometry and returns an interpolated milepost with a
confidence tier.

The projection treats longitude as x and latitude as y. This planar
approximation is only valid over short rail segments (a few miles
between geometry points); the distance from the point to the projected
position is measured with the haversine formula.
"""

import math
from typing import NamedTuple, Optional, Sequence, Tuple
from railguard.core.models import Confidence, GeometryPoint, LocatedPosition
from railguard.common.geo import haversine_distance

# 신뢰도 구간 (마일)
HIGH_CONFIDENCE_MILES = 0.05
MEDIUM_CONFIDENCE_MILES = 0.1

MILEPOST_PRECISION = 4


class SegmentProjection(NamedTuple):
    """선분 위 최근접점"""
    latitude: float
    longitude: float
    distance: float  # miles
    t: float


def sort_geometry(geometry: Sequence[GeometryPoint]) -> list:
    """마일포스트 오름차순으로 정렬한 형상을 반환합니다."""
    return sorted(geometry, key=lambda p: p.milepost)


def nearest_point_on_segment(lat: float, lon: float,
                             start: GeometryPoint,
                             end: GeometryPoint) -> SegmentProjection:
    """
    점을 선분 start-end 위로 투영합니다.

    Args:
        lat: 점의 위도
        lon: 점의 경도
        start: 선분 시작 기준점
        end: 선분 끝 기준점

    Returns:
        투영점 좌표, 투영점까지의 거리(마일), 선분 매개변수 t (0~1)
    """
    dx = end.longitude - start.longitude
    dy = end.latitude - start.latitude

    if dx == 0 and dy == 0:
        # 길이가 0인 선분은 시작점으로 취급
        return SegmentProjection(
            start.latitude, start.longitude,
            haversine_distance(lat, lon, start.latitude, start.longitude),
            0.0
        )

    t = ((lon - start.longitude) * dx + (lat - start.latitude) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))

    near_lat = start.latitude + t * dy
    near_lon = start.longitude + t * dx

    return SegmentProjection(
        near_lat, near_lon,
        haversine_distance(lat, lon, near_lat, near_lon),
        t
    )


def confidence_for(distance_miles: float) -> Confidence:
    """선로로부터의 거리에 따른 신뢰도 등급"""
    if distance_miles < HIGH_CONFIDENCE_MILES:
        return "high"
    if distance_miles < MEDIUM_CONFIDENCE_MILES:
        return "medium"
    return "low"


def locate(point: Tuple[float, float],
           geometry: Sequence[GeometryPoint]) -> Optional[LocatedPosition]:
    """
    GPS 좌표를 선로 형상에 투영하여 마일포스트를 계산합니다.

    형상의 첫/끝 기준점이 어느 선분 투영보다 엄밀히 가까우면 해당 기준점의
    마일포스트를 신뢰도 'exact'로 반환합니다.

    Args:
        point: (위도, 경도)
        geometry: 서브디비전 형상 (마일포스트 순)

    Returns:
        위치 추정 결과, 형상이 비어 있으면 None
    """
    if not geometry:
        return None

    lat, lon = point
    points = sort_geometry(geometry)

    # 기준점과 정확히 일치하는 좌표
    for p in points:
        if p.latitude == lat and p.longitude == lon:
            return LocatedPosition(milepost=p.milepost, confidence="exact",
                                   distance_from_track=0.0)

    best_distance = math.inf
    best_milepost: Optional[float] = None

    for start, end in zip(points, points[1:]):
        proj = nearest_point_on_segment(lat, lon, start, end)
        if proj.distance < best_distance:
            best_distance = proj.distance
            best_milepost = start.milepost + proj.t * (end.milepost - start.milepost)

    first, last = points[0], points[-1]
    dist_first = haversine_distance(lat, lon, first.latitude, first.longitude)
    dist_last = haversine_distance(lat, lon, last.latitude, last.longitude)

    if dist_first < best_distance:
        return LocatedPosition(milepost=first.milepost, confidence="exact",
                               distance_from_track=dist_first)
    if dist_last < best_distance:
        return LocatedPosition(milepost=last.milepost, confidence="exact",
                               distance_from_track=dist_last)

    return LocatedPosition(
        milepost=round(best_milepost, MILEPOST_PRECISION),
        confidence=confidence_for(best_distance),
        distance_from_track=best_distance
    )
