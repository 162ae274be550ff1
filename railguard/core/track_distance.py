"""
Along-track distance for RailGuard.

This module computes the distance between two mileposts along a
subdivision's geometry instead of the straight-line GPS distance.

When a requested range boundary falls inside a segment, the segment
length is scaled by a linear milepost fraction rather than a true
arc-length fraction.
"""

from typing import Sequence
from railguard.core.models import GeometryPoint
from railguard.core.geometry import sort_geometry
from railguard.common.geo import haversine_distance


def track_distance(mp_a: float, mp_b: float,
                   geometry: Sequence[GeometryPoint]) -> float:
    """
    두 마일포스트 간의 선로 거리를 계산합니다 (마일).

    Args:
        mp_a: 첫 번째 마일포스트
        mp_b: 두 번째 마일포스트
        geometry: 서브디비전 형상

    Returns:
        선로 거리, 구간 안에 형상이 없으면 마일포스트 차이
    """
    fallback = abs(mp_b - mp_a)
    if not geometry:
        return fallback

    lo, hi = min(mp_a, mp_b), max(mp_a, mp_b)
    if lo == hi:
        return 0.0

    points = sort_geometry(geometry)
    total = 0.0

    for cur, nxt in zip(points, points[1:]):
        span = nxt.milepost - cur.milepost
        # 범위 밖 또는 길이 0 구간
        if nxt.milepost <= lo or cur.milepost >= hi or span <= 0:
            continue

        seg_len = haversine_distance(cur.latitude, cur.longitude,
                                     nxt.latitude, nxt.longitude)

        overlap = min(nxt.milepost, hi) - max(cur.milepost, lo)
        total += seg_len * (overlap / span)

    return total if total > 0 else fallback
