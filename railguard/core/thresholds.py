"""
Distance threshold selection for RailGuard.

This module contains pure functions for mapping a distance to the
tightest configured alert threshold it has reached.
"""

from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple
from railguard.core.models import AlertLevel

# 근접 경보 기본 임계값 (마일 → 레벨)
DEFAULT_PROXIMITY_THRESHOLDS: List[Tuple[float, AlertLevel]] = [
    (1.00, "Info"),
    (0.75, "Warning"),
    (0.50, "Warning"),
    (0.25, "Critical"),
]


class ThresholdHit(NamedTuple):
    """거리에 해당하는 임계값과 레벨"""
    threshold: float
    level: AlertLevel


def select_threshold(distance: float,
                     thresholds: Iterable[Tuple[float, AlertLevel]]) -> Optional[ThresholdHit]:
    """
    거리가 도달한 가장 좁은 임계값을 선택합니다.

    임계값을 거리 내림차순으로 훑으면서 distance 이상인 마지막(가장 작은)
    임계값을 고릅니다. 거리가 가장 큰 임계값보다 크면 None 입니다.

    Args:
        distance: 측정 거리 (마일)
        thresholds: (임계 거리, 레벨) 목록

    Returns:
        선택된 임계값 또는 None
    """
    hit: Optional[ThresholdHit] = None
    for limit, level in sorted(thresholds, key=lambda t: t[0], reverse=True):
        if limit >= distance:
            hit = ThresholdHit(limit, level)
        else:
            break
    return hit


def proximity_thresholds_from(pairs: Sequence[Sequence]) -> List[Tuple[float, AlertLevel]]:
    """설정값 [[거리, 레벨], ...] 을 임계값 목록으로 변환합니다."""
    return [(float(p[0]), str(p[1]).strip()) for p in pairs]
