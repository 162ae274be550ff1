"""
Authority overlap detection for RailGuard.
"""

from itertools import combinations
from typing import Iterable, List, Tuple
from railguard.core.models import Authority


def same_track(a1: Authority, a2: Authority) -> bool:
    """같은 서브디비전, 같은 선로 종류/번호인지 확인합니다."""
    return a1.track_identity == a2.track_identity


def ranges_intersect(begin1: float, end1: float, begin2: float, end2: float) -> bool:
    """마일포스트 구간이 겹치는지 확인합니다 (경계 포함)."""
    return begin1 <= end2 and end1 >= begin2


def overlaps(a1: Authority, a2: Authority) -> bool:
    """
    두 권한이 같은 선로에서 마일포스트 구간을 공유하는지 확인합니다.

    Args:
        a1: 첫 번째 권한
        a2: 두 번째 권한

    Returns:
        겹치면 True (자기 자신과는 겹치지 않음)
    """
    if a1.id == a2.id:
        return False
    return same_track(a1, a2) and ranges_intersect(
        a1.begin_milepost, a1.end_milepost,
        a2.begin_milepost, a2.end_milepost
    )


def find_overlapping_pairs(authorities: Iterable[Authority]) -> List[Tuple[Authority, Authority]]:
    """겹치는 모든 권한 쌍 (순서 없음)"""
    return [(a1, a2) for a1, a2 in combinations(list(authorities), 2) if overlaps(a1, a2)]
