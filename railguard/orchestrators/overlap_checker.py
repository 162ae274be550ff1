"""
Authority overlap check for RailGuard.

This module runs once when a new authority is created: it compares the
new authority against every other active authority on the same track,
alerts both owners of each overlapping pair and records the overlap.
"""

from typing import List
from railguard.core.models import AlertEvent, Authority
from railguard.core.overlap import overlaps
from railguard.dispatch.alert_dispatcher import AlertDispatcher
from railguard.ports.reference import ReferenceDataPort
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.overlap")


def overlap_extent(a1: Authority, a2: Authority) -> float:
    """겹치는 마일포스트 구간 길이"""
    return max(0.0, min(a1.end_milepost, a2.end_milepost) - max(a1.begin_milepost, a2.begin_milepost))


class OverlapChecker:
    """신규 권한 중첩 검사기"""

    def __init__(self, reference: ReferenceDataPort, dispatcher: AlertDispatcher):
        self.reference = reference
        self.dispatcher = dispatcher

    async def check_new_authority(self, authority: Authority) -> List[Authority]:
        """
        신규 권한과 겹치는 활성 권한을 찾아 양쪽 소유자에게 경보를 보냅니다.

        Args:
            authority: 새로 생성된 권한

        Returns:
            겹치는 기존 권한 목록
        """
        candidates = await self.reference.get_active_authorities(authority.subdivision_id)
        overlapping = [a for a in candidates if overlaps(authority, a)]

        for other in overlapping:
            extent = overlap_extent(authority, other)
            for mine, theirs in ((other, authority), (authority, other)):
                await self.dispatcher.dispatch(AlertEvent(
                    recipient_id=mine.owner_id,
                    authority_id=mine.id,
                    type="Overlap",
                    level="Critical",
                    triggered_distance=extent,
                    peer_id=theirs.owner_id,
                    peer_authority_id=theirs.id,
                    message=(f"Your authority overlaps with {theirs.display_name} "
                             f"(MP {theirs.begin_milepost} - {theirs.end_milepost} "
                             f"on {theirs.track_type} {theirs.track_number})")
                ))
            await self.dispatcher.record_overlap(authority.id, other.id)

        if overlapping:
            log.info("권한 중첩 감지됨",
                     authority_id=authority.id,
                     overlaps=[a.id for a in overlapping])
        return overlapping
