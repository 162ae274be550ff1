"""
Proximity monitor for RailGuard.

This module implements the periodic task that pairs active authorities
on the same track with overlapping milepost ranges, measures the
along-track distance between their latest fixes, and raises escalating
proximity alerts at configured thresholds.

Ticks never overlap: a tick that comes due while the previous one is
still running is skipped, not queued. stop() prevents new ticks and
waits for an in-flight tick to finish.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from railguard.common.geo import haversine_distance
from railguard.core.geometry import locate
from railguard.core.models import AlertEvent, AlertLevel, Authority, GeometryPoint, GPSFix, ProximityPeer
from railguard.core.overlap import find_overlapping_pairs, overlaps
from railguard.core.thresholds import DEFAULT_PROXIMITY_THRESHOLDS, ThresholdHit, select_threshold
from railguard.core.track_distance import track_distance
from railguard.dispatch.alert_dispatcher import AlertDispatcher
from railguard.ports.positions import PositionStorePort
from railguard.ports.reference import ReferenceDataPort
from railguard.observability import metrics
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.proximity")

Position = Tuple[Authority, GPSFix]


def proximity_cooldown_key(owner1: str, owner2: str, threshold: float) -> str:
    """근접 경보 쿨다운 키 (정렬된 작업자 쌍, 임계값)"""
    a, b = sorted((owner1, owner2))
    return f"proximity:{a}:{b}:{threshold}"


class ProximityMonitor:
    """작업자 근접 모니터 (idle ⇄ checking)"""

    def __init__(self,
                 reference: ReferenceDataPort,
                 positions: PositionStorePort,
                 dispatcher: AlertDispatcher,
                 *,
                 interval_sec: float = 30.0,
                 freshness_sec: float = 300.0,
                 thresholds: Sequence[Tuple[float, AlertLevel]] = DEFAULT_PROXIMITY_THRESHOLDS,
                 clock: Callable[[], float] = time.time):
        """
        초기화합니다.

        Args:
            reference: 기준 데이터 포트
            positions: 위치 저장소 포트
            dispatcher: 경보 발송기
            interval_sec: 검사 주기 (초)
            freshness_sec: 이보다 오래된 측위는 제외 (초)
            thresholds: (거리 마일, 레벨) 임계값 목록
            clock: 현재 시각(초) 함수
        """
        self.reference = reference
        self.positions = positions
        self.dispatcher = dispatcher
        self.interval = interval_sec
        self.freshness = freshness_sec
        self.thresholds = list(thresholds)
        self.clock = clock

        self._stop: Optional[asyncio.Event] = None
        self._runner: Optional[asyncio.Task] = None
        self._tick: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        if self._tick is not None and not self._tick.done():
            return "checking"
        return "idle"

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        """주기 검사를 시작합니다."""
        if self.running:
            log.warning("근접 모니터가 이미 실행 중입니다")
            return
        self._stop = asyncio.Event()
        self._runner = asyncio.create_task(self._run())
        log.info("근접 모니터 시작됨", interval_sec=self.interval)

    async def stop(self) -> None:
        """새 검사를 막고, 진행 중인 검사는 끝날 때까지 기다립니다."""
        if self._stop is None:
            return
        self._stop.set()
        if self._runner is not None:
            await self._runner
            self._runner = None
        if self._tick is not None and not self._tick.done():
            await asyncio.shield(self._tick)
        log.info("근접 모니터 중지됨")

    async def _run(self) -> None:
        if self._stop is None:
            return
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            if self.state == "checking":
                metrics.monitor_ticks_skipped.inc()
                log.warning("이전 검사가 진행 중이어서 이번 주기를 건너뜁니다")
                continue
            self._tick = asyncio.create_task(self._guarded_check())

    async def _guarded_check(self) -> None:
        try:
            with metrics.monitor_tick_seconds.time():
                await self.check_once()
        except Exception as e:
            log.error("근접 검사 오류", error=str(e))

    async def check_once(self, now: Optional[float] = None) -> List[AlertEvent]:
        """
        근접 검사를 한 번 수행합니다.

        Args:
            now: 현재 시각 (초), None이면 clock() 사용

        Returns:
            이번 검사에서 발송된 경보 이벤트 목록
        """
        if now is None:
            now = self.clock()

        fresh = await self._fresh_positions(now)
        emitted: List[AlertEvent] = []
        if len(fresh) < 2:
            metrics.monitor_pairs_checked.set(0)
            return emitted

        by_id = {a.id: (a, fix) for a, fix in fresh}
        pairs = find_overlapping_pairs(a for a, _ in fresh)
        geometry_cache: Dict[str, Sequence[GeometryPoint]] = {}

        for a1, a2 in pairs:
            try:
                events = await self._check_pair(by_id[a1.id], by_id[a2.id], now, geometry_cache)
                emitted.extend(events)
            except Exception as e:
                log.error("근접 쌍 검사 오류", error=str(e),
                          authority_id=a1.id, other_authority_id=a2.id)

        self.dispatcher.cooldown.purge(now)
        metrics.monitor_pairs_checked.set(len(pairs))
        log.debug("근접 검사 완료", pairs=len(pairs), alerts=len(emitted))
        return emitted

    async def _fresh_positions(self, now: float) -> List[Position]:
        """최근 측위가 신선한 활성 권한 목록"""
        result: List[Position] = []
        for authority in await self.reference.get_active_authorities():
            fix = await self.positions.get_latest_fix(authority.id)
            if fix is None:
                continue
            if now - fix.timestamp.timestamp() < self.freshness:
                result.append((authority, fix))
        return result

    async def _geometry(self, subdivision_id: str,
                        cache: Dict[str, Sequence[GeometryPoint]]) -> Sequence[GeometryPoint]:
        if subdivision_id not in cache:
            cache[subdivision_id] = await self.reference.get_geometry(subdivision_id)
        return cache[subdivision_id]

    @staticmethod
    def _milepost(fix: GPSFix, geometry: Sequence[GeometryPoint]) -> Optional[float]:
        if fix.milepost is not None:
            return fix.milepost
        located = locate((fix.latitude, fix.longitude), geometry)
        return located.milepost if located else None

    async def pair_distance(self, p1: Position, p2: Position,
                            cache: Optional[Dict[str, Sequence[GeometryPoint]]] = None
                            ) -> Tuple[float, Optional[float], Optional[float]]:
        """
        두 작업자 간 거리를 계산합니다.

        Returns:
            (거리 마일, 작업자1 마일포스트, 작업자2 마일포스트)
        """
        (a1, f1), (_, f2) = p1, p2
        geometry = await self._geometry(a1.subdivision_id, cache if cache is not None else {})
        mp1 = self._milepost(f1, geometry)
        mp2 = self._milepost(f2, geometry)

        if mp1 is not None and mp2 is not None:
            return track_distance(mp1, mp2, geometry), mp1, mp2

        # 마일포스트를 알 수 없으면 직선 거리
        return haversine_distance(f1.latitude, f1.longitude, f2.latitude, f2.longitude), mp1, mp2

    async def _check_pair(self, p1: Position, p2: Position, now: float,
                          cache: Dict[str, Sequence[GeometryPoint]]) -> List[AlertEvent]:
        (a1, _), (a2, _) = p1, p2
        distance, mp1, mp2 = await self.pair_distance(p1, p2, cache)

        hit = select_threshold(distance, self.thresholds)
        if hit is None:
            return []

        key = proximity_cooldown_key(a1.owner_id, a2.owner_id, hit.threshold)
        if not self.dispatcher.try_acquire(key, "Proximity", now):
            return []

        e1 = self._event(a1, a2, distance, hit)
        e2 = self._event(a2, a1, distance, hit)
        await self.dispatcher.deliver(e1)
        await self.dispatcher.deliver(e2)
        # 쌍 단위로 한 번만 저장
        await self.dispatcher.persist(e1)

        log.info("근접 경보",
                 worker1=a1.display_name,
                 worker2=a2.display_name,
                 milepost1=mp1,
                 milepost2=mp2,
                 distance=round(distance, 2),
                 level=hit.level)
        return [e1, e2]

    @staticmethod
    def _event(mine: Authority, other: Authority, distance: float, hit: ThresholdHit) -> AlertEvent:
        return AlertEvent(
            recipient_id=mine.owner_id,
            authority_id=mine.id,
            type="Proximity",
            level=hit.level,
            triggered_distance=distance,
            threshold=hit.threshold,
            peer_id=other.owner_id,
            peer_authority_id=other.id,
            message=(f"{other.display_name} is {distance:.2f} miles away "
                     f"on {mine.track_type} {mine.track_number}")
        )

    async def proximity_status(self, authority_id: str, now: Optional[float] = None) -> List[ProximityPeer]:
        """
        특정 권한과 겹치는 신선한 작업자들의 근접 현황을 거리 순으로 반환합니다.

        Args:
            authority_id: 기준 권한 ID
            now: 현재 시각 (초)
        """
        if now is None:
            now = self.clock()

        fresh = await self._fresh_positions(now)
        mine = next((p for p in fresh if p[0].id == authority_id), None)
        if mine is None:
            return []

        cache: Dict[str, Sequence[GeometryPoint]] = {}
        peers: List[ProximityPeer] = []
        for other in fresh:
            if not overlaps(mine[0], other[0]):
                continue
            distance, my_mp, other_mp = await self.pair_distance(mine, other, cache)
            hit = select_threshold(distance, self.thresholds)
            peers.append(ProximityPeer(
                authority_id=other[0].id,
                owner_id=other[0].owner_id,
                owner_name=other[0].owner_name,
                my_milepost=my_mp,
                other_milepost=other_mp,
                distance=distance,
                level=hit.level if hit else None,
                last_updated=other[1].timestamp
            ))
        return sorted(peers, key=lambda p: p.distance)
