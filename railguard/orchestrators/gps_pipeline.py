"""
GPS update pipeline for RailGuard.

This module turns each incoming GPS fix into a track-relative position
and evaluates the worker's distance to their own authority boundaries.
Fixes of different authorities are processed concurrently; fixes of the
same authority are processed in arrival order, and a fix older than the
last processed one is dropped.
"""

import asyncio
import time
import weakref
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union
from railguard.core import normalize
from railguard.core.boundary import boundary_cooldown_key, boundary_message, evaluate_boundary
from railguard.core.errors import InvalidFixError, ReferenceDataError
from railguard.core.geometry import locate
from railguard.core.models import AlertEvent, GPSFix, GPSUpdateResult
from railguard.dispatch.alert_dispatcher import AlertDispatcher
from railguard.ports.ingest import GpsIngestPort
from railguard.ports.positions import PositionStorePort
from railguard.ports.reference import ReferenceDataPort
from railguard.observability import metrics
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.gps")

# 선로에서 이 거리(마일) 이상 떨어지면 경고 로그
FAR_FROM_TRACK_MILES = 0.1


class GpsPipeline:
    """GPS 업데이트 처리기 (위치 추정 → 경계 평가 → 경보 발송)"""

    def __init__(self,
                 reference: ReferenceDataPort,
                 positions: PositionStorePort,
                 dispatcher: AlertDispatcher,
                 *,
                 suppress_low_confidence: bool = False,
                 queue_maxsize: int = 1000,
                 max_concurrency: int = 64,
                 freshness_sec: float = 300.0,
                 prune_every: int = 256):
        """
        초기화합니다.

        Args:
            reference: 기준 데이터 포트
            positions: 위치 저장소 포트
            dispatcher: 경보 발송기
            suppress_low_confidence: 신뢰도 low 위치의 경계 경보 억제 여부
            queue_maxsize: 수신 큐 최대 크기
            max_concurrency: 동시에 처리할 최대 업데이트 수
            freshness_sec: 이 시간(초)보다 오래된 마지막 측위 시각은 정리
            prune_every: 마지막 측위 시각 정리 주기 (처리 건수)
        """
        self.reference = reference
        self.positions = positions
        self.dispatcher = dispatcher
        self.suppress_low_confidence = suppress_low_confidence
        self.q: asyncio.Queue = asyncio.Queue(maxsize=queue_maxsize)
        self._sem = asyncio.Semaphore(max_concurrency)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._last_seen: Dict[str, datetime] = {}
        self.freshness = timedelta(seconds=freshness_sec)
        self.prune_every = max(1, prune_every)
        self._processed = 0
        self._inflight: set = set()

    def _lock_for(self, authority_id: str) -> asyncio.Lock:
        lock = self._locks.get(authority_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[authority_id] = lock
        return lock

    def _prune_last_seen(self, now: datetime) -> int:
        """신선도 창보다 오래된 마지막 측위 시각을 정리합니다."""
        cutoff = now - self.freshness
        expired = [k for k, ts in self._last_seen.items() if ts < cutoff]
        for k in expired:
            del self._last_seen[k]
        if expired:
            log.debug("오래된 측위 기록 정리됨", removed=len(expired))
        return len(expired)

    async def on_gps_update(self, fix: Union[GPSFix, Dict[str, Any]]) -> GPSUpdateResult:
        """
        GPS 측위 하나를 처리합니다.

        Args:
            fix: GPSFix 또는 원시 페이로드

        Returns:
            계산된 마일포스트, 신뢰도, 발송된 경계 경보

        Raises:
            InvalidFixError: 위도/경도 누락 등 잘못된 측위 (상태 변경 없음)
        """
        if not isinstance(fix, GPSFix):
            try:
                fix = normalize.to_fix(fix)
            except InvalidFixError as e:
                metrics.fixes_rejected.labels(reason="invalid").inc()
                log.warning("잘못된 GPS 측위 거부됨", error=str(e))
                raise

        lock = self._lock_for(fix.authority_id)
        async with lock:
            with metrics.gps_update_seconds.time():
                return await self._process(fix)

    async def _process(self, fix: GPSFix) -> GPSUpdateResult:
        last = self._last_seen.get(fix.authority_id)
        if last is not None and fix.timestamp < last:
            metrics.fixes_rejected.labels(reason="stale").inc()
            log.debug("이전 측위보다 오래된 측위 무시됨",
                      authority_id=fix.authority_id,
                      timestamp=fix.timestamp.isoformat())
            return GPSUpdateResult()

        try:
            authority = await self.reference.get_authority(fix.authority_id)
            geometry = await self.reference.get_geometry(authority.subdivision_id) if authority else []
        except ReferenceDataError as e:
            log.error("기준 데이터 조회 실패", error=str(e), authority_id=fix.authority_id)
            return GPSUpdateResult()

        self._processed += 1
        if self._processed % self.prune_every == 0:
            self._prune_last_seen(fix.timestamp)

        if authority is None or not authority.is_active:
            self._last_seen.pop(fix.authority_id, None)
            await self.positions.record_fix(fix)
            log.debug("활성 권한이 아닌 측위", authority_id=fix.authority_id)
            return GPSUpdateResult()

        self._last_seen[fix.authority_id] = fix.timestamp

        with metrics.locate_seconds.time():
            located = locate((fix.latitude, fix.longitude), geometry)

        if located is None:
            log.warning("서브디비전 형상이 없어 마일포스트를 계산할 수 없습니다",
                        subdivision_id=authority.subdivision_id,
                        authority_id=authority.id)
            await self.positions.record_fix(fix)
            return GPSUpdateResult()

        metrics.fixes_located.labels(confidence=located.confidence).inc()
        if located.distance_from_track > FAR_FROM_TRACK_MILES:
            log.warning("선로에서 멀리 떨어진 위치",
                        authority_id=authority.id,
                        distance_miles=round(located.distance_from_track, 3))

        await self.positions.record_fix(fix.model_copy(update={"milepost": located.milepost}))

        result = GPSUpdateResult(
            milepost=located.milepost,
            confidence=located.confidence,
            distance_from_track=located.distance_from_track
        )

        if self.suppress_low_confidence and located.confidence == "low":
            return result

        event = await self._check_boundary(authority, located.milepost, geometry)
        if event is not None:
            result.boundary_alerts.append(event)
        return result

    async def _check_boundary(self, authority, milepost: float, geometry) -> Optional[AlertEvent]:
        try:
            thresholds = await self.reference.get_thresholds(authority.agency_id, "Boundary")
        except ReferenceDataError as e:
            log.error("경계 임계값 조회 실패", error=str(e), agency_id=authority.agency_id)
            return None

        decision = evaluate_boundary(authority, milepost, thresholds, geometry)
        if decision is None:
            return None

        key = boundary_cooldown_key(authority.id, decision.boundary, decision.level)
        if not self.dispatcher.try_acquire(key, "Boundary"):
            return None

        event = AlertEvent(
            recipient_id=authority.owner_id,
            authority_id=authority.id,
            type="Boundary",
            level=decision.level,
            triggered_distance=decision.distance,
            threshold=decision.threshold,
            boundary=decision.boundary,
            message=boundary_message(decision)
        )
        await self.dispatcher.dispatch(event)
        return event

    async def start(self, ingest: GpsIngestPort) -> None:
        """
        수집 → 큐 → 처리 파이프라인을 실행합니다.

        Args:
            ingest: GPS 수집 포트
        """
        prod = asyncio.create_task(self._producer(ingest))
        cons = asyncio.create_task(self._consumer())
        log.info("GPS 파이프라인 시작됨")
        await asyncio.gather(prod, cons)

    async def _producer(self, ingest: GpsIngestPort) -> None:
        """원시 데이터를 큐에 추가하는 프로듀서"""
        async for raw in ingest.recv():
            metrics.fixes_received.labels(source="mqtt").inc()
            try:
                self.q.put_nowait(raw)
            except asyncio.QueueFull:
                metrics.fixes_rejected.labels(reason="queue_full").inc()
                log.warning("큐가 가득 찼습니다. GPS 측위를 드롭합니다.")

    async def _consumer(self) -> None:
        """큐에서 데이터를 꺼내 권한별 순서를 지키며 동시 처리합니다."""
        while True:
            raw = await self.q.get()
            await self._sem.acquire()
            task = asyncio.create_task(self._handle(raw))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _handle(self, raw: Dict[str, Any]) -> None:
        t0 = time.perf_counter()
        try:
            await self.on_gps_update(raw)
        except InvalidFixError:
            # on_gps_update 에서 이미 기록됨
            pass
        except Exception as e:
            log.error("GPS 측위 처리 오류",
                      error=str(e),
                      authority_id=raw.get("authority_id") or raw.get("authorityId"))
        finally:
            self._sem.release()
            self.q.task_done()
            log.trace("GPS 측위 처리 완료", elapsed=round(time.perf_counter() - t0, 4))
