"""
HTTP endpoints for RailGuard observability.

This module implements health, readiness, metrics, info and
proximity-status endpoints for monitoring and operational visibility.
"""

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import time
from typing import Awaitable, Callable, Optional
from railguard.settings import Settings
from railguard.observability import metrics as m
from railguard.observability.logging_setup import get_logger
from railguard.core.models import Authority
from railguard.adapters.reference.memory import InMemoryReferenceStore
from railguard.orchestrators.overlap_checker import OverlapChecker
from railguard.orchestrators.proximity_monitor import ProximityMonitor

log = get_logger("railguard.http")

ReadinessCheck = Callable[[], Awaitable[bool]]


def create_app(settings: Settings,
               monitor: Optional[ProximityMonitor] = None,
               overlap_checker: Optional[OverlapChecker] = None,
               readiness: Optional[ReadinessCheck] = None,
               registry: Optional[InMemoryReferenceStore] = None) -> FastAPI:
    """
    FastAPI 애플리케이션을 생성합니다.

    Args:
        settings: 애플리케이션 설정
        monitor: 근접 모니터 (있으면 /ready, /proximity 에 사용)
        overlap_checker: 권한 중첩 검사기 (있으면 /authorities/overlap-check 사용)
        readiness: 추가 준비 상태 검사 (예: DB 접근)
        registry: 파일 모드 권한 저장소 (있으면 신규 권한 등록, 권한 종료에 사용)
    """
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="RailGuard GPS Locating and Alerting Service"
    )

    start_time = time.time()

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트"""
        checks = {}
        if monitor is not None and settings.monitor.enabled:
            checks["proximity_monitor"] = monitor.running
        if readiness is not None:
            try:
                checks["storage"] = await readiness()
            except Exception as e:
                log.error("레디니스 검사 오류", error=str(e))
                checks["storage"] = False

        ok = all(checks.values())
        return JSONResponse({
            "status": "ready" if ok else "not_ready",
            "checks": checks,
            "service": settings.observability.service_name,
            "timestamp": time.time()
        }, status_code=200 if ok else 503)

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        m.uptime_seconds.set(time.time() - start_time)
        return Response(
            generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "uptime_seconds": int(time.time() - start_time),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "monitor_state": monitor.state if monitor is not None else None
        })

    @app.get("/proximity/{authority_id}")
    async def proximity(authority_id: str):
        """권한 기준 주변 작업자 근접 현황"""
        if monitor is None:
            raise HTTPException(status_code=404, detail="Proximity monitor not configured")
        peers = await monitor.proximity_status(authority_id)
        return {
            "authorityId": authority_id,
            "peers": [p.model_dump(mode="json") for p in peers]
        }

    @app.post("/authorities/overlap-check")
    async def overlap_check(authority: Authority):
        """신규 권한의 중첩 검사를 수행하고 양쪽 소유자에게 경보를 보냅니다."""
        if overlap_checker is None:
            raise HTTPException(status_code=404, detail="Overlap checker not configured")
        overlapping = await overlap_checker.check_new_authority(authority)
        if registry is not None:
            registry.put_authority(authority)
            log.info("신규 권한 등록됨", authority_id=authority.id, overlaps=len(overlapping))
        return {
            "authorityId": authority.id,
            "hasOverlap": bool(overlapping),
            "overlaps": [a.model_dump(mode="json") for a in overlapping]
        }

    @app.post("/authorities/{authority_id}/end")
    async def end_authority(authority_id: str):
        """권한을 종료합니다 (파일 모드)."""
        if registry is None:
            raise HTTPException(status_code=404, detail="Authority registry not configured")
        if not registry.deactivate(authority_id):
            raise HTTPException(status_code=404, detail="Authority not found")
        return {"authorityId": authority_id, "isActive": False}

    return app
