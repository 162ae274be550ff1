"""
Alert dispatcher for RailGuard.

This module persists alert events to the alert store and delivers
them to the recipient's user channel and the authority channel.
Both sinks are best-effort: failures are logged and never raised
to the caller that triggered the evaluation.
"""

from typing import Optional
from railguard.core.models import AlertEvent
from railguard.dispatch.cooldown import CooldownCache
from railguard.ports.alerts import AlertStorePort
from railguard.ports.notify import NotificationPort
from railguard.observability import metrics
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.dispatch")


class AlertDispatcher:
    """경보 발송기 (저장 + 알림 + 쿨다운)"""

    def __init__(self,
                 store: AlertStorePort,
                 notifier: NotificationPort,
                 cooldown: Optional[CooldownCache] = None):
        """
        초기화합니다.

        Args:
            store: 경보 저장소
            notifier: 알림 발송 포트
            cooldown: 쿨다운 캐시 (None이면 60초 기본 캐시)
        """
        self.store = store
        self.notifier = notifier
        self.cooldown = cooldown if cooldown is not None else CooldownCache()

    def try_acquire(self, key: str, alert_type: str, now: Optional[float] = None) -> bool:
        """쿨다운 키를 획득합니다. 쿨다운 중이면 억제 메트릭을 올리고 False."""
        if self.cooldown.try_acquire(key, now):
            return True
        metrics.alerts_suppressed.labels(type=alert_type).inc()
        log.debug("쿨다운으로 경보 억제됨", key=key)
        return False

    async def dispatch(self, event: AlertEvent) -> None:
        """경보를 저장하고 발송합니다."""
        await self.persist(event)
        await self.deliver(event)

    async def persist(self, event: AlertEvent) -> None:
        """경보를 저장소에 기록합니다."""
        try:
            await self.store.save_alert(event)
        except Exception as e:
            metrics.delivery_failures.labels(sink="store").inc()
            log.error("경보 저장 실패",
                      error=str(e),
                      type=event.type,
                      authority_id=event.authority_id)

    async def deliver(self, event: AlertEvent) -> None:
        """경보를 사용자 채널과 권한 채널로 발송합니다."""
        try:
            await self.notifier.notify_user(event.recipient_id, event)
        except Exception as e:
            metrics.delivery_failures.labels(sink="user").inc()
            log.error("사용자 알림 발송 실패",
                      error=str(e),
                      recipient_id=event.recipient_id)

        try:
            await self.notifier.notify_authority(event.authority_id, event)
        except Exception as e:
            metrics.delivery_failures.labels(sink="authority").inc()
            log.error("권한 채널 알림 발송 실패",
                      error=str(e),
                      authority_id=event.authority_id)

        metrics.alerts_emitted.labels(type=event.type, level=event.level).inc()
        log.info("경보 발송됨",
                 type=event.type,
                 level=event.level,
                 recipient_id=event.recipient_id,
                 authority_id=event.authority_id,
                 distance=round(event.triggered_distance, 4))

    async def record_overlap(self, authority_id: str, other_authority_id: str) -> None:
        """권한 중첩 감사 기록 (실패는 로그만 남김)"""
        try:
            await self.store.record_overlap(authority_id, other_authority_id)
        except Exception as e:
            metrics.delivery_failures.labels(sink="store").inc()
            log.error("권한 중첩 기록 실패",
                      error=str(e),
                      authority_id=authority_id,
                      other_authority_id=other_authority_id)
