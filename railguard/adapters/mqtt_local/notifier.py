"""
Local MQTT alert notifier for RailGuard.

This module implements NotificationPort on top of the local MQTT broker.
Each alert is serialized to JSON and written to the SQLite outbox; a
background worker publishes outbox items in order, retrying failed
publishes with exponential backoff up to a maximum number of attempts.
"""

import asyncio
import json
import ssl
from typing import Any, Dict, Optional
from aiomqtt import Client, MqttError, Will
from jsonschema import validate
from jsonschema.exceptions import ValidationError
from railguard.adapters.storage.sqlite_outbox import OutboxItem, SQLiteOutbox
from railguard.common.retry import backoff_delay
from railguard.core.models import AlertEvent
from railguard.observability import metrics
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.mqtt_local")

# 알림 페이로드 스키마 (모바일 앱 계약)
ALERT_SCHEMA = {
    "type": "object",
    "required": ["type", "level", "message", "authorityId", "recipientId", "triggeredDistance", "timestamp"],
    "properties": {
        "type": {"enum": ["Boundary", "Proximity", "Overlap"]},
        "level": {"enum": ["Info", "Warning", "Critical"]},
        "message": {"type": "string"},
        "authorityId": {"type": "string"},
        "recipientId": {"type": "string"},
        "triggeredDistance": {"type": "number", "minimum": 0},
        "timestamp": {"type": "string"},
        "threshold": {"type": "number"},
        "boundary": {"enum": ["begin", "end"]},
        "peerId": {"type": "string"},
        "peerAuthorityId": {"type": ["string", "null"]},
    },
}


def _channel(topic: str) -> str:
    # {prefix}/users/{id}/alerts -> users
    parts = topic.split("/")
    return parts[1] if len(parts) > 1 else topic


def alert_payload(event: AlertEvent) -> Dict[str, Any]:
    """경보 이벤트를 알림 페이로드로 변환합니다."""
    payload = {
        "type": event.type,
        "level": event.level,
        "message": event.message,
        "authorityId": event.authority_id,
        "recipientId": event.recipient_id,
        "triggeredDistance": round(event.triggered_distance, 4),
        "timestamp": event.timestamp.isoformat(),
    }
    if event.threshold is not None:
        payload["threshold"] = event.threshold
    if event.boundary is not None:
        payload["boundary"] = event.boundary
    if event.peer_id is not None:
        payload["peerId"] = event.peer_id
        payload["peerAuthorityId"] = event.peer_authority_id
    return payload


class MqttAlertNotifier:
    """로컬 MQTT 경보 알림 어댑터 (Outbox 패턴)"""

    def __init__(self,
                 *,
                 broker_host: str,
                 broker_port: int,
                 outbox: SQLiteOutbox,
                 topic_prefix: str = "railguard",
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 tls: bool = False,
                 client_id: Optional[str] = None,
                 keepalive: int = 30,
                 qos: int = 1,
                 backoff_initial: float = 0.5,
                 backoff_max: float = 30.0,
                 max_retries: int = 10,
                 poll_interval: float = 1.0):
        """
        초기화합니다.

        Args:
            broker_host: MQTT 브로커 호스트
            broker_port: MQTT 브로커 포트
            outbox: Outbox 인스턴스
            topic_prefix: 토픽 접두사
            username: 사용자명
            password: 비밀번호
            tls: TLS 사용 여부
            client_id: 클라이언트 ID
            keepalive: keepalive 시간
            qos: 발송 QoS
            backoff_initial: 초기 백오프 시간
            backoff_max: 최대 백오프 시간
            max_retries: 항목별 최대 재시도 횟수
            poll_interval: Outbox 확인 주기 (초)
        """
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.outbox = outbox
        self.topic_prefix = topic_prefix.rstrip("/")
        self.username = username
        self.password = password
        self.tls = tls
        self.client_id = client_id
        self.keepalive = keepalive
        self.qos = qos
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.max_retries = max_retries
        self.poll_interval = poll_interval

        self._stop = asyncio.Event()

    @property
    def state_topic(self) -> str:
        return f"{self.topic_prefix}/state"

    def user_topic(self, user_id: str) -> str:
        return f"{self.topic_prefix}/users/{user_id}/alerts"

    def authority_topic(self, authority_id: str) -> str:
        return f"{self.topic_prefix}/authorities/{authority_id}/alerts"

    # ---- NotificationPort ----

    async def notify_user(self, user_id: str, event: AlertEvent) -> None:
        await self._enqueue(self.user_topic(user_id), event)

    async def notify_authority(self, authority_id: str, event: AlertEvent) -> None:
        await self._enqueue(self.authority_topic(authority_id), event)

    async def _enqueue(self, topic: str, event: AlertEvent) -> int:
        body = alert_payload(event)
        try:
            validate(instance=body, schema=ALERT_SCHEMA)
        except ValidationError as e:
            log.error("알림 페이로드 스키마 검증 실패", topic=topic, error=e.message)
            raise ValueError(f"alert payload schema validation failed: {e.message}") from e
        payload = json.dumps(body, ensure_ascii=False).encode("utf-8")
        return await self.outbox.enqueue(topic, payload, self.qos)

    # ---- 발송 워커 ----

    def _client(self) -> Client:
        tls_context = ssl.create_default_context() if self.tls else None
        return Client(
            hostname=self.broker_host,
            port=self.broker_port,
            username=self.username,
            password=self.password,
            identifier=self.client_id,
            keepalive=self.keepalive,
            tls_context=tls_context,
            will=Will(topic=self.state_topic, payload=b"offline", qos=1, retain=True),
        )

    async def start(self) -> None:
        """브로커 연결을 유지하며 Outbox를 비웁니다. stop() 전까지 반환하지 않습니다."""
        attempt = 0
        while not self._stop.is_set():
            try:
                async with self._client() as client:
                    await client.publish(self.state_topic, b"online", qos=1, retain=True)
                    log.info("로컬 MQTT 브로커 연결됨", host=self.broker_host, port=self.broker_port)
                    attempt = 0
                    while not self._stop.is_set():
                        await self.flush(client)
                        await self._sleep(self.poll_interval)
            except MqttError as e:
                attempt += 1
                delay = backoff_delay(attempt, self.backoff_initial, self.backoff_max)
                log.error("로컬 MQTT 오류, 재연결 대기", error=str(e), delay=delay)
                await self._sleep(delay)

    async def flush(self, client: Client) -> int:
        """
        Outbox 항목을 순서대로 발송합니다.

        Returns:
            발송에 성공한 항목 수
        """
        sent = 0
        for item in await self.outbox.peek_batch():
            if item.attempts >= self.max_retries:
                metrics.delivery_failures.labels(sink="mqtt").inc()
                log.warning("최대 재시도 횟수 초과, 항목 삭제", id=item.id, topic=item.topic)
                await self.outbox.delete(item.id)
                continue
            if not await self._publish(client, item):
                break
            sent += 1
        return sent

    async def _publish(self, client: Client, item: OutboxItem) -> bool:
        try:
            await client.publish(item.topic, item.payload, qos=item.qos)
        except MqttError as e:
            metrics.publish_retries.labels(topic=_channel(item.topic)).inc()
            log.error("알림 발송 실패", id=item.id, topic=item.topic, error=str(e))
            await self.outbox.mark_attempt(item.id, str(e))
            await self._sleep(backoff_delay(item.attempts + 1, self.backoff_initial, self.backoff_max))
            return False

        await self.outbox.delete(item.id)
        log.debug("알림 발송 성공", id=item.id, topic=item.topic)
        return True

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def stop(self) -> None:
        """발송 워커를 중지합니다."""
        self._stop.set()
        log.info("로컬 MQTT 알림 워커 중지 요청됨")
