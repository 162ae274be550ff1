import asyncio
import json
import ssl
from typing import AsyncIterator, Dict, Optional
from aiomqtt import Client, MqttError, Will

from railguard.common.retry import backoff_delay
from railguard.observability.logging_setup import get_logger
log = get_logger("railguard.mqtt_remote")


def decode_payload(raw: bytes) -> Optional[Dict]:
    """MQTT 페이로드를 JSON 객체로 디코딩합니다. 실패하면 None."""
    try:
        payload = json.loads(raw.decode("utf-8"))
    except json.JSONDecodeError as e:
        log.error("JSON 파싱 오류", error=str(e))
        return None
    except UnicodeDecodeError as e:
        log.error("문자열 디코딩 오류", error=str(e))
        return None
    if not isinstance(payload, dict):
        log.warning("객체가 아닌 GPS 페이로드 무시됨", kind=type(payload).__name__)
        return None
    return payload


class RemoteGpsIngestor:
    """원격 MQTT GPS 수집 어댑터"""

    def __init__(
        self,
        host: str,
        port: int,
        topic: str = "railguard/gps/#",
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        tls: bool = False,
        client_id: Optional[str] = None,
        keepalive: int = 30,
        clean_session: bool = False,
        lwt_topic: str = "railguard/ingest/state",
        reconnect_initial: float = 1.0,
        reconnect_max: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.topic = topic
        self.username = username
        self.password = password
        self.tls = tls
        self.client_id = client_id
        self.keepalive = keepalive
        self.clean_session = clean_session
        self.lwt_topic = lwt_topic
        self.reconnect_initial = reconnect_initial
        self.reconnect_max = reconnect_max

        self._running = False

    def _client(self) -> Client:
        tls_context = ssl.create_default_context() if self.tls else None
        return Client(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            identifier=self.client_id,
            keepalive=self.keepalive,
            clean_session=self.clean_session,
            tls_context=tls_context,
            will=Will(topic=self.lwt_topic, payload=b"offline", qos=1, retain=True),
        )

    async def recv(self) -> AsyncIterator[Dict]:
        self._running = True
        attempt = 0
        while self._running:
            try:
                async with self._client() as client:
                    await client.subscribe(self.topic, qos=1)
                    log.info("GPS 토픽 구독됨", host=self.host, port=self.port, topic=self.topic)
                    attempt = 0
                    async for message in client.messages:
                        if not self._running:
                            break
                        payload = decode_payload(message.payload)
                        if payload is not None:
                            yield payload

            except MqttError as e:
                attempt += 1
                log.error("MQTT 오류", error=str(e))
                if self._running:
                    await asyncio.sleep(backoff_delay(attempt, self.reconnect_initial, self.reconnect_max))

    async def stop(self) -> None:
        self._running = False
        log.info("GPS 수집 중지 요청됨")
