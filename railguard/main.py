# railguard/main.py
import os, asyncio, signal
from contextlib import AsyncExitStack
from typing import List, Optional
import uvicorn
from railguard.settings import Settings
from railguard.core.thresholds import proximity_thresholds_from
from railguard.observability.health import create_app
from railguard.observability.logging_setup import setup_logging_dev, setup_logging_json, get_logger
from railguard.adapters.mqtt_remote.gps_ingestor import RemoteGpsIngestor
from railguard.adapters.mqtt_local.notifier import MqttAlertNotifier
from railguard.adapters.storage.sqlite_outbox import SQLiteOutbox
from railguard.adapters.storage.sqlite_alert_log import SQLiteAlertLog
from railguard.adapters.reference.memory import InMemoryReferenceStore
from railguard.adapters.reference.http_client import BackendReferenceClient
from railguard.dispatch.alert_dispatcher import AlertDispatcher
from railguard.dispatch.cooldown import CooldownCache
from railguard.features.geometry_import import load_geometry
from railguard.features.reference_import import load_authorities, load_thresholds
from railguard.orchestrators.gps_pipeline import GpsPipeline
from railguard.orchestrators.overlap_checker import OverlapChecker
from railguard.orchestrators.proximity_monitor import ProximityMonitor

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def _thresholds(raw: str):
    # "1.0:Info,0.75:Warning,0.5:Warning,0.25:Critical"
    return proximity_thresholds_from([p.split(":", 1) for p in raw.split(",") if p.strip()])

def build_settings() -> Settings:
    s = Settings()

    # REMOTE MQTT (GPS 수집)
    s.remote_mqtt.host = os.getenv("REMOTE_MQTT_HOST", s.remote_mqtt.host)
    s.remote_mqtt.port = int(os.getenv("REMOTE_MQTT_PORT", s.remote_mqtt.port))
    s.remote_mqtt.username = os.getenv("REMOTE_MQTT_USERNAME", s.remote_mqtt.username)
    s.remote_mqtt.password = os.getenv("REMOTE_MQTT_PASSWORD", s.remote_mqtt.password)
    s.remote_mqtt.client_id = os.getenv("REMOTE_MQTT_CLIENT_ID", s.remote_mqtt.client_id)
    s.remote_mqtt.keepalive = int(os.getenv("REMOTE_MQTT_KEEPALIVE", s.remote_mqtt.keepalive))
    s.remote_mqtt.clean_session = _b("REMOTE_MQTT_CLEAN_SESSION", s.remote_mqtt.clean_session)
    s.remote_mqtt.tls = _b("REMOTE_MQTT_TLS", s.remote_mqtt.tls)
    s.remote_mqtt.topic = os.getenv("GPS_TOPIC", s.remote_mqtt.topic)

    # LOCAL MQTT (알림)
    s.local_mqtt.host  = os.getenv("LOCAL_MQTT_HOST", s.local_mqtt.host)
    s.local_mqtt.port  = int(os.getenv("LOCAL_MQTT_PORT", s.local_mqtt.port))
    s.local_mqtt.username = os.getenv("LOCAL_MQTT_USERNAME", s.local_mqtt.username)
    s.local_mqtt.password = os.getenv("LOCAL_MQTT_PASSWORD", s.local_mqtt.password)
    s.local_mqtt.tls = _b("LOCAL_MQTT_TLS", s.local_mqtt.tls)
    s.local_mqtt.topic_prefix = os.getenv("LOCAL_TOPIC_PREFIX", s.local_mqtt.topic_prefix)

    # 근접 모니터
    s.monitor.enabled = _b("MONITOR_ENABLED", s.monitor.enabled)
    s.monitor.tick_interval_sec = float(os.getenv("MONITOR_INTERVAL_SEC", s.monitor.tick_interval_sec))
    s.monitor.freshness_window_sec = float(os.getenv("GPS_FRESHNESS_SEC", s.monitor.freshness_window_sec))
    if os.getenv("PROXIMITY_THRESHOLDS"):
        s.monitor.proximity_thresholds = _thresholds(os.environ["PROXIMITY_THRESHOLDS"])

    # 경보
    s.alerts.cooldown_sec = float(os.getenv("ALERT_COOLDOWN_SEC", s.alerts.cooldown_sec))
    s.alerts.suppress_low_confidence = _b("SUPPRESS_LOW_CONFIDENCE", s.alerts.suppress_low_confidence)

    # 기준 데이터
    s.reference.source = os.getenv("REFERENCE_SOURCE", s.reference.source)
    s.reference.geometry_path = os.getenv("GEOMETRY_PATH", s.reference.geometry_path)
    s.reference.authorities_path = os.getenv("AUTHORITIES_PATH", s.reference.authorities_path)
    s.reference.thresholds_path = os.getenv("THRESHOLDS_PATH", s.reference.thresholds_path)
    s.reference.base_url = os.getenv("BACKEND_BASE_URL", s.reference.base_url)
    s.reference.token = os.getenv("BACKEND_TOKEN", s.reference.token)
    s.reference.timeout_sec = int(os.getenv("BACKEND_TIMEOUT_SEC", s.reference.timeout_sec))

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("METRICS_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)
    s.observability.log_json = _b("LOG_JSON", s.observability.log_json)

    # 신뢰성
    s.reliability.outbox_path = os.getenv("OUTBOX_PATH", s.reliability.outbox_path)
    s.reliability.alert_db_path = os.getenv("ALERT_DB_PATH", s.reliability.alert_db_path)
    s.reliability.publish_max_retries = int(os.getenv("PUBLISH_MAX_RETRIES", s.reliability.publish_max_retries))
    s.reliability.queue_maxsize = int(os.getenv("QUEUE_MAXSIZE", s.reliability.queue_maxsize))

    return s

async def start_http(settings: Settings, **deps) -> Optional[asyncio.Task]:
    if not settings.observability.metrics_enabled: return None
    app = create_app(settings, **deps)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    ).serve())

async def build_reference(s: Settings, stack: AsyncExitStack, positions: InMemoryReferenceStore):
    """설정된 출처의 기준 데이터 포트를 만듭니다."""
    if s.reference.source == "http":
        return await stack.enter_async_context(BackendReferenceClient(
            base_url=s.reference.base_url,
            token=s.reference.token,
            timeout=s.reference.timeout_sec,
        ))
    for subdivision_id, points in load_geometry(s.reference.geometry_path).items():
        positions.set_geometry(subdivision_id, points)
    if s.reference.authorities_path:
        for authority in load_authorities(s.reference.authorities_path):
            positions.put_authority(authority)
    if s.reference.thresholds_path:
        for config in load_thresholds(s.reference.thresholds_path):
            positions.add_threshold(config)
    return positions

async def main():
    s = build_settings()
    if s.observability.log_json:
        setup_logging_json(s.observability.log_level)
    else:
        setup_logging_dev(s.observability.log_level)
    log = get_logger("railguard.main")
    log.info("설정 로드 완료", reference=s.reference.source, monitor=s.monitor.enabled)

    async with AsyncExitStack() as stack:
        positions = InMemoryReferenceStore()
        reference = await build_reference(s, stack, positions)

        alert_log = SQLiteAlertLog(s.reliability.alert_db_path); await alert_log.init()
        outbox = SQLiteOutbox(s.reliability.outbox_path); await outbox.init()

        notifier = MqttAlertNotifier(
            broker_host=s.local_mqtt.host,
            broker_port=s.local_mqtt.port,
            outbox=outbox,
            topic_prefix=s.local_mqtt.topic_prefix,
            username=s.local_mqtt.username,
            password=s.local_mqtt.password,
            tls=s.local_mqtt.tls,
            client_id=s.local_mqtt.client_id,
            keepalive=s.local_mqtt.keepalive,
            qos=s.local_mqtt.qos,
            backoff_initial=s.reliability.backoff_initial_sec,
            backoff_max=s.reliability.backoff_max_sec,
            max_retries=s.reliability.publish_max_retries,
        )
        ingest = RemoteGpsIngestor(
            host=s.remote_mqtt.host,
            port=s.remote_mqtt.port,
            topic=s.remote_mqtt.topic,
            username=s.remote_mqtt.username,
            password=s.remote_mqtt.password,
            tls=s.remote_mqtt.tls,
            client_id=s.remote_mqtt.client_id,
            keepalive=s.remote_mqtt.keepalive,
            clean_session=s.remote_mqtt.clean_session,
            lwt_topic=s.remote_mqtt.lwt_topic,
        )

        dispatcher = AlertDispatcher(alert_log, notifier, CooldownCache(window_sec=s.alerts.cooldown_sec))
        pipeline = GpsPipeline(
            reference, positions, dispatcher,
            suppress_low_confidence=s.alerts.suppress_low_confidence,
            queue_maxsize=s.reliability.queue_maxsize,
            max_concurrency=s.reliability.max_concurrency,
            freshness_sec=s.monitor.freshness_window_sec,
        )
        monitor = ProximityMonitor(
            reference, positions, dispatcher,
            interval_sec=s.monitor.tick_interval_sec,
            freshness_sec=s.monitor.freshness_window_sec,
            thresholds=s.monitor.proximity_thresholds,
        )
        checker = OverlapChecker(reference, dispatcher)

        async def storage_ready() -> bool:
            await alert_log.get_count()
            await outbox.get_count()
            return True

        registry = positions if reference is positions else None
        http_task = await start_http(s, monitor=monitor, overlap_checker=checker,
                                     readiness=storage_ready, registry=registry)
        if http_task:
            log.info("HTTP 서버 시작됨", port=s.observability.http_port)

        stop = asyncio.Future()
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
                except NotImplementedError: pass
        except RuntimeError: pass

        tasks: List[asyncio.Task] = [
            asyncio.create_task(notifier.start()),
            asyncio.create_task(pipeline.start(ingest)),
        ]
        if s.monitor.enabled:
            monitor.start()
        log.info("RailGuard 시작")

        await stop
        log.info("종료 신호 수신, 중지 중")
        await monitor.stop()
        await ingest.stop()
        await notifier.stop()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if http_task: http_task.cancel()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
