# railguard/settings.py
from __future__ import annotations
from typing import List, Literal, Tuple
from pydantic import BaseModel, Field
from railguard.core.models import AlertLevel
from railguard.core.thresholds import DEFAULT_PROXIMITY_THRESHOLDS

class MqttCommon(BaseModel):
    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    tls: bool = False
    client_id: str | None = None
    keepalive: int = 30
    clean_session: bool = False

class RemoteMQTT(MqttCommon):
    topic: str = "railguard/gps/#"
    lwt_topic: str = "railguard/ingest/state"

class LocalMQTT(MqttCommon):
    topic_prefix: str = "railguard"
    qos: int = 1

class Monitor(BaseModel):
    enabled: bool = True
    tick_interval_sec: float = 30.0
    freshness_window_sec: float = 300.0
    proximity_thresholds: List[Tuple[float, AlertLevel]] = Field(
        default_factory=lambda: list(DEFAULT_PROXIMITY_THRESHOLDS)
    )

class Alerts(BaseModel):
    cooldown_sec: float = 60.0
    suppress_low_confidence: bool = False

class Reference(BaseModel):
    source: Literal["file", "http"] = "file"
    geometry_path: str = "/data/milepost_geometry.xlsx"
    authorities_path: str = ""
    thresholds_path: str = ""
    base_url: str = "http://localhost:5000"
    token: str = ""
    timeout_sec: int = 10

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "RailGuard"
    build_version: str = "0.1.0"
    log_level: str = "INFO"
    log_json: bool = False

class Reliability(BaseModel):
    outbox_path: str = "/data/outbox.db"
    alert_db_path: str = "/data/alerts.db"
    publish_max_retries: int = 10
    backoff_initial_sec: float = 0.5
    backoff_max_sec: float = 30.0
    queue_maxsize: int = 1000
    max_concurrency: int = 64

class Settings(BaseModel):
    # 하위 섹션 (기본값/팩토리로 누락 방지)
    remote_mqtt: RemoteMQTT = Field(default_factory=RemoteMQTT)
    local_mqtt: LocalMQTT = Field(default_factory=LocalMQTT)
    monitor: Monitor = Field(default_factory=Monitor)
    alerts: Alerts = Field(default_factory=Alerts)
    reference: Reference = Field(default_factory=Reference)
    observability: Observability = Field(default_factory=Observability)
    reliability: Reliability = Field(default_factory=Reliability)
