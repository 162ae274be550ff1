"""
설정 로드 단위 테스트

이 모듈은 기본 설정값과 환경변수 오버레이를 테스트합니다.
"""

import pytest
from contextlib import AsyncExitStack

from railguard.adapters.reference.http_client import BackendReferenceClient
from railguard.adapters.reference.memory import InMemoryReferenceStore
from railguard.main import build_reference, build_settings
from railguard.orchestrators.gps_pipeline import GpsPipeline
from railguard.settings import Settings

from conftest import fix_at, straight_geometry


def test_defaults():
    s = Settings()
    assert s.remote_mqtt.topic == "railguard/gps/#"
    assert s.local_mqtt.topic_prefix == "railguard"
    assert s.monitor.tick_interval_sec == 30.0
    assert s.monitor.freshness_window_sec == 300.0
    assert s.monitor.proximity_thresholds[-1] == (0.25, "Critical")
    assert s.alerts.cooldown_sec == 60.0
    assert s.reference.source == "file"


def test_env_overlay(monkeypatch):
    monkeypatch.setenv("REMOTE_MQTT_HOST", "gps.example")
    monkeypatch.setenv("REMOTE_MQTT_PORT", "8883")
    monkeypatch.setenv("REMOTE_MQTT_TLS", "true")
    monkeypatch.setenv("GPS_TOPIC", "metrolink/gps/+")
    monkeypatch.setenv("MONITOR_INTERVAL_SEC", "10")
    monkeypatch.setenv("ALERT_COOLDOWN_SEC", "120")
    monkeypatch.setenv("SUPPRESS_LOW_CONFIDENCE", "yes")
    monkeypatch.setenv("PROXIMITY_THRESHOLDS", "2.0:Info, 0.1:Critical")
    monkeypatch.setenv("REFERENCE_SOURCE", "http")
    monkeypatch.setenv("BACKEND_BASE_URL", "http://backend:5000")

    s = build_settings()

    assert s.remote_mqtt.host == "gps.example"
    assert s.remote_mqtt.port == 8883
    assert s.remote_mqtt.tls is True
    assert s.remote_mqtt.topic == "metrolink/gps/+"
    assert s.monitor.tick_interval_sec == 10.0
    assert s.alerts.cooldown_sec == 120.0
    assert s.alerts.suppress_low_confidence is True
    assert [t[0] for t in s.monitor.proximity_thresholds] == [2.0, 0.1]
    assert s.reference.source == "http"
    assert s.reference.base_url == "http://backend:5000"


@pytest.mark.asyncio
async def test_build_reference_from_file(tmp_path):
    path = tmp_path / "geometry.csv"
    path.write_text("subdivision,MP,latitude,longitude\nVENTURA,1,34.0,-118.0\nVENTURA,2,34.0,-118.02\n")
    s = Settings()
    s.reference.geometry_path = str(path)
    positions = InMemoryReferenceStore()

    async with AsyncExitStack() as stack:
        reference = await build_reference(s, stack, positions)

    assert reference is positions
    assert len(await positions.get_geometry("VENTURA")) == 2


@pytest.mark.asyncio
async def test_build_reference_http():
    s = Settings()
    s.reference.source = "http"
    async with AsyncExitStack() as stack:
        reference = await build_reference(s, stack, InMemoryReferenceStore())
        assert isinstance(reference, BackendReferenceClient)
        assert reference.session is not None
    assert reference.session is None


@pytest.mark.asyncio
async def test_file_mode_end_to_end(tmp_path, dispatcher, notifier):
    """파일 모드: 형상 + 권한 + 임계값 CSV 만으로 경계 경보 발생"""
    geometry = straight_geometry()
    geometry_csv = tmp_path / "geometry.csv"
    geometry_csv.write_text("subdivision,MP,latitude,longitude\n" + "".join(
        f"VENTURA,{p.milepost},{p.latitude},{p.longitude}\n" for p in geometry
    ))
    authorities_csv = tmp_path / "authorities.csv"
    authorities_csv.write_text(
        "Authority_ID,Subdivision_ID,Track_Type,Track_Number,Begin_MP,End_MP,User_ID,Agency_ID,Is_Active\n"
        "A1,VENTURA,Main,1,100,120,u1,METRLK,1\n"
    )
    thresholds_csv = tmp_path / "thresholds.csv"
    thresholds_csv.write_text(
        "Config_Type,Agency_ID,Alert_Level,Distance_Miles,Message_Template\n"
        "Boundary_Alert,METRLK,Warning,0.5,\n"
        "Boundary_Alert,METRLK,Critical,0.25,{distance} mi to {boundary} MP {milepost}\n"
    )

    s = Settings()
    s.reference.geometry_path = str(geometry_csv)
    s.reference.authorities_path = str(authorities_csv)
    s.reference.thresholds_path = str(thresholds_csv)
    positions = InMemoryReferenceStore()

    async with AsyncExitStack() as stack:
        reference = await build_reference(s, stack, positions)

    authority = await reference.get_authority("A1")
    assert authority is not None
    assert [a.id for a in await reference.get_active_authorities("VENTURA")] == ["A1"]

    pipeline = GpsPipeline(reference, positions, dispatcher)
    end = geometry[20]
    result = await pipeline.on_gps_update(fix_at(authority, 1_700_000_000.0,
                                                 lat=end.latitude, lon=end.longitude))

    assert result.milepost == 120.0
    assert result.confidence == "exact"
    assert len(result.boundary_alerts) == 1
    alert = result.boundary_alerts[0]
    assert alert.level == "Critical"
    assert alert.message == "0.00 mi to end MP 120"
    notifier.notify_user.assert_awaited_once_with("u1", alert)


def test_reference_paths_from_env(monkeypatch):
    monkeypatch.setenv("AUTHORITIES_PATH", "/data/authorities.csv")
    monkeypatch.setenv("THRESHOLDS_PATH", "/data/thresholds.csv")
    s = build_settings()
    assert s.reference.authorities_path == "/data/authorities.csv"
    assert s.reference.thresholds_path == "/data/thresholds.csv"
