"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import pytest
import tempfile
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock
from railguard.settings import Settings
from railguard.core.models import Authority, BoundaryAlertConfig, GeometryPoint, GPSFix
from railguard.adapters.reference.memory import InMemoryReferenceStore
from railguard.dispatch.alert_dispatcher import AlertDispatcher
from railguard.dispatch.cooldown import CooldownCache

# 위도 34도에서 경도 1도 ≈ 57.35 마일
LON_PER_MILE = 1 / 57.35
BASE_LAT = 34.0
BASE_LON = -118.0


def straight_geometry(start_mp: float = 100.0, count: int = 22):
    """동서 방향 직선 형상 (마일포스트 1 간격)"""
    return [
        GeometryPoint(milepost=start_mp + i, latitude=BASE_LAT, longitude=BASE_LON + i * LON_PER_MILE)
        for i in range(count)
    ]


def make_authority(id: str = "A1", begin: float = 100.0, end: float = 120.0, **kw) -> Authority:
    data = dict(
        id=id,
        subdivision_id="VENTURA",
        track_type="Main",
        track_number="1",
        begin_milepost=begin,
        end_milepost=end,
        owner_id=f"user-{id}",
        agency_id="METRLK",
    )
    data.update(kw)
    return Authority(**data)


def fix_at(authority: Authority, ts: float, milepost: float = None,
           lat: float = BASE_LAT, lon: float = BASE_LON) -> GPSFix:
    return GPSFix(
        authority_id=authority.id,
        owner_id=authority.owner_id,
        latitude=lat,
        longitude=lon,
        timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
        milepost=milepost,
    )


class FakeClock:
    """수동으로 진행시키는 시계"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_db_path():
    """임시 데이터베이스 파일 경로"""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        temp_path = f.name
    yield temp_path
    # 테스트 후 파일 정리
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    return settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def geometry():
    return straight_geometry()


@pytest.fixture
def boundary_thresholds():
    """경계 임계값 1.0 → Info, 0.5 → Warning, 0.25 → Critical"""
    return [
        BoundaryAlertConfig(agency_id="METRLK", level="Info", distance_miles=1.0),
        BoundaryAlertConfig(agency_id="METRLK", level="Warning", distance_miles=0.5),
        BoundaryAlertConfig(agency_id="METRLK", level="Critical", distance_miles=0.25),
    ]


@pytest.fixture
def store(geometry, boundary_thresholds):
    """형상과 임계값이 적재된 메모리 저장소"""
    return InMemoryReferenceStore(
        geometry={"VENTURA": geometry},
        thresholds=boundary_thresholds,
    )


@pytest.fixture
def alert_store():
    return AsyncMock()


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def dispatcher(alert_store, notifier, clock):
    return AlertDispatcher(alert_store, notifier, CooldownCache(window_sec=60, clock=clock))
