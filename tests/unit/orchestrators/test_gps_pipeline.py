"""
GPS 파이프라인 단위 테스트

이 모듈은 GPS 측위 처리(위치 추정 → 경계 평가 → 경보 발송)를 테스트합니다.
"""

import pytest
import asyncio
from datetime import datetime, timedelta, timezone

from railguard.core.errors import InvalidFixError, ReferenceDataError
from railguard.core.models import GPSFix
from railguard.orchestrators.gps_pipeline import GpsPipeline

from conftest import BASE_LAT, fix_at, make_authority

T0 = 1_700_000_000.0


@pytest.fixture
def authority(store):
    a = make_authority("A1", 100, 120)
    store.put_authority(a)
    return a


@pytest.fixture
def pipeline(store, dispatcher):
    return GpsPipeline(store, store, dispatcher)


def vertex(geometry, milepost):
    p = next(p for p in geometry if p.milepost == milepost)
    return p.latitude, p.longitude


class TestOnGpsUpdate:
    """on_gps_update() 테스트"""

    @pytest.mark.asyncio
    async def test_fix_at_end_boundary_raises_critical(self, pipeline, store, authority, geometry, notifier):
        lat, lon = vertex(geometry, 120.0)
        result = await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))

        assert result.milepost == 120.0
        assert result.confidence == "exact"
        assert result.distance_from_track == 0.0
        assert len(result.boundary_alerts) == 1

        alert = result.boundary_alerts[0]
        assert alert.type == "Boundary"
        assert alert.level == "Critical"
        assert alert.boundary == "end"
        assert alert.recipient_id == authority.owner_id
        notifier.notify_user.assert_awaited_once_with(authority.owner_id, alert)
        notifier.notify_authority.assert_awaited_once_with(authority.id, alert)

        latest = await store.get_latest_fix(authority.id)
        assert latest.milepost == 120.0

    @pytest.mark.asyncio
    async def test_fix_inside_authority_no_alert(self, pipeline, store, authority, geometry, notifier):
        lat, lon = vertex(geometry, 110.0)
        result = await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))

        assert result.milepost == 110.0
        assert result.boundary_alerts == []
        notifier.notify_user.assert_not_awaited()
        assert (await store.get_latest_fix(authority.id)).milepost == 110.0

    @pytest.mark.asyncio
    async def test_raw_payload_is_normalized(self, pipeline, authority, geometry):
        lat, lon = vertex(geometry, 105.0)
        result = await pipeline.on_gps_update({
            "authorityId": authority.id, "userId": authority.owner_id,
            "latitude": lat, "longitude": lon, "timestamp": T0,
        })
        assert result.milepost == 105.0

    @pytest.mark.asyncio
    async def test_invalid_fix_rejected_without_side_effects(self, pipeline, store, authority, notifier, alert_store):
        with pytest.raises(InvalidFixError):
            await pipeline.on_gps_update({"authority_id": authority.id, "latitude": 34.0})

        assert await store.get_latest_fix(authority.id) is None
        notifier.notify_user.assert_not_awaited()
        alert_store.save_alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_fix_dropped(self, pipeline, store, authority, geometry, notifier):
        lat, lon = vertex(geometry, 110.0)
        await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))

        lat, lon = vertex(geometry, 120.0)
        result = await pipeline.on_gps_update(fix_at(authority, T0 - 5, lat=lat, lon=lon))

        assert result.milepost is None
        assert result.boundary_alerts == []
        assert (await store.get_latest_fix(authority.id)).milepost == 110.0
        notifier.notify_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_boundary_cooldown(self, pipeline, authority, geometry, clock):
        lat, lon = vertex(geometry, 120.0)

        first = await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))
        second = await pipeline.on_gps_update(fix_at(authority, T0 + 10, lat=lat, lon=lon))
        clock.advance(61)
        third = await pipeline.on_gps_update(fix_at(authority, T0 + 71, lat=lat, lon=lon))

        assert len(first.boundary_alerts) == 1
        assert second.boundary_alerts == []
        assert len(third.boundary_alerts) == 1

    @pytest.mark.asyncio
    async def test_missing_geometry(self, pipeline, store, notifier):
        a = make_authority("A9", 1, 5, subdivision_id="UNKNOWN")
        store.put_authority(a)

        result = await pipeline.on_gps_update(fix_at(a, T0))

        assert result.milepost is None
        assert await store.get_latest_fix(a.id) is not None
        notifier.notify_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_authority(self, pipeline, store, authority, geometry, notifier):
        store.deactivate(authority.id)
        lat, lon = vertex(geometry, 120.0)

        result = await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))

        assert result.milepost is None
        notifier.notify_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_low_confidence_reported(self, pipeline, authority, geometry):
        _, lon = vertex(geometry, 120.0)
        result = await pipeline.on_gps_update(fix_at(authority, T0, lat=BASE_LAT + 0.3 / 69.0, lon=lon))

        assert result.confidence == "low"
        assert result.milepost == 120.0
        assert len(result.boundary_alerts) == 1

    @pytest.mark.asyncio
    async def test_low_confidence_suppressed_when_configured(self, store, dispatcher, authority, geometry):
        pipeline = GpsPipeline(store, store, dispatcher, suppress_low_confidence=True)
        _, lon = vertex(geometry, 120.0)
        result = await pipeline.on_gps_update(fix_at(authority, T0, lat=BASE_LAT + 0.3 / 69.0, lon=lon))

        assert result.confidence == "low"
        assert result.boundary_alerts == []

    @pytest.mark.asyncio
    async def test_reference_failure_returns_empty(self, store, dispatcher, authority, monkeypatch):
        async def boom(_):
            raise ReferenceDataError("backend down")

        monkeypatch.setattr(store, "get_authority", boom)
        pipeline = GpsPipeline(store, store, dispatcher)

        result = await pipeline.on_gps_update(fix_at(authority, T0))
        assert result.milepost is None

    @pytest.mark.asyncio
    async def test_same_authority_updates_serialized(self, pipeline, store, authority, geometry):
        fixes = []
        for i, mp in enumerate((105.0, 106.0, 107.0)):
            lat, lon = vertex(geometry, mp)
            fixes.append(fix_at(authority, T0 + i, lat=lat, lon=lon))

        await asyncio.gather(*(pipeline.on_gps_update(f) for f in fixes))

        assert (await store.get_latest_fix(authority.id)).milepost == 107.0

    @pytest.mark.asyncio
    async def test_naive_timestamp_after_aware(self, pipeline, store, authority, geometry):
        """시간대 없는 시각이 섞여도 비교 오류 없이 처리"""
        lat, lon = vertex(geometry, 110.0)
        await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))

        lat, lon = vertex(geometry, 111.0)
        naive = datetime.fromtimestamp(T0 + 5, tz=timezone.utc).replace(tzinfo=None)
        result = await pipeline.on_gps_update(GPSFix(
            authority_id=authority.id, owner_id=authority.owner_id,
            latitude=lat, longitude=lon, timestamp=naive,
        ))

        assert result.milepost == 111.0
        assert (await store.get_latest_fix(authority.id)).timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_naive_payload_timestamp(self, pipeline, authority, geometry):
        lat, lon = vertex(geometry, 110.0)
        await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))

        result = await pipeline.on_gps_update({
            "authority_id": authority.id, "owner_id": authority.owner_id,
            "latitude": lat, "longitude": lon, "timestamp": "2023-11-14T22:15:00",
        })
        assert result.milepost == 110.0


class TestLastSeen:
    """마지막 측위 시각 관리 테스트"""

    @pytest.mark.asyncio
    async def test_forgotten_for_inactive_and_unknown(self, pipeline, store, authority, geometry):
        lat, lon = vertex(geometry, 110.0)
        await pipeline.on_gps_update(fix_at(authority, T0, lat=lat, lon=lon))
        assert authority.id in pipeline._last_seen

        store.deactivate(authority.id)
        await pipeline.on_gps_update(fix_at(authority, T0 + 1, lat=lat, lon=lon))
        assert authority.id not in pipeline._last_seen

        ghost = make_authority("GHOST", 1, 5)
        await pipeline.on_gps_update(fix_at(ghost, T0))
        assert "GHOST" not in pipeline._last_seen

    @pytest.mark.asyncio
    async def test_old_entries_pruned(self, store, dispatcher, geometry):
        pipeline = GpsPipeline(store, store, dispatcher, freshness_sec=60, prune_every=1)
        old = make_authority("OLD", 100, 120)
        new = make_authority("NEW", 100, 120)
        store.put_authority(old)
        store.put_authority(new)
        lat, lon = vertex(geometry, 110.0)

        await pipeline.on_gps_update(fix_at(old, T0, lat=lat, lon=lon))
        await pipeline.on_gps_update(fix_at(new, T0 + 30, lat=lat, lon=lon))
        assert set(pipeline._last_seen) == {"OLD", "NEW"}

        await pipeline.on_gps_update(fix_at(new, T0 + 120, lat=lat, lon=lon))
        assert set(pipeline._last_seen) == {"NEW"}

    def test_prune_keeps_recent(self, pipeline):
        now = datetime.fromtimestamp(T0, tz=timezone.utc)
        pipeline._last_seen = {"a": now - timedelta(seconds=400), "b": now - timedelta(seconds=10)}
        assert pipeline._prune_last_seen(now) == 1
        assert list(pipeline._last_seen) == ["b"]


class FakeIngest:
    """미리 정한 페이로드를 내보낸 뒤 대기하는 수집기"""

    def __init__(self, payloads):
        self.payloads = payloads

    async def recv(self):
        for p in self.payloads:
            yield p
        await asyncio.Event().wait()


@pytest.mark.integration
class TestPipelineLoop:
    """수집 → 큐 → 처리 루프 테스트"""

    @pytest.mark.asyncio
    async def test_consumes_ingest(self, pipeline, store, authority, geometry):
        lat, lon = vertex(geometry, 112.0)
        ingest = FakeIngest([
            {"authority_id": authority.id},  # 잘못된 측위는 건너뜀
            {"authority_id": authority.id, "owner_id": authority.owner_id,
             "latitude": lat, "longitude": lon, "timestamp": T0},
        ])

        task = asyncio.create_task(pipeline.start(ingest))
        try:
            for _ in range(200):
                if await store.get_latest_fix(authority.id) is not None:
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert (await store.get_latest_fix(authority.id)).milepost == 112.0
