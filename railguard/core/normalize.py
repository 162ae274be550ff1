"""
Normalization functions for RailGuard.

This module contains pure functions for converting raw GPS payloads
from device transports into GPSFix models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from dateutil import parser
from railguard.core.errors import InvalidFixError
from railguard.core.models import GPSFix, utcnow
from railguard.common.geo import validate_coordinates


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if raw.get(k) is not None and raw.get(k) != "":
            return raw[k]
    return None


def _to_float(value: Any, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidFixError(f"{field} 값이 숫자가 아닙니다: {value!r}")


def _to_timestamp(value: Any) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        # 밀리초 epoch 도 허용
        seconds = value / 1000 if value > 1e11 else value
        ts = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        try:
            ts = parser.isoparse(str(value))
        except (ValueError, OverflowError):
            raise InvalidFixError(f"timestamp 형식 오류: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def to_fix(raw: Dict[str, Any]) -> GPSFix:
    """
    원시 GPS 페이로드를 GPSFix 로 변환합니다.

    Args:
        raw: 디바이스 페이로드 (camelCase / snake_case 모두 허용)

    Returns:
        검증된 GPSFix

    Raises:
        InvalidFixError: 권한 ID 또는 위도/경도가 없거나 유효하지 않은 경우
    """
    authority_id = _first(raw, "authority_id", "authorityId", "Authority_ID")
    owner_id = _first(raw, "owner_id", "ownerId", "user_id", "userId", "User_ID")
    if authority_id is None:
        raise InvalidFixError("authority_id 가 없습니다")

    lat_raw = _first(raw, "latitude", "lat", "Latitude")
    lon_raw = _first(raw, "longitude", "lon", "lng", "Longitude")
    if lat_raw is None or lon_raw is None:
        raise InvalidFixError("위도/경도가 없습니다")

    lat = _to_float(lat_raw, "latitude")
    lon = _to_float(lon_raw, "longitude")
    if not validate_coordinates(lat, lon):
        raise InvalidFixError(f"좌표 범위 오류: lat={lat}, lon={lon}")

    milepost: Optional[float] = None
    mp_raw = _first(raw, "milepost", "Calculated_MP")
    if mp_raw is not None:
        milepost = _to_float(mp_raw, "milepost")

    return GPSFix(
        authority_id=str(authority_id),
        owner_id=str(owner_id) if owner_id is not None else "",
        latitude=lat,
        longitude=lon,
        timestamp=_to_timestamp(_first(raw, "timestamp", "ts", "Created_Date")),
        milepost=milepost
    )
