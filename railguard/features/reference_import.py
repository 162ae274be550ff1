"""
Authority and alert threshold import for RailGuard.

When the service runs without the backend API, active authorities and
agency alert thresholds are loaded from CSV files next to the milepost
geometry. Both the service's own column names and the backend export
column names (Authority_ID, Begin_MP, Config_Type ...) are accepted.
"""

import csv
from typing import Any, Dict, List, Optional
from pydantic import TypeAdapter, ValidationError
from railguard.core.models import AlertThresholdConfig, Authority
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.reference_import")

_threshold_adapter = TypeAdapter(AlertThresholdConfig)

# 필드 → 허용 헤더
_AUTHORITY_COLUMNS = {
    "id": ("id", "Authority_ID"),
    "subdivision_id": ("subdivision_id", "Subdivision_ID", "subdivision"),
    "track_type": ("track_type", "Track_Type"),
    "track_number": ("track_number", "Track_Number"),
    "begin_milepost": ("begin_milepost", "Begin_MP"),
    "end_milepost": ("end_milepost", "End_MP"),
    "owner_id": ("owner_id", "User_ID"),
    "owner_name": ("owner_name", "Employee_Name"),
    "agency_id": ("agency_id", "Agency_ID"),
    "is_active": ("is_active", "Is_Active"),
}

_THRESHOLD_COLUMNS = {
    "type": ("type", "Config_Type"),
    "agency_id": ("agency_id", "Agency_ID"),
    "level": ("level", "Alert_Level"),
    "distance_miles": ("distance_miles", "Distance_Miles"),
    "message_template": ("message_template", "Message_Template"),
}


def _pick(row: Dict[str, Any], columns: Dict[str, tuple]) -> Dict[str, Any]:
    picked = {}
    for field, headers in columns.items():
        for h in headers:
            value = row.get(h)
            if value not in (None, ""):
                picked[field] = value.strip() if isinstance(value, str) else value
                break
    return picked


def _config_type(value: Optional[str]) -> Optional[str]:
    # Boundary_Alert / Proximity_Alert -> Boundary / Proximity
    if value is None:
        return None
    return value.split("_", 1)[0].capitalize()


def _rows(path: str):
    with open(path, newline="", encoding="utf-8-sig") as f:
        yield from enumerate(csv.DictReader(f), start=2)


def load_authorities(path: str) -> List[Authority]:
    """
    CSV 파일에서 작업 권한 목록을 로드합니다.

    Args:
        path: CSV 파일 경로

    Returns:
        형식이 올바른 권한 목록 (잘못된 행은 건너뜀)
    """
    authorities = []
    for row_num, row in _rows(path):
        data = _pick(row, _AUTHORITY_COLUMNS)
        if "is_active" in data:
            data["is_active"] = str(data["is_active"]).lower() in ("1", "true", "yes", "y")
        try:
            authorities.append(Authority.model_validate(data))
        except ValidationError as e:
            log.warning("권한 형식 오류 행 건너뜀", row=row_num, errors=e.error_count())

    log.info("권한 데이터 로드됨", path=path, authorities=len(authorities))
    return authorities


def load_thresholds(path: str) -> List[AlertThresholdConfig]:
    """
    CSV 파일에서 기관별 경보 임계값을 로드합니다.

    Args:
        path: CSV 파일 경로

    Returns:
        Boundary / Proximity 임계값 목록 (잘못된 행은 건너뜀)
    """
    configs = []
    for row_num, row in _rows(path):
        data = _pick(row, _THRESHOLD_COLUMNS)
        data["type"] = _config_type(data.get("type"))
        try:
            configs.append(_threshold_adapter.validate_python(data))
        except ValidationError as e:
            log.warning("경보 임계값 형식 오류 행 건너뜀", row=row_num, errors=e.error_count())

    log.info("경보 임계값 로드됨", path=path, thresholds=len(configs))
    return configs
