"""
Track geometry import for RailGuard.

This module loads milepost geometry (subdivision, milepost, latitude,
longitude) from a CSV file or from the Direct_MP sheet of an Excel
workbook, the layout the railroads deliver their milepost references in.
"""

import csv
import os
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence
import openpyxl
from railguard.common.geo import validate_coordinates
from railguard.core.geometry import sort_geometry
from railguard.core.models import GeometryPoint
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.geometry_import")

Geometry = Dict[str, List[GeometryPoint]]

DIRECT_MP_SHEET = "Direct_MP"

# CSV 헤더 별칭
_SUBDIVISION_KEYS = ("subdivision", "Subdivision", "subdivision_id")
_MILEPOST_KEYS = ("milepost", "MP", "mp", "Milepost")
_LATITUDE_KEYS = ("latitude", "Latitude", "lat")
_LONGITUDE_KEYS = ("longitude", "Longitude", "lon", "lng")


def _first(row: Dict[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        if k in row and row[k] not in (None, ""):
            return row[k]
    return None


def _to_point(row_num: int, subdivision: Any, milepost: Any, lat: Any, lon: Any) -> Optional[GeometryPoint]:
    """행 하나를 GeometryPoint로 변환합니다. 누락되거나 잘못된 행은 None."""
    if subdivision in (None, "") or milepost in (None, "") or lat in (None, "") or lon in (None, ""):
        log.debug("값이 비어있는 행 건너뜀", row=row_num)
        return None
    try:
        mp, lat_f, lon_f = float(milepost), float(lat), float(lon)
    except (ValueError, TypeError):
        log.warning("숫자 변환 실패 행 건너뜀", row=row_num, milepost=milepost, lat=lat, lon=lon)
        return None
    if not validate_coordinates(lat_f, lon_f):
        log.warning("좌표 범위를 벗어난 행 건너뜀", row=row_num, lat=lat_f, lon=lon_f)
        return None
    return GeometryPoint(milepost=mp, latitude=lat_f, longitude=lon_f)


def _group(pairs: Iterable[tuple]) -> Geometry:
    grouped: Dict[str, List[GeometryPoint]] = defaultdict(list)
    for subdivision, point in pairs:
        grouped[subdivision].append(point)
    return {k: sort_geometry(v) for k, v in grouped.items()}


def _read_csv(path: str) -> Geometry:
    def rows():
        with open(path, newline="", encoding="utf-8-sig") as f:
            for row_num, r in enumerate(csv.DictReader(f), start=2):
                sub = _first(r, _SUBDIVISION_KEYS)
                point = _to_point(row_num, sub,
                                  _first(r, _MILEPOST_KEYS),
                                  _first(r, _LATITUDE_KEYS),
                                  _first(r, _LONGITUDE_KEYS))
                if point is not None:
                    yield str(sub).strip(), point
    return _group(rows())


def _read_xlsx(path: str) -> Geometry:
    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb[DIRECT_MP_SHEET] if DIRECT_MP_SHEET in wb.sheetnames else wb.active
        log.info("엑셀 시트 선택됨", sheet=ws.title)

        # 열 순서: subdivision, MP, latitude, longitude, (지도 URL ...)
        pairs = []
        for row_num, row in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
            if len(row) < 4:
                continue
            point = _to_point(row_num, *row[:4])
            if point is not None:
                pairs.append((str(row[0]).strip(), point))
        return _group(pairs)
    finally:
        wb.close()


def load_geometry(path: str) -> Geometry:
    """
    파일에서 서브디비전별 마일포스트 형상을 로드합니다.

    Args:
        path: CSV 또는 XLSX 파일 경로

    Returns:
        서브디비전 ID → 마일포스트 순으로 정렬된 형상 점 목록

    Raises:
        ValueError: 지원하지 않는 파일 형식
    """
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        geometry = _read_csv(path)
    elif ext in (".xlsx", ".xlsm"):
        geometry = _read_xlsx(path)
    else:
        raise ValueError(f"지원하지 않는 파일 형식: {ext}")

    log.info("형상 데이터 로드됨",
             path=path,
             subdivisions=len(geometry),
             points=sum(len(v) for v in geometry.values()))
    return geometry
