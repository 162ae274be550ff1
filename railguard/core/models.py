"""
Core domain models for RailGuard.

This module defines the track geometry, authority, GPS fix and
alert models using Pydantic v2 for type safety and validation.
"""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# 신뢰도 / 경보 레벨 / 경보 종류 타입 정의
Confidence = Literal["exact", "high", "medium", "low"]
AlertLevel = Literal["Info", "Warning", "Critical"]
AlertType = Literal["Boundary", "Proximity", "Overlap"]
Boundary = Literal["begin", "end"]

METERS_PER_MILE = 1609.344


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeometryPoint(BaseModel):
    """선로 형상 기준점 모델 (마일포스트, 위도, 경도)"""
    model_config = ConfigDict(frozen=True)

    milepost: float
    latitude: float
    longitude: float


class Authority(BaseModel):
    """작업 권한 모델 (서브디비전 선로 구간 점유 허가)"""
    id: str
    subdivision_id: str
    track_type: str
    track_number: str
    begin_milepost: float
    end_milepost: float
    owner_id: str
    is_active: bool = True
    agency_id: Optional[str] = None
    owner_name: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "Authority":
        if self.begin_milepost > self.end_milepost:
            raise ValueError(
                f"begin_milepost({self.begin_milepost}) > end_milepost({self.end_milepost})"
            )
        return self

    @property
    def track_identity(self) -> tuple:
        """(서브디비전, 선로 종류, 선로 번호) 식별자"""
        return (self.subdivision_id, self.track_type, self.track_number)

    @property
    def display_name(self) -> str:
        return self.owner_name or self.owner_id


class GPSFix(BaseModel):
    """GPS 측위 모델"""
    authority_id: str
    owner_id: str
    latitude: float
    longitude: float
    timestamp: datetime = Field(default_factory=utcnow)
    milepost: Optional[float] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # 시간대 없는 시각은 UTC 로 간주
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class LocatedPosition(BaseModel):
    """선로 기준 위치 추정 결과"""
    milepost: float
    confidence: Confidence
    distance_from_track: float  # miles

    @property
    def distance_from_track_meters(self) -> float:
        return self.distance_from_track * METERS_PER_MILE


class BoundaryAlertConfig(BaseModel):
    """권한 경계 접근 경보 설정"""
    type: Literal["Boundary"] = "Boundary"
    agency_id: str
    level: AlertLevel
    distance_miles: float = Field(gt=0)
    message_template: Optional[str] = None


class ProximityAlertConfig(BaseModel):
    """작업자 근접 경보 설정"""
    type: Literal["Proximity"] = "Proximity"
    agency_id: str
    level: AlertLevel
    distance_miles: float = Field(gt=0)


AlertThresholdConfig = Annotated[
    Union[BoundaryAlertConfig, ProximityAlertConfig],
    Field(discriminator="type")
]


class BoundaryDecision(BaseModel):
    """경계 경보 평가 결과"""
    level: AlertLevel
    boundary: Boundary
    distance: float
    threshold: float
    boundary_milepost: float
    distance_to_begin: float
    distance_to_end: float
    message_template: Optional[str] = None


class AlertEvent(BaseModel):
    """발송 대상 경보 이벤트 (생성 후 불변)"""
    model_config = ConfigDict(frozen=True)

    recipient_id: str
    authority_id: str
    type: AlertType
    level: AlertLevel
    triggered_distance: float
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    threshold: Optional[float] = None
    boundary: Optional[Boundary] = None
    peer_id: Optional[str] = None
    peer_authority_id: Optional[str] = None


class GPSUpdateResult(BaseModel):
    """GPS 업데이트 처리 결과"""
    milepost: Optional[float] = None
    confidence: Optional[Confidence] = None
    distance_from_track: Optional[float] = None
    boundary_alerts: List[AlertEvent] = Field(default_factory=list)


class ProximityPeer(BaseModel):
    """특정 권한 기준 근접 작업자 현황"""
    authority_id: str
    owner_id: str
    owner_name: Optional[str] = None
    my_milepost: Optional[float] = None
    other_milepost: Optional[float] = None
    distance: float
    level: Optional[AlertLevel] = None
    last_updated: datetime
