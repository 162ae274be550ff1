"""
Authority boundary evaluation for RailGuard.

This module converts a worker's along-track distance to the begin or
end of their own authority into an alert level using the agency's
boundary thresholds.
"""

from typing import Optional, Sequence
from railguard.core.models import (
    Authority, BoundaryAlertConfig, BoundaryDecision, GeometryPoint
)
from railguard.core.thresholds import select_threshold
from railguard.core.track_distance import track_distance
from railguard.observability.logging_setup import get_logger

log = get_logger("railguard.boundary")


def boundary_cooldown_key(authority_id: str, boundary: str, level: str) -> str:
    """경계 경보 쿨다운 키 (권한, 경계, 레벨)"""
    return f"boundary:{authority_id}:{boundary}:{level}"


def evaluate_boundary(
    authority: Authority,
    current_milepost: float,
    thresholds: Sequence[BoundaryAlertConfig],
    geometry: Sequence[GeometryPoint] = ()
) -> Optional[BoundaryDecision]:
    """
    현재 위치의 권한 경계 접근 경보 레벨을 평가합니다.

    Args:
        authority: 작업자의 권한
        current_milepost: 현재 마일포스트
        thresholds: 기관의 경계 경보 임계값
        geometry: 서브디비전 형상 (비어 있으면 마일포스트 차이 사용)

    Returns:
        경보 평가 결과, 어떤 임계값에도 도달하지 않았으면 None
    """
    to_begin = track_distance(current_milepost, authority.begin_milepost, geometry)
    to_end = track_distance(current_milepost, authority.end_milepost, geometry)

    if to_begin < to_end:
        boundary, nearest = "begin", to_begin
    else:
        boundary, nearest = "end", to_end

    configs = [c for c in thresholds if c.type == "Boundary"]
    hit = select_threshold(nearest, [(c.distance_miles, c.level) for c in configs])
    if hit is None:
        return None

    template = next(
        (c.message_template for c in configs
         if c.distance_miles == hit.threshold and c.level == hit.level),
        None
    )

    log.debug("경계 경보 평가 완료",
              authority_id=authority.id,
              milepost=current_milepost,
              boundary=boundary,
              distance=round(nearest, 4),
              level=hit.level)

    return BoundaryDecision(
        level=hit.level,
        boundary=boundary,
        distance=nearest,
        threshold=hit.threshold,
        boundary_milepost=authority.begin_milepost if boundary == "begin" else authority.end_milepost,
        distance_to_begin=to_begin,
        distance_to_end=to_end,
        message_template=template
    )


def boundary_message(decision: BoundaryDecision) -> str:
    """
    경계 경보 메시지를 만듭니다.

    기관 템플릿의 {distance} (소수 둘째 자리), {boundary} (start/end),
    {milepost} (경계 마일포스트) 를 치환하고, 그 외 자리표시자는 그대로 둡니다.
    """
    if decision.message_template:
        values = {
            "{distance}": f"{decision.distance:.2f}",
            "{boundary}": "start" if decision.boundary == "begin" else "end",
            "{milepost}": f"{decision.boundary_milepost:g}",
        }
        message = decision.message_template
        for placeholder, value in values.items():
            message = message.replace(placeholder, value)
        return message
    return (f"You are {decision.distance:.2f} miles from the {decision.boundary} "
            f"boundary of your authority")
