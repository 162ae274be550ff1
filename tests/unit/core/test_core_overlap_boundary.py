"""
권한 중첩 / 경계 평가 / 임계값 선택 테스트
"""

import pytest
from hypothesis import given, strategies as st

from railguard.core.boundary import boundary_cooldown_key, boundary_message, evaluate_boundary
from railguard.core.models import BoundaryAlertConfig, ProximityAlertConfig
from railguard.core.overlap import find_overlapping_pairs, overlaps, ranges_intersect, same_track
from railguard.core.thresholds import (
    DEFAULT_PROXIMITY_THRESHOLDS, proximity_thresholds_from, select_threshold
)

from conftest import make_authority, straight_geometry


class TestOverlaps:
    """overlaps() 테스트"""

    def test_overlapping_ranges(self):
        """[10,20] 과 [15,25] 는 겹침"""
        a = make_authority("A", 10, 20)
        b = make_authority("B", 15, 25)
        assert overlaps(a, b) is True
        assert overlaps(b, a) is True

    def test_disjoint_ranges(self):
        """[10,20] 과 [21,25] 는 겹치지 않음"""
        a = make_authority("A", 10, 20)
        b = make_authority("B", 21, 25)
        assert overlaps(a, b) is False

    def test_touching_ranges_overlap(self):
        """경계가 맞닿으면 겹침"""
        assert overlaps(make_authority("A", 10, 20), make_authority("B", 20, 25)) is True

    def test_different_track_number(self):
        a = make_authority("A", 10, 20)
        b = make_authority("B", 15, 25, track_number="2")
        assert same_track(a, b) is False
        assert overlaps(a, b) is False

    def test_different_subdivision(self):
        a = make_authority("A", 10, 20)
        b = make_authority("B", 15, 25, subdivision_id="MONTALVO")
        assert overlaps(a, b) is False

    def test_not_overlapping_itself(self):
        a = make_authority("A", 10, 20)
        assert overlaps(a, a) is False

    def test_find_pairs(self):
        auths = [
            make_authority("A", 10, 20),
            make_authority("B", 15, 25),
            make_authority("C", 30, 40),
            make_authority("D", 18, 19, track_type="Siding"),
        ]
        pairs = find_overlapping_pairs(auths)
        assert [(a.id, b.id) for a, b in pairs] == [("A", "B")]

    @given(
        b1=st.floats(0, 100), l1=st.floats(0, 20),
        b2=st.floats(0, 100), l2=st.floats(0, 20),
    )
    def test_intersection_symmetric(self, b1, l1, b2, l2):
        assert ranges_intersect(b1, b1 + l1, b2, b2 + l2) == ranges_intersect(b2, b2 + l2, b1, b1 + l1)

    def test_invalid_range_rejected(self):
        with pytest.raises(ValueError):
            make_authority("A", 20, 10)


class TestSelectThreshold:
    """가장 좁은 임계값 선택 테스트"""

    @pytest.mark.parametrize("distance,expected", [
        (1.2, None),
        (1.0, (1.0, "Info")),
        (0.9, (1.0, "Info")),
        (0.6, (0.75, "Warning")),
        (0.5, (0.5, "Warning")),
        (0.3, (0.5, "Warning")),
        (0.2, (0.25, "Critical")),
        (0.0, (0.25, "Critical")),
    ])
    def test_default_proximity(self, distance, expected):
        hit = select_threshold(distance, DEFAULT_PROXIMITY_THRESHOLDS)
        if expected is None:
            assert hit is None
        else:
            assert (hit.threshold, hit.level) == expected

    def test_order_independent(self):
        shuffled = list(reversed(DEFAULT_PROXIMITY_THRESHOLDS))
        assert select_threshold(0.2, shuffled) == select_threshold(0.2, DEFAULT_PROXIMITY_THRESHOLDS)

    def test_empty(self):
        assert select_threshold(0.1, []) is None

    def test_thresholds_from_config(self):
        assert proximity_thresholds_from([["0.5", "Warning"], [0.1, "Critical"]]) == \
               [(0.5, "Warning"), (0.1, "Critical")]


class TestEvaluateBoundary:
    """경계 평가 테스트"""

    def test_tightest_threshold_wins(self, boundary_thresholds):
        """[100,120] 에서 MP 119.8 은 Info 가 아니라 Critical"""
        authority = make_authority("A", 100, 120)
        decision = evaluate_boundary(authority, 119.8, boundary_thresholds)

        assert decision is not None
        assert decision.level == "Critical"
        assert decision.boundary == "end"
        assert decision.threshold == 0.25
        assert decision.distance == pytest.approx(0.2)
        assert decision.distance_to_begin == pytest.approx(19.8)

    def test_near_begin(self, boundary_thresholds):
        decision = evaluate_boundary(make_authority("A", 100, 120), 100.4, boundary_thresholds)
        assert decision.boundary == "begin"
        assert decision.level == "Warning"

    def test_far_from_both_boundaries(self, boundary_thresholds):
        assert evaluate_boundary(make_authority("A", 100, 120), 110.0, boundary_thresholds) is None

    def test_equidistant_prefers_end(self, boundary_thresholds):
        decision = evaluate_boundary(make_authority("A", 100, 100.5), 100.25, boundary_thresholds)
        assert decision.boundary == "end"
        assert decision.level == "Critical"

    def test_outside_authority_still_measured(self, boundary_thresholds):
        """권한 범위를 벗어나도 가까운 경계 기준으로 평가"""
        decision = evaluate_boundary(make_authority("A", 100, 120), 120.3, boundary_thresholds)
        assert decision.boundary == "end"
        assert decision.level == "Warning"

    def test_proximity_configs_ignored(self):
        configs = [ProximityAlertConfig(agency_id="METRLK", level="Critical", distance_miles=5.0)]
        assert evaluate_boundary(make_authority("A", 100, 120), 119.8, configs) is None

    def test_uses_track_geometry(self, boundary_thresholds):
        """형상이 있으면 선로 거리를 사용"""
        decision = evaluate_boundary(make_authority("A", 100, 120), 119.0,
                                     boundary_thresholds, straight_geometry())
        assert decision.boundary == "end"
        assert decision.distance == pytest.approx(1.0, rel=0.01)

    def test_message_template(self):
        configs = [BoundaryAlertConfig(agency_id="METRLK", level="Critical", distance_miles=0.25,
                                       message_template="Stop: authority limit ahead")]
        decision = evaluate_boundary(make_authority("A", 100, 120), 119.9, configs)
        assert boundary_message(decision) == "Stop: authority limit ahead"

    def test_message_template_placeholders(self):
        configs = [BoundaryAlertConfig(agency_id="METRLK", level="Critical", distance_miles=0.25,
                                       message_template="You are {distance} mi from {boundary} MP {milepost}")]
        decision = evaluate_boundary(make_authority("A", 100, 120), 119.8, configs)
        assert decision.boundary_milepost == 120.0
        assert boundary_message(decision) == "You are 0.20 mi from end MP 120"

    def test_message_template_begin_boundary(self):
        configs = [BoundaryAlertConfig(agency_id="METRLK", level="Critical", distance_miles=0.25,
                                       message_template="{boundary} of authority at MP {milepost}")]
        decision = evaluate_boundary(make_authority("A", 100.5, 120), 100.6, configs)
        assert boundary_message(decision) == "start of authority at MP 100.5"

    def test_unknown_placeholder_kept(self):
        configs = [BoundaryAlertConfig(agency_id="METRLK", level="Critical", distance_miles=0.25,
                                       message_template="{distance} mi, call {dispatcher}")]
        decision = evaluate_boundary(make_authority("A", 100, 120), 119.9, configs)
        assert boundary_message(decision) == "0.10 mi, call {dispatcher}"

    def test_default_message(self, boundary_thresholds):
        decision = evaluate_boundary(make_authority("A", 100, 120), 119.8, boundary_thresholds)
        assert boundary_message(decision) == "You are 0.20 miles from the end boundary of your authority"

    def test_cooldown_key(self):
        assert boundary_cooldown_key("A1", "end", "Critical") == "boundary:A1:end:Critical"
