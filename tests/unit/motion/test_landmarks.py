"""Tests for landmark helpers, state snapshots and tuning config."""

import pytest

from motion_input.core.config_manager import ConfigManager
from motion_input.motion.landmarks import (
    Landmark,
    LandmarkResult,
    PoseLandmark,
    clamp01,
    confident_point,
    midpoint,
)
from motion_input.motion.state import MotionState, PoseReadout
from motion_input.motion.tuning import DetectorInitPolicy, MotionTuning


class TestLandmark:

    @pytest.mark.parametrize(
        "visibility, presence, expected",
        [(0.8, 0.5, 0.4), (0.8, None, 0.8), (None, 0.6, 0.6), (None, None, 1.0)],
    )
    def test_confidence(self, visibility, presence, expected):
        assert Landmark(0.1, 0.2, visibility=visibility, presence=presence).confidence == pytest.approx(expected)

    def test_result_lookup(self):
        result = LandmarkResult.from_sequence([Landmark(0.1, 0.2)])
        assert result.has_landmarks
        assert result.get(PoseLandmark.NOSE) == Landmark(0.1, 0.2)
        assert result.get(PoseLandmark.LEFT_HIP) is None
        assert not LandmarkResult.from_sequence(None).has_landmarks


class TestPointHelpers:

    def test_clamp01(self):
        assert clamp01(-0.2) == 0.0
        assert clamp01(1.4) == 1.0
        assert clamp01(0.3) == 0.3

    def test_confident_point_gates_and_clamps(self):
        result = LandmarkResult.from_sequence([Landmark(1.2, -0.1, visibility=0.9), Landmark(0.5, 0.5, visibility=0.2)])
        assert confident_point(result, 0, 0.35) == (1.0, 0.0)
        assert confident_point(result, 1, 0.35) is None
        assert confident_point(result, 7, 0.35) is None

    def test_midpoint_falls_back_to_single_side(self):
        assert midpoint((0.2, 0.4), (0.4, 0.6)) == pytest.approx((0.3, 0.5))
        assert midpoint(None, (0.4, 0.6)) == (0.4, 0.6)
        assert midpoint(None, None) is None


def test_state_accessors_read_through():
    state = MotionState(
        raw=PoseReadout(nose_x=0.7, shoulder_y=0.45, face_width=0.2),
        smoothed=PoseReadout(body_x=0.62),
    )
    assert state.raw_nose_x == 0.7
    assert state.raw_shoulder_y == 0.45
    assert state.raw_face_width == 0.2
    assert state.body_x == 0.62


def test_tuning_from_config(tmp_path):
    manager = ConfigManager(overrides_dir=tmp_path / "overrides", project_root=tmp_path)
    config = {
        "motion.lane_threshold": "0.15",
        "motion.jump_streak_required": "3",
        "motion.send_rate_hz": "20",
        "detector.deadline_s": "30",
        "detector.model_file": "pose_landmarker_full.task",
    }

    tuning = MotionTuning.from_config(config, manager)
    policy = DetectorInitPolicy.from_config(config, manager)

    assert tuning.lane_threshold == pytest.approx(0.15)
    assert tuning.jump_streak_required == 3
    assert tuning.send_interval_s == pytest.approx(0.05)
    assert policy.deadline_s == pytest.approx(30.0)
    assert policy.model_file == "pose_landmarker_full.task"
    assert MotionTuning.from_config({}, manager) == MotionTuning()
