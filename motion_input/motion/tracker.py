"""
Landmark-to-intent signal processing.

``MotionTracker`` turns one landmark result at a time into a new
``MotionState``: confidence gating, time-constant-correct smoothing,
distance-normalized lane decisions with hysteresis and slow recentering,
and a velocity/displacement jump detector with a streak counter, arming
and a cooldown. It owns no timers and never calls back; the processor
decides what to do with the returned ``TrackerUpdate``.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .landmarks import LandmarkResult, Point, PoseLandmark, clamp01, confident_point, midpoint
from .state import LANE_CENTER, LANE_LEFT, LANE_RIGHT, MotionState, PoseReadout
from .tuning import MotionTuning

NEUTRAL_POINT: Point = (0.5, 0.5)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class TrackerUpdate:
    detected: bool = False
    lane_changed: bool = False
    jumped: bool = False


@dataclass
class _WorkingSet:
    seeded: bool = False
    lane_x: float = 0.5
    neutral_x: float = 0.5
    body_baseline_y: float = 0.5
    head_baseline_y: float = 0.5
    nose: Point = NEUTRAL_POINT
    smoothed_nose: Point = NEUTRAL_POINT
    box_center: Point = NEUTRAL_POINT
    box_size: Tuple[float, float] = (0.18, 0.24)
    shoulder_width: float = 0.22
    torso_height: float = 0.25
    shoulder_y: float = 0.5
    last_body_y: float = 0.5
    last_head_y: float = 0.5
    jump_streak: int = 0
    jump_armed: bool = True
    last_jump_ms: Optional[float] = None
    last_result_ms: Optional[float] = None
    missed: int = 0


class MotionTracker:
    def __init__(self, tuning: Optional[MotionTuning] = None) -> None:
        self.tuning = tuning or MotionTuning()
        self._ws = self._fresh_working_set()
        self._state = MotionState()

    def _fresh_working_set(self) -> _WorkingSet:
        t = self.tuning
        return _WorkingSet(
            box_size=(t.default_box_width, t.default_box_height),
            shoulder_width=t.reference_shoulder_width,
            torso_height=t.reference_torso_height,
        )

    # ------------------------------------------------------------------
    # Public surface

    @property
    def state(self) -> MotionState:
        return self._state

    @property
    def missed_detections(self) -> int:
        return self._ws.missed

    @property
    def last_landmark_ms(self) -> Optional[float]:
        return self._ws.last_result_ms

    @property
    def neutral_x(self) -> float:
        return self._ws.neutral_x

    @property
    def jump_armed(self) -> bool:
        return self._ws.jump_armed

    @property
    def jump_streak(self) -> int:
        return self._ws.jump_streak

    def reset(self) -> None:
        self._ws = self._fresh_working_set()
        self._state = MotionState()

    def clear_freshness(self) -> None:
        self._ws.last_result_ms = None

    def end_jump(self) -> None:
        if self._state.is_jumping:
            self._state = dataclasses.replace(self._state, is_jumping=False)

    def calibrate(self) -> None:
        """Make the current stance the lane center and pull the baselines toward it."""
        ws = self._ws
        blend = self.tuning.calibration_baseline_blend
        ws.neutral_x = ws.lane_x
        ws.body_baseline_y += (ws.last_body_y - ws.body_baseline_y) * blend
        ws.head_baseline_y += (ws.last_head_y - ws.head_baseline_y) * blend

    def update(self, result: LandmarkResult, now_ms: float) -> TrackerUpdate:
        if not result.has_landmarks:
            return self._miss()

        t = self.tuning
        nose = confident_point(result, PoseLandmark.NOSE, t.min_confidence)
        left_shoulder = confident_point(result, PoseLandmark.LEFT_SHOULDER, t.min_confidence)
        right_shoulder = confident_point(result, PoseLandmark.RIGHT_SHOULDER, t.min_confidence)
        left_hip = confident_point(result, PoseLandmark.LEFT_HIP, t.min_confidence)
        right_hip = confident_point(result, PoseLandmark.RIGHT_HIP, t.min_confidence)
        if not any((nose, left_shoulder, right_shoulder, left_hip, right_hip)):
            return self._miss()

        fallback = nose or NEUTRAL_POINT
        measured_shoulders = midpoint(left_shoulder, right_shoulder)
        measured_hips = midpoint(left_hip, right_hip)
        shoulder = measured_shoulders or fallback
        hip = measured_hips or fallback
        body = ((shoulder[0] + hip[0]) / 2.0, (shoulder[1] + hip[1]) / 2.0)
        head_y = nose[1] if nose is not None else body[1]
        box_center, box_size = self._bounding_box(result, body)

        dt_s = self._frame_dt_ms(now_ms) / 1000.0
        alpha = 1.0 - math.exp(-dt_s / t.smoothing_time_constant_s)
        baseline_alpha = 1.0 - math.exp(-dt_s / t.baseline_time_constant_s)

        ws = self._ws
        if nose is not None:
            ws.nose = nose
        if not ws.seeded:
            self._seed(body, head_y, box_center, box_size, shoulder[1])

        shoulder_width = abs(left_shoulder[0] - right_shoulder[0]) if left_shoulder and right_shoulder else None
        if shoulder_width:
            ws.shoulder_width += (shoulder_width - ws.shoulder_width) * alpha

        torso_stable = True
        if measured_shoulders is not None and measured_hips is not None:
            torso = abs(measured_hips[1] - measured_shoulders[1])
            previous = ws.torso_height
            torso_stable = previous > 0 and abs(torso - previous) / previous <= t.torso_change_limit
            ws.torso_height += (torso - previous) * alpha

        ws.smoothed_nose = self._ema(ws.smoothed_nose, ws.nose, alpha)
        ws.box_center = self._ema(ws.box_center, box_center, alpha)
        ws.box_size = self._ema(ws.box_size, box_size, alpha)
        ws.shoulder_y += (shoulder[1] - ws.shoulder_y) * alpha

        previous_lane = self._state.lane
        lane = self._update_lane(body[0])
        jumped = self._update_jump(body[1], head_y, dt_s, torso_stable, now_ms)

        ws.body_baseline_y += (body[1] - ws.body_baseline_y) * baseline_alpha
        ws.head_baseline_y += (head_y - ws.head_baseline_y) * baseline_alpha
        ws.last_body_y = body[1]
        ws.last_head_y = head_y

        self._state = MotionState(
            lane=lane,
            is_jumping=self._state.is_jumping or jumped,
            raw=PoseReadout(
                body_x=1.0 - body[0],
                nose_x=1.0 - ws.nose[0],
                nose_y=ws.nose[1],
                face_x=1.0 - box_center[0],
                face_y=box_center[1],
                face_width=box_size[0],
                face_height=box_size[1],
                shoulder_y=shoulder[1],
            ),
            smoothed=PoseReadout(
                body_x=ws.lane_x,
                nose_x=1.0 - ws.smoothed_nose[0],
                nose_y=ws.smoothed_nose[1],
                face_x=1.0 - ws.box_center[0],
                face_y=ws.box_center[1],
                face_width=ws.box_size[0],
                face_height=ws.box_size[1],
                shoulder_y=ws.shoulder_y,
            ),
        )
        return TrackerUpdate(detected=True, lane_changed=lane != previous_lane, jumped=jumped)

    # ------------------------------------------------------------------
    # Steps

    def _miss(self) -> TrackerUpdate:
        ws = self._ws
        ws.missed += 1
        ws.jump_streak = 0
        ws.last_result_ms = None
        return TrackerUpdate(detected=False)

    def _seed(self, body: Point, head_y: float, box_center: Point, box_size, shoulder_y: float) -> None:
        ws = self._ws
        ws.seeded = True
        ws.body_baseline_y = body[1]
        ws.head_baseline_y = head_y
        ws.smoothed_nose = ws.nose
        ws.box_center = box_center
        ws.box_size = box_size
        ws.shoulder_y = shoulder_y
        ws.last_body_y = body[1]
        ws.last_head_y = head_y

    def _frame_dt_ms(self, now_ms: float) -> float:
        t = self.tuning
        ws = self._ws
        last, ws.last_result_ms = ws.last_result_ms, now_ms
        if last is None:
            return t.dt_fallback_ms
        elapsed = now_ms - last
        if not math.isfinite(elapsed) or elapsed <= 0:
            return t.dt_fallback_ms
        return _clamp(elapsed, t.dt_min_ms, t.dt_max_ms)

    def _bounding_box(self, result: LandmarkResult, body: Point) -> Tuple[Point, Tuple[float, float]]:
        t = self.tuning
        points = [
            (clamp01(landmark.x), clamp01(landmark.y))
            for landmark in result.landmarks
            if landmark.confidence >= t.min_confidence
        ]
        if not points:
            return body, (t.default_box_width, t.default_box_height)
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        center = ((min(xs) + max(xs)) / 2.0, (min(ys) + max(ys)) / 2.0)
        if len(points) < 2:
            return center, (t.default_box_width, t.default_box_height)
        return center, (max(xs) - min(xs), max(ys) - min(ys))

    @staticmethod
    def _ema(previous, current, alpha: float):
        return tuple(p + (c - p) * alpha for p, c in zip(previous, current))

    def _scale(self, measured: float, reference: float) -> float:
        t = self.tuning
        return _clamp(measured / reference, t.scale_min, t.scale_max)

    def lane_threshold(self) -> float:
        t = self.tuning
        scale = self._scale(self._ws.shoulder_width, t.reference_shoulder_width)
        return _clamp(t.lane_threshold * scale, t.lane_threshold_min, t.lane_threshold_max)

    def _update_lane(self, body_x: float) -> int:
        t = self.tuning
        ws = self._ws
        threshold = self.lane_threshold()
        mirrored = 1.0 - body_x
        ws.lane_x = ws.lane_x * t.lane_smoothing_previous + mirrored * (1.0 - t.lane_smoothing_previous)
        offset = ws.lane_x - ws.neutral_x

        previous = self._state.lane
        if offset > threshold:
            lane = LANE_RIGHT
        elif offset < -threshold:
            lane = LANE_LEFT
        elif previous == LANE_RIGHT and offset > threshold * t.lane_release_ratio:
            lane = LANE_RIGHT
        elif previous == LANE_LEFT and offset < -threshold * t.lane_release_ratio:
            lane = LANE_LEFT
        else:
            lane = LANE_CENTER

        if abs(offset) < threshold * t.recenter_zone_ratio:
            ws.neutral_x += (ws.lane_x - ws.neutral_x) * t.recenter_rate
        return lane

    def _update_jump(self, body_y: float, head_y: float, dt_s: float, torso_stable: bool, now_ms: float) -> bool:
        t = self.tuning
        ws = self._ws
        scale = self._scale(ws.torso_height, t.reference_torso_height)
        displacement = ws.body_baseline_y - body_y
        velocity = displacement / dt_s
        head_displacement = ws.head_baseline_y - head_y

        if not ws.jump_armed and displacement < -t.jump_rearm_margin * scale:
            ws.jump_armed = True

        if torso_stable:
            candidate = (
                velocity > t.jump_velocity_threshold * scale
                and displacement > t.jump_displacement_threshold * scale
                and head_displacement > t.jump_head_threshold * scale
            )
            if candidate:
                ws.jump_streak = min(t.jump_streak_max, ws.jump_streak + 1)
            else:
                ws.jump_streak = max(0, ws.jump_streak - 1)

        cooled_down = ws.last_jump_ms is None or now_ms - ws.last_jump_ms >= t.jump_cooldown_ms
        if (
            ws.jump_armed
            and ws.jump_streak >= t.jump_streak_required
            and not self._state.is_jumping
            and cooled_down
        ):
            ws.jump_armed = False
            ws.jump_streak = 0
            ws.last_jump_ms = now_ms
            return True
        return False


__all__ = ["MotionTracker", "TrackerUpdate"]
