"""Tunable parameters for motion detection and detector start-up.

The distance-scaling references and clamp ranges are empirically tuned.
They are kept as plain fields so ``config.txt`` can override any of them
(keys are ``motion.<field>`` and ``detector.<field>``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from motion_input.core.config_manager import ConfigManager, get_config_manager


@dataclass(frozen=True)
class MotionTuning:
    # Keypoint gating
    min_confidence: float = 0.35
    default_box_width: float = 0.18
    default_box_height: float = 0.24

    # Frame timing
    dt_min_ms: float = 16.0
    dt_max_ms: float = 500.0
    dt_fallback_ms: float = 33.0
    smoothing_time_constant_s: float = 0.08
    baseline_time_constant_s: float = 0.32

    # Distance scaling
    reference_shoulder_width: float = 0.22
    reference_torso_height: float = 0.25
    scale_min: float = 0.35
    scale_max: float = 1.6

    # Lanes
    lane_threshold: float = 0.12
    lane_threshold_min: float = 0.05
    lane_threshold_max: float = 0.22
    lane_smoothing_previous: float = 0.55
    lane_release_ratio: float = 0.6
    recenter_zone_ratio: float = 0.6
    recenter_rate: float = 0.02

    # Jumps
    jump_velocity_threshold: float = 1.2
    jump_displacement_threshold: float = 0.04
    jump_head_threshold: float = 0.03
    jump_rearm_margin: float = 0.01
    torso_change_limit: float = 0.25
    jump_streak_max: int = 4
    jump_streak_required: int = 2
    jump_cooldown_ms: float = 800.0
    jump_hold_ms: float = 450.0

    # Calibration
    calibration_baseline_blend: float = 0.5

    # Send loop
    send_rate_hz: float = 35.0

    @property
    def send_interval_s(self) -> float:
        return 1.0 / self.send_rate_hz

    @classmethod
    def from_config(cls, config: Dict[str, str], manager: Optional[ConfigManager] = None) -> "MotionTuning":
        return (manager or get_config_manager()).apply_to_dataclass(config, cls(), prefix="motion.")


@dataclass(frozen=True)
class DetectorInitPolicy:
    availability_timeout_s: float = 5.0
    availability_poll_s: float = 0.1
    deadline_s: float = 180.0
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0
    model_file: str = "pose_landmarker_lite.task"
    detection_confidence: float = 0.5
    tracking_confidence: float = 0.5
    mobile_confidence: float = 0.3

    @classmethod
    def from_config(cls, config: Dict[str, str], manager: Optional[ConfigManager] = None) -> "DetectorInitPolicy":
        return (manager or get_config_manager()).apply_to_dataclass(config, cls(), prefix="detector.")


__all__ = ["DetectorInitPolicy", "MotionTuning"]
