"""Motion state snapshots published to consumers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class MotionKind(str, Enum):
    MOVE = "move"
    JUMP = "jump"


LANE_LEFT = -1
LANE_CENTER = 0
LANE_RIGHT = 1


@dataclass(frozen=True)
class PoseReadout:
    """Landmark-derived positions, mirrored for a self-facing camera."""

    body_x: float = 0.5
    nose_x: float = 0.5
    nose_y: float = 0.5
    face_x: float = 0.5
    face_y: float = 0.5
    face_width: float = 0.18
    face_height: float = 0.24
    shoulder_y: float = 0.5


@dataclass(frozen=True)
class MotionState:
    """Immutable per-tick snapshot; the processor swaps in a new one each result.

    ``raw`` holds the latest landmark-derived values, ``smoothed`` the
    exponentially smoothed ones used by cosmetic overlays.
    """

    lane: int = LANE_CENTER
    is_jumping: bool = False
    raw: PoseReadout = field(default_factory=PoseReadout)
    smoothed: PoseReadout = field(default_factory=PoseReadout)

    @property
    def raw_nose_x(self) -> float:
        return self.raw.nose_x

    @property
    def raw_nose_y(self) -> float:
        return self.raw.nose_y

    @property
    def raw_face_x(self) -> float:
        return self.raw.face_x

    @property
    def raw_face_y(self) -> float:
        return self.raw.face_y

    @property
    def raw_face_width(self) -> float:
        return self.raw.face_width

    @property
    def raw_face_height(self) -> float:
        return self.raw.face_height

    @property
    def raw_shoulder_y(self) -> float:
        return self.raw.shoulder_y

    @property
    def body_x(self) -> float:
        """Smoothed mirrored body position the lane decision is made on."""
        return self.smoothed.body_x


__all__ = ["LANE_CENTER", "LANE_LEFT", "LANE_RIGHT", "MotionKind", "MotionState", "PoseReadout"]
