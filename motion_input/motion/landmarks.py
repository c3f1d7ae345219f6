"""Normalized 2D pose landmarks as delivered by a landmark detector."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence, Tuple


class PoseLandmark(IntEnum):
    """Indices into the 33-point BlazePose topology used by MediaPipe."""

    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_HIP = 23
    RIGHT_HIP = 24


@dataclass(frozen=True, slots=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None
    presence: Optional[float] = None

    @property
    def confidence(self) -> float:
        """visibility × presence, whichever is reported; 1.0 if neither is."""
        if self.visibility is not None and self.presence is not None:
            return self.visibility * self.presence
        if self.visibility is not None:
            return self.visibility
        if self.presence is not None:
            return self.presence
        return 1.0


Point = Tuple[float, float]


@dataclass(frozen=True)
class LandmarkResult:
    """One detector answer for one submitted frame (empty when nobody was found)."""

    landmarks: Tuple[Landmark, ...] = ()

    @classmethod
    def empty(cls) -> "LandmarkResult":
        return cls(())

    @classmethod
    def from_sequence(cls, landmarks: Optional[Sequence[Landmark]]) -> "LandmarkResult":
        return cls(tuple(landmarks or ()))

    @property
    def has_landmarks(self) -> bool:
        return bool(self.landmarks)

    def get(self, index: int) -> Optional[Landmark]:
        if 0 <= index < len(self.landmarks):
            return self.landmarks[index]
        return None


def clamp01(value: float) -> float:
    return 0.0 if value < 0.0 else 1.0 if value > 1.0 else value


def confident_point(result: LandmarkResult, index: int, min_confidence: float) -> Optional[Point]:
    """Clamped (x, y) of landmark ``index`` or None when missing or unsure."""
    landmark = result.get(index)
    if landmark is None or landmark.confidence < min_confidence:
        return None
    return clamp01(landmark.x), clamp01(landmark.y)


def midpoint(first: Optional[Point], second: Optional[Point]) -> Optional[Point]:
    """Midpoint of a left/right pair, or whichever single side is present."""
    if first is not None and second is not None:
        return (first[0] + second[0]) / 2.0, (first[1] + second[1]) / 2.0
    return first if first is not None else second


__all__ = [
    "Landmark",
    "LandmarkResult",
    "Point",
    "PoseLandmark",
    "clamp01",
    "confident_point",
    "midpoint",
]
