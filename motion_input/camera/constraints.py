"""Capture constraint profiles per platform."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from motion_input.core.platform_info import CapturePlatform, CapturePlatformProfile

FACING_USER = "user"
FACING_ENVIRONMENT = "environment"


@dataclass(frozen=True, slots=True)
class IdealRange:
    ideal: float
    max: Optional[float] = None

    def to_dict(self) -> Dict[str, float]:
        data = {"ideal": self.ideal}
        if self.max is not None:
            data["max"] = self.max
        return data


@dataclass(frozen=True, slots=True)
class ConstraintSet:
    """One capture preference set: facing mode plus size and rate hints."""

    facing_mode: Optional[str] = FACING_USER
    width: Optional[IdealRange] = None
    height: Optional[IdealRange] = None
    frame_rate: Optional[IdealRange] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.facing_mode:
            data["facingMode"] = {"ideal": self.facing_mode}
        for key, value in (("width", self.width), ("height", self.height), ("frameRate", self.frame_rate)):
            if value is not None:
                data[key] = value.to_dict()
        return data


def _profile(width, height, frame_rate=None) -> ConstraintSet:
    return ConstraintSet(
        width=IdealRange(*width),
        height=IdealRange(*height),
        frame_rate=IdealRange(*frame_rate) if frame_rate else None,
    )


_FACING_ONLY = ConstraintSet()

_PROFILES: Dict[CapturePlatform, List[ConstraintSet]] = {
    CapturePlatform.IOS: [
        _profile((960, 1280), (540, 720), (24, 30)),
        _profile((640, 960), (480, 720), (24, 30)),
        _profile((640, 1280), (480, 720)),
    ],
    CapturePlatform.ANDROID: [
        _profile((640, 1280), (480, 720), (24, 30)),
        _profile((960, 1280), (540, 720), (20, 30)),
        _FACING_ONLY,
    ],
    CapturePlatform.DESKTOP: [
        _profile((1280, 1920), (720, 1080), (30, 30)),
        _profile((960, 1280), (540, 720), (24, 30)),
    ],
    CapturePlatform.UNKNOWN: [
        _profile((640, 1280), (480, 720), (24, 30)),
        _FACING_ONLY,
    ],
}
_PROFILES[CapturePlatform.HARMONY] = _PROFILES[CapturePlatform.ANDROID]

# Small opposite-facing request used to unstick a wedged iOS camera pipeline.
KICK_CONSTRAINTS = ConstraintSet(
    facing_mode=FACING_ENVIRONMENT,
    width=IdealRange(320, 640),
    height=IdealRange(240, 480),
    frame_rate=IdealRange(20, 30),
)


def build_constraint_profiles(profile: CapturePlatformProfile) -> List[ConstraintSet]:
    """Ordered, never-empty constraint list for ``profile``."""
    return list(_PROFILES.get(profile.platform, _PROFILES[CapturePlatform.UNKNOWN]))


def render_retry_count(profile: CapturePlatformProfile) -> int:
    return 3 if profile.platform is CapturePlatform.IOS else 1


__all__ = [
    "ConstraintSet",
    "FACING_ENVIRONMENT",
    "FACING_USER",
    "IdealRange",
    "KICK_CONSTRAINTS",
    "build_constraint_profiles",
    "render_retry_count",
]
