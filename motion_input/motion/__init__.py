"""Pose landmarks to lane and jump intents."""

from .assets import AssetFetchError, AssetSource, AssetSourceRotation
from .detector import (
    DetectorInitTimeout,
    DetectorOptions,
    DetectorProvider,
    DetectorUnavailable,
    LandmarkDetector,
)
from .landmarks import Landmark, LandmarkResult, PoseLandmark
from .processor import MotionProcessor, ProcessorPhase
from .state import LANE_CENTER, LANE_LEFT, LANE_RIGHT, MotionKind, MotionState, PoseReadout
from .tracker import MotionTracker, TrackerUpdate
from .tuning import DetectorInitPolicy, MotionTuning

__all__ = [
    "AssetFetchError",
    "AssetSource",
    "AssetSourceRotation",
    "DetectorInitPolicy",
    "DetectorInitTimeout",
    "DetectorOptions",
    "DetectorProvider",
    "DetectorUnavailable",
    "LANE_CENTER",
    "LANE_LEFT",
    "LANE_RIGHT",
    "Landmark",
    "LandmarkDetector",
    "LandmarkResult",
    "MotionKind",
    "MotionProcessor",
    "MotionState",
    "MotionTracker",
    "MotionTuning",
    "PoseLandmark",
    "PoseReadout",
    "ProcessorPhase",
    "TrackerUpdate",
]
