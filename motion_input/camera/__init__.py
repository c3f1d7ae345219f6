"""Camera acquisition: constraint fallbacks, render-health probing, retries."""

from .constraints import ConstraintSet, IdealRange, build_constraint_profiles, render_retry_count
from .errors import (
    CameraPipelineError,
    CameraPipelineErrorCode,
    CaptureDeviceError,
    CaptureErrorKind,
)
from .interfaces import CaptureDevice, CaptureStream, CaptureTrack, FrameMetadata, VideoSink
from .render_health import FrameProgressSignals, RenderTimings
from .session_manager import CameraSessionManager, CaptureSession

__all__ = [
    "CameraPipelineError",
    "CameraPipelineErrorCode",
    "CameraSessionManager",
    "CaptureDevice",
    "CaptureDeviceError",
    "CaptureErrorKind",
    "CaptureSession",
    "CaptureStream",
    "CaptureTrack",
    "ConstraintSet",
    "FrameMetadata",
    "FrameProgressSignals",
    "IdealRange",
    "RenderTimings",
    "VideoSink",
    "build_constraint_profiles",
    "render_retry_count",
]
