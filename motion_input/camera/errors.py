"""Camera pipeline error taxonomy."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class CameraPipelineErrorCode(str, Enum):
    CAMERA_API_MISSING = "CAMERA_API_MISSING"
    CAMERA_PERMISSION_TIMEOUT = "CAMERA_PERMISSION_TIMEOUT"
    CAMERA_LATE_STREAM_DISCARDED = "CAMERA_LATE_STREAM_DISCARDED"
    VIDEO_PLAY_FAILED = "VIDEO_PLAY_FAILED"
    VIDEO_STREAM_NOT_RENDERING = "VIDEO_STREAM_NOT_RENDERING"


class CameraPipelineError(Exception):
    """Raised when a stream cannot be acquired or made to render."""

    def __init__(self, code: CameraPipelineErrorCode, message: Optional[str] = None) -> None:
        super().__init__(message or code.value)
        self.code = code

    @property
    def is_render_failure(self) -> bool:
        return self.code is CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING


class CaptureErrorKind(str, Enum):
    """Failure classes a capture device reports for a stream request."""

    PERMISSION_DENIED = "permission_denied"
    NOT_READABLE = "not_readable"
    SECURITY = "security"
    ABORTED = "aborted"
    INVALID_STATE = "invalid_state"
    OVERCONSTRAINED = "overconstrained"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


# No constraint change can fix these, so acquisition stops on the first one.
TERMINAL_CAPTURE_ERRORS = frozenset({
    CaptureErrorKind.PERMISSION_DENIED,
    CaptureErrorKind.NOT_READABLE,
    CaptureErrorKind.SECURITY,
    CaptureErrorKind.ABORTED,
    CaptureErrorKind.INVALID_STATE,
})


class CaptureDeviceError(Exception):
    """Raised by a capture device when a stream request fails."""

    def __init__(self, kind: CaptureErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_CAPTURE_ERRORS


def is_render_failure(error: BaseException) -> bool:
    return isinstance(error, CameraPipelineError) and error.is_render_failure


__all__ = [
    "CameraPipelineError",
    "CameraPipelineErrorCode",
    "CaptureDeviceError",
    "CaptureErrorKind",
    "TERMINAL_CAPTURE_ERRORS",
    "is_render_failure",
]
