"""Capture device, stream and video sink contracts.

The session manager only talks to these protocols. The OpenCV backend in
``motion_input.camera.backends`` implements them for local cameras; tests
and embedding applications can supply their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, runtime_checkable

from .constraints import ConstraintSet

TRACK_LIVE = "live"
TRACK_ENDED = "ended"

# Sink ready states, ordered like HTMLMediaElement.readyState.
HAVE_NOTHING = 0
HAVE_METADATA = 1
HAVE_CURRENT_DATA = 2
HAVE_ENOUGH_DATA = 4


@dataclass(frozen=True)
class FrameMetadata:
    """Per-presentation details handed to frame callbacks."""

    media_time: Optional[float] = None
    presented_frames: Optional[int] = None


FrameCallback = Callable[[float, FrameMetadata], None]


class CaptureTrack(Protocol):
    kind: str
    label: str
    enabled: bool

    @property
    def ready_state(self) -> str: ...

    @property
    def muted(self) -> bool: ...

    def get_settings(self) -> Dict[str, Any]: ...

    def stop(self) -> None: ...


class CaptureStream(Protocol):
    @property
    def active(self) -> bool: ...

    def get_tracks(self) -> Sequence[CaptureTrack]: ...

    def get_video_tracks(self) -> Sequence[CaptureTrack]: ...


class CaptureDevice(Protocol):
    async def request_stream(self, constraints: Optional[ConstraintSet]) -> CaptureStream:
        """Return a stream, or raise CaptureDeviceError.

        ``None`` asks for any video stream at all.
        """
        ...


@runtime_checkable
class VideoSink(Protocol):
    """A renderable target for a capture stream."""

    source: Optional[CaptureStream]
    error: Optional[BaseException]

    @property
    def video_width(self) -> int: ...

    @property
    def video_height(self) -> int: ...

    @property
    def ready_state(self) -> int: ...

    @property
    def paused(self) -> bool: ...

    @property
    def ended(self) -> bool: ...

    @property
    def current_time(self) -> float: ...

    def configure(self) -> None: ...

    def attach(self, stream: CaptureStream) -> None: ...

    def detach(self, hard_reset: bool) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...

    def is_visible(self) -> bool: ...

    def current_frame(self) -> Any: ...


def stop_stream(stream: Optional[CaptureStream]) -> None:
    """Stop every track of ``stream`` (no-op for ``None``)."""
    if stream is None:
        return
    for track in stream.get_tracks():
        track.stop()


def decoded_frame_count(sink: VideoSink) -> Optional[int]:
    count = getattr(sink, "decoded_frame_count", None)
    return count if isinstance(count, int) else None


def supports_frame_callbacks(sink: VideoSink) -> bool:
    return callable(getattr(sink, "request_video_frame_callback", None))


__all__ = [
    "CaptureDevice",
    "CaptureStream",
    "CaptureTrack",
    "FrameCallback",
    "FrameMetadata",
    "HAVE_CURRENT_DATA",
    "HAVE_ENOUGH_DATA",
    "HAVE_METADATA",
    "HAVE_NOTHING",
    "TRACK_ENDED",
    "TRACK_LIVE",
    "VideoSink",
    "decoded_frame_count",
    "stop_stream",
    "supports_frame_callbacks",
]
