"""Local camera backend using OpenCV for capture and frame delivery."""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import cv2
import numpy as np

from motion_input.core.asyncio_utils import create_logged_task
from motion_input.core.logging_utils import LoggerLike, ensure_structured_logger

from ..constraints import FACING_USER, ConstraintSet
from ..errors import CaptureDeviceError, CaptureErrorKind
from ..interfaces import (
    HAVE_ENOUGH_DATA,
    HAVE_METADATA,
    HAVE_NOTHING,
    TRACK_ENDED,
    TRACK_LIVE,
    CaptureStream,
    FrameCallback,
    FrameMetadata,
)


class DeviceLost(Exception):
    """Raised when the camera disappears mid-capture."""


@dataclass(slots=True)
class CapturedFrame:
    data: np.ndarray
    timestamp: float
    frame_number: int
    wait_ms: float = 0.0


class OpenCVTrack:
    """The single video track of an OpenCV stream."""

    kind = "video"

    def __init__(self, stream: "OpenCVStream", label: str) -> None:
        self._stream = stream
        self.label = label
        self.enabled = True
        self._ended = False
        self._muted = True

    @property
    def ready_state(self) -> str:
        return TRACK_ENDED if self._ended else TRACK_LIVE

    @property
    def muted(self) -> bool:
        return self._muted

    def mark_unmuted(self) -> None:
        self._muted = False

    def get_settings(self) -> Dict[str, Any]:
        return self._stream.settings()

    def stop(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._stream.release()


class OpenCVStream:
    """An opened ``cv2.VideoCapture`` exposed as a capture stream."""

    def __init__(self, capture, device_index: int, *, logger: LoggerLike = None) -> None:
        self._cap = capture
        self.device_index = device_index
        self._logger = ensure_structured_logger(logger, fallback_name="OpenCVStream")
        self._frame_number = 0
        # A cancelled reader leaves its thread running; serialize cap.read.
        self._read_lock = threading.Lock()
        self._track = OpenCVTrack(self, label=f"opencv:{device_index}")

    @property
    def active(self) -> bool:
        return self._cap is not None and self._track.ready_state == TRACK_LIVE

    def get_tracks(self) -> Sequence[OpenCVTrack]:
        return [self._track]

    def get_video_tracks(self) -> Sequence[OpenCVTrack]:
        return [self._track]

    def settings(self) -> Dict[str, Any]:
        if self._cap is None:
            return {}
        return {
            "device_index": self.device_index,
            "width": int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            "height": int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
            "frame_rate": float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0),
        }

    async def read_frame(self) -> CapturedFrame:
        cap = self._cap
        if cap is None:
            raise DeviceLost(f"Camera {self.device_index} is released")
        wait_start = time.perf_counter()
        success, frame = await asyncio.to_thread(self._read_sync, cap)
        wait_ms = (time.perf_counter() - wait_start) * 1000.0
        if not success or frame is None:
            raise DeviceLost(f"Camera {self.device_index} lost or failed to read")
        self._frame_number += 1
        self._track.mark_unmuted()
        return CapturedFrame(data=frame, timestamp=time.monotonic(), frame_number=self._frame_number, wait_ms=wait_ms)

    def _read_sync(self, cap):
        with self._read_lock:
            return cap.read()

    def release(self) -> None:
        cap, self._cap = self._cap, None
        if cap is not None:
            with self._read_lock:
                cap.release()
            self._logger.debug("Released camera %s", self.device_index)


class OpenCVCaptureDevice:
    """Capture device opening local cameras through OpenCV.

    ``facing_devices`` maps a facing mode to a device index; the
    user-facing camera defaults to index 0.
    """

    def __init__(
        self,
        *,
        facing_devices: Optional[Mapping[str, int]] = None,
        prefer_v4l2: bool = True,
        logger: LoggerLike = None,
    ) -> None:
        self._facing_devices = dict(facing_devices or {FACING_USER: 0})
        self._prefer_v4l2 = prefer_v4l2
        self._logger = ensure_structured_logger(logger, fallback_name="OpenCVDevice")

    def _device_index(self, constraints: Optional[ConstraintSet]) -> int:
        facing = constraints.facing_mode if constraints and constraints.facing_mode else FACING_USER
        if facing not in self._facing_devices:
            raise CaptureDeviceError(CaptureErrorKind.OVERCONSTRAINED, f"No camera mapped for facing mode {facing!r}")
        return self._facing_devices[facing]

    def _backends(self) -> List[Optional[int]]:
        backends: List[Optional[int]] = []
        v4l2 = getattr(cv2, "CAP_V4L2", None)
        if self._prefer_v4l2 and v4l2 is not None:
            backends.append(v4l2)
        backends.append(None)
        return backends

    def _open_sync(self, index: int, constraints: Optional[ConstraintSet]):
        for backend in self._backends():
            cap = cv2.VideoCapture(index, backend) if backend is not None else cv2.VideoCapture(index)
            if cap is not None and cap.isOpened():
                self._configure(cap, constraints)
                return cap
            if cap is not None:
                cap.release()
        return None

    @staticmethod
    def _configure(cap, constraints: Optional[ConstraintSet]) -> None:
        if constraints is None:
            return
        # MJPEG avoids YUYV bandwidth limits at 720p on most UVC cameras.
        cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))
        if constraints.width is not None:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width.ideal)
        if constraints.height is not None:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height.ideal)
        if constraints.frame_rate is not None:
            cap.set(cv2.CAP_PROP_FPS, constraints.frame_rate.ideal)

    async def request_stream(self, constraints: Optional[ConstraintSet]) -> OpenCVStream:
        index = self._device_index(constraints)
        cap = await asyncio.to_thread(self._open_sync, index, constraints)
        if cap is None:
            raise CaptureDeviceError(CaptureErrorKind.NOT_READABLE, f"Unable to open camera {index}")
        stream = OpenCVStream(cap, index, logger=self._logger)
        self._logger.info(
            "Camera opened",
            fields={"index": index, "constraints": constraints.to_dict() if constraints else None,
                    "settings": stream.settings()},
        )
        return stream


class OpenCVVideoSink:
    """Pulls frames from an attached OpenCV stream and keeps the latest one.

    Mirrors the surface a browser video element exposes: size, ready state,
    a media clock, a decoded-frame counter and per-frame callbacks.
    """

    def __init__(self, *, visible: bool = True, logger: LoggerLike = None) -> None:
        self.source: Optional[OpenCVStream] = None
        self.error: Optional[BaseException] = None
        self._visible = visible
        self._logger = ensure_structured_logger(logger, fallback_name="OpenCVSink")
        self._reader: Optional[asyncio.Task] = None
        self._frame: Optional[CapturedFrame] = None
        self._first_timestamp: Optional[float] = None
        self._decoded = 0
        self._paused = True
        self._ended = False
        self._callbacks: Dict[int, FrameCallback] = {}
        self._callback_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Media element surface

    @property
    def video_width(self) -> int:
        return int(self._frame.data.shape[1]) if self._frame is not None else 0

    @property
    def video_height(self) -> int:
        return int(self._frame.data.shape[0]) if self._frame is not None else 0

    @property
    def ready_state(self) -> int:
        if self._frame is not None:
            return HAVE_ENOUGH_DATA
        return HAVE_METADATA if self.source is not None and self.source.active else HAVE_NOTHING

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def current_time(self) -> float:
        if self._frame is None or self._first_timestamp is None:
            return 0.0
        return self._frame.timestamp - self._first_timestamp

    @property
    def decoded_frame_count(self) -> int:
        return self._decoded

    def configure(self) -> None:
        self.error = None

    def is_visible(self) -> bool:
        return self._visible

    def set_visible(self, visible: bool) -> None:
        self._visible = visible

    def attach(self, stream: CaptureStream) -> None:
        if not isinstance(stream, OpenCVStream):
            raise TypeError(f"OpenCVVideoSink cannot render {type(stream).__name__}")
        self.source = stream
        self._ended = False

    def detach(self, hard_reset: bool) -> None:
        self.pause()
        self.source = None
        if hard_reset:
            self._frame = None
            self._first_timestamp = None
            self._decoded = 0
            self.error = None

    async def play(self) -> None:
        if self.source is None:
            raise RuntimeError("No stream attached")
        self._paused = False
        if self._reader is None or self._reader.done():
            self._reader = create_logged_task(self._read_loop(self.source), logger=self._logger, context="sink-reader")

    def pause(self) -> None:
        self._paused = True
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None

    def current_frame(self) -> Optional[np.ndarray]:
        return self._frame.data if self._frame is not None else None

    # ------------------------------------------------------------------
    # Frame callbacks

    def request_video_frame_callback(self, callback: FrameCallback) -> int:
        handle = next(self._callback_ids)
        self._callbacks[handle] = callback
        return handle

    def cancel_video_frame_callback(self, handle: int) -> None:
        self._callbacks.pop(handle, None)

    def _present(self, frame: CapturedFrame) -> None:
        if self._first_timestamp is None:
            self._first_timestamp = frame.timestamp
        self._frame = frame
        self._decoded += 1
        pending, self._callbacks = self._callbacks, {}
        metadata = FrameMetadata(media_time=self.current_time, presented_frames=self._decoded)
        for callback in pending.values():
            callback(frame.timestamp, metadata)

    async def _read_loop(self, stream: OpenCVStream) -> None:
        while not self._paused and self.source is stream:
            try:
                frame = await stream.read_frame()
            except DeviceLost as exc:
                self.error = exc
                self._ended = True
                self._logger.warning("Frame reader stopped: %s", exc)
                return
            self._present(frame)


__all__ = [
    "CapturedFrame",
    "DeviceLost",
    "OpenCVCaptureDevice",
    "OpenCVStream",
    "OpenCVTrack",
    "OpenCVVideoSink",
]
