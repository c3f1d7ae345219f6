"""MediaPipe Tasks pose landmarker behind the ``LandmarkDetector`` seam.

MediaPipe is imported lazily: the import is slow and pulls in the native
runtime, so the processor polls ``is_available`` instead of paying for it
at module import time.
"""

from __future__ import annotations

import asyncio
import importlib
import threading
import time
from typing import Any, Optional

import cv2
import numpy as np

from motion_input.core.logging_utils import LoggerLike, ensure_structured_logger

from .detector import DetectorOptions, LocateFile, ResultCallback
from .landmarks import Landmark, LandmarkResult

WARMUP_FRAME_SIZE = 64


def _convert_pose(pose_landmarks: Any) -> LandmarkResult:
    if not pose_landmarks:
        return LandmarkResult.empty()
    first = pose_landmarks[0]
    return LandmarkResult.from_sequence(
        [
            Landmark(
                x=float(point.x),
                y=float(point.y),
                z=float(point.z or 0.0),
                visibility=point.visibility,
                presence=point.presence,
            )
            for point in first
        ]
    )


class MediaPipePoseDetector:
    """One ``PoseLandmarker`` in VIDEO mode; detection runs in a worker thread."""

    def __init__(
        self,
        mp: Any,
        vision: Any,
        locate_file: LocateFile,
        options: DetectorOptions,
        *,
        logger: LoggerLike = None,
    ) -> None:
        self._mp = mp
        self._vision = vision
        self._locate_file = locate_file
        self._options = options
        self._logger = ensure_structured_logger(logger, fallback_name="MediaPipePoseDetector")
        self._landmarker: Optional[Any] = None
        self._callback: Optional[ResultCallback] = None
        self._last_timestamp_ms = -1
        self._started = time.monotonic()
        # A cancelled send leaves its thread running; serialize detection and close.
        self._detect_lock = threading.Lock()

    def on_results(self, callback: ResultCallback) -> None:
        self._callback = callback

    def _next_timestamp(self, timestamp_ms: Optional[float]) -> int:
        # VIDEO mode rejects timestamps that do not strictly increase.
        if timestamp_ms is None:
            timestamp_ms = (time.monotonic() - self._started) * 1000.0
        stamp = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = stamp
        return stamp

    def _build_options(self, model_path: str) -> Any:
        base_options = self._mp.tasks.BaseOptions(model_asset_path=model_path)
        return self._vision.PoseLandmarkerOptions(
            base_options=base_options,
            running_mode=self._vision.RunningMode.VIDEO,
            num_poses=self._options.num_poses,
            min_pose_detection_confidence=self._options.detection_confidence,
            min_pose_presence_confidence=self._options.detection_confidence,
            min_tracking_confidence=self._options.tracking_confidence,
        )

    async def initialize(self) -> None:
        model_path = await self._locate_file(self._options.model_file)
        options = self._build_options(str(model_path))
        self._landmarker = await asyncio.to_thread(self._vision.PoseLandmarker.create_from_options, options)
        self._logger.info("Pose landmarker created", fields={"model": str(model_path)})

        warmup = np.zeros((WARMUP_FRAME_SIZE, WARMUP_FRAME_SIZE, 3), dtype=np.uint8)
        await asyncio.to_thread(self._detect, warmup, self._next_timestamp(None))
        self._logger.debug("Pose landmarker warmed up")

    def _detect(self, rgb: np.ndarray, timestamp_ms: int) -> Any:
        with self._detect_lock:
            landmarker = self._landmarker
            if landmarker is None:
                raise RuntimeError("Pose landmarker is closed")
            image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))
            return landmarker.detect_for_video(image, timestamp_ms)

    def _release(self, landmarker: Any) -> None:
        with self._detect_lock:
            landmarker.close()

    async def send(self, frame: np.ndarray, *, timestamp_ms: Optional[float] = None) -> None:
        if self._landmarker is None:
            raise RuntimeError("Pose landmarker is not initialized")
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        stamp = self._next_timestamp(timestamp_ms)
        detection = await asyncio.to_thread(self._detect, rgb, stamp)
        result = _convert_pose(getattr(detection, "pose_landmarks", None))
        if self._callback is not None:
            self._callback(result)

    async def close(self) -> None:
        landmarker, self._landmarker = self._landmarker, None
        if landmarker is not None:
            await asyncio.to_thread(self._release, landmarker)
            self._logger.debug("Pose landmarker closed")


class MediaPipePoseProvider:
    def __init__(self, *, logger: LoggerLike = None) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="MediaPipePoseProvider")
        self._mp: Optional[Any] = None
        self._vision: Optional[Any] = None
        self._import_error: Optional[BaseException] = None

    def is_available(self) -> bool:
        if self._vision is not None:
            return True
        if self._import_error is not None:
            return False
        try:
            self._mp = importlib.import_module("mediapipe")
            self._vision = importlib.import_module("mediapipe.tasks.python.vision")
        except ImportError as exc:
            self._import_error = exc
            self._logger.error("MediaPipe could not be imported: %s", exc)
            return False
        return True

    def create(self, locate_file: LocateFile, options: DetectorOptions) -> MediaPipePoseDetector:
        if not self.is_available():
            raise RuntimeError(f"MediaPipe is not available: {self._import_error}")
        return MediaPipePoseDetector(self._mp, self._vision, locate_file, options, logger=self._logger)


__all__ = ["MediaPipePoseDetector", "MediaPipePoseProvider"]
