"""Fake landmark detector providers for motion processor tests."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, List, Optional, Sequence

from motion_input.motion.detector import DetectorOptions, LocateFile, ResultCallback
from motion_input.motion.landmarks import Landmark, LandmarkResult, PoseLandmark


def make_pose(
    *,
    body_x: float = 0.5,
    shoulder_y: float = 0.4,
    hip_y: float = 0.65,
    shoulder_width: float = 0.22,
    nose_offset: float = 0.12,
    confidence: float = 0.9,
) -> LandmarkResult:
    """A 33-point result with nose, shoulders and hips placed around ``body_x``."""
    half = shoulder_width / 2.0
    points = [Landmark(0.0, 0.0, visibility=0.0, presence=0.0) for _ in range(33)]

    def put(index: PoseLandmark, x: float, y: float) -> None:
        points[index] = Landmark(x, y, visibility=confidence, presence=1.0)

    put(PoseLandmark.NOSE, body_x, shoulder_y - nose_offset)
    put(PoseLandmark.LEFT_SHOULDER, body_x + half, shoulder_y)
    put(PoseLandmark.RIGHT_SHOULDER, body_x - half, shoulder_y)
    put(PoseLandmark.LEFT_HIP, body_x + half * 0.8, hip_y)
    put(PoseLandmark.RIGHT_HIP, body_x - half * 0.8, hip_y)
    return LandmarkResult.from_sequence(points)


class FakeDetector:
    """Echoes scripted results, one per ``send``; empty results once exhausted.

    ``detect_s`` blocks a worker thread per frame the way native inference
    does; ``on_send`` runs just before the result is reported.
    """

    def __init__(
        self,
        locate_file: LocateFile,
        options: DetectorOptions,
        *,
        init_error: Optional[BaseException] = None,
        init_delay: float = 0.0,
        results: Optional[Sequence[LandmarkResult]] = None,
        send_error: Optional[BaseException] = None,
        detect_s: float = 0.0,
        on_send: Optional[Callable[[], None]] = None,
    ):
        self.locate_file = locate_file
        self.options = options
        self.init_error = init_error
        self.init_delay = init_delay
        self.results = list(results or [])
        self.send_error = send_error
        self.detect_s = detect_s
        self.on_send = on_send
        self.callback: Optional[ResultCallback] = None
        self.sent: List[Any] = []
        self.timestamps: List[Optional[float]] = []
        self.initialized = False
        self.detecting = False
        self.closed = False
        self.closed_while_detecting = False

    async def initialize(self) -> None:
        if self.init_delay:
            await asyncio.sleep(self.init_delay)
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True

    def on_results(self, callback: ResultCallback) -> None:
        self.callback = callback

    def _detect(self) -> None:
        self.detecting = True
        try:
            time.sleep(self.detect_s)
        finally:
            self.detecting = False

    async def send(self, frame: Any, *, timestamp_ms: Optional[float] = None) -> None:
        self.sent.append(frame)
        self.timestamps.append(timestamp_ms)
        if self.detect_s:
            await asyncio.to_thread(self._detect)
        else:
            await asyncio.sleep(0)
        if self.on_send is not None:
            self.on_send()
        if self.send_error is not None:
            raise self.send_error
        result = self.results.pop(0) if self.results else LandmarkResult.empty()
        if self.callback is not None:
            self.callback(result)

    async def close(self) -> None:
        self.closed_while_detecting = self.detecting
        self.closed = True


class FakeDetectorProvider:
    """Creates FakeDetectors; ``init_errors`` fail the first N initializations."""

    def __init__(
        self,
        *,
        available: bool = True,
        init_errors: Optional[Sequence[BaseException]] = None,
        init_delay: float = 0.0,
        results: Optional[Sequence[LandmarkResult]] = None,
        send_error: Optional[BaseException] = None,
        detect_s: float = 0.0,
        on_send: Optional[Callable[[], None]] = None,
    ):
        self.available = available
        self.init_errors = list(init_errors or [])
        self.init_delay = init_delay
        self.results = list(results or [])
        self.send_error = send_error
        self.detect_s = detect_s
        self.on_send = on_send
        self.created: List[FakeDetector] = []
        self.availability_checks = 0

    def is_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    def create(self, locate_file: LocateFile, options: DetectorOptions) -> FakeDetector:
        detector = FakeDetector(
            locate_file,
            options,
            init_error=self.init_errors.pop(0) if self.init_errors else None,
            init_delay=self.init_delay,
            results=self.results,
            send_error=self.send_error,
            detect_s=self.detect_s,
            on_send=self.on_send,
        )
        self.created.append(detector)
        return detector
