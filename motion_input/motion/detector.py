"""Landmark detector seam used by the motion processor."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

import numpy as np

from .landmarks import LandmarkResult


class DetectorUnavailable(RuntimeError):
    """The detector runtime never became available."""


class DetectorInitTimeout(RuntimeError):
    """Detector initialization kept failing until the deadline passed."""


ResultCallback = Callable[[LandmarkResult], None]
LocateFile = Callable[[str], Awaitable[Path]]


@dataclass(frozen=True)
class DetectorOptions:
    model_file: str = "pose_landmarker_lite.task"
    num_poses: int = 1
    detection_confidence: float = 0.5
    tracking_confidence: float = 0.5


class LandmarkDetector(Protocol):
    async def initialize(self) -> None:
        """Load the model and warm up; raises on failure."""

    def on_results(self, callback: ResultCallback) -> None:
        ...

    async def send(self, frame: np.ndarray, *, timestamp_ms: Optional[float] = None) -> None:
        """Submit one BGR frame. Results arrive through the ``on_results`` callback."""

    async def close(self) -> None:
        ...


class DetectorProvider(Protocol):
    def is_available(self) -> bool:
        ...

    def create(self, locate_file: LocateFile, options: DetectorOptions) -> LandmarkDetector:
        ...


__all__ = [
    "DetectorInitTimeout",
    "DetectorOptions",
    "DetectorProvider",
    "DetectorUnavailable",
    "LandmarkDetector",
    "LocateFile",
    "ResultCallback",
]
