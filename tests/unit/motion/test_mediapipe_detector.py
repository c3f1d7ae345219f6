"""MediaPipe adapter tests against a scripted stand-in for the tasks API."""

import asyncio
import sys
import time
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

from motion_input.motion.detector import DetectorOptions
from motion_input.motion.landmarks import LandmarkResult
from motion_input.motion.mediapipe_detector import MediaPipePoseDetector, MediaPipePoseProvider, _convert_pose


class ScriptedLandmarker:
    def __init__(self, options, poses, detect_s=0.0):
        self.options = options
        self.poses = poses
        self.detect_s = detect_s
        self.calls = []
        self.detecting = False
        self.closed = False
        self.closed_while_detecting = False

    def detect_for_video(self, image, timestamp_ms):
        self.calls.append((image, timestamp_ms))
        self.detecting = True
        try:
            time.sleep(self.detect_s)
        finally:
            self.detecting = False
        return SimpleNamespace(pose_landmarks=self.poses)

    def close(self):
        self.closed_while_detecting = self.detecting
        self.closed = True


def fake_runtime(poses=(), detect_s=0.0):
    created = []

    def create_from_options(options):
        landmarker = ScriptedLandmarker(options, list(poses), detect_s)
        created.append(landmarker)
        return landmarker

    mp = SimpleNamespace(
        tasks=SimpleNamespace(BaseOptions=lambda model_asset_path: SimpleNamespace(model_asset_path=model_asset_path)),
        Image=lambda image_format, data: SimpleNamespace(image_format=image_format, data=data),
        ImageFormat=SimpleNamespace(SRGB="srgb"),
    )
    vision = SimpleNamespace(
        PoseLandmarkerOptions=lambda **kwargs: SimpleNamespace(**kwargs),
        RunningMode=SimpleNamespace(VIDEO="video"),
        PoseLandmarker=SimpleNamespace(create_from_options=create_from_options),
    )
    return mp, vision, created


def point(x, y, visibility=0.9, presence=0.8):
    return SimpleNamespace(x=x, y=y, z=None, visibility=visibility, presence=presence)


async def locate(name):
    return Path("/models") / name


@pytest.fixture
def options():
    return DetectorOptions(detection_confidence=0.3, tracking_confidence=0.4)


class TestConvertPose:

    def test_empty(self):
        assert _convert_pose(None) == LandmarkResult.empty()
        assert _convert_pose([]) == LandmarkResult.empty()

    def test_first_pose_only(self):
        result = _convert_pose([[point(0.1, 0.2)], [point(0.9, 0.9)]])
        assert len(result.landmarks) == 1
        landmark = result.landmarks[0]
        assert (landmark.x, landmark.y, landmark.z) == (0.1, 0.2, 0.0)
        assert landmark.confidence == pytest.approx(0.72)


class TestMediaPipePoseDetector:

    @pytest.mark.asyncio
    async def test_initialize_builds_video_mode_and_warms_up(self, options):
        mp, vision, created = fake_runtime()
        detector = MediaPipePoseDetector(mp, vision, locate, options)

        await detector.initialize()

        landmarker = created[0]
        assert landmarker.options.running_mode == "video"
        assert landmarker.options.min_pose_detection_confidence == 0.3
        assert landmarker.options.min_tracking_confidence == 0.4
        assert landmarker.options.base_options.model_asset_path == str(Path("/models/pose_landmarker_lite.task"))
        assert len(landmarker.calls) == 1
        assert landmarker.calls[0][0].data.shape == (64, 64, 3)

    @pytest.mark.asyncio
    async def test_send_converts_colour_and_reports(self, options):
        mp, vision, created = fake_runtime(poses=[[point(0.5, 0.5)] * 33])
        detector = MediaPipePoseDetector(mp, vision, locate, options)
        results = []
        detector.on_results(results.append)
        await detector.initialize()

        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        frame[..., 0] = 255  # blue in BGR
        await detector.send(frame, timestamp_ms=5000.0)

        image = created[0].calls[-1][0]
        assert image.data[0, 0].tolist() == [0, 0, 255]
        assert len(results) == 1
        assert len(results[0].landmarks) == 33

    @pytest.mark.asyncio
    async def test_timestamps_strictly_increase(self, options):
        mp, vision, created = fake_runtime()
        detector = MediaPipePoseDetector(mp, vision, locate, options)
        await detector.initialize()

        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        await detector.send(frame, timestamp_ms=10_000.0)
        await detector.send(frame, timestamp_ms=9_000.0)
        await detector.send(frame, timestamp_ms=10_000.4)

        stamps = [stamp for _, stamp in created[0].calls[1:]]
        assert stamps == [10_000, 10_001, 10_002]

    @pytest.mark.asyncio
    async def test_send_before_initialize_fails(self, options):
        mp, vision, _ = fake_runtime()
        detector = MediaPipePoseDetector(mp, vision, locate, options)
        with pytest.raises(RuntimeError):
            await detector.send(np.zeros((4, 4, 3), dtype=np.uint8))

    @pytest.mark.asyncio
    async def test_close_releases_landmarker(self, options):
        mp, vision, created = fake_runtime()
        detector = MediaPipePoseDetector(mp, vision, locate, options)
        await detector.initialize()

        await detector.close()
        await detector.close()

        assert created[0].closed

    @pytest.mark.asyncio
    async def test_close_waits_for_running_detection(self, options):
        mp, vision, created = fake_runtime()
        detector = MediaPipePoseDetector(mp, vision, locate, options)
        await detector.initialize()
        landmarker = created[0]
        landmarker.detect_s = 0.2

        send = asyncio.create_task(detector.send(np.zeros((4, 4, 3), dtype=np.uint8)))
        while not landmarker.detecting:
            await asyncio.sleep(0.005)
        await detector.close()
        await send

        assert landmarker.closed
        assert not landmarker.closed_while_detecting

    @pytest.mark.asyncio
    async def test_send_after_close_fails(self, options):
        mp, vision, _ = fake_runtime()
        detector = MediaPipePoseDetector(mp, vision, locate, options)
        await detector.initialize()
        await detector.close()

        with pytest.raises(RuntimeError):
            await detector.send(np.zeros((4, 4, 3), dtype=np.uint8))


class TestProvider:

    def test_missing_runtime_reports_unavailable(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "mediapipe", None)
        provider = MediaPipePoseProvider()

        assert not provider.is_available()
        assert not provider.is_available()
        with pytest.raises(RuntimeError):
            provider.create(locate, DetectorOptions())

    def test_available_runtime_creates_detector(self, monkeypatch):
        mp, vision, _ = fake_runtime()
        monkeypatch.setitem(sys.modules, "mediapipe", mp)
        monkeypatch.setitem(sys.modules, "mediapipe.tasks.python.vision", vision)
        provider = MediaPipePoseProvider()

        assert provider.is_available()
        assert isinstance(provider.create(locate, DetectorOptions()), MediaPipePoseDetector)
