"""Unit test fixtures for isolated, fast test execution.

This conftest provides fixtures specifically for unit tests that:
- Run in complete isolation (no camera, no MediaPipe runtime, no network)
- Execute quickly (short render timings, scripted fakes)
- Use fakes for capture devices, sinks and landmark detectors

The fakes themselves live in ``tests/infrastructure/mocks``.
"""

from __future__ import annotations

from typing import Callable

import pytest

from motion_input.camera.render_health import RenderTimings
from motion_input.core.platform_info import CapturePlatform, CapturePlatformProfile
from tests.infrastructure.mocks.camera_mocks import FakeCaptureDevice, FakeVideoSink
from tests.infrastructure.mocks.detector_mocks import FakeDetectorProvider


# =============================================================================
# Camera Fixtures
# =============================================================================

@pytest.fixture
def desktop_platform() -> CapturePlatformProfile:
    return CapturePlatformProfile(CapturePlatform.DESKTOP)


@pytest.fixture
def ios_platform() -> CapturePlatformProfile:
    return CapturePlatformProfile(CapturePlatform.IOS, is_mobile=True)


@pytest.fixture
def fast_timings() -> RenderTimings:
    """Render timings short enough that a non-rendering stream fails in well under a second."""
    return RenderTimings(
        metadata_timeout_ms=40,
        play_timeout_ms=60,
        frame_timeout_ms=60,
        wait_unmute_ms=20,
        poll_interval_ms=5,
        rebind_pause_ms=5,
    )


@pytest.fixture
def fake_device() -> FakeCaptureDevice:
    return FakeCaptureDevice()


@pytest.fixture
def fake_sink() -> FakeVideoSink:
    return FakeVideoSink()


# =============================================================================
# Motion Fixtures
# =============================================================================

@pytest.fixture
def detector_provider() -> FakeDetectorProvider:
    return FakeDetectorProvider()


class ManualClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def manual_clock() -> Callable[[], float]:
    return ManualClock()
