"""
Camera session manager.

Obtains a capture stream that is not merely live at the device level but
visibly rendering into a sink. Handles permission timeouts, late grants,
constraint fallbacks, render-health retries with fresh streams, and the
iOS camera "kick" that unsticks a pipeline wedged by an interrupted session.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Callable, List, Optional

from motion_input.core.asyncio_utils import race_with_timeout
from motion_input.core.logging_utils import LoggerLike, ensure_structured_logger
from motion_input.core.platform_info import CapturePlatformProfile, detect_platform_profile

from .constraints import KICK_CONSTRAINTS, ConstraintSet, build_constraint_profiles, render_retry_count
from .errors import (
    CameraPipelineError,
    CameraPipelineErrorCode,
    CaptureDeviceError,
    is_render_failure,
)
from .interfaces import CaptureDevice, CaptureStream, VideoSink, stop_stream
from .render_health import (
    FOREGROUND_TIMINGS,
    RenderHealthProbe,
    RenderTimings,
    has_usable_live_track,
    track_diagnostics,
)

ProbeSinkFactory = Callable[[], VideoSink]

START_WINDOW_VISIBILITY_MS = 1600
IOS_START_SETTLE_MS = 220
IOS_SINK_VISIBLE_MS = 1800
FOREGROUND_SINK_VISIBLE_MS = 1000
KICK_PLAY_MS = 700
KICK_HOLD_MS = 120
RETRY_COOLDOWN_MS = 350
IOS_RETRY_COOLDOWN_MS = 520


@dataclass
class CaptureSession:
    """State owned by one manager: the adopted stream and its sink."""

    stream: Optional[CaptureStream] = None
    sink: Optional[VideoSink] = None
    attempts: int = 0
    in_flight: Optional[asyncio.Future] = None
    last_discard_error: Optional[CameraPipelineError] = None


class CameraSessionManager:
    """Acquires renderable capture streams for a single consumer."""

    def __init__(
        self,
        device: Optional[CaptureDevice],
        *,
        platform: Optional[CapturePlatformProfile] = None,
        probe_sink_factory: Optional[ProbeSinkFactory] = None,
        visibility: Optional[Callable[[], bool]] = None,
        timings: Optional[RenderTimings] = None,
        logger: LoggerLike = None,
    ) -> None:
        self._device = device
        self.platform = platform or detect_platform_profile()
        self._probe_sink_factory = probe_sink_factory
        self._logger = ensure_structured_logger(logger, fallback_name="CameraSession")
        self._probe = RenderHealthProbe(timings=timings, visibility=visibility, logger=self._logger)
        self._session: Optional[CaptureSession] = None

    # ------------------------------------------------------------------
    # Introspection

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def timings(self) -> RenderTimings:
        return self._probe.timings

    def render_retry_count(self) -> int:
        return render_retry_count(self.platform)

    def build_constraint_profiles(self) -> List[ConstraintSet]:
        return build_constraint_profiles(self.platform)

    def has_usable_live_track(self, stream: CaptureStream) -> bool:
        return has_usable_live_track(stream)

    def video_track_diagnostics(self, stream: CaptureStream) -> list:
        return track_diagnostics(stream)

    # ------------------------------------------------------------------
    # Lifecycle

    def cleanup_session(self, sink: Optional[VideoSink], stream: Optional[CaptureStream]) -> None:
        """Stop ``stream`` and release ``sink``; forgets the owned session."""
        stop_stream(stream)
        if sink is not None:
            self._probe.detach(sink, True)
        if self._session is not None and (stream is None or self._session.stream is stream):
            self._session.stream = None
            self._session.sink = None
        self._logger.info("Camera session cleaned up")

    async def acquire_renderable_stream(
        self,
        sink: VideoSink,
        existing_stream: Optional[CaptureStream] = None,
        *,
        permission_timeout_ms: int,
        render_retry_count: Optional[int] = None,
    ) -> CaptureStream:
        """Return a stream bound to ``sink`` that is producing frames.

        Concurrent callers share the in-flight acquisition and receive the
        same stream or the same error.
        """
        if self._session is None:
            self._session = CaptureSession()
        session = self._session

        if session.in_flight is None:
            future = asyncio.ensure_future(self._acquire(
                session,
                sink,
                existing_stream,
                permission_timeout_ms,
                self.render_retry_count() if render_retry_count is None else render_retry_count,
            ))
            session.in_flight = future

            def _clear(done: asyncio.Future) -> None:
                if session.in_flight is done:
                    session.in_flight = None
                if not done.cancelled():
                    done.exception()

            future.add_done_callback(_clear)
        else:
            self._logger.debug("Acquisition already in flight, joining it")

        return await asyncio.shield(session.in_flight)

    async def recover_foreground_preview(self, sink: VideoSink, stream: CaptureStream) -> None:
        """Re-validate an owned stream after the surface returns to the foreground."""
        await self._probe.wait_for_sink_visible(sink, FOREGROUND_SINK_VISIBLE_MS / 1000.0, "foreground-recover")
        timings = dataclasses.replace(
            FOREGROUND_TIMINGS,
            poll_interval_ms=self.timings.poll_interval_ms,
            rebind_pause_ms=self.timings.rebind_pause_ms,
            signals=self.timings.signals,
        )
        await self._probe.ensure_renderable_with_rebind(sink, stream, "foreground-recover", timings)
        if self._session is not None:
            self._session.stream = stream
            self._session.sink = sink

    # ------------------------------------------------------------------
    # Acquisition

    async def _acquire(
        self,
        session: CaptureSession,
        sink: VideoSink,
        existing_stream: Optional[CaptureStream],
        permission_timeout_ms: int,
        retry_count: int,
    ) -> CaptureStream:
        profiles = self.build_constraint_profiles()
        await self._wait_for_stable_start_window()

        if existing_stream is not None and existing_stream.active:
            try:
                await self._probe.ensure_renderable_with_rebind(sink, existing_stream, "reuse-existing-stream")
                self._adopt(session, existing_stream, sink)
                return existing_stream
            except Exception as error:
                self._logger.warning(
                    "Existing stream reuse failed, requesting fresh stream",
                    fields={"error": repr(error), "tracks": track_diagnostics(existing_stream)},
                )
                stop_stream(existing_stream)
                self._probe.detach(sink, True)

        last_render_error: Optional[BaseException] = None
        for attempt in range(retry_count + 1):
            session.attempts += 1
            start_index = attempt % len(profiles)
            stage = f"fresh-stream-attempt-{attempt + 1}"
            stream = await self._request_stream_with_timeout(session, profiles, permission_timeout_ms, start_index)
            try:
                await self._verify_renderable(sink, stream, stage)
                self._adopt(session, stream, sink)
                return stream
            except Exception as error:
                last_render_error = error
                stop_stream(stream)
                self._probe.detach(sink, True)

                if not is_render_failure(error) or attempt >= retry_count:
                    raise

                self._logger.warning(
                    "Stream not renderable, retrying with a fresh stream",
                    fields={"attempt": attempt + 1, "max_attempts": retry_count + 1},
                )
                if self.platform.is_ios:
                    await self._perform_ios_camera_kick()
                cooldown = IOS_RETRY_COOLDOWN_MS if self.platform.is_ios else RETRY_COOLDOWN_MS
                await asyncio.sleep(cooldown / 1000.0)

        if last_render_error is not None:
            raise last_render_error
        raise CameraPipelineError(CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING, "Video stream is not renderable")

    def _adopt(self, session: CaptureSession, stream: CaptureStream, sink: VideoSink) -> None:
        session.stream = stream
        session.sink = sink
        self._logger.info(
            "Renderable stream acquired",
            fields={"attempts": session.attempts, "tracks": track_diagnostics(stream)},
        )

    async def _verify_renderable(self, sink: VideoSink, stream: CaptureStream, stage: str) -> None:
        if self.platform.is_ios or self._probe_sink_factory is None:
            if self.platform.is_ios:
                await self._probe.wait_for_sink_visible(sink, IOS_SINK_VISIBLE_MS / 1000.0, stage)
            await self._probe.ensure_renderable_with_rebind(sink, stream, stage)
            return
        await self._probe.ensure_renderable_on_probe(self._probe_sink_factory(), stream, stage)
        await self._probe.ensure_renderable_with_rebind(sink, stream, f"{stage}:bind-preview")

    async def _wait_for_stable_start_window(self) -> None:
        if not self._probe.surface_visible():
            loop = asyncio.get_running_loop()
            deadline = loop.time() + START_WINDOW_VISIBILITY_MS / 1000.0
            while not self._probe.surface_visible():
                if loop.time() >= deadline:
                    self._logger.debug("Surface still hidden, starting acquisition anyway")
                    return
                await asyncio.sleep(0.08)
        if self.platform.is_ios:
            await asyncio.sleep(IOS_START_SETTLE_MS / 1000.0)

    # ------------------------------------------------------------------
    # Device requests

    async def _request_stream_with_timeout(
        self,
        session: CaptureSession,
        profiles: List[ConstraintSet],
        permission_timeout_ms: int,
        start_index: int,
    ) -> CaptureStream:
        if self._device is None:
            raise CameraPipelineError(CameraPipelineErrorCode.CAMERA_API_MISSING, "Capture device API is unavailable")

        def _discard_late(stream: CaptureStream) -> None:
            stop_stream(stream)
            session.last_discard_error = CameraPipelineError(
                CameraPipelineErrorCode.CAMERA_LATE_STREAM_DISCARDED,
                "Late stream discarded after timeout",
            )
            self._logger.warning(
                "Late stream discarded after permission timeout",
                fields={"tracks": track_diagnostics(stream)},
            )

        return await race_with_timeout(
            self._request_stream(profiles, start_index),
            permission_timeout_ms / 1000.0,
            on_late_result=_discard_late,
            timeout_error=lambda: CameraPipelineError(
                CameraPipelineErrorCode.CAMERA_PERMISSION_TIMEOUT,
                "Camera permission request timeout",
            ),
            what="camera request",
        )

    async def _request_stream(self, profiles: List[ConstraintSet], start_index: int) -> CaptureStream:
        assert self._device is not None
        last_error: Optional[BaseException] = None
        for offset in range(len(profiles)):
            index = (start_index + offset) % len(profiles)
            constraints = profiles[index]
            try:
                return await self._device.request_stream(constraints)
            except CaptureDeviceError as error:
                last_error = error
                self._logger.warning(
                    "Stream request attempt failed",
                    fields={"attempt": offset + 1, "total": len(profiles), "profile": index + 1,
                            "kind": error.kind.value, "constraints": constraints.to_dict()},
                )
                if error.is_terminal:
                    raise

        try:
            return await self._device.request_stream(None)
        except CaptureDeviceError as fallback_error:
            self._logger.warning(
                "Best-effort stream request failed",
                fields={"kind": fallback_error.kind.value, "previous": repr(last_error)},
            )
            raise

    async def _perform_ios_camera_kick(self) -> None:
        if self._device is None:
            return
        probe_stream: Optional[CaptureStream] = None
        probe_sink = self._probe_sink_factory() if self._probe_sink_factory else None
        try:
            probe_stream = await self._device.request_stream(KICK_CONSTRAINTS)
            if probe_sink is not None:
                probe_sink.configure()
                probe_sink.attach(probe_stream)
                try:
                    await race_with_timeout(probe_sink.play(), KICK_PLAY_MS / 1000.0, what="kick play")
                except Exception as play_error:
                    self._logger.debug("Kick probe play did not complete: %r", play_error)
            await asyncio.sleep(KICK_HOLD_MS / 1000.0)
        except Exception as error:
            self._logger.warning("iOS camera kick skipped: %s", error)
        finally:
            stop_stream(probe_stream)
            if probe_sink is not None:
                self._probe.detach(probe_sink, False)


__all__ = ["CameraSessionManager", "CaptureSession", "ProbeSinkFactory"]
