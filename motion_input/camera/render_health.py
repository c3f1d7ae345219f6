"""Render-health probing: confirm a stream actually produces visible frames."""

from __future__ import annotations

import asyncio
import dataclasses
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from motion_input.core.asyncio_utils import race_with_timeout
from motion_input.core.config_manager import ConfigManager, get_config_manager
from motion_input.core.logging_utils import LoggerLike, ensure_structured_logger

from .errors import CameraPipelineError, CameraPipelineErrorCode
from .interfaces import (
    HAVE_METADATA,
    TRACK_LIVE,
    CaptureStream,
    FrameMetadata,
    VideoSink,
    decoded_frame_count,
    supports_frame_callbacks,
)


@dataclass(frozen=True)
class FrameProgressSignals:
    """Which heuristics count as frame progress.

    Availability differs per platform, so each can be switched off instead of
    relying on a fixed priority.
    """

    media_clock: bool = True
    decoded_frames: bool = True
    frame_callback: bool = True
    media_clock_epsilon_s: float = 0.02
    callback_epsilon_s: float = 0.015


@dataclass(frozen=True)
class RenderTimings:
    metadata_timeout_ms: int = 4500
    play_timeout_ms: int = 4200
    frame_timeout_ms: int = 4200
    wait_unmute_ms: int = 1800
    poll_interval_ms: int = 120
    rebind_pause_ms: int = 140
    signals: FrameProgressSignals = field(default_factory=FrameProgressSignals)

    @classmethod
    def from_config(cls, config: Dict[str, str], manager: Optional[ConfigManager] = None) -> "RenderTimings":
        """Overrides from ``render.<field>`` and ``render.signals.<field>`` keys."""
        manager = manager or get_config_manager()
        timings = manager.apply_to_dataclass(config, cls(), prefix="render.")
        signals = manager.apply_to_dataclass(config, timings.signals, prefix="render.signals.")
        return dataclasses.replace(timings, signals=signals)


# Timings used when validating on a throwaway off-screen sink.
PROBE_SINK_TIMINGS = RenderTimings(
    metadata_timeout_ms=3200,
    play_timeout_ms=3600,
    frame_timeout_ms=3600,
    wait_unmute_ms=1800,
)

# Lighter timings for re-validating an owned stream after returning to the foreground.
FOREGROUND_TIMINGS = RenderTimings(
    metadata_timeout_ms=2200,
    play_timeout_ms=3500,
    frame_timeout_ms=2600,
    wait_unmute_ms=2200,
)


def _not_rendering() -> CameraPipelineError:
    return CameraPipelineError(
        CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING,
        CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING.value,
    )


def track_diagnostics(stream: CaptureStream) -> List[Dict[str, Any]]:
    diagnostics = []
    for track in stream.get_video_tracks():
        try:
            settings = dict(track.get_settings())
        except Exception:  # settings introspection is best effort
            settings = {}
        diagnostics.append({
            "kind": track.kind,
            "enabled": track.enabled,
            "muted": track.muted,
            "ready_state": track.ready_state,
            "label": track.label,
            "settings": settings,
        })
    return diagnostics


def has_usable_live_track(stream: CaptureStream) -> bool:
    return any(track.ready_state == TRACK_LIVE and track.enabled for track in stream.get_video_tracks())


def _has_unmuted_live_track(stream: CaptureStream) -> bool:
    return any(
        track.ready_state == TRACK_LIVE and track.enabled and not track.muted
        for track in stream.get_video_tracks()
    )


def _has_size(sink: VideoSink) -> bool:
    return sink.video_width > 0 and sink.video_height > 0


def _media_time(sink: VideoSink, fallback: float) -> float:
    value = sink.current_time
    return value if isinstance(value, (int, float)) and math.isfinite(value) else fallback


class RenderHealthProbe:
    """Binds streams to sinks and verifies that frames really advance."""

    def __init__(
        self,
        *,
        timings: Optional[RenderTimings] = None,
        visibility: Optional[Callable[[], bool]] = None,
        logger: LoggerLike = None,
    ) -> None:
        self.timings = timings or RenderTimings()
        self._visibility = visibility
        self._logger = ensure_structured_logger(logger, fallback_name="RenderHealth")

    # ------------------------------------------------------------------
    # Sink binding

    @staticmethod
    def detach(sink: VideoSink, hard_reset: bool) -> None:
        try:
            sink.pause()
        except Exception:  # pausing an unbound sink may fail; detaching still applies
            pass
        sink.detach(hard_reset)

    def _bind(self, sink: VideoSink, stream: CaptureStream) -> None:
        sink.configure()
        if sink.source is not stream:
            self.detach(sink, True)
            sink.attach(stream)

    # ------------------------------------------------------------------
    # Public checks

    async def ensure_renderable(
        self,
        sink: VideoSink,
        stream: CaptureStream,
        stage: str,
        timings: Optional[RenderTimings] = None,
    ) -> None:
        """Bind ``stream`` to ``sink`` and require visible frame progress."""
        timings = timings or self.timings
        poll = timings.poll_interval_ms / 1000.0
        self._bind(sink, stream)

        readiness = await self.wait_for_readiness(sink, timings.metadata_timeout_ms / 1000.0, poll)
        if readiness != "ready":
            self._logger.warning(
                "Sink readiness not reached before play()",
                fields={"stage": stage, "result": readiness, "ready_state": sink.ready_state,
                        "width": sink.video_width, "height": sink.video_height},
            )
            self.log_diagnostics(f"{stage}:metadata-{readiness}", sink, stream)

        if not await self.wait_for_unmuted_live_track(stream, timings.wait_unmute_ms / 1000.0, poll):
            self._logger.warning(
                "Track remained muted before play(), continuing with frame probe",
                fields={"stage": stage, "tracks": track_diagnostics(stream)},
            )

        await self.play_with_timeout(sink, stream, timings.play_timeout_ms / 1000.0, stage)

        if not await self.wait_for_frame_progress(sink, stream, timings.frame_timeout_ms / 1000.0, timings):
            self.log_diagnostics(f"{stage}:frame-timeout", sink, stream)
            raise _not_rendering()

    async def ensure_renderable_with_rebind(
        self,
        sink: VideoSink,
        stream: CaptureStream,
        stage: str,
        timings: Optional[RenderTimings] = None,
    ) -> None:
        """Like ensure_renderable, with one hard detach/rebind on a render failure."""
        timings = timings or self.timings
        try:
            await self.ensure_renderable(sink, stream, stage, timings)
        except CameraPipelineError as error:
            if not error.is_render_failure:
                raise
            self._logger.warning(
                "Render probe failed, trying hard rebind once",
                fields={"stage": stage, "tracks": track_diagnostics(stream)},
            )
            self.detach(sink, True)
            await asyncio.sleep(timings.rebind_pause_ms / 1000.0)
            await self.ensure_renderable(sink, stream, f"{stage}:hard-rebind", timings)

    async def ensure_renderable_on_probe(
        self,
        probe_sink: VideoSink,
        stream: CaptureStream,
        stage: str,
    ) -> None:
        """Validate on a throwaway sink, always releasing it afterwards."""
        timings = dataclasses.replace(
            PROBE_SINK_TIMINGS,
            poll_interval_ms=self.timings.poll_interval_ms,
            rebind_pause_ms=self.timings.rebind_pause_ms,
            signals=self.timings.signals,
        )
        try:
            await self.ensure_renderable(probe_sink, stream, f"{stage}:probe", timings)
        finally:
            self.detach(probe_sink, True)

    # ------------------------------------------------------------------
    # Individual waits

    async def wait_for_readiness(self, sink: VideoSink, timeout: float, poll: float) -> str:
        """Return ``ready``, ``timeout`` or ``error``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if sink.error is not None:
                return "error"
            if sink.ready_state >= HAVE_METADATA or _has_size(sink):
                return "ready"
            remaining = deadline - loop.time()
            if remaining <= 0:
                return "timeout"
            await asyncio.sleep(min(poll, remaining))

    async def wait_for_unmuted_live_track(self, stream: CaptureStream, timeout: float, poll: float) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if _has_unmuted_live_track(stream):
                return True
            await asyncio.sleep(poll)
        return _has_unmuted_live_track(stream)

    async def wait_for_sink_visible(self, sink: VideoSink, timeout: float, stage: str) -> None:
        """Wait for the surface and the sink to be visible; proceeds anyway on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self.surface_visible() and sink.is_visible():
                return
            await asyncio.sleep(0.08)
        self._logger.warning(
            "Sink visibility precheck timed out, proceeding",
            fields={"stage": stage, "surface_visible": self.surface_visible()},
        )

    def surface_visible(self) -> bool:
        return self._visibility() if self._visibility is not None else True

    async def play_with_timeout(self, sink: VideoSink, stream: CaptureStream, timeout: float, stage: str) -> None:
        try:
            await race_with_timeout(sink.play(), timeout, what="play")
        except asyncio.TimeoutError:
            has_live = any(track.ready_state == TRACK_LIVE for track in stream.get_video_tracks())
            if not _has_size(sink) or not has_live:
                self.log_diagnostics(f"{stage}:play-timeout-no-size-or-track", sink, stream)
                raise _not_rendering() from None
            self._logger.warning(
                "play() timed out, probing for renderable frames",
                fields={"stage": stage, "ready_state": sink.ready_state, "paused": sink.paused,
                        "width": sink.video_width, "height": sink.video_height},
            )
        except CameraPipelineError:
            raise
        except Exception as exc:
            raise CameraPipelineError(
                CameraPipelineErrorCode.VIDEO_PLAY_FAILED,
                f"VIDEO_PLAY_FAILED:{type(exc).__name__}:{exc}",
            ) from exc

    async def wait_for_frame_progress(
        self,
        sink: VideoSink,
        stream: CaptureStream,
        timeout: float,
        timings: Optional[RenderTimings] = None,
    ) -> bool:
        timings = timings or self.timings
        signals = timings.signals
        baseline_time = _media_time(sink, 0.0)
        baseline_decoded = decoded_frame_count(sink) or 0
        callback_progress = False
        callback_handle: Any = None
        disposed = False

        def _on_frame(_now: float, metadata: FrameMetadata) -> None:
            nonlocal callback_progress, callback_handle
            if disposed:
                return
            if metadata.media_time is not None and metadata.media_time > baseline_time + signals.callback_epsilon_s:
                callback_progress = True
            if metadata.presented_frames is not None and metadata.presented_frames > 0:
                callback_progress = True
            callback_handle = sink.request_video_frame_callback(_on_frame)

        if signals.frame_callback and supports_frame_callbacks(sink):
            callback_handle = sink.request_video_frame_callback(_on_frame)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            while True:
                progressed = callback_progress
                if signals.media_clock:
                    progressed = progressed or _media_time(sink, baseline_time) > baseline_time + signals.media_clock_epsilon_s
                if signals.decoded_frames:
                    decoded = decoded_frame_count(sink)
                    progressed = progressed or (decoded is not None and decoded > baseline_decoded)
                if (
                    has_usable_live_track(stream)
                    and _has_size(sink)
                    and not sink.paused
                    and not sink.ended
                    and progressed
                ):
                    return True
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False
                await asyncio.sleep(min(timings.poll_interval_ms / 1000.0, remaining))
        finally:
            disposed = True
            cancel = getattr(sink, "cancel_video_frame_callback", None)
            if callback_handle is not None and callable(cancel):
                cancel(callback_handle)

    # ------------------------------------------------------------------
    # Diagnostics

    def log_diagnostics(self, stage: str, sink: VideoSink, stream: CaptureStream) -> None:
        self._logger.warning(
            "Preview diagnostics",
            fields={
                "stage": stage,
                "paused": sink.paused,
                "ended": sink.ended,
                "ready_state": sink.ready_state,
                "current_time": sink.current_time,
                "width": sink.video_width,
                "height": sink.video_height,
                "decoded_frames": decoded_frame_count(sink),
                "sink_visible": sink.is_visible(),
                "surface_visible": self.surface_visible(),
                "tracks": track_diagnostics(stream),
            },
        )


__all__ = [
    "FOREGROUND_TIMINGS",
    "FrameProgressSignals",
    "PROBE_SINK_TIMINGS",
    "RenderHealthProbe",
    "RenderTimings",
    "has_usable_live_track",
    "track_diagnostics",
]
