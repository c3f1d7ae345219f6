"""
Motion signal processor.

Owns a landmark detector, pumps frames from a ``VideoSink`` into it at a
fixed rate and feeds results through ``MotionTracker``. Consumers read the
``state`` snapshot and receive ``MotionKind.MOVE`` / ``MotionKind.JUMP``
notifications through ``on_motion_detected``.

Everything runs on the event loop; detector calls are pushed to worker
threads by the detector itself, and results come back in submission order
because a new frame is only submitted once the previous one is done.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from motion_input.camera.interfaces import VideoSink
from motion_input.core.asyncio_utils import (
    AbortSignal,
    cancel_and_wait,
    create_logged_task,
    race_with_timeout,
    raise_if_aborted,
    retry_with_backoff,
    wait_until,
)
from motion_input.core.logging_utils import LoggerLike, ensure_structured_logger
from motion_input.core.platform_info import CapturePlatform, CapturePlatformProfile

from .assets import AssetSourceRotation, AssetSourceLike
from .detector import (
    DetectorInitTimeout,
    DetectorOptions,
    DetectorProvider,
    DetectorUnavailable,
    LandmarkDetector,
)
from .landmarks import LandmarkResult
from .state import MotionKind, MotionState
from .tracker import MotionTracker
from .tuning import DetectorInitPolicy, MotionTuning

MotionCallback = Callable[[MotionKind], None]

MOBILE_PLATFORMS = (CapturePlatform.IOS, CapturePlatform.ANDROID, CapturePlatform.HARMONY)


class ProcessorPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    STOPPED = "stopped"


class MotionProcessor:
    def __init__(
        self,
        provider: DetectorProvider,
        *,
        tuning: Optional[MotionTuning] = None,
        init_policy: Optional[DetectorInitPolicy] = None,
        asset_sources: Union[AssetSourceRotation, Sequence[AssetSourceLike], None] = None,
        platform: Optional[CapturePlatformProfile] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: LoggerLike = None,
        on_motion_detected: Optional[MotionCallback] = None,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="MotionProcessor")
        self._provider = provider
        self.tuning = tuning or MotionTuning()
        self.init_policy = init_policy or DetectorInitPolicy()
        if isinstance(asset_sources, AssetSourceRotation):
            self._assets = asset_sources
        else:
            self._assets = AssetSourceRotation(asset_sources, logger=self._logger)
        self._platform = platform or CapturePlatformProfile(CapturePlatform.DESKTOP)
        self._clock = clock
        self.on_motion_detected = on_motion_detected

        self._tracker = MotionTracker(self.tuning)
        self._phase = ProcessorPhase.UNINITIALIZED
        self._detector: Optional[LandmarkDetector] = None
        self._init_future: Optional[asyncio.Future] = None
        self._sink: Optional[VideoSink] = None
        self._tick_handle: Optional[asyncio.TimerHandle] = None
        self._jump_clear_handle: Optional[asyncio.TimerHandle] = None
        self._pending_send: Optional[asyncio.Task] = None
        self._frame_timestamp_ms: Optional[float] = None
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public surface

    @property
    def phase(self) -> ProcessorPhase:
        return self._phase

    @property
    def is_ready(self) -> bool:
        return self._detector is not None

    @property
    def is_started(self) -> bool:
        return self._phase is ProcessorPhase.RUNNING

    @property
    def state(self) -> MotionState:
        return self._tracker.state

    @property
    def tracker(self) -> MotionTracker:
        return self._tracker

    async def init(self, abort: AbortSignal = None) -> None:
        """Create and warm up the detector once; concurrent callers share the attempt."""
        if self._detector is not None:
            return
        raise_if_aborted(abort, "detector init")
        if self._init_future is None:
            future = asyncio.ensure_future(self._initialize(abort))
            future.add_done_callback(self._on_init_settled)
            self._init_future = future
        await race_with_timeout(asyncio.shield(self._init_future), None, abort=abort, what="detector init")

    async def start(self, sink: VideoSink, abort: AbortSignal = None) -> None:
        await self.init(abort)
        raise_if_aborted(abort, "motion start")

        if self._phase is ProcessorPhase.RUNNING:
            self._sink = sink
            self._logger.info("Rebound frame source while running")
            return

        self._tracker.reset()
        self._sink = sink
        self._phase = ProcessorPhase.RUNNING
        self._schedule_tick(0.0)
        self._logger.info(
            "Motion processing started",
            fields={"rate_hz": self.tuning.send_rate_hz, "platform": str(self._platform)},
        )

    def stop(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self._tracker.clear_freshness()
        self._sink = None
        if self._phase is ProcessorPhase.RUNNING:
            self._phase = ProcessorPhase.STOPPED
            self._logger.info("Motion processing stopped")

    def calibrate(self) -> None:
        self._tracker.calibrate()
        self._logger.info("Calibrated", fields={"neutral_x": round(self._tracker.neutral_x, 4)})

    async def close(self) -> None:
        """Stop and release the detector. ``init`` may be called again afterwards."""
        self.stop()
        if self._jump_clear_handle is not None:
            self._jump_clear_handle.cancel()
            self._jump_clear_handle = None
        init_future, self._init_future = self._init_future, None
        await cancel_and_wait(init_future)
        # Detection runs on a worker thread that cancelling would not stop.
        if self._pending_send is not None and not self._pending_send.done():
            await asyncio.wait({self._pending_send})
        detector, self._detector = self._detector, None
        self._phase = ProcessorPhase.UNINITIALIZED
        if detector is not None:
            await detector.close()

    # ------------------------------------------------------------------
    # Initialization

    def _on_init_settled(self, future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            if self._init_future is future:
                self._init_future = None

    def _detector_options(self) -> DetectorOptions:
        policy = self.init_policy
        mobile = self._platform.is_mobile or self._platform.platform in MOBILE_PLATFORMS
        if mobile:
            detection = tracking = policy.mobile_confidence
        else:
            detection, tracking = policy.detection_confidence, policy.tracking_confidence
        return DetectorOptions(
            model_file=policy.model_file,
            detection_confidence=detection,
            tracking_confidence=tracking,
        )

    async def _create_detector(self, attempt: int, options: DetectorOptions) -> LandmarkDetector:
        source = self._assets.current
        self._logger.info("Initializing pose detector", fields={"attempt": attempt, "source": str(source.source)})
        detector = self._provider.create(source.locate_file, options)
        try:
            await detector.initialize()
        except BaseException:
            await self._close_detector(detector)
            raise
        return detector

    async def _close_detector(self, detector: LandmarkDetector) -> None:
        try:
            await detector.close()
        except Exception as exc:
            self._logger.debug("Closing failed detector raised: %r", exc)

    def _on_init_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        self._logger.warning(
            "Pose detector init failed, retrying",
            fields={"attempt": attempt, "error": repr(error), "delay_s": round(delay, 3)},
        )
        self._assets.advance()

    async def _initialize(self, abort: AbortSignal) -> None:
        policy = self.init_policy
        self._phase = ProcessorPhase.INITIALIZING
        try:
            available = await wait_until(
                self._provider.is_available,
                policy.availability_timeout_s,
                interval=policy.availability_poll_s,
                abort=abort,
            )
            if not available:
                raise DetectorUnavailable(
                    f"pose detector runtime unavailable after {policy.availability_timeout_s:.1f}s"
                )

            options = self._detector_options()
            detector = await retry_with_backoff(
                lambda attempt: self._create_detector(attempt, options),
                deadline=policy.deadline_s,
                initial_delay=policy.initial_backoff_s,
                max_delay=policy.max_backoff_s,
                abort=abort,
                on_retry=self._on_init_retry,
                deadline_error=lambda last: DetectorInitTimeout(
                    f"pose detector init did not succeed within {policy.deadline_s:.0f}s: {last!r}"
                ),
                clock=self._clock,
            )
        except BaseException:
            self._detector = None
            self._phase = ProcessorPhase.UNINITIALIZED
            raise

        if abort is not None and abort.is_set():
            await self._close_detector(detector)
            self._phase = ProcessorPhase.UNINITIALIZED
            raise_if_aborted(abort, "detector init")

        detector.on_results(self._on_results)
        self._detector = detector
        self._phase = ProcessorPhase.READY
        self._logger.info("Pose detector ready", fields={"model": options.model_file})

    # ------------------------------------------------------------------
    # Send loop

    def _schedule_tick(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._tick_handle = loop.call_later(delay, self._tick)

    def _tick(self) -> None:
        self._tick_handle = None
        if self._phase is not ProcessorPhase.RUNNING:
            return
        try:
            self._submit_current_frame()
        finally:
            if self._phase is ProcessorPhase.RUNNING:
                self._schedule_tick(self.tuning.send_interval_s)

    def _submit_current_frame(self) -> None:
        sink, detector = self._sink, self._detector
        if sink is None or detector is None:
            return
        if self._pending_send is not None and not self._pending_send.done():
            return
        if not sink.video_width or not sink.video_height or sink.paused:
            return
        frame = sink.current_frame()
        if frame is None:
            return
        self._pending_send = create_logged_task(
            self._send(detector, frame, self._clock() * 1000.0),
            logger=self._logger,
            context="pose-frame-send",
            pending=self._tasks,
        )

    async def _send(self, detector: LandmarkDetector, frame, timestamp_ms: float) -> None:
        self._frame_timestamp_ms = timestamp_ms
        try:
            await detector.send(frame, timestamp_ms=timestamp_ms)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.warning("Frame submission failed: %s", exc)
        finally:
            self._frame_timestamp_ms = None

    # ------------------------------------------------------------------
    # Results

    def _on_results(self, result: LandmarkResult) -> None:
        if self._phase is not ProcessorPhase.RUNNING:
            return
        # Results are timed by the submitted frame, not by their arrival.
        now_ms = self._frame_timestamp_ms
        if now_ms is None:
            now_ms = self._clock() * 1000.0
        update = self._tracker.update(result, now_ms)
        if update.lane_changed:
            self._logger.debug("Lane changed", fields={"lane": self._tracker.state.lane})
            self._notify(MotionKind.MOVE)
        if update.jumped:
            self._logger.debug("Jump detected")
            self._schedule_jump_clear()
            self._notify(MotionKind.JUMP)

    def _schedule_jump_clear(self) -> None:
        if self._jump_clear_handle is not None:
            self._jump_clear_handle.cancel()
        loop = asyncio.get_running_loop()
        self._jump_clear_handle = loop.call_later(self.tuning.jump_hold_ms / 1000.0, self._clear_jump)

    def _clear_jump(self) -> None:
        self._jump_clear_handle = None
        self._tracker.end_jump()

    def _notify(self, kind: MotionKind) -> None:
        callback = self.on_motion_detected
        if callback is None:
            return
        try:
            callback(kind)
        except Exception:
            self._logger.exception("Motion callback failed for %s", kind.value)


__all__ = ["MotionCallback", "MotionProcessor", "ProcessorPhase"]
