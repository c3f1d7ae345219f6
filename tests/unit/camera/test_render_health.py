"""Tests for render-health probing against fake sinks."""

import asyncio

import pytest

from motion_input.camera.errors import CameraPipelineError, CameraPipelineErrorCode
from motion_input.camera.interfaces import FrameMetadata, TRACK_ENDED
from motion_input.camera.render_health import (
    FrameProgressSignals,
    RenderHealthProbe,
    RenderTimings,
    has_usable_live_track,
    track_diagnostics,
)
from motion_input.core.config_manager import ConfigManager
from tests.infrastructure.mocks.camera_mocks import FakeStream, FakeVideoSink


class CallbackOnlySink(FakeVideoSink):
    """Sink whose media clock and decoded counter never move; only frame callbacks report progress."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.callbacks = {}
        self.cancelled = []
        self._next_handle = 0

    @property
    def current_time(self) -> float:
        return 0.0

    @property
    def decoded_frame_count(self) -> int:
        return 0

    def request_video_frame_callback(self, callback):
        self._next_handle += 1
        self.callbacks[self._next_handle] = callback
        return self._next_handle

    def cancel_video_frame_callback(self, handle):
        self.cancelled.append(handle)
        self.callbacks.pop(handle, None)

    def present(self, metadata: FrameMetadata) -> None:
        pending, self.callbacks = self.callbacks, {}
        for callback in pending.values():
            callback(0.0, metadata)


@pytest.fixture
def probe(fast_timings):
    return RenderHealthProbe(timings=fast_timings)


class TestTrackHelpers:

    def test_diagnostics_include_track_details(self):
        stream = FakeStream()
        info = track_diagnostics(stream)
        assert info[0]["kind"] == "video"
        assert info[0]["ready_state"] == "live"
        assert info[0]["settings"]["width"] == 640

    def test_usable_live_track(self):
        stream = FakeStream()
        assert has_usable_live_track(stream)
        stream.tracks[0].enabled = False
        assert not has_usable_live_track(stream)
        stream.tracks[0].enabled = True
        stream.tracks[0].ready_state = TRACK_ENDED
        assert not has_usable_live_track(stream)


class TestEnsureRenderable:

    @pytest.mark.asyncio
    async def test_rendering_stream_passes(self, probe, fake_sink):
        stream = FakeStream()
        await probe.ensure_renderable(fake_sink, stream, "test")
        assert fake_sink.source is stream
        assert not fake_sink.paused

    @pytest.mark.asyncio
    async def test_non_rendering_stream_fails(self, probe, fake_sink):
        with pytest.raises(CameraPipelineError) as excinfo:
            await probe.ensure_renderable(fake_sink, FakeStream(renders=False), "test")
        assert excinfo.value.code is CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING
        assert excinfo.value.is_render_failure

    @pytest.mark.asyncio
    async def test_play_rejection_becomes_play_failed(self, probe):
        sink = FakeVideoSink(play_error=RuntimeError("NotAllowedError"))
        with pytest.raises(CameraPipelineError) as excinfo:
            await probe.ensure_renderable(sink, FakeStream(), "test")
        assert excinfo.value.code is CameraPipelineErrorCode.VIDEO_PLAY_FAILED
        assert "NotAllowedError" in str(excinfo.value)
        assert not excinfo.value.is_render_failure

    @pytest.mark.asyncio
    async def test_play_timeout_without_size_is_not_rendering(self, probe):
        sink = FakeVideoSink(play_delay=1.0)
        with pytest.raises(CameraPipelineError) as excinfo:
            await probe.play_with_timeout(sink, FakeStream(), 0.02, "test")
        assert excinfo.value.code is CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING

    @pytest.mark.asyncio
    async def test_muted_track_does_not_block_probe(self, probe, fake_sink):
        stream = FakeStream(muted=True)
        await probe.ensure_renderable(fake_sink, stream, "test")
        assert fake_sink.play_calls == 1

    @pytest.mark.asyncio
    async def test_rebind_retries_once_after_render_failure(self, probe):
        sink = FakeVideoSink()
        stream = FakeStream(renders=False)
        with pytest.raises(CameraPipelineError):
            await probe.ensure_renderable_with_rebind(sink, stream, "test")
        assert sink.play_calls == 2
        assert True in sink.detach_calls

    @pytest.mark.asyncio
    async def test_rebind_not_attempted_for_play_failure(self, probe):
        sink = FakeVideoSink(play_error=RuntimeError("denied"))
        with pytest.raises(CameraPipelineError):
            await probe.ensure_renderable_with_rebind(sink, FakeStream(), "test")
        assert sink.play_calls == 1

    @pytest.mark.asyncio
    async def test_probe_sink_always_released(self, probe):
        probe_sink = FakeVideoSink()
        await probe.ensure_renderable_on_probe(probe_sink, FakeStream(), "test")
        assert probe_sink.source is None
        assert probe_sink.detach_calls[-1] is True


class TestFrameProgress:

    @pytest.mark.asyncio
    async def test_frame_callback_progress(self, fast_timings):
        probe = RenderHealthProbe(timings=fast_timings)
        sink = CallbackOnlySink()
        stream = FakeStream()
        sink.attach(stream)
        sink.paused = False

        async def present_later():
            await asyncio.sleep(0.01)
            sink.present(FrameMetadata(media_time=0.5, presented_frames=1))

        presenter = asyncio.ensure_future(present_later())
        assert await probe.wait_for_frame_progress(sink, stream, 0.5)
        await presenter
        assert sink.cancelled

    @pytest.mark.asyncio
    async def test_disabled_signals_report_no_progress(self, fast_timings):
        signals = FrameProgressSignals(media_clock=False, decoded_frames=False, frame_callback=False)
        probe = RenderHealthProbe(timings=RenderTimings(poll_interval_ms=5, signals=signals))
        sink = FakeVideoSink()
        stream = FakeStream()
        sink.attach(stream)
        await sink.play()
        assert not await probe.wait_for_frame_progress(sink, stream, 0.05)

    @pytest.mark.asyncio
    async def test_decoded_frames_alone_count(self):
        signals = FrameProgressSignals(media_clock=False, frame_callback=False)
        probe = RenderHealthProbe(timings=RenderTimings(poll_interval_ms=5, signals=signals))
        sink = FakeVideoSink()
        stream = FakeStream()
        sink.attach(stream)
        await sink.play()
        assert await probe.wait_for_frame_progress(sink, stream, 0.2)


class TestVisibility:

    @pytest.mark.asyncio
    async def test_hidden_sink_proceeds_after_timeout(self, fast_timings):
        probe = RenderHealthProbe(timings=fast_timings, visibility=lambda: False)
        sink = FakeVideoSink(visible=False)
        loop = asyncio.get_running_loop()
        started = loop.time()
        await probe.wait_for_sink_visible(sink, 0.1, "test")
        assert loop.time() - started >= 0.09


def test_render_timings_from_config(tmp_path):
    manager = ConfigManager(overrides_dir=tmp_path / "overrides", project_root=tmp_path)
    config = {
        "render.frame_timeout_ms": "1000",
        "render.signals.frame_callback": "false",
        "render.signals.media_clock_epsilon_s": "0.05",
    }
    timings = RenderTimings.from_config(config, manager)
    assert timings.frame_timeout_ms == 1000
    assert timings.play_timeout_ms == 4200
    assert timings.signals.frame_callback is False
    assert timings.signals.media_clock is True
    assert timings.signals.media_clock_epsilon_s == pytest.approx(0.05)
