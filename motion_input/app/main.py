import argparse
import asyncio
import dataclasses
import signal
import sys
from pathlib import Path
from typing import Optional

from motion_input.camera import CameraPipelineError, CameraSessionManager, CaptureDeviceError, RenderTimings
from motion_input.camera.backends import OpenCVCaptureDevice, OpenCVVideoSink
from motion_input.core.asyncio_utils import OperationAborted, race_with_timeout, sleep_or_abort
from motion_input.core.config_manager import get_config_manager
from motion_input.core.logging_config import LogSettings, configure_logging
from motion_input.core.logging_utils import get_module_logger
from motion_input.core.paths import CONFIG_PATH, MOTION_LOG_FILE, ensure_directories
from motion_input.core.platform_info import detect_platform_profile
from motion_input.motion import (
    DetectorInitPolicy,
    DetectorInitTimeout,
    DetectorUnavailable,
    MotionKind,
    MotionProcessor,
    MotionTuning,
)
from motion_input.motion.mediapipe_detector import MediaPipePoseProvider

logger = get_module_logger(__name__)

EXIT_CAMERA_FAILED = 2
EXIT_DETECTOR_FAILED = 3
LANE_NAMES = {-1: "left", 0: "center", 1: "right"}


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments with config file defaults."""
    config_manager = get_config_manager()
    config = config_manager.read_config(CONFIG_PATH)

    default_camera_index = config_manager.get_int(config, 'camera_index', default=0)
    default_asset_sources = config_manager.get_list(config, 'asset_sources')
    default_permission_timeout = config_manager.get_int(config, 'permission_timeout_ms', default=8000)
    default_log_level = config_manager.get_str(config, 'log_level', default='info')
    default_calibrate_after = config_manager.get_float(config, 'calibrate_after_s', default=2.0)
    default_console_output = config_manager.get_bool(config, 'console_output', default=True)

    parser = argparse.ArgumentParser(
        description="Motion input - camera pose to lane/jump game events"
    )

    parser.add_argument(
        "--camera-index",
        type=int,
        default=default_camera_index,
        help="OpenCV index of the user-facing camera (default: 0)"
    )

    parser.add_argument(
        "--asset-source",
        dest="asset_sources",
        action="append",
        default=None,
        help="Model directory or base URL; repeat to add fallbacks (default: bundled, cache, MediaPipe CDN)"
    )

    parser.add_argument(
        "--permission-timeout-ms",
        type=int,
        default=default_permission_timeout,
        help="How long one camera open may take before it is abandoned (default: 8000)"
    )

    parser.add_argument(
        "--log-level",
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default=default_log_level,
        help="Logging level (default: info)"
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=MOTION_LOG_FILE,
        help="Rotating log file path"
    )

    parser.add_argument(
        "--calibrate-after",
        type=float,
        default=default_calibrate_after,
        help="Seconds after start to take the current stance as neutral; negative disables (default: 2.0)"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        default=default_console_output,
        help="Log to file only"
    )

    args = parser.parse_args(argv)
    if args.asset_sources is None:
        args.asset_sources = default_asset_sources
    args.config = config
    return args


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler


async def run_session(args: argparse.Namespace) -> None:
    """Acquire the camera, run motion processing and log events until stopped."""
    config = args.config
    platform = detect_platform_profile()
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    device = OpenCVCaptureDevice(facing_devices={"user": args.camera_index})
    sink = OpenCVVideoSink()
    session_manager = CameraSessionManager(
        device,
        platform=platform,
        probe_sink_factory=OpenCVVideoSink,
        timings=RenderTimings.from_config(config),
    )

    processor: Optional[MotionProcessor] = None

    def on_motion(kind: MotionKind) -> None:
        state = processor.state
        if kind is MotionKind.MOVE:
            logger.info("Move", fields={"lane": LANE_NAMES.get(state.lane, state.lane), "body_x": round(state.body_x, 3)})
        else:
            logger.info("Jump", fields={"shoulder_y": round(state.raw_shoulder_y, 3)})

    processor = MotionProcessor(
        MediaPipePoseProvider(),
        tuning=MotionTuning.from_config(config),
        init_policy=DetectorInitPolicy.from_config(config),
        asset_sources=args.asset_sources or None,
        platform=platform,
        on_motion_detected=on_motion,
    )

    stream = None
    try:
        stream = await race_with_timeout(
            session_manager.acquire_renderable_stream(sink, permission_timeout_ms=args.permission_timeout_ms),
            None,
            abort=stop_event,
            on_late_result=lambda late: session_manager.cleanup_session(None, late),
            what="camera acquisition",
        )
        logger.info("Camera ready", fields={"width": sink.video_width, "height": sink.video_height})

        await processor.start(sink, abort=stop_event)

        if args.calibrate_after >= 0:
            await sleep_or_abort(args.calibrate_after, stop_event)
            processor.calibrate()

        await stop_event.wait()
    except OperationAborted:
        logger.info("Interrupted before startup finished")
    finally:
        processor.stop()
        await processor.close()
        session_manager.cleanup_session(sink, stream)


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    ensure_directories()

    log_settings = dataclasses.replace(
        LogSettings.from_config(args.config),
        level=args.log_level,
        console=args.console_output,
        path=args.log_file,
    )
    configure_logging(log_settings)

    logger.info("=" * 60)
    logger.info("Motion input starting")
    logger.info("Camera index: %s", args.camera_index)
    logger.info("Log file: %s", args.log_file)
    logger.info("=" * 60)

    try:
        await run_session(args)
    except (CameraPipelineError, CaptureDeviceError) as exc:
        logger.error("Camera unavailable: %s", exc)
        return EXIT_CAMERA_FAILED
    except (DetectorUnavailable, DetectorInitTimeout) as exc:
        logger.error("Pose detector unavailable: %s", exc)
        return EXIT_DETECTOR_FAILED

    logger.info("Motion input stopped")
    return 0


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1


def cli() -> None:
    raise SystemExit(run(sys.argv[1:]))


if __name__ == "__main__":
    cli()
