"""Tests for command-line parsing and exit codes."""

import importlib
from pathlib import Path

import pytest

from motion_input.camera.errors import CameraPipelineError, CameraPipelineErrorCode
from motion_input.core.config_manager import ConfigManager
from motion_input.motion.detector import DetectorInitTimeout, DetectorUnavailable

# The package re-exports the ``main`` coroutine under the module's name.
app_main = importlib.import_module("motion_input.app.main")


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.txt"
    manager = ConfigManager(overrides_dir=tmp_path / "overrides", project_root=tmp_path)
    monkeypatch.setattr(app_main, "CONFIG_PATH", path)
    monkeypatch.setattr(app_main, "get_config_manager", lambda: manager)
    return path


class TestParseArgs:

    def test_defaults_without_config(self, config_file):
        args = app_main.parse_args([])

        assert args.camera_index == 0
        assert args.asset_sources == []
        assert args.permission_timeout_ms == 8000
        assert args.log_level == "info"
        assert args.calibrate_after == 2.0
        assert args.console_output is True
        assert args.config == {}

    def test_config_supplies_defaults(self, config_file):
        config_file.write_text(
            "camera_index = 2\n"
            "asset_sources = /opt/models, https://mirror.local/models/\n"
            "permission_timeout_ms = 12000\n"
            "log_level = debug\n"
            "console_output = false\n"
            "motion.lane_threshold = 0.15\n"
        )

        args = app_main.parse_args([])

        assert args.camera_index == 2
        assert args.asset_sources == ["/opt/models", "https://mirror.local/models/"]
        assert args.permission_timeout_ms == 12000
        assert args.log_level == "debug"
        assert args.console_output is False
        assert args.config["motion.lane_threshold"] == "0.15"

    def test_flags_override_config(self, config_file, tmp_path):
        config_file.write_text("camera_index = 2\nasset_sources = /opt/models\n")

        args = app_main.parse_args([
            "--camera-index", "1",
            "--asset-source", "/a",
            "--asset-source", "https://b/",
            "--log-file", str(tmp_path / "run.log"),
            "--calibrate-after", "-1",
            "--no-console",
        ])

        assert args.camera_index == 1
        assert args.asset_sources == ["/a", "https://b/"]
        assert args.log_file == Path(tmp_path / "run.log")
        assert args.calibrate_after == -1.0
        assert args.console_output is False

    def test_rejects_unknown_log_level(self, config_file):
        with pytest.raises(SystemExit):
            app_main.parse_args(["--log-level", "loud"])


class TestExitCodes:

    @pytest.fixture
    def quiet_main(self, config_file, monkeypatch):
        monkeypatch.setattr(app_main, "ensure_directories", lambda: None)
        monkeypatch.setattr(app_main, "configure_logging", lambda *args, **kwargs: None)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, code",
        [
            (CameraPipelineError(CameraPipelineErrorCode.VIDEO_STREAM_NOT_RENDERING), 2),
            (DetectorUnavailable("no runtime"), 3),
            (DetectorInitTimeout("deadline"), 3),
        ],
    )
    async def test_failures_map_to_exit_codes(self, quiet_main, monkeypatch, error, code):
        async def fail(args):
            raise error

        monkeypatch.setattr(app_main, "run_session", fail)
        assert await app_main.main([]) == code

    @pytest.mark.asyncio
    async def test_clean_stop_returns_zero(self, quiet_main, monkeypatch):
        seen = []

        async def session(args):
            seen.append(args.camera_index)

        monkeypatch.setattr(app_main, "run_session", session)
        assert await app_main.main(["--camera-index", "3"]) == 0
        assert seen == [3]

    @pytest.mark.asyncio
    async def test_log_settings_combine_config_and_flags(self, config_file, monkeypatch, tmp_path):
        config_file.write_text("log.max_bytes = 2048\nlog.backup_count = 4\n")
        captured = []
        monkeypatch.setattr(app_main, "ensure_directories", lambda: None)
        monkeypatch.setattr(app_main, "configure_logging", captured.append)

        async def session(args):
            pass

        monkeypatch.setattr(app_main, "run_session", session)
        log_file = tmp_path / "run.log"
        assert await app_main.main(["--log-level", "debug", "--log-file", str(log_file), "--no-console"]) == 0

        settings = captured[0]
        assert settings.level == "debug"
        assert settings.console is False
        assert settings.path == log_file
        assert settings.max_bytes == 2048
        assert settings.backup_count == 4
