"""Root logging setup for the motion input CLI.

Handler limits and the list of quietened third-party loggers come from the
``log.*`` keys in config.txt; level, console and file path come from the
command line.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config_manager import ConfigManager, get_config_manager

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


@dataclass(frozen=True)
class LogSettings:
    level: str = "info"
    console: bool = True
    path: Optional[Path] = None
    max_bytes: int = 500 * 1024
    backup_count: int = 2
    # Capped at WARNING; MediaPipe's absl and asyncio debug output bury the camera logs.
    quiet_loggers: Tuple[str, ...] = ("aiohttp.access", "asyncio", "absl")

    @classmethod
    def from_config(cls, config: Dict[str, str], manager: Optional[ConfigManager] = None) -> "LogSettings":
        manager = manager or get_config_manager()
        settings = manager.apply_to_dataclass(config, cls(), prefix="log.")
        quiet = manager.get_list(config, "log.quiet_loggers")
        if quiet:
            settings = replace(settings, quiet_loggers=tuple(quiet))
        return settings


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level '{level}'")
    return number


def configure_logging(settings: LogSettings) -> None:
    """Replace the root handlers with the console and rotating-file handlers in ``settings``."""
    level = _level_number(settings.level)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = []
    if settings.console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if settings.path is not None:
        settings.path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                settings.path,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
                encoding="utf-8",
            )
        )
    if not handlers:
        handlers.append(logging.NullHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in settings.quiet_loggers:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


__all__ = ["LOG_FORMAT", "LogSettings", "configure_logging"]
