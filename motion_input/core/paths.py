"""Centralized path constants for the motion input pipeline."""

from __future__ import annotations

import os
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

# Configuration
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# Logging
LOGS_DIR = PROJECT_ROOT / "logs"
MOTION_LOG_FILE = LOGS_DIR / "motion_input.log"

# User-specific state (allows running from read-only project directories)
_USER_STATE_ENV = os.environ.get("MOTION_INPUT_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".motion_input")
USER_CONFIG_OVERRIDES_DIR = USER_STATE_DIR / "config_overrides"
MODEL_CACHE_DIR = USER_STATE_DIR / "models"

# Bundled landmark models, checked before any remote asset source.
BUNDLED_MODELS_DIR = PACKAGE_ROOT / "motion" / "models"


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""

    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    USER_STATE_DIR.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_OVERRIDES_DIR.mkdir(parents=True, exist_ok=True)
    MODEL_CACHE_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
    "CONFIG_PATH",
    "LOGS_DIR",
    "MOTION_LOG_FILE",
    "USER_STATE_DIR",
    "USER_CONFIG_OVERRIDES_DIR",
    "MODEL_CACHE_DIR",
    "BUNDLED_MODELS_DIR",
    "ensure_directories",
]
