"""Key/value configuration files with per-user overrides."""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, TypeVar

import aiofiles

from .logging_utils import get_module_logger
from .paths import PROJECT_ROOT, USER_CONFIG_OVERRIDES_DIR

logger = get_module_logger("ConfigManager")

D = TypeVar("D")

_TRUE_VALUES = ("true", "1", "yes", "on")


class ConfigManager:
    """Reads ``key = value`` files, layering a user override file on top."""

    def __init__(self, overrides_dir: Path = USER_CONFIG_OVERRIDES_DIR, project_root: Path = PROJECT_ROOT):
        self._overrides_dir = overrides_dir
        self._project_root = project_root.resolve()

    # ------------------------------------------------------------------
    # Internal helpers

    def _parse_config_lines(self, lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith('#'):
                continue
            if '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()

            if '#' in value:
                value = value.split('#')[0].strip()

            if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                value = value[1:-1]

            config[key] = value

        return config

    def _resolve_override_path(self, config_path: Path) -> Path:
        try:
            rel_path = config_path.resolve().relative_to(self._project_root)
        except ValueError:
            digest = hashlib.sha1(str(config_path).encode('utf-8')).hexdigest()[:10]
            safe_name = re.sub(r'[^a-zA-Z0-9._-]+', '_', config_path.stem or 'config')
            rel_path = Path('external') / f"{safe_name}_{digest}{config_path.suffix or '.txt'}"
        return self._overrides_dir / rel_path

    def _load_override_sync(self, config_path: Path) -> Dict[str, str]:
        override_path = self._resolve_override_path(config_path)
        if not override_path.exists():
            return {}

        try:
            with open(override_path, 'r', encoding='utf-8') as fh:
                return self._parse_config_lines(fh)
        except OSError as exc:
            logger.warning("Failed to read override config %s: %s", override_path, exc)
            return {}

    # ------------------------------------------------------------------
    # Reading

    def read_config(self, config_path: Path) -> Dict[str, str]:
        """Read ``config_path`` plus overrides; missing files yield ``{}``."""
        config: Dict[str, str] = {}

        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config = self._parse_config_lines(f)
            except OSError as e:
                logger.error("Failed to read config %s: %s", config_path, e)

        overrides = self._load_override_sync(config_path)
        if overrides:
            config.update(overrides)

        return config

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        """Async version for use in async contexts."""
        config: Dict[str, str] = {}

        if await asyncio.to_thread(config_path.exists):
            try:
                async with aiofiles.open(config_path, 'r', encoding='utf-8') as f:
                    lines = await f.readlines()
                config = self._parse_config_lines(lines)
            except OSError as e:
                logger.error("Failed to read config %s: %s", config_path, e)

        overrides = await asyncio.to_thread(self._load_override_sync, config_path)
        if overrides:
            config.update(overrides)

        return config

    # ------------------------------------------------------------------
    # Typed access

    def get_bool(self, config: Dict[str, str], key: str, default: bool = False) -> bool:
        if key not in config:
            return default
        return config[key].lower() in _TRUE_VALUES

    def get_int(self, config: Dict[str, str], key: str, default: int = 0) -> int:
        if key not in config:
            return default

        try:
            return int(config[key])
        except ValueError:
            logger.warning("Invalid int value for %s: %s, using default %d", key, config[key], default)
            return default

    def get_float(self, config: Dict[str, str], key: str, default: float = 0.0) -> float:
        if key not in config:
            return default

        try:
            return float(config[key])
        except ValueError:
            logger.warning("Invalid float value for %s: %s, using default %f", key, config[key], default)
            return default

    def get_str(self, config: Dict[str, str], key: str, default: str = "") -> str:
        return config.get(key, default)

    def get_list(self, config: Dict[str, str], key: str, default: Optional[list[str]] = None) -> list[str]:
        """Comma separated values; blank entries dropped."""
        if key not in config:
            return list(default or [])
        return [item.strip() for item in config[key].split(',') if item.strip()]

    def apply_to_dataclass(self, config: Dict[str, str], instance: D, *, prefix: str = "") -> D:
        """Return a copy of ``instance`` with fields overridden from ``config``.

        Keys are ``<prefix><field name>``. Field types decide the getter;
        nested dataclass fields and unknown keys are left untouched.
        """
        updates: Dict[str, Any] = {}
        for field in dataclasses.fields(instance):
            key = f"{prefix}{field.name}"
            if key not in config:
                continue
            current = getattr(instance, field.name)
            if isinstance(current, bool):
                updates[field.name] = self.get_bool(config, key, current)
            elif isinstance(current, int):
                updates[field.name] = self.get_int(config, key, current)
            elif isinstance(current, float):
                updates[field.name] = self.get_float(config, key, current)
            elif isinstance(current, str):
                updates[field.name] = self.get_str(config, key, current)
        if not updates:
            return instance
        logger.debug("Config overrides applied", fields=updates)
        return dataclasses.replace(instance, **updates)


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


__all__ = ["ConfigManager", "get_config_manager"]
