"""Model asset resolution from local directories or HTTP(S) mirrors."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Sequence, Union
from urllib.parse import urljoin

import aiofiles
import aiohttp

from motion_input.core.logging_utils import LoggerLike, ensure_structured_logger
from motion_input.core.paths import BUNDLED_MODELS_DIR, MODEL_CACHE_DIR

DEFAULT_MODEL_URL_BASE = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/latest/"

FETCH_TIMEOUT_S = 15.0
FETCH_RETRIES = 2
FETCH_BACKOFF_S = 0.5
CHUNK_SIZE = 64 * 1024


class AssetFetchError(RuntimeError):
    """A model asset could not be found or downloaded."""


AssetSourceLike = Union[str, Path]


def is_url(source: AssetSourceLike) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def default_asset_sources() -> list[AssetSourceLike]:
    return [BUNDLED_MODELS_DIR, MODEL_CACHE_DIR, DEFAULT_MODEL_URL_BASE]


class AssetSource:
    """Resolves asset file names against one directory or base URL."""

    def __init__(
        self,
        source: AssetSourceLike,
        *,
        cache_dir: Path = MODEL_CACHE_DIR,
        timeout_s: float = FETCH_TIMEOUT_S,
        retries: int = FETCH_RETRIES,
        backoff_s: float = FETCH_BACKOFF_S,
        logger: LoggerLike = None,
    ) -> None:
        self.source = source
        self.cache_dir = Path(cache_dir)
        self.timeout_s = timeout_s
        self.retries = retries
        self.backoff_s = backoff_s
        self._logger = ensure_structured_logger(logger, fallback_name="AssetSource")

    def __repr__(self) -> str:
        return f"AssetSource({self.source!s})"

    @property
    def is_remote(self) -> bool:
        return is_url(self.source)

    async def locate_file(self, name: str) -> Path:
        if not self.is_remote:
            path = Path(self.source).expanduser() / name
            if not path.is_file():
                raise AssetFetchError(f"{name} not found in {self.source}")
            return path

        cached = self.cache_dir / name
        if cached.is_file() and cached.stat().st_size > 0:
            return cached
        base = str(self.source)
        url = urljoin(base if base.endswith("/") else f"{base}/", name)
        await self._download(url, cached)
        return cached

    async def _download(self, url: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        last_error: Optional[BaseException] = None

        for attempt in range(self.retries + 1):
            try:
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.get(url) as response:
                        if response.status != 200:
                            raise AssetFetchError(f"GET {url} returned HTTP {response.status}")
                        async with aiofiles.open(partial, "wb") as handle:
                            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                                await handle.write(chunk)
                partial.replace(target)
                self._logger.info("Downloaded model asset", fields={"url": url, "path": str(target)})
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, AssetFetchError, OSError) as exc:
                last_error = exc
                partial.unlink(missing_ok=True)
                if attempt < self.retries:
                    delay = self.backoff_s * (attempt + 1)
                    self._logger.warning(
                        "Asset download failed, retrying",
                        fields={"url": url, "attempt": attempt + 1, "delay_s": delay, "error": str(exc)},
                    )
                    await asyncio.sleep(delay)

        raise AssetFetchError(f"Could not download {url}: {last_error}") from last_error


class AssetSourceRotation:
    """Cycles through asset sources; the processor advances it after each failed init."""

    def __init__(self, sources: Optional[Sequence[AssetSourceLike]] = None, *, logger: LoggerLike = None, **source_kwargs) -> None:
        entries = list(sources) if sources else default_asset_sources()
        self._logger = ensure_structured_logger(logger, fallback_name="AssetSourceRotation")
        self._sources = [AssetSource(entry, logger=self._logger, **source_kwargs) for entry in entries]
        self._index = 0

    def __len__(self) -> int:
        return len(self._sources)

    @property
    def current(self) -> AssetSource:
        return self._sources[self._index]

    def advance(self) -> AssetSource:
        self._index = (self._index + 1) % len(self._sources)
        self._logger.info("Switching model asset source", fields={"source": str(self.current.source)})
        return self.current


__all__ = [
    "AssetFetchError",
    "AssetSource",
    "AssetSourceRotation",
    "DEFAULT_MODEL_URL_BASE",
    "default_asset_sources",
    "is_url",
]
