"""Camera acquisition and pose-driven motion input for lane/jump games."""

from __future__ import annotations

from importlib import metadata
from typing import Optional, Sequence

try:
    __version__ = metadata.version("motion-input")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command-line application; imports the OpenCV/MediaPipe stack on first use."""
    from .app.main import run as run_app

    return run_app(list(argv) if argv is not None else None)


__all__ = ["__version__", "run"]
