"""Top-level package for the Capture Hub application."""

from __future__ import annotations

import asyncio
from importlib import metadata
from typing import Optional, Sequence

from .app.master import main

try:
    __version__ = metadata.version("capture-hub")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> None:
    """Console-script entry point: run the async master and exit with its code."""
    try:
        exit_code = asyncio.run(main(list(argv) if argv is not None else None))
    except KeyboardInterrupt:
        exit_code = 0
    raise SystemExit(exit_code)


__all__ = ["__version__", "main", "run"]
