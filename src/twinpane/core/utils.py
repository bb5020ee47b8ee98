"""Logging setup and path display helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: str = "WARNING", console: Console | None = None) -> None:
    """Route the twinpane logger tree to a RichHandler on stderr."""
    root = logging.getLogger("twinpane")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    try:
        root.setLevel(level.upper())
    except ValueError:
        root.setLevel(logging.WARNING)
        root.warning("unknown log level %r, using WARNING", level)


def short_path(path: Path | str, base: Path | None = None) -> str:
    """Show *path* relative to *base* (default cwd), or with ~ for home."""
    p = Path(path)
    base = base or Path.cwd()
    try:
        return str(p.relative_to(base)) or "."
    except ValueError:
        pass
    try:
        return "~/" + str(p.relative_to(Path.home()))
    except ValueError:
        return str(p)
