"""Exceptions raised while discovering and loading extensions."""

from __future__ import annotations

from pathlib import Path


class TwinpaneError(Exception):
    """Base class for all twinpane errors."""


class ManifestError(TwinpaneError):
    """Raised when an extension.json file cannot be used."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"invalid manifest {path}: {reason}")


class ExtensionLoadError(TwinpaneError):
    """Raised when a binary cannot be imported or exposes no extension type."""

    def __init__(self, source: Path | str, reason: str):
        self.source = str(source)
        self.reason = reason
        super().__init__(f"cannot load {source}: {reason}")


class IsolationError(TwinpaneError):
    """Raised when an isolation boundary is used after release."""
