"""Configuration: env, paths, extension preferences."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PROJECT_DIR_NAME = ".twinpane"


@dataclass
class Config:
    cwd: Path = field(default_factory=Path.cwd)
    global_dir: Path = field(default_factory=lambda: Path.home() / ".twinpane")
    project_dir: Path | None = None  # explicit override; None = auto-detect from cwd
    extensions_dir: Path | None = None
    data_dir: Path | None = None
    log_level: str = "WARNING"
    verbose: bool = False
    enabled_extensions: dict[str, bool] = field(default_factory=dict)

    @property
    def project_dirs(self) -> list[Path]:
        if self.project_dir is not None:
            return [self.project_dir] if self.project_dir.is_dir() else []
        d = self.cwd / PROJECT_DIR_NAME
        return [d] if d.is_dir() else []

    @property
    def primary_project_dir(self) -> Path:
        if self.project_dir is not None:
            return self.project_dir
        return self.cwd / PROJECT_DIR_NAME

    @property
    def resolved_extensions_dir(self) -> Path:
        return self.extensions_dir or self.global_dir / "extensions"

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or self.global_dir / "data"


def _resolve(path_value: str, base: Path) -> Path:
    p = Path(path_value).expanduser()
    return p if p.is_absolute() else (base / p)


def _apply_settings(config: Config, path: Path) -> None:
    """Apply a single settings.json file to config."""
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("ignoring unreadable settings %s: %s", path, e)
        return
    if not isinstance(data, dict):
        return
    base = path.parent
    if isinstance(data.get("extensionsDir"), str):
        config.extensions_dir = _resolve(data["extensionsDir"], base)
    if isinstance(data.get("dataDir"), str):
        config.data_dir = _resolve(data["dataDir"], base)
    if isinstance(data.get("logLevel"), str):
        config.log_level = data["logLevel"].upper()
    if "enabledExtensions" in data and isinstance(data["enabledExtensions"], dict):
        config.enabled_extensions.update(
            {k: v for k, v in data["enabledExtensions"].items() if isinstance(v, bool)}
        )


def load_config(
    extensions_dir: Path | None = None,
    verbose: bool = False,
    cwd: Path | None = None,
) -> Config:
    """Load config with priority: CLI args > env > .env > settings.json > defaults."""
    load_dotenv()

    config = Config()
    if cwd is not None:
        config.cwd = cwd
    config.verbose = verbose

    _apply_settings(config, config.global_dir / "settings.json")

    for pdir in config.project_dirs:
        _apply_settings(config, pdir / "settings.json")

    if env_dir := os.getenv("TWINPANE_EXTENSIONS_DIR"):
        config.extensions_dir = Path(env_dir).expanduser()
    if env_data := os.getenv("TWINPANE_DATA_DIR"):
        config.data_dir = Path(env_data).expanduser()
    if env_level := os.getenv("TWINPANE_LOG_LEVEL"):
        config.log_level = env_level.upper()

    if extensions_dir:
        config.extensions_dir = extensions_dir
    if verbose:
        config.log_level = "DEBUG"

    return config
