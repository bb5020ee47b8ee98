"""Persisted enable/disable preferences in settings.json ('enabledExtensions')."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from twinpane.core.config import Config

SCOPES = ("user", "project")


def _settings_path_for_scope(config: Config, scope: str) -> Path:
    if scope == "user":
        return config.global_dir / "settings.json"
    if scope == "project":
        for pdir in config.project_dirs:
            return pdir / "settings.json"
        return config.primary_project_dir / "settings.json"
    raise ValueError(f"unknown scope: {scope!r} (expected one of {', '.join(SCOPES)})")


def _read_settings(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _write_settings(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n")


def set_enabled_preference(
    config: Config, extension_id: str, value: bool | None, scope: str = "user"
) -> Path:
    """Store (or with None, forget) the preference and mirror it onto *config*."""
    path = _settings_path_for_scope(config, scope)
    data = _read_settings(path)
    enabled = data.get("enabledExtensions", {})
    if not isinstance(enabled, dict):
        enabled = {}
    if value is None:
        enabled.pop(extension_id, None)
        config.enabled_extensions.pop(extension_id, None)
    else:
        enabled[extension_id] = value
        config.enabled_extensions[extension_id] = value
    data["enabledExtensions"] = enabled
    _write_settings(path, data)
    return path


def is_extension_enabled(
    preferences: Mapping[str, bool], extension_id: str, default: bool = True
) -> bool:
    """Persisted choice for *extension_id*, else *default* (the manifest's flag)."""
    pref = preferences.get(extension_id)
    return default if pref is None else bool(pref)
