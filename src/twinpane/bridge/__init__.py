"""Bridge: panes, UI delegates, config, menus and shortcuts shared with extensions."""

from .context import ContextBridge, ExtensionContext, LogLevel, default_data_root
from .menus import KeyboardShortcut, MenuEntry, MenuItem, normalize_combo
from .panes import Pane, PaneState
from .store import ConfigStore

__all__ = [
    "ConfigStore",
    "ContextBridge",
    "ExtensionContext",
    "KeyboardShortcut",
    "LogLevel",
    "MenuEntry",
    "MenuItem",
    "Pane",
    "PaneState",
    "default_data_root",
    "normalize_combo",
]
