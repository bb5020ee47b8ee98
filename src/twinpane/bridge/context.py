"""ContextBridge: the one mediated channel between extensions and host state.

The host constructs a single ``ContextBridge``, wires its panes and optional
UI delegates, and the runtime hands every extension an ``ExtensionContext``:
a view over the bridge bound to that extension's id, so config, logging and
registrations are attributed to their owner.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Awaitable, Callable
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from twinpane.guard import CallResult, call_async, call_sync

from .menus import KeyboardShortcut, MenuEntry, MenuItem, normalize_combo
from .panes import Pane, PaneState
from .store import ConfigStore

T = TypeVar("T")

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, str], Awaitable[None]]
ConfirmationHandler = Callable[[str, str], Awaitable[bool]]
InputHandler = Callable[[str, str, str], Awaitable["str | None"]]

SIDES = ("left", "right")


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def default_data_root() -> Path:
    return Path.home() / ".twinpane" / "data"


def _safe_dir_name(extension_id: str) -> str:
    name = re.sub(r"[^\w.@-]", "_", extension_id.strip())
    if not name or set(name) == {"."}:
        raise ValueError(f"invalid extension id for a data directory: {extension_id!r}")
    return name


class ContextBridge:
    """Host-side state shared by all extensions for the life of the process."""

    def __init__(
        self,
        left: Pane | None = None,
        right: Pane | None = None,
        data_root: Path | None = None,
    ):
        self.left: Pane = left if left is not None else PaneState()
        self.right: Pane = right if right is not None else PaneState()
        self.data_root = data_root or default_data_root()
        self.active_side = "left"
        self.config = ConfigStore()
        self._lock = threading.Lock()
        self._menu_items: list[MenuItem] = []
        self._shortcuts: list[KeyboardShortcut] = []
        self._menu_listeners: list[Callable[[MenuItem], None]] = []
        self._shortcut_listeners: list[Callable[[KeyboardShortcut], None]] = []
        self._contexts: dict[str, ExtensionContext] = {}
        self._show_message: MessageHandler | None = None
        self._show_confirmation: ConfirmationHandler | None = None
        self._show_input: InputHandler | None = None

    def context_for(self, extension_id: str) -> ExtensionContext:
        with self._lock:
            ctx = self._contexts.get(extension_id)
            if ctx is None:
                ctx = self._contexts[extension_id] = ExtensionContext(self, extension_id)
            return ctx

    # ── Panes ───────────────────────────────────────────────────────

    def pane(self, side: str) -> Pane:
        if side == "active":
            side = self.active_side
        if side == "left":
            return self.left
        if side == "right":
            return self.right
        raise ValueError(f"unknown pane: {side!r}")

    def set_active(self, side: str) -> None:
        if side not in SIDES:
            raise ValueError(f"unknown pane: {side!r}")
        self.active_side = side

    @property
    def active(self) -> Pane:
        return self.pane("active")

    def selected_paths(self) -> tuple[str, ...]:
        return tuple(self.active.selection())

    def navigate(self, path: str, side: str = "active") -> None:
        self.pane(side).navigate(path)

    def refresh(self, side: str = "active") -> None:
        if side == "both":
            self.left.refresh()
            self.right.refresh()
        else:
            self.pane(side).refresh()

    # ── UI delegates ────────────────────────────────────────────────

    def set_message_handler(self, handler: MessageHandler | None) -> None:
        self._show_message = handler

    def set_confirmation_handler(self, handler: ConfirmationHandler | None) -> None:
        self._show_confirmation = handler

    def set_input_handler(self, handler: InputHandler | None) -> None:
        self._show_input = handler

    async def show_message(self, title: str, message: str, source: str = "host") -> None:
        if self._show_message is None:
            logger.info("[%s] %s: %s", source, title, message)
            return
        try:
            await self._show_message(title, message)
        except Exception as e:
            logger.warning("message handler failed (%s); dropped [%s] %s", e, title, message)

    async def show_confirmation(self, title: str, message: str) -> bool:
        if self._show_confirmation is None:
            return False
        try:
            return bool(await self._show_confirmation(title, message))
        except Exception as e:
            logger.warning("confirmation handler failed: %s", e)
            return False

    async def show_input(self, title: str, prompt: str, default: str = "") -> str | None:
        if self._show_input is None:
            return None
        try:
            return await self._show_input(title, prompt, default)
        except Exception as e:
            logger.warning("input handler failed: %s", e)
            return None

    # ── Logging, config, data ───────────────────────────────────────

    def log(self, level: LogLevel | str, message: str, source: str) -> None:
        lvl = _LEVELS.get(LogLevel(level), logging.INFO)
        logging.getLogger(f"twinpane.extensions.{source}").log(lvl, message)

    def data_directory(self, extension_id: str) -> Path:
        path = self.data_root / _safe_dir_name(extension_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    # ── Registrations ───────────────────────────────────────────────

    @property
    def menu_items(self) -> tuple[MenuItem, ...]:
        return tuple(self._menu_items)

    @property
    def shortcuts(self) -> tuple[KeyboardShortcut, ...]:
        return tuple(self._shortcuts)

    def on_menu_item_registered(self, listener: Callable[[MenuItem], None]) -> None:
        self._menu_listeners.append(listener)

    def on_shortcut_registered(self, listener: Callable[[KeyboardShortcut], None]) -> None:
        self._shortcut_listeners.append(listener)

    def register_menu_item(self, item: MenuItem) -> None:
        with self._lock:
            self._menu_items.append(item)
        for listener in list(self._menu_listeners):
            try:
                listener(item)
            except Exception as e:
                logger.warning("menu listener failed for %s: %s", item.id, e)

    def register_shortcut(self, shortcut: KeyboardShortcut) -> None:
        with self._lock:
            self._shortcuts.append(shortcut)
        for listener in list(self._shortcut_listeners):
            try:
                listener(shortcut)
            except Exception as e:
                logger.warning("shortcut listener failed for %s: %s", shortcut.combo, e)

    def shortcut_for(self, combo: str) -> KeyboardShortcut | None:
        """Latest shortcut registered for *combo* (any modifier order/case)."""
        wanted = normalize_combo(combo)
        for shortcut in reversed(self._shortcuts):
            if shortcut.combo == wanted:
                return shortcut
        return None

    def menu_entries(
        self,
        parent_menu_id: str = "",
        include: Callable[[MenuItem], bool] | None = None,
    ) -> list[MenuEntry]:
        """Visible items under *parent_menu_id*, sorted by order, predicates evaluated.

        *include* lets the host drop items, e.g. those whose owner is disabled.
        A predicate that raises hides (visibility) or disables (enablement) its item.
        """
        entries = []
        for item in sorted(self._menu_items, key=lambda i: i.order):
            if item.parent_menu_id != parent_menu_id:
                continue
            if include is not None and not include(item):
                continue
            ctx = self.context_for(item.owner_id)
            if item.is_visible is not None:
                if not call_sync(item.owner_id, "menu visibility", item.is_visible, ctx).unwrap_or(
                    False
                ):
                    continue
            enabled = True
            if item.is_enabled is not None:
                enabled = bool(
                    call_sync(item.owner_id, "menu enablement", item.is_enabled, ctx).unwrap_or(
                        False
                    )
                )
            entries.append(MenuEntry(item, enabled))
        return entries

    async def invoke_menu_item(self, item_id: str) -> CallResult[Any]:
        item = next((i for i in reversed(self._menu_items) if i.id == item_id), None)
        if item is None:
            return CallResult(error=LookupError(f"no menu item '{item_id}'"))
        if item.action is None:
            return CallResult()
        return await call_async(item.owner_id, f"menu action {item_id}", item.action,
                                self.context_for(item.owner_id))

    def clear(self) -> None:
        """Drop all session state; used on full runtime shutdown."""
        with self._lock:
            self._menu_items.clear()
            self._shortcuts.clear()
            self._contexts.clear()
        self.config.clear()


class ExtensionContext:
    """What an extension sees: the bridge, scoped to its own id."""

    def __init__(self, bridge: ContextBridge, extension_id: str):
        self._bridge = bridge
        self.extension_id = extension_id

    @property
    def left_path(self) -> str:
        return self._bridge.left.path

    @property
    def right_path(self) -> str:
        return self._bridge.right.path

    @property
    def active_path(self) -> str:
        return self._bridge.active.path

    @property
    def selected_paths(self) -> tuple[str, ...]:
        return self._bridge.selected_paths()

    def navigate_to(self, path: str) -> None:
        self._bridge.navigate(path, "active")

    def navigate_left_to(self, path: str) -> None:
        self._bridge.navigate(path, "left")

    def navigate_right_to(self, path: str) -> None:
        self._bridge.navigate(path, "right")

    def refresh_active_pane(self) -> None:
        self._bridge.refresh("active")

    def refresh_all_panes(self) -> None:
        self._bridge.refresh("both")

    async def show_message(self, title: str, message: str) -> None:
        await self._bridge.show_message(title, message, source=self.extension_id)

    async def show_confirmation(self, title: str, message: str) -> bool:
        return await self._bridge.show_confirmation(title, message)

    async def show_input(self, title: str, prompt: str, default: str = "") -> str | None:
        return await self._bridge.show_input(title, prompt, default)

    def log(self, level: LogLevel | str, message: str) -> None:
        self._bridge.log(level, message, self.extension_id)

    def get_config(self, key: str, type_: type[T] | None = None, default: Any = None) -> Any:
        return self._bridge.config.get(self.extension_id, key, type_, default)

    def set_config(self, key: str, value: Any) -> None:
        self._bridge.config.set(self.extension_id, key, value)

    def register_menu_item(self, item: MenuItem) -> None:
        self._bridge.register_menu_item(_owned(item, self.extension_id))

    def register_keyboard_shortcut(self, shortcut: KeyboardShortcut) -> None:
        self._bridge.register_shortcut(_owned(shortcut, self.extension_id))

    def data_directory(self, extension_id: str | None = None) -> Path:
        return self._bridge.data_directory(extension_id or self.extension_id)


_Owned = TypeVar("_Owned", MenuItem, KeyboardShortcut)


def _owned(obj: _Owned, owner_id: str) -> _Owned:
    if isinstance(obj, MenuItem):
        return replace(
            obj,
            owner_id=owner_id,
            sub_items=tuple(_owned(sub, owner_id) for sub in obj.sub_items),
        )
    return replace(obj, owner_id=owner_id)
