"""Menu items and keyboard shortcuts registered by extensions."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import ExtensionContext

MenuAction = Callable[["ExtensionContext"], Awaitable[Any]]
MenuPredicate = Callable[["ExtensionContext"], bool]


@dataclass(frozen=True)
class MenuItem:
    id: str
    text: str
    parent_menu_id: str = ""
    icon: str = ""
    order: int = 0
    action: MenuAction | None = field(default=None, compare=False)
    is_enabled: MenuPredicate | None = field(default=None, compare=False)
    is_visible: MenuPredicate | None = field(default=None, compare=False)
    sub_items: tuple[MenuItem, ...] = ()
    owner_id: str = ""


@dataclass(frozen=True)
class MenuEntry:
    """A menu item as evaluated at menu-build time."""

    item: MenuItem
    enabled: bool


_MODIFIERS = ("ctrl", "alt", "shift")


@dataclass(frozen=True)
class KeyboardShortcut:
    key: str
    command_id: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    owner_id: str = ""

    @property
    def combo(self) -> str:
        parts = [m.capitalize() for m in _MODIFIERS if getattr(self, m)]
        key = self.key.strip()
        parts.append(key.upper() if len(key) == 1 else key.capitalize())
        return "+".join(parts)


def normalize_combo(combo: str) -> str:
    """'shift+ctrl+t' -> 'Ctrl+Shift+T'."""
    tokens = [t.strip() for t in combo.split("+") if t.strip()]
    if not tokens:
        return ""
    mods = {t.lower() for t in tokens[:-1]}
    return KeyboardShortcut(
        key=tokens[-1],
        command_id="",
        ctrl="ctrl" in mods,
        alt="alt" in mods,
        shift="shift" in mods,
    ).combo
