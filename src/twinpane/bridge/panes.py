"""Pane protocol the host implements, plus a plain in-memory PaneState."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@runtime_checkable
class Pane(Protocol):
    """What the bridge needs from one file-list pane of the host."""

    @property
    def path(self) -> str: ...

    def selection(self) -> list[str]: ...

    def navigate(self, path: str) -> None: ...

    def refresh(self) -> None: ...


@dataclass
class PaneState:
    """Headless pane: remembers path, selection, navigation history and refreshes."""

    path: str = ""
    selected: list[str] = field(default_factory=list)
    history: list[str] = field(default_factory=list)
    refresh_count: int = 0

    def selection(self) -> list[str]:
        return list(self.selected)

    def navigate(self, path: str) -> None:
        if self.path:
            self.history.append(self.path)
        self.path = path
        self.selected.clear()

    def refresh(self) -> None:
        self.refresh_count += 1
