"""Capability contracts: Extension base plus the five host-defined capabilities.

An extension subclasses ``Extension`` (directly or through one or more of the
capability classes below). The registry classifies a live instance with plain
``isinstance`` checks against ``CAPABILITIES``.
"""

from __future__ import annotations

import mimetypes
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO

if TYPE_CHECKING:
    from twinpane.bridge import ExtensionContext

Progress = Callable[[float], None]


class Extension(ABC):
    """Base contract every extension satisfies: identity + initialize/shutdown."""

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "0.0.0"
    author: str = ""

    @abstractmethod
    async def initialize(self, context: ExtensionContext) -> None: ...

    @abstractmethod
    async def shutdown(self) -> None: ...


# ── Value types exchanged with the host ─────────────────────────────


class ColumnAlignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


@dataclass(frozen=True)
class ExtensionCommand:
    id: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = ""
    shortcut: str = ""


@dataclass(frozen=True)
class ExtensionColumn:
    id: str
    name: str
    description: str = ""
    default_width: int = 100
    alignment: ColumnAlignment = ColumnAlignment.LEFT
    sortable: bool = True


@dataclass(frozen=True)
class FileItem:
    """An entry returned by a filesystem provider listing."""

    name: str
    full_path: str
    is_directory: bool = False
    size: int = 0
    modified: datetime | None = None
    created: datetime | None = None
    extension: str = ""
    attributes: str = ""
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArchiveEntry:
    name: str
    full_path: str
    is_directory: bool = False
    size: int = 0
    compressed_size: int = 0
    modified: datetime | None = None
    method: str = ""
    crc32: int | None = None


# ── Matching helpers ────────────────────────────────────────────────

WILDCARD = "*"


def normalize_extension(ext: str) -> str:
    """Lowercase and dot-prefix a declared extension; '*' and '.*' mean any."""
    ext = ext.strip().lower()
    if ext in ("*", ".*"):
        return WILDCARD
    return ext if ext.startswith(".") else f".{ext}"


def extension_specificity(path: str, declared: Iterable[str]) -> int | None:
    """Length of the longest declared extension matching *path*.

    Returns 0 for a wildcard-only match and None when nothing matches.
    """
    name = path.replace("\\", "/").rsplit("/", 1)[-1].lower()
    best: int | None = None
    for raw in declared:
        ext = normalize_extension(raw)
        if ext == WILDCARD:
            score = 0
        elif name.endswith(ext) and len(name) > len(ext):
            score = len(ext)
        else:
            continue
        if best is None or score > best:
            best = score
    return best


def mime_specificity(path: str, declared: Iterable[str]) -> int | None:
    """1 for an exact MIME match, 0 for a family/wildcard match, None otherwise."""
    guessed, _ = mimetypes.guess_type(path)
    best: int | None = None
    for raw in declared:
        mime = raw.strip().lower()
        if mime in ("*", "*/*"):
            score = 0
        elif guessed is None:
            continue
        elif mime == guessed.lower():
            score = 1
        elif mime.endswith("/*") and guessed.lower().startswith(mime[:-1]):
            score = 0
        else:
            continue
        if best is None or score > best:
            best = score
    return best


# ── Capabilities ────────────────────────────────────────────────────


class CommandProvider(Extension):
    """Exposes named actions and executes them by id."""

    @abstractmethod
    def get_commands(self) -> Sequence[ExtensionCommand]: ...

    @abstractmethod
    async def execute_command(self, command_id: str, context: ExtensionContext) -> Any: ...


class ColumnProvider(Extension):
    """Exposes extra file-list columns with an async per-path value getter."""

    @abstractmethod
    def get_columns(self) -> Sequence[ExtensionColumn]: ...

    @abstractmethod
    async def get_value(self, column_id: str, path: str) -> Any: ...


class FileSystemProvider(Extension):
    """Serves paths under a URI-style prefix such as 'ftp://'."""

    prefix: str = ""

    @abstractmethod
    async def list_directory(self, path: str) -> Sequence[FileItem]: ...

    @abstractmethod
    async def open_read(self, path: str) -> BinaryIO: ...

    @abstractmethod
    async def open_write(self, path: str) -> BinaryIO: ...

    @abstractmethod
    async def exists(self, path: str) -> bool: ...

    @abstractmethod
    async def copy(self, source: str, destination: str, progress: Progress | None = None) -> None: ...

    @abstractmethod
    async def move(self, source: str, destination: str) -> None: ...

    @abstractmethod
    async def delete(self, path: str, recursive: bool = False) -> None: ...

    @abstractmethod
    async def mkdir(self, path: str) -> None: ...


class Viewer(Extension):
    """Renders a viewing surface for files it supports."""

    supported_extensions: Sequence[str] = ()
    supported_mime_types: Sequence[str] = ()
    priority: int = 0

    def can_view(self, path: str) -> bool:
        return (
            extension_specificity(path, self.supported_extensions) is not None
            or mime_specificity(path, self.supported_mime_types) is not None
        )

    @abstractmethod
    async def create_viewer(self, path: str) -> Any: ...


class ArchiveHandler(Extension):
    """Lists, extracts and creates archives of the declared extensions."""

    supported_extensions: Sequence[str] = ()

    def can_handle(self, path: str) -> bool:
        return extension_specificity(path, self.supported_extensions) is not None

    @abstractmethod
    async def list_contents(self, archive_path: str) -> Sequence[ArchiveEntry]: ...

    @abstractmethod
    async def extract(
        self,
        archive_path: str,
        destination: str,
        entries: Sequence[str] | None = None,
        progress: Progress | None = None,
    ) -> None: ...

    @abstractmethod
    async def create(
        self, archive_path: str, sources: Sequence[str], progress: Progress | None = None
    ) -> None: ...


CAPABILITIES: tuple[type[Extension], ...] = (
    CommandProvider,
    ColumnProvider,
    FileSystemProvider,
    Viewer,
    ArchiveHandler,
)


def capabilities_of(instance: object) -> tuple[type[Extension], ...]:
    return tuple(c for c in CAPABILITIES if isinstance(instance, c))
