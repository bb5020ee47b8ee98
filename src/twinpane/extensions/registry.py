"""CapabilityRegistry: index live extensions by the capability contracts they satisfy.

The index is an immutable snapshot replaced wholesale on every add/remove, so
readers never observe a half-applied mutation and never need the lock.
Queries only see records that are currently enabled.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, TypeVar

from twinpane.guard import call_sync

from .contracts import (
    CAPABILITIES,
    ArchiveHandler,
    Extension,
    FileSystemProvider,
    Viewer,
    capabilities_of,
    extension_specificity,
    mime_specificity,
)
from .models import ExtensionState, LoadedExtension

E = TypeVar("E", bound=Extension)


@dataclass(frozen=True)
class _Entry:
    seq: int
    record: LoadedExtension


_EMPTY: Mapping[type, tuple[_Entry, ...]] = MappingProxyType({})


class CapabilityRegistry:
    """Contract -> ordered live instances. Ties always fall back to registration order."""

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._seq = 0
        self._index: Mapping[type, tuple[_Entry, ...]] = _EMPTY
        self._ids: frozenset[str] = frozenset()

    def __contains__(self, extension_id: object) -> bool:
        return extension_id in self._ids

    # ── Mutation ────────────────────────────────────────────────────

    def add(self, record: LoadedExtension) -> None:
        with self._write_lock:
            if record.id in self._ids:
                return
            self._seq += 1
            entry = _Entry(self._seq, record)
            index = dict(self._index)
            for contract in (Extension, *capabilities_of(record.instance)):
                index[contract] = (*index.get(contract, ()), entry)
            self._index = MappingProxyType(index)
            self._ids = self._ids | {record.id}

    def remove(self, extension_id: str) -> None:
        with self._write_lock:
            if extension_id not in self._ids:
                return
            index = {}
            for contract, entries in self._index.items():
                kept = tuple(e for e in entries if e.record.id != extension_id)
                if kept:
                    index[contract] = kept
            self._index = MappingProxyType(index)
            self._ids = self._ids - {extension_id}

    def clear(self) -> None:
        with self._write_lock:
            self._index = _EMPTY
            self._ids = frozenset()

    # ── Queries ─────────────────────────────────────────────────────

    def _live(self, contract: type) -> list[_Entry]:
        return [
            e for e in self._index.get(contract, ()) if e.record.state is ExtensionState.ENABLED
        ]

    def records(self, contract: type[Extension] = Extension) -> list[LoadedExtension]:
        return [e.record for e in self._live(contract)]

    def providers(self, contract: type[E]) -> list[E]:
        """All enabled instances implementing *contract*, in registration order."""
        return [e.record.instance for e in self._live(contract)]  # type: ignore[misc]

    def first(self, contract: type[E]) -> E | None:
        live = self._live(contract)
        return live[0].record.instance if live else None  # type: ignore[return-value]

    def filesystem_for(self, path: str) -> FileSystemProvider | None:
        """Provider with the longest case-insensitive prefix match for *path*."""
        lowered = path.lower()
        ranked = []
        for e in self._live(FileSystemProvider):
            res = call_sync(e.record.id, "prefix", getattr, e.record.instance, "prefix", "")
            prefix = str(res.value or "")
            if prefix and lowered.startswith(prefix.lower()):
                ranked.append(((len(prefix), -e.seq), e.record.instance))
        return _best(ranked)

    def viewer_for(self, path: str) -> Viewer | None:
        """Highest-priority viewer able to open *path*; specificity breaks ties."""
        ranked = []
        for e in self._live(Viewer):
            viewer = e.record.instance
            if not call_sync(e.record.id, "can_view", viewer.can_view, path).unwrap_or(False):
                continue
            rank = call_sync(e.record.id, "priority", _viewer_rank, viewer, path)
            if rank.ok:
                ranked.append(((*rank.value, -e.seq), viewer))
        return _best(ranked)

    def archive_handler_for(self, path: str) -> ArchiveHandler | None:
        """Handler whose declared extension matches *path* most specifically."""
        ranked = []
        for e in self._live(ArchiveHandler):
            handler = e.record.instance
            declared = call_sync(
                e.record.id, "supported_extensions", getattr, handler, "supported_extensions", ()
            ).unwrap_or(())
            score = extension_specificity(path, declared)
            if score is None:
                continue
            if call_sync(e.record.id, "can_handle", handler.can_handle, path).unwrap_or(False):
                ranked.append(((score, -e.seq), handler))
        return _best(ranked)

    def summary(self) -> dict[str, list[str]]:
        """Contract name -> enabled extension ids, for management display."""
        return {c.__name__: [r.id for r in self.records(c)] for c in CAPABILITIES}


def _best(ranked: list[tuple[tuple[int, ...], Any]]) -> Any:
    if not ranked:
        return None
    return max(ranked, key=lambda r: r[0])[1]


def _viewer_rank(viewer: Viewer, path: str) -> tuple[int, int]:
    ext = extension_specificity(path, viewer.supported_extensions or ())
    mime = mime_specificity(path, viewer.supported_mime_types or ())
    scores = [s for s in (ext, mime) if s is not None]
    return int(viewer.priority or 0), max(scores) if scores else 0
