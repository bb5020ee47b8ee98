"""ExtensionRuntime: owns the loaded records, the capability index and their lifecycle.

A runtime is an ordinary object; tests and hosts construct as many as they
like. Every mutating operation is a coroutine serialized by one asyncio.Lock.
Nothing raised by extension code escapes the public methods: failures become
faults on the record or in ``faults``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from twinpane.bridge import ContextBridge
from twinpane.exceptions import ExtensionLoadError, TwinpaneError
from twinpane.guard import CallResult, call_async, call_sync

from .contracts import ColumnProvider, CommandProvider, Extension
from .discovery import ExtensionCandidate, discover_extensions
from .models import (
    Descriptor,
    ExtensionFault,
    ExtensionState,
    ExtensionStatus,
    FaultKind,
    LoadedExtension,
)
from .preferences import is_extension_enabled
from .registry import CapabilityRegistry

if TYPE_CHECKING:
    from twinpane.core.config import Config

logger = logging.getLogger(__name__)


def _select_entry_type(
    types: list[type[Extension]], candidate: ExtensionCandidate
) -> list[type[Extension]]:
    manifest = candidate.manifest
    if manifest is None:
        return types
    if manifest.entry_type:
        wanted = manifest.entry_type.rsplit(".", 1)[-1].lower()
        for t in types:
            if t.__name__.lower() == wanted:
                return [t]
        raise ExtensionLoadError(
            candidate.binary, f"entry type '{manifest.entry_type}' not found"
        )
    if len(types) > 1:
        names = ", ".join(t.__name__ for t in types)
        raise ExtensionLoadError(
            candidate.binary, f"several extension types ({names}); set 'entryType'"
        )
    return types


class ExtensionRuntime:
    """Discovery, loading, lifecycle and capability queries for one extensions root."""

    def __init__(
        self,
        extensions_dir: Path,
        bridge: ContextBridge | None = None,
        preferences: Mapping[str, bool] | None = None,
    ):
        self.extensions_dir = Path(extensions_dir)
        self.bridge = bridge or ContextBridge()
        # Held by reference so preference changes made elsewhere are seen.
        self._preferences: Mapping[str, bool] = preferences if preferences is not None else {}
        self._lock = asyncio.Lock()
        self._records: dict[str, LoadedExtension] = {}
        self._registry = CapabilityRegistry()
        self._faults: list[ExtensionFault] = []

    @classmethod
    def from_config(cls, config: Config, bridge: ContextBridge | None = None) -> ExtensionRuntime:
        bridge = bridge or ContextBridge(data_root=config.resolved_data_dir)
        return cls(config.resolved_extensions_dir, bridge, config.enabled_extensions)

    async def __aenter__(self) -> ExtensionRuntime:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # ── Read side ───────────────────────────────────────────────────

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    @property
    def faults(self) -> tuple[ExtensionFault, ...]:
        """Discovery and load faults from the most recent discovery pass."""
        return tuple(self._faults)

    def get_record(self, extension_id: str) -> LoadedExtension | None:
        return self._records.get(extension_id)

    def list_records(self) -> list[ExtensionStatus]:
        return [r.status() for r in list(self._records.values())]

    # ── Discovery + loading ─────────────────────────────────────────

    async def discover(self) -> list[LoadedExtension]:
        """Run a fresh discovery pass and initialize what it newly loaded.

        Records already loaded are kept as they are. Returns the new records.
        """
        async with self._lock:
            result = await asyncio.to_thread(discover_extensions, self.extensions_dir)
            self._faults = list(result.faults)
            for fault in result.faults:
                logger.warning("%s fault in %s: %s", fault.kind.value, fault.source, fault.summary)

            added: list[LoadedExtension] = []
            for candidate in result.candidates:
                added.extend(self._load_candidate(candidate))

            for record in self._init_order(added):
                if self._wants_enabled(record):
                    await self._initialize(record)
                else:
                    record.state = ExtensionState.DISABLED
                    logger.info("extension %s loaded disabled", record.id)
            return added

    def _load_fault(self, source: str, message: str, error: BaseException | None = None) -> None:
        fault = ExtensionFault(FaultKind.LOAD, source, message, error)
        self._faults.append(fault)
        logger.warning("load fault in %s: %s", source, fault.summary)

    def _already_loaded(self, candidate: ExtensionCandidate) -> bool:
        if candidate.manifest is not None:
            existing = self._records.get(candidate.manifest.id)
            if existing is None:
                return False
            if existing.boundary.binary != candidate.binary:
                self._load_fault(
                    str(candidate.package_dir),
                    f"duplicate extension id '{candidate.manifest.id}' "
                    f"(already loaded from {existing.package_dir})",
                )
            return True
        return any(r.boundary.binary == candidate.binary for r in self._records.values())

    def _load_candidate(self, candidate: ExtensionCandidate) -> list[LoadedExtension]:
        if self._already_loaded(candidate):
            return []
        source = str(candidate.binary if candidate.loose else candidate.package_dir)
        boundary = candidate.create_boundary()
        try:
            types = boundary.extension_types()
            if not types:
                raise ExtensionLoadError(candidate.binary, "no extension type found")
            types = _select_entry_type(types, candidate)
        except (TwinpaneError, OSError) as e:
            self._load_fault(source, "cannot load extension", e)
            boundary.release()
            return []

        added = []
        for ext_type in types:
            with boundary.active():
                res = call_sync(source, f"construct {ext_type.__name__}", ext_type)
            if not res.ok:
                self._load_fault(source, f"constructing {ext_type.__name__} failed", res.error)
                continue
            instance = res.value
            descriptor = Descriptor.resolve(instance, candidate.manifest)
            if not descriptor.id:
                self._load_fault(source, f"{ext_type.__name__} does not report an id")
                continue
            if descriptor.id in self._records:
                self._load_fault(
                    source,
                    f"duplicate extension id '{descriptor.id}' "
                    f"(already loaded from {self._records[descriptor.id].package_dir})",
                )
                continue
            record = LoadedExtension(descriptor, instance, boundary, candidate.package_dir)
            boundary.acquire()
            self._records[record.id] = record
            self._registry.add(record)
            added.append(record)
            logger.debug(
                "loaded %s (%s) from %s", record.id, ", ".join(record.capabilities) or "-", source
            )
        if not added:
            boundary.release()
        return added

    def _wants_enabled(self, record: LoadedExtension) -> bool:
        return is_extension_enabled(self._preferences, record.id, record.descriptor.enabled)

    def _init_order(self, records: list[LoadedExtension]) -> list[LoadedExtension]:
        """Dependencies first; otherwise discovery order."""
        by_id = {r.id: r for r in records}
        ordered: list[LoadedExtension] = []
        done: set[str] = set()
        visiting: set[str] = set()

        def visit(record: LoadedExtension, chain: list[str]) -> None:
            if record.id in done:
                return
            if record.id in visiting:
                logger.warning(
                    "dependency cycle %s; using discovery order",
                    " -> ".join([*chain, record.id]),
                )
                return
            visiting.add(record.id)
            for dep in record.descriptor.dependencies:
                if dep in by_id:
                    visit(by_id[dep], [*chain, record.id])
                elif dep not in self._records:
                    logger.warning("extension %s depends on unknown extension %s", record.id, dep)
            visiting.discard(record.id)
            done.add(record.id)
            ordered.append(record)

        for record in records:
            visit(record, [])
        return ordered

    # ── Lifecycle ───────────────────────────────────────────────────

    async def _initialize(self, record: LoadedExtension) -> bool:
        record.state = ExtensionState.INITIALIZING
        ctx = self.bridge.context_for(record.id)
        res = await call_async(record.id, "initialize", record.instance.initialize, ctx)
        if not res.ok:
            record.fault = ExtensionFault(
                FaultKind.INITIALIZATION, record.id, "initialization failed", res.error
            )
            record.is_enabled = False
            record.state = ExtensionState.FAILED
            return False
        record.is_initialized = True
        record.is_enabled = True
        record.fault = None
        record.state = ExtensionState.ENABLED
        logger.info("extension %s enabled", record.id)
        return True

    async def _shutdown(self, record: LoadedExtension) -> ExtensionFault | None:
        res = await call_async(record.id, "shutdown", record.instance.shutdown)
        record.is_enabled = False
        record.state = ExtensionState.DISABLED
        if res.ok:
            return None
        fault = ExtensionFault(FaultKind.SHUTDOWN, record.id, "shutdown failed", res.error)
        # An initialization fault stays the one shown to the user.
        if record.fault is None or record.fault.kind is not FaultKind.INITIALIZATION:
            record.fault = fault
        return fault

    async def enable(self, extension_id: str) -> bool:
        """Enable a loaded record, initializing it first if it never was."""
        async with self._lock:
            record = self._records.get(extension_id)
            if record is None:
                logger.warning("cannot enable unknown extension %s", extension_id)
                return False
            if record.state is ExtensionState.ENABLED:
                return True
            if not record.is_initialized:
                return await self._initialize(record)
            record.is_enabled = True
            record.state = ExtensionState.ENABLED
            logger.info("extension %s re-enabled", extension_id)
            return True

    async def disable(self, extension_id: str) -> bool:
        """Shut a record down and mark it disabled. Failed records get one cleanup shutdown."""
        async with self._lock:
            record = self._records.get(extension_id)
            if record is None:
                logger.warning("cannot disable unknown extension %s", extension_id)
                return False
            if record.state in (ExtensionState.ENABLED, ExtensionState.FAILED):
                await self._shutdown(record)
            record.is_enabled = False
            record.state = ExtensionState.DISABLED
            logger.info("extension %s disabled", extension_id)
            return True

    def _drop(self, record: LoadedExtension) -> None:
        self._records.pop(record.id, None)
        self._registry.remove(record.id)
        record.is_enabled = False
        record.state = ExtensionState.UNLOADED
        record.boundary.release()

    async def unload(self, extension_id: str) -> bool:
        """Shut down if enabled, drop from the index and release the boundary."""
        async with self._lock:
            record = self._records.get(extension_id)
            if record is None:
                return False
            if record.state is ExtensionState.ENABLED:
                await self._shutdown(record)
            self._drop(record)
            logger.info("extension %s unloaded", extension_id)
            return True

    async def _quiesce(self) -> list[ExtensionFault]:
        faults = []
        for record in reversed(list(self._records.values())):
            if record.state is not ExtensionState.ENABLED:
                continue
            fault = await self._shutdown(record)
            if fault is not None:
                faults.append(fault)
        return faults

    async def quiesce_all(self) -> list[ExtensionFault]:
        """Shut down every enabled record, continuing past individual faults."""
        async with self._lock:
            return await self._quiesce()

    async def shutdown(self) -> list[ExtensionFault]:
        """Quiesce, unload everything and clear the bridge."""
        async with self._lock:
            faults = await self._quiesce()
            for record in list(self._records.values()):
                self._drop(record)
            self._registry.clear()
            self.bridge.clear()
            self._faults = []
            return faults

    # ── Guarded passthroughs ────────────────────────────────────────

    def _enabled_as(self, extension_id: str, contract: type) -> Any:
        record = self._records.get(extension_id)
        if record is None or record.state is not ExtensionState.ENABLED:
            raise LookupError(f"extension '{extension_id}' is not enabled")
        if not isinstance(record.instance, contract):
            raise TypeError(f"extension '{extension_id}' is not a {contract.__name__}")
        return record.instance

    async def execute_command(self, extension_id: str, command_id: str) -> CallResult[Any]:
        try:
            provider: CommandProvider = self._enabled_as(extension_id, CommandProvider)
        except (LookupError, TypeError) as e:
            return CallResult(error=e)
        return await call_async(
            extension_id,
            f"command {command_id}",
            provider.execute_command,
            command_id,
            self.bridge.context_for(extension_id),
        )

    async def column_value(self, extension_id: str, column_id: str, path: str) -> CallResult[Any]:
        try:
            provider: ColumnProvider = self._enabled_as(extension_id, ColumnProvider)
        except (LookupError, TypeError) as e:
            return CallResult(error=e)
        return await call_async(
            extension_id, f"column {column_id}", provider.get_value, column_id, path
        )
