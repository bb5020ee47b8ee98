"""Extension data models: manifest, descriptor, loaded record, faults, status rows."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from twinpane.exceptions import ManifestError

from .contracts import Extension, capabilities_of

if TYPE_CHECKING:
    from .isolation import IsolationBoundary

MANIFEST_NAME = "extension.json"
BINARY_SUFFIX = ".py"


@dataclass(frozen=True)
class ExtensionManifest:
    """Parsed from <package>/extension.json."""

    id: str
    name: str = ""
    description: str = ""
    version: str = ""
    author: str = ""
    module: str = ""
    entry_type: str = ""
    dependencies: tuple[str, ...] = ()
    enabled: bool = True


def parse_manifest(path: Path) -> ExtensionManifest:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ManifestError(path, f"unreadable: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(path, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(path, "expected a JSON object")
    ext_id = str(data.get("id", "")).strip()
    if not ext_id:
        raise ManifestError(path, "missing required field 'id'")

    deps = data.get("dependencies", [])
    if isinstance(deps, str):
        deps = [deps] if deps else []
    elif not isinstance(deps, list):
        raise ManifestError(path, "'dependencies' must be a list of ids")

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ManifestError(path, "'enabled' must be true or false")

    return ExtensionManifest(
        id=ext_id,
        name=str(data.get("name", "")),
        description=str(data.get("description", "")),
        version=str(data.get("version", "")),
        author=str(data.get("author", "")),
        module=str(data.get("module", "")),
        entry_type=str(data.get("entryType", "")),
        dependencies=tuple(str(d) for d in deps if d),
        enabled=enabled,
    )


@dataclass(frozen=True)
class Descriptor:
    """Resolved identity of a loaded extension."""

    id: str
    name: str
    description: str = ""
    version: str = ""
    author: str = ""
    module: str = ""
    entry_type: str = ""
    dependencies: tuple[str, ...] = ()
    enabled: bool = True

    @classmethod
    def resolve(
        cls, instance: Extension, manifest: ExtensionManifest | None = None
    ) -> Descriptor:
        """Manifest fields win; blanks fall back to the instance's self-report."""
        self_id = str(getattr(instance, "id", "") or "").strip()
        self_name = str(getattr(instance, "name", "") or "")
        if manifest is None:
            return cls(
                id=self_id,
                name=self_name or self_id,
                description=str(getattr(instance, "description", "") or ""),
                version=str(getattr(instance, "version", "") or ""),
                author=str(getattr(instance, "author", "") or ""),
                module=type(instance).__module__,
                entry_type=type(instance).__qualname__,
            )
        return cls(
            id=manifest.id,
            name=manifest.name or self_name or manifest.id,
            description=manifest.description or str(getattr(instance, "description", "") or ""),
            version=manifest.version or str(getattr(instance, "version", "") or ""),
            author=manifest.author or str(getattr(instance, "author", "") or ""),
            module=manifest.module,
            entry_type=manifest.entry_type or type(instance).__qualname__,
            dependencies=manifest.dependencies,
            enabled=manifest.enabled,
        )


class ExtensionState(str, Enum):
    DISCOVERED = "discovered"
    LOADED = "loaded"
    INITIALIZING = "initializing"
    ENABLED = "enabled"
    DISABLED = "disabled"
    FAILED = "failed"
    UNLOADED = "unloaded"


class FaultKind(str, Enum):
    DISCOVERY = "discovery"
    LOAD = "load"
    INITIALIZATION = "initialization"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class ExtensionFault:
    kind: FaultKind
    source: str
    message: str
    error: BaseException | None = field(default=None, compare=False)

    @property
    def summary(self) -> str:
        if self.error is None:
            return self.message
        return f"{self.message}: {type(self.error).__name__}: {self.error}"


@dataclass
class LoadedExtension:
    """One lifecycle-tracked extension: descriptor, live instance, boundary, flags."""

    descriptor: Descriptor
    instance: Extension
    boundary: IsolationBoundary
    package_dir: Path
    state: ExtensionState = ExtensionState.LOADED
    is_initialized: bool = False
    is_enabled: bool = False
    fault: ExtensionFault | None = None

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def capabilities(self) -> tuple[str, ...]:
        return tuple(c.__name__ for c in capabilities_of(self.instance))

    def status(self) -> ExtensionStatus:
        return ExtensionStatus(
            id=self.descriptor.id,
            name=self.descriptor.name,
            version=self.descriptor.version,
            author=self.descriptor.author,
            description=self.descriptor.description,
            state=self.state,
            enabled=self.is_enabled,
            initialized=self.is_initialized,
            capabilities=self.capabilities,
            fault=self.fault.summary if self.fault else "",
            package_dir=str(self.package_dir),
        )


@dataclass(frozen=True)
class ExtensionStatus:
    """Read-only management row for one record."""

    id: str
    name: str
    version: str
    author: str
    description: str
    state: ExtensionState
    enabled: bool
    initialized: bool
    capabilities: tuple[str, ...]
    fault: str
    package_dir: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "author": self.author,
            "state": self.state.value,
            "enabled": self.enabled,
            "initialized": self.initialized,
            "capabilities": list(self.capabilities),
            "fault": self.fault,
            "package_dir": self.package_dir,
        }
