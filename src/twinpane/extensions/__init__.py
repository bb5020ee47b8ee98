"""Extensions: contracts, discovery, isolated loading, capability index, lifecycle."""

from .contracts import (
    CAPABILITIES,
    ArchiveEntry,
    ArchiveHandler,
    ColumnAlignment,
    ColumnProvider,
    CommandProvider,
    Extension,
    ExtensionColumn,
    ExtensionCommand,
    FileItem,
    FileSystemProvider,
    Viewer,
    capabilities_of,
)
from .discovery import DiscoveryResult, ExtensionCandidate, discover_extensions
from .isolation import IsolationBoundary
from .models import (
    Descriptor,
    ExtensionFault,
    ExtensionManifest,
    ExtensionState,
    ExtensionStatus,
    FaultKind,
    LoadedExtension,
    parse_manifest,
)
from .registry import CapabilityRegistry
from .runtime import ExtensionRuntime

__all__ = [
    "CAPABILITIES",
    "ArchiveEntry",
    "ArchiveHandler",
    "CapabilityRegistry",
    "ColumnAlignment",
    "ColumnProvider",
    "CommandProvider",
    "Descriptor",
    "DiscoveryResult",
    "Extension",
    "ExtensionCandidate",
    "ExtensionColumn",
    "ExtensionCommand",
    "ExtensionFault",
    "ExtensionManifest",
    "ExtensionRuntime",
    "ExtensionState",
    "ExtensionStatus",
    "FaultKind",
    "FileItem",
    "FileSystemProvider",
    "IsolationBoundary",
    "LoadedExtension",
    "Viewer",
    "capabilities_of",
    "discover_extensions",
    "parse_manifest",
]
