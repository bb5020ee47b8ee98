"""Extension discovery: walk the extensions root and pair each package with a binary.

Two layouts are recognised:

  <root>/<package>/extension.json + <module>.py   packaged extension
  <root>/<module>.py                             loose binary, no manifest

Nothing is imported here; each candidate only knows how to create its
isolation boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from twinpane.exceptions import ManifestError

from .isolation import DEPENDENCY_DIR, IsolationBoundary
from .models import (
    BINARY_SUFFIX,
    MANIFEST_NAME,
    ExtensionFault,
    ExtensionManifest,
    FaultKind,
    parse_manifest,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionCandidate:
    package_dir: Path
    binary: Path
    manifest: ExtensionManifest | None = None
    loose: bool = False

    def create_boundary(self) -> IsolationBoundary:
        return IsolationBoundary(self.binary, None if self.loose else self.package_dir)


@dataclass
class DiscoveryResult:
    candidates: list[ExtensionCandidate] = field(default_factory=list)
    faults: list[ExtensionFault] = field(default_factory=list)


def _is_binary(path: Path) -> bool:
    return path.is_file() and path.suffix == BINARY_SUFFIX and not path.name.startswith(("_", "."))


def _binaries(directory: Path) -> list[Path]:
    return sorted(p for p in directory.iterdir() if _is_binary(p))


def pick_binary(package_dir: Path) -> Path | None:
    """Most plausible entry module: one named like the directory, else the first."""
    binaries = _binaries(package_dir)
    for b in binaries:
        if b.stem.lower() == package_dir.name.lower():
            return b
    return binaries[0] if binaries else None


def _manifest_binary(package_dir: Path, manifest: ExtensionManifest) -> Path | None:
    if not manifest.module:
        return pick_binary(package_dir)
    name = manifest.module
    if not name.endswith(BINARY_SUFFIX):
        name += BINARY_SUFFIX
    path = package_dir / name
    return path if path.is_file() else None


def _discover_package(package_dir: Path, result: DiscoveryResult, seen: dict[str, Path]) -> None:
    manifest_path = package_dir / MANIFEST_NAME
    manifest: ExtensionManifest | None = None
    if manifest_path.exists():
        try:
            manifest = parse_manifest(manifest_path)
        except ManifestError as e:
            result.faults.append(
                ExtensionFault(FaultKind.DISCOVERY, str(package_dir), e.reason, e)
            )
            return
        if manifest.id in seen:
            # Same kind as an id collision found at load time.
            result.faults.append(
                ExtensionFault(
                    FaultKind.LOAD,
                    str(package_dir),
                    f"duplicate extension id '{manifest.id}' (already declared by {seen[manifest.id]})",
                )
            )
            return
        binary = _manifest_binary(package_dir, manifest)
    else:
        binary = pick_binary(package_dir)

    if binary is None:
        wanted = f" '{manifest.module}'" if manifest and manifest.module else ""
        result.faults.append(
            ExtensionFault(FaultKind.DISCOVERY, str(package_dir), f"missing binary{wanted}")
        )
        return
    if manifest is not None:
        seen[manifest.id] = package_dir
    result.candidates.append(ExtensionCandidate(package_dir, binary, manifest))


def discover_extensions(root: Path) -> DiscoveryResult:
    """Scan *root*: package directories first, then loose binaries."""
    result = DiscoveryResult()
    if not root.is_dir():
        logger.debug("extensions directory does not exist: %s", root)
        return result

    seen: dict[str, Path] = {}
    entries = sorted(root.iterdir())
    for d in entries:
        if not d.is_dir() or d.name.startswith((".", "_")) or d.name == DEPENDENCY_DIR:
            continue
        try:
            _discover_package(d, result, seen)
        except OSError as e:
            result.faults.append(ExtensionFault(FaultKind.DISCOVERY, str(d), "unreadable", e))

    for f in entries:
        if _is_binary(f):
            result.candidates.append(ExtensionCandidate(root, f, loose=True))

    logger.info(
        "discovered %d extension candidate(s), %d fault(s) in %s",
        len(result.candidates),
        len(result.faults),
        root,
    )
    return result
