"""IsolationBoundary: per-extension import scope and unit of release.

Top-level modules that an extension ships itself (in ``deps/`` or beside the
binary) are resolved from its own package first. Those modules never stay in
``sys.modules``; the boundary keeps them, so two extensions can ship
conflicting copies of the same module and the host's copy is untouched.
Anything the extension does not ship falls back to the host's normal import
path.

The entry module and every module the boundary loads get their own
``__import__``. An ``import`` statement that runs later, inside a method or a
library's lazy import, therefore still resolves the extension's own modules
first. A loose binary has no package of its own; its scope is the root
``deps/`` directory only.
"""

from __future__ import annotations

import builtins
import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import inspect
import itertools
import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import ModuleType
from typing import Any

from twinpane.exceptions import ExtensionLoadError, IsolationError

from .contracts import Extension

logger = logging.getLogger(__name__)

DEPENDENCY_DIR = "deps"
_NAMESPACE_PREFIX = "_twinpane_ext"
_counter = itertools.count(1)
_host_import = builtins.__import__


def _namespace_for(binary: Path) -> str:
    stem = re.sub(r"\W", "_", binary.stem) or "ext"
    return f"{_NAMESPACE_PREFIX}_{next(_counter)}_{stem}"


def _is_module_name(name: str) -> bool:
    return name.isidentifier() and not name.startswith((".", "_"))


class _ScopedLoader(importlib.abc.Loader):
    """Runs a module with the boundary's builtins so its own imports stay scoped."""

    def __init__(self, loader: importlib.abc.Loader, scoped_builtins: dict[str, Any]):
        self._loader = loader
        self._builtins = scoped_builtins

    def create_module(self, spec):
        return self._loader.create_module(spec)

    def exec_module(self, module: ModuleType) -> None:
        module.__dict__["__builtins__"] = self._builtins
        self._loader.exec_module(module)

    def __getattr__(self, name: str) -> Any:
        # get_data, get_resource_reader and friends
        return getattr(self._loader, name)


class _ScopedFinder:
    """Meta-path finder that resolves the boundary's own modules and submodules."""

    def __init__(
        self, search_paths: list[Path], names: frozenset[str], scoped_builtins: dict[str, Any]
    ):
        self._paths = [str(p) for p in search_paths]
        self._names = names
        self._builtins = scoped_builtins

    def find_spec(self, fullname, path=None, target=None):
        if fullname.partition(".")[0] not in self._names:
            return None
        spec = importlib.machinery.PathFinder.find_spec(
            fullname, self._paths if path is None else path
        )
        if spec is not None and hasattr(spec.loader, "exec_module"):
            spec.loader = _ScopedLoader(spec.loader, self._builtins)
        return spec


class IsolationBoundary:
    """Import scope for one extension binary. Constructing it runs no code.

    *package_dir* is the extension's own directory; ``None`` marks a loose
    binary, whose private scope is limited to ``<root>/deps``.
    """

    def __init__(self, binary: Path, package_dir: Path | None = None):
        self.binary = binary
        self.package_dir = package_dir
        self.namespace = _namespace_for(binary)
        self._entry: ModuleType | None = None
        self._modules: dict[str, ModuleType] = {}
        self._names: frozenset[str] | None = None
        self._builtins: dict[str, Any] | None = None
        self._depth = 0
        self._refs = 0
        self.released = False

    @property
    def search_paths(self) -> list[Path]:
        base = self.package_dir or self.binary.parent
        paths = []
        deps = base / DEPENDENCY_DIR
        if deps.is_dir():
            paths.append(deps)
        if self.package_dir is not None:
            paths.append(self.package_dir)
        return paths

    @property
    def is_loaded(self) -> bool:
        return self._entry is not None

    @property
    def owned_modules(self) -> tuple[str, ...]:
        return tuple(sorted(self._modules))

    def provided_names(self) -> set[str]:
        """Top-level module names the extension ships itself."""
        names: set[str] = set()
        for base in self.search_paths:
            for child in base.iterdir():
                if child == self.binary:
                    continue
                if child.is_file() and child.suffix == ".py" and _is_module_name(child.stem):
                    names.add(child.stem)
                elif child.is_dir() and (child / "__init__.py").exists():
                    if _is_module_name(child.name):
                        names.add(child.name)
        return names

    def _scope_names(self) -> frozenset[str]:
        if self._names is None:
            self._names = frozenset(self.provided_names())
        return self._names

    def _scoped_builtins(self) -> dict[str, Any]:
        if self._builtins is None:
            self._builtins = {**builtins.__dict__, "__import__": self._import}
        return self._builtins

    def _import(self, name, globals=None, locals=None, fromlist=(), level=0):
        """``__import__`` for code owned by this boundary."""
        top = name.partition(".")[0]
        if level:
            top = ((globals or {}).get("__package__") or "").partition(".")[0]
        if not self.released and top in self._scope_names():
            with self.active():
                return _host_import(name, globals, locals, fromlist, level)
        return _host_import(name, globals, locals, fromlist, level)

    @contextmanager
    def active(self) -> Iterator[None]:
        """Make the extension's own modules win for imports inside the block.

        Re-entrant. The block must not await: ``sys.modules`` is process-wide.
        """
        if self.released:
            raise IsolationError(f"boundary for {self.binary} was released")
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        names = self._scope_names()
        shadowed = {
            mod_name: sys.modules.pop(mod_name)
            for mod_name in list(sys.modules)
            if mod_name.partition(".")[0] in names
        }
        sys.modules.update(self._modules)
        finder = _ScopedFinder(self.search_paths, names, self._scoped_builtins())
        sys.meta_path.insert(0, finder)
        self._depth = 1
        try:
            yield
        finally:
            self._depth = 0
            sys.meta_path.remove(finder)
            for mod_name in list(sys.modules):
                if mod_name.partition(".")[0] in names:
                    self._modules[mod_name] = sys.modules.pop(mod_name)
            sys.modules.update(shadowed)

    def load(self) -> ModuleType:
        """Import the binary under a private module name (once)."""
        if self._entry is not None:
            return self._entry
        if self.released:
            raise IsolationError(f"boundary for {self.binary} was released")
        spec = importlib.util.spec_from_file_location(self.namespace, self.binary)
        if spec is None or spec.loader is None:
            raise ExtensionLoadError(self.binary, "not an importable module")
        module = importlib.util.module_from_spec(spec)
        module.__dict__["__builtins__"] = self._scoped_builtins()
        with self.active():
            sys.modules[self.namespace] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                sys.modules.pop(self.namespace, None)
                raise ExtensionLoadError(self.binary, f"{type(e).__name__}: {e}") from e
        self._entry = module
        logger.debug("loaded %s as %s", self.binary, self.namespace)
        return module

    def extension_types(self) -> list[type[Extension]]:
        """Concrete Extension subclasses contributed by this binary, sorted by name."""
        module = self.load()
        own = {module.__name__, *self._modules}
        found = []
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if not issubclass(obj, Extension) or inspect.isabstract(obj):
                continue
            if obj.__module__ in own:
                found.append(obj)
        return found

    def acquire(self) -> None:
        self._refs += 1

    def release(self) -> bool:
        """Drop one reference; frees every module once the last one goes.

        Returns True when the boundary was actually released.
        """
        if self.released:
            return False
        self._refs = max(0, self._refs - 1)
        if self._refs:
            return False
        sys.modules.pop(self.namespace, None)
        self._modules.clear()
        self._entry = None
        self._names = frozenset()
        self.released = True
        importlib.invalidate_caches()
        logger.debug("released boundary %s", self.namespace)
        return True
