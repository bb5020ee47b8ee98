"""ConfigStore: small typed key/value store, scoped per extension id."""

from __future__ import annotations

import threading
from typing import Any, TypeVar, overload

T = TypeVar("T")


class ConfigStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scopes: dict[str, dict[str, Any]] = {}

    @overload
    def get(self, scope: str, key: str) -> Any: ...

    @overload
    def get(self, scope: str, key: str, type_: type[T], default: T | None = None) -> T | None: ...

    def get(self, scope, key, type_=None, default=None):
        """Value for *key*, or *default* when missing or not an instance of *type_*."""
        with self._lock:
            values = self._scopes.get(scope, {})
            if key not in values:
                return default
            value = values[key]
        if type_ is not None and not isinstance(value, type_):
            return default
        return value

    def set(self, scope: str, key: str, value: Any) -> None:
        """Store *value*; None removes the key."""
        with self._lock:
            if value is None:
                self._scopes.get(scope, {}).pop(key, None)
            else:
                self._scopes.setdefault(scope, {})[key] = value

    def keys(self, scope: str) -> list[str]:
        with self._lock:
            return sorted(self._scopes.get(scope, {}))

    def snapshot(self, scope: str) -> dict[str, Any]:
        with self._lock:
            return dict(self._scopes.get(scope, {}))

    def clear(self) -> None:
        with self._lock:
            self._scopes.clear()
