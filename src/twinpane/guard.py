"""Boundary-call wrapper: turn exceptions from extension code into CallResults."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult(Generic[T]):
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return default if self.error is not None or self.value is None else self.value


def _log_failure(extension_id: str, operation: str, exc: Exception) -> None:
    logger.error(
        "extension %s failed in %s: %s: %s",
        extension_id,
        operation,
        type(exc).__name__,
        exc,
        exc_info=logger.isEnabledFor(logging.DEBUG),
    )


def call_sync(extension_id: str, operation: str, fn: Callable[..., T], *args: Any) -> CallResult[T]:
    try:
        return CallResult(value=fn(*args))
    except Exception as e:
        _log_failure(extension_id, operation, e)
        return CallResult(error=e)


async def call_async(
    extension_id: str, operation: str, fn: Callable[..., Any], *args: Any
) -> CallResult[Any]:
    """Call *fn* and await its result if it returns an awaitable."""
    try:
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return CallResult(value=result)
    except Exception as e:
        _log_failure(extension_id, operation, e)
        return CallResult(error=e)
