"""
Uniform value-or-error result returned by every adapter operation.

`data is None and error is None` means "not found"; `error` is only set for
genuine failures (connectivity, constraint violation, auth failure).
"""
import functools
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from bothive.core.errors import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DatabaseResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[DatabaseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def ok(data: Optional[T] = None) -> DatabaseResult[T]:
    return DatabaseResult(data=data, error=None)


def fail(error: DatabaseError) -> DatabaseResult:
    return DatabaseResult(data=None, error=error)


def normalize_error(error: object) -> DatabaseError:
    """Coerce anything raised by a backend into a DatabaseError."""
    if isinstance(error, DatabaseError):
        return error
    if isinstance(error, BaseException):
        # PostgREST APIError and PyMongo errors carry their own diagnostics
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        code = getattr(error, "code", None)
        return DatabaseError(
            str(message),
            code=str(code) if code is not None else None,
            details=getattr(error, "details", None),
            hint=getattr(error, "hint", None),
        )
    if isinstance(error, dict):
        try:
            return DatabaseError(
                error.get("message") or json.dumps(error, default=str),
                code=error.get("code"),
                details=error.get("details"),
                hint=error.get("hint"),
            )
        except (TypeError, ValueError):
            return DatabaseError("[object]")
    return DatabaseError(str(error))


def log_and_return_error(error: object, context: Optional[str] = None) -> DatabaseResult:
    """Log a backend failure once and wrap it into a failed result."""
    normalized = normalize_error(error)
    fields = ", ".join(f"{key}={value}" for key, value in normalized.to_log_dict().items() if value is not None)
    logger.error(f"[{context}]: {fields}" if context else fields)
    return fail(normalized)


def guarded(context: str) -> Callable[[Callable[..., Awaitable[DatabaseResult]]], Callable[..., Awaitable[DatabaseResult]]]:
    """
    Provider boundary: turn anything a backend raises into a failed result.

    Every repository method of both providers is wrapped with this, so a
    driver exception never escapes the adapter.
    """
    def decorator(func: Callable[..., Awaitable[DatabaseResult]]):
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> DatabaseResult:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                return log_and_return_error(e, context)
        return wrapper
    return decorator
