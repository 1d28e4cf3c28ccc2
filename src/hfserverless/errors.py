"""Exception hierarchy for hfserverless."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class HFServerlessError(Exception):
    """Base exception for all hfserverless errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(HFServerlessError):
    """Configuration, option or input validation failed."""


class TransportError(HFServerlessError):
    """The transport could not complete the exchange (network-level failure)."""


class RequestFailure(HFServerlessError):
    """An inference request failed.

    Carries the HTTP status (when one was received) plus the task and model
    so callers can branch on metadata instead of parsing messages.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        task: str | None = None,
        model_id: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.task = task
        self.model_id = model_id


class ModelLoadingError(RequestFailure):
    """The model is not warm yet (HTTP 503)."""


class DecodeError(RequestFailure):
    """A response body could not be decoded as the expected JSON."""


class AsyncOperationFailure(HFServerlessError):
    """An operation scheduled on a TaskPool raised.

    The original exception is available as ``__cause__``; ``status_code`` is
    lifted from the cause chain when one carried it.
    """

    def __init__(
        self, message: str, *, hint: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)


def find_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None
