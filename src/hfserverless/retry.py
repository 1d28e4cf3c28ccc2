"""Model-loading retry: one extra attempt with the wait-for-model directive.

The serverless API returns 503 while a cold model loads. Rather than polling,
the call is re-issued exactly once with ``x-wait-for-model: true`` so the
server holds the request until the model is ready. There is no backoff and
no third attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from hfserverless._http import ERROR_BODY_EXCERPT, MODEL_LOADING_STATUS
from hfserverless.errors import ModelLoadingError, RequestFailure, TransportError
from hfserverless.types import RetryState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hfserverless.transport import HTTPResponse

T = TypeVar("T")

logger = logging.getLogger(__name__)

_HTTP_ERROR_HINTS = {
    400: "Check the inputs and parameters accepted by this task.",
    401: "Verify HF_TOKEN is valid.",
    403: "Check token permissions or gated-model access.",
    404: "Model not found or not served by the serverless API.",
    429: "Rate limit exceeded; wait and retry.",
    503: "The model is still loading; retry later.",
}


def check_status(
    status_code: int,
    body: bytes,
    *,
    task: str | None = None,
    model_id: str | None = None,
    model_loading: bool = True,
) -> None:
    """Raise the matching RequestFailure for a non-2xx status.

    A 503 maps to ModelLoadingError unless *model_loading* is False (calls
    that do not address a model).
    """
    if 200 <= status_code < 300:
        return

    excerpt = body[:ERROR_BODY_EXCERPT].decode("utf-8", errors="replace").strip()
    err_cls: type[RequestFailure] = RequestFailure
    if model_loading and status_code == MODEL_LOADING_STATUS:
        err_cls = ModelLoadingError
    message = f"Failed to make API request (status={status_code})"
    raise err_cls(
        f"{message}: {excerpt}" if excerpt else message,
        hint=_HTTP_ERROR_HINTS.get(status_code),
        status_code=status_code,
        task=task,
        model_id=model_id,
    )


def check_response(
    response: HTTPResponse,
    *,
    task: str | None = None,
    model_id: str | None = None,
    model_loading: bool = True,
) -> HTTPResponse:
    """Return *response* unchanged when successful, else raise."""
    check_status(
        response.status_code,
        response.content,
        task=task,
        model_id=model_id,
        model_loading=model_loading,
    )
    return response


async def retry_on_model_loading(
    call: Callable[[RetryState], Awaitable[T]],
    *,
    wait_for_model: bool = False,
) -> T:
    """Run *call*, re-issuing it once with wait-for-model on a 503.

    Contract:
    - A 503 on the first attempt triggers exactly one more attempt, unless
      the caller already asked to wait for the model.
    - A second 503 surfaces as a plain RequestFailure chained to the first.
    - Transport errors surface as RequestFailure; other errors propagate.
    """
    state = RetryState(attempt=0, wait_for_model=wait_for_model)
    try:
        return await _attempt(call, state)
    except ModelLoadingError as first:
        if state.wait_for_model:
            raise _as_final_failure(first) from first
        logger.info(
            "Model loading (status=%s, model=%s); retrying once with wait-for-model",
            first.status_code,
            first.model_id,
        )

    retry_state = RetryState(attempt=1, wait_for_model=True)
    try:
        return await _attempt(call, retry_state)
    except ModelLoadingError as second:
        raise _as_final_failure(second) from second


async def _attempt(call: Callable[[RetryState], Awaitable[T]], state: RetryState) -> T:
    try:
        return await call(state)
    except asyncio.CancelledError:
        raise
    except TransportError as e:
        raise RequestFailure(
            f"Failed to make API request: {e}",
            hint=e.hint,
        ) from e


def _as_final_failure(err: ModelLoadingError) -> RequestFailure:
    message = err.args[0] if err.args else str(err)
    return RequestFailure(
        message,
        hint=err.hint,
        status_code=err.status_code,
        task=err.task,
        model_id=err.model_id,
    )
