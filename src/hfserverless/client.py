"""InferenceClient: task methods over the build -> retry -> normalize pipeline."""

from __future__ import annotations

from contextlib import AsyncExitStack
import logging
from typing import TYPE_CHECKING, Any

from hfserverless.builder import build_list_models_request, build_request
from hfserverless.config import Config
from hfserverless.errors import RequestFailure, TransportError
from hfserverless.normalize import (
    decode_json,
    normalize_chat_completion,
    normalize_model_list,
    normalize_text_generation,
)
from hfserverless.pool import TaskPool
from hfserverless.retry import check_response, check_status, retry_on_model_loading
from hfserverless.sse import aiter_frames
from hfserverless.transport import HttpxTransport
from hfserverless.types import ChatOptions, TaskKind, TaskRequest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence
    from pathlib import Path
    from types import TracebackType

    from hfserverless.pool import TaskHandle
    from hfserverless.transport import HTTPResponse, StreamedResponse, Transport
    from hfserverless.types import (
        ChatCompletion,
        ChatMessage,
        GeneratedText,
        ModelInfo,
        RetryState,
        StreamChunk,
        ToolDefinition,
    )

logger = logging.getLogger(__name__)


class InferenceClient:
    """Async client for the serverless Inference API.

    Example:
        async with InferenceClient(Config(api_token="hf_...")) as client:
            result = await client.chat_completion(
                "HuggingFaceH4/zephyr-7b-beta",
                [{"role": "user", "content": "Hello"}],
                parameters={"max_tokens": 64},
            )
            print(result["choices"][0]["message"]["content"])
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        transport: Transport | None = None,
        pool: TaskPool | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self._owns_transport = transport is None
        self._transport: Transport = (
            transport
            if transport is not None
            else HttpxTransport(timeout_s=self.config.timeout_s)
        )
        self.pool = pool if pool is not None else TaskPool(self.config.pool_size)

    async def __aenter__(self) -> InferenceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport when this client created it."""
        if not self._owns_transport:
            return
        try:
            await self._transport.aclose()
        except Exception as exc:
            # Cleanup should never mask the primary failure.
            logger.warning("Transport cleanup failed: %s", exc)

    async def drain(self) -> None:
        """Wait for every operation submitted to this client's pool."""
        await self.pool.drain()

    # --- Pipeline ---

    async def _execute(self, request: TaskRequest, **build_kwargs: Any) -> HTTPResponse:
        async def call(state: RetryState) -> HTTPResponse:
            attempt = request.with_wait_for_model() if state.wait_for_model else request
            http_request = build_request(attempt, self.config, **build_kwargs)
            logger.debug(
                "Dispatching %s for %s (attempt=%d)",
                request.task.value,
                request.model_id,
                state.attempt,
            )
            response = await self._transport.send(http_request)
            return check_response(
                response, task=request.task.value, model_id=request.model_id
            )

        return await retry_on_model_loading(call, wait_for_model=request.wait_for_model)

    async def _execute_json(self, request: TaskRequest, **build_kwargs: Any) -> Any:
        response = await self._execute(request, **build_kwargs)
        return decode_json(
            response.content, task=request.task.value, model_id=request.model_id
        )

    # --- Text tasks ---

    async def text_generation(
        self,
        model_id: str,
        inputs: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> list[GeneratedText]:
        """Generate continuations of *inputs*."""
        request = TaskRequest(
            task=TaskKind.TEXT_GENERATION,
            model_id=model_id,
            inputs=inputs,
            parameters=dict(parameters or {}),
            use_cache=use_cache,
            wait_for_model=wait_for_model,
        )
        return normalize_text_generation(await self._execute_json(request))

    async def chat_completion(
        self,
        model_id: str,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        parameters: Mapping[str, Any] | ChatOptions | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
        tools: Sequence[ToolDefinition | Mapping[str, Any]] | None = None,
        tool_choice: str | Mapping[str, Any] | None = None,
        tool_prompt: str | None = None,
    ) -> ChatCompletion:
        """Return one normalized chat completion.

        Only allow-listed parameter names are sent; unknown keys are dropped.
        Use ``stream_chat_completion`` for incremental output.
        """
        request = self._chat_request(
            model_id, messages, parameters, use_cache, wait_for_model
        )
        raw = await self._execute_json(
            request,
            stream=False,
            tools=tools,
            tool_choice=tool_choice,
            tool_prompt=tool_prompt,
        )
        return normalize_chat_completion(raw)

    async def stream_chat_completion(
        self,
        model_id: str,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        parameters: Mapping[str, Any] | ChatOptions | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
        tools: Sequence[ToolDefinition | Mapping[str, Any]] | None = None,
        tool_choice: str | Mapping[str, Any] | None = None,
        tool_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield normalized chunks as server-sent events arrive.

        The model-loading retry applies to the initial status only; once
        chunks flow, any failure ends the sequence with an exception.
        """
        request = self._chat_request(
            model_id, messages, parameters, use_cache, wait_for_model
        )

        async def call(state: RetryState) -> tuple[AsyncExitStack, StreamedResponse]:
            attempt = request.with_wait_for_model() if state.wait_for_model else request
            http_request = build_request(
                attempt,
                self.config,
                stream=True,
                tools=tools,
                tool_choice=tool_choice,
                tool_prompt=tool_prompt,
            )
            stack = AsyncExitStack()
            response = await stack.enter_async_context(
                self._transport.stream(http_request)
            )
            if not 200 <= response.status_code < 300:
                try:
                    body = await response.aread()
                finally:
                    await stack.aclose()
                check_status(
                    response.status_code, body, task=request.task.value, model_id=model_id
                )
            return stack, response

        stack, response = await retry_on_model_loading(
            call, wait_for_model=request.wait_for_model
        )
        async with stack:
            try:
                async for frame in aiter_frames(response.aiter_bytes()):
                    yield normalize_chat_completion(frame)
            except TransportError as e:
                raise RequestFailure(
                    f"Failed to make API request: {e}",
                    hint=e.hint,
                    status_code=response.status_code,
                    task=request.task.value,
                    model_id=model_id,
                ) from e

    def _chat_request(
        self,
        model_id: str,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        parameters: Mapping[str, Any] | ChatOptions | None,
        use_cache: bool,
        wait_for_model: bool,
    ) -> TaskRequest:
        if isinstance(parameters, ChatOptions):
            params = parameters.to_parameters()
        else:
            params = dict(parameters or {})
        return TaskRequest(
            task=TaskKind.CHAT_COMPLETION,
            model_id=model_id,
            inputs=list(messages),
            parameters=params,
            use_cache=use_cache,
            wait_for_model=wait_for_model,
        )

    async def feature_extraction(
        self,
        model_id: str,
        text: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> Any:
        """Return embeddings exactly as the API sends them."""
        return await self._execute_json(
            self._simple_request(
                TaskKind.FEATURE_EXTRACTION,
                model_id,
                text,
                parameters,
                use_cache,
                wait_for_model,
            )
        )

    async def question_answering(
        self,
        model_id: str,
        question: str,
        context: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> Any:
        return await self._execute_json(
            self._simple_request(
                TaskKind.QUESTION_ANSWERING,
                model_id,
                {"question": question, "context": context},
                parameters,
                use_cache,
                wait_for_model,
            )
        )

    async def summarization(
        self,
        model_id: str,
        text: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> Any:
        return await self._execute_json(
            self._simple_request(
                TaskKind.SUMMARIZATION,
                model_id,
                text,
                parameters,
                use_cache,
                wait_for_model,
            )
        )

    async def text_to_image(
        self,
        model_id: str,
        prompt: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> bytes:
        """Return the generated image bytes."""
        response = await self._execute(
            self._simple_request(
                TaskKind.TEXT_TO_IMAGE,
                model_id,
                prompt,
                parameters,
                use_cache,
                wait_for_model,
            )
        )
        return response.content

    # --- Binary tasks ---

    async def automatic_speech_recognition(
        self,
        model_id: str,
        audio: bytes | str | Path,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> Any:
        """Transcribe *audio* (raw bytes or a file path)."""
        return await self._execute_json(
            self._simple_request(
                TaskKind.AUTOMATIC_SPEECH_RECOGNITION,
                model_id,
                audio,
                parameters,
                use_cache,
                wait_for_model,
            )
        )

    async def image_classification(
        self,
        model_id: str,
        image: bytes | str | Path,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> Any:
        return await self._execute_json(
            self._simple_request(
                TaskKind.IMAGE_CLASSIFICATION,
                model_id,
                image,
                parameters,
                use_cache,
                wait_for_model,
            )
        )

    async def image_to_image(
        self,
        model_id: str,
        image: bytes | str | Path,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> bytes:
        """Return the transformed image bytes."""
        response = await self._execute(
            self._simple_request(
                TaskKind.IMAGE_TO_IMAGE,
                model_id,
                image,
                parameters,
                use_cache,
                wait_for_model,
            )
        )
        return response.content

    async def object_detection(
        self,
        model_id: str,
        image: bytes | str | Path,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> Any:
        return await self._execute_json(
            self._simple_request(
                TaskKind.OBJECT_DETECTION,
                model_id,
                image,
                parameters,
                use_cache,
                wait_for_model,
            )
        )

    def _simple_request(
        self,
        task: TaskKind,
        model_id: str,
        inputs: Any,
        parameters: Mapping[str, Any] | None,
        use_cache: bool,
        wait_for_model: bool,
    ) -> TaskRequest:
        return TaskRequest(
            task=task,
            model_id=model_id,
            inputs=inputs,
            parameters=dict(parameters or {}),
            use_cache=use_cache,
            wait_for_model=wait_for_model,
        )

    # --- Hub ---

    async def list_models(self, search: str = "", limit: int = 20) -> list[ModelInfo]:
        """List Hub models matching *search* (no model-loading retry)."""
        request = build_list_models_request(self.config, search=search, limit=limit)
        try:
            response = await self._transport.send(request)
        except TransportError as e:
            raise RequestFailure(
                f"Failed to retrieve model list: {e}", hint=e.hint
            ) from e
        check_response(response, model_loading=False)
        return normalize_model_list(decode_json(response.content))

    # --- Fire-and-forget ---

    def submit_text_generation(
        self,
        model_id: str,
        inputs: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
    ) -> TaskHandle[list[GeneratedText]]:
        """Schedule ``text_generation`` on the pool and return its handle."""
        return self.pool.submit(
            lambda: self.text_generation(
                model_id,
                inputs,
                parameters,
                use_cache=use_cache,
                wait_for_model=wait_for_model,
            ),
            name=f"{TaskKind.TEXT_GENERATION.value}:{model_id}",
        )

    def submit_chat_completion(
        self,
        model_id: str,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        parameters: Mapping[str, Any] | ChatOptions | None = None,
        *,
        use_cache: bool = True,
        wait_for_model: bool = False,
        tools: Sequence[ToolDefinition | Mapping[str, Any]] | None = None,
        tool_choice: str | Mapping[str, Any] | None = None,
        tool_prompt: str | None = None,
    ) -> TaskHandle[ChatCompletion]:
        """Schedule ``chat_completion`` on the pool and return its handle."""
        return self.pool.submit(
            lambda: self.chat_completion(
                model_id,
                messages,
                parameters,
                use_cache=use_cache,
                wait_for_model=wait_for_model,
                tools=tools,
                tool_choice=tool_choice,
                tool_prompt=tool_prompt,
            ),
            name=f"{TaskKind.CHAT_COMPLETION.value}:{model_id}",
        )
