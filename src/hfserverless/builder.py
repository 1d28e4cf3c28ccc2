"""Request building: payloads and headers per task kind.

Builders are pure apart from reading binary inputs given as paths; the same
TaskRequest always yields the same HTTPRequest.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from hfserverless._http import (
    AUTHORIZATION_HEADER,
    CONTENT_TYPE_HEADER,
    JSON_CONTENT_TYPE,
    USE_CACHE_HEADER,
    WAIT_FOR_MODEL_HEADER,
)
from hfserverless.errors import ConfigurationError
from hfserverless.transport import HTTPRequest, MultipartPart
from hfserverless.types import (
    ChatMessage,
    ChatParameter,
    TaskKind,
    TaskRequest,
    ToolDefinition,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from hfserverless.config import Config

logger = logging.getLogger(__name__)

_ALLOWED_CHAT_PARAMETERS: frozenset[str] = frozenset(p.value for p in ChatParameter)

# Binary-payload tasks and the multipart field carrying the payload.
BINARY_PART_NAMES: dict[TaskKind, str] = {
    TaskKind.AUTOMATIC_SPEECH_RECOGNITION: "audio",
    TaskKind.IMAGE_CLASSIFICATION: "image",
    TaskKind.IMAGE_TO_IMAGE: "image",
    TaskKind.OBJECT_DETECTION: "image",
}


def build_headers(
    token: str, *, use_cache: bool, wait_for_model: bool, json_body: bool = True
) -> dict[str, str]:
    """Return request headers for one attempt."""
    headers = {AUTHORIZATION_HEADER: f"Bearer {token}"}
    if json_body:
        headers[CONTENT_TYPE_HEADER] = JSON_CONTENT_TYPE
    if not use_cache:
        headers[USE_CACHE_HEADER] = "false"
    if wait_for_model:
        headers[WAIT_FOR_MODEL_HEADER] = "true"
    return headers


def build_chat_payload(
    messages: Sequence[ChatMessage | Mapping[str, Any]],
    parameters: Mapping[str, Any] | None = None,
    *,
    stream: bool = False,
    tools: Sequence[ToolDefinition | Mapping[str, Any]] | None = None,
    tool_choice: str | Mapping[str, Any] | None = None,
    tool_prompt: str | None = None,
) -> dict[str, Any]:
    """Assemble a chat-completion payload.

    Only allow-listed parameter names are copied; dedicated tool arguments
    override the mapping and ``stream`` always reflects the request mode.
    """
    data: dict[str, Any] = {"messages": [_message_to_dict(m) for m in messages]}

    for key, value in (parameters or {}).items():
        if key not in _ALLOWED_CHAT_PARAMETERS:
            logger.debug("Dropping unsupported chat parameter %r", key)
            continue
        if value is not None:
            data[key] = value

    if tools is not None:
        data[ChatParameter.TOOLS.value] = [_tool_to_dict(t) for t in tools]
    if tool_choice is not None:
        data[ChatParameter.TOOL_CHOICE.value] = tool_choice
    if tool_prompt is not None:
        data[ChatParameter.TOOL_PROMPT.value] = tool_prompt

    data[ChatParameter.STREAM.value] = stream
    return data


def build_request(
    request: TaskRequest,
    config: Config,
    *,
    stream: bool = False,
    tools: Sequence[ToolDefinition | Mapping[str, Any]] | None = None,
    tool_choice: str | Mapping[str, Any] | None = None,
    tool_prompt: str | None = None,
) -> HTTPRequest:
    """Build the HTTP request for *request* under *config*.

    Chat-only keyword arguments are ignored for other task kinds.
    """
    token = config.api_token or ""
    url = config.api_url + request.model_id
    task = request.task

    if task in BINARY_PART_NAMES:
        headers = build_headers(
            token,
            use_cache=request.use_cache,
            wait_for_model=request.wait_for_model,
            json_body=False,
        )
        return HTTPRequest(
            method="POST",
            url=url,
            headers=headers,
            parts=build_multipart(
                BINARY_PART_NAMES[task], request.inputs, request.parameters
            ),
        )

    headers = build_headers(
        token, use_cache=request.use_cache, wait_for_model=request.wait_for_model
    )

    if task is TaskKind.CHAT_COMPLETION:
        if not isinstance(request.inputs, list):
            raise ConfigurationError(
                "chat completion inputs must be a list of messages",
                hint="Pass messages=[{'role': 'user', 'content': '...'}].",
            )
        payload = build_chat_payload(
            request.inputs,
            request.parameters,
            stream=stream,
            tools=tools,
            tool_choice=tool_choice,
            tool_prompt=tool_prompt,
        )
    elif task is TaskKind.TEXT_GENERATION:
        # Text generation always sends the parameters object, even when empty.
        payload = {"inputs": request.inputs, "parameters": dict(request.parameters)}
    else:
        payload = {"inputs": request.inputs}
        if request.parameters:
            payload["parameters"] = dict(request.parameters)

    return HTTPRequest(method="POST", url=url, headers=headers, json=payload)


def build_multipart(
    name: str, payload: Any, parameters: Mapping[str, Any]
) -> tuple[MultipartPart, ...]:
    """Return the binary part plus a JSON ``parameters`` part when non-empty."""
    content, filename = _read_binary(payload)
    parts = [MultipartPart(name=name, content=content, filename=filename)]
    if parameters:
        parts.append(
            MultipartPart(name="parameters", content=json.dumps(dict(parameters)))
        )
    return tuple(parts)


def build_list_models_request(config: Config, *, search: str, limit: int) -> HTTPRequest:
    """Build the Hub model-listing request (no cache or wait directives)."""
    return HTTPRequest(
        method="GET",
        url=config.models_url,
        headers={AUTHORIZATION_HEADER: f"Bearer {config.api_token or ''}"},
        query={"search": search, "limit": str(limit)},
    )


def _read_binary(payload: Any) -> tuple[bytes, str | None]:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload), None
    if isinstance(payload, (str, Path)):
        path = Path(payload)
        try:
            return path.read_bytes(), path.name
        except FileNotFoundError as e:
            raise ConfigurationError(
                f"Input file not found: {path}",
                hint="Pass an existing file path or the raw bytes.",
            ) from e
    raise ConfigurationError(
        f"Binary input must be bytes or a path, got {type(payload).__name__}",
    )


def _message_to_dict(message: ChatMessage | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(message, ChatMessage):
        return message.to_dict()
    return dict(message)


def _tool_to_dict(tool: ToolDefinition | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(tool, ToolDefinition):
        return tool.to_dict()
    return dict(tool)
