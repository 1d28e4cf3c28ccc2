"""Response normalization into predictable shapes.

Chat completions (full or streamed) always go through
``normalize_chat_completion``. Tasks without a canonical shape return their
decoded JSON untouched; only text generation and model listing are reshaped.
"""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING, Any

from hfserverless.errors import DecodeError

if TYPE_CHECKING:
    from hfserverless.types import (
        ChatChoice,
        ChatCompletion,
        ChatCompletionMessage,
        GeneratedText,
        ModelInfo,
    )


def decode_json(
    body: bytes, *, task: str | None = None, model_id: str | None = None
) -> Any:
    """Decode a JSON response body or raise DecodeError."""
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(
            "failed to decode response",
            hint="The API returned a non-JSON body for a JSON task.",
            task=task,
            model_id=model_id,
        ) from e


def normalize_chat_completion(raw: Any) -> ChatCompletion:
    """Map a raw chat-completion object onto the canonical shape.

    Missing or wrongly typed fields fall back to defaults; this never raises.
    """
    data: dict[str, Any] = raw if isinstance(raw, dict) else {}
    raw_choices = data.get("choices")
    choices = raw_choices if isinstance(raw_choices, list) else []
    created = data.get("created")

    return {
        "id": _or_default(data.get("id"), ""),
        "object": _or_default(data.get("object"), "chat.completion"),
        "created": created if created is not None else int(time.time()),
        "model": _or_default(data.get("model"), ""),
        "choices": [_normalize_choice(c) for c in choices],
        "usage": data.get("usage"),
    }


def _normalize_choice(raw: Any) -> ChatChoice:
    choice: dict[str, Any] = raw if isinstance(raw, dict) else {}
    raw_message = choice.get("message")
    if raw_message is None:
        # Streamed frames carry the incremental message as ``delta``.
        raw_message = choice.get("delta")
    source: dict[str, Any] = raw_message if isinstance(raw_message, dict) else {}

    message: ChatCompletionMessage = {
        "role": _or_default(source.get("role"), "assistant"),
        "content": _or_default(source.get("content"), ""),
    }
    if source.get("tool_calls") is not None:
        message["tool_calls"] = source["tool_calls"]

    return {
        "index": _or_default(choice.get("index"), 0),
        "message": message,
        "finish_reason": choice.get("finish_reason"),
    }


def normalize_text_generation(raw: Any) -> list[GeneratedText]:
    """Map each generation to ``{"generated_text": str}``."""
    items = raw if isinstance(raw, list) else [raw]
    out: list[GeneratedText] = []
    for item in items:
        text = item.get("generated_text") if isinstance(item, dict) else None
        out.append({"generated_text": "" if text is None else str(text)})
    return out


def normalize_model_list(raw: Any) -> list[ModelInfo]:
    """Map Hub listing entries to ``{"id": str}``."""
    items = raw if isinstance(raw, list) else []
    out: list[ModelInfo] = []
    for item in items:
        model_id = item.get("id") if isinstance(item, dict) else None
        out.append({"id": "" if model_id is None else str(model_id)})
    return out


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value
