"""Domain types: task requests, chat inputs and normalized result shapes."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, TypedDict

from pydantic import BaseModel

from hfserverless.errors import ConfigurationError


class TaskKind(str, Enum):
    """The fixed set of ML operations the client can call."""

    TEXT_GENERATION = "text-generation"
    CHAT_COMPLETION = "chat-completion"
    AUTOMATIC_SPEECH_RECOGNITION = "automatic-speech-recognition"
    FEATURE_EXTRACTION = "feature-extraction"
    IMAGE_CLASSIFICATION = "image-classification"
    IMAGE_TO_IMAGE = "image-to-image"
    OBJECT_DETECTION = "object-detection"
    QUESTION_ANSWERING = "question-answering"
    SUMMARIZATION = "summarization"
    TEXT_TO_IMAGE = "text-to-image"


class ChatParameter(str, Enum):
    """Parameter names copied from a caller mapping into a chat payload."""

    MAX_TOKENS = "max_tokens"
    TEMPERATURE = "temperature"
    TOP_P = "top_p"
    FREQUENCY_PENALTY = "frequency_penalty"
    PRESENCE_PENALTY = "presence_penalty"
    STOP = "stop"
    STREAM = "stream"
    LOGPROBS = "logprobs"
    TOOLS = "tools"
    TOOL_CHOICE = "tool_choice"
    TOOL_PROMPT = "tool_prompt"
    RESPONSE_FORMAT = "response_format"


TaskInputs = str | dict[str, Any] | bytes | Path


@dataclass(frozen=True)
class TaskRequest:
    """One logical inference call, immutable once built."""

    task: TaskKind
    model_id: str
    inputs: TaskInputs | list[Any]
    parameters: Mapping[str, Any] = field(default_factory=dict)
    use_cache: bool = True
    wait_for_model: bool = False

    def __post_init__(self) -> None:
        """Reject requests that cannot address a model and freeze parameters."""
        if not isinstance(self.model_id, str) or not self.model_id.strip():
            raise ConfigurationError(
                "model_id must be a non-empty string",
                hint="Pass a Hub model id such as 'gpt2'.",
            )
        # Own a read-only copy; retry copies share it safely.
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def with_wait_for_model(self) -> TaskRequest:
        """Return a copy with the wait-for-model directive forced on."""
        return replace(self, wait_for_model=True)


Role = Literal["user", "assistant", "system", "function", "tool"]


@dataclass(frozen=True)
class ChatMessage:
    """A conversational turn sent to chat completion."""

    role: Role
    content: str | None = None
    name: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form, omitting unset optional fields."""
        out: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            out["name"] = self.name
        if self.tool_calls is not None:
            out["tool_calls"] = self.tool_calls
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id
        return out


@dataclass(frozen=True)
class ToolDefinition:
    """A function tool offered to the model; the schema is passed through."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


ResponseFormatInput = type[BaseModel] | dict[str, Any]


@dataclass(frozen=True)
class ChatOptions:
    """Typed form of the chat-completion parameter allow-list."""

    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop: list[str] | None = None
    logprobs: bool | None = None
    #: Pydantic ``BaseModel`` subclass or a ready-made response_format dict.
    response_format: ResponseFormatInput | None = None

    def __post_init__(self) -> None:
        """Validate option shapes early for clear errors."""
        if self.max_tokens is not None and (
            not isinstance(self.max_tokens, int) or self.max_tokens <= 0
        ):
            raise ConfigurationError(
                "max_tokens must be a positive integer",
                hint="Pass max_tokens=512 or similar.",
            )
        if self.temperature is not None and self.temperature < 0:
            raise ConfigurationError("temperature must be >= 0")
        if self.top_p is not None and not 0 < self.top_p <= 1:
            raise ConfigurationError("top_p must be in (0, 1]")
        if self.response_format is not None and not (
            isinstance(self.response_format, dict)
            or (
                isinstance(self.response_format, type)
                and issubclass(self.response_format, BaseModel)
            )
        ):
            raise ConfigurationError(
                "response_format must be a Pydantic model class or a dict",
                hint="Pass a BaseModel subclass or {'type': 'json', 'value': {...}}.",
            )

    def response_format_json(self) -> dict[str, Any] | None:
        """Return the response_format payload for the API."""
        fmt = self.response_format
        if fmt is None:
            return None
        if isinstance(fmt, dict):
            return fmt
        return {"type": "json", "value": fmt.model_json_schema()}

    def to_parameters(self) -> dict[str, Any]:
        """Return the set options keyed by their wire names."""
        params: dict[str, Any] = {
            ChatParameter.MAX_TOKENS.value: self.max_tokens,
            ChatParameter.TEMPERATURE.value: self.temperature,
            ChatParameter.TOP_P.value: self.top_p,
            ChatParameter.FREQUENCY_PENALTY.value: self.frequency_penalty,
            ChatParameter.PRESENCE_PENALTY.value: self.presence_penalty,
            ChatParameter.STOP.value: self.stop,
            ChatParameter.LOGPROBS.value: self.logprobs,
            ChatParameter.RESPONSE_FORMAT.value: self.response_format_json(),
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass(frozen=True)
class RetryState:
    """Per-call retry bookkeeping; never outlives one logical call."""

    attempt: int = 0
    wait_for_model: bool = False


# --- Normalized result shapes ---


class ChatCompletionMessage(TypedDict, total=False):
    role: str
    content: str
    #: Present only when the raw response carried tool calls.
    tool_calls: list[Any]


class ChatChoice(TypedDict):
    index: int
    message: ChatCompletionMessage
    finish_reason: str | None


class ChatCompletion(TypedDict):
    """Canonical chat-completion shape; every field is always present."""

    id: str
    object: str
    created: int
    model: str
    choices: list[ChatChoice]
    usage: dict[str, Any] | None


#: One streamed SSE frame, normalized exactly like a full completion.
StreamChunk = ChatCompletion


class GeneratedText(TypedDict):
    generated_text: str


class ModelInfo(TypedDict):
    id: str
