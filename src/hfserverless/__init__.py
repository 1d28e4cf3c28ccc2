"""hfserverless: Async client for the Hugging Face serverless Inference API.

Public API:
    - InferenceClient: task methods (chat, generation, vision, audio, ...)
    - Config: Configuration dataclass
    - TaskPool / TaskHandle: fire-and-forget scheduling with callbacks
    - ChatMessage, ChatOptions, ToolDefinition: typed chat inputs
"""

from __future__ import annotations

import logging

from hfserverless.client import InferenceClient
from hfserverless.config import Config
from hfserverless.errors import (
    AsyncOperationFailure,
    ConfigurationError,
    DecodeError,
    HFServerlessError,
    ModelLoadingError,
    RequestFailure,
    TransportError,
)
from hfserverless.pool import TaskHandle, TaskPool
from hfserverless.transport import HttpxTransport, Transport
from hfserverless.types import (
    ChatCompletion,
    ChatMessage,
    ChatOptions,
    ChatParameter,
    StreamChunk,
    TaskKind,
    TaskRequest,
    ToolDefinition,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("hfserverless")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("hfserverless").addHandler(logging.NullHandler())

__all__ = [
    "AsyncOperationFailure",
    "ChatCompletion",
    "ChatMessage",
    "ChatOptions",
    "ChatParameter",
    "Config",
    "ConfigurationError",
    "DecodeError",
    "HFServerlessError",
    "HttpxTransport",
    "InferenceClient",
    "ModelLoadingError",
    "RequestFailure",
    "StreamChunk",
    "TaskHandle",
    "TaskKind",
    "TaskPool",
    "TaskRequest",
    "ToolDefinition",
    "Transport",
    "TransportError",
]
