"""Request builder contract tests: headers, payload shapes and multipart parts."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel
import pytest

from hfserverless.builder import (
    build_chat_payload,
    build_headers,
    build_list_models_request,
    build_request,
)
from hfserverless.errors import ConfigurationError
from hfserverless.types import (
    ChatMessage,
    ChatOptions,
    ChatParameter,
    TaskKind,
    TaskRequest,
    ToolDefinition,
)
from tests.conftest import API_URL, MODEL_ID, TOKEN

pytestmark = pytest.mark.contract


# =============================================================================
# Headers
# =============================================================================


def test_headers_default_carry_only_bearer_and_content_type() -> None:
    headers = build_headers(TOKEN, use_cache=True, wait_for_model=False)

    assert headers == {
        "Authorization": f"Bearer {TOKEN}",
        "Content-Type": "application/json",
    }


def test_headers_add_cache_and_wait_directives_only_when_requested() -> None:
    headers = build_headers(TOKEN, use_cache=False, wait_for_model=True)

    assert headers["x-use-cache"] == "false"
    assert headers["x-wait-for-model"] == "true"


def test_multipart_headers_omit_json_content_type() -> None:
    headers = build_headers(TOKEN, use_cache=True, wait_for_model=False, json_body=False)

    assert "Content-Type" not in headers
    assert headers["Authorization"] == f"Bearer {TOKEN}"


# =============================================================================
# Chat Completion Payloads
# =============================================================================


def test_chat_payload_drops_parameters_outside_allow_list() -> None:
    payload = build_chat_payload(
        [{"role": "user", "content": "Hi"}],
        {"max_tokens": 10, "bogus_field": "x"},
    )

    assert payload["max_tokens"] == 10
    assert "bogus_field" not in payload


def test_chat_payload_copies_every_allowed_parameter() -> None:
    params = {p.value: f"v-{p.value}" for p in ChatParameter}

    payload = build_chat_payload([], params, stream=True)

    for p in ChatParameter:
        if p is ChatParameter.STREAM:
            continue
        assert payload[p.value] == f"v-{p.value}"


def test_chat_payload_always_writes_stream_from_request_mode() -> None:
    payload = build_chat_payload([], {"stream": True}, stream=False)
    assert payload["stream"] is False

    payload = build_chat_payload([], None, stream=True)
    assert payload["stream"] is True


def test_chat_payload_skips_none_values() -> None:
    payload = build_chat_payload([], {"temperature": None})

    assert "temperature" not in payload


def test_dedicated_tool_arguments_override_parameter_mapping() -> None:
    tool = ToolDefinition(
        name="get_weather",
        description="Look up weather",
        parameters={"type": "object", "properties": {"city": {"type": "string"}}},
    )

    payload = build_chat_payload(
        [ChatMessage(role="user", content="Weather in Paris?")],
        {"tools": [{"type": "function"}], "tool_choice": "none"},
        tools=[tool],
        tool_choice="auto",
        tool_prompt="Use tools when needed.",
    )

    assert payload["tools"] == [tool.to_dict()]
    assert payload["tools"][0]["function"]["name"] == "get_weather"
    assert payload["tool_choice"] == "auto"
    assert payload["tool_prompt"] == "Use tools when needed."
    assert payload["messages"] == [{"role": "user", "content": "Weather in Paris?"}]


def test_chat_message_to_dict_keeps_null_content_and_optional_fields() -> None:
    message = ChatMessage(role="function", content=None, name="get_weather")

    assert message.to_dict() == {
        "role": "function",
        "content": None,
        "name": "get_weather",
    }


def test_chat_request_rejects_non_list_inputs(config: Any) -> None:
    request = TaskRequest(
        task=TaskKind.CHAT_COMPLETION, model_id=MODEL_ID, inputs="not messages"
    )

    with pytest.raises(ConfigurationError):
        build_request(request, config)


# =============================================================================
# ChatOptions
# =============================================================================


class _Answer(BaseModel):
    answer: str


def test_chat_options_convert_pydantic_response_format_to_json_schema() -> None:
    options = ChatOptions(max_tokens=32, response_format=_Answer)

    params = options.to_parameters()

    assert params["max_tokens"] == 32
    assert params["response_format"]["type"] == "json"
    assert "answer" in params["response_format"]["value"]["properties"]
    assert "temperature" not in params


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_tokens": 0},
        {"temperature": -0.1},
        {"top_p": 1.5},
        {"response_format": "json"},
    ],
)
def test_chat_options_reject_invalid_values(kwargs: dict[str, Any]) -> None:
    with pytest.raises(ConfigurationError):
        ChatOptions(**kwargs)


# =============================================================================
# JSON Task Payloads
# =============================================================================


def test_text_generation_always_sends_parameters(config: Any) -> None:
    request = TaskRequest(
        task=TaskKind.TEXT_GENERATION, model_id=MODEL_ID, inputs="Once upon"
    )

    built = build_request(request, config)

    assert built.method == "POST"
    assert built.url == API_URL + MODEL_ID
    assert built.json == {"inputs": "Once upon", "parameters": {}}
    assert built.parts is None


@pytest.mark.parametrize(
    "task",
    [TaskKind.FEATURE_EXTRACTION, TaskKind.SUMMARIZATION, TaskKind.TEXT_TO_IMAGE],
)
def test_text_tasks_send_parameters_only_when_non_empty(
    config: Any, task: TaskKind
) -> None:
    bare = build_request(
        TaskRequest(task=task, model_id=MODEL_ID, inputs="text"), config
    )
    with_params = build_request(
        TaskRequest(task=task, model_id=MODEL_ID, inputs="text", parameters={"x": 1}),
        config,
    )

    assert bare.json == {"inputs": "text"}
    assert with_params.json == {"inputs": "text", "parameters": {"x": 1}}


def test_question_answering_nests_question_and_context(config: Any) -> None:
    request = TaskRequest(
        task=TaskKind.QUESTION_ANSWERING,
        model_id=MODEL_ID,
        inputs={"question": "Who?", "context": "Alice did it."},
    )

    built = build_request(request, config)

    assert built.json == {"inputs": {"question": "Who?", "context": "Alice did it."}}


def test_wait_for_model_request_copy_sets_header(config: Any) -> None:
    request = TaskRequest(
        task=TaskKind.SUMMARIZATION, model_id=MODEL_ID, inputs="t", use_cache=False
    )

    first = build_request(request, config)
    retry = build_request(request.with_wait_for_model(), config)

    assert "x-wait-for-model" not in first.headers
    assert retry.headers["x-wait-for-model"] == "true"
    assert retry.headers["x-use-cache"] == "false"
    assert request.wait_for_model is False


# =============================================================================
# Multipart Payloads
# =============================================================================


@pytest.mark.parametrize(
    ("task", "part_name"),
    [
        (TaskKind.AUTOMATIC_SPEECH_RECOGNITION, "audio"),
        (TaskKind.IMAGE_CLASSIFICATION, "image"),
        (TaskKind.IMAGE_TO_IMAGE, "image"),
        (TaskKind.OBJECT_DETECTION, "image"),
    ],
)
def test_binary_tasks_build_single_part_without_parameters(
    config: Any, task: TaskKind, part_name: str
) -> None:
    built = build_request(
        TaskRequest(task=task, model_id=MODEL_ID, inputs=b"\x00\x01"), config
    )

    assert built.json is None
    assert built.parts is not None
    assert len(built.parts) == 1
    assert built.parts[0].name == part_name
    assert built.parts[0].content == b"\x00\x01"
    assert "Content-Type" not in built.headers


def test_binary_task_adds_json_parameters_part(config: Any) -> None:
    built = build_request(
        TaskRequest(
            task=TaskKind.OBJECT_DETECTION,
            model_id=MODEL_ID,
            inputs=b"img",
            parameters={"threshold": 0.5},
        ),
        config,
    )

    assert built.parts is not None
    assert len(built.parts) == 2
    assert built.parts[1].name == "parameters"
    assert json.loads(built.parts[1].content) == {"threshold": 0.5}


def test_binary_task_reads_input_from_path(config: Any, tmp_path: Any) -> None:
    audio = tmp_path / "clip.flac"
    audio.write_bytes(b"fLaC")

    built = build_request(
        TaskRequest(
            task=TaskKind.AUTOMATIC_SPEECH_RECOGNITION, model_id=MODEL_ID, inputs=audio
        ),
        config,
    )

    assert built.parts is not None
    assert built.parts[0].content == b"fLaC"
    assert built.parts[0].filename == "clip.flac"


def test_binary_task_missing_file_raises_configuration_error(
    config: Any, tmp_path: Any
) -> None:
    with pytest.raises(ConfigurationError) as exc:
        build_request(
            TaskRequest(
                task=TaskKind.IMAGE_CLASSIFICATION,
                model_id=MODEL_ID,
                inputs=tmp_path / "missing.png",
            ),
            config,
        )

    assert "not found" in str(exc.value).lower()


# =============================================================================
# Model Listing
# =============================================================================


def test_list_models_request_uses_get_with_query_and_bearer_only(config: Any) -> None:
    built = build_list_models_request(config, search="bert", limit=5)

    assert built.method == "GET"
    assert built.url == config.models_url
    assert built.query == {"search": "bert", "limit": "5"}
    assert built.headers == {"Authorization": f"Bearer {TOKEN}"}


def test_task_request_rejects_blank_model_id() -> None:
    with pytest.raises(ConfigurationError):
        TaskRequest(task=TaskKind.TEXT_GENERATION, model_id="  ", inputs="x")


def test_task_request_parameters_are_a_frozen_copy(config: Any) -> None:
    params = {"max_new_tokens": 8}
    request = TaskRequest(
        task=TaskKind.TEXT_GENERATION, model_id=MODEL_ID, inputs="x", parameters=params
    )
    params["max_new_tokens"] = 99

    with pytest.raises(TypeError):
        request.parameters["temperature"] = 0.5  # type: ignore[index]

    retry = request.with_wait_for_model()
    assert request.parameters == {"max_new_tokens": 8}
    assert build_request(retry, config).json == {
        "inputs": "x",
        "parameters": {"max_new_tokens": 8},
    }
