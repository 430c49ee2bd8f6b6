"""
Tests for the Model Client.

The OpenAI SDK is mocked; responses are built from SimpleNamespace objects
shaped like chat-completion responses.
"""

from types import SimpleNamespace
from unittest.mock import patch, Mock

import httpx
import openai
import pytest

from react_agent.errors import (
    MalformedReplyError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from react_agent.llm_call import ModelClient, ModelReply
from react_agent.models import Conversation, ModelConfig, ToolCall

_REQUEST = httpx.Request("POST", "http://model.test/v1/chat/completions")


def _response(content=None, tool_calls=None, finish_reason="stop", usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    choice = SimpleNamespace(message=message, finish_reason=finish_reason)
    return SimpleNamespace(choices=[choice], usage=usage)


def _raw_call(call_id, name, arguments):
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def _http_response(status: int, headers: dict = None) -> httpx.Response:
    return httpx.Response(status, headers=headers or {}, request=_REQUEST)


@pytest.fixture
def mock_openai():
    with patch("react_agent.llm_call.OpenAI") as mock_cls:
        yield mock_cls


@pytest.fixture
def client(mock_openai):
    return ModelClient(
        model_config=ModelConfig(
            base_url="http://model.test/v1",
            model="test-model",
            api_key="key",
            temperature=0.1,
            max_tokens=256,
            request_timeout=12,
        )
    )


def _create(mock_openai) -> Mock:
    return mock_openai.return_value.chat.completions.create


class TestClientSetup:
    """Tests for constructing the client."""

    def test_sdk_retries_disabled(self, client, mock_openai):
        kwargs = mock_openai.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["base_url"] == "http://model.test/v1"
        assert kwargs["timeout"] == 12

    def test_base_url_override(self, mock_openai):
        ModelClient(model_config=ModelConfig(), base_url="http://other.test/v1")
        assert mock_openai.call_args.kwargs["base_url"] == "http://other.test/v1"

    def test_close(self, client, mock_openai):
        client.close()
        mock_openai.return_value.close.assert_called_once()


class TestComplete:
    """Tests for the request sent upstream."""

    def test_request_contents(self, client, mock_openai):
        _create(mock_openai).return_value = _response(content="Hi!")
        tools = [{"type": "function", "function": {"name": "echo"}}]

        reply = client.complete(Conversation.seed("Hello", "Be nice"), tools=tools, timeout=5)

        kwargs = _create(mock_openai).call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be nice"},
            {"role": "user", "content": "Hello"},
        ]
        assert kwargs["tools"] == tools
        assert kwargs["timeout"] == 5
        assert kwargs["max_tokens"] == 256
        assert kwargs["temperature"] == 0.1
        assert reply.content == "Hi!"
        assert reply.is_final

    def test_no_tools_key_when_registry_empty(self, client, mock_openai):
        _create(mock_openai).return_value = _response(content="ok")

        client.complete(Conversation.seed("Hello"), tools=[])

        kwargs = _create(mock_openai).call_args.kwargs
        assert "tools" not in kwargs
        assert "timeout" not in kwargs


class TestErrorMapping:
    """Tests for mapping SDK exceptions onto the error taxonomy."""

    def _raise(self, client, mock_openai, error):
        _create(mock_openai).side_effect = error
        client.complete(Conversation.seed("Hello"))

    def test_connection_error(self, client, mock_openai):
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            self._raise(client, mock_openai, openai.APIConnectionError(request=_REQUEST))
        assert exc_info.value.retryable

    def test_timeout(self, client, mock_openai):
        with pytest.raises(UpstreamUnavailableError, match="timed out"):
            self._raise(client, mock_openai, openai.APITimeoutError(request=_REQUEST))

    def test_server_error(self, client, mock_openai):
        error = openai.InternalServerError(
            "boom", response=_http_response(503), body=None
        )
        with pytest.raises(UpstreamUnavailableError, match="503"):
            self._raise(client, mock_openai, error)

    def test_rate_limited_with_retry_after(self, client, mock_openai):
        error = openai.RateLimitError(
            "slow down", response=_http_response(429, {"retry-after": "2"}), body=None
        )
        with pytest.raises(UpstreamRateLimitedError) as exc_info:
            self._raise(client, mock_openai, error)
        assert exc_info.value.retry_after == 2.0
        assert exc_info.value.retryable

    def test_rate_limited_without_retry_after(self, client, mock_openai):
        error = openai.RateLimitError("slow down", response=_http_response(429), body=None)
        with pytest.raises(UpstreamRateLimitedError) as exc_info:
            self._raise(client, mock_openai, error)
        assert exc_info.value.retry_after is None

    def test_rejected(self, client, mock_openai):
        error = openai.BadRequestError("bad", response=_http_response(400), body=None)
        with pytest.raises(UpstreamRejectedError) as exc_info:
            self._raise(client, mock_openai, error)
        assert exc_info.value.status_code == 400
        assert not exc_info.value.retryable

    def test_auth_failure_is_rejected(self, client, mock_openai):
        error = openai.AuthenticationError("nope", response=_http_response(401), body=None)
        with pytest.raises(UpstreamRejectedError):
            self._raise(client, mock_openai, error)


class TestParseResponse:
    """Tests for parsing chat-completion responses."""

    def test_final_answer(self):
        reply = ModelClient.parse_response(_response(content="The answer is 4."))
        assert reply == ModelReply(content="The answer is 4.", finish_reason="stop")

    def test_tool_calls(self):
        reply = ModelClient.parse_response(
            _response(
                tool_calls=[
                    _raw_call("c1", "get_weather", '{"location": "Paris"}'),
                    _raw_call("c2", "calculate", '{"expression": "2+2"}'),
                ],
                finish_reason="tool_calls",
            )
        )

        assert not reply.is_final
        assert reply.tool_calls == [
            ToolCall("c1", "get_weather", {"location": "Paris"}),
            ToolCall("c2", "calculate", {"expression": "2+2"}),
        ]
        message = reply.to_message()
        assert message.tool_calls[0].id == "c1"

    def test_content_alongside_tool_calls_is_kept(self):
        reply = ModelClient.parse_response(
            _response(content="Let me check.", tool_calls=[_raw_call("c1", "echo", "{}")])
        )
        assert reply.content == "Let me check."
        assert len(reply.tool_calls) == 1

    def test_missing_id_is_generated(self):
        reply = ModelClient.parse_response(
            _response(tool_calls=[_raw_call(None, "echo", '{"text": "x"}')])
        )
        assert reply.tool_calls[0].id.startswith("call_")

    def test_empty_arguments(self):
        reply = ModelClient.parse_response(_response(tool_calls=[_raw_call("c1", "echo", "")]))
        assert reply.tool_calls[0].arguments == {}

    def test_usage(self):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        reply = ModelClient.parse_response(_response(content="ok", usage=usage))
        assert reply.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}

    @pytest.mark.parametrize(
        "response",
        [
            SimpleNamespace(choices=[], usage=None),
            _response(content=None),
            _response(content="   "),
            _response(tool_calls=[_raw_call("c1", "echo", "{not json")]),
            _response(tool_calls=[_raw_call("c1", "echo", "[1, 2]")]),
            _response(tool_calls=[_raw_call("c1", "", "{}")]),
            _response(
                tool_calls=[_raw_call("c1", "echo", "{}"), _raw_call("c1", "echo", "{}")]
            ),
        ],
        ids=[
            "no_choices",
            "no_content",
            "blank_content",
            "bad_json",
            "non_object_arguments",
            "no_function_name",
            "duplicate_ids",
        ],
    )
    def test_malformed(self, response):
        with pytest.raises(MalformedReplyError):
            ModelClient.parse_response(response)

    def test_malformed_response_through_complete(self, client, mock_openai):
        _create(mock_openai).return_value = SimpleNamespace(choices=[], usage=None)
        with pytest.raises(MalformedReplyError):
            client.complete(Conversation.seed("Hello"))
