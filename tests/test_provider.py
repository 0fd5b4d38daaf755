import pytest
from unittest.mock import MagicMock

import httpx
from openai import APITimeoutError

from tool_loop.errors import ProviderError
from tool_loop.models import ChatMessage, ChatRequest
from tool_loop.provider import OpenAIChatProvider

REQUEST = ChatRequest(
    model="test-model",
    messages=[ChatMessage(role="user", content="hi")],
    max_tokens=100,
    temperature=0.2,
)


def _completion(content, prompt_tokens=12, completion_tokens=5):
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = content
    completion.usage.prompt_tokens = prompt_tokens
    completion.usage.completion_tokens = completion_tokens
    completion.model = "test-model"
    return completion


def test_chat_maps_request_and_response():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("  Hello there.  ")
    provider = OpenAIChatProvider(api_key="k", client=client)

    response = provider.chat(REQUEST)

    client.chat.completions.create.assert_called_once_with(
        model="test-model",
        messages=[{"role": "user", "content": "hi"}],
        max_tokens=100,
        temperature=0.2,
    )
    assert response.content == "Hello there."
    assert response.provider == "openai-compatible"
    assert response.usage.input_tokens == 12
    assert response.usage.output_tokens == 5


def test_empty_content_becomes_empty_string():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(None)
    assert OpenAIChatProvider(api_key="k", client=client).chat(REQUEST).content == ""


def test_timeout_raises_provider_error():
    client = MagicMock()
    client.chat.completions.create.side_effect = APITimeoutError(
        request=httpx.Request("POST", "https://example.invalid/chat/completions")
    )
    with pytest.raises(ProviderError, match="Model provider error"):
        OpenAIChatProvider(api_key="k", client=client).chat(REQUEST)


def test_builds_client_with_timeout():
    provider = OpenAIChatProvider(api_key="k", base_url="https://example.invalid/v1", timeout=12)
    assert provider._client.timeout.read == 12
    assert provider._client.max_retries == 0
