# provider.py
# Model provider boundary. The loop only ever calls chat(request) -> response.

import logging
from typing import Protocol

import httpx
from openai import OpenAI, OpenAIError

from tool_loop.errors import ProviderError
from tool_loop.models import ChatRequest, ChatResponse, Usage

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TIMEOUT = 90.0
CONNECT_TIMEOUT = 10.0


class ChatProvider(Protocol):
    name: str

    def chat(self, request: ChatRequest) -> ChatResponse: ...


class OpenAIChatProvider:
    """
    Non-streaming chat against any OpenAI-compatible endpoint.

    The per-call timeout is the only timeout the loop has. Failures are
    raised as ProviderError; the client's own retries are disabled so the
    caller sees one attempt per call.
    """

    name = "openai-compatible"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: OpenAI | None = None,
    ) -> None:
        self._client = client or OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT),
            max_retries=0,
        )

    def chat(self, request: ChatRequest) -> ChatResponse:
        try:
            response = self._client.chat.completions.create(
                model=request.model,
                messages=[m.model_dump() for m in request.messages],
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        except OpenAIError as exc:
            logger.error("Provider call failed for model %s: %s", request.model, exc)
            raise ProviderError(f"Model provider error: {exc}") from exc

        content = ""
        if response.choices:
            content = (response.choices[0].message.content or "").strip()

        usage = Usage()
        if response.usage is not None:
            usage = Usage(
                input_tokens=response.usage.prompt_tokens or 0,
                output_tokens=response.usage.completion_tokens or 0,
            )

        return ChatResponse(
            content=content,
            model=response.model or request.model,
            provider=self.name,
            usage=usage,
        )
