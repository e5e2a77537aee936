"""
planflow - LLM Providers

OpenAI-compatible chat completions (OpenAI, Groq) over httpx and Anthropic
through its SDK.
"""
import time
from typing import Optional, Protocol

import anthropic
import httpx

from .models import LLMProvider, LLMRequest, LLMResponse, MessageRole


class LLMError(Exception):
    """Base LLM error."""
    pass


class LLMProviderError(LLMError):
    """A single provider call failed."""

    def __init__(self, provider: LLMProvider, message: str, status: Optional[int] = None):
        super().__init__(f"{provider.value}: {message}")
        self.provider = provider
        self.status = status


class Provider(Protocol):
    name: LLMProvider

    async def complete(self, request: LLMRequest) -> LLMResponse:
        ...


class OpenAICompatibleProvider:
    """Chat completions API as exposed by OpenAI and Groq."""

    OPENAI_URL = "https://api.openai.com/v1/chat/completions"
    GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        default_model: str,
        api_url: str = OPENAI_URL,
        name: LLMProvider = LLMProvider.OPENAI,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError(f"{name.value} API key required")
        self.name = name
        self._api_key = api_key
        self._default_model = default_model
        self._api_url = api_url
        self._timeout = timeout_seconds
        self._transport = transport

    @classmethod
    def openai(cls, api_key: str, model: str = "gpt-4o-mini", **kwargs) -> "OpenAICompatibleProvider":
        return cls(api_key, model, api_url=cls.OPENAI_URL, name=LLMProvider.OPENAI, **kwargs)

    @classmethod
    def groq(cls, api_key: str, model: str = "llama-3.1-70b-versatile", **kwargs) -> "OpenAICompatibleProvider":
        return cls(api_key, model, api_url=cls.GROQ_URL, name=LLMProvider.GROQ, **kwargs)

    async def complete(self, request: LLMRequest) -> LLMResponse:
        model = request.model or self._default_model
        payload = {
            "model": model,
            "messages": [m.to_dict() for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise LLMProviderError(self.name, f"request failed: {e}") from e

        if response.status_code != 200:
            raise LLMProviderError(
                self.name,
                f"API error {response.status_code}: {response.text[:200]}",
                status=response.status_code,
            )

        try:
            result = response.json()
            choice = result["choices"][0]
            content = choice["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMProviderError(self.name, f"unexpected response shape: {e}") from e

        usage = result.get("usage") or {}
        return LLMResponse(
            content=content,
            model=model,
            provider=self.name,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            finish_reason=choice.get("finish_reason"),
            latency_ms=int((time.perf_counter() - start) * 1000),
        )


class AnthropicProvider:
    """Anthropic Messages API."""

    name = LLMProvider.ANTHROPIC

    def __init__(
        self,
        api_key: str,
        default_model: str = "claude-3-5-haiku-20241022",
        timeout_seconds: float = 60.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        if not api_key and client is None:
            raise ValueError("Anthropic API key required")
        self._default_model = default_model
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_seconds)

    async def complete(self, request: LLMRequest) -> LLMResponse:
        model = request.model or self._default_model

        system_prompt = None
        messages = []
        for msg in request.messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content
            else:
                messages.append(msg.to_dict())

        kwargs = {
            "model": model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        start = time.perf_counter()
        try:
            message = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise LLMProviderError(self.name, str(e), status=getattr(e, "status_code", None)) from e

        content = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        usage = message.usage
        return LLMResponse(
            content=content,
            model=model,
            provider=self.name,
            input_tokens=getattr(usage, "input_tokens", 0),
            output_tokens=getattr(usage, "output_tokens", 0),
            finish_reason=message.stop_reason,
            latency_ms=int((time.perf_counter() - start) * 1000),
        )
