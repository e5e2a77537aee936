"""
planflow - Fallback LLM Client

Tries providers in order (OpenAI first, then Groq, then Anthropic) and
returns the first successful completion. Each provider sits behind its own
circuit breaker.
"""
import time
from typing import List, Optional, Sequence, Tuple

from ..config.logging import get_logger, log_ai_request
from ..config.settings import LLMSettings
from .circuit_breaker import CircuitBreaker, CircuitOpenError
from .models import LLMRequest, LLMResponse
from .providers import (
    AnthropicProvider,
    LLMError,
    OpenAICompatibleProvider,
    Provider,
)

logger = get_logger("llm.client")


class NoProviderAvailable(LLMError):
    """No provider configured, or every provider failed."""

    def __init__(self, message: str, errors: Optional[List[Exception]] = None):
        super().__init__(message)
        self.errors = errors or []


class FallbackLLMClient:
    """
    LLM client with ordered provider fallback.

    Args:
        providers: Providers in priority order.
        breakers: Optional breakers, one per provider; created if omitted.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        breakers: Optional[Sequence[CircuitBreaker]] = None,
    ):
        if breakers is not None and len(breakers) != len(providers):
            raise ValueError("One circuit breaker per provider required")
        if breakers is None:
            breakers = [CircuitBreaker(name=p.name.value) for p in providers]
        self._chain: List[Tuple[Provider, CircuitBreaker]] = list(zip(providers, breakers))

    @classmethod
    def from_settings(cls, llm: LLMSettings) -> "FallbackLLMClient":
        """Build the provider chain from whatever API keys are configured."""
        providers: List[Provider] = []
        if llm.openai_api_key:
            providers.append(OpenAICompatibleProvider.openai(
                llm.openai_api_key, llm.openai_model, timeout_seconds=llm.request_timeout_seconds,
            ))
        if llm.groq_api_key:
            providers.append(OpenAICompatibleProvider.groq(
                llm.groq_api_key, llm.groq_model, timeout_seconds=llm.request_timeout_seconds,
            ))
        if llm.anthropic_api_key:
            providers.append(AnthropicProvider(
                llm.anthropic_api_key, llm.anthropic_model, timeout_seconds=llm.request_timeout_seconds,
            ))

        breakers = [
            CircuitBreaker(
                name=p.name.value,
                failure_threshold=llm.failure_threshold,
                window_seconds=llm.window_seconds,
                open_timeout_seconds=llm.open_timeout_seconds,
            )
            for p in providers
        ]
        return cls(providers, breakers)

    @property
    def providers(self) -> List[Provider]:
        return [p for p, _ in self._chain]

    @property
    def is_configured(self) -> bool:
        return bool(self._chain)

    def breaker_for(self, provider: Provider) -> CircuitBreaker:
        for p, breaker in self._chain:
            if p is provider:
                return breaker
        raise KeyError(provider.name.value)

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Get a completion from the first provider that answers.

        Raises:
            NoProviderAvailable: If no provider is configured or all failed
        """
        if not self._chain:
            raise NoProviderAvailable("No AI API keys configured")

        errors: List[Exception] = []
        for provider, breaker in self._chain:
            try:
                breaker.check()
            except CircuitOpenError as e:
                logger.info("Skipping %s: circuit open", provider.name.value)
                errors.append(e)
                continue

            start = time.perf_counter()
            try:
                response = await provider.complete(request)
            except LLMError as e:
                breaker.record_failure()
                logger.warning(
                    "%s failed, trying next provider: %s", provider.name.value, e,
                )
                errors.append(e)
                continue

            breaker.record_success()
            log_ai_request(
                logger, request, response,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            return response

        raise NoProviderAvailable(
            "All AI providers failed: " + "; ".join(str(e) for e in errors),
            errors=errors,
        )
