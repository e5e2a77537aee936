"""
planflow - LLM layer

Providers, circuit breakers and the fallback client used by the result
classifier and the analyze-response function.
"""
from .models import LLMProvider, MessageRole, Message, LLMRequest, LLMResponse
from .circuit_breaker import CircuitBreaker, CircuitState, CircuitOpenError
from .providers import (
    LLMError,
    LLMProviderError,
    OpenAICompatibleProvider,
    AnthropicProvider,
)
from .client import FallbackLLMClient, NoProviderAvailable
from .prompts import parse_json_object, keyword_verdict

__all__ = [
    # Models
    "LLMProvider",
    "MessageRole",
    "Message",
    "LLMRequest",
    "LLMResponse",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitState",
    "CircuitOpenError",
    # Providers
    "LLMError",
    "LLMProviderError",
    "OpenAICompatibleProvider",
    "AnthropicProvider",
    # Client
    "FallbackLLMClient",
    "NoProviderAvailable",
    # Prompts
    "parse_json_object",
    "keyword_verdict",
]
