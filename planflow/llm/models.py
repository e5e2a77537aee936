"""
planflow - LLM Models

Provider-neutral request and response types. Providers translate these to
their own wire format, so nothing above `planflow.llm` sees vendor payloads.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LLMProvider(str, Enum):
    OPENAI = "openai"
    GROQ = "groq"
    ANTHROPIC = "anthropic"
    MOCK = "mock"  # tests only


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(MessageRole.USER, content)

    def to_dict(self) -> Dict[str, str]:
        """Chat-completions shape, also accepted by the Anthropic SDK."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class LLMRequest:
    """
    One completion call.

    `purpose` tags the call in logs (plan_execution, response_analysis,
    step_classification). `model` None lets each provider use its default.
    """
    messages: List[Message] = field(default_factory=list)
    temperature: float = 0.3
    max_tokens: int = 1000
    model: Optional[str] = None
    purpose: Optional[str] = None

    @property
    def prompt_length(self) -> int:
        return sum(len(message.content) for message in self.messages)


@dataclass
class LLMResponse:
    content: str
    model: str
    provider: LLMProvider
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: Optional[str] = None
    latency_ms: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["provider"] = self.provider.value
        data["total_tokens"] = self.total_tokens
        return data
