"""
planflow - Configuration Settings
"""
import os
from dataclasses import dataclass, field
from typing import Optional


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


@dataclass
class ExecutionSettings:
    """Plan execution configuration."""
    functions_url: str = "http://localhost:8000/functions"
    functions_key: Optional[str] = None
    action_timeout_seconds: float = 90.0
    auto_continue_delay_seconds: float = 3.0

    # Ended sessions are kept for reads until evicted
    session_ttl_seconds: float = 3600.0
    max_sessions: int = 1000

    @classmethod
    def from_env(cls) -> "ExecutionSettings":
        return cls(
            functions_url=os.environ.get("PLANFLOW_FUNCTIONS_URL", cls.functions_url),
            functions_key=os.environ.get("PLANFLOW_FUNCTIONS_KEY") or None,
            action_timeout_seconds=_env_float("PLANFLOW_ACTION_TIMEOUT", cls.action_timeout_seconds),
            auto_continue_delay_seconds=_env_float(
                "PLANFLOW_AUTO_CONTINUE_DELAY", cls.auto_continue_delay_seconds
            ),
            session_ttl_seconds=_env_float("PLANFLOW_SESSION_TTL", cls.session_ttl_seconds),
            max_sessions=_env_int("PLANFLOW_MAX_SESSIONS", cls.max_sessions),
        )


@dataclass
class LLMSettings:
    """LLM provider configuration."""
    openai_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    openai_model: str = "gpt-4o-mini"
    groq_model: str = "llama-3.1-70b-versatile"
    anthropic_model: str = "claude-3-5-haiku-20241022"

    request_timeout_seconds: float = 60.0

    # Circuit breaker
    failure_threshold: int = 5
    window_seconds: float = 60.0
    open_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            groq_api_key=os.environ.get("GROQ_API_KEY") or None,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
            openai_model=os.environ.get("PLANFLOW_OPENAI_MODEL", cls.openai_model),
            groq_model=os.environ.get("PLANFLOW_GROQ_MODEL", cls.groq_model),
            anthropic_model=os.environ.get("PLANFLOW_ANTHROPIC_MODEL", cls.anthropic_model),
            request_timeout_seconds=_env_float("PLANFLOW_LLM_TIMEOUT", cls.request_timeout_seconds),
            failure_threshold=_env_int("PLANFLOW_BREAKER_THRESHOLD", cls.failure_threshold),
            window_seconds=_env_float("PLANFLOW_BREAKER_WINDOW", cls.window_seconds),
            open_timeout_seconds=_env_float("PLANFLOW_BREAKER_OPEN_TIMEOUT", cls.open_timeout_seconds),
        )


@dataclass
class Settings:
    """Main settings container."""
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    llm: LLMSettings = field(default_factory=LLMSettings)
    app_env: str = "production"
    log_level: str = "INFO"

    @property
    def debug(self) -> bool:
        return self.app_env.lower() in ("development", "dev")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            execution=ExecutionSettings.from_env(),
            llm=LLMSettings.from_env(),
            app_env=os.environ.get("APP_ENV", "production"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )


# Global settings instance
settings = Settings.from_env()
