"""
API Dependencies

LLM client, session registry and step runner construction.
"""

import time
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException

from ..config.logging import get_logger
from ..config.settings import settings
from ..executor import (
    HttpActionInvoker,
    KeywordResultClassifier,
    LLMResultClassifier,
    MemoryNotifier,
    PlanDriver,
    StepRunner,
)
from ..llm import FallbackLLMClient

logger = get_logger("api.sessions")


# =============================================================================
# LLM
# =============================================================================

_llm: Optional[FallbackLLMClient] = None


def get_llm() -> FallbackLLMClient:
    """Get the fallback LLM client built from settings."""
    global _llm
    if _llm is None:
        _llm = FallbackLLMClient.from_settings(settings.llm)
    return _llm


# =============================================================================
# Sessions
# =============================================================================

class SessionRecord:
    """A running driver and the notifications it produced."""

    def __init__(self, driver: PlanDriver, notifier: MemoryNotifier):
        self.driver = driver
        self.notifier = notifier


class SessionRegistry:
    """
    In-memory session store. Sessions do not survive a restart.

    Ended sessions stay readable for `ttl_seconds`, and the oldest ended
    ones are dropped first once `max_sessions` is reached. Live sessions
    are never evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sessions: Dict[str, SessionRecord] = {}
        self._ttl = ttl_seconds
        self._max = max_sessions
        self._clock = clock

    def add(self, record: SessionRecord) -> None:
        self.prune(room=1)
        self._sessions[record.driver.session_id] = record

    def prune(self, room: int = 0) -> int:
        """Evict expired ended sessions, then the oldest ended ones over the cap."""
        ended = sorted(
            (r for r in self._sessions.values() if r.driver.ended_at is not None),
            key=lambda r: r.driver.ended_at,
        )
        now = self._clock()
        overflow = len(self._sessions) + room - self._max

        evicted = 0
        for record in ended:
            if now - record.driver.ended_at < self._ttl and evicted >= overflow:
                break
            del self._sessions[record.driver.session_id]
            evicted += 1

        if evicted:
            logger.info("Evicted %d ended sessions", evicted, extra={"extra_data": {"remaining": len(self)}})
        return evicted

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def stop_all(self) -> int:
        """Stop every session that has not ended. Returns how many were stopped."""
        stopped = 0
        for record in self._sessions.values():
            if not record.driver.state.is_terminal:
                record.driver.stop()
                stopped += 1
        return stopped

    def __len__(self) -> int:
        return len(self._sessions)


_registry: Optional[SessionRegistry] = None


def get_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry(
            ttl_seconds=settings.execution.session_ttl_seconds,
            max_sessions=settings.execution.max_sessions,
        )
    return _registry


RunnerFactory = Callable[[Optional[str]], StepRunner]


def get_runner_factory(llm: FallbackLLMClient = Depends(get_llm)) -> RunnerFactory:
    """Build step runners that call the configured functions endpoint."""

    def factory(project_id: Optional[str]) -> StepRunner:
        invoker = HttpActionInvoker(
            settings.execution.functions_url,
            api_key=settings.execution.functions_key,
            timeout_seconds=settings.execution.action_timeout_seconds,
        )
        if llm.is_configured:
            classifier = LLMResultClassifier(llm)
        else:
            classifier = KeywordResultClassifier()
        return StepRunner(invoker, classifier, project_id=project_id)

    return factory


def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionRecord:
    record = registry.get(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return record
