"""
Shared pytest fixtures and fakes for the planflow test suite.

Module-level defaults: individual test classes may override
with their own class-level fixtures (pytest priority: class > conftest).
"""
import asyncio
from typing import Dict, List, Optional

import pytest

from planflow.executor import (
    ActionRequest,
    ActionResponse,
    ActionTransportError,
    ClassificationRequest,
    MemoryNotifier,
    Plan,
    Step,
    StepResult,
    StepRunner,
)


# =============================================================================
# Fakes
# =============================================================================

class FakeInvoker:
    """Action invoker returning canned responses keyed by step id."""

    def __init__(self, responses: Optional[Dict[str, object]] = None, default: str = "done"):
        self.responses = responses or {}
        self.default = default
        self.calls: List[ActionRequest] = []

    async def invoke(self, request: ActionRequest) -> ActionResponse:
        self.calls.append(request)
        outcome = self.responses.get(request.step_id, self.default)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ActionResponse):
            return outcome
        return ActionResponse(raw_result=outcome)


class BlockingInvoker(FakeInvoker):
    """Invoker that waits on an event before answering."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = asyncio.Event()
        self.entered = asyncio.Event()

    async def invoke(self, request: ActionRequest) -> ActionResponse:
        self.entered.set()
        await self.release.wait()
        return await super().invoke(request)


class FakeClassifier:
    """
    Classifier driven by the raw response text.

    "ok..." -> success, "fail..." -> error, anything else -> ambiguous.
    """

    def __init__(self, raises: Optional[Exception] = None):
        self.raises = raises
        self.calls: List[ClassificationRequest] = []

    async def classify(self, request: ClassificationRequest) -> StepResult:
        self.calls.append(request)
        if self.raises is not None:
            raise self.raises
        text = request.raw_response
        if text.startswith("ok"):
            return StepResult.success(text)
        if text.startswith("fail"):
            return StepResult.error(text)
        return StepResult.ambiguous(text)


class FailingActivityLogger:
    def log_activity(self, action, details):
        raise RuntimeError("activity store down")


class RecordingActivityLogger:
    def __init__(self):
        self.events = []

    def log_activity(self, action, details):
        self.events.append((action, details))

    @property
    def actions(self):
        return [action for action, _ in self.events]


async def until(predicate, timeout: float = 1.0) -> None:
    """Poll the event loop until predicate() is true."""

    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


# =============================================================================
# Fixtures
# =============================================================================

def make_plan(*ids: str) -> Plan:
    """Plan with one step per id."""
    steps = [
        Step(step_id=step_id, title=f"Step {step_id}", prompt=f"Do {step_id}")
        for step_id in ids
    ]
    return Plan.create(steps=steps, project_id="proj-1")


@pytest.fixture
def plan():
    return make_plan("a", "b", "c")


@pytest.fixture
def invoker():
    return FakeInvoker(default="ok")


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def runner(invoker, classifier):
    return StepRunner(invoker, classifier, project_id="proj-1")


@pytest.fixture
def notifier():
    return MemoryNotifier()


@pytest.fixture
def activity():
    return RecordingActivityLogger()


@pytest.fixture
def transport_error():
    return ActionTransportError("HTTP 502", status=502)
