"""
Sessions API

Start a plan execution session and drive it with operator commands.
"""

from dataclasses import replace
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..config.logging import get_logger
from ..config.settings import settings
from ..executor import (
    LoggingActivityLogger,
    MemoryNotifier,
    Plan,
    PlanDriver,
    SequencingError,
    Step,
)
from .deps import (
    RunnerFactory,
    SessionRecord,
    SessionRegistry,
    get_registry,
    get_runner_factory,
    get_session,
)
from .models import SessionCreate, SessionResponse

logger = get_logger("api.sessions")

router = APIRouter(prefix="/sessions", tags=["sessions"])

COMMANDS = {
    "pause": PlanDriver.pause,
    "resume": PlanDriver.resume,
    "continue": PlanDriver.continue_now,
    "retry": PlanDriver.retry,
    "skip": PlanDriver.skip,
    "stop": PlanDriver.stop,
}


def _to_response(record: SessionRecord) -> Dict[str, Any]:
    data = record.driver.snapshot()
    data["notifications"] = [n.to_dict() for n in record.notifier.notifications]
    return data


def _build_plan(data: SessionCreate) -> Plan:
    steps = []
    for item in data.steps:
        step = Step.create(title=item.title, prompt=item.prompt, description=item.description)
        if item.id:
            step = replace(step, step_id=item.id)
        steps.append(step)
    return Plan.create(steps=steps, project_id=data.projectId)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    data: SessionCreate,
    registry: SessionRegistry = Depends(get_registry),
    runner_factory: RunnerFactory = Depends(get_runner_factory),
):
    """Create a session for the plan and start it in the requested mode."""
    plan = _build_plan(data)
    delay = data.autoDelaySeconds
    if delay is None:
        delay = settings.execution.auto_continue_delay_seconds

    notifier = MemoryNotifier()
    try:
        driver = PlanDriver(
            plan,
            runner_factory(data.projectId),
            activity=LoggingActivityLogger(project_id=data.projectId),
            notifier=notifier,
            auto_delay=delay,
        )
        driver.start(data.mode)
    except (ValueError, SequencingError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    record = SessionRecord(driver, notifier)
    registry.add(record)
    logger.info("Session %s started: %d steps, %s mode", driver.session_id, len(plan), data.mode.value)
    return _to_response(record)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_state(record: SessionRecord = Depends(get_session)):
    """Current state, step list and execution log of a session."""
    return _to_response(record)


@router.post("/{session_id}/{command}", response_model=SessionResponse)
async def send_command(command: str, record: SessionRecord = Depends(get_session)):
    """Apply an operator command: pause, resume, continue, retry, skip or stop."""
    handler = COMMANDS.get(command)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown command: {command}")

    try:
        handler(record.driver)
    except SequencingError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("Session %s: %s", record.driver.session_id, command)
    return _to_response(record)


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    record: SessionRecord = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Stop the session if still active and forget it."""
    if not record.driver.state.is_terminal:
        record.driver.stop()
    registry.remove(record.driver.session_id)
