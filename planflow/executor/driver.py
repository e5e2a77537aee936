"""
planflow - Plan Driver

Walks a plan through the step runner under one execution mode and exposes
the operator commands: start, pause, resume, continue_now, retry, skip, stop.

State machine:
    idle    --start-->                     running
    running --advance / delay expiry-->    running (next step)
    running --hold / pause-->              paused
    paused  --resume / retry / skip-->     running
    running --advance past last step-->    finished
    any     --stop-->                      stopped

Commands are plain methods called from the event loop. A pause issued
while a step is in flight is queued and applies once the step finishes.
"""
import asyncio
import time
from typing import Any, Awaitable, Dict, Optional, Tuple
import uuid

from ..config.logging import get_logger, log_error
from . import activity as notices
from .activity import ActivityLogger, Notification, Notifier
from .models import (
    ExecutionLog,
    ExecutionMode,
    LogLevel,
    Plan,
    SessionState,
    Step,
    StepResult,
    StepStatus,
)
from .policy import AUTO_CONTINUE_DELAY, DecisionKind, decide
from .step_runner import StepRunner

logger = get_logger("executor.driver")

SETTLED_STATES = (
    SessionState.IDLE,
    SessionState.PAUSED,
    SessionState.FINISHED,
    SessionState.STOPPED,
)


class SequencingError(Exception):
    """Raised when an operator command is not valid in the current state."""

    def __init__(self, command: str, state: SessionState, reason: str):
        super().__init__(f"Cannot {command} while {state.value}: {reason}")
        self.command = command
        self.state = state
        self.reason = reason


class _AdvanceGate:
    """
    Single-fire gate between the auto-continue timer and the operator.

    Whoever fires first decides: True advances, False holds. Later calls
    are ignored.
    """

    def __init__(self):
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    def fire(self, proceed: bool) -> bool:
        if self._future.done():
            return False
        self._future.set_result(proceed)
        return True

    async def wait(self) -> bool:
        return await self._future


class PlanDriver:
    """
    Sequences plan steps through a StepRunner.

    The driver owns the current index and the session state. Steps in
    `plan.steps` are replaced whole, never edited in place.
    """

    def __init__(
        self,
        plan: Plan,
        runner: StepRunner,
        activity: Optional[ActivityLogger] = None,
        notifier: Optional[Notifier] = None,
        auto_delay: float = AUTO_CONTINUE_DELAY,
        session_id: Optional[str] = None,
    ):
        plan.validate()
        self.plan = plan
        self.session_id = session_id or uuid.uuid4().hex[:8]

        self._runner = runner
        self._activity = activity
        self._notifier = notifier
        self._auto_delay = auto_delay

        self._state = SessionState.IDLE
        self._ended_at: Optional[float] = None
        self._mode: Optional[ExecutionMode] = None
        self._index = 0
        self._log = ExecutionLog()
        self._runner_invocations = 0

        self._task: Optional[asyncio.Task] = None
        self._gate: Optional[_AdvanceGate] = None
        self._pause_requested = False
        self._in_flight: Optional[Tuple[int, Step]] = None

        self._settled = asyncio.Event()
        self._settled.set()

        self._logger = get_logger("executor.driver", session_id=self.session_id)

    # ==================== PROPERTIES ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mode(self) -> Optional[ExecutionMode]:
        return self._mode

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_step(self) -> Optional[Step]:
        if 0 <= self._index < len(self.plan.steps):
            return self.plan.steps[self._index]
        return None

    @property
    def log(self) -> ExecutionLog:
        return self._log

    @property
    def runner_invocations(self) -> int:
        return self._runner_invocations

    @property
    def ended_at(self) -> Optional[float]:
        """Monotonic time the session finished or was stopped."""
        return self._ended_at

    @property
    def awaiting_auto_continue(self) -> bool:
        return self._gate is not None

    # ==================== OPERATOR COMMANDS ====================

    def start(self, mode) -> None:
        """Start the session in the given mode (idle -> running)."""
        if self._state != SessionState.IDLE:
            raise SequencingError("start", self._state, "session already started")
        if not self.plan.steps:
            raise SequencingError("start", self._state, "plan has no steps to execute")

        self._mode = ExecutionMode(mode)
        self._index = 0
        self._set_state(SessionState.RUNNING)
        self._log.add(f"Execution started in {self._mode.value} mode")
        self._record_activity("execution_started", mode=self._mode.value, total_steps=len(self.plan))
        self._spawn(self._run_from(self._index))

    def pause(self) -> None:
        """Stop auto-advancing. Applied before the next step starts."""
        if self._state != SessionState.RUNNING:
            raise SequencingError("pause", self._state, "session is not running")

        if self._gate is not None and self._gate.fire(False):
            self._hold("Execution paused", LogLevel.WARNING)
            return

        self._pause_requested = True
        self._log.add("Pause requested", LogLevel.WARNING)

    def resume(self) -> None:
        """
        Continue without retrying the held step.

        A held step that never ran (paused before it started) is run now;
        otherwise the driver advances past it.
        """
        if self._state != SessionState.PAUSED:
            raise SequencingError("resume", self._state, "session is not paused")

        self._set_state(SessionState.RUNNING)
        self._log.add("Execution resumed")
        if self.current_step.status == StepStatus.PENDING:
            self._spawn(self._run_from(self._index))
        else:
            self._spawn(self._advance_and_run())

    def continue_now(self) -> None:
        """Collapse a pending auto-continue delay, or resume when paused."""
        if self._state == SessionState.PAUSED:
            self.resume()
            return
        if self._state != SessionState.RUNNING or self._gate is None:
            raise SequencingError("continue", self._state, "no step is waiting to continue")
        if self._gate.fire(True):
            self._log.add("Continuing without waiting")

    def retry(self) -> None:
        """Run the held step again on the same index."""
        if self._state != SessionState.PAUSED:
            raise SequencingError("retry", self._state, "no held step to retry")

        step = self.current_step
        self._set_state(SessionState.RUNNING)
        self._log.add(f"Retrying step {self._index + 1}: {step.title}", LogLevel.WARNING)
        self._record_activity("step_retried", step_id=step.step_id, step_index=self._index)
        self._spawn(self._run_from(self._index))

    def skip(self) -> None:
        """Mark the held step skipped and move on without running it again."""
        if self._state != SessionState.PAUSED:
            raise SequencingError("skip", self._state, "no held step to skip")

        index = self._index
        step = self.plan.steps[index]
        if step.status != StepStatus.COMPLETED:
            step = step.skip()
            self.plan.steps[index] = step

        self._set_state(SessionState.RUNNING)
        self._log.add(f"Step {index + 1} skipped", LogLevel.WARNING)
        self._record_activity("step_skipped", step_id=step.step_id, step_index=index)
        self._spawn(self._skip_and_run(step, index))

    def stop(self) -> None:
        """Cancel the session. Terminal; an in-flight result will be discarded."""
        if self._state.is_terminal:
            raise SequencingError("stop", self._state, "session already ended")

        self._set_state(SessionState.STOPPED)
        self._pause_requested = False

        if self._gate is not None:
            self._gate.fire(False)

        if self._in_flight is not None:
            index, original = self._in_flight
            self.plan.steps[index] = original
            self._in_flight = None

        self._log.add("Execution stopped", LogLevel.WARNING)
        self._record_activity("execution_stopped", step_index=self._index)

    async def wait(self) -> SessionState:
        """Wait until the session is paused, finished, stopped or idle."""
        await self._settled.wait()
        return self._state

    async def run(self, mode) -> SessionState:
        """Start and wait for the first settled state."""
        self.start(mode)
        return await self.wait()

    def snapshot(self) -> Dict[str, Any]:
        """Serialisable view of the session."""
        return {
            "session_id": self.session_id,
            "state": self._state.value,
            "mode": self._mode.value if self._mode else None,
            "current_index": self._index,
            "awaiting_auto_continue": self.awaiting_auto_continue,
            "runner_invocations": self._runner_invocations,
            "plan": self.plan.to_dict(),
            "log": self._log.to_list(),
        }

    # ==================== SEGMENTS ====================

    async def _run_from(self, index: int) -> None:
        """Run steps from `index` until a hold, the end of the plan, or stop."""
        while True:
            if self._pause_requested:
                self._index = index
                self._hold("Execution paused", LogLevel.WARNING)
                return

            step = await self._execute(index)
            if step is None:
                return

            decision = decide(self._mode, step.result, self._auto_delay)

            if self._pause_requested:
                self._hold("Execution paused", LogLevel.WARNING)
                return

            if decision.kind == DecisionKind.HOLD_FOR_OPERATOR:
                self._hold(self._hold_message(step))
                return

            if decision.kind == DecisionKind.ADVANCE_AFTER_DELAY:
                if not await self._wait_for_advance(decision.delay_seconds):
                    return
                if self._pause_requested:
                    self._hold("Execution paused", LogLevel.WARNING)
                    return

            if not step.result.is_success:
                self._log.add("Full-auto mode: continuing despite the error", LogLevel.WARNING)

            if not await self._advance():
                return
            index = self._index

    async def _advance_and_run(self) -> None:
        if await self._advance():
            await self._run_from(self._index)

    async def _skip_and_run(self, step: Step, index: int) -> None:
        if step.skipped:
            await self._notify(notices.step_skipped(step.title, index, len(self.plan)))
        if self._state != SessionState.RUNNING:
            return
        await self._advance_and_run()

    async def _execute(self, index: int) -> Optional[Step]:
        """Run one step. Returns None when the result must be discarded."""
        if self._state != SessionState.RUNNING:
            return None

        original = self.plan.steps[index]
        self._index = index
        self._in_flight = (index, original)
        self._runner_invocations += 1
        self._log.add(f"Starting step {index + 1}: {original.title}")

        def publish(step: Step) -> None:
            if self._state == SessionState.RUNNING and self._in_flight is not None:
                self.plan.steps[index] = step

        try:
            finished = await self._runner.run(original, publish, index)
        except Exception as e:
            log_error(self._logger, e, context="step_runner", step_id=original.step_id)
            finished = original.begin().finish(StepResult.error(f"Technical error: {e}"))

        if self._state != SessionState.RUNNING:
            self._logger.info("Discarding result of step %s after stop", original.step_id)
            return None

        self._in_flight = None
        self.plan.steps[index] = finished
        await self._report_step(finished, index)

        if self._state != SessionState.RUNNING:
            return None
        return finished

    async def _wait_for_advance(self, delay: float) -> bool:
        gate = _AdvanceGate()
        self._gate = gate
        handle = asyncio.get_running_loop().call_later(delay, gate.fire, True)
        self._log.add(f"Continuing automatically in {delay:g}s")
        try:
            return await gate.wait()
        finally:
            handle.cancel()
            self._gate = None

    async def _advance(self) -> bool:
        """Move to the next index. Returns False when the plan is finished."""
        if self._state != SessionState.RUNNING:
            return False

        self._index += 1
        if self._index < len(self.plan.steps):
            return True

        self._set_state(SessionState.FINISHED)
        completed = self.plan.completed_count
        total = len(self.plan)
        self._log.add(f"Execution finished: {completed}/{total} steps completed", LogLevel.SUCCESS)
        self._record_activity(
            "plan_completed",
            completed=completed,
            skipped=self.plan.skipped_count,
            errors=self.plan.error_count,
            total=total,
        )
        await self._notify(notices.plan_completed(total, completed))
        return False

    # ==================== HELPERS ====================

    def _spawn(self, coro: Awaitable[None]) -> None:
        self._task = asyncio.get_running_loop().create_task(self._guarded(coro))

    async def _guarded(self, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception as e:
            log_error(self._logger, e, context="plan_driver", step_index=self._index)
            if self._state == SessionState.RUNNING:
                self._in_flight = None
                self._hold(f"Internal error: {e}", LogLevel.ERROR)

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if state.is_terminal and self._ended_at is None:
            self._ended_at = time.monotonic()
        if state in SETTLED_STATES:
            self._settled.set()
        else:
            self._settled.clear()

    def _hold(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self._pause_requested = False
        self._set_state(SessionState.PAUSED)
        self._log.add(message, level)

    def _hold_message(self, step: Step) -> str:
        if self._mode == ExecutionMode.MANUAL:
            return "Manual mode: waiting for operator confirmation"
        return f"Step {self._index + 1} needs attention: retry or skip"

    async def _report_step(self, step: Step, index: int) -> None:
        result = step.result
        details = {
            "step_id": step.step_id,
            "step_index": index,
            "classification": result.classification.value,
            "attempt": step.attempts,
        }
        if result.is_success:
            self._log.add(f"Step {index + 1} completed successfully", LogLevel.SUCCESS)
            self._record_activity("step_completed", **details)
            await self._notify(notices.step_completed(step.title, index, len(self.plan)))
        else:
            self._log.add(f"Step {index + 1} failed: {result.message}", LogLevel.ERROR)
            self._record_activity("step_failed", **details)

    def _record_activity(self, action: str, **details) -> None:
        if self._activity is None:
            return
        try:
            self._activity.log_activity(action, {"session_id": self.session_id, **details})
        except Exception:
            self._logger.warning("Activity logger failed for %s", action, exc_info=True)

    async def _notify(self, notification: Notification) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(notification)
        except Exception:
            self._logger.warning("Notifier failed for %s", notification.title, exc_info=True)
