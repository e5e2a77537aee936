"""
Tests for PlanDriver: sequencing, modes and operator commands

Run with: pytest -q
"""
import asyncio

import pytest

from planflow.executor import (
    ExecutionMode,
    Plan,
    PlanDriver,
    SequencingError,
    SessionState,
    Step,
    StepRunner,
    StepStatus,
)

from conftest import (
    BlockingInvoker,
    FailingActivityLogger,
    FakeClassifier,
    FakeInvoker,
    make_plan,
    until,
)


async def settle(driver: PlanDriver, timeout: float = 2.0) -> SessionState:
    return await asyncio.wait_for(driver.wait(), timeout)


def messages(driver: PlanDriver):
    return [e.message for e in driver.log.entries]


class ExplodingRunner:
    """Runner that raises instead of returning a step."""

    def __init__(self):
        self.calls = 0

    async def run(self, step, publish, index=None):
        self.calls += 1
        raise RuntimeError("runner crashed")


class BlockingNotifier:
    """Notifier that holds the "Step skipped" notice until released."""

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.titles = []

    async def notify(self, notification):
        self.titles.append(notification.title)
        if notification.title == "Step skipped":
            self.entered.set()
            await self.release.wait()


# ==================== FULL-AUTO ====================

class TestFullAuto:
    """full-auto: never waits for the operator."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 3, 5])
    async def test_finishes_after_n_invocations(self, size, runner):
        plan = make_plan(*[f"s{i}" for i in range(size)])
        driver = PlanDriver(plan, runner)

        state = await asyncio.wait_for(driver.run(ExecutionMode.FULL_AUTO), 2)

        assert state == SessionState.FINISHED
        assert driver.runner_invocations == size
        assert plan.in_progress_count == 0
        assert plan.completed_count == size

    @pytest.mark.asyncio
    async def test_continues_past_failures(self):
        invoker = FakeInvoker(responses={"b": "fail: build broke", "c": "weird"}, default="ok")
        plan = make_plan("a", "b", "c", "d")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()))

        state = await asyncio.wait_for(driver.run("full-auto"), 2)

        assert state == SessionState.FINISHED
        assert driver.runner_invocations == 4
        assert [s.status for s in plan.steps] == [
            StepStatus.COMPLETED, StepStatus.ERROR, StepStatus.ERROR, StepStatus.COMPLETED,
        ]
        assert "Full-auto mode: continuing despite the error" in messages(driver)

    @pytest.mark.asyncio
    async def test_transport_failures_still_finish(self, transport_error):
        invoker = FakeInvoker(default=transport_error)
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()))

        state = await asyncio.wait_for(driver.run("full-auto"), 2)

        assert state == SessionState.FINISHED
        assert plan.error_count == 2
        assert "HTTP 502" in plan.steps[0].result.message

    @pytest.mark.asyncio
    async def test_runner_exception_is_contained(self):
        runner = ExplodingRunner()
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, runner)

        state = await asyncio.wait_for(driver.run("full-auto"), 2)

        assert state == SessionState.FINISHED
        assert runner.calls == 2
        assert plan.steps[0].status == StepStatus.ERROR
        assert "runner crashed" in plan.steps[0].result.message

    @pytest.mark.asyncio
    async def test_notifications(self, runner, notifier):
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, runner, notifier=notifier)

        await asyncio.wait_for(driver.run("full-auto"), 2)

        titles = [n.title for n in notifier.notifications]
        assert titles == ["Step completed", "Step completed", "Plan finished"]
        assert notifier.notifications[-1].metadata["completed_steps"] == 2

    @pytest.mark.asyncio
    async def test_activity_records_lifecycle(self, runner, activity):
        driver = PlanDriver(make_plan("a"), runner, activity=activity, session_id="sess-1")

        await asyncio.wait_for(driver.run("full-auto"), 2)

        assert activity.actions == ["execution_started", "step_completed", "plan_completed"]
        assert all(details["session_id"] == "sess-1" for _, details in activity.events)

    @pytest.mark.asyncio
    async def test_failing_activity_logger_does_not_stop_execution(self, runner):
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, runner, activity=FailingActivityLogger())

        state = await asyncio.wait_for(driver.run("full-auto"), 2)

        assert state == SessionState.FINISHED
        assert plan.completed_count == 2


# ==================== MANUAL ====================

class TestManual:
    """manual: holds after every step."""

    @pytest.mark.asyncio
    async def test_holds_after_each_step(self, runner, plan):
        driver = PlanDriver(plan, runner)

        state = await asyncio.wait_for(driver.run("manual"), 2)

        assert state == SessionState.PAUSED
        assert driver.current_index == 0
        assert driver.runner_invocations == 1
        assert plan.steps[0].status == StepStatus.COMPLETED
        assert plan.steps[1].status == StepStatus.PENDING
        assert "Manual mode: waiting for operator confirmation" in messages(driver)

    @pytest.mark.asyncio
    async def test_continue_walks_the_plan(self, runner, plan):
        driver = PlanDriver(plan, runner)
        await asyncio.wait_for(driver.run("manual"), 2)

        driver.continue_now()
        assert await settle(driver) == SessionState.PAUSED
        assert driver.current_index == 1

        driver.resume()
        assert await settle(driver) == SessionState.PAUSED
        assert driver.current_index == 2

        driver.continue_now()
        assert await settle(driver) == SessionState.FINISHED
        assert driver.runner_invocations == 3

    @pytest.mark.asyncio
    async def test_resume_does_not_retry_failed_step(self):
        invoker = FakeInvoker(responses={"a": "fail"}, default="ok")
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()))
        await asyncio.wait_for(driver.run("manual"), 2)

        driver.resume()
        await settle(driver)

        assert plan.steps[0].status == StepStatus.ERROR
        assert plan.steps[0].attempts == 1
        assert driver.current_index == 1
        assert [c.step_id for c in invoker.calls] == ["a", "b"]


# ==================== AUTO ====================

class TestAuto:
    """auto: delayed advance on success, hold on anything else."""

    @pytest.mark.asyncio
    async def test_all_success_finishes(self, runner, plan):
        driver = PlanDriver(plan, runner, auto_delay=0.01)

        state = await asyncio.wait_for(driver.run("auto"), 2)

        assert state == SessionState.FINISHED
        assert driver.runner_invocations == 3

    @pytest.mark.asyncio
    async def test_waits_for_delay(self, runner, plan):
        driver = PlanDriver(plan, runner, auto_delay=10)
        driver.start("auto")

        await until(lambda: driver.awaiting_auto_continue)

        assert driver.state == SessionState.RUNNING
        assert driver.current_index == 0
        assert driver.runner_invocations == 1
        driver.stop()

    @pytest.mark.asyncio
    async def test_continue_now_skips_the_delay(self, runner):
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, runner, auto_delay=10)
        driver.start("auto")

        await until(lambda: driver.awaiting_auto_continue)
        driver.continue_now()
        await until(lambda: driver.runner_invocations == 2 and driver.awaiting_auto_continue)
        driver.continue_now()

        assert await settle(driver) == SessionState.FINISHED
        assert driver.runner_invocations == 2

    @pytest.mark.asyncio
    async def test_continue_now_and_timer_advance_once(self, runner, invoker):
        plan = make_plan("a", "b", "c")
        driver = PlanDriver(plan, runner, auto_delay=0.02)
        driver.start("auto")

        await until(lambda: driver.awaiting_auto_continue)
        driver.continue_now()
        driver.continue_now()

        assert await settle(driver) == SessionState.FINISHED
        await asyncio.sleep(0.05)
        assert driver.runner_invocations == 3
        assert driver.current_index == 3
        assert [c.step_id for c in invoker.calls] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_pause_during_delay_holds(self, runner, plan):
        driver = PlanDriver(plan, runner, auto_delay=10)
        driver.start("auto")

        await until(lambda: driver.awaiting_auto_continue)
        driver.pause()

        assert driver.state == SessionState.PAUSED
        assert await settle(driver) == SessionState.PAUSED
        assert driver.current_index == 0
        assert driver.runner_invocations == 1

    @pytest.mark.asyncio
    async def test_failure_holds(self):
        invoker = FakeInvoker(responses={"b": "fail: missing table"}, default="ok")
        plan = make_plan("a", "b", "c")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()), auto_delay=0.01)

        state = await asyncio.wait_for(driver.run("auto"), 2)

        assert state == SessionState.PAUSED
        assert driver.current_index == 1
        assert plan.steps[1].status == StepStatus.ERROR
        assert "Step 2 needs attention: retry or skip" in messages(driver)

    @pytest.mark.asyncio
    async def test_ambiguous_holds(self):
        invoker = FakeInvoker(responses={"a": "not sure what happened"})
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()), auto_delay=0.01)

        assert await asyncio.wait_for(driver.run("auto"), 2) == SessionState.PAUSED
        assert driver.current_index == 0

    @pytest.mark.asyncio
    async def test_skip_failed_step_scenario(self, notifier):
        invoker = FakeInvoker(responses={"b": "fail: build error"}, default="ok")
        plan = make_plan("a", "b", "c")
        driver = PlanDriver(
            plan, StepRunner(invoker, FakeClassifier()), notifier=notifier, auto_delay=0.01,
        )

        assert await asyncio.wait_for(driver.run("auto"), 2) == SessionState.PAUSED
        assert driver.current_index == 1

        driver.skip()

        assert await settle(driver) == SessionState.FINISHED
        assert driver.runner_invocations == 3
        assert [c.step_id for c in invoker.calls] == ["a", "b", "c"]
        assert plan.steps[1].status == StepStatus.ERROR
        assert plan.steps[1].skipped is True
        assert plan.steps[2].status == StepStatus.COMPLETED
        assert plan.progress_percent == 67
        assert "Step skipped" in [n.title for n in notifier.notifications]


# ==================== RETRY / SKIP ====================

class TestRetryAndSkip:
    """Operator recovery commands on a held step."""

    @pytest.mark.asyncio
    async def test_retry_reruns_same_index(self):
        invoker = FakeInvoker(responses={"b": ["fail: timeout", "fail: again"]}, default="ok")
        plan = make_plan("a", "b", "c")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()))
        await asyncio.wait_for(driver.run("manual"), 2)
        driver.continue_now()
        await settle(driver)
        before_a, before_c = plan.steps[0], plan.steps[2]

        driver.retry()
        await settle(driver)

        assert driver.current_index == 1
        assert driver.runner_invocations == 3
        assert plan.steps[1].attempts == 2
        assert plan.steps[1].result.message == "fail: again"
        assert plan.steps[0] is before_a
        assert plan.steps[2] is before_c

    @pytest.mark.asyncio
    async def test_retry_success_continues_in_auto(self):
        invoker = FakeInvoker(responses={"b": ["fail: timeout", "ok: fixed"]}, default="ok")
        plan = make_plan("a", "b", "c")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()), auto_delay=0.01)
        await asyncio.wait_for(driver.run("auto"), 2)

        driver.retry()

        assert await settle(driver) == SessionState.FINISHED
        assert plan.completed_count == 3
        assert plan.steps[1].attempts == 2

    @pytest.mark.asyncio
    async def test_skip_does_not_invoke_runner_again(self):
        invoker = FakeInvoker(responses={"a": "fail"}, default="ok")
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()))
        await asyncio.wait_for(driver.run("manual"), 2)

        driver.skip()
        await settle(driver)

        assert driver.current_index == 1
        assert driver.runner_invocations == 2
        assert [c.step_id for c in invoker.calls] == ["a", "b"]
        assert plan.steps[0].skipped is True

    @pytest.mark.asyncio
    async def test_skip_completed_step_keeps_it_completed(self, runner, notifier):
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, runner, notifier=notifier)
        await asyncio.wait_for(driver.run("manual"), 2)

        driver.skip()
        await settle(driver)

        assert plan.steps[0].status == StepStatus.COMPLETED
        assert plan.steps[0].skipped is False
        assert "Step skipped" not in [n.title for n in notifier.notifications]

    @pytest.mark.asyncio
    async def test_skip_last_step_finishes(self):
        invoker = FakeInvoker(responses={"b": "fail"}, default="ok")
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()), auto_delay=0.01)
        await asyncio.wait_for(driver.run("auto"), 2)

        driver.skip()

        assert await settle(driver) == SessionState.FINISHED
        assert plan.skipped_count == 1


# ==================== PAUSE / STOP ====================

class TestPauseAndStop:
    """Pause and stop around in-flight steps and operator commands."""

    @pytest.mark.asyncio
    async def test_stop_mid_flight_discards_result(self):
        invoker = BlockingInvoker(default="ok")
        classifier = FakeClassifier()
        plan = make_plan("a", "b")
        original = plan.steps[0]
        driver = PlanDriver(plan, StepRunner(invoker, classifier))
        driver.start("full-auto")

        await until(lambda: invoker.entered.is_set())
        assert plan.steps[0].status == StepStatus.IN_PROGRESS

        driver.stop()
        assert driver.state == SessionState.STOPPED
        assert plan.steps[0] is original

        invoker.release.set()
        await until(lambda: classifier.calls)
        await asyncio.sleep(0.01)

        assert driver.state == SessionState.STOPPED
        assert plan.steps[0] is original
        assert plan.steps[1].status == StepStatus.PENDING
        assert driver.runner_invocations == 1

    @pytest.mark.asyncio
    async def test_stop_during_delay_cancels_advance(self, runner, plan):
        driver = PlanDriver(plan, runner, auto_delay=0.02)
        driver.start("auto")

        await until(lambda: driver.awaiting_auto_continue)
        driver.stop()
        await asyncio.sleep(0.05)

        assert driver.state == SessionState.STOPPED
        assert driver.runner_invocations == 1
        assert plan.steps[1].status == StepStatus.PENDING

    @pytest.mark.asyncio
    async def test_pause_mid_flight_is_queued(self):
        invoker = BlockingInvoker(default="ok")
        plan = make_plan("a", "b")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()))
        driver.start("full-auto")

        await until(lambda: invoker.entered.is_set())
        driver.pause()
        assert driver.state == SessionState.RUNNING

        invoker.release.set()

        assert await settle(driver) == SessionState.PAUSED
        assert driver.current_index == 0
        assert plan.steps[0].status == StepStatus.COMPLETED
        assert driver.runner_invocations == 1

        driver.resume()
        assert await settle(driver) == SessionState.FINISHED
        assert driver.runner_invocations == 2

    @pytest.mark.asyncio
    async def test_pause_after_skip_holds_before_next_step(self):
        invoker = FakeInvoker(responses={"a": "fail: boom"}, default="ok")
        notifier = BlockingNotifier()
        plan = make_plan("a", "b", "c")
        driver = PlanDriver(plan, StepRunner(invoker, FakeClassifier()), notifier=notifier, auto_delay=0)

        assert await asyncio.wait_for(driver.run("auto"), 2) == SessionState.PAUSED
        assert driver.current_index == 0

        driver.skip()
        await until(lambda: notifier.entered.is_set())
        driver.pause()
        notifier.release.set()

        assert await settle(driver) == SessionState.PAUSED
        assert driver.runner_invocations == 1
        assert driver.current_index == 1
        assert [s.status for s in plan.steps] == [
            StepStatus.ERROR, StepStatus.PENDING, StepStatus.PENDING,
        ]

        driver.resume()

        assert await settle(driver) == SessionState.FINISHED
        assert driver.runner_invocations == 3
        assert plan.steps[1].status == StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_from_paused(self, runner, plan):
        driver = PlanDriver(plan, runner)
        await asyncio.wait_for(driver.run("manual"), 2)
        assert driver.ended_at is None

        driver.stop()

        assert driver.state == SessionState.STOPPED
        assert driver.ended_at is not None
        with pytest.raises(SequencingError):
            driver.resume()


# ==================== SEQUENCING ERRORS ====================

class TestSequencing:
    """Commands that are not valid in the current state."""

    @pytest.mark.asyncio
    async def test_empty_plan_rejected(self, runner):
        driver = PlanDriver(Plan.create(), runner)

        with pytest.raises(SequencingError, match="no steps"):
            driver.start("manual")
        assert driver.state == SessionState.IDLE
        assert driver.runner_invocations == 0

    @pytest.mark.asyncio
    async def test_duplicate_step_ids_rejected(self, runner):
        plan = Plan.create(steps=[
            Step(step_id="x", title="1", prompt="1"),
            Step(step_id="x", title="2", prompt="2"),
        ])

        with pytest.raises(ValueError):
            PlanDriver(plan, runner)

    @pytest.mark.asyncio
    async def test_start_twice(self, runner, plan):
        driver = PlanDriver(plan, runner)
        await asyncio.wait_for(driver.run("manual"), 2)

        with pytest.raises(SequencingError):
            driver.start("manual")

    @pytest.mark.asyncio
    async def test_unknown_mode(self, runner, plan):
        driver = PlanDriver(plan, runner)

        with pytest.raises(ValueError):
            driver.start("turbo")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["pause", "resume", "retry", "skip", "continue_now"])
    async def test_commands_before_start(self, runner, plan, command):
        driver = PlanDriver(plan, runner)

        with pytest.raises(SequencingError):
            getattr(driver, command)()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["resume", "retry", "skip", "pause", "continue_now"])
    async def test_commands_after_finish(self, runner, plan, command):
        driver = PlanDriver(plan, runner)
        await asyncio.wait_for(driver.run("full-auto"), 2)

        with pytest.raises(SequencingError):
            getattr(driver, command)()

    @pytest.mark.asyncio
    async def test_stop_twice(self, runner, plan):
        driver = PlanDriver(plan, runner)
        driver.stop()

        with pytest.raises(SequencingError, match="already ended"):
            driver.stop()

    @pytest.mark.asyncio
    async def test_retry_while_running(self):
        invoker = BlockingInvoker(default="ok")
        driver = PlanDriver(make_plan("a"), StepRunner(invoker, FakeClassifier()))
        driver.start("manual")
        await until(lambda: invoker.entered.is_set())

        with pytest.raises(SequencingError):
            driver.retry()
        with pytest.raises(SequencingError):
            driver.continue_now()

        invoker.release.set()
        assert await settle(driver) == SessionState.PAUSED

    @pytest.mark.asyncio
    async def test_snapshot(self, runner, plan):
        driver = PlanDriver(plan, runner, session_id="s-1")
        await asyncio.wait_for(driver.run("manual"), 2)

        snapshot = driver.snapshot()

        assert snapshot["session_id"] == "s-1"
        assert snapshot["state"] == "paused"
        assert snapshot["mode"] == "manual"
        assert snapshot["current_index"] == 0
        assert snapshot["plan"]["progress"]["completed"] == 1
        assert snapshot["log"][0]["message"] == "Execution started in manual mode"
