"""Execution mode policy: what happens after a step finishes."""

from dataclasses import dataclass
from enum import Enum

from .models import ExecutionMode, StepResult

AUTO_CONTINUE_DELAY = 3.0


class DecisionKind(str, Enum):
    ADVANCE = "advance"
    ADVANCE_AFTER_DELAY = "advance_after_delay"
    HOLD_FOR_OPERATOR = "hold_for_operator"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    delay_seconds: float = 0.0

    @classmethod
    def advance(cls) -> "Decision":
        return cls(DecisionKind.ADVANCE)

    @classmethod
    def advance_after_delay(cls, seconds: float) -> "Decision":
        return cls(DecisionKind.ADVANCE_AFTER_DELAY, seconds)

    @classmethod
    def hold(cls) -> "Decision":
        return cls(DecisionKind.HOLD_FOR_OPERATOR)


def decide(
    mode: ExecutionMode,
    result: StepResult,
    auto_delay: float = AUTO_CONTINUE_DELAY,
) -> Decision:
    """
    Map a session mode and a step result to the next control action.

    full-auto always advances, manual always holds, auto advances after a
    delay on success and holds otherwise.
    """
    if mode == ExecutionMode.FULL_AUTO:
        return Decision.advance()

    if mode == ExecutionMode.AUTO:
        if result.is_success:
            return Decision.advance_after_delay(auto_delay)
        return Decision.hold()

    if mode == ExecutionMode.MANUAL:
        return Decision.hold()

    raise ValueError(f"Unknown execution mode: {mode}")
