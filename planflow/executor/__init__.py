"""
planflow - Executor

Plan execution controller: step model, mode policy, step runner and plan
driver, plus the action and classifier collaborators.
"""
from .models import (
    Classification,
    ExecutionLog,
    ExecutionMode,
    LogEntry,
    LogLevel,
    Plan,
    SessionState,
    Step,
    StepResult,
    StepStatus,
)
from .policy import AUTO_CONTINUE_DELAY, Decision, DecisionKind, decide
from .actions import (
    ActionInvoker,
    ActionRequest,
    ActionResponse,
    ActionTransportError,
    HttpActionInvoker,
)
from .classifier import (
    ClassificationRequest,
    KeywordResultClassifier,
    LLMResultClassifier,
    ResultClassifier,
)
from .activity import (
    LoggingActivityLogger,
    MemoryNotifier,
    Notification,
    NotificationType,
)
from .step_runner import StepRunner
from .driver import PlanDriver, SequencingError

__all__ = [
    # Models
    "Classification",
    "ExecutionLog",
    "ExecutionMode",
    "LogEntry",
    "LogLevel",
    "Plan",
    "SessionState",
    "Step",
    "StepResult",
    "StepStatus",
    # Policy
    "AUTO_CONTINUE_DELAY",
    "Decision",
    "DecisionKind",
    "decide",
    # Actions
    "ActionInvoker",
    "ActionRequest",
    "ActionResponse",
    "ActionTransportError",
    "HttpActionInvoker",
    # Classifier
    "ClassificationRequest",
    "KeywordResultClassifier",
    "LLMResultClassifier",
    "ResultClassifier",
    # Activity
    "LoggingActivityLogger",
    "MemoryNotifier",
    "Notification",
    "NotificationType",
    # Runner / Driver
    "StepRunner",
    "PlanDriver",
    "SequencingError",
]
