"""
planflow - Executor Models

Data classes for execution: Step, StepResult, Plan, ExecutionLog.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class StepStatus(str, Enum):
    """Step execution status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class Classification(str, Enum):
    """Verdict on a step's raw outcome."""
    SUCCESS = "success"
    ERROR = "error"
    AMBIGUOUS = "ambiguous"


class ExecutionMode(str, Enum):
    """How much operator confirmation a session requires."""
    MANUAL = "manual"
    AUTO = "auto"
    FULL_AUTO = "full-auto"


class SessionState(str, Enum):
    """Plan driver states."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.FINISHED, SessionState.STOPPED)


@dataclass(frozen=True)
class StepResult:
    """Classified outcome of one step attempt."""
    classification: Classification
    message: str
    suggestion: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.classification == Classification.SUCCESS

    @classmethod
    def success(cls, message: str, suggestion: Optional[str] = None) -> "StepResult":
        return cls(Classification.SUCCESS, message, suggestion)

    @classmethod
    def error(cls, message: str, suggestion: Optional[str] = None) -> "StepResult":
        return cls(Classification.ERROR, message, suggestion)

    @classmethod
    def ambiguous(cls, message: str, suggestion: Optional[str] = None) -> "StepResult":
        return cls(Classification.AMBIGUOUS, message, suggestion)

    def to_dict(self) -> Dict:
        data = {
            "status": self.classification.value,
            "message": self.message,
        }
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "StepResult":
        return cls(
            classification=Classification(data["status"]),
            message=data.get("message", ""),
            suggestion=data.get("suggestion"),
        )


@dataclass(frozen=True)
class Step:
    """
    Single unit of plan work.

    Steps are immutable: every state change returns a new Step which
    replaces the old one in the plan, so readers never see a half-written
    step.
    """
    step_id: str
    title: str
    prompt: str
    description: str = ""

    status: StepStatus = StepStatus.PENDING
    result: Optional[StepResult] = None
    skipped: bool = False
    attempts: int = 0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def create(cls, title: str, prompt: str, description: str = "") -> "Step":
        """Create new step with generated ID."""
        return cls(
            step_id=str(uuid.uuid4())[:8],
            title=title,
            prompt=prompt,
            description=description,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.ERROR)

    def begin(self) -> "Step":
        """Return this step marked in progress for a new attempt."""
        return replace(
            self,
            status=StepStatus.IN_PROGRESS,
            skipped=False,
            attempts=self.attempts + 1,
            started_at=datetime.now(timezone.utc),
            completed_at=None,
        )

    def finish(self, result: StepResult) -> "Step":
        """Return this step with its classified result applied."""
        status = StepStatus.COMPLETED if result.is_success else StepStatus.ERROR
        return replace(
            self,
            status=status,
            result=result,
            completed_at=datetime.now(timezone.utc),
        )

    def skip(self, message: str = "Step skipped by operator") -> "Step":
        """Return this step marked as skipped (status error, tagged)."""
        previous = self.result.message if self.result else None
        return replace(
            self,
            status=StepStatus.ERROR,
            skipped=True,
            result=StepResult.error(message, suggestion=previous),
            completed_at=datetime.now(timezone.utc),
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary for rendering and storage."""
        return {
            "id": self.step_id,
            "title": self.title,
            "description": self.description,
            "prompt": self.prompt,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "skipped": self.skipped,
            "attempts": self.attempts,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Step":
        """Create from dictionary. Accepts `titre` as an alias of `title`."""
        result = data.get("result")
        return cls(
            step_id=str(data.get("id") or data.get("step_id") or str(uuid.uuid4())[:8]),
            title=data.get("title") or data.get("titre") or "",
            prompt=data.get("prompt", ""),
            description=data.get("description", ""),
            status=StepStatus(data.get("status", "pending")),
            result=StepResult.from_dict(result) if result else None,
            skipped=bool(data.get("skipped", False)),
            attempts=int(data.get("attempts", 0)),
        )


@dataclass
class Plan:
    """
    Ordered steps of a plan.

    Order is execution order. The list is shared with readers; only the
    plan driver replaces entries.
    """
    plan_id: str
    steps: List[Step] = field(default_factory=list)
    project_id: Optional[str] = None

    @classmethod
    def create(cls, steps: Optional[List[Step]] = None, project_id: Optional[str] = None) -> "Plan":
        """Create new plan with generated ID."""
        return cls(
            plan_id=str(uuid.uuid4())[:8],
            steps=list(steps or []),
            project_id=project_id,
        )

    def __len__(self) -> int:
        return len(self.steps)

    def get_step(self, step_id: str) -> Optional[Step]:
        """Get step by ID."""
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def validate(self) -> None:
        """Check that step IDs are unique."""
        seen = set()
        for step in self.steps:
            if step.step_id in seen:
                raise ValueError(f"Duplicate step id: {step.step_id}")
            seen.add(step.step_id)

    @property
    def in_progress_count(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.IN_PROGRESS)

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.COMPLETED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for s in self.steps if s.skipped)

    @property
    def error_count(self) -> int:
        return sum(
            1 for s in self.steps
            if s.status == StepStatus.ERROR and not s.skipped
        )

    @property
    def progress_percent(self) -> int:
        """Share of completed steps; skipped steps do not count."""
        if not self.steps:
            return 0
        return round(self.completed_count * 100 / len(self.steps))

    def to_dict(self) -> Dict:
        return {
            "plan_id": self.plan_id,
            "project_id": self.project_id,
            "steps": [s.to_dict() for s in self.steps],
            "progress": {
                "completed": self.completed_count,
                "skipped": self.skipped_count,
                "errors": self.error_count,
                "total": len(self.steps),
                "percent": self.progress_percent,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Plan":
        return cls(
            plan_id=data.get("plan_id") or str(uuid.uuid4())[:8],
            steps=[Step.from_dict(s) for s in data.get("steps", [])],
            project_id=data.get("project_id"),
        )


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    """Timestamped line of the execution log."""
    timestamp: datetime
    message: str
    level: LogLevel = LogLevel.INFO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "type": self.level.value,
        }


class ExecutionLog:
    """Append-only log for operator visibility. Never read for control flow."""

    def __init__(self):
        self._entries: List[LogEntry] = []

    def add(self, message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        entry = LogEntry(datetime.now(timezone.utc), message, level)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]
