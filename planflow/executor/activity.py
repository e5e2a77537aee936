"""
planflow - Activity and Notifications

Collaborators the plan driver reports to. Both are passed in at
construction time.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from ..config.logging import get_logger


class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True)
class Notification:
    type: NotificationType
    title: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


class ActivityLogger(Protocol):
    def log_activity(self, action: str, details: Dict[str, Any]) -> None:
        ...


class Notifier(Protocol):
    async def notify(self, notification: Notification) -> None:
        ...


class LoggingActivityLogger:
    """Writes activity events to the planflow.activity logger."""

    def __init__(self, **context):
        self._logger = get_logger("activity", **context)

    def log_activity(self, action: str, details: Dict[str, Any]) -> None:
        self._logger.info(action, extra={"extra_data": {"action": action, **details}})


class MemoryNotifier:
    """Keeps notifications in memory, newest last."""

    def __init__(self, limit: Optional[int] = 100):
        self._limit = limit
        self._items: List[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self._items.append(notification)
        if self._limit is not None and len(self._items) > self._limit:
            del self._items[: len(self._items) - self._limit]

    @property
    def notifications(self) -> List[Notification]:
        return list(self._items)


def step_completed(title: str, index: int, total: int) -> Notification:
    return Notification(
        NotificationType.SUCCESS,
        "Step completed",
        f'Step "{title}" completed successfully',
        {"step_index": index + 1, "total_steps": total, "step_title": title, "action": "step_completion"},
    )


def step_skipped(title: str, index: int, total: int) -> Notification:
    return Notification(
        NotificationType.WARNING,
        "Step skipped",
        f'Step "{title}" skipped',
        {"step_index": index + 1, "total_steps": total, "step_title": title, "action": "step_skipped"},
    )


def plan_completed(total: int, completed: int) -> Notification:
    return Notification(
        NotificationType.SUCCESS if completed == total else NotificationType.WARNING,
        "Plan finished",
        f"{completed} of {total} steps completed",
        {"total_steps": total, "completed_steps": completed, "action": "plan_completion"},
    )
