"""Transient, timed user-facing messages."""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from jobclient.jobs.models import new_id, utcnow


class NotificationSeverity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    severity: NotificationSeverity
    message: str
    duration_ms: int
    created_at: datetime = Field(default_factory=utcnow)


# Scheduler: fn(delay_seconds, callback) -> handle with a cancel() method
Scheduler = Callable[[float, Callable[[], None]], object]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class NotificationCenter:
    """Holds active notifications; each one removes itself once its duration elapses.

    A duration of zero keeps the notification until it is dismissed.
    Timed removal is scheduled on the running event loop unless another
    scheduler is injected.
    """

    def __init__(self, default_duration_ms: int = 5000, scheduler: Optional[Scheduler] = None):
        self._default_duration_ms = default_duration_ms
        self._scheduler = scheduler or _loop_scheduler
        self._notifications: Tuple[Notification, ...] = ()
        self._timers: Dict[str, object] = {}

    @property
    def notifications(self) -> Tuple[Notification, ...]:
        return self._notifications

    def notify(
        self,
        severity: NotificationSeverity,
        message: str,
        duration_ms: Optional[int] = None,
    ) -> str:
        if duration_ms is None:
            duration_ms = self._default_duration_ms
        notification = Notification(
            severity=NotificationSeverity(severity),
            message=message,
            duration_ms=duration_ms,
        )
        self._notifications = self._notifications + (notification,)
        if duration_ms > 0:
            self._timers[notification.id] = self._scheduler(
                duration_ms / 1000, lambda: self._expire(notification.id)
            )
        return notification.id

    def dismiss(self, notification_id: str) -> None:
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()
        self._notifications = tuple(n for n in self._notifications if n.id != notification_id)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._notifications = ()

    def _expire(self, notification_id: str) -> None:
        self._timers.pop(notification_id, None)
        self._notifications = tuple(n for n in self._notifications if n.id != notification_id)

    # Convenience helpers
    def success(self, message: str, duration_ms: Optional[int] = None) -> str:
        return self.notify(NotificationSeverity.SUCCESS, message, duration_ms)

    def error(self, message: str, duration_ms: Optional[int] = None) -> str:
        return self.notify(NotificationSeverity.ERROR, message, duration_ms)

    def info(self, message: str, duration_ms: Optional[int] = None) -> str:
        return self.notify(NotificationSeverity.INFO, message, duration_ms)

    def warning(self, message: str, duration_ms: Optional[int] = None) -> str:
        return self.notify(NotificationSeverity.WARNING, message, duration_ms)

    def by_severity(self, severity: NotificationSeverity) -> List[Notification]:
        return [n for n in self._notifications if n.severity == severity]

