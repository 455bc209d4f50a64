"""Status event sink.

Reconcilers report progress as leveled events tagged with a resource kind, an
action verb and free-form metadata. The sink is advisory: nothing it returns
is consulted, and a failing handler never interrupts reconciliation.

The reporter is passed explicitly through ReconcileContext. There is no
module-level instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class StatusLevel(str, Enum):
    """Severity of a status event."""

    PROGRESS = "progress"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    StatusLevel.PROGRESS: logging.INFO,
    StatusLevel.INFO: logging.INFO,
    StatusLevel.SUCCESS: logging.INFO,
    StatusLevel.WARNING: logging.WARNING,
    StatusLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class StatusEvent:
    """A single status notification."""

    level: StatusLevel
    message: str
    resource: str = ""
    action: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


StatusHandler = Callable[[StatusEvent], None]


class StatusReporter:
    """Fire-and-forget status sink.

    Every event is written to the module logger with structured extras. If a
    handler is supplied (a CLI renderer, a queue feeder, a test collector) it
    receives the event as well.
    """

    def __init__(self, handler: StatusHandler | None = None) -> None:
        self._handler = handler

    def emit(
        self,
        level: StatusLevel,
        message: str,
        *,
        resource: str = "",
        action: str = "",
        **metadata: Any,
    ) -> None:
        event = StatusEvent(
            level=level,
            message=message,
            resource=resource,
            action=action,
            metadata=metadata,
        )

        logger.log(
            _LOG_LEVELS[level],
            message,
            extra={
                "status_level": level.value,
                "resource": resource,
                "action": action,
                **{f"meta_{key}": value for key, value in metadata.items()},
            },
        )

        if self._handler is None:
            return
        try:
            self._handler(event)
        except Exception as e:
            logger.warning(
                "Status handler raised, event dropped",
                extra={"error": str(e), "error_type": type(e).__name__},
            )

    def progress(self, message: str, **kwargs: Any) -> None:
        self.emit(StatusLevel.PROGRESS, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.emit(StatusLevel.INFO, message, **kwargs)

    def success(self, message: str, **kwargs: Any) -> None:
        self.emit(StatusLevel.SUCCESS, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.emit(StatusLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.emit(StatusLevel.ERROR, message, **kwargs)
