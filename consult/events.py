"""
Event system for the consultation pipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    TASK_STARTED = "task.started"
    TASK_ANALYZED = "task.analyzed"
    TASK_ROUTED = "task.routed"
    TASK_COMPLETED = "task.completed"
    TASK_FAILED = "task.failed"

    CACHE_HIT = "cache.hit"

    CONSULTATION_COMPLETED = "consultation.completed"

    QUALITY_PASSED = "quality.passed"
    QUALITY_FAILED = "quality.failed"

    TASK_ESCALATED = "escalation.started"
    ESCALATION_EXHAUSTED = "escalation.exhausted"

    RECOVERY_ATTEMPTED = "recovery.attempted"

    FEEDBACK_RECEIVED = "feedback.received"


@dataclass
class EventActions:
    """Actions that can be triggered by an event."""

    escalate: bool = False
    transfer_to: Optional[str] = None
    retry: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "escalate": self.escalate,
            "transfer_to": self.transfer_to,
            "retry": self.retry,
        }


@dataclass
class PipelineEvent:
    """Standardized event for the consultation pipeline."""

    id: UUID = field(default_factory=uuid4)
    type: EventType = EventType.TASK_STARTED
    task_id: Optional[str] = None
    tier: Optional[str] = None
    specialist: Optional[str] = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    actions: EventActions = field(default_factory=EventActions)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.type.value,
            "task_id": self.task_id,
            "tier": self.tier,
            "specialist": self.specialist,
            "message": self.message,
            "data": self.data,
            "actions": self.actions.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
        }


EventHandler = Callable[[PipelineEvent], Any]


class EventEmitter:
    """Emits events to registered handlers."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def emit(self, event: PipelineEvent) -> PipelineEvent:
        for handler in self._handlers:
            try:
                result = handler(event)
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.exception("Event handler error for %s", event.type.value)
        return event


def log_event_handler(event: PipelineEvent) -> None:
    """Handler that mirrors events into the module logger."""
    level = logging.WARNING if event.actions.escalate else logging.DEBUG
    logger.log(level, "[%s] %s %s", event.type.value, event.task_id or "-", event.message)
