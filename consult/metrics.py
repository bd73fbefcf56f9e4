"""
Per-task performance records with bounded history.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .models import Tier, utcnow_iso


@dataclass
class TaskMetrics:
    """What happened to one task."""

    task_id: str
    success: bool
    tier: Tier | None = None
    complexity: float | None = None
    domain: str | None = None
    specialist: str | None = None
    execution_time_ms: float = 0.0
    quality_score: float | None = None
    cached: bool = False
    escalations: int = 0
    pattern_ids: list[str] = field(default_factory=list)
    error: str | None = None
    severity: float | None = None
    user_feedback: dict[str, Any] | None = None
    user_satisfaction: float | None = None
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "tier": self.tier.value if self.tier else None,
            "complexity": self.complexity,
            "domain": self.domain,
            "specialist": self.specialist,
            "execution_time_ms": round(self.execution_time_ms, 2),
            "quality_score": self.quality_score,
            "cached": self.cached,
            "escalations": self.escalations,
            "pattern_ids": list(self.pattern_ids),
            "error": self.error,
            "severity": self.severity,
            "user_feedback": self.user_feedback,
            "user_satisfaction": self.user_satisfaction,
            "timestamp": self.timestamp,
        }


class PerformanceMetricsStore:
    """Thread-safe task metrics keyed by task id.

    Once the history exceeds ``history_limit`` it is trimmed to the most
    recent ``trim_to`` records.
    """

    def __init__(self, history_limit: int = 1000, trim_to: int = 500) -> None:
        self.history_limit = history_limit
        self.trim_to = min(trim_to, history_limit)
        self._records: OrderedDict[str, TaskMetrics] = OrderedDict()
        self._lock = threading.Lock()

    def record(self, metrics: TaskMetrics) -> None:
        with self._lock:
            self._records.pop(metrics.task_id, None)
            self._records[metrics.task_id] = metrics
            if len(self._records) > self.history_limit:
                while len(self._records) > self.trim_to:
                    self._records.popitem(last=False)

    def get(self, task_id: str) -> TaskMetrics | None:
        with self._lock:
            return self._records.get(task_id)

    def update(self, task_id: str, fn: Callable[[TaskMetrics], TaskMetrics]) -> TaskMetrics | None:
        with self._lock:
            current = self._records.get(task_id)
            if current is None:
                return None
            updated = fn(current)
            self._records[task_id] = updated
            return updated

    def recent(self, limit: int) -> list[TaskMetrics]:
        with self._lock:
            records = list(self._records.values())
        return records[-limit:] if limit > 0 else []

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def summary(self, window: int = 100) -> dict[str, Any]:
        records = self.recent(window)
        if not records:
            return {
                "total_tasks": 0,
                "success_rate": 0.0,
                "average_execution_time_ms": 0.0,
                "average_quality_score": 0.0,
                "tier_distribution": {},
            }
        distribution: dict[str, int] = {}
        for record in records:
            if record.tier is not None:
                distribution[record.tier.value] = distribution.get(record.tier.value, 0) + 1
        return {
            "total_tasks": len(records),
            "success_rate": round(sum(1 for r in records if r.success) / len(records), 3),
            "average_execution_time_ms": round(
                sum(r.execution_time_ms for r in records) / len(records), 2
            ),
            "average_quality_score": round(
                sum(r.quality_score or 0.0 for r in records) / len(records), 3
            ),
            "tier_distribution": distribution,
        }
