"""
Store interfaces behind the context manager, with in-memory implementations.

Durable backends can implement the same protocols; the in-memory stores keep
each read-modify-write inside a single lock so callers never interleave.
"""

from __future__ import annotations

import threading
from collections import Counter, OrderedDict, deque
from collections.abc import Callable
from typing import Any, Protocol

from .models import CacheEntry, Pattern, ProjectContext, SpecialistMetrics


class ContextStore(Protocol):
    async def append(self, context: ProjectContext) -> None: ...

    async def current(self) -> ProjectContext | None: ...

    async def history(self) -> list[ProjectContext]: ...


class CacheStore(Protocol):
    async def get(self, key: str) -> CacheEntry | None: ...

    async def put(self, entry: CacheEntry, *, max_entries: int, now: float) -> None: ...

    async def remove(self, key: str) -> bool: ...

    async def size(self) -> int: ...


class PatternStore(Protocol):
    async def add(self, pattern: Pattern, *, limit: int) -> None: ...

    async def get(self, pattern_id: str) -> Pattern | None: ...

    async def update(
        self, pattern_id: str, fn: Callable[[Pattern], Pattern]
    ) -> Pattern | None: ...

    async def all(self) -> list[Pattern]: ...


class AnalyticsStore(Protocol):
    async def record_event(self, event_type: str, data: dict[str, Any]) -> None: ...

    async def events_by_type(self, event_type: str) -> list[dict[str, Any]]: ...

    async def count(self, event_type: str) -> int: ...

    async def update_specialist(
        self, specialist_id: str, fn: Callable[[SpecialistMetrics], SpecialistMetrics]
    ) -> SpecialistMetrics: ...

    async def specialist_metrics(self) -> dict[str, SpecialistMetrics]: ...


class InMemoryContextStore:
    """Append-only list of project context versions."""

    def __init__(self) -> None:
        self._versions: list[ProjectContext] = []
        self._lock = threading.Lock()

    async def append(self, context: ProjectContext) -> None:
        with self._lock:
            self._versions.append(context)

    async def current(self) -> ProjectContext | None:
        with self._lock:
            return self._versions[-1] if self._versions else None

    async def history(self) -> list[ProjectContext]:
        with self._lock:
            return list(self._versions)


class InMemoryCacheStore:
    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    async def put(self, entry: CacheEntry, *, max_entries: int, now: float) -> None:
        with self._lock:
            self._entries[entry.key] = entry
            if len(self._entries) <= max_entries:
                return
            for key in [key for key, cached in self._entries.items() if cached.expired(now)]:
                del self._entries[key]
            overflow = len(self._entries) - max_entries
            if overflow > 0:
                oldest = sorted(self._entries.values(), key=lambda cached: cached.created_at)
                for cached in oldest[:overflow]:
                    del self._entries[cached.key]

    async def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def size(self) -> int:
        with self._lock:
            return len(self._entries)


class InMemoryPatternStore:
    """Insertion-ordered pattern library that keeps the most recent patterns."""

    def __init__(self) -> None:
        self._patterns: OrderedDict[str, Pattern] = OrderedDict()
        self._lock = threading.Lock()

    async def add(self, pattern: Pattern, *, limit: int) -> None:
        with self._lock:
            self._patterns[pattern.id] = pattern
            while len(self._patterns) > limit:
                self._patterns.popitem(last=False)

    async def get(self, pattern_id: str) -> Pattern | None:
        with self._lock:
            return self._patterns.get(pattern_id)

    async def update(self, pattern_id: str, fn: Callable[[Pattern], Pattern]) -> Pattern | None:
        with self._lock:
            current = self._patterns.get(pattern_id)
            if current is None:
                return None
            updated = fn(current)
            self._patterns[pattern_id] = updated
            return updated

    async def all(self) -> list[Pattern]:
        with self._lock:
            return list(self._patterns.values())


class InMemoryAnalyticsStore:
    """Bounded event log plus unbounded per-type counters and specialist metrics."""

    def __init__(self, event_limit: int = 10000) -> None:
        self._events: deque[dict[str, Any]] = deque(maxlen=event_limit)
        self._counts: Counter[str] = Counter()
        self._specialists: dict[str, SpecialistMetrics] = {}
        self._lock = threading.Lock()

    async def record_event(self, event_type: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._events.append({"type": event_type, **data})
            self._counts[event_type] += 1

    async def events_by_type(self, event_type: str) -> list[dict[str, Any]]:
        with self._lock:
            return [event for event in self._events if event["type"] == event_type]

    async def count(self, event_type: str) -> int:
        with self._lock:
            return self._counts[event_type]

    async def update_specialist(
        self, specialist_id: str, fn: Callable[[SpecialistMetrics], SpecialistMetrics]
    ) -> SpecialistMetrics:
        with self._lock:
            updated = fn(self._specialists.get(specialist_id, SpecialistMetrics()))
            self._specialists[specialist_id] = updated
            return updated

    async def specialist_metrics(self) -> dict[str, SpecialistMetrics]:
        with self._lock:
            return dict(self._specialists)
