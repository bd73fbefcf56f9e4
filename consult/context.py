"""
Project context, consultation cache, pattern library and analytics.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
import time
from collections import Counter
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any
from uuid import uuid4

from .analyzer import ComplexityAnalyzer
from .config import DEFAULT_DURATION_SECONDS, Settings
from .models import (
    CacheEntry,
    Consultation,
    Pattern,
    PatternMatch,
    ProjectContext,
    SpecialistMetrics,
    Task,
    TaskShape,
    utcnow_iso,
)
from .registry import SpecialistRegistry
from .router import TaskRouter
from .storage import (
    AnalyticsStore,
    CacheStore,
    ContextStore,
    InMemoryAnalyticsStore,
    InMemoryCacheStore,
    InMemoryContextStore,
    InMemoryPatternStore,
    PatternStore,
)

logger = logging.getLogger(__name__)

DEFAULT_COMPLEXITY = 5.0
MAX_TTL_FACTOR = 2.0
SUCCESS_PATTERN = "success"
DECISION_PATTERN = "architectural-decision"

PATTERN_DOMAIN_POINTS = 10
PATTERN_TECHNOLOGY_POINTS = 2
PATTERN_COMPLEXITY_POINTS = 5
PATTERN_SCORE_SCALE = 15

RAPID_CHANGE_RATE = 10
MODERATE_CHANGE_RATE = 5
EVOLUTION_WINDOW = 5


class FingerprintLocks:
    """One asyncio lock per cache key, dropped when nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: Counter[str] = Counter()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] <= 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


def complexity_bucket(complexity: float | None) -> int:
    value = DEFAULT_COMPLEXITY if complexity is None else complexity
    return int(math.floor(value / 2) * 2)


class ContextManager:
    """Owns the project context, consultation cache, pattern library and analytics."""

    def __init__(
        self,
        *,
        context_store: ContextStore | None = None,
        cache_store: CacheStore | None = None,
        pattern_store: PatternStore | None = None,
        analytics_store: AnalyticsStore | None = None,
        cache_ttl_seconds: float = DEFAULT_DURATION_SECONDS,
        cache_max_entries: int = 1000,
        pattern_limit: int = 500,
        similarity_threshold: float = 0.7,
        learning_enabled: bool = True,
        router: TaskRouter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._contexts = context_store or InMemoryContextStore()
        self._cache = cache_store or InMemoryCacheStore()
        self._patterns = pattern_store or InMemoryPatternStore()
        self._analytics = analytics_store or InMemoryAnalyticsStore()
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_max_entries = cache_max_entries
        self.pattern_limit = pattern_limit
        self.similarity_threshold = similarity_threshold
        self.learning_enabled = learning_enabled
        self.router = router or TaskRouter(SpecialistRegistry(), ComplexityAnalyzer())
        self._clock = clock
        self._locks = FingerprintLocks()

    @classmethod
    def from_settings(
        cls, settings: Settings, *, clock: Callable[[], float] = time.time, **options: Any
    ) -> ContextManager:
        options.setdefault("analytics_store", InMemoryAnalyticsStore(settings.analytics_event_limit))
        return cls(
            cache_ttl_seconds=settings.cache_ttl_seconds,
            cache_max_entries=settings.cache_max_entries,
            pattern_limit=settings.pattern_limit,
            similarity_threshold=settings.similarity_threshold,
            learning_enabled=settings.learning_enabled,
            clock=clock,
            **options,
        )

    # Project context

    async def update_project_context(
        self,
        *,
        decisions: Iterable[Any] = (),
        state: Mapping[str, Any] | None = None,
        constraints: Iterable[str] | None = None,
        objectives: Iterable[str] | None = None,
    ) -> ProjectContext:
        """Append a new context version; unspecified parts carry forward."""
        current = await self._contexts.current()
        new_decisions = tuple(decisions)
        context = ProjectContext(
            version=(current.version if current else 0) + 1,
            decisions=new_decisions,
            state=dict(state) if state is not None else dict(current.state if current else {}),
            constraints=tuple(constraints)
            if constraints is not None
            else (current.constraints if current else ()),
            objectives=tuple(objectives)
            if objectives is not None
            else (current.objectives if current else ()),
        )
        await self._contexts.append(context)
        await self._analytics.record_event(
            "context_update", {"version": context.version, "decisions": len(new_decisions)}
        )
        if self.learning_enabled:
            for decision in new_decisions:
                await self._store_decision_pattern(decision, context.version)
        logger.debug("Project context updated to version %d", context.version)
        return context

    async def get_project_context(self) -> ProjectContext | None:
        return await self._contexts.current()

    async def context_history(self) -> list[ProjectContext]:
        return await self._contexts.history()

    async def _store_decision_pattern(self, decision: Any, version: int) -> Pattern:
        detail = decision if isinstance(decision, Mapping) else {"description": str(decision)}
        source = Task.from_dict(detail)
        pattern = Pattern(
            id=f"decision_{uuid4().hex[:12]}",
            kind=DECISION_PATTERN,
            shape=self.task_shape(source),
            decision=dict(detail),
            success_metrics={"context_version": version},
        )
        await self._patterns.add(pattern, limit=self.pattern_limit)
        return pattern

    # Fingerprints & cache

    @staticmethod
    def task_shape(
        task: Task, *, domain: str | None = None, complexity: float | None = None
    ) -> TaskShape:
        raw = complexity if complexity is not None else task.complexity
        normalized_domain = (domain or task.domain or "").strip().lower() or None
        return TaskShape(
            domain=normalized_domain,
            technologies=tuple(sorted({tech.strip().lower() for tech in task.technologies})),
            complexity=complexity_bucket(raw),
            patterns=tuple(sorted({pattern.strip().lower() for pattern in task.patterns})),
        )

    def lookup_shape(
        self, task: Task, *, domain: str | None = None, complexity: float | None = None
    ) -> TaskShape:
        """Shape a task the same way routed consultations are stored."""
        if domain is None:
            domain = self.router.identify_domain(task)
        if complexity is None:
            complexity = self.router.analyzer.analyze(task).overall_score
        return self.task_shape(task, domain=domain, complexity=complexity)

    @staticmethod
    def fingerprint(shape: TaskShape) -> str:
        payload = json.dumps(shape.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def cache_key(self, specialist: str, shape: TaskShape) -> str:
        return f"{specialist}_{self.fingerprint(shape)[:16]}"

    def ttl_for(self, complexity: float | None) -> float:
        value = DEFAULT_COMPLEXITY if complexity is None else complexity
        return self.cache_ttl_seconds * min(max(value, 0.0) / 5, MAX_TTL_FACTOR)

    def now(self) -> float:
        return self._clock()

    def consultation_lock(self, key: str):
        """Serialize consultations that share a cache key."""
        return self._locks.hold(key)

    async def cache_specialist_consultation(
        self, consultation: Consultation, *, complexity: float | None = None
    ) -> CacheEntry:
        analysis = consultation.routing.complexity
        score = analysis.overall_score if complexity is None else complexity
        shape = self.task_shape(consultation.task, domain=consultation.routing.domain, complexity=score)
        now = self._clock()
        entry = CacheEntry(
            key=self.cache_key(consultation.specialist, shape),
            specialist=consultation.specialist,
            fingerprint=self.fingerprint(shape),
            consultation=consultation,
            created_at=now,
            expires_at=now + self.ttl_for(score),
        )
        await self._cache.put(entry, max_entries=self.cache_max_entries, now=now)
        await self._analytics.record_event("cache_store", {"key": entry.key})
        logger.debug("Cached consultation %s for %.0fs", entry.key, entry.expires_at - now)
        return entry

    async def retrieve_specialist_cache(
        self,
        task: Task,
        specialist: str,
        *,
        domain: str | None = None,
        complexity: float | None = None,
    ) -> CacheEntry | None:
        shape = self.lookup_shape(task, domain=domain, complexity=complexity)
        return await self.get_cached(self.cache_key(specialist, shape))

    async def get_cached(self, key: str) -> CacheEntry | None:
        """Look up a cache key, evicting it if it has expired."""
        await self._analytics.record_event("cache_request", {"key": key})
        entry = await self._cache.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            await self._cache.remove(key)
            await self._analytics.record_event("cache_expired", {"key": key})
            return None
        await self._analytics.record_event(
            "cache_hit", {"key": key, "specialist": entry.specialist}
        )
        return entry

    async def invalidate(self, key: str) -> bool:
        return await self._cache.remove(key)

    # Patterns

    async def get_relevant_patterns(
        self, task: Task, *, domain: str | None = None, complexity: float | None = None
    ) -> list[PatternMatch]:
        criteria = self.lookup_shape(task, domain=domain, complexity=complexity)
        floor = self.similarity_threshold * PATTERN_SCORE_SCALE
        matches = []
        for pattern in await self._patterns.all():
            score = self._pattern_score(pattern.shape, criteria)
            if score >= floor:
                matches.append(PatternMatch(pattern=pattern, score=score))
        return sorted(matches, key=lambda match: match.score, reverse=True)

    @staticmethod
    def _pattern_score(shape: TaskShape, criteria: TaskShape) -> float:
        score = 0.0
        if shape.domain and shape.domain == criteria.domain:
            score += PATTERN_DOMAIN_POINTS
        score += PATTERN_TECHNOLOGY_POINTS * len(set(shape.technologies) & set(criteria.technologies))
        score += max(0, PATTERN_COMPLEXITY_POINTS - abs(shape.complexity - criteria.complexity))
        return score

    async def store_success_pattern(
        self,
        consultation: Consultation,
        *,
        successful: bool,
        quality_score: float | None = None,
        execution_time_ms: float | None = None,
        user_satisfaction: float | None = None,
    ) -> Pattern | None:
        if not successful or not self.learning_enabled:
            return None
        routing = consultation.routing
        pattern = Pattern(
            id=f"pattern_{uuid4().hex[:12]}",
            kind=SUCCESS_PATTERN,
            shape=self.task_shape(
                consultation.task, domain=routing.domain, complexity=routing.complexity.overall_score
            ),
            specialist=consultation.specialist,
            approach=consultation.recommendation.to_dict(),
            success_metrics={
                "quality_score": quality_score,
                "execution_time_ms": execution_time_ms,
                "user_satisfaction": user_satisfaction,
            },
        )
        await self._patterns.add(pattern, limit=self.pattern_limit)
        await self._analytics.record_event("pattern_stored", {"pattern_id": pattern.id})
        return pattern

    async def update_pattern_usage(
        self, pattern_id: str, *, successful: bool, metrics: Mapping[str, Any] | None = None
    ) -> Pattern | None:
        """Fold one reuse into the pattern's running success average."""

        def _apply(pattern: Pattern) -> Pattern:
            usage = pattern.usage_count + 1
            rate = (pattern.success_rate * pattern.usage_count + (1.0 if successful else 0.0)) / usage
            return replace(
                pattern,
                usage_count=usage,
                success_rate=min(max(rate, 0.0), 1.0),
                last_used=utcnow_iso(),
                success_metrics={**pattern.success_metrics, **dict(metrics or {})},
            )

        return await self._patterns.update(pattern_id, _apply)

    async def get_pattern(self, pattern_id: str) -> Pattern | None:
        return await self._patterns.get(pattern_id)

    # Specialist metrics & analytics

    async def record_specialist_consultation(
        self, specialist_id: str, *, successful: bool, quality_score: float
    ) -> SpecialistMetrics:
        now = utcnow_iso()

        def _apply(metrics: SpecialistMetrics) -> SpecialistMetrics:
            total = metrics.total + 1
            return SpecialistMetrics(
                total=total,
                successful=metrics.successful + (1 if successful else 0),
                average_quality=(metrics.average_quality * metrics.total + quality_score) / total,
                first_consultation=metrics.first_consultation or now,
                last_consultation=now,
            )

        return await self._analytics.update_specialist(specialist_id, _apply)

    async def specialist_success_rates(self) -> dict[str, float]:
        metrics = await self._analytics.specialist_metrics()
        return {specialist: record.success_rate for specialist, record in metrics.items()}

    async def record_event(self, event_type: str, data: dict[str, Any]) -> None:
        await self._analytics.record_event(event_type, data)

    async def get_context_analytics(self) -> dict[str, Any]:
        requests = await self._analytics.count("cache_request")
        hits = await self._analytics.count("cache_hit")
        patterns = await self._patterns.all()
        top = sorted(patterns, key=lambda p: (p.success_rate, p.usage_count), reverse=True)[:10]
        specialists = await self._analytics.specialist_metrics()
        return {
            "cache_hit_rate": round(hits / requests, 3) if requests else 0.0,
            "cache_requests": requests,
            "cache_size": await self._cache.size(),
            "pattern_usage": {
                "total_patterns": len(patterns),
                "active_patterns": sum(1 for p in patterns if p.usage_count > 1),
                "average_success_rate": round(
                    sum(p.success_rate for p in patterns) / len(patterns), 3
                )
                if patterns
                else 0.0,
                "top_patterns": [p.to_dict() for p in top],
            },
            "specialist_performance": {
                specialist: record.to_dict() for specialist, record in specialists.items()
            },
            "context_evolution": self._context_evolution(await self._contexts.history()),
        }

    @staticmethod
    def _context_evolution(history: list[ProjectContext]) -> dict[str, Any]:
        if not history:
            return {"total_versions": 0, "average_decisions": 0.0, "trend": "stable"}

        recent = history[-EVOLUTION_WINDOW:]
        changes = []
        for previous, current in zip(recent, recent[1:]):
            changed_keys = {
                key
                for key in set(previous.state) | set(current.state)
                if previous.state.get(key) != current.state.get(key)
            }
            changes.append(
                len(current.decisions)
                + len(changed_keys)
                + (1 if previous.constraints != current.constraints else 0)
                + (1 if previous.objectives != current.objectives else 0)
            )
        rate = sum(changes) / len(changes) if changes else 0.0
        if rate > RAPID_CHANGE_RATE:
            trend = "rapid"
        elif rate > MODERATE_CHANGE_RATE:
            trend = "moderate"
        else:
            trend = "stable"
        return {
            "total_versions": len(history),
            "average_decisions": round(
                sum(len(version.decisions) for version in history) / len(history), 2
            ),
            "trend": trend,
        }
