"""
End-to-end task processing: analyze, route, consult, validate and escalate.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from uuid import uuid4

from .analyzer import ComplexityAnalyzer
from .config import Settings, TierThresholds
from .config import settings as default_settings
from .context import DEFAULT_COMPLEXITY, ContextManager
from .errors import (
    EscalationExhaustedError,
    ImplementationFailureError,
    UnknownRecoveryStrategyError,
    UnknownTaskError,
    error_code,
)
from .events import EventActions, EventEmitter, EventType, PipelineEvent, log_event_handler
from .metrics import PerformanceMetricsStore, TaskMetrics
from .models import (
    CacheEntry,
    Consultation,
    EscalationEnvelope,
    EscalationEvent,
    Feedback,
    Outcome,
    ProjectContext,
    QualityResult,
    RoutingDecision,
    Task,
    Tier,
    utcnow_iso,
)
from .quality import QualityAssurance
from .recovery import (
    RETRY,
    SIMPLIFY,
    ErrorRecoverySystem,
    EscalationPlan,
    FailureReport,
    RecoveryStrategy,
)
from .registry import SpecialistRegistry
from .router import TaskRouter
from .synthesis import RecommendationSynthesizer, RuleBasedSynthesizer

logger = logging.getLogger(__name__)

MAX_ESCALATION_DEPTH = 4
DIRECT_CONFIDENCE = 0.95
DIRECT_QUALITY_SCORE = 0.9
DISSATISFACTION_THRESHOLD = 0.6

DISTRIBUTION_TARGETS = {"DIRECT": 0.80, "TIER_1": 0.15, "TIER_2": 0.04, "TIER_3": 0.01}
DEFAULT_OBJECTIVES = (
    "Route each task to the cheapest sufficient expertise",
    "Maintain recommendation quality standards",
    "Learn from consultation outcomes",
)


class PipelineStage(str, Enum):
    ANALYZE = "analyze"
    ROUTE = "route"
    CACHE_CHECK = "cache_check"
    EXECUTE = "execute"
    QUALITY_GATE = "quality_gate"
    ESCALATE = "escalate"
    FAILURE_HANDLING = "failure_handling"
    RECOVERY_ATTEMPT = "recovery_attempt"
    DONE = "done"


def generate_task_id() -> str:
    return f"task_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


@dataclass(frozen=True)
class TaskOptions:
    use_cache: bool = True
    tier: Tier | None = None
    retry: bool = False

    @classmethod
    def coerce(cls, value: TaskOptions | Mapping[str, Any] | None) -> TaskOptions:
        if isinstance(value, TaskOptions):
            return value
        data = dict(value or {})
        tier = data.get("tier")
        if tier is not None and not isinstance(tier, Tier):
            try:
                tier = Tier(str(tier).upper())
            except ValueError:
                logger.warning("Ignoring unknown tier option %r", tier)
                tier = None
        return cls(
            use_cache=bool(data.get("use_cache", data.get("useCache", True))),
            tier=tier,
            retry=bool(data.get("retry", False)),
        )


@dataclass
class _RunState:
    task_id: str
    started: float
    stage: PipelineStage = PipelineStage.ANALYZE
    tier: Tier | None = None
    routing: RoutingDecision | None = None
    trail: list[EscalationEvent] = field(default_factory=list)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


@dataclass
class _Attempt:
    """Either a finished outcome or a consultation that failed its quality gate."""

    outcome: Outcome | None = None
    consultation: Consultation | None = None


class Orchestrator:
    """Runs tasks through the tiered consultation pipeline."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        registry: SpecialistRegistry | None = None,
        context: ContextManager | None = None,
        synthesizer: RecommendationSynthesizer | None = None,
        metrics: PerformanceMetricsStore | None = None,
        events: EventEmitter | None = None,
        clock=time.time,
    ) -> None:
        self.settings = settings or default_settings
        self.thresholds = TierThresholds.from_settings(self.settings)
        self.registry = registry or SpecialistRegistry()
        self.analyzer = ComplexityAnalyzer(self.thresholds)
        self.recovery = ErrorRecoverySystem.from_settings(self.settings, self.thresholds)
        self.router = TaskRouter(
            self.registry, self.analyzer, domain_corrections=self.recovery.domain_corrections
        )
        self.quality = QualityAssurance(self.registry)
        self.context = context or ContextManager.from_settings(
            self.settings, clock=clock, router=self.router
        )
        self.synthesizer = synthesizer or RuleBasedSynthesizer()
        self.metrics = metrics or PerformanceMetricsStore(
            self.settings.metrics_history_limit, self.settings.metrics_trim_to
        )
        self.events = events or EventEmitter()
        if events is None:
            self.events.on_event(log_event_handler)
        self.initialized = False

    async def initialize(
        self,
        *,
        objectives: Iterable[str] | None = None,
        constraints: Iterable[str] = (),
        state: Mapping[str, Any] | None = None,
    ) -> ProjectContext:
        context = await self.context.update_project_context(
            objectives=tuple(objectives) if objectives is not None else DEFAULT_OBJECTIVES,
            constraints=tuple(constraints),
            state={"initialized_at": utcnow_iso(), **dict(state or {})},
        )
        self.initialized = True
        logger.info("Orchestrator initialized (context v%d)", context.version)
        return context

    async def process_task(
        self,
        task: Task | Mapping[str, Any],
        options: TaskOptions | Mapping[str, Any] | None = None,
    ) -> Outcome:
        task = Task.coerce(task)
        opts = TaskOptions.coerce(options)
        state = _RunState(task_id=generate_task_id(), started=time.perf_counter())
        logger.info("Processing task %s: %s", state.task_id, task.description[:80])
        await self._emit(EventType.TASK_STARTED, state, message=task.description[:80])
        return await self._run(task, opts, state, allow_recovery=True)

    async def _run(
        self, task: Task, opts: TaskOptions, state: _RunState, *, allow_recovery: bool
    ) -> Outcome:
        try:
            return await self._process(task, opts, state)
        except Exception as exc:
            return await self._handle_failure(task, opts, state, exc, allow_recovery=allow_recovery)

    async def _process(self, task: Task, opts: TaskOptions, state: _RunState) -> Outcome:
        forced = opts.tier
        current = task
        consultation: Consultation | None = None
        plan: EscalationPlan | None = None

        for _ in range(MAX_ESCALATION_DEPTH):
            attempt = await self._attempt(current, opts, state, forced)
            if attempt.outcome is not None:
                return attempt.outcome

            consultation = attempt.consultation
            quality = consultation.quality
            state.stage = PipelineStage.ESCALATE
            await self._record_rejected(consultation)
            plan = self.recovery.auto_escalate_tier(
                consultation.routing.tier, self._quality_failure_report(task, consultation, quality)
            )
            if not plan.can_escalate or plan.to_tier == Tier.EXTERNAL:
                break

            state.trail.append(plan.event)
            await self._emit(
                EventType.TASK_ESCALATED,
                state,
                message=plan.reason,
                data=plan.to_dict(),
                actions=EventActions(escalate=True, transfer_to=plan.to_tier.value),
            )
            current = replace(
                task,
                escalation=EscalationEnvelope(
                    from_tier=consultation.routing.tier,
                    reason=plan.reason,
                    previous_consultation=consultation,
                    trail=tuple(state.trail),
                ),
            )
            forced = plan.to_tier

        return await self._exhausted(state, consultation, plan)

    async def _attempt(
        self, task: Task, opts: TaskOptions, state: _RunState, forced: Tier | None
    ) -> _Attempt:
        state.stage = PipelineStage.ANALYZE
        analysis = self.analyzer.analyze(task, forced_tier=forced)
        state.tier = analysis.tier
        await self._emit(EventType.TASK_ANALYZED, state, data=analysis.to_dict())

        state.stage = PipelineStage.ROUTE
        routing = self.router.route(
            task,
            analysis=analysis,
            performance=await self.context.specialist_success_rates(),
            context={
                "task_id": state.task_id,
                "escalated_from": task.escalation.from_tier.value if task.escalation else None,
                "retry": opts.retry,
            },
        )
        state.routing = routing
        await self._emit(EventType.TASK_ROUTED, state, message=routing.protocol)

        if routing.tier == Tier.DIRECT:
            return _Attempt(outcome=await self._complete_direct(task, routing, state))
        if routing.specialist is None:
            raise ImplementationFailureError(
                f"No specialist available for {routing.tier.value} in domain {routing.domain}"
            )

        state.stage = PipelineStage.CACHE_CHECK
        shape = self.context.task_shape(task, domain=routing.domain, complexity=analysis.overall_score)
        key = self.context.cache_key(routing.specialist, shape)
        async with self.context.consultation_lock(key):
            if opts.use_cache:
                entry = await self.context.get_cached(key)
                if entry is not None:
                    outcome = await self._serve_cached(entry, task, routing, state)
                    if outcome is not None:
                        return _Attempt(outcome=outcome)

            state.stage = PipelineStage.EXECUTE
            consultation = await self._consult(task, routing, state)

            state.stage = PipelineStage.QUALITY_GATE
            quality = self.quality.validate(
                routing.specialist,
                consultation.recommendation,
                task,
                complexity_score=analysis.overall_score,
                domain=routing.domain,
            )
            consultation.quality = quality
            await self._emit(
                EventType.QUALITY_PASSED if quality.passed else EventType.QUALITY_FAILED,
                state,
                message=f"{quality.score:.2f} ({quality.grade})",
                data=quality.to_dict(),
                actions=EventActions(escalate=quality.escalation_needed),
            )
            if not quality.passed and quality.escalation_needed:
                return _Attempt(consultation=consultation)
            return _Attempt(outcome=await self._complete_consultation(consultation, state))

    async def _consult(self, task: Task, routing: RoutingDecision, state: _RunState) -> Consultation:
        profile = self.registry.require(routing.specialist)
        matches = await self.context.get_relevant_patterns(
            task, domain=routing.domain, complexity=routing.complexity.overall_score
        )
        patterns = [match.pattern for match in matches]
        recommendation = await self.synthesizer.synthesize(task, profile, patterns, routing.complexity)
        consultation = Consultation(
            specialist=profile.id,
            task=task,
            routing=routing,
            recommendation=recommendation,
            pattern_ids=[pattern.id for pattern in patterns[:3]],
        )
        await self._emit(EventType.CONSULTATION_COMPLETED, state, message=recommendation.approach)
        return consultation

    async def _serve_cached(
        self, entry: CacheEntry, task: Task, routing: RoutingDecision, state: _RunState
    ) -> Outcome | None:
        cached = entry.consultation
        if self.settings.cache_hit_policy == "revalidate":
            quality = self.quality.validate(
                entry.specialist,
                cached.recommendation,
                task,
                complexity_score=routing.complexity.overall_score,
                domain=routing.domain,
            )
            if not quality.passed:
                await self.context.invalidate(entry.key)
                logger.info("Cached consultation %s failed revalidation; evicted", entry.key)
                return None

        logger.info("Cache hit for %s (%s)", state.task_id, entry.key)
        quality_score = cached.quality.score if cached.quality else None
        self.metrics.record(
            TaskMetrics(
                task_id=state.task_id,
                success=True,
                tier=routing.tier,
                complexity=routing.complexity.overall_score,
                domain=routing.domain,
                specialist=entry.specialist,
                execution_time_ms=state.elapsed_ms,
                quality_score=quality_score,
                cached=True,
                escalations=len(state.trail),
                pattern_ids=list(cached.pattern_ids),
            )
        )
        state.stage = PipelineStage.DONE
        await self._emit(EventType.CACHE_HIT, state, message=entry.key)
        return Outcome(
            task_id=state.task_id,
            success=True,
            result=cached.recommendation.to_dict(),
            metadata={
                **self._metadata(routing, cached.quality, state),
                "cached": True,
                "cache_used": True,
                "original_timestamp": cached.timestamp,
                "specialist": entry.specialist,
                "cache_age_ms": round((self.context.now() - entry.created_at) * 1000),
            },
        )

    async def _complete_direct(
        self, task: Task, routing: RoutingDecision, state: _RunState
    ) -> Outcome:
        self.metrics.record(
            TaskMetrics(
                task_id=state.task_id,
                success=True,
                tier=Tier.DIRECT,
                complexity=routing.complexity.overall_score,
                domain=routing.domain,
                execution_time_ms=state.elapsed_ms,
                quality_score=DIRECT_QUALITY_SCORE,
                escalations=len(state.trail),
            )
        )
        state.stage = PipelineStage.DONE
        await self._emit(EventType.TASK_COMPLETED, state, message="direct-implementation")
        return Outcome(
            task_id=state.task_id,
            success=True,
            result={
                "approach": "direct-implementation",
                "implementation": task.implementation or task.description or "Direct task execution",
                "confidence": DIRECT_CONFIDENCE,
                "estimated_effort": routing.estimated_minutes,
                "quality_checks": list(routing.quality_checks),
            },
            metadata=self._metadata(routing, None, state),
        )

    async def _complete_consultation(self, consultation: Consultation, state: _RunState) -> Outcome:
        quality = consultation.quality
        routing = consultation.routing
        execution_ms = state.elapsed_ms

        await self.context.cache_specialist_consultation(consultation)
        pattern = await self.context.store_success_pattern(
            consultation,
            successful=quality.passed,
            quality_score=quality.score,
            execution_time_ms=execution_ms,
        )
        for pattern_id in consultation.pattern_ids:
            await self.context.update_pattern_usage(
                pattern_id, successful=quality.passed, metrics={"last_quality_score": quality.score}
            )
        await self.context.record_specialist_consultation(
            consultation.specialist, successful=quality.passed, quality_score=quality.score
        )
        self.recovery.record_tier_outcome(routing.tier, quality.passed)

        self.metrics.record(
            TaskMetrics(
                task_id=state.task_id,
                success=True,
                tier=routing.tier,
                complexity=routing.complexity.overall_score,
                domain=routing.domain,
                specialist=consultation.specialist,
                execution_time_ms=execution_ms,
                quality_score=quality.score,
                escalations=len(state.trail),
                pattern_ids=consultation.pattern_ids + ([pattern.id] if pattern else []),
            )
        )
        state.stage = PipelineStage.DONE
        await self._emit(EventType.TASK_COMPLETED, state, message=consultation.recommendation.approach)
        return Outcome(
            task_id=state.task_id,
            success=True,
            result=consultation.recommendation.to_dict(),
            metadata={
                **self._metadata(routing, quality, state),
                "cached": False,
                "cache_used": False,
                "specialist": consultation.specialist,
                "pattern_id": pattern.id if pattern else None,
            },
        )

    async def _record_rejected(self, consultation: Consultation) -> None:
        quality = consultation.quality
        await self.context.record_specialist_consultation(
            consultation.specialist, successful=False, quality_score=quality.score
        )
        for pattern_id in consultation.pattern_ids:
            await self.context.update_pattern_usage(pattern_id, successful=False)
        self.recovery.record_tier_outcome(consultation.routing.tier, False)

    def _quality_failure_report(
        self, task: Task, consultation: Consultation, quality: QualityResult
    ) -> FailureReport:
        return FailureReport(
            cause="Quality validation failed",
            severity=round(10 * (1 - quality.score), 2),
            task=task,
            failure_types=("quality",),
            approach=consultation.recommendation.approach,
            error_details={
                "failed_checks": quality.failed_checks,
                "improvements": quality.improvements,
                "score": round(quality.score, 3),
            },
            environment={
                "tier": consultation.routing.tier.value,
                "specialist": consultation.specialist,
                "domain": consultation.routing.domain,
            },
            affects_production="production-critical" in {r.lower() for r in task.system_risk},
        )

    async def _exhausted(
        self, state: _RunState, consultation: Consultation | None, plan: EscalationPlan | None
    ) -> Outcome:
        quality = consultation.quality if consultation else None
        routing = consultation.routing if consultation else state.routing
        error = EscalationExhaustedError("Quality validation failed and cannot escalate further")
        severity = round(10 * (1 - quality.score), 2) if quality else 10.0
        logger.error("Task %s exhausted escalation at %s", state.task_id, state.tier)

        self.metrics.record(
            TaskMetrics(
                task_id=state.task_id,
                success=False,
                tier=state.tier,
                complexity=routing.complexity.overall_score if routing else None,
                domain=routing.domain if routing else None,
                specialist=consultation.specialist if consultation else None,
                execution_time_ms=state.elapsed_ms,
                quality_score=quality.score if quality else 0.0,
                escalations=len(state.trail),
                pattern_ids=list(consultation.pattern_ids) if consultation else [],
                error=str(error),
                severity=severity,
            )
        )
        await self._emit(
            EventType.ESCALATION_EXHAUSTED,
            state,
            message=str(error),
            actions=EventActions(escalate=True, transfer_to=Tier.EXTERNAL.value),
        )
        return Outcome(
            task_id=state.task_id,
            success=False,
            metadata=self._metadata(routing, quality, state) if routing else {},
            error=str(error),
            error_type=error.code,
            failure_analysis={
                "stage": state.stage.value,
                "severity": severity,
                "failure_types": ["quality", *(quality.failed_checks if quality else [])],
                "escalation": plan.to_dict() if plan else None,
                "escalation_trail": [event.to_dict() for event in state.trail],
            },
            recovery_attempted=False,
            quality_issues=list(quality.improvements) if quality else [],
        )

    async def _handle_failure(
        self,
        task: Task,
        opts: TaskOptions,
        state: _RunState,
        exc: Exception,
        *,
        allow_recovery: bool,
    ) -> Outcome:
        failed_stage = state.stage
        state.stage = PipelineStage.FAILURE_HANDLING
        logger.error(
            "Task %s failed during %s: %s", state.task_id, failed_stage.value, exc, exc_info=exc
        )
        detection = self.recovery.detect_implementation_failure(exc, task)

        recovery_attempted = False
        recovery_error: str | None = None
        if allow_recovery and detection.recovery_strategy is not None:
            recovery_attempted = True
            state.stage = PipelineStage.RECOVERY_ATTEMPT
            await self._emit(
                EventType.RECOVERY_ATTEMPTED,
                state,
                message=detection.recovery_strategy.type,
                actions=EventActions(retry=True),
            )
            try:
                recovered = await self.execute_recovery_strategy(
                    task, detection.recovery_strategy, options=opts, task_id=state.task_id
                )
            except UnknownRecoveryStrategyError as recovery_exc:
                recovery_error = str(recovery_exc)
                logger.error("Recovery failed for %s: %s", state.task_id, recovery_exc)
            else:
                recovered.recovery_attempted = True
                recovered.metadata["recovery"] = {
                    "strategy": detection.recovery_strategy.to_dict(),
                    "original_error": str(exc),
                    "successful": recovered.success,
                }
                if recovered.success:
                    self.recovery.integrate_implementation_failure_feedback(
                        detection,
                        tier=state.tier,
                        recovery_attempted=True,
                        recovery_successful=True,
                    )
                return recovered

        plan: EscalationPlan | None = None
        if detection.escalation_needed and state.tier is not None:
            plan = self.recovery.auto_escalate_tier(
                state.tier,
                FailureReport(
                    cause=str(exc),
                    severity=detection.severity,
                    task=task,
                    failure_types=tuple(detection.failure_types),
                    approach=state.routing.protocol if state.routing else None,
                    error_details=detection.error_text,
                    environment={"stage": failed_stage.value},
                    affects_production="production-critical"
                    in {risk.lower() for risk in task.system_risk},
                ),
            )

        routing = state.routing
        self.metrics.record(
            TaskMetrics(
                task_id=state.task_id,
                success=False,
                tier=state.tier,
                complexity=routing.complexity.overall_score if routing else None,
                domain=routing.domain if routing else None,
                specialist=routing.specialist if routing else None,
                execution_time_ms=state.elapsed_ms,
                quality_score=0.0,
                escalations=len(state.trail),
                error=str(exc),
                severity=detection.severity,
            )
        )
        self.recovery.integrate_implementation_failure_feedback(
            detection, tier=state.tier, recovery_attempted=recovery_attempted
        )
        await self._emit(EventType.TASK_FAILED, state, message=str(exc))
        return Outcome(
            task_id=state.task_id,
            success=False,
            metadata={"execution_time_ms": round(state.elapsed_ms, 2)},
            error=str(exc),
            error_type=error_code(exc),
            failure_analysis={
                "stage": failed_stage.value,
                **detection.to_dict(),
                "escalation": plan.to_dict() if plan else None,
                "recovery_error": recovery_error,
            },
            recovery_attempted=recovery_attempted,
        )

    async def execute_recovery_strategy(
        self,
        task: Task,
        strategy: RecoveryStrategy | str,
        *,
        options: TaskOptions | Mapping[str, Any] | None = None,
        task_id: str | None = None,
    ) -> Outcome:
        """Re-run a task once using a recovery strategy; unknown types raise."""
        strategy_type = strategy.type if isinstance(strategy, RecoveryStrategy) else str(strategy)
        opts = TaskOptions.coerce(options)
        if strategy_type == RETRY:
            recovered_task = task
            opts = replace(opts, retry=True)
        elif strategy_type == SIMPLIFY:
            base = task.complexity if task.complexity is not None else DEFAULT_COMPLEXITY
            recovered_task = replace(task, complexity=max(1.0, base - 2))
        else:
            raise UnknownRecoveryStrategyError(strategy_type)

        state = _RunState(task_id=task_id or generate_task_id(), started=time.perf_counter())
        logger.info("Recovering task %s with %s", state.task_id, strategy_type)
        return await self._run(recovered_task, opts, state, allow_recovery=False)

    async def get_system_status(self) -> dict[str, Any]:
        window = self.settings.status_window
        return {
            "status": "operational",
            "initialized": self.initialized,
            "performance": self.metrics.summary(window),
            "distribution_targets": dict(DISTRIBUTION_TARGETS),
            "thresholds": self.thresholds.snapshot(),
            "routing": self.router.optimize_routing(
                [record.to_dict() for record in self.metrics.recent(window)]
            ),
            "context_manager": await self.context.get_context_analytics(),
            "learning": self.recovery.summary(),
            "timestamp": utcnow_iso(),
        }

    async def process_feedback(
        self, task_id: str, feedback: Feedback | Mapping[str, Any]
    ) -> dict[str, Any]:
        record = self.metrics.get(task_id)
        if record is None:
            raise UnknownTaskError(task_id)
        feedback = Feedback.coerce(feedback)

        system_updated = False
        if feedback.satisfaction < DISSATISFACTION_THRESHOLD:
            analysis = self.recovery.detect_user_dissatisfaction(
                feedback, identified_domain=record.domain
            )
            event = self.recovery.integrate_user_dissatisfaction_feedback(
                analysis, tier=record.tier, specialist=record.specialist
            )
            if event is not None:
                system_updated = True
                for pattern_id in record.pattern_ids:
                    await self.context.update_pattern_usage(
                        pattern_id,
                        successful=False,
                        metrics={"user_satisfaction": feedback.satisfaction},
                    )
        elif record.tier == Tier.DIRECT and self.recovery.learning_enabled:
            # direct work has no quality gate, only feedback confirms it
            self.recovery.record_tier_outcome(Tier.DIRECT, True)
            system_updated = bool(self.recovery.adjust_complexity_thresholds(Tier.DIRECT))

        if feedback.code_review:
            report = self.recovery.detect_quality_problems(feedback.code_review)
            if report.has_quality_problems:
                event = self.recovery.integrate_quality_problems_feedback(
                    report, tier=record.tier, specialist=record.specialist
                )
                system_updated = system_updated or event is not None

        self.metrics.update(
            task_id,
            lambda current: replace(
                current,
                user_feedback=feedback.to_dict(),
                user_satisfaction=feedback.satisfaction,
            ),
        )
        await self.context.record_event(
            "user_feedback", {"task_id": task_id, "satisfaction": feedback.satisfaction}
        )
        await self._emit(
            EventType.FEEDBACK_RECEIVED,
            _RunState(task_id=task_id, started=time.perf_counter(), tier=record.tier),
            message=f"satisfaction={feedback.satisfaction:.2f}",
        )
        return {"task_id": task_id, "feedback_processed": True, "system_updated": system_updated}

    def _metadata(
        self, routing: RoutingDecision, quality: QualityResult | None, state: _RunState
    ) -> dict[str, Any]:
        return {
            "complexity": routing.complexity.to_dict(),
            "routing": routing.to_dict(),
            "quality": quality.to_dict() if quality else None,
            "execution_time_ms": round(state.elapsed_ms, 2),
            "cached": False,
            "cache_used": False,
            "escalations": [event.to_dict() for event in state.trail],
        }

    async def _emit(
        self,
        event_type: EventType,
        state: _RunState,
        *,
        message: str = "",
        data: dict[str, Any] | None = None,
        actions: EventActions | None = None,
    ) -> PipelineEvent:
        return await self.events.emit(
            PipelineEvent(
                type=event_type,
                task_id=state.task_id,
                tier=state.tier.value if state.tier else None,
                specialist=state.routing.specialist if state.routing else None,
                message=message,
                data=data or {},
                actions=actions or EventActions(),
                duration_ms=int(state.elapsed_ms),
            )
        )
