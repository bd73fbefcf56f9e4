"""
Failure detection, tier escalation and outcome-driven learning.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import Counter, deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .config import Settings, TierThresholds
from .errors import exception_chain_text
from .models import EscalationEvent, Feedback, Task, Tier, flatten_text, utcnow_iso

logger = logging.getLogger(__name__)

SEVERITY_SCORES = MappingProxyType({"none": 0, "low": 2, "medium": 5, "high": 8, "critical": 10})
ESCALATION_SEVERITY = 8
THRESHOLD_KEYS = ((Tier.DIRECT, "direct"), (Tier.TIER_1, "tier1"), (Tier.TIER_2, "tier2"))

SYNTAX_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"SyntaxError",
        r"ReferenceError",
        r"NameError",
        r"TypeError",
        r"IndentationError",
        r"Unexpected token",
    )
)
LOGIC_MARKERS = (
    "infinite loop",
    "null pointer",
    "index out of bounds",
    "memory leak",
    "race condition",
    "recursion depth",
    "nonetype",
    "keyerror",
    "indexerror",
    "zerodivisionerror",
)
INTEGRATION_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"connection refused",
        r"connection reset",
        r"timeout",
        r"timed out",
        r"authentication failed",
        r"api error",
        r"service unavailable",
        r"\b404\b",
        r"\b500\b",
        r"\b503\b",
    )
)
PERFORMANCE_MARKERS = (
    "slow query",
    "out of memory",
    "memoryerror",
    "cpu spike",
    "latency exceeded",
    "throughput degraded",
    "deadlock",
    "resource exhausted",
)
SECURITY_MARKERS = (
    "sql injection",
    "xss",
    "cross-site",
    "csrf",
    "exposed secret",
    "hardcoded password",
    "privilege escalation",
    "remote code execution",
)

ESCALATION_MATRIX = MappingProxyType(
    {
        Tier.DIRECT: (Tier.TIER_1, "Direct implementation failed"),
        Tier.TIER_1: (Tier.TIER_2, "Tier 1 consultation insufficient"),
        Tier.TIER_2: (Tier.TIER_3, "Tier 2 analysis incomplete"),
        Tier.TIER_3: (Tier.EXTERNAL, "Internal expertise exceeded"),
    }
)
ESCALATION_MINUTES = MappingProxyType(
    {Tier.TIER_1: 120, Tier.TIER_2: 480, Tier.TIER_3: 1440, Tier.EXTERNAL: 2880}
)

REQUIRED_EXPERTISE = MappingProxyType(
    {
        "syntax": ("code-review-specialist",),
        "logic": ("algorithm-specialist", "testing-specialist"),
        "integration": ("integration-specialist", "api-specialist"),
        "performance": ("performance-specialist",),
        "security": ("security-specialist",),
        "quality": ("quality-assurance-specialist",),
    }
)

RETRY = "retry"
SIMPLIFY = "simplify"
RECOVERY_BY_FAILURE = (
    ("integration", RETRY),
    ("logic", SIMPLIFY),
    ("performance", SIMPLIFY),
    ("syntax", SIMPLIFY),
)

REVIEW_AREAS = (
    "code_quality",
    "architecture",
    "security",
    "maintainability",
    "test_coverage",
    "documentation",
)
REVIEW_TARGET = 0.8
REVIEW_CRITICAL = 0.5
REVIEW_SECURITY_FLOOR = 0.7

DISSATISFIED = 0.6
ROUTING_ACCURACY_FLOOR = 0.7
DOMAIN_MIN_SAMPLES = 3
DOMAIN_ACCURACY_FLOOR = 0.5


@dataclass
class DetectorResult:
    category: str
    severity: str
    matches: list[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return SEVERITY_SCORES[self.severity]

    def to_dict(self) -> dict[str, Any]:
        return {"severity": self.severity, "matches": list(self.matches)}


@dataclass(frozen=True)
class RecoveryStrategy:
    type: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "reason": self.reason}


@dataclass
class FailureDetection:
    """What went wrong, how badly, and what to do about it."""

    results: dict[str, DetectorResult]
    severity: int
    recovery_strategy: RecoveryStrategy | None
    error_text: str = ""
    timestamp: str = field(default_factory=utcnow_iso)

    @property
    def failure_types(self) -> list[str]:
        return [name for name, result in self.results.items() if result.matches]

    @property
    def has_failures(self) -> bool:
        return bool(self.failure_types)

    @property
    def escalation_needed(self) -> bool:
        return self.severity >= ESCALATION_SEVERITY

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_failures": self.has_failures,
            "failure_types": self.failure_types,
            "severity": self.severity,
            "escalation_needed": self.escalation_needed,
            "recovery_strategy": self.recovery_strategy.to_dict() if self.recovery_strategy else None,
            "detectors": {name: result.to_dict() for name, result in self.results.items()},
            "error": self.error_text,
            "timestamp": self.timestamp,
        }


@dataclass
class FailureReport:
    """Input to escalation: the failure plus the context that must survive it."""

    cause: str
    severity: float
    task: Task
    failure_types: tuple[str, ...] = ()
    approach: str | None = None
    error_details: Any = None
    environment: Mapping[str, Any] = field(default_factory=dict)
    affects_production: bool = False
    blocks_other_work: bool = False


@dataclass
class EscalationPlan:
    can_escalate: bool
    from_tier: Tier
    to_tier: Tier | None
    reason: str
    event: EscalationEvent | None = None
    estimated_minutes: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_escalate": self.can_escalate,
            "from_tier": self.from_tier.value,
            "to_tier": self.to_tier.value if self.to_tier else None,
            "reason": self.reason,
            "event": self.event.to_dict() if self.event else None,
            "estimated_minutes": self.estimated_minutes,
        }


@dataclass
class DissatisfactionAnalysis:
    satisfaction: float
    quality_gaps: list[str]
    routing_accuracy: float
    timeline_satisfaction: float
    expertise_mismatch: bool
    dissatisfaction: float
    level: str
    identified_domain: str | None = None
    actual_domain: str | None = None

    @property
    def dissatisfied(self) -> bool:
        return self.dissatisfaction > DISSATISFIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "satisfaction": self.satisfaction,
            "quality_gaps": list(self.quality_gaps),
            "routing_accuracy": round(self.routing_accuracy, 3),
            "timeline_satisfaction": round(self.timeline_satisfaction, 3),
            "expertise_mismatch": self.expertise_mismatch,
            "dissatisfaction": round(self.dissatisfaction, 3),
            "level": self.level,
            "dissatisfied": self.dissatisfied,
            "identified_domain": self.identified_domain,
            "actual_domain": self.actual_domain,
        }


@dataclass
class QualityProblemReport:
    scores: dict[str, float]
    overall: float
    critical_issues: list[str]
    improvement_plan: list[str]
    specialist_consultation_needed: bool

    @property
    def has_quality_problems(self) -> bool:
        return self.overall < REVIEW_TARGET or bool(self.critical_issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scores": dict(self.scores),
            "overall": round(self.overall, 3),
            "has_quality_problems": self.has_quality_problems,
            "critical_issues": list(self.critical_issues),
            "improvement_plan": list(self.improvement_plan),
            "specialist_consultation_needed": self.specialist_consultation_needed,
        }


@dataclass(frozen=True)
class LearningEvent:
    type: str
    data: Mapping[str, Any]
    system_state: Mapping[str, Any]
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "data": dict(self.data),
            "system_state": dict(self.system_state),
            "timestamp": self.timestamp,
        }


def _level(count: int, *, high_above: int) -> str:
    if count > high_above:
        return "high"
    return "medium" if count > 0 else "none"


class ErrorRecoverySystem:
    """Detects failures, plans escalations and nudges routing from outcomes."""

    def __init__(
        self,
        thresholds: TierThresholds | None = None,
        *,
        learning_enabled: bool = True,
        learning_log_limit: int = 500,
        threshold_step: float = 0.1,
        min_samples: int = 5,
        accuracy_floor: float = 0.7,
        accuracy_ceiling: float = 0.95,
    ) -> None:
        self.thresholds = thresholds or TierThresholds()
        self.learning_enabled = learning_enabled
        self.threshold_step = threshold_step
        self.min_samples = min_samples
        self.accuracy_floor = accuracy_floor
        self.accuracy_ceiling = accuracy_ceiling
        self.domain_corrections: dict[str, str] = {}
        self._learning_log: deque[LearningEvent] = deque(maxlen=learning_log_limit)
        self._tier_outcomes: dict[Tier, list[int]] = {}
        self._domain_stats: dict[str, Counter[str]] = {}
        self._specialist_issues: Counter[str] = Counter()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, thresholds: TierThresholds) -> ErrorRecoverySystem:
        return cls(
            thresholds,
            learning_enabled=settings.learning_enabled,
            learning_log_limit=settings.learning_log_limit,
            threshold_step=settings.threshold_step,
            min_samples=settings.threshold_min_samples,
            accuracy_floor=settings.tier_accuracy_floor,
            accuracy_ceiling=settings.tier_accuracy_ceiling,
        )

    # Detection

    def detect_implementation_failure(
        self, error: BaseException | Mapping[str, Any] | str | None, task: Task | None = None
    ) -> FailureDetection:
        if isinstance(error, BaseException):
            raw = exception_chain_text(error)
        elif isinstance(error, Mapping):
            raw = flatten_text(error)
        else:
            raw = str(error or "")
        if task is not None and task.description:
            raw = f"{raw} | {task.description}"
        lowered = raw.lower()

        syntax = [pattern.pattern for pattern in SYNTAX_PATTERNS if pattern.search(raw)]
        logic = [marker for marker in LOGIC_MARKERS if marker in lowered]
        integration = [pattern.pattern for pattern in INTEGRATION_PATTERNS if pattern.search(lowered)]
        performance = [marker for marker in PERFORMANCE_MARKERS if marker in lowered]
        security = [marker for marker in SECURITY_MARKERS if marker in lowered]

        results = {
            "syntax": DetectorResult("syntax", "high" if syntax else "none", syntax),
            "logic": DetectorResult("logic", _level(len(logic), high_above=2), logic),
            "integration": DetectorResult(
                "integration", _level(len(integration), high_above=1), integration
            ),
            "performance": DetectorResult(
                "performance", _level(len(performance), high_above=1), performance
            ),
            "security": DetectorResult("security", "critical" if security else "none", security),
        }
        severity = max(result.score for result in results.values())
        detection = FailureDetection(
            results=results,
            severity=severity,
            recovery_strategy=self.recommend_recovery(results, severity),
            error_text=raw[:500],
        )
        logger.info(
            "Failure detection: types=%s severity=%d escalate=%s",
            detection.failure_types,
            severity,
            detection.escalation_needed,
        )
        return detection

    @staticmethod
    def recommend_recovery(
        results: Mapping[str, DetectorResult], severity: int
    ) -> RecoveryStrategy | None:
        if severity >= ESCALATION_SEVERITY:
            return None
        failing = {name for name, result in results.items() if result.matches}
        if not failing:
            return RecoveryStrategy(RETRY, "No known failure signature; retry once")
        for category, strategy in RECOVERY_BY_FAILURE:
            if category in failing:
                return RecoveryStrategy(strategy, f"{category} failure")
        return None

    def detect_user_dissatisfaction(
        self, feedback: Feedback, *, identified_domain: str | None = None
    ) -> DissatisfactionAnalysis:
        actual = feedback.actual_domain.lower() if feedback.actual_domain else None
        if feedback.routing_accuracy is not None:
            routing_accuracy = min(max(feedback.routing_accuracy, 0.0), 1.0)
        elif actual and identified_domain and actual != identified_domain:
            routing_accuracy = 0.0
        else:
            routing_accuracy = 1.0
        timeline = (
            min(max(feedback.timeline_satisfaction, 0.0), 1.0)
            if feedback.timeline_satisfaction is not None
            else feedback.satisfaction
        )
        dissatisfaction = 1.0 - (
            0.5 * feedback.satisfaction + 0.25 * routing_accuracy + 0.25 * timeline
        )
        if dissatisfaction > DISSATISFIED:
            level = "high"
        elif dissatisfaction > 0.3:
            level = "medium"
        else:
            level = "low"
        return DissatisfactionAnalysis(
            satisfaction=feedback.satisfaction,
            quality_gaps=list(feedback.issues),
            routing_accuracy=routing_accuracy,
            timeline_satisfaction=timeline,
            expertise_mismatch=feedback.expertise_mismatch,
            dissatisfaction=dissatisfaction,
            level=level,
            identified_domain=identified_domain,
            actual_domain=actual,
        )

    def detect_quality_problems(self, review: Mapping[str, Any]) -> QualityProblemReport:
        scores: dict[str, float] = {}
        for area in REVIEW_AREAS:
            value = review.get(area)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                scores[area] = min(max(float(value), 0.0), 1.0)
        overall = sum(scores.values()) / len(scores) if scores else 1.0
        critical = [area for area, score in scores.items() if score < REVIEW_CRITICAL]
        plan = [f"Improve {area.replace('_', ' ')}" for area, score in scores.items() if score < REVIEW_TARGET]
        return QualityProblemReport(
            scores=scores,
            overall=overall,
            critical_issues=critical,
            improvement_plan=plan,
            specialist_consultation_needed=bool(critical)
            or scores.get("security", 1.0) < REVIEW_SECURITY_FLOOR,
        )

    # Escalation

    def auto_escalate_tier(self, current: Tier, report: FailureReport) -> EscalationPlan:
        rule = ESCALATION_MATRIX.get(current)
        if rule is None:
            return EscalationPlan(False, current, None, "Maximum tier reached")
        target, reason = rule
        event = EscalationEvent(
            from_tier=current,
            to_tier=target,
            cause=f"{reason}: {report.cause}",
            severity=report.severity,
            context=self.preserve_context(report),
            required_expertise=self.identify_required_expertise(report.failure_types),
            urgency=self.calculate_urgency(report),
        )
        logger.warning(
            "Escalating %s -> %s (%s, urgency %d)",
            current.value,
            target.value,
            report.cause,
            event.urgency,
        )
        return EscalationPlan(True, current, target, reason, event, ESCALATION_MINUTES.get(target))

    @staticmethod
    def preserve_context(report: FailureReport) -> dict[str, Any]:
        return {
            "original_task": report.task.to_dict(),
            "attempted_approach": report.approach,
            "error_details": report.error_details,
            "environment": dict(report.environment),
            "timestamp": utcnow_iso(),
        }

    @staticmethod
    def identify_required_expertise(failure_types: tuple[str, ...] | list[str]) -> tuple[str, ...]:
        expertise: list[str] = []
        for failure_type in failure_types:
            for specialist in REQUIRED_EXPERTISE.get(failure_type, ()):
                if specialist not in expertise:
                    expertise.append(specialist)
        return tuple(expertise)

    @staticmethod
    def calculate_urgency(report: FailureReport) -> int:
        urgency = 1
        if report.severity >= 8:
            urgency += 3
        elif report.severity >= 5:
            urgency += 2
        elif report.severity >= 3:
            urgency += 1
        if report.affects_production:
            urgency += 2
        if report.blocks_other_work:
            urgency += 1
        return min(urgency, 5)

    # Learning

    def record_tier_outcome(self, tier: Tier, success: bool) -> None:
        with self._lock:
            counts = self._tier_outcomes.setdefault(tier, [0, 0])
            counts[0] += 1 if success else 0
            counts[1] += 1

    def tier_accuracy(self) -> dict[str, float]:
        with self._lock:
            return {
                tier.value: round(ok / total, 3) if total else 1.0
                for tier, (ok, total) in self._tier_outcomes.items()
            }

    def adjust_complexity_thresholds(self, tier: Tier | None = None) -> dict[str, float]:
        """Nudge cut-offs by a fixed step for tiers with enough outcomes.

        A tier that fails too often hands more work to the next tier; a tier
        that almost never fails takes on a little more. With `tier` given only
        that tier's cut-off is considered.
        """
        deltas: dict[str, float] = {}
        candidates = [(t, key) for t, key in THRESHOLD_KEYS if tier is None or t == tier]
        with self._lock:
            for candidate, key in candidates:
                ok, total = self._tier_outcomes.get(candidate, (0, 0))
                if total < self.min_samples:
                    continue
                accuracy = ok / total
                if accuracy < self.accuracy_floor:
                    deltas[key] = -self.threshold_step
                elif accuracy >= self.accuracy_ceiling:
                    deltas[key] = self.threshold_step
                else:
                    continue
                self._tier_outcomes[candidate] = [0, 0]
        if deltas:
            snapshot = self.thresholds.adjust(deltas)
            logger.info("Adjusted tier thresholds %s -> %s", deltas, snapshot)
        return deltas

    def _adjust_for(self, tier: Tier | None) -> dict[str, float]:
        return self.adjust_complexity_thresholds(tier) if tier is not None else {}

    def refine_domain_mapping(self, identified: str, actual: str) -> str | None:
        """Track inferred-vs-actual domains and return the active correction."""
        identified, actual = identified.lower(), actual.lower()
        with self._lock:
            stats = self._domain_stats.setdefault(identified, Counter())
            stats[actual] += 1
            total = sum(stats.values())
            accuracy = stats[identified] / total
            others = [(domain, n) for domain, n in stats.most_common() if domain != identified]
            if total >= DOMAIN_MIN_SAMPLES and accuracy < DOMAIN_ACCURACY_FLOOR and others:
                self.domain_corrections[identified] = others[0][0]
            else:
                self.domain_corrections.pop(identified, None)
            return self.domain_corrections.get(identified)

    def integrate_implementation_failure_feedback(
        self,
        detection: FailureDetection,
        *,
        tier: Tier | None = None,
        recovery_attempted: bool = False,
        recovery_successful: bool = False,
    ) -> LearningEvent | None:
        if not self.learning_enabled:
            return None
        if tier is not None:
            self.record_tier_outcome(tier, False)
        adjustments = self._adjust_for(tier)
        return self._log(
            "implementation_failure",
            {
                "failure_types": detection.failure_types,
                "severity": detection.severity,
                "tier": tier.value if tier else None,
                "recovery_attempted": recovery_attempted,
                "recovery_successful": recovery_successful,
                "threshold_adjustments": adjustments,
            },
        )

    def integrate_user_dissatisfaction_feedback(
        self,
        analysis: DissatisfactionAnalysis,
        *,
        tier: Tier | None = None,
        specialist: str | None = None,
    ) -> LearningEvent | None:
        if not self.learning_enabled:
            return None
        if tier is not None:
            self.record_tier_outcome(tier, False)
        correction = None
        if analysis.identified_domain and analysis.actual_domain:
            correction = self.refine_domain_mapping(analysis.identified_domain, analysis.actual_domain)
        adjustments = self._adjust_for(tier)
        return self._log(
            "user_dissatisfaction",
            {
                "analysis": analysis.to_dict(),
                "specialist": specialist,
                "routing_adjustment": analysis.routing_accuracy < ROUTING_ACCURACY_FLOOR,
                "domain_correction": correction,
                "threshold_adjustments": adjustments,
            },
        )

    def integrate_quality_problems_feedback(
        self,
        report: QualityProblemReport,
        *,
        tier: Tier | None = None,
        specialist: str | None = None,
    ) -> LearningEvent | None:
        if not self.learning_enabled:
            return None
        if specialist:
            with self._lock:
                self._specialist_issues[specialist] += 1
        if tier is not None:
            self.record_tier_outcome(tier, False)
        adjustments = self._adjust_for(tier)
        return self._log(
            "quality_problems",
            {
                "report": report.to_dict(),
                "specialist": specialist,
                "threshold_adjustments": adjustments,
            },
        )

    def _log(self, event_type: str, data: dict[str, Any]) -> LearningEvent:
        event = LearningEvent(type=event_type, data=data, system_state=self._system_state())
        with self._lock:
            self._learning_log.append(event)
        logger.debug("Learning event %s recorded", event_type)
        return event

    def _system_state(self) -> dict[str, Any]:
        return {
            "thresholds": self.thresholds.snapshot(),
            "tier_accuracy": self.tier_accuracy(),
            "domain_corrections": dict(self.domain_corrections),
        }

    def learning_events(self) -> list[LearningEvent]:
        with self._lock:
            return list(self._learning_log)

    def summary(self) -> dict[str, Any]:
        events = self.learning_events()
        with self._lock:
            specialist_issues = dict(self._specialist_issues)
        return {
            **self._system_state(),
            "learning_enabled": self.learning_enabled,
            "learning_events": len(events),
            "specialist_quality_issues": specialist_issues,
            "recent_events": [event.to_dict() for event in events[-5:]],
        }
