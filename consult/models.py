"""
Domain records exchanged between the consultation components.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def flatten_text(value: Any) -> str:
    """Join every string leaf of a nested structure into one lowercase blob."""
    parts: list[str] = []

    def _walk(node: Any) -> None:
        if node is None:
            return
        if isinstance(node, str):
            parts.append(node)
        elif isinstance(node, Mapping):
            for item in node.values():
                _walk(item)
        elif isinstance(node, Iterable):
            for item in node:
                _walk(item)
        else:
            parts.append(str(node))

    _walk(value)
    return " ".join(parts).lower()


class Tier(str, Enum):
    DIRECT = "DIRECT"
    TIER_1 = "TIER_1"
    TIER_2 = "TIER_2"
    TIER_3 = "TIER_3"
    EXTERNAL = "EXTERNAL"

    @property
    def level(self) -> int:
        return list(Tier).index(self)

    def next(self) -> Tier | None:
        members = list(Tier)
        index = members.index(self)
        return members[index + 1] if index + 1 < len(members) else None


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, Mapping):
        return tuple(str(key) for key in value)
    if isinstance(value, Iterable):
        return tuple(str(item) for item in value if item is not None and str(item))
    return (str(value),)


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_unit(value: Any) -> float | None:
    number = _as_float(value)
    return None if number is None else min(max(number, 0.0), 1.0)


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


_TASK_ALIASES = {
    "crossTeam": "cross_team",
    "businessLogic": "business_logic",
    "dataRisk": "data_risk",
    "systemRisk": "system_risk",
    "implementationRisk": "implementation_risk",
    "timelinePressure": "timeline_pressure",
}

_TUPLE_FIELDS = (
    "technologies",
    "patterns",
    "requirements",
    "files",
    "integrations",
    "databases",
    "apis",
    "services",
    "performance",
    "scalability",
    "compliance",
    "business_logic",
    "data_risk",
    "system_risk",
    "implementation_risk",
)


@dataclass(frozen=True)
class Task:
    """A unit of work submitted for consultation.

    Every field is optional; missing data degrades to neutral defaults.
    """

    description: str = ""
    domain: str | None = None
    technologies: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    requirements: tuple[str, ...] = ()
    scope: str | None = None
    files: tuple[str, ...] = ()
    integrations: tuple[str, ...] = ()
    databases: tuple[str, ...] = ()
    apis: tuple[str, ...] = ()
    services: tuple[str, ...] = ()
    cross_team: bool = False
    governance: bool = False
    performance: tuple[str, ...] = ()
    scalability: tuple[str, ...] = ()
    compliance: tuple[str, ...] = ()
    business_logic: tuple[str, ...] = ()
    data_risk: tuple[str, ...] = ()
    system_risk: tuple[str, ...] = ()
    implementation_risk: tuple[str, ...] = ()
    timeline_pressure: str | None = None
    complexity: float | None = None
    implementation: str | None = None
    escalation: EscalationEnvelope | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> Task:
        """Build a task from loosely-typed input, ignoring unknown keys."""
        data: dict[str, Any] = {}
        for key, value in (payload or {}).items():
            data[_TASK_ALIASES.get(key, key)] = value

        performance = data.get("performance")
        if isinstance(performance, Mapping):
            performance = performance.get("requirements")
        timeline = data.get("timeline")
        pressure = data.get("timeline_pressure")
        if pressure is None and isinstance(timeline, Mapping):
            pressure = timeline.get("pressure")

        kwargs: dict[str, Any] = {name: _as_tuple(data.get(name)) for name in _TUPLE_FIELDS}
        kwargs["performance"] = _as_tuple(performance)
        return cls(
            description=str(data.get("description") or ""),
            domain=_as_str(data.get("domain")),
            scope=_as_str(data.get("scope")),
            cross_team=bool(data.get("cross_team", False)),
            governance=bool(data.get("governance", False)),
            timeline_pressure=_as_str(pressure),
            complexity=_as_float(data.get("complexity")),
            implementation=_as_str(data.get("implementation")),
            **kwargs,
        )

    @classmethod
    def coerce(cls, value: Task | Mapping[str, Any] | None) -> Task:
        return value if isinstance(value, Task) else cls.from_dict(value)

    def text(self) -> str:
        """Lowercased free text used for keyword inference."""
        return " ".join([self.description, *self.requirements, *self.technologies]).lower()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "description": self.description,
            "domain": self.domain,
            "scope": self.scope,
            "cross_team": self.cross_team,
            "governance": self.governance,
            "timeline_pressure": self.timeline_pressure,
            "complexity": self.complexity,
            "implementation": self.implementation,
        }
        for name in _TUPLE_FIELDS:
            data[name] = list(getattr(self, name))
        if self.escalation is not None:
            data["escalation"] = self.escalation.to_dict()
        return data


@dataclass(frozen=True)
class EscalationEnvelope:
    """Carried by a task that is being re-run at a forced higher tier."""

    from_tier: Tier
    reason: str
    previous_consultation: Consultation | None = None
    trail: tuple[EscalationEvent, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_tier": self.from_tier.value,
            "reason": self.reason,
            "previous_specialist": (
                self.previous_consultation.specialist if self.previous_consultation else None
            ),
            "trail": [event.to_dict() for event in self.trail],
        }


@dataclass
class ComplexityAnalysis:
    """Four-dimensional complexity score and the tier it selects."""

    scope: int
    technical: int
    domain: int
    risk: int
    computed_score: float
    overall_score: float
    tier: Tier
    confidence: float
    recommendations: list[str] = field(default_factory=list)
    declared_complexity: float | None = None
    forced: bool = False

    @property
    def breakdown(self) -> dict[str, int]:
        return {
            "scope": self.scope,
            "technical": self.technical,
            "domain": self.domain,
            "risk": self.risk,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "breakdown": self.breakdown,
            "computed_score": round(self.computed_score, 2),
            "overall_score": round(self.overall_score, 2),
            "tier": self.tier.value,
            "confidence": round(self.confidence, 2),
            "recommendations": list(self.recommendations),
            "declared_complexity": self.declared_complexity,
            "forced": self.forced,
        }


@dataclass(frozen=True)
class SpecialistProfile:
    """Static description of one consultable specialist."""

    id: str
    name: str
    tier: int
    domain: str
    domains: tuple[str, ...]
    expertise: tuple[str, ...]
    consultation_triggers: tuple[str, ...]
    technologies: tuple[str, ...]
    min_complexity: float
    max_complexity: float
    estimated_time: str
    prerequisites: tuple[str, ...] = ()
    handoff_criteria: tuple[str, ...] = ()

    def covers(self, score: float) -> bool:
        return self.min_complexity <= score <= self.max_complexity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tier": self.tier,
            "domain": self.domain,
            "domains": list(self.domains),
            "expertise": list(self.expertise),
            "consultation_triggers": list(self.consultation_triggers),
            "technologies": list(self.technologies),
            "complexity_range": [self.min_complexity, self.max_complexity],
            "estimated_time": self.estimated_time,
            "prerequisites": list(self.prerequisites),
            "handoff_criteria": list(self.handoff_criteria),
        }


@dataclass
class RoutingDecision:
    """Where a task goes and what it has to pass."""

    complexity: ComplexityAnalysis
    domain: str
    specialist: str | None
    protocol: str
    estimated_minutes: int
    quality_checks: list[str]
    candidates: list[tuple[str, float]] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utcnow_iso)

    @property
    def tier(self) -> Tier:
        return self.complexity.tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "domain": self.domain,
            "specialist": self.specialist,
            "protocol": self.protocol,
            "estimated_minutes": self.estimated_minutes,
            "quality_checks": list(self.quality_checks),
            "candidates": [{"id": sid, "score": round(score, 2)} for sid, score in self.candidates],
            "complexity": self.complexity.to_dict(),
            "timestamp": self.timestamp,
        }


@dataclass
class ImplementationPlan:
    overview: str
    steps: list[str]
    patterns: list[str] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)
    considerations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overview": self.overview,
            "steps": list(self.steps),
            "patterns": list(self.patterns),
            "technologies": list(self.technologies),
            "considerations": list(self.considerations),
        }


@dataclass
class RiskItem:
    type: str
    probability: float
    impact: str
    mitigation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "probability": self.probability,
            "impact": self.impact,
            "mitigation": self.mitigation,
        }


@dataclass
class Resources:
    personnel: list[str] = field(default_factory=list)
    tools: list[str] = field(default_factory=list)
    time: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.personnel or self.tools or self.time)

    def to_dict(self) -> dict[str, Any]:
        return {"personnel": list(self.personnel), "tools": list(self.tools), "time": self.time}


@dataclass
class Recommendation:
    """A synthesized consultation answer."""

    approach: str
    plan: ImplementationPlan | None = None
    rationale: str = ""
    risks: list[RiskItem] = field(default_factory=list)
    timeline: str | None = None
    resources: Resources | None = None
    quality_metrics: list[str] = field(default_factory=list)
    testing_strategy: dict[str, str] = field(default_factory=dict)
    documentation: str | None = None
    dependencies: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def text(self) -> str:
        return flatten_text(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "approach": self.approach,
            "plan": self.plan.to_dict() if self.plan else None,
            "rationale": self.rationale,
            "risks": [risk.to_dict() for risk in self.risks],
            "timeline": self.timeline,
            "resources": self.resources.to_dict() if self.resources else None,
            "quality_metrics": list(self.quality_metrics),
            "testing_strategy": dict(self.testing_strategy),
            "documentation": self.documentation,
            "dependencies": list(self.dependencies),
            "confidence": round(self.confidence, 2),
        }


@dataclass
class CheckResult:
    """Outcome of one rubric check."""

    name: str
    score: float
    passed: bool
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": round(self.score, 3),
            "passed": self.passed,
            "details": self.details,
        }


@dataclass
class QualityResult:
    """Aggregated six-check validation of a recommendation."""

    checks: dict[str, CheckResult]
    score: float
    passed: bool
    grade: str
    escalation_needed: bool
    improvements: list[dict[str, str]] = field(default_factory=list)
    timestamp: str = field(default_factory=utcnow_iso)

    @property
    def failed_checks(self) -> list[str]:
        return [name for name, check in self.checks.items() if not check.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": round(self.score, 3),
            "passed": self.passed,
            "grade": self.grade,
            "escalation_needed": self.escalation_needed,
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
            "improvements": list(self.improvements),
            "timestamp": self.timestamp,
        }


@dataclass
class Consultation:
    """A recommendation produced by one specialist for one task."""

    specialist: str
    task: Task
    routing: RoutingDecision
    recommendation: Recommendation
    pattern_ids: list[str] = field(default_factory=list)
    quality: QualityResult | None = None
    timestamp: str = field(default_factory=utcnow_iso)

    @property
    def successful(self) -> bool:
        return self.quality is not None and (self.quality.passed or not self.quality.escalation_needed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "specialist": self.specialist,
            "routing": self.routing.to_dict(),
            "recommendation": self.recommendation.to_dict(),
            "pattern_ids": list(self.pattern_ids),
            "quality": self.quality.to_dict() if self.quality else None,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TaskShape:
    """Normalized task features used for fingerprints and pattern matching."""

    domain: str | None
    technologies: tuple[str, ...]
    complexity: int
    patterns: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "technologies": list(self.technologies),
            "complexity": self.complexity,
            "patterns": list(self.patterns),
        }


@dataclass
class CacheEntry:
    key: str
    specialist: str
    fingerprint: str
    consultation: Consultation
    created_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "specialist": self.specialist,
            "fingerprint": self.fingerprint,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }


@dataclass
class Pattern:
    """A reusable record of a successful approach or an architectural decision."""

    id: str
    kind: str
    shape: TaskShape
    specialist: str | None = None
    approach: dict[str, Any] | None = None
    decision: Any = None
    success_rate: float = 1.0
    usage_count: int = 1
    success_metrics: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utcnow_iso)
    last_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "shape": self.shape.to_dict(),
            "specialist": self.specialist,
            "success_rate": round(self.success_rate, 3),
            "usage_count": self.usage_count,
            "success_metrics": dict(self.success_metrics),
            "created_at": self.created_at,
            "last_used": self.last_used,
        }


@dataclass
class PatternMatch:
    pattern: Pattern
    score: float


@dataclass
class SpecialistMetrics:
    total: int = 0
    successful: int = 0
    average_quality: float = 0.5
    first_consultation: str | None = None
    last_consultation: str | None = None

    @property
    def success_rate(self) -> float:
        return self.successful / self.total if self.total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "success_rate": round(self.success_rate, 3),
            "average_quality": round(self.average_quality, 3),
            "first_consultation": self.first_consultation,
            "last_consultation": self.last_consultation,
        }


@dataclass(frozen=True)
class ProjectContext:
    """One immutable version of the project's state and decisions."""

    version: int
    decisions: tuple[Any, ...] = ()
    state: Mapping[str, Any] = field(default_factory=dict)
    constraints: tuple[str, ...] = ()
    objectives: tuple[str, ...] = ()
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "decisions": list(self.decisions),
            "state": dict(self.state),
            "constraints": list(self.constraints),
            "objectives": list(self.objectives),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class EscalationEvent:
    """One promotion of a task to a higher tier."""

    from_tier: Tier
    to_tier: Tier
    cause: str
    severity: float
    context: Mapping[str, Any]
    required_expertise: tuple[str, ...] = ()
    urgency: int = 1
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_tier": self.from_tier.value,
            "to_tier": self.to_tier.value,
            "cause": self.cause,
            "severity": self.severity,
            "context": dict(self.context),
            "required_expertise": list(self.required_expertise),
            "urgency": self.urgency,
            "timestamp": self.timestamp,
        }


@dataclass
class Outcome:
    """Result of processing one task, successful or not."""

    task_id: str
    success: bool
    result: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_type: str | None = None
    failure_analysis: dict[str, Any] | None = None
    recovery_attempted: bool = False
    quality_issues: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_id": self.task_id,
            "success": self.success,
            "result": self.result,
            "metadata": self.metadata,
        }
        if not self.success:
            data.update(
                {
                    "error": self.error,
                    "error_type": self.error_type,
                    "failure_analysis": self.failure_analysis,
                    "recovery_attempted": self.recovery_attempted,
                    "quality_issues": list(self.quality_issues),
                }
            )
        return data


@dataclass(frozen=True)
class Feedback:
    """User feedback on a processed task."""

    satisfaction: float = 1.0
    comments: str = ""
    issues: tuple[str, ...] = ()
    actual_domain: str | None = None
    routing_accuracy: float | None = None
    timeline_satisfaction: float | None = None
    expertise_mismatch: bool = False
    code_review: Mapping[str, float] | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> Feedback:
        data = dict(payload or {})
        satisfaction = _as_unit(data.get("satisfaction"))
        review = data.get("code_review") or data.get("codeReview")
        return cls(
            satisfaction=1.0 if satisfaction is None else satisfaction,
            comments=str(data.get("comments") or ""),
            issues=_as_tuple(data.get("issues")),
            actual_domain=_as_str(data.get("actual_domain") or data.get("actualDomain")),
            routing_accuracy=_as_unit(data.get("routing_accuracy")),
            timeline_satisfaction=_as_unit(data.get("timeline_satisfaction")),
            expertise_mismatch=bool(data.get("expertise_mismatch", False)),
            code_review=dict(review) if isinstance(review, Mapping) else None,
        )

    @classmethod
    def coerce(cls, value: Feedback | Mapping[str, Any] | None) -> Feedback:
        return value if isinstance(value, Feedback) else cls.from_dict(value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "satisfaction": self.satisfaction,
            "comments": self.comments,
            "issues": list(self.issues),
            "actual_domain": self.actual_domain,
            "routing_accuracy": self.routing_accuracy,
            "timeline_satisfaction": self.timeline_satisfaction,
            "expertise_mismatch": self.expertise_mismatch,
            "code_review": dict(self.code_review) if self.code_review else None,
        }
