"""
Four-dimensional task complexity scoring and tier selection.
"""

from __future__ import annotations

import logging
from types import MappingProxyType

from .config import TierThresholds
from .models import ComplexityAnalysis, Task, Tier

logger = logging.getLogger(__name__)

SCORE_WEIGHTS = MappingProxyType({"scope": 0.30, "technical": 0.30, "domain": 0.25, "risk": 0.15})

COMPLEX_TECHNOLOGIES = frozenset(
    {
        "microservices",
        "distributed-systems",
        "blockchain",
        "machine-learning",
        "real-time-processing",
        "streaming",
    }
)
COMPLEX_PATTERNS = frozenset(
    {
        "event-sourcing",
        "cqrs",
        "saga",
        "circuit-breaker",
        "distributed-transactions",
        "consensus-algorithms",
    }
)
PERFORMANCE_WEIGHTS = MappingProxyType({"sub-second": 3, "high-throughput": 2, "real-time": 4})
SCALABILITY_WEIGHTS = MappingProxyType({"horizontal": 2, "auto-scaling": 3, "global-distribution": 4})

DOMAIN_DIFFICULTY = MappingProxyType(
    {
        "financial": 4,
        "healthcare": 5,
        "security": 4,
        "ml-ai": 5,
        "blockchain": 6,
        "embedded": 4,
        "real-time": 4,
        "distributed-systems": 5,
        "data-science": 4,
    }
)
COMPLIANCE_WEIGHTS = MappingProxyType(
    {"gdpr": 3, "hipaa": 4, "pci-dss": 4, "sox": 3, "iso-27001": 3, "fda": 5}
)
BUSINESS_LOGIC_WEIGHTS = MappingProxyType(
    {"complex-calculations": 2, "multi-step-workflows": 3, "state-machines": 3, "rule-engines": 4}
)

DATA_RISK_WEIGHTS = MappingProxyType({"pii": 3, "financial": 4, "medical": 4, "sensitive": 2})
SYSTEM_RISK_WEIGHTS = MappingProxyType(
    {"production-critical": 4, "revenue-impacting": 3, "user-facing": 2, "data-loss-potential": 5}
)
IMPLEMENTATION_RISK_WEIGHTS = MappingProxyType(
    {"breaking-changes": 3, "migration-required": 4, "rollback-difficult": 3, "external-dependencies": 2}
)
TIMELINE_PRESSURE_WEIGHTS = MappingProxyType({"urgent": 2, "critical": 4})


def _clamp(value: float, low: float = 1, high: float = 10) -> float:
    return max(low, min(high, value))


def _table_sum(values: tuple[str, ...], table: MappingProxyType) -> int:
    return sum(table.get(value.lower(), 0) for value in values)


def _any_in(values: tuple[str, ...], vocabulary: frozenset[str]) -> bool:
    return any(value.lower() in vocabulary for value in values)


class ComplexityAnalyzer:
    """Scores tasks on scope, technical, domain and risk axes."""

    def __init__(self, thresholds: TierThresholds | None = None) -> None:
        self.thresholds = thresholds or TierThresholds()

    def analyze(self, task: Task, *, forced_tier: Tier | None = None) -> ComplexityAnalysis:
        scope = self.scope_score(task)
        technical = self.technical_score(task)
        domain = self.domain_score(task)
        risk = self.risk_score(task)

        computed = (
            SCORE_WEIGHTS["scope"] * scope
            + SCORE_WEIGHTS["technical"] * technical
            + SCORE_WEIGHTS["domain"] * domain
            + SCORE_WEIGHTS["risk"] * risk
        )
        declared = _clamp(task.complexity) if task.complexity is not None else None
        overall = max(computed, declared) if declared is not None else computed

        tier = forced_tier or self.thresholds.tier_for(overall)
        sub_scores = (scope, technical, domain, risk)
        analysis = ComplexityAnalysis(
            scope=scope,
            technical=technical,
            domain=domain,
            risk=risk,
            computed_score=computed,
            overall_score=overall,
            tier=tier,
            confidence=self._calculate_confidence(sub_scores),
            recommendations=self._recommendations(scope, technical, domain, risk, tier),
            declared_complexity=declared,
            forced=forced_tier is not None,
        )
        logger.debug("Complexity %.2f -> %s %s", overall, tier.value, analysis.breakdown)
        return analysis

    def scope_score(self, task: Task) -> int:
        scope = (task.scope or "").lower()
        files = len(task.files)

        breadth = [1]
        if scope == "single-function" or files == 1:
            breadth.append(1)
        if 1 < files <= 5:
            breadth.append(3)
        if files > 5 or scope == "system-wide":
            breadth.append(5)
        if scope == "cross-system" or task.integrations:
            breadth.append(8)
        if scope == "enterprise" or task.governance:
            breadth.append(10)

        score = max(breadth)
        if len(task.databases) > 1:
            score += 2
        if len(task.apis) > 3:
            score += 2
        if len(task.services) > 2:
            score += 3
        if task.cross_team:
            score += 2
        return int(_clamp(score))

    def technical_score(self, task: Task) -> int:
        score = 1
        if _any_in(task.technologies, COMPLEX_TECHNOLOGIES):
            score += 3
        if _any_in(task.patterns, COMPLEX_PATTERNS):
            score += 4
        score += min(len(task.integrations) * 2, 6)
        score += _table_sum(task.performance, PERFORMANCE_WEIGHTS)
        score += _table_sum(task.scalability, SCALABILITY_WEIGHTS)
        return int(_clamp(score))

    def domain_score(self, task: Task) -> int:
        score = 1
        if task.domain:
            score += DOMAIN_DIFFICULTY.get(task.domain.lower(), 0)
        score += _table_sum(task.compliance, COMPLIANCE_WEIGHTS)
        score += _table_sum(task.business_logic, BUSINESS_LOGIC_WEIGHTS)
        return int(_clamp(score))

    def risk_score(self, task: Task) -> int:
        score = 1
        score += _table_sum(task.data_risk, DATA_RISK_WEIGHTS)
        score += _table_sum(task.system_risk, SYSTEM_RISK_WEIGHTS)
        score += _table_sum(task.implementation_risk, IMPLEMENTATION_RISK_WEIGHTS)
        if task.timeline_pressure:
            score += TIMELINE_PRESSURE_WEIGHTS.get(task.timeline_pressure.lower(), 0)
        return int(_clamp(score))

    def _calculate_confidence(self, sub_scores: tuple[int, ...]) -> float:
        informative = sum(1 for score in sub_scores if score > 1)
        return min(informative * 0.25, 1.0)

    def _recommendations(
        self, scope: int, technical: int, domain: int, risk: int, tier: Tier
    ) -> list[str]:
        advice: list[str] = []
        if scope > 7:
            advice.append("Consider breaking down into smaller tasks")
        if technical > 8:
            advice.append("Require multiple technical specialists")
        if domain > 6:
            advice.append("Domain expert consultation required")
        if risk > 7:
            advice.append("Implement comprehensive risk mitigation")
        if tier == Tier.TIER_3:
            advice.append("Cross-domain architectural review needed")
        return advice
