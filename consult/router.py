"""
Domain inference and specialist selection for analyzed tasks.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from .analyzer import ComplexityAnalyzer
from .models import ComplexityAnalysis, RoutingDecision, SpecialistProfile, Task, Tier
from .registry import SpecialistRegistry

logger = logging.getLogger(__name__)

GENERAL_DOMAIN = "general"

# Checked in order; the first domain with a keyword hit wins.
DOMAIN_KEYWORDS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "data": ("database", "query", "analytics", "etl", "warehouse", "lake"),
        "security": ("auth", "oauth", "jwt", "encryption", "vulnerability", "compliance"),
        "performance": ("optimization", "caching", "scaling", "latency", "throughput"),
        "integration": ("api", "webhook", "service", "microservice", "messaging"),
        "frontend": ("ui", "ux", "react", "vue", "angular", "component"),
        "architecture": ("design", "pattern", "structure", "system", "scalability"),
        "ml": ("machine-learning", "ai", "model", "prediction", "classification"),
        "testing": ("test", "qa", "automation", "ci/cd", "deployment"),
    }
)

PROTOCOLS = MappingProxyType(
    {
        Tier.DIRECT: "direct-implementation",
        Tier.TIER_1: "quick-consultation",
        Tier.TIER_2: "deep-analysis",
        Tier.TIER_3: "architectural-coordination",
    }
)

TIER_BASE_MINUTES = MappingProxyType(
    {Tier.DIRECT: 30, Tier.TIER_1: 120, Tier.TIER_2: 480, Tier.TIER_3: 1440}
)

QUALITY_CHECKLISTS = MappingProxyType(
    {
        Tier.DIRECT: ("syntax-check", "basic-test"),
        Tier.TIER_1: ("syntax-check", "unit-tests", "code-review"),
        Tier.TIER_2: (
            "syntax-check",
            "unit-tests",
            "integration-tests",
            "code-review",
            "security-scan",
        ),
        Tier.TIER_3: (
            "syntax-check",
            "unit-tests",
            "integration-tests",
            "e2e-tests",
            "code-review",
            "security-scan",
            "performance-test",
            "architectural-review",
        ),
    }
)

DOMAIN_MATCH_POINTS = 10
TECHNOLOGY_MATCH_POINTS = 2
COMPLEXITY_FIT_POINTS = 5
HISTORY_POINTS = 5


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}")


_DOMAIN_PATTERNS = {
    domain: tuple(_keyword_pattern(kw) for kw in keywords)
    for domain, keywords in DOMAIN_KEYWORDS.items()
}


class TaskRouter:
    """Chooses a tier, domain and specialist for a task."""

    def __init__(
        self,
        registry: SpecialistRegistry,
        analyzer: ComplexityAnalyzer,
        *,
        domain_corrections: Mapping[str, str] | None = None,
    ) -> None:
        self.registry = registry
        self.analyzer = analyzer
        self._domain_corrections = domain_corrections if domain_corrections is not None else {}

    def route(
        self,
        task: Task,
        *,
        analysis: ComplexityAnalysis | None = None,
        forced_tier: Tier | None = None,
        performance: Mapping[str, float] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> RoutingDecision:
        if analysis is None:
            analysis = self.analyzer.analyze(task, forced_tier=forced_tier)
        domain = self.identify_domain(task)

        specialist: str | None = None
        ranked: list[tuple[str, float]] = []
        if analysis.tier in (Tier.TIER_1, Tier.TIER_2, Tier.TIER_3):
            ranked = self.rank_specialists(task, domain, analysis, performance or {})
            specialist = ranked[0][0] if ranked else None

        decision = RoutingDecision(
            complexity=analysis,
            domain=domain,
            specialist=specialist,
            protocol=PROTOCOLS.get(analysis.tier, PROTOCOLS[Tier.TIER_3]),
            estimated_minutes=self.estimate_minutes(analysis),
            quality_checks=self.quality_checks(analysis.tier),
            candidates=ranked,
            context=dict(context or {}),
        )
        logger.info(
            "Routed to %s (%s) domain=%s score=%.2f",
            analysis.tier.value,
            specialist or "direct",
            domain,
            analysis.overall_score,
        )
        return decision

    def identify_domain(self, task: Task) -> str:
        if task.domain:
            return task.domain.lower()
        inferred = self.infer_domain(task.text())
        return self._domain_corrections.get(inferred, inferred)

    @staticmethod
    def infer_domain(text: str) -> str:
        lowered = text.lower()
        for domain, patterns in _DOMAIN_PATTERNS.items():
            if any(pattern.search(lowered) for pattern in patterns):
                return domain
        return GENERAL_DOMAIN

    def rank_specialists(
        self,
        task: Task,
        domain: str,
        analysis: ComplexityAnalysis,
        performance: Mapping[str, float],
    ) -> list[tuple[str, float]]:
        """Score candidates; ties keep catalog order."""
        scored = [
            (profile.id, self.score_specialist(profile, task, domain, analysis, performance))
            for profile in self.registry.candidates(analysis.tier, domain)
        ]
        return sorted(scored, key=lambda item: item[1], reverse=True)

    def score_specialist(
        self,
        profile: SpecialistProfile,
        task: Task,
        domain: str,
        analysis: ComplexityAnalysis,
        performance: Mapping[str, float],
    ) -> float:
        score = 0.0
        if domain in profile.domains:
            score += DOMAIN_MATCH_POINTS
        technologies = {tech.lower() for tech in task.technologies}
        score += TECHNOLOGY_MATCH_POINTS * len(technologies & set(profile.technologies))
        if profile.covers(analysis.overall_score):
            score += COMPLEXITY_FIT_POINTS
        score += HISTORY_POINTS * performance.get(profile.id, 0.0)
        return score

    @staticmethod
    def estimate_minutes(analysis: ComplexityAnalysis) -> int:
        base = TIER_BASE_MINUTES.get(analysis.tier, TIER_BASE_MINUTES[Tier.TIER_3])
        return math.floor(base * (1 + analysis.overall_score / 10) + 0.5)

    @staticmethod
    def quality_checks(tier: Tier) -> list[str]:
        return list(QUALITY_CHECKLISTS.get(tier, QUALITY_CHECKLISTS[Tier.TIER_3]))

    def optimize_routing(self, metrics: list[Mapping[str, Any]]) -> dict[str, Any]:
        """Summarize historical routing accuracy per tier, specialist and domain."""
        tiers: dict[str, list[int]] = {}
        specialists: dict[str, list[int]] = {}
        domains: dict[str, list[int]] = {}
        for record in metrics:
            success = 1 if record.get("success") else 0
            for key, bucket in (
                ("tier", tiers),
                ("specialist", specialists),
                ("domain", domains),
            ):
                value = record.get(key)
                if value:
                    counts = bucket.setdefault(str(value), [0, 0])
                    counts[0] += success
                    counts[1] += 1

        def _accuracy(bucket: dict[str, list[int]]) -> dict[str, float]:
            return {
                key: round(ok / total, 3) if total else 1.0 for key, (ok, total) in bucket.items()
            }

        return {
            "threshold_adjustments": _accuracy(tiers),
            "specialist_selection": _accuracy(specialists),
            "domain_mapping": _accuracy(domains),
        }
