"""
Recommendation synthesis strategies.

The orchestrator only depends on the ``RecommendationSynthesizer`` protocol, so
the rule-based default can be swapped for a real consultation backend.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import (
    ComplexityAnalysis,
    ImplementationPlan,
    Pattern,
    Recommendation,
    Resources,
    RiskItem,
    SpecialistProfile,
    Task,
)
from .quality import AUTH_TECHNOLOGIES

BASE_CONFIDENCE = 0.7
DOMAIN_MATCH_BONUS = 0.1
PATTERN_BONUS = 0.05
MAX_PATTERN_BONUS = 0.15
HIGH_COMPLEXITY_PENALTY = 0.1

BASE_STEPS = (
    "Analyze requirements and existing constraints",
    "Design the solution architecture",
    "Implement core functionality",
    "Add error handling, logging and input validation",
    "Create tests and documentation",
    "Deploy and monitor",
)

QUALITY_METRICS = (
    "Code coverage above 80%",
    "Performance benchmarks met",
    "Security scan passes",
    "Documentation complete",
)

TESTING_STRATEGY = {
    "unit": "Component-level testing with mocks for external services",
    "integration": "Service interaction testing",
    "e2e": "User workflow testing",
    "performance": "Load and stress testing",
}

DOCUMENTATION = "Architecture notes, API reference and a runbook covering deployment and monitoring"


class RecommendationSynthesizer(Protocol):
    async def synthesize(
        self,
        task: Task,
        profile: SpecialistProfile,
        patterns: Sequence[Pattern],
        analysis: ComplexityAnalysis,
    ) -> Recommendation: ...


class RuleBasedSynthesizer:
    """Builds a structured recommendation from the specialist profile and task."""

    async def synthesize(
        self,
        task: Task,
        profile: SpecialistProfile,
        patterns: Sequence[Pattern],
        analysis: ComplexityAnalysis,
    ) -> Recommendation:
        domain = (task.domain or profile.domains[0]).lower()
        complexity = analysis.overall_score
        return Recommendation(
            approach=f"{profile.id}-consultation",
            plan=ImplementationPlan(
                overview=f"Implementation plan for {domain} task",
                steps=self._steps(domain),
                patterns=[pattern.id for pattern in patterns[:3]],
                technologies=list(profile.technologies),
                considerations=self._considerations(task, profile),
            ),
            rationale=(
                f"This approach leverages {profile.name} expertise in "
                f"{profile.domain.lower()} to address the specific requirements of the task."
            ),
            risks=self._risks(complexity),
            timeline=self._timeline(profile.estimated_time, complexity),
            resources=Resources(
                personnel=[profile.name],
                tools=list(profile.technologies),
                time=profile.estimated_time,
            ),
            quality_metrics=list(QUALITY_METRICS),
            testing_strategy=dict(TESTING_STRATEGY),
            documentation=DOCUMENTATION,
            confidence=self._confidence(domain, profile, patterns, complexity),
        )

    def _steps(self, domain: str) -> list[str]:
        steps = list(BASE_STEPS)
        if domain == "security":
            steps.insert(3, "Implement security measures (authentication, access control, encryption)")
        if domain == "performance":
            steps.insert(3, "Profile and optimize performance hot paths")
        return steps

    def _considerations(self, task: Task, profile: SpecialistProfile) -> list[str]:
        notes = [f"Apply the {pattern} pattern consistently" for pattern in task.patterns]
        notes += [f"Meet {item} compliance requirements" for item in task.compliance]
        if task.data_risk or task.compliance:
            subject = ", ".join(task.data_risk) or "regulated"
            notes.append(f"Protect {subject} data with encryption at rest and in transit")
        technologies = {tech.lower() for tech in task.technologies}
        if (
            (task.domain or "").lower() == "security"
            or "auth" in profile.domains
            or technologies & AUTH_TECHNOLOGIES
        ):
            notes.append("Enforce access control and authorization on every entry point")
        notes += [f"Escalate if {criterion.replace('-', ' ')} emerges" for criterion in profile.handoff_criteria]
        return notes

    def _risks(self, complexity: float) -> list[RiskItem]:
        risks = [
            RiskItem("technical", 0.3, "medium", "Thorough testing and code review"),
            RiskItem("timeline", 0.2, "low", "Agile development with regular checkpoints"),
        ]
        if complexity > 7:
            risks.append(
                RiskItem("complexity", 0.5, "high", "Break down into smaller deliverable components")
            )
        return risks

    def _timeline(self, estimated_time: str, complexity: float) -> str:
        if complexity > 8:
            return f"{estimated_time} (extended due to complexity)"
        if complexity < 4:
            return f"{estimated_time} (possibly shorter due to simplicity)"
        return estimated_time

    def _confidence(
        self,
        domain: str,
        profile: SpecialistProfile,
        patterns: Sequence[Pattern],
        complexity: float,
    ) -> float:
        confidence = BASE_CONFIDENCE
        if domain in profile.domains:
            confidence += DOMAIN_MATCH_BONUS
        confidence += min(len(patterns) * PATTERN_BONUS, MAX_PATTERN_BONUS)
        if complexity > 8:
            confidence -= HIGH_COMPLEXITY_PENALTY
        return max(0.1, min(0.95, confidence))
