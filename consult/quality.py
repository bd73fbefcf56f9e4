"""
Six-check quality rubric applied to synthesized recommendations.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from types import MappingProxyType

from .models import CheckResult, QualityResult, Recommendation, Task
from .registry import SpecialistRegistry

logger = logging.getLogger(__name__)

CHECK_WEIGHTS = MappingProxyType(
    {
        "expertise_alignment": 0.20,
        "recommendation_quality": 0.25,
        "implementation_viability": 0.20,
        "risk_assessment": 0.15,
        "consistency": 0.10,
        "security": 0.10,
    }
)

PASS_BARS = MappingProxyType(
    {
        "expertise_alignment": 0.70,
        "recommendation_quality": 0.80,
        "implementation_viability": 0.80,
        "consistency": 0.90,
        "security": 0.95,
    }
)

ESCALATION_SCORE_FLOOR = 0.60
CRITICAL_CHECKS = ("security", "risk_assessment")

GRADE_BREAKPOINTS = (
    (0.95, "A+"),
    (0.90, "A"),
    (0.85, "A-"),
    (0.80, "B+"),
    (0.75, "B"),
    (0.70, "B-"),
    (0.65, "C+"),
    (0.60, "C"),
    (0.55, "C-"),
    (0.50, "D"),
)

IMPROVEMENT_ADVICE = MappingProxyType(
    {
        "expertise_alignment": "Consider consulting a different specialist or adding domain expertise",
        "recommendation_quality": "Improve completeness, clarity, and documentation",
        "implementation_viability": "Review resource requirements and dependencies",
        "risk_assessment": "Implement additional risk mitigation strategies",
        "consistency": "Align with existing architectural patterns and coding standards",
        "security": "Address security vulnerabilities and implement security best practices",
    }
)

BEST_PRACTICE_INDICATORS = ("error handling", "logging", "validation", "testing", "documentation")
TESTABILITY_INDICATORS = ("test", "mock", "stub", "assertion")

RISK_CATEGORIES = MappingProxyType(
    {
        "technical": ("technical", "complexity", "integration"),
        "security": ("security", "compliance"),
        "performance": ("performance", "scalability"),
        "maintenance": ("maintenance", "technical-debt"),
        "business": ("business", "timeline", "cost"),
    }
)
IMPACT_WEIGHTS = MappingProxyType({"low": 0.5, "medium": 0.75, "high": 1.0, "critical": 1.0})
HIGH_RISK = 0.6
MEDIUM_RISK = 0.3

RISK_MITIGATIONS = MappingProxyType(
    {
        "technical": "Prototype the riskiest component before full implementation",
        "security": "Schedule a security review and threat model",
        "performance": "Add load tests and performance budgets",
        "maintenance": "Document ownership and add regression tests",
        "business": "Agree on milestones and a fallback scope with stakeholders",
    }
)

SENSITIVE_MARKERS = ("encrypt", "data protection", "masking", "anonymi", "tokeniz")
ACCESS_MARKERS = ("access control", "authorization", "authentication", "least privilege", "rbac")
AUTH_TECHNOLOGIES = frozenset({"oauth", "oauth2", "jwt", "saml", "sso", "mfa"})
UNSAFE_OUTPUT_MARKERS = ("innerhtml", "raw html", "unescaped", "eval(")
WEAK_CRYPTO_MARKERS = ("md5", "sha1", "rc4", "ecb mode", "3des")
VULNERABILITY_MARKERS = (
    "disable ssl",
    "verify=false",
    "hardcoded password",
    "hardcoded credential",
    "hardcoded secret",
    "string concatenation for sql",
    "disable authentication",
    "chmod 777",
)

_TECH_TAG_RE = re.compile(r"^[a-z0-9][a-z0-9.+/#-]*$")


def grade_for(score: float) -> str:
    for floor, grade in GRADE_BREAKPOINTS:
        if score >= floor:
            return grade
    return "F"


def _contains_any(text: str, markers: tuple[str, ...]) -> list[str]:
    return [marker for marker in markers if marker in text]


class QualityAssurance:
    """Validates recommendations against the six-check rubric."""

    def __init__(self, registry: SpecialistRegistry) -> None:
        self.registry = registry

    def validate(
        self,
        specialist_id: str,
        recommendation: Recommendation,
        task: Task,
        *,
        complexity_score: float | None = None,
        domain: str | None = None,
    ) -> QualityResult:
        text = recommendation.text()
        checks: dict[str, Callable[[], CheckResult]] = {
            "expertise_alignment": lambda: self.check_expertise_alignment(
                specialist_id, task, complexity_score=complexity_score, domain=domain
            ),
            "recommendation_quality": lambda: self.assess_recommendation_quality(recommendation, text),
            "implementation_viability": lambda: self.check_implementation_viability(recommendation),
            "risk_assessment": lambda: self.assess_risks(recommendation),
            "consistency": lambda: self.check_consistency(recommendation, task, text),
            "security": lambda: self.check_security(recommendation, task, text, domain=domain),
        }

        results: dict[str, CheckResult] = {}
        for name, run in checks.items():
            try:
                results[name] = run()
            except Exception as exc:
                logger.exception("Quality check %s raised", name)
                results[name] = CheckResult(name, 0.0, False, {"error": str(exc)})

        score = sum(CHECK_WEIGHTS[name] * result.score for name, result in results.items())
        passed = all(result.passed for result in results.values())
        escalation_needed = (
            any(not results[name].passed for name in CRITICAL_CHECKS) or score < ESCALATION_SCORE_FLOOR
        )
        improvements = [
            {"area": name, "suggestion": IMPROVEMENT_ADVICE[name]}
            for name, result in results.items()
            if not result.passed
        ]
        quality = QualityResult(
            checks=results,
            score=score,
            passed=passed,
            grade=grade_for(score),
            escalation_needed=escalation_needed,
            improvements=improvements,
        )
        logger.info(
            "Quality for %s: %.2f (%s) passed=%s escalate=%s",
            specialist_id,
            score,
            quality.grade,
            passed,
            escalation_needed,
        )
        return quality

    def check_expertise_alignment(
        self,
        specialist_id: str,
        task: Task,
        *,
        complexity_score: float | None = None,
        domain: str | None = None,
    ) -> CheckResult:
        profile = self.registry.get(specialist_id)
        if profile is None:
            return CheckResult(
                "expertise_alignment", 0.0, False, {"reason": f"Unknown specialist: {specialist_id}"}
            )

        task_domain = (domain or task.domain or "").lower()
        domain_fit = 1.0 if task_domain and task_domain in profile.domains else 0.5

        technologies = {tech.lower() for tech in task.technologies}
        if technologies:
            technology_fit = len(technologies & set(profile.technologies)) / len(technologies)
        else:
            technology_fit = 0.5

        score_for_fit = complexity_score if complexity_score is not None else task.complexity
        complexity_fit = 1.0 if score_for_fit is not None and profile.covers(score_for_fit) else 0.5

        score = (domain_fit + technology_fit + complexity_fit) / 3
        return CheckResult(
            "expertise_alignment",
            score,
            score >= PASS_BARS["expertise_alignment"],
            {
                "domain_fit": domain_fit,
                "technology_fit": round(technology_fit, 3),
                "complexity_fit": complexity_fit,
            },
        )

    def assess_recommendation_quality(
        self, recommendation: Recommendation, text: str | None = None
    ) -> CheckResult:
        text = recommendation.text() if text is None else text
        plan = recommendation.plan

        elements = {
            "implementation": bool(plan and plan.steps),
            "testing": bool(recommendation.testing_strategy),
            "deployment": "deploy" in text,
        }
        clarity = 0.8 if len(recommendation.rationale) > 50 else 0.4
        if plan and len(plan.steps) >= 3:
            clarity += 0.2
        feasibility = 0.9 if recommendation.timeline and recommendation.resources else 0.6

        components = {
            "completeness": sum(elements.values()) / len(elements),
            "clarity": min(clarity, 1.0),
            "feasibility": feasibility,
            "best_practices": len(_contains_any(text, BEST_PRACTICE_INDICATORS))
            / len(BEST_PRACTICE_INDICATORS),
            "documentation": 1.0 if recommendation.documentation else 0.3,
            "testability": 0.9 if _contains_any(text, TESTABILITY_INDICATORS) else 0.4,
        }
        score = sum(components.values()) / len(components)
        return CheckResult(
            "recommendation_quality",
            score,
            score >= PASS_BARS["recommendation_quality"],
            {
                "components": {key: round(value, 3) for key, value in components.items()},
                "weak_areas": [key for key, value in components.items() if value < 0.7],
                "missing_elements": [key for key, present in elements.items() if not present],
            },
        )

    def check_implementation_viability(self, recommendation: Recommendation) -> CheckResult:
        resources = recommendation.resources
        plan = recommendation.plan
        available = set(resources.tools if resources else ()) | set(plan.technologies if plan else ())

        checks = {
            "resources": bool(resources and not resources.is_empty),
            "timeline": bool(recommendation.timeline),
            "dependencies": all(dep in available for dep in recommendation.dependencies),
            "skills": bool(resources and resources.personnel),
            "tools": bool(resources and resources.tools) or not (plan and plan.technologies),
        }
        score = sum(checks.values()) / len(checks)
        blockers = [name for name, ok in checks.items() if not ok]
        return CheckResult(
            "implementation_viability",
            score,
            score >= PASS_BARS["implementation_viability"],
            {"checks": checks, "blockers": blockers},
        )

    def assess_risks(self, recommendation: Recommendation) -> CheckResult:
        categories: dict[str, float] = {}
        for category, kinds in RISK_CATEGORIES.items():
            exposures = [
                min(max(risk.probability, 0.0), 1.0) * IMPACT_WEIGHTS.get(risk.impact.lower(), 0.75)
                for risk in recommendation.risks
                if risk.type.lower() in kinds
            ]
            categories[category] = max(exposures, default=0.0)

        average = sum(categories.values()) / len(categories)
        if average >= HIGH_RISK:
            level = "high"
        elif average >= MEDIUM_RISK:
            level = "medium"
        else:
            level = "low"

        mitigations = [
            RISK_MITIGATIONS[category] for category, value in categories.items() if value >= MEDIUM_RISK
        ]
        return CheckResult(
            "risk_assessment",
            1.0 - average,
            level != "high",
            {
                "categories": {key: round(value, 3) for key, value in categories.items()},
                "risk_level": level,
                "mitigations": mitigations,
            },
        )

    def check_consistency(
        self, recommendation: Recommendation, task: Task, text: str | None = None
    ) -> CheckResult:
        text = recommendation.text() if text is None else text
        plan = recommendation.plan
        technologies = plan.technologies if plan else []

        checks = {
            "architecture": bool(plan and plan.overview and plan.steps),
            "coding_standards": bool(recommendation.testing_strategy and recommendation.quality_metrics),
            "naming": all(_TECH_TAG_RE.match(tech) for tech in technologies)
            and all(step.strip() for step in (plan.steps if plan else [])),
            "patterns": not task.patterns
            or any(pattern.lower() in text for pattern in task.patterns),
        }
        score = sum(checks.values()) / len(checks)
        return CheckResult(
            "consistency",
            score,
            score >= PASS_BARS["consistency"],
            {"checks": checks, "issues": [name for name, ok in checks.items() if not ok]},
        )

    def check_security(
        self,
        recommendation: Recommendation,
        task: Task,
        text: str | None = None,
        *,
        domain: str | None = None,
    ) -> CheckResult:
        text = recommendation.text() if text is None else text
        handles_sensitive_data = bool(task.data_risk or task.compliance)
        needs_access_control = (domain or task.domain or "").lower() == "security" or bool(
            {tech.lower() for tech in task.technologies} & AUTH_TECHNOLOGIES
        )

        findings = {
            "output_sanitization": _contains_any(text, UNSAFE_OUTPUT_MARKERS),
            "cryptography": _contains_any(text, WEAK_CRYPTO_MARKERS),
            "vulnerabilities": _contains_any(text, VULNERABILITY_MARKERS),
        }
        checks = {
            "data_protection": not handles_sensitive_data
            or bool(_contains_any(text, SENSITIVE_MARKERS)),
            "access_control": not needs_access_control or bool(_contains_any(text, ACCESS_MARKERS)),
            "input_validation": "validation" in text,
            "output_sanitization": not findings["output_sanitization"],
            "cryptography": not findings["cryptography"],
            "vulnerabilities": not findings["vulnerabilities"],
        }
        score = sum(checks.values()) / len(checks)
        return CheckResult(
            "security",
            score,
            score >= PASS_BARS["security"],
            {
                "checks": checks,
                "vulnerabilities": [marker for markers in findings.values() for marker in markers],
            },
        )
