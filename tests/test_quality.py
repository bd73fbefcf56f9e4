import pytest

from consult.analyzer import ComplexityAnalyzer
from consult.models import ImplementationPlan, Recommendation, Resources, RiskItem, Task
from consult.quality import QualityAssurance, grade_for
from consult.registry import SpecialistRegistry
from consult.synthesis import RuleBasedSynthesizer


def _qa() -> QualityAssurance:
    return QualityAssurance(SpecialistRegistry())


async def _synthesized(task: Task, specialist_id: str) -> Recommendation:
    profile = SpecialistRegistry().require(specialist_id)
    analysis = ComplexityAnalyzer().analyze(task)
    return await RuleBasedSynthesizer().synthesize(task, profile, [], analysis)


def _bare_recommendation(**fields) -> Recommendation:
    defaults = dict(
        approach="manual",
        plan=ImplementationPlan(
            overview="Plan",
            steps=["Design", "Build with input validation", "Deploy"],
            technologies=["rest"],
        ),
        rationale="A sufficiently long rationale explaining why this approach fits the task well.",
        testing_strategy={"unit": "test each handler"},
        quality_metrics=["coverage"],
        documentation="README",
    )
    defaults.update(fields)
    return Recommendation(**defaults)


@pytest.mark.parametrize(
    ("score", "grade"),
    [(0.97, "A+"), (0.9, "A"), (0.82, "B+"), (0.6, "C"), (0.5, "D"), (0.49, "F")],
)
def test_grade_for(score: float, grade: str) -> None:
    assert grade_for(score) == grade


@pytest.mark.asyncio
async def test_synthesized_security_recommendation_passes() -> None:
    task = Task.from_dict({"domain": "security", "technologies": ["oauth", "jwt"], "complexity": 5})
    recommendation = await _synthesized(task, "security-generalist")

    result = _qa().validate(
        "security-generalist", recommendation, task, complexity_score=5, domain="security"
    )

    assert result.passed is True
    assert result.escalation_needed is False
    assert result.failed_checks == []
    assert result.score > 0.9
    assert result.grade in {"A+", "A"}
    assert set(result.checks) == {
        "expertise_alignment",
        "recommendation_quality",
        "implementation_viability",
        "risk_assessment",
        "consistency",
        "security",
    }


@pytest.mark.asyncio
async def test_enterprise_recommendation_passes_for_architect() -> None:
    task = Task.from_dict(
        {"complexity": 9, "scope": "enterprise", "technologies": ["distributed-systems", "microservices"]}
    )
    recommendation = await _synthesized(task, "integration-architect")

    result = _qa().validate(
        "integration-architect", recommendation, task, complexity_score=9, domain="integration"
    )

    assert result.passed is True
    assert recommendation.timeline.endswith("(extended due to complexity)")


def test_missing_timeline_and_resources_fails_viability() -> None:
    task = Task.from_dict({"description": "Expose a REST endpoint", "complexity": 5})
    recommendation = _bare_recommendation(timeline=None, resources=None)

    result = _qa().validate("integration-generalist", recommendation, task, complexity_score=5)

    viability = result.checks["implementation_viability"]
    assert viability.passed is False
    assert {"resources", "timeline", "skills"} <= set(viability.details["blockers"])
    assert result.checks["consistency"].passed is True
    assert result.passed is False
    assert any(item["area"] == "implementation_viability" for item in result.improvements)


def test_weak_cryptography_fails_security_and_requires_escalation() -> None:
    task = Task.from_dict({"description": "Store user passwords", "complexity": 5})
    recommendation = _bare_recommendation(
        rationale="Hash every password with md5 before persisting it, then add validation.",
        timeline="2-4 hours",
        resources=Resources(personnel=["dev"], tools=["rest"], time="2-4 hours"),
    )

    result = _qa().validate("security-generalist", recommendation, task, complexity_score=5)

    security = result.checks["security"]
    assert security.passed is False
    assert "md5" in security.details["vulnerabilities"]
    assert result.escalation_needed is True


def test_sensitive_data_requires_protection() -> None:
    qa = _qa()
    task = Task.from_dict({"dataRisk": ["pii"]})
    plain = _bare_recommendation()
    protected = _bare_recommendation(documentation="Encrypt PII at rest")

    assert qa.check_security(plain, task).details["checks"]["data_protection"] is False
    assert qa.check_security(protected, task).details["checks"]["data_protection"] is True


def test_high_risk_fails_risk_assessment() -> None:
    risky = _bare_recommendation(
        risks=[
            RiskItem(kind, 0.9, "critical", "none")
            for kind in ("technical", "security", "performance", "maintenance", "business")
        ]
    )
    result = _qa().assess_risks(risky)
    assert result.passed is False
    assert result.details["risk_level"] == "high"
    assert len(result.details["mitigations"]) == 5


def test_unknown_specialist_scores_zero_alignment() -> None:
    result = _qa().check_expertise_alignment("nobody", Task())
    assert result.score == 0.0
    assert result.passed is False


def test_expertise_alignment_components() -> None:
    task = Task.from_dict({"technologies": ["sql", "kafka"]})
    result = _qa().check_expertise_alignment("data-generalist", task, complexity_score=4, domain="data")
    assert result.details == {"domain_fit": 1.0, "technology_fit": 0.5, "complexity_fit": 1.0}
    assert result.score == pytest.approx(2.5 / 3)
    assert result.passed is True


def test_missing_requested_pattern_breaks_consistency() -> None:
    task = Task.from_dict({"patterns": ["saga"]})
    result = _qa().check_consistency(_bare_recommendation(), task)
    assert result.passed is False
    assert result.details["issues"] == ["patterns"]


def test_failing_check_is_recorded_not_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    qa = _qa()

    def _boom(*args, **kwargs):
        raise RuntimeError("checker crashed")

    monkeypatch.setattr(qa, "assess_risks", _boom)
    result = qa.validate("data-generalist", _bare_recommendation(), Task(), complexity_score=4)

    assert result.checks["risk_assessment"].passed is False
    assert result.checks["risk_assessment"].details == {"error": "checker crashed"}
    assert result.escalation_needed is True
