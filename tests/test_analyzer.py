import pytest

from consult.analyzer import ComplexityAnalyzer
from consult.config import TierThresholds
from consult.models import Task, Tier


def _task(**fields) -> Task:
    return Task.from_dict(fields)


def test_empty_task_scores_neutral() -> None:
    analysis = ComplexityAnalyzer().analyze(_task())
    assert analysis.breakdown == {"scope": 1, "technical": 1, "domain": 1, "risk": 1}
    assert analysis.overall_score == pytest.approx(1.0)
    assert analysis.tier == Tier.DIRECT
    assert analysis.confidence == 0.0


def test_declared_complexity_is_a_floor() -> None:
    analysis = ComplexityAnalyzer().analyze(_task(description="Get campaign list", complexity=2))
    assert analysis.computed_score == pytest.approx(1.0)
    assert analysis.overall_score == pytest.approx(2.0)
    assert analysis.tier == Tier.DIRECT


def test_declared_complexity_is_clamped() -> None:
    analysis = ComplexityAnalyzer().analyze(_task(complexity=42))
    assert analysis.declared_complexity == 10
    assert analysis.tier == Tier.TIER_3


def test_enterprise_scope_reaches_tier_three() -> None:
    analysis = ComplexityAnalyzer().analyze(
        _task(
            complexity=9,
            scope="enterprise",
            technologies=["distributed-systems", "microservices"],
        )
    )
    assert analysis.scope == 10
    assert analysis.technical == 4
    assert analysis.tier == Tier.TIER_3
    assert "Cross-domain architectural review needed" in analysis.recommendations


def test_scope_takes_widest_breadth_and_adds_modifiers() -> None:
    analyzer = ComplexityAnalyzer()
    assert analyzer.scope_score(_task(files=["a.py", "b.py"])) == 3
    assert analyzer.scope_score(_task(files=["a.py"] * 6)) == 5
    assert analyzer.scope_score(_task(integrations=["stripe"], files=["a.py"])) == 8
    assert (
        analyzer.scope_score(
            _task(files=["a.py", "b.py"], databases=["pg", "redis"], crossTeam=True)
        )
        == 7
    )
    assert analyzer.scope_score(_task(governance=True, services=["a", "b", "c"])) == 10


def test_technical_score_sums_weighted_tables() -> None:
    task = _task(
        patterns=["cqrs"],
        integrations=["a", "b", "c", "d"],
        performance={"requirements": ["sub-second"]},
    )
    # 1 + 4 (pattern) + 6 (capped integrations) + 3 (sub-second), clamped
    assert ComplexityAnalyzer().technical_score(task) == 10


def test_domain_and_risk_scores() -> None:
    analyzer = ComplexityAnalyzer()
    task = _task(
        domain="healthcare",
        compliance=["hipaa"],
        dataRisk=["medical"],
        timeline={"pressure": "urgent"},
    )
    assert analyzer.domain_score(task) == 10
    assert analyzer.risk_score(task) == 7


def test_unknown_table_entries_are_ignored() -> None:
    analyzer = ComplexityAnalyzer()
    task = _task(domain="gardening", compliance=["made-up"], systemRisk=["cosmic-rays"])
    assert analyzer.domain_score(task) == 1
    assert analyzer.risk_score(task) == 1


def test_confidence_counts_informative_dimensions() -> None:
    analysis = ComplexityAnalyzer().analyze(
        _task(files=["a.py", "b.py"], domain="security", dataRisk=["pii"])
    )
    assert analysis.confidence == pytest.approx(0.75)


def test_forced_tier_overrides_score() -> None:
    analysis = ComplexityAnalyzer().analyze(_task(complexity=2), forced_tier=Tier.TIER_2)
    assert analysis.tier == Tier.TIER_2
    assert analysis.forced is True
    assert analysis.overall_score == pytest.approx(2.0)


def test_tier_boundaries_are_inclusive() -> None:
    analyzer = ComplexityAnalyzer(TierThresholds())
    assert analyzer.analyze(_task(complexity=3)).tier == Tier.DIRECT
    assert analyzer.analyze(_task(complexity=6)).tier == Tier.TIER_1
    assert analyzer.analyze(_task(complexity=8)).tier == Tier.TIER_2
    assert analyzer.analyze(_task(complexity=8.5)).tier == Tier.TIER_3


def test_adjusted_thresholds_change_tiers() -> None:
    thresholds = TierThresholds()
    analyzer = ComplexityAnalyzer(thresholds)
    assert analyzer.analyze(_task(complexity=3)).tier == Tier.DIRECT
    thresholds.adjust({"direct": -0.1})
    assert analyzer.analyze(_task(complexity=3)).tier == Tier.TIER_1
