import pytest

from consult.analyzer import ComplexityAnalyzer
from consult.models import Task, Tier
from consult.registry import SpecialistRegistry
from consult.router import TaskRouter


def _router(**kwargs) -> TaskRouter:
    return TaskRouter(SpecialistRegistry(), ComplexityAnalyzer(), **kwargs)


def _task(**fields) -> Task:
    return Task.from_dict(fields)


@pytest.mark.parametrize(
    ("text", "domain"),
    [
        ("Get campaign list", "general"),
        ("Optimize database query latency", "data"),
        ("Build a webhook receiver", "integration"),
        ("Rotate JWT signing keys", "security"),
        ("Train a classification model", "ml"),
        ("", "general"),
    ],
)
def test_infer_domain(text: str, domain: str) -> None:
    assert TaskRouter.infer_domain(text) == domain


def test_explicit_domain_wins() -> None:
    router = _router()
    assert router.identify_domain(_task(description="Optimize database query", domain="Security")) == "security"


def test_direct_task_has_no_specialist() -> None:
    decision = _router().route(_task(description="Get campaign list", complexity=2))
    assert decision.tier == Tier.DIRECT
    assert decision.specialist is None
    assert decision.protocol == "direct-implementation"
    assert decision.quality_checks == ["syntax-check", "basic-test"]
    assert decision.estimated_minutes == 36


def test_enterprise_task_routes_to_tier_three_architect() -> None:
    decision = _router().route(
        _task(
            complexity=9,
            scope="enterprise",
            technologies=["distributed-systems", "microservices"],
        )
    )
    assert decision.tier == Tier.TIER_3
    assert len(decision.quality_checks) == 8
    assert decision.domain == "integration"
    assert decision.specialist == "integration-architect"
    assert decision.estimated_minutes == 2736


def test_checklists_grow_with_tier() -> None:
    sizes = [len(TaskRouter.quality_checks(tier)) for tier in (Tier.DIRECT, Tier.TIER_1, Tier.TIER_2, Tier.TIER_3)]
    assert sizes == [2, 3, 5, 8]


def test_ties_keep_catalog_order() -> None:
    decision = _router().route(_task(description="Refactor billing", complexity=7))
    assert decision.tier == Tier.TIER_2
    assert [sid for sid, _ in decision.candidates] == ["database-specialist", "api-design-specialist"]
    assert decision.candidates[0][1] == decision.candidates[1][1]
    assert decision.specialist == "database-specialist"


def test_history_breaks_ties() -> None:
    decision = _router().route(
        _task(description="Refactor billing", complexity=7),
        performance={"api-design-specialist": 1.0},
    )
    assert decision.specialist == "api-design-specialist"


def test_score_specialist_components() -> None:
    router = _router()
    registry = SpecialistRegistry()
    task = _task(domain="security", technologies=["oauth", "jwt", "react"], complexity=5)
    analysis = router.analyzer.analyze(task)
    score = router.score_specialist(
        registry.require("security-generalist"), task, "security", analysis, {"security-generalist": 0.5}
    )
    # 10 domain + 2 * 2 technologies + 5 fit + 5 * 0.5 history
    assert score == pytest.approx(21.5)


def test_forced_tier_routes_without_reanalysis() -> None:
    decision = _router().route(_task(domain="security", complexity=5), forced_tier=Tier.TIER_3)
    assert decision.tier == Tier.TIER_3
    assert decision.specialist == "security-architect"


def test_domain_corrections_apply_to_inferred_domains_only() -> None:
    router = _router(domain_corrections={"data": "security"})
    assert router.identify_domain(_task(description="Optimize database query")) == "security"
    assert router.identify_domain(_task(description="Optimize database query", domain="data")) == "data"


def test_optimize_routing_reports_accuracy() -> None:
    report = _router().optimize_routing(
        [
            {"tier": "TIER_1", "specialist": "data-generalist", "domain": "data", "success": True},
            {"tier": "TIER_1", "specialist": "data-generalist", "domain": "data", "success": False},
            {"tier": "DIRECT", "specialist": None, "domain": "general", "success": True},
        ]
    )
    assert report["threshold_adjustments"] == {"TIER_1": 0.5, "DIRECT": 1.0}
    assert report["specialist_selection"] == {"data-generalist": 0.5}
    assert report["domain_mapping"]["data"] == 0.5
