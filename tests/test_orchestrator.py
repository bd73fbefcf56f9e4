import asyncio

import pytest

from consult.errors import UnknownRecoveryStrategyError, UnknownTaskError
from consult.events import EventType
from consult.models import Task, Tier
from consult.orchestrator import DISTRIBUTION_TARGETS, TaskOptions, generate_task_id


def _types(events) -> list[EventType]:
    return [event.type for event in events]


def test_generate_task_id_format() -> None:
    task_id = generate_task_id()
    prefix, millis, suffix = task_id.split("_")
    assert prefix == "task"
    assert millis.isdigit()
    assert len(suffix) == 9


def test_task_options_coerce() -> None:
    assert TaskOptions.coerce(None) == TaskOptions()
    assert TaskOptions.coerce({"useCache": False, "tier": "tier_2"}) == TaskOptions(
        use_cache=False, tier=Tier.TIER_2
    )
    assert TaskOptions.coerce({"tier": "nonsense"}).tier is None


@pytest.mark.asyncio
async def test_simple_task_is_direct(make_orchestrator, captured_events) -> None:
    orchestrator = make_orchestrator()

    outcome = await orchestrator.process_task({"description": "Get campaign list", "complexity": 2})

    assert outcome.success is True
    assert outcome.metadata["routing"]["tier"] == "DIRECT"
    assert outcome.metadata["routing"]["specialist"] is None
    assert outcome.metadata["quality"] is None
    assert outcome.result["approach"] == "direct-implementation"
    assert outcome.result["confidence"] == 0.95
    assert EventType.QUALITY_PASSED not in _types(captured_events)
    assert EventType.QUALITY_FAILED not in _types(captured_events)


@pytest.mark.asyncio
async def test_enterprise_task_consults_tier_three(make_orchestrator) -> None:
    orchestrator = make_orchestrator()

    outcome = await orchestrator.process_task(
        {
            "complexity": 9,
            "scope": "enterprise",
            "technologies": ["distributed-systems", "microservices"],
        }
    )

    assert outcome.success is True
    routing = outcome.metadata["routing"]
    assert routing["tier"] == "TIER_3"
    assert routing["specialist"] == "integration-architect"
    assert len(routing["quality_checks"]) == 8
    assert outcome.metadata["quality"]["passed"] is True
    assert outcome.metadata["cached"] is False


@pytest.mark.asyncio
async def test_repeated_task_is_served_from_cache(
    make_orchestrator, captured_events, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer()
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    first = await orchestrator.process_task(security_task())
    second = await orchestrator.process_task(security_task())

    assert first.success and second.success
    assert first.metadata["cached"] is False
    assert second.metadata["cached"] is True
    assert second.metadata["cache_used"] is True
    assert second.result == first.result
    assert synthesizer.calls == ["security-generalist"]
    assert _types(captured_events).count(EventType.QUALITY_PASSED) == 1
    assert EventType.CACHE_HIT in _types(captured_events)


@pytest.mark.asyncio
async def test_cache_can_be_bypassed(make_orchestrator, security_task, recording_synthesizer) -> None:
    synthesizer = recording_synthesizer()
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    await orchestrator.process_task(security_task())
    outcome = await orchestrator.process_task(security_task(), {"use_cache": False})

    assert outcome.metadata["cached"] is False
    assert len(synthesizer.calls) == 2


@pytest.mark.asyncio
async def test_expired_cache_is_not_served(
    make_orchestrator, clock, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer()
    orchestrator = make_orchestrator(synthesizer=synthesizer, settings={"cache_ttl": "1h"})

    await orchestrator.process_task(security_task())
    clock.advance(3601)
    outcome = await orchestrator.process_task(security_task())

    assert outcome.metadata["cached"] is False
    assert len(synthesizer.calls) == 2


@pytest.mark.asyncio
async def test_revalidate_policy_rechecks_cached_result(
    make_orchestrator, captured_events, security_task
) -> None:
    orchestrator = make_orchestrator(settings={"cache_hit_policy": "revalidate"})

    await orchestrator.process_task(security_task())
    outcome = await orchestrator.process_task(security_task())

    assert outcome.metadata["cached"] is True
    assert outcome.metadata["cache_age_ms"] == 0


@pytest.mark.asyncio
async def test_concurrent_identical_tasks_consult_once(
    make_orchestrator, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer()
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    outcomes = await asyncio.gather(
        *(orchestrator.process_task(security_task()) for _ in range(5))
    )

    assert all(outcome.success for outcome in outcomes)
    assert synthesizer.calls == ["security-generalist"]
    assert sorted(outcome.metadata["cached"] for outcome in outcomes) == [False, True, True, True, True]
    assert len({outcome.task_id for outcome in outcomes}) == 5


@pytest.mark.asyncio
async def test_failed_gate_escalates_to_next_tier(
    make_orchestrator, captured_events, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer(
        inject="Hash session tokens with md5.", inject_when=lambda profile: profile.tier == 1
    )
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    outcome = await orchestrator.process_task(security_task())

    assert outcome.success is True
    assert synthesizer.calls == ["security-generalist", "auth-systems-specialist"]
    assert outcome.metadata["routing"]["tier"] == "TIER_2"
    escalations = outcome.metadata["escalations"]
    assert len(escalations) == 1
    assert escalations[0]["from_tier"] == "TIER_1"
    assert escalations[0]["to_tier"] == "TIER_2"
    assert "quality-assurance-specialist" in escalations[0]["required_expertise"]
    assert EventType.TASK_ESCALATED in _types(captured_events)


@pytest.mark.asyncio
async def test_escalation_exhaustion_is_reported(
    make_orchestrator, captured_events, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer(inject="Hash session tokens with md5.")
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    outcome = await orchestrator.process_task(security_task())

    assert outcome.success is False
    assert outcome.error_type == "escalation_exhausted"
    assert synthesizer.calls == [
        "security-generalist",
        "auth-systems-specialist",
        "security-architect",
    ]
    assert any(issue["area"] == "security" for issue in outcome.quality_issues)
    assert len(outcome.failure_analysis["escalation_trail"]) == 2
    assert outcome.failure_analysis["escalation"]["to_tier"] == "EXTERNAL"
    assert EventType.ESCALATION_EXHAUSTED in _types(captured_events)

    # exhausted consultations are never cached
    again = await orchestrator.process_task(security_task())
    assert again.success is False
    assert len(synthesizer.calls) == 6


@pytest.mark.asyncio
async def test_forced_tier_option(make_orchestrator, security_task) -> None:
    orchestrator = make_orchestrator()
    outcome = await orchestrator.process_task(security_task(), TaskOptions(tier=Tier.TIER_3))
    assert outcome.metadata["routing"]["tier"] == "TIER_3"
    assert outcome.metadata["routing"]["specialist"] == "security-architect"


@pytest.mark.asyncio
async def test_transient_failure_recovers_with_retry(
    make_orchestrator, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer(errors=[ConnectionError("connection refused")])
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    outcome = await orchestrator.process_task(security_task())

    assert outcome.success is True
    assert outcome.recovery_attempted is True
    assert outcome.metadata["recovery"]["strategy"]["type"] == "retry"
    assert outcome.metadata["recovery"]["successful"] is True
    assert len(synthesizer.calls) == 2


@pytest.mark.asyncio
async def test_recovery_is_attempted_only_once(
    make_orchestrator, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer(
        errors=[ConnectionError("connection refused"), ConnectionError("connection refused")]
    )
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    outcome = await orchestrator.process_task(security_task())

    assert outcome.success is False
    assert outcome.recovery_attempted is True
    assert outcome.metadata["recovery"]["successful"] is False
    assert outcome.error_type == "implementation_failure"
    assert len(synthesizer.calls) == 2


@pytest.mark.asyncio
async def test_critical_failure_reports_escalation_plan(
    make_orchestrator, captured_events, security_task, recording_synthesizer
) -> None:
    synthesizer = recording_synthesizer(errors=[RuntimeError("sql injection found in generated query")])
    orchestrator = make_orchestrator(synthesizer=synthesizer)

    outcome = await orchestrator.process_task(security_task())

    assert outcome.success is False
    assert outcome.recovery_attempted is False
    assert outcome.failure_analysis["severity"] == 10
    assert outcome.failure_analysis["stage"] == "execute"
    assert outcome.failure_analysis["escalation"]["to_tier"] == "TIER_2"
    assert EventType.TASK_FAILED in _types(captured_events)
    assert orchestrator.metrics.recent(1)[0].success is False


@pytest.mark.asyncio
async def test_execute_recovery_strategy(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    task = Task.from_dict({"description": "Tidy imports", "complexity": 4})

    simplified = await orchestrator.execute_recovery_strategy(task, "simplify")
    assert simplified.success is True
    assert simplified.metadata["routing"]["tier"] == "DIRECT"

    with pytest.raises(UnknownRecoveryStrategyError):
        await orchestrator.execute_recovery_strategy(task, "pray")


@pytest.mark.asyncio
async def test_feedback_for_unknown_task(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    with pytest.raises(UnknownTaskError):
        await orchestrator.process_feedback("task_0_missing", {"satisfaction": 0.9})


@pytest.mark.asyncio
async def test_low_satisfaction_feedback_updates_learning(make_orchestrator, security_task) -> None:
    orchestrator = make_orchestrator()
    outcome = await orchestrator.process_task(security_task())
    pattern_id = outcome.metadata["pattern_id"]
    assert pattern_id is not None

    ack = await orchestrator.process_feedback(
        outcome.task_id, {"satisfaction": 0.3, "issues": ["missed MFA"]}
    )

    assert ack == {"task_id": outcome.task_id, "feedback_processed": True, "system_updated": True}
    assert orchestrator.metrics.get(outcome.task_id).user_satisfaction == 0.3
    events = orchestrator.recovery.learning_events()
    assert events[-1].type == "user_dissatisfaction"


@pytest.mark.asyncio
async def test_satisfied_feedback_is_acknowledged(make_orchestrator, security_task) -> None:
    orchestrator = make_orchestrator()
    outcome = await orchestrator.process_task(security_task())

    ack = await orchestrator.process_feedback(outcome.task_id, {"satisfaction": 0.9})

    assert ack["system_updated"] is False
    assert orchestrator.recovery.learning_events() == []


@pytest.mark.asyncio
async def test_code_review_feedback(make_orchestrator, security_task) -> None:
    orchestrator = make_orchestrator()
    outcome = await orchestrator.process_task(security_task())

    ack = await orchestrator.process_feedback(
        outcome.task_id, {"satisfaction": 0.9, "code_review": {"security": 0.3}}
    )

    assert ack["system_updated"] is True
    assert orchestrator.recovery.summary()["specialist_quality_issues"] == {"security-generalist": 1}


@pytest.mark.asyncio
async def test_reused_patterns_are_tracked(make_orchestrator, security_task) -> None:
    orchestrator = make_orchestrator()
    first = await orchestrator.process_task(security_task())
    second = await orchestrator.process_task(
        security_task(technologies=["oauth", "jwt", "saml"]), {"use_cache": False}
    )

    assert second.success is True
    pattern = await orchestrator.context.get_pattern(first.metadata["pattern_id"])
    assert pattern.usage_count == 2


@pytest.mark.asyncio
async def test_system_status(make_orchestrator, security_task) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.initialize(constraints=["no new vendors"])
    await orchestrator.process_task({"description": "Get campaign list", "complexity": 2})
    await orchestrator.process_task(security_task())

    status = await orchestrator.get_system_status()

    assert status["status"] == "operational"
    assert status["initialized"] is True
    assert status["performance"]["total_tasks"] == 2
    assert status["performance"]["tier_distribution"] == {"DIRECT": 1, "TIER_1": 1}
    assert status["distribution_targets"] == DISTRIBUTION_TARGETS
    assert status["thresholds"]["tier3"] == 10.0
    assert status["routing"]["threshold_adjustments"] == {"DIRECT": 1.0, "TIER_1": 1.0}
    assert status["context_manager"]["context_evolution"]["total_versions"] == 1
    assert "tier_accuracy" in status["learning"]


@pytest.mark.asyncio
async def test_failures_in_other_tiers_do_not_widen_direct(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    direct_cutoff = orchestrator.thresholds.direct
    detection = orchestrator.recovery.detect_implementation_failure(
        ConnectionError("connection refused")
    )

    for _ in range(30):
        for _ in range(5):
            await orchestrator.process_task({"description": "Get campaign list", "complexity": 2})
        orchestrator.recovery.integrate_implementation_failure_feedback(detection, tier=Tier.TIER_2)

    assert orchestrator.thresholds.direct == direct_cutoff
    assert orchestrator.thresholds.tier2 < 8.0
    assert orchestrator.analyzer.analyze(Task(complexity=5.5)).tier == Tier.TIER_1


@pytest.mark.asyncio
async def test_direct_cutoff_moves_only_on_confirmed_feedback(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    task_ids = [
        (await orchestrator.process_task({"description": "Get campaign list", "complexity": 2})).task_id
        for _ in range(5)
    ]
    assert orchestrator.thresholds.direct == 3.0

    acks = [await orchestrator.process_feedback(task_id, {"satisfaction": 0.9}) for task_id in task_ids]

    assert [ack["system_updated"] for ack in acks] == [False, False, False, False, True]
    assert orchestrator.thresholds.direct == pytest.approx(3.1)
