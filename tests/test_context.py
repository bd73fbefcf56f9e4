import asyncio

import pytest

from consult.analyzer import ComplexityAnalyzer
from consult.config import Settings
from consult.context import ContextManager, FingerprintLocks, complexity_bucket
from consult.models import Consultation, Recommendation, Task
from consult.registry import SpecialistRegistry
from consult.router import TaskRouter


def _manager(clock, **kwargs) -> ContextManager:
    return ContextManager(clock=clock, **kwargs)


def _consultation(**task_fields) -> Consultation:
    fields = {"domain": "security", "technologies": ["oauth", "jwt"], "complexity": 5}
    fields.update(task_fields)
    task = Task.from_dict(fields)
    routing = TaskRouter(SpecialistRegistry(), ComplexityAnalyzer()).route(task)
    return Consultation(
        specialist=routing.specialist,
        task=task,
        routing=routing,
        recommendation=Recommendation(approach="security-generalist-consultation"),
    )


@pytest.mark.parametrize(("value", "bucket"), [(None, 4), (1, 0), (5, 4), (6.9, 6), (10, 10)])
def test_complexity_bucket(value, bucket) -> None:
    assert complexity_bucket(value) == bucket


def test_fingerprint_ignores_order_and_case() -> None:
    a = Task.from_dict({"domain": "Security", "technologies": ["JWT", "oauth"], "complexity": 5})
    b = Task.from_dict({"domain": "security", "technologies": ["oauth", "jwt"], "complexity": 4.2})
    shape_a = ContextManager.task_shape(a)
    shape_b = ContextManager.task_shape(b)
    assert shape_a == shape_b
    assert ContextManager.fingerprint(shape_a) == ContextManager.fingerprint(shape_b)

    c = Task.from_dict({"domain": "security", "technologies": ["oauth"], "complexity": 5})
    assert ContextManager.fingerprint(ContextManager.task_shape(c)) != ContextManager.fingerprint(shape_a)


def test_cache_key_format(clock) -> None:
    manager = _manager(clock)
    shape = manager.task_shape(Task(domain="data"))
    key = manager.cache_key("data-generalist", shape)
    assert key.startswith("data-generalist_")
    assert len(key.split("_")[-1]) == 16


def test_ttl_scales_with_complexity(clock) -> None:
    manager = _manager(clock, cache_ttl_seconds=3600)
    assert manager.ttl_for(5) == pytest.approx(3600)
    assert manager.ttl_for(2.5) == pytest.approx(1800)
    assert manager.ttl_for(10) == pytest.approx(7200)
    assert manager.ttl_for(50) == pytest.approx(7200)
    assert manager.ttl_for(None) == pytest.approx(3600)


def test_from_settings_reads_duration(clock) -> None:
    manager = ContextManager.from_settings(Settings(_env_file=None, cache_ttl="30m"), clock=clock)
    assert manager.cache_ttl_seconds == 1800


@pytest.mark.asyncio
async def test_cache_hit_then_expiry(clock) -> None:
    manager = _manager(clock, cache_ttl_seconds=60)
    consultation = _consultation()
    entry = await manager.cache_specialist_consultation(consultation)

    hit = await manager.retrieve_specialist_cache(
        consultation.task,
        consultation.specialist,
        domain=consultation.routing.domain,
        complexity=consultation.routing.complexity.overall_score,
    )
    assert hit is not None and hit.key == entry.key

    clock.advance(61)
    assert await manager.get_cached(entry.key) is None
    assert await manager.get_cached(entry.key) is None

    analytics = await manager.get_context_analytics()
    assert analytics["cache_requests"] == 3
    assert analytics["cache_hit_rate"] == pytest.approx(0.333)
    assert analytics["cache_size"] == 0


@pytest.mark.asyncio
async def test_cache_is_bounded(clock) -> None:
    manager = _manager(clock, cache_max_entries=2)
    keys = []
    for complexity in (3, 5, 7):
        entry = await manager.cache_specialist_consultation(_consultation(), complexity=complexity)
        keys.append(entry.key)
        clock.advance(1)

    assert await manager.get_cached(keys[0]) is None
    assert await manager.get_cached(keys[2]) is not None
    assert (await manager.get_context_analytics())["cache_size"] == 2


@pytest.mark.asyncio
async def test_invalidate(clock) -> None:
    manager = _manager(clock)
    entry = await manager.cache_specialist_consultation(_consultation())
    assert await manager.invalidate(entry.key) is True
    assert await manager.invalidate(entry.key) is False


@pytest.mark.asyncio
async def test_success_patterns_are_found_for_similar_tasks(clock) -> None:
    manager = _manager(clock)
    pattern = await manager.store_success_pattern(
        _consultation(), successful=True, quality_score=0.95, execution_time_ms=12.0
    )
    assert pattern is not None

    similar = Task.from_dict({"domain": "security", "technologies": ["jwt"], "complexity": 5})
    matches = await manager.get_relevant_patterns(similar)
    assert [match.pattern.id for match in matches] == [pattern.id]
    # 10 domain + 2 technology + 5 same bucket
    assert matches[0].score == 17

    unrelated = Task.from_dict({"domain": "frontend", "technologies": ["react"], "complexity": 9})
    assert await manager.get_relevant_patterns(unrelated) == []


@pytest.mark.asyncio
async def test_failed_consultations_do_not_store_patterns(clock) -> None:
    manager = _manager(clock)
    assert await manager.store_success_pattern(_consultation(), successful=False) is None
    disabled = _manager(clock, learning_enabled=False)
    assert await disabled.store_success_pattern(_consultation(), successful=True) is None


@pytest.mark.asyncio
async def test_pattern_usage_running_average(clock) -> None:
    manager = _manager(clock)
    pattern = await manager.store_success_pattern(_consultation(), successful=True)

    await manager.update_pattern_usage(pattern.id, successful=False)
    updated = await manager.update_pattern_usage(
        pattern.id, successful=True, metrics={"user_satisfaction": 0.8}
    )

    assert updated.usage_count == 3
    assert updated.success_rate == pytest.approx(2 / 3)
    assert updated.success_metrics["user_satisfaction"] == 0.8
    assert await manager.update_pattern_usage("missing", successful=True) is None


@pytest.mark.asyncio
async def test_pattern_library_keeps_most_recent(clock) -> None:
    manager = _manager(clock, pattern_limit=2)
    ids = [
        (await manager.store_success_pattern(_consultation(), successful=True)).id for _ in range(3)
    ]
    assert await manager.get_pattern(ids[0]) is None
    assert await manager.get_pattern(ids[2]) is not None


@pytest.mark.asyncio
async def test_concurrent_pattern_updates_are_not_lost(clock) -> None:
    manager = _manager(clock)
    pattern = await manager.store_success_pattern(_consultation(), successful=True)

    await asyncio.gather(
        *(manager.update_pattern_usage(pattern.id, successful=True) for _ in range(20))
    )

    assert (await manager.get_pattern(pattern.id)).usage_count == 21


@pytest.mark.asyncio
async def test_project_context_versions_and_decision_patterns(clock) -> None:
    manager = _manager(clock)
    first = await manager.update_project_context(
        objectives=["ship"], state={"phase": "design"}
    )
    second = await manager.update_project_context(
        decisions=[{"description": "Adopt event sourcing", "domain": "architecture"}],
        state={"phase": "build"},
    )

    assert (first.version, second.version) == (1, 2)
    assert second.objectives == ("ship",)
    assert (await manager.get_project_context()) == second
    assert len(await manager.context_history()) == 2

    analytics = await manager.get_context_analytics()
    assert analytics["pattern_usage"]["total_patterns"] == 1
    assert analytics["context_evolution"]["total_versions"] == 2
    assert analytics["context_evolution"]["trend"] == "stable"


@pytest.mark.asyncio
async def test_specialist_metrics(clock) -> None:
    manager = _manager(clock)
    await manager.record_specialist_consultation("data-generalist", successful=True, quality_score=0.9)
    await manager.record_specialist_consultation("data-generalist", successful=False, quality_score=0.5)

    assert await manager.specialist_success_rates() == {"data-generalist": 0.5}
    performance = (await manager.get_context_analytics())["specialist_performance"]
    assert performance["data-generalist"]["average_quality"] == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_fingerprint_locks_serialize_and_clean_up() -> None:
    locks = FingerprintLocks()
    order: list[str] = []

    async def _worker(name: str) -> None:
        async with locks.hold("key"):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    await asyncio.gather(_worker("a"), _worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_cache_round_trip_with_inferred_domain(clock) -> None:
    manager = _manager(clock)
    fields = {
        "description": "Tune database query indexes",
        "technologies": ["postgresql"],
        "complexity": 5,
    }
    task = Task.from_dict(fields)
    routing = TaskRouter(SpecialistRegistry(), ComplexityAnalyzer()).route(task)
    assert task.domain is None
    assert routing.domain == "data"

    entry = await manager.cache_specialist_consultation(
        Consultation(
            specialist=routing.specialist,
            task=task,
            routing=routing,
            recommendation=Recommendation(approach="data-generalist-consultation"),
        )
    )

    hit = await manager.retrieve_specialist_cache(Task.from_dict(fields), routing.specialist)
    assert hit is not None and hit.key == entry.key
