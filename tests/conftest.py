"""Shared test fixtures and configuration for pytest."""

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from consult.config import Settings
from consult.events import EventEmitter, PipelineEvent
from consult.models import ComplexityAnalysis, Pattern, Recommendation, SpecialistProfile, Task
from consult.orchestrator import Orchestrator
from consult.synthesis import RuleBasedSynthesizer


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSynthesizer(RuleBasedSynthesizer):
    """Rule-based synthesizer that counts calls and can inject text or errors."""

    def __init__(
        self,
        *,
        inject: str = "",
        inject_when: Callable[[SpecialistProfile], bool] | None = None,
        errors: Sequence[BaseException] = (),
    ) -> None:
        self.inject = inject
        self.inject_when = inject_when
        self.errors = list(errors)
        self.calls: list[str] = []

    async def synthesize(
        self,
        task: Task,
        profile: SpecialistProfile,
        patterns: Sequence[Pattern],
        analysis: ComplexityAnalysis,
    ) -> Recommendation:
        self.calls.append(profile.id)
        if self.errors:
            raise self.errors.pop(0)
        recommendation = await super().synthesize(task, profile, patterns, analysis)
        if self.inject and (self.inject_when is None or self.inject_when(profile)):
            recommendation.rationale += f" {self.inject}"
        return recommendation


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def captured_events() -> list[PipelineEvent]:
    return []


@pytest.fixture
def make_orchestrator(
    settings: Settings, clock: FakeClock, captured_events: list[PipelineEvent]
) -> Callable[..., Orchestrator]:
    def _make(**overrides: Any) -> Orchestrator:
        emitter = EventEmitter()
        emitter.on_event(captured_events.append)
        config = settings.model_copy(update=overrides.pop("settings", {}))
        return Orchestrator(config, events=emitter, clock=clock, **overrides)

    return _make


@pytest.fixture
def security_task() -> Callable[..., dict[str, Any]]:
    """Builds a TIER_1 security task that the default synthesizer answers cleanly."""

    def _task(**fields: Any) -> dict[str, Any]:
        task: dict[str, Any] = {
            "description": "Add login with single sign-on to the admin portal",
            "domain": "security",
            "technologies": ["oauth", "jwt"],
            "complexity": 5,
        }
        task.update(fields)
        return task

    return _task


@pytest.fixture
def recording_synthesizer() -> type[RecordingSynthesizer]:
    return RecordingSynthesizer
