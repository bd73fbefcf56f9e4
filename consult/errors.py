"""Error types and helpers for the consultation pipeline."""

from __future__ import annotations


class ConsultError(Exception):
    """Base class for pipeline errors."""

    code = "consult_error"


class QualityGateError(ConsultError):
    """Raised when a recommendation fails validation and must not be used."""

    code = "quality_gate_failure"


class ImplementationFailureError(ConsultError):
    """Raised by an executor when recommended work could not be carried out."""

    code = "implementation_failure"


class EscalationExhaustedError(ConsultError):
    """Raised when a task would have to leave the internal tiers."""

    code = "escalation_exhausted"


class UnknownTaskError(ConsultError, KeyError):
    """Raised when feedback references a task id that was never processed."""

    code = "unknown_task_id"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task {self.task_id} not found"


class UnknownRecoveryStrategyError(ConsultError):
    """Raised when a recovery strategy type has no implementation."""

    code = "unknown_recovery_strategy"

    def __init__(self, strategy: str) -> None:
        super().__init__(f"Unknown recovery strategy: {strategy}")
        self.strategy = strategy


class UnknownSpecialistError(ConsultError, KeyError):
    """Raised when a specialist id is not in the catalog."""

    code = "unknown_specialist"

    def __init__(self, specialist_id: str) -> None:
        super().__init__(f"Unknown specialist: {specialist_id}")
        self.specialist_id = specialist_id

    def __str__(self) -> str:
        return f"Unknown specialist: {self.specialist_id}"


def exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def exception_chain_text(exc: BaseException) -> str:
    """Type names and messages of an exception and everything it wraps."""
    return " | ".join(f"{type(e).__name__}: {e}" for e in exception_chain(exc))


def error_code(exc: BaseException) -> str:
    return getattr(exc, "code", None) or "implementation_failure"
