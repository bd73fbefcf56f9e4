"""
Tiered Specialist Consultation

This package scores incoming tasks, routes them to the cheapest sufficient
specialist tier, validates the resulting recommendations and learns from
outcomes.
"""

__version__ = "0.1.0"

# Complexity analysis
from consult.analyzer import ComplexityAnalyzer

# Configuration
from consult.config import Settings, TierThresholds

# Context, cache and patterns
from consult.context import ContextManager

# Errors
from consult.errors import (
    ConsultError,
    EscalationExhaustedError,
    ImplementationFailureError,
    QualityGateError,
    UnknownRecoveryStrategyError,
    UnknownSpecialistError,
    UnknownTaskError,
)

# Events
from consult.events import EventEmitter, EventType, PipelineEvent

# Core models
from consult.models import (
    ComplexityAnalysis,
    Consultation,
    Feedback,
    Outcome,
    QualityResult,
    Recommendation,
    RoutingDecision,
    SpecialistProfile,
    Task,
    Tier,
)

# Orchestration
from consult.orchestrator import Orchestrator, TaskOptions

# Quality assurance
from consult.quality import QualityAssurance

# Recovery and learning
from consult.recovery import ErrorRecoverySystem

# Specialist catalog and routing
from consult.registry import SpecialistRegistry
from consult.router import TaskRouter

__all__ = [
    # Version
    "__version__",
    # Models
    "Task",
    "Tier",
    "ComplexityAnalysis",
    "RoutingDecision",
    "SpecialistProfile",
    "Recommendation",
    "QualityResult",
    "Consultation",
    "Outcome",
    "Feedback",
    # Config
    "Settings",
    "TierThresholds",
    # Components
    "ComplexityAnalyzer",
    "SpecialistRegistry",
    "TaskRouter",
    "QualityAssurance",
    "ContextManager",
    "ErrorRecoverySystem",
    # Orchestration
    "Orchestrator",
    "TaskOptions",
    # Events
    "EventEmitter",
    "EventType",
    "PipelineEvent",
    # Errors
    "ConsultError",
    "QualityGateError",
    "ImplementationFailureError",
    "EscalationExhaustedError",
    "UnknownTaskError",
    "UnknownRecoveryStrategyError",
    "UnknownSpecialistError",
]
