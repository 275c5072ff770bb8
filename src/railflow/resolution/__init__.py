"""Payment rail resolution."""

from railflow.resolution.models import (
    StepAction,
    ResolutionStep,
    ResolutionPlan,
    ResolutionOutcome,
)
from railflow.resolution.resolver import Resolver

__all__ = [
    "StepAction",
    "ResolutionStep",
    "ResolutionPlan",
    "ResolutionOutcome",
    "Resolver",
]
