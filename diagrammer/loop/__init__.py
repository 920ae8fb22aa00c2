"""Feedback loop controller.

Provides the bounded generate/validate/regenerate state machine that turns
a request into a (possibly best-effort) validated artifact.
"""

from .lib import (
    DEFAULT_MAX_ITERATIONS,
    MAX_ITERATIONS_CAP,
    ArtifactValidator,
    FeedbackLoopController,
    LoopConfig,
    LoopState,
    check_iteration_budget,
)

__all__ = [
    "ArtifactValidator",
    "DEFAULT_MAX_ITERATIONS",
    "FeedbackLoopController",
    "LoopConfig",
    "LoopState",
    "MAX_ITERATIONS_CAP",
    "check_iteration_budget",
]
