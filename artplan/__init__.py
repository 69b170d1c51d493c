"""ART planning engine.

Turns a backlog of epics, features, stories and enablers into a
dependency-ordered, capacity-bounded Program Increment plan with value
delivery and readiness assessments.

Usage:
    from artplan import plan_art

    plan = plan_art(work_items, iterations, teams)
    print(plan.summary.risk_level)
"""

from .config import ARTPlanningConfig, load_planning_config
from .errors import (
    ARTPlanningError,
    CapacityValidationError,
    CircularDependencyError,
    DecompositionError,
    PlanningError,
    ScoringError,
    ValidationError,
)
from .planner import decompose_story, plan_art, score_stories, score_stories_with_errors

__version__ = "0.1.0"

__all__ = [
    "plan_art",
    "decompose_story",
    "score_stories",
    "score_stories_with_errors",
    "ARTPlanningConfig",
    "load_planning_config",
    "ARTPlanningError",
    "ValidationError",
    "DecompositionError",
    "CircularDependencyError",
    "CapacityValidationError",
    "ScoringError",
    "PlanningError",
]
