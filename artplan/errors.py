"""Error taxonomy for the ART planning engine.

Stage-local errors (one work item) are collected on the relevant result
list by the caller of a batch operation; plan-level errors abort the run.
"""


class ARTPlanningError(Exception):
    """Base error for all planning failures.

    Attributes:
        message: Human-readable description
        code: Stable machine-readable error code
        affected_items: Work item ids the error refers to
    """

    default_code = "PLANNING_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        affected_items: list[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.affected_items = list(affected_items or [])

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "affected_items": list(self.affected_items),
        }


class ValidationError(ARTPlanningError):
    """Input is malformed (negative estimate, missing field, duplicate id)."""

    default_code = "INVALID_INPUT"


class DecompositionError(ARTPlanningError):
    """A work item cannot be split while keeping the decomposition invariants."""

    default_code = "DECOMPOSITION_FAILED"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        item_id: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, code, [item_id] if item_id else [])
        self.item_id = item_id
        self.details = dict(details or {})


class CircularDependencyError(ARTPlanningError):
    """HARD dependency cycle that prevents a topological order."""

    default_code = "CIRCULAR_DEPENDENCY"

    def __init__(self, message: str, cycles: list[list[str]] | None = None):
        cycles = [list(cycle) for cycle in cycles or []]
        affected = sorted({item_id for cycle in cycles for item_id in cycle})
        super().__init__(message, affected_items=affected)
        self.cycles = cycles


class CapacityValidationError(ARTPlanningError):
    """A work item does not fit the remaining team capacity.

    Never raised out of the allocator: the message becomes the explanation
    attached to the unallocated work item.
    """

    default_code = "CAPACITY_EXCEEDED"

    def __init__(self, message: str, item_id: str, required: float, available: float):
        super().__init__(message, affected_items=[item_id])
        self.item_id = item_id
        self.required = required
        self.available = available


class ScoringError(ARTPlanningError):
    """A WSJF score cannot be computed for a single work item."""

    default_code = "SCORING_FAILED"

    def __init__(self, message: str, story_id: str, phase: str, code: str | None = None):
        super().__init__(message, code, [story_id])
        self.story_id = story_id
        self.phase = phase


class PlanningError(ARTPlanningError):
    """Plan-level failure (no iterations, no teams) that aborts the run."""
