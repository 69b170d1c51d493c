"""Data models for allocation, assessment and the final ART plan.

All models are frozen: an optimization or re-plan produces new values
instead of editing existing ones.
"""

from dataclasses import dataclass, field
from typing import Any

from artplan.models.graph import DependencyGraph
from artplan.models.work_items import Iteration, WorkItem

# ========== Allocation ==========


@dataclass(frozen=True)
class AllocatedWorkItem:
    """A work item placed into an iteration for one team.

    Attributes:
        work_item_id: The scheduled item
        iteration_id: Iteration the item was placed in
        assigned_team: Team id doing the work
        allocated_points: Points consumed from the team's capacity
        is_complete: Whether the item is planned to finish within the iteration
        confidence: Allocation confidence in [0.1, 1]
        rationale: Why the item landed here
        blocked_by: Prerequisite ids (scheduling edges only)
        enables: Dependent ids (scheduling edges only)
    """

    work_item_id: str
    iteration_id: str
    assigned_team: str
    allocated_points: int
    is_complete: bool
    confidence: float
    rationale: str
    blocked_by: tuple[str, ...] = ()
    enables: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_item_id": self.work_item_id,
            "iteration_id": self.iteration_id,
            "assigned_team": self.assigned_team,
            "allocated_points": self.allocated_points,
            "is_complete": self.is_complete,
            "confidence": self.confidence,
            "rationale": self.rationale,
            "blocked_by": list(self.blocked_by),
            "enables": list(self.enables),
        }


@dataclass(frozen=True)
class UnallocatedWorkItem:
    """A work item that could not be placed, with the reason and remedies."""

    work_item_id: str
    reason: str
    explanation: str = ""
    blockers: tuple[str, ...] = ()
    solutions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_item_id": self.work_item_id,
            "reason": self.reason,
            "explanation": self.explanation,
            "blockers": list(self.blockers),
            "solutions": list(self.solutions),
        }


@dataclass(frozen=True)
class AllocationIssue:
    """A problem noticed while allocating."""

    type: str  # capacity_overrun, dependency_violation, value_risk, team_imbalance
    severity: str  # error, warning, info
    description: str
    affected_items: tuple[str, ...] = ()
    iteration_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "affected_items": list(self.affected_items),
            "iteration_id": self.iteration_id,
        }


@dataclass(frozen=True)
class CapacityUtilization:
    """Capacity use of one team in one iteration."""

    team_id: str
    total_capacity: float
    usable_capacity: float  # available capacity after buffer and utilization ceiling
    allocated_capacity: float
    utilization_rate: float  # allocated / usable
    is_over_allocated: bool
    buffer_capacity: float  # available capacity held back

    @property
    def remaining_capacity(self) -> float:
        return max(0.0, self.usable_capacity - self.allocated_capacity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "total_capacity": self.total_capacity,
            "usable_capacity": self.usable_capacity,
            "allocated_capacity": self.allocated_capacity,
            "utilization_rate": self.utilization_rate,
            "is_over_allocated": self.is_over_allocated,
            "buffer_capacity": self.buffer_capacity,
        }


@dataclass(frozen=True)
class AllocationStatistics:
    """Totals for an allocation run."""

    total_items: int = 0
    allocated_items: int = 0
    unallocated_items: int = 0
    total_points: int = 0
    allocated_points: int = 0
    allocation_rate: float = 0.0  # allocated points / total points
    average_confidence: float = 0.0
    iteration_utilization: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_items": self.total_items,
            "allocated_items": self.allocated_items,
            "unallocated_items": self.unallocated_items,
            "total_points": self.total_points,
            "allocated_points": self.allocated_points,
            "allocation_rate": self.allocation_rate,
            "average_confidence": self.average_confidence,
            "iteration_utilization": dict(self.iteration_utilization),
        }


@dataclass(frozen=True)
class AllocationResult:
    """Output of the iteration allocator."""

    allocated: tuple[AllocatedWorkItem, ...]
    unallocated: tuple[UnallocatedWorkItem, ...]
    utilization: dict[str, tuple[CapacityUtilization, ...]]  # iteration id -> per-team use
    statistics: AllocationStatistics
    issues: tuple[AllocationIssue, ...] = ()

    def for_iteration(self, iteration_id: str) -> list[AllocatedWorkItem]:
        return [item for item in self.allocated if item.iteration_id == iteration_id]

    def iteration_of(self, work_item_id: str) -> str | None:
        for item in self.allocated:
            if item.work_item_id == work_item_id:
                return item.iteration_id
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocated": [item.to_dict() for item in self.allocated],
            "unallocated": [item.to_dict() for item in self.unallocated],
            "utilization": {
                iteration_id: [entry.to_dict() for entry in entries]
                for iteration_id, entries in self.utilization.items()
            },
            "statistics": self.statistics.to_dict(),
            "issues": [issue.to_dict() for issue in self.issues],
        }


# ========== Value & Validation ==========


@dataclass(frozen=True)
class ValueDeliveryRisk:
    """A risk to delivering value in an iteration."""

    id: str
    description: str
    severity: str  # low, medium, high
    probability: float
    impact: float
    mitigations: tuple[str, ...] = ()
    owner: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "severity": self.severity,
            "probability": self.probability,
            "impact": self.impact,
            "mitigations": list(self.mitigations),
            "owner": self.owner,
        }


@dataclass(frozen=True)
class ValueStream:
    """Work items grouped by the kind of value they deliver."""

    id: str
    name: str
    type: str
    work_items: tuple[str, ...]
    total_value: float
    delivery_confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "work_items": list(self.work_items),
            "total_value": self.total_value,
            "delivery_confidence": self.delivery_confidence,
        }


@dataclass(frozen=True)
class DeliverableValue:
    """What an iteration can ship on its own."""

    can_deliver_working_software: bool
    primary_value: str
    secondary_values: tuple[str, ...] = ()
    value_confidence: float = 0.0
    value_delivery_stories: tuple[str, ...] = ()
    value_prerequisites: tuple[str, ...] = ()  # HARD prerequisites outside the plan
    value_risks: tuple[ValueDeliveryRisk, ...] = ()
    value_streams: tuple[ValueStream, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_deliver_working_software": self.can_deliver_working_software,
            "primary_value": self.primary_value,
            "secondary_values": list(self.secondary_values),
            "value_confidence": self.value_confidence,
            "value_delivery_stories": list(self.value_delivery_stories),
            "value_prerequisites": list(self.value_prerequisites),
            "value_risks": [risk.to_dict() for risk in self.value_risks],
            "value_streams": [stream.to_dict() for stream in self.value_streams],
        }


@dataclass(frozen=True)
class IterationIssue:
    code: str
    message: str
    affected_items: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "affected_items": list(self.affected_items),
        }


@dataclass(frozen=True)
class IterationValidation:
    """Validation of one iteration plan."""

    score: float
    errors: tuple[IterationIssue, ...] = ()
    warnings: tuple[IterationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "score": self.score,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


@dataclass(frozen=True)
class IterationPlan:
    """One iteration with its allocated work and assessments."""

    iteration: Iteration
    allocated_work: tuple[AllocatedWorkItem, ...]
    total_points: int
    total_capacity: float
    capacity_utilization: tuple[CapacityUtilization, ...]
    deliverable_value: DeliverableValue
    validation: IterationValidation
    prerequisites: tuple[str, ...] = ()  # items from earlier iterations this one builds on
    enables: tuple[str, ...] = ()  # items in later iterations waiting on this one

    @property
    def average_utilization(self) -> float:
        if not self.capacity_utilization:
            return 0.0
        return sum(cu.utilization_rate for cu in self.capacity_utilization) / len(
            self.capacity_utilization
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration.model_dump(mode="json"),
            "allocated_work": [item.to_dict() for item in self.allocated_work],
            "total_points": self.total_points,
            "total_capacity": self.total_capacity,
            "capacity_utilization": [cu.to_dict() for cu in self.capacity_utilization],
            "deliverable_value": self.deliverable_value.to_dict(),
            "validation": self.validation.to_dict(),
            "prerequisites": list(self.prerequisites),
            "enables": list(self.enables),
        }


# ========== Readiness ==========


@dataclass(frozen=True)
class ReadinessAssessment:
    """Score and findings for one readiness category."""

    category: str
    score: float
    is_ready: bool
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "score": self.score,
            "is_ready": self.is_ready,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class ARTReadinessResult:
    """Whole-plan readiness."""

    is_ready: bool
    readiness_score: float
    assessments: tuple[ReadinessAssessment, ...]
    critical_blockers: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def category_scores(self) -> dict[str, float]:
        return {assessment.category: assessment.score for assessment in self.assessments}

    def assessment_for(self, category: str) -> ReadinessAssessment | None:
        for assessment in self.assessments:
            if assessment.category == category:
                return assessment
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_ready": self.is_ready,
            "readiness_score": self.readiness_score,
            "category_scores": self.category_scores,
            "assessments": [assessment.to_dict() for assessment in self.assessments],
            "critical_blockers": list(self.critical_blockers),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class ImprovementAction:
    id: str
    category: str
    action: str
    priority: str  # high, medium, low
    estimated_impact: float
    effort_required: str  # low, medium, high
    risks: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImprovementPlan:
    """Prioritized actions to raise the readiness score."""

    current_readiness_score: float
    target_readiness_score: float
    prioritized_actions: tuple[ImprovementAction, ...]
    quick_wins: tuple[ImprovementAction, ...]
    strategic_improvements: tuple[ImprovementAction, ...]
    estimated_improvement: float

    @property
    def projected_score(self) -> float:
        return min(1.0, self.current_readiness_score + self.estimated_improvement)


# ========== ART Plan ==========


@dataclass(frozen=True)
class ARTPlanSummary:
    """Headline numbers for an ART plan."""

    total_iterations: int
    total_work_items: int
    total_story_points: int
    allocated_story_points: int
    unallocated_items: int
    average_capacity_utilization: float
    capacity_balance: float  # 1 - standard deviation of iteration utilization
    total_dependencies: int
    critical_path_length: int
    value_delivery_confidence: float
    iterations_with_value: int
    properly_sized_stories: float  # share of schedulable items within the size limit
    dependency_resolution: float  # share of scheduling edges satisfied by the plan
    planning_confidence: float
    risk_level: str  # low, medium, high

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_iterations": self.total_iterations,
            "total_work_items": self.total_work_items,
            "total_story_points": self.total_story_points,
            "allocated_story_points": self.allocated_story_points,
            "unallocated_items": self.unallocated_items,
            "average_capacity_utilization": self.average_capacity_utilization,
            "capacity_balance": self.capacity_balance,
            "total_dependencies": self.total_dependencies,
            "critical_path_length": self.critical_path_length,
            "value_delivery_confidence": self.value_delivery_confidence,
            "iterations_with_value": self.iterations_with_value,
            "properly_sized_stories": self.properly_sized_stories,
            "dependency_resolution": self.dependency_resolution,
            "planning_confidence": self.planning_confidence,
            "risk_level": self.risk_level,
        }


@dataclass(frozen=True)
class ARTPlan:
    """The complete planning result returned to callers."""

    iterations: tuple[IterationPlan, ...]
    dependencies: DependencyGraph
    work_items: tuple[WorkItem, ...]
    unallocated: tuple[UnallocatedWorkItem, ...]
    summary: ARTPlanSummary
    readiness: ARTReadinessResult
    decompositions: tuple[Any, ...] = ()  # DecompositionResult
    decomposition_errors: tuple[Any, ...] = ()  # DecompositionError
    scores: tuple[Any, ...] = ()  # ScoredStory
    scoring_errors: tuple[Any, ...] = ()  # ScoringError
    issues: tuple[AllocationIssue, ...] = ()
    warnings: tuple[str, ...] = ()

    def iteration_plan(self, iteration_id: str) -> IterationPlan | None:
        for plan in self.iterations:
            if plan.iteration.id == iteration_id:
                return plan
        return None

    def iteration_of(self, work_item_id: str) -> str | None:
        for plan in self.iterations:
            for item in plan.allocated_work:
                if item.work_item_id == work_item_id:
                    return plan.iteration.id
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": [plan.to_dict() for plan in self.iterations],
            "dependencies": self.dependencies.to_dict(),
            "work_items": [item.model_dump(mode="json") for item in self.work_items],
            "unallocated": [item.to_dict() for item in self.unallocated],
            "summary": self.summary.to_dict(),
            "readiness": self.readiness.to_dict(),
            "decompositions": [result.to_dict() for result in self.decompositions],
            "decomposition_errors": [error.to_dict() for error in self.decomposition_errors],
            "scores": [score.to_dict() for score in self.scores],
            "scoring_errors": [error.to_dict() for error in self.scoring_errors],
            "issues": [issue.to_dict() for issue in self.issues],
            "warnings": list(self.warnings),
        }
