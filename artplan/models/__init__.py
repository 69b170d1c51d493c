"""Data models for planning inputs, dependency graphs and plans."""

from .graph import (
    CircularDependency,
    CriticalPathAnalysis,
    DependencyGraph,
    DependencyImpact,
    DependencyRelationship,
    GraphStatistics,
    GraphValidation,
    ValidationIssue,
)
from .plan import (
    AllocatedWorkItem,
    AllocationIssue,
    AllocationResult,
    AllocationStatistics,
    ARTPlan,
    ARTPlanSummary,
    ARTReadinessResult,
    CapacityUtilization,
    DeliverableValue,
    ImprovementAction,
    ImprovementPlan,
    IterationIssue,
    IterationPlan,
    IterationValidation,
    ReadinessAssessment,
    UnallocatedWorkItem,
    ValueDeliveryRisk,
    ValueStream,
)
from .work_items import (
    ARTTeam,
    EnablerAttributes,
    EpicAttributes,
    FeatureAttributes,
    Iteration,
    IterationCapacity,
    StoryAttributes,
    WorkItem,
    WorkItemIndex,
    parse_iterations,
    parse_teams,
    parse_work_items,
)

__all__ = [
    # Inputs
    "WorkItem",
    "EpicAttributes",
    "FeatureAttributes",
    "StoryAttributes",
    "EnablerAttributes",
    "WorkItemIndex",
    "ARTTeam",
    "Iteration",
    "IterationCapacity",
    "parse_work_items",
    "parse_teams",
    "parse_iterations",
    # Graph
    "DependencyRelationship",
    "DependencyGraph",
    "CircularDependency",
    "GraphStatistics",
    "GraphValidation",
    "ValidationIssue",
    "DependencyImpact",
    "CriticalPathAnalysis",
    # Plan
    "AllocatedWorkItem",
    "UnallocatedWorkItem",
    "AllocationIssue",
    "AllocationStatistics",
    "AllocationResult",
    "CapacityUtilization",
    "ValueDeliveryRisk",
    "ValueStream",
    "DeliverableValue",
    "IterationIssue",
    "IterationValidation",
    "IterationPlan",
    "ReadinessAssessment",
    "ARTReadinessResult",
    "ImprovementAction",
    "ImprovementPlan",
    "ARTPlanSummary",
    "ARTPlan",
]
