"""Dependency graph data models.

A DependencyGraph is built once per planning run from a complete edge
list and never patched afterwards.
"""

from dataclasses import dataclass, field

from artplan.config import CycleSeverity, DependencyStrength, DependencyType, DetectionMethod

# Types whose source waits for the target
_DEPENDENT_IS_SOURCE = (DependencyType.REQUIRES, DependencyType.BLOCKED_BY)
# Types whose source must finish before the target
_PREREQUISITE_IS_SOURCE = (DependencyType.BLOCKS, DependencyType.ENABLES)


@dataclass(frozen=True)
class DependencyRelationship:
    """A directed, immutable relationship between two work items.

    Attributes:
        id: Deterministic edge id (dep-<source>-<target>)
        source_id: Work item the relationship is read from
        target_id: Work item the relationship points to
        type: Relationship type, read from source to target
        strength: HARD edges of an ordering type constrain scheduling
        confidence: Detection confidence in [0, 1]
        detection_method: How the edge was found
        rationale: Short explanation of why the edge exists
        triggers: Keywords or phrases that produced the edge
    """

    id: str
    source_id: str
    target_id: str
    type: DependencyType
    strength: DependencyStrength
    confidence: float
    detection_method: DetectionMethod
    rationale: str = ""
    triggers: tuple[str, ...] = ()

    @property
    def is_scheduling_constraint(self) -> bool:
        """HARD ordering edges are the only ones the allocator must honor."""
        return self.strength == DependencyStrength.HARD and self.type in (
            DependencyType.BLOCKS,
            DependencyType.REQUIRES,
            DependencyType.BLOCKED_BY,
        )

    @property
    def is_ordering(self) -> bool:
        """Whether the type implies an order, regardless of strength."""
        return self.type in _DEPENDENT_IS_SOURCE or self.type in _PREREQUISITE_IS_SOURCE

    def prerequisite_of(self) -> tuple[str, str] | None:
        """(prerequisite, dependent) for ordering types, else None."""
        if self.type in _DEPENDENT_IS_SOURCE:
            return self.target_id, self.source_id
        if self.type in _PREREQUISITE_IS_SOURCE:
            return self.source_id, self.target_id
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "strength": self.strength.value,
            "confidence": self.confidence,
            "detection_method": self.detection_method.value,
            "rationale": self.rationale,
            "triggers": list(self.triggers),
        }


@dataclass(frozen=True)
class CircularDependency:
    """A cycle of work items and the edges that form it."""

    cycle: tuple[str, ...]
    relationships: tuple[DependencyRelationship, ...]
    severity: CycleSeverity
    resolution_suggestions: tuple[str, ...] = ()

    @property
    def is_critical(self) -> bool:
        return self.severity == CycleSeverity.CRITICAL

    def to_dict(self) -> dict:
        return {
            "cycle": list(self.cycle),
            "relationships": [rel.id for rel in self.relationships],
            "severity": self.severity.value,
            "resolution_suggestions": list(self.resolution_suggestions),
        }


@dataclass(frozen=True)
class ValidationIssue:
    """A graph validation finding."""

    code: str
    message: str
    affected_items: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "affected_items": list(self.affected_items),
        }


@dataclass(frozen=True)
class GraphValidation:
    """Graph validation results split by level."""

    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    info: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "info": [issue.to_dict() for issue in self.info],
        }


@dataclass(frozen=True)
class GraphStatistics:
    """Summary numbers for a dependency graph."""

    node_count: int = 0
    edge_count: int = 0
    hard_dependencies: int = 0
    soft_dependencies: int = 0
    average_dependencies: float = 0.0
    independent_items: int = 0
    high_dependency_items: tuple[str, ...] = ()
    longest_path: int = 0
    estimated_duration: int = 0  # sum of estimates along the critical path

    def to_dict(self) -> dict:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "hard_dependencies": self.hard_dependencies,
            "soft_dependencies": self.soft_dependencies,
            "average_dependencies": self.average_dependencies,
            "independent_items": self.independent_items,
            "high_dependency_items": list(self.high_dependency_items),
            "longest_path": self.longest_path,
            "estimated_duration": self.estimated_duration,
        }


@dataclass(frozen=True)
class DependencyGraph:
    """Nodes, edges and derived analysis for one planning run.

    broken_edges are edges excluded from critical path analysis because
    they were chosen to break a cycle; they remain in edges.
    """

    nodes: tuple[str, ...]
    edges: tuple[DependencyRelationship, ...]
    critical_path: tuple[str, ...] = ()
    circular_dependencies: tuple[CircularDependency, ...] = ()
    broken_edges: tuple[DependencyRelationship, ...] = ()
    statistics: GraphStatistics = field(default_factory=GraphStatistics)
    validation: GraphValidation = field(default_factory=GraphValidation)

    @property
    def has_cycles(self) -> bool:
        return bool(self.circular_dependencies)

    @property
    def critical_cycles(self) -> list[CircularDependency]:
        return [cycle for cycle in self.circular_dependencies if cycle.is_critical]

    @property
    def active_edges(self) -> list[DependencyRelationship]:
        """Edges minus the ones dropped to break cycles."""
        broken = {edge.id for edge in self.broken_edges}
        return [edge for edge in self.edges if edge.id not in broken]

    def scheduling_edges(self, include_broken: bool = False) -> list[DependencyRelationship]:
        """HARD ordering edges between nodes of this graph."""
        edges = self.edges if include_broken else self.active_edges
        nodes = set(self.nodes)
        return [
            edge
            for edge in edges
            if edge.is_scheduling_constraint and edge.source_id in nodes and edge.target_id in nodes
        ]

    def prerequisites(self, item_id: str, include_broken: bool = False) -> list[str]:
        """Ids that must be scheduled before item_id, sorted."""
        result = set()
        for edge in self.scheduling_edges(include_broken):
            pair = edge.prerequisite_of()
            if pair and pair[1] == item_id:
                result.add(pair[0])
        return sorted(result)

    def dependents(self, item_id: str, include_broken: bool = False) -> list[str]:
        """Ids that wait on item_id, sorted."""
        result = set()
        for edge in self.scheduling_edges(include_broken):
            pair = edge.prerequisite_of()
            if pair and pair[0] == item_id:
                result.add(pair[1])
        return sorted(result)

    def edges_for(self, item_id: str) -> list[DependencyRelationship]:
        return [edge for edge in self.edges if item_id in (edge.source_id, edge.target_id)]

    def to_dict(self) -> dict:
        return {
            "nodes": list(self.nodes),
            "edges": [edge.to_dict() for edge in self.edges],
            "critical_path": list(self.critical_path),
            "circular_dependencies": [cycle.to_dict() for cycle in self.circular_dependencies],
            "broken_edges": [edge.id for edge in self.broken_edges],
            "statistics": self.statistics.to_dict(),
            "validation": self.validation.to_dict(),
        }


@dataclass(frozen=True)
class DependencyImpact:
    """What a change to one work item affects."""

    item_id: str
    direct_dependents: tuple[str, ...]
    transitive_dependents: tuple[str, ...]
    direct_prerequisites: tuple[str, ...]
    transitive_prerequisites: tuple[str, ...]
    on_critical_path: bool
    impact_score: float  # 0-1, share of the graph affected plus critical path weight


@dataclass(frozen=True)
class CriticalPathAnalysis:
    """Critical path details for planning discussions."""

    path: tuple[str, ...]
    total_estimate: int
    bottlenecks: tuple[str, ...]
    slack: dict[str, int] = field(default_factory=dict)  # points an item can slip
