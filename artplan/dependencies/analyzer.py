"""Dependency analysis: detection, merging and graph construction.

The analyzer is the first planning stage. Its graph is read by the
allocator and the readiness assessment.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace

from artplan.config import DependencyDetectionConfig, DetectionMethod
from artplan.dependencies.detector import DependencyDetector, relationship_id
from artplan.dependencies.graph import analyze_critical_path, analyze_impact, build_graph
from artplan.models.graph import (
    CriticalPathAnalysis,
    DependencyGraph,
    DependencyImpact,
    DependencyRelationship,
)
from artplan.models.work_items import WorkItem, WorkItemIndex

logger = logging.getLogger(__name__)

# Lower rank wins when two detections for the same ordered pair have equal confidence
DETECTION_PRECEDENCE: dict[DetectionMethod, int] = {
    DetectionMethod.MANUAL: 0,
    DetectionMethod.INHERITED: 1,
    DetectionMethod.KEYWORD: 2,
    DetectionMethod.PATTERN: 3,
    DetectionMethod.SEMANTIC: 4,
}


def merge_relationships(
    relationships: Iterable[DependencyRelationship],
) -> list[DependencyRelationship]:
    """Keep a single relationship per ordered (source, target) pair.

    The winner has the highest confidence; ties go to the detection method
    with the lower DETECTION_PRECEDENCE rank, then to the type and strength
    names. Self-relationships are dropped. The result is sorted by
    (source, target) and each edge id is rewritten to dep-<source>-<target>.
    """
    best: dict[tuple[str, str], DependencyRelationship] = {}

    def rank(relationship: DependencyRelationship) -> tuple:
        return (
            -relationship.confidence,
            DETECTION_PRECEDENCE[relationship.detection_method],
            relationship.type.value,
            relationship.strength.value,
        )

    for relationship in relationships:
        if relationship.source_id == relationship.target_id:
            continue
        key = (relationship.source_id, relationship.target_id)
        current = best.get(key)
        if current is None or rank(relationship) < rank(current):
            best[key] = relationship

    merged = []
    for (source_id, target_id), relationship in sorted(best.items()):
        expected_id = relationship_id(source_id, target_id)
        if relationship.id != expected_id:
            relationship = replace(relationship, id=expected_id)
        merged.append(relationship)
    return merged


class DependencyAnalyzer:
    """Builds the dependency graph for a set of work items."""

    def __init__(self, config: DependencyDetectionConfig | None = None):
        """Initialize the analyzer.

        Args:
            config: Detection configuration (defaults if not provided)
        """
        self.config = config or DependencyDetectionConfig()
        self.detector = DependencyDetector(self.config)

    def detect(self, items: list[WorkItem]) -> list[DependencyRelationship]:
        """Detect, threshold and merge relationships, including inherited ones.

        Declared (MANUAL) relationships are kept whatever the threshold.
        """
        index = WorkItemIndex(items)
        direct = merge_relationships(self._above_threshold(self.detector.detect_direct(items)))
        inherited = self.detector.detect_inherited(index, direct)
        return merge_relationships(direct + inherited)

    def analyze(self, items: list[WorkItem]) -> DependencyGraph:
        """Build an immutable DependencyGraph for the items.

        Never fails on content: no matches simply yields an empty edge set.
        Cycles are reported on the graph, not raised.
        """
        relationships = self.detect(items)
        estimates = {item.id: item.estimate for item in items}
        graph = build_graph([item.id for item in items], relationships, estimates)

        logger.info(
            f"Dependency analysis complete: {len(graph.nodes)} items, {len(graph.edges)} edges, "
            f"{len(graph.circular_dependencies)} cycles, critical path length "
            f"{len(graph.critical_path)}"
        )
        for issue in graph.validation.errors:
            logger.warning(f"Dependency graph error {issue.code}: {issue.message}")
        return graph

    def impact(self, graph: DependencyGraph, item_id: str) -> DependencyImpact:
        """Dependents and prerequisites affected by a change to item_id."""
        return analyze_impact(graph, item_id)

    def critical_path_analysis(
        self, graph: DependencyGraph, items: list[WorkItem]
    ) -> CriticalPathAnalysis:
        """Critical path with bottlenecks and slack per item."""
        return analyze_critical_path(graph, {item.id: item.estimate for item in items})

    def _above_threshold(
        self, relationships: list[DependencyRelationship]
    ) -> list[DependencyRelationship]:
        kept = [
            relationship
            for relationship in relationships
            if relationship.detection_method == DetectionMethod.MANUAL
            or relationship.confidence >= self.config.confidence_threshold
        ]
        dropped = len(relationships) - len(kept)
        if dropped:
            logger.debug(f"Discarded {dropped} relationships below confidence threshold")
        return kept


def analyze_dependencies(
    items: list[WorkItem], config: DependencyDetectionConfig | None = None
) -> DependencyGraph:
    """Convenience wrapper around DependencyAnalyzer.analyze()."""
    return DependencyAnalyzer(config).analyze(items)
