"""Map dependency relationships to issue tracker link records.

Only the record shape is produced here; creating the links is left to the
tracker client that consumes them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from artplan.config import DependencyType
from artplan.models.graph import DependencyGraph, DependencyRelationship

logger = logging.getLogger(__name__)

LINK_BLOCKS = "blocks"
LINK_BLOCKED_BY = "blocked_by"
LINK_RELATED = "related"

LINK_TYPES: dict[DependencyType, str] = {
    DependencyType.BLOCKS: LINK_BLOCKS,
    DependencyType.BLOCKED_BY: LINK_BLOCKED_BY,
    DependencyType.REQUIRES: LINK_BLOCKED_BY,  # source requires target, so target blocks source
    DependencyType.ENABLES: LINK_BLOCKS,
    DependencyType.RELATED: LINK_RELATED,
    DependencyType.CONFLICTS: LINK_RELATED,
}


@dataclass(frozen=True)
class TrackerLink:
    """One link to create between two tracker issues."""

    source_id: str
    target_id: str
    link_type: str
    comment: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "link_type": self.link_type,
            "comment": self.comment,
            "metadata": dict(self.metadata),
        }


def link_comment(relationship: DependencyRelationship) -> str:
    """Markdown comment explaining why the link exists."""
    lines = [
        f"**Dependency**: {relationship.rationale or relationship.type.value}",
        f"**Confidence**: {relationship.confidence:.0%}",
        f"**Detection**: {relationship.detection_method.value}",
        f"**Strength**: {relationship.strength.value}",
    ]
    if relationship.triggers:
        lines.append(f"**Triggers**: {', '.join(relationship.triggers)}")
    return "\n".join(lines)


def to_tracker_link(relationship: DependencyRelationship, detailed: bool = True) -> TrackerLink:
    return TrackerLink(
        source_id=relationship.source_id,
        target_id=relationship.target_id,
        link_type=LINK_TYPES[relationship.type],
        comment=link_comment(relationship) if detailed else relationship.rationale,
        metadata={
            "dependency_id": relationship.id,
            "strength": relationship.strength.value,
            "confidence": relationship.confidence,
            "detection_method": relationship.detection_method.value,
            "triggers": list(relationship.triggers),
        },
    )


def to_tracker_links(
    graph: DependencyGraph, min_confidence: float = 0.0, detailed: bool = True
) -> list[TrackerLink]:
    """Tracker links for every graph edge at or above min_confidence.

    Args:
        graph: Dependency graph to export
        min_confidence: Edges below this confidence are skipped
        detailed: Use a multi-line markdown comment instead of the bare rationale

    Returns:
        Links in graph edge order
    """
    links = [
        to_tracker_link(edge, detailed) for edge in graph.edges if edge.confidence >= min_confidence
    ]
    skipped = len(graph.edges) - len(links)
    if skipped:
        logger.debug(f"Skipped {skipped} edges below confidence {min_confidence:.2f}")
    return links
