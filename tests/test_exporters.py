"""Tests for plan and graph exporters.

Tests cover:
- Tracker link mapping, comments and confidence filtering
- Markdown rendering of a complete plan
"""

import pytest

from artplan import plan_art
from artplan.allocation import REASON_EXCEEDS_REMAINING
from artplan.config import (
    ARTPlanningConfig,
    DependencyStrength,
    DependencyType,
    DetectionMethod,
)
from artplan.exporters import LINK_TYPES, render_plan_summary, to_tracker_links
from artplan.models.graph import DependencyGraph, DependencyRelationship


def _edge(source, target, dep_type, confidence=1.0, triggers=()):
    return DependencyRelationship(
        id=f"dep-{source}-{target}",
        source_id=source,
        target_id=target,
        type=dep_type,
        strength=DependencyStrength.HARD,
        confidence=confidence,
        detection_method=DetectionMethod.KEYWORD,
        rationale=f"{source} {dep_type.value} {target}",
        triggers=triggers,
    )


@pytest.fixture
def graph() -> DependencyGraph:
    return DependencyGraph(
        nodes=("a", "b", "c"),
        edges=(
            _edge("a", "b", DependencyType.REQUIRES, triggers=("requires",)),
            _edge("b", "c", DependencyType.ENABLES, confidence=0.6),
            _edge("a", "c", DependencyType.CONFLICTS, confidence=0.4),
        ),
    )


# =============================================================================
# Tracker Links
# =============================================================================


class TestTrackerLinks:
    """Test to_tracker_links."""

    def test_every_type_has_a_link(self):
        """Test every dependency type maps to a link type."""
        assert set(LINK_TYPES) == set(DependencyType)

    def test_link_types(self, graph):
        """Test link types and direction."""
        links = to_tracker_links(graph)

        assert [link.link_type for link in links] == ["blocked_by", "blocks", "related"]
        assert links[0].source_id == "a"
        assert links[0].target_id == "b"

    def test_detailed_comment(self, graph):
        """Test the markdown link comment."""
        comment = to_tracker_links(graph)[0].comment

        assert comment.splitlines() == [
            "**Dependency**: a requires b",
            "**Confidence**: 100%",
            "**Detection**: keyword",
            "**Strength**: hard",
            "**Triggers**: requires",
        ]

    def test_plain_comment(self, graph):
        """Test the bare rationale comment."""
        links = to_tracker_links(graph, detailed=False)
        assert links[1].comment == "b enables c"

    def test_min_confidence(self, graph):
        """Test low-confidence edges are skipped."""
        links = to_tracker_links(graph, min_confidence=0.5)
        assert [link.target_id for link in links] == ["b", "c"]

    def test_to_dict(self, graph):
        """Test TrackerLink serialization."""
        data = to_tracker_links(graph)[0].to_dict()

        assert data["link_type"] == "blocked_by"
        assert data["metadata"] == {
            "dependency_id": "dep-a-b",
            "strength": "hard",
            "confidence": 1.0,
            "detection_method": "keyword",
            "triggers": ["requires"],
        }

    def test_empty_graph(self):
        """Test an empty graph yields no links."""
        assert to_tracker_links(DependencyGraph(nodes=(), edges=())) == []


# =============================================================================
# Markdown
# =============================================================================


class TestPlanMarkdown:
    """Test render_plan_summary."""

    @pytest.fixture
    def markdown(self, ten_five_point_stories, make_iterations, teams) -> str:
        config = ARTPlanningConfig(planning_horizon=2)
        plan = plan_art(ten_five_point_stories, make_iterations(3), teams, config)
        return render_plan_summary(plan)

    def test_summary_section(self, markdown):
        """Test the summary section figures."""
        assert markdown.startswith("# ART Plan\n")
        assert "- Iterations: 2" in markdown
        assert "- Work items: 10 (2 unallocated)" in markdown
        assert "- Story points: 40 / 50 allocated" in markdown
        assert "- Dependencies: 0 (critical path 0)" in markdown

    def test_readiness_section(self, markdown):
        """Test the readiness section."""
        assert "**Score:** 0.96 - READY" in markdown
        assert "| Category | Score | Ready |" in markdown
        assert "### Critical Blockers" not in markdown

    def test_iteration_sections(self, markdown):
        """Test one section per iteration with its work."""
        assert "### Iteration 1" in markdown
        assert "### Iteration 2" in markdown
        assert "| s01 | team-a | 5 |" in markdown

    def test_unallocated_and_warnings(self, markdown):
        """Test unallocated work and warnings are listed."""
        assert "## Unallocated Work" in markdown
        assert f"| s09 | {REASON_EXCEEDS_REMAINING} | Team capacity |" in markdown
        assert "- Planning horizon is 2 iterations; ignored it-3" in markdown
