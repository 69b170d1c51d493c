"""Tests for dependency detection, merging, cycles and the critical path.

Tests cover:
- Explicit, reference, business-flow, technical and inherited detection
- Single relationship per ordered pair with detection precedence
- Cycle reporting, severity and breaking
- Critical path, impact analysis and graph validation
"""

import pytest

from artplan.config import (
    CycleSeverity,
    DependencyDetectionConfig,
    DependencyStrength,
    DependencyType,
    DetectionMethod,
    WorkItemType,
)
from artplan.dependencies import (
    DependencyAnalyzer,
    DependencyDetector,
    analyze_dependencies,
    build_graph,
    extract_technical_terms,
    find_cycle,
    find_item_references,
    merge_relationships,
    topological_order,
)
from artplan.errors import CircularDependencyError
from artplan.models.graph import DependencyRelationship
from artplan.models.work_items import StoryAttributes, WorkItem, WorkItemIndex


def _edge(
    source: str,
    target: str,
    dep_type: DependencyType = DependencyType.REQUIRES,
    strength: DependencyStrength = DependencyStrength.HARD,
    confidence: float = 1.0,
    method: DetectionMethod = DetectionMethod.MANUAL,
) -> DependencyRelationship:
    return DependencyRelationship(
        id=f"dep-{source}-{target}",
        source_id=source,
        target_id=target,
        type=dep_type,
        strength=strength,
        confidence=confidence,
        detection_method=method,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def chain(make_item) -> list[WorkItem]:
    """c3 requires c2 requires c1, and an unrelated c4."""
    return [
        make_item("c1", estimate=3),
        make_item("c2", estimate=2, dependencies=["c1"]),
        make_item("c3", estimate=1, dependencies=["c2"]),
        make_item("c4", estimate=8),
    ]


@pytest.fixture
def hard_triangle(make_item) -> list[WorkItem]:
    """n1 -> n2 -> n3 -> n1, every edge declared."""
    return [
        make_item("n1", dependencies=["n2"]),
        make_item("n2", dependencies=["n3"]),
        make_item("n3", dependencies=["n1"]),
    ]


# =============================================================================
# Relationship Model
# =============================================================================


class TestDependencyRelationship:
    """Test edge direction helpers."""

    def test_requires_points_at_prerequisite(self):
        """Test REQUIRES reads the target as prerequisite."""
        assert _edge("a", "b").prerequisite_of() == ("b", "a")

    def test_blocks_points_at_dependent(self):
        """Test BLOCKS reads the source as prerequisite."""
        assert _edge("a", "b", DependencyType.BLOCKS).prerequisite_of() == ("a", "b")

    def test_related_has_no_order(self):
        """Test RELATED carries no ordering."""
        edge = _edge("a", "b", DependencyType.RELATED, DependencyStrength.SOFT)
        assert edge.prerequisite_of() is None
        assert not edge.is_ordering
        assert not edge.is_scheduling_constraint

    def test_soft_requires_does_not_constrain_scheduling(self):
        """Test SOFT edges never constrain scheduling."""
        edge = _edge("a", "b", strength=DependencyStrength.SOFT)
        assert edge.is_ordering
        assert not edge.is_scheduling_constraint

    def test_enables_is_not_a_scheduling_constraint(self):
        """Test ENABLES edges are ordering hints only."""
        assert not _edge("a", "b", DependencyType.ENABLES).is_scheduling_constraint


# =============================================================================
# Detection
# =============================================================================


class TestDetection:
    """Test the individual detection heuristics."""

    def test_explicit_dependencies(self, chain):
        """Test declared dependencies become HARD manual edges."""
        graph = analyze_dependencies(chain)

        assert [edge.id for edge in graph.edges] == ["dep-c2-c1", "dep-c3-c2"]
        edge = graph.edges[0]
        assert edge.type == DependencyType.REQUIRES
        assert edge.strength == DependencyStrength.HARD
        assert edge.detection_method == DetectionMethod.MANUAL
        assert edge.confidence == 1.0

    def test_neutral_items_have_no_edges(self, ten_five_point_stories):
        """Test plain items produce no edges."""
        graph = analyze_dependencies(ten_five_point_stories)

        assert graph.edges == ()
        assert graph.critical_path == ()

    def test_id_mention_is_soft_reference(self, make_item):
        """Test an id mention becomes a SOFT related edge."""
        items = [
            make_item("alpha-1", criteria=["Works alongside beta-2"]),
            make_item("beta-2"),
        ]
        graph = analyze_dependencies(items)

        assert len(graph.edges) == 1
        edge = graph.edges[0]
        assert (edge.source_id, edge.target_id) == ("alpha-1", "beta-2")
        assert edge.type == DependencyType.RELATED
        assert edge.strength == DependencyStrength.SOFT
        assert edge.confidence == 0.7

    def test_business_flow_requires(self):
        """Test flow phrases plus a reference give a HARD requires edge."""
        items = [
            WorkItem(
                id="report-1",
                title="Monthly report",
                description="The report needs ledger-1 and requires the ledger export",
            ),
            WorkItem(id="ledger-1", title="Ledger export"),
        ]
        graph = analyze_dependencies(items)

        edge = next(e for e in graph.edges if e.source_id == "report-1")
        assert edge.type == DependencyType.REQUIRES
        assert edge.strength == DependencyStrength.HARD
        assert edge.detection_method == DetectionMethod.SEMANTIC
        assert edge.confidence == 0.9
        assert graph.prerequisites("report-1") == ["ledger-1"]

    def test_business_flow_disabled(self):
        """Test semantic analysis can be switched off."""
        items = [
            WorkItem(
                id="report-1",
                title="Monthly report",
                description="The report requires the ledger export",
            ),
            WorkItem(id="ledger-1", title="Ledger export"),
        ]
        config = DependencyDetectionConfig(enable_semantic_analysis=False)

        assert analyze_dependencies(items, config).edges == ()

    def test_shared_technical_keywords(self):
        """The more foundational item becomes the prerequisite."""
        items = [
            WorkItem(id="t1", title="Rollout", description="database schema migration", estimate=5),
            WorkItem(id="t2", title="Cleanup", description="database schema migration", estimate=1),
        ]
        graph = analyze_dependencies(items)

        assert len(graph.edges) == 1
        edge = graph.edges[0]
        assert (edge.source_id, edge.target_id) == ("t2", "t1")
        assert edge.type == DependencyType.REQUIRES
        # 3 shared keywords (0.6) plus the critical-term bonus
        assert edge.confidence == pytest.approx(0.8)
        assert edge.strength == DependencyStrength.SOFT

    def test_parts_of_one_split_item_ignore_shared_text(self):
        """Test heuristics never link parts split from the same item."""
        split = StoryAttributes(decomposed_from="rollout")
        items = [
            WorkItem(
                id="rollout-1",
                title="Rollout part 1",
                description="database schema migration",
                estimate=5,
                attributes=split,
            ),
            WorkItem(
                id="rollout-2",
                title="Rollout part 2",
                description="database schema migration",
                estimate=1,
                attributes=split,
            ),
        ]

        assert analyze_dependencies(items).edges == ()

    def test_declared_link_between_parts_is_kept(self):
        """Test an explicit dependency between two parts survives the sibling rule."""
        split = StoryAttributes(decomposed_from="rollout")
        items = [
            WorkItem(id="rollout-1", title="Rollout part 1", attributes=split),
            WorkItem(
                id="rollout-2", title="Rollout part 2", dependencies=["rollout-1"], attributes=split
            ),
        ]

        (edge,) = analyze_dependencies(items).edges
        assert (edge.source_id, edge.target_id) == ("rollout-2", "rollout-1")
        assert edge.detection_method == DetectionMethod.MANUAL

    def test_technical_confidence(self):
        """Test confidence grows with shared keywords."""
        assert DependencyDetector.technical_confidence(["schema"]) == 0.2
        assert DependencyDetector.technical_confidence(["api", "schema"]) == 0.6
        assert DependencyDetector.technical_confidence(["a", "b", "c", "d", "api"]) == 1.0

    def test_extract_technical_terms(self):
        """Test technical name pattern extraction."""
        terms = extract_technical_terms("Call the PaymentGateway via BillingAPI at /v1/invoices")
        assert terms == {"paymentgateway", "billingapi", "/v1/invoices"}

    def test_find_item_references_by_title(self):
        """Test title word references."""
        target = WorkItem(id="x-9", title="Ledger export")
        assert find_item_references("uses the ledger export", target) == [
            "title match: export ledger"
        ]
        assert find_item_references("uses the ledger", target) == []

    def test_inherited_from_parent(self, make_item):
        """Test children inherit their parent's prerequisites."""
        items = [
            make_item("feat-1", item_type=WorkItemType.FEATURE, dependencies=["base-1"]),
            make_item("base-1"),
            make_item("child-1", parent_id="feat-1"),
        ]
        graph = analyze_dependencies(items)

        inherited = [e for e in graph.edges if e.detection_method == DetectionMethod.INHERITED]
        assert len(inherited) == 1
        assert (inherited[0].source_id, inherited[0].target_id) == ("child-1", "base-1")
        assert inherited[0].confidence == pytest.approx(0.9)
        assert inherited[0].strength == DependencyStrength.HARD

    def test_inheritance_disabled(self, make_item):
        """Test inheritance can be switched off."""
        items = [
            make_item("feat-1", item_type=WorkItemType.FEATURE, dependencies=["base-1"]),
            make_item("base-1"),
            make_item("child-1", parent_id="feat-1"),
        ]
        config = DependencyDetectionConfig(inherit_parent_dependencies=False)
        detector = DependencyDetector(config)

        assert detector.detect_inherited(WorkItemIndex(items), detector.detect_direct(items)) == []


class TestMerge:
    """Test the single-relationship-per-pair rule."""

    def test_highest_confidence_wins(self):
        """Test the most confident relationship per pair is kept."""
        merged = merge_relationships(
            [
                _edge("a", "b", confidence=0.6, method=DetectionMethod.KEYWORD),
                _edge(
                    "a", "b", DependencyType.RELATED, confidence=0.9, method=DetectionMethod.PATTERN
                ),
            ]
        )
        assert len(merged) == 1
        assert merged[0].detection_method == DetectionMethod.PATTERN

    def test_precedence_breaks_confidence_ties(self):
        """Test detection precedence breaks confidence ties."""
        merged = merge_relationships(
            [
                _edge(
                    "a",
                    "b",
                    DependencyType.RELATED,
                    confidence=0.7,
                    method=DetectionMethod.SEMANTIC,
                ),
                _edge("a", "b", confidence=0.7, method=DetectionMethod.KEYWORD),
                _edge("a", "b", confidence=0.7, method=DetectionMethod.MANUAL),
            ]
        )
        assert merged[0].detection_method == DetectionMethod.MANUAL

    def test_opposite_directions_are_kept(self):
        """Test both directions of a pair survive merging."""
        merged = merge_relationships([_edge("a", "b"), _edge("b", "a")])
        assert [edge.id for edge in merged] == ["dep-a-b", "dep-b-a"]

    def test_self_edges_dropped(self):
        """Test self-referencing edges are dropped."""
        assert merge_relationships([_edge("a", "a")]) == []


# =============================================================================
# Cycles
# =============================================================================


class TestCycles:
    """Test cycle detection, severity and breaking."""

    def test_hard_triangle_reported_once(self, hard_triangle):
        """Test a three-node cycle is reported once."""
        graph = analyze_dependencies(hard_triangle)

        assert len(graph.circular_dependencies) == 1
        cycle = graph.circular_dependencies[0]
        assert cycle.cycle == ("n1", "n2", "n3")
        assert len(cycle.relationships) == 3
        assert cycle.severity == CycleSeverity.CRITICAL
        assert graph.critical_cycles == [cycle]
        assert cycle.resolution_suggestions

    def test_equal_confidence_drops_larger_id(self, hard_triangle):
        """Test equal confidence breaks the edge with the larger id."""
        graph = analyze_dependencies(hard_triangle)

        assert [edge.id for edge in graph.broken_edges] == ["dep-n3-n1"]
        assert len(graph.edges) == 3
        assert graph.critical_path == ("n3", "n2", "n1")

    def test_critical_cycle_is_a_validation_error(self, hard_triangle):
        """Test an all-HARD cycle is a graph error."""
        graph = analyze_dependencies(hard_triangle)

        assert not graph.validation.is_valid
        assert graph.validation.errors[0].code == "CIRCULAR_DEPENDENCY"

    def test_soft_edge_makes_warning_cycle(self):
        """Test a SOFT edge downgrades a cycle to a warning."""
        edges = [
            _edge("n1", "n2"),
            _edge("n2", "n1", strength=DependencyStrength.SOFT, confidence=0.65),
        ]
        graph = build_graph(["n1", "n2"], edges, {"n1": 3, "n2": 2})

        assert graph.circular_dependencies[0].severity == CycleSeverity.WARNING
        assert [edge.id for edge in graph.broken_edges] == ["dep-n2-n1"]
        assert graph.critical_path == ("n2", "n1")
        assert graph.validation.is_valid
        assert graph.validation.warnings[0].code == "CIRCULAR_DEPENDENCY"

    def test_find_cycle_rotates_to_smallest_id(self):
        """Test cycles start at their smallest id."""
        assert find_cycle({"b": {"c"}, "c": {"a"}, "a": {"b"}}) == ["a", "b", "c"]
        assert find_cycle({"a": {"b"}, "b": set()}) is None

    def test_topological_order(self):
        """Test prerequisites come first in topological order."""
        assert topological_order({"c": {"b"}, "b": {"a"}, "d": set()}) == ["a", "b", "c", "d"]

    def test_topological_order_raises_on_cycle(self):
        """Test topological order fails on a HARD cycle."""
        with pytest.raises(CircularDependencyError) as exc_info:
            topological_order({"a": {"b"}, "b": {"a"}})

        assert exc_info.value.cycles == [["a", "b"]]
        assert exc_info.value.affected_items == ["a", "b"]


# =============================================================================
# Critical Path & Analysis
# =============================================================================


class TestGraphAnalysis:
    """Test the critical path, statistics, impact and validation."""

    def test_critical_path_follows_chain(self, chain):
        """Test the critical path follows the longest HARD chain."""
        graph = analyze_dependencies(chain)

        # c4 is heavier than the chain but waits on nothing
        assert graph.critical_path == ("c1", "c2", "c3")
        assert graph.statistics.estimated_duration == 6
        assert graph.statistics.longest_path == 3

    def test_statistics(self, chain):
        """Test graph statistics."""
        stats = analyze_dependencies(chain).statistics

        assert stats.node_count == 4
        assert stats.edge_count == 2
        assert stats.hard_dependencies == 2
        assert stats.average_dependencies == 0.5
        assert stats.independent_items == 2

    def test_isolated_items_reported(self, chain):
        """Test isolated items are reported as info."""
        info = analyze_dependencies(chain).validation.info
        assert info[0].code == "ISOLATED_ITEM"
        assert info[0].affected_items == ("c4",)

    def test_missing_target_is_validation_error(self, make_item):
        """Test a dependency on an unknown id is a graph error."""
        graph = analyze_dependencies([make_item("s1", dependencies=["elsewhere-7"])])

        codes = [issue.code for issue in graph.validation.errors]
        assert codes == ["MISSING_DEPENDENCY_TARGET"]

    def test_impact(self, chain):
        """Test impact analysis for a chain head."""
        analyzer = DependencyAnalyzer()
        impact = analyzer.impact(analyzer.analyze(chain), "c1")

        assert impact.direct_dependents == ("c2",)
        assert impact.transitive_dependents == ("c2", "c3")
        assert impact.on_critical_path
        assert impact.impact_score == pytest.approx(round(2 / 3 + 0.3, 4))

    def test_critical_path_analysis(self, chain):
        """Test critical path totals and slack."""
        analyzer = DependencyAnalyzer()
        analysis = analyzer.critical_path_analysis(analyzer.analyze(chain), chain)

        assert analysis.path == ("c1", "c2", "c3")
        assert analysis.total_estimate == 6
        assert analysis.slack["c1"] == 0
        assert analysis.slack["c3"] == 0
        assert analysis.bottlenecks == ()

    def test_analysis_is_deterministic(self, chain):
        """Test repeated analysis gives identical graphs."""
        assert analyze_dependencies(chain).to_dict() == analyze_dependencies(chain).to_dict()
