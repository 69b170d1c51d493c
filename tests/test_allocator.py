"""Tests for the iteration allocator.

Tests cover:
- Capacity-bounded placement and unallocated reasons
- Dependency ordering, same-iteration option and the planning horizon
- WSJF and critical path priority, team choice and confidence
- Allocation issues, statistics and determinism
"""

import pytest

from artplan.allocation import (
    REASON_BEYOND_HORIZON,
    REASON_BLOCKED,
    REASON_EXCEEDS_CAPACITY,
    REASON_EXCEEDS_REMAINING,
    CapacityManager,
    IterationAllocator,
    scheduling_prerequisites,
)
from artplan.config import ARTPlanningConfig, WorkItemType
from artplan.dependencies import analyze_dependencies
from artplan.errors import CircularDependencyError, PlanningError
from artplan.models.work_items import ARTTeam, WorkItemIndex


def allocate(items, iterations, teams, config=None, scores=None):
    config = config or ARTPlanningConfig()
    graph = analyze_dependencies(items, config.dependencies)
    allocator = IterationAllocator(config, CapacityManager(config))
    return allocator.allocate(iterations, teams, graph, items, scores)


def iteration_map(result) -> dict[str, str]:
    return {entry.work_item_id: entry.iteration_id for entry in result.allocated}


# =============================================================================
# Capacity
# =============================================================================


class TestCapacityBounds:
    """Test placement against usable capacity."""

    def test_ten_stories_two_iterations(self, ten_five_point_stories, make_iterations, teams):
        """Usable capacity of 20 holds four 5-point stories per iteration."""
        result = allocate(ten_five_point_stories, make_iterations(2), teams)

        placement = iteration_map(result)
        assert [i for i, it in placement.items() if it == "it-1"] == ["s01", "s02", "s03", "s04"]
        assert [i for i, it in placement.items() if it == "it-2"] == ["s05", "s06", "s07", "s08"]
        assert [entry.work_item_id for entry in result.unallocated] == ["s09", "s10"]
        assert {entry.reason for entry in result.unallocated} == {REASON_EXCEEDS_REMAINING}
        assert result.statistics.allocation_rate == pytest.approx(0.8)
        assert result.statistics.allocated_points == 40

    def test_capacity_never_exceeded(self, ten_five_point_stories, make_iterations, teams):
        """Test no team slot is filled past its usable capacity."""
        result = allocate(ten_five_point_stories, make_iterations(3, capacity=18), teams)

        for entries in result.utilization.values():
            for entry in entries:
                assert entry.allocated_capacity <= entry.usable_capacity
                assert not entry.is_over_allocated

    def test_item_larger_than_any_slot(self, make_item, make_iterations, teams):
        """Test an item bigger than every slot is unallocated and blocks its dependents."""
        items = [make_item("huge", estimate=13), make_item("next", dependencies=["huge"])]

        result = allocate(items, make_iterations(2, capacity=10), teams)

        reasons = {entry.work_item_id: entry for entry in result.unallocated}
        assert reasons["huge"].reason == REASON_EXCEEDS_CAPACITY
        assert reasons["huge"].blockers == ("Team capacity",)
        assert reasons["next"].reason == REASON_BLOCKED
        assert reasons["next"].blockers == ("huge",)
        assert result.allocated == ()

    def test_unallocated_entries_offer_solutions(self, make_item, make_iterations, teams):
        """Test unallocated entries carry remedies for their reason."""
        result = allocate([make_item("huge", estimate=13)], make_iterations(1, capacity=10), teams)
        assert result.unallocated[0].solutions[0] == "Split the item into smaller stories"

    def test_velocity_capacity_when_no_entry(self, make_item, make_iterations):
        """Test team velocity is used when an iteration has no capacity entry."""
        teams = [ARTTeam(id="team-v", average_velocity=10)]
        items = [make_item("s1", estimate=5), make_item("s2", estimate=5)]

        result = allocate(items, make_iterations(2, team_ids=()), teams)

        assert iteration_map(result) == {"s1": "it-1", "s2": "it-2"}


# =============================================================================
# Dependencies
# =============================================================================


class TestDependencyOrdering:
    """Test that prerequisites finish before their dependents start."""

    def test_chain(self, chain_backlog, make_iterations, teams):
        """Test a prerequisite lands in an earlier iteration than its dependent."""
        result = allocate(chain_backlog, make_iterations(2, capacity=10), teams)

        assert iteration_map(result) == {"story-b": "it-1", "story-a": "it-2"}
        by_id = {entry.work_item_id: entry for entry in result.allocated}
        assert by_id["story-a"].blocked_by == ("story-b",)
        assert by_id["story-b"].enables == ("story-a",)

    def test_same_iteration_allowed(self, chain_backlog, make_iterations, teams):
        """Test dependents may share an iteration when configured."""
        config = ARTPlanningConfig(allow_same_iteration_dependencies=True)

        result = allocate(chain_backlog, make_iterations(2), teams, config)

        assert iteration_map(result) == {"story-b": "it-1", "story-a": "it-1"}

    def test_prerequisite_in_last_iteration(self, chain_backlog, make_iterations, teams):
        """Test a dependent has no room left after a prerequisite in the final iteration."""
        result = allocate(chain_backlog, make_iterations(1), teams)

        assert iteration_map(result) == {"story-b": "it-1"}
        assert result.unallocated[0].work_item_id == "story-a"
        assert result.unallocated[0].reason == REASON_BEYOND_HORIZON

    def test_external_prerequisite_blocks(self, make_item, make_iterations, teams):
        """Test a prerequisite outside the backlog keeps its dependent unallocated."""
        result = allocate([make_item("s1", dependencies=["elsewhere"])], make_iterations(1), teams)

        assert result.unallocated[0].reason == REASON_BLOCKED
        assert result.unallocated[0].blockers == ("elsewhere",)

    def test_ordering_holds_for_every_item(self, make_item, make_iterations, teams):
        """Test every allocated item comes after all of its prerequisites."""
        items = [
            make_item("d", dependencies=["b", "c"]),
            make_item("c", dependencies=["a"]),
            make_item("b", dependencies=["a"]),
            make_item("a"),
        ]
        result = allocate(items, make_iterations(4, capacity=10), teams)
        position = {f"it-{n}": n for n in range(1, 5)}
        placement = iteration_map(result)

        assert len(placement) == 4
        for entry in result.allocated:
            for prerequisite in entry.blocked_by:
                assert position[placement[prerequisite]] < position[entry.iteration_id]

    def test_feature_prerequisite_stands_for_its_stories(self, make_item, make_iterations, teams):
        """Test depending on a feature waits for all of its stories."""
        items = [
            make_item("f1", item_type=WorkItemType.FEATURE),
            make_item("c1", parent_id="f1"),
            make_item("d1", dependencies=["f1"]),
        ]
        graph = analyze_dependencies(items)
        prerequisites, external = scheduling_prerequisites(graph, WorkItemIndex(items))

        assert prerequisites == {"c1": set(), "d1": {"c1"}}
        assert external == {}
        result = allocate(items, make_iterations(2), teams)
        assert iteration_map(result) == {"c1": "it-1", "d1": "it-2"}

    def test_empty_feature_does_not_block(self, make_item, make_iterations, teams):
        """Test a feature without stories never blocks its dependents."""
        items = [
            make_item("f2", item_type=WorkItemType.FEATURE),
            make_item("d2", dependencies=["f2"]),
        ]
        result = allocate(items, make_iterations(1), teams)

        assert iteration_map(result) == {"d2": "it-1"}

    def test_hard_cycle_raises(self, make_item, make_iterations, teams):
        """Test a HARD cycle aborts allocation."""
        items = [
            make_item("n1", dependencies=["n2"]),
            make_item("n2", dependencies=["n1"]),
        ]
        with pytest.raises(CircularDependencyError):
            allocate(items, make_iterations(2), teams)


# =============================================================================
# Priority and Team Choice
# =============================================================================


class TestPriority:
    """Test the order in which ready items are placed."""

    def test_highest_wsjf_first(self, ten_five_point_stories, make_iterations, teams):
        """Test higher WSJF items claim capacity first."""
        result = allocate(
            ten_five_point_stories, make_iterations(2), teams, scores={"s10": 9.0, "s09": 4.0}
        )

        assert result.allocated[0].work_item_id == "s10"
        assert result.allocated[1].work_item_id == "s09"
        assert [entry.work_item_id for entry in result.unallocated] == ["s07", "s08"]

    def test_value_optimization_disabled(self, ten_five_point_stories, make_iterations, teams):
        """Test ids decide order when value optimization is off."""
        config = ARTPlanningConfig(enable_value_optimization=False)

        result = allocate(
            ten_five_point_stories, make_iterations(2), teams, config, scores={"s10": 9.0}
        )

        assert [entry.work_item_id for entry in result.unallocated] == ["s09", "s10"]

    def test_critical_path_items_first(self, make_item, make_iterations, teams):
        """Test critical path items win ties over other ready items."""
        items = [make_item("aaa"), make_item("c-pre"), make_item("c-post", dependencies=["c-pre"])]

        result = allocate(items, make_iterations(2), teams)

        assert [entry.work_item_id for entry in result.allocated] == ["c-pre", "aaa", "c-post"]

    def test_dependency_optimization_disabled(self, make_item, make_iterations, teams):
        """Test critical path membership is ignored when dependency optimization is off."""
        items = [make_item("aaa"), make_item("c-pre"), make_item("c-post", dependencies=["c-pre"])]
        config = ARTPlanningConfig(enable_dependency_optimization=False)

        result = allocate(items, make_iterations(2), teams, config)

        assert [entry.work_item_id for entry in result.allocated] == ["aaa", "c-pre", "c-post"]


class TestTeamChoice:
    """Test which team receives an item."""

    def test_specialization_preferred(self, make_item, make_iterations):
        """Test a team whose specialization matches a label is chosen."""
        teams = [
            ARTTeam(id="team-a", specializations=["web"]),
            ARTTeam(id="team-b", specializations=["mobile"]),
        ]
        items = [make_item("m1", labels=["mobile"]), make_item("n1")]

        result = allocate(items, make_iterations(1, team_ids=("team-a", "team-b")), teams)

        teams_by_item = {entry.work_item_id: entry.assigned_team for entry in result.allocated}
        assert teams_by_item == {"m1": "team-b", "n1": "team-a"}

    def test_most_remaining_capacity(self, make_item, make_iterations):
        """Test the team with most remaining capacity is chosen otherwise."""
        teams = [ARTTeam(id="team-a"), ARTTeam(id="team-b")]
        items = [make_item("i1"), make_item("i2"), make_item("i3")]

        result = allocate(items, make_iterations(1, team_ids=("team-a", "team-b")), teams)

        assert [entry.assigned_team for entry in result.allocated] == [
            "team-a",
            "team-b",
            "team-a",
        ]


class TestConfidence:
    """Test allocation confidence."""

    def test_confidence_tracks_remaining_capacity(
        self, ten_five_point_stories, make_iterations, teams
    ):
        """Test confidence falls as a slot fills up."""
        result = allocate(ten_five_point_stories, make_iterations(2), teams)
        by_id = {entry.work_item_id: entry for entry in result.allocated}

        assert by_id["s01"].confidence == pytest.approx(0.7)
        assert by_id["s04"].confidence == pytest.approx(0.4)

    def test_large_item_with_prerequisite(self, chain_backlog, make_iterations, teams):
        """Test large items with prerequisites get reduced confidence."""
        result = allocate(chain_backlog, make_iterations(2, capacity=10), teams)
        by_id = {entry.work_item_id: entry for entry in result.allocated}

        assert by_id["story-a"].confidence == pytest.approx(0.25)

    def test_small_item_bonus(self, make_item, make_iterations, teams):
        """Test small items get a confidence bonus."""
        result = allocate([make_item("tiny", estimate=2)], make_iterations(1), teams)
        # 0.8 * (0.5 + 0.5 * 18 / 20) + 0.1
        assert result.allocated[0].confidence == pytest.approx(0.86)


# =============================================================================
# Results
# =============================================================================


class TestResults:
    """Test issues, statistics and determinism."""

    def test_empty_iteration_issue(self, make_item, make_iterations, teams):
        """Test an iteration without work is reported."""
        result = allocate([make_item("s1")], make_iterations(2), teams)

        issue = next(issue for issue in result.issues if issue.iteration_id == "it-2")
        assert issue.type == "value_risk"
        assert issue.severity == "info"
        assert issue.description == "Iteration 2 has no allocated work"

    def test_high_value_unallocated_issue(self, make_item, make_iterations, teams):
        """Test unallocated high-value work is reported."""
        result = allocate(
            [make_item("huge", estimate=13)],
            make_iterations(1, capacity=10),
            teams,
            scores={"huge": 6.0},
        )

        warning = next(issue for issue in result.issues if issue.severity == "warning")
        assert warning.affected_items == ("huge",)

    def test_statistics(self, ten_five_point_stories, make_iterations, teams):
        """Test allocation statistics totals and rates."""
        statistics = allocate(ten_five_point_stories, make_iterations(2), teams).statistics

        assert statistics.total_items == 10
        assert statistics.allocated_items == 8
        assert statistics.unallocated_items == 2
        assert statistics.iteration_utilization == {"it-1": 1.0, "it-2": 1.0}

    def test_every_item_accounted_for(self, make_item, make_iterations, teams):
        """Test each schedulable item is either allocated or unallocated, never both."""
        items = [
            make_item("huge", estimate=13),
            make_item("a"),
            make_item("b", dependencies=["a"]),
            make_item("f", item_type=WorkItemType.FEATURE),
        ]
        result = allocate(items, make_iterations(1, capacity=10), teams)

        allocated = {entry.work_item_id for entry in result.allocated}
        unallocated = {entry.work_item_id for entry in result.unallocated}
        assert allocated | unallocated == {"huge", "a", "b"}
        assert not allocated & unallocated

    def test_deterministic(self, ten_five_point_stories, make_iterations, teams):
        """Test identical inputs give identical allocations."""
        first = allocate(ten_five_point_stories, make_iterations(2), teams)
        second = allocate(list(reversed(ten_five_point_stories)), make_iterations(2), teams)

        assert first.to_dict() == second.to_dict()

    def test_requires_iterations_and_teams(self, make_item, make_iterations, teams):
        """Test allocation without iterations or teams raises PlanningError."""
        allocator = IterationAllocator()
        graph = analyze_dependencies([make_item("s1")])

        with pytest.raises(PlanningError) as exc_info:
            allocator.allocate([], teams, graph, [make_item("s1")])
        assert exc_info.value.code == "NO_ITERATIONS"

        with pytest.raises(PlanningError) as exc_info:
            allocator.allocate(make_iterations(1), [], graph, [make_item("s1")])
        assert exc_info.value.code == "NO_TEAMS"
