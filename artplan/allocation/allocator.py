"""Iteration allocator: dependency-ordered, capacity-bounded placement of work.

Work is processed in topological order over HARD scheduling edges. Among
items whose prerequisites have all been processed, the highest WSJF goes
first, then critical path items, then smaller items, then id. Each item is
placed in the earliest iteration at or after its prerequisites' completion
where a team still has usable capacity for its full estimate.
"""

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass

from artplan.allocation.capacity import IMBALANCE_DEVIATION, CapacityManager
from artplan.config import ARTPlanningConfig
from artplan.dependencies.detector import contains_phrase
from artplan.dependencies.graph import topological_order
from artplan.errors import CapacityValidationError, PlanningError
from artplan.models.graph import DependencyGraph
from artplan.models.plan import (
    AllocatedWorkItem,
    AllocationIssue,
    AllocationResult,
    AllocationStatistics,
    CapacityUtilization,
    UnallocatedWorkItem,
)
from artplan.models.work_items import (
    ARTTeam,
    Iteration,
    IterationCapacity,
    WorkItem,
    WorkItemIndex,
)

logger = logging.getLogger(__name__)

# Unallocated reasons
REASON_EXCEEDS_CAPACITY = "exceeds capacity"
REASON_EXCEEDS_REMAINING = "exceeds remaining capacity"
REASON_BLOCKED = "blocked by unallocated prerequisite"
REASON_BEYOND_HORIZON = "beyond planning horizon"

SOLUTIONS: dict[str, tuple[str, ...]] = {
    REASON_EXCEEDS_CAPACITY: (
        "Split the item into smaller stories",
        "Add capacity to a team for one iteration",
        "Reduce the scope of the item",
    ),
    REASON_EXCEEDS_REMAINING: (
        "Move the item to the next Program Increment",
        "Lower the priority of other work in the iterations",
        "Add team capacity",
    ),
    REASON_BLOCKED: (
        "Allocate or resolve the blocking prerequisites first",
        "Remove or soften the dependency if it is not strict",
        "Split the prerequisite so part of it fits earlier",
    ),
    REASON_BEYOND_HORIZON: (
        "Schedule the prerequisites in an earlier iteration",
        "Extend the planning horizon",
        "Allow dependents in the same iteration as their prerequisites",
    ),
}

# Allocation confidence adjustments
PREREQUISITE_PENALTY = 0.05
LARGE_ITEM_POINTS = 5
SMALL_ITEM_POINTS = 2
MIN_ALLOCATION_CONFIDENCE = 0.1

_EPSILON = 1e-9


@dataclass
class _TeamSlot:
    """Mutable capacity book-keeping for one team in one iteration."""

    team: ARTTeam
    capacity: IterationCapacity
    usable: float
    allocated: float = 0.0

    @property
    def remaining(self) -> float:
        return self.usable - self.allocated

    def fits(self, points: int) -> bool:
        return self.remaining + _EPSILON >= points


def matches_specialization(team: ARTTeam, item: WorkItem) -> bool:
    """Whether a team specialization appears in the item's labels or title/description."""
    labels = {label.lower() for label in item.labels}
    text = f"{item.title} {item.description}"
    return any(
        specialization.lower() in labels or contains_phrase(text, specialization)
        for specialization in team.specializations
    )


def scheduling_prerequisites(
    graph: DependencyGraph, index: WorkItemIndex
) -> tuple[dict[str, set[str]], dict[str, set[str]]]:
    """Prerequisites of every schedulable item from the graph's HARD edges.

    Edges dropped to break warning cycles still count: only the critical
    path ignores them. Epic and feature prerequisites stand for their
    schedulable descendants; a container without any does not block.

    Returns:
        (item id -> in-scope prerequisite ids, item id -> prerequisite ids missing from scope)
    """
    prerequisites: dict[str, set[str]] = {item.id: set() for item in index.schedulable()}
    external: dict[str, set[str]] = defaultdict(set)

    for edge in graph.edges:
        if not edge.is_scheduling_constraint:
            continue
        prerequisite, dependent = edge.prerequisite_of()
        if dependent not in prerequisites:
            continue
        target = index.get(prerequisite)
        if target is None:
            external[dependent].add(prerequisite)
        elif target.is_schedulable:
            prerequisites[dependent].add(prerequisite)
        else:
            prerequisites[dependent].update(
                child.id
                for child in index.descendants_of(prerequisite)
                if child.is_schedulable and child.id != dependent
            )
    return prerequisites, dict(external)


class IterationAllocator:
    """Assigns stories and enablers to iterations and teams."""

    def __init__(
        self,
        config: ARTPlanningConfig | None = None,
        capacity_manager: CapacityManager | None = None,
    ):
        """Initialize the allocator.

        Args:
            config: Planning configuration (defaults if not provided)
            capacity_manager: Capacity source; built from config if not provided
        """
        self.config = config or ARTPlanningConfig()
        self.capacity_manager = capacity_manager or CapacityManager(self.config)

    def allocate(
        self,
        iterations: list[Iteration],
        teams: list[ARTTeam],
        graph: DependencyGraph,
        items: list[WorkItem],
        scores: dict[str, float] | None = None,
    ) -> AllocationResult:
        """Allocate schedulable items to iterations.

        Args:
            iterations: Iterations in calendar order
            teams: Teams available in every iteration
            graph: Dependency graph covering the items
            items: Work items to plan; epics and features are never scheduled
            scores: WSJF score per item id; missing items count as 0

        Returns:
            AllocationResult with every schedulable item either allocated or unallocated

        Raises:
            PlanningError: If there are no iterations or no teams
            CircularDependencyError: If HARD scheduling edges form a cycle
        """
        if not iterations:
            raise PlanningError("No iterations to allocate work into", code="NO_ITERATIONS")
        if not teams:
            raise PlanningError("No teams to allocate work to", code="NO_TEAMS")

        index = WorkItemIndex(items)
        prerequisites, external = scheduling_prerequisites(graph, index)
        topological_order(prerequisites)

        slots = self._build_slots(iterations, teams)
        largest_slot = max((slot.usable for row in slots for slot in row), default=0.0)
        dependents: dict[str, list[str]] = defaultdict(list)
        for item_id, waits_for in prerequisites.items():
            for prerequisite in waits_for:
                dependents[prerequisite].append(item_id)

        scores = scores or {}
        critical = set(graph.critical_path)

        def priority(item_id: str) -> tuple:
            wsjf = scores.get(item_id, 0.0) if self.config.enable_value_optimization else 0.0
            off_path = self.config.enable_dependency_optimization and item_id not in critical
            return (-wsjf, off_path, index.estimate_of(item_id), item_id)

        placed: dict[str, int] = {}  # item id -> iteration index
        allocated: list[tuple[int, int, AllocatedWorkItem]] = []
        unallocated: list[UnallocatedWorkItem] = []
        failed: set[str] = set()

        waiting = {item_id: len(waits_for) for item_id, waits_for in prerequisites.items()}
        ready = [priority(item_id) for item_id, count in waiting.items() if count == 0]
        heapq.heapify(ready)
        sequence = 0
        while ready:
            item_id = heapq.heappop(ready)[-1]
            item = index.require(item_id)
            item_prerequisites = sorted(prerequisites[item_id])
            item_dependents = sorted(dependents[item_id])

            blockers = sorted(p for p in item_prerequisites if p in failed)
            blockers += sorted(external.get(item_id, ()))
            if blockers:
                outcome = self._unallocated(
                    item,
                    REASON_BLOCKED,
                    f"Prerequisites {', '.join(blockers)} are not allocated in this plan",
                    blockers,
                )
            else:
                outcome = self._place(
                    item,
                    item_prerequisites,
                    item_dependents,
                    placed,
                    iterations,
                    slots,
                    largest_slot,
                )

            if isinstance(outcome, UnallocatedWorkItem):
                failed.add(item_id)
                unallocated.append(outcome)
                logger.warning(f"Work item {item_id} unallocated: {outcome.reason}")
            else:
                iteration_index = placed[item_id]
                allocated.append((iteration_index, sequence, outcome))
                logger.debug(
                    f"Allocated {item_id} ({item.estimate} pts) to {outcome.iteration_id} "
                    f"team {outcome.assigned_team}"
                )
            sequence += 1

            for dependent in item_dependents:
                waiting[dependent] -= 1
                if waiting[dependent] == 0:
                    heapq.heappush(ready, priority(dependent))

        allocated_items = tuple(entry for _, _, entry in sorted(allocated, key=lambda e: e[:2]))
        utilization = {
            iteration.id: tuple(
                self.capacity_manager.utilization(slot.capacity, slot.allocated) for slot in row
            )
            for iteration, row in zip(iterations, slots)
        }
        statistics = self._statistics(
            index, allocated_items, tuple(unallocated), iterations, utilization
        )
        issues = self._issues(
            iterations,
            utilization,
            allocated_items,
            tuple(unallocated),
            prerequisites,
            placed,
            scores,
        )

        logger.info(
            f"Allocation complete: {statistics.allocated_items}/{statistics.total_items} items, "
            f"{statistics.allocated_points}/{statistics.total_points} pts across "
            f"{len(iterations)} iterations ({len(issues)} issues)"
        )
        return AllocationResult(
            allocated=allocated_items,
            unallocated=tuple(unallocated),
            utilization=utilization,
            statistics=statistics,
            issues=tuple(issues),
        )

    # ========== Placement ==========

    def _build_slots(
        self, iterations: list[Iteration], teams: list[ARTTeam]
    ) -> list[list[_TeamSlot]]:
        rows = []
        for iteration in iterations:
            row = []
            for team in sorted(teams, key=lambda team: team.id):
                capacity = self.capacity_manager.capacity_for(iteration, team)
                row.append(
                    _TeamSlot(team, capacity, self.capacity_manager.usable_capacity(capacity))
                )
            rows.append(row)
        return rows

    def _earliest_start(self, prerequisites: list[str], placed: dict[str, int]) -> int:
        offset = 0 if self.config.allow_same_iteration_dependencies else 1
        return max((placed[p] + offset for p in prerequisites), default=0)

    def _choose_team(self, item: WorkItem, row: list[_TeamSlot]) -> _TeamSlot | None:
        candidates = [slot for slot in row if slot.fits(item.estimate)]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda slot: (
                not matches_specialization(slot.team, item),
                -slot.remaining,
                slot.team.id,
            ),
        )

    def _place(
        self,
        item: WorkItem,
        prerequisites: list[str],
        dependents: list[str],
        placed: dict[str, int],
        iterations: list[Iteration],
        slots: list[list[_TeamSlot]],
        largest_slot: float,
    ) -> AllocatedWorkItem | UnallocatedWorkItem:
        if item.estimate > largest_slot + _EPSILON:
            error = CapacityValidationError(
                f"{item.id} needs {item.estimate} pts but no team has more than "
                f"{largest_slot:g} usable pts in a single iteration",
                item_id=item.id,
                required=item.estimate,
                available=largest_slot,
            )
            return self._unallocated(
                item, REASON_EXCEEDS_CAPACITY, error.message, ["Team capacity"]
            )

        earliest = self._earliest_start(prerequisites, placed)
        if earliest >= len(iterations):
            return self._unallocated(
                item,
                REASON_BEYOND_HORIZON,
                f"Prerequisites of {item.id} complete in the last planned iteration",
                prerequisites,
            )

        for iteration_index in range(earliest, len(iterations)):
            slot = self._choose_team(item, slots[iteration_index])
            if slot is None:
                continue
            slot.allocated += item.estimate
            placed[item.id] = iteration_index
            iteration = iterations[iteration_index]
            return AllocatedWorkItem(
                work_item_id=item.id,
                iteration_id=iteration.id,
                assigned_team=slot.team.id,
                allocated_points=item.estimate,
                is_complete=True,
                confidence=self._confidence(item, slot, len(prerequisites)),
                rationale=(
                    f"Allocated to {iteration.display_name} based on dependency ordering "
                    f"and team {slot.team.display_name} capacity"
                ),
                blocked_by=tuple(prerequisites),
                enables=tuple(dependents),
            )

        remaining = max(
            (slot.remaining for row in slots[earliest:] for slot in row), default=0.0
        )
        error = CapacityValidationError(
            f"{item.id} needs {item.estimate} pts but at most {max(remaining, 0.0):g} pts remain "
            f"for any team from {iterations[earliest].display_name} onwards",
            item_id=item.id,
            required=item.estimate,
            available=max(remaining, 0.0),
        )
        return self._unallocated(item, REASON_EXCEEDS_REMAINING, error.message, ["Team capacity"])

    def _confidence(self, item: WorkItem, slot: _TeamSlot, prerequisite_count: int) -> float:
        """Team confidence scaled by the slack left, adjusted for size and dependencies."""
        slack_ratio = max(0.0, slot.remaining) / slot.usable if slot.usable > 0 else 0.0
        confidence = slot.capacity.confidence_factor * (0.5 + 0.5 * slack_ratio)
        confidence -= PREREQUISITE_PENALTY * prerequisite_count
        if item.estimate > LARGE_ITEM_POINTS:
            confidence -= 0.1
        if item.estimate <= SMALL_ITEM_POINTS:
            confidence += 0.1
        return round(max(MIN_ALLOCATION_CONFIDENCE, min(1.0, confidence)), 4)

    @staticmethod
    def _unallocated(
        item: WorkItem, reason: str, explanation: str, blockers: list[str]
    ) -> UnallocatedWorkItem:
        return UnallocatedWorkItem(
            work_item_id=item.id,
            reason=reason,
            explanation=explanation,
            blockers=tuple(blockers),
            solutions=SOLUTIONS[reason],
        )

    # ========== Results ==========

    @staticmethod
    def _statistics(
        index: WorkItemIndex,
        allocated: tuple[AllocatedWorkItem, ...],
        unallocated: tuple[UnallocatedWorkItem, ...],
        iterations: list[Iteration],
        utilization: dict[str, tuple[CapacityUtilization, ...]],
    ) -> AllocationStatistics:
        schedulable = index.schedulable()
        total_points = sum(item.estimate for item in schedulable)
        allocated_points = sum(entry.allocated_points for entry in allocated)

        iteration_utilization = {}
        for iteration in iterations:
            entries = utilization[iteration.id]
            usable = sum(entry.usable_capacity for entry in entries)
            used = sum(entry.allocated_capacity for entry in entries)
            iteration_utilization[iteration.id] = round(used / usable, 4) if usable > 0 else 0.0

        return AllocationStatistics(
            total_items=len(schedulable),
            allocated_items=len(allocated),
            unallocated_items=len(unallocated),
            total_points=total_points,
            allocated_points=allocated_points,
            allocation_rate=round(allocated_points / total_points, 4) if total_points else 1.0,
            average_confidence=(
                round(sum(entry.confidence for entry in allocated) / len(allocated), 4)
                if allocated
                else 0.0
            ),
            iteration_utilization=iteration_utilization,
        )

    def _issues(
        self,
        iterations: list[Iteration],
        utilization: dict[str, tuple[CapacityUtilization, ...]],
        allocated: tuple[AllocatedWorkItem, ...],
        unallocated: tuple[UnallocatedWorkItem, ...],
        prerequisites: dict[str, set[str]],
        placed: dict[str, int],
        scores: dict[str, float],
    ) -> list[AllocationIssue]:
        issues: list[AllocationIssue] = []

        for iteration in iterations:
            entries = utilization[iteration.id]
            over = [entry.team_id for entry in entries if entry.is_over_allocated]
            if over:
                issues.append(
                    AllocationIssue(
                        type="capacity_overrun",
                        severity="error",
                        description=(
                            f"Teams {', '.join(over)} exceed usable capacity "
                            f"in {iteration.display_name}"
                        ),
                        iteration_id=iteration.id,
                    )
                )
            rates = [entry.utilization_rate for entry in entries if entry.usable_capacity > 0]
            if len(rates) > 1 and max(rates) - min(rates) > IMBALANCE_DEVIATION:
                issues.append(
                    AllocationIssue(
                        type="team_imbalance",
                        severity="warning",
                        description=(
                            f"Team utilization in {iteration.display_name} ranges from "
                            f"{min(rates):.0%} to {max(rates):.0%}"
                        ),
                        iteration_id=iteration.id,
                    )
                )
            if not any(entry.iteration_id == iteration.id for entry in allocated):
                issues.append(
                    AllocationIssue(
                        type="value_risk",
                        severity="info",
                        description=f"{iteration.display_name} has no allocated work",
                        iteration_id=iteration.id,
                    )
                )

        offset = 0 if self.config.allow_same_iteration_dependencies else 1
        for item_id in sorted(placed):
            violated = sorted(
                p
                for p in prerequisites.get(item_id, ())
                if p in placed and placed[p] + offset > placed[item_id]
            )
            if violated:
                issues.append(
                    AllocationIssue(
                        type="dependency_violation",
                        severity="error",
                        description=(
                            f"{item_id} is scheduled before its prerequisites "
                            f"{', '.join(violated)}"
                        ),
                        affected_items=(item_id, *violated),
                    )
                )

        high_value = sorted(
            entry.work_item_id
            for entry in unallocated
            if scores.get(entry.work_item_id, 0.0) >= self.config.scoring.high_threshold
        )
        if high_value:
            issues.append(
                AllocationIssue(
                    type="value_risk",
                    severity="warning",
                    description=f"{len(high_value)} high-priority items could not be allocated",
                    affected_items=tuple(high_value),
                )
            )
        return issues
