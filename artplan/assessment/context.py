"""Read-only view of an allocated plan shared by the assessment steps."""

from dataclasses import dataclass, field

from artplan.allocation.allocator import scheduling_prerequisites
from artplan.config import ARTPlanningConfig
from artplan.models.graph import DependencyGraph
from artplan.models.plan import AllocatedWorkItem, AllocationResult
from artplan.models.work_items import Iteration, WorkItem, WorkItemIndex


@dataclass(frozen=True)
class PlanContext:
    """Allocation, graph and items of one planning run.

    Attributes:
        iterations: Iterations in calendar order
        allocation: Allocator output
        graph: Dependency graph the allocation was built from
        index: Planned work items
        prerequisites: Schedulable item id -> in-scope HARD prerequisite ids
        external: Item id -> HARD prerequisite ids missing from the plan scope
        positions: Allocated item id -> iteration position
        config: Planning configuration
    """

    iterations: tuple[Iteration, ...]
    allocation: AllocationResult
    graph: DependencyGraph
    index: WorkItemIndex
    prerequisites: dict[str, set[str]]
    external: dict[str, set[str]]
    positions: dict[str, int] = field(default_factory=dict)
    config: ARTPlanningConfig = field(default_factory=ARTPlanningConfig)

    @classmethod
    def build(
        cls,
        iterations: list[Iteration],
        allocation: AllocationResult,
        graph: DependencyGraph,
        items: list[WorkItem],
        config: ARTPlanningConfig | None = None,
    ) -> "PlanContext":
        index = WorkItemIndex(items)
        prerequisites, external = scheduling_prerequisites(graph, index)
        order = {iteration.id: position for position, iteration in enumerate(iterations)}
        positions = {
            entry.work_item_id: order[entry.iteration_id] for entry in allocation.allocated
        }
        return cls(
            iterations=tuple(iterations),
            allocation=allocation,
            graph=graph,
            index=index,
            prerequisites=prerequisites,
            external=external,
            positions=positions,
            config=config or ARTPlanningConfig(),
        )

    def allocated_in(self, iteration_id: str) -> list[AllocatedWorkItem]:
        return self.allocation.for_iteration(iteration_id)

    def unmet_prerequisites(self, item_id: str) -> list[str]:
        """HARD prerequisites that the plan never schedules."""
        unmet = {p for p in self.prerequisites.get(item_id, ()) if p not in self.positions}
        unmet.update(self.external.get(item_id, ()))
        return sorted(unmet)

    def ordering_violations(self, item_id: str) -> list[str]:
        """Prerequisites scheduled too late for item_id."""
        position = self.positions.get(item_id)
        if position is None:
            return []
        offset = 0 if self.config.allow_same_iteration_dependencies else 1
        return sorted(
            p
            for p in self.prerequisites.get(item_id, ())
            if p in self.positions and self.positions[p] + offset > position
        )
