"""Pure graph algorithms over dependency relationships.

Every function takes an edge list and returns new values; nothing here
mutates its inputs. Adjacency is always expressed as
``prerequisites[item] -> set of items it waits for``.
"""

import heapq
import logging
from collections import defaultdict, deque
from collections.abc import Iterable

from artplan.config import CycleSeverity, DependencyStrength
from artplan.errors import CircularDependencyError
from artplan.models.graph import (
    CircularDependency,
    CriticalPathAnalysis,
    DependencyGraph,
    DependencyImpact,
    DependencyRelationship,
    GraphStatistics,
    GraphValidation,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

# High-dependency threshold is max(this, average * HIGH_DEPENDENCY_FACTOR)
MIN_HIGH_DEPENDENCY_COUNT = 3
HIGH_DEPENDENCY_FACTOR = 1.5


# ========== Adjacency ==========


def ordering_adjacency(
    nodes: Iterable[str],
    edges: Iterable[DependencyRelationship],
    hard_only: bool = False,
) -> dict[str, set[str]]:
    """Map each node to the nodes it waits for.

    Args:
        nodes: Node ids in scope; edges touching other ids are ignored
        edges: Relationships to read ordering from
        hard_only: Only use scheduling constraints (HARD ordering edges)

    Returns:
        Dict of dependent id -> set of prerequisite ids
    """
    node_set = set(nodes)
    adjacency: dict[str, set[str]] = {node: set() for node in node_set}
    for edge in edges:
        if hard_only and not edge.is_scheduling_constraint:
            continue
        pair = edge.prerequisite_of()
        if pair is None:
            continue
        prerequisite, dependent = pair
        if prerequisite in node_set and dependent in node_set:
            adjacency[dependent].add(prerequisite)
    return adjacency


def topological_order(prerequisites: dict[str, set[str]]) -> list[str]:
    """Kahn's algorithm with a sorted ready set.

    Args:
        prerequisites: Dependent id -> ids it waits for. Ids that only
            appear as prerequisites are treated as nodes too.

    Returns:
        Node ids, prerequisites first, ties broken by id

    Raises:
        CircularDependencyError: If the graph contains a cycle
    """
    nodes = set(prerequisites)
    for waits_for in prerequisites.values():
        nodes.update(waits_for)

    in_degree: dict[str, int] = {node: 0 for node in nodes}
    dependents: dict[str, list[str]] = defaultdict(list)
    for dependent, waits_for in prerequisites.items():
        for prerequisite in waits_for:
            in_degree[dependent] += 1
            dependents[prerequisite].append(dependent)

    ready = [node for node, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        node = heapq.heappop(ready)
        order.append(node)
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(nodes):
        remaining = {node for node, degree in in_degree.items() if degree > 0}
        cycle = find_cycle(
            {node: set(prerequisites.get(node, ())) & remaining for node in remaining}
        )
        raise CircularDependencyError(
            f"Dependency cycle detected among work items: {sorted(remaining)}",
            cycles=[cycle] if cycle else [],
        )

    return order


def find_cycle(prerequisites: dict[str, set[str]]) -> list[str] | None:
    """Find one cycle with a depth-first search using recursion-stack colouring.

    Nodes are visited in sorted order, so the same graph always yields the
    same cycle. The cycle is rotated to start at its smallest id and is
    listed dependent first: each node waits for the next one.

    Returns:
        Cycle node ids, or None if the graph is acyclic
    """
    white, grey, black = 0, 1, 2
    colour: dict[str, int] = defaultdict(int)

    for start in sorted(prerequisites):
        if colour[start] != white:
            continue
        # Iterative DFS: stack of (node, iterator over sorted neighbours)
        path: list[str] = [start]
        colour[start] = grey
        stack = [(start, iter(sorted(prerequisites.get(start, ()))))]
        while stack:
            node, neighbours = stack[-1]
            advanced = False
            for neighbour in neighbours:
                if colour[neighbour] == grey:
                    cycle = path[path.index(neighbour) :]
                    pivot = cycle.index(min(cycle))
                    return cycle[pivot:] + cycle[:pivot]
                if colour[neighbour] == white:
                    colour[neighbour] = grey
                    path.append(neighbour)
                    stack.append((neighbour, iter(sorted(prerequisites.get(neighbour, ())))))
                    advanced = True
                    break
            if not advanced:
                colour[node] = black
                path.pop()
                stack.pop()

    return None


# ========== Cycles ==========


def _edge_between(
    dependent: str, prerequisite: str, edges: list[DependencyRelationship]
) -> DependencyRelationship | None:
    candidates = [
        edge for edge in edges if edge.prerequisite_of() == (prerequisite, dependent)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda edge: (-edge.confidence, edge.id))


def classify_cycle(relationships: Iterable[DependencyRelationship]) -> CycleSeverity:
    """A cycle is critical when every edge constrains scheduling."""
    if all(edge.is_scheduling_constraint for edge in relationships):
        return CycleSeverity.CRITICAL
    return CycleSeverity.WARNING


def resolution_suggestions(
    cycle: list[str], relationships: Iterable[DependencyRelationship]
) -> list[str]:
    """Templated suggestions for breaking a cycle."""
    relationships = list(relationships)
    suggestions = [
        "Review the necessity of each dependency in the cycle",
        "Consider breaking the cycle by removing soft dependencies",
        "Reorder work items to create a linear dependency chain",
    ]
    if len(cycle) > 3:
        suggestions.append("Split large work items to reduce dependency complexity")
    soft = [edge.id for edge in relationships if edge.strength != DependencyStrength.HARD]
    if soft:
        suggestions.append(f"Consider making soft dependencies optional: {', '.join(soft)}")
    else:
        suggestions.append(
            "All dependencies in the cycle are hard: re-scope one of "
            f"{', '.join(cycle)} so it no longer waits on the others"
        )
    return suggestions


def weakest_edge(relationships: Iterable[DependencyRelationship]) -> DependencyRelationship:
    """Lowest-confidence edge; the larger id loses ties."""
    return min(relationships, key=lambda edge: (edge.confidence, _reverse_key(edge.id)))


def _reverse_key(value: str) -> tuple[int, ...]:
    # Sorting by this key ascending puts larger strings first
    return tuple(-ord(ch) for ch in value) + (0,)


def detect_and_break_cycles(
    nodes: Iterable[str], edges: list[DependencyRelationship]
) -> tuple[list[CircularDependency], list[DependencyRelationship]]:
    """Report every cycle among ordering edges and pick an edge to drop for each.

    Repeats find-cycle / drop-weakest-edge until the remaining ordering
    graph is acyclic, so each reported cycle is distinct.

    Returns:
        (circular dependencies, edges dropped to break them)
    """
    nodes = list(nodes)
    active = list(edges)
    cycles: list[CircularDependency] = []
    broken: list[DependencyRelationship] = []

    while True:
        adjacency = ordering_adjacency(nodes, active)
        cycle = find_cycle(adjacency)
        if cycle is None:
            break

        relationships = []
        for position, dependent in enumerate(cycle):
            prerequisite = cycle[(position + 1) % len(cycle)]
            edge = _edge_between(dependent, prerequisite, active)
            if edge is not None:
                relationships.append(edge)

        severity = classify_cycle(relationships)
        cycles.append(
            CircularDependency(
                cycle=tuple(cycle),
                relationships=tuple(relationships),
                severity=severity,
                resolution_suggestions=tuple(resolution_suggestions(cycle, relationships)),
            )
        )

        dropped = weakest_edge(relationships)
        broken.append(dropped)
        active = [edge for edge in active if edge.id != dropped.id]
        logger.warning(
            f"{severity.value.capitalize()} dependency cycle {' -> '.join(cycle)}; "
            f"dropping {dropped.id} (confidence {dropped.confidence:.2f}) for path analysis"
        )

    return cycles, broken


# ========== Critical Path ==========


def _weights(nodes: Iterable[str], estimates: dict[str, int]) -> dict[str, int]:
    return {node: estimates.get(node) or 1 for node in nodes}


def _longest_to(
    order: list[str], prerequisites: dict[str, set[str]], weights: dict[str, int]
) -> tuple[dict[str, int], dict[str, str | None]]:
    distance: dict[str, int] = {}
    predecessor: dict[str, str | None] = {}
    for node in order:
        best: str | None = None
        best_distance = 0
        for prerequisite in sorted(prerequisites.get(node, ())):
            if distance[prerequisite] > best_distance:
                best, best_distance = prerequisite, distance[prerequisite]
        distance[node] = best_distance + weights[node]
        predecessor[node] = best
    return distance, predecessor


def critical_path(
    nodes: Iterable[str],
    edges: Iterable[DependencyRelationship],
    estimates: dict[str, int],
) -> list[str]:
    """Longest chain of HARD ordering edges weighted by estimate.

    Items without an estimate weigh 1. Edges must already be acyclic.

    Returns:
        Ids from the first prerequisite to the last dependent, or an empty
        list when there are no HARD ordering edges.
    """
    nodes = list(nodes)
    prerequisites = ordering_adjacency(nodes, edges, hard_only=True)
    if not any(prerequisites.values()):
        return []

    weights = _weights(nodes, estimates)
    order = topological_order(prerequisites)
    distance, predecessor = _longest_to(order, prerequisites, weights)

    # A chain ends at an item that waits on something
    ends = [node for node in distance if prerequisites.get(node)]
    end = min(ends, key=lambda node: (-distance[node], node))
    path = []
    current: str | None = end
    while current is not None:
        path.append(current)
        current = predecessor[current]
    return list(reversed(path))


def analyze_critical_path(
    graph: DependencyGraph, estimates: dict[str, int]
) -> CriticalPathAnalysis:
    """Critical path with bottlenecks and per-item slack."""
    nodes = list(graph.nodes)
    prerequisites = ordering_adjacency(nodes, graph.active_edges, hard_only=True)
    weights = _weights(nodes, estimates)
    path = list(graph.critical_path)
    if not path:
        return CriticalPathAnalysis(path=(), total_estimate=0, bottlenecks=(), slack={})

    order = topological_order(prerequisites)
    longest_to, _ = _longest_to(order, prerequisites, weights)

    dependents: dict[str, set[str]] = defaultdict(set)
    for node, waits_for in prerequisites.items():
        for prerequisite in waits_for:
            dependents[prerequisite].add(node)
    reverse_order = list(reversed(order))
    longest_from, _ = _longest_to(reverse_order, dependents, weights)

    total = sum(weights[node] for node in path)
    slack = {
        node: max(0, total - (longest_to[node] + longest_from[node] - weights[node]))
        for node in sorted(nodes)
    }
    bottlenecks = tuple(node for node in path if len(dependents[node]) >= 2)
    return CriticalPathAnalysis(
        path=tuple(path),
        total_estimate=sum(estimates.get(node, 0) for node in path),
        bottlenecks=bottlenecks,
        slack=slack,
    )


# ========== Impact ==========


def _reachable(start: str, adjacency: dict[str, set[str]]) -> set[str]:
    visited: set[str] = set()
    queue = deque(sorted(adjacency.get(start, ())))
    while queue:
        node = queue.popleft()
        if node in visited or node == start:
            continue
        visited.add(node)
        queue.extend(sorted(adjacency.get(node, ())))
    return visited


def analyze_impact(graph: DependencyGraph, item_id: str) -> DependencyImpact:
    """What is affected if item_id slips, and what item_id waits for.

    Uses every ordering edge regardless of strength.
    """
    prerequisites = ordering_adjacency(graph.nodes, graph.edges)
    dependents: dict[str, set[str]] = defaultdict(set)
    for node, waits_for in prerequisites.items():
        for prerequisite in waits_for:
            dependents[prerequisite].add(node)

    transitive_dependents = _reachable(item_id, dependents)
    transitive_prerequisites = _reachable(item_id, prerequisites)
    on_path = item_id in graph.critical_path

    others = max(len(graph.nodes) - 1, 1)
    impact = len(transitive_dependents) / others
    if on_path:
        impact = min(1.0, impact + 0.3)

    return DependencyImpact(
        item_id=item_id,
        direct_dependents=tuple(sorted(dependents.get(item_id, ()))),
        transitive_dependents=tuple(sorted(transitive_dependents)),
        direct_prerequisites=tuple(sorted(prerequisites.get(item_id, ()))),
        transitive_prerequisites=tuple(sorted(transitive_prerequisites)),
        on_critical_path=on_path,
        impact_score=round(impact, 4),
    )


# ========== Statistics & Validation ==========


def graph_statistics(
    nodes: list[str],
    edges: list[DependencyRelationship],
    path: list[str],
    estimates: dict[str, int],
) -> GraphStatistics:
    """Counts and averages, treating each edge as a dependency of its source."""
    node_count = len(nodes)
    outgoing: dict[str, int] = defaultdict(int)
    for edge in edges:
        outgoing[edge.source_id] += 1

    average = len(edges) / node_count if node_count else 0.0
    threshold = max(MIN_HIGH_DEPENDENCY_COUNT, average * HIGH_DEPENDENCY_FACTOR)
    node_set = set(nodes)

    return GraphStatistics(
        node_count=node_count,
        edge_count=len(edges),
        hard_dependencies=sum(1 for edge in edges if edge.strength == DependencyStrength.HARD),
        soft_dependencies=sum(1 for edge in edges if edge.strength == DependencyStrength.SOFT),
        average_dependencies=round(average, 4),
        independent_items=sum(1 for node in nodes if outgoing.get(node, 0) == 0),
        high_dependency_items=tuple(
            sorted(
                node
                for node, count in outgoing.items()
                if count >= threshold and node in node_set
            )
        ),
        longest_path=len(path),
        estimated_duration=sum(estimates.get(node, 0) for node in path),
    )


def validate_graph(
    nodes: list[str],
    edges: list[DependencyRelationship],
    cycles: list[CircularDependency],
    statistics: GraphStatistics,
) -> GraphValidation:
    """Errors, warnings and info about the graph's structure."""
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    info: list[ValidationIssue] = []
    node_set = set(nodes)

    for cycle in cycles:
        issue = ValidationIssue(
            code="CIRCULAR_DEPENDENCY",
            message=f"{cycle.severity.value.capitalize()} cycle: {' -> '.join(cycle.cycle)}",
            affected_items=cycle.cycle,
        )
        (errors if cycle.is_critical else warnings).append(issue)

    external = sorted(
        {(edge.source_id, edge.target_id) for edge in edges if edge.target_id not in node_set}
    )
    for source_id, target_id in external:
        errors.append(
            ValidationIssue(
                code="MISSING_DEPENDENCY_TARGET",
                message=f"{source_id} depends on {target_id}, which is outside the planning scope",
                affected_items=(source_id, target_id),
            )
        )

    for node in statistics.high_dependency_items:
        warnings.append(
            ValidationIssue(
                code="HIGH_DEPENDENCY_ITEM",
                message=f"{node} has an unusually high number of dependencies",
                affected_items=(node,),
            )
        )

    connected = {edge.source_id for edge in edges} | {edge.target_id for edge in edges}
    isolated = tuple(node for node in nodes if node not in connected)
    if isolated and len(nodes) > 1:
        info.append(
            ValidationIssue(
                code="ISOLATED_ITEM",
                message=f"{len(isolated)} work items have no dependencies",
                affected_items=isolated,
            )
        )

    return GraphValidation(errors=tuple(errors), warnings=tuple(warnings), info=tuple(info))


def build_graph(
    nodes: list[str],
    edges: list[DependencyRelationship],
    estimates: dict[str, int],
) -> DependencyGraph:
    """Construct one immutable graph value from a complete edge list."""
    cycles, broken = detect_and_break_cycles(nodes, edges)
    broken_ids = {edge.id for edge in broken}
    acyclic = [edge for edge in edges if edge.id not in broken_ids]

    path = critical_path(nodes, acyclic, estimates)
    statistics = graph_statistics(nodes, edges, path, estimates)
    validation = validate_graph(nodes, edges, cycles, statistics)

    return DependencyGraph(
        nodes=tuple(nodes),
        edges=tuple(edges),
        critical_path=tuple(path),
        circular_dependencies=tuple(cycles),
        broken_edges=tuple(broken),
        statistics=statistics,
        validation=validation,
    )
