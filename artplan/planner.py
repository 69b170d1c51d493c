"""Planning pipeline: dependencies, decomposition, scoring, allocation and assessment.

plan_art() is the single entry point that produces an ARTPlan. Each stage
runs inside its own span and works on copies of the caller's inputs, so
a plan never shares mutable state with the caller or with another run.

Pipeline:
    analyze dependencies -> decompose oversized items -> re-analyze planned items
    -> score -> allocate -> assess value, validation and readiness
"""

import logging
import statistics
from dataclasses import replace
from typing import Any

from pydantic import BaseModel

from artplan.allocation import CapacityManager, IterationAllocator
from artplan.assessment import PlanContext, ReadinessAssessor, ValueAssessor, validate_iteration
from artplan.config import ARTPlanningConfig, DecompositionConfig, ScoringConfig
from artplan.decomposition import DecompositionResult, StoryDecomposer, apply_decompositions
from artplan.dependencies import DependencyAnalyzer
from artplan.errors import CircularDependencyError, PlanningError, ScoringError, ValidationError
from artplan.models.graph import DependencyGraph
from artplan.models.plan import (
    ARTPlan,
    ARTPlanSummary,
    IterationPlan,
)
from artplan.models.work_items import (
    ARTTeam,
    Iteration,
    WorkItem,
    parse_iterations,
    parse_teams,
    parse_work_items,
)
from artplan.scoring import RawScoreInput, ScoredStory, WSJFScorer
from artplan.telemetry import planning_span, stage_span

logger = logging.getLogger(__name__)

# Summary risk thresholds
HIGH_UTILIZATION = 0.9
LOW_VALUE_CONFIDENCE = 0.7
MANY_DEPENDENCIES_RATIO = 0.5


# =============================================================================
# Entry Points
# =============================================================================


def plan_art(
    work_items: list[WorkItem | dict[str, Any]],
    iterations: list[Iteration | dict[str, Any]],
    teams: list[ARTTeam | dict[str, Any]],
    config: ARTPlanningConfig | None = None,
    raw_scores: dict[str, RawScoreInput | dict[str, Any]] | None = None,
) -> ARTPlan:
    """Plan a Program Increment.

    Args:
        work_items: Backlog items (models or dicts); epics and features give structure only
        iterations: Iterations in calendar order; only the first planning_horizon are used
        teams: Teams on the release train
        config: Planning configuration (defaults if not provided)
        raw_scores: WSJF sub-scores per item id; estimated from item text when absent

    Returns:
        The complete ARTPlan

    Raises:
        PlanningError: If there are no iterations, no teams, or duplicate iteration ids
        CircularDependencyError: If HARD dependencies form a cycle
        ValidationError: If an input record is malformed
    """
    config = config or ARTPlanningConfig()
    items = [item.model_copy(deep=True) for item in parse_work_items(work_items)]
    plan_iterations, warnings = _prepare_iterations(iterations, config)
    plan_teams = [team.model_copy(deep=True) for team in parse_teams(teams)]
    if not plan_teams:
        raise PlanningError("No teams to allocate work to", code="NO_TEAMS")
    _check_capacity_teams(plan_iterations, plan_teams)
    raws = _parse_raw_scores(raw_scores)

    logger.info(
        f"Planning {len(items)} work items across {len(plan_iterations)} iterations "
        f"and {len(plan_teams)} teams"
    )
    with planning_span(len(items), len(plan_iterations), len(plan_teams)) as run_span:
        analyzer = DependencyAnalyzer(config.dependencies)
        with stage_span("dependencies", items=len(items)) as span:
            graph = analyzer.analyze(items)
            _check_cycles(graph)
            span.set_attribute("stage.edges", len(graph.edges))

        with stage_span("decomposition", items=len(items)) as span:
            decomposer = StoryDecomposer(config.decomposition)
            decompositions, decomposition_errors = decomposer.decompose_batch(items)
            planned = apply_decompositions(items, decompositions)
            span.set_attribute("stage.decomposed", len(decompositions))
            span.set_attribute("stage.failed", len(decomposition_errors))

        if decompositions:
            with stage_span("dependencies", items=len(planned), rerun=True) as span:
                graph = analyzer.analyze(planned)
                _check_cycles(graph)
                span.set_attribute("stage.edges", len(graph.edges))
        warnings.extend(_cycle_warnings(graph))

        with stage_span("scoring", items=len(planned)) as span:
            schedulable = [item for item in planned if item.is_schedulable]
            scorer = WSJFScorer(config.scoring)
            scores, scoring_errors = scorer.score_batch(
                schedulable, _inherit_raw_scores(raws, decompositions)
            )
            span.set_attribute("stage.scored", len(scores))

        with stage_span("allocation", items=len(schedulable)) as span:
            allocator = IterationAllocator(config, CapacityManager(config))
            allocation = allocator.allocate(
                plan_iterations, plan_teams, graph, planned, {s.id: s.wsjf_score for s in scores}
            )
            span.set_attribute("stage.allocated", len(allocation.allocated))
            span.set_attribute("stage.unallocated", len(allocation.unallocated))

        with stage_span("assessment", iterations=len(plan_iterations)) as span:
            context = PlanContext.build(plan_iterations, allocation, graph, planned, config)
            iteration_plans = _iteration_plans(context)
            readiness = ReadinessAssessor(config).assess(context, iteration_plans)
            span.set_attribute("stage.readiness_score", readiness.readiness_score)

        summary = _summary(context, iteration_plans)
        run_span.set_attribute("planning.allocated_points", summary.allocated_story_points)
        run_span.set_attribute("planning.risk_level", summary.risk_level)

    for warning in warnings:
        logger.warning(warning)
    logger.info(
        f"Plan complete: {summary.allocated_story_points}/{summary.total_story_points} pts "
        f"allocated, {summary.unallocated_items} items unallocated, "
        f"readiness {readiness.readiness_score:.2f}, "
        f"risk {summary.risk_level}"
    )
    return ARTPlan(
        iterations=tuple(iteration_plans),
        dependencies=graph,
        work_items=tuple(planned),
        unallocated=allocation.unallocated,
        summary=summary,
        readiness=readiness,
        decompositions=tuple(decompositions),
        decomposition_errors=tuple(decomposition_errors),
        scores=tuple(scores),
        scoring_errors=tuple(scoring_errors),
        issues=allocation.issues,
        warnings=tuple(warnings),
    )


def decompose_story(
    item: WorkItem | dict[str, Any], config: DecompositionConfig | None = None
) -> DecompositionResult:
    """Split one oversized story or enabler.

    Raises:
        DecompositionError: If the item cannot be split within the configured limits
        ValidationError: If the item record is malformed
    """
    (work_item,) = parse_work_items([item])
    return StoryDecomposer(config).decompose(work_item.model_copy(deep=True))


def score_stories_with_errors(
    items: list[WorkItem | dict[str, Any]],
    raw_score_inputs: dict[str, RawScoreInput | dict[str, Any]] | None = None,
    config: ScoringConfig | None = None,
) -> tuple[list[ScoredStory], list[ScoringError]]:
    """Score items, returning per-item failures next to the scores."""
    work_items = parse_work_items(items)
    return WSJFScorer(config).score_batch(work_items, _parse_raw_scores(raw_score_inputs))


def score_stories(
    items: list[WorkItem | dict[str, Any]],
    raw_score_inputs: dict[str, RawScoreInput | dict[str, Any]] | None = None,
    config: ScoringConfig | None = None,
) -> list[ScoredStory]:
    """Score items with WSJF, omitting (and logging) items that cannot be scored."""
    scored, _ = score_stories_with_errors(items, raw_score_inputs, config)
    return scored


# =============================================================================
# Input Preparation
# =============================================================================


def _prepare_iterations(
    records: list[Iteration | dict[str, Any]], config: ARTPlanningConfig
) -> tuple[list[Iteration], list[str]]:
    if not records:
        raise PlanningError("No iterations to allocate work into", code="NO_ITERATIONS")

    ids = [record.id if isinstance(record, BaseModel) else record.get("id") for record in records]
    duplicates = sorted({i for i in ids if i is not None and ids.count(i) > 1})
    if duplicates:
        raise PlanningError(
            f"Duplicate iteration ids: {duplicates}",
            code="DUPLICATE_ITERATION",
            affected_items=duplicates,
        )

    iterations = [iteration.model_copy(deep=True) for iteration in parse_iterations(records)]
    warnings = []
    if len(iterations) > config.planning_horizon:
        dropped = [iteration.id for iteration in iterations[config.planning_horizon :]]
        warnings.append(
            f"Planning horizon is {config.planning_horizon} iterations; "
            f"ignored {', '.join(dropped)}"
        )
        iterations = iterations[: config.planning_horizon]
    return iterations, warnings


def _check_capacity_teams(iterations: list[Iteration], teams: list[ARTTeam]) -> None:
    known = {team.id for team in teams}
    for iteration in iterations:
        unknown = sorted({entry.team_id for entry in iteration.capacity} - known)
        if unknown:
            raise ValidationError(
                f"Iteration {iteration.id} has capacity for unknown teams: {unknown}",
                affected_items=[iteration.id],
            )


def _parse_raw_scores(
    raw_scores: dict[str, RawScoreInput | dict[str, Any]] | None,
) -> dict[str, RawScoreInput]:
    parsed = {}
    for item_id, raw in (raw_scores or {}).items():
        if isinstance(raw, RawScoreInput):
            parsed[item_id] = raw
            continue
        try:
            parsed[item_id] = RawScoreInput(**raw)
        except TypeError as e:
            raise ValidationError(
                f"Invalid raw scores for {item_id}: {e}", affected_items=[item_id]
            ) from e
    return parsed


def _inherit_raw_scores(
    raws: dict[str, RawScoreInput], decompositions: list[DecompositionResult]
) -> dict[str, RawScoreInput]:
    """Sub-items keep their parent's value scores with their own size as job size."""
    inherited = dict(raws)
    for result in decompositions:
        parent_raw = raws.get(result.parent.id)
        if parent_raw is None:
            continue
        for sub_item in result.sub_items:
            inherited.setdefault(sub_item.id, replace(parent_raw, job_size=sub_item.estimate))
    return inherited


def _check_cycles(graph: DependencyGraph) -> None:
    critical = graph.critical_cycles
    if critical:
        cycles = [list(cycle.cycle) for cycle in critical]
        raise CircularDependencyError(
            f"{len(critical)} circular HARD dependencies prevent planning: "
            + "; ".join(" -> ".join(cycle) for cycle in cycles),
            cycles=cycles,
        )


def _cycle_warnings(graph: DependencyGraph) -> list[str]:
    return [
        f"Circular dependency {' -> '.join(cycle.cycle)} resolved by dropping its weakest edge"
        for cycle in graph.circular_dependencies
        if not cycle.is_critical
    ]


# =============================================================================
# Assembly
# =============================================================================


def _iteration_plans(context: PlanContext) -> list[IterationPlan]:
    value_assessor = ValueAssessor(context)
    plans = []
    for position, iteration in enumerate(context.iterations):
        allocated = context.allocated_in(iteration.id)
        utilization = context.allocation.utilization.get(iteration.id, ())
        value = value_assessor.assess_iteration(iteration)

        earlier: set[str] = set()
        later: set[str] = set()
        for entry in allocated:
            for prerequisite in context.prerequisites.get(entry.work_item_id, ()):
                if context.positions.get(prerequisite, position) < position:
                    earlier.add(prerequisite)
            for dependent in entry.enables:
                if context.positions.get(dependent, position) > position:
                    later.add(dependent)

        plans.append(
            IterationPlan(
                iteration=iteration,
                allocated_work=tuple(allocated),
                total_points=sum(entry.allocated_points for entry in allocated),
                total_capacity=round(sum(u.total_capacity for u in utilization), 4),
                capacity_utilization=tuple(utilization),
                deliverable_value=value,
                validation=validate_iteration(context, iteration, value),
                prerequisites=tuple(sorted(earlier)),
                enables=tuple(sorted(later)),
            )
        )
    return plans


def _dependency_resolution(context: PlanContext) -> float:
    """Share of HARD prerequisite pairs the plan satisfies in order."""
    offset = 0 if context.config.allow_same_iteration_dependencies else 1
    total = 0
    satisfied = 0
    for item_id, prerequisites in context.prerequisites.items():
        total += len(prerequisites) + len(context.external.get(item_id, ()))
        position = context.positions.get(item_id)
        if position is None:
            continue
        satisfied += sum(
            1
            for p in prerequisites
            if p in context.positions and context.positions[p] + offset <= position
        )
    return round(satisfied / total, 4) if total else 1.0


def _summary(context: PlanContext, iteration_plans: list[IterationPlan]) -> ARTPlanSummary:
    stats = context.allocation.statistics
    rates = [stats.iteration_utilization.get(plan.iteration.id, 0.0) for plan in iteration_plans]
    average_utilization = sum(rates) / len(rates) if rates else 0.0
    balance = max(0.0, 1 - statistics.pstdev(rates)) if rates else 1.0

    with_work = [plan for plan in iteration_plans if plan.allocated_work]
    value_confidence = (
        sum(plan.deliverable_value.value_confidence for plan in with_work) / len(with_work)
        if with_work
        else 0.0
    )

    schedulable = context.index.schedulable()
    limit = context.config.decomposition.max_story_points
    properly_sized = (
        sum(1 for item in schedulable if item.estimate <= limit) / len(schedulable)
        if schedulable
        else 1.0
    )

    planning_confidence = (
        sum(plan.validation.score for plan in iteration_plans) / len(iteration_plans)
        if iteration_plans
        else 0.0
    )

    high_utilization = average_utilization > HIGH_UTILIZATION
    low_value = value_confidence < LOW_VALUE_CONFIDENCE
    many_dependencies = len(context.graph.edges) > len(context.index) * MANY_DEPENDENCIES_RATIO
    if high_utilization and low_value:
        risk_level = "high"
    elif high_utilization or low_value or many_dependencies:
        risk_level = "medium"
    else:
        risk_level = "low"

    return ARTPlanSummary(
        total_iterations=len(iteration_plans),
        total_work_items=stats.total_items,
        total_story_points=stats.total_points,
        allocated_story_points=stats.allocated_points,
        unallocated_items=stats.unallocated_items,
        average_capacity_utilization=round(average_utilization, 4),
        capacity_balance=round(balance, 4),
        total_dependencies=len(context.graph.edges),
        critical_path_length=len(context.graph.critical_path),
        value_delivery_confidence=round(value_confidence, 4),
        iterations_with_value=sum(
            1 for plan in iteration_plans if plan.deliverable_value.can_deliver_working_software
        ),
        properly_sized_stories=round(properly_sized, 4),
        dependency_resolution=_dependency_resolution(context),
        planning_confidence=round(planning_confidence, 4),
        risk_level=risk_level,
    )
