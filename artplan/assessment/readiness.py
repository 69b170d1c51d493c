"""ART readiness: six weighted categories, critical blockers and an improvement plan.

Categories:
- story_readiness: stories are sized to fit and carry acceptance criteria
- dependency_resolution: HARD prerequisites are scheduled and ordered
- capacity_allocation: the backlog fits without overloading teams
- value_delivery: iterations ship working software
- risk_mitigation: few high-severity value risks and no open cycles
- team_alignment: utilization is even across teams
"""

import logging
import statistics

from artplan.assessment.context import PlanContext
from artplan.config import CATEGORY_ATTENTION_THRESHOLD, ARTPlanningConfig, ReadinessCategory
from artplan.models.plan import (
    ARTReadinessResult,
    ImprovementAction,
    ImprovementPlan,
    IterationPlan,
    ReadinessAssessment,
)

logger = logging.getLogger(__name__)

# Category formula weights
OVERSIZED_PENALTY = 0.5
MISSING_CRITERIA_PENALTY = 0.3
ORDERING_VIOLATION_PENALTY = 0.1
OVER_ALLOCATION_PENALTY = 0.6
VALUE_RISK_PENALTY = 0.2
WARNING_CYCLE_PENALTY = 0.1

# Improvement plan triggers
LOW_VALUE_CONFIDENCE = 0.6
HIGH_AVERAGE_DEPENDENCIES = 2
QUICK_WIN_IMPACT = 0.05
STRATEGIC_IMPACT = 0.1
IMPROVEMENT_REALIZATION = 0.8

_PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

CATEGORY_RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    ReadinessCategory.STORY_READINESS.value: (
        "Decompose oversized stories before planning",
        "Add acceptance criteria to stories that lack them",
    ),
    ReadinessCategory.DEPENDENCY_RESOLUTION.value: (
        "Schedule or remove unresolved prerequisites",
        "Review dependency ordering with the owning teams",
    ),
    ReadinessCategory.CAPACITY_ALLOCATION.value: (
        "Reduce scope or add capacity for unallocated work",
        "Rebalance over-allocated iterations",
    ),
    ReadinessCategory.VALUE_DELIVERY.value: (
        "Ensure every iteration delivers working software",
        "Front-load user-facing stories",
    ),
    ReadinessCategory.RISK_MITIGATION.value: (
        "Agree mitigations for high-severity value risks",
        "Resolve remaining circular dependencies",
    ),
    ReadinessCategory.TEAM_ALIGNMENT.value: (
        "Balance work across teams",
        "Cross-train teams to share specialized work",
    ),
}

# (action id, action text, priority, impact, effort, risks)
CATEGORY_ACTIONS: dict[str, tuple[str, str, str, float, str, tuple[str, ...]]] = {
    ReadinessCategory.STORY_READINESS.value: (
        "improve-story-readiness",
        "Complete acceptance criteria and split oversized stories",
        "high",
        0.12,
        "low",
        ("Refinement time competes with delivery work",),
    ),
    ReadinessCategory.DEPENDENCY_RESOLUTION.value: (
        "resolve-dependencies",
        "Resolve blocking dependencies and agree delivery dates with other teams",
        "high",
        0.15,
        "medium",
        ("External teams may not commit in time",),
    ),
    ReadinessCategory.CAPACITY_ALLOCATION.value: (
        "balance-capacity",
        "Rebalance work to fit team capacity",
        "medium",
        0.1,
        "medium",
        ("Deferred work may delay dependent features",),
    ),
    ReadinessCategory.VALUE_DELIVERY.value: (
        "increase-value-focus",
        "Move user-facing stories into iterations without deliverable value",
        "medium",
        0.08,
        "low",
        ("Enabler work may be postponed",),
    ),
    ReadinessCategory.RISK_MITIGATION.value: (
        "mitigate-risks",
        "Assign owners and mitigations to high-severity risks",
        "medium",
        0.06,
        "low",
        (),
    ),
    ReadinessCategory.TEAM_ALIGNMENT.value: (
        "align-teams",
        "Redistribute work between over- and under-utilized teams",
        "low",
        0.05,
        "medium",
        ("Teams may lack the specialization for moved work",),
    ),
}


def _clamp(value: float) -> float:
    return round(max(0.0, min(1.0, value)), 4)


class ReadinessAssessor:
    """Scores how ready an allocated plan is for PI execution."""

    def __init__(self, config: ARTPlanningConfig | None = None):
        self.config = config or ARTPlanningConfig()

    # ========== Categories ==========

    def story_readiness(self, context: PlanContext) -> ReadinessAssessment:
        items = context.index.schedulable()
        if not items:
            return self._assessment(
                ReadinessCategory.STORY_READINESS, 0.0, ["No schedulable work items"]
            )
        limit = self.config.decomposition.max_story_points
        oversized = [item.id for item in items if item.estimate > limit]
        missing = [item.id for item in items if not item.acceptance_criteria]
        score = (
            1
            - OVERSIZED_PENALTY * len(oversized) / len(items)
            - MISSING_CRITERIA_PENALTY * len(missing) / len(items)
        )
        issues = []
        if oversized:
            issues.append(f"{len(oversized)} work items exceed {limit} story points")
        if missing:
            issues.append(f"{len(missing)} work items have no acceptance criteria")
        return self._assessment(ReadinessCategory.STORY_READINESS, score, issues)

    def dependency_resolution(self, context: PlanContext) -> ReadinessAssessment:
        pairs = [
            (item_id, prerequisite)
            for item_id, prerequisites in context.prerequisites.items()
            for prerequisite in prerequisites
        ]
        pairs += [
            (item_id, prerequisite)
            for item_id, prerequisites in context.external.items()
            for prerequisite in prerequisites
        ]
        unresolved = [pair for pair in pairs if pair[1] not in context.positions]
        violations = [
            item_id for item_id in context.positions if context.ordering_violations(item_id)
        ]
        score = 1 - len(unresolved) / len(pairs) if pairs else 1.0
        score -= ORDERING_VIOLATION_PENALTY * len(violations)

        issues = []
        if unresolved:
            issues.append(f"{len(unresolved)} of {len(pairs)} HARD dependencies are unresolved")
        if violations:
            issues.append(f"{len(violations)} work items are scheduled before their prerequisites")
        return self._assessment(ReadinessCategory.DEPENDENCY_RESOLUTION, score, issues)

    def capacity_allocation(
        self, context: PlanContext, iteration_plans: list[IterationPlan]
    ) -> ReadinessAssessment:
        stats = context.allocation.statistics
        over = [
            p.iteration.id
            for p in iteration_plans
            if any(u.is_over_allocated for u in p.capacity_utilization)
        ]
        over_ratio = len(over) / len(iteration_plans) if iteration_plans else 0.0
        score = stats.allocation_rate - OVER_ALLOCATION_PENALTY * over_ratio

        issues = []
        if stats.unallocated_items:
            issues.append(
                f"{stats.unallocated_items} work items "
                f"({stats.total_points - stats.allocated_points} points) could not be allocated"
            )
        if over:
            issues.append(f"Iterations over capacity: {', '.join(over)}")
        return self._assessment(ReadinessCategory.CAPACITY_ALLOCATION, score, issues)

    def value_delivery(self, iteration_plans: list[IterationPlan]) -> ReadinessAssessment:
        if not iteration_plans:
            return self._assessment(
                ReadinessCategory.VALUE_DELIVERY, 0.0, ["No iterations planned"]
            )
        with_value = [
            p for p in iteration_plans if p.deliverable_value.can_deliver_working_software
        ]
        risky = [
            p
            for p in iteration_plans
            if any(risk.severity == "high" for risk in p.deliverable_value.value_risks)
        ]
        ratio = len(with_value) / len(iteration_plans)
        score = ratio - VALUE_RISK_PENALTY * len(risky) / len(iteration_plans)

        issues = []
        if ratio < self.config.min_value_delivery_threshold:
            issues.append(
                f"Only {len(with_value)} of {len(iteration_plans)} iterations "
                "deliver working software"
            )
        low_confidence = [
            p.iteration.id
            for p in iteration_plans
            if p.allocated_work
            and p.deliverable_value.value_confidence < self.config.readiness.min_value_confidence
        ]
        if low_confidence:
            issues.append(f"Low value confidence in {', '.join(low_confidence)}")
        return self._assessment(ReadinessCategory.VALUE_DELIVERY, score, issues)

    def risk_mitigation(
        self, context: PlanContext, iteration_plans: list[IterationPlan]
    ) -> ReadinessAssessment:
        risks = [risk for p in iteration_plans for risk in p.deliverable_value.value_risks]
        high = [risk for risk in risks if risk.severity == "high"]
        warning_cycles = [c for c in context.graph.circular_dependencies if not c.is_critical]
        score = 1 - (len(high) / len(risks) if risks else 0.0)
        score -= WARNING_CYCLE_PENALTY * len(warning_cycles)

        issues = []
        if high:
            issues.append(f"{len(high)} high-severity value risks")
        if warning_cycles:
            issues.append(f"{len(warning_cycles)} circular dependencies resolved by dropping edges")
        return self._assessment(ReadinessCategory.RISK_MITIGATION, score, issues)

    def team_alignment(self, iteration_plans: list[IterationPlan]) -> ReadinessAssessment:
        rates: dict[str, list[float]] = {}
        for plan in iteration_plans:
            for utilization in plan.capacity_utilization:
                rates.setdefault(utilization.team_id, []).append(utilization.utilization_rate)
        averages = [sum(values) / len(values) for values in rates.values()]
        if len(averages) < 2:
            return self._assessment(ReadinessCategory.TEAM_ALIGNMENT, 1.0, [])

        mean = sum(averages) / len(averages)
        deviation = statistics.pstdev(averages) / mean if mean > 0 else 0.0
        issues = []
        if deviation > 0.3:
            issues.append(f"Team utilization varies by {deviation:.0%} around the average")
        return self._assessment(ReadinessCategory.TEAM_ALIGNMENT, 1 - min(1.0, deviation), issues)

    # ========== Overall ==========

    def assess(
        self, context: PlanContext, iteration_plans: list[IterationPlan]
    ) -> ARTReadinessResult:
        """Score every category and combine them into overall readiness.

        Args:
            context: The allocated plan
            iteration_plans: Iteration plans with value and validation filled in

        Returns:
            ARTReadinessResult; ready when the weighted score reaches
            min_readiness_score and nothing blocks execution
        """
        assessments = [
            self.story_readiness(context),
            self.dependency_resolution(context),
            self.capacity_allocation(context, iteration_plans),
            self.value_delivery(iteration_plans),
            self.risk_mitigation(context, iteration_plans),
            self.team_alignment(iteration_plans),
        ]

        weights = self.config.readiness.category_weights
        total_weight = sum(weights.get(a.category, 0.0) for a in assessments)
        score = (
            sum(a.score * weights.get(a.category, 0.0) for a in assessments) / total_weight
            if total_weight
            else 0.0
        )

        blockers = self.critical_blockers(context, iteration_plans)
        recommendations: list[str] = []
        for assessment in assessments:
            for recommendation in assessment.recommendations:
                if recommendation not in recommendations:
                    recommendations.append(recommendation)

        result = ARTReadinessResult(
            is_ready=score >= self.config.readiness.min_readiness_score and not blockers,
            readiness_score=round(score, 4),
            assessments=tuple(assessments),
            critical_blockers=tuple(blockers),
            recommendations=tuple(recommendations),
        )
        logger.info(
            f"ART readiness {result.readiness_score:.2f} "
            f"({'ready' if result.is_ready else 'not ready'}, {len(blockers)} critical blockers)"
        )
        return result

    @staticmethod
    def critical_blockers(context: PlanContext, iteration_plans: list[IterationPlan]) -> list[str]:
        blockers = []
        for cycle in context.graph.critical_cycles:
            blockers.append(f"Circular HARD dependency: {' -> '.join(cycle.cycle)}")

        unallocated = {entry.work_item_id for entry in context.allocation.unallocated}
        stranded = [item_id for item_id in context.graph.critical_path if item_id in unallocated]
        if stranded:
            blockers.append(f"Critical path items not allocated: {', '.join(stranded)}")

        for plan in iteration_plans:
            over = [u.team_id for u in plan.capacity_utilization if u.is_over_allocated]
            if over:
                blockers.append(
                    f"{plan.iteration.display_name} is over capacity for {', '.join(over)}"
                )
        return blockers

    def _assessment(
        self, category: ReadinessCategory, score: float, issues: list[str]
    ) -> ReadinessAssessment:
        score = _clamp(score)
        recommendations = (
            CATEGORY_RECOMMENDATIONS[category.value] if score < CATEGORY_ATTENTION_THRESHOLD else ()
        )
        return ReadinessAssessment(
            category=category.value,
            score=score,
            is_ready=score >= CATEGORY_ATTENTION_THRESHOLD,
            issues=tuple(issues),
            recommendations=recommendations,
        )

    # ========== Improvement Plan ==========

    def improvement_plan(
        self,
        readiness: ARTReadinessResult,
        context: PlanContext,
        iteration_plans: list[IterationPlan],
    ) -> ImprovementPlan:
        """Prioritized actions that would lift readiness toward the target score.

        Each category below the target score contributes its action. Plan-wide
        triggers add value distribution, capacity and dependency actions.
        """
        target = self.config.readiness.target_readiness_score
        actions: list[ImprovementAction] = []
        for assessment in readiness.assessments:
            if assessment.score >= target:
                continue
            action_id, text, priority, impact, effort, risks = CATEGORY_ACTIONS[assessment.category]
            actions.append(
                ImprovementAction(
                    id=action_id,
                    category=assessment.category,
                    action=text,
                    priority=priority,
                    estimated_impact=impact,
                    effort_required=effort,
                    risks=risks,
                )
            )

        confidences = [
            p.deliverable_value.value_confidence for p in iteration_plans if p.allocated_work
        ]
        if confidences and min(confidences) < LOW_VALUE_CONFIDENCE:
            actions.append(
                ImprovementAction(
                    id="improve-value-distribution",
                    category=ReadinessCategory.VALUE_DELIVERY.value,
                    action="Redistribute work so each iteration delivers confident value",
                    priority="high",
                    estimated_impact=0.15,
                    effort_required="medium",
                    risks=("May require re-sequencing dependent work",),
                )
            )

        if any(any(u.is_over_allocated for u in p.capacity_utilization) for p in iteration_plans):
            actions.append(
                ImprovementAction(
                    id="optimize-capacity",
                    category=ReadinessCategory.CAPACITY_ALLOCATION.value,
                    action="Move work out of over-allocated iterations",
                    priority="high",
                    estimated_impact=0.1,
                    effort_required="medium",
                    risks=("Moved work may miss its iteration goal",),
                )
            )

        if context.graph.statistics.average_dependencies > HIGH_AVERAGE_DEPENDENCIES:
            actions.append(
                ImprovementAction(
                    id="simplify-dependencies",
                    category=ReadinessCategory.DEPENDENCY_RESOLUTION.value,
                    action="Reduce coupling between work items to shorten dependency chains",
                    priority="medium",
                    estimated_impact=0.08,
                    effort_required="high",
                    risks=("Architectural changes may be needed",),
                )
            )

        actions.sort(key=lambda a: (_PRIORITY_RANK[a.priority], -a.estimated_impact, a.id))
        quick_wins = [
            a
            for a in actions
            if a.effort_required == "low" and a.estimated_impact >= QUICK_WIN_IMPACT
        ]
        strategic = [
            a for a in actions if a.priority == "high" and a.estimated_impact >= STRATEGIC_IMPACT
        ]
        total_impact = sum(a.estimated_impact for a in actions)
        estimated = min(1 - readiness.readiness_score, total_impact * IMPROVEMENT_REALIZATION)

        return ImprovementPlan(
            current_readiness_score=readiness.readiness_score,
            target_readiness_score=target,
            prioritized_actions=tuple(actions),
            quick_wins=tuple(quick_wins),
            strategic_improvements=tuple(strategic),
            estimated_improvement=round(max(0.0, estimated), 4),
        )
