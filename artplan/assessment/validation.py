"""Per-iteration validation of an allocated plan."""

import logging

from artplan.assessment.context import PlanContext
from artplan.models.plan import DeliverableValue, IterationIssue, IterationValidation
from artplan.models.work_items import Iteration

logger = logging.getLogger(__name__)

# Issue codes
CAPACITY_OVER_ALLOCATION = "CAPACITY_OVER_ALLOCATION"
NO_WORKING_SOFTWARE = "NO_WORKING_SOFTWARE"
OVERSIZED_STORIES = "OVERSIZED_STORIES"
DEPENDENCY_ORDER_VIOLATION = "DEPENDENCY_ORDER_VIOLATION"

ERROR_PENALTY = 0.3
WARNING_PENALTY = 0.1


def validation_score(error_count: int, warning_count: int) -> float:
    return round(max(0.0, 1 - ERROR_PENALTY * error_count - WARNING_PENALTY * warning_count), 4)


def validate_iteration(
    context: PlanContext, iteration: Iteration, value: DeliverableValue
) -> IterationValidation:
    """Check one iteration for capacity, sizing, ordering and value problems.

    Args:
        context: The allocated plan
        iteration: Iteration to check
        value: Deliverable value already assessed for the iteration

    Returns:
        IterationValidation scored as 1 - 0.3 per error - 0.1 per warning, floor 0
    """
    errors: list[IterationIssue] = []
    warnings: list[IterationIssue] = []
    allocated = context.allocated_in(iteration.id)

    over = [u for u in context.allocation.utilization.get(iteration.id, ()) if u.is_over_allocated]
    if over:
        errors.append(
            IterationIssue(
                code=CAPACITY_OVER_ALLOCATION,
                message=(
                    f"{iteration.display_name} is over capacity for teams "
                    f"{', '.join(u.team_id for u in over)}"
                ),
                affected_items=tuple(
                    entry.work_item_id
                    for entry in allocated
                    if entry.assigned_team in {u.team_id for u in over}
                ),
            )
        )

    if allocated and not value.can_deliver_working_software:
        warnings.append(
            IterationIssue(
                code=NO_WORKING_SOFTWARE,
                message=f"{iteration.display_name} does not deliver working software",
            )
        )

    limit = context.config.decomposition.max_story_points
    oversized = [entry.work_item_id for entry in allocated if entry.allocated_points > limit]
    if oversized:
        errors.append(
            IterationIssue(
                code=OVERSIZED_STORIES,
                message=f"{len(oversized)} work items exceed {limit} story points",
                affected_items=tuple(oversized),
            )
        )

    late = [
        entry.work_item_id
        for entry in allocated
        if context.ordering_violations(entry.work_item_id)
    ]
    if late:
        errors.append(
            IterationIssue(
                code=DEPENDENCY_ORDER_VIOLATION,
                message=f"{len(late)} work items are scheduled before their prerequisites",
                affected_items=tuple(late),
            )
        )

    validation = IterationValidation(
        score=validation_score(len(errors), len(warnings)),
        errors=tuple(errors),
        warnings=tuple(warnings),
    )
    if not validation.is_valid:
        logger.debug(
            f"{iteration.id} failed validation: {', '.join(issue.code for issue in errors)}"
        )
    return validation
