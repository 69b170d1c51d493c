"""Iteration calendar for a Program Increment."""

import logging
from datetime import date, timedelta

from artplan.allocation.capacity import CapacityManager
from artplan.config import ARTPlanningConfig
from artplan.errors import ValidationError
from artplan.models.work_items import ARTTeam, Iteration

logger = logging.getLogger(__name__)


def create_iterations(
    pi_start: date,
    count: int | None = None,
    length_days: int | None = None,
    teams: list[ARTTeam] | None = None,
    config: ARTPlanningConfig | None = None,
    id_prefix: str = "iteration",
) -> list[Iteration]:
    """Build consecutive iterations starting at pi_start.

    Args:
        pi_start: First day of the Program Increment
        count: Number of iterations (defaults to the planning horizon)
        length_days: Iteration length (defaults to iteration_length_days)
        teams: Teams whose velocity-based capacity is attached to each iteration
        config: Planning configuration
        id_prefix: Iteration ids are "<id_prefix>-<n>"

    Returns:
        Iterations in calendar order, end date inclusive

    Raises:
        ValidationError: If count or length_days is not positive
    """
    config = config or ARTPlanningConfig()
    count = config.planning_horizon if count is None else count
    length_days = length_days or config.iteration_length_days
    if count < 1:
        raise ValidationError(f"Iteration count must be >= 1, got: {count}")
    if length_days < 1:
        raise ValidationError(f"Iteration length must be >= 1 day, got: {length_days}")

    manager = CapacityManager(config)
    iterations = []
    for number in range(1, count + 1):
        start = pi_start + timedelta(days=(number - 1) * length_days)
        iterations.append(
            Iteration(
                id=f"{id_prefix}-{number}",
                name=f"Iteration {number}",
                start_date=start,
                end_date=start + timedelta(days=length_days - 1),
                duration_days=length_days,
                capacity=[
                    manager.build_iteration_capacity(team, length_days)
                    for team in sorted(teams or [], key=lambda team: team.id)
                ],
            )
        )

    logger.debug(f"Created {count} iterations of {length_days} days from {pi_start.isoformat()}")
    return iterations
