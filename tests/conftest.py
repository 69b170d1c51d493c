"""Shared test fixtures and helpers.

Work item text in these fixtures is deliberately plain: no business-flow
phrases, technical keywords or other item ids, so the only dependencies
in a backlog are the ones a test declares.
"""

import pytest

from artplan.config import ARTPlanningConfig, WorkItemType
from artplan.models.work_items import ARTTeam, Iteration, IterationCapacity, WorkItem


def build_item(
    item_id: str,
    estimate: int = 3,
    dependencies: list[str] | None = None,
    criteria: list[str] | None = None,
    item_type: WorkItemType = WorkItemType.STORY,
    **fields,
) -> WorkItem:
    """A work item with neutral title and criteria."""
    if criteria is None:
        criteria = [f"{item_id} renders correctly"]
    return WorkItem(
        id=item_id,
        type=item_type,
        title=fields.pop("title", f"Item {item_id}"),
        estimate=estimate,
        acceptance_criteria=criteria,
        dependencies=dependencies or [],
        **fields,
    )


def build_iterations(
    count: int, capacity: float = 25, team_ids: tuple[str, ...] = ("team-a",)
) -> list[Iteration]:
    """Iterations it-1..it-n with the same capacity entry per team."""
    return [
        Iteration(
            id=f"it-{number}",
            name=f"Iteration {number}",
            capacity=[
                IterationCapacity(team_id=team_id, total_capacity=capacity) for team_id in team_ids
            ],
        )
        for number in range(1, count + 1)
    ]


def build_teams(*team_ids: str) -> list[ARTTeam]:
    return [ARTTeam(id=team_id, name=team_id.title()) for team_id in team_ids or ("team-a",)]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_item():
    """Factory for neutral work items."""
    return build_item


@pytest.fixture
def make_iterations():
    """Factory for iterations with identical team capacity."""
    return build_iterations


@pytest.fixture
def teams() -> list[ARTTeam]:
    return build_teams("team-a")


@pytest.fixture
def config() -> ARTPlanningConfig:
    return ARTPlanningConfig()


@pytest.fixture
def ten_five_point_stories() -> list[WorkItem]:
    """Ten independent 5-point stories s01..s10."""
    return [build_item(f"s{number:02d}", estimate=5) for number in range(1, 11)]


@pytest.fixture
def chain_backlog() -> list[WorkItem]:
    """An 8-point story that requires a 3-point story.

    The large story has a single acceptance criterion, so it cannot be
    decomposed and is planned whole.
    """
    return [
        build_item("story-a", estimate=8, dependencies=["story-b"]),
        build_item("story-b", estimate=3),
    ]
