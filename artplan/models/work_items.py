"""Pydantic models for planning inputs.

Work items, teams and iterations are supplied by the caller (typically
fetched from an issue tracker) and treated as read-only by every stage.
Parent links are plain id lookups resolved through WorkItemIndex.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import date
from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from artplan.config import WorkItemType
from artplan.errors import ValidationError

logger = logging.getLogger(__name__)


# ========== Typed Attribute Records ==========


class EpicAttributes(BaseModel):
    """Metadata specific to epics."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["epic"] = "epic"
    business_outcome: str | None = None
    lean_business_case: str | None = None


class FeatureAttributes(BaseModel):
    """Metadata specific to features."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["feature"] = "feature"
    benefit_hypothesis: str | None = None
    is_user_facing: bool = False


class StoryAttributes(BaseModel):
    """Metadata specific to stories, including decomposition lineage."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["story"] = "story"
    user_story: str | None = None  # "As a ..., I want ..., so that ..."
    decomposed_from: str | None = None
    sub_story_index: int | None = None
    total_sub_stories: int | None = None


class EnablerAttributes(BaseModel):
    """Metadata specific to enablers."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["enabler"] = "enabler"
    enabler_type: str = "infrastructure"  # infrastructure, architectural, exploration, compliance
    decomposed_from: str | None = None
    sub_story_index: int | None = None
    total_sub_stories: int | None = None


WorkItemAttributes = Annotated[
    EpicAttributes | FeatureAttributes | StoryAttributes | EnablerAttributes,
    Field(discriminator="kind"),
]

_DEFAULT_ATTRIBUTES: dict[WorkItemType, type[BaseModel]] = {
    WorkItemType.EPIC: EpicAttributes,
    WorkItemType.FEATURE: FeatureAttributes,
    WorkItemType.STORY: StoryAttributes,
    WorkItemType.ENABLER: EnablerAttributes,
}


# ========== Work Items ==========


class WorkItem(BaseModel):
    """A backlog item: epic, feature, story or enabler.

    Stories and enablers are scheduled into iterations; epics and features
    only group them through parent_id.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    type: WorkItemType = WorkItemType.STORY
    title: str = Field(min_length=1)
    description: str = ""
    estimate: int = Field(default=0, ge=0)  # story points
    acceptance_criteria: list[str] = Field(default_factory=list)
    parent_id: str | None = None  # lookup key into WorkItemIndex
    labels: list[str] = Field(default_factory=list)
    priority: int | None = Field(default=None, ge=1, le=4)  # tracker priority, 1 = urgent
    dependencies: list[str] = Field(default_factory=list)  # explicit prerequisite ids
    attributes: WorkItemAttributes | None = None

    @model_validator(mode="after")
    def _check_attributes(self) -> "WorkItem":
        if self.attributes is not None and self.attributes.kind != self.type.value:
            raise ValueError(
                f"attributes of kind '{self.attributes.kind}' do not match type '{self.type.value}'"
            )
        if self.parent_id == self.id:
            raise ValueError(f"work item {self.id} cannot be its own parent")
        if self.id in self.dependencies:
            raise ValueError(f"work item {self.id} cannot depend on itself")
        return self

    @property
    def is_schedulable(self) -> bool:
        """Whether the item can be placed directly into an iteration."""
        return self.type in WorkItemType.schedulable()

    @property
    def typed_attributes(self) -> BaseModel:
        """The attribute record, falling back to the defaults for the item type."""
        return self.attributes or _DEFAULT_ATTRIBUTES[self.type]()

    @property
    def decomposed_from(self) -> str | None:
        """Id of the item this one was split from, if it is a decomposition part."""
        return getattr(self.typed_attributes, "decomposed_from", None)

    @property
    def text(self) -> str:
        """Title, description and acceptance criteria joined for text scanning."""
        return " ".join([self.title, self.description, *self.acceptance_criteria])


class ARTTeam(BaseModel):
    """A team on the release train."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    member_count: int = Field(default=5, ge=0)
    average_velocity: float = Field(default=0.0, ge=0)
    specializations: list[str] = Field(default_factory=list)
    capacity_factor: float = Field(default=1.0, ge=0, le=1)  # share of time on ART work

    @property
    def display_name(self) -> str:
        return self.name or self.id


class IterationCapacity(BaseModel):
    """Capacity of one team for one iteration.

    available_capacity is capacity after absences and other reductions;
    the allocator applies the planning buffer on top of it.
    """

    model_config = ConfigDict(frozen=True)

    team_id: str = Field(min_length=1)
    team_name: str = ""
    total_capacity: float = Field(ge=0)
    available_capacity: float | None = Field(default=None, ge=0)
    team_size: int = Field(default=0, ge=0)
    average_velocity: float = Field(default=0.0, ge=0)
    confidence_factor: float = Field(default=0.8, ge=0, le=1)

    @model_validator(mode="after")
    def _check_available(self) -> "IterationCapacity":
        if self.available_capacity is not None and self.available_capacity > self.total_capacity:
            raise ValueError(
                f"available_capacity ({self.available_capacity}) exceeds "
                f"total_capacity ({self.total_capacity}) for team {self.team_id}"
            )
        return self

    @property
    def available(self) -> float:
        """Available capacity, defaulting to the total."""
        if self.available_capacity is None:
            return self.total_capacity
        return self.available_capacity


class Iteration(BaseModel):
    """A time-boxed iteration of the Program Increment."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    start_date: date | None = None
    end_date: date | None = None
    duration_days: int = Field(default=14, ge=1)
    capacity: list[IterationCapacity] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self) -> "Iteration":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(f"iteration {self.id} ends before it starts")
        team_ids = [entry.team_id for entry in self.capacity]
        if len(team_ids) != len(set(team_ids)):
            raise ValueError(f"iteration {self.id} lists a team capacity more than once")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def capacity_for(self, team_id: str) -> IterationCapacity | None:
        """Capacity entry for a team, or None if the team has no entry."""
        for entry in self.capacity:
            if entry.team_id == team_id:
                return entry
        return None


# ========== Parsing ==========


def parse_work_items(records: Iterable[WorkItem | dict[str, Any]]) -> list[WorkItem]:
    """Validate raw records into WorkItems.

    Args:
        records: WorkItem instances or dicts with WorkItem fields

    Returns:
        List of WorkItem in input order

    Raises:
        ValidationError: If a record is malformed or ids are duplicated
    """
    items = [_parse(WorkItem, record) for record in records]
    _check_unique_ids("work item", [item.id for item in items])
    return items


def parse_teams(records: Iterable[ARTTeam | dict[str, Any]]) -> list[ARTTeam]:
    """Validate raw records into ARTTeams."""
    teams = [_parse(ARTTeam, record) for record in records]
    _check_unique_ids("team", [team.id for team in teams])
    return teams


def parse_iterations(records: Iterable[Iteration | dict[str, Any]]) -> list[Iteration]:
    """Validate raw records into Iterations."""
    iterations = [_parse(Iteration, record) for record in records]
    _check_unique_ids("iteration", [iteration.id for iteration in iterations])
    return iterations


def _parse(model: type[BaseModel], record: Any) -> Any:
    if isinstance(record, model):
        return record
    if isinstance(record, BaseModel):
        record = record.model_dump()
    try:
        return model.model_validate(record)
    except pydantic.ValidationError as e:
        record_id = record.get("id", "?") if isinstance(record, dict) else "?"
        raise ValidationError(
            f"Invalid {model.__name__} '{record_id}': {e.error_count()} error(s): "
            + "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()),
            affected_items=[str(record_id)],
        ) from e


def _check_unique_ids(label: str, ids: list[str]) -> None:
    seen: set[str] = set()
    duplicates = []
    for item_id in ids:
        if item_id in seen:
            duplicates.append(item_id)
        seen.add(item_id)
    if duplicates:
        raise ValidationError(
            f"Duplicate {label} ids: {sorted(set(duplicates))}",
            affected_items=sorted(set(duplicates)),
        )


# ========== Index ==========


class WorkItemIndex:
    """Read-only id lookup over a set of work items.

    Resolves parent and child links without holding object references
    between items.
    """

    def __init__(self, items: Iterable[WorkItem]):
        self._items: dict[str, WorkItem] = {}
        self._children: dict[str, list[str]] = {}
        for item in items:
            self._items[item.id] = item
        for item in self._items.values():
            if item.parent_id is not None:
                self._children.setdefault(item.parent_id, []).append(item.id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    @property
    def ids(self) -> list[str]:
        return list(self._items)

    def get(self, item_id: str) -> WorkItem | None:
        return self._items.get(item_id)

    def require(self, item_id: str) -> WorkItem:
        """Get an item, raising ValidationError if it is unknown."""
        item = self._items.get(item_id)
        if item is None:
            raise ValidationError(f"Unknown work item: {item_id}", affected_items=[item_id])
        return item

    def estimate_of(self, item_id: str, default: int = 0) -> int:
        item = self._items.get(item_id)
        return item.estimate if item else default

    def children_of(self, item_id: str) -> list[WorkItem]:
        return [self._items[child_id] for child_id in self._children.get(item_id, [])]

    def descendants_of(self, item_id: str) -> list[WorkItem]:
        """All transitive children, breadth first."""
        result: list[WorkItem] = []
        seen = {item_id}
        queue = [item_id]
        while queue:
            current = queue.pop(0)
            for child in self.children_of(current):
                if child.id not in seen:
                    seen.add(child.id)
                    result.append(child)
                    queue.append(child.id)
        return result

    def ancestors_of(self, item_id: str, max_depth: int | None = None) -> list[WorkItem]:
        """Parent chain from nearest to furthest.

        Stops at unknown parents, at max_depth, or when a parent loop is found.
        """
        result: list[WorkItem] = []
        seen = {item_id}
        item = self._items.get(item_id)
        while item is not None and item.parent_id is not None:
            if max_depth is not None and len(result) >= max_depth:
                break
            if item.parent_id in seen:
                logger.warning(f"Parent loop detected at work item {item.parent_id}")
                break
            parent = self._items.get(item.parent_id)
            if parent is None:
                break
            seen.add(parent.id)
            result.append(parent)
            item = parent
        return result

    def schedulable(self) -> list[WorkItem]:
        """Stories and enablers, in index order."""
        return [item for item in self._items.values() if item.is_schedulable]
