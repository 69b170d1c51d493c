"""Story decomposition: split oversized work items into iteration-sized parts.

A decomposition either satisfies every invariant (each part within the
points limit, criteria conserved exactly, points conserved within one) or
raises DecompositionError. Invalid decompositions are never returned.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from artplan.config import DecompositionConfig, PointsStrategy, WorkItemType
from artplan.decomposition.strategies import (
    criteria_themes,
    distribute_criteria,
    distribute_points,
)
from artplan.errors import DecompositionError
from artplan.models.work_items import EnablerAttributes, StoryAttributes, WorkItem

logger = logging.getLogger(__name__)

# Terms in the title or description that signal technical complexity
COMPLEXITY_KEYWORDS = ("integration", "api", "database", "security", "performance")

# Complexity thresholds
MAX_SIMPLE_CRITERIA = 5
MAX_SIMPLE_DESCRIPTION = 500

# Focus text by (total parts, part index)
SUB_ITEM_FOCUS: dict[int, tuple[str, ...]] = {
    2: (
        "core functionality and initial implementation",
        "completion, validation, and edge cases",
    ),
    3: (
        "foundational setup and basic functionality",
        "core business logic and main features",
        "completion, testing, and edge cases",
    ),
    4: (
        "initial setup and basic structure",
        "core functionality implementation",
        "advanced features and integration",
        "finalization, testing, and validation",
    ),
}

_STEP_PATTERNS = (
    re.compile(r"^\s*\d+\.\s+(.+)$", re.MULTILINE),
    re.compile(r"^\s*[-*]\s+(.+)$", re.MULTILINE),
)


# ========== Result Types ==========


@dataclass(frozen=True)
class CriteriaMapping:
    """Where one original acceptance criterion ended up."""

    original: str
    original_index: int
    sub_item_id: str
    adapted: str  # criterion reworded for the part it belongs to
    rationale: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "original": self.original,
            "original_index": self.original_index,
            "sub_item_id": self.sub_item_id,
            "adapted": self.adapted,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class DecompositionAnalysis:
    """Whether and how an item should be split."""

    item_id: str
    should_decompose: bool
    current_points: int
    complexity_factors: tuple[str, ...] = ()
    suggested_count: int = 0
    logical_boundaries: tuple[str, ...] = ()
    risk_factors: tuple[str, ...] = ()
    confidence: float = 0.0


@dataclass(frozen=True)
class DecompositionResult:
    """A validated decomposition.

    Attributes:
        parent: The original item, unchanged
        sub_items: New items replacing the parent in planning
        criteria_mapping: One entry per original criterion, in original order
        points_distribution: Points per sub-item
        points_strategy: Strategy that produced the distribution
        rationale: Human-readable explanation
    """

    parent: WorkItem
    sub_items: tuple[WorkItem, ...]
    criteria_mapping: tuple[CriteriaMapping, ...]
    points_distribution: tuple[int, ...]
    points_strategy: PointsStrategy
    rationale: str
    analysis: DecompositionAnalysis | None = None

    @property
    def sub_item_ids(self) -> list[str]:
        return [item.id for item in self.sub_items]

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent_id": self.parent.id,
            "sub_items": [item.model_dump(mode="json") for item in self.sub_items],
            "criteria_mapping": [mapping.to_dict() for mapping in self.criteria_mapping],
            "points_distribution": list(self.points_distribution),
            "points_strategy": self.points_strategy.value,
            "rationale": self.rationale,
        }


@dataclass
class _Attempt:
    count: int
    strategy: PointsStrategy
    points: list[int]
    assignment: list[int]
    errors: list[str] = field(default_factory=list)


# ========== Decomposer ==========


class StoryDecomposer:
    """Splits stories and enablers that exceed the points limit."""

    def __init__(self, config: DecompositionConfig | None = None):
        """Initialize the decomposer.

        Args:
            config: Size limits and distribution strategies (defaults if not provided)
        """
        self.config = config or DecompositionConfig()

    def needs_decomposition(self, item: WorkItem) -> bool:
        """Stories and enablers larger than max_story_points."""
        return item.is_schedulable and item.estimate > self.config.max_story_points

    # ========== Analysis ==========

    def complexity_factors(self, item: WorkItem) -> list[str]:
        factors = []
        if len(item.acceptance_criteria) > MAX_SIMPLE_CRITERIA:
            factors.append("High number of acceptance criteria")
        if len(item.description) > MAX_SIMPLE_DESCRIPTION:
            factors.append("Lengthy description indicating complexity")
        content = f"{item.title} {item.description}".lower()
        if any(keyword in content for keyword in COMPLEXITY_KEYWORDS):
            factors.append("Technical complexity indicators present")
        return factors

    def suggested_count(self, item: WorkItem, factors: list[str] | None = None) -> int:
        """ceil(points / max), plus one for complex items, within the configured bounds."""
        factors = self.complexity_factors(item) if factors is None else factors
        count = math.ceil(item.estimate / self.config.max_story_points)
        if len(factors) > 2:
            count += 1
        return max(self.config.min_sub_stories, min(count, self.config.max_sub_stories))

    def logical_boundaries(self, item: WorkItem) -> list[str]:
        boundaries = criteria_themes(item.acceptance_criteria)
        steps = []
        for pattern in _STEP_PATTERNS:
            steps.extend(match.strip() for match in pattern.findall(item.description))
        return boundaries + steps[:5]

    def risk_factors(self, item: WorkItem) -> list[str]:
        risks = []
        if item.estimate > 15:
            risks.append("Very high story points may indicate epic-level work")
        if len(item.acceptance_criteria) < 2:
            risks.append("Limited acceptance criteria may result in unclear sub-stories")
        if len(item.description) < 100:
            risks.append("Brief description may lack detail for proper decomposition")
        return risks

    def analyze(self, item: WorkItem) -> DecompositionAnalysis:
        """Assess whether an item should be split and into how many parts."""
        if not self.needs_decomposition(item):
            return DecompositionAnalysis(
                item_id=item.id,
                should_decompose=False,
                current_points=item.estimate,
                risk_factors=("Story points within acceptable range",),
            )

        factors = self.complexity_factors(item)
        boundaries = self.logical_boundaries(item)
        risks = self.risk_factors(item)

        confidence = 0.5
        if len(item.acceptance_criteria) >= 3:
            confidence += 0.2
        if len(item.description) > 200:
            confidence += 0.1
        if factors:
            confidence += 0.1
        if boundaries:
            confidence += 0.1
        confidence -= 0.1 * len(risks)

        return DecompositionAnalysis(
            item_id=item.id,
            should_decompose=True,
            current_points=item.estimate,
            complexity_factors=tuple(factors),
            suggested_count=self.suggested_count(item, factors),
            logical_boundaries=tuple(boundaries),
            risk_factors=tuple(risks),
            confidence=round(max(0.0, min(1.0, confidence)), 4),
        )

    # ========== Decomposition ==========

    def decompose(self, item: WorkItem) -> DecompositionResult:
        """Split an oversized item into validated sub-items.

        Tries the configured points strategy, then even shares, then more
        sub-items (up to max_sub_stories and the number of criteria).

        Raises:
            DecompositionError: STORY_TOO_SMALL, INSUFFICIENT_CRITERIA,
                INVALID_POINTS, DECOMPOSITION_FAILED or VALIDATION_FAILED
        """
        self._check_decomposable(item)
        analysis = self.analyze(item)
        criteria = list(item.acceptance_criteria)

        first_count = min(analysis.suggested_count, len(criteria))
        attempts: list[_Attempt] = []
        for count in range(first_count, min(self.config.max_sub_stories, len(criteria)) + 1):
            assignment = distribute_criteria(self.config.criteria_strategy, criteria, count)
            criteria_counts = [assignment.count(index) for index in range(count)]
            for strategy in dict.fromkeys([self.config.points_strategy, PointsStrategy.EVEN]):
                points = distribute_points(
                    strategy, item.estimate, count, self.config.max_story_points, criteria_counts
                )
                attempt = _Attempt(count, strategy, points, assignment)
                attempt.errors = self._attempt_errors(item, attempt)
                attempts.append(attempt)
                if not attempt.errors:
                    result = self._build_result(item, attempt, analysis)
                    self._validate(item, result)
                    logger.info(
                        f"Decomposed {item.id} ({item.estimate} pts) into {count} parts "
                        f"{points} using {strategy.value} points"
                    )
                    return result
                logger.debug(f"Decomposition attempt for {item.id} rejected: {attempt.errors}")

        last = attempts[-1]
        raise DecompositionError(
            f"Could not split {item.id} ({item.estimate} pts) into at most "
            f"{self.config.max_sub_stories} parts of <= {self.config.max_story_points} pts: "
            + "; ".join(last.errors),
            code="DECOMPOSITION_FAILED",
            item_id=item.id,
            details={"attempts": len(attempts), "last_points": last.points},
        )

    def decompose_batch(
        self, items: list[WorkItem]
    ) -> tuple[list[DecompositionResult], list[DecompositionError]]:
        """Decompose every oversized item; one failure never stops the others.

        Returns:
            (successful results, errors) in input order
        """
        results: list[DecompositionResult] = []
        errors: list[DecompositionError] = []
        for item in items:
            if not self.needs_decomposition(item):
                continue
            try:
                results.append(self.decompose(item))
            except DecompositionError as e:
                logger.warning(f"Decomposition failed for {item.id}: [{e.code}] {e.message}")
                errors.append(e)
        return results, errors

    # ========== Helpers ==========

    def _check_decomposable(self, item: WorkItem) -> None:
        if not item.is_schedulable:
            raise DecompositionError(
                f"{item.type.value} {item.id} is split through its children, not decomposed",
                code="INVALID_POINTS",
                item_id=item.id,
            )
        if item.estimate <= self.config.max_story_points:
            raise DecompositionError(
                f"{item.id} has {item.estimate} pts, "
                f"within the {self.config.max_story_points}-pt limit",
                code="STORY_TOO_SMALL",
                item_id=item.id,
                details={"estimate": item.estimate},
            )
        if len(item.acceptance_criteria) < self.config.min_sub_stories:
            raise DecompositionError(
                f"{item.id} has {len(item.acceptance_criteria)} acceptance criteria; "
                f"at least {self.config.min_sub_stories} are needed to split it",
                code="INSUFFICIENT_CRITERIA",
                item_id=item.id,
                details={"criteria": len(item.acceptance_criteria)},
            )
        if len(set(item.acceptance_criteria)) != len(item.acceptance_criteria):
            raise DecompositionError(
                f"{item.id} has duplicate acceptance criteria",
                code="INSUFFICIENT_CRITERIA",
                item_id=item.id,
            )

    def _attempt_errors(self, item: WorkItem, attempt: _Attempt) -> list[str]:
        errors = []
        if len(attempt.points) != attempt.count:
            errors.append(f"expected {attempt.count} shares, got {len(attempt.points)}")
        oversized = [p for p in attempt.points if p > self.config.max_story_points]
        if oversized:
            errors.append(f"shares {oversized} exceed {self.config.max_story_points} pts")
        if any(p < 1 for p in attempt.points):
            errors.append("every part needs at least 1 pt")
        if abs(sum(attempt.points) - item.estimate) > 1:
            errors.append(f"shares sum to {sum(attempt.points)}, estimate is {item.estimate}")
        empty = [i + 1 for i in range(attempt.count) if i not in attempt.assignment]
        if empty:
            errors.append(f"parts {empty} received no acceptance criteria")
        return errors

    def _build_result(
        self, item: WorkItem, attempt: _Attempt, analysis: DecompositionAnalysis
    ) -> DecompositionResult:
        count = attempt.count
        sub_ids = [f"{item.id}-{i + 1}" for i in range(count)]

        mappings = []
        pairs = zip(item.acceptance_criteria, attempt.assignment)
        for index, (criterion, part) in enumerate(pairs):
            mappings.append(
                CriteriaMapping(
                    original=criterion,
                    original_index=index,
                    sub_item_id=sub_ids[part],
                    adapted=f"{criterion} (Part {part + 1} of {count})",
                    rationale=(
                        f"{self.config.criteria_strategy.value.capitalize()} distribution "
                        f"to part {part + 1}"
                    ),
                )
            )

        sub_items = []
        for part in range(count):
            criteria = [m.original for m in mappings if m.sub_item_id == sub_ids[part]]
            sub_items.append(
                self._sub_item(item, sub_ids[part], part, count, attempt.points[part], criteria)
            )

        return DecompositionResult(
            parent=item,
            sub_items=tuple(sub_items),
            criteria_mapping=tuple(mappings),
            points_distribution=tuple(attempt.points),
            points_strategy=attempt.strategy,
            rationale=self._rationale(item, analysis, attempt),
            analysis=analysis,
        )

    def _sub_item(
        self,
        parent: WorkItem,
        sub_id: str,
        part: int,
        count: int,
        points: int,
        criteria: list[str],
    ) -> WorkItem:
        focus_options = SUB_ITEM_FOCUS.get(count)
        if focus_options:
            focus = focus_options[part]
        else:
            focus = f"component {part + 1} of the overall implementation"
        description = "\n".join(
            [
                f'This is part {part + 1} of {count} decomposed from: "{parent.title}"',
                "",
                f"**Story Points**: {points}",
                "",
                "**Parent Context**:",
                parent.description,
                "",
                "**Focus**:",
                f"This part focuses on {focus}.",
            ]
        )

        parent_attributes = parent.typed_attributes
        if parent.type == WorkItemType.ENABLER:
            attributes = EnablerAttributes(
                enabler_type=parent_attributes.enabler_type,
                decomposed_from=parent.id,
                sub_story_index=part + 1,
                total_sub_stories=count,
            )
        else:
            attributes = StoryAttributes(
                user_story=parent_attributes.user_story,
                decomposed_from=parent.id,
                sub_story_index=part + 1,
                total_sub_stories=count,
            )

        return WorkItem(
            id=sub_id,
            type=parent.type,
            title=f"{parent.title} - Part {part + 1} of {count}",
            description=description,
            estimate=points,
            acceptance_criteria=criteria,
            parent_id=parent.parent_id,
            labels=[*parent.labels, "decomposed", f"sub-story-{part + 1}"],
            priority=parent.priority,
            dependencies=list(parent.dependencies),
            attributes=attributes,
        )

    def _rationale(
        self, item: WorkItem, analysis: DecompositionAnalysis, attempt: _Attempt
    ) -> str:
        parts = [
            f"Item with {item.estimate} points exceeds the "
            f"{self.config.max_story_points}-point limit for implementable stories."
        ]
        if analysis.complexity_factors:
            factors = ", ".join(analysis.complexity_factors)
            parts.append(f"Complexity factors identified: {factors}.")
        if analysis.logical_boundaries:
            parts.append(
                f"Logical decomposition boundaries: {', '.join(analysis.logical_boundaries[:3])}."
            )
        parts.append(
            f"Decomposed into {attempt.count} sub-items using {attempt.strategy.value} point "
            f"distribution and {self.config.criteria_strategy.value} criteria distribution."
        )
        return " ".join(parts)

    def _validate(self, item: WorkItem, result: DecompositionResult) -> None:
        """Final invariant check on the built result."""
        errors = []
        oversized = [
            sub.id for sub in result.sub_items if sub.estimate > self.config.max_story_points
        ]
        if oversized:
            errors.append(f"sub-items over {self.config.max_story_points} pts: {oversized}")

        assigned = [c for sub in result.sub_items for c in sub.acceptance_criteria]
        if sorted(assigned) != sorted(item.acceptance_criteria):
            errors.append("acceptance criteria were lost or duplicated")

        total = sum(sub.estimate for sub in result.sub_items)
        if abs(total - item.estimate) > 1:
            errors.append(f"sub-item points sum to {total}, original estimate is {item.estimate}")

        if errors:
            raise DecompositionError(
                f"Decomposition of {item.id} failed validation: {'; '.join(errors)}",
                code="VALIDATION_FAILED",
                item_id=item.id,
                details={"errors": errors},
            )


def apply_decompositions(
    items: list[WorkItem], results: list[DecompositionResult]
) -> list[WorkItem]:
    """Replace decomposed parents by their sub-items.

    Dependencies on a decomposed parent are rewritten to depend on every
    one of its sub-items. Sub-items take the parent's position in the list.

    Raises:
        DecompositionError: If a generated sub-item id collides with an existing item
    """
    replaced = {result.parent.id: result for result in results}
    existing = {item.id for item in items}
    for result in results:
        clashes = sorted(set(result.sub_item_ids) & existing)
        if clashes:
            raise DecompositionError(
                f"Sub-item ids {clashes} for {result.parent.id} collide with existing work items",
                code="DECOMPOSITION_FAILED",
                item_id=result.parent.id,
            )

    def rewrite(dependencies: list[str]) -> list[str]:
        rewritten: list[str] = []
        for dependency in dependencies:
            targets = replaced[dependency].sub_item_ids if dependency in replaced else [dependency]
            rewritten.extend(target for target in targets if target not in rewritten)
        return rewritten

    planned: list[WorkItem] = []
    for item in items:
        expanded = replaced[item.id].sub_items if item.id in replaced else (item,)
        for planned_item in expanded:
            if any(dependency in replaced for dependency in planned_item.dependencies):
                planned_item = planned_item.model_copy(
                    update={"dependencies": rewrite(planned_item.dependencies)}
                )
            planned.append(planned_item)
    return planned
