"""Centralized configuration for the ART planning engine.

This module provides a single source of truth for planning constants,
thresholds and per-stage configuration objects.

Design Principles:
- All capacity, scoring and readiness thresholds in one place
- Stage configurations defined as frozen dataclasses
- Enums for type-safe work item, dependency and priority values
- Optional YAML overrides loaded through load_planning_config()
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ValidationError

logger = logging.getLogger(__name__)

# =============================================================================
# Enums for Type Safety
# =============================================================================


class WorkItemType(Enum):
    """Kinds of work item in the backlog hierarchy."""

    EPIC = "epic"
    FEATURE = "feature"
    STORY = "story"
    ENABLER = "enabler"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid work item types as strings."""
        return [item_type.value for item_type in cls]

    @classmethod
    def schedulable(cls) -> tuple["WorkItemType", ...]:
        """Types that can be placed directly into an iteration."""
        return (cls.STORY, cls.ENABLER)


class DependencyType(Enum):
    """Relationship between two work items, read from source to target."""

    BLOCKS = "blocks"  # source must finish before target
    BLOCKED_BY = "blocked_by"  # source waits for target
    REQUIRES = "requires"  # source waits for target
    ENABLES = "enables"  # source makes target possible
    RELATED = "related"
    CONFLICTS = "conflicts"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid dependency types as strings."""
        return [dep_type.value for dep_type in cls]


class DependencyStrength(Enum):
    """How binding a dependency is for scheduling."""

    HARD = "hard"
    SOFT = "soft"
    OPTIONAL = "optional"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid strengths as strings."""
        return [strength.value for strength in cls]


class DetectionMethod(Enum):
    """How a dependency relationship was found."""

    KEYWORD = "keyword"
    SEMANTIC = "semantic"
    PATTERN = "pattern"
    MANUAL = "manual"
    INHERITED = "inherited"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid detection methods as strings."""
        return [method.value for method in cls]


class CycleSeverity(Enum):
    """Severity of a circular dependency."""

    CRITICAL = "critical"  # every edge in the cycle is HARD
    WARNING = "warning"


class PointsStrategy(Enum):
    """How a decomposed item's estimate is split across sub-items."""

    EVEN = "even"
    WEIGHTED = "weighted"
    FIBONACCI = "fibonacci"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid points strategies as strings."""
        return [strategy.value for strategy in cls]


class CriteriaStrategy(Enum):
    """How acceptance criteria are distributed across sub-items."""

    SEQUENTIAL = "sequential"
    THEMATIC = "thematic"
    BALANCED = "balanced"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid criteria strategies as strings."""
        return [strategy.value for strategy in cls]


class PriorityTier(Enum):
    """Discrete priority derived from a WSJF score."""

    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def tracker_priority(self) -> int:
        """Issue tracker priority number (1 is most urgent)."""
        return TRACKER_PRIORITIES[self]


class ReadinessCategory(Enum):
    """Categories scored by the ART readiness assessment."""

    STORY_READINESS = "story_readiness"
    DEPENDENCY_RESOLUTION = "dependency_resolution"
    CAPACITY_ALLOCATION = "capacity_allocation"
    VALUE_DELIVERY = "value_delivery"
    RISK_MITIGATION = "risk_mitigation"
    TEAM_ALIGNMENT = "team_alignment"

    @classmethod
    def values(cls) -> list[str]:
        """Return all readiness categories as strings."""
        return [category.value for category in cls]


class ValueStreamType(Enum):
    """Value stream a work item contributes to."""

    CUSTOMER_FACING = "customer-facing"
    REVENUE_GENERATING = "revenue-generating"
    EFFICIENCY_IMPROVING = "efficiency-improving"
    TECHNICAL_DEBT = "technical-debt"
    INFRASTRUCTURE = "infrastructure"


TRACKER_PRIORITIES: dict[PriorityTier, int] = {
    PriorityTier.URGENT: 1,
    PriorityTier.HIGH: 2,
    PriorityTier.MEDIUM: 3,
    PriorityTier.LOW: 4,
}


# =============================================================================
# Dependency Detection
# =============================================================================

DEFAULT_TECHNICAL_KEYWORDS = (
    "api",
    "service",
    "component",
    "library",
    "framework",
    "database",
    "schema",
    "infrastructure",
    "deployment",
    "integration",
    "authentication",
    "authorization",
    "microservice",
    "endpoint",
    "data",
    "model",
    "migration",
    "configuration",
)

DEFAULT_BUSINESS_KEYWORDS = (
    "user",
    "customer",
    "workflow",
    "process",
    "feature",
    "functionality",
    "prerequisite",
    "requirement",
    "depends",
    "requires",
    "needs",
    "after",
    "before",
    "enables",
    "blocks",
    "prevents",
    "allows",
)

# Keywords whose presence on both sides makes a technical dependency much more likely
CRITICAL_TECHNICAL_TERMS = ("api", "database", "service", "authentication")


@dataclass(frozen=True)
class DependencyDetectionConfig:
    """Configuration for heuristic dependency detection."""

    technical_keywords: tuple[str, ...] = DEFAULT_TECHNICAL_KEYWORDS
    business_keywords: tuple[str, ...] = DEFAULT_BUSINESS_KEYWORDS
    confidence_threshold: float = 0.6
    enable_semantic_analysis: bool = True
    max_dependency_distance: int = 3
    inherit_parent_dependencies: bool = True

    def __post_init__(self):
        _check_fraction("confidence_threshold", self.confidence_threshold)
        if self.max_dependency_distance < 1:
            raise ValidationError(
                f"max_dependency_distance must be >= 1, got: {self.max_dependency_distance}"
            )

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)


# =============================================================================
# Story Decomposition
# =============================================================================


@dataclass(frozen=True)
class DecompositionConfig:
    """Configuration for splitting oversized work items."""

    max_story_points: int = 5
    min_sub_stories: int = 2
    max_sub_stories: int = 4
    points_strategy: PointsStrategy = PointsStrategy.EVEN
    criteria_strategy: CriteriaStrategy = CriteriaStrategy.THEMATIC

    def __post_init__(self):
        if self.max_story_points < 1:
            raise ValidationError(f"max_story_points must be >= 1, got: {self.max_story_points}")
        if self.min_sub_stories < 2:
            raise ValidationError(f"min_sub_stories must be >= 2, got: {self.min_sub_stories}")
        if self.max_sub_stories < self.min_sub_stories:
            raise ValidationError(
                f"max_sub_stories ({self.max_sub_stories}) must be >= "
                f"min_sub_stories ({self.min_sub_stories})"
            )

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)


# =============================================================================
# WSJF Scoring
# =============================================================================


@dataclass(frozen=True)
class ScoringConfig:
    """Weights and tier thresholds for WSJF scoring."""

    business_value_weight: float = 0.35
    time_criticality_weight: float = 0.25
    risk_reduction_weight: float = 0.25
    urgent_threshold: float = 8.0
    high_threshold: float = 5.0
    medium_threshold: float = 2.0
    split_job_size_threshold: float = 13.0
    combine_similarity_threshold: float = 0.7

    def __post_init__(self):
        if not self.urgent_threshold >= self.high_threshold >= self.medium_threshold:
            raise ValidationError(
                "Priority thresholds must satisfy urgent >= high >= medium, got: "
                f"{self.urgent_threshold}, {self.high_threshold}, {self.medium_threshold}"
            )
        for name in ("business_value_weight", "time_criticality_weight", "risk_reduction_weight"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be > 0, got: {getattr(self, name)}")

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)


# =============================================================================
# Readiness Assessment
# =============================================================================

DEFAULT_CATEGORY_WEIGHTS: dict[str, float] = {
    ReadinessCategory.STORY_READINESS.value: 0.2,
    ReadinessCategory.DEPENDENCY_RESOLUTION.value: 0.2,
    ReadinessCategory.CAPACITY_ALLOCATION.value: 0.2,
    ReadinessCategory.VALUE_DELIVERY.value: 0.2,
    ReadinessCategory.RISK_MITIGATION.value: 0.1,
    ReadinessCategory.TEAM_ALIGNMENT.value: 0.1,
}

# Categories scoring below this get templated recommendations
CATEGORY_ATTENTION_THRESHOLD = 0.7


@dataclass(frozen=True)
class ReadinessConfig:
    """Thresholds for the ART readiness assessment."""

    min_readiness_score: float = 0.85
    target_readiness_score: float = 0.9
    min_value_confidence: float = 0.7
    category_weights: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS)
    )

    def __post_init__(self):
        _check_fraction("min_readiness_score", self.min_readiness_score)
        unknown = set(self.category_weights) - set(ReadinessCategory.values())
        if unknown:
            raise ValidationError(f"Unknown readiness categories: {sorted(unknown)}")

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)


# =============================================================================
# ART Planning
# =============================================================================


@dataclass(frozen=True)
class ARTPlanningConfig:
    """Top-level planning configuration.

    Attributes:
        iteration_length_days: Default iteration length when deriving a calendar
        buffer_capacity: Fraction of each team's capacity kept unallocated
        min_value_delivery_threshold: Share of iterations expected to ship value
        max_capacity_utilization: Hard ceiling on allocated / available capacity
        enable_dependency_optimization: Prefer critical path items among ready work
        enable_value_optimization: Prefer higher WSJF items among ready work
        planning_horizon: Maximum number of iterations considered
        allow_same_iteration_dependencies: Let a dependent share an iteration
            with a prerequisite completed in that iteration
    """

    iteration_length_days: int = 14
    buffer_capacity: float = 0.2
    min_value_delivery_threshold: float = 0.8
    max_capacity_utilization: float = 0.85
    enable_dependency_optimization: bool = True
    enable_value_optimization: bool = True
    planning_horizon: int = 6
    allow_same_iteration_dependencies: bool = False
    dependencies: DependencyDetectionConfig = field(default_factory=DependencyDetectionConfig)
    decomposition: DecompositionConfig = field(default_factory=DecompositionConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)

    def __post_init__(self):
        if not 0 <= self.buffer_capacity < 1:
            raise ValidationError(f"buffer_capacity must be in [0, 1), got: {self.buffer_capacity}")
        if not 0 < self.max_capacity_utilization <= 1:
            raise ValidationError(
                f"max_capacity_utilization must be in (0, 1], got: {self.max_capacity_utilization}"
            )
        _check_fraction("min_value_delivery_threshold", self.min_value_delivery_threshold)
        if self.planning_horizon < 1:
            raise ValidationError(f"planning_horizon must be >= 1, got: {self.planning_horizon}")
        if self.iteration_length_days < 1:
            raise ValidationError(
                f"iteration_length_days must be >= 1, got: {self.iteration_length_days}"
            )

    @property
    def usable_capacity_ratio(self) -> float:
        """Share of available capacity the allocator may fill."""
        return min(1 - self.buffer_capacity, self.max_capacity_utilization)

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)


# =============================================================================
# YAML Loading
# =============================================================================

_SECTION_TYPES: dict[str, type] = {
    "dependencies": DependencyDetectionConfig,
    "decomposition": DecompositionConfig,
    "scoring": ScoringConfig,
    "readiness": ReadinessConfig,
}

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "points_strategy": PointsStrategy,
    "criteria_strategy": CriteriaStrategy,
}


def planning_config_from_dict(data: dict[str, Any]) -> ARTPlanningConfig:
    """Build an ARTPlanningConfig from a plain dict.

    Top-level keys may be any ARTPlanningConfig field under a ``planning``
    section, plus the stage sections ``dependencies``, ``decomposition``,
    ``scoring`` and ``readiness``.

    Raises:
        ValidationError: If a section or key is unknown, or a value is invalid
    """
    known_sections = {"planning", *_SECTION_TYPES}
    unknown_sections = set(data) - known_sections
    if unknown_sections:
        raise ValidationError(f"Unknown config sections: {sorted(unknown_sections)}")

    kwargs: dict[str, Any] = dict(_coerce_section(ARTPlanningConfig, data.get("planning") or {}))
    for section, section_type in _SECTION_TYPES.items():
        if section in kwargs:
            raise ValidationError(f"'{section}' must be a top-level section, not a planning key")
        if data.get(section):
            kwargs[section] = section_type(**_coerce_section(section_type, data[section]))

    return ARTPlanningConfig(**kwargs)


def load_planning_config(path: str | Path) -> ARTPlanningConfig:
    """Load planning configuration from a YAML file.

    Args:
        path: Path to a YAML document (see planning_config_from_dict for layout)

    Returns:
        The parsed ARTPlanningConfig

    Raises:
        ValidationError: If the file is not valid YAML or has invalid values
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Planning config must be a mapping, got: {type(data).__name__}")

    config = planning_config_from_dict(data)
    logger.info(f"Loaded planning config from {path}")
    return config


def _coerce_section(config_type: type, values: dict[str, Any]) -> dict[str, Any]:
    allowed = {f.name for f in fields(config_type)}
    unknown = set(values) - allowed
    if unknown:
        raise ValidationError(f"Unknown keys for {config_type.__name__}: {sorted(unknown)}")

    coerced = {}
    for key, value in values.items():
        if key in _ENUM_FIELDS:
            try:
                value = _ENUM_FIELDS[key](value)
            except ValueError as e:
                raise ValidationError(f"Invalid value for {key}: {value}") from e
        elif isinstance(value, list):
            value = tuple(value)
        coerced[key] = value
    return coerced


def _check_fraction(name: str, value: float) -> None:
    if not 0 <= value <= 1:
        raise ValidationError(f"{name} must be in [0, 1], got: {value}")


def _dataclass_to_dict(obj: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        elif hasattr(value, "to_dict"):
            value = value.to_dict()
        elif isinstance(value, dict):
            value = dict(value)
        result[f.name] = value
    return result
