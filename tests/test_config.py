"""Tests for planning configuration.

Tests cover:
- Defaults and validation of the frozen config dataclasses
- Usable capacity ratio derived from buffer and utilization ceiling
- YAML loading with stage sections and enum coercion
"""

import pytest

from artplan.config import (
    ARTPlanningConfig,
    CriteriaStrategy,
    DecompositionConfig,
    DependencyType,
    PointsStrategy,
    PriorityTier,
    ReadinessCategory,
    ReadinessConfig,
    ScoringConfig,
    WorkItemType,
    load_planning_config,
    planning_config_from_dict,
)
from artplan.errors import ValidationError


class TestEnums:
    """Test enum helpers."""

    def test_work_item_type_values(self):
        """Test WorkItemType values."""
        assert WorkItemType.values() == ["epic", "feature", "story", "enabler"]

    def test_schedulable_types(self):
        """Test only stories and enablers are schedulable."""
        assert WorkItemType.schedulable() == (WorkItemType.STORY, WorkItemType.ENABLER)

    def test_dependency_type_values(self):
        """Test DependencyType values."""
        assert "requires" in DependencyType.values()
        assert len(DependencyType.values()) == 6

    def test_tracker_priorities(self):
        """Urgent maps to tracker priority 1, low to 4."""
        assert PriorityTier.URGENT.tracker_priority == 1
        assert PriorityTier.LOW.tracker_priority == 4

    def test_readiness_categories(self):
        """Test the six readiness categories."""
        assert len(ReadinessCategory.values()) == 6


class TestPlanningConfig:
    """Test ARTPlanningConfig defaults and validation."""

    def test_defaults(self):
        """Test ARTPlanningConfig defaults."""
        config = ARTPlanningConfig()

        assert config.iteration_length_days == 14
        assert config.buffer_capacity == 0.2
        assert config.max_capacity_utilization == 0.85
        assert config.planning_horizon == 6
        assert config.enable_dependency_optimization
        assert config.enable_value_optimization
        assert not config.allow_same_iteration_dependencies
        assert config.decomposition.max_story_points == 5
        assert config.scoring.business_value_weight == 0.35

    def test_usable_capacity_ratio_uses_buffer(self):
        """Buffer 0.2 leaves 80%, below the 85% ceiling."""
        assert ARTPlanningConfig().usable_capacity_ratio == pytest.approx(0.8)

    def test_usable_capacity_ratio_uses_ceiling(self):
        """A small buffer is capped by max_capacity_utilization."""
        config = ARTPlanningConfig(buffer_capacity=0.05)
        assert config.usable_capacity_ratio == pytest.approx(0.85)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"buffer_capacity": 1.0},
            {"buffer_capacity": -0.1},
            {"max_capacity_utilization": 0},
            {"max_capacity_utilization": 1.2},
            {"planning_horizon": 0},
            {"iteration_length_days": 0},
            {"min_value_delivery_threshold": 1.5},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        """Test out-of-range planning values raise ValidationError."""
        with pytest.raises(ValidationError):
            ARTPlanningConfig(**kwargs)

    def test_config_is_immutable(self):
        """Test config dataclasses are frozen."""
        config = ARTPlanningConfig()
        with pytest.raises(AttributeError):  # FrozenInstanceError
            config.buffer_capacity = 0.5

    def test_to_dict_serializes_nested_sections(self):
        """Test to_dict includes every nested section."""
        data = ARTPlanningConfig().to_dict()

        assert data["buffer_capacity"] == 0.2
        assert data["decomposition"]["points_strategy"] == "even"
        assert data["dependencies"]["technical_keywords"][0] == "api"
        assert data["readiness"]["category_weights"]["story_readiness"] == 0.2


class TestStageConfigs:
    """Test validation of the stage configuration dataclasses."""

    def test_decomposition_bounds(self):
        """Test decomposition limits are validated."""
        with pytest.raises(ValidationError):
            DecompositionConfig(max_story_points=0)
        with pytest.raises(ValidationError):
            DecompositionConfig(min_sub_stories=1)
        with pytest.raises(ValidationError):
            DecompositionConfig(min_sub_stories=3, max_sub_stories=2)

    def test_scoring_thresholds_must_be_ordered(self):
        """Test priority thresholds must be descending."""
        with pytest.raises(ValidationError):
            ScoringConfig(urgent_threshold=4.0, high_threshold=5.0)

    @pytest.mark.parametrize(
        "field", ["business_value_weight", "time_criticality_weight", "risk_reduction_weight"]
    )
    @pytest.mark.parametrize("weight", [0.0, -0.1])
    def test_scoring_weights_must_be_positive(self, field, weight):
        """Test a zero or negative WSJF weight is rejected."""
        with pytest.raises(ValidationError, match=f"{field} must be > 0"):
            ScoringConfig(**{field: weight})

    def test_unknown_readiness_category(self):
        """Test readiness weights only accept known categories."""
        with pytest.raises(ValidationError, match="Unknown readiness categories"):
            ReadinessConfig(category_weights={"morale": 1.0})


class TestConfigLoading:
    """Test loading configuration from dicts and YAML files."""

    def test_from_dict_with_sections(self):
        """Test building config from nested sections."""
        config = planning_config_from_dict(
            {
                "planning": {"buffer_capacity": 0.1, "planning_horizon": 4},
                "decomposition": {"points_strategy": "fibonacci", "criteria_strategy": "balanced"},
                "dependencies": {"technical_keywords": ["queue", "cache"]},
            }
        )

        assert config.buffer_capacity == 0.1
        assert config.planning_horizon == 4
        assert config.decomposition.points_strategy == PointsStrategy.FIBONACCI
        assert config.decomposition.criteria_strategy == CriteriaStrategy.BALANCED
        assert config.dependencies.technical_keywords == ("queue", "cache")
        # Untouched sections keep their defaults
        assert config.scoring == ScoringConfig()

    def test_unknown_section_rejected(self):
        """Test an unknown top-level section is rejected."""
        with pytest.raises(ValidationError, match="Unknown config sections"):
            planning_config_from_dict({"allocation": {}})

    def test_unknown_key_rejected(self):
        """Test an unknown key within a section is rejected."""
        with pytest.raises(ValidationError, match="Unknown keys for DecompositionConfig"):
            planning_config_from_dict({"decomposition": {"max_points": 8}})

    def test_invalid_enum_value(self):
        """Test an invalid strategy name is rejected."""
        with pytest.raises(ValidationError, match="points_strategy"):
            planning_config_from_dict({"decomposition": {"points_strategy": "random"}})

    def test_stage_section_under_planning_rejected(self):
        """Test stage sections nested under planning are rejected."""
        with pytest.raises(ValidationError, match="top-level section"):
            planning_config_from_dict({"planning": {"scoring": {}}})

    def test_load_yaml_file(self, tmp_path):
        """Test loading config from a YAML file."""
        path = tmp_path / "planning.yaml"
        path.write_text(
            "planning:\n"
            "  buffer_capacity: 0.15\n"
            "  allow_same_iteration_dependencies: true\n"
            "scoring:\n"
            "  urgent_threshold: 9.0\n"
        )

        config = load_planning_config(path)

        assert config.buffer_capacity == 0.15
        assert config.allow_same_iteration_dependencies
        assert config.scoring.urgent_threshold == 9.0

    def test_empty_yaml_gives_defaults(self, tmp_path):
        """Test an empty file yields the defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_planning_config(path) == ARTPlanningConfig()

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML raises ValidationError."""
        path = tmp_path / "broken.yaml"
        path.write_text("planning: [unclosed\n")

        with pytest.raises(ValidationError, match="Invalid YAML"):
            load_planning_config(path)

    def test_non_mapping_yaml(self, tmp_path):
        """Test a YAML list at top level is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValidationError, match="must be a mapping"):
            load_planning_config(path)

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_planning_config(tmp_path / "absent.yaml")
