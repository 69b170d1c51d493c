"""Value delivery, iteration validation and ART readiness assessment."""

from .context import PlanContext
from .readiness import ReadinessAssessor
from .validation import validate_iteration
from .value import ValueAssessor, delivers_working_software, value_stream_type, work_item_value

__all__ = [
    "PlanContext",
    "ValueAssessor",
    "ReadinessAssessor",
    "validate_iteration",
    "value_stream_type",
    "work_item_value",
    "delivers_working_software",
]
