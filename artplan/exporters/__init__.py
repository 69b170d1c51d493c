"""Export formats for plans and dependency graphs."""

from .plan_markdown import render_plan_summary
from .tracker_links import LINK_TYPES, TrackerLink, to_tracker_links

__all__ = [
    "render_plan_summary",
    "to_tracker_links",
    "TrackerLink",
    "LINK_TYPES",
]
