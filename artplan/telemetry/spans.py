"""Span helpers for planning runs and their stages.

Span Hierarchy:
    planning_span (root, one per plan_art call)
    └── stage_span (dependencies, decomposition, scoring, allocation, assessment)
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "artplan.planner"


def get_tracer() -> trace.Tracer:
    """Tracer for planning spans; a no-op tracer until a provider is installed."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def planning_span(
    work_item_count: int,
    iteration_count: int,
    team_count: int,
    **attributes: Any,
) -> Generator[Span, None, None]:
    """Create the root span for one planning run.

    Args:
        work_item_count: Number of input work items
        iteration_count: Number of iterations in the horizon
        team_count: Number of teams
        **attributes: Additional span attributes

    Yields:
        The OpenTelemetry span
    """
    span_attributes: dict[str, Any] = {
        "planning.work_items": work_item_count,
        "planning.iterations": iteration_count,
        "planning.teams": team_count,
    }
    span_attributes.update(attributes)

    with _status_span("planning:art", span_attributes) as span:
        yield span


@contextmanager
def stage_span(stage: str, **attributes: Any) -> Generator[Span, None, None]:
    """Create a span for one planning stage.

    Call within planning_span so stages nest under their run.

    Example:
        with stage_span("allocation", items=12) as span:
            result = allocator.allocate(...)
            span.set_attribute("stage.allocated", len(result.allocated))
    """
    span_attributes: dict[str, Any] = {"stage.name": stage}
    span_attributes.update({f"stage.{key}": value for key, value in attributes.items()})

    with _status_span(f"stage:{stage}", span_attributes) as span:
        yield span


def record_error(span: Span, error: Exception) -> None:
    """Record an error on a span with structured attributes."""
    error_message = str(error)
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(error).__name__)
    span.set_attribute("error.message", error_message[:500])
    code = getattr(error, "code", None)
    if code:
        span.set_attribute("error.code", code)
    span.record_exception(error)
    span.set_status(StatusCode.ERROR, error_message[:100])


@contextmanager
def _status_span(name: str, attributes: dict[str, Any]) -> Generator[Span, None, None]:
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name=name,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            span.set_status(StatusCode.OK)
        except Exception as e:
            record_error(span, e)
            raise
