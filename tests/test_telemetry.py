"""Tests for telemetry configuration and planning spans.

Tests cover:
- TelemetryConfig.from_env parsing
- init/shutdown lifecycle
- Span attributes, status and error recording
"""

import logging

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from artplan.errors import PlanningError
from artplan.telemetry import (
    ExporterType,
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    planning_span,
    shutdown_telemetry,
    spans,
    stage_span,
)


@pytest.fixture
def exporter(monkeypatch) -> InMemorySpanExporter:
    """Route planning spans to an in-memory exporter."""
    span_exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    monkeypatch.setattr(spans, "get_tracer", lambda: provider.get_tracer(spans.TRACER_NAME))
    return span_exporter


@pytest.fixture
def restore_logging():
    root_logger = logging.getLogger()
    package_logger = logging.getLogger("artplan")
    handlers = root_logger.handlers[:]
    levels = (root_logger.level, package_logger.level)
    yield
    shutdown_telemetry()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(levels[0])
    package_logger.setLevel(levels[1])


# =============================================================================
# Configuration
# =============================================================================


class TestTelemetryConfig:
    """Test environment parsing."""

    def test_defaults(self, monkeypatch):
        """Test defaults without environment variables."""
        for name in ("LOG_LEVEL", "OTEL_SERVICE_NAME", "OTEL_TRACES_EXPORTER", "OTEL_SDK_DISABLED"):
            monkeypatch.delenv(name, raising=False)

        config = TelemetryConfig.from_env()

        assert config.log_level == "INFO"
        assert config.service_name == "artplan"
        assert config.traces_exporter == ExporterType.NONE
        assert not config.tracing_disabled

    def test_from_env(self, monkeypatch):
        """Test values read from the environment."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("OTEL_SERVICE_NAME", "pi-planning")
        monkeypatch.setenv("OTEL_TRACES_EXPORTER", "Console")
        monkeypatch.setenv("OTEL_SDK_DISABLED", "yes")

        config = TelemetryConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.service_name == "pi-planning"
        assert config.traces_exporter == ExporterType.CONSOLE
        assert config.tracing_disabled

    def test_unknown_exporter_falls_back_to_none(self, monkeypatch):
        """Test unknown exporters fall back to none."""
        monkeypatch.setenv("OTEL_TRACES_EXPORTER", "zipkin")
        assert TelemetryConfig.from_env().traces_exporter == ExporterType.NONE


class TestLifecycle:
    """Test init_telemetry and shutdown_telemetry."""

    def test_disabled_tracing(self, restore_logging):
        """Test tracing can be disabled while logging is configured."""
        init_telemetry(TelemetryConfig(log_level="WARNING", tracing_disabled=True))

        assert not is_telemetry_enabled()
        assert logging.getLogger("artplan").level == logging.WARNING

    def test_shutdown_resets_state(self, restore_logging):
        """Test shutdown resets state and is idempotent."""
        init_telemetry(TelemetryConfig(tracing_disabled=True))
        shutdown_telemetry()

        assert not is_telemetry_enabled()
        shutdown_telemetry()

    def test_tracing_not_reported_after_reinit(self, restore_logging):
        """Test a second init after shutdown does not claim a dead provider is active."""
        init_telemetry(TelemetryConfig(log_level="WARNING"))
        shutdown_telemetry()
        init_telemetry(TelemetryConfig(log_level="WARNING"))

        assert not is_telemetry_enabled()


# =============================================================================
# Spans
# =============================================================================


class TestSpans:
    """Test planning and stage spans."""

    def test_stage_nests_under_run(self, exporter):
        """Test stage spans nest under the run span."""
        with planning_span(3, 2, 1, horizon=2):
            with stage_span("scoring", items=3) as span:
                span.set_attribute("stage.scored", 3)

        stage, run = exporter.get_finished_spans()

        assert run.name == "planning:art"
        assert run.attributes["planning.work_items"] == 3
        assert run.attributes["horizon"] == 2
        assert stage.name == "stage:scoring"
        assert stage.parent.span_id == run.context.span_id
        assert stage.attributes["stage.name"] == "scoring"
        assert stage.attributes["stage.items"] == 3
        assert stage.attributes["stage.scored"] == 3
        assert stage.status.status_code == StatusCode.OK

    def test_errors_are_recorded_and_raised(self, exporter):
        """Test errors are recorded on the span and re-raised."""
        with pytest.raises(PlanningError):
            with stage_span("allocation"):
                raise PlanningError("No teams to allocate work to", code="NO_TEAMS")

        (span,) = exporter.get_finished_spans()

        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error.type"] == "PlanningError"
        assert span.attributes["error.code"] == "NO_TEAMS"
        assert span.events[0].name == "exception"
