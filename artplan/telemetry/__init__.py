"""Telemetry and observability for the planning engine.

Usage:
    from artplan.telemetry import init_telemetry

    # Initialize once at startup
    init_telemetry()

Environment Variables:
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    OTEL_SERVICE_NAME: Service name for traces - default: artplan
    OTEL_TRACES_EXPORTER: Exporter type (console, none) - default: none
    OTEL_SDK_DISABLED: Disable tracing - default: false
"""

from .config import (
    ExporterType,
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from .spans import get_tracer, planning_span, record_error, stage_span

__all__ = [
    # Configuration
    "ExporterType",
    "TelemetryConfig",
    "init_telemetry",
    "shutdown_telemetry",
    "is_telemetry_enabled",
    # Spans
    "get_tracer",
    "planning_span",
    "stage_span",
    "record_error",
]
