"""Logging and tracing setup for applications embedding the planner.

The planner itself only emits log records and spans; nothing is configured
until the host application calls init_telemetry(). Settings come from the
standard OpenTelemetry environment variables plus LOG_LEVEL.
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_SERVICE_NAME = "artplan"

_TRUTHY = ("true", "1", "yes")

# Set by init_telemetry, cleared by shutdown_telemetry
_initialized = False
_provider: TracerProvider | None = None
_log_handler: logging.Handler | None = None


class ExporterType(Enum):
    """Where finished planning spans are sent."""

    CONSOLE = "console"
    NONE = "none"

    @classmethod
    def values(cls) -> list[str]:
        return [e.value for e in cls]


@dataclass
class TelemetryConfig:
    """Telemetry settings for one process.

    Attributes:
        log_level: Level name for the artplan and root loggers
        service_name: OpenTelemetry service.name resource attribute
        traces_exporter: Span exporter to install
        tracing_disabled: Skip installing a TracerProvider (spans become no-ops)
    """

    log_level: str = "INFO"
    service_name: str = DEFAULT_SERVICE_NAME
    traces_exporter: ExporterType = ExporterType.NONE
    tracing_disabled: bool = False

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        """Read LOG_LEVEL, OTEL_SERVICE_NAME, OTEL_TRACES_EXPORTER and OTEL_SDK_DISABLED."""
        exporter_name = os.getenv("OTEL_TRACES_EXPORTER", ExporterType.NONE.value).lower()
        if exporter_name in ExporterType.values():
            exporter = ExporterType(exporter_name)
        else:
            logger.warning(
                f"Unsupported OTEL_TRACES_EXPORTER '{exporter_name}', "
                f"expected one of {ExporterType.values()}; spans will not be exported"
            )
            exporter = ExporterType.NONE

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            service_name=os.getenv("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
            traces_exporter=exporter,
            tracing_disabled=os.getenv("OTEL_SDK_DISABLED", "false").lower() in _TRUTHY,
        )


def _configure_logging(level_name: str) -> None:
    """Install one stderr handler on the root logger, replacing any earlier one of ours."""
    global _log_handler

    level = logging.getLevelNamesMapping().get(level_name, logging.INFO)
    root_logger = logging.getLogger()
    if _log_handler is not None:
        root_logger.removeHandler(_log_handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    logging.getLogger("artplan").setLevel(level)
    _log_handler = handler

    logger.debug(f"Logging level set to {logging.getLevelName(level)}")


def _create_provider(config: TelemetryConfig) -> TracerProvider | None:
    if config.tracing_disabled:
        logger.info("Tracing disabled by OTEL_SDK_DISABLED; planning spans are no-ops")
        return None

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: config.service_name}))
    if config.traces_exporter == ExporterType.CONSOLE:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    # OpenTelemetry accepts one global provider per process; later ones are ignored
    trace.set_tracer_provider(provider)
    if trace.get_tracer_provider() is not provider:
        logger.warning(
            "A TracerProvider is already installed for this process; "
            "planning spans keep using it and tracing stays off here"
        )
        provider.shutdown()
        return None
    return provider


def init_telemetry(config: TelemetryConfig | None = None) -> None:
    """Configure logging and tracing for the process.

    Safe to call more than once; only the first call takes effect until
    shutdown_telemetry() is called. Tracing is installed at most once per
    process, so initializing again after a shutdown leaves tracing off.

    Args:
        config: Settings to apply; read from the environment when omitted
    """
    global _initialized, _provider

    if _initialized:
        logger.debug("init_telemetry called again; keeping existing setup")
        return

    config = config or TelemetryConfig.from_env()
    _configure_logging(config.log_level)
    _provider = _create_provider(config)
    _initialized = True

    logger.info(
        f"Telemetry ready for {config.service_name}: log level {config.log_level}, "
        f"exporter {config.traces_exporter.value}, "
        f"tracing {'off' if _provider is None else 'on'}"
    )


def shutdown_telemetry() -> None:
    """Flush spans and detach the log handler installed by init_telemetry."""
    global _initialized, _provider, _log_handler

    if not _initialized:
        return

    if _provider is not None:
        _provider.shutdown()
    if _log_handler is not None:
        logging.getLogger().removeHandler(_log_handler)

    _initialized = False
    _provider = None
    _log_handler = None


def is_telemetry_enabled() -> bool:
    """True once init_telemetry has installed a TracerProvider."""
    return _initialized and _provider is not None
