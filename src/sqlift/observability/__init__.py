"""Public observability primitives: structured logging and redaction."""

from sqlift.observability.logging import (
    LoggingConfig,
    LoggingSinks,
    configure_json_logging,
    get_logger,
    json_formatter,
    redact_event,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "LoggingSinks",
    "configure_json_logging",
    "get_logger",
    "json_formatter",
    "redact_event",
    "setup_logging",
    "shutdown_logging",
]
