"""Structured logging for sqlift.

Library modules log through :func:`get_logger`: a structlog bound logger that
hands each event to a standard ``logging.Logger`` with its keyword fields as
``extra``. Nothing is printed until an application installs sinks, either its
own handlers or the JSON-lines sinks from :func:`configure_json_logging`, which
render records through structlog's ``ProcessorFormatter``.
"""

from __future__ import annotations

import logging
import re
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

REDACTED: Final[str] = "***REDACTED***"

# Any event key containing one of these terms is masked, at any depth.
SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "params",
    "parameters",
    "password",
    "secret",
    "token",
    "api_key",
    "authorization",
)

_INLINE_SECRET: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret)(\s*[:=]\s*)[^\s,;]+"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+\S+")

_sinks_lock = threading.Lock()
_installed: list[LoggingSinks] = []


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how :func:`configure_json_logging` writes events."""

    log_dir: Path | str = Path("logs")
    logger_name: str = "sqlift"
    level: int | str = "INFO"
    log_filename: str = "sqlift.jsonl"
    log_to_stdout: bool = False
    redact: bool = True


@dataclass(frozen=True, slots=True)
class LoggingSinks:
    """Handlers attached by one :func:`configure_json_logging` call."""

    logger: logging.Logger
    log_path: Path
    handlers: tuple[logging.Handler, ...]
    previous_level: int
    previous_propagate: bool


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger that forwards events to ``logging.getLogger(name)``.

    Event fields travel as ``extra`` on the log record, so they must not
    collide with ``LogRecord`` attributes such as ``name`` or ``msg``.
    """

    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def redact_event(_logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor masking secrets and statement parameters."""

    return {key: _redact(key, value) for key, value in event_dict.items()}


def json_formatter(*, redact: bool = True) -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering stdlib records, including ``get_logger`` events, as JSON."""

    processors: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.processors.format_exc_info,
    ]
    if redact:
        processors.append(redact_event)
    processors.append(structlog.processors.JSONRenderer(sort_keys=True, default=str))
    return structlog.stdlib.ProcessorFormatter(
        processors=processors,
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
    )


def configure_json_logging(config: LoggingConfig) -> LoggingSinks:
    """Attach JSON-lines sinks to ``config.logger_name``, replacing earlier ones.

    Events go to ``log_dir/log_filename`` and, optionally, to stdout. The
    logger stops propagating to the root logger until :func:`shutdown_logging`.
    """

    logger_name = config.logger_name.strip()
    if not logger_name:
        raise ValueError("logger_name must not be empty")
    if not config.log_filename or Path(config.log_filename).name != config.log_filename:
        raise ValueError(f"log_filename must be a bare file name, got {config.log_filename!r}")
    level = _parse_level(config.level)

    shutdown_logging()

    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / config.log_filename

    formatter = json_formatter(redact=config.redact)
    handlers: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        handlers.append(logging.StreamHandler(sys.stdout))

    logger = logging.getLogger(logger_name)
    sinks = LoggingSinks(
        logger=logger,
        log_path=log_path,
        handlers=tuple(handlers),
        previous_level=logger.level,
        previous_propagate=logger.propagate,
    )
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    with _sinks_lock:
        _installed.append(sinks)
    return sinks


def setup_logging(
    logging_config: Mapping[str, object] | None = None,
    *,
    log_dir: Path | str | None = None,
    logger_name: str = "sqlift",
) -> logging.Logger:
    """Install JSON-lines sinks from a ``[logging]`` config table and return the logger."""

    table = dict(logging_config or {})
    level = table.get("level", "INFO")
    directory = log_dir if log_dir is not None else table.get("log_dir", "logs")
    sinks = configure_json_logging(
        LoggingConfig(
            log_dir=directory if isinstance(directory, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(table.get("log_to_stdout", False)),
            redact=bool(table.get("redact_secrets", True)),
        )
    )
    return sinks.logger


def shutdown_logging() -> None:
    """Detach and close every installed sink, restoring the loggers they touched."""

    with _sinks_lock:
        installed = list(reversed(_installed))
        _installed.clear()
    for sinks in installed:
        for handler in sinks.handlers:
            sinks.logger.removeHandler(handler)
            handler.close()
        sinks.logger.setLevel(sinks.previous_level)
        sinks.logger.propagate = sinks.previous_propagate


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    parsed = logging.getLevelName(level.strip().upper())
    if not isinstance(parsed, int):
        raise ValueError(f"unknown logging level {level!r}")
    return parsed


def _redact(key: str, value: Any) -> Any:
    lowered = key.lower()
    if any(term in lowered for term in SENSITIVE_KEY_TERMS):
        return REDACTED
    if isinstance(value, str):
        return _BEARER.sub(f"Bearer {REDACTED}", _INLINE_SECRET.sub(rf"\1\2{REDACTED}", value))
    if isinstance(value, Mapping):
        return {str(inner): _redact(str(inner), item) for inner, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact("", item) for item in value]
    return value


__all__ = [
    "REDACTED",
    "SENSITIVE_KEY_TERMS",
    "LoggingConfig",
    "LoggingSinks",
    "configure_json_logging",
    "get_logger",
    "json_formatter",
    "redact_event",
    "setup_logging",
    "shutdown_logging",
]
