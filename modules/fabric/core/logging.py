"""
Centralized Logging Configuration.

Every module logs through get_logger(__name__); nothing creates standalone
loggers. setup_logging() runs once per process (CLI, event worker) and reads
config/settings/logging.yaml, validated by LoggingSchema.

Structured fields in every JSON log record:
    timestamp              - ISO 8601 UTC timestamp
    level                  - Log level (debug, info, warning, error, critical)
    logger                 - Module path (e.g., modules.fabric.events.pipeline)
    event                  - Log message
    func_name, lineno      - Call site
    service                - Emitting service, when setup_logging() was given one
    source                 - Origin context (rpc, events, gateway, cli, internal)
    correlation_id         - Correlation id of the operation being served
    parent_correlation_id  - Parent correlation id, when the context was derived

The correlation fields come from correlation_scope() and the consumer
middleware, which bind them into structlog contextvars. Following one
correlation_id across services reconstructs an operation:

    jq 'select(.correlation_id == "R1")' logs/system.jsonl

Usage:
    from modules.fabric.core.logging import get_logger, setup_logging

    setup_logging(service="tasks")
    setup_logging(level="DEBUG", format_type="console")

    logger = get_logger(__name__)
    logger.info("Message", extra={"key": "value"})
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from modules.fabric.core.config import find_project_root, load_yaml_config
from modules.fabric.core.config_schema import FileHandlerSchema, LoggingSchema

VALID_SOURCES = frozenset({
    "rpc",
    "events",
    "gateway",
    "cli",
    "internal",
    "unknown",
})
"""
Recognized log source values.
Source is always set explicitly by the caller, never guessed from logger names.
"""

# Libraries that log every message they move at INFO.
_CHATTY_LOGGERS = ("faststream",)

_logging_config: LoggingSchema | None = None


def _load_logging_config() -> LoggingSchema:
    """Read and validate logging.yaml once per process."""
    global _logging_config
    if _logging_config is None:
        _logging_config = LoggingSchema(**load_yaml_config("logging.yaml"))
    return _logging_config


def _resolve_log_path(configured_path: str) -> Path:
    return find_project_root() / configured_path


def add_service(service: str) -> Processor:
    """Processor stamping the emitting service on records that lack one."""

    def processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def _shared_processors(service: str | None) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
    ]
    if service:
        processors.append(add_service(service))
    return processors


def _file_handler(settings: FileHandlerSchema, formatter: logging.Formatter) -> logging.Handler:
    log_path = _resolve_log_path(settings.path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
    service: str | None = None,
) -> None:
    """
    Configure structured logging for the process.

    Arguments override the matching logging.yaml values.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Console output format ('json' or 'console')
        enable_console: Whether to log to stdout
        enable_file_logging: Whether to write the JSONL file
        service: Service name stamped on every record
    """
    config = _load_logging_config()

    log_level = getattr(logging, (level or config.level).upper())
    console_format = format_type or config.format
    console_enabled = config.handlers.console.enabled if enable_console is None else enable_console
    file_enabled = config.handlers.file.enabled if enable_file_logging is None else enable_file_logging

    shared = _shared_processors(service)
    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared,
    )
    if console_format == "console":
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=True),
            foreign_pre_chain=shared,
        )
    else:
        console_formatter = json_formatter

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if console_enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if file_enabled:
        root_logger.addHandler(_file_handler(config.handlers.file, json_formatter))

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Structlog logger for a module; pass __name__."""
    return structlog.get_logger(name)


def log_with_source(logger: Any, source: str, level: str, message: str, **kwargs: Any) -> None:
    """
    Log a message with an explicit source.

    Use this outside of an RPC or event handler, where no source is bound
    (CLI commands, startup wiring).

    Raises:
        AttributeError: If level is not a valid log level

    Example:
        log_with_source(logger, "cli", "info", "Registry listed", domain="tasks")
    """
    log_method = getattr(logger, level.lower())
    log_method(message, source=source, **kwargs)
