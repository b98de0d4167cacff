"""
Structured logging for harcap.

Every module logs through ``get_logger(__name__)`` with key/value fields.
Output goes to stderr (stdout is kept for command output such as the device
list) and optionally to a file, either as JSON lines or for the console.

Fields ending in ``_ms`` are rounded to 0.1 ms so timing logs stay readable.
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from harcap.utils.config import get_settings


def _upper_level(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Record the level as ``INFO``/``DEBUG``/..."""
    event_dict["level"] = method_name.upper()
    return event_dict


def _round_ms_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if key.endswith("_ms") and isinstance(value, float):
            event_dict[key] = round(value, 1)
    return event_dict


def _processors(json_format: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _upper_level,
        _round_ms_fields,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        chain += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool | None = None,
    *,
    verbose: bool = False,
) -> None:
    """Configure structured logging.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to ``general.log_level``.
        log_file: Additional log file. Defaults to ``general.log_file``.
        json_format: JSON lines (True) or console output (False).
            Defaults to ``general.log_json``.
        verbose: Force DEBUG, as with ``harcap -v``.
    """
    general = get_settings().general
    level_name = "DEBUG" if verbose else (log_level or general.log_level)
    log_file = log_file if log_file is not None else general.log_file
    json_format = general.log_json if json_format is None else json_format

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """Binds fields to every log call inside the block.

    Previous values of the same keys are restored on exit, so contexts nest.

    Example:
        with LogContext(run_id=new_run_id(), url=options.url):
            logger.info("Run started")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = dict(structlog.contextvars.bind_contextvars(**self.fields))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


def new_run_id() -> str:
    """Short identifier correlating the logs of one run."""
    return uuid.uuid4().hex[:12]
