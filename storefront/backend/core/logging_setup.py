"""structlog-formatted logging for the admin backend.

Console gets human-readable lines; ``backend.log`` gets every INFO+ record as
JSON; ``bulk.log`` gets only the bulk engine's records, so batch runs can be
reviewed without the request noise.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Tuple

import structlog

LOG_FILE_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

BULK_LOGGER = "storefront.backend.core.bulk"

# First matching prefix wins
_SHORT_NAMES: Tuple[Tuple[str, str], ...] = (
    ("storefront.backend.core.bulk", "bulk"),
    ("storefront.backend.core.database", "db"),
    ("storefront.backend.api", "api"),
    ("uvicorn", "uvicorn"),
    ("asyncpg", "db"),
    ("alembic", "migration"),
)

_QUIET_LOGGERS: Dict[str, int] = {
    "asyncpg": logging.WARNING,
    "multipart": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def short_logger_name(_, __, event_dict: dict) -> dict:
    """structlog processor: ``storefront.backend.core.bulk.coordinator`` → ``bulk``."""
    name = event_dict.get("logger") or ""
    for prefix, short in _SHORT_NAMES:
        if name == prefix or name.startswith(prefix + "."):
            event_dict["logger"] = short
            return event_dict
    event_dict["logger"] = name.rpartition(".")[2]
    return event_dict


def _formatter(renderer, pre_chain) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            short_logger_name,
            renderer,
        ],
        foreign_pre_chain=pre_chain,
    )


def _file_handler(path: Path, level: int, formatter, only: str = None) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path), maxBytes=LOG_FILE_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    if only:
        handler.addFilter(logging.Filter(only))
    return handler


def configure_logging(level: str = "INFO", log_dir: str = None) -> None:
    """Install console and JSON file handlers on the root logger."""
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()), pre_chain))
    root.addHandler(console)

    if log_dir:
        json_formatter = _formatter(structlog.processors.JSONRenderer(), pre_chain)
        try:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            root.addHandler(_file_handler(directory / "backend.log", logging.INFO, json_formatter))
            root.addHandler(_file_handler(directory / "bulk.log", logging.DEBUG, json_formatter, only=BULK_LOGGER))
        except OSError as e:
            root.warning("Log directory %s is not writable (%s), console logging only", log_dir, e)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
