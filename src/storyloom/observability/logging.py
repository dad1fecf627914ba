"""Structured logging for storyloom.

structlog events are rendered through stdlib logging:

- Console: a rich handler on stderr whose level follows the ``-v`` count.
- File (``--log``): every event, as one JSON object per line, appended to
  ``<project>/logs/debug.jsonl``.

Event names are snake_case with key-value context::

    log = get_logger(__name__)
    log.info("scene_created", scene_id=scene.id)
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from structlog.typing import Processor

LOGS_DIRNAME = "logs"
DEBUG_LOG_FILENAME = "debug.jsonl"

# Libraries whose DEBUG output drowns out ours
QUIET_LOGGERS = (
    "asyncio",
    "httpcore",
    "httpx",
    "langchain",
    "langchain_core",
    "openai",
    "urllib3",
)

_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None


def _console_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


class JSONLFileHandler(logging.FileHandler):
    """File handler writing one JSON object per record."""

    def build_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        # wrap_for_formatter hands the structlog event dict over as record.msg
        if isinstance(record.msg, dict):
            context = {
                k: v for k, v in record.msg.items() if k not in ("level", "timestamp")
            }
            entry["message"] = context.pop("event", "")
            entry.update(context)
        else:
            entry["message"] = record.getMessage()
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self.build_entry(record), default=str)
            if self.stream is None:
                self.stream = self._open()
            self.stream.write(line + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        level=_console_level(verbosity),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        show_level=True,
        markup=False,
    )
    # Rich prints time and level itself; the renderer only adds event + context
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _drop_rendered_fields,
                structlog.dev.ConsoleRenderer(colors=False),
            ],
        )
    )
    return handler


def _drop_rendered_fields(
    _logger: Any, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.pop("level", None)
    event_dict.pop("timestamp", None)
    return event_dict


def _open_file_handler(project_path: Path) -> JSONLFileHandler:
    global _logs_dir
    _logs_dir = project_path / LOGS_DIRNAME
    _logs_dir.mkdir(parents=True, exist_ok=True)
    handler = JSONLFileHandler(str(_logs_dir / DEBUG_LOG_FILENAME), mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    project_path: Path | None = None,
) -> None:
    """Configure console and optional file logging.

    Safe to call again; the previous file handler is closed first.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG.
        log_to_file: If True, also write every event to
            ``{project_path}/logs/debug.jsonl``.
        project_path: Project directory. Required if log_to_file=True.

    Raises:
        ValueError: If log_to_file=True but project_path is not provided.
    """
    global _configured, _file_handler

    if log_to_file and project_path is None:
        raise ValueError("project_path is required when log_to_file=True")

    close_file_logging()

    handlers = [_console_handler(verbosity)]
    if log_to_file and project_path is not None:
        _file_handler = _open_file_handler(project_path)
        handlers.append(_file_handler)

    # The root logger must pass DEBUG through whenever the file handler wants it
    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def get_logs_dir() -> Path | None:
    """Directory receiving file logs, or None when file logging is off."""
    return _logs_dir if _file_handler is not None else None


def close_file_logging() -> None:
    """Close the file handler, if one is open."""
    global _file_handler
    if _file_handler is not None:
        logging.getLogger().removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
