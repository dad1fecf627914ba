"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from storyloom.observability import (
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)
from storyloom.observability.logging import JSONLFileHandler

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    yield
    close_file_logging()
    configure_logging(verbosity=0)


def test_configure_logging_default_is_warning() -> None:
    """Default verbosity (0) sets WARNING level."""
    configure_logging(verbosity=0)

    assert logging.getLogger().level == logging.WARNING


def test_configure_logging_verbose_opens_root_level() -> None:
    """Any verbosity lets DEBUG through the root; the console handler filters."""
    configure_logging(verbosity=1)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert root_logger.handlers[0].level == logging.INFO


def test_configure_logging_very_verbose_sets_debug() -> None:
    """verbosity=2 sets DEBUG level on the console too."""
    configure_logging(verbosity=2)

    assert logging.getLogger().handlers[0].level == logging.DEBUG


def test_configure_logging_quiets_noisy_libraries() -> None:
    """HTTP and LangChain loggers stay at WARNING even when verbose."""
    configure_logging(verbosity=2)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("langchain_core").level == logging.WARNING


def test_get_logger_auto_configures() -> None:
    """get_logger configures logging if not already done."""
    import storyloom.observability.logging as log_module

    log_module._configured = False

    logger = get_logger("test")

    assert log_module._configured is True
    assert hasattr(logger, "info")


def test_file_logging_creates_logs_dir(tmp_path: Path) -> None:
    """File logging creates the logs directory and reports it."""
    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)

    assert (tmp_path / "logs").is_dir()
    assert get_logs_dir() == tmp_path / "logs"

    close_file_logging()
    assert get_logs_dir() is None


def test_without_file_logging(tmp_path: Path) -> None:
    """Without the file flag no logs directory is created."""
    configure_logging(verbosity=0, log_to_file=False, project_path=tmp_path)

    assert not (tmp_path / "logs").exists()
    assert get_logs_dir() is None


def test_file_logging_requires_project_path() -> None:
    """log_to_file=True without project_path raises ValueError."""
    with pytest.raises(ValueError, match="project_path is required"):
        configure_logging(verbosity=0, log_to_file=True, project_path=None)


def test_reconfiguration_closes_previous_handler(tmp_path: Path) -> None:
    """Reconfiguring logging closes the previous file handler."""
    import storyloom.observability.logging as log_module

    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
    first_handler = log_module._file_handler
    assert first_handler is not None

    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)

    assert first_handler.stream is None or first_handler.stream.closed
    assert log_module._file_handler is not None
    assert first_handler not in logging.getLogger().handlers


def test_jsonl_handler_flattens_event_dict(tmp_path: Path) -> None:
    """Structlog event dicts become flat JSON lines."""
    path = tmp_path / "debug.jsonl"
    handler = JSONLFileHandler(str(path), encoding="utf-8")
    record = logging.LogRecord(
        name="storyloom.graph.repository",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg={"event": "scene_created", "scene_id": "abc", "level": "info"},
        args=None,
        exc_info=None,
    )

    handler.emit(record)
    handler.close()

    entry = json.loads(path.read_text(encoding="utf-8").strip())
    assert entry["message"] == "scene_created"
    assert entry["scene_id"] == "abc"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "storyloom.graph.repository"
    assert "timestamp" in entry


def test_jsonl_handler_plain_message(tmp_path: Path) -> None:
    """Plain stdlib records keep their formatted message."""
    path = tmp_path / "debug.jsonl"
    handler = JSONLFileHandler(str(path), encoding="utf-8")
    record = logging.LogRecord(
        name="third.party",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="retrying %s",
        args=("request",),
        exc_info=None,
    )

    handler.emit(record)
    handler.close()

    entry = json.loads(path.read_text(encoding="utf-8").strip())
    assert entry["message"] == "retrying request"
