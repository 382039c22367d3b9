from __future__ import annotations

"""
Integration tests for Logging Infrastructure.

Verifies the asynchronous QueueListener architecture, idempotency
of configuration, isolation from the root logger and log file rotation.
"""

import logging
from logging.handlers import QueueHandler
from pathlib import Path

import pytest

from opwatch.infra.logging import (
    LOGGER_NAMESPACE,
    LoggingConfig,
    configure_logging,
    is_configured,
    shutdown_logging,
)
from opwatch.infra.logging.handlers import is_tagged


@pytest.fixture(autouse=True)
def reset_logging():
    """Clean up the runner namespace before and after each test."""
    shutdown_logging()
    yield
    shutdown_logging()


def _our_handlers():
    return [h for h in logging.getLogger(LOGGER_NAMESPACE).handlers if is_tagged(h)]


def test_logging_idempotency() -> None:
    """TC-01: Verify that multiple config calls do not duplicate handlers."""
    cfg = LoggingConfig(level="INFO", console=True)

    configure_logging(cfg)
    initial = _our_handlers()

    configure_logging(cfg)
    assert _our_handlers() == initial, "Handlers were duplicated."


def test_force_reconfiguration_replaces_handlers() -> None:
    configure_logging(LoggingConfig(level="INFO"))
    first = _our_handlers()

    configure_logging(LoggingConfig(level="DEBUG"), force=True)

    assert len(_our_handlers()) == 1
    assert _our_handlers() != first
    assert logging.getLogger(LOGGER_NAMESPACE).level == logging.DEBUG


def test_root_logger_is_left_alone() -> None:
    """TC-02: The observed program keeps full control of the root logger."""
    root_handlers = list(logging.getLogger().handlers)
    root_level = logging.getLogger().level

    configure_logging(LoggingConfig(level="DEBUG"))

    assert logging.getLogger().handlers == root_handlers
    assert logging.getLogger().level == root_level
    assert logging.getLogger(LOGGER_NAMESPACE).propagate is False


def test_log_rotation(tmp_path: Path) -> None:
    """TC-03: Verify file rotation when size limit is exceeded."""
    log_file = tmp_path / "test_rotate.log"
    cfg = LoggingConfig(
        level="DEBUG",
        console=False,
        log_file=str(log_file),
        max_bytes=100,
        backup_count=1,
    )

    configure_logging(cfg)
    logger = logging.getLogger(f"{LOGGER_NAMESPACE}.test_rotate")

    for _ in range(10):
        logger.debug("This is a long log message to trigger rotation." * 5)

    # Stopping the listener drains the queue
    shutdown_logging()

    assert log_file.exists()
    assert (tmp_path / "test_rotate.log.1").exists(), "Rotation backup file was not created."


def test_log_file_parent_directory_is_created(tmp_path: Path) -> None:
    log_file = tmp_path / "nested" / "logs" / "opwatch.log"

    configure_logging(LoggingConfig(level="INFO", console=False, log_file=str(log_file)))
    logging.getLogger(f"{LOGGER_NAMESPACE}.test").info("hello")
    logging.getLogger("someone.else").warning("not ours")
    shutdown_logging()

    content = log_file.read_text(encoding="utf-8")
    assert "hello" in content
    assert "not ours" not in content


def test_queue_listener_architecture() -> None:
    """TC-04: Verify that the namespace uses a single QueueHandler."""
    configure_logging(LoggingConfig(level="INFO", console=True))

    handlers = _our_handlers()
    assert len(handlers) == 1
    assert isinstance(handlers[0], QueueHandler)
    assert is_configured()


def test_console_follows_swapped_stderr(capsys) -> None:
    configure_logging(LoggingConfig(level="INFO", console=True))
    logging.getLogger(f"{LOGGER_NAMESPACE}.test").warning("visible")
    shutdown_logging()

    assert "opwatch WARNING | visible" in capsys.readouterr().err


def test_unknown_level_falls_back_to_warning() -> None:
    configure_logging(LoggingConfig(level="LOUD"))

    assert logging.getLogger(LOGGER_NAMESPACE).level == logging.WARNING


def test_no_sinks_installs_a_null_handler() -> None:
    configure_logging(LoggingConfig(console=False))

    assert [type(h) for h in _our_handlers()] == [logging.NullHandler]


def test_shutdown_is_safe_to_repeat() -> None:
    configure_logging(LoggingConfig(level="INFO"))

    shutdown_logging()
    shutdown_logging()

    assert _our_handlers() == []
    assert not is_configured()
    assert logging.getLogger(LOGGER_NAMESPACE).propagate is True
