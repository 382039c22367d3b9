from __future__ import annotations

"""
Diagnostic Logging Lifecycle.

Installs the runner's handlers on its own logger namespace behind a
QueueHandler. A QueueListener thread performs the actual writes, so log I/O
never runs inline with the observed program, and the namespace does not
propagate into the target's root logger.
"""

import atexit
import logging
import queue
from logging.handlers import QueueHandler, QueueListener
from typing import Dict, Optional

from opwatch.infra.logging.config import LOGGER_NAMESPACE, LoggingConfig
from opwatch.infra.logging.handlers import build_sink_handlers, is_tagged, tag

# namespace -> running listener
_LISTENERS: Dict[str, QueueListener] = {}


# ==============================================================================
# PUBLIC API
# ==============================================================================

def configure_logging(cfg: LoggingConfig, *, force: bool = False) -> logging.Logger:
    """
    Attach the diagnostic sinks to ``cfg.namespace``.

    Calling again without ``force`` keeps the existing setup.

    Args:
        cfg: Diagnostic logging settings.
        force: Replace an existing setup.

    Returns:
        logging.Logger: The namespace logger.
    """
    owner = logging.getLogger(cfg.namespace)
    if cfg.namespace in _LISTENERS and not force:
        return owner

    _detach(owner)
    owner.setLevel(cfg.level_number())
    owner.propagate = False

    sinks = build_sink_handlers(cfg)
    if not sinks:
        owner.addHandler(tag(logging.NullHandler()))
        return owner

    log_queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    listener = QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    owner.addHandler(tag(QueueHandler(log_queue)))

    _LISTENERS[cfg.namespace] = listener
    atexit.register(_stop_listener, cfg.namespace)
    return owner


def shutdown_logging(namespace: str = LOGGER_NAMESPACE) -> None:
    """Drain pending records and remove the handlers installed on ``namespace``."""
    owner = logging.getLogger(namespace)
    _detach(owner)
    owner.propagate = True
    owner.setLevel(logging.NOTSET)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def is_configured(namespace: str = LOGGER_NAMESPACE) -> bool:
    return namespace in _LISTENERS or any(is_tagged(h) for h in logging.getLogger(namespace).handlers)


# ==============================================================================
# PRIVATE HELPERS
# ==============================================================================

def _detach(owner: logging.Logger) -> None:
    _stop_listener(owner.name)
    for h in list(owner.handlers):
        if is_tagged(h):
            owner.removeHandler(h)
            h.close()


def _stop_listener(namespace: str) -> None:
    listener: Optional[QueueListener] = _LISTENERS.pop(namespace, None)
    if listener is None:
        return
    listener.stop()
    for h in listener.handlers:
        h.close()
