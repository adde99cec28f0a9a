from __future__ import annotations

"""
Logging Lifecycle.

Configures the root logger idempotently. Worker threads only enqueue
records; a QueueListener thread performs the console and file I/O so
resolution workers never block on log output.
"""

import atexit
import logging
import queue
from logging.handlers import QueueHandler, QueueListener
from typing import List, Optional

from tgatlantis.infra.logging.config import _LEVEL_MAP, LoggingConfig
from tgatlantis.infra.logging.handlers import (
    _create_console_handler,
    _create_rotating_file_handler,
    _is_our_handler,
    _tag_handler,
)

_CONFIGURED_FLAG_ATTR: str = "_tgatlantis_configured"
_QUEUE_LISTENER_ATTR: str = "_tgatlantis_queue_listener"


# ==============================================================================
# PUBLIC API
# ==============================================================================

def configure_logging(cfg: LoggingConfig, *, force: bool = False) -> logging.Logger:
    """
    Configure the root logger behind a queue.

    Calling it again is a no-op unless force is set, in which case the
    previous handlers and listener are torn down first.

    Args:
        cfg: Logging settings.
        force: Re-initialize even when already configured.

    Returns:
        logging.Logger: The root logger.
    """
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG_ATTR, False) and not force:
        return root

    level_int = _parse_level(cfg.level)
    root.setLevel(level_int)

    _remove_our_handlers(root)
    _stop_existing_listener(root)

    handlers_list: List[logging.Handler] = []
    if cfg.console:
        handlers_list.append(_create_console_handler(level_int, logging.Formatter(cfg.console_fmt)))

    if cfg.log_file:
        fh = _create_rotating_file_handler(
            cfg.log_file,
            level_int,
            logging.Formatter(cfg.file_fmt, datefmt=cfg.datefmt),
            cfg.max_bytes,
            cfg.backup_count,
        )
        if fh:
            handlers_list.append(fh)

    if not handlers_list:
        setattr(root, _CONFIGURED_FLAG_ATTR, True)
        return root

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    queue_handler = QueueHandler(log_queue)
    _tag_handler(queue_handler)

    listener = QueueListener(log_queue, *handlers_list, respect_handler_level=True)
    listener.start()
    root.addHandler(queue_handler)

    setattr(root, _QUEUE_LISTENER_ATTR, listener)
    setattr(root, _CONFIGURED_FLAG_ATTR, True)
    atexit.register(_safe_stop_listener, listener)
    return root


def shutdown_logging() -> None:
    """Flush pending records and detach every tgatlantis handler."""
    root = logging.getLogger()
    _stop_existing_listener(root)
    _remove_our_handlers(root)
    setattr(root, _CONFIGURED_FLAG_ATTR, False)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger (usually __name__)."""
    return logging.getLogger(name)


# ==============================================================================
# PRIVATE HELPERS
# ==============================================================================

def _parse_level(level: str) -> int:
    if not level:
        return logging.INFO
    return _LEVEL_MAP.get(str(level).strip().upper(), logging.INFO)


def _remove_our_handlers(root: logging.Logger) -> None:
    for h in list(root.handlers):
        if _is_our_handler(h):
            root.removeHandler(h)
            h.close()


def _stop_existing_listener(root: logging.Logger) -> None:
    listener = getattr(root, _QUEUE_LISTENER_ATTR, None)
    if not listener:
        return
    _safe_stop_listener(listener)
    setattr(root, _QUEUE_LISTENER_ATTR, None)
    # Handlers fed by the listener are closed once it has drained
    for h in listener.handlers:
        h.close()


def _safe_stop_listener(listener: Optional[QueueListener]) -> None:
    """Stop a listener; a second stop (atexit after shutdown) is a no-op."""
    if listener is not None and getattr(listener, "_thread", None) is not None:
        listener.stop()
