"""
Logging builder: turn Settings into a dictConfig mapping and apply it.

  - make_dict_config(settings): pure, returns the mapping (easy to unit test)
  - setup_logging(settings): applies it; with LOG_USE_QUEUE the real handlers
    move behind a QueueListener thread and producers only enqueue records
  - stop_queue_logging(): flush and stop the listener at shutdown

Handler selection:

| LOG_TO_STDOUT | LOG_DIR set | handlers                      |
| ------------- | ----------- | ----------------------------- |
| true          | any         | console + error_console       |
| false         | no          | console + error_console       |
| false         | yes         | console + file + error_file   |
"""
from pathlib import Path
import logging
import logging.config
import queue as _queue
from logging.handlers import QueueHandler, QueueListener

from userstore.config.settings import Settings
from userstore.utils.project import get_project_name
from .formatters import JsonFormatter, ColorFormatter
from .filters import CorrelationIdFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)

_QUEUE_LISTENER: QueueListener | None = None

STANDARD_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(correlation_id)s | %(message)s"


def _writes_files(settings: Settings) -> bool:
    return (not settings.LOG_TO_STDOUT) and bool(settings.LOG_DIR)


def make_dict_config(settings: Settings) -> dict:
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": STANDARD_FORMAT,
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "correlation_id": {"()": CorrelationIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}
    if _writes_files(settings):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            "userstore": {
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            "sqlalchemy.engine": {
                "level": "INFO" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    """
    Apply the configuration.

    With LOG_USE_QUEUE every handler attached to the root logger is detached and
    handed to a QueueListener; a QueueHandler takes its place. The correlation-id
    and redaction filters go on the QueueHandler so they run in the producing
    task, where the contextvar is still set.
    """
    global _QUEUE_LISTENER

    stop_queue_logging()

    if _writes_files(settings):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))

    if not settings.LOG_USE_QUEUE:
        return

    root_logger = logging.getLogger()
    current_handlers = list(root_logger.handlers)
    if not current_handlers:
        return

    for handler in current_handlers:
        root_logger.removeHandler(handler)

    log_queue: _queue.Queue = _queue.Queue()
    listener = QueueListener(log_queue, *current_handlers, respect_handler_level=True)
    listener.start()

    queue_handler = QueueHandler(log_queue)
    queue_handler.addFilter(CorrelationIdFilter())
    queue_handler.addFilter(RedactFilter())
    root_logger.addHandler(queue_handler)

    _QUEUE_LISTENER = listener


def stop_queue_logging() -> None:
    """Stop the QueueListener (flushing queued records). No-op when none is running."""
    global _QUEUE_LISTENER

    listener = _QUEUE_LISTENER
    if listener is None:
        return
    try:
        listener.stop()
    finally:
        _QUEUE_LISTENER = None
