"""Structured event logging for the dispatch core."""

from __future__ import annotations

import logging
from typing import Any

LOGGER_PREFIX = "dispatch"


class ContextFormatter(logging.Formatter):
    """Render the component and context carried by dispatch log records."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "component"):
            record.component = record.name.rsplit(".", 1)[-1]
        message = super().format(record)
        context = getattr(record, "context", None)
        if context:
            rendered = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            message = f"{message} [{rendered}]"
        return message


def get_logger(component: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{component.lower()}")


def log_event(message: str, *, component: str, level: int = logging.INFO, **context: Any) -> None:
    """Emit a ``(message, context, component)`` record.

    Handler failures are routed through ``logging.Handler.handleError`` so the
    caller never sees them.
    """

    get_logger(component).log(level, message, extra={"component": component, "context": context})


def configure_logging(level: str | int = logging.INFO) -> None:
    """Attach a console handler to the dispatch logger tree once."""

    root = logging.getLogger(LOGGER_PREFIX)
    root.setLevel(level)
    if any(getattr(handler, "_dispatch_handler", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)s [%(component)s] %(message)s"))
    handler._dispatch_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
