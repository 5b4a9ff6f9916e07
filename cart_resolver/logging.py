"""structlog setup for the resolver API and for library callers.

Development gets the console renderer, every other environment emits JSON
lines. Each event is stamped with ``service`` plus whatever was bound with
``resolution_context`` (retailer, batch size, item name).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from cart_resolver.config import settings

SERVICE_NAME = "cart-resolver"


def _add_service_name(_logger: Any, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(*, environment: str | None = None, log_level: str | None = None) -> None:
    """Configure structlog; arguments override the matching settings.

    Safe to call more than once; the last call wins.
    """
    if (environment or settings.environment) == "development":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _level_from_name(log_level or settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def resolution_context(**values: Any) -> Iterator[None]:
    """Bind non-empty ``values`` to every log line emitted inside the block.

    Previous bindings for the same keys are restored on exit, so nested
    contexts (a batch, then one of its items) unwind cleanly.
    """
    bound = {key: value for key, value in values.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
