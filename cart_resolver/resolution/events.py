"""Resolution event hook.

The service reports each step of an item's resolution as a
``ResolutionEvent`` passed to one optional callback. A failing callback is
logged and otherwise ignored.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from cart_resolver.models.contracts import ResolutionEvent, ResolutionEventKind

log = structlog.get_logger("cart_resolver.events")

EventHook = Callable[[ResolutionEvent], None]


class EventEmitter:
    def __init__(self, hook: EventHook | None = None) -> None:
        self._hook = hook

    def emit(
        self,
        kind: ResolutionEventKind,
        item_name: str,
        *,
        cache_key: str | None = None,
        retailer_id: str | None = None,
        **detail: Any,
    ) -> None:
        if self._hook is None:
            return
        event = ResolutionEvent(
            kind=kind,
            item_name=item_name,
            cache_key=cache_key,
            retailer_id=retailer_id,
            detail=detail,
        )
        try:
            self._hook(event)
        except Exception as exc:
            log.warning(
                "resolution_event_hook_failed",
                kind=kind,
                error=str(exc),
                error_type=type(exc).__name__,
            )
