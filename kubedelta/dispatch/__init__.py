"""Event dispatch for kubedelta.

Delivers classified change events to the handlers registered per kind.

Exports:
    EventHandler         -- Abstract base for all handlers.
    EventDispatcher      -- Ordered per-kind fan-out with handler isolation.
    ConsoleEventHandler  -- "<KIND> <VERB>: ns/name" report plus diffs.
    WebhookEventHandler  -- Generic JSON POST handler.
    build_dispatcher     -- Factory used by the application bootstrap.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from kubedelta.dispatch.console import ConsoleEventHandler
from kubedelta.dispatch.manager import EventDispatcher, EventHandler
from kubedelta.dispatch.webhook import WebhookEventHandler

if TYPE_CHECKING:
    from kubedelta.diff.classifier import ChangeClassifier
    from kubedelta.models.config import KubeDeltaConfig

_log = structlog.get_logger(component="dispatch")

__all__ = [
    "ConsoleEventHandler",
    "EventDispatcher",
    "EventHandler",
    "WebhookEventHandler",
    "build_dispatcher",
]


def build_dispatcher(
    config: KubeDeltaConfig,
    classifier: ChangeClassifier,
    emit: Callable[[str], None] | None = None,
) -> EventDispatcher:
    """Build an EventDispatcher with handlers for every watched kind.

    The console handler is always registered. The webhook handler is enabled
    only when ``KUBEDELTA_WEBHOOK_SECRET_REF`` names an environment variable
    holding a non-empty URL.
    """
    dispatcher = EventDispatcher(mode=config.dispatch.mode, queue_size=config.dispatch.queue_size)

    handlers: list[EventHandler] = [
        ConsoleEventHandler(
            classifier,
            emit=emit,
            context=config.diff.context_lines,
            diff_tool=config.diff.tool,
        )
    ]

    webhook_ref = config.notifications.webhook_secret_ref
    if webhook_ref:
        webhook_url = os.environ.get(webhook_ref, "")
        if webhook_url:
            try:
                handlers.append(WebhookEventHandler(url=webhook_url, classifier=classifier))
                _log.info("webhook_handler_enabled")
            except ValueError as exc:
                _log.warning("webhook_handler_disabled", reason=str(exc))
        else:
            _log.debug("webhook_handler_skipped", reason="secret ref env var is empty")

    for kind in config.source.kinds:
        for handler in handlers:
            dispatcher.register(kind, handler)
    return dispatcher
