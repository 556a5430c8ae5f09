"""Generic JSON webhook handler.

Posts every change event as a JSON body to a configured HTTP endpoint.
MODIFIED payloads carry the rendered diff so receivers need no kubedelta
specific knowledge.
"""

from __future__ import annotations

import httpx
import structlog

from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.diff.engine import diff, render
from kubedelta.dispatch.manager import EventHandler
from kubedelta.errors import SerializationError
from kubedelta.models.events import ChangeEvent, Modified

_log = structlog.get_logger(component="dispatch.webhook")


class WebhookEventHandler(EventHandler):
    """Delivers events by POSTing a JSON payload to a configurable URL.

    Args:
        url:        Full endpoint URL (must be HTTPS in production).
        classifier: Supplies the per-kind mask applied to MODIFIED diffs.
        headers:    Optional extra headers (e.g. Authorization).
        timeout:    HTTP request timeout in seconds. Defaults to 10.
        transport:  Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        url: str,
        classifier: ChangeClassifier,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._classifier = classifier
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "webhook"

    async def handle(self, event: ChangeEvent) -> None:
        """POST *event* as JSON. Delivery failures are logged, never raised."""
        payload = self._build_payload(event)
        request_headers = {
            "Content-Type": "application/json",
            **self._headers,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._url,
                    json=payload,
                    headers=request_headers,
                )
                if response.is_success:
                    _log.debug("webhook_delivered", resource=str(event.identity), verb=event.verb.value)
                    return
                _log.warning(
                    "webhook_non_2xx_response",
                    status_code=response.status_code,
                    body=response.text[:200],
                    resource=str(event.identity),
                )
        except httpx.TimeoutException:
            _log.warning("webhook_request_timeout", resource=str(event.identity), url=self._url)
        except httpx.HTTPError as exc:
            _log.warning("webhook_http_error", error=str(exc), resource=str(event.identity))

    def _build_payload(self, event: ChangeEvent) -> dict[str, object]:
        """Serialise *event* to a plain dict for JSON encoding."""
        payload: dict[str, object] = {
            "verb": event.verb.value,
            "kind": event.kind.value,
            "namespace": event.identity.namespace,
            "name": event.identity.name,
            "revision": event.revision,
        }
        if isinstance(event, Modified):
            payload["previous_revision"] = event.old.resource_version
            try:
                payload["diff"] = render(diff(event.old, event.new, mask=self._classifier.mask_for(event.kind)))
            except SerializationError as exc:
                _log.error("webhook_diff_failed", resource=str(event.identity), error=str(exc))
                payload["diff"] = []
                payload["diff_error"] = str(exc)
        return payload
