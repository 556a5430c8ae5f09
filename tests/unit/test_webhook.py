"""Unit tests for WebhookEventHandler using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.diff.masking import VolatilityMask
from kubedelta.dispatch.webhook import WebhookEventHandler
from kubedelta.models.events import Added, Modified
from kubedelta.models.resources import ResourceKind, ResourceRecord
from tests.fakes import make_deployment

_URL = "https://hooks.example.com/kubedelta"


def _record(**kwargs: object) -> ResourceRecord:
    return ResourceRecord.from_object(ResourceKind.DEPLOYMENT, make_deployment(**kwargs))  # type: ignore[arg-type]


def _classifier() -> ChangeClassifier:
    return ChangeClassifier({ResourceKind.DEPLOYMENT: VolatilityMask.from_strings(["status", "metadata.managedFields"])})


class _Capture:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="ok" if self.status_code < 400 else "nope")


def test_empty_url_rejected() -> None:
    with pytest.raises(ValueError):
        WebhookEventHandler(url="", classifier=_classifier())


async def test_added_payload() -> None:
    capture = _Capture()
    handler = WebhookEventHandler(
        url=_URL,
        classifier=_classifier(),
        headers={"Authorization": "Bearer t0ken"},
        transport=httpx.MockTransport(capture),
    )
    await handler.handle(Added(_record(rv=5)))

    assert len(capture.requests) == 1
    request = capture.requests[0]
    assert str(request.url) == _URL
    assert request.headers["Authorization"] == "Bearer t0ken"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "verb": "CREATED",
        "kind": "Deployment",
        "namespace": "default",
        "name": "web",
        "revision": 5,
    }


async def test_modified_payload_carries_diff() -> None:
    capture = _Capture()
    handler = WebhookEventHandler(url=_URL, classifier=_classifier(), transport=httpx.MockTransport(capture))
    await handler.handle(Modified(_record(rv=6, replicas=3), _record(rv=7, replicas=5)))

    body = json.loads(capture.requests[0].content)
    assert body["verb"] == "MODIFIED"
    assert body["revision"] == 7
    assert body["previous_revision"] == 6
    assert "-  replicas: 3" in body["diff"]
    assert "+  replicas: 5" in body["diff"]


async def test_non_2xx_is_not_raised() -> None:
    capture = _Capture(status_code=500)
    handler = WebhookEventHandler(url=_URL, classifier=_classifier(), transport=httpx.MockTransport(capture))
    await handler.handle(Added(_record()))
    assert len(capture.requests) == 1


async def test_connection_error_is_not_raised() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    handler = WebhookEventHandler(url=_URL, classifier=_classifier(), transport=httpx.MockTransport(refuse))
    await handler.handle(Added(_record()))


async def test_timeout_is_not_raised() -> None:
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    handler = WebhookEventHandler(url=_URL, classifier=_classifier(), transport=httpx.MockTransport(slow))
    await handler.handle(Added(_record()))


async def test_unserializable_modification_reports_diff_error() -> None:
    capture = _Capture()
    handler = WebhookEventHandler(url=_URL, classifier=_classifier(), transport=httpx.MockTransport(capture))
    raw = make_deployment(rv=7)
    raw["spec"]["handle"] = object()
    await handler.handle(Modified(_record(rv=6), ResourceRecord.from_object(ResourceKind.DEPLOYMENT, raw)))

    body = json.loads(capture.requests[0].content)
    assert body["diff"] == []
    assert body["diff_error"].startswith("cannot serialize document")
