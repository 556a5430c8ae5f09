"""RemoteSource implementation backed by kubernetes-asyncio.

Deployments come from AppsV1Api, Pods from CoreV1Api. Scope is a single
namespace or, when the namespace is empty, the whole cluster.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubedelta.errors import KubeDeltaError, MalformedDelta, SourceUnavailable, WatchExpired
from kubedelta.models.events import DeltaType, ListResult, RawDelta
from kubedelta.models.resources import ResourceKind
from kubedelta.observability.metrics import deltas_dropped_total
from kubedelta.source.base import RemoteSource

_log = structlog.get_logger(component="source.kubernetes")

_GONE = 410

# kind -> (api attribute, namespaced list call, cluster-wide list call)
_LIST_CALLS: dict[ResourceKind, tuple[str, str, str]] = {
    ResourceKind.DEPLOYMENT: ("_apps_v1", "list_namespaced_deployment", "list_deployment_for_all_namespaces"),
    ResourceKind.POD: ("_core_v1", "list_namespaced_pod", "list_pod_for_all_namespaces"),
}

_TRANSIENT_ERRORS = (aiohttp.ClientError, OSError, TimeoutError)


class KubernetesSource(RemoteSource):
    """List+watch over the Kubernetes API.

    Args:
        namespace:             Namespace to watch; empty string means all.
        api_client:            Optional pre-built ApiClient (tests, custom auth).
        watch_timeout_seconds: Server-side watch timeout; the stream ends
                               cleanly afterwards and the watcher re-watches.
    """

    def __init__(
        self,
        namespace: str = "default",
        api_client: Any = None,
        watch_timeout_seconds: int = 300,
    ) -> None:
        self._namespace = namespace
        self._api_client = api_client or k8s_client.ApiClient()
        self._apps_v1 = k8s_client.AppsV1Api(self._api_client)
        self._core_v1 = k8s_client.CoreV1Api(self._api_client)
        self._watch_timeout = watch_timeout_seconds

    def _list_call(self, kind: ResourceKind) -> tuple[Callable[..., Awaitable[Any]], dict[str, Any]]:
        api_attr, namespaced, cluster_wide = _LIST_CALLS[kind]
        api = getattr(self, api_attr)
        if self._namespace:
            return getattr(api, namespaced), {"namespace": self._namespace}
        return getattr(api, cluster_wide), {}

    async def list(self, kind: ResourceKind) -> ListResult:
        fn, kwargs = self._list_call(kind)
        try:
            response = await fn(**kwargs)
        except ApiException as exc:
            raise SourceUnavailable(f"list {kind} failed: {exc.status} {exc.reason}") from exc
        except _TRANSIENT_ERRORS as exc:
            raise SourceUnavailable(f"list {kind} failed: {exc}") from exc
        except ValueError as exc:
            raise SourceUnavailable(f"list {kind} returned an undecodable response: {exc}") from exc

        items = [self._api_client.sanitize_for_serialization(item) for item in response.items or []]
        revision = _parse_revision(response.metadata.resource_version if response.metadata else None)
        _log.debug("list_completed", kind=kind.value, items=len(items), revision=revision)
        return ListResult(items=items, revision=revision)

    async def watch(self, kind: ResourceKind, from_revision: int) -> AsyncIterator[RawDelta]:
        fn, kwargs = self._list_call(kind)
        kwargs.update(
            resource_version=str(from_revision),
            timeout_seconds=self._watch_timeout,
            allow_watch_bookmarks=True,
        )
        watcher = k8s_watch.Watch()
        try:
            async with watcher.stream(fn, **kwargs) as stream:
                async for event in stream:
                    try:
                        delta = _to_delta(kind, event)
                    except MalformedDelta as exc:
                        deltas_dropped_total.labels(kind=kind.value, reason="malformed").inc()
                        _log.warning("malformed_watch_event_dropped", kind=kind.value, error=str(exc))
                        continue
                    yield delta
        except ApiException as exc:
            if exc.status == _GONE:
                raise WatchExpired(f"watch {kind} from {from_revision}: {exc.reason}") from exc
            raise SourceUnavailable(f"watch {kind} failed: {exc.status} {exc.reason}") from exc
        except _TRANSIENT_ERRORS as exc:
            raise SourceUnavailable(f"watch {kind} failed: {exc}") from exc
        except KubeDeltaError:
            raise
        except Exception as exc:
            # kubernetes-asyncio raises bare Exception or ValueError on undecodable stream data
            raise SourceUnavailable(f"watch {kind} failed: {type(exc).__name__}: {exc}") from exc
        finally:
            watcher.stop()

    async def close(self) -> None:
        await self._api_client.close()


def _to_delta(kind: ResourceKind, event: object) -> RawDelta:
    """Translate a kubernetes-asyncio watch event into a RawDelta.

    Raises:
        MalformedDelta: the event is not a decoded mapping or carries no object.
        WatchExpired: the server reported 410 Gone in an ERROR event.
        SourceUnavailable: any other ERROR event or an unknown event type.
    """
    # unmarshal_event hands back the raw line when it is not valid JSON
    if not isinstance(event, dict):
        raise MalformedDelta(f"watch {kind} sent an undecodable event: {str(event)[:80]!r}")
    event_type = str(event.get("type", ""))
    raw = event.get("raw_object")
    if not isinstance(raw, dict):
        raise MalformedDelta(f"watch {kind} {event_type or '?'} event has no object")
    if event_type == "ERROR":
        code = raw.get("code")
        message = raw.get("message", "")
        if code == _GONE:
            raise WatchExpired(f"watch {kind} expired: {message}")
        raise SourceUnavailable(f"watch {kind} error {code}: {message}")
    try:
        delta_type = DeltaType(event_type)
    except ValueError:
        raise SourceUnavailable(f"watch {kind} sent unknown event type {event_type!r}") from None
    return RawDelta(type=delta_type, kind=kind, object=raw)


def _parse_revision(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError as exc:
        raise SourceUnavailable(f"list returned a non-integer resourceVersion: {value!r}") from exc
