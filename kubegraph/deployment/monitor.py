"""Kubernetes Event streaming for resources under deployment.

One watch per kind, filtered server-side by ``involvedObject.kind`` (and the
name when only one object of that kind is monitored) and client-side by name
and event type.  Matching events reach the progress callback as
``kubernetes-event`` DeploymentEvents.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import structlog

from kubegraph.deployment.events import ProgressEmitter
from kubegraph.models.deployment import EventType, ProgressCallback
from kubegraph.models.resources import DeployedResource
from kubegraph.observability.logging import get_logger


def _default_watch_factory() -> Any:
    from kubernetes_asyncio import watch  # type: ignore[import-untyped]

    return watch.Watch()


def build_field_selector(kind: str, names: Iterable[str]) -> str:
    names = list(names)
    selector = f"involvedObject.kind={kind}"
    if len(names) == 1:
        selector += f",involvedObject.name={names[0]}"
    return selector


def _event_time(obj: dict[str, Any]) -> datetime | None:
    for key in ("lastTimestamp", "eventTime", "firstTimestamp"):
        value = obj.get(key) or obj.get(_snake(key))
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=UTC)
        if isinstance(value, str) and value:
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                continue
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _snake(key: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in key)


class EventMonitor:
    """Streams Events for a set of deployed resources until stopped.

    ``stop()`` stops every watch, closes its HTTP response, cancels the
    watch tasks and waits for them, so no watch outlives the monitor.
    """

    def __init__(
        self,
        core_api: Any,
        namespace: str,
        progress_callback: ProgressCallback | None = None,
        *,
        event_types: Iterable[str] = ("Warning", "Error"),
        start_time: datetime | None = None,
        max_reconnect_attempts: int = 10,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        reconnect_jitter: float = 0.2,
        watch_factory: Callable[[], Any] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._core_api = core_api
        self._namespace = namespace
        self._event_types = frozenset(event_types)
        self._start_time = start_time or datetime.now(tz=UTC)
        self._max_reconnect_attempts = max_reconnect_attempts
        self._base_delay = reconnect_base_delay
        self._max_delay = reconnect_max_delay
        self._jitter = reconnect_jitter
        self._watch_factory = watch_factory or _default_watch_factory
        self._log = logger or get_logger("deployment.monitor")
        self._emitter = ProgressEmitter(progress_callback, self._log)

        # (kind, name) -> resource id
        self._targets: dict[tuple[str, str], str] = {}
        self._names: dict[str, list[str]] = {}
        self._selectors: dict[str, str] = {}
        self._watches: dict[str, Any] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stopping = False

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stopping

    async def start(self, resources: Iterable[DeployedResource]) -> None:
        """Begin watching Events for *resources*, one watch per kind."""
        await self.add_resources(resources)

    async def add_resources(self, resources: Iterable[DeployedResource]) -> None:
        """Watch Events for more resources.

        A kind that is already watched has its field selector rebuilt from
        every monitored name; when the selector changes the watch is
        restarted with it.
        """
        if self._stopping:
            raise RuntimeError("EventMonitor cannot be restarted after stop()")
        touched: dict[str, None] = {}
        for resource in resources:
            self._targets[(resource.kind, resource.name)] = resource.id
            names = self._names.setdefault(resource.kind, [])
            if resource.name not in names:
                names.append(resource.name)
                touched[resource.kind] = None

        for kind in touched:
            selector = build_field_selector(kind, self._names[kind])
            if self._selectors.get(kind) == selector:
                continue
            if kind in self._tasks:
                await self._stop_kind(kind)
                self._log.info("event_watch_selector_updated", kind=kind, field_selector=selector)
            self._selectors[kind] = selector
            self._tasks[kind] = asyncio.create_task(self._watch_kind(kind, selector), name=f"event-watch:{kind}")
        self._log.info("event_monitor_watching", namespace=self._namespace, kinds=sorted(touched))

    async def _stop_kind(self, kind: str) -> None:
        w = self._watches.pop(kind, None)
        task = self._tasks.pop(kind)
        if w is not None:
            w.stop()
        task.cancel()
        (result,) = await asyncio.gather(task, return_exceptions=True)
        if isinstance(result, Exception):
            self._log.warning("event_watch_task_error", kind=kind, error=str(result))

    async def stop(self) -> None:
        if self._stopping:
            return
        self._stopping = True
        watches = list(self._watches.values())
        for w in watches:
            w.stop()
        for w in watches:
            try:
                await w.close()
            except Exception as exc:  # noqa: BLE001
                self._log.debug("event_watch_close_error", error=str(exc))
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self._log.warning("event_watch_task_error", error=str(result))
        self._watches.clear()
        self._log.info("event_monitor_stopped", namespace=self._namespace, watches=len(tasks))

    async def __aenter__(self) -> EventMonitor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    def _reconnect_delay(self, attempt: int) -> float:
        delay = min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)
        return max(0.0, delay + delay * self._jitter * random.uniform(-1.0, 1.0))

    async def _watch_kind(self, kind: str, selector: str) -> None:
        attempts = 0
        while not self._stopping:
            w = self._watch_factory()
            self._watches[kind] = w
            try:
                async for event in w.stream(
                    self._core_api.list_namespaced_event,
                    namespace=self._namespace,
                    field_selector=selector,
                ):
                    attempts = 0
                    self._handle(event)
            except Exception as exc:  # noqa: BLE001
                if self._stopping:
                    return
                attempts += 1
                if attempts > self._max_reconnect_attempts:
                    self._log.error("event_watch_gave_up", kind=kind, attempts=attempts - 1, error=str(exc))
                    return
                delay = self._reconnect_delay(attempts)
                self._log.warning("event_watch_reconnecting", kind=kind, attempt=attempts, delay=round(delay, 2), error=str(exc))
                await asyncio.sleep(delay)
            finally:
                await w.close()
            # A watch that ends cleanly hit its server-side timeout; reopen it.

    def _handle(self, event: dict[str, Any]) -> None:
        obj = event.get("raw_object")
        if obj is None:
            raw = event.get("object")
            obj = raw.to_dict() if hasattr(raw, "to_dict") else raw
        if not isinstance(obj, dict):
            return

        involved = obj.get("involvedObject") or obj.get("involved_object") or {}
        key = (str(involved.get("kind", "")), str(involved.get("name", "")))
        resource_id = self._targets.get(key)
        if resource_id is None:
            return
        event_type = obj.get("type")
        if event_type not in self._event_types:
            return
        occurred = _event_time(obj)
        if occurred is not None and occurred < self._start_time:
            return

        reason = obj.get("reason") or ""
        message = obj.get("message") or ""
        self._emitter.emit(
            EventType.KUBERNETES_EVENT,
            f"{key[0]}/{key[1]}: {reason}: {message}",
            resource_id,
            event_type=event_type,
            reason=reason,
            count=obj.get("count"),
            watch_event=event.get("type"),
        )
