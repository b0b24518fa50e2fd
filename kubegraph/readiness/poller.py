"""Fixed-interval readiness polling against the cluster API."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from kubegraph.cluster.client import ClusterClient, is_unrecoverable
from kubegraph.errors import ClusterApiError, ResourceReadinessTimeoutError
from kubegraph.models.readiness import ReadinessEvaluator, ReadinessResult
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import readiness_polls_total
from kubegraph.readiness.registry import ReadinessRegistry

PollCallback = Callable[[ReadinessResult, int], None]


async def wait_for_ready(
    client: ClusterClient,
    address: dict[str, Any],
    evaluator: ReadinessEvaluator,
    *,
    registry: ReadinessRegistry,
    deadline: float,
    resource_id: str,
    poll_interval: float = 2.0,
    on_poll: PollCallback | None = None,
    stop_when: Callable[[ReadinessResult], bool] | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> tuple[ReadinessResult, dict[str, Any]]:
    """Poll *address* until *evaluator* reports ready.

    *deadline* is in ``loop.time()`` units.  Returns the final result and the
    live object.  404s and transient read errors count as not ready; any
    other ClusterApiError propagates.  If *stop_when* matches a not-ready
    result, polling ends early and that result is returned.

    Raises ResourceReadinessTimeoutError carrying the last result when the
    deadline passes first.
    """
    log = logger or get_logger("readiness.poller")
    loop = asyncio.get_running_loop()
    started = loop.time()
    kind = str(address.get("kind", ""))
    name = str((address.get("metadata") or {}).get("name", ""))

    last: ReadinessResult | None = None
    live: dict[str, Any] = {}
    attempt = 0
    try:
        async with asyncio.timeout_at(deadline):
            while True:
                if loop.time() >= deadline:
                    raise TimeoutError
                attempt += 1
                try:
                    live = await client.read(address)
                except ClusterApiError as exc:
                    if is_unrecoverable(exc):
                        raise
                    last = ReadinessResult.waiting(
                        "NotFound" if exc.is_not_found else "ReadError",
                        f"Could not read {kind}/{name}: {exc}",
                        status=exc.status,
                    )
                else:
                    last = registry.evaluate(evaluator, live)

                readiness_polls_total.labels(kind=kind, ready=str(last.ready).lower()).inc()
                log.debug(
                    "readiness_poll",
                    resource_id=resource_id,
                    kind=kind,
                    name=name,
                    attempt=attempt,
                    ready=last.ready,
                    reason=last.reason,
                )
                if on_poll is not None:
                    on_poll(last, attempt)
                if last.ready:
                    return last, live
                if stop_when is not None and stop_when(last):
                    return last, live
                await asyncio.sleep(poll_interval)
    except TimeoutError as exc:
        log.warning(
            "readiness_timeout",
            resource_id=resource_id,
            kind=kind,
            name=name,
            attempts=attempt,
            reason=last.reason if last else None,
        )
        raise ResourceReadinessTimeoutError(resource_id, kind, name, loop.time() - started, last_result=last) from exc
