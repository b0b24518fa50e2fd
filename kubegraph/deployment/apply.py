"""Create-or-replace of a single manifest, with retry on transient errors."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import structlog

from kubegraph.cluster.client import ClusterClient, address_of, is_transient
from kubegraph.errors import ClusterApiError, ResourceDeploymentError
from kubegraph.models.deployment import RetryPolicy
from kubegraph.observability.metrics import resource_apply_total


class Applier:
    """Applies manifests through a ClusterClient.

    ``create`` first; on 409 the existing object is read and replaced with
    its ``resourceVersion`` carried over.
    """

    def __init__(self, client: ClusterClient, logger: structlog.stdlib.BoundLogger) -> None:
        self._client = client
        self._log = logger

    async def apply(self, resource_id: str, manifest: dict[str, Any], policy: RetryPolicy) -> dict[str, Any]:
        """Apply *manifest*, returning the object the API server stored.

        Raises ResourceDeploymentError for a permanent error or once
        ``policy.max_retries`` transient failures have been retried.
        """
        kind = str(manifest.get("kind", ""))
        name = str((manifest.get("metadata") or {}).get("name", resource_id))
        delays = policy.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._apply_once(resource_id, manifest)
            except ClusterApiError as exc:
                if is_transient(exc) and attempt <= len(delays):
                    delay = delays[attempt - 1]
                    resource_apply_total.labels(kind=kind, outcome="retried").inc()
                    self._log.warning(
                        "resource_apply_retry",
                        resource_id=resource_id,
                        kind=kind,
                        name=name,
                        attempt=attempt,
                        status=exc.status,
                        delay=delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                resource_apply_total.labels(kind=kind, outcome="failed").inc()
                self._log.error(
                    "resource_apply_failed",
                    resource_id=resource_id,
                    kind=kind,
                    name=name,
                    attempts=attempt,
                    status=exc.status,
                    error=str(exc),
                )
                raise ResourceDeploymentError(resource_id, kind, name, cause=exc, attempts=attempt) from exc

    async def _apply_once(self, resource_id: str, manifest: dict[str, Any]) -> dict[str, Any]:
        kind = str(manifest.get("kind", ""))
        try:
            live = await self._client.create(manifest)
        except ClusterApiError as exc:
            if not exc.is_conflict:
                raise
            existing = await self._client.read(address_of(manifest))
            body = copy.deepcopy(manifest)
            version = (existing.get("metadata") or {}).get("resourceVersion")
            if version is not None:
                body.setdefault("metadata", {})["resourceVersion"] = version
            live = await self._client.replace(body)
            resource_apply_total.labels(kind=kind, outcome="replaced").inc()
            self._log.info("resource_replaced", resource_id=resource_id, kind=kind, resource_version=version)
            return live
        resource_apply_total.labels(kind=kind, outcome="created").inc()
        self._log.info("resource_created", resource_id=resource_id, kind=kind)
        return live
