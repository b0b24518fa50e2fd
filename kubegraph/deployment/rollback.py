"""Reverse-order deletion of deployed resources."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import structlog

from kubegraph.cluster.client import ClusterClient
from kubegraph.deployment.events import ProgressEmitter
from kubegraph.errors import ClusterApiError, RollbackError
from kubegraph.models.deployment import (
    DeploymentErrorRecord,
    ErrorPhase,
    EventType,
    RollbackConfig,
    RollbackResult,
    aggregate_status,
)
from kubegraph.models.resources import DeployedResource
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import rollbacks_total


class RollbackManager:
    """Deletes resources in exact reverse of the order given.

    One resource failing never stops the rest from being processed.
    """

    def __init__(self, client: ClusterClient, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._client = client
        self._log = logger or get_logger("deployment.rollback")

    async def rollback(self, resources: list[DeployedResource], config: RollbackConfig | None = None) -> RollbackResult:
        config = config or RollbackConfig()
        emitter = ProgressEmitter(config.progress_callback, self._log)
        started = time.monotonic()
        rolled_back: list[str] = []
        errors: list[DeploymentErrorRecord] = []

        emitter.emit(EventType.ROLLBACK, f"Rolling back {len(resources)} resource(s)", total=len(resources))
        for resource in reversed(resources):
            try:
                await self.delete(resource.address, resource.id, config)
            except RollbackError as exc:
                errors.append(DeploymentErrorRecord(resource.id, ErrorPhase.ROLLBACK, exc))
                emitter.emit(EventType.ROLLBACK, f"Failed to roll back {resource.id}", resource_id=resource.id, error=exc)
                continue
            rolled_back.append(resource.id)
            emitter.emit(EventType.ROLLBACK, f"Rolled back {resource.kind}/{resource.name}", resource_id=resource.id)

        status = aggregate_status(succeeded=len(rolled_back), failed=len(errors))
        duration = time.monotonic() - started
        rollbacks_total.labels(status=str(status)).inc()
        self._log.info(
            "rollback_completed",
            status=str(status),
            rolled_back=len(rolled_back),
            errors=len(errors),
            duration_s=round(duration, 3),
        )
        return RollbackResult(rolled_back_resources=rolled_back, duration=duration, status=status, errors=errors)

    async def delete(self, address: dict[str, Any], resource_id: str, config: RollbackConfig) -> None:
        """Delete one object, optionally forcing, and wait for it to disappear.

        Raises RollbackError if the object could not be removed.
        """
        kind = address.get("kind")
        name = (address.get("metadata") or {}).get("name")
        try:
            await self._client.delete(address, grace_period=config.grace_period)
        except ClusterApiError as exc:
            if exc.is_not_found:
                self._log.debug("rollback_already_gone", resource_id=resource_id, kind=kind, name=name)
                return
            if not config.force:
                raise RollbackError(resource_id, str(exc), cause=exc) from exc
            self._log.warning("rollback_force_delete", resource_id=resource_id, kind=kind, name=name, error=str(exc))
            try:
                await self._client.delete(address, grace_period=0)
            except ClusterApiError as force_exc:
                if not force_exc.is_not_found:
                    raise RollbackError(resource_id, f"force delete failed: {force_exc}", cause=force_exc) from force_exc
                return

        if config.timeout is not None:
            await self._wait_gone(address, resource_id, config.timeout, config.poll_interval)
        self._log.info("resource_deleted", resource_id=resource_id, kind=kind, name=name)

    async def _wait_gone(self, address: dict[str, Any], resource_id: str, timeout: float, poll_interval: float) -> None:
        try:
            async with asyncio.timeout(timeout):
                while True:
                    try:
                        await self._client.read(address)
                    except ClusterApiError as exc:
                        if exc.is_not_found:
                            return
                        raise RollbackError(resource_id, f"error while waiting for deletion: {exc}", cause=exc) from exc
                    await asyncio.sleep(poll_interval)
        except TimeoutError as exc:
            raise RollbackError(resource_id, f"still present after {timeout:.1f}s") from exc
