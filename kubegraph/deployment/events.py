"""Delivery of DeploymentEvents to a caller-supplied progress callback."""

from __future__ import annotations

from typing import Any

import structlog

from kubegraph.models.deployment import DeploymentEvent, EventType, ProgressCallback


class ProgressEmitter:
    """Wraps an optional progress callback.

    A callback that raises is logged and otherwise ignored; it never
    interrupts the deployment that is reporting progress.
    """

    def __init__(self, callback: ProgressCallback | None, logger: structlog.stdlib.BoundLogger) -> None:
        self._callback = callback
        self._log = logger

    def emit(
        self,
        event_type: EventType,
        message: str,
        resource_id: str | None = None,
        error: Exception | None = None,
        **details: Any,
    ) -> None:
        if self._callback is None:
            return
        event = DeploymentEvent(type=event_type, message=message, resource_id=resource_id, error=error, details=details)
        try:
            self._callback(event)
        except Exception as exc:  # noqa: BLE001
            self._log.warning("progress_callback_error", event_type=str(event_type), error=str(exc))
