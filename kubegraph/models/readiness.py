"""Readiness evaluation result."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ReadinessResult:
    """Outcome of one readiness evaluation of a live resource.

    Evaluators return ``ready=False`` with a reason for every expected
    not-ready state; they do not raise.
    """

    ready: bool
    reason: str | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str | None = None) -> ReadinessResult:
        return cls(ready=True, message=message)

    @classmethod
    def waiting(cls, reason: str, message: str, **details: Any) -> ReadinessResult:
        return cls(ready=False, reason=reason, message=message, details=details)


ReadinessEvaluator = Callable[[dict[str, Any]], ReadinessResult]
