"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from kubegraph.models.deployment import DeploymentMode, DeploymentOptions, RetryPolicy, RollbackConfig
from kubegraph.observability.logging import setup_logging


@dataclass
class DeployDefaultsConfig:
    """Defaults applied to every deploy() call that does not override them."""

    mode: str = "direct"
    timeout_seconds: float = 300.0
    poll_interval_seconds: float = 2.0
    crd_timeout_seconds: float = 60.0
    max_concurrency: int = 5
    wait_for_ready: bool = True


@dataclass
class RetryConfig:
    """Backoff for transient cluster API errors."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0


@dataclass
class RollbackDefaultsConfig:
    """Rollback manager defaults."""

    grace_period_seconds: int | None = None
    force: bool = False
    timeout_seconds: float | None = None


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    json: bool = True


@dataclass
class EngineConfig:
    """Top-level kubegraph configuration."""

    namespace: str | None = None
    deploy: DeployDefaultsConfig = field(default_factory=DeployDefaultsConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rollback: RollbackDefaultsConfig = field(default_factory=RollbackDefaultsConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry.max_retries,
            backoff_multiplier=self.retry.multiplier,
            initial_delay=self.retry.initial_delay,
            max_delay=self.retry.max_delay,
        )

    def default_options(self) -> DeploymentOptions:
        return DeploymentOptions(
            mode=DeploymentMode(self.deploy.mode),
            namespace=self.namespace,
            timeout=self.deploy.timeout_seconds,
            wait_for_ready=self.deploy.wait_for_ready,
            retry_policy=self.retry_policy(),
            readiness_poll_interval=self.deploy.poll_interval_seconds,
            crd_establishment_timeout=self.deploy.crd_timeout_seconds,
            max_concurrency=self.deploy.max_concurrency,
        )

    def rollback_config(self) -> RollbackConfig:
        return RollbackConfig(
            timeout=self.rollback.timeout_seconds,
            grace_period=self.rollback.grace_period_seconds,
            force=self.rollback.force,
            poll_interval=self.deploy.poll_interval_seconds,
        )

    def configure_logging(self) -> None:
        """Apply the ``log`` section to structlog."""
        setup_logging(level=self.log.level, json_output=self.log.json)
