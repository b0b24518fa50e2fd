"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubegraph.models.config import (
    DeployDefaultsConfig,
    EngineConfig,
    LogConfig,
    RetryConfig,
    RollbackDefaultsConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEGRAPH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_optional_int(key: str) -> int | None:
    raw = _env(key, "")
    if raw == "":
        return None
    return max(int(raw), 0)


def _env_optional_float(key: str) -> float | None:
    raw = _env(key, "")
    if raw == "":
        return None
    return max(float(raw), 0.0)


def _validate_mode(value: str) -> str:
    valid = {"direct", "controller"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid deployment mode: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> EngineConfig:
    """Load configuration from KUBEGRAPH_* environment variables."""
    return EngineConfig(
        namespace=_env("NAMESPACE", "") or None,
        deploy=DeployDefaultsConfig(
            mode=_validate_mode(_env("MODE", "direct")),
            timeout_seconds=_env_float("TIMEOUT", 300.0, min_val=1.0, max_val=3600.0),
            poll_interval_seconds=_env_float("POLL_INTERVAL", 2.0, min_val=0.1, max_val=60.0),
            crd_timeout_seconds=_env_float("CRD_TIMEOUT", 60.0, min_val=1.0, max_val=600.0),
            max_concurrency=_env_int("MAX_CONCURRENCY", 5, min_val=1, max_val=50),
            wait_for_ready=_env_bool("WAIT_FOR_READY", True),
        ),
        retry=RetryConfig(
            max_retries=_env_int("RETRY_MAX", 3, min_val=0, max_val=10),
            initial_delay=_env_float("RETRY_INITIAL_DELAY", 1.0, min_val=0.0),
            max_delay=_env_float("RETRY_MAX_DELAY", 10.0, min_val=0.0),
            multiplier=_env_float("RETRY_MULTIPLIER", 2.0, min_val=1.0),
        ),
        rollback=RollbackDefaultsConfig(
            grace_period_seconds=_env_optional_int("ROLLBACK_GRACE_PERIOD"),
            force=_env_bool("ROLLBACK_FORCE", False),
            timeout_seconds=_env_optional_float("ROLLBACK_TIMEOUT"),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            json=_env_bool("LOG_JSON", True),
        ),
    )
