"""Tests for environment-driven configuration."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from kubegraph.config import load_config
from kubegraph.models import DeploymentMode


class TestLoadConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("NAMESPACE", "MODE", "TIMEOUT", "MAX_CONCURRENCY", "ROLLBACK_TIMEOUT"):
            monkeypatch.delenv(f"KUBEGRAPH_{key}", raising=False)
        config = load_config()
        assert config.namespace is None
        assert config.deploy.mode == "direct"
        assert config.deploy.timeout_seconds == 300.0
        assert config.deploy.max_concurrency == 5
        assert config.rollback.timeout_seconds is None

    def test_values_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEGRAPH_MAX_CONCURRENCY", "500")
        monkeypatch.setenv("KUBEGRAPH_RETRY_MAX", "-4")
        monkeypatch.setenv("KUBEGRAPH_POLL_INTERVAL", "0")
        config = load_config()
        assert config.deploy.max_concurrency == 50
        assert config.retry.max_retries == 0
        assert config.deploy.poll_interval_seconds == 0.1

    def test_invalid_mode_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEGRAPH_MODE", "alchemy")
        with pytest.raises(ValueError, match="Invalid deployment mode"):
            load_config()

    def test_default_options(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEGRAPH_MODE", "Controller")
        monkeypatch.setenv("KUBEGRAPH_NAMESPACE", "apps")
        monkeypatch.setenv("KUBEGRAPH_TIMEOUT", "60")
        monkeypatch.setenv("KUBEGRAPH_RETRY_INITIAL_DELAY", "0.5")
        options = load_config().default_options()
        assert options.mode == DeploymentMode.CONTROLLER
        assert options.namespace == "apps"
        assert options.timeout == 60.0
        assert options.retry_policy is not None
        assert options.retry_policy.initial_delay == 0.5

    def test_rollback_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEGRAPH_ROLLBACK_GRACE_PERIOD", "15")
        monkeypatch.setenv("KUBEGRAPH_ROLLBACK_FORCE", "yes")
        monkeypatch.setenv("KUBEGRAPH_ROLLBACK_TIMEOUT", "30")
        rollback = load_config().rollback_config()
        assert rollback.grace_period == 15
        assert rollback.force is True
        assert rollback.timeout == 30.0

    def test_configure_logging(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEGRAPH_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("KUBEGRAPH_LOG_JSON", "false")
        config = load_config()
        with patch("kubegraph.models.config.setup_logging") as setup:
            config.configure_logging()
        setup.assert_called_once_with(level="debug", json_output=False)
