"""Unit tests for EngineConfig."""

import pytest
from pydantic import ValidationError

from models.config import EngineConfig


class TestEngineConfigDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.max_attempts == 5
        assert config.backoff_base_ms == 1000
        assert config.backoff_max_ms == 3_600_000
        assert config.lease_ms == 300_000
        assert config.strict_rendering is True

    def test_frozen(self):
        config = EngineConfig()
        with pytest.raises(ValidationError):
            config.max_attempts = 3


class TestEngineConfigValidation:
    """Tests for field validation."""

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValidationError, match="max_attempts must be at least 1"):
            EngineConfig(max_attempts=0)

    def test_lease_must_be_positive(self):
        with pytest.raises(ValidationError, match="lease_ms must be positive"):
            EngineConfig(lease_ms=0)

    def test_jitter_range(self):
        with pytest.raises(ValidationError, match="backoff_jitter"):
            EngineConfig(backoff_jitter=1.0)

    def test_cap_below_base_raises(self):
        with pytest.raises(ValidationError, match="backoff_max_ms"):
            EngineConfig(backoff_base_ms=5000, backoff_max_ms=1000)

    def test_poll_interval_must_be_positive(self):
        with pytest.raises(ValidationError, match="poll_interval must be positive"):
            EngineConfig(poll_interval=0)

    def test_dispatch_timeout_equal_to_lease_raises(self):
        with pytest.raises(ValidationError, match="dispatch_timeout must be shorter than lease_ms"):
            EngineConfig(lease_ms=10_000, dispatch_timeout=10)

    def test_dispatch_timeout_longer_than_lease_raises(self):
        with pytest.raises(ValidationError, match="dispatch_timeout"):
            EngineConfig.from_env({"ENGINE_LEASE_MS": "5000", "ENGINE_DISPATCH_TIMEOUT": "30"})

    def test_dispatch_timeout_below_lease_accepted(self):
        config = EngineConfig(lease_ms=10_000, dispatch_timeout=9.5)
        assert config.dispatch_timeout == 9.5


class TestEngineConfigFromEnv:
    """Tests for environment loading."""

    def test_empty_environment_gives_defaults(self):
        assert EngineConfig.from_env({}) == EngineConfig()

    def test_reads_prefixed_variables(self):
        config = EngineConfig.from_env(
            {
                "ENGINE_MAX_ATTEMPTS": "3",
                "ENGINE_LEASE_MS": "60000",
                "ENGINE_STRICT_RENDERING": "false",
                "ENGINE_POLL_INTERVAL": "0.5",
            }
        )
        assert config.max_attempts == 3
        assert config.lease_ms == 60_000
        assert config.strict_rendering is False
        assert config.poll_interval == 0.5

    def test_ignores_unrelated_variables(self):
        config = EngineConfig.from_env({"MAX_ATTEMPTS": "9", "REDIS_URL": "redis://x"})
        assert config.max_attempts == 5

    def test_invalid_value_raises(self):
        with pytest.raises(ValidationError):
            EngineConfig.from_env({"ENGINE_MAX_ATTEMPTS": "many"})
