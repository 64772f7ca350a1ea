"""Engine configuration."""

import os

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class EngineConfig(BaseModel):
    """Tunables for retries, leases and the claim loop."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 5
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 3_600_000
    backoff_jitter: float = 0.2
    lease_ms: int = 300_000
    batch_size: int = 50
    poll_interval: float = 1.0
    reap_interval: float = 30.0
    strict_rendering: bool = True
    dispatch_timeout: float = 10.0

    @field_validator("max_attempts", "batch_size")
    @classmethod
    def at_least_one(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @field_validator("backoff_base_ms", "lease_ms")
    @classmethod
    def positive_ms(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("poll_interval", "reap_interval", "dispatch_timeout")
    @classmethod
    def positive_seconds(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("backoff_jitter")
    @classmethod
    def jitter_in_range(cls, v: float) -> float:
        if not 0 <= v < 1:
            raise ValueError("backoff_jitter must be in [0, 1)")
        return v

    @model_validator(mode="after")
    def validate_backoff_cap(self) -> "EngineConfig":
        if self.backoff_max_ms < self.backoff_base_ms:
            raise ValueError("backoff_max_ms must be >= backoff_base_ms")
        return self

    @model_validator(mode="after")
    def validate_dispatch_within_lease(self) -> "EngineConfig":
        # A send still in flight when the lease expires would be handed to another worker.
        if self.dispatch_timeout * 1000 >= self.lease_ms:
            raise ValueError("dispatch_timeout must be shorter than lease_ms")
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineConfig":
        """Build config from ENGINE_* environment variables."""
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = f"ENGINE_{name.upper()}"
            if key in env:
                values[name] = env[key]
        return cls.model_validate(values)
