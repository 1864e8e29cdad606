"""Configuration models using Pydantic."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from relaypool.core.errors import PoolConfigError


class PoolConfig(BaseModel):
    """Worker pool limits. Immutable for the lifetime of a pool."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_units: int = Field(default=1, ge=1)
    max_concurrent_per_unit: int = Field(default=1, ge=1)

    # Lifecycle limits, None = unlimited
    idle_timeout_ms: float | None = Field(default=None, gt=0)
    max_tasks_per_unit: int | None = Field(default=None, ge=1)
    max_unit_lifetime_ms: float | None = Field(default=None, gt=0)

    # Delay between evicting a unit and terminating its handle
    eviction_grace_ms: float = Field(default=10.0, gt=0)

    @classmethod
    def create(cls, **values: object) -> PoolConfig:
        """Build a config, converting validation failures to PoolConfigError."""
        try:
            return cls(**values)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise PoolConfigError(f"Invalid pool configuration: {errors}") from e


class PoolSettings(BaseSettings):
    """Pool configuration read from RELAYPOOL_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RELAYPOOL_",
        extra="ignore",
    )

    max_units: int = 1
    max_concurrent_per_unit: int = 1
    idle_timeout_ms: float | None = None
    max_tasks_per_unit: int | None = None
    max_unit_lifetime_ms: float | None = None
    eviction_grace_ms: float = 10.0

    def to_pool_config(self) -> PoolConfig:
        """Validate settings into a PoolConfig."""
        return PoolConfig.create(**self.model_dump())
