from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./fieldsync.db"

    # Engine defaults (overridable per SyncService.initialize call)
    auto_start_enabled: bool = True
    sync_interval_minutes: float = 5
    max_retries: int = 5
    initial_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 60000
    batch_size: int = 50
    item_timeout_seconds: float = 30.0

    # Remote system of record; empty base URL selects the mock transport
    remote_base_url: str = ""
    remote_api_token: str = ""
    remote_timeout_seconds: float = 30.0
    mock_failure_rate: float = 0.1
    mock_latency_ms: int = 100

    # Connectivity probing; empty URL means "assume connected"
    connectivity_probe_url: str = ""
    connectivity_probe_interval_seconds: float = 15.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


class SyncConfig(BaseModel):
    """Engine configuration, fixed for the lifetime of an engine instance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    auto_start_enabled: bool = True
    sync_interval_minutes: float = 5
    max_retries: int = 5
    initial_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 60000
    batch_size: int = 50
    item_timeout_seconds: Optional[float] = 30.0

    @model_validator(mode="after")
    def _check_bounds(self) -> "SyncConfig":
        if self.sync_interval_minutes <= 0:
            raise ValueError("sync_interval_minutes must be positive")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.initial_retry_delay_ms < 0:
            raise ValueError("initial_retry_delay_ms must not be negative")
        if self.max_retry_delay_ms < self.initial_retry_delay_ms:
            raise ValueError("max_retry_delay_ms must be >= initial_retry_delay_ms")
        if self.item_timeout_seconds is not None and self.item_timeout_seconds <= 0:
            raise ValueError("item_timeout_seconds must be positive")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            auto_start_enabled=settings.auto_start_enabled,
            sync_interval_minutes=settings.sync_interval_minutes,
            max_retries=settings.max_retries,
            initial_retry_delay_ms=settings.initial_retry_delay_ms,
            max_retry_delay_ms=settings.max_retry_delay_ms,
            batch_size=settings.batch_size,
            item_timeout_seconds=settings.item_timeout_seconds,
        )

    def merged(self, **overrides: Any) -> "SyncConfig":
        """Return a new config with overrides applied on top of this one.

        Unknown keys raise ValueError; the merged result is re-validated.
        """
        unknown = set(overrides) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown sync config keys: {sorted(unknown)}")
        return type(self)(**{**self.model_dump(), **overrides})
