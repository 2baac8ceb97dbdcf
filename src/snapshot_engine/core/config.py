"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError
from .numeric import FALLBACK_INITIAL_CAPITAL, PROFIT_FACTOR_CAP


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class EngineConfig(BaseModel):
    rolling_window: int = Field(default=30, ge=2)  # Trades per rolling window
    yield_every: int = Field(default=100, ge=1)  # Hot-loop iterations between checkpoints
    fallback_initial_capital: float = Field(default=FALLBACK_INITIAL_CAPITAL, gt=0)
    profit_factor_cap: float = PROFIT_FACTOR_CAP  # Reported when a window has no losses
    excursion_bucket_size: float = Field(default=10.0, gt=0)  # Percent points per bucket
    max_excursion_buckets: int = Field(default=500, ge=1)
    annualization_factor: int = 252  # Business days


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class SnapshotSettings(BaseSettings):
    """Top-level snapshot engine settings.

    Values from the TOML file win; environment variables fill the rest.
    """

    risk_free_rate: float = 2.0  # Annual, percent
    normalize_to_one_lot: bool = False

    engine: EngineConfig = Field(default_factory=EngineConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "SNAPSHOT_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> SnapshotSettings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    try:
        return SnapshotSettings(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
