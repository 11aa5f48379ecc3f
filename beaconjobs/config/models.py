"""Configuration models for beaconjobs."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from beaconjobs.config.loader import CONFIG_PATH_ENV, YAMLConfigLoader
from beaconjobs.integrations.hatchet import HatchetConfig, _substitute_env_dict


class CronConfig(BaseModel):
    """Job trigger authentication and kill-switch naming."""

    secret: str | None = Field(default=None, description="Shared bearer secret for job endpoints.")
    kill_switch_prefix: str = Field(default="STOP_")
    kill_switch_suffix: str = Field(default="_CRON")

    @model_validator(mode="after")
    def secret_from_env(self) -> "CronConfig":
        if not self.secret:
            self.secret = os.environ.get("CRON_SECRET", "").strip() or None
        return self


class HealthConfig(BaseModel):
    """Health aggregation windows."""

    window_size: int = Field(default=100, ge=1, le=10_000)
    recent_runs_limit: int = Field(default=20, ge=0, le=1_000)
    failure_window_days: int = Field(default=7, ge=1, le=365)


class RecheckConfig(BaseModel):
    """Post-publish recheck scheduling."""

    delay_days: int = Field(default=14, ge=1)
    ttl_buffer_days: int = Field(default=1, ge=1)
    key_prefix: str = Field(default="recheck:", min_length=1)
    set_key: str = Field(default="recheck:pending", min_length=1)


class DatabaseConfig(BaseModel):
    """Run-log database."""

    url: str | None = Field(default=None)


class RedisConfig(BaseModel):
    """Keyed scheduling store."""

    url: str = Field(default="redis://localhost:6379/0")


class BeaconJobsConfig(BaseSettings):
    """Root configuration model."""

    cron: CronConfig = Field(default_factory=CronConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    recheck: RecheckConfig = Field(default_factory=RecheckConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    hatchet: HatchetConfig = Field(default_factory=HatchetConfig)

    model_config = SettingsConfigDict(
        env_prefix="BEACONJOBS_",
        env_nested_delimiter="__",
        extra="ignore",
    )


_ENV_PREFIX = "BEACONJOBS_"


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in updates.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Nest ``BEACONJOBS_<SECTION>__<FIELD>`` variables into a dict; values stay strings."""
    overrides: dict[str, Any] = {}
    for key, raw_value in environ.items():
        if not key.startswith(_ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        path = [part.lower() for part in key[len(_ENV_PREFIX) :].split("__") if part]
        if not path:
            continue
        cursor = overrides
        for part in path[:-1]:
            if not isinstance(cursor.get(part), dict):
                cursor[part] = {}
            cursor = cursor[part]
        cursor[path[-1]] = raw_value
    return overrides


def load_config(path: str | Path | None = None, **overrides: Any) -> BeaconJobsConfig:
    """Build config from YAML (lowest), environment, then explicit overrides (highest).

    Layers are merged per field, so one environment variable overrides only
    its own field and the rest of that YAML section survives.
    """
    target = YAMLConfigLoader.resolve_path(str(path) if path is not None else None)
    data = _substitute_env_dict(YAMLConfigLoader.load_dict(target))
    data = _deep_merge(data, _env_overrides(os.environ))
    return BeaconJobsConfig(**_deep_merge(data, overrides))
