"""Configuration for beaconjobs."""

from beaconjobs.config.loader import ConfigLoadError, YAMLConfigLoader
from beaconjobs.config.models import (
    BeaconJobsConfig,
    CronConfig,
    DatabaseConfig,
    HealthConfig,
    RecheckConfig,
    RedisConfig,
    load_config,
)

__all__ = [
    "BeaconJobsConfig",
    "ConfigLoadError",
    "CronConfig",
    "DatabaseConfig",
    "HealthConfig",
    "RecheckConfig",
    "RedisConfig",
    "YAMLConfigLoader",
    "load_config",
]
