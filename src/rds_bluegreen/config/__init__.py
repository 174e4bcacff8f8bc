"""Configuration loading and validation."""

from .models import (
    BLUE_GREEN_ENGINES,
    VALID_ENGINES,
    BlueGreenProjectConfig,
    ClusterBlueGreenConfig,
    ProviderConfig,
    TimeoutsConfig,
    WaiterConfig,
    parse_duration,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "BLUE_GREEN_ENGINES",
    "VALID_ENGINES",
    "BlueGreenProjectConfig",
    "ClusterBlueGreenConfig",
    "ProviderConfig",
    "TimeoutsConfig",
    "WaiterConfig",
    "parse_duration",
    "Config",
    "ConfigValidationError",
]
