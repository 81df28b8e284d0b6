"""Scenario configuration loading and validation utilities."""

from .loader import (
    ConfigError,
    build_integrator_state,
    load_scenario_config,
    normalize_scenario_dict,
    position_tracker,
)
from .models import ScenarioConfig, format_validation_error

__all__ = [
    "ConfigError",
    "ScenarioConfig",
    "build_integrator_state",
    "format_validation_error",
    "load_scenario_config",
    "normalize_scenario_dict",
    "position_tracker",
]
