from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import yaml
from pydantic import ValidationError

from ..core.integrator import NEUTRAL_STATE, FoldIntegratorState, StateUpdater
from ..core.registry import FoldConstraintRegistry, create_default_registry
from ..core.types import FoldConstraintState, Vector3D
from .models import ScenarioConfig, format_validation_error

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    pass


def load_scenario_config(path: Path) -> ScenarioConfig:
    raw = _load_raw_config(path)
    return normalize_scenario_dict(raw, filename=path.name)


def _load_raw_config(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml", ".json"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path.name}: could not parse configuration: {exc}") from exc
    else:
        raise ConfigError(f"Unsupported config extension '{path.suffix}'.")
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name}: configuration must be a mapping")
    return data


def normalize_scenario_dict(config: Dict[str, Any], *, filename: str) -> ScenarioConfig:
    raw = deepcopy(config)
    try:
        return ScenarioConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(format_validation_error(exc, filename=filename)) from exc


def build_integrator_state(
    config: ScenarioConfig,
    registry: Optional[FoldConstraintRegistry] = None,
) -> FoldIntegratorState:
    """Instantiate constraints, states and DOF routing for one integrator step.

    Constraints are created through ``registry`` (the built-in registry when
    omitted). A DOF map is only built when at least one entry lists ``dofs``;
    otherwise the integrator broadcasts. With ``track_positions`` enabled,
    every routed constraint state carries ``metadata['position']`` (mean of
    its DOF positions), refreshed after each iteration.
    """
    registry = registry if registry is not None else create_default_registry()

    constraints = [
        registry.create(entry.constraint.type, entry.constraint) for entry in config.constraints
    ]

    states: Optional[List[FoldConstraintState]] = None
    if any(entry.state is not None for entry in config.constraints):
        states = [
            entry.state.to_state() if entry.state is not None else NEUTRAL_STATE
            for entry in config.constraints
        ]

    dof_map: Optional[Dict[int, List[int]]] = None
    if any(entry.dofs is not None for entry in config.constraints):
        dof_map = {
            index: list(entry.dofs)
            for index, entry in enumerate(config.constraints)
            if entry.dofs is not None
        }

    positions = [Vector3D(*p) for p in config.positions]
    velocities = (
        [Vector3D(*v) for v in config.velocities]
        if config.velocities is not None
        else [Vector3D() for _ in positions]
    )

    updater: Optional[StateUpdater] = None
    if config.track_positions and states is not None and dof_map:
        updater = position_tracker(dof_map)
        states = [updater(index, state, positions) for index, state in enumerate(states)]

    logger.debug(
        "Built integrator state: %d DOF(s), %d constraint(s), dof_map=%s",
        len(positions),
        len(constraints),
        "yes" if dof_map is not None else "broadcast",
    )
    return FoldIntegratorState(
        positions=positions,
        velocities=velocities,
        constraints=constraints,
        settings=config.settings.to_settings(),
        beta=config.beta,
        states=states,
        dof_map=dof_map,
        state_updater=updater,
    )


def position_tracker(dof_map: Dict[int, Sequence[int]]) -> StateUpdater:
    """State updater writing the mean position of each constraint's DOFs to its metadata."""

    def update(index: int, state: FoldConstraintState, positions: Sequence[Vector3D]) -> FoldConstraintState:
        dofs = dof_map.get(index)
        if not dofs:
            return state
        centre = np.mean([positions[dof].as_array() for dof in dofs], axis=0)
        metadata = dict(state.metadata or {})
        metadata["position"] = tuple(float(c) for c in centre)
        return replace(state, metadata=metadata)

    return update
