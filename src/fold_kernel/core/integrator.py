"""Inexact-Newton time step over all active Fold constraints.

One call of :func:`step_inexact_newton` advances the degrees of freedom (DOFs)
of a single time step. Every iteration

1. evaluates the enabled constraints,
2. stops when all energies are within tolerance,
3. accumulates the damping scalar ``beta``,
4. moves the routed DOFs against each gradient by a line-searched step,
5. applies a semi-implicit velocity correction with the SPD-conditioned
   Hessian and relaxes the stiffness of active constraints (freeze schedule).

Routing
-------
``dof_map`` lists, per constraint, the DOFs it acts on. Keys are either the
constraint's position in ``constraints`` or its ``id``. Without a map every
contribution is broadcast to every DOF; a constraint missing from a supplied
map touches nothing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import linalg

from .errors import InvalidInput
from .freeze import apply_freeze_schedule
from .line_search import constraint_line_search
from .spd import enforce_spd
from .types import (
    FoldComputationContext,
    FoldConstraint,
    FoldConstraintEvaluation,
    FoldConstraintState,
    FoldSolverSettings,
    Vector3D,
    as_vector3,
)

logger = logging.getLogger(__name__)

NEUTRAL_STATE = FoldConstraintState(
    gap=0.0,
    max_gap=0.0,
    stiffness=0.0,
    direction=Vector3D(0.0, 1.0, 0.0),
)

DofKey = Union[int, str]
StateUpdater = Callable[[int, FoldConstraintState, Sequence[Vector3D]], FoldConstraintState]


@dataclass
class FoldIntegratorState:
    """Input of one integrator step.

    Attributes
    ----------
    positions, velocities : list of Vector3D
        One entry per DOF. Both lists are updated in place.
    constraints : list of FoldConstraint
        Constraint instances; disabled ones are skipped.
    settings : FoldSolverSettings
        Iteration budget and convergence tolerance.
    beta : float
        Damping scalar carried over from the previous step.
    states : list of FoldConstraintState, optional
        One state per constraint. Missing states evaluate a neutral,
        inactive state.
    dof_map : mapping, optional
        ``constraint index or id -> DOF indices``.
    state_updater : callable, optional
        ``(index, state, positions) -> state``, called after each iteration
        to refresh the gaps from the moved positions. Requires ``states``.
    """

    positions: List[Vector3D]
    velocities: List[Vector3D]
    constraints: List[FoldConstraint]
    settings: FoldSolverSettings = field(default_factory=FoldSolverSettings)
    beta: float = 0.0
    states: Optional[List[FoldConstraintState]] = None
    dof_map: Optional[Mapping[DofKey, Sequence[int]]] = None
    state_updater: Optional[StateUpdater] = None


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    total_energy: float
    max_energy: float
    active_constraints: int
    beta: float
    step: float


@dataclass
class IntegratorResult:
    positions: List[Vector3D]
    velocities: List[Vector3D]
    beta: float
    iterations: int
    converged: bool = False
    history: List[IterationRecord] = field(default_factory=list)
    states: Optional[List[FoldConstraintState]] = None


def step_inexact_newton(
    state: FoldIntegratorState,
    *,
    delta_time: float,
    line_search_scale: float = 1.25,
    freeze_damping: float = 0.95,
) -> IntegratorResult:
    """Run the inexact-Newton loop of one time step.

    Parameters
    ----------
    state : FoldIntegratorState
        DOFs, constraints and solver settings.
    delta_time : float
        Time step, finite and non-negative.
    line_search_scale : float
        Initial step of the line search.
    freeze_damping : float
        Weight of the previous stiffness in the freeze schedule.

    Returns
    -------
    IntegratorResult
        ``iterations`` is the index of the converged iteration, or
        ``settings.max_iterations`` when the budget ran out. ``beta`` never
        decreases.

    Raises
    ------
    InvalidInput
        Malformed state, DOF map or step parameters.
    """
    settings = state.settings
    _validate(state, delta_time)
    routes = _resolve_routes(state)
    states = list(state.states) if state.states is not None else None

    beta = float(state.beta)
    history: List[IterationRecord] = []
    converged = False

    for iteration in range(settings.max_iterations):
        context = FoldComputationContext(delta_time=delta_time, iteration=iteration)
        evaluations = _evaluate(state.constraints, states, context)
        energies = [abs(evaluation.energy) for _, evaluation in evaluations]
        converged = all(energy <= settings.tolerance for energy in energies)

        if converged and settings.allow_early_exit:
            history.append(_record(iteration, evaluations, beta, 0.0))
            logger.debug("Converged at iteration %d (beta=%.6g)", iteration, beta)
            return IntegratorResult(
                positions=state.positions,
                velocities=state.velocities,
                beta=beta,
                iterations=iteration,
                converged=True,
                history=history,
                states=states,
            )

        beta += delta_time * 0.5 ** (iteration + 1)

        step = constraint_line_search(
            [evaluation for _, evaluation in evaluations],
            scale=line_search_scale,
            tolerance=settings.tolerance,
        )
        for index, evaluation in evaluations:
            _apply_line_search(state.positions, routes[index], evaluation, step)

        for index, evaluation in evaluations:
            _semi_implicit_freeze(state.velocities, routes[index], evaluation, delta_time)
            if states is not None and not evaluation.is_zero():
                states[index] = apply_freeze_schedule(
                    states[index], evaluation, damping=freeze_damping
                )

        if states is not None and state.state_updater is not None:
            for index in range(len(states)):
                states[index] = state.state_updater(index, states[index], state.positions)

        history.append(_record(iteration, evaluations, beta, step))
        logger.debug(
            "Iteration %d: max |E|=%.6g over %d constraint(s), step=%.4g, beta=%.6g",
            iteration,
            max(energies, default=0.0),
            len(evaluations),
            step,
            beta,
        )

    if settings.allow_early_exit:
        converged = False
        logger.debug("No convergence within %d iteration(s)", settings.max_iterations)

    return IntegratorResult(
        positions=state.positions,
        velocities=state.velocities,
        beta=beta,
        iterations=settings.max_iterations,
        converged=converged,
        history=history,
        states=states,
    )


def _validate(state: FoldIntegratorState, delta_time: float) -> None:
    if not isinstance(state.positions, list) or not isinstance(state.velocities, list):
        raise InvalidInput("Integrator state must contain positions and velocities lists")
    if len(state.positions) != len(state.velocities):
        raise InvalidInput(
            f"positions ({len(state.positions)}) and velocities ({len(state.velocities)}) "
            "must have the same length"
        )
    if not (isinstance(delta_time, (int, float)) and math.isfinite(delta_time) and delta_time >= 0.0):
        raise InvalidInput(f"delta_time must be finite and >= 0, got {delta_time!r}")
    if not math.isfinite(state.beta):
        raise InvalidInput(f"beta must be finite, got {state.beta!r}")
    if state.settings.max_iterations < 0:
        raise InvalidInput("settings.max_iterations must be >= 0")
    if state.states is not None and len(state.states) != len(state.constraints):
        raise InvalidInput(
            f"states ({len(state.states)}) must match constraints ({len(state.constraints)})"
        )
    if state.state_updater is not None and state.states is None:
        raise InvalidInput("state_updater requires per-constraint states")

    for i, value in enumerate(state.positions):
        state.positions[i] = as_vector3(value, name=f"positions[{i}]")
    for i, value in enumerate(state.velocities):
        state.velocities[i] = as_vector3(value, name=f"velocities[{i}]")


def _resolve_routes(state: FoldIntegratorState) -> Dict[int, Tuple[int, ...]]:
    n_dofs = len(state.positions)
    if state.dof_map is None:
        if state.constraints and n_dofs:
            logger.warning(
                "No DOF map supplied; broadcasting %d constraint(s) to all %d DOF(s)",
                len(state.constraints),
                n_dofs,
            )
        everything = tuple(range(n_dofs))
        return {index: everything for index in range(len(state.constraints))}

    routes: Dict[int, Tuple[int, ...]] = {}
    for index, constraint in enumerate(state.constraints):
        dofs = state.dof_map.get(index)
        if dofs is None and constraint.id is not None:
            dofs = state.dof_map.get(constraint.id)
        routes[index] = _check_dofs(() if dofs is None else dofs, n_dofs, index)
    return routes


def _check_dofs(dofs: Sequence[int], n_dofs: int, index: int) -> Tuple[int, ...]:
    checked = []
    for dof in dofs:
        if isinstance(dof, bool) or not isinstance(dof, (int, np.integer)) or not 0 <= dof < n_dofs:
            raise InvalidInput(
                f"constraint {index}: DOF index {dof!r} out of range for {n_dofs} DOF(s)"
            )
        checked.append(int(dof))
    return tuple(checked)


def _evaluate(
    constraints: Sequence[FoldConstraint],
    states: Optional[Sequence[FoldConstraintState]],
    context: FoldComputationContext,
) -> List[Tuple[int, FoldConstraintEvaluation]]:
    evaluations = []
    for index, constraint in enumerate(constraints):
        if not constraint.enabled:
            continue
        local = states[index] if states is not None else NEUTRAL_STATE
        evaluations.append((index, constraint.evaluate(local, context)))
    return evaluations


def _apply_line_search(
    positions: List[Vector3D],
    dofs: Sequence[int],
    evaluation: FoldConstraintEvaluation,
    step: float,
) -> None:
    displacement = evaluation.gradient.scaled(-step)
    for dof in dofs:
        positions[dof] = positions[dof] + displacement


def _semi_implicit_freeze(
    velocities: List[Vector3D],
    dofs: Sequence[int],
    evaluation: FoldConstraintEvaluation,
    delta_time: float,
) -> None:
    if not dofs or evaluation.is_zero():
        return
    system = np.eye(3) + delta_time * enforce_spd(evaluation.hessian)
    for dof in dofs:
        corrected = linalg.solve(system, velocities[dof].as_array(), assume_a="pos")
        velocities[dof] = Vector3D.from_array(corrected)


def _record(
    iteration: int,
    evaluations: Sequence[Tuple[int, FoldConstraintEvaluation]],
    beta: float,
    step: float,
) -> IterationRecord:
    energies = [abs(evaluation.energy) for _, evaluation in evaluations]
    return IterationRecord(
        iteration=iteration,
        total_energy=float(sum(energies)),
        max_energy=float(max(energies, default=0.0)),
        active_constraints=sum(1 for _, evaluation in evaluations if not evaluation.is_zero()),
        beta=beta,
        step=step,
    )
