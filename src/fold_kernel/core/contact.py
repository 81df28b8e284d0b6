"""Extended contact barrier.

The contact barrier is the cubic barrier used for mesh-mesh contacts. It
prefers the state's ``extended_direction`` (for instance an averaged contact
normal) over the primary axis and activates on a scaled gap, which narrows the
activation band of positive gaps by ``extended_direction_scale``. The energy
itself is the cubic penalty of the unscaled gap.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import ClassVar, Optional

from .barriers import CubicBarrier, check_state
from .linalg import normalize
from .stiffness import derive_state_stiffness
from .types import (
    FoldComputationContext,
    FoldConstraint,
    FoldConstraintEvaluation,
    FoldConstraintState,
    Vector3D,
    as_vector3,
)

DEFAULT_EXTENDED_DIRECTION_SCALE = 1.25


@dataclass
class ContactBarrier(FoldConstraint):
    type: ClassVar[str] = "contact-barrier"

    id: Optional[str] = None
    stiffness_override: Optional[float] = None
    max_gap: Optional[float] = None
    direction: Optional[Vector3D] = None
    extended_direction_scale: float = DEFAULT_EXTENDED_DIRECTION_SCALE
    enabled: bool = True
    base: CubicBarrier = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.direction is not None:
            self.direction = as_vector3(self.direction, name="direction")
        self.base = CubicBarrier(
            id=self.id,
            stiffness_override=self.stiffness_override,
            max_gap=self.max_gap,
        )

    def contact_direction(self, state: FoldConstraintState) -> Vector3D:
        if state.extended_direction is not None:
            return state.extended_direction
        if self.direction is not None:
            return self.direction
        return state.direction

    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        check_state(state)
        direction = self.contact_direction(state)
        if normalize(direction) is None:
            return FoldConstraintEvaluation.zero()

        max_gap = self.max_gap if self.max_gap is not None else state.max_gap
        violation = max(0.0, max_gap - state.gap * self.extended_direction_scale)
        if violation <= 0.0:
            return FoldConstraintEvaluation.zero()

        stiffness = (
            self.stiffness_override
            if self.stiffness_override is not None
            else derive_state_stiffness(state, state.gap, direction)
        )
        if not stiffness > 0.0:
            return FoldConstraintEvaluation.zero()

        return self.base.evaluate(
            replace(state, max_gap=max_gap, direction=direction, stiffness=stiffness),
            context,
        )
