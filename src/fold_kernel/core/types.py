"""Core data types of the Fold contact kernel.

Vectors are small immutable values (:class:`Vector3D`); 3x3 matrices are plain
``numpy`` arrays of shape ``(3, 3)``. Every constraint consumes a
:class:`FoldConstraintState` and a :class:`FoldComputationContext` and returns
a :class:`FoldConstraintEvaluation` (energy, gradient and Hessian of its local
potential with respect to displacement along the constraint direction).

Sign convention
---------------
``gap`` is the signed separation (negative = penetrating). ``direction`` is the
axis along which penetration grows, so the barrier gradient points along it
and descending the gradient reduces the violation.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Literal, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidInput, InvalidMatrixShape

ConstraintType = Literal[
    "cubic-barrier",
    "contact-barrier",
    "pin-barrier",
    "wall-barrier",
    "strain-barrier",
    "friction",
    "assembly",
    "gap-evaluator",
]

CONSTRAINT_TYPES: Tuple[str, ...] = (
    "cubic-barrier",
    "contact-barrier",
    "pin-barrier",
    "wall-barrier",
    "strain-barrier",
    "friction",
    "assembly",
    "gap-evaluator",
)


@dataclass(frozen=True)
class Vector3D:
    """Immutable 3-component vector."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_array(cls, values: Any) -> "Vector3D":
        arr = np.asarray(values, dtype=float).reshape(-1)
        if arr.shape != (3,):
            raise InvalidInput(f"Vector3D needs exactly 3 components, got {arr.size}")
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def norm(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y) and math.isfinite(self.z)

    def __iter__(self) -> Iterator[float]:
        return iter((self.x, self.y, self.z))

    def __add__(self, other: "Vector3D") -> "Vector3D":
        return Vector3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3D") -> "Vector3D":
        return Vector3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def scaled(self, factor: float) -> "Vector3D":
        return Vector3D(self.x * factor, self.y * factor, self.z * factor)


ZERO_VECTOR = Vector3D()

VectorLike = Union[Vector3D, Sequence[float], np.ndarray, Mapping[str, float]]
MatrixLike = Union[np.ndarray, Sequence[Sequence[float]]]


def coerce_vector3(value: Any) -> Optional[Vector3D]:
    """Lenient conversion used for optional metadata.

    Returns ``None`` for missing, malformed or non-finite input instead of
    raising, so barriers can read metadata opportunistically.
    """
    if value is None:
        return None
    if isinstance(value, Vector3D):
        return value if value.is_finite() else None
    if isinstance(value, Mapping):
        try:
            vector = Vector3D(float(value["x"]), float(value["y"]), float(value["z"]))
        except (KeyError, TypeError, ValueError):
            return None
        return vector if vector.is_finite() else None
    try:
        vector = Vector3D.from_array(value)
    except (TypeError, ValueError):
        return None
    return vector if vector.is_finite() else None


def as_vector3(value: Any, name: str = "vector") -> Vector3D:
    """Strict conversion: raise :class:`InvalidInput` unless ``value`` is a finite 3-vector."""
    vector = coerce_vector3(value)
    if vector is None:
        raise InvalidInput(f"{name} must be a finite 3D vector, got {value!r}")
    return vector


def as_matrix3(value: Any, name: str = "matrix") -> np.ndarray:
    """Return a float copy of ``value`` after checking it is a finite 3x3 matrix."""
    try:
        matrix = np.array(value, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidMatrixShape(f"{name} must be a 3x3 numeric matrix") from exc
    if matrix.shape != (3, 3):
        raise InvalidMatrixShape(f"{name} must have shape (3, 3), got {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise InvalidMatrixShape(f"{name} must contain finite values only")
    return matrix


def zero_matrix() -> np.ndarray:
    return np.zeros((3, 3), dtype=float)


@dataclass(frozen=True)
class FoldConstraintState:
    """Per-constraint input of an evaluation.

    Attributes
    ----------
    gap : float
        Signed distance or constraint gap value.
    max_gap : float
        Activation threshold; penalties engage once ``gap < max_gap``.
    stiffness : float
        Frozen stiffness for this evaluation (0 means "derive it").
    direction : Vector3D
        Primary constraint axis.
    extended_direction : Vector3D, optional
        Axis used by the extended contact formulation.
    effective_mass : float, optional
        Mass-like term used by the stiffness estimator.
    metadata : mapping
        Type-specific payload (``hessian``, ``contact_force``,
        ``tangent_displacement``, ``singular_values``, ``position``).
    """

    gap: float
    max_gap: float
    stiffness: float
    direction: Vector3D
    extended_direction: Optional[Vector3D] = None
    effective_mass: Optional[float] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FoldComputationContext:
    delta_time: float
    iteration: Optional[int] = None
    time: Optional[float] = None


@dataclass(frozen=True)
class FoldConstraintEvaluation:
    """Energy, gradient and Hessian of a local potential."""

    energy: float
    gradient: Vector3D
    hessian: np.ndarray

    @classmethod
    def zero(cls) -> "FoldConstraintEvaluation":
        return cls(energy=0.0, gradient=ZERO_VECTOR, hessian=zero_matrix())

    def is_zero(self) -> bool:
        return (
            self.energy == 0.0
            and self.gradient == ZERO_VECTOR
            and not np.any(self.hessian)
        )


class FoldConstraint(ABC):
    """Base class of every constraint kind.

    Subclasses carry only creation-time configuration; :meth:`evaluate` must
    be a pure function of its two arguments.
    """

    type: ClassVar[str]
    id: Optional[str] = None
    enabled: bool = True

    @abstractmethod
    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        ...


@dataclass
class FoldSolverSettings:
    max_iterations: int = 10
    tolerance: float = 1e-6
    allow_early_exit: bool = True


def metadata_hessian(state: FoldConstraintState) -> np.ndarray:
    """Hessian seed stored in the state metadata (zero matrix when absent)."""
    value = state.metadata.get("hessian") if state.metadata else None
    if value is None:
        return zero_matrix()
    return as_matrix3(value, name="metadata['hessian']")
