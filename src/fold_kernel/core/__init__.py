"""Fold constraint kernel: barriers, stiffness design, conditioning and integration."""

from .assembly import (
    CachedAssembly,
    ContactAssemblyInput,
    ContactBlock,
    IndexAllocator,
    MatrixAssemblyResult,
    assemble_contact_matrix,
)
from .barriers import CubicBarrier, PinBarrier, StrainBarrier, WallBarrier
from .contact import ContactBarrier
from .errors import FoldError, InvalidInput, InvalidMatrixShape
from .freeze import apply_freeze_schedule
from .friction import FrictionPotential
from .gaps import (
    EdgeEdgeGapResult,
    PointPlaneGapResult,
    PointTriangleGapResult,
    compute_edge_edge_gap,
    compute_point_plane_gap,
    compute_point_triangle_gap,
)
from .integrator import (
    FoldIntegratorState,
    IntegratorResult,
    IterationRecord,
    step_inexact_newton,
)
from .line_search import constraint_line_search
from .registry import (
    ConstraintFactory,
    FoldConstraintRegistry,
    create_default_registry,
    create_fold_constraint_registry,
)
from .results import dofs_to_dataframe, history_to_dataframe
from .spd import enforce_spd, is_positive_definite
from .stiffness import compute_frozen_stiffness
from .types import (
    CONSTRAINT_TYPES,
    FoldComputationContext,
    FoldConstraint,
    FoldConstraintEvaluation,
    FoldConstraintState,
    FoldSolverSettings,
    Vector3D,
)

__all__ = [
    "CONSTRAINT_TYPES",
    "CachedAssembly",
    "ConstraintFactory",
    "ContactAssemblyInput",
    "ContactBarrier",
    "ContactBlock",
    "CubicBarrier",
    "EdgeEdgeGapResult",
    "FoldComputationContext",
    "FoldConstraint",
    "FoldConstraintEvaluation",
    "FoldConstraintRegistry",
    "FoldConstraintState",
    "FoldError",
    "FoldIntegratorState",
    "FoldSolverSettings",
    "FrictionPotential",
    "IndexAllocator",
    "IntegratorResult",
    "InvalidInput",
    "InvalidMatrixShape",
    "IterationRecord",
    "MatrixAssemblyResult",
    "PinBarrier",
    "PointPlaneGapResult",
    "PointTriangleGapResult",
    "StrainBarrier",
    "Vector3D",
    "WallBarrier",
    "apply_freeze_schedule",
    "assemble_contact_matrix",
    "compute_edge_edge_gap",
    "compute_frozen_stiffness",
    "compute_point_plane_gap",
    "compute_point_triangle_gap",
    "constraint_line_search",
    "create_default_registry",
    "create_fold_constraint_registry",
    "dofs_to_dataframe",
    "enforce_spd",
    "history_to_dataframe",
    "is_positive_definite",
    "step_inexact_newton",
]
