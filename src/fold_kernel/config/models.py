from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, BeforeValidator, Field, ValidationError, field_validator, model_validator

from ..core.barriers import (
    DEFAULT_MAX_STRETCH,
    DEFAULT_MIN_COMPRESSION,
    CubicBarrier,
    PinBarrier,
    StrainBarrier,
    WallBarrier,
)
from ..core.contact import DEFAULT_EXTENDED_DIRECTION_SCALE, ContactBarrier
from ..core.friction import FrictionPotential
from ..core.types import FoldConstraintState, FoldSolverSettings, Vector3D


def _vec3_from_mapping(value: Any) -> Any:
    if isinstance(value, Mapping):
        missing = [axis for axis in ("x", "y", "z") if axis not in value]
        if missing:
            raise ValueError(f"missing vector component(s): {', '.join(missing)}")
        return tuple(value[axis] for axis in ("x", "y", "z"))
    return value


Vec3 = Annotated[Tuple[float, float, float], BeforeValidator(_vec3_from_mapping)]


class ConfigBase(BaseModel):
    model_config = {"extra": "forbid", "allow_inf_nan": False}


class BarrierConfigBase(ConfigBase):
    id: Optional[str] = None
    enabled: bool = True


class CubicFamilyConfigBase(BarrierConfigBase):
    stiffness_override: Optional[float] = None
    max_gap: Optional[float] = None

    @field_validator("stiffness_override")
    @classmethod
    def _stiffness_nonneg(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0.0:
            raise ValueError("stiffness_override must be >= 0")
        return value


class CubicBarrierConfig(CubicFamilyConfigBase):
    type: Literal["cubic-barrier"] = "cubic-barrier"
    direction: Optional[Vec3] = None

    def build(self) -> CubicBarrier:
        return CubicBarrier(
            id=self.id,
            stiffness_override=self.stiffness_override,
            max_gap=self.max_gap,
            direction=self.direction,
            enabled=self.enabled,
        )


class WallBarrierConfig(CubicFamilyConfigBase):
    type: Literal["wall-barrier"] = "wall-barrier"
    normal: Optional[Vec3] = None
    plane_point: Optional[Vec3] = None

    def build(self) -> WallBarrier:
        return WallBarrier(
            id=self.id,
            stiffness_override=self.stiffness_override,
            max_gap=self.max_gap,
            normal=self.normal,
            plane_point=self.plane_point,
            enabled=self.enabled,
        )


class PinBarrierConfig(CubicFamilyConfigBase):
    type: Literal["pin-barrier"] = "pin-barrier"
    direction: Optional[Vec3] = None

    def build(self) -> PinBarrier:
        return PinBarrier(
            id=self.id,
            stiffness_override=self.stiffness_override,
            max_gap=self.max_gap,
            direction=self.direction,
            enabled=self.enabled,
        )


class ContactBarrierConfig(CubicFamilyConfigBase):
    type: Literal["contact-barrier"] = "contact-barrier"
    direction: Optional[Vec3] = None
    extended_direction_scale: float = DEFAULT_EXTENDED_DIRECTION_SCALE

    @field_validator("extended_direction_scale")
    @classmethod
    def _scale_positive(cls, value: float) -> float:
        if value <= 0.0:
            raise ValueError("extended_direction_scale must be > 0")
        return value

    def build(self) -> ContactBarrier:
        return ContactBarrier(
            id=self.id,
            stiffness_override=self.stiffness_override,
            max_gap=self.max_gap,
            direction=self.direction,
            extended_direction_scale=self.extended_direction_scale,
            enabled=self.enabled,
        )


class StrainBarrierConfig(BarrierConfigBase):
    type: Literal["strain-barrier"] = "strain-barrier"
    stiffness_override: Optional[float] = None
    max_stretch: float = DEFAULT_MAX_STRETCH
    min_compression: float = DEFAULT_MIN_COMPRESSION
    direction: Optional[Vec3] = None

    @model_validator(mode="after")
    def _validate_band(self) -> "StrainBarrierConfig":
        if self.stiffness_override is not None and self.stiffness_override < 0.0:
            raise ValueError("stiffness_override must be >= 0")
        if self.min_compression <= 0.0:
            raise ValueError("min_compression must be > 0")
        if self.min_compression > self.max_stretch:
            raise ValueError("min_compression must not exceed max_stretch")
        return self

    def build(self) -> StrainBarrier:
        return StrainBarrier(
            id=self.id,
            stiffness_override=self.stiffness_override,
            max_stretch=self.max_stretch,
            min_compression=self.min_compression,
            direction=self.direction,
            enabled=self.enabled,
        )


class FrictionConfig(BarrierConfigBase):
    type: Literal["friction"] = "friction"
    coefficient: float = 0.5
    epsilon: float = 1e-6

    @field_validator("coefficient")
    @classmethod
    def _coefficient_nonneg(cls, value: float) -> float:
        if value < 0.0:
            raise ValueError("coefficient must be >= 0")
        return value

    @field_validator("epsilon")
    @classmethod
    def _epsilon_positive(cls, value: float) -> float:
        if value <= 0.0:
            raise ValueError("epsilon must be > 0")
        return value

    def build(self) -> FrictionPotential:
        return FrictionPotential(
            id=self.id,
            coefficient=self.coefficient,
            epsilon=self.epsilon,
            enabled=self.enabled,
        )


ConstraintSpec = Annotated[
    Union[
        CubicBarrierConfig,
        WallBarrierConfig,
        PinBarrierConfig,
        StrainBarrierConfig,
        FrictionConfig,
        ContactBarrierConfig,
    ],
    Field(discriminator="type"),
]

BUILTIN_CONSTRAINT_MODELS = {
    "cubic-barrier": CubicBarrierConfig,
    "wall-barrier": WallBarrierConfig,
    "pin-barrier": PinBarrierConfig,
    "strain-barrier": StrainBarrierConfig,
    "friction": FrictionConfig,
    "contact-barrier": ContactBarrierConfig,
}


class ConstraintStateSpec(ConfigBase):
    gap: float
    max_gap: float = 0.0
    stiffness: float = 0.0
    direction: Vec3 = (0.0, 0.0, 1.0)
    extended_direction: Optional[Vec3] = None
    effective_mass: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("effective_mass")
    @classmethod
    def _mass_nonneg(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0.0:
            raise ValueError("effective_mass must be >= 0")
        return value

    def to_state(self) -> FoldConstraintState:
        return FoldConstraintState(
            gap=self.gap,
            max_gap=self.max_gap,
            stiffness=self.stiffness,
            direction=Vector3D(*self.direction),
            extended_direction=(
                Vector3D(*self.extended_direction) if self.extended_direction is not None else None
            ),
            effective_mass=self.effective_mass,
            metadata=dict(self.metadata),
        )


class SolverSettingsConfig(ConfigBase):
    max_iterations: int = 10
    tolerance: float = 1e-6
    allow_early_exit: bool = True

    @field_validator("max_iterations")
    @classmethod
    def _iterations_nonneg(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_iterations must be >= 0")
        return value

    @field_validator("tolerance")
    @classmethod
    def _tolerance_nonneg(cls, value: float) -> float:
        if value < 0.0:
            raise ValueError("tolerance must be >= 0")
        return value

    def to_settings(self) -> FoldSolverSettings:
        return FoldSolverSettings(
            max_iterations=self.max_iterations,
            tolerance=self.tolerance,
            allow_early_exit=self.allow_early_exit,
        )


class ConstraintEntry(ConfigBase):
    constraint: ConstraintSpec
    state: Optional[ConstraintStateSpec] = None
    dofs: Optional[List[int]] = None


class ScenarioConfig(ConfigBase):
    delta_time: float
    line_search_scale: float = 1.25
    beta: float = 0.0
    freeze_damping: float = 0.95
    track_positions: bool = True
    settings: SolverSettingsConfig = Field(default_factory=SolverSettingsConfig)
    positions: List[Vec3]
    velocities: Optional[List[Vec3]] = None
    constraints: List[ConstraintEntry] = Field(default_factory=list)

    @field_validator("delta_time")
    @classmethod
    def _dt_nonneg(cls, value: float) -> float:
        if value < 0.0:
            raise ValueError("delta_time must be >= 0")
        return value

    @field_validator("line_search_scale")
    @classmethod
    def _scale_positive(cls, value: float) -> float:
        if value <= 0.0:
            raise ValueError("line_search_scale must be > 0")
        return value

    @field_validator("freeze_damping")
    @classmethod
    def _damping_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("freeze_damping must lie in [0, 1]")
        return value

    @model_validator(mode="after")
    def _validate_dofs(self) -> "ScenarioConfig":
        n_dofs = len(self.positions)
        if self.velocities is not None and len(self.velocities) != n_dofs:
            raise ValueError(
                f"velocities ({len(self.velocities)}) must match positions ({n_dofs})"
            )
        for index, entry in enumerate(self.constraints):
            for dof in entry.dofs or []:
                if not 0 <= dof < n_dofs:
                    raise ValueError(
                        f"constraints[{index}].dofs: index {dof} out of range for {n_dofs} DOF(s)"
                    )
        return self


def format_validation_error(exc: ValidationError, *, filename: str) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", []))
        msg = error.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}")
    details = "; ".join(parts) if parts else str(exc)
    return f"{filename}: invalid configuration: {details}"
