"""Pluggable constraint-type registry.

A registry maps a constraint type tag to a factory that builds stateless
constraint instances from a configuration object. New barrier kinds are added
by registering a factory; the kernel itself never changes.

Registries are plain objects created per session and passed explicitly.
Registering a tag twice replaces the earlier factory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from .errors import InvalidInput
from .types import FoldConstraint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConstraintFactory:
    type: str
    create: Callable[[Any], FoldConstraint]


class FoldConstraintRegistry:
    def __init__(self) -> None:
        self._factories: Dict[str, ConstraintFactory] = {}

    def register(self, factory: ConstraintFactory) -> None:
        if factory.type in self._factories:
            logger.debug("Replacing factory for constraint type '%s'", factory.type)
        self._factories[factory.type] = factory

    def get(self, constraint_type: str) -> Optional[ConstraintFactory]:
        return self._factories.get(constraint_type)

    def list(self) -> List[ConstraintFactory]:
        return list(self._factories.values())

    def create(self, constraint_type: str, config: Any = None) -> FoldConstraint:
        factory = self.get(constraint_type)
        if factory is None:
            known = ", ".join(sorted(self._factories)) or "none"
            raise InvalidInput(f"Unknown constraint type '{constraint_type}' (registered: {known})")
        return factory.create(config)

    def __contains__(self, constraint_type: object) -> bool:
        return constraint_type in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def create_fold_constraint_registry() -> FoldConstraintRegistry:
    return FoldConstraintRegistry()


def create_default_registry() -> FoldConstraintRegistry:
    """Registry pre-populated with the built-in barrier kinds.

    Each built-in factory accepts a mapping (validated against the matching
    pydantic model of :mod:`fold_kernel.config.models`), an instance of that
    model, or ``None`` for all defaults.
    """
    from ..config.models import BUILTIN_CONSTRAINT_MODELS

    registry = create_fold_constraint_registry()
    for constraint_type, model in BUILTIN_CONSTRAINT_MODELS.items():
        registry.register(
            ConstraintFactory(type=constraint_type, create=partial(_create_from_config, model))
        )
    return registry


def _create_from_config(model: Any, config: Any) -> FoldConstraint:
    from pydantic import ValidationError

    from ..config.models import format_validation_error

    if isinstance(config, model):
        return config.build()
    payload = dict(config or {})
    payload.setdefault("type", model.model_fields["type"].default)
    try:
        spec = model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInput(format_validation_error(exc, filename=f"{payload['type']} config")) from exc
    return spec.build()
