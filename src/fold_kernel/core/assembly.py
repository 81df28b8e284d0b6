"""Block-diagonal assembly of per-contact 3x3 blocks.

Each constraint owns one 3-wide diagonal slot of the assembled matrix. Slots
are handed out by an :class:`IndexAllocator` in first-seen order and never
move, so the same ``constraint_id`` always lands on the same base index, also
across contacts and, when an allocator is reused, across calls. Blocks that
share a slot are accumulated. Off-block entries stay zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidInput
from .linalg import symmetrize
from .types import as_matrix3

logger = logging.getLogger(__name__)

BLOCK_SIZE = 3


@dataclass(frozen=True)
class ContactBlock:
    constraint_id: str
    matrix: Any


@dataclass(frozen=True)
class ContactAssemblyInput:
    contact_id: str
    blocks: Sequence[ContactBlock] = ()


@dataclass(frozen=True)
class CachedAssembly:
    contact_id: str
    base_indices: Tuple[int, ...]


@dataclass
class MatrixAssemblyResult:
    matrix: np.ndarray
    cache: List[CachedAssembly] = field(default_factory=list)

    def base_indices(self, contact_id: str) -> Tuple[int, ...]:
        for entry in self.cache:
            if entry.contact_id == contact_id:
                return entry.base_indices
        raise KeyError(contact_id)


class IndexAllocator:
    """Append-only map ``constraint_id -> base index``."""

    def __init__(self) -> None:
        self._assignments: Dict[str, int] = {}
        self._cursor = 0

    @property
    def size(self) -> int:
        return self._cursor

    def allocate(self, constraint_id: str) -> int:
        if not isinstance(constraint_id, str) or not constraint_id:
            raise InvalidInput(f"constraint_id must be a non-empty string, got {constraint_id!r}")
        existing = self._assignments.get(constraint_id)
        if existing is not None:
            return existing
        index = self._cursor
        self._assignments[constraint_id] = index
        self._cursor += BLOCK_SIZE
        return index

    def get(self, constraint_id: str) -> Optional[int]:
        return self._assignments.get(constraint_id)

    def __contains__(self, constraint_id: object) -> bool:
        return constraint_id in self._assignments

    def __len__(self) -> int:
        return len(self._assignments)

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        return iter(self._assignments.items())


ContactLike = Union[ContactAssemblyInput, Mapping[str, Any]]


def assemble_contact_matrix(
    contacts: Sequence[ContactLike],
    *,
    size: Optional[int] = None,
    symmetry: bool = True,
    allocator: Optional[IndexAllocator] = None,
) -> MatrixAssemblyResult:
    """Pack contact blocks into one block-diagonal matrix.

    Parameters
    ----------
    contacts : sequence
        :class:`ContactAssemblyInput` objects or mappings with ``contact_id``
        and ``blocks`` (each block a mapping with ``constraint_id`` and
        ``matrix``).
    size : int, optional
        Minimum dimension of the output matrix; grows when more slots are
        allocated.
    symmetry : bool
        Symmetrise every block before writing it.
    allocator : IndexAllocator, optional
        Slot cache to reuse across calls.

    Returns
    -------
    MatrixAssemblyResult
        Dense matrix and, per contact, the base indices of its blocks in
        input order.

    Raises
    ------
    InvalidInput
        Malformed contact or block entries.
    InvalidMatrixShape
        A block is not a finite 3x3 matrix.
    """
    if size is not None and size < 0:
        raise InvalidInput(f"size must be >= 0, got {size}")
    allocator = allocator if allocator is not None else IndexAllocator()

    placed: List[Tuple[int, np.ndarray]] = []
    cache: List[CachedAssembly] = []
    for contact in contacts:
        contact = _coerce_contact(contact)
        indices: List[int] = []
        for block in contact.blocks:
            matrix = as_matrix3(block.matrix, name=f"block '{block.constraint_id}'")
            if symmetry:
                matrix = symmetrize(matrix)
            base = allocator.allocate(block.constraint_id)
            indices.append(base)
            placed.append((base, matrix))
        cache.append(CachedAssembly(contact.contact_id, tuple(indices)))

    dimension = max(size or 0, allocator.size)
    assembled = np.zeros((dimension, dimension), dtype=float)
    for base, matrix in placed:
        assembled[base : base + BLOCK_SIZE, base : base + BLOCK_SIZE] += matrix

    logger.debug(
        "Assembled %d contact(s) into %dx%d matrix (%d slot(s))",
        len(cache),
        dimension,
        dimension,
        len(allocator),
    )
    return MatrixAssemblyResult(matrix=assembled, cache=cache)


def _coerce_contact(contact: ContactLike) -> ContactAssemblyInput:
    if isinstance(contact, ContactAssemblyInput):
        contact_id, raw_blocks = contact.contact_id, contact.blocks
    elif isinstance(contact, Mapping):
        contact_id, raw_blocks = contact.get("contact_id"), contact.get("blocks")
    else:
        raise InvalidInput(f"Unsupported contact entry: {contact!r}")
    entry = ContactAssemblyInput(
        contact_id=contact_id,
        blocks=tuple(_coerce_block(block) for block in raw_blocks or ()),
    )
    if not isinstance(entry.contact_id, str):
        raise InvalidInput(f"contact_id must be a string, got {entry.contact_id!r}")
    return entry


def _coerce_block(block: Any) -> ContactBlock:
    if isinstance(block, ContactBlock):
        return block
    if isinstance(block, Mapping):
        return ContactBlock(constraint_id=block.get("constraint_id"), matrix=block.get("matrix"))
    raise InvalidInput(f"Unsupported block entry: {block!r}")
