"""Exception types raised by the Fold kernel.

Structural problems (wrong matrix shape, non-finite numbers, malformed
configuration) raise synchronously. Degenerate but well-typed inputs such as a
zero-length direction never raise; the barriers return the canonical zero
evaluation instead.
"""

from __future__ import annotations


class FoldError(ValueError):
    pass


class InvalidInput(FoldError):
    pass


class InvalidMatrixShape(InvalidInput):
    pass
