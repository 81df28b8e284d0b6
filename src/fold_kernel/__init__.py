"""
Fold contact kernel package.

The top-level import stays lightweight so that `import fold_kernel` and
`fold-kernel --help` work without pulling in the numerical modules.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("fold-contact-kernel")
except PackageNotFoundError:  # during editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
