"""Exception types raised by the tiling engine and its collaborators."""

from __future__ import annotations


class TilingError(Exception):
    """Base class for every error raised by aztec_sim."""


class ConfigError(TilingError, ValueError):
    """Invalid run parameters (step count, probability, colours, bias arrays)."""


class BiasImageError(TilingError):
    """A bias image could not be found, read or decoded."""


class SnapshotError(TilingError, ValueError):
    """A saved engine state is corrupt or incompatible."""


class InvariantError(TilingError, RuntimeError):
    """The lattice and the tile arena disagree. Not recoverable."""


class OutsideFootprintError(InvariantError, IndexError):
    """A cell outside the current diamond was addressed."""


__all__ = [
    "TilingError",
    "ConfigError",
    "BiasImageError",
    "SnapshotError",
    "InvariantError",
    "OutsideFootprintError",
]
