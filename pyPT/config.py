# config.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Immutable solver settings. A config object is fixed for the duration of
# one solve call.
#

from dataclasses import dataclass, fields, replace
import math

from .errors import ConfigurationError

NORMS = ("max", "l2")
AVERAGING = ("arithmetic", "harmonic", "geometric")


@dataclass(frozen=True)
class SolverConfig:
    """
    Tolerances and iteration budget of a pseudo-transient solve.

    A solve stops when every residual norm is below
    max(abs_tol, rel_tol * reference), where reference is the norm measured
    at the first convergence check, or when max_iter is reached.
    Convergence is checked every `check_every` iterations.
    """
    abs_tol: float = 1e-8
    rel_tol: float = 0.0
    max_iter: int = 100_000
    min_iter: int = 1
    check_every: int = 500
    norm: str = "l2"
    viscosity_cutoff: tuple = (-math.inf, math.inf)
    viscosity_averaging: str = "arithmetic"
    viscosity_relaxation: float = 1.0
    viscosity_update_every: int = 0
    phase_ratio_warn: float = 1e-6
    verbose: bool = False

    def __post_init__(self):
        if self.abs_tol < 0 or self.rel_tol < 0:
            raise ConfigurationError("tolerances must be non-negative")
        if self.abs_tol == 0 and self.rel_tol == 0:
            raise ConfigurationError("at least one of abs_tol, rel_tol must be positive")
        if self.max_iter < 1 or self.check_every < 1:
            raise ConfigurationError("max_iter and check_every must be >= 1")
        if self.min_iter < 0:
            raise ConfigurationError("min_iter must be >= 0")
        if self.norm not in NORMS:
            raise ConfigurationError(f"norm must be one of {NORMS}, got {self.norm!r}")
        if self.viscosity_averaging not in AVERAGING:
            raise ConfigurationError(
                f"viscosity_averaging must be one of {AVERAGING}, got {self.viscosity_averaging!r}"
            )
        lo, hi = self.viscosity_cutoff
        if lo > hi:
            raise ConfigurationError(f"viscosity_cutoff lower bound {lo} exceeds upper bound {hi}")
        if not 0.0 < self.viscosity_relaxation <= 1.0:
            raise ConfigurationError("viscosity_relaxation must be in (0, 1]")
        if self.viscosity_update_every < 0:
            raise ConfigurationError("viscosity_update_every must be >= 0")

    @classmethod
    def from_dict(cls, options):
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ConfigurationError(f"unknown solver options: {sorted(unknown)}")
        options = dict(options)
        if "viscosity_cutoff" in options:
            options["viscosity_cutoff"] = tuple(float(v) for v in options["viscosity_cutoff"])
        return cls(**options)

    def with_options(self, **changes):
        return replace(self, **changes)


@dataclass(frozen=True)
class ThermalOptions:
    """Source terms switched on in the heat equation."""
    shear_heating: bool = False
    adiabatic_heating: bool = False
    advection: bool = False
    latent_heat: bool = False
