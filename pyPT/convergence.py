# convergence.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Global residual norms and the stop/continue decision of the
# pseudo-transient iterations.
#

from dataclasses import dataclass, field
from enum import Enum
import logging
import math

from .distributed import LocalGrid
from .errors import NonConvergenceError

logger = logging.getLogger(__name__)


@dataclass
class ResidualState:
    """Global norms of one convergence check."""
    iteration: int
    norms: dict
    thresholds: dict
    converged: bool = False
    finite: bool = True

    def __str__(self):
        parts = ", ".join(f"{k}={v:.3e}" for k, v in self.norms.items())
        return f"[Iter {self.iteration:06d}] {parts}"

    @property
    def err(self):
        return max(self.norms.values())


class SolveStatus(Enum):
    CONVERGED = "converged"
    NON_CONVERGENCE = "non_convergence"


@dataclass
class SolveResult:
    """
    Outcome of one solve call. A non-converged solve is reported here and
    never raised; the fields are left in their last, boundary-conforming
    state for the caller to keep, retry with a smaller step, or discard.
    """
    status: SolveStatus
    iterations: int
    norms: dict
    history: list = field(default_factory=list)
    diagnostics: object = None

    @property
    def converged(self):
        return self.status is SolveStatus.CONVERGED

    @property
    def err(self):
        return max(self.norms.values()) if self.norms else math.nan

    def raise_for_status(self):
        if not self.converged:
            raise NonConvergenceError(
                f"no convergence after {self.iterations} iterations (err={self.err:.3e})", self
            )
        return self


@dataclass
class ConvergenceMonitor:
    """
    Reduces local residual norms over every subdomain and compares them
    with max(abs_tol, rel_tol * reference), the reference being the norm
    measured at the first check. A decision is never taken from local
    norms alone.
    """
    config: object
    grid: object = None
    backend: object = None
    reference: dict = None
    history: list = field(default_factory=list)

    def __post_init__(self):
        if self.grid is None:
            self.grid = LocalGrid()

    def local_norm(self, array):
        bk = self.backend
        if self.config.norm == "max":
            return bk.amax_abs(array), 1
        return bk.sum_squares(array), bk.size(array)

    def global_norms(self, residuals):
        norms = {}
        for name, array in residuals.items():
            value, count = self.local_norm(array)
            if self.config.norm == "max":
                norms[name] = self.grid.reduce(value, "max")
            else:
                total = self.grid.reduce(value, "sum")
                count = self.grid.reduce(count, "sum")
                norms[name] = math.sqrt(total / count)
        return norms

    def check(self, iteration, residuals):
        norms = self.global_norms(residuals)
        if self.reference is None:
            self.reference = dict(norms)
        cfg = self.config
        thresholds = {k: max(cfg.abs_tol, cfg.rel_tol * self.reference[k]) for k in norms}
        finite = all(math.isfinite(v) for v in norms.values())
        converged = finite and all(norms[k] < thresholds[k] for k in norms)
        state = ResidualState(iteration, norms, thresholds, converged, finite)
        self.history.append(state)
        if cfg.verbose:
            logger.info(str(state))
        return state
