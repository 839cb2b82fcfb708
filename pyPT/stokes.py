# stokes.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Pseudo-transient iterations for the incompressible (or weakly
# compressible) Stokes equations with visco-elasto-plastic rheology on the
# staggered grid of fields.py.
#
# One sweep:
#   divergence -> pressure -> strain rate -> stress -> velocity
#   -> flow boundary conditions -> velocity halo exchange
# and every `check_every` sweeps a global convergence check.
#

import logging
import math

import numpy as np

from .backends import kernel
from .boundary_conditions import flow_bcs
from .config import SolverConfig
from .convergence import ConvergenceMonitor, SolveResult, SolveStatus
from .distributed import LocalGrid
from .errors import ConfigurationError
from .grid import AXES
from .rheology import (
    ViscosityDiagnostics,
    compute_elastic_moduli,
    compute_viscosity,
    compute_viscosity_vep,
    compute_yield_stress,
    rheology_args,
)
from .stencils import along, av, center2edge, d, inner, inner_index, others, second_invariant

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------
@kernel
def compute_divergence(bk, ni, divV, V, di):
    ndim = len(ni)
    acc = 0.0
    for a in range(ndim):
        acc = acc + d(inner(V[a], others(ndim, a)), a, di[a])
    bk.assign(divV, acc)


@kernel
def compute_pressure(bk, ni, P, P0, RP, divV, eta, r, theta_dtau, _Kdt):
    """Continuity residual and pressure update through the pseudo bulk modulus."""
    bk.assign(RP, -divV - (P - P0) * _Kdt)
    P += RP / (1.0 / (r / theta_dtau * eta) + _Kdt)


@kernel
def compute_strain_rate(bk, ni, eps, V, divV, di):
    """Deviatoric strain rate: normal components at centers, shear on edges."""
    ndim = len(ni)
    for a in range(ndim):
        bk.assign(eps.normal[a], d(inner(V[a], others(ndim, a)), a, di[a]) - divV / 3.0)
    for (a, b), e in eps.shear.items():
        dVa = d(inner(V[a], others(ndim, a, b)), b, di[b])
        dVb = d(inner(V[b], others(ndim, b, a)), a, di[a])
        bk.assign(e, 0.5 * (dVa + dVb))


def _relax_stress(tau, tau_o, eps, eta, eta_vep, _Gdt, theta_dtau):
    c = eta * _Gdt
    return tau + (2.0 * eta_vep * (eps + 0.5 * tau_o * _Gdt) - tau) * (1.0 + c) / (theta_dtau + 1.0 + c)


@kernel
def compute_stress(bk, ni, tau, tau_o, eps, eta, eta_vep, _Gdt, edges, theta_dtau):
    """
    Pseudo-time relaxation of the visco-elastic(-plastic) stress towards
    2 eta_vep (eps + tau_o / (2 G dt)). `edges` holds (eta, eta_vep, 1/(G dt))
    interpolated to each shear-component location.
    """
    for a in range(len(ni)):
        bk.assign(tau.normal[a], _relax_stress(
            tau.normal[a], tau_o.normal[a], eps.normal[a], eta, eta_vep, _Gdt, theta_dtau
        ))
    for key, t in tau.shear.items():
        eta_e, eta_vep_e, _Gdt_e = edges[key]
        bk.assign(t, _relax_stress(t, tau_o.shear[key], eps.shear[key], eta_e, eta_vep_e, _Gdt_e, theta_dtau))


def _momentum_residual(ndim, a, P, tau, rhog, di):
    Ra = d(tau.normal[a] - P, a, di[a]) + av(rhog[a], a)
    for b in others(ndim, a):
        s = tau.shear[(min(a, b), max(a, b))]
        Ra = Ra + d(inner(s, (a,)), b, di[b])
    return Ra


@kernel
def compute_residuals(bk, ni, R, P, tau, rhog, di):
    for a in range(len(ni)):
        bk.assign(R[a], _momentum_residual(len(ni), a, P, tau, rhog, di))


@kernel
def compute_velocity(bk, ni, V, R, P, tau, rhog, eta_dtau, eta_tau, di):
    """Momentum residual on the interior faces and V += R * eta_dtau / av(maxloc(eta))."""
    ndim = len(ni)
    interior = inner_index(ndim, range(ndim))
    for a in range(ndim):
        Ra = _momentum_residual(ndim, a, P, tau, rhog, di)
        bk.assign(R[a], Ra)
        V[a][interior] += Ra * eta_dtau / av(eta_tau, a)


def _seam(ndim, a):
    return along(ndim, a, slice(0, 1)), along(ndim, a, slice(-1, None))


def _seam_residual(ndim, a, P, tau, rhog, di):
    """Momentum residual on the face shared by the first and last cell of a periodic axis."""
    first, last = _seam(ndim, a)
    s = tau.normal[a] - P
    Ra = (s[first] - s[last]) / di[a] + 0.5 * (rhog[a][first] + rhog[a][last])
    for b in others(ndim, a):
        shear = tau.shear[(min(a, b), max(a, b))]
        Ra = Ra + d(shear[first], b, di[b])
    return Ra


@kernel
def compute_seam_velocity(bk, ni, V, P, tau, rhog, eta_dtau, eta_tau, di, axes):
    """
    Velocity update on the seam face of each periodic axis in `axes`. The
    boundary conditions then copy it to the last face.
    """
    ndim = len(ni)
    for a in axes:
        Ra = _seam_residual(ndim, a, P, tau, rhog, di)
        first, last = _seam(ndim, a)
        index = list(inner_index(ndim, others(ndim, a)))
        index[a] = slice(0, 1)
        V[a][tuple(index)] += Ra * eta_dtau / (0.5 * (eta_tau[first] + eta_tau[last]))


def update_invariants(bk, stokes):
    bk.assign(stokes.tau.II, second_invariant(bk, stokes.tau.normal, stokes.tau.shear))
    bk.assign(stokes.eps.II, second_invariant(bk, stokes.eps.normal, stokes.eps.shear))


def as_field(bk, value, ni, default):
    if value is None:
        return bk.full(ni, default)
    if np.isscalar(value):
        return bk.full(ni, float(value))
    return bk.asarray(value)


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------
class StokesSolver:
    """
    Relaxes the momentum and continuity residuals for one physical timestep.

    store        : FieldStore (borrowed; its backend runs every kernel)
    coeffs       : PTStokesCoeffs
    bcs          : FlowBoundaryConditions or DisplacementBoundaryConditions
    config       : SolverConfig
    grid         : distributed grid collaborator (LocalGrid by default)
    rheology     : optional RheologyProvider; without one the caller sets
                   stokes.eta directly
    phase_ratios : PhaseRatio, required with a rheology provider
    """

    def __init__(self, store, coeffs, bcs, config=None, grid=None, rheology=None, phase_ratios=None):
        if rheology is not None and phase_ratios is None:
            raise ConfigurationError("a rheology provider needs phase ratios")
        self.store = store
        self.bk = store.backend
        self.coeffs = coeffs
        self.bcs = bcs
        self.periodic = tuple(bcs.periodic_axes)
        self.config = config or SolverConfig()
        self.grid = grid or LocalGrid()
        self.rheology = rheology
        self.phase_ratios = phase_ratios

    def __repr__(self):
        return f"StokesSolver({self.store!r}, {self.coeffs!r})"

    def solve(self, rhog, dt=math.inf, G=None, K=None, args=None):
        """
        rhog : buoyancy force per axis at the centers (arrays or scalars)
        dt   : physical timestep (inf for a purely viscous problem)
        G, K : shear and bulk moduli (inf by default, or from the provider)
        args : extra state passed to the rheology provider
        """
        bk, st, ni, cfg = self.bk, self.store.stokes, self.store.ni, self.config
        self.grid.check(self.store)
        if len(rhog) != len(ni):
            raise ConfigurationError(f"rhog needs {len(ni)} components, got {len(rhog)}")
        if dt <= 0:
            raise ConfigurationError(f"timestep must be positive, got {dt}")
        if self.bcs.target == "U" and math.isinf(dt):
            raise ConfigurationError("displacement boundary conditions need a finite timestep")

        self.dt = dt
        self.args = args
        self.diagnostics = ViscosityDiagnostics()
        rhog = [as_field(bk, r, ni, 0.0) for r in rhog]
        if self.rheology is not None and G is None and K is None:
            G, K = compute_elastic_moduli(bk, self.rheology, self.phase_ratios, self._args())
        self.G = as_field(bk, G, ni, math.inf)
        self._Gdt = 1.0 / (self.G * dt)
        _Kdt = 1.0 / (as_field(bk, K, ni, math.inf) * dt)

        self.tau_y = None
        self.plastic = False
        if self.rheology is not None:
            self._update_viscosity(relaxation=1.0)
        self.eta_tau = bk.maxloc(st.eta)
        self._refresh_effective(record=True)

        flow_bcs(st, self.bcs, ni, dt)
        bk.exchange(self.grid, *st.V)

        monitor = ConvergenceMonitor(cfg, self.grid, bk)
        every = cfg.viscosity_update_every if self.rheology is not None else 0
        status = SolveStatus.NON_CONVERGENCE
        state = None
        it = 0
        while it < cfg.max_iter:
            it += 1
            self._sweep(rhog, _Kdt)
            if every and it % every == 0:
                self._update_viscosity(cfg.viscosity_relaxation)
                self._refresh_effective(record=True)
            if it % cfg.check_every == 0 or it == cfg.max_iter:
                if self.plastic:
                    self._update_yield_stress()
                state = monitor.check(it, self._residuals(rhog, _Kdt))
                if not state.finite:
                    logger.warning(f"non-finite Stokes residual at iteration {it}, giving up")
                    break
                if state.converged and it >= cfg.min_iter:
                    status = SolveStatus.CONVERGED
                    break

        update_invariants(bk, st)
        st.tau_o.copy_from(bk, st.tau)
        bk.assign(st.P0, st.P)
        bk.synchronize()

        norms = dict(state.norms) if state is not None else {}
        result = SolveResult(status, it, norms, monitor.history, self.diagnostics)
        if not result.converged:
            logger.warning(f"Stokes solve did not converge after {it} iterations (err={result.err:.3e})")
        elif cfg.verbose:
            logger.info(f"Stokes solve converged after {it} iterations (err={result.err:.3e})")
        return result

    def _args(self):
        return rheology_args(self.store, self.dt, **(self.args or {}))

    def _update_viscosity(self, relaxation):
        bk, st, cfg = self.bk, self.store.stokes, self.config
        update_invariants(bk, st)
        args = self._args()
        compute_viscosity(bk, st.eta, self.rheology, self.phase_ratios, args,
                          cfg.viscosity_cutoff, cfg.viscosity_averaging, relaxation, self.diagnostics)
        self.tau_y = compute_yield_stress(bk, self.rheology, self.phase_ratios, args)
        self.plastic = bk.amin(self.tau_y) < math.inf
        self.eta_tau = bk.maxloc(st.eta)

    def _update_yield_stress(self):
        """Pressure-dependent yield stress at the current pressure."""
        self.tau_y = compute_yield_stress(self.bk, self.rheology, self.phase_ratios, self._args())
        self._refresh_effective(record=True)

    def _refresh_effective(self, record=False):
        bk, st, ni = self.bk, self.store.stokes, self.store.ni
        tau_y = self.tau_y if self.tau_y is not None else bk.full(ni, math.inf)
        compute_viscosity_vep(bk, st, self.G, tau_y, self.dt, self.config.viscosity_cutoff,
                              self.diagnostics if record else None, self.periodic)
        self.edges = {
            key: tuple(center2edge(bk, f, key, self.periodic) for f in (st.eta, st.eta_vep, self._Gdt))
            for key in st.tau.shear
        }

    def _sweep(self, rhog, _Kdt):
        bk, st, ni, c = self.bk, self.store.stokes, self.store.ni, self.coeffs
        di = self.store.geometry.di
        bk.launch(compute_divergence, ni, st.divV, st.V, di)
        bk.launch(compute_pressure, ni, st.P, st.P0, st.RP, st.divV, st.eta, c.r, c.theta_dtau, _Kdt)
        bk.launch(compute_strain_rate, ni, st.eps, st.V, st.divV, di)
        if self.plastic:
            self._refresh_effective()
        bk.launch(compute_stress, ni, st.tau, st.tau_o, st.eps, st.eta, st.eta_vep,
                  self._Gdt, self.edges, c.theta_dtau)
        bk.launch(compute_velocity, ni, st.V, st.R, st.P, st.tau, rhog, c.eta_dtau, self.eta_tau, di)
        if self.periodic:
            bk.launch(compute_seam_velocity, ni, st.V, st.P, st.tau, rhog, c.eta_dtau, self.eta_tau, di,
                      self.periodic)
        flow_bcs(st, self.bcs, ni, self.dt)
        bk.exchange(self.grid, *st.V)

    def _residuals(self, rhog, _Kdt):
        bk, st, ni = self.bk, self.store.stokes, self.store.ni
        di = self.store.geometry.di
        bk.launch(compute_residuals, ni, st.R, st.P, st.tau, rhog, di)
        bk.launch(compute_divergence, ni, st.divV, st.V, di)
        bk.assign(st.RP, -st.divV - (st.P - st.P0) * _Kdt)
        residuals = {"R" + AXES[a]: R for a, R in enumerate(st.R)}
        for a in self.periodic:
            seam = _seam_residual(len(ni), a, st.P, st.tau, rhog, di)
            residuals["R" + AXES[a]] = bk.concatenate([seam, st.R[a]], a)
        residuals["RP"] = st.RP
        return residuals


def solve_stokes(store, coeffs, bcs, rhog, config=None, dt=math.inf, grid=None,
                 rheology=None, phase_ratios=None, G=None, K=None, args=None):
    """Convenience wrapper: one StokesSolver, one solve."""
    solver = StokesSolver(store, coeffs, bcs, config, grid, rheology, phase_ratios)
    return solver.solve(rhog, dt, G, K, args)


def compute_dt(store, dt_diff=math.inf, grid=None):
    """
    Physical timestep limited by advection, min(di) / max|V| / (ndim + 0.1),
    and by `dt_diff`.
    """
    bk = store.backend
    grid = grid or LocalGrid()
    vmax = max(bk.amax_abs(V) for V in store.stokes.V)
    vmax = grid.reduce(vmax, "max")
    if vmax == 0.0:
        return dt_diff
    return min(dt_diff, min(store.geometry.di) / vmax / (store.ndim + 0.1))
