# thermal.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Pseudo-transient iterations for the heat-diffusion equation
#
#   rhoCp (dT/dt + v.grad T) = div(K grad T) + H + Hs + Ha
#
# on cell-centered temperatures with one ghost layer. The flux is relaxed
# in pseudo time (damped wave form), the temperature is updated from the
# flux divergence and the sources, and the residual is measured with the
# true Fourier flux.
#

import logging
import math

from .backends import kernel
from .boundary_conditions import thermal_bcs
from .config import SolverConfig, ThermalOptions
from .convergence import ConvergenceMonitor, SolveResult, SolveStatus
from .distributed import LocalGrid
from .errors import ConfigurationError
from .pt_coeffs import PTThermalCoeffs
from .rheology import compute_elastic_moduli, compute_property, compute_thermal_properties, rheology_args
from .stencils import along, av, center2edge, d, edge2center, inner, inner_index, others, pad_edge, velocity2center
from .stokes import as_field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------
def _gradient(T, a, h):
    """Normal temperature gradient on the faces along `a` (n_a + 1 entries)."""
    return d(inner(T, others(T.ndim, a)), a, h)


def _divergence(q, di):
    acc = 0.0
    for a, qa in enumerate(q):
        acc = acc + d(qa, a, di[a])
    return acc


@kernel
def compute_flux(bk, ni, q, T, K_faces, theta_faces, di):
    for a in range(len(ni)):
        dT = _gradient(T, a, di[a])
        bk.assign(q[a], (q[a] * theta_faces[a] - K_faces[a] * dT) / (1.0 + theta_faces[a]))


@kernel
def update_temperature(bk, ni, T, Told, q, dtau_rho, rhoCp, source, _dt, di):
    interior = inner_index(len(ni), range(len(ni)))
    dTdt = (T[interior] - Told[interior]) * _dt
    T[interior] += dtau_rho * (-_divergence(q, di) - rhoCp * dTdt + source)


@kernel
def compute_thermal_residual(bk, ni, ResT, T, Told, K_faces, rhoCp, source, _dt, di):
    interior = inner_index(len(ni), range(len(ni)))
    flux = [-K_faces[a] * _gradient(T, a, di[a]) for a in range(len(ni))]
    dTdt = (T[interior] - Told[interior]) * _dt
    bk.assign(ResT, -_divergence(flux, di) - rhoCp * dTdt + source)


def compute_advection(bk, T, V, rhoCp, di):
    """First-order upwind rhoCp v.grad(T) at the centers."""
    ndim = T.ndim
    acc = 0.0
    for a in range(ndim):
        v = velocity2center(V[a], a)
        dT = _gradient(T, a, di[a])
        n = dT.shape[a]
        back = dT[along(ndim, a, slice(0, n - 1))]
        ahead = dT[along(ndim, a, slice(1, n))]
        acc = acc + bk.where(v > 0.0, v * back, v * ahead)
    return rhoCp * acc


def compute_shear_heating(bk, stokes, G, dt, chi=1.0, periodic=()):
    """
    Dissipation chi tau_ij (eps_ij - (tau_ij - tau_o_ij) / (2 G dt)) at every
    cell center. Shear terms are formed on the edges, counted twice (ij and
    ji) and averaged to the centers.
    """
    _Gdt = 1.0 / (G * dt)
    acc = 0.0
    for t, to, e in zip(stokes.tau.normal, stokes.tau_o.normal, stokes.eps.normal):
        acc = acc + t * (e - 0.5 * (t - to) * _Gdt)
    for key, t in stokes.tau.shear.items():
        _Gdt_e = center2edge(bk, _Gdt, key, periodic)
        w = t * (stokes.eps.shear[key] - 0.5 * (t - stokes.tau_o.shear[key]) * _Gdt_e)
        acc = acc + 2.0 * edge2center(w, key)
    return chi * acc


def compute_adiabatic_heating(bk, stokes, Tc, alpha, di, periodic=()):
    """alpha T v.grad(P) at the centers (zero pressure gradient on walls)."""
    acc = 0.0
    for a, V in enumerate(stokes.V):
        v = velocity2center(V, a)
        dP = av(d(pad_edge(bk, stokes.P, (a,), periodic), a, di[a]), a)
        acc = acc + v * dP
    return alpha * Tc * acc


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------
class ThermalSolver:
    """
    Relaxes the heat equation over one physical timestep dt. The incoming
    temperature becomes Told; on return T holds the new temperature with
    boundary conditions applied, converged or not.

    Properties K and rhoCp are taken from the arguments of `solve` or, when
    missing, from the rheology provider mixed with the phase ratios.
    """

    def __init__(self, store, bcs, config=None, options=None, grid=None,
                 rheology=None, phase_ratios=None, CFL=None):
        if store.thermal is None:
            raise ConfigurationError("field store was created without thermal arrays")
        if rheology is not None and phase_ratios is None:
            raise ConfigurationError("a rheology provider needs phase ratios")
        self.store = store
        self.bk = store.backend
        self.bcs = bcs
        self.periodic = tuple(bcs.periodic_axes)
        self.config = config or SolverConfig()
        self.options = options or ThermalOptions()
        self.grid = grid or LocalGrid()
        self.rheology = rheology
        self.phase_ratios = phase_ratios
        self.CFL = CFL
        self.coeffs = None
        if self.options.latent_heat and rheology is None:
            raise ConfigurationError("latent heat needs a rheology provider with a melt fraction")

    def __repr__(self):
        return f"ThermalSolver({self.store!r}, options={self.options!r})"

    def _properties(self, K, rhoCp, dt, args):
        bk, ni = self.bk, self.store.ni
        if self.rheology is not None and (K is None or rhoCp is None or self.options.latent_heat):
            K_r, rhoCp_r = compute_thermal_properties(
                bk, self.rheology, self.phase_ratios, rheology_args(self.store, dt, **(args or {})),
                latent_heat=self.options.latent_heat,
            )
            K = K_r if K is None else K
            rhoCp = rhoCp_r if rhoCp is None or self.options.latent_heat else rhoCp
        if K is None or rhoCp is None:
            raise ConfigurationError("conductivity and heat capacity are needed (or a rheology provider)")
        return as_field(bk, K, ni, 1.0), as_field(bk, rhoCp, ni, 1.0)

    def _mixed(self, name, value, dt, args, default):
        if value is not None:
            return value
        if self.rheology is not None:
            return compute_property(self.bk, self.rheology, self.phase_ratios,
                                    rheology_args(self.store, dt, **(args or {})), name)
        return default

    def solve(self, dt, K=None, rhoCp=None, H=None, G=None, chi=None, alpha=None, args=None):
        """
        dt    : physical timestep (inf for the steady state)
        K     : conductivity at the centers
        rhoCp : volumetric heat capacity at the centers
        H     : radiogenic heat source at the centers
        G     : shear modulus for the elastic part of shear heating
        chi   : shear-heating efficiency (1 by default)
        alpha : thermal expansivity for adiabatic heating
        """
        bk, th, ni, cfg, opts = self.bk, self.store.thermal, self.store.ni, self.config, self.options
        geometry = self.store.geometry
        di = geometry.di
        self.grid.check(self.store)
        if dt <= 0:
            raise ConfigurationError(f"timestep must be positive, got {dt}")
        _dt = 0.0 if math.isinf(dt) else 1.0 / dt

        thermal_bcs(th, self.bcs, ni)
        bk.exchange(self.grid, th.T)
        bk.assign(th.Told, th.T)

        K_given, rhoCp_given = K, rhoCp
        K, rhoCp = self._properties(K, rhoCp, dt, args)
        if self.coeffs is None:
            self.coeffs = PTThermalCoeffs(bk, geometry.li, di, K, rhoCp, dt, self.CFL, self.periodic)
        else:
            self.coeffs.update(K, rhoCp, dt)
        coeffs = self.coeffs

        if H is not None:
            bk.assign(th.H, as_field(bk, H, ni, 0.0))
        if opts.shear_heating:
            chi = self._mixed("shear_heating", chi, dt, args, 1.0)
            if G is None and self.rheology is not None:
                G, _ = compute_elastic_moduli(bk, self.rheology, self.phase_ratios,
                                              rheology_args(self.store, dt, **(args or {})))
            G = as_field(bk, G, ni, math.inf)
            bk.assign(th.shear_heating,
                      compute_shear_heating(bk, self.store.stokes, G, dt, chi, self.periodic))
        else:
            bk.assign(th.shear_heating, 0.0)
        if opts.adiabatic_heating:
            alpha = self._mixed("expansivity", alpha, dt, args, 0.0)
        bk.assign(th.adiabatic_heating, 0.0)

        monitor = ConvergenceMonitor(cfg, self.grid, bk)
        status = SolveStatus.NON_CONVERGENCE
        state = None
        it = 0
        while it < cfg.max_iter:
            it += 1
            bk.launch(compute_flux, ni, th.q, th.T, coeffs.K_faces, coeffs.theta_faces, di)
            source = self._source(coeffs.rhoCp, alpha)
            bk.launch(update_temperature, ni, th.T, th.Told, th.q, coeffs.dtau_rho, coeffs.rhoCp, source, _dt, di)
            thermal_bcs(th, self.bcs, ni)
            bk.exchange(self.grid, th.T)

            if it % cfg.check_every == 0 or it == cfg.max_iter:
                if opts.latent_heat:
                    K, rhoCp = self._properties(K_given, rhoCp_given, dt, args)
                    coeffs.update(K, rhoCp, dt)
                source = self._source(coeffs.rhoCp, alpha)
                bk.launch(compute_thermal_residual, ni, th.ResT, th.T, th.Told, coeffs.K_faces,
                          coeffs.rhoCp, source, _dt, di)
                state = monitor.check(it, {"T": th.ResT})
                if not state.finite:
                    logger.warning(f"non-finite thermal residual at iteration {it}, giving up")
                    break
                if state.converged and it >= cfg.min_iter:
                    status = SolveStatus.CONVERGED
                    break

        bk.synchronize()
        norms = dict(state.norms) if state is not None else {}
        result = SolveResult(status, it, norms, monitor.history)
        if not result.converged:
            logger.warning(f"thermal solve did not converge after {it} iterations (err={result.err:.3e})")
        elif cfg.verbose:
            logger.info(f"thermal solve converged after {it} iterations (err={result.err:.3e})")
        return result

    def _source(self, rhoCp, alpha):
        bk, th, st = self.bk, self.store.thermal, self.store.stokes
        source = th.H + th.shear_heating
        if self.options.adiabatic_heating:
            bk.assign(th.adiabatic_heating,
                      compute_adiabatic_heating(bk, st, th.Tc, alpha, self.store.geometry.di, self.periodic))
            source = source + th.adiabatic_heating
        if self.options.advection:
            source = source - compute_advection(bk, th.T, st.V, rhoCp, self.store.geometry.di)
        return source


def heatdiffusion_pt(store, bcs, dt, config=None, options=None, grid=None,
                     rheology=None, phase_ratios=None, **kwargs):
    """Convenience wrapper: one ThermalSolver, one solve."""
    solver = ThermalSolver(store, bcs, config, options, grid, rheology, phase_ratios)
    return solver.solve(dt, **kwargs)
