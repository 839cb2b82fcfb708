# advection.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Fifth-order WENO-Z advection of the cell-centered temperature with
# Lax-Friedrichs flux splitting and a three-stage SSP Runge-Kutta step.
# It runs once per physical timestep, after the thermal solve, and ends
# with the temperature boundary conditions and a halo exchange.
#

import logging

from .boundary_conditions import thermal_bcs
from .distributed import LocalGrid
from .stencils import along, velocity2center

logger = logging.getLogger(__name__)

WENO_EPS = 1e-6
HALO = 3


def weno_z(f0, f1, f2, f3, f4, eps=WENO_EPS):
    """
    WENO-Z value at the interface between f2 and f3 from the five-point
    stencil f0..f4, upwind from the f0 side.
    """
    IS0 = 13.0 / 12.0 * (f0 - 2.0 * f1 + f2) ** 2 + 0.25 * (f0 - 4.0 * f1 + 3.0 * f2) ** 2
    IS1 = 13.0 / 12.0 * (f1 - 2.0 * f2 + f3) ** 2 + 0.25 * (f1 - f3) ** 2
    IS2 = 13.0 / 12.0 * (f2 - 2.0 * f3 + f4) ** 2 + 0.25 * (3.0 * f2 - 4.0 * f3 + f4) ** 2
    tau5 = abs(IS0 - IS2)

    alpha0 = 0.1 * (1.0 + (tau5 / (IS0 + eps)) ** 2)
    alpha1 = 0.6 * (1.0 + (tau5 / (IS1 + eps)) ** 2)
    alpha2 = 0.3 * (1.0 + (tau5 / (IS2 + eps)) ** 2)
    alpha_sum = alpha0 + alpha1 + alpha2

    q0 = (2.0 * f0 - 7.0 * f1 + 11.0 * f2) / 6.0
    q1 = (-f1 + 5.0 * f2 + 2.0 * f3) / 6.0
    q2 = (2.0 * f2 + 5.0 * f3 - f4) / 6.0
    return (alpha0 * q0 + alpha1 * q1 + alpha2 * q2) / alpha_sum


def pad(bk, a, axis, width, periodic=False):
    """Extend `a` by `width` layers on both sides, wrapped or replicated."""
    nd = a.ndim
    if periodic:
        low = a[along(nd, axis, slice(-width, None))]
        high = a[along(nd, axis, slice(0, width))]
    else:
        low = bk.concatenate([a[along(nd, axis, slice(0, 1))]] * width, axis)
        high = bk.concatenate([a[along(nd, axis, slice(-1, None))]] * width, axis)
    return bk.concatenate([low, a, high], axis)


def weno_flux_divergence(bk, u, v, axis, h, alpha, periodic=False):
    """d(v u)/dx_axis at the centers from WENO-Z interface fluxes."""
    nd = u.ndim
    n = u.shape[axis]
    f = v * u
    f_plus = pad(bk, 0.5 * (f + alpha * u), axis, HALO, periodic)
    f_minus = pad(bk, 0.5 * (f - alpha * u), axis, HALO, periodic)

    def shifted(a, k):
        return a[along(nd, axis, slice(k, k + n + 1))]

    # interface i sits between cells i - 1 and i
    flux = weno_z(*(shifted(f_plus, k) for k in range(5)))
    flux = flux + weno_z(*(shifted(f_minus, k) for k in range(5, 0, -1)))
    return (flux[along(nd, axis, slice(1, None))] - flux[along(nd, axis, slice(None, -1))]) / h


class WENO5:
    """
    Advection operator for the cell-centered temperature.

    periodic : axes along which the field wraps around; other boundaries
               are extended with zero gradient
    grid     : distributed grid collaborator, used for the global
               Lax-Friedrichs speed and the final halo exchange
    """

    def __init__(self, periodic=(), grid=None):
        self.periodic = tuple(periodic)
        self.grid = grid or LocalGrid()

    def __repr__(self):
        return f"WENO5(periodic={self.periodic})"

    def rhs(self, bk, u, velocities, speeds, di):
        acc = 0.0
        for a, (v, alpha) in enumerate(zip(velocities, speeds)):
            acc = acc - weno_flux_divergence(bk, u, v, a, di[a], alpha, a in self.periodic)
        return acc

    def advect(self, store, bcs, dt):
        """Advect store.thermal.Tc with the Stokes velocities over dt."""
        bk, th = store.backend, store.thermal
        di = store.geometry.di
        velocities = [velocity2center(V, a) for a, V in enumerate(store.stokes.V)]
        speeds = [self.grid.reduce(bk.amax_abs(v), "max") for v in velocities]
        courant = dt * sum(s / h for s, h in zip(speeds, di))
        if courant > 1.0:
            logger.warning(f"WENO advection Courant number {courant:.3f} exceeds 1")

        u0 = bk.copy(th.Tc)
        u1 = u0 + dt * self.rhs(bk, u0, velocities, speeds, di)
        u2 = 0.75 * u0 + 0.25 * (u1 + dt * self.rhs(bk, u1, velocities, speeds, di))
        u3 = u0 / 3.0 + 2.0 / 3.0 * (u2 + dt * self.rhs(bk, u2, velocities, speeds, di))
        bk.assign(th.Tc, u3)

        thermal_bcs(th, bcs, store.ni)
        bk.exchange(self.grid, th.T)
        return th.T


def weno_advection(store, bcs, dt, grid=None):
    """Convenience wrapper: one WENO5 step with the periodicity of `bcs`."""
    return WENO5(bcs.periodic_axes, grid).advect(store, bcs, dt)
