# boundary_conditions.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Boundary conditions on the staggered velocity/displacement faces and on
# the ghosted temperature array. Every operator only writes boundary nodes
# and ghost layers, and applying it twice gives the same state as applying
# it once.
#

from .errors import ConfigurationError
from .stencils import along

SIDES = (("left", "right"), ("bot", "top"), ("front", "back"))


def _sides(ndim):
    return [side for pair in SIDES[:ndim] for side in pair]


def _flags(value, ndim, default=False):
    flags = {side: default for side in _sides(ndim)}
    for side, flag in (value or {}).items():
        if side not in flags:
            raise ConfigurationError(f"unknown boundary side {side!r} for a {ndim}-D grid")
        flags[side] = bool(flag)
    return flags


def _periodic_axes(periodicity, ndim):
    flags = _flags(periodicity, ndim)
    axes = []
    for axis, (low, high) in enumerate(SIDES[:ndim]):
        if flags[low] != flags[high]:
            raise ConfigurationError(f"periodicity must be set on both {low} and {high}")
        if flags[low]:
            axes.append(axis)
    return axes


def apply_periodic(A, n, axis):
    """
    Wrap a single subdomain around along `axis` with period n[axis] cells.

    Face arrays (n + 1 nodes): the first and last node are the same face,
    the last one takes the value of the first. Ghosted arrays (n + 2
    nodes): each ghost layer takes the opposite interior layer,
    A[0] <- A[n] and A[n + 1] <- A[1].
    """
    nd = A.ndim
    if A.shape[axis] == n[axis] + 1:
        A[along(nd, axis, -1)] = A[along(nd, axis, 0)]
    else:
        A[along(nd, axis, 0)] = A[along(nd, axis, -2)]
        A[along(nd, axis, -1)] = A[along(nd, axis, 1)]


class FlowBoundaryConditions:
    """
    Velocity boundary conditions per side (left/right, bot/top, front/back).

    free_slip   : zero normal velocity, zero normal derivative of the
                  tangential velocity (the default on every side)
    no_slip     : zero velocity on the wall
    velocity    : prescribed wall velocity vector, e.g. {"top": (1.0, 0.0)}
    periodicity : periodic along an axis (set on both of its sides)
    """

    target = "V"

    def __init__(self, free_slip=None, no_slip=None, velocity=None, periodicity=None, ndim=2):
        self.ndim = ndim
        self.periodic_axes = _periodic_axes(periodicity, ndim)
        no_slip = _flags(no_slip, ndim)
        explicit_free = _flags(free_slip, ndim)
        velocity = dict(velocity or {})
        self.kind = {}
        self.value = {}
        for axis, pair in enumerate(SIDES[:ndim]):
            for side in pair:
                chosen = [k for k, on in (("free_slip", explicit_free[side]),
                                           ("no_slip", no_slip[side]),
                                           ("velocity", side in velocity)) if on]
                if axis in self.periodic_axes:
                    if chosen:
                        raise ConfigurationError(f"side {side!r} is periodic and {chosen[0]}")
                    self.kind[side] = "periodic"
                    continue
                if len(chosen) > 1:
                    raise ConfigurationError(f"side {side!r} has conflicting conditions {chosen}")
                self.kind[side] = chosen[0] if chosen else "free_slip"
                if self.kind[side] == "velocity":
                    value = tuple(float(v) for v in velocity[side])
                    if len(value) != ndim:
                        raise ConfigurationError(f"velocity on {side!r} needs {ndim} components")
                    self.value[side] = value
        unknown = set(velocity) - set(_sides(ndim))
        if unknown:
            raise ConfigurationError(f"unknown boundary sides {sorted(unknown)}")

    def __repr__(self):
        return f"{type(self).__name__}({self.kind})"

    def apply(self, V, ni):
        """Enforce the conditions on the face arrays V (one per axis) in place."""
        ndim = len(V)
        # normal components on the boundary faces
        for axis in range(ndim):
            Va = V[axis]
            if axis in self.periodic_axes:
                apply_periodic(Va, ni, axis)
                continue
            for side, idx in zip(SIDES[axis], (0, -1)):
                normal = self.value[side][axis] if self.kind[side] == "velocity" else 0.0
                Va[along(ndim, axis, idx)] = normal
        # tangential components through the ghost layers
        for axis in range(ndim):
            for a in range(ndim):
                if a == axis:
                    continue
                Va = V[a]
                if axis in self.periodic_axes:
                    apply_periodic(Va, ni, axis)
                    continue
                for side, ghost, first in zip(SIDES[axis], (0, -1), (1, -2)):
                    g = along(ndim, axis, ghost)
                    f = along(ndim, axis, first)
                    kind = self.kind[side]
                    if kind == "free_slip":
                        Va[g] = Va[f]
                    elif kind == "no_slip":
                        Va[g] = -Va[f]
                    else:
                        Va[g] = 2.0 * self.value[side][a] - Va[f]
        return V


class DisplacementBoundaryConditions(FlowBoundaryConditions):
    """Same rules as FlowBoundaryConditions, applied to displacement increments."""

    target = "U"


class TemperatureBoundaryConditions:
    """
    Temperature conditions through the ghost layer of the cell-centered T.

    no_flux     : zero normal gradient (the default on every side)
    fixed       : prescribed wall temperature, e.g. {"bot": 1.0, "top": 0.0}
    periodicity : periodic along an axis (set on both of its sides)
    """

    def __init__(self, no_flux=None, fixed=None, periodicity=None, ndim=2):
        self.ndim = ndim
        self.periodic_axes = _periodic_axes(periodicity, ndim)
        no_flux = _flags(no_flux, ndim)
        fixed = dict(fixed or {})
        unknown = set(fixed) - set(_sides(ndim))
        if unknown:
            raise ConfigurationError(f"unknown boundary sides {sorted(unknown)}")
        self.kind = {}
        self.value = {}
        for axis, pair in enumerate(SIDES[:ndim]):
            for side in pair:
                if axis in self.periodic_axes:
                    if side in fixed or no_flux[side]:
                        raise ConfigurationError(f"side {side!r} is periodic and constrained")
                    self.kind[side] = "periodic"
                elif side in fixed:
                    if no_flux[side]:
                        raise ConfigurationError(f"side {side!r} is both fixed and no-flux")
                    self.kind[side] = "fixed"
                    self.value[side] = float(fixed[side])
                else:
                    self.kind[side] = "no_flux"

    def __repr__(self):
        return f"TemperatureBoundaryConditions({self.kind})"

    def apply(self, T, ni):
        ndim = T.ndim
        for axis in range(ndim):
            if axis in self.periodic_axes:
                apply_periodic(T, ni, axis)
                continue
            for side, ghost, first in zip(SIDES[axis], (0, -1), (1, -2)):
                g = along(ndim, axis, ghost)
                f = along(ndim, axis, first)
                if self.kind[side] == "fixed":
                    T[g] = 2.0 * self.value[side] - T[f]
                else:
                    T[g] = T[f]
        return T


def flow_bcs(stokes, bcs, ni, dt=None):
    """
    Apply flow conditions to the velocity faces, or to the displacement
    faces for DisplacementBoundaryConditions (converted through dt).
    """
    if bcs.target == "U":
        if dt is None:
            raise ConfigurationError("displacement boundary conditions need a timestep")
        velocity2displacement(stokes, dt)
        bcs.apply(stokes.U, ni)
        displacement2velocity(stokes, dt)
    else:
        bcs.apply(stokes.V, ni)


def thermal_bcs(thermal, bcs, ni):
    bcs.apply(thermal.T, ni)


def velocity2displacement(stokes, dt):
    for V, U in zip(stokes.V, stokes.U):
        U[...] = V * dt


def displacement2velocity(stokes, dt):
    for V, U in zip(stokes.V, stokes.U):
        V[...] = U / dt
