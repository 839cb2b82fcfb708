# fields.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Staggered field storage for the Stokes and heat-diffusion solvers.
#
# Layout for a grid of n = ni cells (axis d runs along coordinate d):
#   centers      : n                      P, normal stress/strain, viscosity
#   faces (V[a]) : n_a + 1 along a, n_b + 2 along b != a  (ghost layer)
#   edges        : n_a + 1, n_b + 1 along a, b and n_c along c
#                  (shear components; cell vertices in 2-D)
#   temperature  : n + 2 on every axis (ghost layer)
#   heat flux    : n_a + 1 along a, n_b along b != a
#

from .errors import HaloMismatch
from .grid import AXES
from .stencils import shear_pairs

HALO = 1


def velocity_shape(ni, axis):
    return tuple(n + 1 if b == axis else n + 2 * HALO for b, n in enumerate(ni))


def residual_shape(ni, axis):
    return tuple(n - 1 if b == axis else n for b, n in enumerate(ni))


def edge_shape(ni, a, b):
    return tuple(n + 1 if c in (a, b) else n for c, n in enumerate(ni))


def flux_shape(ni, axis):
    return tuple(n + 1 if b == axis else n for b, n in enumerate(ni))


def ghosted_shape(ni):
    return tuple(n + 2 * HALO for n in ni)


def vertex_shape(ni):
    return tuple(n + 1 for n in ni)


class SymmetricTensor:
    """Normal components at the centers, shear components on the edges."""

    def __init__(self, bk, ni):
        ndim = len(ni)
        self.ndim = ndim
        self.normal = [bk.zeros(ni) for _ in range(ndim)]
        self.shear = {(a, b): bk.zeros(edge_shape(ni, a, b)) for a, b in shear_pairs(ndim)}
        self.II = bk.zeros(ni)

    def components(self):
        out = {}
        for a, component in enumerate(self.normal):
            out[AXES[a] * 2] = component
        for (a, b), component in self.shear.items():
            out[AXES[a] + AXES[b]] = component
        out["II"] = self.II
        return out

    def copy_from(self, bk, other):
        for dst, src in zip(self.normal, other.normal):
            bk.assign(dst, src)
        for key, dst in self.shear.items():
            bk.assign(dst, other.shear[key])
        bk.assign(self.II, other.II)


class StokesArrays:
    def __init__(self, bk, ni):
        ndim = len(ni)
        self.P = bk.zeros(ni)
        self.P0 = bk.zeros(ni)
        self.divV = bk.zeros(ni)
        self.RP = bk.zeros(ni)
        self.V = [bk.zeros(velocity_shape(ni, a)) for a in range(ndim)]
        self.U = [bk.zeros(velocity_shape(ni, a)) for a in range(ndim)]
        self.R = [bk.zeros(residual_shape(ni, a)) for a in range(ndim)]
        self.tau = SymmetricTensor(bk, ni)
        self.tau_o = SymmetricTensor(bk, ni)
        self.eps = SymmetricTensor(bk, ni)
        self.eta = bk.full(ni, 1.0)
        self.eta_vep = bk.full(ni, 1.0)

    def arrays(self):
        out = {"P": self.P, "P0": self.P0, "divV": self.divV, "RP": self.RP}
        for a, V in enumerate(self.V):
            out["V" + AXES[a]] = V
        for a, U in enumerate(self.U):
            out["U" + AXES[a]] = U
        for a, R in enumerate(self.R):
            out["R" + AXES[a]] = R
        for prefix, tensor in (("tau_", self.tau), ("tau_o_", self.tau_o), ("eps_", self.eps)):
            for name, component in tensor.components().items():
                out[prefix + name] = component
        out["eta"] = self.eta
        out["eta_vep"] = self.eta_vep
        return out


class ThermalArrays:
    def __init__(self, bk, ni):
        ndim = len(ni)
        self.T = bk.zeros(ghosted_shape(ni))
        self.Told = bk.zeros(ghosted_shape(ni))
        self.q = [bk.zeros(flux_shape(ni, a)) for a in range(ndim)]
        self.ResT = bk.zeros(ni)
        self.H = bk.zeros(ni)
        self.shear_heating = bk.zeros(ni)
        self.adiabatic_heating = bk.zeros(ni)

    def arrays(self):
        out = {"T": self.T, "Told": self.Told}
        for a, q in enumerate(self.q):
            out["qT" + AXES[a]] = q
        out["ResT"] = self.ResT
        out["H"] = self.H
        out["shear_heating"] = self.shear_heating
        out["adiabatic_heating"] = self.adiabatic_heating
        return out

    @property
    def Tc(self):
        """Temperature without its ghost layer (a view)."""
        return self.T[tuple(slice(HALO, -HALO) for _ in range(self.T.ndim))]


def expected_shapes(ni, thermal=True):
    ndim = len(ni)
    shapes = {name: tuple(ni) for name in ("P", "P0", "divV", "RP", "eta", "eta_vep")}
    for a in range(ndim):
        shapes["V" + AXES[a]] = velocity_shape(ni, a)
        shapes["U" + AXES[a]] = velocity_shape(ni, a)
        shapes["R" + AXES[a]] = residual_shape(ni, a)
    for prefix in ("tau_", "tau_o_", "eps_"):
        for a in range(ndim):
            shapes[prefix + AXES[a] * 2] = tuple(ni)
        for a, b in shear_pairs(ndim):
            shapes[prefix + AXES[a] + AXES[b]] = edge_shape(ni, a, b)
        shapes[prefix + "II"] = tuple(ni)
    if thermal:
        shapes["T"] = ghosted_shape(ni)
        shapes["Told"] = ghosted_shape(ni)
        for a in range(ndim):
            shapes["qT" + AXES[a]] = flux_shape(ni, a)
        for name in ("ResT", "H", "shear_heating", "adiabatic_heating"):
            shapes[name] = tuple(ni)
    return shapes


class FieldStore:
    """
    All grid arrays of one subdomain. Created once per run through the
    backend, mutated in place by the solvers, owned by the caller.
    """

    def __init__(self, geometry, backend, thermal=True):
        self.geometry = geometry
        self.backend = backend
        self.ni = geometry.ni
        self.ndim = geometry.ndim
        self.stokes = StokesArrays(backend, geometry.ni)
        self.thermal = ThermalArrays(backend, geometry.ni) if thermal else None

    def __repr__(self):
        return f"FieldStore({self.geometry!r}, backend={self.backend!r})"

    def arrays(self):
        out = dict(self.stokes.arrays())
        if self.thermal is not None:
            out.update(self.thermal.arrays())
        return out

    def check_extents(self):
        """Verify every array has the staggered extent its location requires."""
        expected = expected_shapes(self.ni, thermal=self.thermal is not None)
        for name, array in self.arrays().items():
            shape = tuple(array.shape)
            if shape != expected[name]:
                raise HaloMismatch(
                    f"array {name!r} has extent {shape}, expected {expected[name]} for ni={self.ni}"
                )
