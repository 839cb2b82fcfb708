# pt_coeffs.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Pseudo-time steps and damping factors of the Stokes and heat-diffusion
# relaxation. The numerical parameters follow the accelerated
# pseudo-transient method (damped wave analogy, Räss et al. 2022).
#

import math

from .errors import ConfigurationError
from .stencils import av, center2edge


def _check_geometry(li, di):
    if len(li) != len(di) or len(li) not in (2, 3):
        raise ConfigurationError("li and di must both have 2 or 3 entries")
    if min(li) <= 0 or min(di) <= 0:
        raise ConfigurationError("domain lengths and grid spacings must be positive")


class PTStokesCoeffs:
    """
    Scalar relaxation parameters of the Stokes iteration.

        ltau       = min(li)
        Vpdtau     = min(di) * CFL
        theta_dtau = ltau (r + 4/3) / (Re Vpdtau)
        eta_dtau   = Vpdtau ltau / Re
    """

    def __init__(self, li, di, Re=3 * math.pi, r=0.7, CFL=None):
        _check_geometry(li, di)
        ndim = len(li)
        if CFL is None:
            CFL = 0.9 / math.sqrt(2.1) if ndim == 2 else 0.9 / math.sqrt(3.1)
        if CFL <= 0 or Re <= 0 or r <= 0:
            raise ConfigurationError("CFL, Re and r must be positive")
        self.ndim = ndim
        self.CFL = CFL
        self.Re = Re
        self.r = r
        self.ltau = min(li)
        self.Vpdtau = min(di) * CFL
        self.theta_dtau = self.ltau * (r + 4.0 / 3.0) / (Re * self.Vpdtau)
        self.eta_dtau = self.Vpdtau * self.ltau / Re

    def __repr__(self):
        return (f"PTStokesCoeffs(CFL={self.CFL:.4f}, Re={self.Re:.4f}, r={self.r}, "
                f"theta_dtau={self.theta_dtau:.4e}, eta_dtau={self.eta_dtau:.4e})")

    def pseudo_bulk_modulus(self, eta):
        """Per-cell pseudo bulk modulus r / theta_dtau * eta."""
        return self.r / self.theta_dtau * eta

    def velocity_step(self, bk, eta, axis):
        """Pseudo-time step of the interior faces along `axis`."""
        return self.eta_dtau / av(bk.maxloc(eta), axis)


class PTThermalCoeffs:
    """
    Per-cell relaxation parameters of the heat-diffusion iteration.

        max_lxyz     = max(li)
        Vpdtau       = min(di) * CFL
        Re           = pi + sqrt(pi^2 + rhoCp max_lxyz^2 / (K dt))
        theta_r_dtau = max_lxyz / Vpdtau / Re
        dtau_rho     = Vpdtau max_lxyz / K / Re

    The face averages of K and theta_r_dtau used by the flux update are
    kept alongside and refreshed by `update`; they wrap around the axes
    listed in `periodic`.
    """

    def __init__(self, bk, li, di, K, rhoCp, dt, CFL=None, periodic=()):
        _check_geometry(li, di)
        if CFL is None:
            CFL = 0.9 / math.sqrt(3.0)
        self.bk = bk
        self.ndim = len(li)
        self.CFL = CFL
        self.periodic = tuple(periodic)
        self.max_lxyz = max(li)
        self.Vpdtau = min(di) * CFL
        self.update(K, rhoCp, dt)

    def __repr__(self):
        return f"PTThermalCoeffs(CFL={self.CFL:.4f}, max_lxyz={self.max_lxyz}, Vpdtau={self.Vpdtau:.4e})"

    def update(self, K, rhoCp, dt):
        """Recompute every coefficient for new K, rhoCp or dt."""
        bk = self.bk
        if dt <= 0:
            raise ConfigurationError(f"timestep must be positive, got {dt}")
        _dt = 0.0 if math.isinf(dt) else 1.0 / dt
        L = self.max_lxyz
        self.K = K
        self.rhoCp = rhoCp
        self.Re = math.pi + bk.sqrt(math.pi * math.pi + rhoCp * (L * L) / K * _dt)
        self.theta_r_dtau = L / self.Vpdtau / self.Re
        self.dtau_rho = self.Vpdtau * L / K / self.Re
        self.K_faces = [center2edge(bk, K, (a,), self.periodic) for a in range(self.ndim)]
        self.theta_faces = [center2edge(bk, self.theta_r_dtau, (a,), self.periodic) for a in range(self.ndim)]
        return self


def update_thermal_coeffs(coeffs, K, rhoCp, dt):
    return coeffs.update(K, rhoCp, dt)
