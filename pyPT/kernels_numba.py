# kernels_numba.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Compiled 2-D loops for the threaded CPU backend. Importing this module
# registers them as the "numba" specializations of the generic kernels in
# stokes.py and thermal.py; the loop bodies compute exactly the same
# stencils, cell by cell, parallelised over the first axis with prange.
#

from numba import njit, prange

from .stokes import compute_strain_rate, compute_stress, compute_velocity
from .thermal import compute_flux


# ---------------------------------------------------------------------------
# Strain rate
# ---------------------------------------------------------------------------
@njit(parallel=True)
def strain_rate_2d(exx, eyy, exy, Vx, Vy, divV, dx, dy):
    nx, ny = divV.shape
    for i in prange(nx):
        for j in range(ny):
            exx[i, j] = (Vx[i + 1, j + 1] - Vx[i, j + 1]) / dx - divV[i, j] / 3.0
            eyy[i, j] = (Vy[i + 1, j + 1] - Vy[i + 1, j]) / dy - divV[i, j] / 3.0
    for i in prange(nx + 1):
        for j in range(ny + 1):
            exy[i, j] = 0.5 * ((Vx[i, j + 1] - Vx[i, j]) / dy + (Vy[i + 1, j] - Vy[i, j]) / dx)


@compute_strain_rate.specialize("numba", 2)
def _strain_rate(ni, eps, V, divV, di):
    strain_rate_2d(eps.normal[0], eps.normal[1], eps.shear[(0, 1)], V[0], V[1], divV, di[0], di[1])


# ---------------------------------------------------------------------------
# Stress
# ---------------------------------------------------------------------------
@njit(parallel=True)
def stress_2d(txx, tyy, txy, txx_o, tyy_o, txy_o, exx, eyy, exy,
              eta, eta_vep, _Gdt, eta_v, eta_vep_v, _Gdt_v, theta_dtau):
    nx, ny = txx.shape
    for i in prange(nx):
        for j in range(ny):
            c = eta[i, j] * _Gdt[i, j]
            f = (1.0 + c) / (theta_dtau + 1.0 + c)
            txx[i, j] += (2.0 * eta_vep[i, j] * (exx[i, j] + 0.5 * txx_o[i, j] * _Gdt[i, j]) - txx[i, j]) * f
            tyy[i, j] += (2.0 * eta_vep[i, j] * (eyy[i, j] + 0.5 * tyy_o[i, j] * _Gdt[i, j]) - tyy[i, j]) * f
    for i in prange(nx + 1):
        for j in range(ny + 1):
            c = eta_v[i, j] * _Gdt_v[i, j]
            f = (1.0 + c) / (theta_dtau + 1.0 + c)
            txy[i, j] += (2.0 * eta_vep_v[i, j] * (exy[i, j] + 0.5 * txy_o[i, j] * _Gdt_v[i, j]) - txy[i, j]) * f


@compute_stress.specialize("numba", 2)
def _stress(ni, tau, tau_o, eps, eta, eta_vep, _Gdt, edges, theta_dtau):
    eta_v, eta_vep_v, _Gdt_v = edges[(0, 1)]
    stress_2d(tau.normal[0], tau.normal[1], tau.shear[(0, 1)],
              tau_o.normal[0], tau_o.normal[1], tau_o.shear[(0, 1)],
              eps.normal[0], eps.normal[1], eps.shear[(0, 1)],
              eta, eta_vep, _Gdt, eta_v, eta_vep_v, _Gdt_v, theta_dtau)


# ---------------------------------------------------------------------------
# Velocity
# ---------------------------------------------------------------------------
@njit(parallel=True)
def velocity_2d(Vx, Vy, Rx, Ry, P, txx, tyy, txy, rhogx, rhogy, eta_dtau, eta_tau, dx, dy):
    nx, ny = P.shape
    for i in prange(nx - 1):
        for j in range(ny):
            R = (((txx[i + 1, j] - P[i + 1, j]) - (txx[i, j] - P[i, j])) / dx
                 + (txy[i + 1, j + 1] - txy[i + 1, j]) / dy
                 + 0.5 * (rhogx[i + 1, j] + rhogx[i, j]))
            Rx[i, j] = R
            Vx[i + 1, j + 1] += R * eta_dtau / (0.5 * (eta_tau[i + 1, j] + eta_tau[i, j]))
    for i in prange(nx):
        for j in range(ny - 1):
            R = (((tyy[i, j + 1] - P[i, j + 1]) - (tyy[i, j] - P[i, j])) / dy
                 + (txy[i + 1, j + 1] - txy[i, j + 1]) / dx
                 + 0.5 * (rhogy[i, j + 1] + rhogy[i, j]))
            Ry[i, j] = R
            Vy[i + 1, j + 1] += R * eta_dtau / (0.5 * (eta_tau[i, j + 1] + eta_tau[i, j]))


@compute_velocity.specialize("numba", 2)
def _velocity(ni, V, R, P, tau, rhog, eta_dtau, eta_tau, di):
    velocity_2d(V[0], V[1], R[0], R[1], P, tau.normal[0], tau.normal[1], tau.shear[(0, 1)],
                rhog[0], rhog[1], eta_dtau, eta_tau, di[0], di[1])


# ---------------------------------------------------------------------------
# Heat flux
# ---------------------------------------------------------------------------
@njit(parallel=True)
def flux_2d(qx, qy, T, Kx, Ky, thx, thy, dx, dy):
    nx = qy.shape[0]
    ny = qx.shape[1]
    for i in prange(nx + 1):
        for j in range(ny):
            dT = (T[i + 1, j + 1] - T[i, j + 1]) / dx
            qx[i, j] = (qx[i, j] * thx[i, j] - Kx[i, j] * dT) / (1.0 + thx[i, j])
    for i in prange(nx):
        for j in range(ny + 1):
            dT = (T[i + 1, j + 1] - T[i + 1, j]) / dy
            qy[i, j] = (qy[i, j] * thy[i, j] - Ky[i, j] * dT) / (1.0 + thy[i, j])


@compute_flux.specialize("numba", 2)
def _flux(ni, q, T, K_faces, theta_faces, di):
    flux_2d(q[0], q[1], T, K_faces[0], K_faces[1], theta_faces[0], theta_faces[1], di[0], di[1])
