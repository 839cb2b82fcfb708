# rheology.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Rheology coefficient engine. Constitutive laws live behind the
# RheologyProvider capability; this module only evaluates them per phase,
# mixes the results with the phase fractions and clamps them.
#

from dataclasses import dataclass
import logging
import math

import numpy as np

from .errors import ConfigurationError
from .stencils import center2edge, second_invariant

logger = logging.getLogger(__name__)


class RheologyProvider:
    """
    Material-law capability consumed by the engine.

    evaluate() returns a mapping from property name to per-phase values of
    shape (nphases, *shape). Required: viscosity, yield_stress, conductivity,
    heat_capacity. Optional: density, shear_modulus, bulk_modulus,
    expansivity, melt_fraction, latent_heat, shear_heating.
    """

    nphases = 0

    def evaluate(self, stress_invariant, pressure, temperature, phase_mix, extra_args=None):
        raise NotImplementedError


@dataclass
class Material:
    """Per-phase parameters of the reference MaterialTable provider."""
    name: str = "material"
    density: float = 1.0
    expansivity: float = 0.0
    compressibility: float = 0.0
    reference_temperature: float = 0.0
    viscosity: object = 1.0
    shear_modulus: float = math.inf
    bulk_modulus: float = math.inf
    cohesion: float = math.inf
    friction_angle: float = 0.0
    conductivity: float = 1.0
    heat_capacity: float = 1.0
    latent_heat: float = 0.0
    solidus: float = math.inf
    liquidus: float = math.inf
    shear_heating: float = 1.0


class MaterialTable(RheologyProvider):
    """
    Simple provider: constant properties per phase, a viscosity that is
    either constant or a callable
        viscosity(stress_invariant=..., pressure=..., temperature=..., **extra),
    a Drucker-Prager yield stress C cos(phi) + P sin(phi), density
    rho0 (1 - alpha (T - T0) + beta P) and a melt fraction that grows
    linearly between solidus and liquidus.
    """

    def __init__(self, materials):
        self.materials = list(materials)
        self.nphases = len(self.materials)
        if not self.materials:
            raise ConfigurationError("MaterialTable needs at least one material")

    def __repr__(self):
        return f"MaterialTable({[m.name for m in self.materials]})"

    def evaluate(self, stress_invariant, pressure, temperature, phase_mix, extra_args=None):
        extra_args = extra_args or {}
        shape = phase_mix.shape[1:]
        tII = np.broadcast_to(stress_invariant, shape)
        P = np.broadcast_to(pressure, shape)
        T = np.broadcast_to(temperature, shape)
        out = {}

        def stack(per_phase):
            return np.stack([np.broadcast_to(np.asarray(v, dtype=np.float64), shape) for v in per_phase])

        viscosity = []
        for m in self.materials:
            if callable(m.viscosity):
                viscosity.append(m.viscosity(stress_invariant=tII, pressure=P, temperature=T, **extra_args))
            else:
                viscosity.append(m.viscosity)
        out["viscosity"] = stack(viscosity)

        yield_stress = []
        for m in self.materials:
            if math.isinf(m.cohesion):
                yield_stress.append(math.inf)
            else:
                phi = math.radians(m.friction_angle)
                yield_stress.append(np.maximum(m.cohesion * math.cos(phi) + P * math.sin(phi), 0.0))
        out["yield_stress"] = stack(yield_stress)

        out["density"] = stack(
            m.density * (1.0 - m.expansivity * (T - m.reference_temperature) + m.compressibility * P)
            for m in self.materials
        )

        melt = []
        for m in self.materials:
            if math.isinf(m.solidus) or m.liquidus <= m.solidus:
                melt.append(0.0)
            else:
                melt.append(np.clip((T - m.solidus) / (m.liquidus - m.solidus), 0.0, 1.0))
        out["melt_fraction"] = stack(melt)

        for name in ("conductivity", "heat_capacity", "shear_modulus", "bulk_modulus",
                     "expansivity", "latent_heat", "shear_heating"):
            out[name] = stack(getattr(m, name) for m in self.materials)
        return out


@dataclass
class ViscosityDiagnostics:
    """Counters of effective viscosities clamped to the cutoff."""
    clamped_low: int = 0
    clamped_high: int = 0
    evaluations: int = 0

    def record(self, raw, lo, hi):
        self.clamped_low += int(np.count_nonzero(raw < lo))
        self.clamped_high += int(np.count_nonzero(raw > hi))
        self.evaluations += 1

    @property
    def clamped(self):
        return self.clamped_low + self.clamped_high


def phase_average(values, ratios, mode="arithmetic"):
    """
    Mix per-phase values (nphases, *shape) with the fractions (nphases, *shape).
    Phases with zero fraction never contribute, even if their value is
    infinite or zero.
    """
    present = ratios > 0.0
    with np.errstate(divide="ignore", invalid="ignore"):
        if mode == "arithmetic":
            return np.sum(np.where(present, ratios * values, 0.0), axis=0)
        if mode == "harmonic":
            return 1.0 / np.sum(np.where(present, ratios / values, 0.0), axis=0)
        if mode == "geometric":
            return np.exp(np.sum(np.where(present, ratios * np.log(values), 0.0), axis=0))
    raise ConfigurationError(f"unknown averaging mode {mode!r}")


def rheology_args(store, dt=math.inf, **extra):
    """State passed to the provider, taken from the field store."""
    args = {"tau_II": store.stokes.tau.II, "P": store.stokes.P, "dt": dt}
    if store.thermal is not None:
        args["T"] = store.thermal.Tc
    args.update(extra)
    return args


def _host(bk, value):
    if np.isscalar(value):
        return value
    return bk.to_host(value)


def evaluate_phases(bk, provider, ratios, args, temperature_shift=0.0):
    """Evaluate the provider on the host for the given fractions."""
    args = dict(args or {})
    tII = _host(bk, args.pop("tau_II", 0.0))
    P = _host(bk, args.pop("P", 0.0))
    T = _host(bk, args.pop("T", 0.0))
    extra = {k: _host(bk, v) for k, v in args.items()}
    if temperature_shift:
        T = T + temperature_shift
    if ratios.shape[0] != provider.nphases:
        raise ConfigurationError(
            f"phase ratios have {ratios.shape[0]} phases, provider has {provider.nphases}"
        )
    return provider.evaluate(tII, P, T, ratios, extra)


def _property(values, name):
    try:
        return values[name]
    except KeyError:
        raise ConfigurationError(f"rheology provider does not supply {name!r}") from None


def compute_property(bk, provider, phase_ratios, args, name, averaging="arithmetic"):
    """Phase-mixed value of one provider property at the cell centers."""
    values = evaluate_phases(bk, provider, phase_ratios.center, args)
    return bk.asarray(phase_average(_property(values, name), phase_ratios.center, averaging))


def compute_viscosity(bk, eta, provider, phase_ratios, args, cutoff=(-math.inf, math.inf),
                      averaging="arithmetic", relaxation=1.0, diagnostics=None):
    """
    Effective viscosity at the cell centers, mixed over the phases and
    clamped to `cutoff`. Out-of-range values are counted, never raised.
    With relaxation < 1 the update is relaxed in log space against the
    current content of `eta`.
    """
    diagnostics = diagnostics if diagnostics is not None else ViscosityDiagnostics()
    values = evaluate_phases(bk, provider, phase_ratios.center, args)
    raw = phase_average(_property(values, "viscosity"), phase_ratios.center, averaging)
    lo, hi = cutoff
    diagnostics.record(raw, lo, hi)
    new = np.clip(raw, lo, hi)
    if relaxation < 1.0:
        old = bk.to_host(eta)
        new = np.exp(relaxation * np.log(new) + (1.0 - relaxation) * np.log(old))
    bk.assign(eta, bk.asarray(new))
    return diagnostics


def compute_elastic_moduli(bk, provider, phase_ratios, args):
    """Shear and bulk moduli at the centers (harmonic mixing, inf when absent)."""
    values = evaluate_phases(bk, provider, phase_ratios.center, args)
    ratios = phase_ratios.center
    G = values.get("shear_modulus")
    K = values.get("bulk_modulus")
    G = phase_average(G, ratios, "harmonic") if G is not None else np.full(ratios.shape[1:], np.inf)
    K = phase_average(K, ratios, "harmonic") if K is not None else np.full(ratios.shape[1:], np.inf)
    return bk.asarray(G), bk.asarray(K)


def compute_yield_stress(bk, provider, phase_ratios, args):
    values = evaluate_phases(bk, provider, phase_ratios.center, args)
    return bk.asarray(phase_average(_property(values, "yield_stress"), phase_ratios.center))


def compute_viscosity_vep(bk, stokes, G, tau_y, dt, cutoff=(-math.inf, math.inf), diagnostics=None,
                          periodic=()):
    """
    Visco-elasto-plastic viscosity for one relaxation step.

    The effective strain rate includes the elastic memory of the previous
    step, eps_eff = eps + tau_o / (2 G dt). The visco-elastic viscosity
    eta_ve = 1 / (1/eta + 1/(G dt)) is capped where the trial stress
    2 eta_ve |eps_eff| exceeds the yield stress, then clamped to `cutoff`.
    Clamped points are only counted when `diagnostics` is given. Edge values
    wrap around the axes listed in `periodic`.
    """
    ndim = len(stokes.V)
    _Gdt = 1.0 / (G * dt)
    normal = [stokes.eps.normal[a] + 0.5 * stokes.tau_o.normal[a] * _Gdt for a in range(ndim)]
    shear = {}
    for (a, b), eps in stokes.eps.shear.items():
        _Gdt_e = center2edge(bk, _Gdt, (a, b), periodic)
        shear[(a, b)] = eps + 0.5 * stokes.tau_o.shear[(a, b)] * _Gdt_e
    eII = bk.maximum(second_invariant(bk, normal, shear), 1e-300)

    eta_ve = 1.0 / (1.0 / stokes.eta + _Gdt)
    tau_trial = 2.0 * eta_ve * eII
    eta_vep = bk.where(tau_trial > tau_y, tau_y / (2.0 * eII), eta_ve)

    lo, hi = cutoff
    if diagnostics is not None:
        diagnostics.record(bk.to_host(eta_vep), lo, hi)
    bk.assign(stokes.eta_vep, bk.clip(eta_vep, lo, hi))
    return diagnostics


def compute_rhog(bk, provider, phase_ratios, args, gravity):
    """Buoyancy force rho * g_a at the centers for each axis."""
    values = evaluate_phases(bk, provider, phase_ratios.center, args)
    rho = phase_average(_property(values, "density"), phase_ratios.center)
    return tuple(bk.asarray(rho * g) for g in gravity)


def compute_melt_fraction(bk, provider, phase_ratios, args):
    values = evaluate_phases(bk, provider, phase_ratios.center, args)
    return bk.asarray(phase_average(_property(values, "melt_fraction"), phase_ratios.center))


def compute_thermal_properties(bk, provider, phase_ratios, args, latent_heat=False, dT=1e-3):
    """
    Conductivity K and volumetric heat capacity rho*Cp at the centers. With
    latent heat the capacity becomes rho * (Cp + L dphi/dT), the melt
    fraction derivative taken by a forward difference of width dT.
    """
    ratios = phase_ratios.center
    values = evaluate_phases(bk, provider, ratios, args)
    K = phase_average(_property(values, "conductivity"), ratios)
    rho = _property(values, "density")
    Cp = _property(values, "heat_capacity")
    if latent_heat:
        shifted = evaluate_phases(bk, provider, ratios, args, temperature_shift=dT)
        dphi = (_property(shifted, "melt_fraction") - _property(values, "melt_fraction")) / dT
        Cp = Cp + _property(values, "latent_heat") * dphi
    rhoCp = phase_average(rho * Cp, ratios)
    return bk.asarray(K), bk.asarray(rhoCp)
