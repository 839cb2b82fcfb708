import math

import numpy as np
import pytest

from pyPT.errors import ConfigurationError
from pyPT.phases import PhaseRatio
from pyPT.rheology import (
    Material,
    MaterialTable,
    ViscosityDiagnostics,
    compute_elastic_moduli,
    compute_melt_fraction,
    compute_rhog,
    compute_thermal_properties,
    compute_viscosity,
    compute_viscosity_vep,
    compute_yield_stress,
    phase_average,
)


def uniform_ratios(ni, fractions):
    center = np.stack([np.full(ni, f) for f in fractions])
    return PhaseRatio.from_arrays(center)


@pytest.mark.parametrize("mode, expected", [
    ("arithmetic", 50.5),
    ("harmonic", 1.0 / (0.5 + 0.005)),
    ("geometric", 10.0),
])
def test_phase_average(mode, expected):
    values = np.array([np.ones((2, 2)), np.full((2, 2), 100.0)])
    ratios = np.full((2, 2, 2), 0.5)
    assert np.allclose(phase_average(values, ratios, mode), expected)


def test_absent_phase_does_not_contribute():
    values = np.array([np.full((2, 2), 3.0), np.full((2, 2), np.inf)])
    ratios = np.array([np.ones((2, 2)), np.zeros((2, 2))])
    for mode in ("arithmetic", "harmonic", "geometric"):
        assert np.allclose(phase_average(values, ratios, mode), 3.0)


def test_unknown_averaging():
    with pytest.raises(ConfigurationError):
        phase_average(np.ones((1, 2)), np.ones((1, 2)), "median")


def test_viscosity_clamped_and_counted(backend):
    table = MaterialTable([Material(viscosity=1e-3), Material(viscosity=1e5)])
    center = np.zeros((2, 4, 4))
    center[0, :2] = 1.0
    center[1, 2:] = 1.0
    pr = PhaseRatio.from_arrays(center)
    eta = backend.full((4, 4), 1.0)
    diag = compute_viscosity(backend, eta, table, pr, {}, cutoff=(1e-2, 1e4))
    assert isinstance(diag, ViscosityDiagnostics)
    assert np.allclose(eta[:2], 1e-2)
    assert np.allclose(eta[2:], 1e4)
    assert diag.clamped_low == 8
    assert diag.clamped_high == 8
    assert diag.clamped == 16


def test_viscosity_relaxation_in_log_space(backend):
    table = MaterialTable([Material(viscosity=100.0)])
    pr = uniform_ratios((3, 3), [1.0])
    eta = backend.full((3, 3), 1.0)
    compute_viscosity(backend, eta, table, pr, {}, relaxation=0.5)
    assert np.allclose(eta, 10.0)


def test_callable_viscosity_sees_state(backend):
    def power_law(stress_invariant, pressure, temperature, **extra):
        return 1.0 + temperature

    table = MaterialTable([Material(viscosity=power_law)])
    pr = uniform_ratios((2, 3), [1.0])
    eta = backend.zeros((2, 3))
    T = np.arange(6.0).reshape(2, 3)
    compute_viscosity(backend, eta, table, pr, {"T": T})
    assert np.allclose(eta, 1.0 + T)


def test_phase_count_mismatch(backend):
    table = MaterialTable([Material()])
    pr = uniform_ratios((2, 2), [0.5, 0.5])
    with pytest.raises(ConfigurationError):
        compute_viscosity(backend, backend.zeros((2, 2)), table, pr, {})


def test_drucker_prager_yield_stress(backend):
    table = MaterialTable([Material(cohesion=2.0, friction_angle=30.0), Material()])
    pr = uniform_ratios((2, 2), [1.0, 0.0])
    P = np.full((2, 2), 4.0)
    tau_y = compute_yield_stress(backend, table, pr, {"P": P})
    assert np.allclose(tau_y, 2.0 * math.cos(math.radians(30.0)) + 4.0 * 0.5)


def vep_store(make_store, eta=1.0):
    store = make_store((4, 4), thermal=False)
    st = store.stokes
    st.eps.normal[0][...] = 1.0
    st.eps.normal[1][...] = -1.0
    st.eta[...] = eta
    return store


def test_vep_viscous_limit(backend, make_store):
    st = vep_store(make_store).stokes
    G = backend.full((4, 4), np.inf)
    compute_viscosity_vep(backend, st, G, backend.full((4, 4), np.inf), np.inf)
    assert np.allclose(st.eta_vep, 1.0)


def test_vep_elastic(backend, make_store):
    st = vep_store(make_store).stokes
    G = backend.full((4, 4), 1.0)
    compute_viscosity_vep(backend, st, G, backend.full((4, 4), np.inf), 1.0)
    assert np.allclose(st.eta_vep, 0.5)


def test_vep_yield_cap(backend, make_store):
    st = vep_store(make_store).stokes
    G = backend.full((4, 4), np.inf)
    diag = ViscosityDiagnostics()
    compute_viscosity_vep(backend, st, G, backend.full((4, 4), 0.5), np.inf, diagnostics=diag)
    # second invariant of the strain rate is 1, so tau = 2 eta_vep = tau_y
    assert np.allclose(st.eta_vep, 0.25)
    assert diag.evaluations == 1


def test_vep_cutoff(backend, make_store):
    st = vep_store(make_store).stokes
    G = backend.full((4, 4), np.inf)
    compute_viscosity_vep(backend, st, G, backend.full((4, 4), 0.5), np.inf, cutoff=(0.3, 10.0))
    assert np.allclose(st.eta_vep, 0.3)


def test_rhog_from_density(backend):
    table = MaterialTable([Material(density=2.0), Material(density=4.0)])
    pr = uniform_ratios((3, 2), [0.5, 0.5])
    rhogx, rhogy = compute_rhog(backend, table, pr, {}, gravity=(0.0, -10.0))
    assert np.allclose(rhogx, 0.0)
    assert np.allclose(rhogy, -30.0)


def test_thermal_expansion_lowers_density(backend):
    table = MaterialTable([Material(density=1.0, expansivity=0.1)])
    pr = uniform_ratios((2, 2), [1.0])
    _, rhogy = compute_rhog(backend, table, pr, {"T": np.full((2, 2), 1.0)}, gravity=(0.0, -1.0))
    assert np.allclose(rhogy, -0.9)


def test_elastic_moduli_default_infinite(backend):
    table = MaterialTable([Material(), Material(shear_modulus=2.0)])
    pr = uniform_ratios((2, 2), [1.0, 0.0])
    G, K = compute_elastic_moduli(backend, table, pr, {})
    assert np.all(np.isinf(G))
    assert np.all(np.isinf(K))


def test_thermal_properties_with_latent_heat(backend):
    table = MaterialTable([Material(density=1.0, heat_capacity=1.0, conductivity=3.0,
                                    latent_heat=1.0, solidus=0.0, liquidus=1.0)])
    pr = uniform_ratios((2, 2), [1.0])
    args = {"T": np.full((2, 2), 0.5)}
    K, rhoCp = compute_thermal_properties(backend, table, pr, args)
    assert np.allclose(K, 3.0)
    assert np.allclose(rhoCp, 1.0)
    _, rhoCp = compute_thermal_properties(backend, table, pr, args, latent_heat=True)
    assert np.allclose(rhoCp, 2.0)
    assert np.allclose(compute_melt_fraction(backend, table, pr, args), 0.5)
