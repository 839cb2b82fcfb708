import numpy as np
import pytest

from pyPT.boundary_conditions import (
    DisplacementBoundaryConditions,
    FlowBoundaryConditions,
    TemperatureBoundaryConditions,
    flow_bcs,
    thermal_bcs,
)
from pyPT.errors import ConfigurationError
from pyPT.stencils import inner_index

FLOW_CASES = {
    "free_slip": dict(),
    "no_slip": dict(no_slip={"left": True, "right": True, "bot": True, "top": True}),
    "velocity": dict(velocity={"top": (1.0, 0.0), "left": (0.0, 0.5)}),
    "periodic": dict(periodicity={"left": True, "right": True}, no_slip={"bot": True, "top": True}),
}


def random_velocity(make_store, rng, ni):
    store = make_store(ni)
    for V in store.stokes.V:
        V[...] = rng.standard_normal(V.shape)
    return store


def interiors(V):
    ndim = len(V)
    return [Va[inner_index(ndim, range(ndim))].copy() for Va in V]


@pytest.mark.parametrize("case", sorted(FLOW_CASES))
def test_flow_bcs_idempotent_and_interior_untouched(case, make_store, rng):
    ni = (6, 5)
    store = random_velocity(make_store, rng, ni)
    bcs = FlowBoundaryConditions(**FLOW_CASES[case])
    before = interiors(store.stokes.V)
    flow_bcs(store.stokes, bcs, ni)
    once = [V.copy() for V in store.stokes.V]
    flow_bcs(store.stokes, bcs, ni)
    for a, V in enumerate(store.stokes.V):
        assert np.array_equal(V, once[a])
    for a, interior in enumerate(interiors(store.stokes.V)):
        assert np.array_equal(interior, before[a])


def test_flow_bcs_3d_idempotent(make_store, rng):
    ni = (4, 3, 5)
    store = random_velocity(make_store, rng, ni)
    bcs = FlowBoundaryConditions(no_slip={"front": True}, periodicity={"left": True, "right": True}, ndim=3)
    flow_bcs(store.stokes, bcs, ni)
    once = [V.copy() for V in store.stokes.V]
    flow_bcs(store.stokes, bcs, ni)
    for a, V in enumerate(store.stokes.V):
        assert np.array_equal(V, once[a])


def test_free_slip_rules(make_store, rng):
    ni = (4, 4)
    store = random_velocity(make_store, rng, ni)
    Vx, Vy = store.stokes.V
    flow_bcs(store.stokes, FlowBoundaryConditions(), ni)
    assert np.all(Vx[0] == 0.0) and np.all(Vx[-1] == 0.0)
    assert np.all(Vy[:, 0] == 0.0) and np.all(Vy[:, -1] == 0.0)
    assert np.array_equal(Vx[:, 0], Vx[:, 1])
    assert np.array_equal(Vy[-1], Vy[-2])


def test_no_slip_and_wall_velocity(make_store, rng):
    ni = (4, 4)
    store = random_velocity(make_store, rng, ni)
    Vx, Vy = store.stokes.V
    bcs = FlowBoundaryConditions(no_slip={"bot": True}, velocity={"top": (2.0, 0.0)})
    flow_bcs(store.stokes, bcs, ni)
    # the wall value is the mean of the ghost and the first interior node
    assert np.allclose(0.5 * (Vx[:, 0] + Vx[:, 1]), 0.0)
    assert np.allclose(0.5 * (Vx[:, -1] + Vx[:, -2]), 2.0)


def test_periodic_copies_opposite_layers(make_store, rng):
    ni = (6, 4)
    store = random_velocity(make_store, rng, ni)
    Vx, Vy = store.stokes.V
    flow_bcs(store.stokes, FlowBoundaryConditions(periodicity={"left": True, "right": True}), ni)
    # first and last x-face are the same face
    assert np.array_equal(Vx[-1], Vx[0])
    assert np.array_equal(Vy[0], Vy[-2])
    assert np.array_equal(Vy[-1], Vy[1])


def test_periodic_temperature_ghosts_follow_the_box_period(make_store):
    ni = (8, 4)
    store = make_store(ni)
    dx = store.geometry.di[0]
    X, _ = store.geometry.center_mesh()
    store.thermal.Tc[...] = np.sin(2.0 * np.pi * X)
    thermal_bcs(store.thermal, TemperatureBoundaryConditions(periodicity={"left": True, "right": True}), ni)
    T = store.thermal.T
    assert np.allclose(T[0, 1:-1], np.sin(2.0 * np.pi * -0.5 * dx))
    assert np.allclose(T[-1, 1:-1], np.sin(2.0 * np.pi * (1.0 + 0.5 * dx)))


@pytest.mark.parametrize("options", [
    dict(no_slip={"top": True}, velocity={"top": (1.0, 0.0)}),
    dict(periodicity={"left": True}),
    dict(periodicity={"left": True, "right": True}, no_slip={"left": True}),
    dict(velocity={"top": (1.0,)}),
    dict(no_slip={"front": True}),
])
def test_conflicting_flow_bcs(options):
    with pytest.raises(ConfigurationError):
        FlowBoundaryConditions(**options)


def test_displacement_bcs_need_timestep(make_store, rng):
    ni = (4, 4)
    store = random_velocity(make_store, rng, ni)
    bcs = DisplacementBoundaryConditions(velocity={"top": (0.2, 0.0)})
    with pytest.raises(ConfigurationError):
        flow_bcs(store.stokes, bcs, ni)
    flow_bcs(store.stokes, bcs, ni, dt=0.5)
    Vx, Ux = store.stokes.V[0], store.stokes.U[0]
    assert np.allclose(Ux, 0.5 * Vx)
    assert np.allclose(0.5 * (Ux[:, -1] + Ux[:, -2]), 0.2)


@pytest.mark.parametrize("bcs", [
    TemperatureBoundaryConditions(),
    TemperatureBoundaryConditions(fixed={"bot": 1.0, "top": 0.0}),
    TemperatureBoundaryConditions(fixed={"left": 2.0}, periodicity={"bot": True, "top": True}),
])
def test_temperature_bcs_idempotent(bcs, make_store, rng):
    ni = (5, 4)
    store = make_store(ni)
    T = store.thermal.T
    T[...] = rng.standard_normal(T.shape)
    interior = store.thermal.Tc.copy()
    thermal_bcs(store.thermal, bcs, ni)
    once = T.copy()
    thermal_bcs(store.thermal, bcs, ni)
    assert np.array_equal(T, once)
    assert np.array_equal(store.thermal.Tc, interior)


def test_fixed_temperature_value(make_store, rng):
    ni = (4, 4)
    store = make_store(ni)
    T = store.thermal.T
    T[...] = rng.standard_normal(T.shape)
    thermal_bcs(store.thermal, TemperatureBoundaryConditions(fixed={"bot": 1.0}), ni)
    assert np.allclose(0.5 * (T[1:-1, 0] + T[1:-1, 1]), 1.0)
    assert np.array_equal(T[:, -1], T[:, -2])


def test_conflicting_temperature_bcs():
    with pytest.raises(ConfigurationError):
        TemperatureBoundaryConditions(no_flux={"top": True}, fixed={"top": 0.0})
    with pytest.raises(ConfigurationError):
        TemperatureBoundaryConditions(fixed={"back": 0.0})
