import logging

import numpy as np
import pytest

from pyPT.advection import WENO5, weno_advection, weno_z
from pyPT.boundary_conditions import TemperatureBoundaryConditions

PERIODIC_XY = dict(periodicity={"left": True, "right": True, "bot": True, "top": True})


def uniform_flow(store, vx, vy):
    store.stokes.V[0][...] = vx
    store.stokes.V[1][...] = vy


def test_weno_z_is_exact_for_linear_data():
    assert weno_z(0.0, 1.0, 2.0, 3.0, 4.0) == pytest.approx(2.5)
    assert weno_z(4.0, 3.0, 2.0, 1.0, 0.0) == pytest.approx(1.5)


def test_periodic_profile_is_translated(make_store):
    store = make_store((32, 32))
    X, Y = store.geometry.center_mesh()
    store.thermal.Tc[...] = np.sin(2.0 * np.pi * X) * np.sin(2.0 * np.pi * Y)
    uniform_flow(store, 1.0, 0.5)
    bcs = TemperatureBoundaryConditions(**PERIODIC_XY)

    dt, nt = 1.0 / 96.0, 24
    for _ in range(nt):
        weno_advection(store, bcs, dt)
    t = nt * dt
    exact = np.sin(2.0 * np.pi * (X - t)) * np.sin(2.0 * np.pi * (Y - 0.5 * t))
    assert np.max(np.abs(store.thermal.Tc - exact)) < 2e-3
    T = store.thermal.T
    assert np.array_equal(T[0], T[-2])
    assert np.array_equal(T[:, -1], T[:, 1])


def test_pulse_is_translated_without_new_extrema(make_store):
    store = make_store((128, 4))
    X, _ = store.geometry.center_mesh()
    store.thermal.Tc[...] = np.exp(-((X - 0.3) ** 2) / 0.005)
    uniform_flow(store, 1.0, 0.0)
    weno = WENO5()
    bcs = TemperatureBoundaryConditions()

    dx = store.geometry.di[0]
    dt, nt = 0.5 * dx, 64
    for _ in range(nt):
        weno.advect(store, bcs, dt)
    exact = np.exp(-((X - 0.3 - nt * dt) ** 2) / 0.005)
    Tc = store.thermal.Tc
    assert np.max(np.abs(Tc - exact)) < 1e-2
    assert Tc.max() < 1.0 + 1e-3
    assert Tc.min() > -1e-3


def test_large_courant_number_is_logged(make_store, caplog):
    store = make_store((8, 8))
    uniform_flow(store, 1.0, 0.0)
    with caplog.at_level(logging.WARNING, logger="pyPT.advection"):
        weno_advection(store, TemperatureBoundaryConditions(), 1.0)
    assert "Courant" in caplog.text
