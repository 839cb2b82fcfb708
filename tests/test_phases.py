import logging

import numpy as np
import pytest

from pyPT.grid import Geometry
from pyPT.phases import PhaseRatio, center2vertex_ratios, marker_lattice, phase_ratios


def two_phase_markers(geometry, per_cell=3):
    coords = marker_lattice(geometry, per_cell)
    phases = (coords[:, 0] > 0.5).astype(int)
    return coords, phases


def test_lattice_fills_every_cell():
    g = Geometry((4, 3), (1.0, 1.0))
    coords = marker_lattice(g, per_cell=2)
    assert coords.shape == (4 * 3 * 4, 2)
    assert coords[:, 0].min() > 0.0 and coords[:, 0].max() < 1.0


def test_ratios_sum_to_one():
    g = Geometry((8, 8), (1.0, 1.0))
    coords, phases = two_phase_markers(g)
    pr = phase_ratios(g, coords, phases, 2)
    assert pr.center.shape == (2, 8, 8)
    assert pr.vertex.shape == (2, 9, 9)
    assert np.allclose(pr.center.sum(axis=0), 1.0, atol=1e-10)
    assert np.allclose(pr.vertex.sum(axis=0), 1.0, atol=1e-10)
    assert np.all(pr.center >= 0.0) and np.all(pr.center <= 1.0)
    assert np.allclose(pr.center[0, :4], 1.0)
    assert np.allclose(pr.center[1, 4:], 1.0)


def test_random_markers_sum_to_one(rng):
    g = Geometry((6, 5), (2.0, 1.0))
    coords = rng.uniform((0.0, 0.0), (2.0, 1.0), size=(2000, 2))
    phases = rng.integers(0, 3, size=2000)
    pr = phase_ratios(g, coords, phases, 3)
    assert np.allclose(pr.center.sum(axis=0), 1.0, atol=1e-10)
    assert np.allclose(pr.vertex.sum(axis=0), 1.0, atol=1e-10)


def test_mixed_cell_fraction():
    g = Geometry((2, 2), (1.0, 1.0))
    coords = np.array([[0.1, 0.1], [0.2, 0.2], [0.3, 0.1], [0.4, 0.4], [0.9, 0.9]])
    phases = np.array([0, 1, 1, 1, 0])
    pr = phase_ratios(g, coords, phases, 2)
    assert np.allclose(pr.center[:, 0, 0], [0.25, 0.75])
    assert np.allclose(pr.center[:, 1, 1], [1.0, 0.0])


def test_empty_cell_takes_nearest_neighbour():
    g = Geometry((4, 4), (1.0, 1.0))
    coords, phases = two_phase_markers(g, per_cell=2)
    keep = ~((coords[:, 0] < 0.25) & (coords[:, 1] < 0.25))
    pr = phase_ratios(g, coords[keep], phases[keep], 2)
    assert np.allclose(pr.center[:, 0, 0], [1.0, 0.0])
    assert np.allclose(pr.center.sum(axis=0), 1.0, atol=1e-10)


def test_no_markers_inside_grid():
    g = Geometry((2, 2), (1.0, 1.0))
    with pytest.raises(ValueError):
        phase_ratios(g, np.empty((0, 2)), np.empty(0, dtype=int), 1)


def test_bad_labels():
    g = Geometry((2, 2), (1.0, 1.0))
    with pytest.raises(ValueError):
        phase_ratios(g, np.array([[0.5, 0.5]]), np.array([2]), 2)


def test_from_arrays_renormalises_with_warning(caplog):
    center = np.full((2, 3, 3), 0.5)
    center[0, 1, 1] = 0.7
    with caplog.at_level(logging.WARNING, logger="pyPT.phases"):
        pr = PhaseRatio.from_arrays(center, warn=1e-6)
    assert "renormalising" in caplog.text
    assert np.allclose(pr.center.sum(axis=0), 1.0, atol=1e-12)
    assert np.isclose(pr.center[0, 1, 1], 0.7 / 1.2)
    assert pr.vertex.shape == (2, 4, 4)


def test_small_deviation_is_silent(caplog):
    center = np.full((2, 3, 3), 0.5)
    center[0, 0, 0] += 1e-9
    with caplog.at_level(logging.WARNING, logger="pyPT.phases"):
        PhaseRatio.from_arrays(center, warn=1e-6)
    assert caplog.text == ""


def test_center2vertex_ratios_constant_field():
    center = np.zeros((2, 3, 4))
    center[1] = 1.0
    vertex = center2vertex_ratios(center)
    assert vertex.shape == (2, 4, 5)
    assert np.allclose(vertex[1], 1.0)


def test_dominant_phase():
    center = np.zeros((3, 2, 2))
    center[2] = 0.6
    center[0] = 0.4
    pr = PhaseRatio.from_arrays(center)
    assert np.all(pr.dominant() == 2)
