# phases.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Conversion of material markers into per-cell and per-vertex phase
# fractions.
#

import logging

import numpy as np
from scipy.ndimage import distance_transform_edt

from .stencils import av

logger = logging.getLogger(__name__)


class PhaseRatio:
    """
    Volume fraction of each phase at the cell centers, shape (nphases, *ni),
    and at the vertices, shape (nphases, *(ni + 1)). Fractions are in [0, 1]
    and sum to one at every location.
    """

    def __init__(self, center, vertex):
        self.center = center
        self.vertex = vertex

    def __repr__(self):
        return f"PhaseRatio(nphases={self.nphases}, ni={self.center.shape[1:]})"

    @property
    def nphases(self):
        return self.center.shape[0]

    @classmethod
    def from_arrays(cls, center, vertex=None, warn=1e-6):
        """Wrap externally computed fractions, renormalising them if needed."""
        center = normalize_ratios(np.array(center, dtype=np.float64), warn, "center")
        if vertex is None:
            vertex = center2vertex_ratios(center)
        else:
            vertex = normalize_ratios(np.array(vertex, dtype=np.float64), warn, "vertex")
        return cls(center, vertex)

    def dominant(self, location="center"):
        """Index of the phase with the largest fraction."""
        return np.argmax(getattr(self, location), axis=0)


def normalize_ratios(ratios, warn=1e-6, location="center"):
    """
    Clamp fractions to [0, 1] and rescale them to sum to one. A correction
    larger than `warn` is reported as a warning and then applied anyway.
    """
    ratios = np.clip(ratios, 0.0, 1.0)
    total = ratios.sum(axis=0)
    correction = float(np.max(np.abs(total - 1.0)))
    if correction > warn:
        logger.warning(
            f"phase ratios at the {location}s deviate from unity by up to {correction:.3e}; renormalising"
        )
    return ratios / np.where(total > 0.0, total, 1.0)


def center2vertex_ratios(center):
    ndim = center.ndim - 1
    vertex = np.pad(center, [(0, 0)] + [(1, 1)] * ndim, mode="edge")
    for axis in range(1, ndim + 1):
        vertex = av(vertex, axis)
    return vertex


def _bin_markers(coords, phases, origin, di, nbins, nphases, nearest):
    ndim = len(nbins)
    index = []
    for d in range(ndim):
        s = (coords[:, d] - origin[d]) / di[d]
        i = np.rint(s) if nearest else np.floor(s)
        index.append(np.clip(i.astype(np.int64), 0, nbins[d] - 1))
    flat = np.ravel_multi_index(index, nbins)
    nflat = int(np.prod(nbins))
    key = phases.astype(np.int64) * nflat + flat
    counts = np.bincount(key, minlength=nphases * nflat)
    return counts.reshape((nphases,) + tuple(nbins)).astype(np.float64)


def _fill_empty(counts, location):
    """Empty bins take the counts of the nearest non-empty bin."""
    empty = counts.sum(axis=0) == 0
    if not empty.any():
        return counts
    if empty.all():
        raise ValueError(f"no markers fall inside the grid ({location}s)")
    logger.debug(f"{int(empty.sum())} empty {location} bins filled from nearest neighbours")
    nearest = distance_transform_edt(empty, return_distances=False, return_indices=True)
    return counts[(slice(None),) + tuple(nearest)]


def phase_ratios(geometry, coords, phases, nphases, warn=1e-6):
    """
    Phase fractions from markers. Each marker counts towards the cell that
    contains it and towards its nearest vertex.

    coords : (nmarkers, ndim) marker positions
    phases : (nmarkers,) integer phase labels in [0, nphases)
    """
    coords = np.asarray(coords, dtype=np.float64)
    phases = np.asarray(phases)
    if coords.ndim != 2 or coords.shape[1] != geometry.ndim:
        raise ValueError(f"marker coordinates must have shape (n, {geometry.ndim})")
    if phases.shape[0] != coords.shape[0]:
        raise ValueError("one phase label per marker is required")
    if phases.size and (phases.min() < 0 or phases.max() >= nphases):
        raise ValueError(f"phase labels must lie in [0, {nphases})")

    ni = geometry.ni
    center = _bin_markers(coords, phases, geometry.origin, geometry.di, ni, nphases, nearest=False)
    vertex = _bin_markers(coords, phases, geometry.origin, geometry.di,
                          tuple(n + 1 for n in ni), nphases, nearest=True)
    center = _fill_empty(center, "center")
    vertex = _fill_empty(vertex, "vertex")
    center = normalize_ratios(center / center.sum(axis=0), warn, "center")
    vertex = normalize_ratios(vertex / vertex.sum(axis=0), warn, "vertex")
    return PhaseRatio(center, vertex)


def marker_lattice(geometry, per_cell=4):
    """Regular lattice of `per_cell` markers per axis in every cell."""
    axes = []
    for o, d, n in zip(geometry.origin, geometry.di, geometry.ni):
        offsets = (np.arange(per_cell) + 0.5) / per_cell
        axes.append((o + d * (np.arange(n)[:, None] + offsets[None, :])).ravel())
    mesh = np.meshgrid(*axes, indexing="ij")
    return np.stack([m.ravel() for m in mesh], axis=1)
