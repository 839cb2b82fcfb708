# grid.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Regular staggered grid geometry in 2-D or 3-D.
#

import numpy as np

from .errors import ConfigurationError

AXES = "xyz"


class Geometry:
    """
    Regular grid of `ni` cells covering a box of size `li` starting at
    `origin`. Axis d of every array runs along coordinate d.

    xci : cell-center coordinates per axis (length ni[d])
    xvi : vertex coordinates per axis (length ni[d] + 1)
    """

    def __init__(self, ni, li, origin=None):
        ni = tuple(int(n) for n in ni)
        li = tuple(float(l) for l in li)
        if len(ni) not in (2, 3) or len(li) != len(ni):
            raise ConfigurationError(f"expected 2-D or 3-D grid, got ni={ni}, li={li}")
        if min(ni) < 2:
            raise ConfigurationError(f"need at least two cells per axis, got {ni}")
        if origin is None:
            origin = (0.0,) * len(ni)
        self.ni = ni
        self.li = li
        self.origin = tuple(float(o) for o in origin)
        self.ndim = len(ni)
        self.di = tuple(l / n for l, n in zip(li, ni))
        self.xvi = tuple(
            np.linspace(o, o + l, n + 1) for o, l, n in zip(self.origin, li, ni)
        )
        self.xci = tuple(0.5 * (xv[1:] + xv[:-1]) for xv in self.xvi)

    def __repr__(self):
        return f"Geometry(ni={self.ni}, li={self.li}, origin={self.origin})"

    @property
    def ncells(self):
        return int(np.prod(self.ni))

    def center_mesh(self):
        return np.meshgrid(*self.xci, indexing="ij")

    def vertex_mesh(self):
        return np.meshgrid(*self.xvi, indexing="ij")


def create_grid(ni, li, origin=None):
    return Geometry(ni, li, origin)
