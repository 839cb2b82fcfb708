# conftest.py

import numpy as np
import pytest

from pyPT.backends import NumpyBackend
from pyPT.fields import FieldStore
from pyPT.grid import Geometry


@pytest.fixture
def backend():
    return NumpyBackend()


@pytest.fixture
def make_store(backend):
    """Factory for field stores on a box starting at the origin."""

    def _make(ni, li=None, thermal=True, bk=None):
        li = li or (1.0,) * len(ni)
        return FieldStore(Geometry(ni, li), bk or backend, thermal=thermal)

    return _make


@pytest.fixture
def rng():
    return np.random.default_rng(42)
