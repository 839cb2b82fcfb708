import os

import numpy as np
import pytest

from pyPT.checkpoint import checkpoint_name, load_checkpoint, save_checkpoint
from pyPT.errors import HaloMismatch
from pyPT.phases import PhaseRatio


def randomize(store, rng):
    for array in store.arrays().values():
        array[...] = rng.standard_normal(array.shape)


def test_checkpoint_names():
    assert checkpoint_name() == "checkpoint.h5"
    assert checkpoint_name(7) == "checkpoint0007.h5"


def test_restart_is_bit_identical(make_store, rng, tmp_path):
    store = make_store((6, 5), li=(1.2, 1.0))
    randomize(store, rng)
    pr = PhaseRatio.from_arrays(rng.random((3, 6, 5)))
    path = save_checkpoint(str(tmp_path / "out"), store, pr, time=12.5)
    assert os.path.basename(path) == "checkpoint.h5"
    assert not os.path.exists(path + ".tmp")

    restored = make_store((6, 5), li=(1.2, 1.0))
    ckpt = load_checkpoint(path, restored)
    assert ckpt.time == 12.5
    assert ckpt.ni == (6, 5)
    assert ckpt.li == (1.2, 1.0)
    for name, array in store.arrays().items():
        assert np.array_equal(restored.arrays()[name], array), name
    assert np.array_equal(ckpt.phase_ratios.center, pr.center)
    assert np.array_equal(ckpt.phase_ratios.vertex, pr.vertex)


def test_overwrite_keeps_latest(make_store, rng, tmp_path):
    store = make_store((4, 4), thermal=False)
    save_checkpoint(str(tmp_path), store, time=1.0, rank=3)
    randomize(store, rng)
    path = save_checkpoint(str(tmp_path), store, time=2.0, rank=3)
    assert path.endswith("checkpoint0003.h5")
    ckpt = load_checkpoint(path)
    assert ckpt.time == 2.0
    assert ckpt.phase_ratios is None
    assert np.array_equal(ckpt.fields["P"], store.stokes.P)


def test_resolution_mismatch(make_store, tmp_path):
    path = save_checkpoint(str(tmp_path), make_store((4, 4)))
    with pytest.raises(HaloMismatch):
        load_checkpoint(path, make_store((4, 6)))
