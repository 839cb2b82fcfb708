# checkpoint.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Restart files. One HDF5 file per rank holding every field-store array,
# the phase ratios and the elapsed physical time, enough to resume the
# iteration from exactly the same state.
#

from dataclasses import dataclass
import logging
import os

import h5py
import numpy as np

from .errors import ConfigurationError, HaloMismatch
from .phases import PhaseRatio

logger = logging.getLogger(__name__)


def checkpoint_name(rank=None):
    return "checkpoint.h5" if rank is None else f"checkpoint{rank:04d}.h5"


@dataclass
class Checkpoint:
    time: float
    fields: dict
    phase_ratios: PhaseRatio = None
    ni: tuple = None
    li: tuple = None
    origin: tuple = None


def save_checkpoint(dst, store, phase_ratios=None, time=0.0, rank=None):
    """
    Write checkpoint.h5 (or checkpoint{rank:04d}.h5) into directory `dst`.
    The file is written under a temporary name and moved into place, so an
    interrupted write never replaces a good checkpoint.
    """
    if not os.path.exists(dst):
        os.makedirs(dst)
    path = os.path.join(dst, checkpoint_name(rank))
    tmp = path + ".tmp"
    bk = store.backend
    geometry = store.geometry

    with h5py.File(tmp, "w") as f:
        f.attrs["time"] = float(time)
        f.attrs["ni"] = np.asarray(geometry.ni)
        f.attrs["li"] = np.asarray(geometry.li)
        f.attrs["origin"] = np.asarray(geometry.origin)
        group = f.create_group("fields")
        for name, array in store.arrays().items():
            group.create_dataset(name, data=bk.to_host(array))
        if phase_ratios is not None:
            group = f.create_group("phase_ratios")
            group.create_dataset("center", data=phase_ratios.center)
            group.create_dataset("vertex", data=phase_ratios.vertex)
    os.replace(tmp, path)
    logger.debug(f"checkpoint written to {path} (t={time:.6e})")
    return path


def load_checkpoint(path, store=None):
    """
    Read a checkpoint. With `store`, every field array is restored in place
    (bit for bit); the store must have the resolution the file was written at.
    """
    with h5py.File(path, "r") as f:
        time = float(f.attrs["time"])
        ni = tuple(int(n) for n in f.attrs["ni"])
        li = tuple(float(l) for l in f.attrs["li"])
        origin = tuple(float(o) for o in f.attrs["origin"])
        fields = {name: ds[()] for name, ds in f["fields"].items()}
        phase_ratios = None
        if "phase_ratios" in f:
            phase_ratios = PhaseRatio(f["phase_ratios"]["center"][()], f["phase_ratios"]["vertex"][()])

    if store is not None:
        if tuple(store.ni) != ni:
            raise HaloMismatch(f"checkpoint {path} has {ni} cells, field store has {tuple(store.ni)}")
        bk = store.backend
        for name, array in store.arrays().items():
            if name not in fields:
                raise ConfigurationError(f"checkpoint {path} has no field {name!r}")
            bk.assign(array, bk.asarray(fields[name]))

    return Checkpoint(time, fields, phase_ratios, ni, li, origin)
