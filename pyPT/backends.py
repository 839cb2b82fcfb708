# backends.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Execution backends. Every component receives a backend object at
# construction and issues all of its array allocation, stencil kernels,
# reductions and halo exchanges through it, so that swapping the backend
# switches between serial numpy, threaded CPU (numba) and accelerator
# (torch) execution without touching solver logic.
#

import logging

import numpy as np
from scipy.ndimage import maximum_filter

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Kernel:
    """
    A stencil kernel written once against the backend array operations.

    The generic body is called as func(bk, ni, *args, **kwargs) where ni is
    the number of cells per axis (the index range the kernel covers).
    Backends can register compiled specializations per dimensionality with
    `specialize`; those are called as spec(ni, *args, **kwargs).
    """

    def __init__(self, func):
        self.func = func
        self.name = func.__name__
        self.__doc__ = func.__doc__
        self.specializations = {}

    def __repr__(self):
        return f"<Kernel {self.name}>"

    def specialize(self, backend_name, ndim):
        def register(spec):
            self.specializations[(backend_name, ndim)] = spec
            return spec
        return register


def kernel(func):
    return Kernel(func)


class ComputeBackend:
    """Interface shared by all backends. Arrays default to float64."""

    name = None

    def __repr__(self):
        return f"{type(self).__name__}()"

    # ---- dispatch --------------------------------------------------------
    def launch(self, kern, ni, *args, **kwargs):
        spec = kern.specializations.get((self.name, len(ni)))
        if spec is not None:
            return spec(ni, *args, **kwargs)
        return kern.func(self, ni, *args, **kwargs)

    def exchange(self, grid, *fields):
        """Refresh the ghost layers of `fields` through the grid collaborator."""
        if grid is None or grid.serial:
            return
        for field in fields:
            grid.exchange(field)

    def synchronize(self):
        pass


class NumpyBackend(ComputeBackend):
    """Serial reference backend on host numpy arrays."""

    name = "numpy"

    def __init__(self, dtype=np.float64):
        self.dtype = dtype

    # ---- allocation and transfer -------------------------------------------
    def zeros(self, shape):
        return np.zeros(shape, dtype=self.dtype)

    def full(self, shape, value):
        return np.full(shape, value, dtype=self.dtype)

    def asarray(self, a):
        return np.asarray(a, dtype=self.dtype)

    def to_host(self, a):
        return np.asarray(a)

    def copy(self, a):
        return a.copy()

    def assign(self, dst, src):
        dst[...] = src

    # ---- elementwise -----------------------------------------------------
    def maximum(self, a, b):
        return np.maximum(a, b)

    def minimum(self, a, b):
        return np.minimum(a, b)

    def clip(self, a, lo, hi):
        return np.clip(a, lo, hi)

    def sqrt(self, a):
        return np.sqrt(a)

    def exp(self, a):
        return np.exp(a)

    def log(self, a):
        return np.log(a)

    def abs(self, a):
        return np.abs(a)

    def where(self, cond, a, b):
        return np.where(cond, a, b)

    def concatenate(self, arrays, axis):
        return np.concatenate(arrays, axis=axis)

    def maxloc(self, a):
        """Local maximum over the 3^ndim neighbourhood, edges replicated."""
        return maximum_filter(a, size=3, mode="nearest")

    # ---- reductions (local to this subdomain) --------------------------------
    def amax(self, a):
        return float(np.max(a))

    def amin(self, a):
        return float(np.min(a))

    def amax_abs(self, a):
        return float(np.max(np.abs(a)))

    def sum_squares(self, a):
        return float(np.sum(a * a))

    def size(self, a):
        return int(a.size)

    def all_finite(self, a):
        return bool(np.all(np.isfinite(a)))


class NumbaBackend(NumpyBackend):
    """
    Threaded CPU backend. Kernels with a registered numba specialization run
    as @njit(parallel=True) loops over the cell range; the rest fall back to
    the vectorised numpy body.
    """

    name = "numba"

    def __init__(self, dtype=np.float64, num_threads=None):
        super().__init__(dtype)
        import numba

        # registers the compiled specializations on the generic kernels
        from . import kernels_numba  # noqa: F401

        if num_threads is not None:
            numba.set_num_threads(num_threads)
        self.num_threads = numba.get_num_threads()
        logger.debug(f"numba backend using {self.num_threads} threads")

    def __repr__(self):
        return f"NumbaBackend(num_threads={self.num_threads})"


class TorchBackend(ComputeBackend):
    """
    Accelerator backend: fields live as torch tensors on `device` and the
    generic kernels run as tensor expressions on that device.
    """

    name = "torch"

    def __init__(self, device="cuda", dtype=None):
        import torch
        import torch.nn.functional as F

        self.torch = torch
        self.F = F
        self.device = torch.device(device)
        self.dtype = dtype or torch.float64

    def __repr__(self):
        return f"TorchBackend(device={str(self.device)!r})"

    def zeros(self, shape):
        return self.torch.zeros(tuple(shape), dtype=self.dtype, device=self.device)

    def full(self, shape, value):
        return self.torch.full(tuple(shape), float(value), dtype=self.dtype, device=self.device)

    def asarray(self, a):
        if isinstance(a, self.torch.Tensor):
            return a.to(device=self.device, dtype=self.dtype)
        return self.torch.as_tensor(np.asarray(a), dtype=self.dtype, device=self.device)

    def to_host(self, a):
        if isinstance(a, self.torch.Tensor):
            return a.detach().cpu().numpy()
        return np.asarray(a)

    def copy(self, a):
        return a.clone()

    def assign(self, dst, src):
        if isinstance(src, self.torch.Tensor):
            dst.copy_(src)
        else:
            dst.fill_(float(src))

    def _tensor(self, b, like):
        if isinstance(b, self.torch.Tensor):
            return b
        return self.torch.as_tensor(b, dtype=like.dtype, device=like.device)

    def maximum(self, a, b):
        return self.torch.maximum(a, self._tensor(b, a))

    def minimum(self, a, b):
        return self.torch.minimum(a, self._tensor(b, a))

    def clip(self, a, lo, hi):
        return self.torch.clamp(a, min=float(lo), max=float(hi))

    def sqrt(self, a):
        return self.torch.sqrt(a)

    def exp(self, a):
        return self.torch.exp(a)

    def log(self, a):
        return self.torch.log(a)

    def abs(self, a):
        return self.torch.abs(a)

    def where(self, cond, a, b):
        like = a if isinstance(a, self.torch.Tensor) else b
        return self.torch.where(cond, self._tensor(a, like), self._tensor(b, like))

    def concatenate(self, arrays, axis):
        return self.torch.cat(list(arrays), dim=axis)

    def maxloc(self, a):
        x = a[None, None]
        if a.ndim == 2:
            x = self.F.pad(x, (1, 1, 1, 1), mode="replicate")
            return self.F.max_pool2d(x, kernel_size=3, stride=1)[0, 0]
        x = self.F.pad(x, (1, 1, 1, 1, 1, 1), mode="replicate")
        return self.F.max_pool3d(x, kernel_size=3, stride=1)[0, 0]

    def amax(self, a):
        return float(a.max())

    def amin(self, a):
        return float(a.min())

    def amax_abs(self, a):
        return float(a.abs().max())

    def sum_squares(self, a):
        return float((a * a).sum())

    def size(self, a):
        return int(a.numel())

    def all_finite(self, a):
        return bool(self.torch.isfinite(a).all())

    def exchange(self, grid, *fields):
        if grid is None or grid.serial:
            return
        for field in fields:
            host = self.to_host(field)
            grid.exchange(host)
            field.copy_(self.torch.as_tensor(host, dtype=field.dtype, device=field.device))

    def synchronize(self):
        if self.device.type == "cuda":
            self.torch.cuda.synchronize(self.device)


BACKENDS = {
    "numpy": NumpyBackend,
    "numba": NumbaBackend,
    "torch": TorchBackend,
}


def get_backend(name="numpy", **options):
    """Build the backend selected by configuration, e.g. get_backend("torch", device="cuda")."""
    try:
        cls = BACKENDS[name]
    except KeyError:
        raise ConfigurationError(f"unknown backend {name!r}, expected one of {sorted(BACKENDS)}") from None
    return cls(**options)
