# distributed.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Distributed-grid collaborator. The solvers only need two collective
# operations from it: a halo exchange that refreshes the ghost layers of
# one array, and a global reduction of a scalar. Process topology
# bootstrap stays with the caller.
#

import logging

import numpy as np

from .errors import HaloMismatch
from .stencils import along

logger = logging.getLogger(__name__)

REDUCTIONS = ("sum", "max", "min")


class DistributedGrid:
    """Interface of the distributed-grid collaborator."""

    serial = True
    rank = 0
    nprocs = 1

    def exchange(self, field):
        raise NotImplementedError

    def reduce(self, value, op):
        raise NotImplementedError

    def check(self, store):
        raise NotImplementedError


class LocalGrid(DistributedGrid):
    """Single subdomain: exchanges are no-ops and reductions are identities."""

    def exchange(self, field):
        return field

    def reduce(self, value, op):
        if op not in REDUCTIONS:
            raise ValueError(f"unknown reduction {op!r}")
        return value

    def check(self, store):
        store.check_extents()


def halo_overlap(shape, n_local, dim):
    """
    Number of layers shared with the neighbour along `dim`. Subdomains
    overlap by two cells; arrays that carry extra nodes (staggering or ghost
    layers) overlap by as many more.
    """
    return 2 + (shape[dim] - n_local[dim])


def halo_indices(shape, n_local, dim):
    """
    Index pairs of the overlap-2 halo convention along `dim`:

        lower ghost  A[0]  <- lower neighbour's A[-o]
        upper ghost  A[-1] <- upper neighbour's A[o - 1]

    Returns (send_up, recv_low, send_low, recv_up) as plain integers.
    """
    o = halo_overlap(shape, n_local, dim)
    return -o, 0, o - 1, -1


class MPIGrid(DistributedGrid):
    """
    Cartesian domain decomposition over mpi4py. `n_local` is the number of
    cells owned (including overlap) by this rank along each axis.
    """

    serial = False

    def __init__(self, n_local, dims=None, periods=None, comm=None):
        from mpi4py import MPI

        self.MPI = MPI
        comm = comm or MPI.COMM_WORLD
        ndim = len(n_local)
        self.n_local = tuple(int(n) for n in n_local)
        self.dims = MPI.Compute_dims(comm.Get_size(), list(dims or [0] * ndim))
        self.periods = list(periods or [False] * ndim)
        self.cart = comm.Create_cart(self.dims, periods=self.periods, reorder=False)
        self.rank = self.cart.Get_rank()
        self.nprocs = self.cart.Get_size()
        self.coords = self.cart.Get_coords(self.rank)
        self.neighbors = [self.cart.Shift(d, 1) for d in range(ndim)]
        self._ops = {"sum": MPI.SUM, "max": MPI.MAX, "min": MPI.MIN}
        logger.debug(f"rank {self.rank}: dims={self.dims} coords={self.coords}")

    def exchange(self, field):
        ndim = field.ndim
        for dim in range(ndim):
            if self.dims[dim] == 1:
                continue
            low, up = self.neighbors[dim]
            send_up, recv_low, send_low, recv_up = halo_indices(field.shape, self.n_local, dim)

            sendbuf = np.ascontiguousarray(field[along(ndim, dim, send_up)])
            recvbuf = np.empty_like(sendbuf)
            self.cart.Sendrecv(sendbuf, dest=up, recvbuf=recvbuf, source=low)
            if low != self.MPI.PROC_NULL:
                field[along(ndim, dim, recv_low)] = recvbuf

            sendbuf = np.ascontiguousarray(field[along(ndim, dim, send_low)])
            recvbuf = np.empty_like(sendbuf)
            self.cart.Sendrecv(sendbuf, dest=low, recvbuf=recvbuf, source=up)
            if up != self.MPI.PROC_NULL:
                field[along(ndim, dim, recv_up)] = recvbuf
        return field

    def reduce(self, value, op):
        return self.cart.allreduce(value, op=self._ops[op])

    def check(self, store):
        store.check_extents()
        ni = tuple(store.ni)
        if ni != self.n_local:
            raise HaloMismatch(f"rank {self.rank}: field store has {ni} cells, grid expects {self.n_local}")
        extents = self.cart.allgather(ni)
        for dim, pair in enumerate(self.neighbors):
            for neighbor in pair:
                if neighbor == self.MPI.PROC_NULL:
                    continue
                other = extents[neighbor]
                for e in range(len(ni)):
                    if e != dim and other[e] != ni[e]:
                        raise HaloMismatch(
                            f"rank {self.rank} ({ni}) and neighbour {neighbor} ({other}) "
                            f"disagree on the extent of axis {e}"
                        )
