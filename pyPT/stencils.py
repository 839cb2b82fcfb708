# stencils.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Dimension-agnostic finite-difference operators on the staggered grid.
# They only use basic slicing and arithmetic, so they work unchanged on
# numpy arrays and torch tensors.
#


def along(ndim, axis, sl):
    index = [slice(None)] * ndim
    index[axis] = sl
    return tuple(index)


def others(ndim, axis, *skip):
    return tuple(b for b in range(ndim) if b != axis and b not in skip)


def shear_pairs(ndim):
    return [(a, b) for a in range(ndim) for b in range(a + 1, ndim)]


def d(a, axis, h=1.0):
    """Forward difference along `axis` divided by h (one entry shorter)."""
    nd = a.ndim
    return (a[along(nd, axis, slice(1, None))] - a[along(nd, axis, slice(None, -1))]) / h


def av(a, axis):
    """Two-point average along `axis` (one entry shorter)."""
    nd = a.ndim
    return 0.5 * (a[along(nd, axis, slice(1, None))] + a[along(nd, axis, slice(None, -1))])


def av_axes(a, axes):
    for axis in axes:
        a = av(a, axis)
    return a


def inner(a, axes):
    """Drop the first and last entry along every axis in `axes`."""
    index = [slice(None)] * a.ndim
    for axis in axes:
        index[axis] = slice(1, -1)
    return a[tuple(index)]


def inner_index(ndim, axes):
    index = [slice(None)] * ndim
    for axis in axes:
        index[axis] = slice(1, -1)
    return tuple(index)


def pad_edge(bk, a, axes, periodic=()):
    """
    Replicate the boundary layer once on each side along `axes`, or wrap the
    opposite layer around along the axes listed in `periodic`.
    """
    for axis in axes:
        nd = a.ndim
        low = a[along(nd, axis, slice(0, 1))]
        high = a[along(nd, axis, slice(-1, None))]
        if axis in periodic:
            low, high = high, low
        a = bk.concatenate([low, a, high], axis)
    return a


def center2edge(bk, a, axes, periodic=()):
    """
    Interpolate a cell-centered array to the nodes staggered along `axes`
    (vertices in 2-D when axes=(0, 1)); boundary nodes take the mean of the
    adjacent cells only, or of the cells on both sides of a periodic seam.
    """
    return av_axes(pad_edge(bk, a, axes, periodic), axes)


def edge2center(a, axes):
    return av_axes(a, axes)


def center2vertex(bk, a):
    return center2edge(bk, a, tuple(range(a.ndim)))


def vertex2center(a):
    return av_axes(a, tuple(range(a.ndim)))


def velocity2center(V, axis):
    """Face velocity along `axis` averaged to the cell centers (ghosts dropped)."""
    return inner(av(V, axis), others(V.ndim, axis))


def velocity2vertex(V, axis):
    """Face velocity along `axis` averaged to the cell vertices."""
    return av_axes(V, others(V.ndim, axis))


def second_invariant(bk, normal, shear):
    """
    Second invariant sqrt(0.5 A_ij A_ij) at the cell centers from the normal
    components (centers) and the shear components {(a, b): edge array}.
    """
    acc = 0.0
    for component in normal:
        acc = acc + 0.5 * component * component
    for (a, b), component in shear.items():
        c = edge2center(component, (a, b))
        acc = acc + c * c
    return bk.sqrt(acc)
