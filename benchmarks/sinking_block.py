import logging
import os

import matplotlib.pyplot as plt
import numpy as np

from pyPT import (
    FieldStore,
    FlowBoundaryConditions,
    Material,
    MaterialTable,
    PTStokesCoeffs,
    SolverConfig,
    StokesSolver,
    create_grid,
    get_backend,
    marker_lattice,
    phase_ratios,
    save_checkpoint,
)
from pyPT.rheology import compute_rhog
from pyPT.stencils import velocity2center


def init_block(geometry, x0, y0, half_width, per_cell=4):
    """Markers on a lattice, phase 1 inside the square block and 0 outside."""
    coords = marker_lattice(geometry, per_cell)
    inside = (np.abs(coords[:, 0] - x0) < half_width) & (np.abs(coords[:, 1] - y0) < half_width)
    return phase_ratios(geometry, coords, inside.astype(int), 2)


def plot_block(geometry, store, pr, path):
    X, Y = geometry.center_mesh()
    vy = velocity2center(store.stokes.V[1], 1)
    fig, axes = plt.subplots(1, 2, figsize=(11, 5))
    cf = axes[0].contourf(X, Y, vy, levels=50, cmap="RdBu_r")
    axes[0].contour(X, Y, pr.center[1], levels=[0.5], colors="k", linewidths=1.5)
    axes[0].set_title("Vy")
    fig.colorbar(cf, ax=axes[0])
    cf = axes[1].contourf(X, Y, store.stokes.tau.II, levels=50, cmap="viridis")
    axes[1].contour(X, Y, pr.center[1], levels=[0.5], colors="w", linewidths=1.5)
    axes[1].set_title("tau_II")
    fig.colorbar(cf, ax=axes[1])
    for ax in axes:
        ax.set_aspect("equal")
    fig.savefig(path, dpi=150)
    plt.close(fig)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    # --------------------------
    # Grid Setup
    # --------------------------
    ni = (96, 96)
    li = (1.0, 1.0)
    geometry = create_grid(ni, li)
    store = FieldStore(geometry, get_backend("numpy"), thermal=False)

    # --------------------------
    # Physical Properties
    # --------------------------
    eta_block = 1e3
    table = MaterialTable([
        Material(name="matrix", density=0.0, viscosity=1.0, shear_modulus=1.0),
        Material(name="block", density=1.0, viscosity=eta_block, shear_modulus=1.0),
    ])
    pr = init_block(geometry, 0.5, 0.5, 0.1)
    rhog = compute_rhog(store.backend, table, pr, {}, gravity=(0.0, -1.0))

    # --------------------------
    # Numerical Method Params
    # --------------------------
    coeffs = PTStokesCoeffs(li, geometry.di)
    config = SolverConfig(abs_tol=1e-10, rel_tol=1e-6, check_every=1000, max_iter=200_000,
                          viscosity_cutoff=(1.0, eta_block))
    solver = StokesSolver(store, coeffs, FlowBoundaryConditions(), config,
                          rheology=table, phase_ratios=pr)

    dt = 0.5
    nt = 10
    directory_name = os.path.join("outputs", "sinking_block")

    # --------------------------
    # Time loop: visco-elastic loading of the matrix
    # --------------------------
    for step in range(1, nt + 1):
        result = solver.solve(rhog, dt=dt)
        vy = velocity2center(store.stokes.V[1], 1)
        print(
            f"[Step {step:05d}] dt={dt:.2e}, "
            f"{result.status.name} in {result.iterations} iterations, "
            f"block vy={np.mean(vy[pr.center[1] > 0.5]):.4e}, "
            f"max tau_II={np.max(store.stokes.tau.II):.4f}, "
            f"clamped={result.diagnostics.clamped}"
        )
        save_checkpoint(directory_name, store, pr, time=step * dt)

    plot_block(geometry, store, pr, os.path.join(directory_name, "sinking_block.png"))
