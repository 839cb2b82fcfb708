import logging
import os

import h5py
import matplotlib.pyplot as plt
import numpy as np

from pyPT import (
    FieldStore,
    SolverConfig,
    TemperatureBoundaryConditions,
    ThermalSolver,
    create_grid,
    get_backend,
    save_checkpoint,
)


def gaussian(X, Y, t, x0=0.5, y0=0.5, sigma0=0.05, kappa=1.0):
    """Free-space solution of the 2-D diffusion equation for a Gaussian pulse."""
    s2 = sigma0**2 + 2.0 * kappa * t
    return sigma0**2 / s2 * np.exp(-((X - x0) ** 2 + (Y - y0) ** 2) / (2.0 * s2))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    # --------------------------
    # Grid Setup
    # --------------------------
    ni = (64, 64)
    li = (1.0, 1.0)
    geometry = create_grid(ni, li)
    store = FieldStore(geometry, get_backend("numpy"))
    X, Y = geometry.center_mesh()

    # --------------------------
    # Fields Initialization
    # --------------------------
    store.thermal.Tc[...] = gaussian(X, Y, 0.0)
    bcs = TemperatureBoundaryConditions(fixed={"left": 0.0, "right": 0.0, "bot": 0.0, "top": 0.0})
    solver = ThermalSolver(store, bcs, SolverConfig(abs_tol=1e-9, norm="max", check_every=100))

    dt = 1e-4
    nt = 100
    vis_output_freq = 20
    directory_name = os.path.join("outputs", "thermal_diffusion")
    if not os.path.exists(directory_name):
        os.makedirs(directory_name)

    # --------------------------
    # Time loop
    # --------------------------
    errors = []
    for step in range(1, nt + 1):
        result = solver.solve(dt, K=1.0, rhoCp=1.0)
        err = np.max(np.abs(store.thermal.Tc - gaussian(X, Y, step * dt)))
        errors.append(err)
        if step % vis_output_freq == 0 or step == 1:
            print(
                f"[Step {step:05d}] t={step * dt:.2e}, "
                f"iterations={result.iterations}, "
                f"max T={np.max(store.thermal.Tc):.4f}, "
                f"max error={err:.2e}"
            )
            save_checkpoint(directory_name, store, time=step * dt)

    with h5py.File(os.path.join(directory_name, "errors.h5"), "w") as f:
        f.create_dataset("time", data=dt * np.arange(1, nt + 1))
        f.create_dataset("max_error", data=np.array(errors))

    fig, axes = plt.subplots(1, 2, figsize=(11, 5))
    cf = axes[0].contourf(X, Y, store.thermal.Tc, levels=50, cmap="inferno")
    axes[0].set_title(f"T at t={nt * dt:.2e}")
    axes[0].set_aspect("equal")
    fig.colorbar(cf, ax=axes[0])
    axes[1].semilogy(dt * np.arange(1, nt + 1), errors)
    axes[1].set_xlabel("t")
    axes[1].set_ylabel("max |T - T_exact|")
    fig.savefig(os.path.join(directory_name, "thermal_diffusion.png"), dpi=150)
    plt.close(fig)
