# __init__.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# pyPT: pseudo-transient Stokes and heat-diffusion solvers on staggered grids.
#

from .advection import WENO5, weno_advection
from .backends import NumbaBackend, NumpyBackend, TorchBackend, get_backend
from .boundary_conditions import (
    DisplacementBoundaryConditions,
    FlowBoundaryConditions,
    TemperatureBoundaryConditions,
    flow_bcs,
    thermal_bcs,
)
from .checkpoint import load_checkpoint, save_checkpoint
from .config import SolverConfig, ThermalOptions
from .convergence import ConvergenceMonitor, ResidualState, SolveResult, SolveStatus
from .distributed import DistributedGrid, LocalGrid, MPIGrid
from .errors import ConfigurationError, HaloMismatch, NonConvergenceError, PTError
from .fields import FieldStore
from .grid import Geometry, create_grid
from .phases import PhaseRatio, marker_lattice, phase_ratios
from .pt_coeffs import PTStokesCoeffs, PTThermalCoeffs, update_thermal_coeffs
from .rheology import Material, MaterialTable, RheologyProvider, ViscosityDiagnostics
from .stokes import StokesSolver, compute_dt, solve_stokes
from .thermal import ThermalSolver, heatdiffusion_pt

__version__ = "0.1"
