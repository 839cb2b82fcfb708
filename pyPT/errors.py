# errors.py
#
# Copyright (c) 2025 Saman Seifi, PhD
#
# Exception types raised by the pseudo-transient solvers. Only structural
# problems are raised; recoverable conditions are reported through return
# values and diagnostics.
#


class PTError(Exception):
    """Base class for all pyPT errors."""


class ConfigurationError(PTError, ValueError):
    pass


class HaloMismatch(PTError):
    """
    Grid topology is inconsistent between collaborating subdomains (or
    between a field store and the grid it is attached to). Always fatal.
    """


class NonConvergenceError(PTError):
    """
    Raised only on request, by SolveResult.raise_for_status(), for callers
    that want to abort on a non-converged solve.
    """

    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result
