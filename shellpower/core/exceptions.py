"""Error taxonomy for the simulation core.

Hosts can tell apart three situations:

* :class:`PreconditionError` -- bad input, fix it and retry.
* :class:`ConvergenceError` -- a numeric edge case worth inspecting.
* :class:`BackendSetupError` -- this environment cannot run simulations.

Unlinked raster texels are not an error; they are logged as warnings and
reported on the step output.
"""

from __future__ import annotations


class ShellPowerError(Exception):
    """Base class for all simulation core errors."""


class PreconditionError(ShellPowerError, ValueError):
    """Invalid or inconsistent input. The operation produced no output."""


class ConvergenceError(ShellPowerError, ArithmeticError):
    """An iterative solve did not reach tolerance."""


class BackendSetupError(ShellPowerError, RuntimeError):
    """The rasterizer backend could not be initialised."""
