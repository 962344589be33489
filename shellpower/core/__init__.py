from .exceptions import (
    BackendSetupError,
    ConvergenceError,
    PreconditionError,
    ShellPowerError,
)
from .models import ParameterModel

__all__ = [
    "ShellPowerError",
    "PreconditionError",
    "ConvergenceError",
    "BackendSetupError",
    "ParameterModel",
]
