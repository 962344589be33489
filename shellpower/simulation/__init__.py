from .simulator import (
    ArraySimulationStepInput,
    ArraySimulationStepOutput,
    ArraySimulator,
    StringSimulationOutput,
)
from .sweep import (
    SweepRow,
    TimeAveragedResult,
    run_time_averaged,
    sample_times,
    write_sweep_csv,
)

__all__ = [
    # simulator
    "ArraySimulator",
    "ArraySimulationStepInput",
    "ArraySimulationStepOutput",
    "StringSimulationOutput",
    # sweep
    "SweepRow",
    "TimeAveragedResult",
    "run_time_averaged",
    "sample_times",
    "write_sweep_csv",
]
