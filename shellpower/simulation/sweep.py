"""Time-averaged simulation over a series of steps.

Each sample is an independent :class:`ArraySimulationStepInput`. Samples
can run on a thread pool; every worker thread owns its own rasterizer and
simulator. Results are always summed in sample order, so the averages do
not depend on the worker count.
"""

from __future__ import annotations

import csv
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional, Sequence, TextIO

from shellpower.layout.array_spec import ArraySpec
from shellpower.raster.rasterizer import IrradianceRasterizer

from .simulator import (
    ArraySimulationStepInput,
    ArraySimulationStepOutput,
    ArraySimulator,
)

logger = logging.getLogger(__name__)

CSV_HEADER = ("time_utc", "insolation_w", "output_w")
DEFAULT_STEP = timedelta(minutes=10)


@dataclass(frozen=True)
class SweepRow:
    timestamp: Optional[datetime]
    insolation_watts: float
    output_watts: float


@dataclass
class TimeAveragedResult:
    """Averages over the completed samples of a sweep."""

    array_area: float = 0.0
    array_lit_area: float = 0.0
    watts_insolation: float = 0.0
    watts_output_by_cell: float = 0.0
    watts_output: float = 0.0
    n_samples: int = 0
    cancelled: bool = False
    rows: list[SweepRow] = field(default_factory=list)


def sample_times(
    start: datetime, end: datetime, step: timedelta = DEFAULT_STEP
) -> Iterator[datetime]:
    """Timestamps from *start* to *end* inclusive, *step* apart."""
    if step <= timedelta(0):
        raise ValueError(f"step must be positive, got {step}")
    t = start
    while t <= end:
        yield t
        t += step


def run_time_averaged(
    array: ArraySpec,
    samples: Sequence[ArraySimulationStepInput],
    max_workers: int = 1,
    cancel: Optional[threading.Event] = None,
    progress_callback: Optional[Callable[[str, float], None]] = None,
    rasterizer_factory: Callable[[], IrradianceRasterizer] = IrradianceRasterizer,
) -> TimeAveragedResult:
    """Simulate every sample and average the results.

    Parameters
    ----------
    array : ArraySpec
        Array to simulate. Not modified.
    samples : sequence of ArraySimulationStepInput
        Steps, typically ten minutes apart (see :func:`sample_times`).
    max_workers : int
        Threads to spread samples over.
    cancel : threading.Event, optional
        Once set, samples that have not started are skipped. Completed
        samples are still averaged and the result is flagged cancelled.
    progress_callback : callable, optional
        ``callback(step: str, fraction: float)`` after each sample.
    rasterizer_factory : callable
        Builds one rasterizer per worker thread.
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")

    n_total = len(samples)
    local = threading.local()
    done_lock = threading.Lock()
    done = [0]

    def report(step: str, fraction: float) -> None:
        if progress_callback is not None:
            try:
                progress_callback(step, fraction)
            except Exception:
                logger.warning("Progress callback failed", exc_info=True)
        logger.debug("Sweep: %s (%.0f %%)", step, fraction * 100)

    def run_one(sample: ArraySimulationStepInput) -> Optional[ArraySimulationStepOutput]:
        if cancel is not None and cancel.is_set():
            return None
        simulator = getattr(local, "simulator", None)
        if simulator is None:
            simulator = local.simulator = ArraySimulator(rasterizer_factory())
        output = simulator.simulate_input(array, sample)
        with done_lock:
            done[0] += 1
            finished = done[0]
        report(f"Simulated {finished}/{n_total}", finished / n_total)
        return output

    if max_workers > 1 and n_total > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outputs = list(pool.map(run_one, samples))
    else:
        outputs = [run_one(s) for s in samples]

    result = TimeAveragedResult()
    for sample, output in zip(samples, outputs):
        if output is None:
            result.cancelled = True
            continue
        result.array_area = output.array_area
        result.array_lit_area += output.array_lit_area
        result.watts_insolation += output.watts_insolation
        result.watts_output_by_cell += output.watts_output_by_cell
        result.watts_output += output.watts_output
        result.n_samples += 1
        result.rows.append(
            SweepRow(sample.utc, output.watts_insolation, output.watts_output)
        )

    if result.n_samples:
        result.array_lit_area /= result.n_samples
        result.watts_insolation /= result.n_samples
        result.watts_output_by_cell /= result.n_samples
        result.watts_output /= result.n_samples

    logger.info(
        "Time-averaged sim: %d/%d samples, %.1f W in, %.1f W out%s",
        result.n_samples, n_total, result.watts_insolation, result.watts_output,
        " (cancelled)" if result.cancelled else "",
    )
    return result


def write_sweep_csv(rows: Sequence[SweepRow], fh: TextIO) -> None:
    """Write sweep rows as ``time_utc,insolation_w,output_w`` CSV."""
    writer = csv.writer(fh, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        stamp = row.timestamp.isoformat() if row.timestamp is not None else ""
        writer.writerow([stamp, repr(float(row.insolation_watts)), repr(float(row.output_watts))])
