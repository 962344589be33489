"""
Series string IV curve under partial shading.

Cells in series share one current. A cell asked to carry more than its
short-circuit current is driven into reverse bias; a bypass diode across
a run of cells stops that run's voltage from dropping below the diode's
forward drop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
from numpy.typing import NDArray
from pydantic import Field

from shellpower.config import settings
from shellpower.core.exceptions import PreconditionError
from shellpower.core.models import ParameterModel

from .iv_trace import IVTrace

if TYPE_CHECKING:
    from shellpower.layout.array_spec import BypassDiode

logger = logging.getLogger(__name__)


class DiodeSpec(ParameterModel):
    """Bypass diode parameters shared by every diode in the array."""

    model_config = {"frozen": True}

    voltage_drop: float = Field(default=0.35, ge=0, le=10)  # V


def calc_string_iv(
    cell_traces: Sequence[IVTrace],
    bypass_diodes: Sequence[BypassDiode],
    diode_spec: DiodeSpec,
    samples_per_segment: Optional[int] = None,
    reverse_bias_voltage: Optional[float] = None,
) -> IVTrace:
    """Combine per-cell IV curves into the curve of a series string.

    Parameters
    ----------
    cell_traces : sequence of IVTrace
        One curve per cell, in wiring order.
    bypass_diodes : sequence of BypassDiode
        Diodes by inclusive cell-index range. Ranges may not overlap.
    diode_spec : DiodeSpec
        Forward drop of every diode.
    samples_per_segment : int, optional
        Currents sampled between consecutive cell Isc values;
        ``settings.string_samples_per_segment`` by default.
    reverse_bias_voltage : float, optional
        Magnitude of the voltage across a current-starved cell;
        ``settings.reverse_bias_voltage`` by default.

    Returns
    -------
    IVTrace
        String curve from V = 0 to the summed open-circuit voltage. An
        empty string gives an all-zero trace.
    """
    samples_per_segment = (
        settings.string_samples_per_segment if samples_per_segment is None else samples_per_segment
    )
    reverse_bias_voltage = (
        settings.reverse_bias_voltage if reverse_bias_voltage is None else reverse_bias_voltage
    )

    n_cells = len(cell_traces)
    runs = _diode_runs(bypass_diodes, n_cells)
    if n_cells == 0:
        return IVTrace.empty()

    # Shared string current, ascending.
    iscs = np.array([t.isc for t in cell_traces])
    breakpoints = np.unique(np.concatenate([[0.0], iscs]))
    segments = [
        np.linspace(lo, hi, samples_per_segment, endpoint=False)
        for lo, hi in zip(breakpoints[:-1], breakpoints[1:])
    ]
    currents = np.concatenate(segments + [breakpoints[-1:]])

    cell_volts = np.empty((n_cells, currents.size))
    for k, trace in enumerate(cell_traces):
        v = np.interp(currents, trace.currents[::-1], trace.voltages[::-1])
        cell_volts[k] = np.where(currents > trace.isc, -reverse_bias_voltage, v)

    total = _segment_sum(cell_volts, runs, diode_spec.voltage_drop)

    negative = np.flatnonzero(total < 0.0)
    if negative.size:
        k = int(negative[0])
        v_keep = total[:k]
        i_keep = currents[:k]
        if k > 0:
            # Interpolate the V = 0 crossing between samples k-1 and k.
            t = total[k - 1] / (total[k - 1] - total[k])
            i_cross = currents[k - 1] + t * (currents[k] - currents[k - 1])
        else:
            i_cross = 0.0
        v_keep = np.append(v_keep, 0.0)
        i_keep = np.append(i_keep, i_cross)
    else:
        v_keep = total
        i_keep = currents

    return IVTrace.from_samples(v_keep[::-1], i_keep[::-1])


def _diode_runs(
    bypass_diodes: Sequence[BypassDiode], n_cells: int
) -> list[tuple[int, int]]:
    """Validated diode ranges as (first, last), sorted by first cell.

    A pair may be given in either order.
    """
    runs = sorted(tuple(sorted(int(ix) for ix in d.cell_ixs)) for d in bypass_diodes)
    prev_last = -1
    for first, last in runs:
        if not 0 <= first <= last < n_cells:
            raise PreconditionError(
                f"bypass diode ({first}, {last}) out of range for {n_cells} cells"
            )
        if first <= prev_last:
            raise PreconditionError(
                f"bypass diode ({first}, {last}) overlaps a diode ending at {prev_last}"
            )
        prev_last = last
    return runs


def _segment_sum(
    cell_volts: NDArray[np.float64],
    runs: list[tuple[int, int]],
    voltage_drop: float,
) -> NDArray[np.float64]:
    """Sum cell voltages left to right, clamping each diode run at
    ``-voltage_drop``."""
    total = np.zeros(cell_volts.shape[1])
    pos = 0
    for first, last in runs:
        if pos < first:
            total += cell_volts[pos:first].sum(axis=0)
        run_sum = cell_volts[first:last + 1].sum(axis=0)
        total += np.maximum(run_sum, -voltage_drop)
        pos = last + 1
    if pos < cell_volts.shape[0]:
        total += cell_volts[pos:].sum(axis=0)
    return total
