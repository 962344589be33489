"""
Single-diode model of one PV cell.

The cell is the ideal single-diode circuit with a series resistance and
no shunt path::

    I = I_L - I_0 * (exp((V + I * R_s) / V_t) - 1)

``I_L`` and ``I_0`` are fixed by requiring the curve to pass through the
short-circuit point ``(0, Isc)`` and the open-circuit point ``(Voc, 0)``
at the operating irradiance and temperature. Isc and Voc are translated
from standard test conditions linearly in temperature, Isc linearly in
irradiance and Voc logarithmically.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np
from pydantic import Field

from shellpower.config import settings
from shellpower.core.exceptions import ConvergenceError, PreconditionError
from shellpower.core.models import ParameterModel

from .iv_trace import IVTrace

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Physical / reference constants
# ---------------------------------------------------------------------------
Q_ELECTRON: float = 1.602176634e-19     # electron charge (C)
K_BOLTZMANN: float = 1.380649e-23        # Boltzmann constant (J/K)
G_STC: float = 1000.0                    # STC irradiance (W/m^2)
T_STC: float = 25.0                      # STC cell temperature (degC)
KELVIN: float = 273.15
ABSOLUTE_ZERO: float = -KELVIN            # degC


class CellSpec(ParameterModel):
    """Electrical parameters of one cell, defaulting to a typical
    monocrystalline silicon cell."""

    model_config = {"frozen": True}

    isc_stc: float = Field(default=6.27, gt=0)          # A
    voc_stc: float = Field(default=0.686, gt=0)         # V
    disc_dt: float = 0.0029                             # A/K
    dvoc_dt: float = -0.0018                            # V/K
    area: float = Field(default=0.0153, gt=0)           # m^2
    n_ideal: float = Field(default=1.26, ge=1)
    series_r: float = Field(default=0.003, ge=0)        # Ohm

    def thermal_voltage(self, temperature: float) -> float:
        """``n * k * T / q`` in volts, *temperature* in degC."""
        return self.n_ideal * K_BOLTZMANN * (temperature + KELVIN) / Q_ELECTRON

    def calc_isc(self, insolation: float, temperature: float) -> float:
        if insolation <= 0.0:
            return 0.0
        isc = self.isc_stc * insolation / G_STC + self.disc_dt * (temperature - T_STC)
        return max(isc, 0.0)

    def calc_voc(self, insolation: float, temperature: float) -> float:
        if insolation <= 0.0:
            return 0.0
        vt = self.thermal_voltage(temperature)
        voc = (
            self.voc_stc
            + self.dvoc_dt * (temperature - T_STC)
            + vt * math.log(insolation / G_STC)
        )
        return max(voc, 0.0)

    def calc_i0(self, insolation: float, temperature: float) -> tuple[float, float]:
        """Photocurrent and saturation current ``(I_L, I_0)``.

        Only meaningful for a lit cell (``Voc > Isc * Rs``).
        """
        isc = self.calc_isc(insolation, temperature)
        voc = self.calc_voc(insolation, temperature)
        vt = self.thermal_voltage(temperature)
        i0 = isc / (math.exp(voc / vt) - math.exp(isc * self.series_r / vt))
        il = i0 * (math.exp(voc / vt) - 1.0)
        return il, i0


def calc_sweep(
    spec: CellSpec,
    insolation: float,
    temperature: float,
    n_samples: Optional[int] = None,
    rtol: Optional[float] = None,
    max_iter: Optional[int] = None,
) -> IVTrace:
    """IV curve of one cell from V = 0 to Voc.

    Parameters
    ----------
    spec : CellSpec
        Cell parameters.
    insolation : float
        Irradiance absorbed by the cell (W/m^2).
    temperature : float
        Cell temperature (degC).
    n_samples : int, optional
        Number of uniformly spaced voltages; ``settings.iv_sample_count``
        by default.
    rtol, max_iter : optional
        Newton tolerance and iteration limit, from settings by default.

    Returns
    -------
    IVTrace
        A dark cell (no current, or Voc within the series-resistance
        drop) gives a flat trace at V = 0.

    Raises
    ------
    PreconditionError
        Negative insolation, or a temperature that is not finite or not
        above absolute zero.
    ConvergenceError
        The current at some voltage did not converge.
    """
    if insolation < 0.0 or not math.isfinite(insolation):
        raise PreconditionError(f"insolation must be >= 0, got {insolation}")
    if not math.isfinite(temperature) or temperature <= ABSOLUTE_ZERO:
        raise PreconditionError(
            f"temperature must be above {ABSOLUTE_ZERO} degC, got {temperature}"
        )

    n_samples = settings.iv_sample_count if n_samples is None else n_samples
    rtol = settings.diode_solver_rtol if rtol is None else rtol
    max_iter = settings.diode_solver_max_iter if max_iter is None else max_iter

    isc = spec.calc_isc(insolation, temperature)
    voc = spec.calc_voc(insolation, temperature)
    rs = spec.series_r

    if isc == 0.0 or voc <= isc * rs:
        return IVTrace.from_samples([0.0, 0.0], [isc, 0.0])

    vt = spec.thermal_voltage(temperature)
    il, i0 = spec.calc_i0(insolation, temperature)

    voltages = np.linspace(0.0, voc, max(int(n_samples), 2))
    currents = _solve_currents(voltages, il, i0, rs, vt, rtol, max_iter)

    currents = np.maximum(currents, 0.0)
    currents[-1] = 0.0
    return IVTrace.from_samples(voltages, currents)


def _solve_currents(
    voltages: np.ndarray,
    il: float,
    i0: float,
    rs: float,
    vt: float,
    rtol: float,
    max_iter: int,
) -> np.ndarray:
    """Newton iteration on ``f(I) = I_L - I_0 (e^((V + I Rs)/Vt) - 1) - I``.

    f is concave and decreasing in I, so starting from I = I_L (where
    f <= 0) the iterates decrease monotonically onto the root.
    """
    current = np.full_like(voltages, il)
    floor = 1e-6 * il
    for _ in range(max_iter):
        e = np.exp((voltages + current * rs) / vt)
        f = il - i0 * (e - 1.0) - current
        df = -i0 * rs / vt * e - 1.0
        step = f / df
        current = current - step
        if np.all(np.abs(step) <= rtol * np.maximum(np.abs(current), floor)):
            return current

    raise ConvergenceError(
        f"cell IV solve did not converge in {max_iter} iterations "
        f"(I_L={il:.4g} A, I_0={i0:.4g} A)"
    )
