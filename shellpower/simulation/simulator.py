"""Single-step array simulation.

``ArraySimulator`` wires the rasterizer and the electrical models into
one step: rasterize the array from the sun, reduce texels to per-cell
irradiance, solve every cell's IV curve, combine cells into strings and
total everything up.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from pydantic import Field

from shellpower.core.exceptions import ConvergenceError, PreconditionError
from shellpower.core.logging import step_id_var
from shellpower.core.models import ParameterModel
from shellpower.electrical.cell import ABSOLUTE_ZERO, calc_sweep
from shellpower.electrical.iv_trace import IVTrace
from shellpower.electrical.string import calc_string_iv
from shellpower.layout.array_spec import ArraySpec
from shellpower.raster.rasterizer import IrradianceRasterizer

logger = logging.getLogger(__name__)

SUN_DIR_TOLERANCE = 1e-3


class ArraySimulationStepInput(ParameterModel):
    """Environmental conditions for one step."""

    sun_direction: tuple[float, float, float]
    irradiance: float = Field(default=1000.0, ge=0)           # W/m^2, direct beam
    indirect_irradiance: float = Field(default=0.0, ge=0)     # W/m^2, diffuse
    temperature: float = Field(default=25.0, gt=ABSOLUTE_ZERO)    # degC
    utc: Optional[datetime] = None


@dataclass(frozen=True)
class StringSimulationOutput:
    name: str
    n_cells: int
    watts_in: float
    watts_output_by_cell: float     # every cell at its own MPP
    watts_output: float             # string MPP
    watts_output_ideal: float       # unshaded cells at the step's insolation
    area: float
    lit_area: float
    shaded_area: float
    iv_trace: IVTrace


@dataclass(frozen=True)
class ArraySimulationStepOutput:
    array_area: float
    array_lit_area: float
    watts_insolation: float
    watts_output_by_cell: float
    watts_output: float
    strings: tuple[StringSimulationOutput, ...]
    cell_watts_in: NDArray[np.float64]
    cell_lit_area: NDArray[np.float64]
    unlinked_watts: float
    unlinked_area: float

    @property
    def efficiency(self) -> float:
        """Output over incoming power, 0 in the dark."""
        if self.watts_insolation <= 0.0:
            return 0.0
        return self.watts_output / self.watts_insolation


class ArraySimulator:
    """Runs simulation steps against one rasterizer.

    Parameters
    ----------
    rasterizer : IrradianceRasterizer, optional
        Created with default settings if omitted. A simulator holds the
        rasterizer's lock for each step, so threads running steps at the
        same time should each own a simulator.
    """

    def __init__(self, rasterizer: Optional[IrradianceRasterizer] = None) -> None:
        self.rasterizer = rasterizer if rasterizer is not None else IrradianceRasterizer()

    def simulate_input(
        self, array: ArraySpec, step_input: ArraySimulationStepInput
    ) -> ArraySimulationStepOutput:
        return self.simulate(
            array,
            np.asarray(step_input.sun_direction, dtype=np.float64),
            step_input.irradiance,
            step_input.indirect_irradiance,
            step_input.temperature,
        )

    def simulate(
        self,
        array: ArraySpec,
        sun_direction: NDArray[np.float64],
        insolation: float,
        indirect_irradiance: float = 0.0,
        temperature: float = 25.0,
    ) -> ArraySimulationStepOutput:
        """Simulate one step.

        Parameters
        ----------
        array : ArraySpec
            Array with mesh, layout image and decoded strings.
        sun_direction : ndarray, shape (3,)
            Unit vector towards the sun, model frame.
        insolation : float
            Direct-beam irradiance (W/m^2).
        indirect_irradiance : float
            Diffuse irradiance added uniformly to every cell (W/m^2).
        temperature : float
            Cell temperature (degC).

        Raises
        ------
        PreconditionError
            Missing or inconsistent inputs.
        ConvergenceError
            A cell IV solve failed; the message names string and cell.
        """
        light = self._check_inputs(
            array, sun_direction, insolation, indirect_irradiance, temperature
        )
        token = step_id_var.set(uuid.uuid4().hex[:12])
        try:
            t0 = time.perf_counter()
            output = self._run(array, light, insolation, indirect_irradiance, temperature)
            duration_ms = (time.perf_counter() - t0) * 1000.0
            logger.info(
                "Finished sim step in %.0f ms: %.1f W in / %.1f W out",
                duration_ms, output.watts_insolation, output.watts_output,
                extra={"duration_ms": round(duration_ms, 1)},
            )
            return output
        finally:
            step_id_var.reset(token)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_inputs(
        array: ArraySpec,
        sun_direction,
        insolation: float,
        indirect_irradiance: float,
        temperature: float,
    ) -> NDArray[np.float64]:
        if array is None:
            raise PreconditionError("No array specified.")
        if array.mesh is None:
            raise PreconditionError("No array shape (mesh) loaded.")
        if array.layout_image is None:
            raise PreconditionError("No array layout (texture) loaded.")
        if not array.cells:
            raise PreconditionError("Array has no cells; decode the layout first.")
        if not insolation >= 0.0:
            raise PreconditionError(f"Invalid insolation: {insolation}")
        if not indirect_irradiance >= 0.0:
            raise PreconditionError(f"Invalid indirect irradiance: {indirect_irradiance}")
        if not np.isfinite(temperature) or temperature <= ABSOLUTE_ZERO:
            raise PreconditionError(f"Invalid cell temperature: {temperature} degC")
        if not 0.0 <= array.encapsulation_loss < 1.0:
            raise PreconditionError(
                f"Invalid encapsulation loss: {array.encapsulation_loss}"
            )

        light = np.asarray(sun_direction, dtype=np.float64)
        if light.shape != (3,) or not np.all(np.isfinite(light)):
            raise PreconditionError(f"Sun direction must be a 3-vector, got {sun_direction!r}")
        if abs(np.linalg.norm(light) - 1.0) > SUN_DIR_TOLERANCE:
            raise PreconditionError("Sun direction must be unit length.")
        return light

    def _run(
        self,
        array: ArraySpec,
        light: NDArray[np.float64],
        insolation: float,
        indirect_irradiance: float,
        temperature: float,
    ) -> ArraySimulationStepOutput:
        cell_spec = array.cell_spec
        cells = array.cells

        with self.rasterizer.lock:
            buffers = self.rasterizer.render(
                array.mesh, array.layout_image, array.layout_bounds, light, insolation
            )
            irradiance = self.rasterizer.reduce(
                buffers,
                [c.color for c in cells],
                cell_spec.area,
                indirect_irradiance=indirect_irradiance,
                encapsulation_loss=array.encapsulation_loss,
            )
        logger.debug(
            "Reduced %d cells: %.1f W, %.3f m^2",
            len(cells), irradiance.watts_in.sum(), irradiance.area.sum(),
        )

        ideal_pmp = calc_sweep(cell_spec, insolation, temperature).pmp

        strings: list[StringSimulationOutput] = []
        offset = 0
        for s_ix, cell_string in enumerate(array.strings):
            n = len(cell_string.cells)
            watts_in = irradiance.watts_in[offset:offset + n]
            lit_area = float(irradiance.area[offset:offset + n].sum())

            traces: list[IVTrace] = []
            for c_ix in range(n):
                try:
                    traces.append(
                        calc_sweep(cell_spec, watts_in[c_ix] / cell_spec.area, temperature)
                    )
                except ConvergenceError as exc:
                    logger.error(
                        "IV solve failed for %s cell %d",
                        cell_string.name, c_ix,
                        extra={"string": cell_string.name, "cell": c_ix},
                    )
                    raise ConvergenceError(
                        f"{cell_string.name} (string {s_ix}) cell {c_ix}: {exc}"
                    ) from exc

            trace = calc_string_iv(traces, cell_string.bypass_diodes, array.bypass_diode_spec)
            area = n * cell_spec.area
            strings.append(
                StringSimulationOutput(
                    name=cell_string.name,
                    n_cells=n,
                    watts_in=float(watts_in.sum()),
                    watts_output_by_cell=float(sum(t.pmp for t in traces)),
                    watts_output=trace.pmp,
                    watts_output_ideal=ideal_pmp * n,
                    area=area,
                    lit_area=lit_area,
                    shaded_area=area - lit_area,
                    iv_trace=trace,
                )
            )
            offset += n

        return ArraySimulationStepOutput(
            array_area=len(cells) * cell_spec.area,
            array_lit_area=float(irradiance.area.sum()),
            watts_insolation=float(irradiance.watts_in.sum()),
            watts_output_by_cell=float(sum(s.watts_output_by_cell for s in strings)),
            watts_output=float(sum(s.watts_output for s in strings)),
            strings=tuple(strings),
            cell_watts_in=irradiance.watts_in,
            cell_lit_area=irradiance.area,
            unlinked_watts=irradiance.unlinked_watts,
            unlinked_area=irradiance.unlinked_area,
        )
