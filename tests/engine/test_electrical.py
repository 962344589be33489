"""Tests for shellpower.electrical -- cell IV curves and string combination."""

from __future__ import annotations

import numpy as np
import pytest
from shellpower.core.exceptions import ConvergenceError, PreconditionError, ShellPowerError
from shellpower.electrical.cell import CellSpec, calc_sweep
from shellpower.electrical.iv_trace import IVTrace
from shellpower.electrical.string import DiodeSpec, calc_string_iv
from shellpower.layout.array_spec import BypassDiode


@pytest.fixture
def spec() -> CellSpec:
    return CellSpec()


# ======================================================================
# IV trace
# ======================================================================


class TestIVTrace:
    def test_scalars(self):
        trace = IVTrace.from_samples([0.0, 1.0, 2.0], [3.0, 2.5, 0.0])
        assert trace.isc == 3.0
        assert trace.voc == 2.0
        assert trace.pmp == 2.5
        assert (trace.vmp, trace.imp) == (1.0, 2.5)
        assert trace.fill_factor == pytest.approx(2.5 / 6.0)

    def test_empty(self):
        trace = IVTrace.empty()
        assert trace.pmp == 0.0
        assert trace.fill_factor == 0.0

    def test_frozen(self):
        trace = IVTrace.empty()
        with pytest.raises(ValueError):
            trace.voltages[0] = 1.0


# ======================================================================
# Single cell
# ======================================================================


class TestCell:
    def test_standard_conditions(self, spec):
        trace = calc_sweep(spec, 1000.0, 25.0)
        assert trace.isc == pytest.approx(6.27, rel=1e-3)
        assert trace.voc == pytest.approx(0.686)
        assert 0.74 < trace.fill_factor < 0.82
        assert trace.pmp == pytest.approx(trace.isc * trace.voc * trace.fill_factor)
        assert 3.1 < trace.pmp < 3.6

    def test_trace_shape(self, spec):
        trace = calc_sweep(spec, 800.0, 40.0)
        assert trace.voltages[0] == 0.0
        assert trace.currents[-1] == 0.0
        assert np.all(np.diff(trace.voltages) > 0)
        assert np.all(np.diff(trace.currents) <= 1e-9)
        assert len(trace.voltages) == 200

    def test_sample_count(self, spec):
        assert len(calc_sweep(spec, 1000.0, 25.0, n_samples=50).voltages) == 50

    def test_isc_scales_with_irradiance(self, spec):
        assert spec.calc_isc(500.0, 25.0) == pytest.approx(3.135)

    def test_voc_log_irradiance(self, spec):
        vt = spec.thermal_voltage(25.0)
        assert spec.calc_voc(100.0, 25.0) == pytest.approx(0.686 + vt * np.log(0.1))

    def test_hotter_cell_makes_less_power(self, spec):
        assert calc_sweep(spec, 1000.0, 60.0).pmp < calc_sweep(spec, 1000.0, 25.0).pmp

    def test_pmp_monotonic_in_insolation(self, spec):
        pmps = [calc_sweep(spec, g, 25.0).pmp for g in (200, 400, 600, 800, 1000)]
        assert all(b > a for a, b in zip(pmps, pmps[1:]))

    def test_dark_cell(self, spec):
        trace = calc_sweep(spec, 0.0, 25.0)
        assert trace.pmp == 0.0
        assert trace.voc == 0.0
        np.testing.assert_array_equal(trace.voltages, 0.0)

    def test_negative_insolation(self, spec):
        with pytest.raises(PreconditionError):
            calc_sweep(spec, -1.0, 25.0)

    def test_non_convergence(self, spec):
        with pytest.raises(ConvergenceError):
            calc_sweep(spec, 1000.0, 25.0, max_iter=1)

    @pytest.mark.parametrize("field, value", [
        ("isc_stc", 0.0),
        ("voc_stc", -0.5),
        ("area", 0.0),
        ("n_ideal", 0.5),
        ("series_r", -0.001),
    ])
    def test_invalid_spec(self, field, value):
        with pytest.raises(PreconditionError, match="CellSpec"):
            CellSpec(**{field: value})

    def test_spec_from_record(self):
        spec = CellSpec.model_validate({"isc_stc": 5.9, "voc_stc": 0.7, "area": 0.0155})
        assert spec.isc_stc == 5.9
        assert spec.n_ideal == 1.26

    def test_bad_record_rejected(self):
        with pytest.raises(PreconditionError):
            CellSpec.model_validate({"isc_stc": -1.0})

    @pytest.mark.parametrize("temperature", [-273.15, -300.0, float("nan"), float("inf")])
    def test_non_physical_temperature(self, spec, temperature):
        with pytest.raises(PreconditionError, match="temperature"):
            calc_sweep(spec, 1000.0, temperature)

    def test_dark_cell_still_checks_temperature(self, spec):
        with pytest.raises(PreconditionError):
            calc_sweep(spec, 0.0, -300.0)


# ======================================================================
# Series string
# ======================================================================


class TestString:
    def test_matched_cells_add_voltage(self, spec):
        cell = calc_sweep(spec, 1000.0, 25.0)
        trace = calc_string_iv([cell] * 3, [], DiodeSpec())
        assert trace.voc == pytest.approx(3 * cell.voc)
        assert trace.isc == pytest.approx(cell.isc)
        assert trace.pmp == pytest.approx(3 * cell.pmp, rel=0.01)

    def test_trace_ordered(self, spec):
        cells = [calc_sweep(spec, g, 25.0) for g in (1000.0, 600.0, 900.0)]
        trace = calc_string_iv(cells, [], DiodeSpec())
        assert trace.voltages[0] == pytest.approx(0.0, abs=1e-12)
        assert trace.currents[-1] == pytest.approx(0.0, abs=1e-12)
        assert np.all(np.diff(trace.voltages) >= 0)

    def test_weakest_cell_limits_current(self, spec):
        cells = [calc_sweep(spec, g, 25.0) for g in (1000.0, 300.0, 1000.0)]
        trace = calc_string_iv(cells, [], DiodeSpec())
        assert trace.imp <= cells[1].isc

    def test_bypass_diode_keeps_current(self, spec):
        bright = calc_sweep(spec, 1000.0, 25.0)
        shaded = calc_sweep(spec, 1.0, 25.0)
        cells = [bright, shaded, bright]

        with_diode = calc_string_iv(cells, [BypassDiode((1, 1))], DiodeSpec())
        without = calc_string_iv(cells, [], DiodeSpec())

        assert with_diode.imp > 0.8 * bright.imp
        assert without.imp <= shaded.isc + 1e-9
        assert with_diode.pmp > 10 * without.pmp

    def test_diode_drop_matters(self, spec):
        bright = calc_sweep(spec, 1000.0, 25.0)
        shaded = calc_sweep(spec, 1.0, 25.0)
        cells = [bright, shaded, bright]
        low = calc_string_iv(cells, [BypassDiode((1, 1))], DiodeSpec(voltage_drop=0.2))
        high = calc_string_iv(cells, [BypassDiode((1, 1))], DiodeSpec(voltage_drop=0.6))
        assert low.pmp > high.pmp

    def test_empty_string(self):
        trace = calc_string_iv([], [], DiodeSpec())
        assert trace.pmp == 0.0

    def test_all_dark(self, spec):
        dark = calc_sweep(spec, 0.0, 25.0)
        trace = calc_string_iv([dark, dark], [], DiodeSpec())
        assert trace.pmp == 0.0

    def test_diode_out_of_range(self, spec):
        cell = calc_sweep(spec, 1000.0, 25.0)
        with pytest.raises(PreconditionError):
            calc_string_iv([cell] * 2, [BypassDiode((1, 2))], DiodeSpec())
        with pytest.raises(PreconditionError):
            calc_string_iv([cell] * 2, [BypassDiode((0, -1))], DiodeSpec())

    def test_reversed_diode_pair(self, spec):
        bright = calc_sweep(spec, 1000.0, 25.0)
        shaded = calc_sweep(spec, 1.0, 25.0)
        cells = [bright, shaded, shaded, bright]
        forward = calc_string_iv(cells, [BypassDiode((1, 2))], DiodeSpec())
        reversed_ = calc_string_iv(cells, [BypassDiode((2, 1))], DiodeSpec())
        assert reversed_.pmp == forward.pmp
        np.testing.assert_array_equal(reversed_.voltages, forward.voltages)

    def test_reversed_pairs_still_checked_for_overlap(self, spec):
        cell = calc_sweep(spec, 1000.0, 25.0)
        with pytest.raises(PreconditionError, match="overlaps"):
            calc_string_iv(
                [cell] * 4, [BypassDiode((2, 0)), BypassDiode((3, 2))], DiodeSpec()
            )

    def test_overlapping_diodes(self, spec):
        cell = calc_sweep(spec, 1000.0, 25.0)
        with pytest.raises(PreconditionError, match="overlaps"):
            calc_string_iv(
                [cell] * 4, [BypassDiode((0, 2)), BypassDiode((2, 3))], DiodeSpec()
            )

    def test_diode_spec_range(self):
        with pytest.raises(PreconditionError, match="DiodeSpec"):
            DiodeSpec(voltage_drop=11.0)

    def test_diode_spec_is_package_error(self):
        with pytest.raises(ShellPowerError):
            DiodeSpec.model_validate({"voltage_drop": -0.1})
