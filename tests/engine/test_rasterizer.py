"""Tests for shellpower.raster -- scalar codec, rasterizer and reduction."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from shellpower.core.exceptions import BackendSetupError, PreconditionError
from shellpower.geometry.shadow import lit_triangles
from shellpower.layout.array_spec import BoundsSpec
from shellpower.raster.rasterizer import IrradianceRasterizer
from shellpower.raster.scalar_codec import decode_scalar, encode_scalar

RED = (255, 0, 0)
RED_BLUE = (255, 0, 128)
UP = np.array([0.0, 1.0, 0.0])


def _unit(v) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    return v / np.linalg.norm(v)


def _render_panel(rasterizer, mesh, layout, bounds, light=UP, insolation=1000.0):
    buffers = rasterizer.render(mesh, layout, bounds, light, insolation)
    return buffers, rasterizer.reduce(buffers, [RED, RED_BLUE], cell_area=1.0)


# ======================================================================
# Scalar codec
# ======================================================================


class TestScalarCodec:
    def test_round_trip_within_one_step(self):
        values = np.linspace(0.0, 127.99, 5000)
        r, g = encode_scalar(values)
        decoded = decode_scalar(r, g)
        assert np.max(np.abs(decoded - values)) <= 1.0 / 255.0

    def test_scale(self):
        r, g = encode_scalar(3.5)
        assert decode_scalar(r, g, scale=0.25) == pytest.approx(0.875, abs=0.25 / 255)

    def test_red_channel_even(self):
        r, _ = encode_scalar(np.arange(0.0, 128.0, 0.7))
        assert np.all(r % 2 == 0)

    def test_known_value(self):
        r, g = encode_scalar(2.5)
        assert int(r) == 4
        assert int(g) == 128

    @pytest.mark.parametrize("bad", [-0.1, 128.0, np.inf, np.nan])
    def test_out_of_range(self, bad):
        with pytest.raises(ValueError):
            encode_scalar(bad)


# ======================================================================
# Backend setup
# ======================================================================


class TestSetup:
    @pytest.mark.parametrize("resolution", [0, -5, 16385])
    def test_bad_resolution(self, resolution):
        with pytest.raises(BackendSetupError):
            IrradianceRasterizer(resolution=resolution)

    def test_defaults_from_settings(self, monkeypatch):
        from shellpower.config import settings

        monkeypatch.setattr(settings, "raster_resolution", 32)
        monkeypatch.setattr(settings, "reduction_shard_rows", 8)
        r = IrradianceRasterizer()
        assert r.resolution == 32
        assert r.shard_rows == 8


# ======================================================================
# Render + reduce
# ======================================================================


class TestRasterize:
    def test_area_conservation(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=1024)
        _, result = _render_panel(rasterizer, flat_panel, two_cell_layout, panel_bounds)
        assert result.area.sum() == pytest.approx(2.0, rel=0.01)
        np.testing.assert_allclose(result.area, [1.0, 1.0], rtol=0.01)
        np.testing.assert_allclose(result.watts_in, [1000.0, 1000.0], rtol=0.01)
        assert result.unlinked_texels == 0

    def test_oblique_sun_conserves_area(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=512)
        light = _unit([0.3, 1.0, -0.2])
        _, result = _render_panel(
            rasterizer, flat_panel, two_cell_layout, panel_bounds, light=light
        )
        assert result.area.sum() == pytest.approx(2.0, rel=0.02)

    def test_watts_follow_cosine(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=512)
        _, overhead = _render_panel(rasterizer, flat_panel, two_cell_layout, panel_bounds)
        _, tilted = _render_panel(
            rasterizer, flat_panel, two_cell_layout, panel_bounds, light=_unit([1, 1, 0])
        )
        assert tilted.watts_in.sum() < overhead.watts_in.sum()

    def test_occlusion(self, two_plate_mesh, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=512)
        _, result = _render_panel(
            rasterizer, two_plate_mesh, two_cell_layout, panel_bounds,
            light=_unit([-1, 1, 0]),
        )
        # Upper plate and lower-left half both map to the left cell;
        # the right cell lies entirely in the upper plate's shadow.
        assert result.area[1] < 0.02
        assert result.area[0] == pytest.approx(2.0, rel=0.02)

    def test_unlit_mesh_is_background(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=64)
        buffers, result = _render_panel(
            rasterizer, flat_panel, two_cell_layout, panel_bounds,
            light=_unit([0.1, -1.0, 0.0]),
        )
        assert result.watts_in.sum() == 0.0
        assert result.area.sum() == 0.0
        # Still occludes: depth written, colour left as background.
        assert np.any(buffers.triangle_ids >= 0)
        assert np.all(buffers.colors == 255)

    def test_cube_visible_triangles_are_lit(self, cube_mesh):
        light = _unit([1, 2, 3])
        layout = np.full((4, 4, 4), 255, dtype=np.uint8)
        layout[..., :3] = RED
        bounds = BoundsSpec(x0=-0.5, x1=0.5, z0=-0.5, z1=0.5)

        rasterizer = IrradianceRasterizer(resolution=256)
        buffers = rasterizer.render(cube_mesh, layout, bounds, light, 1000.0)

        seen = set(np.unique(buffers.triangle_ids[buffers.triangle_ids >= 0]).tolist())
        lit = set(np.flatnonzero(lit_triangles(cube_mesh, light)).tolist())
        assert seen == lit

    def test_render_clears_previous_step(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=64)
        _render_panel(rasterizer, flat_panel, two_cell_layout, panel_bounds)
        _, result = _render_panel(
            rasterizer, flat_panel, two_cell_layout, panel_bounds,
            light=_unit([0, -1, 0.1]),
        )
        assert result.watts_in.sum() == 0.0

    def test_indirect_and_encapsulation(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=128)
        buffers = rasterizer.render(flat_panel, two_cell_layout, panel_bounds, UP, 1000.0)
        plain = rasterizer.reduce(buffers, [RED, RED_BLUE], cell_area=1.0)
        adjusted = rasterizer.reduce(
            buffers, [RED, RED_BLUE], cell_area=1.0,
            indirect_irradiance=100.0, encapsulation_loss=0.1,
        )
        np.testing.assert_allclose(adjusted.watts_in, (plain.watts_in + 100.0) * 0.9)
        np.testing.assert_array_equal(adjusted.area, plain.area)


# ======================================================================
# Reduction
# ======================================================================


class TestReduce:
    def test_unlinked_texels_warn(self, flat_panel, two_cell_layout, panel_bounds, caplog):
        rasterizer = IrradianceRasterizer(resolution=256)
        buffers = rasterizer.render(flat_panel, two_cell_layout, panel_bounds, UP, 1000.0)
        with caplog.at_level(logging.WARNING, logger="shellpower.raster.rasterizer"):
            result = rasterizer.reduce(buffers, [RED], cell_area=1.0)
        assert result.unlinked_texels > 0
        assert result.unlinked_area == pytest.approx(1.0, rel=0.03)
        assert result.unlinked_watts == pytest.approx(1000.0, rel=0.03)
        assert "matched no cell" in caplog.text

    def test_duplicate_colours_rejected(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=32)
        buffers = rasterizer.render(flat_panel, two_cell_layout, panel_bounds, UP, 1000.0)
        with pytest.raises(PreconditionError):
            rasterizer.reduce(buffers, [RED, RED], cell_area=1.0)

    def test_no_cells(self, flat_panel, two_cell_layout, panel_bounds):
        rasterizer = IrradianceRasterizer(resolution=32)
        buffers = rasterizer.render(flat_panel, two_cell_layout, panel_bounds, UP, 1000.0)
        result = rasterizer.reduce(buffers, [], cell_area=1.0)
        assert result.watts_in.shape == (0,)
        assert result.unlinked_texels > 0

    @pytest.mark.parametrize("workers", [2, 4])
    def test_deterministic_across_workers(
        self, two_plate_mesh, two_cell_layout, panel_bounds, workers
    ):
        light = _unit([-0.4, 1.0, 0.3])
        serial = IrradianceRasterizer(resolution=256, shard_rows=16, workers=1)
        parallel = IrradianceRasterizer(resolution=256, shard_rows=16, workers=workers)

        a = serial.reduce(
            serial.render(two_plate_mesh, two_cell_layout, panel_bounds, light, 900.0),
            [RED, RED_BLUE], cell_area=1.0,
        )
        b = parallel.reduce(
            parallel.render(two_plate_mesh, two_cell_layout, panel_bounds, light, 900.0),
            [RED, RED_BLUE], cell_area=1.0,
        )
        np.testing.assert_array_equal(a.watts_in, b.watts_in)
        np.testing.assert_array_equal(a.area, b.area)


# ======================================================================
# 8-bit channel emulation
# ======================================================================


class TestQuantizedChannels:
    def test_matches_float_buffers(self, flat_panel, two_cell_layout, panel_bounds):
        exact = IrradianceRasterizer(resolution=1024)
        quantized = IrradianceRasterizer(resolution=1024, quantize_channels=True)
        light = _unit([0.2, 1.0, 0.1])
        _, a = _render_panel(exact, flat_panel, two_cell_layout, panel_bounds, light=light)
        _, b = _render_panel(quantized, flat_panel, two_cell_layout, panel_bounds, light=light)
        np.testing.assert_allclose(b.watts_in, a.watts_in, rtol=0.01)
        np.testing.assert_allclose(b.area, a.area, rtol=0.01)

    def test_saturation_warns(self, flat_panel, two_cell_layout, panel_bounds, caplog):
        rasterizer = IrradianceRasterizer(resolution=64, quantize_channels=True)
        with caplog.at_level(logging.WARNING, logger="shellpower.raster.rasterizer"):
            _render_panel(rasterizer, flat_panel, two_cell_layout, panel_bounds)
        assert "saturated" in caplog.text
