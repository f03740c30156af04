"""Tests for merging upscaled planes back into RGBA frames."""

import numpy as np
import pytest

from pipeline.errors import DimensionMismatch
from preprocessor import rgb_to_yuv
from reconstructor import luma_preview, merge


class TestMerge:
    def test_shape_and_alpha(self):
        y = np.full((4, 6), 0.5, dtype=np.float32)
        u = np.full((4, 6), 128.0, dtype=np.float32)
        v = np.full((4, 6), 128.0, dtype=np.float32)
        out = merge(y, u, v, 6, 4)
        assert out.shape == (4, 6, 4)
        assert out.dtype == np.uint8
        assert np.all(out[..., 3] == 255)

    def test_neutral_chroma_gives_gray(self):
        y = np.full((2, 2), 100 / 255.0)
        u = np.full((2, 2), 128.0)
        v = np.full((2, 2), 128.0)
        out = merge(y, u, v, 2, 2)
        assert np.all(out[..., :3] == 100)

    def test_recovers_source_colors(self):
        rgb = np.array([[[200, 30, 90], [10, 220, 140]]], dtype=np.uint8)
        y, u, v = rgb_to_yuv(rgb)
        out = merge(y / 255.0, u, v, 2, 1)
        assert np.max(np.abs(out[..., :3].astype(int) - rgb.astype(int))) <= 1

    def test_chroma_outside_range_is_clipped(self):
        y = np.full((1, 1), 0.5)
        clipped = merge(y, np.full((1, 1), 400.0), np.full((1, 1), -50.0), 1, 1)
        reference = merge(y, np.full((1, 1), 255.0), np.full((1, 1), 0.0), 1, 1)
        np.testing.assert_array_equal(clipped, reference)

    @pytest.mark.parametrize("bad", ["y", "u", "v"])
    def test_plane_size_mismatch_raises(self, bad):
        planes = {
            "y": np.zeros((4, 6)),
            "u": np.zeros((4, 6)),
            "v": np.zeros((4, 6)),
        }
        planes[bad] = np.zeros((3, 6))
        with pytest.raises(DimensionMismatch):
            merge(planes["y"], planes["u"], planes["v"], 6, 4)


class TestLumaPreview:
    def test_grayscale_rgba(self):
        up_y = np.array([[0.0, 0.5], [1.0, 1.2]], dtype=np.float32)
        out = luma_preview(up_y)
        assert out.shape == (2, 2, 4)
        assert out[0, 0].tolist() == [0, 0, 0, 255]
        assert out[0, 1].tolist() == [128, 128, 128, 255]
        assert out[1, 0].tolist() == [255, 255, 255, 255]
        assert out[1, 1].tolist() == [255, 255, 255, 255]
