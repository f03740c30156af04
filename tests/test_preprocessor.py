"""Tests for color transcoding, chroma resampling and the classical upscale."""

import numpy as np
import pytest

from buffer import RawFrame
from preprocessor import (
    Preprocessor,
    classical_upscale,
    resize_plane,
    rgb_to_yuv,
    yuv_to_rgb,
)


class TestColorTranscoding:
    """BT.601 RGB <-> YUV conversion."""

    def test_gray_has_neutral_chroma(self):
        y, u, v = rgb_to_yuv(np.array([[100, 100, 100]], dtype=np.uint8))
        assert y[0] == pytest.approx(100.0)
        assert u[0] == pytest.approx(128.0)
        assert v[0] == pytest.approx(128.0)

    def test_primaries(self):
        y, u, v = rgb_to_yuv(np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255]], dtype=np.uint8))
        assert y == pytest.approx([0.299 * 255, 0.587 * 255, 0.114 * 255])
        assert v[0] == pytest.approx(255.5)
        assert u[2] == pytest.approx(255.5)

    def test_round_trip_within_one_level(self):
        rng = np.random.default_rng(7)
        rgb = rng.integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
        y, u, v = rgb_to_yuv(rgb)
        back = yuv_to_rgb(y, u, v)
        assert back.dtype == np.uint8
        assert np.max(np.abs(back.astype(int) - rgb.astype(int))) <= 1

    def test_round_trip_extremes(self):
        rgb = np.array([[0, 0, 0], [255, 255, 255], [255, 0, 255], [0, 255, 0]], dtype=np.uint8)
        back = yuv_to_rgb(*rgb_to_yuv(rgb))
        assert np.max(np.abs(back.astype(int) - rgb.astype(int))) <= 1

    def test_out_of_gamut_is_clamped(self):
        rgb = yuv_to_rgb(np.array([255.0]), np.array([255.0]), np.array([255.0]))
        assert rgb.tolist() == [[255, 121, 255]]
        low = yuv_to_rgb(np.array([0.0]), np.array([0.0]), np.array([0.0]))
        assert low.tolist() == [[0, 135, 0]]

    def test_rounds_half_up(self):
        rgb = yuv_to_rgb(np.array([10.5]), np.array([128.0]), np.array([128.0]))
        assert rgb.tolist() == [[11, 11, 11]]


class TestResizePlane:
    """Nearest-neighbor chroma resize."""

    def test_same_size_is_identity(self):
        plane = np.arange(12, dtype=np.float32).reshape(3, 4)
        out = resize_plane(plane, 4, 3, 4, 3)
        np.testing.assert_array_equal(out, plane)

    def test_doubling_repeats_samples(self):
        plane = np.array([[1, 2], [3, 4]], dtype=np.float32)
        out = resize_plane(plane, 2, 2, 4, 4)
        expected = np.array(
            [
                [1, 1, 2, 2],
                [1, 1, 2, 2],
                [3, 3, 4, 4],
                [3, 3, 4, 4],
            ],
            dtype=np.float32,
        )
        np.testing.assert_array_equal(out, expected)

    def test_source_index_mapping(self):
        plane = np.arange(3, dtype=np.float32).reshape(1, 3)
        out = resize_plane(plane, 3, 1, 5, 1)
        # src = (x * 3) // 5 for x in 0..4
        assert out[0].tolist() == [0, 0, 1, 1, 2]

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            resize_plane(np.zeros((3, 4)), 5, 3, 10, 6)


class TestPreprocessor:
    def test_luma_tensor_shape_and_range(self, random_frame):
        pre = Preprocessor().process_frame(random_frame)
        assert pre.luma.shape == (1, 1, 6, 8)
        assert pre.luma.dtype == np.float32
        assert pre.luma.min() >= 0.0
        assert pre.luma.max() <= 1.0
        assert pre.chroma_u.shape == (6, 8)
        assert pre.chroma_v.shape == (6, 8)
        assert pre.timestamp == random_frame.timestamp

    def test_gray_frame_planes(self, gray_frame):
        pre = Preprocessor().process_frame(gray_frame)
        np.testing.assert_allclose(pre.luma, 128 / 255.0, atol=1e-6)
        np.testing.assert_allclose(pre.chroma_u, 128.0, atol=1e-4)
        np.testing.assert_allclose(pre.chroma_v, 128.0, atol=1e-4)

    def test_mismatched_pixels_raise(self):
        frame = RawFrame(timestamp=0.0, width=8, height=6, pixels=np.zeros((5, 8, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            Preprocessor().process_frame(frame)

    def test_resample_chroma_to_output_size(self, random_frame):
        preprocessor = Preprocessor()
        pre = preprocessor.process_frame(random_frame)
        up_u, up_v = preprocessor.resample_chroma(pre, 16, 12)
        assert up_u.shape == (12, 16)
        assert up_v.shape == (12, 16)
        assert up_u[1, 1] == pre.chroma_u[0, 0]


class TestClassicalUpscale:
    def test_shape_and_alpha(self, random_frame):
        out = classical_upscale(random_frame, 2)
        assert out.shape == (12, 16, 4)
        assert out.dtype == np.uint8
        assert np.all(out[..., 3] == 255)

    def test_constant_frame_stays_constant(self, gray_frame):
        out = classical_upscale(gray_frame, 2)
        assert np.all(out[..., :3] == 128)
