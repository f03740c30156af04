"""Tests for rolling windows, FPS counters and quality metrics."""

import math

import numpy as np
import pytest

from conftest import make_rgba
from metrics import FpsCounter, MetricsEngine, RollingWindow, psnr, ssim
from pipeline.errors import DimensionMismatch


class TestRollingWindow:
    def test_empty_average_is_zero(self):
        assert RollingWindow(5).average() == 0.0

    def test_keeps_most_recent_samples(self):
        window = RollingWindow(30)
        for i in range(31):
            window.add(i)
        assert len(window) == 30
        assert window.values()[0] == 1.0
        assert window.average() == pytest.approx(sum(range(1, 31)) / 30)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            RollingWindow(0)


class TestFpsCounter:
    def test_reports_count_per_window_and_resets(self):
        counter = FpsCounter(window_s=1.0, now=0.0)
        for _ in range(24):
            counter.count()
        assert counter.update(0.5) == 0
        assert counter.update(1.0) == 24

        for _ in range(12):
            counter.count()
        # Previous value holds until the next window closes.
        assert counter.update(1.5) == 24
        assert counter.update(2.0) == 12

    def test_half_rounds_up(self):
        counter = FpsCounter(window_s=2.0, now=0.0)
        for _ in range(49):
            counter.count()
        # 49 frames over 2 s is 24.5 fps
        assert counter.update(2.0) == 25

    def test_empty_window_reports_zero(self):
        counter = FpsCounter(window_s=1.0, now=0.0)
        counter.count()
        counter.update(1.0)
        assert counter.update(2.0) == 0

    def test_reset(self):
        counter = FpsCounter(window_s=1.0, now=0.0)
        counter.count()
        counter.update(1.0)
        counter.reset(now=5.0)
        assert counter.fps == 0
        assert counter.update(5.5) == 0


class TestPsnr:
    def test_identical_frames(self):
        a = make_rgba(77)
        assert psnr(a, a.copy()) == 99.0

    def test_known_mse(self):
        a = make_rgba(100)
        b = make_rgba(110)
        expected = 10.0 * math.log10(255.0 ** 2 / 100.0)
        assert psnr(a, b) == pytest.approx(expected)

    def test_alpha_is_ignored(self):
        a = make_rgba(50)
        b = a.copy()
        b[..., 3] = 0
        assert psnr(a, b) == 99.0

    def test_rgb_and_rgba_compare(self):
        a = make_rgba(50)
        assert psnr(a[..., :3], a) == 99.0

    def test_shape_mismatch(self):
        with pytest.raises(DimensionMismatch):
            psnr(make_rgba(0, 4, 3), make_rgba(0, 8, 6))


class TestSsim:
    def test_identical_frames(self):
        rng = np.random.default_rng(3)
        a = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)
        assert ssim(a, a.copy()) == pytest.approx(1.0)

    def test_different_frames_score_lower(self):
        rng = np.random.default_rng(3)
        a = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)
        b = 255 - a
        assert ssim(a, b) < 0.5

    def test_shape_mismatch(self):
        with pytest.raises(DimensionMismatch):
            ssim(make_rgba(0, 4, 3), make_rgba(0, 3, 4))


class TestMetricsEngine:
    def test_failed_attempts_do_not_pollute_average(self):
        engine = MetricsEngine(window_size=30, fps_window_s=1.0)
        engine.record_inference(10.0, True)
        engine.record_inference(20.0, True)
        engine.record_inference(500.0, False)

        snap = engine.snapshot()
        assert snap.avg_inference_ms == pytest.approx(15.0)
        assert snap.last_failed_attempt_ms == pytest.approx(500.0)

    def test_snapshot_before_any_data(self):
        snap = MetricsEngine().snapshot()
        assert snap.avg_total_ms == 0.0
        assert snap.last_failed_attempt_ms is None
        assert snap.psnr_neural is None
        assert snap.avg_psnr_classical is None

    def test_record_frame_and_quality(self):
        engine = MetricsEngine()
        engine.record_frame(1.0, 2.0, 8.0)
        reference = make_rgba(100)
        engine.record_quality(reference, reference.copy(), make_rgba(110))

        snap = engine.snapshot()
        assert snap.avg_extraction_ms == 1.0
        assert snap.avg_postprocess_ms == 2.0
        assert snap.avg_total_ms == 8.0
        assert snap.psnr_neural == 99.0
        assert snap.ssim_neural == pytest.approx(1.0)
        assert snap.psnr_classical < snap.psnr_neural
        assert snap.avg_psnr_neural == 99.0

    def test_fps_counting(self):
        engine = MetricsEngine(fps_window_s=1.0)
        engine.reset(now=0.0)
        for _ in range(10):
            engine.count_source_frame()
        for _ in range(4):
            engine.count_neural_frame()
        engine.update_fps(1.0)

        snap = engine.snapshot()
        assert snap.fps_source == 10
        assert snap.fps_neural == 4

    def test_reset_clears_everything(self):
        engine = MetricsEngine()
        engine.record_inference(10.0, True)
        engine.record_inference(10.0, False)
        engine.record_quality(make_rgba(1), make_rgba(1), None)
        engine.reset(now=0.0)

        snap = engine.snapshot()
        assert snap.avg_inference_ms == 0.0
        assert snap.last_failed_attempt_ms is None
        assert snap.psnr_neural is None
