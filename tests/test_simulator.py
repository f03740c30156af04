"""Tests for the synthetic media source and simulated inference engine."""

from unittest.mock import MagicMock

import numpy as np
import pytest

from pipeline.errors import EngineLoadError, InferenceRunError, SeekError
from simulator import SimulatedInferenceEngine, SyntheticMediaSource


class TestSyntheticMediaSource:
    def test_metadata(self):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0)
        meta = source.metadata()
        assert (meta.width, meta.height, meta.duration) == (8, 6, 3.0)

    def test_seek_and_reference_sizes(self):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0, scale=2)
        frame = source.seek(1.0)
        truth = source.reference(1.0)

        assert frame.pixels.shape == (6, 8, 3)
        assert frame.pixels.dtype == np.uint8
        assert (truth.width, truth.height) == (16, 12)
        assert truth.pixels.shape == (12, 16, 3)
        assert source.seek_count == 1

    def test_low_res_is_block_average_of_reference(self):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0, scale=2)
        low = source.seek(0.5).pixels.astype(float)
        truth = source.reference(0.5).pixels.astype(float)
        expected = truth.reshape(6, 2, 8, 2, 3).mean(axis=(1, 3))
        assert np.max(np.abs(low - expected)) <= 0.5

    def test_pattern_moves_over_time(self):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0)
        assert not np.array_equal(source.seek(0.0).pixels, source.seek(1.0).pixels)

    def test_same_time_is_deterministic(self):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0)
        np.testing.assert_array_equal(source.seek(0.7).pixels, source.seek(0.7).pixels)

    @pytest.mark.parametrize("t", [-0.1, 3.5])
    def test_out_of_range_raises(self, t):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0)
        with pytest.raises(SeekError):
            source.seek(t)

    def test_injected_failure(self):
        source = SyntheticMediaSource(width=8, height=6, duration=3.0, fail_at=[1.25])
        with pytest.raises(SeekError) as excinfo:
            source.seek(1.2505)
        assert excinfo.value.timestamp == 1.2505
        assert source.seek(1.3).timestamp == 1.3


class TestSimulatedInferenceEngine:
    def test_output_shape_and_range(self):
        engine = SimulatedInferenceEngine(scale=2)
        handle = engine.load("any")
        luma = np.random.default_rng(5).random((1, 1, 6, 8)).astype(np.float32)
        out = engine.run(handle, luma)
        assert out.shape == (1, 1, 12, 16)
        assert out.dtype == np.float32
        assert out.min() >= 0.0
        assert out.max() <= 1.0
        assert engine.calls == 1

    def test_load_failure(self):
        with pytest.raises(EngineLoadError):
            SimulatedInferenceEngine(fail_load=True).load("model.onnx")

    def test_slow_calls_use_slow_latency(self):
        sleep = MagicMock()
        engine = SimulatedInferenceEngine(latency_s=0.01, slow_every=2, slow_latency_s=0.5, sleep=sleep)
        handle = engine.load("any")
        luma = np.zeros((1, 1, 2, 2), dtype=np.float32)
        engine.run(handle, luma)
        engine.run(handle, luma)
        assert [c.args[0] for c in sleep.call_args_list] == [0.01, 0.5]

    def test_periodic_failures(self):
        engine = SimulatedInferenceEngine(fail_every=3, sleep=MagicMock())
        handle = engine.load("any")
        luma = np.zeros((1, 1, 2, 2), dtype=np.float32)
        engine.run(handle, luma)
        engine.run(handle, luma)
        with pytest.raises(InferenceRunError):
            engine.run(handle, luma)
        engine.run(handle, luma)
