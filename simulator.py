import math
import threading
import time
from typing import Callable, Iterable, Optional

import numpy as np
from scipy.ndimage import zoom

from buffer import RawFrame
from config import SCALE_FACTOR, SIM_DURATION_S, SIM_HEIGHT, SIM_WIDTH
from pipeline.errors import EngineLoadError, InferenceRunError, SeekError
from pipeline.types import EngineHandle, MediaMetadata


class SyntheticMediaSource:
    """Renders a moving test pattern in place of decoded video.

    frame structure:
        ground truth => (height * scale, width * scale, 3) uint8 RGB
        seek(t)      => ground truth box-averaged down by scale

    pattern:
        diagonal color gradient + drifting sinusoidal rings + a moving bar
    """

    def __init__(
        self,
        width: int = SIM_WIDTH,
        height: int = SIM_HEIGHT,
        duration: float = SIM_DURATION_S,
        scale: int = SCALE_FACTOR,
        fail_at: Optional[Iterable[float]] = None,
        fail_tolerance_s: float = 1e-3,
    ):
        self.width = width
        self.height = height
        self.duration = duration
        self.scale = scale
        self._fail_at = sorted(fail_at or [])
        self._fail_tolerance_s = fail_tolerance_s
        self.seek_count = 0

    def metadata(self) -> MediaMetadata:
        return MediaMetadata(width=self.width, height=self.height, duration=self.duration)

    def _render(self, t: float, width: int, height: int) -> np.ndarray:
        """Render the pattern at an arbitrary resolution in normalized coordinates."""

        xs = (np.arange(width) + 0.5) / width
        ys = (np.arange(height) + 0.5) / height
        x, y = np.meshgrid(xs, ys)

        # ----------------------------
        # Slow-moving components
        # ----------------------------
        cx = 0.5 + 0.25 * math.cos(2 * math.pi * 0.1 * t)
        cy = 0.5 + 0.25 * math.sin(2 * math.pi * 0.1 * t)
        radius = np.sqrt((x - cx) ** 2 + (y - cy) ** 2)
        rings = 0.5 + 0.5 * np.sin(2 * math.pi * (8.0 * radius - 0.5 * t))

        bar_x = (0.2 * t) % 1.0
        bar = (np.abs(x - bar_x) < 0.03).astype(np.float64)

        # ----------------------------
        # Compose RGB
        # ----------------------------
        r = 255.0 * (0.6 * x + 0.4 * rings)
        g = 255.0 * (0.6 * y + 0.4 * (1.0 - rings))
        b = 255.0 * (0.5 * (1.0 - x) + 0.5 * bar)

        rgb = np.stack([r, g, b], axis=-1)
        return np.clip(np.floor(rgb + 0.5), 0, 255).astype(np.uint8)

    def _check_seek(self, timestamp: float):
        if timestamp < 0 or timestamp > self.duration:
            raise SeekError(timestamp, "outside media duration")
        for fail_t in self._fail_at:
            if abs(fail_t - timestamp) <= self._fail_tolerance_s:
                raise SeekError(timestamp, "simulated decode failure")

    def reference(self, timestamp: float) -> RawFrame:
        """Full-resolution ground truth for the frame at timestamp."""
        self._check_seek(timestamp)
        width = self.width * self.scale
        height = self.height * self.scale
        return RawFrame(
            timestamp=timestamp,
            width=width,
            height=height,
            pixels=self._render(timestamp, width, height),
        )

    def seek(self, timestamp: float) -> RawFrame:
        self._check_seek(timestamp)
        self.seek_count += 1
        truth = self._render(timestamp, self.width * self.scale, self.height * self.scale)
        blocks = truth.reshape(self.height, self.scale, self.width, self.scale, 3).astype(np.float64)
        low = np.floor(blocks.mean(axis=(1, 3)) + 0.5).astype(np.uint8)
        return RawFrame(timestamp=timestamp, width=self.width, height=self.height, pixels=low)


class SimulatedInferenceEngine:
    """Stands in for a super-resolution model by cubic-zooming the luma plane.

    Latency and failures are injectable per call number (1-based):
        slow_every=3  -> calls 3, 6, 9, ... sleep slow_latency_s
        fail_every=5  -> calls 5, 10, ... raise InferenceRunError
    """

    def __init__(
        self,
        scale: int = SCALE_FACTOR,
        latency_s: float = 0.0,
        slow_every: Optional[int] = None,
        slow_latency_s: float = 0.0,
        fail_every: Optional[int] = None,
        fail_load: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.scale = scale
        self.latency_s = latency_s
        self.slow_every = slow_every
        self.slow_latency_s = slow_latency_s
        self.fail_every = fail_every
        self.fail_load = fail_load
        self._sleep = sleep
        self._lock = threading.Lock()
        self.calls = 0

    def load(self, model_ref: str) -> EngineHandle:
        if self.fail_load:
            raise EngineLoadError(f"Simulated load failure for {model_ref}")
        return EngineHandle(model_ref=model_ref, backend="simulated")

    def run(self, handle: EngineHandle, tensor: np.ndarray) -> np.ndarray:
        # Runs on inference worker threads.
        with self._lock:
            self.calls += 1
            call_number = self.calls

        if tensor.ndim != 4 or tensor.shape[:2] != (1, 1):
            raise InferenceRunError(f"Expected [1, 1, H, W] input, got {tensor.shape}")

        delay = self.latency_s
        if self.slow_every and call_number % self.slow_every == 0:
            delay = self.slow_latency_s
        if delay > 0:
            self._sleep(delay)

        if self.fail_every and call_number % self.fail_every == 0:
            raise InferenceRunError(f"Simulated engine failure on call {call_number}")

        plane = tensor[0, 0].astype(np.float64)
        up = zoom(plane, self.scale, order=3, mode="nearest")
        return np.clip(up, 0.0, 1.0).astype(np.float32)[None, None, :, :]


if __name__ == '__main__':
    source = SyntheticMediaSource()
    engine = SimulatedInferenceEngine()
    handle = engine.load("simulated")

    for t in (0.0, 0.5, 1.0):
        frame = source.seek(t)
        luma = (frame.pixels.mean(axis=-1) / 255.0).astype(np.float32)[None, None]
        out = engine.run(handle, luma)
        print(f"t={t:.2f}s | frame {frame.width}x{frame.height} -> luma {out.shape[3]}x{out.shape[2]}")
