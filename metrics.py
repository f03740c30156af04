"""
Rolling performance and quality metrics for the playback pipeline.
"""

import math
import time
from collections import deque
from typing import Deque, NamedTuple, Optional

import numpy as np

from config import (
    FPS_WINDOW_S,
    PSNR_IDENTICAL_DB,
    ROLLING_WINDOW_SIZE,
    SSIM_C1,
    SSIM_C2,
)
from pipeline.errors import DimensionMismatch


# ==============================
# Rolling Statistics
# ==============================

class RollingWindow:
    """Fixed-capacity sample queue with a simple moving average."""

    def __init__(self, size: int = ROLLING_WINDOW_SIZE):
        if size < 1:
            raise ValueError("size must be at least 1")
        self.size = size
        self._samples: Deque[float] = deque(maxlen=size)

    def add(self, value: float) -> None:
        self._samples.append(float(value))

    def average(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def values(self) -> list:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def clear(self) -> None:
        self._samples.clear()


class FpsCounter:
    """Counts frames per wall-clock window; resets each window instead of smoothing."""

    def __init__(self, window_s: float = FPS_WINDOW_S, now: Optional[float] = None):
        self.window_s = window_s
        self._window_start = time.perf_counter() if now is None else now
        self._count = 0
        self.fps = 0

    def count(self) -> None:
        self._count += 1

    def update(self, now: Optional[float] = None) -> int:
        now = time.perf_counter() if now is None else now
        elapsed = now - self._window_start
        if elapsed >= self.window_s:
            self.fps = int(math.floor(self._count / elapsed + 0.5))
            self._count = 0
            self._window_start = now
        return self.fps

    def reset(self, now: Optional[float] = None) -> None:
        self._window_start = time.perf_counter() if now is None else now
        self._count = 0
        self.fps = 0


# ==============================
# Full-Reference Quality
# ==============================

def _check_same_shape(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[:2] != b.shape[:2]:
        raise DimensionMismatch(f"Cannot compare {a.shape} with {b.shape}")


def psnr(a: np.ndarray, b: np.ndarray) -> float:
    """PSNR over R, G, B (alpha ignored). Identical inputs give PSNR_IDENTICAL_DB."""
    _check_same_shape(a, b)
    diff = a[..., :3].astype(np.float64) - b[..., :3].astype(np.float64)
    mse = float(np.mean(diff * diff))
    if mse == 0.0:
        return PSNR_IDENTICAL_DB
    return 10.0 * math.log10((255.0 ** 2) / mse)


def _luma(pixels: np.ndarray) -> np.ndarray:
    rgb = pixels[..., :3].astype(np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


def ssim(a: np.ndarray, b: np.ndarray) -> float:
    """
    Whole-frame SSIM on luma.

    Uses one global window (mean, variance and covariance over the entire
    frame) rather than sliding 8x8/11x11 windows, so it is a coarse
    approximation of textbook SSIM.
    """
    _check_same_shape(a, b)
    ya = _luma(a)
    yb = _luma(b)
    mu_a = ya.mean()
    mu_b = yb.mean()
    var_a = ((ya - mu_a) ** 2).mean()
    var_b = ((yb - mu_b) ** 2).mean()
    cov = ((ya - mu_a) * (yb - mu_b)).mean()
    numerator = (2 * mu_a * mu_b + SSIM_C1) * (2 * cov + SSIM_C2)
    denominator = (mu_a ** 2 + mu_b ** 2 + SSIM_C1) * (var_a + var_b + SSIM_C2)
    return float(numerator / denominator)


# ==============================
# Metrics Engine
# ==============================

class MetricsSnapshot(NamedTuple):
    """Point-in-time view of rolling metrics."""

    avg_extraction_ms: float
    avg_inference_ms: float
    avg_postprocess_ms: float
    avg_total_ms: float
    last_failed_attempt_ms: Optional[float]
    fps_source: int
    fps_neural: int
    psnr_neural: Optional[float]
    psnr_classical: Optional[float]
    ssim_neural: Optional[float]
    ssim_classical: Optional[float]
    avg_psnr_neural: Optional[float]
    avg_psnr_classical: Optional[float]


class MetricsEngine:
    """Owns all rolling windows and FPS counters. Mutated by the scheduler only."""

    def __init__(self, window_size: int = ROLLING_WINDOW_SIZE, fps_window_s: float = FPS_WINDOW_S):
        self.window_size = window_size
        self.fps_window_s = fps_window_s

        self.extraction = RollingWindow(window_size)
        self.inference = RollingWindow(window_size)
        self.postprocess = RollingWindow(window_size)
        self.total = RollingWindow(window_size)
        self.failed_attempts = RollingWindow(window_size)
        self.psnr_neural_history = RollingWindow(window_size)
        self.psnr_classical_history = RollingWindow(window_size)

        self.fps_source = FpsCounter(fps_window_s)
        self.fps_neural = FpsCounter(fps_window_s)

        self._psnr_neural: Optional[float] = None
        self._psnr_classical: Optional[float] = None
        self._ssim_neural: Optional[float] = None
        self._ssim_classical: Optional[float] = None

    def reset(self, now: Optional[float] = None) -> None:
        """Clear all windows and counters, used when playback (re)starts."""
        for window in (
            self.extraction,
            self.inference,
            self.postprocess,
            self.total,
            self.failed_attempts,
            self.psnr_neural_history,
            self.psnr_classical_history,
        ):
            window.clear()
        self.fps_source.reset(now)
        self.fps_neural.reset(now)
        self._psnr_neural = None
        self._psnr_classical = None
        self._ssim_neural = None
        self._ssim_classical = None

    def record_inference(self, elapsed_ms: float, succeeded: bool) -> None:
        """Successful attempts feed the rolling average; failed ones are kept apart."""
        if succeeded:
            self.inference.add(elapsed_ms)
        else:
            self.failed_attempts.add(elapsed_ms)

    def record_frame(self, extraction_ms: float, postprocess_ms: float, total_ms: float) -> None:
        """Record stage timings of one successful neural frame."""
        self.extraction.add(extraction_ms)
        self.postprocess.add(postprocess_ms)
        self.total.add(total_ms)

    def record_quality(
        self,
        reference: np.ndarray,
        neural: Optional[np.ndarray],
        classical: Optional[np.ndarray],
    ) -> None:
        """Compare outputs against a full-resolution ground-truth frame."""
        if neural is not None:
            self._psnr_neural = psnr(reference, neural)
            self._ssim_neural = ssim(reference, neural)
            self.psnr_neural_history.add(self._psnr_neural)
        if classical is not None:
            self._psnr_classical = psnr(reference, classical)
            self._ssim_classical = ssim(reference, classical)
            self.psnr_classical_history.add(self._psnr_classical)

    def count_source_frame(self) -> None:
        self.fps_source.count()

    def count_neural_frame(self) -> None:
        self.fps_neural.count()

    def update_fps(self, now: Optional[float] = None) -> None:
        now = time.perf_counter() if now is None else now
        self.fps_source.update(now)
        self.fps_neural.update(now)

    def snapshot(self) -> MetricsSnapshot:
        failed = self.failed_attempts.values()
        return MetricsSnapshot(
            avg_extraction_ms=self.extraction.average(),
            avg_inference_ms=self.inference.average(),
            avg_postprocess_ms=self.postprocess.average(),
            avg_total_ms=self.total.average(),
            last_failed_attempt_ms=failed[-1] if failed else None,
            fps_source=self.fps_source.fps,
            fps_neural=self.fps_neural.fps,
            psnr_neural=self._psnr_neural,
            psnr_classical=self._psnr_classical,
            ssim_neural=self._ssim_neural,
            ssim_classical=self._ssim_classical,
            avg_psnr_neural=self.psnr_neural_history.average() if len(self.psnr_neural_history) else None,
            avg_psnr_classical=self.psnr_classical_history.average() if len(self.psnr_classical_history) else None,
        )
