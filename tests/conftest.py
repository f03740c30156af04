"""Shared pytest configuration and fixtures for the upscaler test suite."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from buffer import RawFrame, UpscaledFrame  # noqa: E402
from pipeline.clock import ManualClock  # noqa: E402


# =============================================================================
# Frame Fixtures
# =============================================================================

def make_rgba(value: int, width: int = 4, height: int = 3) -> np.ndarray:
    pixels = np.full((height, width, 4), value, dtype=np.uint8)
    pixels[..., 3] = 255
    return pixels


def make_upscaled(timestamp: float, value: int, width: int = 4, height: int = 3) -> UpscaledFrame:
    return UpscaledFrame(timestamp=timestamp, width=width, height=height, pixels=make_rgba(value, width, height))


@pytest.fixture
def random_frame():
    """Small RGB frame with reproducible random content."""
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(6, 8, 3), dtype=np.uint8)
    return RawFrame(timestamp=0.5, width=8, height=6, pixels=pixels)


@pytest.fixture
def gray_frame():
    pixels = np.full((6, 8, 3), 128, dtype=np.uint8)
    return RawFrame(timestamp=0.0, width=8, height=6, pixels=pixels)


# =============================================================================
# Clock Fixtures
# =============================================================================

@pytest.fixture
def manual_clock():
    return ManualClock()
