from collections import deque
from typing import Deque, List, NamedTuple, Optional, Tuple

import numpy as np

from config import TEMPORAL_BUFFER_CAPACITY
from pipeline.errors import DimensionMismatch


class RawFrame(NamedTuple):
    """Decoded source frame. pixels is (height, width, 3) uint8 RGB."""
    timestamp: float
    width: int
    height: int
    pixels: np.ndarray


class UpscaledFrame(NamedTuple):
    """Neural-path result. pixels is (height, width, 4) uint8 RGBA."""
    timestamp: float
    width: int
    height: int
    pixels: np.ndarray


class TemporalFrameBuffer:
    """Holds the most recent neural frames and samples them at arbitrary instants."""

    def __init__(self, capacity: int = TEMPORAL_BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._frames: Deque[UpscaledFrame] = deque()
        self._evicted_frames = 0

    def push(self, frame: UpscaledFrame) -> None:
        """
        Append a frame, evicting the oldest entry on overflow.

        Args:
            frame: Frame whose timestamp is later than every buffered frame.

        Raises:
            ValueError: If the timestamp does not advance.
        """
        if self._frames and frame.timestamp <= self._frames[-1].timestamp:
            raise ValueError(
                f"Frame at {frame.timestamp:.4f}s does not follow "
                f"buffered frame at {self._frames[-1].timestamp:.4f}s"
            )

        self._frames.append(frame)
        while len(self._frames) > self.capacity:
            self._frames.popleft()
            self._evicted_frames += 1

    def bracket(self, t: float) -> Tuple[Optional[UpscaledFrame], Optional[UpscaledFrame]]:
        """Return (latest frame at or before t, earliest frame after t)."""
        prev_frame = None
        next_frame = None
        for frame in self._frames:
            if frame.timestamp <= t:
                prev_frame = frame
            elif next_frame is None:
                next_frame = frame
                break
        return prev_frame, next_frame

    def sample(self, t: float) -> Optional[np.ndarray]:
        """
        Produce the RGBA pixels to show at instant t.

        Returns the bracketing frame blended linearly when t falls between two
        buffered frames, the latest earlier frame otherwise, and None when no
        buffered frame is at or before t.
        """
        prev_frame, next_frame = self.bracket(t)
        if prev_frame is None:
            return None
        if next_frame is None:
            return prev_frame.pixels

        if prev_frame.pixels.shape != next_frame.pixels.shape:
            raise DimensionMismatch(
                f"Cannot blend {prev_frame.pixels.shape} with {next_frame.pixels.shape}"
            )

        span = next_frame.timestamp - prev_frame.timestamp
        weight = (t - prev_frame.timestamp) / span
        blended = (
            prev_frame.pixels.astype(np.float64) * (1.0 - weight)
            + next_frame.pixels.astype(np.float64) * weight
        )
        return np.clip(np.floor(blended + 0.5), 0, 255).astype(np.uint8)

    def latest(self) -> Optional[UpscaledFrame]:
        return self._frames[-1] if self._frames else None

    def frames(self) -> List[UpscaledFrame]:
        """Return buffered frames, oldest first."""
        return list(self._frames)

    def __len__(self) -> int:
        return len(self._frames)

    def clear(self):
        """Drop all frames and reset the eviction counter."""
        self._frames.clear()
        self._evicted_frames = 0

    def evicted_frames(self) -> int:
        """Return total number of frames evicted on overflow."""
        return self._evicted_frames
