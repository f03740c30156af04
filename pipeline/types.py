"""Data types used by the playback pipeline."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple, Optional, Protocol

import numpy as np

from buffer import RawFrame, UpscaledFrame
from metrics import MetricsSnapshot


class PlaybackStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class PlaybackState:
    """Mutable per-playback state owned by the scheduler."""

    running: bool = False
    paused: bool = False
    last_processed_frame_index: int = -1
    start_wall_time: Optional[float] = None
    last_neural_time: Optional[float] = None
    processed_ticks: int = 0
    neural_frames: int = 0
    fallback_frames: int = 0
    held_frames: int = 0
    skipped_ticks: int = 0
    timeouts: int = 0
    run_errors: int = 0


class MediaMetadata(NamedTuple):
    width: int
    height: int
    duration: float


class EngineHandle(NamedTuple):
    """Loaded model handle plus the backend that ended up executing it."""

    model_ref: str
    backend: str
    session: Any = None
    input_name: str = "input"


class MediaSource(Protocol):
    def metadata(self) -> MediaMetadata:
        ...

    def seek(self, timestamp: float) -> RawFrame:
        """Return the decoded frame at timestamp or raise SeekError."""
        ...


class InferenceEngine(Protocol):
    def load(self, model_ref: str) -> EngineHandle:
        """Load a model or raise EngineLoadError."""
        ...

    def run(self, handle: EngineHandle, tensor: np.ndarray) -> np.ndarray:
        """Map a [1, 1, H, W] luma tensor to [1, 1, H', W'] or raise."""
        ...


class InferenceOutcome(NamedTuple):
    """Result of one deadline-bounded inference attempt."""

    output: Optional[np.ndarray]
    error: Optional[Exception]
    started: float
    finished: float

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def elapsed_ms(self) -> float:
        return (self.finished - self.started) * 1000.0


class NeuralResult(NamedTuple):
    """Neural-path output for one frame plus its stage timings."""

    frame: Optional[UpscaledFrame]
    luma_preview: Optional[np.ndarray]
    outcome: InferenceOutcome
    extraction_ms: float
    postprocess_ms: float
    total_ms: float


class TickResult(NamedTuple):
    """Per-tick data consumed by the presentation layer."""

    timestamp: float
    frame_index: int
    total_frames: int
    neural_frame: np.ndarray
    classical_frame: np.ndarray
    luma_preview: Optional[np.ndarray]
    used_fallback: bool
    inference_skipped: bool
    neural_frames: int
    fallback_frames: int
    held_frames: int
    metrics: MetricsSnapshot


class PipelineSummary(NamedTuple):
    """Session counters exposed to the app orchestrator."""

    status: PlaybackStatus
    processed_ticks: int
    neural_frames: int
    fallback_frames: int
    held_frames: int
    skipped_ticks: int
    timeouts: int
    run_errors: int
    evicted_frames: int
    backend: Optional[str]
