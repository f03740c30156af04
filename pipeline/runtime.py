"""Playback scheduler that keeps neural upscaling in step with the master clock."""

import logging
import math
import time
from typing import Callable, Optional

import numpy as np

from buffer import RawFrame, TemporalFrameBuffer
from config import (
    DEFAULT_TARGET_FPS,
    FPS_WINDOW_S,
    INFERENCE_DEADLINE_MS,
    INFERENCE_WORKERS,
    MAX_TARGET_FPS,
    MIN_TARGET_FPS,
    MODEL_PATH,
    ROLLING_WINDOW_SIZE,
    SCALE_FACTOR,
    TEMPORAL_BUFFER_CAPACITY,
    THROTTLE_FACTOR,
    THROTTLE_INFERENCE,
)
from metrics import MetricsEngine
from preprocessor import Preprocessor, classical_upscale

from pipeline.clock import MasterClock, SystemClock
from pipeline.errors import EngineLoadError, InferenceTimeout, SeekError
from pipeline.types import (
    EngineHandle,
    InferenceEngine,
    MediaMetadata,
    MediaSource,
    PipelineSummary,
    PlaybackState,
    PlaybackStatus,
    TickResult,
)
from pipeline.workers import InferenceInvoker, process_neural_frame


def clamp_target_fps(fps: float) -> int:
    """Clamp a requested playback rate into the supported range."""
    return int(max(MIN_TARGET_FPS, min(int(fps), MAX_TARGET_FPS)))


class PlaybackScheduler:
    """Owns playback state, the temporal buffer and metrics. Driven by tick()."""

    def __init__(
        self,
        *,
        source: Optional[MediaSource],
        engine: InferenceEngine,
        clock: Optional[MasterClock] = None,
        error_logger: Optional[Callable[[str], None]] = None,
        model_ref: str = MODEL_PATH,
        target_fps: int = DEFAULT_TARGET_FPS,
        deadline_ms: float = INFERENCE_DEADLINE_MS,
        buffer_capacity: int = TEMPORAL_BUFFER_CAPACITY,
        window_size: int = ROLLING_WINDOW_SIZE,
        fps_window_s: float = FPS_WINDOW_S,
        scale_factor: int = SCALE_FACTOR,
        inference_workers: int = INFERENCE_WORKERS,
        throttle: bool = THROTTLE_INFERENCE,
        throttle_factor: float = THROTTLE_FACTOR,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.source = source
        self.engine = engine
        self.clock = clock or SystemClock()
        self.error_logger = error_logger
        self.model_ref = model_ref
        self.target_fps = clamp_target_fps(target_fps)
        self.deadline_ms = deadline_ms
        self.scale_factor = scale_factor
        self.inference_workers = inference_workers
        self.throttle = throttle
        self.throttle_factor = throttle_factor
        self._timer = timer

        self.preprocessor = Preprocessor()
        self.frame_buffer = TemporalFrameBuffer(capacity=buffer_capacity)
        self.metrics = MetricsEngine(window_size=window_size, fps_window_s=fps_window_s)
        self.state = PlaybackState()

        self._status = PlaybackStatus.IDLE
        self._handle: Optional[EngineHandle] = None
        self._invoker: Optional[InferenceInvoker] = None
        self._metadata: Optional[MediaMetadata] = None
        self._total_frames = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def status(self) -> PlaybackStatus:
        return self._status

    @property
    def total_frames(self) -> int:
        return self._total_frames

    @property
    def backend(self) -> Optional[str]:
        return self._handle.backend if self._handle else None

    def load_engine(self) -> EngineHandle:
        """Load the model once. EngineLoadError propagates to the caller."""
        if self._handle is not None:
            return self._handle

        try:
            handle = self.engine.load(self.model_ref)
        except EngineLoadError:
            logging.error(f"Could not load inference model: {self.model_ref}")
            raise
        except Exception as exc:
            logging.error(f"Could not load inference model {self.model_ref}: {exc}")
            raise EngineLoadError(str(exc)) from exc

        self._handle = handle
        self._invoker = InferenceInvoker(
            engine=self.engine,
            handle=handle,
            deadline_ms=self.deadline_ms,
            max_workers=self.inference_workers,
            on_timing=self.metrics.record_inference,
            timer=self._timer,
        )
        logging.info(f"Inference model loaded ({handle.model_ref}), backend: {handle.backend}")
        return handle

    def load_media(self, source: MediaSource) -> None:
        """Swap the media source. Any playback in progress is discarded."""
        if self._status in (PlaybackStatus.RUNNING, PlaybackStatus.PAUSED):
            self.clock.stop()
        self.source = source
        self._metadata = None
        self._reset_session()
        self._status = PlaybackStatus.IDLE

    def start(self) -> None:
        """
        Enter Running from Idle or Stopped.

        Raises:
            EngineLoadError: If the model cannot be loaded; status stays Idle.
            RuntimeError: If no media is loaded or playback is already active.
        """
        if self._status in (PlaybackStatus.RUNNING, PlaybackStatus.PAUSED):
            raise RuntimeError("Playback is already active")
        if self.source is None:
            raise RuntimeError("No media loaded")

        self.load_engine()

        metadata = self.source.metadata()
        if metadata.duration <= 0 or metadata.width <= 0 or metadata.height <= 0:
            raise RuntimeError(f"Media is not ready: {metadata}")
        self._metadata = metadata
        self._total_frames = int(math.floor(metadata.duration * self.target_fps))

        self._reset_session()
        self.state.running = True
        self.state.start_wall_time = self._timer()
        self.clock.start()
        self._status = PlaybackStatus.RUNNING
        logging.info(
            f"Playback started: {metadata.width}x{metadata.height}, {metadata.duration:.2f}s, "
            f"{self.target_fps} fps, {self._total_frames} frames, deadline {self.deadline_ms:.0f} ms"
        )

    def pause(self) -> None:
        if self._status != PlaybackStatus.RUNNING:
            raise RuntimeError(f"Cannot pause while {self._status.value}")
        self.clock.pause()
        self.state.paused = True
        self._status = PlaybackStatus.PAUSED
        logging.info(f"Playback paused at {self.clock.time():.3f}s")

    def resume(self) -> None:
        """Continue from the current clock position, keeping buffers and counters."""
        if self._status != PlaybackStatus.PAUSED:
            raise RuntimeError(f"Cannot resume while {self._status.value}")
        self.clock.resume()
        self.state.paused = False
        self._status = PlaybackStatus.RUNNING
        logging.info(f"Playback resumed at {self.clock.time():.3f}s")

    def stop(self) -> PipelineSummary:
        """Stop playback and return the session summary."""
        if self._status in (PlaybackStatus.RUNNING, PlaybackStatus.PAUSED):
            self._finish("stopped")
        return self.get_summary()

    def close(self) -> None:
        """Release the inference worker threads. A later start() reloads the engine."""
        self.stop()
        if self._invoker is not None:
            self._invoker.shutdown()
        self._invoker = None
        self._handle = None

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def tick(self) -> Optional[TickResult]:
        """
        Run one presentation-callback step.

        Returns:
            TickResult when a new frame index was processed, None otherwise
            (paused, stopped, duplicate index, or skipped seek).
        """
        if self._status != PlaybackStatus.RUNNING:
            return None

        t = self.clock.time()
        frame_index = int(math.floor(t * self.target_fps))

        if frame_index >= self._total_frames or t >= self._metadata.duration:
            self._finish("end of media")
            return None

        # One attempt per discrete frame index.
        if frame_index == self.state.last_processed_frame_index:
            return None
        self.state.last_processed_frame_index = frame_index

        try:
            raw = self.source.seek(t)
        except SeekError as exc:
            self.state.skipped_ticks += 1
            self._report(f"Skipped frame {frame_index}: {exc}")
            return None

        self.state.processed_ticks += 1
        classical = classical_upscale(raw, self.scale_factor)
        self.metrics.count_source_frame()

        neural_display, preview, used_fallback, skipped = self._run_neural_path(raw, t, classical)

        self._record_quality(t, neural_display, classical)
        self.metrics.update_fps(self._timer())

        return TickResult(
            timestamp=t,
            frame_index=frame_index,
            total_frames=self._total_frames,
            neural_frame=neural_display,
            classical_frame=classical,
            luma_preview=preview,
            used_fallback=used_fallback,
            inference_skipped=skipped,
            neural_frames=self.state.neural_frames,
            fallback_frames=self.state.fallback_frames,
            held_frames=self.state.held_frames,
            metrics=self.metrics.snapshot(),
        )

    def _run_neural_path(self, raw: RawFrame, t: float, classical: np.ndarray):
        if self._should_throttle(t):
            self.state.held_frames += 1
            return self.frame_buffer.sample(t), None, False, True

        result = process_neural_frame(
            raw,
            preprocessor=self.preprocessor,
            invoker=self._invoker,
            deadline_ms=self.deadline_ms,
            timestamp=t,
            timer=self._timer,
        )

        if result.frame is None:
            self.state.fallback_frames += 1
            if isinstance(result.outcome.error, InferenceTimeout):
                self.state.timeouts += 1
            else:
                self.state.run_errors += 1
            self._report(f"Fallback at {t:.3f}s: {result.outcome.error}")
            # Fallback output is display-only and never enters the buffer.
            return classical, None, True, False

        self.frame_buffer.push(result.frame)
        self.state.neural_frames += 1
        self.state.last_neural_time = t
        self.metrics.record_frame(result.extraction_ms, result.postprocess_ms, result.total_ms)
        self.metrics.count_neural_frame()

        display = self.frame_buffer.sample(t)
        if display is None:
            display = classical
        return display, result.luma_preview, False, False

    def _should_throttle(self, t: float) -> bool:
        """Skip inference while the last neural frame is younger than a typical inference."""
        if not self.throttle or self.state.last_neural_time is None or not len(self.frame_buffer):
            return False
        avg_inference_ms = self.metrics.inference.average()
        if avg_inference_ms <= 0.0:
            return False
        threshold_s = avg_inference_ms * self.throttle_factor / 1000.0
        return (t - self.state.last_neural_time) < threshold_s

    def _record_quality(self, t: float, neural: np.ndarray, classical: np.ndarray) -> None:
        reference_fn = getattr(self.source, "reference", None)
        if reference_fn is None:
            return
        try:
            reference = reference_fn(t)
        except SeekError as exc:
            self._report(f"No reference frame at {t:.3f}s: {exc}")
            return
        if reference is None:
            return

        neural_cmp = neural if neural.shape[:2] == reference.pixels.shape[:2] else None
        classical_cmp = classical if classical.shape[:2] == reference.pixels.shape[:2] else None
        self.metrics.record_quality(reference.pixels, neural_cmp, classical_cmp)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def get_summary(self) -> PipelineSummary:
        """Get counters/state snapshot for current or last playback."""
        return PipelineSummary(
            status=self._status,
            processed_ticks=self.state.processed_ticks,
            neural_frames=self.state.neural_frames,
            fallback_frames=self.state.fallback_frames,
            held_frames=self.state.held_frames,
            skipped_ticks=self.state.skipped_ticks,
            timeouts=self.state.timeouts,
            run_errors=self.state.run_errors,
            evicted_frames=self.frame_buffer.evicted_frames(),
            backend=self.backend,
        )

    def _reset_session(self) -> None:
        self.state = PlaybackState()
        self.frame_buffer.clear()
        self.metrics.reset(self._timer())

    def _finish(self, reason: str) -> None:
        self.clock.stop()
        self.state.running = False
        self.state.paused = False
        self._status = PlaybackStatus.STOPPED
        logging.info(
            f"Playback {reason}: ticks={self.state.processed_ticks}, "
            f"neural={self.state.neural_frames}, fallback={self.state.fallback_frames}, "
            f"held={self.state.held_frames}, skipped={self.state.skipped_ticks}"
        )

    def _report(self, text: str) -> None:
        logging.warning(text)
        if self.error_logger:
            self.error_logger(text)
