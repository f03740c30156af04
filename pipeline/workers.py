"""Inference invocation and the neural frame path."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, NamedTuple, Optional

import numpy as np

from buffer import RawFrame, UpscaledFrame
from config import INFERENCE_DEADLINE_MS, INFERENCE_WORKERS, SCALE_FACTOR
from preprocessor import Preprocessor, classical_upscale
from reconstructor import luma_preview, merge

from pipeline.errors import InferenceRunError, InferenceTimeout
from pipeline.types import EngineHandle, InferenceEngine, InferenceOutcome, NeuralResult


class InferenceInvoker:
    """Runs one engine call per frame, raced against a deadline."""

    def __init__(
        self,
        *,
        engine: InferenceEngine,
        handle: EngineHandle,
        deadline_ms: float = INFERENCE_DEADLINE_MS,
        max_workers: int = INFERENCE_WORKERS,
        on_timing: Optional[Callable[[float, bool], None]] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.engine = engine
        self.handle = handle
        self.deadline_ms = deadline_ms
        self.on_timing = on_timing
        self._timer = timer
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="inference")
        self._late_results = 0
        self._late_lock = threading.Lock()

    def invoke(self, luma: np.ndarray, deadline_ms: Optional[float] = None) -> InferenceOutcome:
        """
        Run the engine on a [1, 1, H, W] luma tensor.

        Returns:
            InferenceOutcome with output set on success, or error set to
            InferenceTimeout / InferenceRunError. Never retries.
        """
        deadline_ms = self.deadline_ms if deadline_ms is None else deadline_ms
        started = self._timer()
        future = self._executor.submit(self.engine.run, self.handle, luma)

        try:
            output = future.result(timeout=deadline_ms / 1000.0)
        except FutureTimeout:
            # The call keeps running; its result is dropped when it lands.
            future.cancel()
            future.add_done_callback(self._discard_late_result)
            return self._finish(started, None, InferenceTimeout(deadline_ms))
        except Exception as exc:
            return self._finish(started, None, InferenceRunError(f"Engine run failed: {exc}"))

        try:
            output = self._validate_output(output)
        except InferenceRunError as exc:
            return self._finish(started, None, exc)
        return self._finish(started, output, None)

    def late_results(self) -> int:
        """Return number of engine calls that completed after their deadline."""
        with self._late_lock:
            return self._late_results

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _finish(self, started: float, output, error) -> InferenceOutcome:
        outcome = InferenceOutcome(output=output, error=error, started=started, finished=self._timer())
        if self.on_timing:
            self.on_timing(outcome.elapsed_ms, outcome.ok)
        return outcome

    def _discard_late_result(self, future: Future) -> None:
        if future.cancelled():
            return
        with self._late_lock:
            self._late_results += 1
        exc = future.exception()
        if exc is not None:
            logging.info(f"Late inference call failed after deadline: {exc}")
        else:
            logging.debug("Discarded inference result that arrived after its deadline")

    @staticmethod
    def _validate_output(output) -> np.ndarray:
        output = np.asarray(output)
        if output.ndim != 4 or output.shape[0] != 1 or output.shape[1] != 1:
            raise InferenceRunError(f"Expected [1, 1, H, W] output, got {output.shape}")
        return output


def process_neural_frame(
    frame: RawFrame,
    *,
    preprocessor: Preprocessor,
    invoker: InferenceInvoker,
    deadline_ms: Optional[float] = None,
    timestamp: Optional[float] = None,
    timer: Callable[[], float] = time.perf_counter,
) -> NeuralResult:
    """
    Split, infer luma, resample chroma and merge one frame.

    The output is stamped with timestamp (the master-clock time it is shown
    at) when given, otherwise with the decoded frame's own timestamp.
    """

    t0 = timer()
    preprocessed = preprocessor.process_frame(frame)
    t1 = timer()

    outcome = invoker.invoke(preprocessed.luma, deadline_ms)
    extraction_ms = (t1 - t0) * 1000.0
    if not outcome.ok:
        return NeuralResult(
            frame=None,
            luma_preview=None,
            outcome=outcome,
            extraction_ms=extraction_ms,
            postprocess_ms=0.0,
            total_ms=(timer() - t0) * 1000.0,
        )

    t2 = timer()
    up_y = outcome.output[0, 0]
    out_h, out_w = up_y.shape
    up_u, up_v = preprocessor.resample_chroma(preprocessed, out_w, out_h)
    pixels = merge(up_y, up_u, up_v, out_w, out_h)
    t3 = timer()

    return NeuralResult(
        frame=UpscaledFrame(
            timestamp=frame.timestamp if timestamp is None else timestamp,
            width=out_w,
            height=out_h,
            pixels=pixels,
        ),
        luma_preview=luma_preview(up_y),
        outcome=outcome,
        extraction_ms=extraction_ms,
        postprocess_ms=(t3 - t2) * 1000.0,
        total_ms=(t3 - t0) * 1000.0,
    )


class StillResult(NamedTuple):
    """Single-image upscale output."""

    neural: Optional[np.ndarray]
    luma_preview: Optional[np.ndarray]
    classical: np.ndarray
    error: Optional[Exception]


def upscale_still(
    frame: RawFrame,
    invoker: InferenceInvoker,
    scale: int = SCALE_FACTOR,
    deadline_ms: Optional[float] = None,
) -> StillResult:
    """Upscale one image both ways, outside of timed playback."""

    classical = classical_upscale(frame, scale)
    result = process_neural_frame(
        frame,
        preprocessor=Preprocessor(),
        invoker=invoker,
        deadline_ms=deadline_ms,
    )
    if result.frame is None:
        return StillResult(neural=None, luma_preview=None, classical=classical, error=result.outcome.error)
    return StillResult(
        neural=result.frame.pixels,
        luma_preview=result.luma_preview,
        classical=classical,
        error=None,
    )
