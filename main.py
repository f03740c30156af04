"""Application entry point with synchronized neural upscaling and real-time UI updates."""

import datetime
import logging
import os
import sys
import time

# Ensure GUI/cache config paths are writable before importing Kivy/Matplotlib.
_APP_DIR = os.path.dirname(__file__)
if "KIVY_HOME" not in os.environ:
    os.environ["KIVY_HOME"] = os.path.join(_APP_DIR, ".kivy")
    os.makedirs(os.environ["KIVY_HOME"], exist_ok=True)
if "MPLCONFIGDIR" not in os.environ:
    os.environ["MPLCONFIGDIR"] = os.path.join(_APP_DIR, ".mplconfig")
    os.makedirs(os.environ["MPLCONFIGDIR"], exist_ok=True)

from kivy.app import App
from kivy.clock import Clock

from config import (
    DEFAULT_TARGET_FPS,
    ERROR_LOG_INTERVAL_S,
    INFERENCE_DEADLINE_MS,
    MODEL_PATH,
    UI_METRICS_RATE_HZ,
)
from pipeline.errors import EngineLoadError
from pipeline.runtime import PlaybackScheduler
from pipeline.types import PlaybackStatus
from simulator import SimulatedInferenceEngine, SyntheticMediaSource
from ui import MainScreen


def _build_engine():
    """Use the ONNX model when present, the simulated engine otherwise."""
    if os.path.exists(MODEL_PATH):
        from engine import OnnxInferenceEngine
        return OnnxInferenceEngine(), MODEL_PATH
    logging.warning(f"Model {MODEL_PATH} not found, using simulated engine")
    return SimulatedInferenceEngine(), "simulated"


class UpscalerApp(App):
    """Kivy app that drives the playback scheduler from the frame callback."""

    def build(self):
        engine, model_ref = _build_engine()
        self.source = SyntheticMediaSource()
        self.scheduler = PlaybackScheduler(
            source=self.source,
            engine=engine,
            model_ref=model_ref,
            target_fps=DEFAULT_TARGET_FPS,
            deadline_ms=INFERENCE_DEADLINE_MS,
            error_logger=self._log_error_throttled,
        )

        self._last_error_log_time = 0.0
        self._last_metrics_update = 0.0
        self._frame_event = None

        self.screen = MainScreen(
            on_start=self.start_playback,
            on_pause=self.toggle_pause,
            on_stop=self.stop_playback,
        )

        # Load the model up front so a failure is reported before Play.
        try:
            self.scheduler.load_engine()
            self.screen.append_log(f"[{self._timestamp()}] Model loaded ({self.scheduler.backend})\n")
        except EngineLoadError as e:
            self.screen.append_log(f"[{self._timestamp()}] Could not load model: {e}\n")
            self.screen.start_btn.disabled = True

        self.screen.update_playback_info(-1, 0, self.scheduler.backend)
        return self.screen

    def _timestamp(self) -> str:
        """Get current time as formatted string."""
        return datetime.datetime.now().strftime("%H:%M:%S")

    def start_playback(self):
        """Reset state and start synchronized playback."""
        try:
            self.scheduler.start()
        except (EngineLoadError, RuntimeError) as e:
            self.screen.append_log(f"[{self._timestamp()}] Could not start playback: {e}\n")
            return

        self.screen.reset_views()
        self.screen.set_controls(playing=True)
        self.screen.append_log(
            f"[{self._timestamp()}] Playback started "
            f"({self.scheduler.target_fps} fps, deadline {self.scheduler.deadline_ms:.0f} ms)\n"
        )
        self._schedule_frames()

    def toggle_pause(self):
        if self.scheduler.status == PlaybackStatus.RUNNING:
            self.scheduler.pause()
            self._unschedule_frames()
            self.screen.set_controls(playing=True, paused=True)
            self.screen.show_idle("Output: Paused")
            self.screen.append_log(f"[{self._timestamp()}] Paused\n")
        elif self.scheduler.status == PlaybackStatus.PAUSED:
            self.scheduler.resume()
            self.screen.set_controls(playing=True, paused=False)
            self.screen.append_log(f"[{self._timestamp()}] Resumed\n")
            self._schedule_frames()

    def stop_playback(self):
        """Stop playback and log the session summary."""
        self._unschedule_frames()
        summary = self.scheduler.stop()
        self.screen.set_controls(playing=False)
        self.screen.show_idle("Output: Stopped")
        self.screen.append_log(
            f"[{self._timestamp()}] Playback stopped (Ticks: {summary.processed_ticks}, "
            f"Neural: {summary.neural_frames}, Fallback: {summary.fallback_frames}, "
            f"Held: {summary.held_frames}, Skipped: {summary.skipped_ticks})\n"
        )

    def _schedule_frames(self):
        if self._frame_event is None:
            # Interval 0 fires once per rendered frame.
            self._frame_event = Clock.schedule_interval(self._on_frame, 0)

    def _unschedule_frames(self):
        if self._frame_event is not None:
            self._frame_event.cancel()
            self._frame_event = None

    def _on_frame(self, dt):
        """Presentation callback: advance the scheduler and show new output."""
        result = self.scheduler.tick()

        if self.scheduler.status == PlaybackStatus.STOPPED:
            self.stop_playback()
            return

        if result is None:
            return

        self.screen.update_frames(result)
        self.screen.update_playback_info(result.frame_index, result.total_frames, self.scheduler.backend)

        now = time.time()
        if now - self._last_metrics_update >= 1.0 / UI_METRICS_RATE_HZ:
            self._last_metrics_update = now
            self.screen.update_metrics(result.metrics)

    def _log_error_throttled(self, text: str, interval_s: float = ERROR_LOG_INTERVAL_S):
        """Log repeated per-frame problems with basic time-based throttling."""
        now = time.time()
        if now - self._last_error_log_time >= interval_s:
            self._last_error_log_time = now
            self.screen.append_log(f"[{self._timestamp()}] {text}\n")

    def on_stop(self):
        """Clean up when app closes."""
        self._unschedule_frames()
        self.scheduler.close()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    UpscalerApp().run()
