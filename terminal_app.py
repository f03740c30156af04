"""
Terminal-only application entry point.

Runs synchronized playback over the synthetic media source and prints
per-frame decisions (neural / fallback / held) to the terminal.
"""

import argparse
import datetime
import logging
import time
from typing import Optional, Sequence

from config import (
    DEFAULT_TARGET_FPS,
    INFERENCE_DEADLINE_MS,
    SIM_DURATION_S,
    SIM_HEIGHT,
    SIM_WIDTH,
    UI_REFRESH_RATE_HZ,
)
from metrics import MetricsSnapshot
from pipeline.errors import EngineLoadError
from pipeline.runtime import PlaybackScheduler
from pipeline.types import PlaybackStatus, TickResult
from simulator import SimulatedInferenceEngine, SyntheticMediaSource


def _fmt_optional(value: Optional[float], fmt: str = ".2f") -> str:
    return "--" if value is None else format(value, fmt)


class UpscalerTerminalApp:
    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.source = SyntheticMediaSource(
            width=args.width,
            height=args.height,
            duration=args.duration,
        )

        if args.model:
            from engine import OnnxInferenceEngine
            engine = OnnxInferenceEngine()
            model_ref = args.model
        else:
            engine = SimulatedInferenceEngine(latency_s=args.sim_latency_ms / 1000.0)
            model_ref = "simulated"

        self.scheduler = PlaybackScheduler(
            source=self.source,
            engine=engine,
            model_ref=model_ref,
            target_fps=args.fps,
            deadline_ms=args.deadline_ms,
            throttle=args.throttle,
        )

        self.start_time = None

    def start(self) -> bool:
        print("=== Real-time Upscaler Terminal Mode ===")
        try:
            self.scheduler.start()
        except EngineLoadError as exc:
            print(f"Could not start playback: {exc}")
            return False

        self.start_time = time.time()
        print(f"Backend: {self.scheduler.backend} | Frames: {self.scheduler.total_frames}\n")
        return True

    def run(self):
        interval = 1.0 / UI_REFRESH_RATE_HZ
        while self.scheduler.status == PlaybackStatus.RUNNING:
            result = self.scheduler.tick()
            if result is not None:
                self._print_tick(result)
            time.sleep(interval)

    def stop(self):
        print("\nStopping playback...")
        summary = self.scheduler.stop()
        self.scheduler.close()

        elapsed = time.time() - self.start_time if self.start_time else 0.0
        print(f"Session duration: {elapsed:.2f} seconds")
        print(
            f"Ticks: {summary.processed_ticks} | Neural: {summary.neural_frames} | "
            f"Fallback: {summary.fallback_frames} (timeouts {summary.timeouts}, errors {summary.run_errors}) | "
            f"Held: {summary.held_frames} | Skipped: {summary.skipped_ticks}"
        )

    def _print_tick(self, result: TickResult):
        if result.used_fallback:
            decision = "FALLBACK"
        elif result.inference_skipped:
            decision = "HELD"
        else:
            decision = "NEURAL"

        # Only log every 10 frames unless something fell back
        if not result.used_fallback and result.frame_index % 10 != 0:
            return

        timestamp = datetime.datetime.now().strftime("%H:%M:%S")
        m: MetricsSnapshot = result.metrics
        print(
            f"[{timestamp}] Frame {result.frame_index + 1}/{result.total_frames} "
            f"@ {result.timestamp:.3f}s: {decision}"
        )
        print(
            f"  infer {m.avg_inference_ms:.1f} ms | total {m.avg_total_ms:.1f} ms | "
            f"fps src {m.fps_source} / neural {m.fps_neural} | "
            f"PSNR {_fmt_optional(m.psnr_neural)} vs {_fmt_optional(m.psnr_classical)} dB | "
            f"SSIM {_fmt_optional(m.ssim_neural, '.4f')}"
        )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronized neural upscaling playback (terminal).")
    parser.add_argument("--fps", type=int, default=DEFAULT_TARGET_FPS, help="Target playback frame rate")
    parser.add_argument("--deadline-ms", type=float, default=INFERENCE_DEADLINE_MS, help="Inference deadline")
    parser.add_argument("--duration", type=float, default=SIM_DURATION_S, help="Synthetic clip length (s)")
    parser.add_argument("--width", type=int, default=SIM_WIDTH, help="Synthetic frame width")
    parser.add_argument("--height", type=int, default=SIM_HEIGHT, help="Synthetic frame height")
    parser.add_argument("--model", default=None, help="ONNX model path (simulated engine if omitted)")
    parser.add_argument("--sim-latency-ms", type=float, default=0.0, help="Simulated engine latency")
    parser.add_argument("--throttle", action="store_true", help="Skip inference while recent output is fresh")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")
    app = UpscalerTerminalApp(args)

    if app.start():
        try:
            app.run()
        except KeyboardInterrupt:
            pass
        finally:
            app.stop()
