"""Error taxonomy for the playback pipeline."""


class PipelineError(Exception):
    """Base class for pipeline errors."""


class SeekError(PipelineError):
    """Media source could not produce a frame at the requested time."""

    def __init__(self, timestamp: float, reason: str = ""):
        self.timestamp = timestamp
        self.reason = reason
        message = f"Cannot seek to {timestamp:.3f}s"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class EngineLoadError(PipelineError):
    """Inference engine could not load its model. Fatal to starting playback."""


class InferenceTimeout(PipelineError):
    """Inference did not settle before its deadline."""

    def __init__(self, deadline_ms: float):
        self.deadline_ms = deadline_ms
        super().__init__(f"Inference exceeded {deadline_ms:.0f} ms deadline")


class InferenceRunError(PipelineError):
    """Engine-internal failure while running inference."""


class DimensionMismatch(PipelineError, ValueError):
    """Planes or frames that must share dimensions do not."""
