"""Master clocks that drive playback position."""

import time
from typing import Callable, Optional, Protocol


class MasterClock(Protocol):
    """Authoritative playback position in seconds since the start of the clip."""

    def time(self) -> float:
        ...

    def start(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...

    def stop(self) -> None:
        ...


class SystemClock:
    """Wall-clock master clock with pause support, based on time.perf_counter()."""

    def __init__(self, timer: Callable[[], float] = time.perf_counter):
        self._timer = timer
        self._started_at: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0

    def start(self) -> None:
        """Restart from position zero."""
        self._started_at = self._timer()
        self._paused_at = None
        self._paused_total = 0.0

    def pause(self) -> None:
        if self._started_at is not None and self._paused_at is None:
            self._paused_at = self._timer()

    def resume(self) -> None:
        if self._paused_at is not None:
            self._paused_total += self._timer() - self._paused_at
            self._paused_at = None

    def stop(self) -> None:
        self.pause()

    def time(self) -> float:
        if self._started_at is None:
            return 0.0
        now = self._paused_at if self._paused_at is not None else self._timer()
        return now - self._started_at - self._paused_total


class ManualClock:
    """Clock advanced explicitly by the caller. Used by tests and offline runs."""

    def __init__(self, position: float = 0.0):
        self.position = position
        self.running = False

    def start(self) -> None:
        self.position = 0.0
        self.running = True

    def pause(self) -> None:
        self.running = False

    def resume(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False

    def set(self, position: float) -> None:
        self.position = position

    def advance(self, seconds: float) -> None:
        self.position += seconds

    def time(self) -> float:
        return self.position
