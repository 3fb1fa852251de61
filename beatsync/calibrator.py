"""
Tap Tempo Calibration Module
Turns a burst of taps into an initial beat grid.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .beat_grid import BeatGrid, clamp_bpm
from .logging_utils import log_event


class TrackingState(Enum):
    FREE_TAP = "free_tap"  # No grid yet
    CALIBRATING = "calibrating"  # Collecting calibration taps
    LOCKED = "locked"  # Grid exists and is being corrected


@dataclass
class CalibrationConfig:
    """Calibration configuration."""
    tap_count: int = 6  # Taps needed to lock (K)
    timeout: float = 3.0  # Max seconds between calibration taps
    reset_touch_count: int = 3  # Simultaneous touches that force a reset

    def __post_init__(self):
        if self.tap_count < 2:
            raise ValueError("tap_count must be at least 2")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass
class CalibrationSession:
    """Ordered calibration tap timestamps, bounded by the configured tap count."""
    capacity: int
    taps: List[float] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return len(self.taps) >= self.capacity

    @property
    def last_tap(self) -> Optional[float]:
        return self.taps[-1] if self.taps else None

    def intervals(self) -> List[float]:
        return [b - a for a, b in zip(self.taps[:-1], self.taps[1:])]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def trimmed_mean_interval(intervals: List[float]) -> float:
    """Mean of the intervals after dropping the lowest and highest quartile."""
    ordered = sorted(intervals)
    trim = len(ordered) // 4
    kept = ordered[trim:len(ordered) - trim] if trim else ordered
    return sum(kept) / len(kept)


def grid_from_taps(taps: List[float]) -> BeatGrid:
    """Build a grid quantized to a whole BPM, anchored on the final tap."""
    intervals = [b - a for a, b in zip(taps[:-1], taps[1:])]
    interval = trimmed_mean_interval(intervals)
    bpm = clamp_bpm(round_half_up(60.0 / interval))
    return BeatGrid.from_bpm(bpm, phase_anchor=taps[-1])


class TapTempoCalibrator:
    """
    Tap-tempo state machine.

    FREE_TAP -> CALIBRATING on the first tap, CALIBRATING -> LOCKED once the
    session holds ``tap_count`` taps. A gap longer than the timeout restarts the
    session from the late tap. ``reset`` returns to FREE_TAP from any state.
    """

    def __init__(self, config: Optional[CalibrationConfig] = None):
        self.config = config or CalibrationConfig()
        self._state = TrackingState.FREE_TAP
        self._session: Optional[CalibrationSession] = None
        self._grid: Optional[BeatGrid] = None

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def grid(self) -> Optional[BeatGrid]:
        return self._grid

    @property
    def pending_taps(self) -> List[float]:
        return list(self._session.taps) if self._session else []

    def add_tap(self, timestamp: float) -> Optional[BeatGrid]:
        """
        Record a calibration tap.

        Returns:
            The new BeatGrid when this tap completes calibration, else None
        """
        if self._state == TrackingState.LOCKED:
            return None

        if self._session is None:
            self._session = CalibrationSession(capacity=self.config.tap_count)
            self._state = TrackingState.CALIBRATING

        last = self._session.last_tap
        if last is not None:
            gap = timestamp - last
            if gap <= 0:
                log_event("debug", "Calibrator", "Ignoring non-increasing tap", timestamp=timestamp)
                return None
            if gap > self.config.timeout:
                log_event("info", "Calibrator", "Calibration timed out, restarting",
                          gap=f"{gap:.2f}s", taps=len(self._session.taps))
                self._session = CalibrationSession(capacity=self.config.tap_count)

        self._session.taps.append(float(timestamp))
        if not self._session.is_complete:
            return None

        self._grid = grid_from_taps(self._session.taps)
        self._session = None
        self._state = TrackingState.LOCKED
        log_event("info", "Calibrator", "Grid locked",
                  bpm=f"{self._grid.bpm:.0f}", phase_anchor=f"{self._grid.phase_anchor:.3f}")
        return self._grid

    def reset(self) -> None:
        """Drop any session and grid, returning to free tapping."""
        had_state = self._state != TrackingState.FREE_TAP
        self._state = TrackingState.FREE_TAP
        self._session = None
        self._grid = None
        if had_state:
            log_event("info", "Calibrator", "Reset to free tap")
