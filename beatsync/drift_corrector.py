"""
Drift Correction Module
Keeps a locked beat grid aligned with the player's taps and with onsets
reported by trusted audio sources.
"""

from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional

from .beat_grid import BeatGrid
from .events import OnsetEvent
from .logging_utils import log_event


@dataclass
class CorrectionConfig:
    """Drift correction configuration."""
    self_correction_rate: float = 0.15  # Fraction of each tap error applied to phase
    bpm_correction_rate: float = 0.05  # Fraction of mean error applied to beat interval
    error_window: int = 12  # Recent tap errors kept for tempo bias detection
    min_error_samples: int = 6  # Samples required before checking the bias
    bias_threshold: float = 0.015  # Mean error (seconds) treated as a tempo bias

    def __post_init__(self):
        if self.min_error_samples < 1 or self.error_window < self.min_error_samples:
            raise ValueError("error_window must hold at least min_error_samples errors")


@dataclass
class SourceStats:
    """Per-source correction tally."""
    applied: int = 0
    rejected: int = 0


class DriftCorrector:
    """
    Applies bounded nudges to a beat grid.

    Two cadences: every event nudges the phase anchor by a fraction of its
    error, and a persistent mean tap error nudges the beat interval.
    """

    def __init__(self, config: Optional[CorrectionConfig] = None, ok_window: float = 0.150):
        self.config = config or CorrectionConfig()
        # External onsets at or beyond this distance from a beat are dropped
        self.ok_window = ok_window
        self._errors: deque = deque(maxlen=self.config.error_window)
        self.source_stats: Dict[str, SourceStats] = {}

    @property
    def recent_errors(self) -> list:
        return list(self._errors)

    def correct_from_tap(self, grid: BeatGrid, error: float) -> None:
        """Pull the grid toward a judged tap and check for a systematic tempo bias."""
        grid.shift_phase(error * self.config.self_correction_rate)

        self._errors.append(error)
        if len(self._errors) < self.config.min_error_samples:
            return

        mean_error = sum(self._errors) / len(self._errors)
        if abs(mean_error) <= self.config.bias_threshold:
            return

        old_bpm = grid.bpm
        grid.set_beat_interval(grid.beat_interval - mean_error * self.config.bpm_correction_rate)
        self._errors.clear()
        log_event("debug", "Drift", "Tempo bias corrected",
                  mean_error_ms=f"{mean_error * 1000:.1f}",
                  bpm=f"{old_bpm:.2f}->{grid.bpm:.2f}")

    def correct_from_onset(self, grid: BeatGrid, event: OnsetEvent) -> bool:
        """
        Nudge the phase toward an external onset near a beat.

        Returns:
            True if the correction was applied, False if the onset was dropped
        """
        stats = self.source_stats.setdefault(event.source, SourceStats())
        error = grid.nearest_beat(event.timestamp).error
        if abs(error) >= self.ok_window:
            stats.rejected += 1
            log_event("debug", "Drift", "Onset too far from any beat, dropped",
                      source=event.source, error_ms=f"{error * 1000:.1f}")
            return False

        grid.shift_phase(error * event.source_trust)
        stats.applied += 1
        return True

    def reset(self) -> None:
        self._errors.clear()
        self.source_stats.clear()
