"""
Beat Grid Module
Periodic timing model: tempo, beat interval and a phase anchor.
"""

import math
from dataclasses import dataclass

MIN_BPM = 30.0
MAX_BPM = 300.0


def clamp_bpm(bpm: float) -> float:
    """Clamp a tempo to the legal [30, 300] BPM range."""
    return max(MIN_BPM, min(MAX_BPM, float(bpm)))


@dataclass(frozen=True)
class NearestBeat:
    """Result of a nearest-beat lookup."""
    index: int  # Beat number relative to the phase anchor
    beat_time: float
    error: float  # Signed seconds, positive = late


class BeatGrid:
    """
    A single periodic beat grid.

    ``bpm`` and ``beat_interval`` are always derived from one another.
    ``phase_anchor`` is the time of any real beat, not necessarily beat zero.
    """

    def __init__(self, beat_interval: float, phase_anchor: float = 0.0):
        self._beat_interval = 60.0 / clamp_bpm(60.0 / beat_interval)
        self.phase_anchor = float(phase_anchor)

    @classmethod
    def from_bpm(cls, bpm: float, phase_anchor: float = 0.0) -> 'BeatGrid':
        return cls(60.0 / clamp_bpm(bpm), phase_anchor)

    @property
    def beat_interval(self) -> float:
        return self._beat_interval

    @property
    def bpm(self) -> float:
        return 60.0 / self._beat_interval

    def set_bpm(self, bpm: float) -> None:
        """Set tempo (clamped to 30-300 BPM). The phase anchor is kept."""
        self._beat_interval = 60.0 / clamp_bpm(bpm)

    def set_beat_interval(self, beat_interval: float) -> None:
        """Set beat length in seconds, clamped to the legal tempo range."""
        if beat_interval <= 0:
            self._beat_interval = 60.0 / MAX_BPM
            return
        self._beat_interval = 60.0 / clamp_bpm(60.0 / beat_interval)

    def shift_phase(self, delta: float) -> None:
        """Move the phase anchor by ``delta`` seconds."""
        self.phase_anchor += delta

    def beat_time(self, index: int) -> float:
        """Time of beat ``index`` counted from the phase anchor."""
        return self.phase_anchor + index * self._beat_interval

    def nearest_beat(self, t: float) -> NearestBeat:
        """Find the beat closest to ``t`` and the signed error to it."""
        position = (t - self.phase_anchor) / self._beat_interval
        index = int(math.floor(position + 0.5))
        beat_time = self.phase_anchor + index * self._beat_interval
        return NearestBeat(index=index, beat_time=beat_time, error=t - beat_time)

    def copy(self) -> 'BeatGrid':
        grid = BeatGrid.__new__(BeatGrid)
        grid._beat_interval = self._beat_interval
        grid.phase_anchor = self.phase_anchor
        return grid

    def to_dict(self) -> dict:
        return {
            'bpm': self.bpm,
            'beat_interval': self._beat_interval,
            'phase_anchor': self.phase_anchor,
        }

    def __repr__(self) -> str:
        return f"BeatGrid(bpm={self.bpm:.2f}, phase_anchor={self.phase_anchor:.4f})"
