"""
Hit Judgement Module
Classifies taps against the beat grid (live) or a pre-analyzed beat map
(offline) and keeps the running score.
"""

import bisect
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Set

from .beat_grid import BeatGrid
from .logging_utils import log_event


class Tier(Enum):
    PERFECT = "perfect"
    GOOD = "good"
    OK = "ok"
    MISS = "miss"

    @property
    def is_hit(self) -> bool:
        return self is not Tier.MISS


@dataclass(frozen=True)
class JudgementWindows:
    """Judgement windows in seconds, nested Perfect within Good within OK."""
    perfect: float = 0.045
    good: float = 0.090
    ok: float = 0.150
    beat_map_search_factor: float = 1.5  # Offline claim radius, in OK windows

    def __post_init__(self):
        if not 0 < self.perfect <= self.good <= self.ok:
            raise ValueError("judgement windows must satisfy 0 < perfect <= good <= ok")

    @property
    def beat_map_search(self) -> float:
        return self.ok * self.beat_map_search_factor

    def classify(self, error: float) -> Tier:
        abs_error = abs(error)
        if abs_error <= self.perfect:
            return Tier.PERFECT
        if abs_error <= self.good:
            return Tier.GOOD
        if abs_error <= self.ok:
            return Tier.OK
        return Tier.MISS


@dataclass(frozen=True)
class JudgementResult:
    """One judged tap."""
    tier: Tier
    signed_error_seconds: float
    combo_after: int
    tap_time: Optional[float] = None
    beat_time: Optional[float] = None

    @property
    def error_ms(self) -> float:
        return self.signed_error_seconds * 1000.0


@dataclass
class ScoreState:
    """Running combo and per-tier tallies for one round."""
    combo: int = 0
    max_combo: int = 0
    perfect_count: int = 0
    good_count: int = 0
    ok_count: int = 0
    miss_count: int = 0

    @property
    def total(self) -> int:
        return self.perfect_count + self.good_count + self.ok_count + self.miss_count

    @property
    def hit_count(self) -> int:
        return self.perfect_count + self.good_count + self.ok_count

    @property
    def accuracy(self) -> float:
        """Fraction of judgements that were hits (0.0 when nothing judged)."""
        return self.hit_count / self.total if self.total else 0.0

    def apply(self, tier: Tier) -> int:
        if tier is Tier.PERFECT:
            self.perfect_count += 1
        elif tier is Tier.GOOD:
            self.good_count += 1
        elif tier is Tier.OK:
            self.ok_count += 1
        else:
            self.miss_count += 1

        if tier.is_hit:
            self.combo += 1
            self.max_combo = max(self.max_combo, self.combo)
        else:
            self.combo = 0
        return self.combo

    def to_dict(self) -> dict:
        return {
            'combo': self.combo,
            'max_combo': self.max_combo,
            'perfect': self.perfect_count,
            'good': self.good_count,
            'ok': self.ok_count,
            'miss': self.miss_count,
            'total': self.total,
            'accuracy': self.accuracy,
        }


class HitJudge:
    """Live judgement of taps against a beat grid."""

    def __init__(self, windows: Optional[JudgementWindows] = None):
        self.windows = windows or JudgementWindows()
        self.score = ScoreState()

    def judge(self, grid: BeatGrid, tap_time: float) -> JudgementResult:
        nearest = grid.nearest_beat(tap_time)
        tier = self.windows.classify(nearest.error)
        combo = self.score.apply(tier)
        return JudgementResult(
            tier=tier,
            signed_error_seconds=nearest.error,
            combo_after=combo,
            tap_time=tap_time,
            beat_time=nearest.beat_time,
        )

    def reset(self) -> None:
        self.score = ScoreState()


@dataclass
class BeatMap:
    """Onset times of one track. Beat times are fixed; only the hit markers change."""
    beats: tuple
    consumed: Set[int] = field(default_factory=set)

    @classmethod
    def from_onsets(cls, onsets: Sequence[float]) -> 'BeatMap':
        return cls(beats=tuple(sorted(float(t) for t in onsets)))

    def __len__(self) -> int:
        return len(self.beats)

    @property
    def remaining(self) -> List[int]:
        return [i for i in range(len(self.beats)) if i not in self.consumed]

    def nearest_unconsumed(self, t: float, max_distance: float) -> Optional[int]:
        """Index of the closest beat not yet hit within ``max_distance`` of ``t``."""
        lo = bisect.bisect_left(self.beats, t - max_distance)
        hi = bisect.bisect_right(self.beats, t + max_distance)
        best: Optional[int] = None
        for i in range(lo, hi):
            if i in self.consumed:
                continue
            if best is None or abs(self.beats[i] - t) < abs(self.beats[best] - t):
                best = i
        return best

    def reset(self) -> None:
        self.consumed.clear()


class BeatMapJudge:
    """
    Offline judgement against a beat map.

    Each tap claims the nearest beat not yet hit within the search radius, so a
    beat is scored at most once and a tap scores at most one beat.
    """

    def __init__(self, beat_map: BeatMap, windows: Optional[JudgementWindows] = None):
        self.beat_map = beat_map
        self.windows = windows or JudgementWindows()
        self.score = ScoreState()
        self._expired_through = 0  # Beats before this index were checked by expire_before

    def judge(self, tap_time: float) -> JudgementResult:
        index = self.beat_map.nearest_unconsumed(tap_time, self.windows.beat_map_search)
        if index is None:
            combo = self.score.apply(Tier.MISS)
            return JudgementResult(tier=Tier.MISS, signed_error_seconds=0.0,
                                   combo_after=combo, tap_time=tap_time)

        self.beat_map.consumed.add(index)
        beat_time = self.beat_map.beats[index]
        error = tap_time - beat_time
        tier = self.windows.classify(error)
        combo = self.score.apply(tier)
        return JudgementResult(tier=tier, signed_error_seconds=error, combo_after=combo,
                               tap_time=tap_time, beat_time=beat_time)

    def expire_before(self, song_time: float) -> List[JudgementResult]:
        """Count beats whose claim window has passed unhit as misses."""
        misses = []
        beats = self.beat_map.beats
        search = self.windows.beat_map_search
        while self._expired_through < len(beats) and beats[self._expired_through] + search < song_time:
            index = self._expired_through
            self._expired_through += 1
            if index in self.beat_map.consumed:
                continue
            misses.append(self._miss_beat(index))
        return misses

    def finish(self) -> List[JudgementResult]:
        """End of track: every beat never hit is a miss."""
        misses = [self._miss_beat(i) for i in self.beat_map.remaining]
        self._expired_through = len(self.beat_map.beats)
        log_event("info", "Judge", "Track finished", **self.score.to_dict())
        return misses

    def _miss_beat(self, index: int) -> JudgementResult:
        self.beat_map.consumed.add(index)
        combo = self.score.apply(Tier.MISS)
        return JudgementResult(tier=Tier.MISS, signed_error_seconds=0.0, combo_after=combo,
                               beat_time=self.beat_map.beats[index])

    def reset(self) -> None:
        self.beat_map.reset()
        self.score = ScoreState()
        self._expired_through = 0
