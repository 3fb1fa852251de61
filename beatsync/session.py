"""
Beat Tracking Session
Owns one round of beat tracking: calibration, the beat grid, drift correction
from taps and audio sources, and hit judgement. All grid mutation happens on
the thread that calls ``on_tap`` and ``tick``.
"""

from collections import deque
from typing import Callable, Dict, List, Optional

from .audio_source import AudioSource, SourceConfig
from .beat_grid import BeatGrid
from .calibrator import TapTempoCalibrator, TrackingState
from .config import EngineConfig
from .drift_corrector import DriftCorrector
from .events import OnsetEvent, TapEvent
from .hit_judge import BeatMap, BeatMapJudge, HitJudge, JudgementResult, ScoreState, Tier
from .logging_utils import log_event
from .onset_detector import OnsetDetector, estimate_bpm


class BeatTrackingSession:
    """
    Engine entry point, owned by the caller.

    Input layer calls ``on_tap`` / ``on_reset``; capture layers feed
    ``AudioSource`` buffers, ``push_audio_frame`` or ``post_onset``; the host
    calls ``tick`` once per frame. Presentation registers callbacks.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

        self.calibrator = TapTempoCalibrator(self.config.calibration)
        self.drift = DriftCorrector(self.config.correction, ok_window=self.config.windows.ok)
        self.judge = HitJudge(self.config.windows)
        self.track_analyzer = OnsetDetector(self.config.batch_onset)

        self.sources: Dict[str, AudioSource] = {}
        for source_config in self.config.sources:
            self.add_source(AudioSource(source_config))

        # Onsets wait here until the next tick
        self._onset_queue: deque = deque()

        # Offline beat-map mode
        self.beat_map_judge: Optional[BeatMapJudge] = None
        # Score of the last finished beat-map round, until the next round starts
        self.last_round_score: Optional[ScoreState] = None

        # Callbacks
        self._judgement_callbacks: List[Callable[[Tier, float, int], None]] = []
        self._grid_locked_callbacks: List[Callable[[float], None]] = []
        self._grid_reset_callbacks: List[Callable[[], None]] = []

    @property
    def state(self) -> TrackingState:
        return self.calibrator.state

    @property
    def grid(self) -> Optional[BeatGrid]:
        return self.calibrator.grid

    @property
    def score(self) -> ScoreState:
        if self.beat_map_judge is not None:
            return self.beat_map_judge.score
        if self.last_round_score is not None:
            return self.last_round_score
        return self.judge.score

    # === Input layer ===

    def on_tap(self, timestamp: float, touch_count: int = 1,
               screen_position=None) -> Optional[JudgementResult]:
        """
        Handle one tap.

        Returns:
            The judgement when the tap was scored, otherwise None
        """
        tap = TapEvent(timestamp=timestamp, touch_count=touch_count, screen_position=screen_position)
        if tap.touch_count >= self.config.calibration.reset_touch_count:
            self.on_reset()
            return None

        if self.beat_map_judge is not None:
            result = self.beat_map_judge.judge(tap.timestamp)
            self._notify_judgement(result)
            return result

        if self.state == TrackingState.LOCKED:
            grid = self.calibrator.grid
            self.last_round_score = None
            result = self.judge.judge(grid, tap.timestamp)
            self.drift.correct_from_tap(grid, result.signed_error_seconds)
            self._notify_judgement(result)
            return result

        grid = self.calibrator.add_tap(tap.timestamp)
        if grid is not None:
            self.judge.reset()
            self.last_round_score = None
            self.drift.reset()
            self._onset_queue.clear()
            self._notify_grid_locked(grid.bpm)
        return None

    def on_reset(self) -> None:
        """
        Return to free tapping, dropping calibration, grid and round stats.

        During beat-map playback the track round restarts: every beat is
        unclaimed again and the score is cleared.
        """
        self.calibrator.reset()
        self.drift.reset()
        self.judge.reset()
        self.last_round_score = None
        if self.beat_map_judge is not None:
            self.beat_map_judge.reset()
        self._onset_queue.clear()
        log_event("info", "Session", "Session reset")
        self._notify_grid_reset()

    # === Capture layer ===

    def add_source(self, source: AudioSource) -> AudioSource:
        if source.name in self.sources:
            raise ValueError(f"Audio source already registered: {source.name}")
        self.sources[source.name] = source
        return source

    def add_source_config(self, config: SourceConfig) -> AudioSource:
        return self.add_source(AudioSource(config))

    def remove_source(self, name: str) -> None:
        self.sources.pop(name, None)

    def set_source_enabled(self, name: str, enabled: bool) -> None:
        source = self.sources.get(name)
        if source is None:
            log_event("warning", "Session", "Unknown audio source", source=name)
            return
        source.set_enabled(enabled)

    def push_audio_frame(self, source_name: str, samples, sample_rate: int, channels: int = 1) -> None:
        """Append a captured block to a registered source; detected on the next tick."""
        source = self.sources.get(source_name)
        if source is None:
            log_event("warning", "Session", "Audio for unknown source dropped", source=source_name)
            return
        source.push(samples, sample_rate, channels)

    def post_onset(self, event: OnsetEvent) -> None:
        """Queue an onset reported by a collaborator with its own detector."""
        self._onset_queue.append(event)

    def tick(self) -> int:
        """
        Poll every source and apply queued onsets in arrival order.

        Returns:
            Number of onset corrections applied to the grid
        """
        for source in self.sources.values():
            self._onset_queue.extend(source.poll())

        applied = 0
        while self._onset_queue:
            event = self._onset_queue.popleft()
            if self.state != TrackingState.LOCKED:
                continue
            if self.drift.correct_from_onset(self.calibrator.grid, event):
                applied += 1
        return applied

    # === Offline beat-map mode ===

    def analyze(self, samples, sample_rate: int, channels: int = 1) -> BeatMap:
        """Pre-analyze an imported track into a beat map."""
        onsets = self.track_analyzer.analyze(samples, sample_rate, channels)
        log_event("info", "Session", "Track analyzed",
                  onsets=len(onsets), bpm=f"{estimate_bpm(onsets):.1f}")
        return BeatMap.from_onsets(onsets)

    def load_beat_map(self, beat_map: BeatMap) -> BeatMapJudge:
        """Switch to beat-map judging; tap timestamps are then track-relative."""
        beat_map.reset()
        self.last_round_score = None
        self.beat_map_judge = BeatMapJudge(beat_map, self.config.windows)
        return self.beat_map_judge

    def update_playback(self, song_time: float) -> List[JudgementResult]:
        """Report beats whose claim window passed unhit during playback."""
        if self.beat_map_judge is None:
            return []
        misses = self.beat_map_judge.expire_before(song_time)
        for miss in misses:
            self._notify_judgement(miss)
        return misses

    def finish_track(self) -> List[JudgementResult]:
        """
        End of track: remaining beats become misses and live mode resumes.

        The round's score stays on ``score`` until the next round starts.
        """
        if self.beat_map_judge is None:
            return []
        misses = self.beat_map_judge.finish()
        for miss in misses:
            self._notify_judgement(miss)
        self.last_round_score = self.beat_map_judge.score
        self.beat_map_judge = None
        return misses

    # === Presentation callbacks ===

    def add_judgement_callback(self, callback: Callable[[Tier, float, int], None]) -> None:
        """Register callback for judgements (tier, error_ms, combo)."""
        self._judgement_callbacks.append(callback)

    def add_grid_locked_callback(self, callback: Callable[[float], None]) -> None:
        """Register callback for calibration lock (bpm)."""
        self._grid_locked_callbacks.append(callback)

    def add_grid_reset_callback(self, callback: Callable[[], None]) -> None:
        """Register callback for grid reset."""
        self._grid_reset_callbacks.append(callback)

    def _notify_judgement(self, result: JudgementResult) -> None:
        for callback in self._judgement_callbacks:
            try:
                callback(result.tier, result.error_ms, result.combo_after)
            except Exception as e:
                log_event("error", "Session", f"Judgement callback error: {e}")

    def _notify_grid_locked(self, bpm: float) -> None:
        for callback in self._grid_locked_callbacks:
            try:
                callback(bpm)
            except Exception as e:
                log_event("error", "Session", f"Grid locked callback error: {e}")

    def _notify_grid_reset(self) -> None:
        for callback in self._grid_reset_callbacks:
            try:
                callback()
            except Exception as e:
                log_event("error", "Session", f"Grid reset callback error: {e}")

    def get_status(self) -> dict:
        """Snapshot of the session for display or logging."""
        grid = self.grid
        return {
            'state': self.state.value,
            'grid': grid.to_dict() if grid else None,
            'pending_taps': len(self.calibrator.pending_taps),
            'score': self.score.to_dict(),
            'beat_map_mode': self.beat_map_judge is not None,
            'sources': {
                name: {
                    'enabled': source.enabled,
                    'trust': source.trust,
                    'onsets': source.onsets_detected,
                }
                for name, source in self.sources.items()
            },
        }
