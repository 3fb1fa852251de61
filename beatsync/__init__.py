"""Tap-tempo beat synchronization engine."""

from .beat_grid import BeatGrid, NearestBeat
from .calibrator import TapTempoCalibrator, CalibrationConfig, TrackingState
from .drift_corrector import DriftCorrector, CorrectionConfig
from .events import OnsetEvent, TapEvent, MICROPHONE_TRUST, SYSTEM_AUDIO_TRUST
from .hit_judge import HitJudge, BeatMapJudge, BeatMap, JudgementWindows, JudgementResult, ScoreState, Tier
from .onset_detector import OnsetDetector, OnsetConfig, estimate_bpm, merge_close_onsets
from .ring_buffer import SampleRingBuffer
from .audio_source import AudioSource, SourceConfig
from .config import EngineConfig, load_config, save_config
from .session import BeatTrackingSession

__all__ = [
    'BeatGrid',
    'NearestBeat',
    'TapTempoCalibrator',
    'CalibrationConfig',
    'TrackingState',
    'DriftCorrector',
    'CorrectionConfig',
    'OnsetEvent',
    'TapEvent',
    'MICROPHONE_TRUST',
    'SYSTEM_AUDIO_TRUST',
    'HitJudge',
    'BeatMapJudge',
    'BeatMap',
    'JudgementWindows',
    'JudgementResult',
    'ScoreState',
    'Tier',
    'OnsetDetector',
    'OnsetConfig',
    'estimate_bpm',
    'merge_close_onsets',
    'SampleRingBuffer',
    'AudioSource',
    'SourceConfig',
    'EngineConfig',
    'load_config',
    'save_config',
    'BeatTrackingSession',
]
