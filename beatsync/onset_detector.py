"""Onset detection for locating beats in live and imported audio.

A single spectral-flux detector serves every source. The streaming form is fed
hop-sized chunks from a capture ring buffer; the batch form pre-analyzes a whole
track to build a beat map.
"""

import numpy as np
from typing import Optional, Sequence
from dataclasses import dataclass, replace
from collections import deque
from scipy import signal

from .logging_utils import log_event

# Inter-onset intervals outside this range (30-300 BPM) are ignored by estimate_bpm
MIN_BEAT_INTERVAL = 0.2
MAX_BEAT_INTERVAL = 2.0

# Batch analysis frames are pushed through the resonator bank in chunks
_ANALYSIS_CHUNK_FRAMES = 2048


@dataclass
class OnsetConfig:
    """Configuration for onset detection."""
    sample_rate: int = 22050  # Capture rate for streaming detection
    frame_size: int = 1024
    hop_size: int = 512  # 50% overlap
    # Banded energy estimation
    band_count: int = 8
    probes_per_band: int = 4  # Resonator frequencies per band
    high_frequency_weight: float = 1.0  # Band b is weighted 1 + w * b / band_count
    # Adaptive threshold parameters
    threshold_multiplier: float = 1.5  # Multiplier on local standard deviation
    threshold_floor: float = 0.001  # Minimum spread term, keeps silence stable
    history_frames: int = 20  # Trailing flux history (streaming)
    # Temporal constraints
    min_onset_interval: float = 0.1  # Minimum time between onsets (seconds)
    downsample_target_rate: Optional[int] = None  # Batch analysis only

    def __post_init__(self):
        if self.frame_size <= 0 or self.hop_size <= 0:
            raise ValueError("frame_size and hop_size must be positive")
        if self.hop_size > self.frame_size:
            raise ValueError("hop_size cannot exceed frame_size")
        if self.band_count < 1 or self.probes_per_band < 1:
            raise ValueError("band_count and probes_per_band must be at least 1")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if self.min_onset_interval < 0:
            raise ValueError("min_onset_interval cannot be negative")
        if self.history_frames < 1:
            raise ValueError("history_frames must be at least 1")

    @classmethod
    def streaming(cls, sample_rate: int = 22050) -> 'OnsetConfig':
        """Tuning for live microphone / system audio detection."""
        return cls(sample_rate=sample_rate)

    @classmethod
    def batch(cls) -> 'OnsetConfig':
        """Tuning for offline pre-analysis of an imported track."""
        return cls(
            sample_rate=44100,
            band_count=16,
            threshold_multiplier=1.4,
            min_onset_interval=0.06,
            downsample_target_rate=11025,
        )

    @classmethod
    def energy(cls, sample_rate: int = 44100) -> 'OnsetConfig':
        """Single broadband band: a plain energy-rise detector."""
        return cls(sample_rate=sample_rate, band_count=1, probes_per_band=16,
                   high_frequency_weight=0.0)


def to_mono(samples, channels: int = 1) -> np.ndarray:
    """Downmix interleaved or (frames, channels) audio to mono."""
    if samples is None:
        return np.zeros(0)
    audio = np.asarray(samples, dtype=np.float64)
    if audio.size == 0:
        return np.zeros(0)
    if audio.ndim == 2:
        return audio.mean(axis=1)
    if channels > 1:
        usable = len(audio) - len(audio) % channels
        return audio[:usable].reshape(-1, channels).mean(axis=1)
    return audio


def merge_close_onsets(onsets: Sequence[float], min_interval: float) -> list[float]:
    """Drop any onset closer than min_interval to the previously kept one."""
    merged: list[float] = []
    for onset in onsets:
        if not merged or onset - merged[-1] >= min_interval:
            merged.append(float(onset))
    return merged


def estimate_bpm(onsets: Sequence[float]) -> float:
    """
    Estimate tempo from onset times using the median inter-onset interval.

    Returns 0.0 when there are fewer than 4 onsets or no interval falls in
    the 30-300 BPM range.
    """
    if onsets is None or len(onsets) < 4:
        return 0.0

    intervals = np.diff(np.asarray(onsets, dtype=np.float64))
    intervals = intervals[(intervals >= MIN_BEAT_INTERVAL) & (intervals <= MAX_BEAT_INTERVAL)]
    if len(intervals) == 0:
        return 0.0

    intervals.sort()
    median_interval = intervals[len(intervals) // 2]
    return 60.0 / float(median_interval)


class OnsetDetector:
    """Spectral-flux onset detection over banded resonator energies."""

    def __init__(self, config: Optional[OnsetConfig] = None, time_origin: float = 0.0):
        # Private copy so set_threshold never leaks into a shared config
        self.config = replace(config) if config else OnsetConfig()
        self.time_origin = time_origin

        n = self.config.frame_size
        self.window = signal.get_window("hann", n, fftbins=False)
        self._band_weights = 1.0 + self.config.high_frequency_weight * (
            np.arange(self.config.band_count) / self.config.band_count
        )

        # Goertzel-style resonators: one complex probe per frequency, window folded in
        half = n // 2
        band_width = half / self.config.band_count
        probe_bins = np.array([
            b * band_width + (p + 0.5) * band_width / self.config.probes_per_band
            for b in range(self.config.band_count)
            for p in range(self.config.probes_per_band)
        ])
        omega = 2.0 * np.pi * probe_bins / n
        self._resonators = (np.exp(-1j * np.outer(omega, np.arange(n))) * self.window).T

        # Streaming state
        self._frame = np.zeros(n)
        self._pending = np.zeros(0)
        self._prev_energy: Optional[np.ndarray] = None
        self.flux_history: deque = deque(maxlen=self.config.history_frames)
        self._frame_index = 0
        self._prev_flux: Optional[float] = None
        self._prev_prev_flux: Optional[float] = None
        self._prev_threshold = 0.0
        self._last_onset_frame: Optional[int] = None

    def set_threshold(self, multiplier: float) -> None:
        """Set the threshold multiplier, clamped to [0.5, 5]."""
        self.config.threshold_multiplier = float(np.clip(multiplier, 0.5, 5.0))

    def _band_energies(self, frames: np.ndarray) -> np.ndarray:
        """Per-band magnitude for each frame: RMS of the band's probe magnitudes."""
        magnitudes = np.abs(frames @ self._resonators)
        magnitudes = magnitudes.reshape(len(frames), self.config.band_count, self.config.probes_per_band)
        return np.sqrt(np.mean(magnitudes ** 2, axis=2))

    def _flux(self, previous: np.ndarray, current: np.ndarray) -> np.ndarray:
        """Half-wave rectified, high-frequency weighted band energy increase."""
        return np.sum(np.maximum(0.0, current - previous) * self._band_weights, axis=-1)

    # === Batch analysis ===

    def analyze(self, samples, sample_rate: Optional[int] = None, channels: int = 1) -> list[float]:
        """
        Detect all onsets in a complete audio buffer.

        Args:
            samples: Audio in [-1, 1], interleaved 1-D or (frames, channels)
            sample_rate: Rate of ``samples``; defaults to the configured rate
            channels: Channel count for interleaved input

        Returns:
            Ascending onset times in seconds, no two closer than min_onset_interval
        """
        rate = float(sample_rate or self.config.sample_rate)
        mono = to_mono(samples, channels)
        if len(mono) < self.config.frame_size:
            return []

        target = self.config.downsample_target_rate
        if target and rate > target:
            factor = int(rate // target)
            if factor > 1:
                mono = signal.resample_poly(mono, 1, factor)
                rate = rate / factor
        if len(mono) < self.config.frame_size:
            return []

        flux = self.compute_flux(mono)
        threshold = self._centered_threshold(flux, rate)
        onsets = self._pick_peaks(flux, threshold, rate)
        onsets = merge_close_onsets(onsets, self.config.min_onset_interval)

        log_event("debug", "Onset", "Batch analysis finished",
                  onsets=len(onsets), seconds=f"{len(mono) / rate:.1f}", rate=rate)
        return onsets

    def compute_flux(self, mono: np.ndarray) -> np.ndarray:
        """Spectral flux per hop for a mono signal (first frame is 0)."""
        n = self.config.frame_size
        hop = self.config.hop_size
        n_frames = len(mono) // hop
        padded = np.concatenate((np.zeros(n - hop), mono))
        frames = np.lib.stride_tricks.sliding_window_view(padded, n)[::hop][:n_frames]

        energies = np.concatenate([
            self._band_energies(np.ascontiguousarray(frames[i:i + _ANALYSIS_CHUNK_FRAMES]))
            for i in range(0, n_frames, _ANALYSIS_CHUNK_FRAMES)
        ])
        flux = np.zeros(n_frames)
        flux[1:] = self._flux(energies[:-1], energies[1:])
        return flux

    def _centered_threshold(self, flux: np.ndarray, rate: float) -> np.ndarray:
        """Local mean plus scaled local std over a ~250ms centered window."""
        window = max(10, int(rate / self.config.hop_size / 4))
        half = window // 2
        idx = np.arange(len(flux))
        start = np.maximum(0, idx - half)
        end = np.minimum(len(flux), idx + half)
        count = end - start

        csum = np.concatenate(([0.0], np.cumsum(flux)))
        csum_sq = np.concatenate(([0.0], np.cumsum(flux ** 2)))
        mean = (csum[end] - csum[start]) / count
        variance = np.maximum(0.0, (csum_sq[end] - csum_sq[start]) / count - mean ** 2)
        spread = np.maximum(np.sqrt(variance), self.config.threshold_floor)
        return mean + self.config.threshold_multiplier * spread

    def _pick_peaks(self, flux: np.ndarray, threshold: np.ndarray, rate: float) -> list[float]:
        hop = self.config.hop_size
        min_frames = self.config.min_onset_interval * rate / hop
        last_onset: Optional[int] = None
        onsets = []

        for i in range(1, len(flux) - 1):
            if flux[i] <= threshold[i]:
                continue
            if not (flux[i] > flux[i - 1] and flux[i] >= flux[i + 1]):
                continue
            if last_onset is not None and i - last_onset < min_frames:
                continue
            onsets.append(i * hop / rate)
            last_onset = i

        return onsets

    # === Streaming detection ===

    def push_frame(self, hop_samples) -> Optional[float]:
        """
        Advance the detector by one hop of mono samples.

        A frame is confirmed as a peak once the following frame is known, so a
        returned onset lies one hop in the past.

        Returns:
            Onset timestamp in seconds, or None
        """
        hop = self.config.hop_size
        chunk = np.asarray(hop_samples, dtype=np.float64)
        if len(chunk) != hop:
            raise ValueError(f"push_frame expects {hop} samples, got {len(chunk)}")

        self._frame = np.concatenate((self._frame[hop:], chunk))
        energy = self._band_energies(self._frame[np.newaxis, :])[0]
        if self._prev_energy is None:
            flux = 0.0
        else:
            flux = float(self._flux(self._prev_energy, energy))
        self._prev_energy = energy

        self.flux_history.append(flux)
        history = np.fromiter(self.flux_history, dtype=np.float64)
        threshold = history.mean() + self.config.threshold_multiplier * max(
            float(history.std()), self.config.threshold_floor
        )

        onset = self._confirm_previous_frame(flux)

        self._prev_prev_flux = self._prev_flux
        self._prev_flux = flux
        self._prev_threshold = threshold
        self._frame_index += 1
        return onset

    def _confirm_previous_frame(self, next_flux: float) -> Optional[float]:
        candidate = self._frame_index - 1
        if candidate < 1 or self._prev_flux is None or self._prev_prev_flux is None:
            return None

        flux = self._prev_flux
        if flux <= self._prev_threshold:
            return None
        if not (flux > self._prev_prev_flux and flux >= next_flux):
            return None

        rate = self.config.sample_rate
        hop = self.config.hop_size
        if self._last_onset_frame is not None:
            if (candidate - self._last_onset_frame) * hop / rate < self.config.min_onset_interval:
                return None

        self._last_onset_frame = candidate
        return self.time_origin + candidate * hop / rate

    def process(self, audio) -> list[float]:
        """
        Feed an arbitrary-length mono buffer and return the onsets it confirmed.

        Samples that do not fill a whole hop are kept for the next call.
        """
        if audio is None or len(audio) == 0:
            return []

        hop = self.config.hop_size
        buffer = np.concatenate((self._pending, np.asarray(audio, dtype=np.float64)))
        onsets = []
        offset = 0
        while offset + hop <= len(buffer):
            onset = self.push_frame(buffer[offset:offset + hop])
            if onset is not None:
                onsets.append(onset)
            offset += hop
        self._pending = buffer[offset:]
        return onsets

    @property
    def frames_processed(self) -> int:
        return self._frame_index

    def reset(self) -> None:
        """Reset streaming state."""
        self._frame = np.zeros(self.config.frame_size)
        self._pending = np.zeros(0)
        self._prev_energy = None
        self.flux_history.clear()
        self._frame_index = 0
        self._prev_flux = None
        self._prev_prev_flux = None
        self._prev_threshold = 0.0
        self._last_onset_frame = None
