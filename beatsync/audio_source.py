"""
Audio Source Module
One live input channel (microphone, captured system audio) feeding the engine.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional

from .events import MICROPHONE_TRUST, OnsetEvent, validate_trust
from .logging_utils import log_event
from .onset_detector import OnsetConfig, OnsetDetector, to_mono
from .ring_buffer import SampleRingBuffer


@dataclass
class SourceConfig:
    """Configuration for one live audio source."""
    name: str = "microphone"
    trust: float = MICROPHONE_TRUST
    sample_rate: int = 22050
    buffer_seconds: float = 1.0  # Ring buffer length
    onset: OnsetConfig = field(default_factory=OnsetConfig.streaming)

    def __post_init__(self):
        validate_trust(self.trust)
        if self.buffer_seconds <= 0:
            raise ValueError("buffer_seconds must be positive")


class AudioSource:
    """
    A ring buffer, a streaming onset detector and a trust weight.

    The producer side (``write`` or ``push``) may run on any thread; ``poll``
    runs on the tick thread and never blocks.
    """

    def __init__(self, config: Optional[SourceConfig] = None):
        self.config = replace(config) if config else SourceConfig()
        self.enabled = True
        self.buffer = SampleRingBuffer(int(self.config.buffer_seconds * self.config.sample_rate))
        self.detector = self._make_detector(self.config.sample_rate)
        self._cursor = 0
        self._stream_origin = 0.0  # Time of the stream's first sample
        self.onsets_detected = 0

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def trust(self) -> float:
        return self.config.trust

    def _make_detector(self, sample_rate: int) -> OnsetDetector:
        return OnsetDetector(replace(self.config.onset, sample_rate=sample_rate))

    def start(self, time_origin: float) -> None:
        """Begin a new stream whose first sample is at ``time_origin`` seconds."""
        self.buffer.clear()
        self._stream_origin = time_origin
        self._cursor = 0
        self._resync(0)
        log_event("info", "Source", "Stream started", source=self.name,
                  rate=self.config.sample_rate, trust=self.trust)

    def write(self, mono_samples) -> None:
        """Producer side: append mono samples at the configured rate."""
        self.buffer.write(mono_samples)

    def push(self, samples, sample_rate: int, channels: int = 1) -> None:
        """Downmix and append a captured block, following any sample rate change."""
        if sample_rate != self.config.sample_rate:
            log_event("info", "Source", "Sample rate changed, restarting detector",
                      source=self.name, old=self.config.sample_rate, new=sample_rate)
            self._stream_origin += self.buffer.write_cursor / self.config.sample_rate
            self.config.sample_rate = sample_rate
            self.buffer = SampleRingBuffer(int(self.config.buffer_seconds * sample_rate))
            self.detector = self._make_detector(sample_rate)
            self._cursor = 0
            self._resync(0)
        self.write(to_mono(samples, channels))

    def poll(self) -> List[OnsetEvent]:
        """Consume new samples and return the onsets they produced."""
        if not self.enabled:
            return []

        samples, cursor = self.buffer.read_since(
            self._cursor, min_samples=self.detector.config.hop_size
        )
        if len(samples) == 0:
            return []
        if len(samples) < cursor - self._cursor:
            # Lapped by the writer: restart detection at the oldest retained sample
            self._resync(cursor - len(samples))
        self._cursor = cursor

        events = [
            OnsetEvent(timestamp=t, source_trust=self.trust, source=self.name)
            for t in self.detector.process(samples)
        ]
        self.onsets_detected += len(events)
        return events

    def set_enabled(self, enabled: bool) -> None:
        """A disabled source skips its samples and reports no onsets."""
        if enabled and not self.enabled:
            self._cursor = self.buffer.write_cursor
            self._resync(self._cursor)
        self.enabled = enabled
        log_event("info", "Source", "Enabled" if enabled else "Disabled", source=self.name)

    def _resync(self, sample_position: int) -> None:
        self.detector.reset()
        self.detector.time_origin = self._stream_origin + sample_position / self.config.sample_rate

    def set_threshold(self, multiplier: float) -> None:
        self.detector.set_threshold(multiplier)
