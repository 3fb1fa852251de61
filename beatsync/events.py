"""Event objects passed between input/capture collaborators and the engine."""

from dataclasses import dataclass
from typing import Any, Optional

# Trust presets by input channel
SYSTEM_AUDIO_TRUST = 0.12  # Clean captured playback
MICROPHONE_TRUST = 0.06  # Room noise, speaker coloration


def validate_trust(trust: float) -> float:
    trust = float(trust)
    if not 0.0 < trust <= 1.0:
        raise ValueError(f"source trust must be in (0, 1], got {trust}")
    return trust


@dataclass(frozen=True)
class OnsetEvent:
    """A detected onset from one audio source."""
    timestamp: float
    source_trust: float
    source: str = "external"

    def __post_init__(self):
        validate_trust(self.source_trust)


@dataclass(frozen=True)
class TapEvent:
    """A tap from the input layer. ``screen_position`` is not used by the engine."""
    timestamp: float
    touch_count: int = 1
    screen_position: Optional[Any] = None
