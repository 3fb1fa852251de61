"""Load imported audio tracks for offline beat-map analysis."""

from pathlib import Path
from typing import Tuple

import librosa
import numpy as np


def load_track(path) -> Tuple[np.ndarray, int, int]:
    """
    Load an audio file at its native rate with all channels.

    Returns:
        (samples, sample_rate, channels); samples has shape (frames, channels)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    audio, sample_rate = librosa.load(str(path), sr=None, mono=False)
    if audio.ndim == 1:
        audio = audio[:, np.newaxis]
    else:
        audio = audio.T
    return audio, int(sample_rate), audio.shape[1]
