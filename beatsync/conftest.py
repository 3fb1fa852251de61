"""Shared synthetic signals for the engine tests."""

import numpy as np
import pytest


def make_click_track(sample_rate: int, click_times, duration: float,
                     amplitude: float = 0.9, noise: float = 1e-6, seed: int = 0) -> np.ndarray:
    """Single-sample clicks on a near-silent noise floor."""
    rng = np.random.default_rng(seed)
    signal = rng.normal(0.0, noise, int(duration * sample_rate))
    for t in click_times:
        signal[int(round(t * sample_rate))] += amplitude
    return signal


@pytest.fixture
def click_track():
    return make_click_track


@pytest.fixture
def half_second_clicks():
    """Twenty clicks every 0.5s starting at 0.25s."""
    return [0.25 + 0.5 * k for k in range(20)]
