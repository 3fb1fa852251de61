"""Tests for spectral-flux onset detection and tempo estimation."""

import numpy as np
import pytest

from .onset_detector import (
    OnsetConfig,
    OnsetDetector,
    estimate_bpm,
    merge_close_onsets,
    to_mono,
)

# With hop 512, every multiple of 1/32 s falls on a hop boundary
GRID_RATE = 16384


def test_empty_or_short_input_yields_no_onsets():
    detector = OnsetDetector(OnsetConfig.batch())
    assert detector.analyze(None, 44100) == []
    assert detector.analyze([], 44100) == []
    assert detector.analyze(np.zeros(500), 44100) == []


def test_silence_yields_no_onsets():
    detector = OnsetDetector(OnsetConfig.batch())
    assert detector.analyze(np.zeros(44100 * 2), 44100) == []


def test_downsampled_clicks_found_within_one_hop(click_track, half_second_clicks):
    sample_rate = 22050
    signal = click_track(sample_rate, half_second_clicks, duration=10.5)
    detector = OnsetDetector(OnsetConfig.batch())

    onsets = detector.analyze(signal, sample_rate)

    effective_rate = sample_rate / 2
    hop_seconds = detector.config.hop_size / effective_rate
    assert len(onsets) == len(half_second_clicks)
    for detected, expected in zip(onsets, half_second_clicks):
        assert abs(detected - expected) <= hop_seconds + 1e-9

    # Hop quantization is the only tempo error source here
    bpm = estimate_bpm(onsets)
    assert abs(bpm - 120.0) <= 60.0 / (0.5 - hop_seconds) - 120.0


def test_clicks_on_hop_boundaries_are_exact(click_track, half_second_clicks):
    signal = click_track(GRID_RATE, half_second_clicks, duration=10.5)
    onsets = OnsetDetector(OnsetConfig.batch()).analyze(signal, GRID_RATE)

    assert onsets == pytest.approx(half_second_clicks)
    assert estimate_bpm(onsets) == pytest.approx(120.0)


def test_interleaved_stereo_is_downmixed(click_track, half_second_clicks):
    mono = click_track(GRID_RATE, half_second_clicks, duration=10.5)
    stereo = np.column_stack((mono, np.zeros_like(mono)))
    detector = OnsetDetector(OnsetConfig.batch())

    assert detector.analyze(stereo.ravel(), GRID_RATE, channels=2) == detector.analyze(mono, GRID_RATE)
    assert detector.analyze(stereo, GRID_RATE) == detector.analyze(mono, GRID_RATE)


def test_to_mono_averages_channels():
    interleaved = np.array([1.0, 0.0, 0.5, 0.5, -1.0, 1.0])
    assert to_mono(interleaved, channels=2) == pytest.approx([0.5, 0.5, 0.0])
    assert len(to_mono(None)) == 0


def test_energy_preset_detects_same_clicks(click_track, half_second_clicks):
    signal = click_track(GRID_RATE, half_second_clicks, duration=10.5)
    onsets = OnsetDetector(OnsetConfig.energy(GRID_RATE)).analyze(signal, GRID_RATE)
    assert onsets == pytest.approx(half_second_clicks)


def test_streaming_matches_click_times(click_track, half_second_clicks):
    signal = click_track(GRID_RATE, half_second_clicks, duration=10.5)
    detector = OnsetDetector(OnsetConfig.streaming(GRID_RATE), time_origin=100.0)

    onsets = []
    for start in range(0, len(signal), 1000):
        onsets.extend(detector.process(signal[start:start + 1000]))

    assert onsets == pytest.approx([100.0 + t for t in half_second_clicks])


def test_push_frame_reports_at_most_one_onset(click_track):
    config = OnsetConfig.streaming(GRID_RATE)
    signal = click_track(GRID_RATE, [0.25, 0.75], duration=1.5)
    detector = OnsetDetector(config)

    results = [
        detector.push_frame(signal[i:i + config.hop_size])
        for i in range(0, len(signal) - config.hop_size + 1, config.hop_size)
    ]
    found = [r for r in results if r is not None]
    assert found == pytest.approx([0.25, 0.75])

    with pytest.raises(ValueError):
        detector.push_frame(np.zeros(10))


def test_streaming_respects_min_onset_interval(click_track):
    config = OnsetConfig.streaming(GRID_RATE)
    # Second click lands 2 hops (62.5ms) after the first, inside the 100ms guard
    signal = click_track(GRID_RATE, [0.5, 0.5625], duration=1.5)
    onsets = OnsetDetector(config).process(signal)
    assert onsets == pytest.approx([0.5])


def test_reset_clears_streaming_state(click_track):
    signal = click_track(GRID_RATE, [0.25], duration=1.0)
    detector = OnsetDetector(OnsetConfig.streaming(GRID_RATE))
    first = detector.process(signal)
    detector.reset()
    assert detector.frames_processed == 0
    assert detector.process(signal) == first


def test_set_threshold_is_clamped_and_private():
    config = OnsetConfig.streaming()
    detector = OnsetDetector(config)

    detector.set_threshold(10.0)
    assert detector.config.threshold_multiplier == 5.0
    detector.set_threshold(0.1)
    assert detector.config.threshold_multiplier == 0.5
    assert config.threshold_multiplier == 1.5


def test_invalid_config_rejected():
    with pytest.raises(ValueError):
        OnsetConfig(hop_size=2048, frame_size=1024)
    with pytest.raises(ValueError):
        OnsetConfig(band_count=0)


def test_merge_close_onsets():
    assert merge_close_onsets([0.0, 0.03, 0.1, 0.12, 0.5], 0.06) == [0.0, 0.1, 0.5]
    assert merge_close_onsets([], 0.06) == []


def test_merge_close_onsets_spacing_holds_for_random_input():
    rng = np.random.default_rng(7)
    for _ in range(50):
        onsets = np.sort(rng.uniform(0.0, 5.0, size=rng.integers(0, 80)))
        merged = merge_close_onsets(onsets, 0.06)
        assert all(b - a >= 0.06 for a, b in zip(merged[:-1], merged[1:]))


def test_estimate_bpm_sentinels():
    assert estimate_bpm([]) == 0.0
    assert estimate_bpm([0.0, 0.5, 1.0]) == 0.0
    # Every interval is above 300 BPM
    assert estimate_bpm([0.0, 0.1, 0.2, 0.3, 0.4]) == 0.0


def test_estimate_bpm_ignores_outlier_interval():
    onsets = [0.5 * k for k in range(10)]
    with_gap = onsets[:5] + [t + 5.0 for t in onsets[5:]]
    assert estimate_bpm(onsets) == pytest.approx(120.0)
    assert estimate_bpm(with_gap) == pytest.approx(120.0)


def test_estimate_bpm_keeps_interval_range_endpoints():
    # Exactly 2s apart is the 30 BPM floor
    assert estimate_bpm([0.0, 2.0, 4.0, 6.0]) == pytest.approx(30.0)
    assert estimate_bpm([0.0, 2.5, 5.0, 7.5]) == 0.0
    # 0.4 and 0.8 are exact doubles of 0.2, so the gaps are exactly 0.2s (300 BPM)
    assert estimate_bpm([0.0, 0.2, 0.4, 0.8]) == pytest.approx(300.0)
