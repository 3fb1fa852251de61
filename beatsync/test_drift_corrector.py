"""Tests for tap and onset drift correction."""

import pytest

from .beat_grid import BeatGrid
from .drift_corrector import CorrectionConfig, DriftCorrector
from .events import SYSTEM_AUDIO_TRUST, OnsetEvent


def test_tap_error_nudges_phase():
    grid = BeatGrid.from_bpm(120, phase_anchor=0.0)
    drift = DriftCorrector()

    drift.correct_from_tap(grid, 0.02)

    assert grid.phase_anchor == pytest.approx(0.003)
    assert grid.beat_interval == pytest.approx(0.5)
    assert drift.recent_errors == [0.02]


def test_persistent_late_taps_shorten_beat():
    grid = BeatGrid.from_bpm(120, phase_anchor=0.0)
    drift = DriftCorrector()

    for _ in range(6):
        drift.correct_from_tap(grid, 0.02)

    assert grid.beat_interval == pytest.approx(0.499)
    assert grid.phase_anchor == pytest.approx(6 * 0.003)
    assert drift.recent_errors == []


def test_small_mean_error_leaves_tempo_alone():
    grid = BeatGrid.from_bpm(120, phase_anchor=0.0)
    drift = DriftCorrector()

    for error in (0.01, -0.02, 0.03, 0.01, 0.0, 0.02):
        drift.correct_from_tap(grid, error)

    assert grid.beat_interval == 0.5
    assert len(drift.recent_errors) == 6


def test_bias_needs_minimum_samples():
    grid = BeatGrid.from_bpm(120, phase_anchor=0.0)
    drift = DriftCorrector(CorrectionConfig(min_error_samples=3, error_window=3))

    drift.correct_from_tap(grid, -0.03)
    drift.correct_from_tap(grid, -0.03)
    assert grid.beat_interval == 0.5

    drift.correct_from_tap(grid, -0.03)
    assert grid.beat_interval == pytest.approx(0.5015)


def test_tempo_correction_respects_clamp():
    grid = BeatGrid.from_bpm(300, phase_anchor=0.0)
    drift = DriftCorrector()

    for _ in range(6):
        drift.correct_from_tap(grid, 0.02)

    assert grid.bpm == pytest.approx(300.0)


def test_onset_near_beat_applies_trusted_fraction():
    grid = BeatGrid.from_bpm(120, phase_anchor=10.0)
    drift = DriftCorrector()

    applied = drift.correct_from_onset(grid, OnsetEvent(10.04, SYSTEM_AUDIO_TRUST, source="system"))

    assert applied
    assert grid.phase_anchor == pytest.approx(10.0048)
    assert grid.beat_interval == 0.5
    assert drift.recent_errors == []


def test_onset_far_from_beat_is_rejected():
    grid = BeatGrid.from_bpm(120, phase_anchor=10.0)
    before = grid.to_dict()
    drift = DriftCorrector()

    assert not drift.correct_from_onset(grid, OnsetEvent(10.2, SYSTEM_AUDIO_TRUST))
    assert not drift.correct_from_onset(grid, OnsetEvent(10.15, SYSTEM_AUDIO_TRUST))
    assert grid.to_dict() == before


def test_source_stats_and_reset():
    grid = BeatGrid.from_bpm(120, phase_anchor=0.0)
    drift = DriftCorrector()

    drift.correct_from_onset(grid, OnsetEvent(1.01, 0.06, source="mic"))
    drift.correct_from_onset(grid, OnsetEvent(1.25, 0.06, source="mic"))
    drift.correct_from_onset(grid, OnsetEvent(2.0, 0.12, source="system"))

    assert drift.source_stats["mic"].applied == 1
    assert drift.source_stats["mic"].rejected == 1
    assert drift.source_stats["system"].applied == 1

    drift.correct_from_tap(grid, 0.01)
    drift.reset()
    assert drift.source_stats == {}
    assert drift.recent_errors == []


def test_invalid_trust_rejected():
    with pytest.raises(ValueError):
        OnsetEvent(1.0, 0.0)
    with pytest.raises(ValueError):
        OnsetEvent(1.0, 1.5)


def test_invalid_correction_config():
    with pytest.raises(ValueError):
        CorrectionConfig(error_window=3, min_error_samples=6)
