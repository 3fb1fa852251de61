"""Tests for the periodic beat grid."""

import pytest

from .beat_grid import MAX_BPM, MIN_BPM, BeatGrid, clamp_bpm


def test_nearest_beat_after_calibration():
    grid = BeatGrid.from_bpm(120, phase_anchor=2.5)
    nearest = grid.nearest_beat(3.003)

    assert nearest.index == 1
    assert nearest.beat_time == pytest.approx(3.0)
    assert nearest.error == pytest.approx(0.003)


def test_nearest_beat_before_anchor():
    grid = BeatGrid.from_bpm(120, phase_anchor=2.5)
    nearest = grid.nearest_beat(0.01)

    assert nearest.index == -5
    assert nearest.error == pytest.approx(0.01)


def test_nearest_beat_ignores_which_beat_is_anchor():
    grid = BeatGrid.from_bpm(97, phase_anchor=1.234)
    for n in (-7, -1, 3, 40):
        shifted = BeatGrid.from_bpm(97, phase_anchor=1.234 + n * grid.beat_interval)
        for t in (0.0, 1.5, 4.2, 17.9):
            assert shifted.nearest_beat(t).beat_time == pytest.approx(grid.nearest_beat(t).beat_time)
            assert shifted.nearest_beat(t).error == pytest.approx(grid.nearest_beat(t).error)


def test_error_never_exceeds_half_a_beat():
    grid = BeatGrid.from_bpm(143, phase_anchor=0.37)
    for i in range(200):
        t = i * 0.0731
        assert abs(grid.nearest_beat(t).error) <= grid.beat_interval / 2 + 1e-12


def test_bpm_and_interval_stay_consistent():
    grid = BeatGrid(0.5)
    assert grid.bpm == pytest.approx(120.0)

    grid.set_bpm(90)
    assert grid.beat_interval == pytest.approx(60.0 / 90)
    grid.set_beat_interval(0.25)
    assert grid.bpm == pytest.approx(240.0)


def test_tempo_is_clamped():
    assert clamp_bpm(10) == MIN_BPM
    assert clamp_bpm(1000) == MAX_BPM
    assert BeatGrid.from_bpm(500).bpm == pytest.approx(300.0)

    grid = BeatGrid.from_bpm(120)
    grid.set_bpm(10)
    assert grid.bpm == pytest.approx(30.0)
    grid.set_beat_interval(0.1)
    assert grid.bpm == pytest.approx(300.0)
    grid.set_beat_interval(0.0)
    assert grid.bpm == pytest.approx(300.0)


def test_shift_phase_and_beat_time():
    grid = BeatGrid.from_bpm(120, phase_anchor=2.5)
    grid.shift_phase(0.003)
    assert grid.phase_anchor == pytest.approx(2.503)
    assert grid.beat_time(2) == pytest.approx(3.503)
    assert grid.beat_time(-1) == pytest.approx(2.003)


def test_copy_is_independent():
    grid = BeatGrid.from_bpm(120, phase_anchor=1.0)
    clone = grid.copy()
    clone.shift_phase(0.5)
    clone.set_bpm(60)

    assert grid.phase_anchor == 1.0
    assert grid.bpm == pytest.approx(120.0)
    assert grid.to_dict() == {'bpm': 120.0, 'beat_interval': 0.5, 'phase_anchor': 1.0}
