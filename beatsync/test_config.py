"""Tests for engine configuration loading."""

import pytest

from .audio_source import SourceConfig
from .config import EngineConfig, load_config, save_config
from .events import SYSTEM_AUDIO_TRUST
from .hit_judge import JudgementWindows


def sample_config():
    return EngineConfig(
        windows=JudgementWindows(perfect=0.04, good=0.08, ok=0.14),
        sources=[SourceConfig(name="system", trust=SYSTEM_AUDIO_TRUST, sample_rate=44100)],
    )


def test_dict_round_trip():
    config = sample_config()
    assert EngineConfig.from_dict(config.to_dict()) == config


def test_save_and_load(tmp_path):
    config = sample_config()
    path = tmp_path / "settings" / "engine.json"

    save_config(config, path)
    assert load_config(path) == config


def test_partial_dict_keeps_defaults():
    config = EngineConfig.from_dict({'windows': {'perfect': 0.03}, 'sources': [{'name': 'mic'}]})

    assert config.windows.perfect == 0.03
    assert config.windows.good == 0.090
    assert config.calibration.tap_count == 6
    assert config.sources[0].name == 'mic'
    assert config.sources[0].onset.history_frames == 20


def test_unknown_and_invalid_values_rejected():
    with pytest.raises(ValueError, match="great"):
        EngineConfig.from_dict({'windows': {'great': 0.01}})
    with pytest.raises(ValueError):
        EngineConfig.from_dict({'calibration': {'tap_count': 1}})
    with pytest.raises(ValueError):
        EngineConfig.from_dict({'sources': [{'trust': 2.0}]})


def test_bad_config_files(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ValueError, match="broken.json"):
        load_config(broken)

    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_config(listing)

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")
