"""
Engine Configuration
All tunables with their defaults, plus JSON load/save.
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

from .audio_source import SourceConfig
from .calibrator import CalibrationConfig
from .drift_corrector import CorrectionConfig
from .hit_judge import JudgementWindows
from .onset_detector import OnsetConfig


@dataclass
class EngineConfig:
    """Engine configuration."""
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    windows: JudgementWindows = field(default_factory=JudgementWindows)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    batch_onset: OnsetConfig = field(default_factory=OnsetConfig.batch)
    sources: List[SourceConfig] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        """Build a config from a (possibly partial) dict; missing keys keep defaults."""
        sources = []
        for entry in data.get('sources', []):
            entry = dict(entry)
            onset = _build(OnsetConfig, entry.pop('onset', {}), OnsetConfig.streaming())
            sources.append(_build(SourceConfig, entry, SourceConfig(), onset=onset))

        return cls(
            calibration=_build(CalibrationConfig, data.get('calibration', {}), CalibrationConfig()),
            windows=_build(JudgementWindows, data.get('windows', {}), JudgementWindows()),
            correction=_build(CorrectionConfig, data.get('correction', {}), CorrectionConfig()),
            batch_onset=_build(OnsetConfig, data.get('batch_onset', {}), OnsetConfig.batch()),
            sources=sources,
        )


def _build(cls, values: Dict[str, Any], defaults, **overrides):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(sorted(unknown))}")
    merged = {f.name: getattr(defaults, f.name) for f in fields(cls)}
    merged.update(values)
    merged.update(overrides)
    return cls(**merged)


def load_config(path) -> EngineConfig:
    """Load an EngineConfig from a JSON file."""
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file {path}: expected a JSON object")
    return EngineConfig.from_dict(data)


def save_config(config: EngineConfig, path) -> None:
    """Write an EngineConfig as JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)
