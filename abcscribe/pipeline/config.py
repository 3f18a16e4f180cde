"""Pipeline configuration.

The timing grid (tempo, subdivision, meter) is fixed for every request and
lives in module constants. Everything else is grouped per stage in
dataclasses so callers can override individual knobs from a JSON file.
"""
from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, Optional

# Fixed grid: 120 BPM, 16th-note ticks, 4/4 bars.
TEMPO_BPM = 120
TICKS_PER_BEAT = 4
BEATS_PER_BAR = 4
TICKS_PER_BAR = TICKS_PER_BEAT * BEATS_PER_BAR
METER = "4/4"
UNIT_LENGTH = "1/16"

# General MIDI programs used for %%MIDI program directives.
GM_PROGRAMS: Dict[str, int] = {
    "piano": 0,
    "grand piano": 0,
    "bright piano": 1,
    "harpsichord": 6,
    "classical guitar": 24,
    "guitar": 25,
    "acoustic guitar": 25,
    "bass": 32,
    "acoustic bass": 32,
    "violin": 40,
    "viola": 41,
    "cello": 42,
    "contrabass": 43,
    "strings": 48,
    "choir": 52,
    "trumpet": 56,
    "trombone": 57,
    "french horn": 60,
    "oboe": 68,
    "clarinet": 71,
    "flute": 73,
    "recorder": 74,
    "synth strings": 88,
}


@dataclass
class StageAConfig:
    # Minimum amplitude kept per sensitivity mode
    confidence_thresholds: Dict[str, float] = field(
        default_factory=lambda: {"strict": 0.2, "loose": 0.1}
    )
    default_sensitivity: str = "loose"


@dataclass
class StageBConfig:
    """Mirror of the grid constants, exported with the run config for logging."""

    tempo_bpm: int = TEMPO_BPM
    ticks_per_beat: int = TICKS_PER_BEAT
    rounding: str = "half_up"


@dataclass
class StageCConfig:
    staff_split_point: Dict[str, int] = field(default_factory=lambda: {"pitch": 60})  # C4
    clefs: Dict[str, str] = field(default_factory=lambda: {"1": "treble", "2": "bass"})


@dataclass
class StageDConfig:
    reference_number: int = 1
    title: str = "Audio Transcription"
    composer: str = "abcscribe"
    bars_per_line: int = 4
    tie_across_barlines: bool = True
    instrument_programs: Dict[str, int] = field(default_factory=lambda: dict(GM_PROGRAMS))
    default_program: int = 0


@dataclass
class PipelineConfig:
    stage_a: StageAConfig = field(default_factory=StageAConfig)
    stage_b: StageBConfig = field(default_factory=StageBConfig)
    stage_c: StageCConfig = field(default_factory=StageCConfig)
    stage_d: StageDConfig = field(default_factory=StageDConfig)
    validate_output: bool = True


DEFAULT_CONFIG = PipelineConfig()


def _merge_into(target: Any, overrides: Dict[str, Any], path: str = "") -> None:
    names = {f.name for f in fields(target)}
    for key, value in overrides.items():
        dotted = f"{path}{key}"
        if key not in names:
            raise KeyError(f"Unknown config key: {dotted}")
        current = getattr(target, key)
        if is_dataclass(current) and isinstance(value, dict):
            _merge_into(current, value, path=dotted + ".")
        elif isinstance(current, dict) and isinstance(value, dict):
            merged = dict(current)
            merged.update(value)
            setattr(target, key, merged)
        else:
            setattr(target, key, value)


def apply_overrides(config: PipelineConfig, overrides: Optional[Dict[str, Any]]) -> PipelineConfig:
    """Return a deep copy of ``config`` with nested ``overrides`` applied.

    Stage B holds the fixed grid and cannot be overridden.
    """
    cfg = copy.deepcopy(config)
    if not overrides:
        return cfg
    if "stage_b" in overrides:
        raise KeyError("stage_b holds the fixed tick grid and is not configurable")
    _merge_into(cfg, overrides)
    return cfg


def load_config(path: str, base: Optional[PipelineConfig] = None) -> PipelineConfig:
    with open(path, "r", encoding="utf-8") as f:
        overrides = json.load(f)
    if not isinstance(overrides, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return apply_overrides(base or DEFAULT_CONFIG, overrides)
