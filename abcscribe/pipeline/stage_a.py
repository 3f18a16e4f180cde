"""
Stage A — Load & Filter

This module reads note events produced by the pitch-detection model and
drops detections whose amplitude falls below the sensitivity threshold.
"""

from __future__ import annotations

import csv
import json
import logging
import math
import os
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .config import DEFAULT_CONFIG, PipelineConfig
from .models import NoteEvent, NoteEventFormatError, QuantizedNote

logger = logging.getLogger(__name__)

# JSON key aliases: camelCase as emitted by the model wrapper, snake_case as in NoteEvent
_JSON_KEYS = {
    "start_time_seconds": ("startTimeSeconds", "start_time_seconds", "startTime"),
    "duration_seconds": ("durationSeconds", "duration_seconds", "duration"),
    "pitch_midi": ("pitchMidi", "pitch_midi"),
    "amplitude": ("amplitude",),
}


def _pick(record: Dict[str, Any], aliases: Iterable[str]) -> Any:
    for name in aliases:
        if name in record:
            return record[name]
    raise KeyError(next(iter(aliases)))


def _finite(name: str, value: Any) -> float:
    # json.load and float() both accept NaN and Infinity
    number = float(value)
    if not math.isfinite(number):
        raise NoteEventFormatError(f"{name} must be a finite number, got {value!r}")
    return number


def _event_from_json(record: Dict[str, Any]) -> NoteEvent:
    values = {
        field_name: _finite(field_name, _pick(record, aliases))
        for field_name, aliases in _JSON_KEYS.items()
    }
    return NoteEvent(**values)


def _event_from_csv(row: Dict[str, str]) -> NoteEvent:
    # Basic Pitch CSV: start_time_s,end_time_s,pitch_midi,velocity[,pitch_bend...]
    start = _finite("start_time_s", row["start_time_s"])
    end = _finite("end_time_s", row["end_time_s"])
    velocity = _finite("velocity", row.get("velocity") or row.get("amplitude") or 0.0)
    if velocity > 1.0:  # MIDI velocity
        velocity = velocity / 127.0
    return NoteEvent(
        start_time_seconds=start,
        duration_seconds=end - start,
        pitch_midi=_finite("pitch_midi", row["pitch_midi"]),
        amplitude=velocity,
    )


def load_note_events(path: str) -> List[NoteEvent]:
    """Read note events from a JSON array or a Basic Pitch style CSV file."""
    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            if ext == ".csv":
                reader = csv.DictReader(f)
                events = [_event_from_csv(row) for row in reader]
            else:
                payload = json.load(f)
                if isinstance(payload, dict):
                    payload = payload.get("notes", payload.get("events"))
                if not isinstance(payload, list):
                    raise NoteEventFormatError(f"{path}: expected a list of note events")
                events = [_event_from_json(rec) for rec in payload]
    except NoteEventFormatError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise NoteEventFormatError(f"{path}: malformed note event ({e})") from e

    logger.info("Loaded %d note events from %s", len(events), path)
    return events


def confidence_threshold(sensitivity: str, config: PipelineConfig = DEFAULT_CONFIG) -> float:
    thresholds = config.stage_a.confidence_thresholds
    if sensitivity not in thresholds:
        raise ValueError(
            f"Unknown sensitivity {sensitivity!r}; expected one of {sorted(thresholds)}"
        )
    return float(thresholds[sensitivity])


def filter_notes(
    events: List[NoteEvent],
    sensitivity: Optional[str] = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> List[NoteEvent]:
    """Keep events with ``amplitude >= threshold``; order is preserved.

    An empty result is returned as-is; the caller decides whether that is
    a failure.
    """
    mode = sensitivity or config.stage_a.default_sensitivity
    threshold = confidence_threshold(mode, config)
    if not events:
        return []

    amplitudes = np.array([e.amplitude for e in events], dtype=float)
    keep = amplitudes >= threshold
    kept = [e for e, k in zip(events, keep) if k]
    logger.debug("Filter (%s, >= %.2f): kept %d of %d", mode, threshold, len(kept), len(events))
    return kept


def reduce_chords(notes: List[QuantizedNote]) -> List[QuantizedNote]:
    """Keep only the highest pitch starting at each tick (melody line)."""
    top: Dict[int, QuantizedNote] = {}
    for n in notes:
        best = top.get(n.start_tick)
        if best is None or n.pitch > best.pitch:
            top[n.start_tick] = n
    chosen = {id(n) for n in top.values()}
    return [n for n in notes if id(n) in chosen]
