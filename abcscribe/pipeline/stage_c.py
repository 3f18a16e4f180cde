# abcscribe/pipeline/stage_c.py
"""
Stage C — Theory / Voice assignment

Estimates a tonal center from the quantized notes and splits them into
clef-specific voices with synchronized end boundaries.

The key estimate is a pitch-class histogram heuristic, not harmonic
analysis; it is reported as a best-effort label.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List

import numpy as np

from .config import DEFAULT_CONFIG, PipelineConfig
from .models import QuantizedNote, VoiceTrack

NOTE_NAMES_SHARP = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


def estimate_key_root(notes: List[QuantizedNote]) -> int:
    """Most frequent pitch class (0 = C); ties go to the lowest pitch class."""
    if not notes:
        return 0
    pcs = np.array([n.pitch % 12 for n in notes], dtype=int)
    counts = np.bincount(pcs, minlength=12)
    # argmax returns the first maximum
    return int(np.argmax(counts))


def key_label(root: int) -> str:
    return NOTE_NAMES_SHARP[root % 12]


def round_up_to_bar(tick: int, ticks_per_bar: int) -> int:
    rem = tick % ticks_per_bar
    return tick if rem == 0 else tick + (ticks_per_bar - rem)


def _make_track(voice_id: str, notes: List[QuantizedNote], config: PipelineConfig) -> VoiceTrack:
    clef = config.stage_c.clefs.get(voice_id, "treble")
    ordered = tuple(sorted(notes, key=lambda n: n.start_tick))
    track = VoiceTrack(voice_id=voice_id, clef=clef, notes=ordered)
    return replace(track, end_tick=track.natural_end_tick)


def partition_voices(
    notes: List[QuantizedNote],
    split: bool,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> List[VoiceTrack]:
    """Return one treble voice, or a treble and a bass voice split at the staff split pitch.

    Each voice's ``end_tick`` is its own natural end; see ``synchronize_voice_ends``.
    """
    if not split:
        return [_make_track("1", list(notes), config)]

    split_pitch = int(config.stage_c.staff_split_point.get("pitch", 60))
    treble = [n for n in notes if n.pitch >= split_pitch]
    bass = [n for n in notes if n.pitch < split_pitch]
    return [_make_track("1", treble, config), _make_track("2", bass, config)]


def synchronize_voice_ends(voices: List[VoiceTrack], ticks_per_bar: int) -> List[VoiceTrack]:
    """Give every voice the largest end tick, rounded up to a whole bar."""
    if not voices:
        return []
    shared = max(max(v.end_tick, v.natural_end_tick) for v in voices)
    shared = round_up_to_bar(shared, ticks_per_bar)
    return [replace(v, end_tick=shared) for v in voices]
