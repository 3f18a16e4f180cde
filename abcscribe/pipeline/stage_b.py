"""
Stage B — Grid quantization

Maps continuous start/duration values onto the fixed 16th-note tick grid.

All tick rounding goes through ``round_half_up`` (``floor(x + 0.5)``), so a
value exactly halfway between two ticks always lands on the later one
(0.5 -> 1, 1.5 -> 2, 2.5 -> 3), unlike the built-in ``round``.
"""

from __future__ import annotations

import logging
import math
from typing import List

from .config import TEMPO_BPM, TICKS_PER_BAR, TICKS_PER_BEAT
from .models import NoteEvent, NoteEventFormatError, QuantizedNote, TickGrid

logger = logging.getLogger(__name__)

MIDI_MIN = 0
MIDI_MAX = 127


def default_grid() -> TickGrid:
    return TickGrid(
        ticks_per_beat=TICKS_PER_BEAT,
        seconds_per_tick=60.0 / TEMPO_BPM / TICKS_PER_BEAT,
        ticks_per_bar=TICKS_PER_BAR,
    )


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def quantize_note(event: NoteEvent, grid: TickGrid) -> QuantizedNote:
    spt = grid.seconds_per_tick
    start_ticks = event.start_time_seconds / spt
    duration_ticks = event.duration_seconds / spt
    # 1e308 seconds is finite but overflows once scaled to ticks
    if not all(map(math.isfinite, (start_ticks, duration_ticks, event.pitch_midi))):
        raise NoteEventFormatError(f"Note event has non-finite timing or pitch: {event}")

    pitch = min(MIDI_MAX, max(MIDI_MIN, round_half_up(event.pitch_midi)))

    start_tick = round_half_up(start_ticks)
    if start_tick < 0:
        logger.debug("Clamping negative start %.4fs to tick 0", event.start_time_seconds)
        start_tick = 0

    duration_ticks = round_half_up(duration_ticks)
    if duration_ticks < 1:
        logger.debug("Clamping duration %.4fs to one tick", event.duration_seconds)
        duration_ticks = 1

    return QuantizedNote(pitch=pitch, start_tick=start_tick, duration_ticks=duration_ticks)


def quantize_notes(events: List[NoteEvent], grid: TickGrid) -> List[QuantizedNote]:
    """Quantize every event and sort by start tick (stable)."""
    q_notes = [quantize_note(e, grid) for e in events]
    # sorted() is stable: ties keep detection order
    return sorted(q_notes, key=lambda n: n.start_tick)
