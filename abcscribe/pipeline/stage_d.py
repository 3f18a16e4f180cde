"""
Stage D — Measure packing and ABC rendering

The packer walks each voice tick by tick and emits runs (notes, chords or
rests) that never cross a bar line, so every measure sums to exactly one
bar. The emitter turns those runs into ABC text with a fixed header.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .config import (
    DEFAULT_CONFIG,
    METER,
    TEMPO_BPM,
    TICKS_PER_BAR,
    UNIT_LENGTH,
    PipelineConfig,
)
from .models import (
    PackedRun,
    PackedVoice,
    QuantizedNote,
    ScoreDocument,
    Slot,
    VoiceDeclaration,
    VoiceTrack,
)
from .stage_c import round_up_to_bar

logger = logging.getLogger(__name__)

# Semitone -> ABC note name, sharps only
PITCH_TOKENS = ["C", "^C", "D", "^D", "E", "F", "^F", "G", "^G", "A", "^A", "B"]
REST_TOKEN = "z"
TIE_MARK = "-"


# --------------------------------------------------------
# Measure packing
# --------------------------------------------------------

def build_slot_map(notes: List[QuantizedNote]) -> Tuple[Dict[int, Slot], int]:
    """Group notes by start tick.

    Returns ``(slots, max_tick)`` where ``slots`` maps each onset tick to the
    deduplicated, ascending pitches starting there plus the end of the
    longest of them, and ``max_tick`` is the latest note end.
    """
    pitches_at: Dict[int, set] = {}
    ends_at: Dict[int, int] = {}
    max_tick = 0
    for n in notes:
        pitches_at.setdefault(n.start_tick, set()).add(n.pitch)
        ends_at[n.start_tick] = max(ends_at.get(n.start_tick, 0), n.end_tick)
        max_tick = max(max_tick, n.end_tick)

    slots = {
        tick: Slot(pitches=tuple(sorted(pitches_at[tick])), end_tick=ends_at[tick])
        for tick in sorted(pitches_at)
    }
    return slots, max_tick


def pack_voice(
    voice: VoiceTrack,
    ticks_per_bar: int = TICKS_PER_BAR,
    tie_across_barlines: bool = True,
) -> PackedVoice:
    """Run-length encode one voice into bar-aligned runs covering ``[0, end)``.

    ``end`` is the later of the last note end and ``voice.end_tick``,
    rounded up to a whole bar (at least one bar). A new onset cuts any
    chord still sounding. A chord that outlasts its bar continues in the
    next bar, tied, unless ``tie_across_barlines`` is off, in which case it
    is cut at the bar line.
    """
    slots, max_tick = build_slot_map(list(voice.notes))
    end = round_up_to_bar(max(max_tick, voice.end_tick), ticks_per_bar)
    if end == 0:
        end = ticks_per_bar

    runs: List[PackedRun] = []
    sounding: Optional[Slot] = None
    tick = 0
    while tick < end:
        onset = slots.get(tick)
        if onset is not None:
            sounding = onset
        elif sounding is not None and tick >= sounding.end_tick:
            sounding = None

        bar_end = (tick // ticks_per_bar + 1) * ticks_per_bar
        limit = min(end, bar_end)
        if sounding is not None:
            limit = min(limit, sounding.end_tick)

        duration = 1
        while tick + duration < limit and (tick + duration) not in slots:
            duration += 1

        next_tick = tick + duration
        tied = False
        if sounding is not None and next_tick == bar_end and next_tick < sounding.end_tick and next_tick not in slots:
            if tie_across_barlines:
                tied = True
            else:
                sounding = None

        run = PackedRun(
            start_tick=tick,
            duration_ticks=duration,
            pitches=sounding.pitches if sounding is not None else (),
            tied=tied,
        )
        if run.start_tick // ticks_per_bar != (run.end_tick - 1) // ticks_per_bar:
            raise AssertionError(f"Run at tick {run.start_tick} crosses a bar line")
        runs.append(run)
        tick = next_tick

    return PackedVoice(voice_id=voice.voice_id, clef=voice.clef, ticks_per_bar=ticks_per_bar, runs=tuple(runs))


# --------------------------------------------------------
# ABC emission
# --------------------------------------------------------

def midi_to_abc_pitch(midi: int) -> str:
    """ABC pitch for a MIDI note; MIDI 60-71 is the lowercase octave ``c``-``b``."""
    name = PITCH_TOKENS[midi % 12]
    if midi >= 72:
        return name.lower() + "'" * ((midi - 60) // 12)
    if midi >= 60:
        return name.lower()
    if midi >= 48:
        return name
    return name + "," * ((59 - midi) // 12)


def format_duration(token: str, duration: int) -> str:
    return token if duration == 1 else f"{token}{duration}"


def format_run(run: PackedRun) -> str:
    if run.is_rest:
        return format_duration(REST_TOKEN, run.duration_ticks)
    pitches = sorted(set(run.pitches))
    if len(pitches) == 1:
        token = midi_to_abc_pitch(pitches[0])
    else:
        token = "[" + "".join(midi_to_abc_pitch(p) for p in pitches) + "]"
    token = format_duration(token, run.duration_ticks)
    return token + TIE_MARK if run.tied else token


def render_voice_lines(packed: PackedVoice, bars_per_line: int = 4) -> List[str]:
    """One ``[V:id]`` line per group of ``bars_per_line`` bars; the last ends with ``|]``."""
    bars = [" ".join(format_run(r) for r in measure) for measure in packed.measures]
    lines: List[str] = []
    for i in range(0, len(bars), bars_per_line):
        group = bars[i:i + bars_per_line]
        closing = " |]" if i + bars_per_line >= len(bars) else " |"
        lines.append(f"[V:{packed.voice_id}] " + " | ".join(group) + closing)
    return lines


def interleave_voice_lines(per_voice: List[List[str]]) -> List[str]:
    """Alternate voices line by line so each 4-bar group is stacked."""
    body: List[str] = []
    n_groups = max((len(lines) for lines in per_voice), default=0)
    for g in range(n_groups):
        for lines in per_voice:
            if g < len(lines):
                body.append(lines[g])
    return body


def resolve_program(instrument: Optional[str], config: PipelineConfig = DEFAULT_CONFIG) -> Optional[int]:
    if not instrument:
        return None
    d_conf = config.stage_d
    program = d_conf.instrument_programs.get(instrument.strip().lower())
    if program is None:
        logger.warning("Unknown instrument %r, using MIDI program %d", instrument, d_conf.default_program)
        program = d_conf.default_program
    return int(program)


def voice_name(instrument: Optional[str]) -> Optional[str]:
    """Instrument label safe for a quoted ``name="..."`` on a single V: line."""
    if not instrument:
        return None
    # quotes would close the field early, line breaks would end the header line
    cleaned = " ".join(instrument.replace('"', "").split())
    return cleaned or None


def build_document(
    voices: List[PackedVoice],
    key: str,
    instrument: Optional[str] = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> ScoreDocument:
    d_conf = config.stage_d
    program = resolve_program(instrument, config)
    name = voice_name(instrument)

    declarations = [
        VoiceDeclaration(voice_id=v.voice_id, clef=v.clef, name=name, midi_program=program)
        for v in voices
    ]
    per_voice = [render_voice_lines(v, d_conf.bars_per_line) for v in voices]

    return ScoreDocument(
        reference_number=d_conf.reference_number,
        title=d_conf.title,
        composer=d_conf.composer,
        meter=METER,
        unit_length=UNIT_LENGTH,
        tempo=f"1/4={TEMPO_BPM}",
        key=key,
        voices=declarations,
        body_lines=interleave_voice_lines(per_voice),
    )
