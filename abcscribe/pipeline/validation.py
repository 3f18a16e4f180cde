"""Pipeline invariant checks for stage outputs and the final ABC document."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .config import TICKS_PER_BAR
from .models import PackedVoice, QuantizedNote, TranscriptionResult, VoiceTrack

logger = logging.getLogger(__name__)

HEADER_ORDER = ["X", "T", "C", "M", "L", "Q", "K"]

_PITCH = r"(?:\^?[A-G],*|\^?[a-g]'*)"
_TOKEN_RE = re.compile(
    rf"^(?P<body>z|{_PITCH}|\[(?:{_PITCH}){{2,}}\])(?P<dur>[1-9][0-9]*)?(?P<tie>-)?$"
)
_BODY_RE = re.compile(r"^\[V:(?P<id>[^\]\s]+)\] (?P<content>.*)$")


def _token_duration(token: str) -> int:
    m = _TOKEN_RE.match(token)
    if m is None:
        raise AssertionError(f"Invalid ABC token {token!r}")
    return int(m.group("dur") or 1)


def _validate_packed_voice(packed: PackedVoice) -> None:
    bar = packed.ticks_per_bar
    expected = 0
    for run in packed.runs:
        if run.start_tick != expected:
            raise AssertionError(
                f"Voice {packed.voice_id}: run starts at {run.start_tick}, expected {expected}"
            )
        if run.duration_ticks < 1:
            raise AssertionError(f"Voice {packed.voice_id}: empty run at {run.start_tick}")
        if run.start_tick // bar != (run.end_tick - 1) // bar:
            raise AssertionError(f"Voice {packed.voice_id}: run at {run.start_tick} crosses a bar line")
        if list(run.pitches) != sorted(set(run.pitches)):
            raise AssertionError(f"Voice {packed.voice_id}: chord pitches not ascending/unique")
        expected = run.end_tick
    if expected == 0 or expected % bar != 0:
        raise AssertionError(f"Voice {packed.voice_id}: end {expected} is not a whole number of bars")


def validate_abc_document(text: str, ticks_per_bar: int = TICKS_PER_BAR) -> Dict[str, int]:
    """Check the document grammar and per-measure durations.

    Returns the bar count per voice id. Raises AssertionError on the first
    violation.
    """
    lines = text.split("\n")
    if not lines or not lines[0].startswith("X:"):
        raise AssertionError("Document must begin with the X: field")
    if not text.endswith("|]"):
        raise AssertionError("Document must end with a final bar |]")
    for i, line in enumerate(lines):
        if not line.strip():
            raise AssertionError(f"Blank line at line {i + 1}")

    if len(lines) < len(HEADER_ORDER):
        raise AssertionError("Header is incomplete")
    for field_name, line in zip(HEADER_ORDER, lines):
        if not line.startswith(field_name + ":"):
            raise AssertionError(f"Expected header field {field_name}: but found {line!r}")

    declared: List[str] = []
    idx = len(HEADER_ORDER)
    while idx < len(lines) and (lines[idx].startswith("V:") or lines[idx].startswith("%%")):
        line = lines[idx]
        if line.startswith("%%"):
            if idx == 0 or not lines[idx - 1].startswith("V:"):
                raise AssertionError(f"Directive {line!r} must follow a voice declaration")
        else:
            declared.append(line[2:].split()[0])
        idx += 1
    if not declared:
        raise AssertionError("No voice declared")

    bars: Dict[str, int] = {vid: 0 for vid in declared}
    closed: Dict[str, bool] = {vid: False for vid in declared}
    for line in lines[idx:]:
        m = _BODY_RE.match(line)
        if m is None:
            raise AssertionError(f"Unexpected line in voice content: {line!r}")
        vid = m.group("id")
        if vid not in bars:
            raise AssertionError(f"Undeclared voice {vid}")
        if closed[vid]:
            raise AssertionError(f"Voice {vid} continues after its final bar")
        content = m.group("content")
        if content.endswith(" |]"):
            closed[vid] = True
            content = content[:-3]
        elif content.endswith(" |"):
            content = content[:-2]
        else:
            raise AssertionError(f"Line must end at a bar line: {line!r}")
        for measure in content.split(" | "):
            tokens = measure.split(" ")
            total = sum(_token_duration(tok) for tok in tokens)
            if total != ticks_per_bar:
                raise AssertionError(
                    f"Voice {vid} bar {bars[vid] + 1} sums to {total}, expected {ticks_per_bar}"
                )
            bars[vid] += 1

    for vid, done in closed.items():
        if not done:
            raise AssertionError(f"Voice {vid} has no final bar")
    if len(set(bars.values())) > 1:
        raise AssertionError(f"Voices have different bar counts: {bars}")
    return bars


def validate_invariants(stage_output: Any, config: Any = None, ticks_per_bar: Optional[int] = None) -> None:
    """Validate invariants per stage.

    Raises AssertionError on invariant violations.
    """
    bar = ticks_per_bar or TICKS_PER_BAR

    # Stage B output (list of QuantizedNote)
    if isinstance(stage_output, list) and stage_output and isinstance(stage_output[0], QuantizedNote):
        prev = 0
        for n in stage_output:
            if n.start_tick < prev:
                raise AssertionError("Quantized notes must be sorted by start tick")
            if n.start_tick < 0 or n.duration_ticks < 1:
                raise AssertionError("Quantized note timing out of range")
            if not 0 <= n.pitch <= 127:
                raise AssertionError("Quantized pitch outside MIDI range")
            prev = n.start_tick
        return

    # Stage C output (list of VoiceTrack)
    if isinstance(stage_output, list) and stage_output and isinstance(stage_output[0], VoiceTrack):
        ends = {v.end_tick for v in stage_output}
        if len(ends) != 1:
            raise AssertionError(f"Voices end at different ticks: {sorted(ends)}")
        for v in stage_output:
            if v.end_tick % bar != 0:
                raise AssertionError(f"Voice {v.voice_id} end {v.end_tick} is not bar aligned")
            if v.end_tick < v.natural_end_tick:
                raise AssertionError(f"Voice {v.voice_id} end precedes its last note")
        return

    if isinstance(stage_output, PackedVoice):
        _validate_packed_voice(stage_output)
        return

    # Stage D final result
    if isinstance(stage_output, TranscriptionResult):
        for packed in stage_output.voices:
            _validate_packed_voice(packed)
        if len({p.end_tick for p in stage_output.voices}) > 1:
            raise AssertionError("Packed voices have different lengths")
        bars = validate_abc_document(stage_output.abc, bar)
        logger.debug("Validated document: %s", bars)
        return
