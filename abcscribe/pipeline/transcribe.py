from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import numpy as np

from .config import DEFAULT_CONFIG, PipelineConfig
from .instrumentation import PipelineLogger
from .models import (
    NoNotesDetectedError,
    NoteEvent,
    TranscriptionOptions,
    TranscriptionResult,
)
from .stage_a import filter_notes, load_note_events, reduce_chords
from .stage_b import default_grid, quantize_notes
from .stage_c import estimate_key_root, key_label, partition_voices, synchronize_voice_ends
from .stage_d import build_document, pack_voice
from .validation import validate_invariants

logger = logging.getLogger(__name__)


def _confidence(events: List[NoteEvent]) -> float:
    """Mean amplitude of the retained detections, in [0, 1]."""
    if not events:
        return 0.0
    mean_amp = float(np.mean([e.amplitude for e in events]))
    return round(float(np.clip(mean_amp, 0.0, 1.0)), 3)


def transcribe(
    events: List[NoteEvent],
    options: Optional[TranscriptionOptions] = None,
    config: Optional[PipelineConfig] = None,
    pipeline_logger: Optional[PipelineLogger] = None,
) -> TranscriptionResult:
    """
    Convert detected note events into an ABC document.

    Raises NoNotesDetectedError when the confidence filter leaves nothing
    to transcribe. The key in the result is a best-effort estimate from a
    pitch-class histogram.
    """
    if options is None:
        options = TranscriptionOptions()
    if config is None:
        config = DEFAULT_CONFIG

    timings: Dict[str, float] = {}
    t_total = time.perf_counter()

    def _mark(stage: str, t0: float, metadata: Optional[Dict[str, Any]] = None) -> None:
        timings[stage] = float(time.perf_counter() - t0)
        if pipeline_logger:
            pipeline_logger.record_timing(stage, timings[stage], metadata)

    if pipeline_logger:
        pipeline_logger.emit_config(
            "pipeline",
            config,
            {
                "sensitivity": options.sensitivity,
                "split_voices": bool(options.split_voices),
                "detect_chords": bool(options.detect_chords),
                "instrument": options.instrument,
                "input_events": len(events),
            },
        )

    # ---------------- Stage A ----------------
    t0 = time.perf_counter()
    kept = filter_notes(events, options.sensitivity, config)
    _mark("stage_a", t0, {"kept": len(kept), "dropped": len(events) - len(kept)})
    if not kept:
        if pipeline_logger:
            pipeline_logger.log_event("stage_a", "no_notes", {"input_events": len(events)})
        raise NoNotesDetectedError()

    # ---------------- Stage B ----------------
    t0 = time.perf_counter()
    grid = default_grid()
    q_notes = quantize_notes(kept, grid)
    if not options.detect_chords:
        q_notes = reduce_chords(q_notes)
    if config.validate_output:
        validate_invariants(q_notes, config, grid.ticks_per_bar)
    _mark("stage_b", t0, {"quantized": len(q_notes)})

    # ---------------- Stage C ----------------
    t0 = time.perf_counter()
    key_root = estimate_key_root(q_notes)
    detected_key = key_label(key_root)
    voices = partition_voices(q_notes, bool(options.split_voices), config)
    natural_ends = {v.voice_id: v.end_tick for v in voices}
    voices = synchronize_voice_ends(voices, grid.ticks_per_bar)
    if config.validate_output:
        validate_invariants(voices, config, grid.ticks_per_bar)
    _mark("stage_c", t0, {"key": detected_key, "voices": len(voices)})

    # ---------------- Stage D ----------------
    t0 = time.perf_counter()
    packed = [
        pack_voice(v, grid.ticks_per_bar, config.stage_d.tie_across_barlines)
        for v in voices
    ]
    document = build_document(packed, detected_key, options.instrument, config)
    abc = document.to_abc()
    _mark("stage_d", t0, {"bars": packed[0].bar_count})

    result = TranscriptionResult(
        abc=abc,
        note_count=len(kept),
        detected_key=detected_key,
        confidence=_confidence(kept),
        document=document,
        voices=packed,
        diagnostics={
            "key_root": key_root,
            "key_is_estimate": True,
            "natural_end_ticks": natural_ends,
            "end_tick": packed[0].end_tick,
            "bar_count": packed[0].bar_count,
            "timing": timings,
        },
    )

    if config.validate_output:
        validate_invariants(result, config, grid.ticks_per_bar)

    timings["total"] = float(time.perf_counter() - t_total)
    logger.info(
        "Transcribed %d notes into %d voice(s), %d bars, key %s",
        result.note_count,
        len(packed),
        packed[0].bar_count,
        detected_key,
    )
    if pipeline_logger:
        pipeline_logger.log_event("pipeline", "done", {"note_count": result.note_count, "key": detected_key})
    return result


def transcribe_file(
    path: str,
    options: Optional[TranscriptionOptions] = None,
    config: Optional[PipelineConfig] = None,
    pipeline_logger: Optional[PipelineLogger] = None,
) -> TranscriptionResult:
    events = load_note_events(path)
    return transcribe(events, options=options, config=config, pipeline_logger=pipeline_logger)
