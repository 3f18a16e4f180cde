import json
import logging
import os
from typing import Any, Dict, List, Optional

import numpy as np

from abcscribe.pipeline.config import PipelineConfig
from abcscribe.pipeline.models import PackedVoice, TranscriptionOptions, TranscriptionResult
from abcscribe.pipeline.stage_b import default_grid, quantize_notes
from abcscribe.pipeline.transcribe import transcribe

from .generators import generate_benchmark_example, score_to_note_events
from .levels import BENCHMARK_LEVELS

logger = logging.getLogger(__name__)


class NumpyEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        return super(NumpyEncoder, self).default(obj)


def packed_onsets(voices: List[PackedVoice]) -> set:
    """(tick, pitch) pairs articulated in the packed voices; tie continuations excluded."""
    onsets = set()
    for voice in voices:
        prev_tied = False
        for run in voice.runs:
            if not run.is_rest and not prev_tied:
                onsets.update((run.start_tick, p) for p in run.pitches)
            prev_tied = run.tied
    return onsets


def calculate_metrics(result: TranscriptionResult, reference_onsets: set) -> Dict[str, Any]:
    found = packed_onsets(result.voices)
    recall = len(found & reference_onsets) / max(1, len(reference_onsets))
    precision = len(found & reference_onsets) / max(1, len(found))
    return {
        "note_count": result.note_count,
        "key": result.detected_key,
        "voices": len(result.voices),
        "bar_count": result.voices[0].bar_count if result.voices else 0,
        "onset_recall": float(recall),
        "onset_precision": float(precision),
    }


def check_expectations(metrics: Dict[str, Any], expected: Dict[str, Any]) -> List[str]:
    failures = []
    for name, want in expected.items():
        got = metrics.get(name)
        if isinstance(want, float):
            ok = got is not None and np.isclose(float(got), want, atol=1e-6)
        else:
            ok = got == want
        if not ok:
            failures.append(f"{name}: expected {want}, got {got}")
    return failures


def run_ladder(
    config: Optional[PipelineConfig] = None,
    output_dir: Optional[str] = None,
    level_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Runs the benchmark ladder.
    Each example is generated with music21, flattened to note events and transcribed.
    """
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    grid = default_grid()
    results: Dict[str, Any] = {}

    for level in BENCHMARK_LEVELS:
        level_id = level["id"]
        if level_ids and level_id not in level_ids:
            continue
        logger.info("Running level %s", level_id)
        level_results = []

        for example_id in level["examples"]:
            example_res: Dict[str, Any] = {"id": example_id, "errors": []}
            try:
                score = generate_benchmark_example(example_id)
                events = score_to_note_events(score)
                reference = {(n.start_tick, n.pitch) for n in quantize_notes(events, grid)}

                options = TranscriptionOptions(**level.get("options", {}))
                result = transcribe(events, options=options, config=config)

                metrics = calculate_metrics(result, reference)
                example_res["metrics"] = metrics
                example_res["errors"].extend(check_expectations(metrics, level.get("expected_metrics", {})))

                if output_dir:
                    with open(os.path.join(output_dir, f"{example_id}.abc"), "w", encoding="utf-8") as f:
                        f.write(result.abc + "\n")
            except (AssertionError, ValueError, RuntimeError) as e:
                logger.exception("Example %s failed", example_id)
                example_res["errors"].append(f"{type(e).__name__}: {e}")

            level_results.append(example_res)

        results[level_id] = level_results

    if output_dir:
        with open(os.path.join(output_dir, "benchmark_summary.json"), "w", encoding="utf-8") as f:
            json.dump(results, f, indent=2, cls=NumpyEncoder)

    return results
