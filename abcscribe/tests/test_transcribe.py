import json
from unittest.mock import patch

import pytest

from abcscribe.pipeline.config import DEFAULT_CONFIG, apply_overrides, load_config
from abcscribe.pipeline.instrumentation import PipelineLogger
from abcscribe.pipeline.models import (
    NoNotesDetectedError,
    NoteEvent,
    TranscriptionError,
    TranscriptionOptions,
)
from abcscribe.pipeline.transcribe import transcribe, transcribe_file
from abcscribe.pipeline.validation import validate_abc_document


class TestTranscribe:
    def test_single_note_document(self, make_event):
        result = transcribe([make_event(0.0, 0.5, 60, 0.9)])
        assert result.abc == "\n".join([
            "X:1",
            "T:Audio Transcription",
            "C:abcscribe",
            "M:4/4",
            "L:1/16",
            "Q:1/4=120",
            "K:C",
            "V:1 clef=treble",
            "[V:1] c4 z12 |]",
        ])
        assert result.note_count == 1
        assert result.detected_key == "C"
        assert result.confidence == pytest.approx(0.9)
        assert result.diagnostics["bar_count"] == 1

    def test_chord(self, make_event):
        result = transcribe([make_event(pitch=60), make_event(pitch=64)])
        assert result.abc.endswith("[V:1] [ce]4 z12 |]")

    def test_strict_filter_reports_no_notes(self, make_event):
        with pytest.raises(NoNotesDetectedError, match="No notes detected"):
            transcribe([make_event(amplitude=0.15)], TranscriptionOptions(sensitivity="strict"))

    def test_loose_filter_keeps_quiet_note(self, make_event):
        result = transcribe([make_event(amplitude=0.15)], TranscriptionOptions(sensitivity="loose"))
        assert result.note_count == 1

    def test_empty_input(self):
        with pytest.raises(NoNotesDetectedError):
            transcribe([])

    def test_infinite_duration_is_a_transcription_error(self, make_event):
        with pytest.raises(TranscriptionError):
            transcribe([make_event(duration=float("inf"))])

    def test_split_voices_synchronized(self, make_event):
        events = [
            make_event(0.0, 2.0, 72, 0.9),  # 16 ticks
            make_event(0.0, 4.0, 48, 0.9),  # 32 ticks
        ]
        result = transcribe(events, TranscriptionOptions(split_voices=True))
        lines = result.abc.split("\n")
        assert lines[7:] == [
            "V:1 clef=treble",
            "V:2 clef=bass",
            "[V:1] c'16 | z16 |]",
            "[V:2] C16- | C16 |]",
        ]
        assert [v.end_tick for v in result.voices] == [32, 32]
        assert result.diagnostics["natural_end_ticks"] == {"1": 16, "2": 32}

    def test_no_chords_keeps_top_note(self, make_event):
        events = [make_event(pitch=60), make_event(pitch=64), make_event(pitch=67)]
        result = transcribe(events, TranscriptionOptions(detect_chords=False))
        assert result.abc.endswith("[V:1] g4 z12 |]")
        assert result.note_count == 3

    def test_instrument_directive(self, make_event):
        result = transcribe([make_event()], TranscriptionOptions(instrument="Flute"))
        assert 'V:1 name="Flute" clef=treble\n%%MIDI program 73\n[V:1]' in result.abc

    def test_key_is_reported_from_histogram(self, make_event):
        events = [make_event(start=i * 0.5, pitch=p) for i, p in enumerate([62, 66, 69, 74, 62])]
        result = transcribe(events)
        assert result.detected_key == "D"
        assert "\nK:D\n" in result.abc
        assert result.diagnostics["key_is_estimate"] is True

    def test_confidence_is_mean_amplitude(self, make_event):
        result = transcribe([make_event(amplitude=0.5), make_event(start=0.5, amplitude=1.0)])
        assert result.confidence == pytest.approx(0.75)

    def test_long_performance_is_valid(self, make_event):
        events = [
            make_event(start=i * 0.3, duration=0.7, pitch=40 + (i * 7) % 45, amplitude=0.3 + (i % 5) * 0.1)
            for i in range(120)
        ]
        for split in (False, True):
            result = transcribe(events, TranscriptionOptions(split_voices=split))
            bars = validate_abc_document(result.abc)
            assert set(bars.values()) == {result.diagnostics["bar_count"]}

    def test_validation_can_be_disabled(self, make_event):
        cfg = apply_overrides(DEFAULT_CONFIG, {"validate_output": False})
        with patch("abcscribe.pipeline.transcribe.validate_invariants") as mock_validate:
            transcribe([make_event()], config=cfg)
        mock_validate.assert_not_called()

    def test_validation_runs_per_stage(self, make_event):
        with patch("abcscribe.pipeline.transcribe.validate_invariants") as mock_validate:
            transcribe([make_event()])
        assert mock_validate.call_count == 3

    def test_header_overrides(self, make_event, tmp_path):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps({"stage_d": {"title": "Morning Take", "composer": "Me"}}))
        cfg = load_config(str(path))
        result = transcribe([make_event()], config=cfg)
        assert "\nT:Morning Take\nC:Me\n" in result.abc
        assert DEFAULT_CONFIG.stage_d.title == "Audio Transcription"

    def test_transcribe_file(self, tmp_path):
        path = tmp_path / "notes.json"
        path.write_text(json.dumps([
            {"startTimeSeconds": 0.0, "durationSeconds": 0.5, "pitchMidi": 60, "amplitude": 0.9},
        ]))
        assert transcribe_file(str(path)).abc.endswith("[V:1] c4 z12 |]")

    def test_to_dict(self, make_event):
        data = transcribe([make_event()]).to_dict()
        assert data["noteCount"] == 1
        assert data["detectedKey"] == "C"
        assert data["abc"].startswith("X:1")


class TestPipelineLogging:
    def test_events_and_timings_written(self, make_event, tmp_path):
        pl = PipelineLogger(base_dir=str(tmp_path), run_name="run")
        transcribe([make_event()], pipeline_logger=pl)
        pl.finalize()

        with open(pl.logs_path, encoding="utf-8") as f:
            entries = [json.loads(line) for line in f]
        stages = {(e["stage"], e["event"]) for e in entries}
        assert ("pipeline", "start") in stages
        assert ("pipeline", "config") in stages
        assert ("stage_d", "timing") in stages
        assert ("pipeline", "done") in stages

        with open(pl.timing_path, encoding="utf-8") as f:
            timing = json.load(f)
        assert {"stage_a", "stage_b", "stage_c", "stage_d", "total"} <= set(timing)

    def test_stage_timings_without_logger(self, make_event):
        timing = transcribe([make_event()]).diagnostics["timing"]
        assert set(timing) == {"stage_a", "stage_b", "stage_c", "stage_d", "total"}
        assert all(v >= 0.0 for v in timing.values())

    def test_logger_timings_match_diagnostics(self, make_event, tmp_path):
        pl = PipelineLogger(base_dir=str(tmp_path), run_name="run")
        result = transcribe([make_event()], pipeline_logger=pl)
        for stage in ("stage_a", "stage_b", "stage_c", "stage_d"):
            assert pl.timing[stage] == result.diagnostics["timing"][stage]

    def test_no_notes_event_logged(self, make_event, tmp_path):
        pl = PipelineLogger(base_dir=str(tmp_path), run_name="run")
        with pytest.raises(NoNotesDetectedError):
            transcribe([make_event(amplitude=0.0)], pipeline_logger=pl)
        with open(pl.logs_path, encoding="utf-8") as f:
            events = [json.loads(line)["event"] for line in f]
        assert "no_notes" in events


class TestConfig:
    def test_nested_dict_override_merges(self):
        cfg = apply_overrides(DEFAULT_CONFIG, {"stage_a": {"confidence_thresholds": {"strict": 0.5}}})
        assert cfg.stage_a.confidence_thresholds == {"strict": 0.5, "loose": 0.1}
        assert DEFAULT_CONFIG.stage_a.confidence_thresholds["strict"] == 0.2

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            apply_overrides(DEFAULT_CONFIG, {"stage_d": {"font": "serif"}})

    def test_grid_not_configurable(self):
        with pytest.raises(KeyError):
            apply_overrides(DEFAULT_CONFIG, {"stage_b": {"tempo_bpm": 90}})
