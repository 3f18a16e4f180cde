import json

import pytest

from abcscribe.cli import main


@pytest.fixture
def events_path(tmp_path):
    path = tmp_path / "notes.json"
    path.write_text(json.dumps([
        {"startTimeSeconds": 0.0, "durationSeconds": 0.5, "pitchMidi": 60, "amplitude": 0.9},
        {"startTimeSeconds": 0.0, "durationSeconds": 0.5, "pitchMidi": 43, "amplitude": 0.15},
    ]))
    return path


def test_writes_abc_and_log(events_path, tmp_path):
    abc_path = tmp_path / "out.abc"
    log_path = tmp_path / "out.json"
    code = main([
        "--events_path", str(events_path),
        "--split_voices",
        "--instrument", "piano",
        "--output_abc", str(abc_path),
        "--output_log", str(log_path),
        "--log_dir", str(tmp_path / "logs"),
    ])
    assert code == 0

    abc = abc_path.read_text(encoding="utf-8")
    assert abc.startswith("X:1\n")
    assert abc.rstrip().endswith("|]")
    assert "%%MIDI program 0" in abc

    log = json.loads(log_path.read_text(encoding="utf-8"))
    assert log["noteCount"] == 2
    assert "abc" not in log
    assert (tmp_path / "logs").is_dir()


def test_strict_mode_without_notes_fails(tmp_path):
    path = tmp_path / "quiet.json"
    path.write_text(json.dumps([
        {"startTimeSeconds": 0.0, "durationSeconds": 0.5, "pitchMidi": 60, "amplitude": 0.15},
    ]))
    code = main([
        "--events_path", str(path),
        "--sensitivity", "strict",
        "--output_abc", str(tmp_path / "out.abc"),
        "--output_log", str(tmp_path / "out.json"),
    ])
    assert code == 1
    assert not (tmp_path / "out.abc").exists()


def test_nan_start_time_fails_cleanly(tmp_path):
    path = tmp_path / "nan.json"
    path.write_text(
        '[{"startTimeSeconds": NaN, "durationSeconds": 0.5, "pitchMidi": 60, "amplitude": 0.9}]'
    )
    code = main([
        "--events_path", str(path),
        "--output_abc", str(tmp_path / "out.abc"),
        "--output_log", str(tmp_path / "out.json"),
    ])
    assert code == 1
    assert not (tmp_path / "out.abc").exists()


def test_missing_events_file(tmp_path):
    assert main(["--events_path", str(tmp_path / "nope.json")]) == 1
