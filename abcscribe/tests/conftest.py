import pytest

from abcscribe.pipeline.models import NoteEvent


@pytest.fixture
def make_event():
    def _make(start=0.0, duration=0.5, pitch=60, amplitude=0.9):
        return NoteEvent(
            start_time_seconds=start,
            duration_seconds=duration,
            pitch_midi=pitch,
            amplitude=amplitude,
        )
    return _make
