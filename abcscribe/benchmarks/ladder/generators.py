from typing import List, Optional

from music21 import chord, key, meter, note, stream, tempo

from abcscribe.pipeline.models import NoteEvent

DEFAULT_AMPLITUDE = 0.8


def create_c_major_scale():
    """
    L1: C Major Scale (Up and Down), quarter notes at 120 BPM.
    """
    s = stream.Score()
    p = stream.Part()
    p.append(tempo.MetronomeMark(number=120))
    p.append(key.Key('C'))
    p.append(meter.TimeSignature('4/4'))

    # C4 to C5 and back
    pitches = ["C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5",
               "B4", "A4", "G4", "F4", "E4", "D4", "C4"]

    for pi in pitches:
        n = note.Note(pi)
        n.quarterLength = 1.0
        p.append(n)

    s.append(p)
    return s


def create_melody_bass_2voice():
    """
    L2: Melody (Treble) + Bass (2 octaves below), two bars each.
    """
    s = stream.Score()

    p_melody = stream.Part()
    p_melody.id = "Melody"
    p_melody.append(tempo.MetronomeMark(number=120))

    melody_notes = ["C5", "C5", "G5", "G5", "A5", "A5", "G5"]  # Twinkle start
    for i, pi in enumerate(melody_notes):
        n = note.Note(pi)
        n.quarterLength = 2.0 if i == len(melody_notes) - 1 else 1.0
        p_melody.append(n)

    p_bass = stream.Part()
    p_bass.id = "Bass"

    bass_notes = ["C3", "C3", "E3", "C3", "F3", "F3", "C3"]
    for i, pi in enumerate(bass_notes):
        n = note.Note(pi)
        n.quarterLength = 2.0 if i == len(bass_notes) - 1 else 1.0
        p_bass.append(n)

    s.insert(0, p_melody)
    s.insert(0, p_bass)
    return s


def create_melody_chords():
    """
    L3: Melody + Block Chords.
    """
    s = stream.Score()

    p_melody = stream.Part()
    p_melody.append(tempo.MetronomeMark(number=120))
    melody_notes = ["E5", "D5", "C5", "D5", "E5", "E5", "E5"]  # Mary had a little lamb
    for i, pi in enumerate(melody_notes):
        n = note.Note(pi)
        n.quarterLength = 2.0 if i == len(melody_notes) - 1 else 1.0
        p_melody.append(n)

    p_chords = stream.Part()

    # Bar 1: C Major, Bar 2: G Major
    c_maj = chord.Chord(["C4", "E4", "G4"])
    c_maj.quarterLength = 4.0
    p_chords.insert(0, c_maj)

    g_maj = chord.Chord(["G3", "B3", "D4"])
    g_maj.quarterLength = 4.0
    p_chords.insert(4.0, g_maj)

    s.insert(0, p_melody)
    s.insert(0, p_chords)
    return s


def create_old_macdonald_base():
    """L4: Old MacDonald in C Major at 100 BPM (off the 120 BPM output grid)."""
    s = stream.Score()
    p = stream.Part()
    p.append(tempo.MetronomeMark(number=100))
    p.append(key.Key('C'))
    p.append(meter.TimeSignature('4/4'))

    melody_data = [
        ("C4", 1), ("C4", 1), ("C4", 1), ("G4", 1),
        ("A4", 1), ("A4", 1), ("G4", 2),
        ("E4", 1), ("E4", 1), ("D4", 1), ("D4", 1),
        ("C4", 2),
        ("D4", 1), ("D4", 1), ("C4", 1), ("C4", 2),
    ]

    for pitch_name, dur in melody_data:
        n = note.Note(pitch_name)
        n.quarterLength = dur
        p.append(n)

    s.append(p)
    return s


def _score_bpm(score, default: float = 120.0) -> float:
    marks = list(score.recurse().getElementsByClass(tempo.MetronomeMark))
    if marks and marks[0].number:
        return float(marks[0].number)
    return float(default)


def score_to_note_events(score, bpm: Optional[float] = None, amplitude: float = DEFAULT_AMPLITUDE) -> List[NoteEvent]:
    """
    Flatten a music21 score into the NoteEvents a perfect pitch detector would report.
    """
    bpm = bpm or _score_bpm(score)
    sec_per_quarter = 60.0 / bpm

    events: List[NoteEvent] = []
    for el in score.flatten().notes:
        start = float(el.offset) * sec_per_quarter
        dur = float(el.quarterLength) * sec_per_quarter
        for p in el.pitches:
            events.append(NoteEvent(
                start_time_seconds=start,
                duration_seconds=dur,
                pitch_midi=float(p.midi),
                amplitude=amplitude,
            ))
    events.sort(key=lambda e: (e.start_time_seconds, e.pitch_midi))
    return events


def generate_benchmark_example(example_id: str):
    """
    Dispatcher to create specific benchmark examples.
    """
    if example_id == "c_major_scale":
        return create_c_major_scale()
    elif example_id == "melody_bass_2voice":
        return create_melody_bass_2voice()
    elif example_id == "melody_chords":
        return create_melody_chords()
    elif example_id == "old_macdonald":
        return create_old_macdonald_base()
    else:
        raise ValueError(f"Unknown example_id: {example_id}")
