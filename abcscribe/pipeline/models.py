"""Data model shared by the pipeline stages."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class TranscriptionError(RuntimeError):
    """Base class for failures surfaced to callers of the pipeline."""


class NoNotesDetectedError(TranscriptionError):
    """Every detected note was dropped by the confidence filter."""

    def __init__(self, message: str = "No notes detected. Try a clearer audio recording."):
        super().__init__(message)


class NoteEventFormatError(TranscriptionError, ValueError):
    """A note event file could not be parsed."""


@dataclass(frozen=True)
class NoteEvent:
    """One pitch onset as reported by the pitch-detection model."""

    start_time_seconds: float
    duration_seconds: float
    pitch_midi: float
    amplitude: float


@dataclass(frozen=True)
class QuantizedNote:
    pitch: int
    start_tick: int
    duration_ticks: int

    @property
    def end_tick(self) -> int:
        return self.start_tick + self.duration_ticks


@dataclass(frozen=True)
class TickGrid:
    ticks_per_beat: int
    seconds_per_tick: float
    ticks_per_bar: int


@dataclass(frozen=True)
class VoiceTrack:
    voice_id: str
    clef: str
    notes: Tuple[QuantizedNote, ...]
    end_tick: int = 0

    @property
    def natural_end_tick(self) -> int:
        if not self.notes:
            return 0
        # Notes are sorted by start, not by end
        return max(n.end_tick for n in self.notes)


@dataclass(frozen=True)
class Slot:
    """Pitches starting together at one tick and the end of the longest one."""

    pitches: Tuple[int, ...]
    end_tick: int


@dataclass(frozen=True)
class PackedRun:
    start_tick: int
    duration_ticks: int
    pitches: Tuple[int, ...] = ()
    tied: bool = False

    @property
    def is_rest(self) -> bool:
        return not self.pitches

    @property
    def end_tick(self) -> int:
        return self.start_tick + self.duration_ticks


@dataclass(frozen=True)
class PackedVoice:
    voice_id: str
    clef: str
    ticks_per_bar: int
    runs: Tuple[PackedRun, ...]

    @property
    def end_tick(self) -> int:
        return self.runs[-1].end_tick if self.runs else 0

    @property
    def bar_count(self) -> int:
        return self.end_tick // self.ticks_per_bar

    @property
    def measures(self) -> List[List[PackedRun]]:
        """Runs grouped by the bar they start in."""
        bars: List[List[PackedRun]] = [[] for _ in range(self.bar_count)]
        for run in self.runs:
            bars[run.start_tick // self.ticks_per_bar].append(run)
        return bars


@dataclass(frozen=True)
class VoiceDeclaration:
    voice_id: str
    clef: str
    name: Optional[str] = None
    midi_program: Optional[int] = None


@dataclass
class ScoreDocument:
    reference_number: int
    title: str
    composer: str
    meter: str
    unit_length: str
    tempo: str
    key: str
    voices: List[VoiceDeclaration] = field(default_factory=list)
    body_lines: List[str] = field(default_factory=list)

    def header_lines(self) -> List[str]:
        lines = [
            f"X:{self.reference_number}",
            f"T:{self.title}",
            f"C:{self.composer}",
            f"M:{self.meter}",
            f"L:{self.unit_length}",
            f"Q:{self.tempo}",
            f"K:{self.key}",
        ]
        for decl in self.voices:
            parts = [f"V:{decl.voice_id}"]
            if decl.name:
                parts.append(f'name="{decl.name}"')
            parts.append(f"clef={decl.clef}")
            lines.append(" ".join(parts))
            if decl.midi_program is not None:
                lines.append(f"%%MIDI program {decl.midi_program}")
        return lines

    def to_abc(self) -> str:
        return "\n".join(self.header_lines() + self.body_lines)


@dataclass
class TranscriptionOptions:
    sensitivity: str = "loose"
    split_voices: bool = False
    detect_chords: bool = True
    instrument: Optional[str] = None


@dataclass
class TranscriptionResult:
    abc: str
    note_count: int
    detected_key: str
    confidence: float
    document: Optional[ScoreDocument] = None
    voices: List[PackedVoice] = field(default_factory=list)
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "abc": self.abc,
            "noteCount": int(self.note_count),
            "detectedKey": self.detected_key,
            "confidence": float(self.confidence),
            "diagnostics": dict(self.diagnostics),
        }
