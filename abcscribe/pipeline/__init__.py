from .models import (
    NoNotesDetectedError,
    NoteEvent,
    NoteEventFormatError,
    TranscriptionError,
    TranscriptionOptions,
    TranscriptionResult,
)
from .transcribe import transcribe, transcribe_file

__all__ = [
    "NoNotesDetectedError",
    "NoteEvent",
    "NoteEventFormatError",
    "TranscriptionError",
    "TranscriptionOptions",
    "TranscriptionResult",
    "transcribe",
    "transcribe_file",
]
