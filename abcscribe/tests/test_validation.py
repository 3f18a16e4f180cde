import pytest

from abcscribe.pipeline.models import PackedRun, PackedVoice, QuantizedNote, VoiceTrack
from abcscribe.pipeline.validation import validate_abc_document, validate_invariants

HEADER = "X:1\nT:Audio Transcription\nC:abcscribe\nM:4/4\nL:1/16\nQ:1/4=120\nK:C\n"


class TestAbcDocumentValidation:
    def test_valid_single_voice(self):
        doc = HEADER + "V:1 clef=treble\n[V:1] c4 z12 | [ceg]16 |]"
        assert validate_abc_document(doc) == {"1": 2}

    def test_valid_with_directive(self):
        doc = HEADER + 'V:1 name="Piano" clef=treble\n%%MIDI program 0\n[V:1] ^F,,2 z14 |]'
        assert validate_abc_document(doc) == {"1": 1}

    @pytest.mark.parametrize("doc, message", [
        ("T:x\n" + HEADER + "V:1 clef=treble\n[V:1] z16 |]", "X:"),
        (HEADER + "V:1 clef=treble\n[V:1] z16 |", "final bar"),
        (HEADER + "V:1 clef=treble\n\n[V:1] z16 |]", "Blank line"),
        (HEADER + "V:1 clef=treble\n[V:1] c4 z11 |]", "sums to 15"),
        (HEADER + "V:1 clef=treble\n[V:1] c4 z12 |\n%%MIDI program 0\n[V:1] z16 |]", "Unexpected line"),
        (HEADER.replace("M:4/4\nL:1/16", "L:1/16\nM:4/4") + "V:1 clef=treble\n[V:1] z16 |]", "header field"),
        (HEADER + "V:1 clef=treble\n[V:2] z16 |]", "Undeclared"),
        (HEADER + "V:1 clef=treble\n[V:1] C'4 z12 |]", "Invalid ABC token"),
        (HEADER + "V:1 clef=treble\n[V:1] [c]4 z12 |]", "Invalid ABC token"),
        (HEADER + "V:1 clef=treble\nV:2 clef=bass\n[V:1] z16 |]\n[V:2] z16 | z16 |]", "different bar counts"),
        (HEADER + "V:1 clef=treble\n%%MIDI program 0\n%%MIDI program 1\n[V:1] z16 |]", "must follow"),
    ])
    def test_violations(self, doc, message):
        with pytest.raises(AssertionError, match=message):
            validate_abc_document(doc)


class TestStageInvariants:
    def test_unsorted_quantized_notes(self):
        notes = [QuantizedNote(60, 4, 1), QuantizedNote(60, 0, 1)]
        with pytest.raises(AssertionError):
            validate_invariants(notes)

    def test_unsynchronized_voices(self):
        voices = [
            VoiceTrack("1", "treble", (), end_tick=16),
            VoiceTrack("2", "bass", (), end_tick=32),
        ]
        with pytest.raises(AssertionError, match="different ticks"):
            validate_invariants(voices)

    def test_packed_voice_gap(self):
        packed = PackedVoice("1", "treble", 16, (PackedRun(0, 4, (60,)), PackedRun(5, 11)))
        with pytest.raises(AssertionError, match="expected 4"):
            validate_invariants(packed)

    def test_packed_voice_run_crossing_bar(self):
        packed = PackedVoice("1", "treble", 16, (PackedRun(0, 12), PackedRun(12, 8, (60,)), PackedRun(20, 12)))
        with pytest.raises(AssertionError, match="crosses a bar line"):
            validate_invariants(packed)
