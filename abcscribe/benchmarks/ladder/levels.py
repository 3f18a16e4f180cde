BENCHMARK_LEVELS = [
    {
        "id": "L1_MONO",
        "name": "Monophonic Scales",
        "description": "C Major scale in quarter notes, on the output grid tempo.",
        "examples": ["c_major_scale"],
        "options": {"split_voices": False},
        "expected_metrics": {"bar_count": 4, "key": "C", "onset_recall": 1.0},
    },
    {
        "id": "L2_POLY_SIMPLE",
        "name": "Simple Polyphony",
        "description": "Melody + Bass (2 voices), distinct pitch ranges.",
        "examples": ["melody_bass_2voice"],
        "options": {"split_voices": True},
        "expected_metrics": {"bar_count": 2, "voices": 2, "onset_recall": 1.0},
    },
    {
        "id": "L3_HOMOPHONIC",
        "name": "Homophonic Texture",
        "description": "Melody + block chords, single and split staves.",
        "examples": ["melody_chords"],
        "options": {"split_voices": True},
        "expected_metrics": {"bar_count": 2, "voices": 2},
    },
    {
        "id": "L4_OFF_GRID",
        "name": "Off-grid Tempo",
        "description": "Old MacDonald at 100 BPM quantized onto the 120 BPM grid.",
        "examples": ["old_macdonald"],
        "options": {"split_voices": False},
        "expected_metrics": {"key": "C"},
    },
]
