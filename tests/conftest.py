from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

PIANO_BASS_SCORE: Dict[str, Any] = {
    "meta": {
        "title": "Test",
        "style": "jazz",
        "tempoBPM": 120,
        "timeSignature": "4/4",
        "key": "C major",
    },
    "tracks": [
        {
            "name": "Piano",
            "clef": "treble",
            "measures": [
                {
                    "number": 1,
                    "harmony": [{"beat": 1, "chord": "Cmaj7"}],
                    "events": [
                        {"pitch": "C4", "dur": "quarter"},
                        {
                            "kind": "chord",
                            "notes": [
                                {"pitch": "E4", "dur": "quarter"},
                                {"pitch": "G4", "dur": "quarter"},
                            ],
                        },
                        {"pitch": "B4", "dur": "half"},
                    ],
                },
                {
                    "number": 2,
                    "harmony": [{"beat": 1, "chord": "F7"}],
                    "events": [{"pitch": "F4", "dur": "whole"}],
                },
            ],
        },
        {
            "name": "Bass",
            "clef": "bass",
            "measures": [
                {"number": 1, "events": [{"pitch": "C2", "dur": "whole"}]},
                {"number": 2, "events": [{"pitch": "F2", "dur": "whole"}]},
            ],
        },
    ],
}

DRUM_SCORE: Dict[str, Any] = {
    "meta": {
        "title": "Beat",
        "style": "rock",
        "tempoBPM": 100,
        "timeSignature": "4/4",
        "key": "C major",
    },
    "tracks": [
        {
            "name": "Drums",
            "clef": "percussion",
            "measures": [
                {
                    "number": 1,
                    "events": [
                        {"pitch": "Kick", "dur": "quarter"},
                        {"pitch": "Snare", "dur": "quarter"},
                        {"pitch": "Kick", "dur": "quarter"},
                        {"pitch": "Snare", "dur": "quarter"},
                    ],
                }
            ],
        }
    ],
}


@pytest.fixture
def score_dict() -> Dict[str, Any]:
    return copy.deepcopy(PIANO_BASS_SCORE)


@pytest.fixture
def drum_score_dict() -> Dict[str, Any]:
    return copy.deepcopy(DRUM_SCORE)


@pytest.fixture
def score(score_dict):
    from scorebridge.validation import prepare_score

    return prepare_score(score_dict)
