from __future__ import annotations

from io import BytesIO

import mido
import pytest

from scorebridge.errors import PitchSyntaxError
from scorebridge.midi_emit import score_to_midi, unknown_percussion_names, uses_direct_path
from scorebridge.midi_utils import midi_to_pitch, percussion_to_midi, pitch_to_midi
from scorebridge.models import ArrangeConfig
from scorebridge.validation import prepare_score


def load(data):
    return mido.MidiFile(file=BytesIO(data))


def absolute(track, kind="note_on"):
    tick = 0
    found = []
    for message in track:
        tick += message.time
        if message.type == kind:
            found.append((tick, message))
    return found


def jazz_config(**humanize):
    return ArrangeConfig.model_validate(
        {
            "seed": 11,
            "quantize": {"enabled": True, "grid": "1/8", "strength": 1.0},
            "humanize": humanize or {"enabled": False},
            "accompaniment": {"enabled": True, "style": "jazz-swing"},
        }
    )


def test_pitch_conversions():
    assert pitch_to_midi("C4") == 60
    assert pitch_to_midi("A4") == 69
    assert pitch_to_midi("Bb3") == 58
    assert pitch_to_midi("C#-1") == 1
    assert midi_to_pitch(61) == "C#4"
    assert midi_to_pitch(70) == "Bb4"


def test_percussion_names():
    assert percussion_to_midi("Kick") == 36
    assert percussion_to_midi("closed hi-hat") == 42
    assert percussion_to_midi("side_stick") == 37
    assert percussion_to_midi("42") == 42
    assert percussion_to_midi("cowbell") == 36


def test_pitch_outside_midi_range_is_rejected():
    assert pitch_to_midi("G9") == 127
    assert pitch_to_midi("C-1") == 0
    for pitch in ("G#9", "Cb-1", "C10"):
        with pytest.raises(PitchSyntaxError):
            pitch_to_midi(pitch)
    assert percussion_to_midi("G#9") == 127


@pytest.mark.parametrize("arranged", [False, True])
def test_out_of_range_pitch_reports_location(score_dict, arranged):
    score_dict["tracks"][0]["measures"][1]["events"] = [{"pitch": "G#9", "dur": "whole"}]
    with pytest.raises(PitchSyntaxError) as excinfo:
        score_to_midi(prepare_score(score_dict), jazz_config() if arranged else None)
    assert excinfo.value.track == "Piano"
    assert excinfo.value.measure == 2


def test_direct_path_layout(score):
    midi = load(score_to_midi(score))
    assert midi.type == 1
    assert midi.ticks_per_beat == 480
    assert len(midi.tracks) == 2
    types = [message.type for message in midi.tracks[0]]
    assert "set_tempo" in types
    assert "time_signature" in types
    assert "key_signature" in types
    assert "set_tempo" not in [message.type for message in midi.tracks[1]]
    tempo = next(message for message in midi.tracks[0] if message.type == "set_tempo")
    assert round(mido.tempo2bpm(tempo.tempo)) == 120


def test_direct_path_notes_and_ticks(score):
    midi = load(score_to_midi(score))
    piano = absolute(midi.tracks[0])
    assert [(tick, message.note) for tick, message in piano] == [
        (0, 60),
        (480, 64),
        (480, 67),
        (960, 71),
        (1920, 65),
    ]
    assert all(message.channel == 0 and message.velocity == 100 for _, message in piano)
    bass = absolute(midi.tracks[1])
    assert [(tick, message.note, message.channel) for tick, message in bass] == [(0, 36, 1), (1920, 41, 1)]
    programs = [message.program for message in midi.tracks[1] if message.type == "program_change"]
    assert programs == [33]


def test_note_off_precedes_note_on_at_same_tick(score):
    midi = load(score_to_midi(score))
    sequence = []
    tick = 0
    for message in midi.tracks[0]:
        tick += message.time
        if message.type in ("note_on", "note_off"):
            sequence.append((tick, message.type))
    at_480 = [kind for when, kind in sequence if when == 480]
    assert at_480 == ["note_off", "note_on", "note_on"]


def test_rests_take_time_but_emit_nothing(score_dict):
    score_dict["tracks"][1]["measures"][0]["events"] = [
        {"rest": True, "dur": "half"},
        {"pitch": "G2", "dur": "half"},
    ]
    midi = load(score_to_midi(prepare_score(score_dict)))
    bass = absolute(midi.tracks[1])
    assert [(tick, message.note) for tick, message in bass] == [(960, 43), (1920, 41)]


def test_percussion_track_on_channel_nine(drum_score_dict):
    midi = load(score_to_midi(prepare_score(drum_score_dict)))
    hits = absolute(midi.tracks[0])
    assert [message.note for _, message in hits] == [36, 38, 36, 38]
    assert all(message.channel == 9 for _, message in hits)
    assert not any(message.type == "program_change" for message in midi.tracks[0])


def test_midi_hints_override_channel_and_program(score_dict):
    score_dict["tracks"][0]["midi"] = {"channel": 4, "program": 24}
    midi = load(score_to_midi(prepare_score(score_dict)))
    assert {message.channel for _, message in absolute(midi.tracks[0])} == {4}
    program = next(message for message in midi.tracks[0] if message.type == "program_change")
    assert program.program == 24
    assert program.channel == 4


def test_unknown_key_skips_key_signature(score_dict):
    score_dict["meta"]["key"] = "H mixolydian"
    midi = load(score_to_midi(prepare_score(score_dict)))
    assert "key_signature" not in [message.type for message in midi.tracks[0]]


def test_minor_key_signature(score_dict):
    score_dict["meta"]["key"] = "F# minor"
    midi = load(score_to_midi(prepare_score(score_dict)))
    key = next(message for message in midi.tracks[0] if message.type == "key_signature")
    assert key.key == "F#m"


def test_uses_direct_path():
    assert uses_direct_path(None)
    disabled = ArrangeConfig.model_validate({"quantize": {"enabled": False}, "humanize": {"enabled": False}})
    assert uses_direct_path(disabled)
    assert not uses_direct_path(ArrangeConfig())


def test_overlays_get_their_own_tracks(score):
    midi = load(score_to_midi(score, jazz_config()))
    names = [track.name for track in midi.tracks]
    assert names == ["Piano", "Bass", "bass-gen", "chords-gen", "drums-gen"]
    drums = absolute(midi.tracks[4])
    assert drums and all(message.channel == 9 for _, message in drums)
    assert {message.note for _, message in drums} == {51, 42}
    chords = absolute(midi.tracks[3])
    assert {message.channel for _, message in chords} == {3}
    bass = absolute(midi.tracks[2])
    assert [tick for tick, _ in bass][:5] == [0, 480, 960, 1440, 1920]


def test_overlays_can_be_left_out(score):
    midi = load(score_to_midi(score, jazz_config(), include_overlays=False))
    assert [track.name for track in midi.tracks] == ["Piano", "Bass"]


def test_transform_path_is_deterministic(score):
    cfg = jazz_config(enabled=True, timingJitterMs=15, velocityJitter=0.3)
    assert score_to_midi(score, cfg) == score_to_midi(score, cfg)


def test_transform_path_velocities_stay_audible(score):
    cfg = jazz_config(enabled=True, timingJitterMs=50, velocityJitter=1.0, velocityCurve="hard")
    midi = load(score_to_midi(score, cfg))
    for track in midi.tracks:
        for _, message in absolute(track):
            assert 1 <= message.velocity <= 127


def test_unknown_percussion_names(drum_score_dict):
    drum_score_dict["tracks"][0]["measures"][0]["events"][1]["pitch"] = "Cowbell"
    score = prepare_score(drum_score_dict)
    assert unknown_percussion_names(score) == ["Cowbell"]
