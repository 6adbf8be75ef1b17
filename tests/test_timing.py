from __future__ import annotations

from scorebridge.models import ArrangeConfig
from scorebridge.rng import XorShift32
from scorebridge.timing import (
    apply_velocity_curve,
    humanize_and_quantize,
    quantize_start,
    swing_applies,
    swing_offset,
)
from scorebridge.validation import prepare_score


def sixteenth_score(velocities=None):
    velocities = velocities or [None, None, None, None]
    events = []
    for velocity in velocities:
        event = {"pitch": "C4", "dur": "16th", "dots": 1}
        if velocity is not None:
            event["velocity"] = velocity
        events.append(event)
    return prepare_score(
        {
            "meta": {
                "title": "Grid",
                "style": "test",
                "tempoBPM": 120,
                "timeSignature": "4/4",
                "key": "C major",
            },
            "tracks": [{"name": "Melody", "clef": "treble", "measures": [{"number": 1, "events": events}]}],
        }
    )


def config(**overrides):
    payload = {
        "seed": 42,
        "quantize": {"enabled": True, "grid": "1/8", "strength": 1.0},
        "humanize": {"enabled": False},
    }
    payload.update(overrides)
    return ArrangeConfig.model_validate(payload)


def test_full_strength_quantize_lands_on_grid():
    result = humanize_and_quantize(sixteenth_score(), config())
    starts = [event.start_divs for event in result.events]
    assert starts == [0, 4, 8, 8]
    assert all(start % 4 == 0 for start in starts)


def test_half_strength_moves_halfway():
    cfg = config(quantize={"enabled": True, "grid": "1/8", "strength": 0.5})
    result = humanize_and_quantize(sixteenth_score(), cfg)
    assert result.events[2].start_divs == 7


def test_quantize_start_rounds_half_up():
    assert quantize_start(2, 4, 1.0) == 4
    assert quantize_start(6, 4, 1.0) == 8
    assert quantize_start(6, 4, 0.0) == 6


def test_swing_offset_on_offbeats_only():
    assert swing_offset(4, 4, 0.66) > 0
    assert swing_offset(0, 4, 0.66) == 0
    assert swing_offset(8, 4, 0.66) == 0
    assert swing_offset(4, 4, 0.5) == 0


def test_swing_applies_by_role():
    assert swing_applies("Lead Melody", ["melody"])
    assert not swing_applies("Bass", ["melody", "chords"])
    assert swing_applies("Bass", ["*"])
    assert swing_applies("Bass", [])


def test_swing_shifts_offbeat_notes():
    score = prepare_score(
        {
            "meta": {
                "title": "Swing",
                "style": "jazz",
                "tempoBPM": 140,
                "timeSignature": "4/4",
                "key": "F major",
            },
            "tracks": [
                {
                    "name": "Melody",
                    "clef": "treble",
                    "measures": [{"number": 1, "events": [{"pitch": "F4", "dur": "eighth"}] * 8}],
                }
            ],
        }
    )
    cfg = config(
        quantize={
            "enabled": True,
            "grid": "1/8",
            "strength": 1.0,
            "swing": {"enabled": True, "ratio": 0.66, "applyTo": ["melody"]},
        }
    )
    result = humanize_and_quantize(score, cfg)
    starts = [event.start_divs for event in result.events]
    assert starts[0] == 0
    assert starts[1] == 4 + swing_offset(4, 4, 0.66)
    assert starts[2] == 8
    assert result.annotations["swing_active"] is True
    assert result.annotations["swing_tracks"] == ["Melody"]


def test_swing_ignored_on_quarter_grid():
    cfg = config(
        quantize={"enabled": True, "grid": "1/4", "strength": 1.0, "swing": {"enabled": True}}
    )
    result = humanize_and_quantize(sixteenth_score(), cfg)
    assert result.annotations["swing_tracks"] == []


def test_same_seed_is_deterministic():
    cfg = config(humanize={"enabled": True, "timingJitterMs": 20, "velocityJitter": 0.2})
    first = humanize_and_quantize(sixteenth_score(), cfg)
    second = humanize_and_quantize(sixteenth_score(), cfg)
    assert [e.timing_offset_ms for e in first.events] == [e.timing_offset_ms for e in second.events]
    assert [e.velocity for e in first.events] == [e.velocity for e in second.events]


def test_different_seed_changes_jitter():
    score = sixteenth_score()
    humanize = {"enabled": True, "timingJitterMs": 40, "velocityJitter": 0.5}
    first = humanize_and_quantize(score, config(seed=1, humanize=humanize))
    second = humanize_and_quantize(score, config(seed=2, humanize=humanize))
    first_values = [(e.timing_offset_ms, e.velocity) for e in first.events]
    second_values = [(e.timing_offset_ms, e.velocity) for e in second.events]
    assert first_values != second_values


def test_zero_velocity_jitter_keeps_velocities_with_linear_curve():
    cfg = config(humanize={"enabled": True, "timingJitterMs": 10, "velocityJitter": 0, "velocityCurve": "linear"})
    result = humanize_and_quantize(sixteenth_score([80, 70, 60, 50]), cfg)
    assert [event.velocity for event in result.events] == [80, 70, 60, 50]


def test_jitter_stays_in_range():
    cfg = config(humanize={"enabled": True, "timingJitterMs": 12, "velocityJitter": 1.0})
    result = humanize_and_quantize(sixteenth_score(), cfg)
    for event in result.events:
        assert -12 <= event.timing_offset_ms <= 12
        assert 1 <= event.velocity <= 127


def test_rests_produce_no_events():
    score = sixteenth_score()
    # Four sounding notes followed by rest fill.
    assert len(score.tracks[0].measures[0].events) > 4
    result = humanize_and_quantize(score, config())
    assert len(result.events) == 4


def test_chord_members_share_start(score):
    result = humanize_and_quantize(score, config())
    piano = [event for event in result.events if event.track_index == 0 and event.measure_number == 1]
    assert [event.pitch for event in piano] == ["C4", "E4", "G4", "B4"]
    assert piano[1].start_divs == piano[2].start_divs == 8


def test_abs_start_accumulates_measures(score):
    result = humanize_and_quantize(score, config())
    bass = [event for event in result.events if event.track_index == 1]
    assert [event.abs_start_divs for event in bass] == [0, 32]


def test_velocity_curves():
    assert apply_velocity_curve(64, "linear") == 64
    assert apply_velocity_curve(64, "soft") > 64
    assert apply_velocity_curve(64, "hard") < 64
    assert apply_velocity_curve(64, None) == 64
    assert apply_velocity_curve(0, "hard") == 1


def test_xorshift_zero_seed_still_advances():
    rng = XorShift32(0)
    assert rng.next_u32() != 0
    assert 0 <= rng.random() < 1


def test_xorshift_sequence_repeats_for_seed():
    first = XorShift32(1337)
    second = XorShift32(1337)
    assert [first.next_u32() for _ in range(5)] == [second.next_u32() for _ in range(5)]
    assert first.next_u32() <= 0xFFFFFFFF
