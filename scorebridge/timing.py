from __future__ import annotations

import math
from typing import List, Optional

try:
    from constants import (
        DEFAULT_BASE_VELOCITY,
        HARD_CURVE_EXPONENT,
        MIDI_MAX,
        MIDI_VEL_MIN,
        SOFT_CURVE_EXPONENT,
    )
    from durations import event_divs, measure_target_divs
    from models import ArrangeConfig, ChordEvent, HumanizeConfig, PitchNote, RestNote, Score, TimedEvent, TimingResult
    from rng import XorShift32
    from utils import clamp, lerp, round_half_up
except ImportError:
    from .constants import (
        DEFAULT_BASE_VELOCITY,
        HARD_CURVE_EXPONENT,
        MIDI_MAX,
        MIDI_VEL_MIN,
        SOFT_CURVE_EXPONENT,
    )
    from .durations import event_divs, measure_target_divs
    from .models import ArrangeConfig, ChordEvent, HumanizeConfig, PitchNote, RestNote, Score, TimedEvent, TimingResult
    from .rng import XorShift32
    from .utils import clamp, lerp, round_half_up

GRID_TO_DIVS = {"1/4": 8, "1/8": 4, "1/16": 2, "1/32": 1}
SWING_GRIDS = (4, 2)
NEUTRAL_SWING_RATIO = 0.5


def quantize_start(start: int, grid_divs: int, strength: float) -> int:
    snapped = round_half_up(start / grid_divs) * grid_divs
    return round_half_up(lerp(start, snapped, strength))


def swing_offset(div_index: int, grid_divs: int, ratio: float) -> int:
    pair_index = math.floor(div_index / grid_divs)
    if pair_index % 2 != 1:
        return 0
    return round_half_up((ratio - 0.5) * 2 * grid_divs)


def swing_applies(track_name: str, apply_to: Optional[List[str]]) -> bool:
    if not apply_to or "*" in apply_to:
        return True
    name = track_name.lower()
    return any(role in name for role in apply_to)


def apply_velocity_curve(velocity: int, curve: Optional[str]) -> int:
    if not curve:
        return velocity
    p = velocity / MIDI_MAX
    if curve == "soft":
        p = p ** SOFT_CURVE_EXPONENT
    elif curve == "hard":
        p = p ** HARD_CURVE_EXPONENT
    return int(clamp(round_half_up(p * MIDI_MAX), MIDI_VEL_MIN, MIDI_MAX))


def shape_velocity(base: int, rng: XorShift32, humanize: HumanizeConfig) -> int:
    velocity = base
    if humanize.enabled and humanize.velocity_jitter > 0:
        delta = rng.uniform(-1, 1) * MIDI_MAX * humanize.velocity_jitter
        velocity = int(clamp(round_half_up(base + delta), MIDI_VEL_MIN, MIDI_MAX))
    # The curve is applied even when humanize is disabled.
    return apply_velocity_curve(velocity, humanize.velocity_curve)


def humanize_and_quantize(score: Score, cfg: ArrangeConfig) -> TimingResult:
    quantize = cfg.quantize
    humanize = cfg.humanize
    grid_divs = GRID_TO_DIVS[quantize.grid]
    swing = quantize.swing
    swing_active = bool(swing and swing.enabled)
    swing_ratio = swing.ratio if swing else NEUTRAL_SWING_RATIO
    rng = XorShift32(cfg.seed)
    target = measure_target_divs(score.meta.time_signature)

    events: List[TimedEvent] = []
    swung_tracks: List[str] = []

    for track_index, track in enumerate(score.tracks):
        track_swings = (
            swing_active
            and grid_divs in SWING_GRIDS
            and swing_applies(track.name, swing.apply_to if swing else None)
        )
        if track_swings:
            swung_tracks.append(track.name)

        for measure in track.measures:
            measure_offset = (measure.number - 1) * target
            cursor = 0
            for event in measure.events:
                base_divs = event_divs(event)
                if isinstance(event, RestNote):
                    cursor += base_divs
                    continue

                start = cursor
                if quantize.enabled:
                    start = quantize_start(start, grid_divs, quantize.strength)
                if track_swings:
                    start += swing_offset(start, grid_divs, swing_ratio)

                timing_offset_ms = 0
                if humanize.enabled and humanize.timing_jitter_ms > 0:
                    jitter = humanize.timing_jitter_ms
                    timing_offset_ms = round_half_up(rng.uniform(-jitter, jitter))

                members: List[PitchNote] = event.notes if isinstance(event, ChordEvent) else [event]
                for note in members:
                    base_velocity = note.velocity if note.velocity is not None else DEFAULT_BASE_VELOCITY
                    events.append(
                        TimedEvent(
                            track_index=track_index,
                            measure_number=measure.number,
                            start_divs=start,
                            abs_start_divs=measure_offset + start,
                            dur_divs=base_divs,
                            velocity=shape_velocity(base_velocity, rng, humanize),
                            pitch=note.pitch,
                            timing_offset_ms=timing_offset_ms,
                        )
                    )
                cursor += base_divs

    annotations = {
        "grid_divs": grid_divs,
        "swing_active": swing_active,
        "swing_ratio": swing_ratio,
        "swing_tracks": swung_tracks,
        "seed": cfg.seed,
    }
    return TimingResult(events=events, annotations=annotations)
