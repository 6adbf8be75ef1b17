from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

try:
    from constants import (
        ANTICIPATION_DENSITY,
        DEFAULT_ACCOMPANIMENT_CHORD,
        DEFAULT_WALKING_CHORD,
        DIVISIONS_PER_QUARTER,
        GHOST_NOTE_COMPLEXITY,
        SHELL_NINTH_COMPLEXITY,
        SHELL_START_TOP,
        SHELL_TOP_HIGH,
        SHELL_TOP_LOW,
        SPARSE_DENSITY,
        WALKING_APPROACH_COMPLEXITY,
        WALKING_BASS_OFFSET,
        WALKING_BASS_STEP,
        WALKING_BASS_WRAP,
    )
    from durations import divs_to_note_value, measure_target_divs, parse_time_signature
    from midi_utils import midi_to_pitch
    from models import HarmonyMark, OverlayEvent, OverlayMeasure, PitchNote, TrackOverlay
    from music_theory import chord_root_pc, parse_chord_symbol, shell_intervals, voice_shell
    from rng import XorShift32
except ImportError:
    from .constants import (
        ANTICIPATION_DENSITY,
        DEFAULT_ACCOMPANIMENT_CHORD,
        DEFAULT_WALKING_CHORD,
        DIVISIONS_PER_QUARTER,
        GHOST_NOTE_COMPLEXITY,
        SHELL_NINTH_COMPLEXITY,
        SHELL_START_TOP,
        SHELL_TOP_HIGH,
        SHELL_TOP_LOW,
        SPARSE_DENSITY,
        WALKING_APPROACH_COMPLEXITY,
        WALKING_BASS_OFFSET,
        WALKING_BASS_STEP,
        WALKING_BASS_WRAP,
    )
    from .durations import divs_to_note_value, measure_target_divs, parse_time_signature
    from .midi_utils import midi_to_pitch
    from .models import HarmonyMark, OverlayEvent, OverlayMeasure, PitchNote, TrackOverlay
    from .music_theory import chord_root_pc, parse_chord_symbol, shell_intervals, voice_shell
    from .rng import XorShift32

QUARTER = DIVISIONS_PER_QUARTER
EIGHTH = QUARTER // 2
SIXTEENTH = QUARTER // 4
HALF_BAR = QUARTER * 2

BASS_TRACK = "bass-gen"
CHORDS_TRACK = "chords-gen"
DRUMS_TRACK = "drums-gen"

# (at_divs, dur_divs) comping hits per style.
COMP_TEMPLATES = {
    "jazz-swing": ((8, 4), (24, 4)),
    "pop-rock": ((8, 8), (24, 8)),
    "bossa": ((0, 16), (22, 2)),
}
COMP_VELOCITY = 84
ANTICIPATION_VELOCITY = 72

BASS_ROOT_OCTAVE = 36
POP_BASS_STEPS = (0, 7, 12, 7)
BOSSA_BASS_CELL = ((0, 8, 0), (12, 4, 7))

RIDE_ACCENT_VELOCITY = 90
RIDE_VELOCITY = 80
HAT_ACCENT_VELOCITY = 100
HAT_VELOCITY = 80
GHOST_VELOCITY = 60
KICK_VELOCITY = 110
SNARE_VELOCITY = 105
SIDE_STICK_VELOCITY = 88

POP_KICKS = (0, 16)
POP_SNARES = (8, 24)
BOSSA_KICKS = (0, 12, 16, 28)
BOSSA_CLAVE = (0, 6, 12, 20, 26)
SWING_HAT_ACCENTS = (8, 24)


class PatternContext(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    tempo_bpm: int
    time_signature: str
    key: str
    harmony_by_measure: Dict[int, List[HarmonyMark]] = Field(default_factory=dict)
    measure_numbers: List[int] = Field(default_factory=lambda: [1])
    divisions: int = DIVISIONS_PER_QUARTER
    rng: XorShift32
    density: float = 0.5
    complexity: float = 0.5

    @property
    def target_divs(self) -> int:
        return measure_target_divs(self.time_signature)

    @property
    def beat_divs(self) -> int:
        _, beat_unit = parse_time_signature(self.time_signature)
        return max(1, self.divisions * 4 // beat_unit)

    def chord_at(self, number: int, at_divs: int = 0, default: str = DEFAULT_ACCOMPANIMENT_CHORD) -> str:
        marks = self.harmony_by_measure.get(number)
        if not marks:
            return default
        chord = marks[0].chord
        for mark in sorted(marks, key=lambda item: item.beat):
            if (mark.beat - 1) * self.beat_divs <= at_divs:
                chord = mark.chord
        return chord


def make_note(pitch: str, dur_divs: int, velocity: Optional[int] = None) -> PitchNote:
    dur, dots = divs_to_note_value(dur_divs)
    return PitchNote(pitch=pitch, dur=dur, dots=dots, velocity=velocity)


def make_hit(
    at_divs: int,
    dur_divs: int,
    pitches: Sequence[str],
    target_divs: int,
    velocity: Optional[int] = None,
) -> Optional[OverlayEvent]:
    if at_divs < 0 or at_divs >= target_divs:
        return None
    dur_divs = min(dur_divs, target_divs - at_divs)
    notes = [make_note(pitch, dur_divs, velocity) for pitch in pitches]
    return OverlayEvent(at_divs=at_divs, dur_divs=dur_divs, notes=notes)


def collect_hits(events: List[Optional[OverlayEvent]]) -> List[OverlayEvent]:
    kept = [event for event in events if event is not None]
    return sorted(kept, key=lambda event: event.at_divs)


def make_overlay(name: str, measures: List[OverlayMeasure], pattern: str) -> TrackOverlay:
    return TrackOverlay(track_name=name, measures=measures, metadata={"pattern": pattern})


def build_walking_bass(ctx: PatternContext) -> TrackOverlay:
    target = ctx.target_divs
    first_chord = ctx.chord_at(ctx.measure_numbers[0], 0, default=DEFAULT_WALKING_CHORD)
    root = chord_root_pc(first_chord) + WALKING_BASS_OFFSET
    measures: List[OverlayMeasure] = []
    for number in ctx.measure_numbers:
        events: List[Optional[OverlayEvent]] = []
        for at in range(0, target, QUARTER):
            midi = root
            if ctx.complexity > WALKING_APPROACH_COMPLEXITY and at >= target - QUARTER:
                midi = root + (2 if ctx.rng.uniform(0, 1) > 0.5 else -1)
            events.append(make_hit(at, QUARTER, [midi_to_pitch(midi)], target))
        measures.append(OverlayMeasure(number=number, events=collect_hits(events)))
        root = (root + WALKING_BASS_STEP) % WALKING_BASS_WRAP
        if root < WALKING_BASS_OFFSET:
            root += 12
    return make_overlay(BASS_TRACK, measures, "walking")


def build_comping(ctx: PatternContext, template: Sequence[Tuple[int, int]], pattern: str) -> TrackOverlay:
    target = ctx.target_divs
    add_ninth = ctx.complexity > SHELL_NINTH_COMPLEXITY
    last_top = SHELL_START_TOP
    measures: List[OverlayMeasure] = []
    for number in ctx.measure_numbers:
        events: List[Optional[OverlayEvent]] = []
        for at, dur in template:
            if at >= target:
                continue
            symbol = ctx.chord_at(number, at)
            _, quality = parse_chord_symbol(symbol)
            voiced = voice_shell(chord_root_pc(symbol), shell_intervals(quality, add_ninth), last_top, SHELL_TOP_LOW, SHELL_TOP_HIGH)
            last_top = voiced[-1]
            pitches = [midi_to_pitch(midi) for midi in voiced]
            events.append(make_hit(at, dur, pitches, target, COMP_VELOCITY))
            if ctx.density > ANTICIPATION_DENSITY:
                events.append(make_hit(at - SIXTEENTH, SIXTEENTH, pitches, target, ANTICIPATION_VELOCITY))
        measures.append(OverlayMeasure(number=number, events=collect_hits(events)))
    return make_overlay(CHORDS_TRACK, measures, pattern)


def build_shell_voicings(ctx: PatternContext) -> TrackOverlay:
    return build_comping(ctx, COMP_TEMPLATES["jazz-swing"], "shell-voicings")


def build_drum_measure(hits: Dict[int, List[Tuple[str, int]]], target: int) -> List[OverlayEvent]:
    events: List[Optional[OverlayEvent]] = []
    for at in sorted(hits):
        if at >= target:
            continue
        dur = min(SIXTEENTH, target - at)
        notes = [make_note(sound, dur, velocity) for sound, velocity in hits[at]]
        events.append(OverlayEvent(at_divs=at, dur_divs=dur, notes=notes))
    return collect_hits(events)


def add_drum_hit(hits: Dict[int, List[Tuple[str, int]]], at: int, sound: str, velocity: int) -> None:
    hits.setdefault(at, []).append((sound, velocity))


def hat_step(ctx: PatternContext) -> int:
    return QUARTER if ctx.density < SPARSE_DENSITY else EIGHTH


def build_drum_overlay(ctx: PatternContext, fill_measure: Callable[[PatternContext, int], Dict[int, List[Tuple[str, int]]]], pattern: str) -> TrackOverlay:
    target = ctx.target_divs
    measures = [
        OverlayMeasure(number=number, events=build_drum_measure(fill_measure(ctx, target), target))
        for number in ctx.measure_numbers
    ]
    return make_overlay(DRUMS_TRACK, measures, pattern)


def swing_ride_hits(ctx: PatternContext, target: int) -> Dict[int, List[Tuple[str, int]]]:
    hits: Dict[int, List[Tuple[str, int]]] = {}
    for at in range(0, target, hat_step(ctx)):
        add_drum_hit(hits, at, "Ride", RIDE_ACCENT_VELOCITY if at % QUARTER == 0 else RIDE_VELOCITY)
    for at in SWING_HAT_ACCENTS:
        add_drum_hit(hits, at, "HiHat", HAT_ACCENT_VELOCITY)
    return hits


def pop_rock_hits(ctx: PatternContext, target: int) -> Dict[int, List[Tuple[str, int]]]:
    hits: Dict[int, List[Tuple[str, int]]] = {}
    for at in range(0, target, hat_step(ctx)):
        add_drum_hit(hits, at, "HiHat", HAT_ACCENT_VELOCITY if at % QUARTER == 0 else HAT_VELOCITY)
        if ctx.complexity > GHOST_NOTE_COMPLEXITY and at + SIXTEENTH < target:
            add_drum_hit(hits, at + SIXTEENTH, "HiHat", GHOST_VELOCITY)
    for at in POP_KICKS:
        add_drum_hit(hits, at, "Kick", KICK_VELOCITY)
    for at in POP_SNARES:
        add_drum_hit(hits, at, "Snare", SNARE_VELOCITY)
    return hits


def bossa_hits(ctx: PatternContext, target: int) -> Dict[int, List[Tuple[str, int]]]:
    hits: Dict[int, List[Tuple[str, int]]] = {}
    for at in range(0, target, hat_step(ctx)):
        add_drum_hit(hits, at, "HiHat", HAT_VELOCITY)
    for at in BOSSA_KICKS:
        add_drum_hit(hits, at, "Kick", KICK_VELOCITY)
    for at in BOSSA_CLAVE:
        add_drum_hit(hits, at, "SideStick", SIDE_STICK_VELOCITY)
    return hits


def build_swing_drums(ctx: PatternContext) -> TrackOverlay:
    return build_drum_overlay(ctx, swing_ride_hits, "swing-ride")


def build_pop_rock_drums(ctx: PatternContext) -> TrackOverlay:
    return build_drum_overlay(ctx, pop_rock_hits, "rock-kit")


def build_bossa_drums(ctx: PatternContext) -> TrackOverlay:
    return build_drum_overlay(ctx, bossa_hits, "bossa-kit")


def build_root_fifth_bass(ctx: PatternContext) -> TrackOverlay:
    target = ctx.target_divs
    measures: List[OverlayMeasure] = []
    for number in ctx.measure_numbers:
        events: List[Optional[OverlayEvent]] = []
        for slot, at in enumerate(range(0, target, QUARTER)):
            root = chord_root_pc(ctx.chord_at(number, at)) + BASS_ROOT_OCTAVE
            step = POP_BASS_STEPS[slot % len(POP_BASS_STEPS)]
            events.append(make_hit(at, QUARTER, [midi_to_pitch(root + step)], target))
        measures.append(OverlayMeasure(number=number, events=collect_hits(events)))
    return make_overlay(BASS_TRACK, measures, "root-5")


def build_bossa_bass(ctx: PatternContext) -> TrackOverlay:
    target = ctx.target_divs
    measures: List[OverlayMeasure] = []
    for number in ctx.measure_numbers:
        events: List[Optional[OverlayEvent]] = []
        for half_start in range(0, target, HALF_BAR):
            for offset, dur, interval in BOSSA_BASS_CELL:
                at = half_start + offset
                root = chord_root_pc(ctx.chord_at(number, at)) + BASS_ROOT_OCTAVE
                events.append(make_hit(at, dur, [midi_to_pitch(root + interval)], target))
        measures.append(OverlayMeasure(number=number, events=collect_hits(events)))
    return make_overlay(BASS_TRACK, measures, "tumbao-lite")


def gen_jazz_swing(ctx: PatternContext) -> Dict[str, TrackOverlay]:
    return {
        "bass": build_walking_bass(ctx),
        "chords": build_shell_voicings(ctx),
        "drums": build_swing_drums(ctx),
    }


def gen_pop_rock(ctx: PatternContext) -> Dict[str, TrackOverlay]:
    return {
        "bass": build_root_fifth_bass(ctx),
        "chords": build_comping(ctx, COMP_TEMPLATES["pop-rock"], "backbeat-shells"),
        "drums": build_pop_rock_drums(ctx),
    }


def gen_bossa(ctx: PatternContext) -> Dict[str, TrackOverlay]:
    return {
        "bass": build_bossa_bass(ctx),
        "chords": build_comping(ctx, COMP_TEMPLATES["bossa"], "anticipations"),
        "drums": build_bossa_drums(ctx),
    }


GENERATORS: Dict[str, Callable[[PatternContext], Dict[str, TrackOverlay]]] = {
    "jazz-swing": gen_jazz_swing,
    "pop-rock": gen_pop_rock,
    "bossa": gen_bossa,
}

STYLE_ALIASES = {
    "jazz": "jazz-swing",
    "swing": "jazz-swing",
    "pop": "pop-rock",
    "rock": "pop-rock",
    "bossa-nova": "bossa",
    "ballad": "pop-rock",
    "latin": "pop-rock",
}

NO_ACCOMPANIMENT = "none"
FALLBACK_STYLE = "pop-rock"


def resolve_style(style: Optional[str]) -> Tuple[str, bool]:
    name = (style or NO_ACCOMPANIMENT).strip().lower().replace("_", "-").replace(" ", "-")
    if name == NO_ACCOMPANIMENT or name in GENERATORS:
        return name, True
    if name in STYLE_ALIASES:
        return STYLE_ALIASES[name], True
    return FALLBACK_STYLE, False
