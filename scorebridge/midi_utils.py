from __future__ import annotations

import re
from typing import Any, Optional, Tuple

try:
    from constants import (
        DEFAULT_DRUM_NOTE,
        DIVISIONS_PER_QUARTER,
        MIDI_CHAN_MAX,
        MIDI_CHAN_MIN,
        MIDI_MAX,
        MIDI_MIN,
        MS_PER_MINUTE,
        PERCUSSION_CHANNEL,
        TICKS_PER_QUARTER,
    )
    from errors import PitchSyntaxError
    from models import Track
    from utils import clamp, round_half_up
except ImportError:
    from .constants import (
        DEFAULT_DRUM_NOTE,
        DIVISIONS_PER_QUARTER,
        MIDI_CHAN_MAX,
        MIDI_CHAN_MIN,
        MIDI_MAX,
        MIDI_MIN,
        MS_PER_MINUTE,
        PERCUSSION_CHANNEL,
        TICKS_PER_QUARTER,
    )
    from .errors import PitchSyntaxError
    from .models import Track
    from .utils import clamp, round_half_up

PITCH_RE = re.compile(r"^([A-G])(#{1,2}|b{1,2})?(-?\d+)$")

STEP_TO_PC = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
ACCIDENTAL_TO_ALTER = {"": 0, "#": 1, "##": 2, "b": -1, "bb": -2}

# Fixed spelling for generated pitches.
GEN_NOTE_NAMES = ["C", "C#", "D", "Eb", "E", "F", "F#", "G", "Ab", "A", "Bb", "B"]

DRUM_MAP = {
    "kick": 36,
    "bassdrum": 36,
    "sidestick": 37,
    "rim": 37,
    "snare": 38,
    "hihat": 42,
    "closedhihat": 42,
    "pedalhihat": 44,
    "tom": 45,
    "openhihat": 46,
    "crash": 49,
    "ride": 51,
}

# (step, octave) display positions on a five-line percussion staff.
DRUM_DISPLAY = {
    36: ("F", 4),
    37: ("C", 5),
    38: ("C", 5),
    42: ("G", 5),
    44: ("D", 4),
    45: ("E", 5),
    46: ("G", 5),
    49: ("A", 5),
    51: ("F", 5),
}
DEFAULT_DRUM_DISPLAY = ("C", 5)

PROGRAM_HINTS = (
    (("bass",), 33),
    (("sax", "reed", "clarinet", "oboe", "bassoon"), 66),
    (("string", "violin", "viola", "cello"), 48),
    (("pad",), 89),
    (("piano", "melody"), 0),
)
DEFAULT_PROGRAM = 0


def is_pitch_string(value: Any) -> bool:
    return isinstance(value, str) and PITCH_RE.match(value) is not None


def pitch_to_step_alter_octave(pitch: Any) -> Tuple[str, int, int]:
    match = PITCH_RE.match(pitch) if isinstance(pitch, str) else None
    if not match:
        raise PitchSyntaxError(pitch)
    step, accidental, octave_str = match.groups()
    return step, ACCIDENTAL_TO_ALTER[accidental or ""], int(octave_str)


def pitch_number(pitch: Any) -> int:
    step, alter, octave = pitch_to_step_alter_octave(pitch)
    return 12 * (octave + 1) + STEP_TO_PC[step] + alter


def pitch_to_midi(pitch: Any) -> int:
    number = pitch_number(pitch)
    if number < MIDI_MIN or number > MIDI_MAX:
        raise PitchSyntaxError(pitch)
    return number


def midi_to_pitch(midi: int) -> str:
    midi = int(clamp(midi, MIDI_MIN, MIDI_MAX))
    return f"{GEN_NOTE_NAMES[midi % 12]}{midi // 12 - 1}"


def lookup_drum_note(name: Any) -> Optional[int]:
    key = str(name).strip().lower().replace(" ", "").replace("-", "").replace("_", "")
    return DRUM_MAP.get(key)


def percussion_to_midi(pitch: Any) -> int:
    known = lookup_drum_note(pitch)
    if known is not None:
        return known
    text = str(pitch).strip()
    if text.isdigit():
        return int(clamp(int(text), MIDI_MIN, MIDI_MAX))
    if is_pitch_string(text):
        return int(clamp(pitch_number(text), MIDI_MIN, MIDI_MAX))
    return DEFAULT_DRUM_NOTE


def is_known_percussion(pitch: Any) -> bool:
    text = str(pitch).strip()
    return lookup_drum_note(text) is not None or text.isdigit() or is_pitch_string(text)


def percussion_display(pitch: Any) -> Tuple[str, int]:
    if is_pitch_string(pitch):
        step, _, octave = pitch_to_step_alter_octave(pitch)
        return step, octave
    return DRUM_DISPLAY.get(percussion_to_midi(pitch), DEFAULT_DRUM_DISPLAY)


def guess_program(track_name: str) -> int:
    name = track_name.lower()
    for needles, program in PROGRAM_HINTS:
        if any(needle in name for needle in needles):
            return program
    return DEFAULT_PROGRAM


def resolve_track_channel(track: Track, index: int) -> Tuple[int, bool]:
    hints = track.midi
    requested = hints.channel if hints and hints.channel is not None else index
    channel = int(clamp(requested, MIDI_CHAN_MIN, MIDI_CHAN_MAX))
    percussion = (
        track.clef == "percussion"
        or bool(hints and hints.percussion)
        or channel == PERCUSSION_CHANNEL
    )
    if percussion:
        channel = PERCUSSION_CHANNEL
    return channel, percussion


def resolve_track_program(track: Track) -> int:
    if track.midi and track.midi.program is not None:
        return track.midi.program
    return guess_program(track.name)


def resolve_overlay_channel(track_name: str, index: int) -> Tuple[int, bool]:
    if "drum" in track_name.lower():
        return PERCUSSION_CHANNEL, True
    channel = int(clamp(index, MIDI_CHAN_MIN, MIDI_CHAN_MAX))
    if channel == PERCUSSION_CHANNEL:
        channel += 1
    return channel, False


def divs_to_ticks(divs: float) -> int:
    return round_half_up(divs / DIVISIONS_PER_QUARTER * TICKS_PER_QUARTER)


def ms_to_ticks(ms: float, tempo_bpm: float) -> int:
    return round_half_up(ms / MS_PER_MINUTE * tempo_bpm * TICKS_PER_QUARTER)
