from __future__ import annotations

import re
from typing import List, Tuple

NOTE_TO_PC = {
    "C": 0, "C#": 1, "Db": 1, "D": 2, "D#": 3, "Eb": 3,
    "E": 4, "Fb": 4, "E#": 5, "F": 5, "F#": 6, "Gb": 6,
    "G": 7, "G#": 8, "Ab": 8, "A": 9, "A#": 10, "Bb": 10,
    "B": 11, "Cb": 11, "B#": 0,
}

CHORD_SYMBOL_RE = re.compile(r"^([A-G](?:#|b)?)(.*)$")
KEY_NAME_RE = re.compile(r"^([A-Ga-g])([#b]?)\s*(major|minor|maj|min|m)?$", re.IGNORECASE)

KEY_TO_FIFTHS = {
    "C major": (0, "major"), "G major": (1, "major"), "D major": (2, "major"),
    "A major": (3, "major"), "E major": (4, "major"), "B major": (5, "major"),
    "F# major": (6, "major"), "C# major": (7, "major"), "F major": (-1, "major"),
    "Bb major": (-2, "major"), "Eb major": (-3, "major"), "Ab major": (-4, "major"),
    "Db major": (-5, "major"), "Gb major": (-6, "major"), "Cb major": (-7, "major"),
    "A minor": (0, "minor"), "E minor": (1, "minor"), "B minor": (2, "minor"),
    "F# minor": (3, "minor"), "C# minor": (4, "minor"), "G# minor": (5, "minor"),
    "D# minor": (6, "minor"), "A# minor": (7, "minor"), "D minor": (-1, "minor"),
    "G minor": (-2, "minor"), "C minor": (-3, "minor"), "F minor": (-4, "minor"),
    "Bb minor": (-5, "minor"), "Eb minor": (-6, "minor"), "Ab minor": (-7, "minor"),
}

# Chord-quality suffix to MusicXML <kind> value.
QUALITY_TO_KIND = {
    "": "major",
    "maj": "major",
    "M": "major",
    "m": "minor",
    "min": "minor",
    "-": "minor",
    "7": "dominant",
    "maj7": "major-seventh",
    "M7": "major-seventh",
    "m7": "minor-seventh",
    "min7": "minor-seventh",
    "-7": "minor-seventh",
    "mmaj7": "major-minor",
    "dim": "diminished",
    "o": "diminished",
    "dim7": "diminished-seventh",
    "o7": "diminished-seventh",
    "m7b5": "half-diminished",
    "ø": "half-diminished",
    "aug": "augmented",
    "+": "augmented",
    "aug7": "augmented-seventh",
    "6": "major-sixth",
    "m6": "minor-sixth",
    "9": "dominant-ninth",
    "maj9": "major-ninth",
    "m9": "minor-ninth",
    "11": "dominant-11th",
    "m11": "minor-11th",
    "13": "dominant-13th",
    "sus2": "suspended-second",
    "sus4": "suspended-fourth",
    "sus": "suspended-fourth",
    "5": "power",
}
DEFAULT_HARMONY_KIND = "other"


def parse_chord_symbol(symbol: str) -> Tuple[str, str]:
    match = CHORD_SYMBOL_RE.match(symbol.strip()) if isinstance(symbol, str) else None
    if not match:
        return "C", ""
    return match.group(1), match.group(2)


def chord_root_pc(symbol: str) -> int:
    root, _ = parse_chord_symbol(symbol)
    return NOTE_TO_PC.get(root, 0)


def harmony_kind(quality: str) -> str:
    base = quality.split("/", 1)[0].strip()
    return QUALITY_TO_KIND.get(base, DEFAULT_HARMONY_KIND)


def resolve_key_signature(key: str) -> Tuple[int, str, bool]:
    if not key:
        return 0, "major", False
    key = key.strip()
    if key in KEY_TO_FIFTHS:
        fifths, mode = KEY_TO_FIFTHS[key]
        return fifths, mode, True

    match = KEY_NAME_RE.match(key)
    if match:
        letter, accidental, mode_word = match.groups()
        is_minor = bool(mode_word) and (mode_word == "m" or mode_word.lower() in ("minor", "min"))
        canonical = f"{letter.upper()}{accidental} {'minor' if is_minor else 'major'}"
        if canonical in KEY_TO_FIFTHS:
            fifths, mode = KEY_TO_FIFTHS[canonical]
            return fifths, mode, True
    return 0, "major", False


def third_interval(quality: str) -> int:
    return 3 if "m" in quality and "maj" not in quality else 4


def seventh_interval(quality: str) -> int:
    return 11 if "maj7" in quality else 10


def shell_intervals(quality: str, add_ninth: bool = False) -> List[int]:
    intervals = [third_interval(quality), seventh_interval(quality)]
    if add_ninth:
        intervals.append(14)
    return intervals


def nearest_pitch_for_pc(pc: int, target: int, low: int, high: int) -> int:
    best = None
    best_distance = None
    for octave in range(low // 12 - 1, high // 12 + 2):
        candidate = pc % 12 + octave * 12
        if candidate < low or candidate > high:
            continue
        distance = abs(candidate - target)
        if best_distance is None or distance < best_distance:
            best = candidate
            best_distance = distance
    if best is None:
        return max(low, min(high, target))
    return best


def voice_shell(root_pc: int, intervals: List[int], previous_top: int, low: int, high: int) -> List[int]:
    pcs = [(root_pc + interval) % 12 for interval in intervals]
    candidates = [nearest_pitch_for_pc(pc, previous_top, low, high) for pc in pcs]
    top = min(candidates, key=lambda pitch: (abs(pitch - previous_top), pitch))
    top_pc = top % 12
    voiced = [top]
    for pc in pcs:
        if pc == top_pc:
            continue
        below = top - ((top_pc - pc) % 12 or 12)
        voiced.append(below)
    return sorted(voiced)
