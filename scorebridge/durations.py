from __future__ import annotations

import re
from typing import Iterable, List, Tuple, Union

try:
    from constants import DIVISIONS_PER_QUARTER
    from errors import SchemaViolation
    from models import ChordEvent, PitchNote, RestNote
    from utils import round_half_up
except ImportError:
    from .constants import DIVISIONS_PER_QUARTER
    from .errors import SchemaViolation
    from .models import ChordEvent, PitchNote, RestNote
    from .utils import round_half_up

DUR_TO_DIVS = {
    "whole": 32,
    "half": 16,
    "quarter": 8,
    "eighth": 4,
    "16th": 2,
    "32nd": 1,
}

DIVS_TO_DUR = {divs: name for name, divs in DUR_TO_DIVS.items()}

REST_FILL_UNITS = (32, 16, 8, 4, 2, 1)
VALID_BEAT_UNITS = (1, 2, 4, 8, 16, 32)
DOT_FACTORS = {0: 1.0, 1: 1.5, 2: 1.75}

TIME_SIG_RE = re.compile(r"^\s*(\d+)\s*/\s*(\d+)\s*$")


def dotted_divs(base: int, dots: int = 0) -> int:
    if not dots or dots <= 0:
        return base
    factor = DOT_FACTORS.get(dots, DOT_FACTORS[2])
    return round_half_up(base * factor)


def note_divs(dur: str, dots: int = 0) -> int:
    return dotted_divs(DUR_TO_DIVS[dur], dots)


def parse_time_signature(time_sig: str) -> Tuple[int, int]:
    match = TIME_SIG_RE.match(str(time_sig))
    if not match:
        raise SchemaViolation(
            [{"loc": ["meta", "timeSignature"], "msg": f"Invalid time signature: {time_sig!r}"}]
        )
    beats = int(match.group(1))
    beat_unit = int(match.group(2))
    if beats < 1 or beat_unit not in VALID_BEAT_UNITS:
        raise SchemaViolation(
            [{"loc": ["meta", "timeSignature"], "msg": f"Unsupported time signature: {time_sig!r}"}]
        )
    return beats, beat_unit


def measure_target_divs(time_sig: str) -> int:
    beats, beat_unit = parse_time_signature(time_sig)
    return round_half_up(beats * DIVISIONS_PER_QUARTER * (4.0 / beat_unit))


def event_divs(event: Union[PitchNote, RestNote, ChordEvent]) -> int:
    if isinstance(event, ChordEvent):
        first = event.notes[0]
        return note_divs(first.dur, first.dots)
    return note_divs(event.dur, event.dots)


def sum_measure_divs(events: Iterable[Union[PitchNote, RestNote, ChordEvent]]) -> int:
    return sum(event_divs(event) for event in events)


def make_rest_fill(deficit: int) -> List[RestNote]:
    rests: List[RestNote] = []
    remaining = deficit
    for unit in REST_FILL_UNITS:
        while remaining >= unit:
            rests.append(RestNote(dur=DIVS_TO_DUR[unit]))
            remaining -= unit
        if remaining == 0:
            break
    return rests


def divs_to_note_value(divs: int) -> Tuple[str, int]:
    for name, base in DUR_TO_DIVS.items():
        for dots in (0, 1, 2):
            if dotted_divs(base, dots) == divs:
                return name, dots
    for unit in REST_FILL_UNITS:
        if unit <= divs:
            return DIVS_TO_DUR[unit], 0
    return DIVS_TO_DUR[1], 0
