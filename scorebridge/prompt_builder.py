from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

try:
    from constants import DIVISIONS_PER_QUARTER
    from durations import make_rest_fill, measure_target_divs, note_divs, parse_time_signature
    from models import CompositionSpec, GenerateRequest
except ImportError:
    from .constants import DIVISIONS_PER_QUARTER
    from .durations import make_rest_fill, measure_target_divs, note_divs, parse_time_signature
    from .models import CompositionSpec, GenerateRequest

COMPOSE_SYSTEM_PROMPT = " ".join([
    "You are a composer and arranger. Reply ONLY with valid JSON matching the SymbolicScore type (strict).",
    "Create one track per entry of \"instrumentation\". Respect timeSignature, tempoBPM, key and length.measures.",
    "Every measure must add up to EXACTLY the expected duration.",
    "\"chords\" may contain voicings (simultaneous events written as arrays of notes).",
    "Add \"harmony\" (chord symbols) where relevant.",
    "No explanation outside the JSON.",
])

REPAIR_SYSTEM_PROMPT = (
    "Return valid JSON only. Do not include any extra text or markdown."
)

COMPOSE_INSTRUCTIONS = (
    "Return only a multi-track SymbolicScore JSON whose measures use \"events\" "
    "(notes, rests, or arrays of simultaneous notes). No other keys."
)

GENERATE_SYSTEM_PROMPT = " ".join([
    "You output only well-formed MusicXML 3.1, with no additional text. XML errors are not allowed.",
    "Respect the requested meter and measures, key signature, tempo, clefs, staves and instruments.",
    "Do not exceed 128 measures. Include <identification> and a <credit> with title and author.",
    "Encoding is UTF-8.",
])

GENERATE_FORMAT_RULE = (
    "FORMAT CONSTRAINT (MANDATORY): output ONLY a valid MusicXML 3.1 document (score-partwise) following the "
    "system rules, with the XML declaration, the DOCTYPE and a <part-list>/<score-part id=\"P1\"> consistent "
    "with <part id=\"P1\">. No explanation and no code block."
)

REGENERATE_PROMPT = (
    "Regenerate strictly as MusicXML 3.1 partwise + DOCTYPE + part-list/score-part P1 + part P1. "
    "No text, no ```."
)

UNSPECIFIED = "not specified"

FEW_SHOT_MEASURES = 2
FEW_SHOT_SCALE = ("C4", "D4", "E4", "F4", "G4", "A4", "B4")


def rest_events(divs: int) -> List[Dict[str, Any]]:
    return [{"rest": True, "dur": rest.dur} for rest in make_rest_fill(divs)]


def beat_events(pitches: Sequence[str], target: int) -> List[Dict[str, Any]]:
    count = target // DIVISIONS_PER_QUARTER
    events: List[Dict[str, Any]] = [
        {"pitch": pitches[index % len(pitches)], "dur": "quarter"} for index in range(count)
    ]
    return events + rest_events(target - count * DIVISIONS_PER_QUARTER)


def held_events(pitches: Sequence[str], target: int) -> List[Any]:
    # One held value as long as fits, then rests to the barline.
    first = make_rest_fill(target)[0]
    notes = [{"pitch": pitch, "dur": first.dur} for pitch in pitches]
    held = notes if len(notes) > 1 else notes[0]
    return [held] + rest_events(target - note_divs(first.dur))


def build_few_shot(spec: CompositionSpec) -> Dict[str, Any]:
    target = measure_target_divs(spec.time_signature)
    beats, _ = parse_time_signature(spec.time_signature)
    opening_harmony = [{"beat": 1, "chord": "C"}]
    if beats >= 3:
        opening_harmony.append({"beat": 3, "chord": "F"})
    return {
        "meta": {
            "title": "FewShot",
            "style": "any",
            "tempoBPM": spec.tempo_bpm,
            "timeSignature": spec.time_signature,
            "key": spec.key,
            "length": {"measures": FEW_SHOT_MEASURES},
        },
        "tracks": [
            {
                "name": "melody",
                "clef": "treble",
                "measures": [
                    {"number": 1, "harmony": opening_harmony, "events": beat_events(FEW_SHOT_SCALE, target)},
                    {"number": 2, "harmony": [{"beat": 1, "chord": "G7"}], "events": held_events(["G4"], target)},
                ],
            },
            {
                "name": "chords",
                "clef": "treble",
                "measures": [
                    {"number": 1, "events": held_events(["C4", "E4", "G4"], target)},
                    {"number": 2, "events": held_events(["G3", "B3", "D4"], target)},
                ],
            },
            {
                "name": "bass",
                "clef": "bass",
                "measures": [
                    {"number": 1, "events": beat_events(["C2"], target)},
                    {"number": 2, "events": beat_events(["G1"], target)},
                ],
            },
        ],
    }


def spec_summary(spec: CompositionSpec) -> Dict[str, Any]:
    return spec.model_dump(
        by_alias=True,
        exclude={"model", "arrange", "include_overlays_in_musicxml", "include_overlays_in_midi"},
        exclude_none=True,
    )


def build_compose_prompt(spec: CompositionSpec) -> str:
    payload = {
        "compositionSpec": spec_summary(spec),
        "example": build_few_shot(spec),
        "instructions": COMPOSE_INSTRUCTIONS,
    }
    return json.dumps(payload, ensure_ascii=False)


def build_chat_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def build_compose_messages(spec: CompositionSpec) -> List[Dict[str, str]]:
    return build_chat_messages(COMPOSE_SYSTEM_PROMPT, build_compose_prompt(spec))


def build_repair_messages(content: str) -> List[Dict[str, str]]:
    return build_chat_messages(REPAIR_SYSTEM_PROMPT, content)


def build_generate_prompt(request: GenerateRequest) -> str:
    tempo = f"{request.tempo} BPM" if request.tempo is not None else UNSPECIFIED
    measures = str(request.measures) if request.measures is not None else UNSPECIFIED
    lines = [
        "User parameters:",
        f"- Style: {request.style or UNSPECIFIED}",
        f"- Key: {request.key or UNSPECIFIED}",
        f"- Tempo: {tempo}",
        f"- Instrument: {request.instrument or UNSPECIFIED}",
        f"- Requested measures: {measures}",
        f"- Instructions: {request.prompt}",
        "",
        "If a parameter is not specified, choose plausible and coherent musical values. "
        "If a number of measures is given, limit the piece to that many.",
        "",
        GENERATE_FORMAT_RULE,
    ]
    return "\n".join(lines)


def build_generate_messages(request: GenerateRequest) -> List[Dict[str, str]]:
    return build_chat_messages(GENERATE_SYSTEM_PROMPT, build_generate_prompt(request))


def build_regenerate_messages() -> List[Dict[str, str]]:
    return build_chat_messages(GENERATE_SYSTEM_PROMPT, REGENERATE_PROMPT)
