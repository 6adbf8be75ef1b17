from __future__ import annotations

import copy
from typing import Any, Dict, List

try:
    from constants import DEFAULT_KEY, DEFAULT_STYLE, DEFAULT_TEMPO_BPM, DEFAULT_TIME_SIG, DEFAULT_TITLE
    from midi_utils import is_pitch_string
except ImportError:
    from .constants import DEFAULT_KEY, DEFAULT_STYLE, DEFAULT_TEMPO_BPM, DEFAULT_TIME_SIG, DEFAULT_TITLE
    from .midi_utils import is_pitch_string

WRAPPER_KEYS = ("score", "result", "data", "SymbolicScore")

META_DEFAULTS = (
    ("title", DEFAULT_TITLE),
    ("style", DEFAULT_STYLE),
    ("tempoBPM", DEFAULT_TEMPO_BPM),
    ("timeSignature", DEFAULT_TIME_SIG),
    ("key", DEFAULT_KEY),
    ("length", None),
)

NOTE_FIELDS = ("pitch", "dur", "dots", "velocity", "tieStart", "tieStop", "tie_start", "tie_stop")


def looks_like_score(value: Any) -> bool:
    return isinstance(value, dict) and "meta" in value and "tracks" in value


def coerce_candidate(raw: Any) -> Any:
    if not isinstance(raw, dict) or looks_like_score(raw):
        return raw
    for key in WRAPPER_KEYS:
        inner = raw.get(key)
        if looks_like_score(inner):
            return inner
    return raw


def drop_nulls(value: Dict[str, Any]) -> Dict[str, Any]:
    return {key: item for key, item in value.items() if item is not None}


def hoist_meta(candidate: Dict[str, Any]) -> None:
    if "meta" in candidate:
        return
    if not any(candidate.get(key) for key, _ in META_DEFAULTS):
        return
    meta: Dict[str, Any] = {}
    for key, default in META_DEFAULTS:
        value = candidate.pop(key, None)
        if value is None:
            value = default
        if value is not None:
            meta[key] = value
    candidate["meta"] = meta


def rename_note_keys(note: Dict[str, Any]) -> Dict[str, Any]:
    if "dur" not in note and "duration" in note:
        note["dur"] = note.pop("duration")
    return note


def tag_event(event: Any) -> Any:
    if isinstance(event, list):
        if len(event) >= 2:
            notes = [tag_event(member) for member in event]
            return {"kind": "chord", "notes": notes}
        return event
    if not isinstance(event, dict):
        return event
    event = drop_nulls(rename_note_keys(event))
    if "kind" in event:
        if event["kind"] == "chord" and isinstance(event.get("notes"), list):
            event["notes"] = [tag_event(member) for member in event["notes"]]
        return event
    if event.get("rest") is True:
        event["kind"] = "rest"
    elif "pitch" in event:
        event["kind"] = "note"
    return event


def unwrap_singleton(event: List[Any], measure: Dict[str, Any]) -> Any:
    first = event[0]
    if not isinstance(first, dict) or not isinstance(first.get("pitch"), str):
        return event
    first = rename_note_keys(dict(first))
    if not is_pitch_string(first["pitch"]):
        harmony = measure.get("harmony")
        if not isinstance(harmony, list):
            harmony = []
            measure["harmony"] = harmony
        harmony.append({"beat": 1, "chord": first["pitch"]})
        return drop_nulls({"rest": True, "dur": first.get("dur"), "dots": first.get("dots")})
    return drop_nulls({field: first.get(field) for field in NOTE_FIELDS})


def normalize_measure(measure: Dict[str, Any]) -> None:
    if not isinstance(measure.get("events"), list) and isinstance(measure.get("notes"), list):
        measure["events"] = measure.pop("notes")
    if isinstance(measure.get("harmony"), list):
        for mark in measure["harmony"]:
            if isinstance(mark, dict) and "chord" not in mark and "chordSymbol" in mark:
                mark["chord"] = mark.pop("chordSymbol")
    events = measure.get("events")
    if not isinstance(events, list):
        return
    normalized = []
    for event in events:
        if isinstance(event, list) and len(event) == 1:
            event = unwrap_singleton(event, measure)
        normalized.append(tag_event(event))
    measure["events"] = normalized


def normalize_candidate(candidate: Any) -> Any:
    candidate = coerce_candidate(candidate)
    if not isinstance(candidate, dict):
        return candidate
    candidate = copy.deepcopy(candidate)
    hoist_meta(candidate)
    tracks = candidate.get("tracks")
    if not isinstance(tracks, list):
        return candidate
    for track in tracks:
        if not isinstance(track, dict) or not isinstance(track.get("measures"), list):
            continue
        for measure in track["measures"]:
            if isinstance(measure, dict):
                normalize_measure(measure)
    return candidate
