from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple

try:
    from constants import (
        DIVISIONS_PER_QUARTER,
        MUSICXML_PUBLIC_ID,
        MUSICXML_SOFTWARE,
        MUSICXML_SYSTEM_ID,
        MUSICXML_VERSION,
    )
    from durations import divs_to_note_value, measure_target_divs, note_divs, parse_time_signature
    from errors import PitchSyntaxError
    from midi_utils import (
        percussion_display,
        pitch_to_midi,
        pitch_to_step_alter_octave,
        resolve_track_channel,
    )
    from models import ChordEvent, HarmonyMark, Measure, PitchNote, RestNote, Score, Track, TrackOverlay
    from music_theory import CHORD_SYMBOL_RE, harmony_kind, resolve_key_signature
except ImportError:
    from .constants import (
        DIVISIONS_PER_QUARTER,
        MUSICXML_PUBLIC_ID,
        MUSICXML_SOFTWARE,
        MUSICXML_SYSTEM_ID,
        MUSICXML_VERSION,
    )
    from .durations import divs_to_note_value, measure_target_divs, note_divs, parse_time_signature
    from .errors import PitchSyntaxError
    from .midi_utils import (
        percussion_display,
        pitch_to_midi,
        pitch_to_step_alter_octave,
        resolve_track_channel,
    )
    from .models import ChordEvent, HarmonyMark, Measure, PitchNote, RestNote, Score, Track, TrackOverlay
    from .music_theory import CHORD_SYMBOL_RE, harmony_kind, resolve_key_signature

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
DOCTYPE = f'<!DOCTYPE score-partwise PUBLIC "{MUSICXML_PUBLIC_ID}" "{MUSICXML_SYSTEM_ID}">'

CLEF_MAP = {
    "treble": ("G", 2),
    "bass": ("F", 4),
    "percussion": ("percussion", 2),
}


def render_document(root: ET.Element) -> str:
    ET.indent(root, space="  ", level=0)
    body = ET.tostring(root, encoding="unicode")
    return f"{XML_DECLARATION}\n{DOCTYPE}\n{body}\n"


def add_text(parent: ET.Element, tag: str, text: object) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = str(text)
    return element


def add_header(root: ET.Element, score: Score) -> None:
    work = ET.SubElement(root, "work")
    add_text(work, "work-title", score.meta.title)
    identification = ET.SubElement(root, "identification")
    encoding = ET.SubElement(identification, "encoding")
    add_text(encoding, "software", MUSICXML_SOFTWARE)


def add_part_list(root: ET.Element, score: Score, overlays: List[TrackOverlay]) -> None:
    part_list = ET.SubElement(root, "part-list")
    for index, track in enumerate(score.tracks):
        score_part = ET.SubElement(part_list, "score-part", id=f"P{index + 1}")
        add_text(score_part, "part-name", track.name)
    offset = len(score.tracks)
    for index, overlay in enumerate(overlays):
        score_part = ET.SubElement(part_list, "score-part", id=f"P{offset + index + 1}")
        pattern = overlay.metadata.get("pattern")
        name = f"{overlay.track_name} ({pattern})" if pattern else overlay.track_name
        add_text(score_part, "part-name", name)


def add_time(attributes: ET.Element, time_signature: str) -> None:
    beats, beat_type = parse_time_signature(time_signature)
    time = ET.SubElement(attributes, "time")
    add_text(time, "beats", beats)
    add_text(time, "beat-type", beat_type)


def add_clef(attributes: ET.Element, clef: str) -> None:
    sign, line = CLEF_MAP[clef]
    clef_el = ET.SubElement(attributes, "clef")
    add_text(clef_el, "sign", sign)
    add_text(clef_el, "line", line)


def add_base_attributes(measure_el: ET.Element, score: Score, track: Track, percussion: bool) -> None:
    attributes = ET.SubElement(measure_el, "attributes")
    add_text(attributes, "divisions", DIVISIONS_PER_QUARTER)
    fifths, mode, _ = resolve_key_signature(score.meta.key)
    key = ET.SubElement(attributes, "key")
    add_text(key, "fifths", fifths)
    add_text(key, "mode", mode)
    add_time(attributes, score.meta.time_signature)
    add_clef(attributes, "percussion" if percussion else track.clef)
    transposition = (score.transpositions or {}).get(track.name)
    if transposition is not None:
        transpose = ET.SubElement(attributes, "transpose")
        add_text(transpose, "chromatic", transposition.chromatic)
        if transposition.octave_change is not None:
            add_text(transpose, "octave-change", transposition.octave_change)


def add_tempo(measure_el: ET.Element, tempo_bpm: int) -> None:
    ET.SubElement(measure_el, "sound", tempo=str(tempo_bpm))


def add_harmony(measure_el: ET.Element, mark: HarmonyMark, beat_divs: int) -> None:
    harmony = ET.SubElement(measure_el, "harmony")
    root = ET.SubElement(harmony, "root")
    match = CHORD_SYMBOL_RE.match(mark.chord.strip())
    if match:
        root_name, quality = match.group(1), match.group(2)
        add_text(root, "root-step", root_name[0])
        if len(root_name) > 1:
            add_text(root, "root-alter", 1 if root_name[1] == "#" else -1)
        kind_value = harmony_kind(quality)
    else:
        add_text(root, "root-step", "C")
        kind_value = "none"
    kind = add_text(harmony, "kind", kind_value)
    kind.set("text", mark.chord)
    offset = int((mark.beat - 1) * beat_divs)
    if offset > 0:
        add_text(harmony, "offset", offset)


def add_pitch(note_el: ET.Element, pitch: str, percussion: bool) -> None:
    if percussion:
        unpitched = ET.SubElement(note_el, "unpitched")
        step, octave = percussion_display(pitch)
        add_text(unpitched, "display-step", step)
        add_text(unpitched, "display-octave", octave)
        return
    step, alter, octave = pitch_to_step_alter_octave(pitch)
    pitch_el = ET.SubElement(note_el, "pitch")
    add_text(pitch_el, "step", step)
    if alter:
        add_text(pitch_el, "alter", alter)
    add_text(pitch_el, "octave", octave)


def add_note(
    measure_el: ET.Element,
    note: PitchNote,
    duration: int,
    percussion: bool,
    in_chord: bool = False,
    value: Optional[Tuple[str, int]] = None,
) -> None:
    dur, dots = value or (note.dur, note.dots)
    note_el = ET.SubElement(measure_el, "note")
    if in_chord:
        ET.SubElement(note_el, "chord")
    add_pitch(note_el, note.pitch, percussion)
    add_text(note_el, "duration", duration)
    if not percussion:
        if note.tie_start:
            ET.SubElement(note_el, "tie", type="start")
        if note.tie_stop:
            ET.SubElement(note_el, "tie", type="stop")
    add_text(note_el, "type", dur)
    for _ in range(dots):
        ET.SubElement(note_el, "dot")
    if not percussion and (note.tie_start or note.tie_stop):
        notations = ET.SubElement(note_el, "notations")
        if note.tie_start:
            ET.SubElement(notations, "tied", type="start")
        if note.tie_stop:
            ET.SubElement(notations, "tied", type="stop")


def add_rest(measure_el: ET.Element, dur: str, dots: int, duration: int) -> None:
    note_el = ET.SubElement(measure_el, "note")
    ET.SubElement(note_el, "rest")
    add_text(note_el, "duration", duration)
    add_text(note_el, "type", dur)
    for _ in range(dots):
        ET.SubElement(note_el, "dot")


def check_pitches(notes: List[PitchNote], percussion: bool, track: str, measure: int) -> None:
    if percussion:
        return
    for note in notes:
        try:
            pitch_to_midi(note.pitch)
        except PitchSyntaxError:
            raise PitchSyntaxError(note.pitch, track, measure) from None


def add_base_measure(
    part: ET.Element,
    score: Score,
    track: Track,
    measure: Measure,
    first: bool,
    percussion: bool = False,
) -> None:
    measure_el = ET.SubElement(part, "measure", number=str(measure.number))
    if first:
        add_base_attributes(measure_el, score, track, percussion)
    add_tempo(measure_el, score.meta.tempo_bpm)

    if measure.harmony:
        _, beat_unit = parse_time_signature(score.meta.time_signature)
        beat_divs = DIVISIONS_PER_QUARTER * 4 // beat_unit
        for mark in measure.harmony:
            add_harmony(measure_el, mark, beat_divs)

    for event in measure.events:
        if isinstance(event, RestNote):
            add_rest(measure_el, event.dur, event.dots, note_divs(event.dur, event.dots))
        elif isinstance(event, ChordEvent):
            check_pitches(event.notes, percussion, track.name, measure.number)
            first_note = event.notes[0]
            value = (first_note.dur, first_note.dots)
            duration = note_divs(*value)
            for index, note in enumerate(event.notes):
                add_note(measure_el, note, duration, percussion, in_chord=index > 0, value=value)
        else:
            check_pitches([event], percussion, track.name, measure.number)
            add_note(measure_el, event, note_divs(event.dur, event.dots), percussion)


def add_overlay_part(root: ET.Element, part_id: str, overlay: TrackOverlay, score: Score) -> None:
    part = ET.SubElement(root, "part", id=part_id)
    percussion = "drum" in overlay.track_name.lower()
    target = measure_target_divs(score.meta.time_signature)
    for index, measure in enumerate(sorted(overlay.measures, key=lambda item: item.number)):
        measure_el = ET.SubElement(part, "measure", number=str(measure.number))
        if index == 0:
            attributes = ET.SubElement(measure_el, "attributes")
            add_text(attributes, "divisions", DIVISIONS_PER_QUARTER)
            add_time(attributes, score.meta.time_signature)
            add_clef(attributes, "percussion" if percussion else "treble")
        add_tempo(measure_el, score.meta.tempo_bpm)

        cursor = 0
        for event in sorted(measure.events, key=lambda item: item.at_divs):
            if event.at_divs > cursor:
                forward = ET.SubElement(measure_el, "forward")
                add_text(forward, "duration", event.at_divs - cursor)
            elif event.at_divs < cursor:
                backup = ET.SubElement(measure_el, "backup")
                add_text(backup, "duration", cursor - event.at_divs)
            if isinstance(event.notes, RestNote):
                dur, dots = divs_to_note_value(event.dur_divs)
                add_rest(measure_el, dur, dots, event.dur_divs)
            else:
                check_pitches(event.notes, percussion, overlay.track_name, measure.number)
                for note_index, note in enumerate(event.notes):
                    add_note(measure_el, note, event.dur_divs, percussion, in_chord=note_index > 0)
            cursor = event.at_divs + event.dur_divs
        if cursor < target:
            forward = ET.SubElement(measure_el, "forward")
            add_text(forward, "duration", target - cursor)


def score_to_musicxml(score: Score, overlays: Optional[List[TrackOverlay]] = None) -> str:
    overlays = overlays or []
    root = ET.Element("score-partwise", version=MUSICXML_VERSION)
    add_header(root, score)
    add_part_list(root, score, overlays)

    for index, track in enumerate(score.tracks):
        part = ET.SubElement(root, "part", id=f"P{index + 1}")
        _, percussion = resolve_track_channel(track, index)
        for measure_index, measure in enumerate(track.measures):
            add_base_measure(part, score, track, measure, measure_index == 0, percussion)

    offset = len(score.tracks)
    for index, overlay in enumerate(overlays):
        add_overlay_part(root, f"P{offset + index + 1}", overlay, score)

    return render_document(root)
