from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from scorebridge.arrange import apply_accompaniment
from scorebridge.errors import PitchSyntaxError
from scorebridge.models import ArrangeConfig
from scorebridge.musicxml_check import (
    accept_musicxml,
    is_likely_musicxml,
    is_well_formed,
    part_id_mismatches,
    try_extract_musicxml,
)
from scorebridge.musicxml_emit import score_to_musicxml
from scorebridge.validation import prepare_score


def parse(xml):
    return ET.fromstring(xml.encode("utf-8"))


def measure_length(measure_el):
    total = 0
    for child in measure_el:
        if child.tag == "note" and child.find("chord") is None:
            total += int(child.findtext("duration"))
        elif child.tag == "forward":
            total += int(child.findtext("duration"))
        elif child.tag == "backup":
            total -= int(child.findtext("duration"))
    return total


def jazz_overlays(score):
    cfg = ArrangeConfig.model_validate({"seed": 3, "accompaniment": {"enabled": True, "style": "jazz-swing"}})
    return apply_accompaniment(score, cfg).overlays


def test_document_header(score):
    xml = score_to_musicxml(score)
    lines = xml.splitlines()
    assert lines[0] == '<?xml version="1.0" encoding="UTF-8"?>'
    assert lines[1].startswith("<!DOCTYPE score-partwise PUBLIC")
    root = parse(xml)
    assert root.tag == "score-partwise"
    assert root.get("version") == "3.1"
    assert root.findtext("work/work-title") == "Test"


def test_parts_and_attributes(score):
    root = parse(score_to_musicxml(score))
    assert [part.get("id") for part in root.findall("part")] == ["P1", "P2"]
    assert [sp.findtext("part-name") for sp in root.iter("score-part")] == ["Piano", "Bass"]
    first = root.find("part/measure")
    assert first.findtext("attributes/divisions") == "8"
    assert first.findtext("attributes/key/fifths") == "0"
    assert first.findtext("attributes/time/beats") == "4"
    assert first.findtext("attributes/clef/sign") == "G"
    assert first.find("sound").get("tempo") == "120"
    bass_clef = root.findall("part")[1].find("measure/attributes/clef")
    assert bass_clef.findtext("sign") == "F"
    assert bass_clef.findtext("line") == "4"


def test_every_measure_sums_to_meter(score):
    root = parse(score_to_musicxml(score))
    for part in root.findall("part"):
        for measure in part.findall("measure"):
            assert measure_length(measure) == 32


def test_chord_notes_carry_chord_element(score):
    root = parse(score_to_musicxml(score))
    notes = root.find("part/measure").findall("note")
    assert len(notes) == 4
    assert [note.find("chord") is not None for note in notes] == [False, False, True, False]
    assert notes[2].findtext("pitch/step") == "G"
    assert notes[2].findtext("duration") == "8"
    assert notes[3].findtext("type") == "half"


def test_harmony_kind_and_offset(score_dict):
    score_dict["tracks"][0]["measures"][0]["harmony"] = [
        {"beat": 1, "chord": "Cmaj7"},
        {"beat": 3, "chord": "Bbm7"},
    ]
    root = parse(score_to_musicxml(prepare_score(score_dict)))
    marks = root.find("part/measure").findall("harmony")
    assert marks[0].findtext("root/root-step") == "C"
    assert marks[0].findtext("kind") == "major-seventh"
    assert marks[0].find("kind").get("text") == "Cmaj7"
    assert marks[0].find("offset") is None
    assert marks[1].findtext("root/root-alter") == "-1"
    assert marks[1].findtext("kind") == "minor-seventh"
    assert marks[1].findtext("offset") == "16"


def test_tie_and_dot_order(score_dict):
    score_dict["tracks"][1]["measures"][0]["events"] = [
        {"pitch": "C2", "dur": "half", "dots": 1, "tieStart": True},
        {"pitch": "C2", "dur": "quarter"},
    ]
    root = parse(score_to_musicxml(prepare_score(score_dict)))
    note = root.findall("part")[1].find("measure/note")
    tags = [child.tag for child in note]
    assert tags == ["pitch", "duration", "tie", "type", "dot", "notations"]
    assert note.findtext("duration") == "24"
    assert note.find("notations/tied").get("type") == "start"


def test_accidentals_and_key(score_dict):
    score_dict["meta"]["key"] = "Bb major"
    score_dict["tracks"][1]["measures"][0]["events"] = [{"pitch": "F#2", "dur": "whole"}]
    root = parse(score_to_musicxml(prepare_score(score_dict)))
    assert root.find("part/measure").findtext("attributes/key/fifths") == "-2"
    note = root.findall("part")[1].find("measure/note")
    assert note.findtext("pitch/step") == "F"
    assert note.findtext("pitch/alter") == "1"
    assert note.findtext("pitch/octave") == "2"


def test_transposition(score_dict):
    score_dict["transpositions"] = {"Piano": {"chromatic": -2, "octaveChange": 0}}
    root = parse(score_to_musicxml(prepare_score(score_dict)))
    transpose = root.find("part/measure/attributes/transpose")
    assert transpose.findtext("chromatic") == "-2"
    assert transpose.findtext("octave-change") == "0"
    assert root.findall("part")[1].find("measure/attributes/transpose") is None


def test_percussion_uses_unpitched(drum_score_dict):
    root = parse(score_to_musicxml(prepare_score(drum_score_dict)))
    measure = root.find("part/measure")
    assert measure.findtext("attributes/clef/sign") == "percussion"
    notes = measure.findall("note")
    assert notes[0].find("pitch") is None
    assert notes[0].findtext("unpitched/display-step") == "F"
    assert notes[0].findtext("unpitched/display-octave") == "4"
    assert notes[1].findtext("unpitched/display-step") == "C"


def test_invalid_pitch_raises(score_dict):
    score_dict["tracks"][1]["measures"][0]["events"] = [{"pitch": "H2", "dur": "whole"}]
    with pytest.raises(PitchSyntaxError) as excinfo:
        score_to_musicxml(prepare_score(score_dict))
    assert excinfo.value.track == "Bass"
    assert excinfo.value.measure == 1


def test_overlays_are_appended_as_parts(score):
    overlays = jazz_overlays(score)
    root = parse(score_to_musicxml(score, overlays))
    assert [part.get("id") for part in root.findall("part")] == ["P1", "P2", "P3", "P4", "P5"]
    names = [sp.findtext("part-name") for sp in root.iter("score-part")]
    assert names[2:] == ["bass-gen (walking)", "chords-gen (shell-voicings)", "drums-gen (swing-ride)"]
    for part in root.findall("part"):
        for measure in part.findall("measure"):
            assert measure_length(measure) == 32
    chords = root.findall("part")[3].find("measure")
    assert chords.find("forward") is not None
    drums = root.findall("part")[4].find("measure")
    assert drums.findtext("attributes/clef/sign") == "percussion"
    assert drums.find("note/unpitched") is not None


def test_overlays_excluded_by_default(score):
    root = parse(score_to_musicxml(score))
    assert len(root.findall("part")) == 2


def test_output_passes_checks(score):
    xml = score_to_musicxml(score, jazz_overlays(score))
    assert is_well_formed(xml)
    assert is_likely_musicxml(xml)
    assert part_id_mismatches(xml) == []


def test_try_extract_musicxml_from_fenced_text(score):
    xml = score_to_musicxml(score)
    wrapped = "Here you go:\n```xml\n" + xml + "```\ntrailing words"
    extracted = try_extract_musicxml(wrapped)
    assert extracted is not None
    assert is_well_formed(extracted)
    assert try_extract_musicxml("no xml here") is None


def test_rejects_non_musicxml():
    assert not is_likely_musicxml('<?xml version="1.0"?><html></html>')
    assert not is_likely_musicxml("<score-partwise/>")
    assert not is_well_formed("<score-partwise>")


def test_part_id_mismatches_reports_index():
    xml = (
        '<?xml version="1.0"?><score-partwise><part-list>'
        '<score-part id="P1"/><score-part id="P2"/></part-list>'
        '<part id="P1"/><part id="P3"/></score-partwise>'
    )
    assert part_id_mismatches(xml) == [{"index": "1", "part_list": "P2", "part": "P3"}]


def test_out_of_range_pitch_raises(score_dict):
    score_dict["tracks"][1]["measures"][1]["events"] = [{"pitch": "Cb-1", "dur": "whole"}]
    with pytest.raises(PitchSyntaxError) as excinfo:
        score_to_musicxml(prepare_score(score_dict))
    assert excinfo.value.track == "Bass"
    assert excinfo.value.measure == 2


@pytest.mark.parametrize("hints", [{"percussion": True}, {"channel": 9}])
def test_percussion_hints_render_unpitched(score_dict, hints):
    bass = score_dict["tracks"][1]
    bass["midi"] = hints
    bass["measures"] = [{"number": n, "events": [{"pitch": "Kick", "dur": "whole"}]} for n in (1, 2)]
    part = parse(score_to_musicxml(prepare_score(score_dict))).findall("part")[1]
    assert part.findtext("measure/attributes/clef/sign") == "percussion"
    notes = part.findall("measure/note")
    assert len(notes) == 2
    assert all(note.find("pitch") is None for note in notes)
    assert notes[0].findtext("unpitched/display-step") == "F"


def test_chord_members_share_first_note_value(score_dict):
    chord = score_dict["tracks"][0]["measures"][0]["events"][1]
    chord["notes"][1]["dur"] = "half"
    chord["notes"][1]["dots"] = 1
    measure = parse(score_to_musicxml(prepare_score(score_dict))).find("part/measure")
    members = measure.findall("note")[1:3]
    assert members[1].find("chord") is not None
    assert [note.findtext("type") for note in members] == ["quarter", "quarter"]
    assert [note.findtext("duration") for note in members] == ["8", "8"]
    assert all(note.find("dot") is None for note in members)


def test_accept_musicxml(score):
    xml = score_to_musicxml(score)
    assert accept_musicxml(xml) == xml.strip()
    assert accept_musicxml("```xml\n" + xml + "```") == xml.strip()
    assert accept_musicxml(xml.replace('<part id="P1"', '<part id="PX"')) is None
    assert accept_musicxml("no score today") is None
    assert accept_musicxml("") is None
