from __future__ import annotations

from io import BytesIO
from typing import List, Optional, Tuple

import mido
from mido import Message, MetaMessage, MidiFile, MidiTrack

try:
    from arrange import apply_accompaniment
    from constants import (
        DEFAULT_DIRECT_VELOCITY,
        DEFAULT_OVERLAY_VELOCITY,
        MIDI_MAX,
        MIDI_VEL_MIN,
        TICKS_PER_QUARTER,
    )
    from durations import event_divs, measure_target_divs, parse_time_signature
    from errors import PitchSyntaxError
    from midi_utils import (
        divs_to_ticks,
        guess_program,
        is_known_percussion,
        ms_to_ticks,
        percussion_to_midi,
        pitch_to_midi,
        resolve_overlay_channel,
        resolve_track_channel,
        resolve_track_program,
    )
    from models import ArrangeConfig, ChordEvent, RestNote, Score, TrackOverlay
    from music_theory import KEY_TO_FIFTHS, resolve_key_signature
    from timing import humanize_and_quantize
    from utils import clamp
except ImportError:
    from .arrange import apply_accompaniment
    from .constants import (
        DEFAULT_DIRECT_VELOCITY,
        DEFAULT_OVERLAY_VELOCITY,
        MIDI_MAX,
        MIDI_VEL_MIN,
        TICKS_PER_QUARTER,
    )
    from .durations import event_divs, measure_target_divs, parse_time_signature
    from .errors import PitchSyntaxError
    from .midi_utils import (
        divs_to_ticks,
        guess_program,
        is_known_percussion,
        ms_to_ticks,
        percussion_to_midi,
        pitch_to_midi,
        resolve_overlay_channel,
        resolve_track_channel,
        resolve_track_program,
    )
    from .models import ArrangeConfig, ChordEvent, RestNote, Score, TrackOverlay
    from .music_theory import KEY_TO_FIFTHS, resolve_key_signature
    from .timing import humanize_and_quantize
    from .utils import clamp

# (tick, order, message); note_off sorts before note_on on the same tick.
TimedMessage = Tuple[int, int, Message]

NOTE_OFF_ORDER = 0
NOTE_ON_ORDER = 1

FIFTHS_TO_MIDO_KEY = {
    (fifths, mode): name.split()[0] + ("m" if mode == "minor" else "")
    for name, (fifths, mode) in KEY_TO_FIFTHS.items()
}


def note_velocity(velocity: Optional[int], default: int) -> int:
    value = default if velocity is None else velocity
    return int(clamp(value, MIDI_VEL_MIN, MIDI_MAX))


def note_messages(channel: int, note: int, tick: int, duration: int, velocity: int) -> List[TimedMessage]:
    tick = max(0, tick)
    return [
        (tick, NOTE_ON_ORDER, Message("note_on", channel=channel, note=note, velocity=velocity)),
        (tick + duration, NOTE_OFF_ORDER, Message("note_off", channel=channel, note=note, velocity=0)),
    ]


def resolve_note_number(pitch: str, percussion: bool, track: str, measure: int) -> int:
    if percussion:
        return percussion_to_midi(pitch)
    try:
        return pitch_to_midi(pitch)
    except PitchSyntaxError:
        raise PitchSyntaxError(pitch, track, measure) from None


def header_messages(score: Score) -> List[MetaMessage]:
    beats, beat_type = parse_time_signature(score.meta.time_signature)
    messages = [
        MetaMessage("set_tempo", tempo=mido.bpm2tempo(score.meta.tempo_bpm), time=0),
        MetaMessage("time_signature", numerator=beats, denominator=beat_type, time=0),
    ]
    fifths, mode, known = resolve_key_signature(score.meta.key)
    if known:
        messages.append(MetaMessage("key_signature", key=FIFTHS_TO_MIDO_KEY[(fifths, mode)], time=0))
    return messages


def build_track(
    name: str,
    channel: int,
    program: Optional[int],
    timed: List[TimedMessage],
    header: Optional[List[MetaMessage]] = None,
) -> MidiTrack:
    track = MidiTrack()
    track.append(MetaMessage("track_name", name=name, time=0))
    for message in header or []:
        track.append(message)
    if program is not None:
        track.append(Message("program_change", channel=channel, program=program, time=0))

    last_tick = 0
    for tick, _, message in sorted(timed, key=lambda item: (item[0], item[1])):
        track.append(message.copy(time=tick - last_tick))
        last_tick = tick
    return track


def direct_track_messages(score: Score, track_index: int, channel: int, percussion: bool) -> List[TimedMessage]:
    track = score.tracks[track_index]
    target = measure_target_divs(score.meta.time_signature)
    timed: List[TimedMessage] = []
    for measure in track.measures:
        cursor = (measure.number - 1) * target
        for event in measure.events:
            divs = event_divs(event)
            if not isinstance(event, RestNote):
                members = event.notes if isinstance(event, ChordEvent) else [event]
                for note in members:
                    number = resolve_note_number(note.pitch, percussion, track.name, measure.number)
                    velocity = note_velocity(note.velocity, DEFAULT_DIRECT_VELOCITY)
                    timed.extend(note_messages(channel, number, divs_to_ticks(cursor), divs_to_ticks(divs), velocity))
            cursor += divs
    return timed


def overlay_messages(overlay: TrackOverlay, channel: int, percussion: bool, target_divs: int) -> List[TimedMessage]:
    timed: List[TimedMessage] = []
    for measure in overlay.measures:
        measure_start = (measure.number - 1) * target_divs
        for event in sorted(measure.events, key=lambda item: item.at_divs):
            if isinstance(event.notes, RestNote):
                continue
            tick = divs_to_ticks(measure_start + event.at_divs)
            duration = divs_to_ticks(event.dur_divs)
            for note in event.notes:
                number = resolve_note_number(note.pitch, percussion, overlay.track_name, measure.number)
                velocity = note_velocity(note.velocity, DEFAULT_OVERLAY_VELOCITY)
                timed.extend(note_messages(channel, number, tick, duration, velocity))
    return timed


def uses_direct_path(arrange: Optional[ArrangeConfig]) -> bool:
    if arrange is None:
        return True
    return not (arrange.quantize.enabled or arrange.humanize.enabled or arrange.accompaniment.enabled)


def score_to_midi(score: Score, arrange: Optional[ArrangeConfig] = None, include_overlays: bool = True) -> bytes:
    midi_file = MidiFile(type=1, ticks_per_beat=TICKS_PER_QUARTER)
    header = header_messages(score)
    channels = [resolve_track_channel(track, index) for index, track in enumerate(score.tracks)]

    if uses_direct_path(arrange):
        per_track = [
            direct_track_messages(score, index, channel, percussion)
            for index, (channel, percussion) in enumerate(channels)
        ]
        overlays: List[TrackOverlay] = []
    else:
        overlays = []
        if arrange.accompaniment.enabled and include_overlays:
            overlays = apply_accompaniment(score, arrange).overlays
        timing = humanize_and_quantize(score, arrange)
        per_track = [[] for _ in score.tracks]
        tempo = score.meta.tempo_bpm
        for event in timing.events:
            channel, percussion = channels[event.track_index]
            track = score.tracks[event.track_index]
            number = resolve_note_number(event.pitch, percussion, track.name, event.measure_number)
            tick = divs_to_ticks(event.abs_start_divs) + ms_to_ticks(event.timing_offset_ms, tempo)
            per_track[event.track_index].extend(
                note_messages(
                    channel,
                    number,
                    tick,
                    divs_to_ticks(event.dur_divs),
                    note_velocity(event.velocity, DEFAULT_DIRECT_VELOCITY),
                )
            )

    for index, track in enumerate(score.tracks):
        channel, percussion = channels[index]
        program = None if percussion else resolve_track_program(track)
        midi_file.tracks.append(
            build_track(track.name, channel, program, per_track[index], header if index == 0 else None)
        )

    target = measure_target_divs(score.meta.time_signature)
    for offset, overlay in enumerate(overlays):
        channel, percussion = resolve_overlay_channel(overlay.track_name, len(score.tracks) + offset)
        program = None if percussion else guess_program(overlay.track_name)
        timed = overlay_messages(overlay, channel, percussion, target)
        midi_file.tracks.append(build_track(overlay.track_name, channel, program, timed))

    buffer = BytesIO()
    midi_file.save(file=buffer)
    return buffer.getvalue()


def unknown_percussion_names(score: Score) -> List[str]:
    names: List[str] = []
    for index, track in enumerate(score.tracks):
        _, percussion = resolve_track_channel(track, index)
        if not percussion:
            continue
        for measure in track.measures:
            for event in measure.events:
                if isinstance(event, RestNote):
                    continue
                members = event.notes if isinstance(event, ChordEvent) else [event]
                for note in members:
                    if not is_known_percussion(note.pitch) and note.pitch not in names:
                        names.append(note.pitch)
    return names
