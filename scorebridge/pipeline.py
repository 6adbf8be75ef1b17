from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

try:
    from arrange import apply_accompaniment
    from constants import FALLBACK_MAX_MEASURES
    from durations import DIVS_TO_DUR, DUR_TO_DIVS, make_rest_fill, measure_target_divs
    from logger_config import logger
    from midi_emit import score_to_midi, unknown_percussion_names, uses_direct_path
    from models import ArrangeConfig, CompositionSpec, Score, TrackOverlay
    from music_theory import resolve_key_signature
    from musicxml_emit import score_to_musicxml
    from timing import humanize_and_quantize
except ImportError:
    from .arrange import apply_accompaniment
    from .constants import FALLBACK_MAX_MEASURES
    from .durations import DIVS_TO_DUR, DUR_TO_DIVS, make_rest_fill, measure_target_divs
    from .logger_config import logger
    from .midi_emit import score_to_midi, unknown_percussion_names, uses_direct_path
    from .models import ArrangeConfig, CompositionSpec, Score, TrackOverlay
    from .music_theory import resolve_key_signature
    from .musicxml_emit import score_to_musicxml
    from .timing import humanize_and_quantize

FALLBACK_PITCHES = {
    "bass": "C2",
    "chords": "C4",
    "melody": "E4",
    "strings": "C4",
    "pad": "C4",
}
FALLBACK_CLEFS = {"bass": "bass", "drums": "percussion"}


class RenderResult(BaseModel):
    musicxml: str
    midi: bytes
    overlays: List[TrackOverlay] = Field(default_factory=list)
    annotations: Dict[str, Any] = Field(default_factory=dict)


def log_unknown_defaults(score: Score, annotations: Dict[str, Any]) -> None:
    _, _, known_key = resolve_key_signature(score.meta.key)
    if not known_key:
        logger.warning("Unknown key %r, using C major key signature", score.meta.key)
    unknown_drums = unknown_percussion_names(score)
    if unknown_drums:
        logger.warning("Unknown percussion names mapped to kick: %s", ", ".join(unknown_drums))
    if annotations.get("style_fallback"):
        logger.warning(
            "Unknown accompaniment style %r, using %s",
            annotations.get("requested_style"),
            annotations.get("resolved_style"),
        )


def render_artifacts(
    score: Score,
    arrange: Optional[ArrangeConfig] = None,
    include_overlays_in_musicxml: bool = False,
    include_overlays_in_midi: bool = True,
) -> RenderResult:
    overlays: List[TrackOverlay] = []
    annotations: Dict[str, Any] = {}
    if arrange is not None and arrange.accompaniment.enabled:
        arranged = apply_accompaniment(score, arrange)
        overlays = arranged.overlays
        annotations.update(arranged.annotations)
    if not uses_direct_path(arrange):
        annotations["timing"] = humanize_and_quantize(score, arrange).annotations
    log_unknown_defaults(score, annotations)

    musicxml = score_to_musicxml(score, overlays if include_overlays_in_musicxml else None)
    midi = score_to_midi(score, arrange, include_overlays=include_overlays_in_midi)
    logger.info(
        "Rendered artifacts: tracks=%d overlays=%d musicxml=%d chars midi=%d bytes",
        len(score.tracks),
        len(overlays),
        len(musicxml),
        len(midi),
    )
    return RenderResult(musicxml=musicxml, midi=midi, overlays=overlays, annotations=annotations)


def fallback_events(instrument: str, target_divs: int) -> List[Dict[str, Any]]:
    if instrument == "drums":
        return [{"rest": True, "dur": rest.dur} for rest in make_rest_fill(target_divs)]
    pitch = FALLBACK_PITCHES.get(instrument, "C4")
    quarter = DUR_TO_DIVS["quarter"]
    events: List[Dict[str, Any]] = [
        {"pitch": pitch, "dur": DIVS_TO_DUR[quarter]} for _ in range(target_divs // quarter)
    ]
    events.extend({"rest": True, "dur": rest.dur} for rest in make_rest_fill(target_divs % quarter))
    return events


def build_fallback_score(spec: CompositionSpec) -> Dict[str, Any]:
    measure_count = max(1, min(FALLBACK_MAX_MEASURES, spec.length.measures))
    target = measure_target_divs(spec.time_signature)
    tracks = []
    for instrument in spec.instrumentation:
        tracks.append(
            {
                "name": instrument,
                "clef": FALLBACK_CLEFS.get(instrument, "treble"),
                "measures": [
                    {"number": number, "events": fallback_events(instrument, target)}
                    for number in range(1, measure_count + 1)
                ],
            }
        )
    return {
        "meta": {
            "title": spec.title,
            "style": spec.style,
            "tempoBPM": spec.tempo_bpm,
            "timeSignature": spec.time_signature,
            "key": spec.key,
            "length": {"measures": measure_count},
        },
        "tracks": tracks,
    }
