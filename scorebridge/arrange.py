from __future__ import annotations

from typing import Dict, List, Optional

try:
    from models import ArrangeConfig, ArrangedResult, HarmonyMark, Score, TrackOverlay
    from patterns import GENERATORS, NO_ACCOMPANIMENT, PatternContext, resolve_style
    from rng import XorShift32
except ImportError:
    from .models import ArrangeConfig, ArrangedResult, HarmonyMark, Score, TrackOverlay
    from .patterns import GENERATORS, NO_ACCOMPANIMENT, PatternContext, resolve_style
    from .rng import XorShift32

OVERLAY_ORDER = ("bass", "chords", "drums")


def collect_harmony(score: Score, source_tracks: Optional[List[str]] = None) -> Dict[int, List[HarmonyMark]]:
    wanted = set(source_tracks) if source_tracks else None
    harmony: Dict[int, List[HarmonyMark]] = {}
    for track in score.tracks:
        if wanted is not None and track.name not in wanted:
            continue
        for measure in track.measures:
            for mark in measure.harmony or []:
                harmony.setdefault(measure.number, []).append(HarmonyMark(beat=mark.beat, chord=mark.chord))
    return harmony


def collect_measure_numbers(score: Score) -> List[int]:
    numbers = {measure.number for track in score.tracks for measure in track.measures}
    return sorted(numbers) or [1]


def apply_accompaniment(score: Score, cfg: ArrangeConfig) -> ArrangedResult:
    base = score.model_copy(deep=True)
    accompaniment = cfg.accompaniment
    resolved_style, known = resolve_style(accompaniment.style)

    annotations = {
        "accompaniment": accompaniment.model_dump(by_alias=True),
        "seed": cfg.seed,
        "requested_style": accompaniment.style,
        "resolved_style": resolved_style,
        "style_fallback": not known,
    }

    if not accompaniment.enabled or resolved_style == NO_ACCOMPANIMENT:
        return ArrangedResult(base=base, overlays=[], annotations=annotations)

    harmony = collect_harmony(base, accompaniment.source_tracks)
    ctx = PatternContext(
        tempo_bpm=base.meta.tempo_bpm,
        time_signature=base.meta.time_signature,
        key=base.meta.key,
        harmony_by_measure=harmony,
        measure_numbers=collect_measure_numbers(base),
        rng=XorShift32(cfg.seed),
        density=accompaniment.density,
        complexity=accompaniment.complexity,
    )
    generated = GENERATORS[resolved_style](ctx)
    overlays: List[TrackOverlay] = [generated[role] for role in OVERLAY_ORDER if role in generated]
    return ArrangedResult(base=base, overlays=overlays, annotations=annotations)
