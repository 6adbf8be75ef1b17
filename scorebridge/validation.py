from __future__ import annotations

from typing import Any, Dict, List

from pydantic import ValidationError

try:
    from durations import make_rest_fill, measure_target_divs, parse_time_signature, sum_measure_divs
    from errors import MeterMismatch, SchemaViolation
    from models import Score
    from normalization import normalize_candidate
except ImportError:
    from .durations import make_rest_fill, measure_target_divs, parse_time_signature, sum_measure_divs
    from .errors import MeterMismatch, SchemaViolation
    from .models import Score
    from .normalization import normalize_candidate


def validation_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


def parse_score(candidate: Any) -> Score:
    if not isinstance(candidate, dict):
        raise SchemaViolation([{"loc": [], "msg": "Score must be a JSON object", "type": "type_error"}])
    try:
        score = Score.model_validate(candidate)
    except ValidationError as exc:
        raise SchemaViolation(validation_details(exc)) from exc

    parse_time_signature(score.meta.time_signature)

    errors: List[Dict[str, Any]] = []
    for track_index, track in enumerate(score.tracks):
        seen = set()
        for measure_index, measure in enumerate(track.measures):
            if measure.number in seen:
                errors.append(
                    {
                        "loc": ["tracks", track_index, "measures", measure_index, "number"],
                        "msg": f"Duplicate measure number {measure.number} in track {track.name}",
                        "type": "value_error",
                    }
                )
            seen.add(measure.number)
    if errors:
        raise SchemaViolation(errors)
    return score


def autofill_measures(score: Score) -> Score:
    filled = score.model_copy(deep=True)
    target = measure_target_divs(filled.meta.time_signature)
    for track in filled.tracks:
        for measure in track.measures:
            total = sum_measure_divs(measure.events)
            if total < target:
                measure.events.extend(make_rest_fill(target - total))
    return filled


def meter_issues(score: Score) -> List[Dict[str, Any]]:
    target = measure_target_divs(score.meta.time_signature)
    issues: List[Dict[str, Any]] = []
    for track in score.tracks:
        for measure in track.measures:
            total = sum_measure_divs(measure.events)
            if total != target:
                issues.append(
                    {
                        "track": track.name,
                        "measure": measure.number,
                        "expected": target,
                        "actual": total,
                        "delta": total - target,
                    }
                )
    return issues


def check_meter(score: Score) -> Score:
    issues = meter_issues(score)
    if issues:
        raise MeterMismatch(issues)
    return score


def prepare_score(candidate: Any) -> Score:
    score = parse_score(normalize_candidate(candidate))
    return check_meter(autofill_measures(score))
