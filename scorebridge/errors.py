from __future__ import annotations

from typing import Any, Dict, List, Optional


class ScoreError(ValueError):
    category = "score_error"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.category, "message": self.message, "details": self.details}


class SchemaViolation(ScoreError):
    category = "schema_violation"

    def __init__(self, errors: List[Dict[str, Any]], message: str = "Score does not match schema") -> None:
        super().__init__(message, errors)
        self.errors = errors


class MeterMismatch(ScoreError):
    category = "meter_mismatch"

    def __init__(self, issues: List[Dict[str, Any]]) -> None:
        summary = "; ".join(
            f"track {issue['track']} measure {issue['measure']}: sum={issue['actual']}, expected={issue['expected']}"
            for issue in issues
        )
        super().__init__(f"Invalid measure durations: {summary}", issues)
        self.issues = issues


class PitchSyntaxError(ScoreError):
    category = "pitch_syntax"

    def __init__(self, pitch: Any, track: Optional[str] = None, measure: Optional[int] = None) -> None:
        location = ""
        if track is not None:
            location = f" (track {track}, measure {measure})"
        super().__init__(
            f"Invalid pitch: {pitch!r}{location}",
            [{"pitch": str(pitch), "track": track, "measure": measure}],
        )
        self.pitch = pitch
        self.track = track
        self.measure = measure
