from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

try:
    from constants import DEFAULT_PROVIDER, DEFAULT_SEED
except ImportError:
    from .constants import DEFAULT_PROVIDER, DEFAULT_SEED

NoteDur = Literal["whole", "half", "quarter", "eighth", "16th", "32nd"]
ClefKind = Literal["treble", "bass", "percussion"]
GridName = Literal["1/4", "1/8", "1/16", "1/32"]
VelocityCurve = Literal["linear", "soft", "hard"]
SwingTarget = Literal["melody", "chords", "bass", "drums", "*"]
Instrument = Literal["melody", "chords", "bass", "drums", "pad", "strings"]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PitchNote(WireModel):
    kind: Literal["note"] = "note"
    pitch: str
    dur: NoteDur
    dots: int = Field(default=0, ge=0, le=2)
    tie_start: bool = Field(default=False, alias="tieStart")
    tie_stop: bool = Field(default=False, alias="tieStop")
    velocity: Optional[int] = Field(default=None, ge=0, le=127)


class RestNote(WireModel):
    kind: Literal["rest"] = "rest"
    rest: Literal[True] = True
    dur: NoteDur
    dots: int = Field(default=0, ge=0, le=2)


class ChordEvent(WireModel):
    kind: Literal["chord"] = "chord"
    notes: List[PitchNote] = Field(min_length=2)


Event = Annotated[Union[PitchNote, RestNote, ChordEvent], Field(discriminator="kind")]


class HarmonyMark(WireModel):
    beat: float = Field(default=1, ge=1)
    chord: str


class Measure(WireModel):
    number: int = Field(ge=1)
    harmony: Optional[List[HarmonyMark]] = None
    events: List[Event] = Field(min_length=1)


class MidiHints(WireModel):
    channel: Optional[int] = Field(default=None, ge=0, le=15)
    program: Optional[int] = Field(default=None, ge=0, le=127)
    percussion: Optional[bool] = None


class Track(WireModel):
    name: str = Field(min_length=1)
    clef: ClefKind
    midi: Optional[MidiHints] = None
    measures: List[Measure] = Field(min_length=1)


class LengthHint(WireModel):
    measures: Optional[int] = Field(default=None, ge=1, le=128)


class ScoreMeta(WireModel):
    title: str
    style: str
    tempo_bpm: int = Field(alias="tempoBPM", ge=30, le=300)
    time_signature: str = Field(alias="timeSignature")
    key: str
    length: Optional[LengthHint] = None


class Transposition(WireModel):
    chromatic: int
    octave_change: Optional[int] = Field(default=None, alias="octaveChange")


class Score(WireModel):
    meta: ScoreMeta
    tracks: List[Track] = Field(min_length=1)
    transpositions: Optional[Dict[str, Transposition]] = None


class SwingConfig(WireModel):
    enabled: bool = False
    ratio: float = Field(default=0.66, ge=0.55, le=0.75)
    apply_to: List[SwingTarget] = Field(default_factory=lambda: ["*"], alias="applyTo")


class QuantizeConfig(WireModel):
    enabled: bool = True
    grid: GridName = "1/8"
    strength: float = Field(default=0.7, ge=0.0, le=1.0)
    swing: Optional[SwingConfig] = Field(default_factory=SwingConfig)


class HumanizeConfig(WireModel):
    enabled: bool = True
    timing_jitter_ms: float = Field(default=12, ge=0, le=50, alias="timingJitterMs")
    velocity_jitter: float = Field(default=0.12, ge=0.0, le=1.0, alias="velocityJitter")
    velocity_curve: Optional[VelocityCurve] = Field(default="soft", alias="velocityCurve")


class AccompanimentConfig(WireModel):
    enabled: bool = False
    style: str = "none"
    source_tracks: Optional[List[str]] = Field(default=None, alias="sourceTracks")
    density: float = Field(default=0.5, ge=0.0, le=1.0)
    complexity: float = Field(default=0.5, ge=0.0, le=1.0)


class ArrangeConfig(WireModel):
    seed: Optional[int] = DEFAULT_SEED
    quantize: QuantizeConfig = Field(default_factory=QuantizeConfig)
    humanize: HumanizeConfig = Field(default_factory=HumanizeConfig)
    accompaniment: AccompanimentConfig = Field(default_factory=AccompanimentConfig)


class OverlayEvent(WireModel):
    at_divs: int = Field(ge=0, alias="atDivs")
    dur_divs: int = Field(ge=1, alias="durDivs")
    notes: Union[List[PitchNote], RestNote]
    voice: Optional[int] = None


class OverlayMeasure(WireModel):
    number: int = Field(ge=1)
    events: List[OverlayEvent] = Field(default_factory=list)


class TrackOverlay(WireModel):
    track_name: str = Field(alias="trackName")
    measures: List[OverlayMeasure] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ArrangedResult(WireModel):
    base: Score
    overlays: List[TrackOverlay] = Field(default_factory=list)
    annotations: Dict[str, Any] = Field(default_factory=dict)


class TimedEvent(WireModel):
    track_index: int
    measure_number: int
    start_divs: int
    abs_start_divs: int
    dur_divs: int
    velocity: int
    pitch: str
    timing_offset_ms: int = 0


class TimingResult(WireModel):
    events: List[TimedEvent] = Field(default_factory=list)
    annotations: Dict[str, Any] = Field(default_factory=dict)


class ModelInfo(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    provider: str = DEFAULT_PROVIDER
    model_name: Optional[str] = None
    fallback_model_name: Optional[str] = None
    temperature: Optional[float] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None


class LengthSpec(WireModel):
    measures: int = Field(ge=1, le=64)


class CompositionSpec(WireModel):
    title: str
    style: str
    tempo_bpm: int = Field(alias="tempoBPM", ge=30, le=300)
    time_signature: str = Field(alias="timeSignature")
    key: str
    length: LengthSpec
    instrumentation: List[Instrument] = Field(min_length=1)
    constraints: Optional[List[str]] = None
    user_prompt: str = Field(default="", max_length=2000, alias="userPrompt")
    arrange: Optional[ArrangeConfig] = None
    include_overlays_in_musicxml: bool = Field(default=False, alias="includeOverlaysInMusicXML")
    include_overlays_in_midi: bool = Field(default=True, alias="includeOverlaysInMIDI")
    model: Optional[ModelInfo] = None


class RenderRequest(WireModel):
    score: Dict[str, Any]
    arrange: Optional[ArrangeConfig] = None
    include_overlays_in_musicxml: bool = Field(default=False, alias="includeOverlaysInMusicXML")
    include_overlays_in_midi: bool = Field(default=True, alias="includeOverlaysInMIDI")


class GenerateRequest(WireModel):
    prompt: str = Field(min_length=1, max_length=2000)
    style: Optional[str] = None
    key: Optional[str] = None
    tempo: Optional[int] = Field(default=None, ge=40, le=240)
    instrument: Optional[str] = None
    measures: Optional[int] = Field(default=None, ge=1, le=128)
    model: Optional[ModelInfo] = None
