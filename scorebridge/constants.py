from __future__ import annotations

APP_NAME = "Score Bridge"
BRIDGE_HOST = "127.0.0.1"
BRIDGE_PORT = 8765

DIVISIONS_PER_QUARTER = 8
TICKS_PER_QUARTER = 480
MUSICXML_VERSION = "3.1"
MUSICXML_PUBLIC_ID = "-//Recordare//DTD MusicXML 3.1 Partwise//EN"
MUSICXML_SYSTEM_ID = "http://www.musicxml.org/dtds/partwise.dtd"
MUSICXML_SOFTWARE = "score-bridge"
MAX_MUSICXML_BYTES = 2 * 1024 * 1024

MIDI_MIN = 0
MIDI_MAX = 127
MIDI_VEL_MIN = 1
MIDI_CHAN_MIN = 0
MIDI_CHAN_MAX = 15
PERCUSSION_CHANNEL = 9
DEFAULT_DRUM_NOTE = 36
MS_PER_MINUTE = 60000.0

DEFAULT_SEED = 1337
XORSHIFT_ZERO_SEED = 0x9E3779B9
RNG_RESOLUTION = 1_000_000
DEFAULT_BASE_VELOCITY = 96
DEFAULT_DIRECT_VELOCITY = 100
DEFAULT_OVERLAY_VELOCITY = 100
SOFT_CURVE_EXPONENT = 0.7
HARD_CURVE_EXPONENT = 1.4

DEFAULT_ACCOMPANIMENT_CHORD = "C7"
DEFAULT_WALKING_CHORD = "Cmaj7"
WALKING_BASS_OFFSET = 24
WALKING_BASS_STEP = 5
WALKING_BASS_WRAP = 36
WALKING_APPROACH_COMPLEXITY = 0.4
SHELL_NINTH_COMPLEXITY = 0.6
ANTICIPATION_DENSITY = 0.6
SPARSE_DENSITY = 0.3
GHOST_NOTE_COMPLEXITY = 0.5
SHELL_START_TOP = 60
SHELL_TOP_LOW = 55
SHELL_TOP_HIGH = 72

DEFAULT_TITLE = "Untitled"
DEFAULT_STYLE = "unknown"
DEFAULT_TEMPO_BPM = 120
DEFAULT_TIME_SIG = "4/4"
DEFAULT_KEY = "C major"
FALLBACK_MAX_MEASURES = 8

DEFAULT_PROVIDER = "openai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_LMSTUDIO_BASE_URL = "http://127.0.0.1:1234/v1"
DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL_NAME = "gpt-4o-mini"
DEFAULT_FALLBACK_MODEL_NAME = "gpt-4o-mini"
DEFAULT_OPENROUTER_MODEL = "openai/gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
FALLBACK_TEMPERATURE = 0.6
DEFAULT_MAX_TOKENS = 2000
FALLBACK_MAX_TOKENS = 1500
HTTP_TIMEOUT_SEC = 60.0
FALLBACK_HTTP_TIMEOUT_SEC = 30.0
GENERATE_MAX_TOKENS = 8192
REGENERATE_MAX_TOKENS = 4096
LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0", "::1")
MAX_REPAIR_ATTEMPTS = 2
LOG_PREVIEW_CHARS = 400
LOG_LEVEL_ENV = "SCOREBRIDGE_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
