"""
Shared constants for LearnClip.
Single source of truth, imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "LearnClip"
APP_DISPLAY_NAME = "LearnClip"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

DEFAULT_OUTPUT_ROOT = HOME / "Movies" / APP_NAME
APP_SUPPORT_DIR = HOME / "Library" / "Application Support" / APP_NAME
LOG_DIR = HOME / "Library" / "Logs" / APP_NAME
DB_PATH = APP_SUPPORT_DIR / "app.db"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"

OUTPUT_SUFFIX = "_LearnClip.mp4"

# ── Keychain identifiers ─────────────────────────────────────────────
KEYCHAIN_ACCOUNT = "default"
KEYCHAIN_SERVICE_DEEPGRAM = "LearnClip:Deepgram"
KEYCHAIN_SERVICE_OPENAI = "LearnClip:OpenAI"
KEYCHAIN_SERVICE_AZURE = "LearnClip:AzureTranslator"

ENV_DEEPGRAM_KEY = "DEEPGRAM_API_KEY"
ENV_OPENAI_KEY = "OPENAI_API_KEY"
ENV_AZURE_KEY = "AZURE_TRANSLATOR_KEY"
ENV_AZURE_REGION = "AZURE_TRANSLATOR_REGION"
ENV_AZURE_ENDPOINT = "AZURE_TRANSLATOR_ENDPOINT"

# ── Task status values ────────────────────────────────────────────────
class TaskStatus:
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"

TERMINAL_STATUSES = {TaskStatus.COMPLETED, TaskStatus.FAILED}

# ── Task phase values (ordered) ───────────────────────────────────────
class TaskPhase:
    PENDING = "Pending"
    EXTRACTING_AUDIO = "ExtractingAudio"
    GENERATING_SUBTITLES = "GeneratingSubtitles"
    SPLITTING_VIDEO = "SplittingVideo"
    BURNING_PASS2 = "BurningPass2"
    BURNING_PASS3 = "BurningPass3"
    MERGING_SEGMENTS = "MergingSegments"
    COMPLETED = "Completed"
    FAILED = "Failed"

PHASE_ORDER = [
    TaskPhase.PENDING,
    TaskPhase.EXTRACTING_AUDIO,
    TaskPhase.GENERATING_SUBTITLES,
    TaskPhase.SPLITTING_VIDEO,
    TaskPhase.BURNING_PASS2,
    TaskPhase.BURNING_PASS3,
    TaskPhase.MERGING_SEGMENTS,
    TaskPhase.COMPLETED,
]

PHASE_LABELS = {
    TaskPhase.PENDING: "Waiting",
    TaskPhase.EXTRACTING_AUDIO: "Extracting audio",
    TaskPhase.GENERATING_SUBTITLES: "Generating subtitles",
    TaskPhase.SPLITTING_VIDEO: "Cutting clip",
    TaskPhase.BURNING_PASS2: "Burning English captions (pass 2)",
    TaskPhase.BURNING_PASS3: "Burning bilingual captions (pass 3)",
    TaskPhase.MERGING_SEGMENTS: "Merging passes",
    TaskPhase.COMPLETED: "Done",
    TaskPhase.FAILED: "Failed",
}

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Input errors (task never enters Processing)
    INPUT_NOT_FOUND = "ERR_INPUT_NOT_FOUND"
    OUTPUT_DIR = "ERR_OUTPUT_DIR"
    VIDEO_TOO_SHORT = "ERR_VIDEO_TOO_SHORT"
    INVALID_DURATION = "ERR_INVALID_DURATION"
    INVALID_RANGE = "ERR_INVALID_RANGE"

    # External tool errors
    FFMPEG = "ERR_FFMPEG"
    FFPROBE = "ERR_FFPROBE"
    TRANSCRIBE_FAILED = "ERR_TRANSCRIBE_FAILED"
    NO_SPEECH = "ERR_NO_SPEECH"
    NETWORK = "ERR_NETWORK"

    # Cooperative cancellation
    CANCELLED = "ERR_CANCELLED"

INPUT_ERRORS = {
    ErrorCode.INPUT_NOT_FOUND,
    ErrorCode.OUTPUT_DIR,
    ErrorCode.VIDEO_TOO_SHORT,
    ErrorCode.INVALID_DURATION,
    ErrorCode.INVALID_RANGE,
}

CANCELLED_MESSAGE = "Task was cancelled by the user."

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_PENDING = 0
PROGRESS_PROCESSING = 5
PROGRESS_AUDIO = 15
PROGRESS_SUBTITLES = 35
PROGRESS_SELECTED = 45
PROGRESS_BASE_CLIP = 55
PROGRESS_CAPTIONS_ALIGNED = 60
PROGRESS_PASS1 = 65
PROGRESS_PASS2 = 75
PROGRESS_PASS3 = 85
PROGRESS_TITLE_CARDS = 90
PROGRESS_MERGED = 98
PROGRESS_DONE = 100

# ── Segment selection defaults ────────────────────────────────────────
SELECTOR_HEURISTIC = "heuristic"
SELECTOR_OPENAI = "openai"

MIN_CLIP_SEC = 4.0
MAX_CLIP_SEC = 45.0
TARGET_CLIP_SEC = 18.0
FALLBACK_TARGET_SEC = 15.0     # target used when caller passes a non-positive one
FALLBACK_MIN_SEC = 2.0
MIN_WORDS = 5
MAX_CANDIDATES = 30

IDEAL_SPEECH_RATE = 2.2        # words per second
WEIGHT_PUNCTUATION = 2.0
WEIGHT_SPEECH_RATE = 1.5
WEIGHT_LENGTH = 1.0
WEIGHT_CENTER = 0.3
SENTENCE_TERMINALS = (".", "?", "!")

# ── Subtitle timeline ─────────────────────────────────────────────────
CAPTION_ALIGN_CROP = "crop"
CAPTION_ALIGN_SLICE = "slice"
MIN_CAPTION_MS = 500
LINE_SEPARATOR = "\n"

# ── Media (ffmpeg) ────────────────────────────────────────────────────
FFMPEG_BIN = "ffmpeg"
FFPROBE_BIN = "ffprobe"

AUDIO_SAMPLE_RATE = 16000
AUDIO_CHANNELS = 1
AUDIO_CODEC = "pcm_s16le"

VIDEO_CODEC = "libx264"
VIDEO_PRESET = "veryfast"
VIDEO_CRF = 20
AUDIO_OUT_CODEC = "aac"
AUDIO_OUT_RATE = 44100
AUDIO_OUT_CHANNELS = 2

# every rendered clip shares this frame so the final concat can stream-copy
FRAME_WIDTH = 1280
FRAME_HEIGHT = 720
FRAME_RATE = 30
PIXEL_FORMAT = "yuv420p"

TITLE_CARD_FONT_SIZE = 56
TITLE_CARD_SEC = 2.0

TITLE_CARD_TEXTS = [
    "Pass 1 - Watch (no subtitles)",
    "Pass 2 - English subtitles",
    "Pass 3 - English + Chinese subtitles",
    "Pass 4 - Watch again (no subtitles)",
]

FFPROBE_TIMEOUT_SEC = 30
FFMPEG_TIMEOUT_SEC = 1800

# ── Deepgram ──────────────────────────────────────────────────────────
DEEPGRAM_API_BASE = "https://api.deepgram.com/v1"
DEEPGRAM_MODEL = "nova-3"
DEEPGRAM_LANGUAGE = "en"

# ── OpenAI ────────────────────────────────────────────────────────────
OPENAI_API_BASE = "https://api.openai.com/v1"
OPENAI_MODEL = "gpt-4o-mini"
OPENAI_TIMEOUT_SEC = 60

# ── Azure Translator ──────────────────────────────────────────────────
AZURE_TRANSLATOR_ENDPOINT = "https://api.cognitive.microsofttranslator.com"
AZURE_TRANSLATOR_API_VERSION = "3.0"
TRANSLATE_FROM = "en"
TRANSLATE_TO = "zh-Hans"
TRANSLATE_TIMEOUT_SEC = 30

# ── Misc ──────────────────────────────────────────────────────────────
# Characters forbidden in file names (macOS + safety)
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILE_NAME_LEN = 120
