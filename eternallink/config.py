"""Configuration constants for the EternalLink AR client."""

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Asset directories
ASSETS_DIR = PROJECT_ROOT / "assets"
MODELS_DIR = ASSETS_DIR / "models"
HAND_LANDMARKER_PATH = MODELS_DIR / "hand_landmarker.task"
HAND_LANDMARKER_URL = (
    "https://storage.googleapis.com/mediapipe-models/hand_landmarker/"
    "hand_landmarker/float16/latest/hand_landmarker.task"
)

# Runtime directories
RUNTIME_DIR = PROJECT_ROOT / "runtime"
CACHE_DIR = RUNTIME_DIR / "cache"
VIDEO_CACHE_DIR = CACHE_DIR / "ar-videos"
TEMP_DIR = RUNTIME_DIR / "temp"
RECORDINGS_DIR = TEMP_DIR / "recordings"
OBJECTS_DIR = TEMP_DIR / "objects"

# External API (overridable via ENV)
API_BASE_URL = os.environ.get("ETERNALLINK_API_URL", "http://localhost:3080/api").rstrip("/")
API_TOKEN = os.environ.get("ETERNALLINK_API_TOKEN")
API_TIMEOUT_S = float(os.environ.get("ETERNALLINK_API_TIMEOUT", "30"))

# Camera / microphone
CAMERA_INDEX = int(os.environ.get("ETERNALLINK_CAMERA_INDEX", "0"))
CAPTURE_FRAME_SIZE = (640, 480)
VERIFY_FRAME_SIZE = (1280, 720)
CAPTURE_FPS = 30.0

# Recording codecs, most preferred first: (fourcc, label)
RECORDING_CODECS = (("VP90", "vp9"), ("VP80", "vp8"))
RECORDING_CONTAINER = ".webm"
RECORDING_MIME_TYPE = "video/webm"

# Gesture thresholds (normalized image coordinates)
GESTURE_EXTENDED_DISTANCE = float(os.environ.get("ETERNALLINK_GESTURE_EXTENDED", "0.2"))
GESTURE_CURLED_DISTANCE = float(os.environ.get("ETERNALLINK_GESTURE_CURLED", "0.15"))
GESTURE_THUMB_MARGIN = float(os.environ.get("ETERNALLINK_GESTURE_THUMB_MARGIN", "0.1"))
GESTURE_CLAP_DISTANCE = float(os.environ.get("ETERNALLINK_GESTURE_CLAP", "0.1"))

# Hand landmark detector
MAX_NUM_HANDS = 2
MIN_DETECTION_CONFIDENCE = 0.6
MIN_TRACKING_CONFIDENCE = 0.6

# Embedded AR runtime
RUNTIME_COMMAND = os.environ.get("ETERNALLINK_RUNTIME_CMD")
RUNTIME_READY_TIMEOUT_S = float(os.environ.get("ETERNALLINK_RUNTIME_READY_TIMEOUT", "20"))
RUNTIME_RECEIVER = "ARVideoPlayer"
RUNTIME_START_METHOD = "StartARVideoDisplay"
RUNTIME_RESET_METHOD = "ResetVideoPlacement"
MAX_RUNTIME_LOAD_ATTEMPTS = 2
DEBUG_LOG_SIZE = 50

DISPLAY_WINDOW_NAME = "EternalLink AR"

# Playable reference server (overridable via ENV)
OBJECT_SERVER_HOST = os.environ.get("ETERNALLINK_OBJECT_HOST", "127.0.0.1")
OBJECT_SERVER_PORT = int(os.environ.get("ETERNALLINK_OBJECT_PORT", "5055"))
_fallback_env = os.environ.get("ETERNALLINK_OBJECT_PORT_FALLBACKS")
if _fallback_env:
    OBJECT_SERVER_PORT_FALLBACKS = tuple(
        int(value.strip())
        for value in _fallback_env.split(",")
        if value.strip().isdigit()
    )
else:
    OBJECT_SERVER_PORT_FALLBACKS = (5056, 5057, 5058)

# Nearby messages refresh interval
NEARBY_POLL_INTERVAL_S = 15.0
