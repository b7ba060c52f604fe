"""Hand landmark detection powered by MediaPipe Hand Landmarker."""

from pathlib import Path

import cv2
import mediapipe as mp
import numpy as np
import requests
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from . import config
from .state import DetectionFrame, HandLandmarks
from .timing import time_operation


def ensure_model(model_path: Path = config.HAND_LANDMARKER_PATH, url: str = config.HAND_LANDMARKER_URL) -> Path:
    """Download the MediaPipe model locally if it is absent."""
    model_path = Path(model_path)
    if model_path.exists():
        return model_path

    print(f"⬇️ Downloading hand landmark model to {model_path}...")
    model_path.parent.mkdir(parents=True, exist_ok=True)
    partial = model_path.with_suffix(".part")
    with requests.get(url, stream=True, timeout=60) as response:
        response.raise_for_status()
        with open(partial, "wb") as handle:
            for chunk in response.iter_content(chunk_size=1 << 16):
                handle.write(chunk)
    partial.replace(model_path)
    return model_path


class HandLandmarkDetector:
    """Map BGR camera frames to :class:`DetectionFrame` objects."""

    def __init__(self, model_path: Path | str | None = None):
        path = Path(model_path) if model_path else ensure_model()
        options = vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(path)),
            running_mode=vision.RunningMode.VIDEO,
            num_hands=config.MAX_NUM_HANDS,
            min_hand_detection_confidence=config.MIN_DETECTION_CONFIDENCE,
            min_hand_presence_confidence=config.MIN_DETECTION_CONFIDENCE,
            min_tracking_confidence=config.MIN_TRACKING_CONFIDENCE,
        )
        with time_operation("Hand Landmarker Loading", track_memory=True):
            self._landmarker = vision.HandLandmarker.create_from_options(options)
        self._last_timestamp_ms = -1

    def detect(self, frame: np.ndarray, timestamp_ms: int) -> DetectionFrame:
        # VIDEO mode requires strictly increasing timestamps.
        timestamp_ms = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        result = self._landmarker.detect_for_video(image, timestamp_ms)

        hands = []
        for index, landmarks in enumerate(result.hand_landmarks):
            handedness = "unknown"
            if result.handedness and index < len(result.handedness):
                handedness = result.handedness[index][0].category_name
            points = np.array([[lm.x, lm.y, lm.z] for lm in landmarks])
            hands.append(HandLandmarks(points=points, handedness=handedness))
        return DetectionFrame(hands=tuple(hands), timestamp_ms=timestamp_ms)

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
