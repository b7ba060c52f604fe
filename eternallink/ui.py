"""Console notifications and the hand landmark overlay."""

from typing import Tuple

import cv2
import numpy as np

from .state import DetectionFrame

HAND_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (0, 1), (1, 2), (2, 3), (3, 4),  # Thumb
    (0, 5), (5, 6), (6, 7), (7, 8),  # Index
    (0, 9), (9, 10), (10, 11), (11, 12),  # Middle
    (0, 13), (13, 14), (14, 15), (15, 16),  # Ring
    (0, 17), (17, 18), (18, 19), (19, 20),  # Pinky
    (5, 9), (9, 13), (13, 17),  # Palm
)

# BGR
RIGHT_HAND_COLOR = (0, 255, 0)
LEFT_HAND_COLOR = (0, 0, 255)

_NOTIFY_PREFIX = {
    "success": "✅",
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
    "loading": "⏳",
}


def notify(message: str, level: str = "info") -> None:
    """Show a transient user-facing notification."""
    print(f"{_NOTIFY_PREFIX.get(level, '')} {message}".strip())


def hand_color(handedness: str) -> Tuple[int, int, int]:
    return RIGHT_HAND_COLOR if handedness.lower() == "right" else LEFT_HAND_COLOR


def draw_hand_overlay(image: np.ndarray, frame: DetectionFrame, label: str = "") -> np.ndarray:
    """Return a copy of ``image`` with skeletons and the detected label drawn on it.

    Purely cosmetic; the input image and detection frame are left untouched.
    """
    output = image.copy()
    height, width = output.shape[:2]

    for hand in frame.hands:
        color = hand_color(hand.handedness)
        points = [(int(x * width), int(y * height)) for x, y, _ in hand.points]
        for start, end in HAND_CONNECTIONS:
            cv2.line(output, points[start], points[end], color, 3, cv2.LINE_AA)
        for point in points:
            cv2.circle(output, point, 5, color, -1, cv2.LINE_AA)

    if label:
        text = f"Detected: {label}"
        font = cv2.FONT_HERSHEY_SIMPLEX
        (text_w, _), _ = cv2.getTextSize(text, font, 0.9, 2)
        origin = ((width - text_w) // 2, 40)
        cv2.putText(output, text, origin, font, 0.9, (0, 0, 0), 4, cv2.LINE_AA)
        cv2.putText(output, text, origin, font, 0.9, (255, 255, 255), 2, cv2.LINE_AA)

    return output
