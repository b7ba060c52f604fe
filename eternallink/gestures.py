"""Heuristic gesture classification over hand landmarks."""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from . import config
from .state import DetectionFrame, GestureTrigger, HandLandmarks

WRIST = 0
THUMB_TIP = 4
INDEX_TIP = 8
MIDDLE_TIP = 12
RING_TIP = 16
PINKY_TIP = 20


@dataclass(frozen=True)
class GestureThresholds:
    """Tunable distances in normalized image coordinates.

    ``extended`` is the fingertip-to-wrist distance above which a finger counts
    as extended, ``curled`` the distance below which it counts as folded.
    """

    extended: float = config.GESTURE_EXTENDED_DISTANCE
    curled: float = config.GESTURE_CURLED_DISTANCE
    thumb_margin: float = config.GESTURE_THUMB_MARGIN
    clap_distance: float = config.GESTURE_CLAP_DISTANCE

    def __post_init__(self):
        if not self.curled < self.extended:
            raise ValueError(
                f"curled threshold ({self.curled}) must be smaller than extended ({self.extended})"
            )


DEFAULT_THRESHOLDS = GestureThresholds()


def distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """Euclidean distance in the image plane (z is ignored)."""
    return float(np.hypot(p1[0] - p2[0], p1[1] - p2[1]))


def centroid(points: np.ndarray) -> np.ndarray:
    return points[:, :2].mean(axis=0)


def _tip_distances(points: np.ndarray):
    wrist = points[WRIST]
    return tuple(distance(points[tip], wrist) for tip in (INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP))


def classify_hand(
    points: np.ndarray, thresholds: GestureThresholds = DEFAULT_THRESHOLDS
) -> Optional[GestureTrigger]:
    """Classify a single hand. Rules are checked in order; the first match wins."""
    index_d, middle_d, ring_d, pinky_d = _tip_distances(points)
    wrist_y = points[WRIST][1]

    if (
        index_d > thresholds.extended
        and middle_d > thresholds.extended
        and ring_d < thresholds.curled
        and pinky_d < thresholds.curled
    ):
        return GestureTrigger.PEACE

    # Image y grows downwards, so "above the wrist" means a smaller y.
    if points[THUMB_TIP][1] < wrist_y - thresholds.thumb_margin and all(
        points[tip][1] > wrist_y for tip in (INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP)
    ):
        return GestureTrigger.THUMBS_UP

    if min(index_d, middle_d, ring_d, pinky_d) > thresholds.extended:
        return GestureTrigger.WAVE

    return None


def classify_gesture(
    frame: DetectionFrame, thresholds: GestureThresholds = DEFAULT_THRESHOLDS
) -> Optional[GestureTrigger]:
    """Classify the gesture shown in a detection frame.

    The dominant (first) hand is classified first; CLAP is only considered when
    a second hand is present and no single-hand rule matched. Returns ``None``
    when no hand or no gesture is found.
    """
    dominant: Optional[HandLandmarks] = frame.dominant_hand
    if dominant is None:
        return None

    gesture = classify_hand(dominant.points, thresholds)
    if gesture is not None:
        return gesture

    if len(frame.hands) >= 2:
        other = frame.hands[1]
        if distance(centroid(dominant.points), centroid(other.points)) < thresholds.clap_distance:
            return GestureTrigger.CLAP

    return None


def gesture_label(gesture: Optional[GestureTrigger]) -> str:
    return gesture.value if gesture is not None else ""
