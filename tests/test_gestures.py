import pytest

from conftest import frame_of, hand_points, peace_points
from eternallink.gestures import (
    GestureThresholds,
    classify_gesture,
    classify_hand,
    distance,
    gesture_label,
)
from eternallink.state import DetectionFrame, GestureTrigger

THRESHOLDS = GestureThresholds(extended=0.2, curled=0.15, thumb_margin=0.1, clap_distance=0.1)


def test_peace_wins_over_open_hand_rules():
    points = peace_points()
    assert distance(points[8], points[0]) == pytest.approx(0.25)
    assert distance(points[16], points[0]) == pytest.approx(0.10)

    assert classify_hand(points, THRESHOLDS) is GestureTrigger.PEACE
    assert classify_gesture(frame_of(points), THRESHOLDS) is GestureTrigger.PEACE


def test_thumbs_up():
    points = hand_points(thumb=(0.0, -0.2), index=(0.0, 0.05), middle=(0.0, 0.05), ring=(0.0, 0.05), pinky=(0.0, 0.05))
    assert classify_hand(points, THRESHOLDS) is GestureTrigger.THUMBS_UP


def test_thumbs_up_checked_before_wave():
    # Every fingertip is far from the wrist (a wave) but hangs below it.
    points = hand_points(thumb=(0.0, -0.3), index=(0.0, 0.3), middle=(0.0, 0.3), ring=(0.0, 0.3), pinky=(0.0, 0.3))
    assert classify_hand(points, THRESHOLDS) is GestureTrigger.THUMBS_UP


def test_thumb_needs_margin_above_wrist():
    points = hand_points(thumb=(0.0, -0.05), index=(0.0, 0.05), middle=(0.0, 0.05), ring=(0.0, 0.05), pinky=(0.0, 0.05))
    assert classify_hand(points, THRESHOLDS) is None


def test_wave_open_hand():
    points = hand_points(thumb=(-0.1, 0.0), index=(0.0, -0.3), middle=(0.0, -0.3), ring=(0.0, -0.3), pinky=(0.0, -0.3))
    assert classify_hand(points, THRESHOLDS) is GestureTrigger.WAVE


def test_fist_is_no_gesture():
    assert classify_hand(hand_points(), THRESHOLDS) is None


def test_no_hands():
    assert classify_gesture(DetectionFrame(), THRESHOLDS) is None


def test_clap_when_two_hands_are_close():
    frame = frame_of(hand_points(wrist=(0.5, 0.6)), hand_points(wrist=(0.55, 0.6)))
    assert classify_gesture(frame, THRESHOLDS) is GestureTrigger.CLAP


def test_two_hands_far_apart_is_no_clap():
    frame = frame_of(hand_points(wrist=(0.2, 0.6)), hand_points(wrist=(0.8, 0.6)))
    assert classify_gesture(frame, THRESHOLDS) is None


def test_single_hand_gesture_beats_clap():
    frame = frame_of(peace_points(wrist=(0.5, 0.6)), hand_points(wrist=(0.52, 0.6)))
    assert classify_gesture(frame, THRESHOLDS) is GestureTrigger.PEACE


def test_only_dominant_hand_is_classified_alone():
    frame = frame_of(hand_points(wrist=(0.2, 0.6)), peace_points(wrist=(0.8, 0.6)))
    assert classify_gesture(frame, THRESHOLDS) is None


def test_thresholds_must_be_ordered():
    with pytest.raises(ValueError):
        GestureThresholds(extended=0.1, curled=0.2)


def test_gesture_label():
    assert gesture_label(GestureTrigger.THUMBS_UP) == "THUMBS_UP"
    assert gesture_label(None) == ""
