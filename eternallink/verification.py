"""Unlocking an AR message by performing its gesture in front of the camera."""

import time
from typing import Callable, Optional

import cv2
import numpy as np

from . import config
from .devices import MediaDevices, MediaStream, PermissionDeniedError
from .gestures import DEFAULT_THRESHOLDS, GestureThresholds, classify_gesture, gesture_label
from .state import ARMessage, DetectionFrame, GestureTrigger, InvalidTransitionError, VerificationState
from .ui import draw_hand_overlay, notify

MarkViewed = Callable[[int, str], bool]


def _default_detector():
    from .detector import HandLandmarkDetector

    return HandLandmarkDetector()


class GestureVerifier:
    """Watch the camera until the message's gesture is performed, then confirm it once.

    Verification is a prerequisite for playback; the message only counts as
    viewed after the server has acknowledged the gesture.
    """

    def __init__(
        self,
        message: ARMessage,
        devices: MediaDevices,
        mark_viewed: MarkViewed,
        detector_factory: Callable[[], object] = _default_detector,
        thresholds: GestureThresholds = DEFAULT_THRESHOLDS,
        on_verified: Optional[Callable[[ARMessage], None]] = None,
    ):
        self.message = message
        self.devices = devices
        self.mark_viewed = mark_viewed
        self.detector_factory = detector_factory
        self.thresholds = thresholds
        self.on_verified = on_verified

        self.state = VerificationState.IDLE
        self.latest_frame = DetectionFrame()
        self.latest_gesture: Optional[GestureTrigger] = None
        self.last_error: Optional[str] = None

        self._stream: Optional[MediaStream] = None
        self._detector = None
        self._attempted = False
        self._started_at = 0.0

    @property
    def target(self) -> GestureTrigger:
        return self.message.gesture_trigger

    @property
    def verified(self) -> bool:
        return self.state is VerificationState.VERIFIED

    def start(self) -> bool:
        """Open the camera and detector. Calling it again after a failure retries."""
        if self.state in (VerificationState.DETECTING, VerificationState.VERIFYING):
            raise InvalidTransitionError(f"Verification is already {self.state.value}")
        if not self.message.is_ar_playable:
            raise ValueError("This message has no gesture trigger and cannot be unlocked.")

        unavailable = self.message.unavailable_reason()
        if unavailable:
            self.last_error = unavailable
            notify(unavailable, "warning")
            return False

        self.last_error = None
        self._attempted = False
        try:
            self._stream = self.devices.open_stream("verification", frame_size=config.VERIFY_FRAME_SIZE)
        except PermissionDeniedError as exc:
            return self._abort_start(f"Failed to initialize camera: {exc}")
        try:
            self._detector = self.detector_factory()
        except Exception as exc:
            return self._abort_start(f"Failed to load hand detection: {exc}")

        self._started_at = time.monotonic()
        self.state = VerificationState.DETECTING
        print(f"✋ Perform {self.target.value} to unlock the message")
        return True

    def _abort_start(self, message: str) -> bool:
        self.close()
        self.state = VerificationState.IDLE
        self.last_error = message
        notify(message, "error")
        return False

    def process_frame(self, image, timestamp_ms: int) -> DetectionFrame:
        """Run detection and classification on one frame, confirming on a match."""
        if self.state is not VerificationState.DETECTING:
            return self.latest_frame

        frame = self._detector.detect(image, timestamp_ms)
        gesture = classify_gesture(frame, self.thresholds)
        self.latest_frame = frame
        self.latest_gesture = gesture

        if gesture is self.target and not self._attempted:
            self._attempted = True
            self._confirm(gesture)
        return frame

    def _confirm(self, gesture: GestureTrigger) -> None:
        self.state = VerificationState.VERIFYING
        # The server already recorded this message as viewed.
        if not self.message.is_viewed:
            try:
                acknowledged = self.mark_viewed(self.message.message_id, gesture.value)
                if not acknowledged:
                    raise RuntimeError("the server did not acknowledge the gesture")
            except Exception as exc:
                self.close()
                self.state = VerificationState.FAILED
                self.last_error = str(exc)
                notify(f"Failed to verify gesture: {exc}", "error")
                return

        self.close()
        self.message.mark_viewed()
        self.state = VerificationState.VERIFIED
        notify("Gesture verified! The hologram is unlocked.", "success")
        if self.on_verified:
            self.on_verified(self.message)

    def step(self) -> Optional[np.ndarray]:
        """Read and process the next camera frame. Returns the frame read, if any."""
        if self.state is not VerificationState.DETECTING or self._stream is None:
            return None
        ret, image = self._stream.read_frame()
        if not ret or image is None:
            return None
        timestamp_ms = int((time.monotonic() - self._started_at) * 1000)
        self.process_frame(image, timestamp_ms)
        return image

    def run(self, display: bool = True) -> bool:
        """Detect frame by frame until verified, failed or cancelled ('q' in the window)."""
        if self.state is not VerificationState.DETECTING and not self.start():
            return False
        try:
            while self.state is VerificationState.DETECTING:
                image = self.step()
                if not display:
                    if image is None:
                        time.sleep(0.01)
                    continue
                if image is not None:
                    overlay = draw_hand_overlay(image, self.latest_frame, gesture_label(self.latest_gesture))
                    cv2.imshow(config.DISPLAY_WINDOW_NAME, overlay)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    self.cancel()
        finally:
            self.close()
        return self.verified

    def cancel(self) -> None:
        if self.state in (VerificationState.DETECTING, VerificationState.IDLE):
            self.state = VerificationState.CANCELLED
        self.close()

    def close(self) -> None:
        """Release the camera and detector. Safe on every exit path."""
        stream, self._stream = self._stream, None
        detector, self._detector = self._detector, None
        try:
            if stream is not None:
                stream.release()
        finally:
            if detector is not None:
                detector.close()
            self.latest_frame = DetectionFrame()
            self.latest_gesture = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
