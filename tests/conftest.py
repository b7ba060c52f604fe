"""Shared fakes for camera, microphone, video writer, detector and AR runtime."""

import time
from pathlib import Path

import cv2
import numpy as np
import pytest

from eternallink.devices import MediaDevices
from eternallink.runtime import RuntimeLoadError
from eternallink.state import ARMessage, DetectionFrame, GestureTrigger, HandLandmarks, Location
from eternallink.timing import configure_timing, get_timing_stats


class FakeCamera:
    def __init__(self, opened=True, frames=None, width=640, height=480):
        self.opened = opened
        self.frames = frames
        self.width = width
        self.height = height
        self.released = False
        self.settings = {}
        self.reads = 0

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.settings[prop] = value
        return True

    def get(self, prop):
        if prop == cv2.CAP_PROP_FRAME_WIDTH:
            return self.width
        if prop == cv2.CAP_PROP_FRAME_HEIGHT:
            return self.height
        return 0

    def read(self):
        time.sleep(0.001)
        if self.released:
            return False, None
        self.reads += 1
        if self.frames is not None and self.reads > self.frames:
            return False, None
        return True, np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def release(self):
        self.released = True


class FakeAudioStream:
    def __init__(self):
        self.reads = 0

    def read(self, size):
        self.reads += 1
        return b"\x01\x00" * size


class FakeMicrophone:
    SAMPLE_RATE = 16000
    SAMPLE_WIDTH = 2
    CHUNK = 256

    def __init__(self):
        self.stream = None
        self.exited = False

    def __enter__(self):
        self.stream = FakeAudioStream()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exited = True
        self.stream = None


class FakeDeviceFactory:
    """Camera and microphone factories that remember what they handed out."""

    def __init__(self, camera_opened=True, camera_frames=None, microphone_error=None):
        self.camera_opened = camera_opened
        self.camera_frames = camera_frames
        self.microphone_error = microphone_error
        self.cameras = []
        self.microphones = []

    def camera(self, index):
        camera = FakeCamera(opened=self.camera_opened, frames=self.camera_frames)
        self.cameras.append(camera)
        return camera

    def microphone(self):
        if self.microphone_error is not None:
            raise self.microphone_error
        microphone = FakeMicrophone()
        self.microphones.append(microphone)
        return microphone

    def devices(self):
        return MediaDevices(camera_factory=self.camera, microphone_factory=self.microphone)


class FakeWriter:
    def __init__(self, path, opened):
        self.path = Path(path)
        self.opened = opened
        self.frames = 0
        self.released = False

    def isOpened(self):
        return self.opened

    def write(self, frame):
        self.frames += 1

    def release(self):
        self.released = True
        if self.opened and self.frames:
            self.path.write_bytes(b"WEBM" + self.frames.to_bytes(4, "big"))


class FakeWriterFactory:
    def __init__(self, supported=("VP90", "VP80")):
        self.supported = {cv2.VideoWriter_fourcc(*code) for code in supported}
        self.writers = []

    def __call__(self, path, fourcc, fps, frame_size):
        writer = FakeWriter(path, fourcc in self.supported)
        self.writers.append(writer)
        return writer


class ScriptedDetector:
    """Returns the scripted detection frames in order, then empty frames."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.calls = 0
        self.closed = False

    def detect(self, image, timestamp_ms):
        self.calls += 1
        if self.frames:
            return self.frames.pop(0)
        return DetectionFrame(timestamp_ms=timestamp_ms)

    def close(self):
        self.closed = True


class MarkViewedRecorder:
    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, message_id, gesture):
        self.calls.append((message_id, gesture))
        if self.error is not None:
            raise self.error
        return self.result


class FakeRuntime:
    def __init__(self, error=None):
        self.error = error
        self.messages = []

    def send_message(self, receiver, method, argument=""):
        if self.error is not None:
            raise self.error
        self.messages.append((receiver, method, argument))


class FakeLoader:
    """Stands in for ``RuntimeLoader``: fails the first ``failures`` loads."""

    def __init__(self, failures=0, runtime=None):
        self.failures = failures
        self.runtime = runtime or FakeRuntime()
        self.calls = 0
        self.unloaded = False
        self.ready_callbacks = []
        self.error_callbacks = []

    def on_ready(self, callback):
        self.ready_callbacks.append(callback)

    def on_error(self, callback):
        self.error_callbacks.append(callback)

    def ensure_loaded(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeLoadError("runtime bundle failed to load")
        for callback in self.ready_callbacks:
            callback()
        return self.runtime

    def unload(self):
        self.unloaded = True


class FakeFallbackPlayer:
    def __init__(self):
        self.played = []
        self.stopped = False

    def play(self, path):
        self.played.append(Path(path).read_bytes())

    def stop(self):
        self.stopped = True


def hand_points(wrist=(0.5, 0.6), thumb=None, index=None, middle=None, ring=None, pinky=None):
    """Build 21 landmarks; tip offsets are relative to the wrist, other points sit on it."""
    points = np.zeros((21, 3))
    points[:, 0] = wrist[0]
    points[:, 1] = wrist[1]
    for tip, offset in ((4, thumb), (8, index), (12, middle), (16, ring), (20, pinky)):
        if offset is not None:
            points[tip, 0] += offset[0]
            points[tip, 1] += offset[1]
    return points


def peace_points(wrist=(0.5, 0.6)):
    return hand_points(wrist, index=(0.0, -0.25), middle=(0.0, -0.25), ring=(0.0, -0.10), pinky=(0.0, -0.10))


def frame_of(*point_sets, handedness="Right"):
    hands = tuple(HandLandmarks(points=points, handedness=handedness) for points in point_sets)
    return DetectionFrame(hands=hands)


def make_message(
    trigger=GestureTrigger.PEACE,
    viewed=False,
    content_hash="QmHologram",
    expires_at=None,
    one_time_view=False,
    status=None,
    message_expires_at=None,
):
    return ARMessage(
        message_id=42,
        location=Location(52.52, 13.405, 34.0),
        expires_at=expires_at,
        video_content_hash=content_hash,
        gesture_trigger=trigger,
        is_viewed=viewed,
        is_one_time_view=one_time_view,
        status=status,
        message_expires_at=message_expires_at,
    )


@pytest.fixture
def device_factory():
    return FakeDeviceFactory()


@pytest.fixture(autouse=True)
def timing_disabled():
    yield
    configure_timing(enabled=False, verbose=False)
    get_timing_stats().reset()
