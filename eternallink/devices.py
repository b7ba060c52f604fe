"""Exclusive access to the camera and microphone."""

from contextlib import ExitStack
from threading import Lock
from typing import Any, Callable, Optional, Tuple

import cv2
import numpy as np
import speech_recognition as sr

from . import config


class PermissionDeniedError(RuntimeError):
    """Camera or microphone could not be opened."""


class MediaStream:
    """A camera (and optionally microphone) handle held by one owner."""

    def __init__(self, owner: str, camera, microphone=None, on_release: Optional[Callable] = None):
        self.owner = owner
        self._camera = camera
        self._microphone = microphone
        self._mic_stack: Optional[ExitStack] = None
        self._on_release = on_release
        self._lock = Lock()
        self.active = True

    @property
    def has_audio(self) -> bool:
        return self._microphone is not None

    @property
    def frame_size(self) -> Tuple[int, int]:
        width = int(self._camera.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._camera.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return width, height

    @property
    def fps(self) -> float:
        fps = self._camera.get(cv2.CAP_PROP_FPS)
        return fps if fps and fps > 0 else config.CAPTURE_FPS

    @property
    def audio_format(self) -> Tuple[int, int]:
        """(sample_rate, sample_width) of the microphone stream."""
        return self._microphone.SAMPLE_RATE, self._microphone.SAMPLE_WIDTH

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        if not self.active:
            return False, None
        return self._camera.read()

    def read_audio(self) -> Optional[bytes]:
        if not self.active or self._microphone is None:
            return None
        return self._microphone.stream.read(self._microphone.CHUNK)

    def attach_microphone(self, microphone) -> None:
        stack = ExitStack()
        self._microphone = stack.enter_context(microphone)
        self._mic_stack = stack

    def release(self) -> None:
        """Stop all tracks. Safe to call more than once."""
        with self._lock:
            if not self.active:
                return
            self.active = False
        try:
            self._camera.release()
        finally:
            if self._mic_stack is not None:
                self._mic_stack.close()
                self._mic_stack = None
            self._microphone = None
            if self._on_release:
                self._on_release(self)


class MediaDevices:
    """Hands out the camera to at most one owner at a time.

    Opening a stream for a new owner releases whoever currently holds it.
    """

    def __init__(
        self,
        camera_index: int = config.CAMERA_INDEX,
        camera_factory: Callable[[int], Any] = cv2.VideoCapture,
        microphone_factory: Callable[[], Any] = sr.Microphone,
    ):
        self.camera_index = camera_index
        self._camera_factory = camera_factory
        self._microphone_factory = microphone_factory
        self._lock = Lock()
        self._holder: Optional[MediaStream] = None

    @property
    def holder(self) -> Optional[MediaStream]:
        return self._holder

    @property
    def active_streams(self) -> int:
        return 1 if self._holder is not None and self._holder.active else 0

    def open_stream(
        self,
        owner: str,
        audio: bool = False,
        frame_size: Optional[Tuple[int, int]] = None,
    ) -> MediaStream:
        with self._lock:
            current = self._holder
        if current is not None:
            print(f"🎥 Releasing camera held by {current.owner} for {owner}")
            current.release()

        camera = self._camera_factory(self.camera_index)
        if not camera.isOpened():
            camera.release()
            raise PermissionDeniedError("Camera access was denied or no camera is available.")

        if frame_size:
            camera.set(cv2.CAP_PROP_FRAME_WIDTH, frame_size[0])
            camera.set(cv2.CAP_PROP_FRAME_HEIGHT, frame_size[1])

        stream = MediaStream(owner, camera, on_release=self._forget)
        if audio:
            try:
                stream.attach_microphone(self._microphone_factory())
            except (OSError, AttributeError) as exc:
                stream.release()
                raise PermissionDeniedError(f"Microphone access failed: {exc}") from exc

        with self._lock:
            self._holder = stream
        return stream

    def _forget(self, stream: MediaStream) -> None:
        with self._lock:
            if self._holder is stream:
                self._holder = None

    def release_all(self) -> None:
        with self._lock:
            current = self._holder
        if current is not None:
            current.release()
