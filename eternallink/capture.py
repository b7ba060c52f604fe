"""Recording AR video clips and handing them to the uploader."""

import shutil
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import cv2

from . import config
from .audio_processing import mux_audio_into_video, write_wav
from .devices import MediaDevices, MediaStream, PermissionDeniedError
from .state import CaptureSession, CaptureState, GestureTrigger, InvalidTransitionError, VideoBlob
from .ui import notify

Uploader = Callable[[VideoBlob, str], str]


class CaptureError(RuntimeError):
    """Recording failed."""


class CodecError(CaptureError):
    """No supported codec could be opened for recording."""


def negotiate_writer(
    path: Path,
    fps: float,
    frame_size: Tuple[int, int],
    codecs=config.RECORDING_CODECS,
    writer_factory: Callable[..., Any] = cv2.VideoWriter,
):
    """Open a video writer with the first codec the platform supports.

    Codecs are tried in the given order, so the result only depends on which
    encoders are available. Returns ``(writer, codec_label)``.
    """
    preferred = codecs[0][1]
    for fourcc, label in codecs:
        writer = writer_factory(str(path), cv2.VideoWriter_fourcc(*fourcc), fps, frame_size)
        if writer.isOpened():
            if label != preferred:
                print(f"⚠️ Codec {preferred} is not supported here; recording with {label}.")
            return writer, label
        writer.release()
    raise CodecError("No supported video codec is available for recording.")


class CaptureComponent:
    """``Idle -> Recording -> Recorded -> (Idle | Uploading -> Sent)``."""

    def __init__(
        self,
        devices: MediaDevices,
        uploader: Uploader,
        record_audio: bool = True,
        writer_factory: Callable[..., Any] = cv2.VideoWriter,
        recordings_dir: Path = config.RECORDINGS_DIR,
    ):
        self.devices = devices
        self.uploader = uploader
        self.record_audio = record_audio
        self.writer_factory = writer_factory
        self.recordings_dir = Path(recordings_dir)

        self.state = CaptureState.IDLE
        self.session: Optional[CaptureSession] = None
        self.codec: Optional[str] = None
        self.content_hash: Optional[str] = None
        self.last_error: Optional[str] = None
        self.latest_frame = None

        self._stream: Optional[MediaStream] = None
        self._writer = None
        self._work_dir: Optional[Path] = None
        self._audio_chunks: List[bytes] = []
        self._frames_written = 0
        self._threads: List[threading.Thread] = []
        self._io_lock = threading.Lock()

    def _require(self, *states: CaptureState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(f"Capture is {self.state.value}; expected one of: {allowed}")

    def _fail(self, message: str) -> None:
        self.last_error = message
        notify(message, "error")

    # ------------------------------------------------------------------ #
    # Recording
    # ------------------------------------------------------------------ #

    def start_recording(self, background: bool = True) -> bool:
        """Acquire camera/microphone and start buffering frames.

        With ``background=False`` no pump threads are started and the caller
        drives recording through :meth:`pump`.
        """
        self._require(CaptureState.IDLE)
        self.last_error = None

        try:
            self._stream = self.devices.open_stream(
                "capture", audio=self.record_audio, frame_size=config.CAPTURE_FRAME_SIZE
            )
        except PermissionDeniedError as exc:
            # Clips without sound are only recorded with record_audio=False.
            self._fail(f"Failed to access camera/microphone: {exc}")
            return False

        self._work_dir = self.recordings_dir / uuid.uuid4().hex
        self._work_dir.mkdir(parents=True, exist_ok=True)
        try:
            self._writer, self.codec = negotiate_writer(
                self._work_dir / f"clip{config.RECORDING_CONTAINER}",
                self._stream.fps,
                self._stream.frame_size,
                writer_factory=self.writer_factory,
            )
        except CodecError as exc:
            self._release_resources()
            self._fail(str(exc))
            return False

        self._audio_chunks = []
        self._frames_written = 0
        self.session = CaptureSession()
        self.state = CaptureState.RECORDING
        print(f"🎬 Recording started ({self.codec}{' + audio' if self._stream.has_audio else ''})")

        if background:
            self._threads = [threading.Thread(target=self._video_loop, daemon=True)]
            if self._stream.has_audio:
                self._threads.append(threading.Thread(target=self._audio_loop, daemon=True))
            for thread in self._threads:
                thread.start()
        return True

    def pump(self) -> bool:
        """Move one frame (and one audio chunk) from the stream into the buffer."""
        if self.state is not CaptureState.RECORDING:
            return False
        wrote = self._pump_video()
        if self._stream is not None and self._stream.has_audio:
            self._pump_audio()
        return wrote

    def _pump_video(self) -> bool:
        ret, frame = self._stream.read_frame()
        if not ret or frame is None:
            return False
        with self._io_lock:
            if self._writer is None:
                return False
            self._writer.write(frame)
            self._frames_written += 1
            self.latest_frame = frame
        return True

    def _pump_audio(self) -> None:
        chunk = self._stream.read_audio()
        if chunk:
            self._audio_chunks.append(chunk)

    def _video_loop(self) -> None:
        while self.state is CaptureState.RECORDING:
            try:
                self._pump_video()
            except (cv2.error, OSError) as exc:
                print(f"❌ Recording failed due to an error: {exc}")
                break

    def _audio_loop(self) -> None:
        while self.state is CaptureState.RECORDING:
            try:
                self._pump_audio()
            except OSError as exc:
                print(f"⚠️ Microphone stopped delivering audio: {exc}")
                break

    def stop_recording(self) -> bool:
        """Finalize the buffered frames into one blob and release the devices."""
        self._require(CaptureState.RECORDING)
        self.state = CaptureState.RECORDED
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads = []

        try:
            blob = self._finalize()
        except (CaptureError, OSError) as exc:
            self._discard()
            self.session = None
            self.state = CaptureState.IDLE
            self._fail(f"Recording failed: {exc}")
            return False
        finally:
            self._release_stream()

        self.session.blob = blob
        print(f"✅ Recorded {len(blob) / 1024:.1f} KB clip")
        return True

    def _finalize(self) -> VideoBlob:
        with self._io_lock:
            writer, self._writer = self._writer, None
        if writer is not None:
            writer.release()

        video_path = self._work_dir / f"clip{config.RECORDING_CONTAINER}"
        if self._frames_written == 0 or not video_path.exists():
            raise CaptureError("No video frames were captured.")

        if self._audio_chunks and self._stream is not None:
            sample_rate, sample_width = self._stream.audio_format
            audio_path = self._work_dir / "audio.wav"
            write_wav(audio_path, b"".join(self._audio_chunks), sample_rate, sample_width)
            muxed_path = self._work_dir / f"muxed{config.RECORDING_CONTAINER}"
            if mux_audio_into_video(video_path, audio_path, muxed_path):
                video_path = muxed_path
            else:
                print("⚠️ Keeping the clip without sound.")

        data = video_path.read_bytes()
        if not data:
            raise CaptureError("Recorded clip is empty.")
        return VideoBlob(data=data, mime_type=config.RECORDING_MIME_TYPE)

    # ------------------------------------------------------------------ #
    # Gesture selection and sending
    # ------------------------------------------------------------------ #

    def select_gesture(self, trigger: GestureTrigger | str) -> None:
        """Pick the gesture that unlocks the clip. Unknown names raise ``ValueError``."""
        self._require(CaptureState.RECORDED)
        self.session.gesture_trigger = GestureTrigger(trigger)

    def send(self) -> bool:
        """Upload the recorded clip. Returns False (and keeps the clip) on failure."""
        self._require(CaptureState.RECORDED)
        if self.session.blob is None or self.session.gesture_trigger is None:
            self._fail("Record a video and select a gesture trigger first.")
            return False

        self.state = CaptureState.UPLOADING
        try:
            content_hash = self.uploader(self.session.blob, self.session.gesture_trigger.value)
        except Exception as exc:
            self.state = CaptureState.RECORDED
            self._fail(f"Failed to upload AR video: {exc}")
            return False

        self.content_hash = content_hash
        self.session.sent = True
        self.session = None
        self._discard()
        self.state = CaptureState.SENT
        notify("AR Message Sent!", "success")
        return True

    def cancel(self) -> None:
        """Throw away the recorded clip and go back to idle."""
        self._require(CaptureState.RECORDED)
        self.session = None
        self._discard()
        self.state = CaptureState.IDLE

    def reset(self) -> None:
        """Start over after a clip has been sent."""
        self._require(CaptureState.SENT)
        self.content_hash = None
        self.state = CaptureState.IDLE

    def close(self) -> None:
        """Tear down from any state, releasing the devices."""
        was_recording = self.state is CaptureState.RECORDING
        if was_recording:
            self.state = CaptureState.IDLE
            for thread in self._threads:
                thread.join(timeout=2.0)
            self._threads = []
        self._release_resources()
        if self.state is not CaptureState.SENT:
            self.session = None
            self.state = CaptureState.IDLE

    def _release_stream(self) -> None:
        if self._stream is not None:
            self._stream.release()
            self._stream = None

    def _release_resources(self) -> None:
        with self._io_lock:
            writer, self._writer = self._writer, None
        try:
            if writer is not None:
                writer.release()
        finally:
            self._release_stream()
            self._discard()

    def _discard(self) -> None:
        if self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            self._work_dir = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
