import time

import pytest

from conftest import FakeDeviceFactory, FakeWriterFactory
from eternallink import capture as capture_module
from eternallink.api import ApiError
from eternallink.capture import CaptureComponent, CodecError, negotiate_writer
from eternallink.state import CaptureState, GestureTrigger, InvalidTransitionError


class UploadRecorder:
    def __init__(self, error=None, content_hash="QmUploaded"):
        self.error = error
        self.content_hash = content_hash
        self.calls = []

    def __call__(self, blob, gesture_trigger):
        self.calls.append((blob, gesture_trigger))
        if self.error is not None:
            raise self.error
        return self.content_hash


def make_capture(tmp_path, factory=None, uploader=None, record_audio=False, writers=None):
    factory = factory or FakeDeviceFactory()
    devices = factory.devices()
    component = CaptureComponent(
        devices,
        uploader or UploadRecorder(),
        record_audio=record_audio,
        writer_factory=writers or FakeWriterFactory(),
        recordings_dir=tmp_path / "recordings",
    )
    return component, devices


def record_frames(component, count=3):
    assert component.start_recording(background=False)
    for _ in range(count):
        assert component.pump()
    assert component.stop_recording()


def test_send_requires_gesture_then_uploads_once(tmp_path):
    uploader = UploadRecorder()
    component, devices = make_capture(tmp_path, uploader=uploader)

    record_frames(component)
    assert component.state is CaptureState.RECORDED

    assert component.send() is False
    assert uploader.calls == []
    assert component.state is CaptureState.RECORDED

    component.select_gesture(GestureTrigger.CLAP)
    assert component.send() is True

    assert len(uploader.calls) == 1
    blob, trigger = uploader.calls[0]
    assert trigger == "CLAP"
    assert blob.mime_type == "video/webm"
    assert blob.data == b"WEBM" + (3).to_bytes(4, "big")
    assert component.state is CaptureState.SENT
    assert component.content_hash == "QmUploaded"
    assert devices.active_streams == 0


def test_stream_released_when_recording_stops(tmp_path):
    factory = FakeDeviceFactory()
    component, devices = make_capture(tmp_path, factory=factory)

    assert component.start_recording(background=False)
    assert devices.active_streams == 1
    component.pump()
    component.stop_recording()

    assert devices.active_streams == 0
    assert factory.cameras[0].released


def test_background_recording(tmp_path):
    writers = FakeWriterFactory()
    component, devices = make_capture(tmp_path, writers=writers)

    assert component.start_recording()
    deadline = time.monotonic() + 2.0
    while writers.writers[-1].frames == 0 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert component.stop_recording()
    assert component.latest_frame is not None
    assert devices.active_streams == 0


def test_codec_degrades_to_vp8(tmp_path):
    component, _ = make_capture(tmp_path, writers=FakeWriterFactory(supported=("VP80",)))
    assert component.start_recording(background=False)
    assert component.codec == "vp8"
    component.close()


def test_no_codec_available(tmp_path):
    component, devices = make_capture(tmp_path, writers=FakeWriterFactory(supported=()))

    assert component.start_recording(background=False) is False
    assert component.state is CaptureState.IDLE
    assert "codec" in component.last_error
    assert devices.active_streams == 0


def test_negotiate_writer_raises_without_codecs(tmp_path):
    with pytest.raises(CodecError):
        negotiate_writer(tmp_path / "clip.webm", 30.0, (640, 480), writer_factory=FakeWriterFactory(supported=()))


def test_camera_denied(tmp_path):
    component, devices = make_capture(tmp_path, factory=FakeDeviceFactory(camera_opened=False))

    assert component.start_recording(background=False) is False
    assert component.state is CaptureState.IDLE
    assert component.last_error
    assert devices.active_streams == 0


def test_microphone_denied_ends_capture(tmp_path):
    factory = FakeDeviceFactory(microphone_error=OSError("no input device"))
    component, devices = make_capture(tmp_path, factory=factory, record_audio=True)

    assert component.start_recording(background=False) is False
    assert component.state is CaptureState.IDLE
    assert component.session is None
    assert "microphone" in component.last_error.lower()
    assert devices.active_streams == 0
    assert factory.cameras[0].released
    assert len(factory.cameras) == 1


def test_video_only_when_audio_is_off(tmp_path):
    factory = FakeDeviceFactory()
    component, devices = make_capture(tmp_path, factory=factory, record_audio=False)

    assert component.start_recording(background=False)
    assert devices.holder.has_audio is False
    assert factory.microphones == []
    component.pump()
    assert component.stop_recording()
    assert devices.active_streams == 0



def test_audio_is_muxed_into_clip(tmp_path, monkeypatch):
    factory = FakeDeviceFactory()
    muxed = []

    def fake_mux(video_path, audio_path, output_path):
        muxed.append(audio_path)
        output_path.write_bytes(b"MUXED")
        return True

    monkeypatch.setattr(capture_module, "mux_audio_into_video", fake_mux)
    component, _ = make_capture(tmp_path, factory=factory, record_audio=True)

    record_frames(component, count=2)

    assert len(muxed) == 1
    assert component.session.blob.data == b"MUXED"
    assert factory.microphones[0].exited


def test_mux_failure_keeps_silent_clip(tmp_path, monkeypatch):
    monkeypatch.setattr(capture_module, "mux_audio_into_video", lambda *args: False)
    component, _ = make_capture(tmp_path, record_audio=True)

    record_frames(component, count=2)
    assert component.session.blob.data.startswith(b"WEBM")


def test_no_frames_returns_to_idle(tmp_path):
    component, devices = make_capture(tmp_path, factory=FakeDeviceFactory(camera_frames=0))

    assert component.start_recording(background=False)
    assert component.pump() is False
    assert component.stop_recording() is False
    assert component.state is CaptureState.IDLE
    assert component.session is None
    assert devices.active_streams == 0


def test_upload_failure_keeps_clip_for_retry(tmp_path):
    uploader = UploadRecorder(error=ApiError("Server error: Bad Gateway", 502))
    component, _ = make_capture(tmp_path, uploader=uploader)
    record_frames(component)
    component.select_gesture("WAVE")

    assert component.send() is False
    assert component.state is CaptureState.RECORDED
    assert component.session.blob is not None
    assert "Bad Gateway" in component.last_error

    uploader.error = None
    assert component.send() is True
    assert len(uploader.calls) == 2
    assert uploader.calls[1][1] == "WAVE"


def test_cancel_discards_recording(tmp_path):
    component, _ = make_capture(tmp_path)
    record_frames(component)

    component.cancel()
    assert component.state is CaptureState.IDLE
    assert component.session is None


def test_reset_after_send(tmp_path):
    component, _ = make_capture(tmp_path)
    record_frames(component)
    component.select_gesture(GestureTrigger.PEACE)
    component.send()

    component.reset()
    assert component.state is CaptureState.IDLE
    assert component.content_hash is None


def test_close_while_recording_releases_devices(tmp_path):
    component, devices = make_capture(tmp_path)
    with component:
        component.start_recording(background=False)
        component.pump()
    assert component.state is CaptureState.IDLE
    assert devices.active_streams == 0


def test_invalid_transitions(tmp_path):
    component, _ = make_capture(tmp_path)

    with pytest.raises(InvalidTransitionError):
        component.stop_recording()
    with pytest.raises(InvalidTransitionError):
        component.send()

    record_frames(component)
    with pytest.raises(InvalidTransitionError):
        component.start_recording()


def test_unknown_gesture_is_rejected(tmp_path):
    component, _ = make_capture(tmp_path)
    record_frames(component)

    with pytest.raises(ValueError):
        component.select_gesture("FIST")
