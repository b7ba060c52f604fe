import subprocess
import wave

import numpy as np

from conftest import frame_of, peace_points
from eternallink import audio_processing
from eternallink.audio_processing import extract_audio_track, mux_audio_into_video, write_wav
from eternallink.timing import configure_timing, get_timing_stats, time_operation
from eternallink.ui import LEFT_HAND_COLOR, RIGHT_HAND_COLOR, draw_hand_overlay, hand_color


def test_time_operation_records_when_enabled():
    configure_timing(enabled=True, verbose=False)
    with time_operation("Video Download", track_memory=True):
        pass
    with time_operation("Video Download"):
        pass

    stats = get_timing_stats().get_stats("Video Download")
    assert stats["count"] == 2
    assert "avg_memory_mb" in stats
    assert "Video Download" in get_timing_stats().format_summary()


def test_time_operation_disabled_by_default():
    with time_operation("AR Runtime Loading"):
        pass
    assert get_timing_stats().get_stats("AR Runtime Loading") is None


def test_write_wav(tmp_path):
    path = tmp_path / "audio.wav"
    write_wav(path, b"\x00\x01" * 800, 16000, 2)

    with wave.open(str(path), "rb") as wav_file:
        assert wav_file.getframerate() == 16000
        assert wav_file.getnframes() == 800


def test_mux_without_ffmpeg(tmp_path, monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(audio_processing.subprocess, "run", missing)
    assert mux_audio_into_video(tmp_path / "v.webm", tmp_path / "a.wav", tmp_path / "o.webm") is False
    assert extract_audio_track(tmp_path / "v.webm", tmp_path / "a.wav") is False


def test_extract_from_silent_clip(tmp_path, monkeypatch):
    def failing(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, stderr="Output file #0 does not contain any stream")

    monkeypatch.setattr(audio_processing.subprocess, "run", failing)
    assert extract_audio_track(tmp_path / "v.webm", tmp_path / "a.wav") is False


def test_mux_command(tmp_path, monkeypatch):
    commands = []
    monkeypatch.setattr(audio_processing.subprocess, "run", lambda cmd, **kwargs: commands.append(cmd))

    assert mux_audio_into_video(tmp_path / "v.webm", tmp_path / "a.wav", tmp_path / "o.webm")
    assert commands[0][:2] == ["ffmpeg", "-y"]
    assert "libopus" in commands[0]


def test_hand_colors():
    assert hand_color("Right") == RIGHT_HAND_COLOR
    assert hand_color("left") == LEFT_HAND_COLOR


def test_overlay_leaves_input_untouched():
    image = np.zeros((480, 640, 3), dtype=np.uint8)

    overlay = draw_hand_overlay(image, frame_of(peace_points()), "PEACE")

    assert not image.any()
    assert overlay.shape == image.shape
    assert overlay.any()
