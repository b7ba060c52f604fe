"""Audio helpers for recorded clips (wav writing, ffmpeg mux/extract)."""

from pathlib import Path
import subprocess
import wave


def write_wav(path: Path | str, pcm: bytes, sample_rate: int, sample_width: int, channels: int = 1) -> None:
    """Persist raw little-endian PCM captured from the microphone."""
    with wave.open(str(path), "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)


def mux_audio_into_video(video_path: Path | str, audio_path: Path | str, output_path: Path | str) -> bool:
    """Combine a silent WebM clip with a wav track (encoded to Opus) using ffmpeg."""
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        str(video_path),
        "-i",
        str(audio_path),
        "-c:v",
        "copy",
        "-c:a",
        "libopus",
        "-shortest",
        str(output_path),
    ]
    try:
        subprocess.run(cmd, capture_output=True, text=True, check=True)
        return True
    except subprocess.CalledProcessError as exc:
        print(f"❌ Audio mux failed: {exc.stderr.strip() if exc.stderr else exc}")
        return False
    except FileNotFoundError:
        print("❌ ffmpeg not found. Make sure ffmpeg is installed and accessible from command line")
        return False


def extract_audio_track(video_path: Path | str, output_audio_path: Path | str) -> bool:
    """Extract a clip's audio track to 16-bit PCM wav. Returns False for silent clips."""
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        str(video_path),
        "-vn",
        "-acodec",
        "pcm_s16le",
        "-ar",
        "44100",
        "-ac",
        "2",
        str(output_audio_path),
    ]
    try:
        subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError:
        return False
    except FileNotFoundError:
        print("⚠️ ffmpeg not found; playing without sound.")
        return False
    return Path(output_audio_path).exists() and Path(output_audio_path).stat().st_size > 0
