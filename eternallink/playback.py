"""Hologram playback: embedded AR runtime with a plain video fallback."""

import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Optional

import cv2
import pygame

from . import config
from .audio_processing import extract_audio_track
from .cache import VideoCache, cache_or_fetch
from .object_urls import ObjectUrl, ObjectUrlRegistry
from .runtime import RuntimeCommandError, RuntimeLoader
from .state import ARMessage, InvalidTransitionError, RuntimeState
from .ui import notify

MODE_RUNTIME = "runtime"
MODE_FALLBACK = "fallback"


class FallbackVideoPlayer:
    """Play a clip in the OpenCV window with clock-synced audio through pygame."""

    def __init__(self, window_name: str = config.DISPLAY_WINDOW_NAME, work_dir: Path = config.TEMP_DIR):
        self.window_name = window_name
        self.work_dir = Path(work_dir)
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def play(self, video_path: Path | str) -> None:
        """Block until the clip ends, ``stop()`` is called or 'q' is pressed."""
        self._stop.clear()
        video_path = str(video_path)
        print(f"Playing video in fallback player: {video_path}")

        cap = cv2.VideoCapture(video_path)
        if not cap.isOpened():
            print(f"Error: Could not open video file {video_path}")
            return

        fps = cap.get(cv2.CAP_PROP_FPS)
        if not fps or fps <= 0:
            print("Warning: Could not get video FPS. Defaulting to 30.")
            fps = 30

        self.work_dir.mkdir(parents=True, exist_ok=True)
        audio_path = self.work_dir / f"{Path(video_path).stem}.wav"
        audio_started = False
        try:
            if extract_audio_track(video_path, audio_path):
                try:
                    pygame.init()
                    pygame.mixer.init()
                    pygame.mixer.music.load(str(audio_path))
                    pygame.mixer.music.play()
                    audio_started = True
                except pygame.error as exc:
                    print(f"Error initializing Pygame or loading audio: {exc}. Video will play without sound.")

            if audio_started:
                self._play_synced(cap, fps)
            else:
                self._play_silent(cap, fps)
        finally:
            cap.release()
            if pygame.get_init():
                if audio_started:
                    pygame.mixer.music.stop()
                pygame.quit()
            audio_path.unlink(missing_ok=True)

    def _play_silent(self, cap, fps: float) -> None:
        wait_ms = max(1, int(1000 / fps))
        while not self._stop.is_set():
            ret, frame = cap.read()
            if not ret:
                break
            cv2.imshow(self.window_name, frame)
            if cv2.waitKey(wait_ms) & 0xFF == ord("q"):
                break

    def _play_synced(self, cap, fps: float) -> None:
        playback_start_time = pygame.time.get_ticks()
        while not self._stop.is_set():
            ret, frame = cap.read()
            if not ret:
                break

            elapsed_ms = pygame.time.get_ticks() - playback_start_time
            current_frame_number = cap.get(cv2.CAP_PROP_POS_FRAMES) - 1
            expected_time_ms = (current_frame_number / fps) * 1000

            delay_ms = expected_time_ms - elapsed_ms
            if delay_ms > 2:
                pygame.time.delay(int(delay_ms))
            elif delay_ms < -10:
                continue

            cv2.imshow(self.window_name, frame)
            if cv2.waitKey(1) & 0xFF == ord("q"):
                break


class HologramPlayer:
    """Show a verified AR message's video.

    The embedded runtime is preferred. Each failed load, and each failed start
    command on a loaded runtime, counts as an attempt. Only a started video resets the
    count. Once ``max_load_attempts`` consecutive attempts have failed, the
    runtime is never tried again for this player and all playback goes straight to
    the fallback video player.
    """

    def __init__(
        self,
        message: ARMessage,
        fetch: Callable[[str], bytes],
        cache: VideoCache,
        loader: RuntimeLoader,
        object_urls: ObjectUrlRegistry,
        fallback_player: Optional[FallbackVideoPlayer] = None,
        max_load_attempts: int = config.MAX_RUNTIME_LOAD_ATTEMPTS,
        debug_log_size: int = config.DEBUG_LOG_SIZE,
    ):
        self.message = message
        self.fetch = fetch
        self.cache = cache
        self.loader = loader
        self.object_urls = object_urls
        self.fallback_player = fallback_player or FallbackVideoPlayer()
        self.max_load_attempts = max_load_attempts

        self.runtime_state = RuntimeState.NOT_LOADED
        self.load_attempts = 0
        self.is_playing = False
        self.mode: Optional[str] = None
        self.current_url: Optional[ObjectUrl] = None
        self.debug_log: Deque[str] = deque(maxlen=debug_log_size)

        self._runtime = None
        self._lock = threading.Lock()
        loader.on_ready(self._handle_ready)
        loader.on_error(self._handle_runtime_error)

    @property
    def fallback_only(self) -> bool:
        return self.load_attempts >= self.max_load_attempts

    def log(self, message: str) -> None:
        self.debug_log.append(f"[{time.strftime('%H:%M:%S')}] {message}")

    def _handle_ready(self) -> None:
        self.runtime_state = RuntimeState.LOADED
        self.log("AR runtime is ready")

    def _handle_runtime_error(self, message: str) -> None:
        self.log(f"Error: {message}")
        notify(f"AR runtime error: {message}", "error")

    # ------------------------------------------------------------------ #
    # Video retrieval
    # ------------------------------------------------------------------ #

    def load_video(self) -> Optional[ObjectUrl]:
        """Cache-or-fetch the message video and expose it as a playable reference."""
        content_hash = self.message.video_content_hash
        if not content_hash:
            notify("This AR message has no video yet.", "error")
            return None
        try:
            data = cache_or_fetch(self.cache, content_hash, self.fetch)
        except Exception as exc:
            self.log(f"Error loading video {content_hash}: {exc}")
            notify("Failed to load video", "error")
            return None

        self._release_url()
        self.current_url = self.object_urls.create(data, config.RECORDING_MIME_TYPE)
        return self.current_url

    def _release_url(self) -> None:
        url, self.current_url = self.current_url, None
        if url is not None:
            self.object_urls.revoke(url)

    # ------------------------------------------------------------------ #
    # Runtime
    # ------------------------------------------------------------------ #

    def _load_runtime(self) -> bool:
        self.log("Starting AR runtime load")
        try:
            self._runtime = self.loader.ensure_loaded()
        except Exception as exc:
            with self._lock:
                self.load_attempts += 1
                self.runtime_state = RuntimeState.FAILED
            self.log(f"AR runtime loading failed ({self.load_attempts}/{self.max_load_attempts}): {exc}")
            notify(f"Failed to load AR environment: {exc}", "error")
            return False

        with self._lock:
            self.runtime_state = RuntimeState.LOADED
        return True

    # ------------------------------------------------------------------ #
    # Playback
    # ------------------------------------------------------------------ #

    def play(self) -> Optional[str]:
        """Start playback. Returns the mode used, or ``None`` if nothing started."""
        if not self.message.is_viewed:
            raise InvalidTransitionError("The gesture has not been verified for this message.")
        unavailable = self.message.unavailable_reason()
        if unavailable:
            notify(unavailable, "warning")
            return None

        with self._lock:
            if self.runtime_state is RuntimeState.LOADING:
                notify("AR environment is still loading. Please wait.", "warning")
                return None
            if self.is_playing:
                return self.mode
            use_runtime = not self.fallback_only
            needs_load = use_runtime and self.runtime_state is not RuntimeState.LOADED
            if needs_load:
                self.runtime_state = RuntimeState.LOADING

        if needs_load:
            notify("Loading AR environment...", "loading")
            use_runtime = self._load_runtime()
        elif not use_runtime:
            self.log("Runtime disabled after repeated load failures; using fallback player")

        obj = self.load_video()
        if obj is None:
            return None

        if use_runtime:
            try:
                self._runtime.send_message(config.RUNTIME_RECEIVER, config.RUNTIME_START_METHOD, obj.url)
            except Exception as exc:
                with self._lock:
                    self.load_attempts += 1
                    self.runtime_state = RuntimeState.FAILED
                    runtime, self._runtime = self._runtime, None
                self.log(f"Error starting AR playback ({self.load_attempts}/{self.max_load_attempts}): {exc}")
                notify("Failed to start AR video. Using fallback player.", "error")
                if runtime is not None:
                    self.loader.unload()
            else:
                with self._lock:
                    self.load_attempts = 0
                self.mode = MODE_RUNTIME
                self.is_playing = True
                notify("AR video started!", "success")
                return MODE_RUNTIME

        return self._play_fallback(obj)

    def _play_fallback(self, obj: ObjectUrl) -> str:
        self.mode = MODE_FALLBACK
        self.is_playing = True
        notify("Video started in fallback player", "info")
        try:
            self.fallback_player.play(obj.path)
        finally:
            self.is_playing = False
            self.mode = None
            self._release_url()
        return MODE_FALLBACK

    def stop(self) -> None:
        """Stop playback and release the playable reference. Runtime status is kept."""
        if self.mode == MODE_RUNTIME and self._runtime is not None:
            try:
                self._runtime.send_message(config.RUNTIME_RECEIVER, config.RUNTIME_RESET_METHOD)
            except RuntimeCommandError as exc:
                self.log(f"Error stopping AR playback: {exc}")
                notify("Failed to stop AR video", "error")
        elif self.mode == MODE_FALLBACK:
            self.fallback_player.stop()

        if self.is_playing:
            notify("Video stopped!", "success")
        self.is_playing = False
        self.mode = None
        self._release_url()

    def close(self) -> None:
        self.stop()
        self._runtime = None
        self.loader.unload()
