"""Command orchestration for the EternalLink AR client."""

import os
import time
from typing import Optional

import cv2
import numpy as np

from . import config
from .api import ApiClient, ApiError
from .cache import VideoCache
from .capture import CaptureComponent
from .devices import MediaDevices
from .object_urls import ObjectUrlRegistry
from .playback import MODE_RUNTIME, HologramPlayer
from .polling import PeriodicTask
from .runtime import RuntimeLoader
from .state import CaptureState, GestureTrigger, Location
from .timing import configure_timing, print_timing_summary
from .ui import notify
from .utils import cleanup_temp_directories, setup_runtime_directories
from .verification import GestureVerifier
from .web import ObjectServer, create_app


def _display_available() -> bool:
    return bool(os.environ.get("DISPLAY")) or os.name == "nt"


def _choose_gesture(preselected: Optional[str]) -> GestureTrigger:
    if preselected:
        return GestureTrigger(preselected.upper())
    options = list(GestureTrigger)
    for number, trigger in enumerate(options, start=1):
        print(f"  {number}. {trigger.value}")
    while True:
        answer = input("Select the gesture that unlocks this message: ").strip()
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return options[int(answer) - 1]
        try:
            return GestureTrigger(answer.upper())
        except ValueError:
            print("Please pick one of the listed gestures.")


def _record_with_window(capture: CaptureComponent) -> bool:
    idle = np.zeros((config.CAPTURE_FRAME_SIZE[1], config.CAPTURE_FRAME_SIZE[0], 3), dtype=np.uint8)
    print("Press SPACE in the window to start/stop recording, 'q' to quit.")
    try:
        while True:
            frame = capture.latest_frame if capture.state is CaptureState.RECORDING else None
            cv2.imshow(config.DISPLAY_WINDOW_NAME, frame if frame is not None else idle)
            key = cv2.waitKey(30) & 0xFF
            if key == ord("q"):
                return False
            if key != ord(" "):
                continue
            if capture.state is CaptureState.IDLE:
                capture.start_recording()
            elif capture.state is CaptureState.RECORDING:
                return capture.stop_recording()
    finally:
        cv2.destroyWindow(config.DISPLAY_WINDOW_NAME)


def _record_headless(capture: CaptureComponent) -> bool:
    input("Press Enter to start recording...")
    if not capture.start_recording():
        return False
    input("🔴 Recording. Press Enter to stop...")
    return capture.stop_recording()


def record_and_send(
    client: ApiClient,
    devices: MediaDevices,
    chat_id: int,
    location: Location,
    gesture: Optional[str] = None,
    expiration: Optional[str] = None,
    reply_to: Optional[int] = None,
    one_time_view: bool = False,
    record_audio: bool = True,
) -> Optional[str]:
    """Record a clip, pick its gesture and upload it. Returns the content hash."""

    def uploader(blob, gesture_trigger):
        return client.upload_ar_video(
            chat_id,
            blob,
            location,
            gesture_trigger,
            expiration_option=expiration,
            reply_to_message_id=reply_to,
            one_time_view=one_time_view,
        )

    with CaptureComponent(devices, uploader, record_audio=record_audio) as capture:
        recorded = _record_with_window(capture) if _display_available() else _record_headless(capture)
        if not recorded:
            return None

        capture.select_gesture(_choose_gesture(gesture))
        while not capture.send():
            if input("Retry upload? [y/N] ").strip().lower() != "y":
                capture.cancel()
                return None
        return capture.content_hash


def view_message(client: ApiClient, devices: MediaDevices, chat_id: int, message_id: int) -> bool:
    """Unlock an AR message with its gesture and play the hologram."""
    try:
        message = client.get_ar_message(chat_id, message_id)
    except ApiError as exc:
        notify(str(exc), "error")
        return False

    if not message.is_ar_playable:
        notify("This message has no gesture trigger; it is not an AR hologram.", "warning")
        return False

    unavailable = message.unavailable_reason()
    if unavailable:
        notify(unavailable, "warning")
        return False

    display = _display_available()
    with GestureVerifier(message, devices, client.mark_ar_message_viewed) as verifier:
        if not verifier.run(display=display):
            if verifier.last_error:
                print(f"Gesture was not verified: {verifier.last_error}")
            return False

    registry = ObjectUrlRegistry()
    server = None
    loader = RuntimeLoader()
    if loader.command:
        server = ObjectServer(create_app(registry))
        if server.start():
            registry.base_url = server.base_url

    player = HologramPlayer(message, client.download_video, VideoCache(), loader, registry)
    try:
        mode = player.play()
        if mode == MODE_RUNTIME:
            input("Hologram playing. Press Enter to stop...")
        return mode is not None
    finally:
        player.close()
        registry.revoke_all()
        if server is not None:
            server.stop()
        if display:
            cv2.destroyAllWindows()


def watch_nearby(client: ApiClient, location: Location, radius_km: float,
                 interval: float = config.NEARBY_POLL_INTERVAL_S) -> None:
    """Print nearby AR messages until interrupted."""

    def refresh():
        messages = client.nearby_ar_messages(location.latitude, location.longitude, radius_km)
        print(f"\n📍 {len(messages)} AR message(s) within {radius_km} km")
        for entry in messages:
            sender = (entry.get("message") or {}).get("sender", {}).get("username", "unknown")
            content = (entry.get("message") or {}).get("content", "")
            print(f"  {sender}: {content}  "
                  f"(Lat: {float(entry.get('latitude', 0)):.6f}, Lon: {float(entry.get('longitude', 0)):.6f}, "
                  f"Expires: {entry.get('expiresAt') or 'never'})")

    with PeriodicTask(interval, refresh, name="nearby-refresh"):
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("Stopping nearby refresh...")


def main(command: str, args, enable_timing: bool = False) -> int:
    """Run one CLI command. Returns a process exit code."""
    configure_timing(enabled=enable_timing, verbose=enable_timing)
    setup_runtime_directories()

    client = ApiClient()
    devices = MediaDevices()
    try:
        if command == "record":
            location = Location(args.latitude, args.longitude, args.altitude)
            content_hash = record_and_send(
                client,
                devices,
                args.chat_id,
                location,
                gesture=args.gesture,
                expiration=args.expiration,
                reply_to=args.reply_to,
                one_time_view=args.one_time_view,
                record_audio=not args.no_audio,
            )
            if content_hash:
                print(f"Uploaded video content hash: {content_hash}")
            return 0 if content_hash else 1
        if command == "view":
            return 0 if view_message(client, devices, args.chat_id, args.message_id) else 1
        if command == "nearby":
            location = Location(args.latitude, args.longitude)
            watch_nearby(client, location, args.radius)
            return 0
        raise ValueError(f"Unknown command: {command}")
    finally:
        print("Cleaning up...")
        devices.release_all()
        cleanup_temp_directories()
        if enable_timing:
            print_timing_summary()
