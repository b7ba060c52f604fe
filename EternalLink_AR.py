"""Entry point for the EternalLink AR hologram messaging client."""

import argparse
import sys

from eternallink.app import main


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="EternalLink AR - gesture-locked video hologram messages")
    parser.add_argument(
        "--enable-timing",
        action="store_true",
        help="Enable performance timing reports (shows execution time for each operation)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Record and send an AR video message")
    record.add_argument("chat_id", type=int, help="Chat to send the message to")
    record.add_argument("--latitude", type=float, required=True)
    record.add_argument("--longitude", type=float, required=True)
    record.add_argument("--altitude", type=float, default=0.0)
    record.add_argument(
        "--gesture",
        choices=["WAVE", "CLAP", "PEACE", "THUMBS_UP"],
        help="Gesture that unlocks the message (asked interactively when omitted)"
    )
    record.add_argument(
        "--expiration",
        default="off",
        help="'off' or '<n>-minutes', '<n>-hours', '<n>-days'"
    )
    record.add_argument("--reply-to", type=int, help="Message id this is a reply to")
    record.add_argument("--one-time-view", action="store_true")
    record.add_argument("--no-audio", action="store_true", help="Record without the microphone")

    view = subparsers.add_parser("view", help="Unlock an AR message with its gesture and play it")
    view.add_argument("chat_id", type=int)
    view.add_argument("message_id", type=int)

    nearby = subparsers.add_parser("nearby", help="List AR messages around a location")
    nearby.add_argument("--latitude", type=float, required=True)
    nearby.add_argument("--longitude", type=float, required=True)
    nearby.add_argument("--radius", type=float, default=1.0, help="Radius in km")

    args = parser.parse_args()
    sys.exit(main(args.command, args, enable_timing=args.enable_timing))
