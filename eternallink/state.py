"""Shared domain types for AR video hologram messages."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

LANDMARKS_PER_HAND = 21


class GestureTrigger(str, Enum):
    """Hand gestures that can unlock an AR message."""

    WAVE = "WAVE"
    CLAP = "CLAP"
    PEACE = "PEACE"
    THUMBS_UP = "THUMBS_UP"


class CaptureState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    RECORDED = "recorded"
    UPLOADING = "uploading"
    SENT = "sent"


class VerificationState(Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RuntimeState(Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class InvalidTransitionError(RuntimeError):
    """Raised when a component action is not allowed in its current state."""


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    altitude: float = 0.0


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ARMessage:
    """An AR message as returned by the EternalLink API.

    ``is_viewed`` only ever moves from False to True and
    ``video_content_hash`` cannot change once it has been assigned.
    """

    message_id: Optional[int]
    location: Location
    expires_at: Optional[datetime] = None
    video_content_hash: Optional[str] = None
    gesture_trigger: Optional[GestureTrigger] = None
    is_viewed: bool = False
    is_one_time_view: bool = False
    status: Optional[str] = None
    message_expires_at: Optional[datetime] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "is_viewed" and getattr(self, "is_viewed", False) and not value:
            raise ValueError("An AR message cannot become unviewed.")
        if name == "video_content_hash":
            current = getattr(self, "video_content_hash", None)
            if current and value != current:
                raise ValueError("The video content hash of an AR message is immutable.")
        super().__setattr__(name, value)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ARMessage":
        trigger = payload.get("gestureTrigger")
        return cls(
            message_id=payload.get("id"),
            location=Location(
                latitude=float(payload.get("latitude", 0.0)),
                longitude=float(payload.get("longitude", 0.0)),
                altitude=float(payload.get("altitude") or 0.0),
            ),
            expires_at=_parse_timestamp(payload.get("expiresAt")),
            video_content_hash=payload.get("videoIpfsHash") or None,
            gesture_trigger=GestureTrigger(trigger.upper()) if trigger else None,
            is_viewed=bool(payload.get("isViewed", False)),
            is_one_time_view=bool(payload.get("isOneTimeView", False)),
            status=payload.get("status"),
            message_expires_at=_parse_timestamp(payload.get("messageExpiresAt")),
        )

    def mark_viewed(self) -> None:
        self.is_viewed = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once either the AR expiry or the containing message's expiry has passed."""
        now = now or datetime.now(timezone.utc)
        return any(
            deadline is not None and now >= deadline
            for deadline in (self.expires_at, self.message_expires_at)
        )

    @property
    def is_one_time_consumed(self) -> bool:
        """A one-time-view message that the recipient has already seen."""
        return self.is_one_time_view and self.status == "SEEN"

    def unavailable_reason(self, now: Optional[datetime] = None) -> Optional[str]:
        if self.is_expired(now):
            return "This AR message has expired."
        if self.is_one_time_consumed:
            return "This one-time AR message has already been viewed."
        return None

    @property
    def is_ar_playable(self) -> bool:
        """Only messages with a gesture trigger are shown as holograms."""
        return self.gesture_trigger is not None


@dataclass(frozen=True)
class VideoBlob:
    data: bytes
    mime_type: str

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class CaptureSession:
    """In-progress recording owned by a single capture component."""

    blob: Optional[VideoBlob] = None
    gesture_trigger: Optional[GestureTrigger] = None
    sent: bool = False


@dataclass(frozen=True)
class HandLandmarks:
    """21 normalized (x, y, z) hand keypoints plus handedness."""

    points: np.ndarray
    handedness: str

    def __post_init__(self):
        points = np.asarray(self.points, dtype=np.float64)
        if points.shape != (LANDMARKS_PER_HAND, 3):
            raise ValueError(
                f"Expected {LANDMARKS_PER_HAND} landmarks with (x, y, z), got shape {points.shape}"
            )
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "handedness", self.handedness.lower())


@dataclass(frozen=True)
class DetectionFrame:
    """Landmarks for zero, one or two hands detected in one camera frame."""

    hands: Tuple[HandLandmarks, ...] = field(default_factory=tuple)
    timestamp_ms: int = 0

    @property
    def dominant_hand(self) -> Optional[HandLandmarks]:
        return self.hands[0] if self.hands else None
