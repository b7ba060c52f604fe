"""Client for the EternalLink REST API (AR message endpoints only)."""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from . import config
from .state import ARMessage, Location, VideoBlob
from .timing import time_operation

_EXPIRATION_UNITS = {
    "minutes": 60,
    "hours": 60 * 60,
    "days": 24 * 60 * 60,
}


class ApiError(Exception):
    """The API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(ApiError):
    """The API answered 401; the user has to log in again."""


@dataclass(frozen=True)
class DownloadedFile:
    data: bytes
    content_type: str


def parse_expiration_option(option: Optional[str]) -> Optional[int]:
    """Convert ``"off"`` or ``"<n>-minutes|hours|days"`` to seconds."""
    if not option or option == "off":
        return None
    try:
        amount, unit = option.split("-", 1)
        return int(amount) * _EXPIRATION_UNITS[unit]
    except (ValueError, KeyError) as exc:
        raise ValueError(f"Invalid expiration option: {option!r}") from exc


class ApiClient:
    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token: Optional[str] = config.API_TOKEN,
        session: Optional[requests.Session] = None,
        timeout: float = config.API_TIMEOUT_S,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        response_type: str = "json",
    ):
        """Send a request and decode the response.

        ``response_type="blob"`` returns a :class:`DownloadedFile`; otherwise
        JSON bodies are decoded and anything else is returned as text.
        """
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if files is None:
            headers["Accept"] = "application/json"

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{endpoint}",
                headers=headers,
                params=params,
                json=json_body,
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise ApiError(f"Error connecting to the EternalLink API: {exc}") from exc

        if response.status_code == 401:
            raise SessionExpiredError("Session expired. Please login again.", 401)

        if not response.ok:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            raise ApiError(message or f"Server error: {response.reason}", response.status_code)

        if response.status_code == 204:
            return None

        content_type = response.headers.get("content-type", "")
        if response_type == "blob":
            if not response.content:
                raise ApiError("Downloaded file is empty", response.status_code)
            return DownloadedFile(data=response.content, content_type=content_type)

        if "application/json" in content_type:
            return response.json()
        return response.text

    # ------------------------------------------------------------------ #
    # AR messages
    # ------------------------------------------------------------------ #

    def upload_ar_video(
        self,
        chat_id: int,
        blob: VideoBlob,
        location: Location,
        gesture_trigger: str,
        expiration_option: Optional[str] = None,
        reply_to_message_id: Optional[int] = None,
        one_time_view: bool = False,
        now: Optional[datetime] = None,
    ) -> str:
        """Upload a recorded clip as an AR message and return its content hash."""
        expiration_seconds = parse_expiration_option(expiration_option)

        message_data: Dict[str, Any] = {"chatId": chat_id, "content": "(AR Video Message)"}
        if reply_to_message_id is not None:
            message_data["replyToMessageId"] = reply_to_message_id
        if expiration_seconds is not None:
            message_data["expirationSeconds"] = expiration_seconds
        if one_time_view:
            message_data["isOneTimeView"] = True

        expires_at = None
        if expiration_seconds is not None:
            now = now or datetime.now(timezone.utc)
            expires_at = (now + timedelta(seconds=expiration_seconds)).isoformat().replace("+00:00", "Z")

        ar_request = {
            "chatId": chat_id,
            "latitude": location.latitude,
            "longitude": location.longitude,
            "altitude": location.altitude,
            "expiresAt": expires_at,
            "gestureTrigger": gesture_trigger.upper(),
        }

        with time_operation("AR Video Upload"):
            payload = self.request(
                "/ar-messages/video",
                "POST",
                data={"message": json.dumps(message_data), "data": json.dumps(ar_request)},
                files={"video": ("ar-video.webm", blob.data, blob.mime_type)},
            )

        if not isinstance(payload, dict) or not payload.get("success"):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ApiError(message or "Failed to send AR video message")

        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        content_hash = body.get("videoIpfsHash")
        if not content_hash:
            raise ApiError("The API did not return a content hash for the uploaded video")
        return content_hash

    def download_file(self, content_hash: str) -> DownloadedFile:
        return self.request(f"/files/download/{content_hash}", response_type="blob")

    def download_video(self, content_hash: str) -> bytes:
        return self.download_file(content_hash).data

    def mark_ar_message_viewed(self, message_id: int, gesture_performed: str) -> bool:
        payload = self.request(
            f"/ar-messages/view/{message_id}",
            "POST",
            params={"gesturePerformed": gesture_performed},
        )
        return bool(isinstance(payload, dict) and payload.get("success"))

    def get_chat_messages(self, chat_id: int) -> List[Dict[str, Any]]:
        payload = self.request(f"/messages/chat/{chat_id}")
        if isinstance(payload, dict):
            payload = payload.get("data") or payload.get("messages") or []
        return payload or []

    def get_ar_message(self, chat_id: int, message_id: int) -> ARMessage:
        """Find an AR message in its chat. Raises ``ApiError`` if it has no AR payload."""
        for message in self.get_chat_messages(chat_id):
            if message.get("id") != message_id:
                continue
            ar_payload = message.get("arMessage")
            if not ar_payload:
                break
            return ARMessage.from_api(
                {
                    **ar_payload,
                    "id": message_id,
                    "isOneTimeView": message.get("isOneTimeView", False),
                    "status": message.get("status"),
                    "messageExpiresAt": message.get("expiresAt"),
                }
            )
        raise ApiError(f"Message {message_id} in chat {chat_id} is not an AR message", 404)

    def nearby_ar_messages(self, latitude: float, longitude: float, radius_km: float) -> List[Dict[str, Any]]:
        payload = self.request(
            "/ar-messages/nearby",
            params={"latitude": latitude, "longitude": longitude, "radius": radius_km},
        )
        return payload or []
