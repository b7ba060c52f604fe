from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeDeviceFactory, make_message
from eternallink.app import view_message


class StubClient:
    def __init__(self, message):
        self.message = message
        self.viewed = []

    def get_ar_message(self, chat_id, message_id):
        return self.message

    def mark_ar_message_viewed(self, message_id, gesture):
        self.viewed.append((message_id, gesture))
        return True


@pytest.mark.parametrize(
    "message",
    [
        make_message(viewed=True, one_time_view=True, status="SEEN"),
        make_message(message_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)),
    ],
)
def test_view_refuses_unavailable_messages(message):
    factory = FakeDeviceFactory()
    client = StubClient(message)

    assert view_message(client, factory.devices(), 5, 42) is False
    assert factory.cameras == []
    assert client.viewed == []
