"""Test data factories using factory_boy for consistent test data generation."""

from types import SimpleNamespace
from unittest.mock import Mock

import factory
from nio import MatrixRoom, RoomMessageText, SyncResponse

from matrix_cli.core.session import Session
from matrix_cli.results import RoomSummary

USER_ID = "@alice:example.org"
JOINED_ROOM = "!joined:example.org"
LEFT_ROOM = "!left:example.org"
INVITED_ROOM = "!invited:example.org"


class SessionFactory(factory.Factory):
    class Meta:
        model = Session

    user_id = factory.Sequence(lambda n: f"@user{n}:example.org")
    device_id = factory.Sequence(lambda n: f"DEVICE{n}")
    access_token = factory.Faker('sha256')
    homeserver = "https://matrix.example.org"


class RoomSummaryFactory(factory.Factory):
    class Meta:
        model = RoomSummary

    room_id = factory.Sequence(lambda n: f"!room{n}:example.org")
    alias = factory.Sequence(lambda n: f"#room{n}:example.org")
    name = factory.Faker('word')


def make_room(room_id: str, name: str = "", alias: str = "") -> Mock:
    """Create a mock nio room as found in client.rooms / client.invited_rooms."""
    room = Mock(spec=MatrixRoom)
    room.room_id = room_id
    room.name = name
    room.canonical_alias = alias
    return room


def make_text_event(sender: str, body: str, server_timestamp: int = 1700000000000) -> Mock:
    event = Mock(spec=RoomMessageText)
    event.sender = sender
    event.body = body
    event.server_timestamp = server_timestamp
    return event


def make_sync_response(next_batch: str, timeline=None, leave=None) -> Mock:
    """A stand-in for nio's SyncResponse carrying only what the code reads."""
    response = Mock(spec=SyncResponse)
    response.next_batch = next_batch
    join = {
        room_id: SimpleNamespace(timeline=SimpleNamespace(events=list(events)))
        for room_id, events in (timeline or {}).items()
    }
    response.rooms = SimpleNamespace(join=join, leave=leave or {}, invite={})
    return response
