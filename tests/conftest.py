"""
Global test configuration and fixtures.
"""

import io
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from nio import AsyncClient
from rich.console import Console

from matrix_cli.core.handle import ClientHandle
from matrix_cli.core.session import Session, SessionStore
from matrix_cli.core.sync import SyncLoop
from matrix_cli.results import RoomSummary
from tests.factories import INVITED_ROOM, JOINED_ROOM, LEFT_ROOM, USER_ID, make_room


@pytest.fixture
def session() -> Session:
    return Session(
        user_id=USER_ID,
        device_id="DEVICEID",
        access_token="syt_token",
        homeserver="https://matrix.example.org",
    )


@pytest.fixture
def session_file(tmp_path: Path) -> Path:
    return tmp_path / "session.json"


@pytest.fixture
def session_store(session_file: Path) -> SessionStore:
    return SessionStore(session_file)


@pytest.fixture
def mock_client():
    """Create a mock Matrix client."""
    client = Mock(spec=AsyncClient)
    client.user_id = USER_ID
    client.rooms = {JOINED_ROOM: make_room(JOINED_ROOM, name="Joined Room", alias="#joined:example.org")}
    client.invited_rooms = {INVITED_ROOM: make_room(INVITED_ROOM, name="Invited Room")}

    # Mock async methods
    client.login = AsyncMock()
    client.whoami = AsyncMock()
    client.sync = AsyncMock()
    client.close = AsyncMock()
    client.room_send = AsyncMock()
    client.join = AsyncMock()
    client.room_leave = AsyncMock()
    client.room_invite = AsyncMock()
    client.room_kick = AsyncMock()
    client.room_ban = AsyncMock()
    client.room_create = AsyncMock()
    client.room_put_alias = AsyncMock()
    client.room_resolve_alias = AsyncMock()
    client.get_displayname = AsyncMock()
    client.set_displayname = AsyncMock()
    client.get_avatar = AsyncMock()
    client.set_avatar = AsyncMock()
    client.upload = AsyncMock()
    client.restore_login = Mock()
    return client


@pytest.fixture
def handle(mock_client, session) -> ClientHandle:
    return ClientHandle(
        client=mock_client,
        session=session,
        since="s1",
        left_rooms={LEFT_ROOM: RoomSummary(LEFT_ROOM, alias="#old:example.org", name="Old Room")},
    )


@pytest.fixture
def sync_loop(mock_client) -> SyncLoop:
    return SyncLoop(mock_client, since="s1", retry_delay=0, max_retry_delay=0)


@pytest.fixture
def console() -> Console:
    """A console that records instead of writing to the terminal."""
    return Console(file=io.StringIO(), record=True, width=120, color_system=None)
