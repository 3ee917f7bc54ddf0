"""Tests for session restore, fresh login and the initial snapshot."""

from pathlib import Path
from unittest.mock import Mock

import pytest
from nio import LoginError, LoginResponse, SyncError, WhoamiError, WhoamiResponse

from matrix_cli.config import DEVICE_NAME, CliSettings
from matrix_cli.core.auth import SNAPSHOT_FILTER, Authenticator, create_client
from matrix_cli.core.handle import ClientHandle
from matrix_cli.exceptions import (
    ConfigurationError,
    CorruptSession,
    InvalidSession,
    LoginFailed,
    MissingCredentials,
    RemoteError,
)
from tests.factories import LEFT_ROOM, USER_ID, make_sync_response


def make_settings(**values) -> CliSettings:
    defaults = {
        "homeserver_url": "https://matrix.example.org",
        "username": None,
        "password": None,
        "session_file": None,
        "store_path": None,
    }
    defaults.update(values)
    return CliSettings(_env_file=None, **defaults)


@pytest.mark.unit
class TestAuthenticator:

    @pytest.fixture
    def client_factory(self, mock_client):
        return Mock(return_value=mock_client)

    @pytest.fixture
    def snapshot(self, mock_client):
        left_info = Mock(state=[], timeline=Mock(events=[]))
        response = make_sync_response("s_snapshot", leave={LEFT_ROOM: left_info})
        mock_client.sync.return_value = response
        return response

    @pytest.mark.asyncio
    async def test_fresh_login_saves_session(self, mock_client, client_factory, snapshot, session_store):
        mock_client.login.return_value = LoginResponse(USER_ID, "NEWDEVICE", "syt_new")
        settings = make_settings(username="alice", password="secret")

        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)
        handle = await authenticator.authenticate()

        assert isinstance(handle, ClientHandle)
        assert handle.user_id == USER_ID
        assert handle.since == "s_snapshot"
        assert LEFT_ROOM in handle.left_rooms
        client_factory.assert_called_once_with("https://matrix.example.org", "alice", None, None)
        mock_client.login.assert_awaited_once_with("secret", device_name=DEVICE_NAME)
        mock_client.sync.assert_awaited_once_with(timeout=0, sync_filter=SNAPSHOT_FILTER, full_state=True)

        saved = session_store.load()
        assert saved.access_token == "syt_new"
        assert saved.device_id == "NEWDEVICE"
        assert saved.homeserver == "https://matrix.example.org"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password,missing", [
        (None, None, ["username", "password"]),
        ("alice", None, ["password"]),
        (None, "secret", ["username"]),
    ])
    async def test_missing_credentials_before_any_call(
        self, client_factory, session_store, username, password, missing
    ):
        settings = make_settings(username=username, password=password)
        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)

        with pytest.raises(MissingCredentials) as exc_info:
            await authenticator.authenticate()

        assert exc_info.value.missing == missing
        assert exc_info.value.exit_code == 2
        client_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_login_needs_homeserver(self, client_factory, session_store):
        settings = make_settings(homeserver_url=None, username="alice", password="secret")
        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)

        with pytest.raises(ConfigurationError):
            await authenticator.authenticate()

        client_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_login_rejected(self, mock_client, client_factory, session_store, session_file):
        mock_client.login.return_value = LoginError("Invalid password", "M_FORBIDDEN")
        settings = make_settings(username="alice", password="wrong")
        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)

        with pytest.raises(LoginFailed) as exc_info:
            await authenticator.authenticate()

        assert exc_info.value.status_code == "M_FORBIDDEN"
        assert not session_file.exists()
        mock_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_restore_needs_no_credentials(
        self, mock_client, client_factory, snapshot, session_store, session
    ):
        session_store.save(session)
        mock_client.whoami.return_value = WhoamiResponse(session.user_id, session.device_id, False)
        settings = make_settings(homeserver_url=None)

        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)
        handle = await authenticator.authenticate()

        assert handle.session == session
        client_factory.assert_called_once_with(session.homeserver, session.user_id, session.device_id, None)
        mock_client.restore_login.assert_called_once_with(
            session.user_id, session.device_id, session.access_token
        )
        mock_client.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_restore_ignores_supplied_credentials(
        self, mock_client, client_factory, snapshot, session_store, session
    ):
        session_store.save(session)
        mock_client.whoami.return_value = WhoamiResponse(session.user_id, session.device_id, False)
        settings = make_settings(username="alice", password="secret")

        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)
        handle = await authenticator.authenticate()

        assert handle.session == session
        mock_client.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_restore_never_falls_back_to_login(
        self, mock_client, client_factory, session_store, session, session_file
    ):
        session_store.save(session)
        before = session_file.read_text()
        mock_client.whoami.return_value = WhoamiError("Unknown token", "M_UNKNOWN_TOKEN")
        settings = make_settings(username="alice", password="secret")
        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)

        with pytest.raises(InvalidSession):
            await authenticator.authenticate()

        mock_client.login.assert_not_called()
        assert session_file.read_text() == before

    @pytest.mark.asyncio
    async def test_restore_does_not_rewrite_session(
        self, mock_client, client_factory, snapshot, session_store, session, session_file
    ):
        session_store.save(session)
        before = session_file.read_text()
        mock_client.whoami.return_value = WhoamiResponse(session.user_id, session.device_id, False)
        authenticator = Authenticator(make_settings(), session_store=session_store, client_factory=client_factory)

        await authenticator.authenticate()

        assert session_file.read_text() == before

    @pytest.mark.asyncio
    async def test_restore_with_revoked_token(self, mock_client, client_factory, session_store, session):
        session_store.save(session)
        mock_client.whoami.return_value = WhoamiError("Unknown token", "M_UNKNOWN_TOKEN")
        authenticator = Authenticator(make_settings(), session_store=session_store, client_factory=client_factory)

        with pytest.raises(InvalidSession) as exc_info:
            await authenticator.authenticate()

        assert exc_info.value.exit_code == 3
        mock_client.sync.assert_not_called()
        mock_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_restore_with_token_for_other_user(self, mock_client, client_factory, session_store, session):
        session_store.save(session)
        mock_client.whoami.return_value = WhoamiResponse("@mallory:example.org", "OTHER", False)
        authenticator = Authenticator(make_settings(), session_store=session_store, client_factory=client_factory)

        with pytest.raises(InvalidSession):
            await authenticator.authenticate()

    @pytest.mark.asyncio
    async def test_restore_network_failure_is_remote_error(
        self, mock_client, client_factory, session_store, session
    ):
        session_store.save(session)
        mock_client.whoami.return_value = WhoamiError("Bad gateway", "M_UNKNOWN")
        authenticator = Authenticator(make_settings(), session_store=session_store, client_factory=client_factory)

        with pytest.raises(RemoteError) as exc_info:
            await authenticator.authenticate()

        assert not isinstance(exc_info.value, InvalidSession)

    @pytest.mark.asyncio
    async def test_corrupt_session_file(self, client_factory, session_store, session_file):
        session_file.write_text("[]")
        settings = make_settings(username="alice", password="secret")
        authenticator = Authenticator(settings, session_store=session_store, client_factory=client_factory)

        with pytest.raises(CorruptSession):
            await authenticator.authenticate()

        client_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_snapshot_failure(self, mock_client, client_factory, session_store, session):
        session_store.save(session)
        mock_client.whoami.return_value = WhoamiResponse(session.user_id, session.device_id, False)
        mock_client.sync.return_value = SyncError("Token expired", "M_UNKNOWN_TOKEN")
        authenticator = Authenticator(make_settings(), session_store=session_store, client_factory=client_factory)

        with pytest.raises(InvalidSession):
            await authenticator.authenticate()

        mock_client.close.assert_awaited_once()


@pytest.mark.unit
def test_create_client_creates_store_directory(tmp_path: Path):
    store = tmp_path / "store"

    client = create_client("https://matrix.example.org", "@alice:example.org", "DEVICE", store)

    assert store.is_dir()
    assert client.homeserver == "https://matrix.example.org"
    assert client.device_id == "DEVICE"
    assert client.config.encryption_enabled is False
