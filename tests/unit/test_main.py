"""Tests for the command line surface and exit codes."""

import asyncio
import os
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from matrix_cli.commands import (
    MessageListen,
    MessageSend,
    RoomBan,
    RoomCreate,
    RoomJoin,
    RoomKick,
    UserSetAvatar,
    UserJoinedRooms,
)
from matrix_cli.config import CliSettings
from matrix_cli.exceptions import (
    AliasNotFound,
    CorruptSession,
    InvalidSession,
    MissingCredentials,
    NotMember,
    RemoteError,
)
from matrix_cli.main import build_command, main, parse_arguments, run, settings_overrides
from matrix_cli.results import RoomListing
from tests.factories import JOINED_ROOM


async def never_returning_sync(**kwargs):
    await asyncio.sleep(3600)


@pytest.mark.unit
class TestParseArguments:

    def test_global_options(self):
        args = parse_arguments([
            "-H", "https://matrix.example.org", "-u", "alice", "-p", "secret",
            "-s", "session.json", "--store-path", "store", "--dry-run", "--log-level", "debug",
            "user", "joined-rooms",
        ])

        overrides = settings_overrides(args)
        assert overrides["homeserver_url"] == "https://matrix.example.org"
        assert overrides["username"] == "alice"
        assert overrides["password"] == "secret"
        assert overrides["session_file"] == Path("session.json")
        assert overrides["store_path"] == Path("store")
        assert overrides["dry_run"] is True
        assert overrides["log_level"] == "DEBUG"

    def test_unset_options_are_none(self):
        overrides = settings_overrides(parse_arguments([]))

        assert all(value is None for value in overrides.values())

    def test_no_subcommand_builds_nothing(self):
        assert build_command(parse_arguments(["-s", "session.json"])) is None

    @pytest.mark.parametrize("argv,expected", [
        (["message", "send", "#a:example.org", "hello"], MessageSend(room="#a:example.org", body="hello")),
        (["message", "listen", "!a:example.org"], MessageListen(room="!a:example.org")),
        (["user", "joined-rooms"], UserJoinedRooms()),
        (["user", "set-avatar", "me.png"], UserSetAvatar(file=Path("me.png"))),
        (["room", "join", "#a:example.org"], RoomJoin(room="#a:example.org")),
        (
            ["room", "kick", "!a:example.org", "@bob:example.org", "--reason", "spam"],
            RoomKick(room="!a:example.org", user="@bob:example.org", reason="spam"),
        ),
        (
            ["room", "ban", "!a:example.org", "@bob:example.org"],
            RoomBan(room="!a:example.org", user="@bob:example.org"),
        ),
        (
            [
                "room", "create", "--name", "Test", "--alias", "test", "--public",
                "--room-version", "10", "--invite", "@bob:example.org", "--invite", "@carol:example.org",
            ],
            RoomCreate(
                name="Test",
                alias="test",
                public=True,
                room_version="10",
                invite=("@bob:example.org", "@carol:example.org"),
            ),
        ),
    ])
    def test_build_command(self, argv, expected):
        assert build_command(parse_arguments(argv)) == expected

    def test_category_requires_action(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_arguments(["room"])

        assert exc_info.value.code == 2

    def test_missing_positional(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_arguments(["message", "send", "!a:example.org"])

        assert exc_info.value.code == 2


@pytest.mark.unit
class TestRun:

    @pytest.mark.asyncio
    async def test_run_renders_result_and_closes_client(self, handle, mock_client, console):
        mock_client.sync.side_effect = never_returning_sync
        authenticator = Mock()
        authenticator.authenticate = AsyncMock(return_value=handle)

        result = await run(CliSettings(_env_file=None), UserJoinedRooms(), console, authenticator)

        assert isinstance(result, RoomListing)
        assert JOINED_ROOM in console.export_text()
        mock_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_closes_client_on_error(self, handle, mock_client, console):
        mock_client.sync.side_effect = never_returning_sync
        authenticator = Mock()
        authenticator.authenticate = AsyncMock(return_value=handle)

        with pytest.raises(NotMember):
            await run(
                CliSettings(_env_file=None),
                MessageSend(room="!stranger:example.org", body="hi"),
                console,
                authenticator,
            )

        mock_client.close.assert_awaited_once()
        assert console.export_text() == ""


@pytest.mark.unit
class TestMain:

    @pytest.fixture(autouse=True)
    def quiet(self, tmp_path, monkeypatch):
        for key in list(os.environ):
            if key.startswith("MATRIX_CLI_"):
                monkeypatch.delenv(key)
        monkeypatch.chdir(tmp_path)
        with patch("matrix_cli.main.setup_logging"):
            yield

    def test_success_exits_zero(self):
        with patch("matrix_cli.main.run", new=AsyncMock(return_value=None)) as run_mock:
            assert main(["-s", "session.json", "room", "join", "#a:example.org"]) == 0

        settings, command = run_mock.await_args.args
        assert settings.session_file == Path("session.json")
        assert command == RoomJoin(room="#a:example.org")

    @pytest.mark.parametrize("error,code", [
        (MissingCredentials(["username", "password"]), 2),
        (CorruptSession(Path("session.json"), "not valid JSON"), 3),
        (InvalidSession("Unknown token", "M_UNKNOWN_TOKEN"), 3),
        (AliasNotFound("#a:example.org"), 4),
        (NotMember("!a:example.org"), 5),
        (RemoteError("join", "Forbidden", "M_FORBIDDEN"), 1),
    ])
    def test_typed_errors_map_to_exit_codes(self, error, code, capsys):
        with patch("matrix_cli.main.run", new=AsyncMock(side_effect=error)):
            assert main(["user", "joined-rooms"]) == code

        assert str(error) in capsys.readouterr().err

    def test_invalid_configuration_exits_two_without_running(self):
        with patch("matrix_cli.main.run", new=AsyncMock()) as run_mock:
            assert main(["-H", "not-a-url", "user", "joined-rooms"]) == 2

        run_mock.assert_not_called()

    def test_keyboard_interrupt(self):
        with patch("matrix_cli.main.run", new=AsyncMock(side_effect=KeyboardInterrupt)):
            assert main(["room", "join", "#a:example.org"]) == 130
