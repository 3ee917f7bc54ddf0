"""
Matrix Command Dispatcher

Maps each parsed command to a short sequence of room resolution and protocol
calls. Handlers either return a structured result or raise a typed error; none
of them turns a failed call into a partial success.
"""

import asyncio
import io
import logging
import mimetypes
import re
import signal
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from nio import ErrorResponse, RoomMessageText, RoomPreset, RoomVisibility
from rich.console import Console

from ..commands import (
    ALL_COMMANDS,
    Command,
    MessageListen,
    MessageSend,
    RoomBan,
    RoomCreate,
    RoomCreateAlias,
    RoomInvite,
    RoomJoin,
    RoomKick,
    RoomLeave,
    UserGetAvatarUrl,
    UserGetDisplayName,
    UserInvitedRooms,
    UserJoinedRooms,
    UserLeftRooms,
    UserSetAvatar,
    UserSetAvatarUrl,
    UserSetDisplayName,
    command_key,
)
from ..exceptions import (
    AlreadyJoined,
    AlreadyLeft,
    FileAccessError,
    InvalidArgument,
    InvalidSession,
    NotMember,
    RemoteError,
)
from ..results import (
    Completed,
    DryRunRequest,
    RoomCreated,
    RoomListing,
    SentMessage,
    TextResult,
)
from ..utils.output import print_message
from .handle import ClientHandle
from .rooms import RoomResolver, server_name, validate_alias, validate_user_id
from .sync import SyncLoop, is_auth_failure

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]

_MXC_RE = re.compile(r"^mxc://[^/\s]+/[^/\s]+$")
_ALIAS_LOCALPART_RE = re.compile(r"^[^:#\s]+$")


def check_response(response: Any, operation: str) -> Any:
    """Raise the matching typed error for a nio error response, else return it."""
    if isinstance(response, ErrorResponse):
        if is_auth_failure(response):
            raise InvalidSession(response.message, response.status_code)
        raise RemoteError(operation, response.message, response.status_code)
    return response


class CommandDispatcher:
    """Runs one command against an authenticated client handle."""

    def __init__(
        self,
        handle: ClientHandle,
        sync_loop: SyncLoop,
        console: Optional[Console] = None,
        dry_run: bool = False,
        stop_event: Optional[asyncio.Event] = None,
        resolver: Optional[RoomResolver] = None,
    ):
        self.handle = handle
        self.client = handle.client
        self.sync_loop = sync_loop
        self.console = console or Console()
        self.dry_run = dry_run
        self.stop_event = stop_event
        self.resolver = resolver or RoomResolver(handle.client)

        self.handlers: Dict[Tuple[str, str], Handler] = {
            command_key(MessageSend): self._message_send,
            command_key(MessageListen): self._message_listen,
            command_key(UserGetDisplayName): self._user_get_display_name,
            command_key(UserSetDisplayName): self._user_set_display_name,
            command_key(UserGetAvatarUrl): self._user_get_avatar_url,
            command_key(UserSetAvatar): self._user_set_avatar,
            command_key(UserSetAvatarUrl): self._user_set_avatar_url,
            command_key(UserInvitedRooms): self._user_invited_rooms,
            command_key(UserJoinedRooms): self._user_joined_rooms,
            command_key(UserLeftRooms): self._user_left_rooms,
            command_key(RoomCreate): self._room_create,
            command_key(RoomCreateAlias): self._room_create_alias,
            command_key(RoomInvite): self._room_invite,
            command_key(RoomJoin): self._room_join,
            command_key(RoomKick): self._room_kick,
            command_key(RoomBan): self._room_ban,
            command_key(RoomLeave): self._room_leave,
        }

        missing = [command_key(cls) for cls in ALL_COMMANDS if command_key(cls) not in self.handlers]
        if missing:
            raise RuntimeError(f"CommandDispatcher: No handler for {missing}")

    async def dispatch(self, command: Optional[Command]) -> Any:
        """Run a command. With no command there is nothing to do and None is returned."""
        if command is None:
            logger.debug("CommandDispatcher: No command given")
            return None

        key = command_key(command)
        handler = self.handlers.get(key)
        if handler is None:
            raise InvalidArgument("command", " ".join(key), "unknown command")

        logger.info(f"CommandDispatcher: Running {' '.join(key)}")
        return await handler(command)

    # Shared steps

    async def _resolve(self, token: str) -> str:
        return await self.resolver.resolve(token)

    def _require_joined(self, room_id: str) -> None:
        if not self.handle.is_joined(room_id):
            raise NotMember(room_id)

    def _would(self, operation: str, **params: Any) -> DryRunRequest:
        logger.info(f"CommandDispatcher: Dry run, not calling {operation}")
        return DryRunRequest(operation=operation, params=params)

    # message

    async def _message_send(self, command: MessageSend) -> Any:
        if not command.body:
            raise InvalidArgument("message", command.body, "message text cannot be empty")

        room_id = await self._resolve(command.room)
        self._require_joined(room_id)

        content = {"msgtype": "m.text", "body": command.body}
        if self.dry_run:
            return self._would("room_send", room_id=room_id, message_type="m.room.message", content=content)

        response = check_response(
            await self.client.room_send(room_id=room_id, message_type="m.room.message", content=content),
            "room_send",
        )
        logger.info(f"CommandDispatcher: Sent {response.event_id} to {room_id}", extra={"room_id": room_id})
        return SentMessage(room_id=room_id, event_id=response.event_id)

    async def _message_listen(self, command: MessageListen) -> None:
        room_id = await self._resolve(command.room)
        if not self.handle.is_joined(room_id):
            logger.warning(
                f"CommandDispatcher: Not joined to {room_id}, no messages will arrive", extra={"room_id": room_id}
            )

        subscription = self.sync_loop.subscribe(
            lambda event_room_id, event: print_message(self.console, event),
            room_id=room_id,
            event_types=(RoomMessageText,),
        )
        self.console.print(f"Listening to room {command.room}, Ctrl-C to stop", markup=False, highlight=False)
        try:
            await self._wait_for_stop()
        finally:
            subscription.cancel()

        self.console.print("Exiting.", markup=False, highlight=False)
        return None

    async def _wait_for_stop(self) -> None:
        """Block until the listen is told to stop. Binds SIGINT when no stop event was supplied."""
        if self.stop_event is not None:
            await self.stop_event.wait()
            return

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, stop.set)
        except (NotImplementedError, RuntimeError):
            # no signal support here; a KeyboardInterrupt cancels the task instead
            await stop.wait()
            return

        try:
            await stop.wait()
        finally:
            loop.remove_signal_handler(signal.SIGINT)

    # user

    async def _user_get_display_name(self, command: UserGetDisplayName) -> TextResult:
        response = check_response(await self.client.get_displayname(), "get_displayname")
        return TextResult(response.displayname or "Display Name Not Set")

    async def _user_set_display_name(self, command: UserSetDisplayName) -> Any:
        if self.dry_run:
            return self._would("set_displayname", displayname=command.name)

        check_response(await self.client.set_displayname(command.name), "set_displayname")
        return Completed(f"Display name set to {command.name}")

    async def _user_get_avatar_url(self, command: UserGetAvatarUrl) -> TextResult:
        response = check_response(await self.client.get_avatar(), "get_avatar")
        return TextResult(response.avatar_url or "Avatar Not Set")

    async def _user_set_avatar(self, command: UserSetAvatar) -> Any:
        path = command.file
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileAccessError(path, e) from e

        content_type, _ = mimetypes.guess_type(path.name)
        content_type = content_type or "application/octet-stream"

        if self.dry_run:
            return self._would(
                "upload+set_avatar", filename=path.name, content_type=content_type, size=len(data)
            )

        upload = await self.client.upload(
            io.BytesIO(data), content_type=content_type, filename=path.name, filesize=len(data)
        )
        # nio returns (response, decryption_keys)
        response = upload[0] if isinstance(upload, tuple) else upload
        response = check_response(response, "upload")
        logger.info(f"CommandDispatcher: Uploaded {path.name} as {response.content_uri}")

        check_response(await self.client.set_avatar(response.content_uri), "set_avatar")
        return Completed(f"Avatar set to {response.content_uri}")

    async def _user_set_avatar_url(self, command: UserSetAvatarUrl) -> Any:
        if not _MXC_RE.match(command.url):
            raise InvalidArgument("avatar URL", command.url, "expected an mxc://server/media-id URL")

        if self.dry_run:
            return self._would("set_avatar", avatar_url=command.url)

        check_response(await self.client.set_avatar(command.url), "set_avatar")
        return Completed(f"Avatar set to {command.url}")

    async def _user_invited_rooms(self, command: UserInvitedRooms) -> RoomListing:
        return RoomListing("invited", self.handle.invited_rooms())

    async def _user_joined_rooms(self, command: UserJoinedRooms) -> RoomListing:
        return RoomListing("joined", self.handle.joined_rooms())

    async def _user_left_rooms(self, command: UserLeftRooms) -> RoomListing:
        return RoomListing("left", self.handle.left_room_list())

    # room

    def _alias_localpart(self, alias: str) -> str:
        """Accept 'general' or '#general:<own server>' and return 'general'."""
        if alias.startswith("#"):
            validate_alias(alias)
            local, server = alias[1:].split(":", 1)
            own_server = server_name(self.handle.user_id)
            if server != own_server:
                raise InvalidArgument("alias", alias, f"new rooms can only get aliases on {own_server}")
            return local
        if not _ALIAS_LOCALPART_RE.match(alias):
            raise InvalidArgument("alias", alias, "expected a local name such as 'general'")
        return alias

    async def _room_create(self, command: RoomCreate) -> Any:
        alias = self._alias_localpart(command.alias) if command.alias else None
        invite = tuple(validate_user_id(user) for user in command.invite)
        if command.room_version is not None and not command.room_version.strip():
            raise InvalidArgument("room version", command.room_version, "must not be empty")

        visibility = RoomVisibility.public if command.public else RoomVisibility.private
        preset = RoomPreset.public_chat if command.public else RoomPreset.private_chat
        params = {
            "visibility": visibility,
            "preset": preset,
            "name": command.name,
            "topic": command.topic,
            "alias": alias,
            "room_version": command.room_version,
            "invite": invite,
        }

        if self.dry_run:
            shown = dict(params, visibility=visibility.value, preset=preset.value, invite=list(invite))
            return self._would("room_create", **shown)

        if command.room_version:
            logger.info(f"CommandDispatcher: Requesting room version {command.room_version}")
        response = check_response(await self.client.room_create(**params), "room_create")

        full_alias = f"#{alias}:{server_name(self.handle.user_id)}" if alias else ""
        logger.info(f"CommandDispatcher: Created room {response.room_id}")
        return RoomCreated(room_id=response.room_id, alias=full_alias)

    async def _room_create_alias(self, command: RoomCreateAlias) -> Any:
        alias = validate_alias(command.alias)
        room_id = await self._resolve(command.room)

        if self.dry_run:
            return self._would("room_put_alias", room_alias=alias, room_id=room_id)

        check_response(await self.client.room_put_alias(alias, room_id), "room_put_alias")
        return Completed(f"Alias {alias} now points to {room_id}")

    async def _room_invite(self, command: RoomInvite) -> Any:
        user_id = validate_user_id(command.user)
        room_id = await self._resolve(command.room)
        self._require_joined(room_id)

        if self.dry_run:
            return self._would("room_invite", room_id=room_id, user_id=user_id)

        check_response(await self.client.room_invite(room_id, user_id), "room_invite")
        return Completed(f"Invited {user_id} to {room_id}")

    async def _room_join(self, command: RoomJoin) -> Any:
        room_id = await self._resolve(command.room)
        if self.handle.is_joined(room_id):
            raise AlreadyJoined(room_id)

        if self.dry_run:
            return self._would("join", room_id=room_id)

        response = check_response(await self.client.join(room_id), "join")
        joined = getattr(response, "room_id", None) or room_id
        return Completed(f"Joined {joined}")

    async def _room_kick(self, command: RoomKick) -> Any:
        user_id = validate_user_id(command.user)
        room_id = await self._resolve(command.room)
        self._require_joined(room_id)

        if self.dry_run:
            return self._would("room_kick", room_id=room_id, user_id=user_id, reason=command.reason)

        check_response(await self.client.room_kick(room_id, user_id, reason=command.reason), "room_kick")
        return Completed(f"Kicked {user_id} from {room_id}")

    async def _room_ban(self, command: RoomBan) -> Any:
        user_id = validate_user_id(command.user)
        room_id = await self._resolve(command.room)
        self._require_joined(room_id)

        if self.dry_run:
            return self._would("room_ban", room_id=room_id, user_id=user_id, reason=command.reason)

        check_response(await self.client.room_ban(room_id, user_id, reason=command.reason), "room_ban")
        return Completed(f"Banned {user_id} from {room_id}")

    async def _room_leave(self, command: RoomLeave) -> Any:
        room_id = await self._resolve(command.room)
        if self.handle.has_left(room_id):
            raise AlreadyLeft(room_id)
        self._require_joined(room_id)

        if self.dry_run:
            return self._would("room_leave", room_id=room_id)

        check_response(await self.client.room_leave(room_id), "room_leave")
        return Completed(f"Left {room_id}")
