"""
Command Tree

Each leaf action of the CLI is a frozen dataclass tagged with its category and
action name. The per-category unions let the dispatcher check at start-up that
it has a handler for every command.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Optional, Tuple, Union, get_args


@dataclass(frozen=True)
class MessageSend:
    category: ClassVar[str] = "message"
    action: ClassVar[str] = "send"

    room: str
    body: str


@dataclass(frozen=True)
class MessageListen:
    category: ClassVar[str] = "message"
    action: ClassVar[str] = "listen"

    room: str


@dataclass(frozen=True)
class UserGetDisplayName:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "get-display-name"


@dataclass(frozen=True)
class UserSetDisplayName:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "set-display-name"

    name: str


@dataclass(frozen=True)
class UserGetAvatarUrl:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "get-avatar-url"


@dataclass(frozen=True)
class UserSetAvatar:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "set-avatar"

    file: Path


@dataclass(frozen=True)
class UserSetAvatarUrl:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "set-avatar-url"

    url: str


@dataclass(frozen=True)
class UserInvitedRooms:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "invited-rooms"


@dataclass(frozen=True)
class UserJoinedRooms:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "joined-rooms"


@dataclass(frozen=True)
class UserLeftRooms:
    category: ClassVar[str] = "user"
    action: ClassVar[str] = "left-rooms"


@dataclass(frozen=True)
class RoomCreate:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "create"

    name: Optional[str] = None
    topic: Optional[str] = None
    alias: Optional[str] = None  # "general" or "#general:<own server>"
    public: bool = False
    room_version: Optional[str] = None
    invite: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RoomCreateAlias:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "create-alias"

    room: str
    alias: str


@dataclass(frozen=True)
class RoomInvite:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "invite"

    room: str
    user: str


@dataclass(frozen=True)
class RoomJoin:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "join"

    room: str


@dataclass(frozen=True)
class RoomKick:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "kick"

    room: str
    user: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class RoomBan:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "ban"

    room: str
    user: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class RoomLeave:
    category: ClassVar[str] = "room"
    action: ClassVar[str] = "leave"

    room: str


MessageCommand = Union[MessageSend, MessageListen]
UserCommand = Union[
    UserGetDisplayName,
    UserSetDisplayName,
    UserGetAvatarUrl,
    UserSetAvatar,
    UserSetAvatarUrl,
    UserInvitedRooms,
    UserJoinedRooms,
    UserLeftRooms,
]
RoomCommand = Union[RoomCreate, RoomCreateAlias, RoomInvite, RoomJoin, RoomKick, RoomBan, RoomLeave]
Command = Union[MessageCommand, UserCommand, RoomCommand]

ALL_COMMANDS: Tuple[type, ...] = (
    get_args(MessageCommand) + get_args(UserCommand) + get_args(RoomCommand)
)


def command_key(command) -> Tuple[str, str]:
    return (command.category, command.action)
