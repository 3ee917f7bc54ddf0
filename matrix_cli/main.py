"""
Main entry point for matrix-cli.

Parses the command line, authenticates, then runs the chosen command while a
sync loop keeps the client up to date in the background.

Examples:
    matrix-cli -H https://matrix.org -u alice -p secret -s session.json
    matrix-cli -s session.json room join "#general:example.org"
    matrix-cli -s session.json message listen "#general:example.org"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.console import Console

from . import __version__
from .commands import (
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
)
from .config import ENV_PREFIX, LOG_FORMATS, LOG_LEVELS, CliSettings, load_settings
from .core import Authenticator, CommandDispatcher, RunCoordinator, SyncLoop
from .exceptions import MatrixCliError
from .utils.logging_config import setup_logging
from .utils.output import render

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130

ROOM_HELP = "Room alias (#name:server) or ID (!id:server)"
USER_HELP = "User ID (@user:server)"


def _env(option: str) -> str:
    return f"[env: {ENV_PREFIX}{option}]"


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="matrix-cli",
        description="Use matrix-cli for simple matrix commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  matrix-cli -H https://matrix.org -u alice -p secret -s session.json   # log in and save the session
  matrix-cli -s session.json user joined-rooms                          # reuse the saved session
  matrix-cli -s session.json message send "#general:example.org" "hi"
  matrix-cli -s session.json --dry-run room create --name Test          # show the request only
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Global options; None means "not given" so the environment can supply the value
    parser.add_argument(
        "-H", "--homeserver-url",
        help=f"This is your matrix homeserver: e.g. https://matrix.org {_env('HOMESERVER_URL')}",
    )
    parser.add_argument("-u", "--username", help=f"Your matrix username {_env('USERNAME')}")
    parser.add_argument("-p", "--password", help=f"Your matrix password {_env('PASSWORD')}")
    parser.add_argument(
        "-s", "--session-file", type=Path,
        help=f"Use or store the session information here {_env('SESSION_FILE')}",
    )
    parser.add_argument("--store-path", type=Path, help=f"Store state information here {_env('STORE_PATH')}")
    parser.add_argument(
        "--dry-run", action="store_true", default=None,
        help=f"Print the request a command would send instead of sending it {_env('DRY_RUN')}",
    )
    parser.add_argument(
        "--log-level", choices=LOG_LEVELS, type=str.upper,
        help=f"Log verbosity on stderr (default: WARNING) {_env('LOG_LEVEL')}",
    )
    parser.add_argument("--log-format", choices=LOG_FORMATS, help=f"Log output format {_env('LOG_FORMAT')}")

    categories = parser.add_subparsers(dest="category", metavar="{message,user,room}")

    # message
    message = categories.add_parser("message", help="Send and receive messages")
    message_actions = message.add_subparsers(dest="action", required=True, metavar="{listen,send}")
    listen = message_actions.add_parser("listen", help="Listen for messages in a room")
    listen.add_argument("room", metavar="ROOM", help=ROOM_HELP)
    send = message_actions.add_parser("send", help="Send a plain text message to a room")
    send.add_argument("room", metavar="ROOM", help=ROOM_HELP)
    send.add_argument("msg", metavar="MSG", help="Message to send (plain text)")

    # user
    user = categories.add_parser("user", help="Get or set user settings")
    user_actions = user.add_subparsers(dest="action", required=True, metavar="ACTION")
    user_actions.add_parser("get-display-name", help="Gets the users display name")
    set_name = user_actions.add_parser("set-display-name", help="Set the users display name")
    set_name.add_argument("name", metavar="NAME")
    user_actions.add_parser("get-avatar-url", help="Get the current avatar url")
    set_avatar = user_actions.add_parser(
        "set-avatar", help="Upload the provided image and set it as the users avatar"
    )
    set_avatar.add_argument("file", metavar="FILE", type=Path)
    set_avatar_url = user_actions.add_parser(
        "set-avatar-url", help="Set the users avatar to already uploaded content (mxc:// URL)"
    )
    set_avatar_url.add_argument("url", metavar="URL")
    user_actions.add_parser("invited-rooms", help="List the rooms a user is invited to")
    user_actions.add_parser("joined-rooms", help="List the rooms a user is currently in")
    user_actions.add_parser("left-rooms", help="List the rooms a user has left")

    # room
    room = categories.add_parser("room", help="Manage rooms")
    room_actions = room.add_subparsers(dest="action", required=True, metavar="ACTION")
    create = room_actions.add_parser("create", help="Create a matrix room")
    create.add_argument("--name", help="Room name")
    create.add_argument("--topic", help="Room topic")
    create.add_argument("--alias", help="Local alias for the new room, e.g. 'general'")
    create.add_argument("--public", action="store_true", help="Publish the room in the room directory")
    create.add_argument("--room-version", help="Room version to request instead of the server default")
    create.add_argument(
        "--invite", action="append", default=[], metavar="USER", help=f"{USER_HELP} to invite; repeatable"
    )
    create_alias = room_actions.add_parser("create-alias", help="Point a new alias at a room")
    create_alias.add_argument("room", metavar="ROOM", help=ROOM_HELP)
    create_alias.add_argument("alias", metavar="ALIAS", help="Alias to create (#name:server)")
    invite = room_actions.add_parser("invite", help="Invite a user to a room")
    invite.add_argument("room", metavar="ROOM", help=ROOM_HELP)
    invite.add_argument("user", metavar="USER", help=USER_HELP)
    join = room_actions.add_parser("join", help="Join a matrix room")
    join.add_argument("room", metavar="ROOM", help=ROOM_HELP)
    for action, verb in (("kick", "Kick"), ("ban", "Ban")):
        moderate = room_actions.add_parser(action, help=f"{verb} a user from a room")
        moderate.add_argument("room", metavar="ROOM", help=ROOM_HELP)
        moderate.add_argument("user", metavar="USER", help=USER_HELP)
        moderate.add_argument("--reason", help="Reason shown to the user")
    leave = room_actions.add_parser("leave", help="Leave a matrix room")
    leave.add_argument("room", metavar="ROOM", help=ROOM_HELP)

    return parser.parse_args(argv)


_BUILDERS: Dict[Tuple[str, str], Callable[[argparse.Namespace], Command]] = {
    ("message", "listen"): lambda a: MessageListen(room=a.room),
    ("message", "send"): lambda a: MessageSend(room=a.room, body=a.msg),
    ("user", "get-display-name"): lambda a: UserGetDisplayName(),
    ("user", "set-display-name"): lambda a: UserSetDisplayName(name=a.name),
    ("user", "get-avatar-url"): lambda a: UserGetAvatarUrl(),
    ("user", "set-avatar"): lambda a: UserSetAvatar(file=a.file),
    ("user", "set-avatar-url"): lambda a: UserSetAvatarUrl(url=a.url),
    ("user", "invited-rooms"): lambda a: UserInvitedRooms(),
    ("user", "joined-rooms"): lambda a: UserJoinedRooms(),
    ("user", "left-rooms"): lambda a: UserLeftRooms(),
    ("room", "create"): lambda a: RoomCreate(
        name=a.name,
        topic=a.topic,
        alias=a.alias,
        public=a.public,
        room_version=a.room_version,
        invite=tuple(a.invite),
    ),
    ("room", "create-alias"): lambda a: RoomCreateAlias(room=a.room, alias=a.alias),
    ("room", "invite"): lambda a: RoomInvite(room=a.room, user=a.user),
    ("room", "join"): lambda a: RoomJoin(room=a.room),
    ("room", "kick"): lambda a: RoomKick(room=a.room, user=a.user, reason=a.reason),
    ("room", "ban"): lambda a: RoomBan(room=a.room, user=a.user, reason=a.reason),
    ("room", "leave"): lambda a: RoomLeave(room=a.room),
}


def build_command(args: argparse.Namespace) -> Optional[Command]:
    """Turn parsed arguments into a command, or None when no subcommand was given."""
    if not getattr(args, "category", None):
        return None
    return _BUILDERS[(args.category, args.action)](args)


def settings_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "homeserver_url": args.homeserver_url,
        "username": args.username,
        "password": args.password,
        "session_file": args.session_file,
        "store_path": args.store_path,
        "dry_run": args.dry_run,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }


async def run(
    settings: CliSettings,
    command: Optional[Command],
    console: Optional[Console] = None,
    authenticator: Optional[Authenticator] = None,
) -> Any:
    """Authenticate, run the command against a live sync loop, and print its result."""
    console = console or Console()
    authenticator = authenticator or Authenticator(settings)

    handle = await authenticator.authenticate()
    try:
        sync_loop = SyncLoop(handle.client, since=handle.since)
        dispatcher = CommandDispatcher(handle, sync_loop, console=console, dry_run=settings.dry_run)
        result = await RunCoordinator(sync_loop, dispatcher).run(command)
    finally:
        await handle.client.close()

    render(result, console)
    return result


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point. Returns the process exit code."""
    args = parse_arguments(argv)
    errors = Console(stderr=True)

    try:
        settings = load_settings(settings_overrides(args))
        setup_logging(settings.log_level, settings.log_format)
        asyncio.run(run(settings, build_command(args)))
    except MatrixCliError as e:
        logger.debug(f"matrix-cli: {type(e).__name__}", exc_info=True)
        errors.print(f"Error: {e}", markup=False, highlight=False, soft_wrap=True)
        return e.exit_code
    except KeyboardInterrupt:
        errors.print("Interrupted.", markup=False, highlight=False)
        return INTERRUPTED_EXIT_CODE

    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
