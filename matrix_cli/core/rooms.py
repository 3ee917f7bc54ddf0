"""
Matrix Room Resolution

Turns the room references users type (a room ID or a server-qualified alias)
into canonical room IDs. Every room-targeted command goes through here.
"""

import logging
import re
from enum import Enum

from nio import AsyncClient, ErrorResponse, RoomResolveAliasResponse

from ..exceptions import AliasNotFound, InvalidArgument, MalformedReference, RemoteError

logger = logging.getLogger(__name__)

# sigil, non-empty local part without ':', then a server name (which may carry a port)
_ROOM_ID_RE = re.compile(r"^!([^:\s]+):(\S+)$")
_ALIAS_RE = re.compile(r"^#([^:\s]+):(\S+)$")
_USER_ID_RE = re.compile(r"^@([^:\s]+):(\S+)$")


class ReferenceForm(Enum):
    """Structural classification of a room reference."""
    ROOM_ID = "room_id"
    ALIAS = "alias"
    MALFORMED = "malformed"


def classify_reference(token: str) -> ReferenceForm:
    if _ROOM_ID_RE.match(token):
        return ReferenceForm.ROOM_ID
    if _ALIAS_RE.match(token):
        return ReferenceForm.ALIAS
    return ReferenceForm.MALFORMED


def is_alias(token: str) -> bool:
    return classify_reference(token) is ReferenceForm.ALIAS


def server_name(identifier: str) -> str:
    """Return the server part of a room ID, alias or user ID."""
    return identifier.split(":", 1)[1] if ":" in identifier else ""


def validate_user_id(user_id: str) -> str:
    if not _USER_ID_RE.match(user_id):
        raise InvalidArgument("user ID", user_id, "expected the form @user:server")
    return user_id


def validate_alias(alias: str) -> str:
    if not is_alias(alias):
        raise InvalidArgument("alias", alias, "expected the form #name:server")
    return alias


def _malformed_reason(token: str) -> str:
    if not token:
        return "empty room reference"
    if token[0] in "!#" and ":" not in token:
        return "missing the ':server' part"
    return "expected a room ID (!id:server) or an alias (#name:server)"


class RoomResolver:
    """Resolves room references against a homeserver."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def resolve(self, token: str) -> str:
        """
        Resolve a room reference to a canonical room ID.

        Room IDs are returned unchanged without contacting the server. Aliases
        are looked up exactly as given, including their server name.

        Raises:
            MalformedReference: if the token is neither a room ID nor a full alias
            AliasNotFound: if the server has no room for the alias
            RemoteError: if the lookup itself fails
        """
        form = classify_reference(token)

        if form is ReferenceForm.ROOM_ID:
            return token

        if form is ReferenceForm.MALFORMED:
            raise MalformedReference(token, _malformed_reason(token))

        logger.debug(f"RoomResolver: Looking up alias {token}")
        response = await self.client.room_resolve_alias(token)

        if isinstance(response, RoomResolveAliasResponse):
            logger.info(f"RoomResolver: Resolved {token} to {response.room_id}")
            return response.room_id

        if isinstance(response, ErrorResponse) and response.status_code == "M_NOT_FOUND":
            raise AliasNotFound(token)

        message = getattr(response, "message", str(response))
        raise RemoteError("room_resolve_alias", message, getattr(response, "status_code", None))
