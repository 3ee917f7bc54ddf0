"""
Matrix Client Handle

The authenticated client together with what the initial snapshot taught us
about the account's rooms. One handle exists per run; it is passed explicitly
to the sync loop and the command dispatcher.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from nio import AsyncClient, RoomAliasEvent, RoomNameEvent

from ..results import RoomSummary
from .session import Session

logger = logging.getLogger(__name__)


def summarize_room(room_id: str, room: Any) -> RoomSummary:
    """Build a listing row from a nio MatrixRoom or MatrixInvitedRoom."""
    return RoomSummary(
        room_id=room_id,
        alias=getattr(room, "canonical_alias", None) or "",
        name=getattr(room, "name", None) or "",
    )


def summarize_left_room(room_id: str, info: Any) -> RoomSummary:
    """Build a listing row from the state carried by a sync 'leave' entry."""
    alias = ""
    name = ""
    events: List[Any] = list(getattr(info, "state", None) or [])
    timeline = getattr(info, "timeline", None)
    if timeline is not None:
        events.extend(getattr(timeline, "events", None) or [])

    # later events win, matching how room state is applied
    for event in events:
        if isinstance(event, RoomNameEvent):
            name = event.name or ""
        elif isinstance(event, RoomAliasEvent):
            alias = event.canonical_alias or ""

    return RoomSummary(room_id=room_id, alias=alias, name=name)


@dataclass
class ClientHandle:
    """Live, authenticated connection used by every command of one run."""

    client: AsyncClient
    session: Session
    since: Optional[str] = None
    left_rooms: Dict[str, RoomSummary] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.session.user_id

    def is_joined(self, room_id: str) -> bool:
        return room_id in (self.client.rooms or {}) and room_id not in self.left_rooms

    def has_left(self, room_id: str) -> bool:
        return room_id in self.left_rooms and room_id not in self.invited_room_ids()

    def invited_room_ids(self) -> Iterable[str]:
        return (self.client.invited_rooms or {}).keys()

    def joined_rooms(self) -> List[RoomSummary]:
        return [
            summarize_room(room_id, room)
            for room_id, room in (self.client.rooms or {}).items()
            if room_id not in self.left_rooms
        ]

    def invited_rooms(self) -> List[RoomSummary]:
        return [
            summarize_room(room_id, room)
            for room_id, room in (self.client.invited_rooms or {}).items()
        ]

    def left_room_list(self) -> List[RoomSummary]:
        return list(self.left_rooms.values())

    @classmethod
    def from_snapshot(cls, client: AsyncClient, session: Session, snapshot: Any) -> "ClientHandle":
        """Create a handle from the initial full-state sync response."""
        leave = getattr(getattr(snapshot, "rooms", None), "leave", None) or {}
        left_rooms = {room_id: summarize_left_room(room_id, info) for room_id, info in leave.items()}
        logger.debug(
            f"ClientHandle: Snapshot has {len(client.rooms or {})} joined, "
            f"{len(client.invited_rooms or {})} invited and {len(left_rooms)} left rooms"
        )
        return cls(client=client, session=session, since=snapshot.next_batch, left_rooms=left_rooms)
