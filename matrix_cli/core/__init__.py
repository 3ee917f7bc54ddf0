"""Session, resolution, sync and dispatch machinery behind the CLI."""

from .auth import Authenticator, create_client
from .coordinator import RunCoordinator
from .dispatcher import CommandDispatcher
from .handle import ClientHandle
from .rooms import RoomResolver
from .session import Session, SessionStore
from .sync import Subscription, SyncLoop

__all__ = [
    "Authenticator",
    "ClientHandle",
    "CommandDispatcher",
    "RoomResolver",
    "RunCoordinator",
    "Session",
    "SessionStore",
    "Subscription",
    "SyncLoop",
    "create_client",
]
