"""
Command Results

Structured success values returned by command handlers. Rendering them is the
console layer's job (see matrix_cli.utils.output).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class RoomSummary:
    """One row of a room listing."""
    room_id: str
    alias: str = ""
    name: str = ""


@dataclass(frozen=True)
class RoomListing:
    kind: str
    rooms: List[RoomSummary] = field(default_factory=list)


@dataclass(frozen=True)
class TextResult:
    text: str


@dataclass(frozen=True)
class SentMessage:
    room_id: str
    event_id: str


@dataclass(frozen=True)
class RoomCreated:
    room_id: str
    alias: str = ""


@dataclass(frozen=True)
class Completed:
    """A side effect that succeeded and has nothing else to report."""
    message: str


@dataclass(frozen=True)
class DryRunRequest:
    """The request a mutating command would have sent."""
    operation: str
    params: Dict[str, Any] = field(default_factory=dict)
