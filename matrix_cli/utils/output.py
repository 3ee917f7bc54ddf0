"""
Console output for command results and streamed messages.

Nothing here decides what a command does; it only turns the structured values
handlers return into text on stdout.
"""

import json
from datetime import datetime, timezone
from functools import singledispatch
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from ..results import (
    Completed,
    DryRunRequest,
    RoomCreated,
    RoomListing,
    SentMessage,
    TextResult,
)


def format_timestamp(server_timestamp: Optional[int]) -> str:
    """Render a millisecond server timestamp as UTC."""
    if server_timestamp is None:
        return "unknown"
    moment = datetime.fromtimestamp(server_timestamp / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def print_message(console: Console, event: Any) -> None:
    """Print one received text message."""
    console.print(
        f"From: {event.sender}\n"
        f"Date: {format_timestamp(getattr(event, 'server_timestamp', None))}\n"
        f"Message: {event.body}\n",
        markup=False,
        highlight=False,
    )


def _plain(console: Console, text: str) -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True)


@singledispatch
def render(result: Any, console: Console) -> None:
    """Print a command result. None means the command had nothing to report."""
    if result is not None:
        _plain(console, str(result))


@render.register
def _(result: TextResult, console: Console) -> None:
    _plain(console, result.text)


@render.register
def _(result: Completed, console: Console) -> None:
    _plain(console, result.message)


@render.register
def _(result: SentMessage, console: Console) -> None:
    _plain(console, result.event_id)


@render.register
def _(result: RoomCreated, console: Console) -> None:
    _plain(console, result.room_id)
    if result.alias:
        _plain(console, result.alias)


@render.register
def _(result: DryRunRequest, console: Console) -> None:
    _plain(console, f"Dry run: would call {result.operation} with")
    _plain(console, json.dumps(result.params, indent=2, sort_keys=True, default=str))


@render.register
def _(result: RoomListing, console: Console) -> None:
    table = Table(box=box.MARKDOWN)
    table.add_column("id", no_wrap=True)
    table.add_column("alias")
    table.add_column("description")
    for room in result.rooms:
        table.add_row(room.room_id, room.alias, room.name)
    console.print(table)
