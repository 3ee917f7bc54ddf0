"""
Custom Exception Classes

This module defines the typed failures a matrix-cli run can end with. Every
error carries the process exit code it maps to, so the entry point can report
"configuration/usage error" differently from "remote operation failed".
"""

from pathlib import Path
from typing import Optional, Union


class MatrixCliError(Exception):
    """Base exception for the matrix-cli application."""

    exit_code = 1


class ConfigurationError(MatrixCliError):
    """Raised for configuration and usage problems. No network call is attempted."""

    exit_code = 2


class MissingCredentials(ConfigurationError):
    """Raised when a fresh login is needed but username or password is absent."""

    def __init__(self, missing: list):
        self.missing = missing
        super().__init__(
            f"Missing {' and '.join(missing)}: required to log in when no session file exists"
        )


class InvalidArgument(ConfigurationError):
    """Raised when a command parameter is malformed."""

    def __init__(self, name: str, value: str, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid {name} '{value}': {reason}")


class SessionError(MatrixCliError):
    """Raised for problems with the persisted session."""

    exit_code = 3


class CorruptSession(SessionError):
    """Raised when a session file exists but cannot be parsed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Session file {path} is corrupt: {reason}")


class InvalidSession(SessionError):
    """Raised when the homeserver rejects a stored or in-use access token."""

    def __init__(self, reason: str, status_code: Optional[str] = None):
        self.status_code = status_code
        detail = f" ({status_code})" if status_code else ""
        super().__init__(f"Session rejected by homeserver{detail}: {reason}")


class ResolutionError(MatrixCliError):
    """Raised when a room reference cannot be turned into a room ID."""

    exit_code = 4

    def __init__(self, token: str, reason: str):
        self.token = token
        super().__init__(f"Cannot resolve room '{token}': {reason}")


class MalformedReference(ResolutionError):
    """Raised when a room reference is neither a room ID nor a full alias."""


class RoomNotFound(ResolutionError):
    """Raised when a room reference does not point at an existing room."""


class AliasNotFound(RoomNotFound):
    """Raised when the homeserver has no mapping for an alias."""

    def __init__(self, token: str):
        super().__init__(token, "alias is not mapped to any room")


class MembershipError(MatrixCliError):
    """Raised when the acting user's membership does not allow an operation."""

    exit_code = 5

    def __init__(self, room_id: str, reason: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id}: {reason}")


class NotMember(MembershipError):
    """Raised when a membership-scoped operation targets a room the user has not joined."""

    def __init__(self, room_id: str):
        super().__init__(room_id, "you have not joined this room")


class AlreadyJoined(MembershipError):
    """Raised when joining a room the user is already in."""

    def __init__(self, room_id: str):
        super().__init__(room_id, "you have already joined this room")


class AlreadyLeft(MembershipError):
    """Raised when leaving a room the user has already left."""

    def __init__(self, room_id: str):
        super().__init__(room_id, "you have already left this room")


class RemoteError(MatrixCliError):
    """Raised when a homeserver call fails."""

    exit_code = 1

    def __init__(self, operation: str, message: str, status_code: Optional[str] = None):
        self.operation = operation
        self.status_code = status_code
        detail = f" [{status_code}]" if status_code else ""
        super().__init__(f"{operation} failed{detail}: {message}")


class LoginFailed(RemoteError):
    """Raised when the homeserver refuses a password login."""

    def __init__(self, message: str, status_code: Optional[str] = None):
        super().__init__("login", message, status_code)


class FileAccessError(MatrixCliError):
    """Raised when a local file (session file, avatar) cannot be read or written."""

    exit_code = 6

    def __init__(self, path: Union[str, Path], original_error: OSError):
        self.path = Path(path)
        self.original_error = original_error
        super().__init__(f"Cannot access {path}: {original_error.strerror or original_error}")
