"""
Matrix Session Store

Persists the credential bundle produced by a password login so later runs can
restore the client without re-authenticating.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..exceptions import CorruptSession, FileAccessError

logger = logging.getLogger(__name__)


class Session(BaseModel):
    """Proof of authentication for one device of one user on one homeserver."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    user_id: str
    device_id: str
    access_token: str
    homeserver: str

    @field_validator("user_id", "device_id", "access_token", "homeserver")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class SessionStore:
    """Reads and writes a Session as JSON at a fixed path."""

    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path is not None else None

    @property
    def configured(self) -> bool:
        return self.path is not None

    def exists(self) -> bool:
        return self.path is not None and self.path.exists()

    def load(self) -> Optional[Session]:
        """
        Load the stored session.

        Returns:
            The session, or None when no path is configured or no file exists.

        Raises:
            CorruptSession: if the file exists but cannot be read or does not
                hold a valid session
        """
        if not self.exists():
            logger.debug(f"SessionStore: No session file at {self.path}")
            return None

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise CorruptSession(self.path, f"unreadable ({e.strerror or e})") from e

        try:
            session = Session.model_validate(json.loads(raw))
        except json.JSONDecodeError as e:
            raise CorruptSession(self.path, f"not valid JSON ({e.msg})") from e
        except ValidationError as e:
            fields = ", ".join(str(error["loc"][0]) for error in e.errors() if error["loc"])
            raise CorruptSession(self.path, f"missing or invalid fields: {fields or 'session'}") from e

        logger.info(f"SessionStore: Loaded session for {session.user_id} from {self.path}")
        return session

    def save(self, session: Session) -> None:
        """
        Write the session to disk, readable by the owner only.

        Does nothing when no path is configured.

        Raises:
            FileAccessError: if the file cannot be written
        """
        if self.path is None:
            logger.debug("SessionStore: No session file configured, not persisting session")
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(session.model_dump_json(indent=2), encoding="utf-8")
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise FileAccessError(self.path, e) from e

        logger.info(f"SessionStore: Saved session for {session.user_id} to {self.path}")
