"""
Matrix Authentication Handler

Decides between restoring a stored session and logging in with a password,
then takes the initial state snapshot every command relies on.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from nio import AsyncClient, AsyncClientConfig, LoginResponse, SyncResponse, WhoamiResponse

from ..config import DEVICE_NAME, CliSettings
from ..exceptions import (
    ConfigurationError,
    InvalidSession,
    LoginFailed,
    MissingCredentials,
    RemoteError,
)
from .handle import ClientHandle
from .session import Session, SessionStore
from .sync import is_auth_failure

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str, Optional[str], Optional[Path]], AsyncClient]

# Ask for left rooms too so `user left-rooms` has something to show
SNAPSHOT_FILTER = {"room": {"include_leave": True}}


def create_client(
    homeserver: str,
    user: str,
    device_id: Optional[str] = None,
    store_path: Optional[Path] = None,
) -> AsyncClient:
    """Create an unauthenticated nio client with encryption disabled."""
    config = AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False)
    if store_path is not None:
        store_path.mkdir(parents=True, exist_ok=True)
    return AsyncClient(
        homeserver,
        user,
        device_id=device_id,
        store_path=str(store_path) if store_path is not None else "",
        config=config,
    )


class Authenticator:
    """Produces an authenticated ClientHandle by restore or by fresh login."""

    def __init__(
        self,
        settings: CliSettings,
        session_store: Optional[SessionStore] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.settings = settings
        self.session_store = session_store or SessionStore(settings.session_file)
        self.client_factory = client_factory or create_client

    async def authenticate(self) -> ClientHandle:
        """
        Restore or log in, then fetch the initial snapshot.

        The snapshot completes before this returns, so commands that list rooms
        see at least the state as of login.

        Raises:
            MissingCredentials: fresh login needed but username/password absent
            ConfigurationError: fresh login needed but no homeserver URL given
            CorruptSession: the session file exists but cannot be parsed
            InvalidSession: the homeserver rejects the stored credential
            LoginFailed: the homeserver refuses the password login
            RemoteError: any other failed call
        """
        session = self.session_store.load()
        if session is not None:
            client = self._build_client(session.homeserver, session.user_id, session.device_id)
            try:
                await self._restore(client, session)
                return await self._snapshot(client, session)
            except BaseException:
                await client.close()
                raise

        username, password, homeserver = self._fresh_login_credentials()
        client = self._build_client(homeserver, username, None)
        try:
            session = await self._login(client, homeserver, password)
            self.session_store.save(session)
            return await self._snapshot(client, session)
        except BaseException:
            await client.close()
            raise

    def _fresh_login_credentials(self):
        missing = [
            name for name, value in (("username", self.settings.username), ("password", self.settings.password))
            if not value
        ]
        if missing:
            raise MissingCredentials(missing)
        if not self.settings.homeserver_url:
            raise ConfigurationError("A homeserver URL is required to log in (--homeserver-url)")
        return self.settings.username, self.settings.password, self.settings.homeserver_url

    def _build_client(self, homeserver: str, user: str, device_id: Optional[str]) -> AsyncClient:
        return self.client_factory(homeserver, user, device_id, self.settings.store_path)

    async def _restore(self, client: AsyncClient, session: Session) -> None:
        configured = self.settings.homeserver_url
        if configured and configured != session.homeserver:
            logger.warning(
                f"Authenticator: Session is for {session.homeserver}, ignoring configured homeserver {configured}"
            )

        logger.info(f"Authenticator: Restoring session for {session.user_id} on device {session.device_id}")
        client.restore_login(session.user_id, session.device_id, session.access_token)

        response = await client.whoami()
        if isinstance(response, WhoamiResponse):
            if response.user_id != session.user_id:
                raise InvalidSession(
                    f"token belongs to {response.user_id}, session file says {session.user_id}"
                )
            logger.debug("Authenticator: Stored token verified")
            return

        message = getattr(response, "message", str(response))
        status_code = getattr(response, "status_code", None)
        if is_auth_failure(response):
            raise InvalidSession(message, status_code)
        raise RemoteError("whoami", message, status_code)

    async def _login(self, client: AsyncClient, homeserver: str, password: str) -> Session:
        logger.info(f"Authenticator: Logging in as {self.settings.username} on {homeserver}")
        response = await client.login(password, device_name=DEVICE_NAME)

        if not isinstance(response, LoginResponse):
            raise LoginFailed(getattr(response, "message", str(response)), getattr(response, "status_code", None))

        logger.info(f"Authenticator: Logged in as {response.user_id} (device {response.device_id})")
        return Session(
            user_id=response.user_id,
            device_id=response.device_id,
            access_token=response.access_token,
            homeserver=homeserver,
        )

    async def _snapshot(self, client: AsyncClient, session: Session) -> ClientHandle:
        logger.debug("Authenticator: Fetching initial state snapshot")
        response = await client.sync(timeout=0, sync_filter=SNAPSHOT_FILTER, full_state=True)

        if not isinstance(response, SyncResponse):
            message = getattr(response, "message", str(response))
            status_code = getattr(response, "status_code", None)
            if is_auth_failure(response):
                raise InvalidSession(message, status_code)
            raise RemoteError("sync", message, status_code)

        logger.info(f"Authenticator: Initial snapshot complete (next batch {response.next_batch})")
        return ClientHandle.from_snapshot(client, session, response)
