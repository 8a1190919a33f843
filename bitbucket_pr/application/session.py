from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from bitbucket_pr.config import Settings
from bitbucket_pr.domain.entities import ConnectionState, Credentials
from bitbucket_pr.domain.events import ConnectionChangedEvent
from bitbucket_pr.domain.exceptions import InvalidCredentialsError, NotAuthenticatedError
from bitbucket_pr.domain.interfaces import ICredentialSession, IEventChannel
from bitbucket_pr.infrastructure.bitbucket_client import BitbucketClient, create_bitbucket_client

log = logging.getLogger(__name__)

ClientFactory = Callable[[Credentials, httpx.AsyncClient, Settings], Awaitable[BitbucketClient]]


class CredentialSession(ICredentialSession):
    """
    Owns the authenticated client handle and the connection state.

    Only login() and logout() replace or clear the handle; the service
    borrows it per call through `client`. The password is handed to the
    factory and not kept anywhere else.
    """

    def __init__(
        self,
        events: IEventChannel,
        http: httpx.AsyncClient,
        settings: Settings | None = None,
        client_factory: ClientFactory = create_bitbucket_client,
    ) -> None:
        self._events = events
        self._http = http
        self._settings = settings or Settings()
        self._client_factory = client_factory
        self._client: BitbucketClient | None = None
        self._state = ConnectionState.NOT_LOGGED
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def client(self) -> BitbucketClient:
        if self._client is None:
            raise NotAuthenticatedError()
        return self._client

    @property
    def git_client_type(self) -> str | None:
        return self._client.variant.value if self._client else None

    async def login(self, credentials: Credentials) -> ConnectionState:
        """
        Authenticate and publish ConnectionChangedEvent.

        Returns the existing state when already connected. Concurrent calls
        are serialized; the later one finds the session connected.
        """
        async with self._lock:
            if self.is_connected:
                return self._state

            if not credentials.login or not credentials.password:
                raise InvalidCredentialsError("Credentials fields cannot be empty")

            client = await self._client_factory(credentials, self._http, self._settings)

            self._client = client
            self._state = ConnectionState(
                is_logged_in  = True,
                username      = client.username or credentials.login,
                host          = credentials.host,
                is_enterprise = credentials.is_enterprise,
            )
            log.info("Logged in as %s (%s)", self._state.username, client.variant.value)
            self._events.publish(ConnectionChangedEvent(self._state))
            return self._state

    def logout(self) -> None:
        self._client = None
        self._state = ConnectionState.NOT_LOGGED
        log.info("Logged out")
        self._events.publish(ConnectionChangedEvent(self._state))
