"""Session manager for the Grohe Ondus cloud.

The session manager owns the access and refresh tokens of one Ondus account
and drives the login protocol. A single instance is shared by every
appliance of a config entry.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

from . import api
from .const import TOKEN_REFRESH_BUFFER
from .models import Credentials, LoginState, Token

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

_LOGGER = logging.getLogger(__name__)


class OndusSessionManager:
    """Manages login, token refresh and token state for an Ondus account.

    Login and refresh run as one shared in-flight task: a caller arriving
    while an operation is running awaits that operation instead of starting
    another round trip. Token reads never wait.
    """

    def __init__(self, session: httpx.AsyncClient, credentials: Credentials) -> None:
        """Initialize the session manager.

        Args:
            session: HTTP client session.
            credentials: Username and password, or a refresh token.

        Raises:
            OndusCredentialsMissingError: If no usable credentials are given.

        """
        if not credentials.has_password and not credentials.has_refresh_token:
            error_msg = "Either username and password or a refresh token is required"
            raise api.OndusCredentialsMissingError(error_msg)

        self._session = session
        self._credentials = credentials
        self._access_token: Token | None = None
        self._refresh_token: Token | None = None
        if credentials.refresh_token:
            _LOGGER.debug("Using configured refresh token")
            self._refresh_token = Token(credentials.refresh_token, None)
        self._state = LoginState.LOGGED_OUT
        self._pending: asyncio.Task[None] | None = None

    @property
    def session(self) -> httpx.AsyncClient:
        return self._session

    @property
    def state(self) -> LoginState:
        return self._state

    @property
    def logged_in(self) -> bool:
        return self._state is LoginState.LOGGED_IN

    @property
    def access_token(self) -> str | None:
        """Return the current bearer token, if any."""
        if self._access_token is None:
            return None
        return self._access_token.token

    @property
    def access_token_expire_at(self) -> datetime | None:
        if self._access_token is None:
            return None
        return self._access_token.expire_at

    @property
    def refresh_token(self) -> str | None:
        if self._refresh_token is None:
            return None
        return self._refresh_token.token

    @property
    def refresh_token_expire_at(self) -> datetime | None:
        if self._refresh_token is None:
            return None
        return self._refresh_token.expire_at

    def should_refresh_token(self, now: datetime | None = None) -> bool:
        """Check if the access token is expired or about to expire.

        Args:
            now: Reference time, defaults to the current UTC time.

        Returns:
            True if the token expires within the refresh buffer.

        """
        expire_at = self.access_token_expire_at
        if expire_at is None:
            return False
        now = now or datetime.now(UTC)
        return now >= expire_at - TOKEN_REFRESH_BUFFER

    def _refresh_token_expired(self, now: datetime | None = None) -> bool:
        expire_at = self.refresh_token_expire_at
        if expire_at is None:
            return False
        return (now or datetime.now(UTC)) >= expire_at

    async def async_login(self) -> None:
        """Log in with the configured credentials.

        Uses the refresh token when one is held, otherwise the username and
        password form flow.

        Raises:
            OndusLoginError: If a step of the protocol fails.
            OndusNetworkError: If the Ondus cloud cannot be reached.

        """
        await self._async_run_exclusive(self._async_login)

    async def async_refresh(self) -> None:
        """Refresh the access token using the held refresh token.

        The login state is left untouched when the refresh is rejected.

        Raises:
            OndusRefreshError: If no refresh token is held or it is rejected.

        """
        await self._async_run_exclusive(self._async_refresh)

    async def async_ensure_logged_in(self, force_refresh: bool = False) -> None:
        """Make sure a fresh access token is available.

        Logs in when needed, refreshes a token close to expiry, and falls
        back to the username and password flow when a refresh is rejected.

        Args:
            force_refresh: Refresh the access token even if it has not
                reached its refresh window, e.g. after the API rejected it.

        """
        await self._async_run_exclusive(
            partial(self._async_ensure_logged_in, force_refresh)
        )

    async def _async_run_exclusive(
        self, operation: Callable[[], Awaitable[None]]
    ) -> None:
        if self._pending is None or self._pending.done():
            self._pending = asyncio.create_task(operation())
        else:
            _LOGGER.debug("Login already in progress, waiting for its result")
        await asyncio.shield(self._pending)

    async def _async_login(self) -> None:
        self._state = LoginState.LOGGED_OUT
        try:
            if self._refresh_token is not None:
                self._state = LoginState.REFRESHING_ACCESS_TOKEN
                self._access_token = await api.async_refresh_access_token(
                    self._session, self._refresh_token.token
                )
            else:
                await self._async_password_login()
        except Exception as err:
            self._state = LoginState.FAILED
            _LOGGER.error("Login to Ondus cloud failed: %s", err)
            raise

        self._state = LoginState.LOGGED_IN
        _LOGGER.info("Logged in to Ondus cloud")

    async def _async_password_login(self) -> None:
        username = self._credentials.username
        password = self._credentials.password
        if not username or not password:
            error_msg = "Username and password are required to acquire a refresh token"
            raise api.OndusCredentialsMissingError(error_msg)

        _LOGGER.debug("Using username/password to retrieve new refresh token")
        self._state = LoginState.ACQUIRING_ACTION_URL
        cookie, action_url = await api.async_fetch_login_form(self._session)

        self._state = LoginState.ACQUIRING_TOKEN_URL
        token_url = await api.async_submit_credentials(
            self._session, action_url, cookie, username, password
        )

        self._state = LoginState.ACQUIRING_REFRESH_TOKEN
        access_token, refresh_token = await api.async_exchange_token(
            self._session, token_url, cookie
        )
        self._access_token = access_token
        self._refresh_token = refresh_token

    async def _async_refresh(self) -> None:
        if self._refresh_token is None:
            error_msg = "No refresh token held; a full login is required"
            raise api.OndusRefreshError(error_msg)
        self._access_token = await api.async_refresh_access_token(
            self._session, self._refresh_token.token
        )

    async def _async_ensure_logged_in(self, force_refresh: bool = False) -> None:
        if self.logged_in:
            if not force_refresh and not self.should_refresh_token():
                return
            _LOGGER.debug("Access token rejected or about to expire, refreshing")
            try:
                await self._async_refresh()
            except api.OndusRefreshError as err:
                self._state = LoginState.FAILED
                if not self._credentials.has_password:
                    raise
                _LOGGER.warning("Access token refresh rejected, logging in: %s", err)
                self._refresh_token = None
            else:
                return

        if self._refresh_token_expired() and self._credentials.has_password:
            _LOGGER.debug("Refresh token expired, discarding it")
            self._refresh_token = None

        try:
            await self._async_login()
        except api.OndusRefreshError:
            if self._refresh_token is None or not self._credentials.has_password:
                raise
            _LOGGER.warning("Refresh token rejected, logging in with username")
            self._refresh_token = None
            await self._async_login()
