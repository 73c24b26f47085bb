"""API client for the Grohe Ondus cloud.

This module provides the exception taxonomy, the HTTP helpers used by the
login protocol, and the authenticated transport used by appliance clients.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from homeassistant.helpers.httpx_client import create_async_httpx_client

from .const import HTTP_TIMEOUT, LOGIN_URL, REFRESH_URL, TOKEN_URL_SCHEME, USER_AGENT
from .models import Token

if TYPE_CHECKING:
    from collections.abc import Callable

    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_MULTIPLE_CHOICES = 300
HTTP_UNAUTHORIZED = 401


class OndusApiClientError(Exception):
    """Base exception for Ondus API client errors."""


class OndusCredentialsMissingError(OndusApiClientError):
    """Exception raised when neither a password nor a refresh token is set."""


class OndusApiAuthError(OndusApiClientError):
    """Exception raised when a call is attempted without a valid token."""


class OndusLoginError(OndusApiClientError):
    """Base exception for failures of the login protocol."""


class OndusScrapeError(OndusLoginError):
    """Exception raised when the login page lacks a cookie or form target."""


class OndusRedirectError(OndusLoginError):
    """Exception raised when the credential form does not redirect."""


class OndusTokenExchangeError(OndusLoginError):
    """Exception raised when the token URL does not return usable tokens."""


class OndusRefreshError(OndusLoginError):
    """Exception raised when the refresh endpoint rejects the refresh token."""


class OndusNetworkError(OndusApiClientError):
    """Exception raised for transport failures such as timeouts."""


class OndusTimeoutError(OndusNetworkError):
    """Exception raised when a request times out."""


class OndusApiStatusError(OndusApiClientError):
    """Exception raised for non-2xx HTTP responses."""

    def __init__(self, status: int, message: str | None = None) -> None:
        """Initialize the error with the HTTP status code."""
        super().__init__(message or f"Request failed: {status}")
        self.status = status


class OndusDataFormatError(OndusApiClientError):
    """Exception raised for payloads of an unexpected shape."""


def create_headers(access_token: str | None = None) -> dict[str, str]:
    """Create HTTP headers for Ondus API requests.

    Args:
        access_token: Optional bearer token to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "content-type": "application/json",
        "accept": "application/json",
        "user-agent": USER_AGENT,
    }
    if access_token:
        headers["authorization"] = f"Bearer {access_token}"
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code is outside the 2xx range.

    Args:
        status: HTTP status code to check.

    Returns:
        True if status code is not a success code, False otherwise.

    """
    return not HTTP_OK <= status < HTTP_MULTIPLE_CHOICES


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates a rejected access token.

    Args:
        status: HTTP status code to check.

    Returns:
        True if status code is 401, False otherwise.

    """
    return status == HTTP_UNAUTHORIZED


def validate_response(response: httpx.Response) -> Any:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response, or None for an empty body.

    Raises:
        OndusApiStatusError: If the HTTP status is not a success code.
        OndusDataFormatError: If the body is not valid JSON.

    """
    if is_http_error(response.status_code):
        raise OndusApiStatusError(response.status_code)

    if not response.content:
        return None

    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        error_msg = f"Malformed JSON in response from {response.url}: {err}"
        raise OndusDataFormatError(error_msg) from err


def extract_session_cookie(response: httpx.Response) -> str | None:
    """Build a Cookie header value from the Set-Cookie headers of a response."""
    cookies = [
        header.split(";", 1)[0].strip()
        for header in response.headers.get_list("set-cookie")
    ]
    cookies = [cookie for cookie in cookies if cookie]
    if not cookies:
        return None
    return "; ".join(cookies)


def extract_action_url(html: str, base_url: str = LOGIN_URL) -> str | None:
    """Return the absolute target of the first form in a login page."""
    soup = BeautifulSoup(html, "html.parser")
    form = soup.find("form")
    if form is None:
        return None
    action = form.get("action")
    if not action:
        return None
    return urljoin(base_url, str(action))


def rewrite_token_url(location: str) -> str:
    """Rewrite the custom scheme redirect target to a standard HTTPS URL."""
    if location.startswith(TOKEN_URL_SCHEME):
        return "https://" + location[len(TOKEN_URL_SCHEME) :]
    return location


def _expire_at(seconds: Any, now: datetime) -> datetime | None:
    if seconds is None:
        return None
    try:
        return now + timedelta(seconds=float(seconds))
    except (TypeError, ValueError):
        return None


def extract_tokens(data: Any, now: datetime | None = None) -> tuple[Token, Token]:
    """Extract access and refresh tokens from a token exchange response.

    Args:
        data: Parsed JSON body of the token URL.
        now: Reference time for the relative expiry fields.

    Returns:
        Tuple of (access_token, refresh_token) as Token objects.

    Raises:
        OndusTokenExchangeError: If a token or expiry field is missing.

    """
    required = ("access_token", "refresh_token", "expires_in", "refresh_expires_in")
    if not isinstance(data, dict) or any(data.get(key) is None for key in required):
        error_msg = "Token response is missing access or refresh token fields"
        raise OndusTokenExchangeError(error_msg)

    now = now or datetime.now(UTC)
    return (
        Token(data["access_token"], _expire_at(data["expires_in"], now)),
        Token(data["refresh_token"], _expire_at(data["refresh_expires_in"], now)),
    )


def extract_refreshed_token(data: Any, now: datetime | None = None) -> Token:
    """Extract the new access token from a refresh response.

    Raises:
        OndusRefreshError: If the response holds no access token.

    """
    if not isinstance(data, dict) or not data.get("access_token"):
        error_msg = "Unable to refresh access token: no access_token in response"
        raise OndusRefreshError(error_msg)

    now = now or datetime.now(UTC)
    return Token(data["access_token"], _expire_at(data.get("expires_in"), now))


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client for the Ondus API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with connect/read timeout.

    """
    return create_async_httpx_client(hass, timeout=HTTP_TIMEOUT)


async def _async_request(
    session: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Issue a request and translate transport failures into OndusNetworkError."""
    try:
        return await session.request(method, url, **kwargs)
    except httpx.TimeoutException as err:
        error_msg = f"Timeout while requesting {url}: {err}"
        raise OndusTimeoutError(error_msg) from err
    except httpx.RequestError as err:
        error_msg = f"Connection error while requesting {url}: {err}"
        raise OndusNetworkError(error_msg) from err


async def async_fetch_login_form(session: httpx.AsyncClient) -> tuple[str, str]:
    """Fetch the login page and scrape its session cookie and form target.

    Args:
        session: HTTP client session.

    Returns:
        Tuple of (cookie header value, action URL).

    Raises:
        OndusScrapeError: If no cookie or no form target is present.
        OndusNetworkError: If the login page cannot be reached.

    """
    _LOGGER.debug("Fetching login page for action URL")
    response = await _async_request(
        session, "GET", LOGIN_URL, headers={"user-agent": USER_AGENT}
    )

    cookie = extract_session_cookie(response)
    if cookie is None:
        error_msg = "Unable to retrieve session cookies from login page"
        raise OndusScrapeError(error_msg)

    action_url = extract_action_url(response.text)
    if action_url is None:
        error_msg = "Unable to find action URL for posting login credentials"
        raise OndusScrapeError(error_msg)

    _LOGGER.debug("Found action URL for posting login credentials: %s", action_url)
    return cookie, action_url


async def async_submit_credentials(
    session: httpx.AsyncClient,
    action_url: str,
    cookie: str,
    username: str,
    password: str,
) -> str:
    """Post credentials to the login form and return the token URL.

    The form answers with a redirect to an ``ondus://`` address which must
    not be followed; it is rewritten to HTTPS instead.

    Raises:
        OndusRedirectError: If the response carries no redirect location.
        OndusNetworkError: If the form cannot be reached.

    """
    headers = {
        "cookie": cookie,
        "content-type": "application/x-www-form-urlencoded",
        "x-requested-with": "XMLHttpRequest",
        "referer": action_url,
        "origin": LOGIN_URL,
        "user-agent": USER_AGENT,
    }
    _LOGGER.debug("Authenticating against action URL %s", action_url)
    response = await _async_request(
        session,
        "POST",
        action_url,
        headers=headers,
        data={"username": username, "password": password},
        follow_redirects=False,
    )

    location = response.headers.get("location")
    if not location:
        error_msg = (
            f"No token URL redirect in login response "
            f"(HTTP {response.status_code}); check username and password"
        )
        raise OndusRedirectError(error_msg)

    _LOGGER.debug("Token URL redirect received: HTTP %s", response.status_code)
    return rewrite_token_url(location)


async def async_exchange_token(
    session: httpx.AsyncClient,
    token_url: str,
    cookie: str,
) -> tuple[Token, Token]:
    """Fetch access and refresh tokens from the token URL.

    Raises:
        OndusTokenExchangeError: If the response is not a valid token document.
        OndusNetworkError: If the token URL cannot be reached.

    """
    _LOGGER.debug("Fetching refresh token from token URL")
    response = await _async_request(
        session,
        "GET",
        token_url,
        headers={"cookie": cookie, "user-agent": USER_AGENT},
    )
    try:
        data = validate_response(response)
    except (OndusApiStatusError, OndusDataFormatError) as err:
        error_msg = f"Token exchange failed: {err}"
        raise OndusTokenExchangeError(error_msg) from err
    return extract_tokens(data)


async def async_refresh_access_token(
    session: httpx.AsyncClient,
    refresh_token: str,
) -> Token:
    """Exchange a refresh token for a new access token.

    Args:
        session: HTTP client session.
        refresh_token: Refresh token held by the session.

    Returns:
        New access token.

    Raises:
        OndusRefreshError: If the refresh token is rejected.
        OndusNetworkError: If the refresh endpoint cannot be reached.

    """
    _LOGGER.debug("Using refresh token to retrieve access token")
    response = await _async_request(
        session,
        "POST",
        REFRESH_URL,
        headers=create_headers(),
        json={"refresh_token": refresh_token},
    )
    try:
        data = validate_response(response)
    except (OndusApiStatusError, OndusDataFormatError) as err:
        error_msg = f"Unable to refresh access token: {err}"
        raise OndusRefreshError(error_msg) from err
    token = extract_refreshed_token(data)
    _LOGGER.debug("Access token successfully refreshed")
    return token


class OndusApiTransport:
    """Authenticated JSON transport over an httpx client.

    The transport owns no token state; it reads the current access token
    from ``get_access_token`` on every request.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        get_access_token: Callable[[], str | None],
    ) -> None:
        """Initialize the transport."""
        self._session = session
        self._get_access_token = get_access_token

    def _auth_headers(self) -> dict[str, str]:
        access_token = self._get_access_token()
        if not access_token:
            error_msg = "Cannot call the Ondus API before an access token is acquired"
            raise OndusApiAuthError(error_msg)
        return create_headers(access_token)

    async def async_get(self, url: str, params: dict[str, str] | None = None) -> Any:
        """Perform an authenticated GET and return the parsed JSON body.

        Raises:
            OndusApiAuthError: If no access token is set; no request is sent.
            OndusApiStatusError: For any non-2xx HTTP result.
            OndusNetworkError: For transport failures.
            OndusDataFormatError: For malformed JSON.

        """
        headers = self._auth_headers()
        _LOGGER.debug("Fetching %s", url)
        response = await _async_request(
            self._session, "GET", url, headers=headers, params=params
        )
        return validate_response(response)

    async def async_post(self, url: str, payload: Any) -> Any:
        """Perform an authenticated JSON POST and return the parsed body."""
        headers = self._auth_headers()
        _LOGGER.debug("Posting to %s", url)
        response = await _async_request(
            self._session, "POST", url, headers=headers, json=payload
        )
        return validate_response(response)
