"""
Configuration flow for Grohe Ondus integration.

This module handles the setup of the Grohe Ondus integration through
Home Assistant's config flow system. Either a username and password or a
refresh token copied from the Ondus app is required.
"""

import logging
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.helpers.httpx_client import get_async_client

from . import api
from .const import (
    CONF_REFRESH_INTERVAL,
    CONF_REFRESH_TOKEN,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_CREDENTIALS_MISSING,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
)
from .models import Credentials
from .session import OndusSessionManager

_LOGGER = logging.getLogger(__name__)

TOKEN_ONLY_UNIQUE_ID = "refresh_token"

DATA_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_USERNAME): str,
        vol.Optional(CONF_PASSWORD): str,
        vol.Optional(CONF_REFRESH_TOKEN): str,
        vol.Optional(CONF_REFRESH_INTERVAL, default=DEFAULT_REFRESH_INTERVAL): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
    }
)


class GroheOndusConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Grohe Ondus integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input with credentials and refresh interval.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            credentials = Credentials(
                username=user_input.get(CONF_USERNAME),
                password=user_input.get(CONF_PASSWORD),
                refresh_token=user_input.get(CONF_REFRESH_TOKEN),
            )

            try:
                session_manager = OndusSessionManager(
                    get_async_client(self.hass), credentials
                )
                await session_manager.async_ensure_logged_in()
                _LOGGER.info("Successfully authenticated with Ondus cloud")

            except api.OndusCredentialsMissingError:
                _LOGGER.warning("No credentials given (%s)", ERROR_CREDENTIALS_MISSING)
                errors["base"] = ERROR_CREDENTIALS_MISSING
            except api.OndusLoginError as err:
                _LOGGER.warning(
                    "Authentication failed (%s): %s", ERROR_INVALID_AUTH, err
                )
                errors["base"] = ERROR_INVALID_AUTH
            except api.OndusTimeoutError:
                _LOGGER.exception("Timeout error (%s)", ERROR_TIMEOUT)
                errors["base"] = ERROR_TIMEOUT
            except api.OndusNetworkError:
                _LOGGER.exception("Connection error (%s)", ERROR_CANNOT_CONNECT)
                errors["base"] = ERROR_CANNOT_CONNECT
            except api.OndusApiClientError:
                _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
                errors["base"] = ERROR_API_ERROR
            except Exception:
                _LOGGER.exception(
                    "Unexpected error during authentication (%s)",
                    ERROR_UNKNOWN,
                )
                errors["base"] = ERROR_UNKNOWN

            else:
                username = credentials.username
                await self.async_set_unique_id(
                    username.lower() if username else TOKEN_ONLY_UNIQUE_ID
                )
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Grohe Ondus ({username or 'refresh token'})",
                    data={
                        key: value
                        for key, value in user_input.items()
                        if value not in (None, "")
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=DATA_SCHEMA,
            errors=errors,
        )
