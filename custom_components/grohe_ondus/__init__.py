from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import HomeAssistant

from . import api
from .appliance import OndusApplianceClient, OndusCloudClient, async_discover_appliances
from .const import CONF_REFRESH_INTERVAL, CONF_REFRESH_TOKEN, DOMAIN
from .coordinator import OndusApplianceCoordinator
from .models import Credentials
from .notifications import validate_catalog
from .session import OndusSessionManager

_LOGGER = logging.getLogger(__name__)


def credentials_from_entry(entry: ConfigEntry) -> Credentials:
    return Credentials(
        username=entry.data.get(CONF_USERNAME),
        password=entry.data.get(CONF_PASSWORD),
        refresh_token=entry.data.get(CONF_REFRESH_TOKEN),
    )


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Grohe Ondus integration for entry %s", entry.entry_id)

    try:
        validate_catalog()
    except ValueError:
        _LOGGER.exception("Notification catalog is invalid")
        return False

    session = api.create_session_client(hass)
    try:
        session_manager = OndusSessionManager(session, credentials_from_entry(entry))
    except api.OndusCredentialsMissingError as err:
        _LOGGER.error("Missing credentials for entry %s: %s", entry.entry_id, err)
        return False

    transport = api.OndusApiTransport(session, lambda: session_manager.access_token)
    cloud = OndusCloudClient(transport, session_manager)

    try:
        await session_manager.async_ensure_logged_in()
        appliances = await async_discover_appliances(cloud)
        _LOGGER.info("Successfully retrieved %d appliances", len(appliances))
    except api.OndusLoginError as err:
        _LOGGER.warning(
            "Authentication failed for entry %s: %s", entry.entry_id, str(err)
        )
        return False
    except api.OndusNetworkError as err:
        _LOGGER.error("Connection error for entry %s: %s", entry.entry_id, str(err))
        return False
    except api.OndusApiClientError as err:
        _LOGGER.error("API client error for entry %s: %s", entry.entry_id, str(err))
        return False

    refresh_interval = entry.options.get(
        CONF_REFRESH_INTERVAL, entry.data.get(CONF_REFRESH_INTERVAL)
    )
    coordinators: dict[str, OndusApplianceCoordinator] = {}
    for appliance in appliances:
        coordinator = OndusApplianceCoordinator(
            hass,
            session_manager,
            OndusApplianceClient(cloud, appliance.identity),
            appliance,
            refresh_interval,
            config_entry=entry,
        )
        await coordinator.async_refresh()
        coordinator.async_start()
        coordinators[appliance.identity.appliance_id] = coordinator
        _LOGGER.debug(
            "Polling %s %s every %s",
            appliance.model,
            appliance.name,
            coordinator.update_interval,
        )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "session": session,
        "session_manager": session_manager,
        "appliances": appliances,
        "coordinators": coordinators,
    }
    _LOGGER.info(
        "Successfully setup Grohe Ondus integration for entry %s", entry.entry_id
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Grohe Ondus integration for entry %s", entry.entry_id)

    entry_data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if entry_data is None:
        return True

    for coordinator in entry_data["coordinators"].values():
        await coordinator.async_stop()
    _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True
