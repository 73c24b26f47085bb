"""Appliance level access to the Ondus cloud."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from .api import OndusApiAuthError, OndusDataFormatError
from .const import BASE_URL
from .models import Appliance, ApplianceIdentity

if TYPE_CHECKING:
    from .api import OndusApiTransport
    from .session import OndusSessionManager

_LOGGER = logging.getLogger(__name__)


def format_query_date(value: date | datetime) -> str:
    """Serialize a date or timestamp as a calendar date (YYYY-MM-DD)."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        value = value.date()
    return value.isoformat()


def appliance_url(identity: ApplianceIdentity, suffix: str = "") -> str:
    return (
        f"{BASE_URL}/locations/{identity.location_id}"
        f"/rooms/{identity.room_id}"
        f"/appliances/{identity.appliance_id}{suffix}"
    )


class OndusCloudClient:
    """Typed entry points for the Ondus REST resources.

    Every call requires a logged in session and fails fast with
    OndusApiAuthError otherwise. Errors are never retried here.
    """

    def __init__(
        self,
        transport: OndusApiTransport,
        session_manager: OndusSessionManager,
    ) -> None:
        self._transport = transport
        self._session_manager = session_manager

    def _require_login(self) -> None:
        if not self._session_manager.logged_in:
            error_msg = (
                f"Session is not logged in (state: {self._session_manager.state})"
            )
            raise OndusApiAuthError(error_msg)

    async def _async_get(self, url: str, params: dict[str, str] | None = None) -> Any:
        self._require_login()
        return await self._transport.async_get(url, params)

    async def async_get_locations(self) -> Any:
        """Retrieve all registered locations of the account."""
        _LOGGER.debug("Retrieving locations")
        return await self._async_get(f"{BASE_URL}/locations")

    async def async_get_rooms(self, location_id: int) -> Any:
        """Retrieve all rooms of a location."""
        _LOGGER.debug("Retrieving rooms for location %s", location_id)
        return await self._async_get(f"{BASE_URL}/locations/{location_id}/rooms")

    async def async_get_appliances(self, location_id: int, room_id: int) -> Any:
        """Retrieve all appliances registered in a room."""
        _LOGGER.debug("Retrieving appliances for room %s", room_id)
        return await self._async_get(
            f"{BASE_URL}/locations/{location_id}/rooms/{room_id}/appliances"
        )

    async def async_get_appliance_info(self, identity: ApplianceIdentity) -> Any:
        return await self._async_get(appliance_url(identity))

    async def async_get_appliance_notifications(
        self, identity: ApplianceIdentity
    ) -> Any:
        """Retrieve notifications still marked as unread in the Ondus app."""
        return await self._async_get(appliance_url(identity, "/notifications"))

    async def async_get_appliance_measurements(
        self,
        identity: ApplianceIdentity,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        """Retrieve measurements, optionally limited to a date range."""
        params: dict[str, str] = {}
        if from_date is not None:
            params["from"] = format_query_date(from_date)
        if to_date is not None:
            params["to"] = format_query_date(to_date)
        return await self._async_get(
            appliance_url(identity, "/data"), params or None
        )

    async def async_get_appliance_status(self, identity: ApplianceIdentity) -> Any:
        """Retrieve battery, WiFi quality and connection status."""
        return await self._async_get(appliance_url(identity, "/status"))

    async def async_get_appliance_command(self, identity: ApplianceIdentity) -> Any:
        """Retrieve the command document, e.g. the valve state."""
        return await self._async_get(appliance_url(identity, "/command"))

    async def async_set_appliance_command(
        self, identity: ApplianceIdentity, payload: dict[str, Any]
    ) -> Any:
        """Send a new command document to an appliance as-is."""
        self._require_login()
        _LOGGER.debug(
            "Sending command to appliance %s: %s", identity.appliance_id, payload
        )
        return await self._transport.async_post(
            appliance_url(identity, "/command"), payload
        )


class OndusApplianceClient:
    """Facade binding an OndusCloudClient to one appliance identity."""

    def __init__(self, cloud: OndusCloudClient, identity: ApplianceIdentity) -> None:
        self._cloud = cloud
        self.identity = identity

    async def async_get_locations(self) -> Any:
        return await self._cloud.async_get_locations()

    async def async_get_rooms(self, location_id: int) -> Any:
        return await self._cloud.async_get_rooms(location_id)

    async def async_get_appliances(self, location_id: int, room_id: int) -> Any:
        return await self._cloud.async_get_appliances(location_id, room_id)

    async def async_get_appliance_info(self) -> Any:
        return await self._cloud.async_get_appliance_info(self.identity)

    async def async_get_appliance_notifications(self) -> Any:
        return await self._cloud.async_get_appliance_notifications(self.identity)

    async def async_get_appliance_measurements(
        self,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        return await self._cloud.async_get_appliance_measurements(
            self.identity, from_date, to_date
        )

    async def async_get_appliance_status(self) -> Any:
        return await self._cloud.async_get_appliance_status(self.identity)

    async def async_get_appliance_command(self) -> Any:
        return await self._cloud.async_get_appliance_command(self.identity)

    async def async_set_appliance_command(self, payload: dict[str, Any]) -> Any:
        return await self._cloud.async_set_appliance_command(self.identity, payload)


async def async_discover_appliances(cloud: OndusCloudClient) -> list[Appliance]:
    """Walk locations, rooms and appliances of the account.

    Raises:
        OndusDataFormatError: If a listing has an unexpected shape.
        OndusApiClientError: If any listing cannot be fetched.

    """
    appliances: list[Appliance] = []
    try:
        for location in await cloud.async_get_locations():
            location_id = int(location["id"])
            for room in await cloud.async_get_rooms(location_id):
                room_id = int(room["id"])
                for item in await cloud.async_get_appliances(location_id, room_id):
                    appliance_id = str(item["appliance_id"])
                    appliances.append(
                        Appliance(
                            identity=ApplianceIdentity(
                                location_id, room_id, appliance_id
                            ),
                            name=item.get("name") or appliance_id,
                            type_code=int(item.get("type", 0)),
                        )
                    )
    except (KeyError, TypeError, ValueError, AttributeError) as err:
        error_msg = f"Unexpected appliance listing: {err}"
        raise OndusDataFormatError(error_msg) from err

    _LOGGER.debug("Discovered %d appliances", len(appliances))
    return appliances
