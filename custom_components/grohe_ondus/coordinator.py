"""Coordinator for Grohe Ondus integration."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from homeassistant.core import callback
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator
from homeassistant.util import dt as dt_util

from . import api
from .const import (
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    STALE_DATA_THRESHOLD,
    STATUS_BATTERY,
    STATUS_CONNECTION,
    STATUS_WIFI_QUALITY,
)
from .models import ApplianceState, Measurement, Thresholds
from .notifications import (
    NotificationContext,
    classify_notifications,
    parse_notifications,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .appliance import OndusApplianceClient
    from .models import Appliance
    from .session import OndusSessionManager

_LOGGER = logging.getLogger(__name__)

_THRESHOLD_FIELDS = {
    ("temperature", "min"): "low_temperature",
    ("temperature", "max"): "high_temperature",
    ("humidity", "min"): "low_humidity",
    ("humidity", "max"): "high_humidity",
}


def signal_state_updated(appliance_id: str) -> str:
    """Return the dispatcher signal fired with each new appliance snapshot."""
    return f"{DOMAIN}_{appliance_id}_state_updated"


def resolve_refresh_interval(value: Any, log_prefix: str = "") -> int:
    """Return the configured refresh interval, or the default if invalid."""
    try:
        interval = int(value)
    except (TypeError, ValueError):
        interval = 0
    if interval <= 0:
        _LOGGER.warning(
            "[%s] Refresh interval incorrectly configured (%r), "
            "using default value of %d seconds",
            log_prefix,
            value,
            DEFAULT_REFRESH_INTERVAL,
        )
        return DEFAULT_REFRESH_INTERVAL
    return interval


def parse_timestamp(value: Any) -> datetime:
    """Parse an Ondus ISO timestamp; naive values are taken as UTC.

    Raises:
        OndusDataFormatError: If the value is not an ISO timestamp.

    """
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError as err:
        error_msg = f"Invalid timestamp {value!r}"
        raise api.OndusDataFormatError(error_msg) from err
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def stale_days(last_sample: datetime, now: datetime) -> int | None:
    """Return the age in whole days if the last sample is stale, else None."""
    elapsed = now - last_sample
    if elapsed <= STALE_DATA_THRESHOLD:
        return None
    return round(elapsed / timedelta(days=1))


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def parse_measurements(payload: Any) -> list[Measurement]:
    """Parse the body of the measurement endpoint.

    Raises:
        OndusDataFormatError: If the body holds no list of samples.

    """
    try:
        samples = payload["data"]["measurement"]
    except (KeyError, TypeError) as err:
        error_msg = f"Unknown measurement response: {payload!r}"
        raise api.OndusDataFormatError(error_msg) from err

    if not isinstance(samples, list) or not samples:
        error_msg = f"Unknown measurement response: {samples!r}"
        raise api.OndusDataFormatError(error_msg)

    measurements = []
    for sample in samples:
        try:
            temperature = sample.get("temperature", sample.get("temperature_guard"))
            measurements.append(
                Measurement(
                    timestamp=parse_timestamp(sample["timestamp"]),
                    temperature=_optional_float(temperature),
                    humidity=_optional_float(sample.get("humidity")),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as err:
            error_msg = f"Malformed measurement {sample!r}: {err}"
            raise api.OndusDataFormatError(error_msg) from err
    return measurements


def select_latest_measurement(measurements: Sequence[Measurement]) -> Measurement:
    """Return the sample with the latest timestamp.

    The service returns samples unsorted. A stable sort keeps equal
    timestamps in input order, so the last of them wins.
    """
    return sorted(measurements, key=lambda sample: sample.timestamp)[-1]


def project_status(payload: Any) -> dict[str, Any]:
    """Map the known status metric types to ApplianceState fields.

    Raises:
        OndusDataFormatError: If the body is not a list of metrics.

    """
    if not isinstance(payload, list):
        error_msg = f"Unexpected status response: {payload!r}"
        raise api.OndusDataFormatError(error_msg)

    fields = {
        STATUS_BATTERY: "battery_level",
        STATUS_WIFI_QUALITY: "wifi_quality",
        STATUS_CONNECTION: "connection",
    }
    status: dict[str, Any] = {}
    for metric in payload:
        if not isinstance(metric, dict):
            continue
        field_name = fields.get(metric.get("type"))
        if field_name is not None:
            status[field_name] = metric.get("value")
    return status


def parse_thresholds(info: dict[str, Any]) -> Thresholds:
    """Extract enabled alarm limits from appliance info."""
    values: dict[str, float] = {}
    config = info.get("config")
    if not isinstance(config, dict):
        return Thresholds()
    for threshold in config.get("thresholds") or []:
        if not isinstance(threshold, dict) or not threshold.get("enabled", True):
            continue
        field_name = _THRESHOLD_FIELDS.get(
            (threshold.get("quantity"), threshold.get("type"))
        )
        if field_name is None:
            continue
        try:
            values[field_name] = float(threshold["value"])
        except (KeyError, TypeError, ValueError):
            continue
    return Thresholds(**values)


def parse_valve_state(payload: Any) -> bool:
    """Return True if the command document reports an open valve.

    Raises:
        OndusDataFormatError: If the document has no valve state.

    """
    try:
        return bool(payload["command"]["valve_open"])
    except (KeyError, TypeError) as err:
        error_msg = f"Unexpected command response: {payload!r}"
        raise api.OndusDataFormatError(error_msg) from err


class OndusApplianceCoordinator(DataUpdateCoordinator[ApplianceState]):
    """Coordinator that polls one Ondus appliance.

    Each subsystem (measurements, status, notifications, valve) is fetched
    independently. A failed fetch sets the subsystem's fault flag and keeps
    the previous values; the next successful fetch clears it. Updates never
    raise, so a bad fetch does not stop future polls.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        session_manager: OndusSessionManager,
        client: OndusApplianceClient,
        appliance: Appliance,
        refresh_interval: Any = None,
        config_entry: ConfigEntry | None = None,
    ) -> None:
        """Initialize the coordinator."""
        interval = resolve_refresh_interval(refresh_interval, appliance.name)
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=f"{DOMAIN}_{appliance.identity.appliance_id}",
            update_interval=timedelta(seconds=interval),
        )
        self.session_manager = session_manager
        self.client = client
        self.appliance = appliance
        self.info: dict[str, Any] = {}
        self.data = ApplianceState()
        self._unsub_publish: Callable[[], None] | None = None
        self._token_rejected = False

    @property
    def state(self) -> ApplianceState:
        """Return the last published snapshot."""
        return self.data

    @property
    def _log_prefix(self) -> str:
        return self.appliance.name

    @callback
    def _async_publish_state(self) -> None:
        async_dispatcher_send(
            self.hass,
            signal_state_updated(self.appliance.identity.appliance_id),
            self.data,
        )

    @callback
    def async_start(self) -> None:
        """Start periodic polling and publish every snapshot."""
        if self._unsub_publish is None:
            self._unsub_publish = self.async_add_listener(self._async_publish_state)

    async def async_stop(self) -> None:
        """Cancel this appliance's pending poll; other appliances are unaffected."""
        if self._unsub_publish is not None:
            self._unsub_publish()
            self._unsub_publish = None
        await self.async_shutdown()

    async def _async_update_data(self) -> ApplianceState:
        capabilities = self.appliance.capabilities

        await self._async_ensure_session()
        await self._async_update_info()

        state = await self._async_update_measurements(self.data)
        if capabilities.has_battery:
            state = await self._async_update_status(state)
        state = await self._async_update_notifications(state)
        if capabilities.has_valve:
            state = await self._async_update_valve(state)
        return state

    def _note_rejected_token(self, err: api.OndusApiClientError) -> None:
        if isinstance(err, api.OndusApiStatusError) and api.is_auth_error(err.status):
            self._token_rejected = True

    async def _async_ensure_session(self) -> None:
        force_refresh, self._token_rejected = self._token_rejected, False
        if force_refresh:
            _LOGGER.info(
                "[%s] Access token was rejected, refreshing it", self._log_prefix
            )
        try:
            await self.session_manager.async_ensure_logged_in(
                force_refresh=force_refresh
            )
        except api.OndusApiClientError as err:
            _LOGGER.error("[%s] Unable to log in to Ondus cloud: %s", self._log_prefix, err)

    async def _async_update_info(self) -> None:
        """Refresh appliance info; failures keep the previous info."""
        _LOGGER.debug("[%s] Updating appliance info", self._log_prefix)
        try:
            payload = await self.client.async_get_appliance_info()
        except api.OndusApiClientError as err:
            self._note_rejected_token(err)
            _LOGGER.error(
                "[%s] Unable to update appliance info: %s", self._log_prefix, err
            )
            return

        info = payload[0] if isinstance(payload, list) and payload else payload
        if isinstance(info, dict):
            self.info = info
        else:
            _LOGGER.error(
                "[%s] Unexpected appliance info response: %r", self._log_prefix, payload
            )

    def _last_sample_timestamp(self, state: ApplianceState) -> datetime | None:
        tdt = self.info.get("tdt")
        if tdt:
            try:
                return parse_timestamp(tdt)
            except api.OndusDataFormatError:
                _LOGGER.debug("[%s] Ignoring invalid tdt %r", self._log_prefix, tdt)
        if state.last_measurement is not None:
            return state.last_measurement.timestamp
        return None

    async def _async_update_measurements(self, state: ApplianceState) -> ApplianceState:
        _LOGGER.debug("[%s] Updating temperature and humidity levels", self._log_prefix)

        from_date = self._last_sample_timestamp(state)
        if from_date is not None:
            days = stale_days(from_date, dt_util.utcnow())
            if days is not None:
                _LOGGER.warning(
                    "[%s] Retrieved data is %d day(s) old!", self._log_prefix, days
                )

        try:
            payload = await self.client.async_get_appliance_measurements(from_date)
            measurements = parse_measurements(payload)
        except api.OndusApiClientError as err:
            self._note_rejected_token(err)
            _LOGGER.error(
                "[%s] Unable to update temperature and humidity: %s",
                self._log_prefix,
                err,
            )
            return replace(state, faults=replace(state.faults, measurement=True))

        latest = select_latest_measurement(measurements)
        _LOGGER.debug(
            "[%s] Retrieved %d measurements, picking latest one",
            self._log_prefix,
            len(measurements),
        )
        _LOGGER.info(
            "[%s] Timestamp: %s - Temperature: %s°C - Humidity: %s%%",
            self._log_prefix,
            latest.timestamp.isoformat(),
            latest.temperature,
            latest.humidity,
        )
        return replace(
            state,
            last_measurement=latest,
            faults=replace(state.faults, measurement=False),
        )

    async def _async_update_status(self, state: ApplianceState) -> ApplianceState:
        _LOGGER.debug(
            "[%s] Updating battery, WiFi quality, and connection status",
            self._log_prefix,
        )
        try:
            payload = await self.client.async_get_appliance_status()
            status = project_status(payload)
        except api.OndusApiClientError as err:
            self._note_rejected_token(err)
            _LOGGER.error("[%s] Unable to update device status: %s", self._log_prefix, err)
            return replace(state, faults=replace(state.faults, status=True))

        state = replace(state, **status, faults=replace(state.faults, status=False))
        _LOGGER.info(
            "[%s] Battery: %s%% - WiFi quality: %s - Connection: %s",
            self._log_prefix,
            state.battery_level,
            state.wifi_quality,
            state.connection,
        )
        return state

    async def _async_update_notifications(
        self, state: ApplianceState
    ) -> ApplianceState:
        context = NotificationContext(
            battery_level=state.battery_level,
            temperature=state.temperature,
            thresholds=parse_thresholds(self.info),
        )
        try:
            payload = await self.client.async_get_appliance_notifications()
            notifications = parse_notifications(payload)
            classified, leak_detected = classify_notifications(notifications, context)
        except api.OndusApiClientError as err:
            self._note_rejected_token(err)
            _LOGGER.error(
                "[%s] Unable to process notifications: %s", self._log_prefix, err
            )
            return replace(state, faults=replace(state.faults, leak=True))

        _LOGGER.debug(
            "[%s] Processed %d notifications", self._log_prefix, len(classified)
        )
        # Reported until marked as read in the Ondus app
        for item in classified:
            _LOGGER.warning(
                "[%s] %s reported %s",
                self._log_prefix,
                item.message,
                item.notification.timestamp,
            )

        return replace(
            state,
            leak_detected=leak_detected,
            notifications=tuple(item.message for item in classified),
            faults=replace(state.faults, leak=False),
        )

    async def _async_update_valve(self, state: ApplianceState) -> ApplianceState:
        try:
            payload = await self.client.async_get_appliance_command()
            valve_open = parse_valve_state(payload)
        except api.OndusApiClientError as err:
            self._note_rejected_token(err)
            _LOGGER.error("[%s] Unable to update valve state: %s", self._log_prefix, err)
            return replace(state, faults=replace(state.faults, valve=True))

        _LOGGER.info(
            "[%s] Valve: %s", self._log_prefix, "open" if valve_open else "closed"
        )
        return replace(
            state, valve_open=valve_open, faults=replace(state.faults, valve=False)
        )
