"""Data models for Grohe Ondus integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .const import (
    APPLIANCE_TYPE_NAMES,
    APPLIANCE_TYPE_SENSE,
    APPLIANCE_TYPE_SENSE_GUARD,
    LOW_BATTERY_THRESHOLD,
)


class LoginState(StrEnum):
    """Steps of the Ondus login protocol."""

    LOGGED_OUT = "logged_out"
    ACQUIRING_ACTION_URL = "acquiring_action_url"
    ACQUIRING_TOKEN_URL = "acquiring_token_url"
    ACQUIRING_REFRESH_TOKEN = "acquiring_refresh_token"
    REFRESHING_ACCESS_TOKEN = "refreshing_access_token"
    LOGGED_IN = "logged_in"
    FAILED = "failed"


@dataclass
class Token:
    """Represents a bearer or refresh token with its expiration timestamp."""

    token: str
    expire_at: datetime | None


@dataclass(frozen=True)
class Credentials:
    """Account credentials supplied once by the configuration."""

    username: str | None = None
    password: str | None = field(default=None, repr=False)
    refresh_token: str | None = field(default=None, repr=False)

    @property
    def has_password(self) -> bool:
        """Return True if username and password are both present."""
        return bool(self.username and self.password)

    @property
    def has_refresh_token(self) -> bool:
        """Return True if a refresh token was configured."""
        return bool(self.refresh_token)


@dataclass(frozen=True)
class ApplianceIdentity:
    """Key identifying a physical appliance in the Ondus cloud."""

    location_id: int
    room_id: int
    appliance_id: str


@dataclass(frozen=True)
class ApplianceCapabilities:
    """Subsystems an appliance exposes; selects which poll steps run."""

    has_battery: bool = False
    has_humidity: bool = False
    has_valve: bool = False

    @classmethod
    def for_type(cls, type_code: int) -> ApplianceCapabilities:
        """Return the capabilities of an Ondus appliance type code."""
        if type_code == APPLIANCE_TYPE_SENSE:
            return cls(has_battery=True, has_humidity=True)
        if type_code == APPLIANCE_TYPE_SENSE_GUARD:
            return cls(has_valve=True)
        # Sense Plus and unknown sensors are mains powered leak sensors
        return cls(has_humidity=True)


@dataclass(frozen=True)
class Appliance:
    """A discovered appliance with its identity and type."""

    identity: ApplianceIdentity
    name: str
    type_code: int

    @property
    def capabilities(self) -> ApplianceCapabilities:
        return ApplianceCapabilities.for_type(self.type_code)

    @property
    def model(self) -> str:
        return APPLIANCE_TYPE_NAMES.get(self.type_code, f"Unknown ({self.type_code})")


@dataclass(frozen=True, slots=True)
class Measurement:
    """One sample uploaded by an appliance."""

    timestamp: datetime
    temperature: float | None
    humidity: float | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    """Raw notification event reported by the Ondus cloud."""

    category: int
    type: int
    timestamp: str


@dataclass(frozen=True)
class Thresholds:
    """Alarm limits configured for an appliance in the Ondus app."""

    low_temperature: float | None = None
    high_temperature: float | None = None
    low_humidity: float | None = None
    high_humidity: float | None = None


@dataclass(frozen=True)
class FaultFlags:
    """Per-subsystem flags; set when the last fetch of a subsystem failed."""

    measurement: bool = False
    status: bool = False
    leak: bool = False
    valve: bool = False


@dataclass(frozen=True)
class ApplianceState:
    """Last-known-good snapshot of an appliance, replaced on every poll."""

    last_measurement: Measurement | None = None
    battery_level: int | None = None
    wifi_quality: int | None = None
    connection: int | None = None
    leak_detected: bool = False
    valve_open: bool | None = None
    notifications: tuple[str, ...] = ()
    faults: FaultFlags = field(default_factory=FaultFlags)

    @property
    def temperature(self) -> float | None:
        if self.last_measurement is None:
            return None
        return self.last_measurement.temperature

    @property
    def humidity(self) -> float | None:
        if self.last_measurement is None:
            return None
        return self.last_measurement.humidity

    @property
    def status_low_battery(self) -> bool:
        """Return True if the battery is at or below the low level."""
        if self.battery_level is None:
            return False
        return self.battery_level <= LOW_BATTERY_THRESHOLD
