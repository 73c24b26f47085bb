"""Notification catalog for Grohe Ondus appliances.

The Ondus cloud reports notifications as a ``(category, type)`` pair. This
module maps every pair the service emits to a message template and a
severity, and classifies notification batches into a leak verdict.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from types import MappingProxyType
from typing import Any

from .api import OndusDataFormatError
from .models import Notification, Thresholds


class NotificationCategory(IntEnum):
    """Category bands used by the Ondus cloud."""

    FIRMWARE = 10
    WARNING = 20
    CRITICAL = 30


class Severity(StrEnum):
    """Severity tier of a notification."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


CATEGORY_SEVERITY = MappingProxyType(
    {
        NotificationCategory.FIRMWARE: Severity.INFO,
        NotificationCategory.WARNING: Severity.WARNING,
        NotificationCategory.CRITICAL: Severity.CRITICAL,
    }
)


@dataclass(frozen=True)
class NotificationDefinition:
    """Message template and severity of one (category, type) pair."""

    template: str
    severity: Severity

    @property
    def is_leak(self) -> bool:
        return self.severity is Severity.CRITICAL


def _firmware(template: str) -> NotificationDefinition:
    return NotificationDefinition(template, Severity.INFO)


def _warning(template: str) -> NotificationDefinition:
    return NotificationDefinition(template, Severity.WARNING)


def _critical(template: str) -> NotificationDefinition:
    return NotificationDefinition(template, Severity.CRITICAL)


_FIRMWARE = NotificationCategory.FIRMWARE
_WARNING = NotificationCategory.WARNING
_CRITICAL = NotificationCategory.CRITICAL

NOTIFICATION_TABLE: Mapping[tuple[int, int], NotificationDefinition] = (
    MappingProxyType(
        {
            (_FIRMWARE, 60): _firmware("Firmware update available"),
            (_FIRMWARE, 460): _firmware("Firmware update available"),
            (_WARNING, 11): _warning(
                "Battery is at critical level: {battery_level}%"
            ),
            (_WARNING, 12): _warning("Battery is empty and must be changed"),
            (_WARNING, 20): _warning(
                "Temperature levels have dropped below the minimum configured "
                "limit of {low_temp_limit}°C"
            ),
            (_WARNING, 21): _warning(
                "Temperature levels have exceeded the maximum configured "
                "limit of {high_temp_limit}°C"
            ),
            (_WARNING, 30): _warning(
                "Humidity levels have dropped below the minimum configured "
                "limit of {low_humid_limit}% RH"
            ),
            (_WARNING, 31): _warning(
                "Humidity levels have exceeded the maximum configured "
                "limit of {high_humid_limit}% RH"
            ),
            (_WARNING, 40): _warning(
                "Frost warning! Current temperature is {temperature}°C"
            ),
            (_WARNING, 80): _warning("Lost WiFi"),
            (_WARNING, 320): _warning(
                "Unusual water consumption detected - water has been SHUT OFF"
            ),
            (_WARNING, 321): _warning(
                "Unusual water consumption detected - water still ON"
            ),
            (_WARNING, 330): _warning("Micro leakage detected"),
            (_WARNING, 340): _warning(
                "Frost warning! Current temperature is {temperature}°C"
            ),
            (_WARNING, 380): _warning("Lost WiFi"),
            (_CRITICAL, 0): _critical("Flooding detected - water has been SHUT OFF"),
            (_CRITICAL, 310): _critical("Pipe break - water has been SHUT OFF"),
            (_CRITICAL, 400): _critical(
                "Maximum water volume reached - water has been SHUT OFF"
            ),
            (_CRITICAL, 430): _critical("Water detected - water has been SHUT OFF"),
            (_CRITICAL, 431): _critical("Water detected - water still ON"),
        }
    )
)


def _format_value(value: Any) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


@dataclass(frozen=True)
class NotificationContext:
    """Live appliance values substituted into notification messages."""

    battery_level: int | None = None
    temperature: float | None = None
    thresholds: Thresholds = field(default_factory=Thresholds)

    def as_format_values(self) -> dict[str, str]:
        values = {
            "battery_level": self.battery_level,
            "temperature": self.temperature,
            "low_temp_limit": self.thresholds.low_temperature,
            "high_temp_limit": self.thresholds.high_temperature,
            "low_humid_limit": self.thresholds.low_humidity,
            "high_humid_limit": self.thresholds.high_humidity,
        }
        return {key: _format_value(value) for key, value in values.items()}


@dataclass(frozen=True)
class ClassifiedNotification:
    """A notification with its rendered message and severity."""

    notification: Notification
    message: str
    severity: Severity

    @property
    def is_leak(self) -> bool:
        return self.severity is Severity.CRITICAL


def lookup_notification(category: int, type_: int) -> NotificationDefinition:
    """Return the catalog entry of a (category, type) pair.

    Raises:
        OndusDataFormatError: If the pair is not part of the catalog.

    """
    try:
        return NOTIFICATION_TABLE[(category, type_)]
    except KeyError:
        error_msg = f"Unknown notification category {category} type {type_}"
        raise OndusDataFormatError(error_msg) from None


def render_message(
    definition: NotificationDefinition,
    context: NotificationContext | None = None,
) -> str:
    return definition.template.format_map(
        (context or NotificationContext()).as_format_values()
    )


def classify_notification(
    notification: Notification,
    context: NotificationContext | None = None,
) -> ClassifiedNotification:
    definition = lookup_notification(notification.category, notification.type)
    return ClassifiedNotification(
        notification=notification,
        message=render_message(definition, context),
        severity=definition.severity,
    )


def classify_notifications(
    notifications: Iterable[Notification],
    context: NotificationContext | None = None,
) -> tuple[list[ClassifiedNotification], bool]:
    """Classify a notification batch.

    Args:
        notifications: Notifications from a single fetch.
        context: Values substituted into the messages.

    Returns:
        Tuple of (classified notifications, leak detected). The leak verdict
        only reflects this batch.

    Raises:
        OndusDataFormatError: If any notification is not in the catalog.

    """
    classified = [classify_notification(item, context) for item in notifications]
    return classified, any(item.is_leak for item in classified)


def parse_notifications(payload: Any) -> list[Notification]:
    """Parse the body of the notifications endpoint.

    Raises:
        OndusDataFormatError: If the body is not a list of notifications.

    """
    if not isinstance(payload, list):
        error_msg = f"Unexpected notifications response: {payload!r}"
        raise OndusDataFormatError(error_msg)

    notifications = []
    for item in payload:
        try:
            notifications.append(
                Notification(
                    category=int(item["category"]),
                    type=int(item["type"]),
                    timestamp=str(item.get("timestamp", "")),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as err:
            error_msg = f"Malformed notification {item!r}: {err}"
            raise OndusDataFormatError(error_msg) from err
    return notifications


def validate_catalog(
    table: Mapping[tuple[int, int], NotificationDefinition] = NOTIFICATION_TABLE,
) -> None:
    """Check every entry sits in a known band with a matching severity.

    Raises:
        ValueError: If the table contains an invalid entry.

    """
    for (category, type_), definition in table.items():
        try:
            band = NotificationCategory(category)
        except ValueError:
            error_msg = f"Notification ({category}, {type_}) has an unknown category"
            raise ValueError(error_msg) from None
        if not definition.template.strip():
            error_msg = f"Notification ({category}, {type_}) has no message"
            raise ValueError(error_msg)
        if definition.severity is not CATEGORY_SEVERITY[band]:
            error_msg = (
                f"Notification ({category}, {type_}) has severity "
                f"{definition.severity}, expected {CATEGORY_SEVERITY[band]}"
            )
            raise ValueError(error_msg)
