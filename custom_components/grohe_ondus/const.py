"""Constants for Grohe Ondus integration.

This module contains all the constants used throughout the integration,
including API endpoints, configuration keys, and appliance type codes.
"""

from datetime import timedelta

DOMAIN = "grohe_ondus"

BASE_URL = "https://idp2-apigw.cloud.grohe.com/v3/iot"
LOGIN_URL = f"{BASE_URL}/oidc/login"
REFRESH_URL = f"{BASE_URL}/oidc/refresh"

# The credential form redirects to a custom scheme that holds the token URL
TOKEN_URL_SCHEME = "ondus://"

USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 11; IN2013) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/93.0.4577.82 Mobile Safari/537.36"
)

HTTP_TIMEOUT = 10.0

DEFAULT_REFRESH_INTERVAL = 3600  # Sensors only upload new data a few times a day
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)
STALE_DATA_THRESHOLD = timedelta(hours=24)
LOW_BATTERY_THRESHOLD = 10

CONF_REFRESH_TOKEN = "refresh_token"
CONF_REFRESH_INTERVAL = "refresh_interval"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_CREDENTIALS_MISSING = "credentials_missing"
ERROR_UNKNOWN = "unknown_error"

APPLIANCE_TYPE_SENSE = 101
APPLIANCE_TYPE_SENSE_PLUS = 102
APPLIANCE_TYPE_SENSE_GUARD = 103

APPLIANCE_TYPE_NAMES = {
    APPLIANCE_TYPE_SENSE: "Sense",
    APPLIANCE_TYPE_SENSE_PLUS: "Sense Plus",
    APPLIANCE_TYPE_SENSE_GUARD: "Sense Guard",
}

STATUS_BATTERY = "battery"
STATUS_WIFI_QUALITY = "wifi_quality"
STATUS_CONNECTION = "connection"
