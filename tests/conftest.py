"""Pytest configuration and fixtures for Grohe Ondus tests."""

from typing import Any

import pytest
from pytest_httpx import HTTPXMock

from custom_components.grohe_ondus.const import LOGIN_URL, REFRESH_URL
from custom_components.grohe_ondus.models import Appliance, ApplianceIdentity

FORM_ACTION_URL = (
    "https://idp2-apigw.cloud.grohe.com/v1/sso/auth/realms/idm-apigw"
    "/login-actions/authenticate?session_code=fallback"
)
FORM_TOKEN_URL = "idp2-apigw.cloud.grohe.com/v3/iot/oidc/token?code=fallback"


@pytest.fixture
def revoked_refresh_token_responses(
    httpx_mock: HTTPXMock, sample_token_response: dict[str, Any]
) -> None:
    """Fixture rejecting the stored refresh token, then serving a password login."""
    httpx_mock.add_response(url=REFRESH_URL, method="POST", status_code=401)
    httpx_mock.add_response(
        url=LOGIN_URL,
        method="GET",
        headers={"set-cookie": "AUTH_SESSION_ID=fallback; Path=/"},
        text=f'<html><form method="post" action="{FORM_ACTION_URL}"></form></html>',
    )
    httpx_mock.add_response(
        url=FORM_ACTION_URL,
        method="POST",
        status_code=302,
        headers={"location": f"ondus://{FORM_TOKEN_URL}"},
    )
    httpx_mock.add_response(
        url=f"https://{FORM_TOKEN_URL}", method="GET", json=sample_token_response
    )


@pytest.fixture
def appliance_identity() -> ApplianceIdentity:
    """Fixture providing the identity of a test appliance."""
    return ApplianceIdentity(location_id=1, room_id=2, appliance_id="appliance-1")


@pytest.fixture
def sense_appliance(appliance_identity: ApplianceIdentity) -> Appliance:
    """Fixture providing a battery powered Sense appliance."""
    return Appliance(identity=appliance_identity, name="Basement", type_code=101)


@pytest.fixture
def sample_token_response() -> dict[str, Any]:
    """Fixture providing a token exchange response.

    Returns:
        A dictionary representing the token URL JSON body.

    """
    return {
        "access_token": "access-1",
        "expires_in": 3600,
        "refresh_token": "refresh-1",
        "refresh_expires_in": 15552000,
        "token_type": "bearer",
    }


@pytest.fixture
def sample_refresh_response() -> dict[str, Any]:
    """Fixture providing a refresh endpoint response."""
    return {"access_token": "access-2", "expires_in": 3600}


@pytest.fixture
def sample_measurement_response() -> dict[str, Any]:
    """Fixture providing unsorted measurement samples."""
    return {
        "appliance_id": "appliance-1",
        "type": 101,
        "data": {
            "measurement": [
                {
                    "timestamp": "2024-01-02T10:00:00+00:00",
                    "temperature": 20.5,
                    "humidity": 55,
                },
                {
                    "timestamp": "2024-01-01T10:00:00+00:00",
                    "temperature": 18.0,
                    "humidity": 50,
                },
                {
                    "timestamp": "2024-01-03T10:00:00+00:00",
                    "temperature": 21.0,
                    "humidity": 60,
                },
            ],
        },
    }


@pytest.fixture
def sample_status_response() -> list[dict[str, Any]]:
    """Fixture providing a status response with an unknown metric type."""
    return [
        {"type": "battery", "value": 80},
        {"type": "wifi_quality", "value": 2},
        {"type": "connection", "value": 1},
        {"type": "firmware", "value": "1.2.3"},
    ]


@pytest.fixture
def sample_info_response() -> list[dict[str, Any]]:
    """Fixture providing appliance info with configured thresholds."""
    return [
        {
            "appliance_id": "appliance-1",
            "name": "Basement",
            "type": 101,
            "tdt": "2024-01-03T10:00:00+00:00",
            "config": {
                "thresholds": [
                    {"quantity": "temperature", "type": "min", "value": 5, "enabled": True},
                    {"quantity": "temperature", "type": "max", "value": 35, "enabled": True},
                    {"quantity": "humidity", "type": "min", "value": 30, "enabled": False},
                    {"quantity": "humidity", "type": "max", "value": 70, "enabled": True},
                ],
            },
        },
    ]
