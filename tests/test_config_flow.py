"""Tests for the Grohe Ondus Config Flow."""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.data_entry_flow import FlowResultType

from custom_components.grohe_ondus import api
from custom_components.grohe_ondus.config_flow import (
    DATA_SCHEMA,
    TOKEN_ONLY_UNIQUE_ID,
    GroheOndusConfigFlow,
)
from custom_components.grohe_ondus.const import (
    CONF_REFRESH_INTERVAL,
    CONF_REFRESH_TOKEN,
    DEFAULT_REFRESH_INTERVAL,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_CREDENTIALS_MISSING,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
)

LOGIN_PATH = (
    "custom_components.grohe_ondus.config_flow"
    ".OndusSessionManager.async_ensure_logged_in"
)
CLIENT_PATH = "custom_components.grohe_ondus.config_flow.get_async_client"
PASSWORD_INPUT = {
    CONF_USERNAME: "User@Example.com",
    CONF_PASSWORD: "password123",
    CONF_REFRESH_INTERVAL: 1800,
}


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    return Mock()


@pytest.fixture
def flow(mock_hass: Mock) -> GroheOndusConfigFlow:
    """Create a GroheOndusConfigFlow instance for testing."""
    flow_instance = GroheOndusConfigFlow()
    flow_instance.hass = mock_hass
    flow_instance.async_set_unique_id = AsyncMock()
    flow_instance._abort_if_unique_id_configured = Mock()
    flow_instance.async_create_entry = Mock(
        return_value={"type": FlowResultType.CREATE_ENTRY},
    )
    flow_instance.async_show_form = Mock(return_value={"type": FlowResultType.FORM})
    return flow_instance


class TestDataSchema:
    """Tests for the user step schema."""

    def test_schema_defaults_refresh_interval(self) -> None:
        """Test that the refresh interval defaults to an hour."""
        assert DATA_SCHEMA({})[CONF_REFRESH_INTERVAL] == DEFAULT_REFRESH_INTERVAL

    def test_schema_coerces_refresh_interval(self) -> None:
        """Test that the refresh interval is coerced to an int."""
        assert DATA_SCHEMA({CONF_REFRESH_INTERVAL: "600"})[CONF_REFRESH_INTERVAL] == 600


class TestGroheOndusConfigFlowAsyncStepUser:
    """Tests for async_step_user method."""

    @pytest.mark.asyncio
    async def test_async_step_user_shows_form_when_no_input(
        self,
        flow: GroheOndusConfigFlow,
    ) -> None:
        """Test that async_step_user shows form when no input provided."""
        result = await flow.async_step_user()
        flow.async_show_form.assert_called_once()
        assert flow.async_show_form.call_args[1]["errors"] == {}
        assert result["type"] == FlowResultType.FORM

    @pytest.mark.asyncio
    async def test_async_step_user_creates_entry_on_successful_login(
        self,
        flow: GroheOndusConfigFlow,
    ) -> None:
        """Test that async_step_user creates entry on successful login."""
        with (
            patch(CLIENT_PATH, return_value=Mock()),
            patch(LOGIN_PATH, new_callable=AsyncMock) as mock_login,
        ):
            result = await flow.async_step_user(dict(PASSWORD_INPUT))

        mock_login.assert_awaited_once()
        flow.async_set_unique_id.assert_called_once_with("user@example.com")
        flow._abort_if_unique_id_configured.assert_called_once()
        call_args = flow.async_create_entry.call_args
        assert call_args[1]["title"] == "Grohe Ondus (User@Example.com)"
        assert call_args[1]["data"] == PASSWORD_INPUT
        assert result["type"] == FlowResultType.CREATE_ENTRY

    @pytest.mark.asyncio
    async def test_async_step_user_accepts_refresh_token_only(
        self,
        flow: GroheOndusConfigFlow,
    ) -> None:
        """Test that a refresh token alone is enough to create an entry."""
        user_input = {
            CONF_USERNAME: "",
            CONF_REFRESH_TOKEN: "stored-refresh",
            CONF_REFRESH_INTERVAL: DEFAULT_REFRESH_INTERVAL,
        }
        with (
            patch(CLIENT_PATH, return_value=Mock()),
            patch(LOGIN_PATH, new_callable=AsyncMock),
        ):
            await flow.async_step_user(user_input)

        flow.async_set_unique_id.assert_called_once_with(TOKEN_ONLY_UNIQUE_ID)
        call_args = flow.async_create_entry.call_args
        assert call_args[1]["title"] == "Grohe Ondus (refresh token)"
        assert call_args[1]["data"] == {
            CONF_REFRESH_TOKEN: "stored-refresh",
            CONF_REFRESH_INTERVAL: DEFAULT_REFRESH_INTERVAL,
        }

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("revoked_refresh_token_responses")
    async def test_async_step_user_falls_back_to_password_on_revoked_token(
        self,
        flow: GroheOndusConfigFlow,
    ) -> None:
        """Test that a revoked refresh token is recovered by the password."""
        user_input = {**PASSWORD_INPUT, CONF_REFRESH_TOKEN: "revoked"}
        async with httpx.AsyncClient() as session:
            with patch(CLIENT_PATH, return_value=session):
                result = await flow.async_step_user(user_input)

        flow.async_show_form.assert_not_called()
        flow.async_create_entry.assert_called_once()
        assert result["type"] == FlowResultType.CREATE_ENTRY

    @pytest.mark.asyncio
    async def test_async_step_user_shows_error_without_credentials(
        self,
        flow: GroheOndusConfigFlow,
    ) -> None:
        """Test that async_step_user shows error when no credentials are given."""
        with patch(CLIENT_PATH, return_value=Mock()):
            result = await flow.async_step_user({CONF_USERNAME: "user"})

        flow.async_show_form.assert_called_once()
        assert flow.async_show_form.call_args[1]["errors"] == {
            "base": ERROR_CREDENTIALS_MISSING
        }
        flow.async_create_entry.assert_not_called()
        assert result["type"] == FlowResultType.FORM

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (api.OndusRedirectError("no redirect"), ERROR_INVALID_AUTH),
            (api.OndusRefreshError("rejected"), ERROR_INVALID_AUTH),
            (api.OndusTimeoutError("timed out"), ERROR_TIMEOUT),
            (api.OndusNetworkError("refused"), ERROR_CANNOT_CONNECT),
            (api.OndusApiStatusError(500), ERROR_API_ERROR),
            (ValueError("boom"), ERROR_UNKNOWN),
        ],
    )
    async def test_async_step_user_shows_error_on_login_failure(
        self,
        flow: GroheOndusConfigFlow,
        error: Exception,
        expected: str,
    ) -> None:
        """Test that each login failure maps to its form error."""
        with (
            patch(CLIENT_PATH, return_value=Mock()),
            patch(LOGIN_PATH, new_callable=AsyncMock, side_effect=error),
        ):
            result = await flow.async_step_user(dict(PASSWORD_INPUT))

        assert flow.async_show_form.call_args[1]["errors"] == {"base": expected}
        flow.async_create_entry.assert_not_called()
        assert result["type"] == FlowResultType.FORM
