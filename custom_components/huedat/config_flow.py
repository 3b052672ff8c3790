"""Config flow handlers for the Hue Dat integration."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from homeassistant import config_entries
from homeassistant.config_entries import ConfigFlowResult
from homeassistant.core import HomeAssistant
from homeassistant.helpers.aiohttp_client import async_get_clientsession
import voluptuous as vol

from .api import BridgeAuthError, BridgeError, HueBridgeClient
from .const import CONF_APP_KEY, CONF_HOST, DOMAIN
from .domain.session import ConnectionSession

_LOGGER = logging.getLogger(__name__)


def _bridge_schema(default_host: str = "") -> vol.Schema:
    """Build the bridge form schema with provided defaults."""
    return vol.Schema(
        {
            vol.Required(CONF_HOST, default=default_host): str,
            vol.Required(CONF_APP_KEY): str,
        }
    )


async def _validate_bridge(hass: HomeAssistant, session: ConnectionSession) -> None:
    """Ensure the bridge answers and accepts the application key."""
    client = HueBridgeClient(async_get_clientsession(hass, verify_ssl=False), session)
    await client.validate_connection()


class HueDatConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Set up a bridge from its address and an existing application key."""

    VERSION = 1

    async def _handle_bridge_workflow(
        self,
        *,
        step_id: str,
        user_input: dict[str, Any] | None,
        default_host: str,
    ) -> tuple[ConfigFlowResult | None, dict[str, Any]]:
        """Handle shared form validation and error handling."""

        if user_input is None:
            return (
                self.async_show_form(
                    step_id=step_id, data_schema=_bridge_schema(default_host)
                ),
                {},
            )

        errors: dict[str, str] = {}
        session: ConnectionSession | None = None
        try:
            session = ConnectionSession(
                user_input.get(CONF_HOST, default_host),
                (user_input.get(CONF_APP_KEY) or "").strip(),
            )
        except ValueError:
            errors["base"] = "invalid_host"
        else:
            try:
                await _validate_bridge(self.hass, session)
            except BridgeAuthError:
                errors["base"] = "invalid_auth"
            except BridgeError:
                errors["base"] = "cannot_connect"
            except Exception:
                _LOGGER.exception("Unexpected error during %s step", step_id)
                errors["base"] = "unknown"

        if errors or session is None:
            return (
                self.async_show_form(
                    step_id=step_id,
                    data_schema=_bridge_schema(
                        str(user_input.get(CONF_HOST) or default_host)
                    ),
                    errors=errors,
                ),
                {},
            )

        return None, {CONF_HOST: session.host, CONF_APP_KEY: session.app_key}

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Collect the bridge address and create the config entry."""
        result, data = await self._handle_bridge_workflow(
            step_id="user", user_input=user_input, default_host=""
        )
        if result is not None:
            return result

        await self.async_set_unique_id(data[CONF_HOST])
        self._abort_if_unique_id_configured()
        return self.async_create_entry(title=f"Bridge {data[CONF_HOST]}", data=data)

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> ConfigFlowResult:
        """Start re-authentication after the application key was revoked."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Collect a new application key for the existing bridge."""
        entry = self._get_reauth_entry()
        result, data = await self._handle_bridge_workflow(
            step_id="reauth_confirm",
            user_input=user_input,
            default_host=entry.data.get(CONF_HOST, ""),
        )
        if result is not None:
            return result
        return self.async_update_reload_and_abort(entry, data_updates=data)
