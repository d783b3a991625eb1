"""Config flow for Pi-hole Controls integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant import config_entries
from homeassistant.config_entries import ConfigFlowResult
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession
import voluptuous as vol

from .api import (
    ConnectionProfile,
    PiHoleApi,
    PiHoleApiError,
    PiHoleAuthExhaustedError,
    PiHoleInvalidConfigurationError,
    PiHoleLegacyIncompatibleError,
    normalize_host,
)
from .const import (
    CONF_ALLOW_SELF_SIGNED,
    CONF_API_TOKEN,
    CONF_DEBUG_API,
    CONF_DEBUG_COORDINATOR,
    CONF_DISABLE_MINUTES,
    CONF_HOST,
    CONF_REFRESH_INTERVAL,
    DEFAULT_ALLOW_SELF_SIGNED,
    DEFAULT_DEBUG_API,
    DEFAULT_DEBUG_COORDINATOR,
    DEFAULT_DISABLE_MINUTES,
    DEFAULT_HOST,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    MAX_DISABLE_MINUTES,
    MAX_REFRESH_INTERVAL,
    MIN_REFRESH_INTERVAL,
)

_LOGGER = logging.getLogger(__name__)


def validate_token(token: str) -> str | None:
    """Validate the API token is not empty or whitespace-only.

    Returns:
        Error key if invalid, None if valid
    """
    if not token or not token.strip():
        return "invalid_auth"
    return None


async def async_validate_connection(hass: HomeAssistant, profile: ConnectionProfile) -> str | None:
    """Read the blocking status once with the given profile.

    Returns:
        Error key if the Pi-hole could not be used, None on success
    """
    api = PiHoleApi(profile, session=async_get_clientsession(hass))
    try:
        await api.fetch_status()
    except PiHoleInvalidConfigurationError:
        return "invalid_host"
    except PiHoleAuthExhaustedError:
        return "invalid_auth"
    except PiHoleLegacyIncompatibleError:
        return "legacy_incompatible"
    except PiHoleApiError as err:
        _LOGGER.debug("Connection test failed: %s", err)
        return "cannot_connect"
    except Exception as ex:  # pylint: disable=broad-except
        _LOGGER.exception("Unexpected exception: %s", ex)
        return "unknown"
    return None


def _build_profile(user_input: dict[str, Any], errors: dict[str, str]) -> ConnectionProfile | None:
    """Validate user input into a connection profile, filling errors on failure."""
    token_error = validate_token(user_input[CONF_API_TOKEN])
    if token_error:
        errors["base"] = token_error
        return None
    try:
        host = normalize_host(user_input[CONF_HOST])
    except PiHoleInvalidConfigurationError:
        errors["base"] = "invalid_host"
        return None
    return ConnectionProfile(
        host,
        user_input[CONF_API_TOKEN].strip(),
        user_input.get(CONF_ALLOW_SELF_SIGNED, DEFAULT_ALLOW_SELF_SIGNED),
    )


def _entry_data(profile: ConnectionProfile) -> dict[str, Any]:
    return {
        CONF_HOST: profile.host,
        CONF_API_TOKEN: profile.credential,
        CONF_ALLOW_SELF_SIGNED: profile.allow_self_signed_cert,
    }


STEP_USER_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST, default=DEFAULT_HOST): str,
        vol.Required(CONF_API_TOKEN): str,
        vol.Required(CONF_ALLOW_SELF_SIGNED, default=DEFAULT_ALLOW_SELF_SIGNED): bool,
    }
)


class PiHoleControlsConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Pi-hole Controls."""

    VERSION = 1
    MINOR_VERSION = 0

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> PiHoleControlsOptionsFlow:
        """Get the options flow for this handler."""
        return PiHoleControlsOptionsFlow()

    async def async_step_user(self, user_input: dict[str, Any] | None = None) -> ConfigFlowResult:
        """Handle the initial step."""
        errors: dict[str, str] = {}

        if user_input is not None:
            profile = _build_profile(user_input, errors)
            if profile is not None:
                await self.async_set_unique_id(profile.host)
                self._abort_if_unique_id_configured()

                error = await async_validate_connection(self.hass, profile)
                if error:
                    errors["base"] = error
                else:
                    return self.async_create_entry(
                        title=f"Pi-hole ({profile.host})",
                        data=_entry_data(profile),
                    )

        return self.async_show_form(
            step_id="user",
            data_schema=self.add_suggested_values_to_schema(STEP_USER_DATA_SCHEMA, user_input),
            errors=errors,
        )

    async def async_step_reconfigure(self, user_input: dict[str, Any] | None = None) -> ConfigFlowResult:
        """Handle changing host, token or certificate settings."""
        errors: dict[str, str] = {}
        reconfigure_entry = self._get_reconfigure_entry()
        current_data = reconfigure_entry.data

        if user_input is not None:
            # Blank token keeps the stored one
            if not user_input.get(CONF_API_TOKEN, "").strip():
                user_input[CONF_API_TOKEN] = current_data.get(CONF_API_TOKEN, "")
            profile = _build_profile(user_input, errors)
            if profile is not None:
                error = await async_validate_connection(self.hass, profile)
                if error:
                    errors["base"] = error
                else:
                    return self.async_update_reload_and_abort(
                        reconfigure_entry,
                        unique_id=profile.host,
                        title=f"Pi-hole ({profile.host})",
                        data=_entry_data(profile),
                    )

        reconfigure_schema = vol.Schema(
            {
                vol.Required(CONF_HOST, default=current_data.get(CONF_HOST, DEFAULT_HOST)): str,
                vol.Optional(CONF_API_TOKEN, default=""): str,  # Don't show current token
                vol.Required(
                    CONF_ALLOW_SELF_SIGNED,
                    default=current_data.get(CONF_ALLOW_SELF_SIGNED, DEFAULT_ALLOW_SELF_SIGNED),
                ): bool,
            }
        )

        return self.async_show_form(
            step_id="reconfigure",
            data_schema=reconfigure_schema,
            errors=errors,
        )


class PiHoleControlsOptionsFlow(config_entries.OptionsFlow):
    """Handle options flow for Pi-hole Controls."""

    async def async_step_init(self, user_input: dict[str, Any] | None = None) -> ConfigFlowResult:
        """Manage the options."""
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        options = self.config_entry.options
        schema_dict: dict[Any, Any] = {
            vol.Required(
                CONF_DISABLE_MINUTES,
                default=options.get(CONF_DISABLE_MINUTES, DEFAULT_DISABLE_MINUTES),
            ): vol.All(vol.Coerce(int), vol.Range(min=0, max=MAX_DISABLE_MINUTES)),
            vol.Required(
                CONF_REFRESH_INTERVAL,
                default=options.get(CONF_REFRESH_INTERVAL, DEFAULT_REFRESH_INTERVAL),
            ): vol.All(vol.Coerce(int), vol.Range(min=MIN_REFRESH_INTERVAL, max=MAX_REFRESH_INTERVAL)),
            # Advanced options last
            vol.Required(
                CONF_DEBUG_API,
                default=options.get(CONF_DEBUG_API, DEFAULT_DEBUG_API),
            ): bool,
            vol.Required(
                CONF_DEBUG_COORDINATOR,
                default=options.get(CONF_DEBUG_COORDINATOR, DEFAULT_DEBUG_COORDINATOR),
            ): bool,
        }

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(schema_dict),
        )
