"""Config flow for Stockroom."""

from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult

from .const import (
    CONF_ALLOW_NEGATIVE_STOCK,
    CONF_REPAIR_LEDGER_ON_STARTUP,
    DEFAULT_ALLOW_NEGATIVE_STOCK,
    DEFAULT_REPAIR_LEDGER_ON_STARTUP,
    DOMAIN,
)


def options_schema(options: dict[str, Any]) -> vol.Schema:
    """Build the options form, pre-filled with the current values."""

    return vol.Schema(
        {
            vol.Optional(
                CONF_ALLOW_NEGATIVE_STOCK,
                default=options.get(CONF_ALLOW_NEGATIVE_STOCK, DEFAULT_ALLOW_NEGATIVE_STOCK),
            ): bool,
            vol.Optional(
                CONF_REPAIR_LEDGER_ON_STARTUP,
                default=options.get(
                    CONF_REPAIR_LEDGER_ON_STARTUP, DEFAULT_REPAIR_LEDGER_ON_STARTUP
                ),
            ): bool,
        }
    )


class StockroomConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Stockroom."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle the initial step.

        Single-instance setup. Create entry immediately.
        """
        if self._async_current_entries():
            return self.async_abort(reason="single_instance_allowed")

        return self.async_create_entry(title="Stockroom", data={})

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> StockroomOptionsFlow:
        return StockroomOptionsFlow()


class StockroomOptionsFlow(config_entries.OptionsFlow):
    """Edit ledger behavior options; saving reloads the entry."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        return self.async_show_form(
            step_id="init", data_schema=options_schema(dict(self.config_entry.options))
        )
