"""Config flow for Semester Planner."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from homeassistant import config_entries

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigFlowResult

from .const import DOMAIN


class SemesterPlannerConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Single-instance flow; one planner per Home Assistant install."""

    VERSION = 1

    async def async_step_user(self, user_input: dict[str, Any] | None = None) -> ConfigFlowResult:
        if self._async_current_entries():
            return self.async_abort(reason="single_instance_allowed")

        return self.async_create_entry(title="Semester Planner", data={})
