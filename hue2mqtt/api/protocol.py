import logging
from typing import Any, Optional

from ..io import HueClient, Request
from .types import HueErrorType, Const
from ..exceptions import HueApiError, HueConnectionError, HueLinkButtonError

"""
===================================================================================
This module implements the hub's REST API calls using hue2mqtt.io.
===================================================================================
"""


class HueProtocol:

    # Attribute names accepted from callers that the hub knows by another name
    STATE_ALIASES: dict[str, str] = {
        "brightness": "bri",
    }

    def __init__(self,
                 client: HueClient,
                 username: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.client = client
        self.username = username
        self.logger = logger or logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.client.close()

    @property
    def address(self) -> str:
        return self.client.host

    # ============================
    # REQUEST SENDING
    # ============================

    def _path(self, *parts: str, username: Optional[str] = None) -> str:
        user = username or self.username or Const.ANONYMOUS_USER
        return "/".join(["/api", user, *parts])

    @staticmethod
    def _raise_for_errors(data: Any) -> None:
        """Raise the first error object found in a hub answer"""
        if not isinstance(data, list):
            return
        for item in data:
            if not isinstance(item, dict) or "error" not in item:
                continue
            error = item["error"]
            description = error.get("description", "unknown error")
            error_type = error.get("type")
            if error_type == HueErrorType.LINK_BUTTON_NOT_PRESSED:
                raise HueLinkButtonError(description, type=error_type, address=error.get("address"))
            raise HueApiError(description, type=error_type, address=error.get("address"))

    async def _send(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        response = await self.client.send_request(Request(method, path, body))
        self._raise_for_errors(response.data)
        return response.data

    async def _fetch_collection(self, resource: str) -> list[dict]:
        data = await self._send("GET", self._path(resource))
        if not isinstance(data, dict):
            raise HueConnectionError(f"Unexpected answer when fetching {resource}")
        items = []
        for hub_id, attributes in data.items():
            if not isinstance(attributes, dict):
                continue
            items.append({"id": str(hub_id)} | attributes)
        return items

    def _translate_state(self, state: dict) -> dict:
        translated = {}
        for key, value in state.items():
            # The hub rejects 128.0 where it expects an integer
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            translated[self.STATE_ALIASES.get(key, key)] = value
        return translated

    @staticmethod
    def _all_succeeded(data: Any) -> bool:
        return isinstance(data, list) and len(data) > 0 and all(isinstance(item, dict) and "success" in item for item in data)

    # ============================
    # HUB CALLS
    # ============================

    async def fetch_config(self, username: Optional[str] = None) -> dict:
        """Fetch the hub configuration.

        Without a recognised username the hub only answers with its public
        fields (name, bridgeid, apiversion...). The presence of `linkbutton`
        is what shows the username is known to the hub.
        """
        data = await self._send("GET", self._path("config", username=username or Const.ANONYMOUS_USER))
        if not isinstance(data, dict):
            raise HueConnectionError("Unexpected answer when fetching config")
        return data

    async def fetch_lights(self) -> list[dict]:
        return await self._fetch_collection("lights")

    async def fetch_groups(self) -> list[dict]:
        return await self._fetch_collection("groups")

    async def fetch_sensors(self) -> list[dict]:
        return await self._fetch_collection("sensors")

    async def set_light_state(self, hub_id: str, state: dict) -> bool:
        data = await self._send("PUT", self._path("lights", str(hub_id), "state"), self._translate_state(state))
        return self._all_succeeded(data)

    async def set_group_state(self, hub_id: str, state: dict) -> bool:
        data = await self._send("PUT", self._path("groups", str(hub_id), "action"), self._translate_state(state))
        return self._all_succeeded(data)

    async def create_credential(self, app_name: str) -> str:
        """Register a new username. Raises HueLinkButtonError until the link button is pressed."""
        data = await self._send("POST", "/api", {"devicetype": app_name})
        if isinstance(data, list):
            for item in data:
                username = item.get("success", {}).get("username") if isinstance(item, dict) else None
                if username:
                    return username
        raise HueApiError("Hub did not return a username")


def bridge_id_from_config(config: dict) -> Optional[str]:
    """The identity a hub should be known by, preferring the one it replaces"""
    bridge_id = config.get("replacesbridgeid") or config.get("bridgeid")
    return str(bridge_id) if bridge_id else None
