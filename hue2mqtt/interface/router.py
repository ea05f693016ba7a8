import json
import logging
import math
from typing import Optional, TYPE_CHECKING

from ..api import CommandPayload, EntityType, PayloadKind
from ..exceptions import HueError

if TYPE_CHECKING:
    from .session import BridgeSession

"""
===================================================================================
Inbound command handling.

Accepted topics:
    <ns>/set/lights/<name>
    <ns>/set/groups/<name>
    <ns>/set/lights/<name>/<datapoint>
    <ns>/set/groups/<name>/<datapoint>

<name> is the entity's name on the hub, or its hub id. Malformed commands are
logged and dropped; there is no channel to report them back to the sender.
===================================================================================
"""


def decode_payload(raw: bytes | bytearray | str | None, logger: Optional[logging.Logger] = None) -> Optional[CommandPayload]:
    """Decode an MQTT payload into a tagged value.

    Rules, in order: anything containing '{' is JSON and must decode to an
    object; 'true' and 'false' are booleans; a finite number is a float;
    everything else stays a string. Returns None if the JSON is unusable.
    """
    logger = logger or logging.getLogger(__name__)
    if isinstance(raw, (bytes, bytearray)):
        text = raw.decode("utf-8", errors="replace")
    else:
        text = raw or ""

    if "{" in text:
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"invalid JSON payload: {e}")
            return None
        if not isinstance(value, dict):
            logger.error(f"JSON payload is not an object: {text}")
            return None
        return CommandPayload(PayloadKind.OBJECT, value)

    if text == "true":
        return CommandPayload(PayloadKind.BOOLEAN, True)
    if text == "false":
        return CommandPayload(PayloadKind.BOOLEAN, False)

    if text.strip():
        try:
            number = float(text)
        except ValueError:
            pass
        else:
            if math.isfinite(number):
                return CommandPayload(PayloadKind.NUMBER, number)

    return CommandPayload(PayloadKind.STRING, text)


def scalar_to_state(payload: CommandPayload) -> dict:
    """Turn a bare boolean or number into a state change"""
    if payload.kind is PayloadKind.BOOLEAN:
        return {"on": payload.value}
    level = int(payload.value)
    if level == 0:
        return {"on": False, "brightness": 0}
    return {"on": True, "brightness": level}


class CommandRouter:

    def __init__(self, session: "BridgeSession", logger: Optional[logging.Logger] = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    async def handle_message(self, topic: str, raw: bytes | bytearray | str | None) -> None:
        self.logger.debug(f"mqtt < {topic} {raw!r}")

        payload = decode_payload(raw, self.logger)
        if payload is None:
            return

        parts = topic.split("/")
        method = parts[1] if len(parts) > 1 else None
        type_name = parts[2] if len(parts) > 2 else None
        name = parts[3] if len(parts) > 3 else None
        datapoint = parts[4] if len(parts) > 4 and parts[4] else None

        if method != "set":
            self.logger.error(f"unknown method {method}")
            return

        match type_name:
            case "lights":
                entity_type = EntityType.LIGHTS
            case "groups":
                entity_type = EntityType.GROUPS
            case _:
                self.logger.error(f"unknown type {type_name}")
                return

        if not name:
            self.logger.error(f"missing {type_name} name in {topic}")
            return

        if datapoint:
            state = {datapoint: payload.value}
        elif payload.kind is PayloadKind.OBJECT:
            state = payload.value
        elif payload.is_scalar:
            state = scalar_to_state(payload)
        else:
            self.logger.error(f"unsupported payload for {topic}: {payload.value}")
            return

        await self.set_state(entity_type, name, state)

    async def set_state(self, entity_type: EntityType, name: str, state: dict) -> bool:
        """Resolve name and send the state change. Returns True if the hub accepted it."""
        label = "light" if entity_type is EntityType.LIGHTS else "group"
        hub_id = self.session.tables[entity_type].resolve(name)
        if hub_id is None:
            self.logger.error(f"unknown {label} {name}")
            return False

        hub = self.session.hub
        call = hub.set_light_state if entity_type is EntityType.LIGHTS else hub.set_group_state
        self.logger.debug(f"hue > set {label} state {hub_id} {state}")
        try:
            result = await call(hub_id, state)
        except HueError as e:
            self.logger.error(f"set {label} state {name}: {e}")
            await self.session.handle_state_change_error(e)
            return False

        if not result:
            self.logger.error(f"set {label} state {name} failed")
        return bool(result)
