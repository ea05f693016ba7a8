"""
API-level type definitions.

This module contains types and enums that belong to the API layer:
- Entity types and the topic segments they publish under
- Connection and session states
- Command payload kinds
- Constants used by the API layer
"""

from enum import Enum, IntEnum


class EntityType(Enum):
    LIGHTS = "lights"
    GROUPS = "groups"
    SENSORS = "sensors"

    @property
    def status_segment(self) -> str:
        """Topic segment used under <ns>/status/"""
        if self is EntityType.SENSORS: return "sensor"
        return self.value


class ConnectionStatus(IntEnum):
    """Liveness of the bridge; the value is published on <ns>/connected"""
    DISCONNECTED = 0
    BUS_ONLY = 1
    FULLY_CONNECTED = 2


class SessionState(Enum):
    DISCOVERING = "discovering"
    AUTHORIZING = "authorizing"
    REGISTERING = "registering"
    CONNECTED = "connected"


class PayloadKind(Enum):
    OBJECT = "object"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"


class HueErrorType(IntEnum):
    UNAUTHORIZED_USER = 1
    INVALID_JSON = 2
    RESOURCE_NOT_AVAILABLE = 3
    METHOD_NOT_AVAILABLE = 4
    MISSING_PARAMETERS = 5
    PARAMETER_NOT_AVAILABLE = 6
    INVALID_VALUE = 7
    READ_ONLY_PARAMETER = 8
    LINK_BUTTON_NOT_PRESSED = 101
    DEVICE_OFF = 201
    INTERNAL_ERROR = 901


class Const:

    # Hub
    ANONYMOUS_USER = "none"
    DEVICE_OFF_SUFFIX = "is not modifiable. Device is set to off."

    # Session
    DEFAULT_POLLING_INTERVAL = 10
    REGISTER_RETRY_INTERVAL = 5
    CREDENTIAL_PREFIX = "user-"

    # MQTT
    DEFAULT_NAMESPACE = "hue"
