"""
hue2mqtt Python Library

Bridges a Hue lighting hub to an MQTT broker: hub state is polled and
republished when it changes, and commands published on MQTT are sent to the
hub.

This library provides three distinct layers of abstraction:

1. **hue2mqtt.io**: HTTP transport to the hub, and hub discovery
2. **hue2mqtt.api**: Hub REST calls using hue2mqtt.io, plus the data model
3. **hue2mqtt.interface**: The bridge session, poller, synchronizer and command router

Example usage:
    import hue2mqtt

    config = hue2mqtt.load_config("config.yaml")
    bridge = hue2mqtt.HueMQTTBridge(config)
    await bridge.run()
"""

# Bridge process
from .bridge import HueMQTTBridge
from .config import BridgeConfig, HubConfig, MqttConfig, load_config

# Session components
from .interface import BridgeSession, SessionManager, PollingEngine, StateSynchronizer, CommandRouter, CredentialStore, decode_payload

# API-level models
from .api import HueProtocol, BridgeIdentity, EntityRecord, EntityTable, CommandPayload

# Low-level transport
from .io import HueClient, Request, Response, nupnp_search

# Shared types and exceptions
from .api.types import EntityType, ConnectionStatus, SessionState, PayloadKind
from .exceptions import HueError, HueConnectionError, HueApiError, HueLinkButtonError, HueDiscoveryError, HueConfigurationError

# Utilities
from .utils import run_with_keyboard_interrupt, deep_merge

__version__ = "0.1.0"

# Public API
__all__ = [
    # Bridge process
    "HueMQTTBridge",
    "BridgeConfig",
    "HubConfig",
    "MqttConfig",
    "load_config",

    # Session components
    "BridgeSession",
    "SessionManager",
    "PollingEngine",
    "StateSynchronizer",
    "CommandRouter",
    "CredentialStore",
    "decode_payload",

    # API-level models
    "HueProtocol",
    "BridgeIdentity",
    "EntityRecord",
    "EntityTable",
    "CommandPayload",

    # Low-level transport
    "HueClient",
    "Request",
    "Response",
    "nupnp_search",

    # Exceptions
    "HueError",
    "HueConnectionError",
    "HueApiError",
    "HueLinkButtonError",
    "HueDiscoveryError",
    "HueConfigurationError",

    # Types and enums
    "EntityType",
    "ConnectionStatus",
    "SessionState",
    "PayloadKind",

    # Utilities
    "run_with_keyboard_interrupt",
    "deep_merge",
]
