"""
Bridge session components.

This module contains the parts of the bridge that hold state:
- BridgeSession (shared link flags, entity tables and MQTT handle)
- SessionManager (discovery, authorization and registration state machine)
- PollingEngine, StateSynchronizer (hub -> MQTT status path)
- CommandRouter (MQTT -> hub command path)
- CredentialStore (persisted hub credentials)
"""

from .session import BridgeSession, SessionManager
from .poller import PollingEngine
from .sync import StateSynchronizer
from .router import CommandRouter, decode_payload, scalar_to_state
from .store import CredentialStore

__all__ = [
    "BridgeSession",
    "SessionManager",
    "PollingEngine",
    "StateSynchronizer",
    "CommandRouter",
    "CredentialStore",
    "decode_payload",
    "scalar_to_state",
]
