"""
API-level models and protocol implementation.

This module contains models and types that belong to the API layer:
- BridgeIdentity, EntityRecord, EntityTable, CommandPayload (API-level concepts)
- HueProtocol (implements the hub's REST calls)
- Types and enums used by the API layer
"""

from .models import BridgeIdentity, EntityRecord, EntityTable, CommandPayload
from .protocol import HueProtocol, bridge_id_from_config
from .types import EntityType, ConnectionStatus, SessionState, PayloadKind, HueErrorType, Const

__all__ = [
    # API-level models
    "BridgeIdentity",
    "EntityRecord",
    "EntityTable",
    "CommandPayload",
    "HueProtocol",
    "bridge_id_from_config",

    # API-level types
    "EntityType",
    "ConnectionStatus",
    "SessionState",
    "PayloadKind",
    "HueErrorType",
    "Const",
]
