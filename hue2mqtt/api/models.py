"""
API-level models.

This module contains models that belong to the api layer:
- BridgeIdentity (which hub, and how we are known to it)
- EntityRecord, EntityTable (last known state of lights, groups and sensors)
- CommandPayload (a decoded inbound command value)
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .types import EntityType, PayloadKind


@dataclass
class BridgeIdentity:
    """Represents the hub this process is bound to"""
    address: str
    id: Optional[str] = None
    credential: Optional[str] = None


@dataclass
class EntityRecord:
    """Last known state of a light, group or sensor"""
    hub_id: str
    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    # What subscribers last received; None until a publish reached the bus
    published: Optional[dict[str, Any]] = None


@dataclass
class EntityTable:
    """All records of one entity type, plus the name index used to resolve commands"""
    type: EntityType
    records: dict[str, EntityRecord] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)

    def resolve(self, name: str) -> Optional[str]:
        """Return the hub id for a name, or the name itself if it is a known hub id"""
        hub_id = self.names.get(name)
        if hub_id is None and name in self.records:
            hub_id = name
        return hub_id


@dataclass(frozen=True)
class CommandPayload:
    kind: PayloadKind
    value: Any

    @property
    def is_scalar(self) -> bool:
        return self.kind in (PayloadKind.BOOLEAN, PayloadKind.NUMBER)
