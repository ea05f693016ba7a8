import copy
import logging
from typing import Optional, TYPE_CHECKING

from ..api import EntityRecord, EntityType
from ..utils import deep_merge

if TYPE_CHECKING:
    from .session import BridgeSession


class StateSynchronizer:
    """Keeps the last known state of every entity and publishes what changed.

    Each record of a poll is deep-merged into what is already known about
    that entity. The full merged state, never a diff, is published whenever
    it differs from the last state that reached the bus. A state merged while
    the bus is down goes out with the first poll after it comes back.
    """

    def __init__(self, session: "BridgeSession", logger: Optional[logging.Logger] = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    def status_topic(self, entity_type: EntityType, record: EntityRecord) -> str:
        label = record.hub_id if self.session.config.hue.disable_names else record.name
        return self.session.topic("status", entity_type.status_segment, label)

    async def process(self, entity_type: EntityType, items: list[dict]) -> int:
        """Merge a poll result into the table for entity_type. Returns how many entities were published."""
        published = 0
        for item in items:
            if await self.update(entity_type, item):
                published += 1
        return published

    async def update(self, entity_type: EntityType, item: dict) -> bool:
        hub_id = item.get("id")
        if hub_id is None:
            self.logger.warning(f"ignoring {entity_type.value} record without id: {item}")
            return False
        hub_id = str(hub_id)

        table = self.session.tables[entity_type]
        record = table.records.get(hub_id)
        if record is None:
            record = EntityRecord(hub_id=hub_id, name=str(item.get("name", hub_id)))
            table.records[hub_id] = record
        if "name" in item:
            record.name = str(item["name"])
        # Last writer wins if the hub reuses a name
        table.names[record.name] = hub_id

        record.attributes = deep_merge(copy.deepcopy(record.attributes), item)
        # Compared against what reached the bus, so state merged while it was down still goes out
        if record.attributes == record.published:
            return False

        if not await self.session.publish(self.status_topic(entity_type, record), record.attributes, retain=self.session.config.mqtt.retain):
            return False
        record.published = copy.deepcopy(record.attributes)
        return True
