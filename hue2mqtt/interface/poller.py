import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from ..api import EntityType
from ..exceptions import HueError

if TYPE_CHECKING:
    from .session import BridgeSession
    from .sync import StateSynchronizer


class PollingEngine:
    """Fixed-rate poll of lights, groups and sensors.

    Ticks are scheduled P seconds after the previous tick was scheduled, not
    after it finished. The three fetches of a tick run as independent tasks,
    so a slow hub can leave fetches of two ticks in flight at once.
    """

    def __init__(self, session: "BridgeSession", synchronizer: "StateSynchronizer", logger: Optional[logging.Logger] = None):
        self.session = session
        self.synchronizer = synchronizer
        self.logger = logger or logging.getLogger(__name__)
        self._handle: Optional[asyncio.TimerHandle] = None
        self._next_tick: Optional[float] = None
        self._tasks: set[asyncio.Task] = set()
        self.ticks: int = 0

    @property
    def interval(self) -> float:
        return self.session.config.hue.polling_interval

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """Run the first tick now. Calling it again while running does nothing."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._next_tick = loop.time()
        self._tick()

    def stop(self) -> None:
        """Stop scheduling ticks. Fetches already in flight are left to finish."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self) -> None:
        loop = asyncio.get_running_loop()
        self.ticks += 1
        for entity_type in EntityType:
            task = loop.create_task(self.poll(entity_type))
            self._tasks.add(task)
            task.add_done_callback(self._reap)
        self._next_tick += self.interval
        self._handle = loop.call_at(self._next_tick, self._tick)

    def _reap(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"poll task failed: {exc!r}", exc_info=exc)

    async def poll(self, entity_type: EntityType) -> None:
        hub = self.session.hub
        fetch = {
            EntityType.LIGHTS: hub.fetch_lights,
            EntityType.GROUPS: hub.fetch_groups,
            EntityType.SENSORS: hub.fetch_sensors,
        }[entity_type]

        self.logger.debug(f"hue > get {entity_type.value}")
        try:
            items = await fetch()
        except HueError as e:
            self.logger.error(f"get {entity_type.value}: {e}")
            await self.session.bridge_disconnect()
            return

        await self.session.bridge_connect()
        await self.synchronizer.process(entity_type, items)
        self.logger.debug(f"got {len(items)} {entity_type.value}")

    async def poll_once(self) -> None:
        """Poll every entity type once and wait for the results"""
        await asyncio.gather(*(self.poll(entity_type) for entity_type in EntityType))
