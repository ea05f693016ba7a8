import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import aiomqtt

from ..api import HueProtocol, BridgeIdentity, EntityTable, EntityType, ConnectionStatus, SessionState, Const, bridge_id_from_config
from ..config import BridgeConfig
from ..exceptions import HueError, HueDiscoveryError, HueLinkButtonError
from ..io import HueClient, nupnp_search
from .poller import PollingEngine
from .router import CommandRouter
from .store import CredentialStore
from .sync import StateSynchronizer

"""
===================================================================================
This module owns the hub session: the shared state every other component of the
bridge reads and writes, and the discovery -> authorization -> connected state
machine that brings the session up.
===================================================================================

Terms:
BridgeSession = Link flags, entity tables and the MQTT handle of one bridge.
SessionManager = Drives discovery, authorization and registration, then starts polling.
Liveness = The retained value of <ns>/connected (0 down, 1 bus only, 2 fully connected).
"""


HubFactory = Callable[[str], HueProtocol]
DiscoverFunc = Callable[[], Awaitable[list[str]]]


class BridgeSession:
    """State shared by the session manager, poller, synchronizer and router.

    Everything here is touched from the event loop only, so nothing is locked.
    """

    def __init__(self,
                 config: BridgeConfig,
                 hub: Optional[HueProtocol] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.hub = hub
        self.logger = logger or logging.getLogger(__name__)
        self.identity: Optional[BridgeIdentity] = None
        self.tables: dict[EntityType, EntityTable] = {t: EntityTable(type=t) for t in EntityType}
        self.hub_connected: bool = False
        self.bus_connected: bool = False
        self.mqttc: Optional[aiomqtt.Client] = None

    @property
    def namespace(self) -> str:
        return self.config.name

    @property
    def status(self) -> ConnectionStatus:
        if not self.bus_connected:
            return ConnectionStatus.DISCONNECTED
        if not self.hub_connected:
            return ConnectionStatus.BUS_ONLY
        return ConnectionStatus.FULLY_CONNECTED

    def topic(self, *parts: str) -> str:
        return "/".join([self.namespace, *parts])

    # ============================
    # MQTT publishing
    # ============================

    async def publish(self, topic: str, payload: Any = None, retain: bool = False) -> bool:
        """Publish to the bus. Returns False when the message did not reach the client."""
        if payload is None:
            payload = ""
        elif isinstance(payload, (dict, list)):
            payload = json.dumps(payload)
        if self.mqttc is None or not self.bus_connected:
            self.logger.debug(f"mqtt not connected, dropping {topic} {payload}")
            return False
        self.logger.debug(f"mqtt > {topic} {payload}")
        try:
            await self.mqttc.publish(topic, payload, retain=retain)
        except aiomqtt.MqttError as e:
            self.logger.warning(f"mqtt publish to {topic} failed: {e}")
            return False
        return True

    async def _publish_liveness(self, status: ConnectionStatus) -> None:
        await self.publish(self.topic("connected"), str(int(status)), retain=True)

    # ============================
    # Link transitions
    # ============================

    async def bridge_connect(self) -> None:
        if self.hub_connected:
            return
        self.hub_connected = True
        self.logger.info("bridge connected")
        await self._publish_liveness(ConnectionStatus.FULLY_CONNECTED)

    async def bridge_disconnect(self) -> None:
        if not self.hub_connected:
            return
        self.hub_connected = False
        self.logger.error("bridge disconnected")
        await self._publish_liveness(ConnectionStatus.BUS_ONLY)

    async def handle_state_change_error(self, error: HueError) -> None:
        # The hub refusing to change a light that is off proves the link works
        if str(error).endswith(Const.DEVICE_OFF_SUFFIX):
            await self.bridge_connect()
        else:
            await self.bridge_disconnect()

    async def on_bus_connect(self, client: aiomqtt.Client) -> None:
        self.mqttc = client
        self.bus_connected = True
        self.logger.info(f"mqtt connected {self.config.mqtt.hostname}:{self.config.mqtt.port}")
        await self._publish_liveness(ConnectionStatus.FULLY_CONNECTED if self.hub_connected else ConnectionStatus.BUS_ONLY)
        self.logger.info(f"mqtt subscribe {self.topic('set', '#')}")
        await client.subscribe(self.topic("set", "#"))

    def on_bus_close(self) -> None:
        if not self.bus_connected:
            return
        self.bus_connected = False
        self.mqttc = None
        self.logger.info(f"mqtt closed {self.config.mqtt.hostname}:{self.config.mqtt.port}")


class SessionManager:
    """Brings a BridgeSession from nothing to a polled, authorized hub link.

    Discovery failure is the only fatal outcome: start() raises
    HueDiscoveryError. Every transport failure while authorizing is retried
    after one polling interval, forever. A registration error other than the
    link button not being pressed leaves the manager in REGISTERING and
    start() returns; nothing retries it.
    """

    def __init__(self,
                 session: BridgeSession,
                 store: CredentialStore,
                 hub_factory: Optional[HubFactory] = None,
                 discover: Optional[DiscoverFunc] = None,
                 logger: Optional[logging.Logger] = None):
        self.session = session
        self.store = store
        self.logger = logger or session.logger
        self.state: SessionState = SessionState.DISCOVERING
        self.synchronizer = StateSynchronizer(session, logger=self.logger)
        self.poller = PollingEngine(session, self.synchronizer, logger=self.logger)
        self.router = CommandRouter(session, logger=self.logger)
        self._hub_factory = hub_factory or self._default_hub_factory
        self._discover = discover or (lambda: nupnp_search(logger=self.logger))

    def _default_hub_factory(self, address: str) -> HueProtocol:
        client = HueClient(address, logger=self.logger, print_traffic=self.session.config.hue.print_traffic)
        return HueProtocol(client, logger=self.logger)

    @property
    def polling_interval(self) -> float:
        return self.session.config.hue.polling_interval

    async def start(self) -> None:
        await self.discover()
        self.state = SessionState.AUTHORIZING
        while self.state is not SessionState.CONNECTED:
            match self.state:
                case SessionState.AUTHORIZING:
                    await self.authorize()
                case SessionState.REGISTERING:
                    if not await self.register():
                        return

    async def stop(self) -> None:
        self.poller.stop()
        if self.session.hub is not None:
            await self.session.hub.aclose()

    # ============================
    # States
    # ============================

    async def discover(self) -> str:
        address = self.session.config.hue.bridge
        if address:
            self.logger.debug(f"bridge address {address}")
        else:
            try:
                addresses = await self._discover()
            except HueDiscoveryError as e:
                self.logger.error(f"can't find a hue bridge: {e}")
                raise
            if not addresses:
                self.logger.error("can't find a hue bridge")
                raise HueDiscoveryError("No hue bridge found")
            address = addresses[0]
            self.logger.info(f"found bridge on {address}")
        self.session.identity = BridgeIdentity(address=address)
        if self.session.hub is None:
            self.session.hub = self._hub_factory(address)
        return address

    async def authorize(self) -> None:
        """Learn the hub id, then check the stored credential for it.

        Leaves the manager in REGISTERING when there is no usable credential,
        or CONNECTED with polling started.
        """
        identity = self.session.identity
        hub = self.session.hub

        while identity.id is None:
            try:
                config = await hub.fetch_config()
            except HueError as e:
                self.logger.error(f"bridge connect {e}")
                await asyncio.sleep(self.polling_interval)
                continue
            identity.id = bridge_id_from_config(config)
            if identity.id is None:
                self.logger.error("bridge config does not carry a bridge id")
                await asyncio.sleep(self.polling_interval)
        self.logger.debug(f"bridge id {identity.id}")

        while True:
            credential = self.store.load(Const.CREDENTIAL_PREFIX + identity.id)
            if not credential:
                self.logger.warning("no bridge user found")
                self.state = SessionState.REGISTERING
                return
            identity.credential = credential
            hub.username = credential

            try:
                config = await hub.fetch_config(credential)
            except HueError as e:
                self.logger.error(f"bridge connect {e}")
                await asyncio.sleep(self.polling_interval)
                continue

            bridge_id = bridge_id_from_config(config)
            if bridge_id and bridge_id != identity.id:
                self.logger.warning(f"bridge id changed from {identity.id} to {bridge_id}")
                identity.id = bridge_id
                identity.credential = None
                continue

            self.logger.debug(f"bridge api version {config.get('apiversion')}")
            self.logger.debug(f"bridge user {credential}")
            if "linkbutton" not in config:
                self.logger.error("username not known to bridge")
                self.state = SessionState.REGISTERING
                return

            await self.session.bridge_connect()
            self._warn_if_update_available(config)
            self.state = SessionState.CONNECTED
            self.poller.start()
            return

    async def register(self) -> bool:
        """Ask the hub for a new credential until the link button is pressed.

        Returns False when registration failed for any other reason.
        """
        identity = self.session.identity
        while True:
            try:
                credential = await self.session.hub.create_credential(f"hue2mqtt#{self.session.namespace}")
            except HueLinkButtonError:
                self.logger.warning("please press the link button")
                await self.session.publish(self.session.topic("status", "authrequired"))
                await asyncio.sleep(Const.REGISTER_RETRY_INTERVAL)
                continue
            except HueError as e:
                self.logger.error(f"registration failed: {e}")
                return False
            break

        self.logger.info(f"got username {credential}")
        self.store.save(Const.CREDENTIAL_PREFIX + identity.id, credential)
        self.state = SessionState.AUTHORIZING
        return True

    def _warn_if_update_available(self, config: dict) -> None:
        swupdate = config.get("swupdate") or {}
        if swupdate.get("updatestate") and (swupdate.get("devicetypes") or {}).get("bridge"):
            self.logger.warning(f"bridge update available: {swupdate.get('text', '')}")
