import asyncio
import logging
import secrets
import ssl
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import aiomqtt

from .config import BridgeConfig, load_config
from .exceptions import HueConfigurationError, HueDiscoveryError
from .interface import BridgeSession, SessionManager, CredentialStore
from .utils import run_with_keyboard_interrupt


class Const:

    # MQTT settings
    MQTT_RECONNECT_MIN_DELAY = 1
    MQTT_RECONNECT_MAX_DELAY = 10

    # Logging
    LOG_MAX_BYTES = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT = 5

    DEFAULT_CONFIG_PATH = "config.yaml"


class HueMQTTBridge:
    """Bridge between a Hue hub and MQTT.

    Polls the hub and publishes changed lights, groups and sensors under
    <name>/status/, and forwards <name>/set/ commands to the hub. The retained
    <name>/connected topic tells subscribers whether the bridge is up.
    """

    # ================================
    #          INIT & RUN
    # ================================

    def __init__(self, config: BridgeConfig, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.logger: logging.Logger = logger or logging.getLogger("hue2mqtt")
        self.session = BridgeSession(config, logger=self.logger)
        self.store = CredentialStore(config.storage_path, logger=self.logger)
        self.manager = SessionManager(self.session, self.store, logger=self.logger)
        self.mqtt_task: Optional[asyncio.Task] = None
        self._command_tasks: set[asyncio.Task] = set()
        self.client_id = f"{config.name}_{secrets.token_hex(4)}"

    @classmethod
    def from_file(cls, config_path: str) -> "HueMQTTBridge":
        return cls(load_config(config_path))

    async def run(self) -> None:
        self.logger.info(f"==================================== Starting hue2mqtt ({self.config.name}) ====================================")

        # The bus link comes up independently of the hub, so subscribers see "1" while we authorize
        self.mqtt_task = asyncio.create_task(self._mqtt_message_handler())
        try:
            await self.manager.start()
        except HueDiscoveryError:
            self.logger.critical("Aborting - no hue bridge available")
            raise

        await self.mqtt_task

    async def stop(self) -> None:
        """Clean shutdown of the bridge"""
        await self.manager.stop()
        if self.mqtt_task is not None:
            self.mqtt_task.cancel()
            try:
                await self.mqtt_task
            except asyncio.CancelledError:
                pass
        for task in list(self._command_tasks):
            task.cancel()
        # MQTT connection is automatically closed by the context manager

    # ================================
    #             LOGGING
    # ================================

    def setup_logging(self) -> None:
        """Configure logging with both file and console handlers."""
        self.logger.setLevel(logging.DEBUG)
        formatter = logging.Formatter(fmt="%(asctime)s\t%(levelname)s\t%(message)s", datefmt="%Y-%m-%d %H:%M:%S")

        # File handler
        if self.config.log_file:
            file_handler = RotatingFileHandler(
                self.config.log_file,
                maxBytes=Const.LOG_MAX_BYTES,
                backupCount=Const.LOG_BACKUP_COUNT
            )
            # Exclude debug messages
            file_handler.addFilter(lambda record: record.levelno != logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(self.config.log_level)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s.%(msecs)03d %(levelname)s: %(message)s', datefmt='%H:%M:%S'
        ))
        self.logger.addHandler(console_handler)

    # ================================
    #              MQTT
    # ================================

    def _tls_context(self) -> Optional[ssl.SSLContext]:
        if not self.config.mqtt.tls:
            return None
        context = ssl.create_default_context()
        if self.config.mqtt.insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _create_client(self) -> aiomqtt.Client:
        mqtt_config = self.config.mqtt
        return aiomqtt.Client(
            hostname=mqtt_config.hostname,
            port=mqtt_config.port,
            username=mqtt_config.username,
            password=mqtt_config.password,
            identifier=self.client_id,
            keepalive=mqtt_config.keepalive,
            tls_context=self._tls_context(),
            tls_insecure=mqtt_config.insecure if mqtt_config.tls else None,
            will=aiomqtt.Will(
                topic=self.session.topic("connected"),
                payload="0",
                retain=True
            )
        )

    async def _mqtt_message_handler(self) -> None:
        """Handle incoming MQTT messages with automatic reconnection per aiomqtt docs."""
        interval = Const.MQTT_RECONNECT_MIN_DELAY

        while True:
            try:
                self.logger.info(f"mqtt trying to connect {self.config.mqtt.hostname}:{self.config.mqtt.port}")
                async with self._create_client() as client:
                    await self.session.on_bus_connect(client)
                    interval = Const.MQTT_RECONNECT_MIN_DELAY

                    async for message in client.messages:
                        self._dispatch(message)

            except asyncio.CancelledError:
                self.logger.info("MQTT message handler cancelled")
                self.session.on_bus_close()
                raise
            except aiomqtt.MqttError as e:
                self.session.on_bus_close()
                self.logger.error(f"mqtt {e}")
                self.logger.info(f"mqtt reconnect in {interval} seconds...")
                await asyncio.sleep(interval)
                # Reset interval for next attempt
                interval = Const.MQTT_RECONNECT_MIN_DELAY
            except Exception as e:
                self.session.on_bus_close()
                self.logger.error(f"Unexpected error in MQTT message handler: {e}")
                self.logger.info(f"Retrying in {interval} seconds...")
                await asyncio.sleep(interval)
                # Exponential backoff for unexpected errors
                interval = min(interval * 2, Const.MQTT_RECONNECT_MAX_DELAY)

    def _dispatch(self, msg: aiomqtt.Message) -> None:
        """Hand a command to the router without holding up the message loop"""
        task = asyncio.create_task(self._mqtt_on_message(msg))
        self._command_tasks.add(task)
        task.add_done_callback(self._reap_command)

    def _reap_command(self, task: asyncio.Task) -> None:
        self._command_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"command failed: {exc!r}", exc_info=exc)

    async def _mqtt_on_message(self, msg: aiomqtt.Message) -> None:
        await self.manager.router.handle_message(str(msg.topic), msg.payload)


# Usage
async def run_bridge(config_path: str = Const.DEFAULT_CONFIG_PATH) -> None:
    try:
        bridge = HueMQTTBridge.from_file(config_path)
    except HueConfigurationError as e:
        logging.getLogger("hue2mqtt").error(f"Failed to load config file: {e}")
        raise
    bridge.setup_logging()
    try:
        await bridge.run()
    finally:
        await bridge.stop()


def main() -> None:
    config_path = sys.argv[1] if len(sys.argv) > 1 else Const.DEFAULT_CONFIG_PATH
    run_with_keyboard_interrupt(lambda: run_bridge(config_path))


if __name__ == "__main__":
    main()
