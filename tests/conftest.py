import copy
from typing import Any, Optional

import pytest

from hue2mqtt import BridgeConfig, HubConfig, MqttConfig, BridgeSession


class FakeMqttClient:
    """Records what the bridge publishes and subscribes to"""

    def __init__(self):
        self.published: list[tuple[str, Any, bool]] = []
        self.subscribed: list[str] = []

    async def publish(self, topic: str, payload: Any = None, retain: bool = False, **kwargs) -> None:
        self.published.append((topic, payload, retain))

    async def subscribe(self, topic: str, **kwargs) -> None:
        self.subscribed.append(topic)

    def payloads(self, topic: str) -> list[Any]:
        return [payload for t, payload, _ in self.published if t == topic]

    def topics(self) -> list[str]:
        return [t for t, _, _ in self.published]


class FakeHub:
    """Stands in for HueProtocol.

    Scripted answers are consumed in order; an Exception instance in a script
    is raised instead of returned.
    """

    def __init__(self):
        self.username: Optional[str] = None
        self.lights: list[dict] = []
        self.groups: list[dict] = []
        self.sensors: list[dict] = []
        self.fetch_errors: dict[str, Exception] = {}
        self.config_script: list[Any] = []
        self.register_script: list[Any] = []
        self.set_result: Any = True
        self.calls: list[tuple] = []
        self.closed = False

    @staticmethod
    def _next(script: list[Any], default: Any) -> Any:
        answer = script.pop(0) if script else default
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def fetch_config(self, username: Optional[str] = None) -> dict:
        self.calls.append(("fetch_config", username))
        return self._next(self.config_script, {"bridgeid": "001788FFFE000001", "linkbutton": False} if username else {"bridgeid": "001788FFFE000001"})

    async def _fetch(self, kind: str) -> list[dict]:
        self.calls.append((f"fetch_{kind}",))
        if kind in self.fetch_errors:
            raise self.fetch_errors[kind]
        return copy.deepcopy(getattr(self, kind))

    async def fetch_lights(self) -> list[dict]:
        return await self._fetch("lights")

    async def fetch_groups(self) -> list[dict]:
        return await self._fetch("groups")

    async def fetch_sensors(self) -> list[dict]:
        return await self._fetch("sensors")

    async def set_light_state(self, hub_id: str, state: dict) -> bool:
        self.calls.append(("set_light_state", hub_id, state))
        if isinstance(self.set_result, Exception):
            raise self.set_result
        return self.set_result

    async def set_group_state(self, hub_id: str, state: dict) -> bool:
        self.calls.append(("set_group_state", hub_id, state))
        if isinstance(self.set_result, Exception):
            raise self.set_result
        return self.set_result

    async def create_credential(self, app_name: str) -> str:
        self.calls.append(("create_credential", app_name))
        return self._next(self.register_script, "new-user")

    async def aclose(self) -> None:
        self.closed = True

    def state_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("set_light_state", "set_group_state")]


class FakeStore:

    def __init__(self, data: Optional[dict] = None):
        self.data = dict(data or {})

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def save(self, key: str, value: str) -> None:
        self.data[key] = value


def make_config(**hue) -> BridgeConfig:
    hue.setdefault("bridge", "192.0.2.10")
    hue.setdefault("polling_interval", 0.01)
    return BridgeConfig(name="hue", hue=HubConfig(**hue), mqtt=MqttConfig(retain=True))


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def mqtt() -> FakeMqttClient:
    return FakeMqttClient()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def session(hub: FakeHub) -> BridgeSession:
    return BridgeSession(make_config(), hub=hub)
