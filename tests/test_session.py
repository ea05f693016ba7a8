import asyncio

import pytest

from hue2mqtt import BridgeSession, SessionManager, SessionState, ConnectionStatus, HueApiError, HueConnectionError, HueDiscoveryError, HueLinkButtonError
from hue2mqtt.api import Const

from conftest import FakeHub, FakeStore, make_config


BRIDGE_ID = "001788FFFE000001"


def make_manager(hub, store, discover=None, **hue) -> SessionManager:
    session = BridgeSession(make_config(**hue))
    return SessionManager(session, store, hub_factory=lambda address: hub, discover=discover)


@pytest.fixture(autouse=True)
def fast_registration(monkeypatch):
    monkeypatch.setattr(Const, "REGISTER_RETRY_INTERVAL", 0)


# ============================
# Liveness
# ============================

@pytest.mark.asyncio
async def test_bus_connect_with_hub_down_publishes_one(session, mqtt):
    await session.on_bus_connect(mqtt)

    assert mqtt.published == [("hue/connected", "1", True)]
    assert mqtt.subscribed == ["hue/set/#"]
    assert session.status is ConnectionStatus.BUS_ONLY


@pytest.mark.asyncio
async def test_bus_connect_with_hub_up_publishes_two(session, mqtt):
    await session.bridge_connect()
    await session.on_bus_connect(mqtt)

    assert mqtt.payloads("hue/connected") == ["2"]
    assert session.status is ConnectionStatus.FULLY_CONNECTED


@pytest.mark.asyncio
async def test_bridge_connect_and_disconnect_are_idempotent(session, mqtt):
    await session.on_bus_connect(mqtt)

    await session.bridge_connect()
    await session.bridge_connect()
    await session.bridge_disconnect()
    await session.bridge_disconnect()
    await session.bridge_connect()

    assert mqtt.payloads("hue/connected") == ["1", "2", "1", "2"]
    assert all(retain for topic, _, retain in mqtt.published if topic == "hue/connected")


@pytest.mark.asyncio
async def test_bus_close_stops_publishing(session, mqtt):
    await session.on_bus_connect(mqtt)
    session.on_bus_close()
    session.on_bus_close()

    await session.bridge_connect()

    assert session.status is ConnectionStatus.DISCONNECTED
    assert mqtt.payloads("hue/connected") == ["1"]
    assert session.hub_connected is True


@pytest.mark.asyncio
async def test_device_off_error_does_not_disconnect(session):
    session.hub_connected = True
    await session.handle_state_change_error(HueApiError("parameter, on, is not modifiable. Device is set to off.", type=201))
    assert session.hub_connected is True

    await session.handle_state_change_error(HueApiError("resource, /lights/9, not available", type=3))
    assert session.hub_connected is False


# ============================
# Discovery
# ============================

@pytest.mark.asyncio
async def test_configured_address_skips_discovery(hub, store):
    async def discover():
        raise AssertionError("discovery must not run")

    manager = make_manager(hub, store, discover=discover, bridge="192.0.2.20")
    assert await manager.discover() == "192.0.2.20"
    assert manager.session.identity.address == "192.0.2.20"
    assert manager.session.hub is hub


@pytest.mark.asyncio
async def test_discovery_picks_first_candidate(hub, store):
    async def discover():
        return ["192.0.2.30", "192.0.2.31"]

    manager = make_manager(hub, store, discover=discover, bridge=None)
    assert await manager.discover() == "192.0.2.30"


@pytest.mark.asyncio
async def test_empty_discovery_is_fatal(hub, store):
    async def discover():
        return []

    manager = make_manager(hub, store, discover=discover, bridge=None)
    with pytest.raises(HueDiscoveryError):
        await manager.start()


@pytest.mark.asyncio
async def test_discovery_error_is_fatal(hub, store):
    async def discover():
        raise HueDiscoveryError("portal unreachable")

    manager = make_manager(hub, store, discover=discover, bridge=None)
    with pytest.raises(HueDiscoveryError):
        await manager.start()


# ============================
# Authorization
# ============================

@pytest.mark.asyncio
async def test_stored_credential_connects_and_polls(hub, mqtt):
    store = FakeStore({f"user-{BRIDGE_ID}": "known-user"})
    manager = make_manager(hub, store)
    await manager.session.on_bus_connect(mqtt)

    await manager.start()
    try:
        await asyncio.sleep(0)
        assert manager.state is SessionState.CONNECTED
        assert manager.session.identity.credential == "known-user"
        assert hub.username == "known-user"
        assert ("fetch_config", "known-user") in hub.calls
        assert manager.poller.running
        assert ("fetch_lights",) in hub.calls
        assert mqtt.payloads("hue/connected") == ["1", "2"]
    finally:
        manager.poller.stop()


@pytest.mark.asyncio
async def test_transport_failure_is_retried(hub):
    store = FakeStore({f"user-{BRIDGE_ID}": "known-user"})
    hub.config_script = [HueConnectionError("refused"), HueConnectionError("refused"), {"bridgeid": BRIDGE_ID}]
    manager = make_manager(hub, store)

    await manager.start()
    manager.poller.stop()

    assert [c for c in hub.calls if c[0] == "fetch_config"][:3] == [("fetch_config", None)] * 3
    assert manager.state is SessionState.CONNECTED


@pytest.mark.asyncio
async def test_replacement_bridge_id_is_preferred(hub):
    store = FakeStore({"user-OLD": "old-user"})
    hub.config_script = [{"bridgeid": "NEW", "replacesbridgeid": "OLD"}, {"bridgeid": "NEW", "replacesbridgeid": "OLD", "linkbutton": False}]
    manager = make_manager(hub, store)

    await manager.start()
    manager.poller.stop()

    assert manager.session.identity.id == "OLD"
    assert manager.session.identity.credential == "old-user"


@pytest.mark.asyncio
async def test_unrecognized_credential_registers_again(hub, mqtt):
    store = FakeStore({f"user-{BRIDGE_ID}": "stale-user"})
    hub.config_script = [
        {"bridgeid": BRIDGE_ID},
        {"bridgeid": BRIDGE_ID},  # no linkbutton: stale-user is unknown
        {"bridgeid": BRIDGE_ID, "linkbutton": False},
    ]
    manager = make_manager(hub, store)

    await manager.start()
    manager.poller.stop()

    assert store.data[f"user-{BRIDGE_ID}"] == "new-user"
    assert hub.calls[2] == ("create_credential", "hue2mqtt#hue")
    assert manager.session.identity.credential == "new-user"
    assert manager.state is SessionState.CONNECTED


@pytest.mark.asyncio
async def test_changed_bridge_id_reloads_credential(hub):
    store = FakeStore({f"user-{BRIDGE_ID}": "first-user", "user-OTHER": "other-user"})
    hub.config_script = [
        {"bridgeid": BRIDGE_ID},
        {"bridgeid": "OTHER", "linkbutton": False},
        {"bridgeid": "OTHER", "linkbutton": False},
    ]
    manager = make_manager(hub, store)

    await manager.start()
    manager.poller.stop()

    assert manager.session.identity.id == "OTHER"
    assert manager.session.identity.credential == "other-user"


@pytest.mark.asyncio
async def test_update_available_is_logged(hub, caplog):
    store = FakeStore({f"user-{BRIDGE_ID}": "known-user"})
    hub.config_script = [
        {"bridgeid": BRIDGE_ID},
        {"bridgeid": BRIDGE_ID, "linkbutton": False, "swupdate": {"updatestate": 2, "devicetypes": {"bridge": True}, "text": "1.50"}},
    ]
    manager = make_manager(hub, store)

    await manager.start()
    manager.poller.stop()

    assert "bridge update available: 1.50" in caplog.text


# ============================
# Registration
# ============================

@pytest.mark.asyncio
async def test_link_button_wait_publishes_authrequired(hub, store, mqtt):
    hub.register_script = [HueLinkButtonError("link button not pressed", type=101)] * 2 + ["fresh-user"]
    manager = make_manager(hub, store)
    await manager.session.on_bus_connect(mqtt)

    await manager.start()
    manager.poller.stop()

    assert mqtt.payloads("hue/status/authrequired") == ["", ""]
    assert store.data == {f"user-{BRIDGE_ID}": "fresh-user"}
    assert manager.state is SessionState.CONNECTED
    assert manager.session.hub_connected is True


@pytest.mark.asyncio
async def test_other_registration_error_is_not_retried(hub, store, caplog):
    hub.register_script = [HueApiError("internal error, 901", type=901), "never-used"]
    manager = make_manager(hub, store)

    await manager.start()

    assert manager.state is SessionState.REGISTERING
    assert [c[0] for c in hub.calls].count("create_credential") == 1
    assert store.data == {}
    assert not manager.poller.running
    assert "registration failed" in caplog.text


@pytest.mark.asyncio
async def test_stop_closes_hub(hub):
    store = FakeStore({f"user-{BRIDGE_ID}": "known-user"})
    manager = make_manager(hub, store)

    await manager.start()
    await manager.stop()

    assert not manager.poller.running
    assert hub.closed
