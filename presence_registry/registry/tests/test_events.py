from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_token

from presence_registry.registry.app.core.events import (
    ClientEvents,
    RegistryEvents,
    ServerEvents,
)


@pytest.fixture
def sio():
    sio = MagicMock()
    sio.emit = AsyncMock()
    return sio


@pytest.fixture
def events(sio, registry, settings, clock):
    return RegistryEvents(sio, registry, settings, clock=clock)


def test_handlers_are_registered(events, sio):
    registered = {call.args[0] for call in sio.on.call_args_list}
    assert registered == {
        "connect",
        "disconnect",
        ClientEvents.ACTIVITY.value,
        ClientEvents.MESSAGE.value,
    }


async def test_connect_registers_connection(events, registry):
    await events.on_connect("sid-1", {}, {"token": make_token("u1")})

    assert await registry.is_online("u1") is True
    assert (await registry.get("u1")).connection_ids == ["sid-1"]
    assert events.sid_to_user == {"sid-1": "u1"}


async def test_connect_accepts_authorization_header(events, registry):
    environ = {"HTTP_AUTHORIZATION": f"Bearer {make_token('u1', claim='userId')}"}

    await events.on_connect("sid-1", environ, None)

    assert await registry.is_online("u1") is True


@pytest.mark.parametrize(
    "auth",
    [
        None,
        {},
        {"token": "not-a-jwt"},
        {"token": make_token(None)},
        {"token": make_token("u1", secret="another-secret-that-is-long-enough!!")},
    ],
)
async def test_connect_without_identity_is_refused(events, store, auth):
    with pytest.raises(ConnectionRefusedError):
        await events.on_connect("sid-1", {}, auth)
    assert store.calls == []
    assert events.sid_to_user == {}


async def test_connect_refused_when_store_fails(events, store):
    store.failing.add("put_item")

    with pytest.raises(ConnectionRefusedError):
        await events.on_connect("sid-1", {}, {"token": make_token("u1")})
    assert events.sid_to_user == {}


async def test_disconnect_removes_connection(events, registry):
    await events.on_connect("sid-1", {}, {"token": make_token("u1")})
    await events.on_connect("sid-2", {}, {"token": make_token("u1")})

    await events.on_disconnect("sid-1", "client disconnect")

    assert (await registry.get("u1")).connection_ids == ["sid-2"]
    assert "sid-1" not in events.sid_to_user


async def test_disconnect_of_unknown_sid_is_ignored(events, store):
    await events.on_disconnect("sid-unknown")

    assert store.calls == []


async def test_activity_refreshes_connection_and_last_seen(events, registry, clock):
    await events.on_connect("sid-1", {}, {"token": make_token("u1")})
    later = clock.advance(minutes=5)

    await events.on_activity("sid-1", {"text": "hello"})

    assert (await registry.get("u1")).connections[0].last_active_at == later
    assert await registry.get_last_activity(["u1"]) == {"u1": later}


async def test_activity_from_unknown_sid_emits_error(events, sio, store):
    await events.on_activity("sid-unknown")

    sio.emit.assert_awaited_once()
    assert sio.emit.await_args.args[0] == ServerEvents.ERROR.value
    assert sio.emit.await_args.kwargs["to"] == "sid-unknown"
    assert store.calls == []


async def test_activity_store_failure_emits_error(events, sio, store):
    await events.on_connect("sid-1", {}, {"token": make_token("u1")})
    store.failing.add("put_item")

    await events.on_activity("sid-1")

    assert sio.emit.await_args.args[1] == {"message": "Failed to record activity"}
