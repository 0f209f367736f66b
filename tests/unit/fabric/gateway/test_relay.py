"""Unit tests for the gateway relay."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from modules.fabric.contracts.correlation import current_correlation
from modules.fabric.events.schemas import ForwardingEvent
from modules.fabric.gateway.relay import ClientSessions, GatewayRelay


def connection(side_effect=None) -> MagicMock:
    conn = MagicMock()
    conn.send = AsyncMock(side_effect=side_effect)
    return conn


@pytest.fixture
def sessions() -> ClientSessions:
    return ClientSessions()


@pytest.fixture
def relay(sessions) -> GatewayRelay:
    return GatewayRelay(sessions)


class TestClientSessions:
    def test_connect_and_disconnect(self, sessions):
        first, second = connection(), connection()
        sessions.connect("u1", first)
        sessions.connect("u1", second)

        assert "u1" in sessions
        assert sessions.connections_for("u1") == [first, second]

        sessions.disconnect("u1", first)
        assert sessions.connections_for("u1") == [second]
        sessions.disconnect("u1", second)
        assert "u1" not in sessions
        assert len(sessions) == 0

    def test_disconnect_unknown(self, sessions):
        sessions.disconnect("ghost", connection())
        assert sessions.connections_for("ghost") == []


class TestGatewayRelay:
    @pytest.mark.asyncio
    async def test_sends_socket_event_to_each_connection(self, sessions, relay):
        laptop, phone, other = connection(), connection(), connection()
        sessions.connect("u1", laptop)
        sessions.connect("u1", phone)
        sessions.connect("u2", other)

        delivered = await relay.deliver("task.updated", {"task": {"id": "t"}}, ["u1"])

        assert delivered == 2
        laptop.send.assert_awaited_once_with("task:updated", {"task": {"id": "t"}})
        phone.send.assert_awaited_once()
        other.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_offline_recipients_are_skipped(self, sessions, relay):
        online = connection()
        sessions.connect("u2", online)

        delivered = await relay.deliver("comment.new", {}, ["u1", "u2", "deleted-user"])

        assert delivered == 1
        online.send.assert_awaited_once_with("comment:new", {})

    @pytest.mark.asyncio
    async def test_failing_connection_does_not_block_others(self, sessions, relay):
        broken, healthy = connection(ConnectionResetError("gone")), connection()
        sessions.connect("u1", broken)
        sessions.connect("u2", healthy)

        delivered = await relay.deliver("task.created", {}, ["u1", "u2"])

        assert delivered == 1
        healthy.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_correlation_bound_while_sending(self, sessions, relay):
        seen = []

        async def send(event, payload):
            seen.append(current_correlation())

        conn = MagicMock()
        conn.send = send
        sessions.connect("u1", conn)

        await relay.deliver("task.created", {}, ["u1"], correlation_id="R1")

        assert seen[0].id == "R1"
        assert current_correlation() is None

    @pytest.mark.asyncio
    async def test_relay_forwarding_event(self, sessions, relay):
        conn = connection()
        sessions.connect("u1", conn)
        event = ForwardingEvent(pattern="task.deleted", correlation_id="R1", payload={"x": 1}, recipients=["u1"])

        assert await relay.relay(event) == 1
        conn.send.assert_awaited_once_with("task:deleted", {"x": 1})

    @pytest.mark.asyncio
    async def test_subscribed_to_in_memory_transport(self, sessions, relay, transport):
        conn = connection()
        sessions.connect("u1", conn)
        transport.subscribe(relay.on_published)

        await transport.publish("task.created", {"task": {}}, ["u1"], {"x-request-id": "R1"})

        conn.send.assert_awaited_once_with("task:created", {"task": {}})
