"""Unit tests for RPC and forwarding transports."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from modules.fabric.contracts.correlation import CorrelationContext
from modules.fabric.core.exceptions import DuplicatePatternRegistration
from modules.fabric.rpc.dispatcher import RpcDispatcher
from modules.fabric.rpc.messages import RpcReply, RpcRequest
from modules.fabric.rpc.transport import InMemoryTransport, PublishedEvent, RedisTransport


class TestInMemoryTransport:
    def test_mount_same_dispatcher_twice(self, transport, dispatcher):
        transport.mount(dispatcher)
        transport.mount(dispatcher)

    def test_two_dispatchers_for_one_pattern(self, transport, dispatcher, registry):
        other = RpcDispatcher(registry)

        @other.handler("tasks.create")
        async def create(payload, context):
            return None

        transport.mount(dispatcher)
        with pytest.raises(DuplicatePatternRegistration):
            transport.mount(other)

    @pytest.mark.asyncio
    async def test_unrouted_request(self, transport):
        reply = await transport.request(
            RpcRequest(pattern="tasks.create", correlation=CorrelationContext(id="R1")),
        )
        assert not reply.ok
        assert reply.correlation_id == "R1"
        assert reply.error.code == "CONTRACT_UNKNOWN_PATTERN"

    @pytest.mark.asyncio
    async def test_routes_to_dispatcher(self, transport, dispatcher):
        transport.mount(dispatcher)
        reply = await transport.request(
            RpcRequest(pattern="tasks.create", payload={"title": "x"}),
        )
        assert reply.ok
        assert reply.data["title"] == "x"

    @pytest.mark.asyncio
    async def test_publish_records_and_notifies(self, transport):
        received = []

        async def subscriber(event):
            received.append(event)

        transport.subscribe(subscriber)
        await transport.publish(
            "task.created", {"task": {"id": "t"}}, ["u1", "u2"], {"x-request-id": "R1"},
        )

        assert transport.published == received
        event = received[0]
        assert event.recipients == ("u1", "u2")
        assert event.correlation_id == "R1"

    def test_published_event_without_headers(self):
        event = PublishedEvent(pattern="task.created", payload={}, recipients=("u1",))
        assert event.correlation_id is None


class TestRedisTransport:
    @pytest.fixture
    def broker(self) -> MagicMock:
        broker = MagicMock()
        response = MagicMock()
        response.decode = AsyncMock(return_value={"pattern": "tasks.create", "ok": True, "data": None})
        broker.request = AsyncMock(return_value=response)
        broker.publish = AsyncMock()
        return broker

    def test_channel_names(self, broker):
        transport = RedisTransport(broker, channel_prefix="svc")
        assert transport.channel_for("tasks.create") == "svc:tasks.create"
        assert transport.gateway_channel == "gateway:events"

    @pytest.mark.asyncio
    async def test_request_carries_correlation(self, broker):
        transport = RedisTransport(broker, timeout=3.0)
        request = RpcRequest(
            pattern="tasks.create",
            payload={"title": "x"},
            correlation=CorrelationContext(id="R1", parent_id="R0"),
        )

        reply = await transport.request(request)

        assert reply["ok"] is True
        args, kwargs = broker.request.call_args
        assert args[0]["correlation"] == {"id": "R1", "parentId": "R0"}
        assert kwargs["channel"] == "rpc:tasks.create"
        assert kwargs["correlation_id"] == "R1"
        assert kwargs["headers"] == {"x-request-id": "R1", "x-parent-request-id": "R0"}
        assert kwargs["timeout"] == 3.0

    @pytest.mark.asyncio
    async def test_publish_to_gateway_channel(self, broker):
        transport = RedisTransport(broker, gateway_channel="gw")
        await transport.publish("comment.new", {"comment": {}}, ["u1"], {"x-request-id": "R1"})

        args, kwargs = broker.publish.call_args
        assert args[0] == {"pattern": "comment.new", "payload": {"comment": {}}, "recipients": ["u1"]}
        assert kwargs["channel"] == "gw"
        assert kwargs["correlation_id"] == "R1"

    @pytest.mark.asyncio
    async def test_serve_subscribes_each_pattern(self, broker, dispatcher):
        handlers = []
        broker.subscriber = MagicMock(return_value=handlers.append)
        transport = RedisTransport(broker)

        transport.serve(dispatcher)

        channels = [call.args[0] for call in broker.subscriber.call_args_list]
        assert channels == ["rpc:tasks.create", "rpc:tasks.findById"]
        reply = await handlers[0]({"pattern": "tasks.create", "payload": {"title": "x"}})
        assert RpcReply.model_validate(reply).ok

    def test_from_config(self, broker, mock_app_config):
        mock_app_config.rpc.channel_prefix = "svc"
        with patch("modules.fabric.core.config.get_app_config", return_value=mock_app_config):
            transport = RedisTransport.from_config(broker)
        assert transport.channel_for("x") == "svc:x"
        assert transport.gateway_channel == "gateway:events"
