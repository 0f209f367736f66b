"""
RPC and Forwarding Transports.

A transport moves RpcRequest/RpcReply pairs between services and delivers
forwarding events to the gateway. It knows nothing about contracts; the
dispatcher and client do all validation.

Implementations:
    InMemoryTransport - in-process routing, used by tests and single-process
                        deployments
    RedisTransport    - FastStream RedisBroker request/reply and publish
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from faststream.redis import RedisBroker

from modules.fabric.contracts.correlation import REQUEST_ID_HEADER
from modules.fabric.core.exceptions import DuplicatePatternRegistration, UnknownPattern
from modules.fabric.core.logging import get_logger, log_with_source
from modules.fabric.rpc.dispatcher import RpcDispatcher
from modules.fabric.rpc.messages import RpcReply, RpcRequest

logger = get_logger(__name__)


class Transport(Protocol):
    """What the RPC client and the forwarding pipeline need from a transport."""

    async def request(self, request: RpcRequest) -> RpcReply | Mapping[str, Any]: ...

    async def publish(
        self,
        pattern: str,
        payload: Mapping[str, Any],
        recipients: list[str],
        headers: Mapping[str, str],
    ) -> None: ...


@dataclass(frozen=True)
class PublishedEvent:
    """A forwarding event as it left the transport."""

    pattern: str
    payload: dict[str, Any]
    recipients: tuple[str, ...]
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def correlation_id(self) -> str | None:
        return self.headers.get(REQUEST_ID_HEADER)


Subscriber = Callable[[PublishedEvent], Awaitable[None]]


# =============================================================================
# In-process transport
# =============================================================================


class InMemoryTransport:
    """
    Routes requests to mounted dispatchers inside the current process.

    A handler keeps running when the caller stops waiting (timeout or
    cancellation), the same as a remote callee would.
    """

    def __init__(self) -> None:
        self._routes: dict[str, RpcDispatcher] = {}
        self._subscribers: list[Subscriber] = []
        self._inflight: set[asyncio.Task] = set()
        self.published: list[PublishedEvent] = []

    def mount(self, dispatcher: RpcDispatcher) -> None:
        """Route every pattern the dispatcher handles to it."""
        for pattern in dispatcher.patterns:
            owner = self._routes.get(pattern)
            if owner is not None and owner is not dispatcher:
                raise DuplicatePatternRegistration(pattern, "transport")
            self._routes[pattern] = dispatcher

    def subscribe(self, subscriber: Subscriber) -> None:
        """Receive every published forwarding event."""
        self._subscribers.append(subscriber)

    async def request(self, request: RpcRequest) -> RpcReply:
        dispatcher = self._routes.get(request.pattern)
        if dispatcher is None:
            correlation_id = request.correlation.id if request.correlation else None
            return RpcReply.failure(request.pattern, correlation_id, UnknownPattern(request.pattern))

        task = asyncio.create_task(dispatcher.handle(request))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def publish(
        self,
        pattern: str,
        payload: Mapping[str, Any],
        recipients: list[str],
        headers: Mapping[str, str],
    ) -> None:
        event = PublishedEvent(
            pattern=pattern,
            payload=dict(payload),
            recipients=tuple(recipients),
            headers=dict(headers),
        )
        self.published.append(event)
        for subscriber in self._subscribers:
            await subscriber(event)

    async def drain(self) -> None:
        """Wait for handlers whose callers already gave up."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)


# =============================================================================
# Redis transport (FastStream)
# =============================================================================


class RedisTransport:
    """
    Request/reply and forwarding over a FastStream RedisBroker.

    RPC channels are named "{channel_prefix}:{pattern}". Forwarding events
    go to a single gateway channel as {"pattern", "payload", "recipients"}.
    """

    def __init__(
        self,
        broker: RedisBroker,
        *,
        channel_prefix: str = "rpc",
        gateway_channel: str = "gateway:events",
        timeout: float = 10.0,
    ) -> None:
        self._broker = broker
        self._channel_prefix = channel_prefix
        self._gateway_channel = gateway_channel
        self._timeout = timeout

    @classmethod
    def from_config(cls, broker: RedisBroker) -> "RedisTransport":
        from modules.fabric.core.config import get_app_config

        config = get_app_config()
        return cls(
            broker,
            channel_prefix=config.rpc.channel_prefix,
            gateway_channel=config.events.gateway_channel,
            timeout=config.rpc.timeout,
        )

    def channel_for(self, pattern: str) -> str:
        return f"{self._channel_prefix}:{pattern}"

    @property
    def gateway_channel(self) -> str:
        return self._gateway_channel

    async def request(self, request: RpcRequest) -> dict[str, Any]:
        headers = request.correlation.to_headers() if request.correlation else {}
        response = await self._broker.request(
            request.to_wire(),
            channel=self.channel_for(request.pattern),
            correlation_id=headers.get(REQUEST_ID_HEADER),
            headers=headers,
            timeout=self._timeout,
        )
        return await response.decode()

    async def publish(
        self,
        pattern: str,
        payload: Mapping[str, Any],
        recipients: list[str],
        headers: Mapping[str, str],
    ) -> None:
        await self._broker.publish(
            {"pattern": pattern, "payload": dict(payload), "recipients": list(recipients)},
            channel=self._gateway_channel,
            correlation_id=headers.get(REQUEST_ID_HEADER),
            headers=dict(headers),
        )

    def serve(self, dispatcher: RpcDispatcher) -> None:
        """Subscribe the dispatcher to one channel per handled pattern."""
        for pattern in dispatcher.patterns:
            self._broker.subscriber(self.channel_for(pattern))(_reply_handler(dispatcher))
            log_with_source(
                logger, "rpc", "info", "RPC channel subscribed",
                channel=self.channel_for(pattern), domain=dispatcher.domain,
            )


def _reply_handler(dispatcher: RpcDispatcher) -> Callable[[dict], Awaitable[dict]]:
    async def handle(body: dict) -> dict:
        reply = await dispatcher.handle(body)
        return reply.to_wire()

    return handle
