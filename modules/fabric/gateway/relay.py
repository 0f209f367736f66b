"""
Gateway Relay.

Last hop of a forwarding event: pushes it to the realtime connections of
each recipient. Dotted patterns become socket event names
(task.updated → task:updated).

Recipients without a live connection (offline, unknown or deleted users)
are skipped silently. A failing connection does not stop delivery to the
others.

Usage:
    sessions = ClientSessions()
    relay = GatewayRelay(sessions)
    transport.subscribe(relay.on_published)

    sessions.connect(user_id, websocket_connection)
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from modules.fabric.contracts.correlation import CorrelationContext, correlation_scope
from modules.fabric.contracts.gateway import socket_event_name
from modules.fabric.core.logging import get_logger
from modules.fabric.events.schemas import ForwardingEvent
from modules.fabric.rpc.transport import PublishedEvent

logger = get_logger(__name__)


class ClientConnection(Protocol):
    async def send(self, event: str, payload: Mapping[str, Any]) -> None: ...


class ClientSessions:
    """Live connections keyed by user id."""

    def __init__(self) -> None:
        self._connections: dict[str, list[ClientConnection]] = defaultdict(list)

    def connect(self, user_id: str, connection: ClientConnection) -> None:
        self._connections[user_id].append(connection)
        logger.debug("Client connected", extra={"user_id": user_id, "source": "gateway"})

    def disconnect(self, user_id: str, connection: ClientConnection) -> None:
        connections = self._connections.get(user_id)
        if not connections:
            return
        if connection in connections:
            connections.remove(connection)
        if not connections:
            del self._connections[user_id]
        logger.debug("Client disconnected", extra={"user_id": user_id, "source": "gateway"})

    def connections_for(self, user_id: str) -> list[ClientConnection]:
        return list(self._connections.get(user_id, ()))

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)


class GatewayRelay:
    def __init__(self, sessions: ClientSessions) -> None:
        self.sessions = sessions

    async def deliver(
        self,
        pattern: str,
        payload: Mapping[str, Any],
        recipients: Iterable[str],
        correlation_id: str | None = None,
    ) -> int:
        """
        Send one forwarding event to every live connection of its recipients.

        Returns:
            Number of successful sends
        """
        event_name = socket_event_name(pattern)
        context = CorrelationContext(id=correlation_id) if correlation_id else None
        delivered = 0

        with correlation_scope(context):
            for user_id in recipients:
                connections = self.sessions.connections_for(user_id)
                if not connections:
                    logger.debug(
                        "Recipient has no live connection; skipped",
                        extra={"user_id": user_id, "event": event_name, "source": "gateway"},
                    )
                    continue
                for connection in connections:
                    try:
                        await connection.send(event_name, payload)
                    except Exception as exc:
                        logger.warning(
                            "Failed to push event to client",
                            extra={"user_id": user_id, "event": event_name, "error": str(exc)},
                        )
                        continue
                    delivered += 1

            logger.debug("Event relayed", extra={"event": event_name, "deliveries": delivered})
        return delivered

    async def relay(self, event: ForwardingEvent) -> int:
        return await self.deliver(event.pattern, event.payload, event.recipients, event.correlation_id)

    async def on_published(self, event: PublishedEvent) -> None:
        """InMemoryTransport subscriber."""
        await self.deliver(event.pattern, event.payload, event.recipients, event.correlation_id)
