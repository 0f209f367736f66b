"""
Event Broker.

FastStream RedisBroker setup with lazy initialization, and the worker
application that runs the forwarding pipeline out of process.

Channels:
    domain channel   BrokerEventSink (tasks service) → event worker
    gateway channel  event worker (RedisTransport.publish) → gateway relay

The worker resolves recipients (comment audiences are looked up with a
tasks.findById RPC call over the same broker) and publishes forwarding
events to the gateway channel. The gateway process subscribes its relay to
that channel with subscribe_gateway_relay().

Every message carries its correlation id in the x-request-id header.
Domain envelopes also carry it in the body; the body wins when both are set.

Usage:
    from modules.fabric.events.broker import get_event_broker, subscribe_gateway_relay

    broker = get_event_broker()
    subscribe_gateway_relay(GatewayRelay(sessions), broker)
"""

from collections.abc import Awaitable, Callable

from faststream import Context, FastStream
from faststream.redis import RedisBroker

from modules.fabric.core.logging import get_logger

logger = get_logger(__name__)

_broker: RedisBroker | None = None
_app: FastStream | None = None


def create_event_broker() -> RedisBroker:
    """Create a new RedisBroker using the project's Redis URL.

    Returns:
        Configured RedisBroker instance
    """
    from modules.fabric.core.config import get_redis_url
    from modules.fabric.events.middleware import EventContextMiddleware

    broker = RedisBroker(get_redis_url(), middlewares=[EventContextMiddleware])
    logger.info("Event broker created")
    return broker


def get_event_broker() -> RedisBroker:
    """Get the shared event broker (lazy initialization).

    Returns:
        Shared RedisBroker instance
    """
    global _broker
    if _broker is None:
        _broker = create_event_broker()
    return _broker


def domain_event_handler(pipeline) -> Callable[..., Awaitable[None]]:
    """Domain channel consumer handing envelopes to the forwarding pipeline.

    An envelope published without a correlation id in its body takes the
    one from the message headers.
    """
    from modules.fabric.contracts.correlation import CorrelationContext
    from modules.fabric.events.schemas import DomainEventEnvelope

    async def on_domain_event(body: dict, headers: dict = Context("message.headers")) -> None:
        envelope = DomainEventEnvelope.model_validate(body)
        if not envelope.correlation_id:
            context = CorrelationContext.from_headers(headers)
            if context is not None:
                envelope = envelope.model_copy(update={"correlation_id": context.id})
        pipeline.raise_event(envelope)

    return on_domain_event


def gateway_event_handler(relay) -> Callable[..., Awaitable[int]]:
    """Gateway channel consumer pushing forwarding events to client sessions."""
    from modules.fabric.contracts.correlation import CorrelationContext

    async def on_gateway_event(body: dict, headers: dict = Context("message.headers")) -> int:
        context = CorrelationContext.from_headers(headers)
        return await relay.deliver(
            body["pattern"],
            body.get("payload") or {},
            body.get("recipients") or [],
            context.id if context else None,
        )

    return on_gateway_event


def subscribe_gateway_relay(relay, broker: RedisBroker | None = None, channel: str | None = None) -> None:
    """Feed forwarding events from the gateway channel into a GatewayRelay.

    Args:
        relay: GatewayRelay of the gateway process
        broker: Broker to subscribe on (defaults to the shared event broker)
        channel: Channel name (defaults to events.gateway_channel)
    """
    if channel is None:
        from modules.fabric.core.config import get_app_config

        channel = get_app_config().events.gateway_channel
    broker = broker or get_event_broker()
    broker.subscriber(channel)(gateway_event_handler(relay))
    logger.info("Gateway relay subscribed", extra={"channel": channel})


def create_event_app() -> FastStream:
    """Create a FastStream application for the event worker process.

    This is a factory function; FastStream CLI must be invoked with `--factory`:
        faststream run --factory modules.fabric.events.broker:create_event_app

    Returns:
        FastStream app with the forwarding pipeline subscribed
    """
    global _app
    if _app is not None:
        return _app

    from modules.fabric.contracts.tasks import TasksPattern, build_tasks_registry
    from modules.fabric.core.config import get_app_config
    from modules.fabric.core.exceptions import NotFoundError
    from modules.fabric.core.logging import setup_logging
    from modules.fabric.events.pipeline import EventForwardingPipeline, default_task_rules
    from modules.fabric.events.recipients import CommentAudienceResolver, TaskAudienceResolver
    from modules.fabric.rpc.client import RpcClient
    from modules.fabric.rpc.transport import RedisTransport

    config = get_app_config()
    setup_logging(service=config.application.service)

    broker = get_event_broker()
    transport = RedisTransport.from_config(broker)
    tasks = RpcClient.from_config(build_tasks_registry(), transport)

    async def load_task(task_id: str):
        try:
            return await tasks.call(TasksPattern.FIND_BY_ID, {"id": task_id})
        except NotFoundError:
            return None

    pipeline = EventForwardingPipeline.from_config(
        transport,
        default_task_rules(TaskAudienceResolver(), CommentAudienceResolver(load_task)),
    )

    broker.subscriber(config.events.domain_channel)(domain_event_handler(pipeline))

    _app = FastStream(broker)
    _app.on_startup(pipeline.start)
    _app.on_shutdown(pipeline.stop)
    logger.info("Event worker application created")
    return _app
