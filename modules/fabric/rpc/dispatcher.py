"""
RPC Dispatcher.

Receiving side of a request/response call. A dispatcher is bound to one
domain registry and holds at most one handler per registered RPC pattern.

Every call is checked twice against the static contract:
    - the incoming payload, before the handler runs (ContractViolation is
      returned to the caller and never retried)
    - the handler's result, before it is put on the wire

Handlers run inside correlation_scope, so domain events they raise and
sub-calls they make carry the caller's correlation id.

Usage:
    dispatcher = RpcDispatcher(build_tasks_registry())

    @dispatcher.handler(TasksPattern.CREATE)
    async def create_task(payload: CreateTaskDTO, context: CorrelationContext) -> TaskDTO:
        task = await store.insert(payload)
        publisher.task_created(task)
        return task

    reply = await dispatcher.handle(request)
"""

from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from modules.fabric.contracts.correlation import CorrelationContext, correlation_scope
from modules.fabric.contracts.registry import ContractRegistry, pattern_key
from modules.fabric.core.exceptions import (
    ApplicationError,
    ConfigurationError,
    ContractViolation,
    DuplicatePatternRegistration,
    UnknownPattern,
)
from modules.fabric.core.logging import get_logger
from modules.fabric.rpc.messages import RpcReply, RpcRequest

logger = get_logger(__name__)

Handler = Callable[[Any, CorrelationContext], Awaitable[Any]]


class RpcDispatcher:
    """Validates and routes incoming calls for one domain."""

    def __init__(self, registry: ContractRegistry) -> None:
        self.registry = registry
        self._handlers: dict[str, Handler] = {}

    @property
    def domain(self) -> str:
        return self.registry.domain

    @property
    def patterns(self) -> list[str]:
        return sorted(self._handlers)

    def handles(self, pattern: str | Enum) -> bool:
        return pattern_key(pattern) in self._handlers

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, pattern: str | Enum, handler: Handler) -> None:
        """
        Bind a handler to an RPC pattern of this dispatcher's registry.

        Raises:
            ConfigurationError: If the pattern is unknown or is an event pattern
            DuplicatePatternRegistration: If the pattern already has a handler
        """
        key = pattern_key(pattern)
        if key not in self.registry:
            raise ConfigurationError(
                f"Cannot handle '{key}': not in the '{self.domain}' contract registry"
            )
        if not self.registry.entry(key).is_rpc:
            raise ConfigurationError(f"Cannot handle '{key}': it is an event pattern")
        if key in self._handlers:
            raise DuplicatePatternRegistration(key, self.domain)

        self._handlers[key] = handler
        logger.debug("RPC handler registered", extra={"domain": self.domain, "pattern": key})

    def handler(self, pattern: str | Enum) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(fn: Handler) -> Handler:
            self.register(pattern, fn)
            return fn

        return decorator

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def dispatch(
        self,
        pattern: str | Enum,
        payload: Any,
        context: CorrelationContext,
    ) -> Any:
        """
        Validate, run the handler, validate the result.

        Returns:
            The response in wire (JSON-compatible, camelCase) form

        Raises:
            UnknownPattern: If no handler is bound to the pattern
            ContractViolation: If payload or response break the contract
            ApplicationError: Whatever the handler raises
        """
        key = pattern_key(pattern)
        handler = self._handlers.get(key)
        if handler is None:
            raise UnknownPattern(key, self.domain)

        validated = self.registry.validate_payload(key, payload)

        with correlation_scope(context):
            logger.debug("RPC dispatch", extra={"pattern": key, "source": "rpc"})
            result = await handler(validated, context)

            try:
                response = self.registry.validate_response(key, result)
            except ContractViolation as exc:
                logger.error(
                    "Handler response does not match its contract",
                    extra={"pattern": key, "details": exc.details},
                )
                raise

        return self.registry.dump_response(key, response)

    async def handle(self, request: RpcRequest | Mapping[str, Any]) -> RpcReply:
        """
        Wire entry point. Never raises; every outcome is an RpcReply.

        A request without a correlation context gets a fresh one so that
        anything raised downstream still carries an id.
        """
        try:
            message = request if isinstance(request, RpcRequest) else RpcRequest.model_validate(request)
        except PydanticValidationError as exc:
            pattern = str(request.get("pattern", "")) if isinstance(request, Mapping) else ""
            logger.warning("Malformed RPC request", extra={"pattern": pattern, "error": str(exc)})
            return RpcReply.failure(
                pattern,
                None,
                ContractViolation("Malformed RPC request", details={"pattern": pattern}),
            )

        context = message.correlation
        if context is None:
            context = CorrelationContext.new()
            logger.debug(
                "RPC request without correlation context; minted one",
                extra={"pattern": message.pattern, "correlation_id": context.id},
            )

        try:
            data = await self.dispatch(message.pattern, message.payload, context)
        except ContractViolation as exc:
            logger.warning(
                "RPC contract violation",
                extra={"pattern": message.pattern, "correlation_id": context.id, "code": exc.code},
            )
            return RpcReply.failure(message.pattern, context.id, exc)
        except ApplicationError as exc:
            logger.info(
                "RPC handler raised",
                extra={"pattern": message.pattern, "correlation_id": context.id, "code": exc.code},
            )
            return RpcReply.failure(message.pattern, context.id, exc)
        except Exception:
            logger.exception(
                "Unhandled error in RPC handler",
                extra={"pattern": message.pattern, "correlation_id": context.id},
            )
            return RpcReply.failure(
                message.pattern, context.id, ApplicationError("Internal error"),
            )

        return RpcReply.success(message.pattern, context.id, data)
