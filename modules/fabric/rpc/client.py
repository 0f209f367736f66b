"""
RPC Client.

Calling side of a request/response call. The client validates the payload
locally before anything is sent, attaches a correlation context, waits for
the reply under a timeout and validates the response shape on arrival.

Correlation context selection, first match wins:
    1. the context passed explicitly to call()
    2. the context bound by the enclosing correlation_scope
    3. a freshly minted context (externally triggered operation)

Usage:
    client = RpcClient(build_tasks_registry(), transport, timeout=5.0)
    task = await client.call(TasksPattern.FIND_BY_ID, {"id": task_id})
"""

import asyncio
from enum import Enum
from typing import Any

from modules.fabric.contracts.correlation import CorrelationContext, current_correlation
from modules.fabric.contracts.registry import ContractRegistry, pattern_key
from modules.fabric.core.exceptions import ContractViolation, RpcTimeout
from modules.fabric.core.logging import get_logger
from modules.fabric.rpc.messages import RpcReply, RpcRequest
from modules.fabric.rpc.transport import Transport

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class RpcClient:
    """Typed request/response calls against one domain registry."""

    def __init__(
        self,
        registry: ContractRegistry,
        transport: Transport,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.timeout = timeout

    @classmethod
    def from_config(cls, registry: ContractRegistry, transport: Transport) -> "RpcClient":
        """Client using the timeout from config/settings/rpc.yaml."""
        from modules.fabric.core.config import get_app_config

        return cls(registry, transport, timeout=get_app_config().rpc.timeout)

    async def call(
        self,
        pattern: str | Enum,
        payload: Any = None,
        *,
        context: CorrelationContext | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Send a request and return the validated response.

        Raises:
            UnknownPattern: If the pattern is not in this client's registry
            ContractViolation: If the payload, or the reply, breaks the contract
            RpcTimeout: If no reply arrives within the timeout
            ApplicationError: The typed error the callee replied with
        """
        key = pattern_key(pattern)
        entry = self.registry.entry(key)
        if not entry.is_rpc:
            raise ContractViolation(
                f"Pattern '{key}' is an event pattern and cannot be called",
                details={"pattern": key, "domain": self.registry.domain},
            )

        validated = self.registry.validate_payload(key, {} if payload is None else payload)
        ctx = context or current_correlation() or CorrelationContext.new()
        request = RpcRequest(
            pattern=key,
            payload=self.registry.dump_payload(key, validated),
            correlation=ctx,
        )

        limit = self.timeout if timeout is None else timeout
        logger.debug("RPC call", extra={"pattern": key, "correlation_id": ctx.id, "source": "rpc"})
        try:
            async with asyncio.timeout(limit):
                raw_reply = await self.transport.request(request)
        except TimeoutError:
            logger.warning(
                "RPC call timed out",
                extra={"pattern": key, "correlation_id": ctx.id, "timeout": limit},
            )
            raise RpcTimeout(f"No reply for '{key}' within {limit}s") from None

        reply = raw_reply if isinstance(raw_reply, RpcReply) else RpcReply.model_validate(raw_reply)
        reply.raise_for_error()
        return self.registry.validate_response(key, reply.data)
