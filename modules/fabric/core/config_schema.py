"""
Settings Schemas.

One pydantic model per file in config/settings/, checked by AppConfig when
the file is loaded. Typos and stray keys fail at startup with the file name
in the error.

    ApplicationSchema  → application.yaml
    LoggingSchema      → logging.yaml
    FeaturesSchema     → features.yaml
    EventsSchema       → events.yaml
    RpcSchema          → rpc.yaml
    BrokerSchema       → broker.yaml
"""

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Rejects keys the schema does not declare."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class PaginationSchema(_StrictBase):
    default_size: int = Field(ge=1)
    max_size: int | None = Field(default=None, ge=1)


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    service: str
    environment: str
    pagination: PaginationSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: str
    format: str
    handlers: HandlersSchema


# =============================================================================
# features.yaml
# =============================================================================


class FeaturesSchema(_StrictBase):
    events_publish_enabled: bool
    events_forwarding_enabled: bool


# =============================================================================
# events.yaml
# =============================================================================


class ResolverRetrySchema(_StrictBase):
    max_attempts: int = Field(ge=1)
    backoff_multiplier: float = Field(ge=0)
    backoff_max: float = Field(ge=0)


class DeliveryCircuitBreakerSchema(_StrictBase):
    fail_max: int = Field(ge=1)
    timeout_duration: int = Field(ge=1)


class PipelineSchema(_StrictBase):
    resolve_timeout: float = Field(gt=0)
    resolver_retry: ResolverRetrySchema
    delivery_circuit_breaker: DeliveryCircuitBreakerSchema


class EventsSchema(_StrictBase):
    domain_channel: str
    gateway_channel: str
    pipeline: PipelineSchema


# =============================================================================
# rpc.yaml
# =============================================================================


class RpcSchema(_StrictBase):
    timeout: float = Field(gt=0)
    channel_prefix: str


# =============================================================================
# broker.yaml
# =============================================================================


class BrokerSchema(_StrictBase):
    host: str
    port: int
    db: int
