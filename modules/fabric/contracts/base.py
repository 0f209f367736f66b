"""
Base Contract Model.

Every shape that crosses a service boundary (RPC payloads and responses,
event payloads, envelopes) derives from ContractModel so that independently
deployed services agree on the exact wire form:

- camelCase keys on the wire, snake_case attributes in Python
- unknown keys are rejected (a structural mismatch, not silently dropped)
- instances are immutable once built
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ContractModel(BaseModel):
    """Base for all wire shapes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict keyed by wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


class EmptyPayload(ContractModel):
    """Payload for patterns that take no arguments."""


class FieldChange(ContractModel):
    """One entry of a structured change-set."""

    field: str = Field(min_length=1)
    old_value: Any = None
    new_value: Any = None


class EventActor(ContractModel):
    """Who performed the mutation that raised an event."""

    id: str = Field(min_length=1)
    display_name: str | None = None


ChangeSet = list[FieldChange] | dict[str, Any]
"""Structured list of field changes, or an opaque map used for audit trails."""
