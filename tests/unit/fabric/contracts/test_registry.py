"""
Unit Tests for the Contract Registry.

Covers registration rules (idempotence, conflicts, freezing), lookup and
dispatch-time validation.
"""

import pytest
from pydantic import Field

from modules.fabric.contracts.base import ContractModel
from modules.fabric.contracts.registry import ContractEntry, ContractRegistry, pattern_key
from modules.fabric.contracts.tasks import TasksPattern
from modules.fabric.core.exceptions import (
    ConfigurationError,
    ContractViolation,
    DuplicatePatternRegistration,
    UnknownPattern,
)
from modules.fabric.core.pagination import PaginatedEnvelope


class EchoPayload(ContractModel):
    text: str = Field(min_length=1)


class EchoReply(ContractModel):
    text: str
    length: int


class OtherPayload(ContractModel):
    value: int


@pytest.fixture
def registry() -> ContractRegistry:
    registry = ContractRegistry("demo")
    registry.register("demo.echo", EchoPayload, EchoReply)
    registry.register("demo.happened", EchoPayload)
    return registry


class TestRegistration:
    """Tests for register / add / freeze."""

    def test_same_shape_twice_is_a_noop(self, registry):
        entry = registry.register("demo.echo", EchoPayload, EchoReply)
        assert entry.payload is EchoPayload
        assert len(registry) == 2

    def test_different_payload_shape_raises(self, registry):
        with pytest.raises(DuplicatePatternRegistration) as exc_info:
            registry.register("demo.echo", OtherPayload, EchoReply)
        assert exc_info.value.pattern == "demo.echo"
        assert exc_info.value.domain == "demo"

    def test_different_response_shape_raises(self, registry):
        with pytest.raises(DuplicatePatternRegistration):
            registry.register("demo.echo", EchoPayload, OtherPayload)

    def test_register_after_freeze_raises(self, registry):
        registry.freeze()
        assert registry.frozen
        with pytest.raises(ConfigurationError):
            registry.register("demo.late", EchoPayload, EchoReply)

    def test_from_entries_returns_frozen_registry(self):
        registry = ContractRegistry.from_entries(
            "demo", [ContractEntry("demo.echo", EchoPayload, EchoReply)],
        )
        assert registry.frozen
        assert "demo.echo" in registry

    def test_enum_patterns_use_their_wire_value(self):
        registry = ContractRegistry("tasks")
        entry = registry.register(TasksPattern.CREATE, EchoPayload, EchoReply)
        assert entry.pattern == "tasks.create"
        assert TasksPattern.CREATE in registry
        assert pattern_key(TasksPattern.CREATE) == "tasks.create"

    def test_registries_are_independent(self):
        first = ContractRegistry("a")
        second = ContractRegistry("b")
        first.register("x.do", EchoPayload, EchoReply)
        second.register("x.do", OtherPayload, EchoReply)
        assert first.payload_shape_of("x.do") is EchoPayload
        assert second.payload_shape_of("x.do") is OtherPayload


class TestLookup:
    """Tests for shape lookup and iteration."""

    def test_shapes_of_rpc_pattern(self, registry):
        assert registry.payload_shape_of("demo.echo") is EchoPayload
        assert registry.response_shape_of("demo.echo") is EchoReply

    def test_event_pattern_has_no_response(self, registry):
        assert registry.response_shape_of("demo.happened") is None
        assert not registry.entry("demo.happened").is_rpc

    def test_unknown_pattern_raises(self, registry):
        with pytest.raises(UnknownPattern) as exc_info:
            registry.payload_shape_of("demo.missing")
        assert isinstance(exc_info.value, ContractViolation)

    def test_patterns_are_sorted(self, registry):
        assert registry.patterns() == ["demo.echo", "demo.happened"]
        assert [entry.pattern for entry in registry] == ["demo.echo", "demo.happened"]

    def test_contains_rejects_non_strings(self, registry):
        assert 42 not in registry


class TestValidation:
    """Tests for dispatch-time validation of wire data."""

    def test_valid_payload_becomes_model(self, registry):
        payload = registry.validate_payload("demo.echo", {"text": "hi"})
        assert isinstance(payload, EchoPayload)
        assert payload.text == "hi"

    def test_model_instance_is_accepted(self, registry):
        payload = registry.validate_payload("demo.echo", EchoPayload(text="hi"))
        assert payload.text == "hi"

    def test_missing_field_is_contract_violation(self, registry):
        with pytest.raises(ContractViolation) as exc_info:
            registry.validate_payload("demo.echo", {})
        details = exc_info.value.details
        assert details["pattern"] == "demo.echo"
        assert details["part"] == "payload"
        assert details["errors"][0]["loc"] == ["text"]

    def test_unknown_key_is_contract_violation(self, registry):
        with pytest.raises(ContractViolation):
            registry.validate_payload("demo.echo", {"text": "hi", "extra": 1})

    def test_response_validation(self, registry):
        reply = registry.validate_response("demo.echo", {"text": "hi", "length": 2})
        assert reply == EchoReply(text="hi", length=2)

    def test_bad_response_is_contract_violation(self, registry):
        with pytest.raises(ContractViolation) as exc_info:
            registry.validate_response("demo.echo", {"text": "hi"})
        assert exc_info.value.details["part"] == "response"

    def test_event_pattern_response_is_contract_violation(self, registry):
        with pytest.raises(ContractViolation):
            registry.validate_response("demo.happened", {"text": "hi"})

    def test_generic_envelope_response(self):
        registry = ContractRegistry("demo")
        registry.register("demo.list", EchoPayload, PaginatedEnvelope[EchoReply])
        envelope = registry.validate_response(
            "demo.list",
            {"data": [{"text": "a", "length": 1}], "total": 1, "page": 1, "size": 10, "totalPages": 7},
        )
        assert envelope.data == [EchoReply(text="a", length=1)]
        assert envelope.total_pages == 1

    def test_dump_response_uses_wire_names(self):
        registry = ContractRegistry("demo")
        registry.register("demo.list", EchoPayload, PaginatedEnvelope[EchoReply])
        envelope = PaginatedEnvelope[EchoReply](data=[], total=0, page=1, size=10)
        assert registry.dump_response("demo.list", envelope)["totalPages"] == 0
