"""
Contract Registry.

Binds each pattern of one domain to exactly one payload shape and, for RPC
patterns, exactly one response shape. A registry is an explicit object
handed to every dispatcher and client that needs it; several registries
(one per domain, plus event registries) coexist in one process.

Lifecycle:
    1. Build at startup (see the build_*_registry() functions in the
       per-domain contract modules).
    2. freeze(): afterwards the registry is read-only and may be read
       concurrently without locking.

Re-registering a pattern with the same shapes is a no-op. Re-registering it
with different shapes raises DuplicatePatternRegistration, which must stop
the process from starting.

Usage:
    registry = ContractRegistry("tasks")
    registry.register(TasksPattern.CREATE, CreateTaskDTO, TaskDTO)
    registry.freeze()

    payload = registry.validate_payload("tasks.create", raw_dict)
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from modules.fabric.core.exceptions import (
    ConfigurationError,
    ContractViolation,
    DuplicatePatternRegistration,
    UnknownPattern,
)
from modules.fabric.core.logging import get_logger

logger = get_logger(__name__)


def pattern_key(pattern: str | Enum) -> str:
    """Wire string for a pattern given as a str or a pattern enum member."""
    if isinstance(pattern, Enum):
        return str(pattern.value)
    return str(pattern)


@dataclass(frozen=True)
class ContractEntry:
    """One (pattern, payload shape, response shape) triple.

    response is None for fire-and-forget event patterns.
    """

    pattern: str
    payload: Any
    response: Any = None
    _payload_adapter: TypeAdapter = field(init=False, repr=False, compare=False)
    _response_adapter: TypeAdapter | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", pattern_key(self.pattern))
        object.__setattr__(self, "_payload_adapter", TypeAdapter(self.payload))
        object.__setattr__(
            self,
            "_response_adapter",
            TypeAdapter(self.response) if self.response is not None else None,
        )

    @property
    def is_rpc(self) -> bool:
        return self.response is not None

    @property
    def payload_adapter(self) -> TypeAdapter:
        return self._payload_adapter

    @property
    def response_adapter(self) -> TypeAdapter | None:
        return self._response_adapter

    def same_shape(self, other: "ContractEntry") -> bool:
        return self.payload == other.payload and self.response == other.response


def _shape_name(shape: Any) -> str:
    return getattr(shape, "__name__", None) or repr(shape)


def _as_plain(raw: Any) -> Any:
    """Turn model instances back into wire data before re-validation."""
    if isinstance(raw, BaseModel):
        return raw.model_dump(mode="json", by_alias=True)
    if isinstance(raw, (list, tuple)):
        return [_as_plain(item) for item in raw]
    return raw


class ContractRegistry:
    """Per-domain catalog of pattern → shapes."""

    def __init__(self, domain: str) -> None:
        self.domain = domain
        self._entries: dict[str, ContractEntry] = {}
        self._frozen = False

    @classmethod
    def from_entries(cls, domain: str, entries: Iterable[ContractEntry]) -> "ContractRegistry":
        """Build and freeze a registry from static entries."""
        registry = cls(domain)
        for entry in entries:
            registry.add(entry)
        return registry.freeze()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, pattern: str | Enum, payload: Any, response: Any = None) -> ContractEntry:
        """Register a pattern's shapes. See add()."""
        return self.add(ContractEntry(pattern=pattern_key(pattern), payload=payload, response=response))

    def add(self, entry: ContractEntry) -> ContractEntry:
        """
        Add an entry.

        Raises:
            ConfigurationError: If the registry is frozen
            DuplicatePatternRegistration: If the pattern exists with other shapes
        """
        if self._frozen:
            raise ConfigurationError(
                f"Registry '{self.domain}' is frozen; cannot register '{entry.pattern}'"
            )

        existing = self._entries.get(entry.pattern)
        if existing is not None:
            if existing.same_shape(entry):
                return existing
            logger.critical(
                "Conflicting contract registration",
                extra={
                    "domain": self.domain,
                    "pattern": entry.pattern,
                    "existing_payload": _shape_name(existing.payload),
                    "new_payload": _shape_name(entry.payload),
                },
            )
            raise DuplicatePatternRegistration(entry.pattern, self.domain)

        self._entries[entry.pattern] = entry
        return entry

    def freeze(self) -> "ContractRegistry":
        """Mark read-only. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def entry(self, pattern: str | Enum) -> ContractEntry:
        key = pattern_key(pattern)
        try:
            return self._entries[key]
        except KeyError:
            raise UnknownPattern(key, self.domain) from None

    def payload_shape_of(self, pattern: str | Enum) -> Any:
        return self.entry(pattern).payload

    def response_shape_of(self, pattern: str | Enum) -> Any:
        """Response shape; None for event patterns."""
        return self.entry(pattern).response

    def patterns(self) -> list[str]:
        return sorted(self._entries)

    def entries(self) -> list[ContractEntry]:
        return [self._entries[p] for p in self.patterns()]

    def __contains__(self, pattern: object) -> bool:
        if not isinstance(pattern, (str, Enum)):
            return False
        return pattern_key(pattern) in self._entries

    def __iter__(self) -> Iterator[ContractEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ContractRegistry(domain={self.domain!r}, patterns={len(self)}, frozen={self._frozen})"

    # -------------------------------------------------------------------------
    # Dispatch-time validation
    # -------------------------------------------------------------------------

    def validate_payload(self, pattern: str | Enum, raw: Any) -> Any:
        """
        Check untyped wire data against the pattern's payload shape.

        Raises:
            UnknownPattern: If the pattern is not registered here
            ContractViolation: If the data does not fit the shape
        """
        entry = self.entry(pattern)
        return self._validate(entry.pattern, "payload", entry.payload_adapter, raw)

    def validate_response(self, pattern: str | Enum, raw: Any) -> Any:
        """
        Check a response against the pattern's response shape.

        Raises:
            UnknownPattern: If the pattern is not registered here
            ContractViolation: If the pattern has no response shape or the
                data does not fit it
        """
        entry = self.entry(pattern)
        if entry.response_adapter is None:
            raise ContractViolation(
                f"Pattern '{entry.pattern}' is an event pattern and has no response",
                details={"pattern": entry.pattern, "domain": self.domain},
            )
        return self._validate(entry.pattern, "response", entry.response_adapter, raw)

    def dump_payload(self, pattern: str | Enum, value: Any) -> Any:
        """Serialise an already validated payload to wire form."""
        return self.entry(pattern).payload_adapter.dump_python(value, mode="json", by_alias=True)

    def dump_response(self, pattern: str | Enum, value: Any) -> Any:
        """Serialise an already validated response to wire form."""
        adapter = self.entry(pattern).response_adapter
        if adapter is None:
            raise ContractViolation(f"Pattern '{pattern_key(pattern)}' has no response")
        return adapter.dump_python(value, mode="json", by_alias=True)

    def _validate(self, pattern: str, part: str, adapter: TypeAdapter, raw: Any) -> Any:
        try:
            return adapter.validate_python(_as_plain(raw))
        except PydanticValidationError as exc:
            errors = exc.errors(include_url=False, include_context=False, include_input=False)
            raise ContractViolation(
                f"{part.capitalize()} for '{pattern}' does not match its contract",
                details={
                    "pattern": pattern,
                    "domain": self.domain,
                    "part": part,
                    "errors": [
                        {"loc": [str(p) for p in err["loc"]], "msg": err["msg"], "type": err["type"]}
                        for err in errors
                    ],
                },
            ) from exc
