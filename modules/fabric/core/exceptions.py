"""
Custom Exceptions.

Application-specific exception classes for consistent error handling.

Errors raised on the RPC path travel back to the immediate caller as an
ErrorDetail (code + message + details) and are rebuilt on the calling side
by error_from_detail(). Errors raised on the event-forwarding path never
leave the pipeline; they are only logged.
"""

from typing import Any


class ApplicationError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, code: str = "SYS_INTERNAL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)

    @property
    def details(self) -> dict[str, Any] | None:
        return None


class NotFoundError(ApplicationError):
    """Raised when a resource cannot be found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, code="RES_NOT_FOUND")


class ValidationError(ApplicationError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: dict | None = None,
        code: str = "VAL_VALIDATION_ERROR",
    ) -> None:
        self._details = details or {}
        super().__init__(message, code=code)

    @property
    def details(self) -> dict[str, Any]:
        return self._details


class ConflictError(ApplicationError):
    """Raised when there is a state conflict."""

    def __init__(self, message: str = "Resource conflict") -> None:
        super().__init__(message, code="RES_CONFLICT")


class ConfigurationError(ApplicationError):
    """Raised when the process is wired incorrectly. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", code: str = "SYS_CONFIGURATION_ERROR") -> None:
        super().__init__(message, code=code)


class ExternalServiceError(ApplicationError):
    """Raised when an external service call fails."""

    def __init__(self, message: str = "External service error", code: str = "SYS_EXTERNAL_SERVICE_ERROR") -> None:
        super().__init__(message, code=code)


# =============================================================================
# Contract fabric errors
# =============================================================================


class ContractViolation(ValidationError):
    """Payload or response does not match the shape registered for its pattern.

    Surfaced to the caller, never retried.
    """

    def __init__(
        self,
        message: str = "Contract violation",
        details: dict | None = None,
        code: str = "CONTRACT_VIOLATION",
    ) -> None:
        super().__init__(message, details=details, code=code)


class UnknownPattern(ContractViolation):
    """Raised when a pattern has no entry in the registry consulted."""

    def __init__(self, pattern: str, domain: str | None = None) -> None:
        where = f" in domain '{domain}'" if domain else ""
        super().__init__(
            f"Unknown pattern '{pattern}'{where}",
            details={"pattern": pattern, "domain": domain},
            code="CONTRACT_UNKNOWN_PATTERN",
        )


class DuplicatePatternRegistration(ConfigurationError):
    """A pattern was registered twice with different shapes."""

    def __init__(self, pattern: str, domain: str | None = None) -> None:
        self.pattern = pattern
        self.domain = domain
        super().__init__(
            f"Pattern '{pattern}' already registered with a different shape"
            + (f" in domain '{domain}'" if domain else ""),
            code="CONTRACT_DUPLICATE_PATTERN",
        )


class RpcTimeout(ExternalServiceError):
    """The callee did not answer within the client timeout."""

    def __init__(self, message: str = "RPC call timed out") -> None:
        super().__init__(message, code="RPC_TIMEOUT")


class ResolverUnavailable(ExternalServiceError):
    """Recipient resolution failed. Retried with backoff by the pipeline."""

    def __init__(self, message: str = "Recipient resolver unavailable") -> None:
        super().__init__(message, code="EVT_RESOLVER_UNAVAILABLE")


class ForwardingFailed(ExternalServiceError):
    """A domain event could not be turned into a delivered forwarding event."""

    def __init__(self, message: str = "Event forwarding failed") -> None:
        super().__init__(message, code="EVT_FORWARDING_FAILED")


_CODE_MAP: dict[str, type[ApplicationError]] = {
    "RES_NOT_FOUND": NotFoundError,
    "VAL_VALIDATION_ERROR": ValidationError,
    "RES_CONFLICT": ConflictError,
    "CONTRACT_VIOLATION": ContractViolation,
    "CONTRACT_UNKNOWN_PATTERN": ContractViolation,
    "SYS_EXTERNAL_SERVICE_ERROR": ExternalServiceError,
    "RPC_TIMEOUT": RpcTimeout,
}


def error_from_detail(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> ApplicationError:
    """
    Rebuild a typed exception from a wire error detail.

    Unknown codes fall back to ApplicationError with the code preserved,
    so callers can still branch on exc.code.
    """
    error_cls = _CODE_MAP.get(code)
    if error_cls is None:
        return ApplicationError(message, code=code)
    if issubclass(error_cls, ValidationError):
        return error_cls(message, details=details, code=code)
    error = error_cls(message)
    error.code = code
    return error
