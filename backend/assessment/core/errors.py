"""Domain error taxonomy.

Every expected failure of an operation is one of these exceptions. Services
raise them; ``assessment.main`` renders them into the standard error envelope
with the HTTP status carried on the class. None of them is fatal to the
process — each is scoped to the single operation that raised it.
"""

from typing import Any


class DomainError(Exception):
    """Base class for recoverable, caller-actionable failures."""

    status_code: int = 400
    error_code: str = "domain_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or None


class NotFound(DomainError):
    status_code = 404
    error_code = "not_found"


class Forbidden(DomainError):
    status_code = 403
    error_code = "forbidden"


class Conflict(DomainError):
    status_code = 409
    error_code = "conflict"


class InvalidState(DomainError):
    status_code = 409
    error_code = "invalid_state"


class Expired(DomainError):
    status_code = 410
    error_code = "expired"


class AttemptLimitExceeded(DomainError):
    status_code = 422
    error_code = "attempt_limit_exceeded"


class NotAvailable(DomainError):
    status_code = 422
    error_code = "not_available"


class ValidationError(DomainError):
    status_code = 422
    error_code = "validation_error"


class InvalidConfiguration(DomainError):
    """Quiz content is missing something the core refuses to invent (e.g. pass threshold)."""

    status_code = 422
    error_code = "invalid_configuration"
