"""
Error taxonomy for the Bothive core.

Provider failures are normalized into DatabaseError and travel inside a
DatabaseResult; the remaining classes are raised by the token service,
the webhook reconciler and configuration loading.
"""
from typing import Any, Optional, Sequence


class BothiveError(Exception):
    """Base class for all errors raised by the core."""


class ConfigurationError(BothiveError):
    """Missing or invalid configuration. Fatal at startup."""


class DatabaseError(BothiveError):
    """
    A backing-store failure normalized into one shape.

    Keeps the store's own diagnostic fields (PostgREST and PyMongo both
    expose a code and optional details) so callers can log them without
    knowing which provider produced the error.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
            "hint": self.hint,
        }


class RecordNotFoundError(DatabaseError):
    """Raised by delete operations when nothing matched the id."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record not found: {record_id}", code="NOT_FOUND")
        self.collection = collection
        self.record_id = record_id


class TokenError(BothiveError):
    """
    JWT verification failure.

    The message is always one of two opaque strings so callers can never
    tell a bad signature from an expired token or a strategy mismatch.
    """


class SignatureError(BothiveError):
    """Inbound webhook payload could not be verified."""


class ValidationError(BothiveError):
    """Incomplete or malformed webhook payload. Not retryable."""

    def __init__(self, missing_fields: Sequence[str] = (), invalid_fields: Sequence[str] = ()):
        problems = []
        if missing_fields:
            problems.append(f"missing {', '.join(missing_fields)}")
        if invalid_fields:
            problems.append(f"invalid {', '.join(invalid_fields)}")
        super().__init__(f"Validation failed: {'; '.join(problems)}")
        self.missing_fields = list(missing_fields)
        self.invalid_fields = list(invalid_fields)


class UserResolutionError(BothiveError):
    """Webhook references a customer with no matching profile."""


class PersistenceError(BothiveError):
    """Store write failed after every retry attempt."""

    def __init__(self, message: str, cause: Optional[DatabaseError] = None):
        super().__init__(message)
        self.cause = cause
