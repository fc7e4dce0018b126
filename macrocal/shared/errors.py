"""Exception taxonomy shared by collectors, the store and the pipelines.

Rate limiting is deliberately absent: a denied request is a
``RateLimitResult`` with ``allowed=False``, not an exception.
"""


class MacroCalError(Exception):
    """Base class for all macrocal errors."""


class ValidationError(MacroCalError):
    """Malformed input or response shape. Never retried."""


class ConfigurationError(MacroCalError):
    """A required credential or setting is missing."""


class TransientSourceError(MacroCalError):
    """Network failure or HTTP 5xx from an upstream agency. Retryable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SourceHTTPError(MacroCalError):
    """HTTP 4xx from an upstream agency. Terminal."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExhaustedRetriesError(MacroCalError):
    """A retryable failure persisted through every allowed attempt."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Giving up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class StoreError(MacroCalError):
    """Persistence failure. Aborts the current reconciliation phase."""
