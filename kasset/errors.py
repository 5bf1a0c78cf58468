"""Error taxonomy for the knowledge asset client.

Two families:

    Raised      ContentFormatError, MalformedLocatorError, ValidationError,
                EstimationError, ConfigError. Argument and format problems
                are raised before any network call is made.

    Embedded    RetryBudgetExceeded, RootMismatchError, NodeResponseError.
                These describe the outcome of an off-chain step and are
                carried inside result objects as ``ResultError`` entries so
                that partial successes stay visible to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


CLIENT_ERROR_TYPE = "DKG_CLIENT_ERROR"


class KassetError(Exception):
    """Base exception for all client errors."""
    pass


class ContentFormatError(KassetError):
    """Input content is not a valid structured object or graph."""
    pass


class MalformedLocatorError(KassetError):
    """A Universal Asset Locator is missing segments or has invalid ones."""
    pass


class ValidationError(KassetError):
    """A caller-supplied argument is outside its contract."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(ValidationError):
    """Collection of validation errors.

    ``field`` and ``message`` mirror the first error.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.field = errors[0].field
        self.message = errors[0].message
        self.value = errors[0].value
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        KassetError.__init__(self, f"Validation failed: {messages}")


class EstimationError(KassetError):
    """Bid estimation cannot produce a usable token amount."""
    pass


class ConfigError(KassetError):
    """Configuration error."""
    pass


class RetryBudgetExceeded(KassetError):
    """Polling ran out of retries before reaching a terminal status."""

    def __init__(self, operation: str, operation_id: str, attempts: int):
        self.operation = operation
        self.operation_id = operation_id
        self.attempts = attempts
        super().__init__("Unable to get results. Max number of retries reached.")


class RootMismatchError(KassetError):
    """A recomputed assertion root disagrees with the expected root."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__("Calculated root hashes don't match!")


class NodeResponseError(KassetError):
    """The replication node returned a payload that does not fit its contract."""
    pass


@dataclass(frozen=True)
class ResultError:
    """Serializable error entry embedded in a result object."""
    error_type: str
    message: str
    kind: str = ""

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ResultError":
        return cls(
            error_type=CLIENT_ERROR_TYPE,
            message=str(exc),
            kind=type(exc).__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type,
            "error_message": self.message,
            "kind": self.kind,
        }
