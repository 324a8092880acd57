"""
Error taxonomy for the federated training coordinator.

Every error carries an optional ``details`` dictionary so callers (the REST
layer, the CLI) can surface structured context without parsing messages.
"""

from typing import Any


class FederatedError(Exception):
    """Base class for coordinator errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class InvalidArgument(FederatedError, ValueError):
    """Caller passed an unusable parameter (e.g. non-positive epsilon)."""


class RoundFailed(FederatedError):
    """A training round aborted during local update, aggregation or privatization."""

    def __init__(
        self,
        message: str,
        round_number: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, {"round": round_number, **(details or {})})
        self.round_number = round_number


class PersistenceUnavailable(FederatedError):
    """The external store could not be reached or written."""


class NotFound(FederatedError, KeyError):
    """An operation referenced a node id that was never registered."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""
