"""Exception hierarchy for the mirror."""

from __future__ import annotations


class MirrorError(Exception):
    """Base exception for mirror failures."""


class ConfigurationError(MirrorError):
    """Raised when required configuration is missing or malformed."""


class RemoteError(MirrorError):
    """
    Raised when the remote API cannot deliver a page: transport failure,
    non-2xx status, GraphQL-level errors or an unexpected payload shape.

    Fatal to the current page fetch; the orchestrator ends the run on it.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status {self.status_code})"


class MappingError(MirrorError):
    """Raised when one remote record cannot be normalised. Skip the record, keep the page."""

    def __init__(self, message: str, record_id: str | None = None):
        super().__init__(message)
        self.record_id = record_id


class IdentityFormatError(MappingError):
    """Raised when a composite remote identifier does not have the expected shape."""


class StoreError(MirrorError):
    """Raised when a storage operation fails. The page transaction has been rolled back."""
