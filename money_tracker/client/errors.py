from typing import Optional


class ClientError(Exception):
    """Base class for recoverable client-side failures."""


class RemoteServiceError(ClientError):
    """The API answered with a non-2xx status, status "error" or an unreadable body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkUnavailableError(RemoteServiceError):
    """The API could not be reached at all."""


class CacheError(ClientError):
    """The local cache could not be read or written."""


class TransactionValidationError(ClientError):
    """Form input rejected before any network or cache call."""
