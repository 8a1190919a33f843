"""
Error taxonomy shared by every layer.

The session and the service only raise what they can detect locally
(empty credentials, no session). Everything the provider or the transport
reports is translated once in the HTTP client and then propagates as-is
until the pull-request workflow turns it into a user-visible message.
"""

from __future__ import annotations


class GitClientError(Exception):
    """Base class for every error raised by bitbucket_pr."""


class InvalidCredentialsError(GitClientError):
    """Login or password is empty. Detected before any network call."""


class NotAuthenticatedError(GitClientError):
    """An operation needing a session was attempted while logged out."""

    def __init__(self, message: str = "Not logged in to Bitbucket") -> None:
        super().__init__(message)


class ProviderAuthError(GitClientError):
    """The provider rejected the credentials (HTTP 401/403)."""


class ValidationError(GitClientError):
    """The request was rejected as invalid, by the form or by the provider."""


class MappingError(GitClientError):
    """A provider response did not have the expected shape."""


class NetworkError(GitClientError):
    """Transport failure, or a retryable status that outlived every retry."""


class ProviderError(GitClientError):
    """Any other non-success status returned by the provider."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
