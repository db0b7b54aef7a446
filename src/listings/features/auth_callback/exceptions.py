"""Custom exceptions for the auth callback flow."""


class AuthCallbackError(Exception):
    """Base exception for all auth callback errors."""

    pass


class ProviderError(AuthCallbackError):
    """Raised when the identity provider redirected back with an error."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        super().__init__(description or error)


class ExchangeFailure(AuthCallbackError):
    """Raised when a code or one-time token cannot be exchanged for a session."""

    pass


class SchemaCacheError(AuthCallbackError):
    """Raised when the profile read hits a stale PostgREST schema cache."""

    pass


class ProfileLookupError(AuthCallbackError):
    """Raised when the profile read fails for any other reason."""

    pass


class SyncWriteError(AuthCallbackError):
    """Raised when the profile role write fails."""

    pass
