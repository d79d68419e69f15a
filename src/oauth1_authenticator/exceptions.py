"""Custom exceptions for the OAuth1 authenticator."""


class AuthenticatorError(Exception):
    """Base exception for authenticator errors."""

    pass


class ConfigurationError(AuthenticatorError):
    """Raised when a required constructor argument is missing or empty."""

    pass


class InvalidArgumentError(AuthenticatorError, ValueError):
    """Raised when a signed request cannot be built from the given arguments."""

    pass


class ProtocolError(AuthenticatorError):
    """Raised when a provider response lacks an expected field."""

    def __init__(self, message: str, response_text: str | None = None):
        super().__init__(message)
        self.response_text = response_text


class NetworkError(AuthenticatorError):
    """Raised when a request fails at the transport level or with an HTTP error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResolverError(AuthenticatorError):
    """Raised when the username resolver fails."""

    pass


class AuthenticationCancelledError(AuthenticatorError):
    """Raised to callers awaiting an outcome that ended in cancellation."""

    pass


class AccountStoreError(AuthenticatorError):
    """Raised when stored accounts cannot be read or decrypted."""

    pass
