"""
Pydantic models for accounts and flow outcomes.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import AuthenticationCancelledError, AuthenticatorError
from .form_codec import decode, encode

_USERNAME_KEY = "__username__"


# ============================================================================
# Token Models
# ============================================================================


class RequestToken(BaseModel):
    """Model for OAuth1 request token (temporary during OAuth flow)."""

    oauth_token: str
    oauth_token_secret: str


# ============================================================================
# Account Models
# ============================================================================


class Account(BaseModel):
    """An authenticated identity and everything the provider returned for it.

    ``properties`` holds the access-token response plus the echoed
    ``oauth_consumer_key`` and ``oauth_consumer_secret``, so it must be
    treated as secret material.
    """

    username: str = ""
    properties: dict[str, str] = Field(default_factory=dict)

    def serialize(self) -> str:
        """Serialize the account to a form-encoded string.

        Returns:
            The username and properties as ``key=value`` pairs.
        """
        return encode({_USERNAME_KEY: self.username, **self.properties})

    @classmethod
    def deserialize(cls, text: str) -> "Account":
        """Restore an account produced by :meth:`serialize`.

        Args:
            text: Form-encoded account data.

        Returns:
            The account.
        """
        properties = decode(text)
        username = properties.pop(_USERNAME_KEY, "")
        return cls(username=username, properties=properties)


# ============================================================================
# Outcome Models
# ============================================================================


class OutcomeKind(str, Enum):
    """Terminal result of an authorization attempt."""

    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    ERROR = "error"


class Outcome(BaseModel):
    """The single terminal outcome of an authorization attempt."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: OutcomeKind
    account: Account | None = None
    error: BaseException | None = None

    @classmethod
    def succeeded(cls, account: Account) -> "Outcome":
        return cls(kind=OutcomeKind.SUCCEEDED, account=account)

    @classmethod
    def cancelled(cls) -> "Outcome":
        return cls(kind=OutcomeKind.CANCELLED)

    @classmethod
    def failed(cls, error: BaseException) -> "Outcome":
        return cls(kind=OutcomeKind.ERROR, error=error)

    @property
    def is_authenticated(self) -> bool:
        """True if the attempt produced an account."""
        return self.kind is OutcomeKind.SUCCEEDED

    def raise_for_error(self) -> Account:
        """Return the account, or raise the error the attempt ended with.

        Returns:
            The authenticated account.

        Raises:
            AuthenticationCancelledError: If the attempt was cancelled.
            AuthenticatorError: The original error of a failed attempt.
        """
        if self.kind is OutcomeKind.CANCELLED:
            raise AuthenticationCancelledError("Authorization was cancelled")
        if self.kind is OutcomeKind.ERROR:
            if isinstance(self.error, Exception):
                raise self.error
            raise AuthenticatorError(f"Authorization failed: {self.error!r}")
        if self.account is None:
            raise AuthenticatorError("Authorization has no account")
        return self.account


# ============================================================================
# Navigation Models
# ============================================================================

# NSURLErrorUnsupportedURL, reported when a webview is sent to a custom scheme
UNSUPPORTED_URL_ERROR_CODE = -1002


class NavigationFailure(BaseModel):
    """A navigation the browser surface could not complete.

    Webviews cannot load custom URI schemes, so a redirect to ``myapp://cb``
    arrives as a failure whose ``failing_url`` is the redirect target.
    """

    error_code: int | None = None
    error_description: str = ""
    failing_url: str | None = None

    @property
    def is_unsupported_scheme(self) -> bool:
        return (
            self.error_code == UNSUPPORTED_URL_ERROR_CODE
            or self.error_description.strip().lower() == "unsupported url"
        )

    @property
    def recovered_url(self) -> str | None:
        """The redirect target, if this failure encodes one."""
        if self.is_unsupported_scheme and self.failing_url:
            return self.failing_url
        return None
