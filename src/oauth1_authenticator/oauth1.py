"""OAuth 1.0a three-legged authorization flow driven by browser navigation events."""

import asyncio
import logging
import urllib.parse
from enum import Enum
from typing import Any

import httpx

from .auth import create_request, execute_request, require_absolute_url
from .config import Settings
from .exceptions import (
    AuthenticationCancelledError,
    AuthenticatorError,
    ConfigurationError,
    NetworkError,
    ProtocolError,
    ResolverError,
)
from .form_codec import decode, percent_encode
from .models import Account, NavigationFailure, Outcome, OutcomeKind, RequestToken
from .redirect import CallbackMatcher, CompletedListener, CompletionChannel
from .resolvers import UsernameResolver

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    """Position of an attempt in the OAuth1 handshake."""

    IDLE = "idle"
    AWAITING_REQUEST_TOKEN = "awaiting_request_token"
    AWAITING_USER_AUTHORIZATION = "awaiting_user_authorization"
    AWAITING_ACCESS_TOKEN = "awaiting_access_token"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.SUCCEEDED, FlowState.CANCELLED, FlowState.FAILED)


_OUTCOME_STATES = {
    OutcomeKind.SUCCEEDED: FlowState.SUCCEEDED,
    OutcomeKind.CANCELLED: FlowState.CANCELLED,
    OutcomeKind.ERROR: FlowState.FAILED,
}


class _Attempt:
    """State owned by one pass through the handshake."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.state = FlowState.IDLE
        self.request_token: RequestToken | None = None
        self.verifier: str | None = None
        self.channel = CompletionChannel()
        self.exchange_task: asyncio.Task[Any] | None = None


class OAuth1Authenticator:
    """Runs the OAuth 1.0a handshake for a native application.

    1. :meth:`get_initial_url` fetches a request token and returns the
       authorize URL to display.
    2. The browser surface reports navigations through :meth:`on_page_loaded`
       and :meth:`on_navigation_failed`; the first one that reaches the
       callback URL triggers the access-token exchange.
    3. Exactly one :class:`Outcome` is delivered per attempt, to listeners
       and to :meth:`wait_for_outcome`.

    The returned account properties include the consumer secret.
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        request_token_url: str,
        authorize_url: str,
        access_token_url: str,
        callback_url: str,
        username_resolver: UsernameResolver | None = None,
        *,
        timeout: float | None = 30.0,
        client: httpx.AsyncClient | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialize the authenticator.

        Args:
            consumer_key: The client application's consumer key.
            consumer_secret: The client application's consumer secret.
            request_token_url: Endpoint issuing request tokens.
            authorize_url: Page where the user authorizes the application.
            access_token_url: Endpoint exchanging the verifier for an access token.
            callback_url: Redirect target registered with the provider. Custom
                schemes are fine, it is never loaded by this class.
            username_resolver: Optional coroutine function returning the
                username for the account properties.
            timeout: Timeout in seconds for the token requests.
            client: Optional HTTP client; one is created and owned otherwise.
            log: Optional logger receiving the flow's diagnostic records.

        Raises:
            ConfigurationError: If a credential or URL is missing or invalid.
        """
        if not consumer_key:
            raise ConfigurationError("consumer_key must be provided")
        if not consumer_secret:
            raise ConfigurationError("consumer_secret must be provided")

        for name, url in (
            ("request_token_url", request_token_url),
            ("authorize_url", authorize_url),
            ("access_token_url", access_token_url),
        ):
            if not url:
                raise ConfigurationError(f"{name} must be provided")
            try:
                require_absolute_url(url)
            except ValueError as e:
                raise ConfigurationError(f"{name} must be an absolute URL") from e

        if not callback_url:
            raise ConfigurationError("callback_url must be provided")
        try:
            matcher = CallbackMatcher(callback_url)
        except ValueError as e:
            raise ConfigurationError(f"Invalid callback_url: {str(e)}") from e
        if not urllib.parse.urlsplit(callback_url).scheme:
            raise ConfigurationError("callback_url must be an absolute URL")

        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._request_token_url = request_token_url
        self._authorize_url = authorize_url
        self._access_token_url = access_token_url
        self._callback_url = callback_url
        self._username_resolver = username_resolver
        self._timeout = timeout
        self._matcher = matcher

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._log = log or logger

        self._listeners: list[CompletedListener] = []
        self._attempt_count = 0
        self._attempt = self._new_attempt()

        self._debug("Created authenticator for callback %s", callback_url)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        username_resolver: UsernameResolver | None = None,
        **kwargs: Any,
    ) -> "OAuth1Authenticator":
        """Build an authenticator from application settings."""
        return cls(
            consumer_key=settings.consumer_key,
            consumer_secret=settings.consumer_secret,
            request_token_url=settings.request_token_url,
            authorize_url=settings.authorize_url,
            access_token_url=settings.access_token_url,
            callback_url=settings.callback_url,
            username_resolver=username_resolver,
            timeout=settings.request_timeout,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def callback_url(self) -> str:
        return self._callback_url

    @property
    def state(self) -> FlowState:
        return self._attempt.state

    @property
    def outcome(self) -> Outcome | None:
        return self._attempt.channel.outcome

    def add_completed_listener(self, listener: CompletedListener) -> None:
        """Register a callback invoked once per attempt with its outcome."""
        self._listeners.append(listener)

    async def wait_for_outcome(self, timeout: float | None = None) -> Outcome:
        """Wait for the current attempt to finish.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            The attempt's outcome.
        """
        return await self._attempt.channel.wait(timeout)

    async def get_initial_url(self) -> str:
        """Fetch a request token and build the authorize URL.

        Calling this again starts a fresh attempt; an unfinished previous
        attempt ends as cancelled.

        Returns:
            The authorize URL for the browser surface to display.

        Raises:
            NetworkError: If the request-token call fails.
            ProtocolError: If the response lacks the token or its secret.
            AuthenticationCancelledError: If the attempt was cancelled meanwhile.
        """
        attempt = self._attempt
        if attempt.state is not FlowState.IDLE:
            if not attempt.state.is_terminal:
                self._debug("Abandoning unfinished attempt")
                self.cancel()
            attempt = self._attempt = self._new_attempt()

        attempt.state = FlowState.AWAITING_REQUEST_TOKEN
        self._debug("Requesting request token")

        try:
            # The provider compares oauth_callback literally with the registered
            # URL, so the callback is sent exactly as configured.
            request = create_request(
                "GET",
                self._request_token_url,
                {"oauth_callback": self._callback_url},
                self._consumer_key,
                self._consumer_secret,
                "",
            )
            response = await execute_request(
                self._client, request, "request token", self._timeout
            )

            data = decode(response.text)
            oauth_token = data.get("oauth_token")
            oauth_token_secret = data.get("oauth_token_secret")

            if not oauth_token or not oauth_token_secret:
                raise ProtocolError(
                    f"Invalid response from request token endpoint: {response.text}",
                    response_text=response.text,
                )
        except asyncio.CancelledError:
            self._finish(attempt, Outcome.cancelled())
            raise
        except AuthenticatorError as e:
            self._finish(attempt, Outcome.failed(e))
            raise
        except Exception as e:
            error = NetworkError(f"Failed to get request token: {str(e)}")
            self._finish(attempt, Outcome.failed(error))
            raise error from e

        if attempt.state is not FlowState.AWAITING_REQUEST_TOKEN:
            raise AuthenticationCancelledError("Authorization attempt was cancelled")

        attempt.request_token = RequestToken(
            oauth_token=oauth_token,
            oauth_token_secret=oauth_token_secret,
        )
        attempt.state = FlowState.AWAITING_USER_AUTHORIZATION

        separator = "&" if "?" in self._authorize_url else "?"
        token = percent_encode(oauth_token)
        url = f"{self._authorize_url}{separator}oauth_token={token}"
        self._debug("Authorize URL ready: %s", url)
        return url

    async def on_page_loaded(self, url: str) -> None:
        """Handle a page the browser surface finished loading.

        Pages other than the callback URL are ignored, as are events arriving
        before the authorize URL exists or after the exchange has started.
        Errors are delivered as the attempt's outcome, not raised.

        Args:
            url: The loaded URL.
        """
        attempt = self._attempt

        if attempt.state is not FlowState.AWAITING_USER_AUTHORIZATION:
            self._debug("Ignoring page %s", url)
            return

        if not self._matcher.matches(url):
            self._debug("Page %s is not the callback %s", url, self._callback_url)
            return

        # Entering the exchange before any await keeps it single-entry.
        attempt.state = FlowState.AWAITING_ACCESS_TOKEN
        query = decode(urllib.parse.urlsplit(url).query)
        attempt.verifier = query.get("oauth_verifier")
        self._debug(
            "Callback reached, verifier present: %s", attempt.verifier is not None
        )

        # The exchange runs in its own task so cancel() never reaches the caller.
        task = asyncio.create_task(self._exchange_for_access_token(attempt))
        attempt.exchange_task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

    async def on_navigation_failed(self, failure: NavigationFailure) -> None:
        """Handle a navigation the browser surface could not complete.

        A custom-scheme redirect fails to load but still carries the callback
        URL; it is handled exactly like a loaded page.

        Args:
            failure: The navigation failure details.
        """
        url = failure.recovered_url
        if url is None:
            self._log.warning(
                "Navigation failed (%s): %s",
                failure.error_code,
                failure.error_description,
                extra=self._context(),
            )
            return

        self._debug("Recovered redirect %s from navigation failure", url)
        await self.on_page_loaded(url)

    def cancel(self) -> None:
        """Cancel the current attempt, e.g. when the user closes the browser.

        Has no effect once the attempt has an outcome. An in-flight
        access-token exchange is cancelled; the task that reported the
        callback page keeps running.
        """
        attempt = self._attempt
        if attempt.state.is_terminal:
            return

        task = attempt.exchange_task
        self._finish(attempt, Outcome.cancelled())
        if task is not None and not task.done():
            task.cancel()

    async def close(self) -> None:
        """Close the HTTP client if this authenticator created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OAuth1Authenticator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _exchange_for_access_token(self, attempt: _Attempt) -> None:
        try:
            request_token = attempt.request_token
            if request_token is None:
                raise AuthenticatorError("No request token for this attempt")

            params = {"oauth_token": request_token.oauth_token}
            if attempt.verifier is not None:
                params["oauth_verifier"] = attempt.verifier

            request = create_request(
                "GET",
                self._access_token_url,
                params,
                self._consumer_key,
                self._consumer_secret,
                request_token.oauth_token_secret,
            )
            response = await execute_request(
                self._client, request, "access token", self._timeout
            )

            properties = decode(response.text)
            if not (
                properties.get("oauth_token") and properties.get("oauth_token_secret")
            ):
                raise ProtocolError(
                    f"Invalid response from access token endpoint: {response.text}",
                    response_text=response.text,
                )

            properties["oauth_consumer_key"] = self._consumer_key
            properties["oauth_consumer_secret"] = self._consumer_secret

            username = await self._resolve_username(properties)
        except asyncio.CancelledError:
            self._finish(attempt, Outcome.cancelled())
            raise
        except AuthenticatorError as e:
            self._finish(attempt, Outcome.failed(e))
            return
        except Exception as e:
            error = NetworkError(f"Failed to get access token: {str(e)}")
            error.__cause__ = e
            self._finish(attempt, Outcome.failed(error))
            return
        finally:
            attempt.exchange_task = None

        self._finish(
            attempt,
            Outcome.succeeded(Account(username=username, properties=properties)),
        )

    async def _resolve_username(self, properties: dict[str, str]) -> str:
        if self._username_resolver is None:
            return ""

        try:
            return await self._username_resolver(dict(properties))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ResolverError(f"Failed to resolve username: {str(e)}") from e

    def _new_attempt(self) -> _Attempt:
        self._attempt_count += 1
        attempt = _Attempt(self._attempt_count)
        attempt.channel.add_listener(self._notify_listeners)
        return attempt

    def _notify_listeners(self, outcome: Outcome) -> None:
        for listener in list(self._listeners):
            listener(outcome)

    def _finish(self, attempt: _Attempt, outcome: Outcome) -> None:
        if attempt.state.is_terminal:
            self._debug("Attempt %d already finished", attempt.number)
            return

        attempt.state = _OUTCOME_STATES[outcome.kind]
        if outcome.error is not None:
            self._log.info(
                "Authorization failed: %s", outcome.error, extra=self._context(attempt)
            )
        else:
            self._log.info(
                "Authorization %s", outcome.kind.value, extra=self._context(attempt)
            )
        attempt.channel.complete(outcome)

    def _context(self, attempt: _Attempt | None = None) -> dict[str, Any]:
        attempt = attempt or self._attempt
        return {"flow_state": attempt.state.value, "attempt": attempt.number}

    def _debug(self, msg: str, *args: Any) -> None:
        self._log.debug(msg, *args, extra=self._context())


