"""OAuth1 request signing."""

import base64
import hashlib
import hmac
import secrets
import time
import urllib.parse
from collections.abc import Mapping

import httpx

from .exceptions import InvalidArgumentError, NetworkError
from .form_codec import decode, encode, percent_encode

_DEFAULT_PORTS = {"http": 80, "https": 443}


def require_absolute_url(url: str) -> urllib.parse.SplitResult:
    """Split a URL, rejecting anything without a scheme and authority.

    Raises:
        InvalidArgumentError: If the URL is not absolute or its port is invalid.
    """
    try:
        parts = urllib.parse.urlsplit(url or "")
        # urlsplit validates the port lazily
        parts.port
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid URL {url!r}: {str(e)}") from e
    if not parts.scheme or not parts.netloc:
        raise InvalidArgumentError(f"URL must be absolute: {url!r}")
    return parts


class OAuth1Signer:
    """Signs requests using OAuth1 HMAC-SHA1.

    Without a token the signer covers the request-token step (empty token
    secret); with a token and token secret it signs the access-token exchange
    and protected resource calls.
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        token: str | None = None,
        token_secret: str | None = None,
    ) -> None:
        """Initialize the OAuth1 signer.

        Args:
            consumer_key: The client application's consumer key.
            consumer_secret: The client application's consumer secret.
            token: Optional OAuth token (request or access token).
            token_secret: Optional secret matching the token.

        Raises:
            InvalidArgumentError: If the consumer key or secret is empty.
        """
        if not consumer_key:
            raise InvalidArgumentError("consumer_key must be provided")
        if not consumer_secret:
            raise InvalidArgumentError("consumer_secret must be provided")

        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._token = token
        self._token_secret = token_secret or ""

    def sign_request(
        self,
        url: str,
        method: str = "GET",
        params: Mapping[str, str] | None = None,
        *,
        nonce: str | None = None,
        timestamp: str | None = None,
    ) -> dict[str, str]:
        """Generate OAuth1 signed parameters for a request.

        Parameters already present in the query string of ``url`` take part in
        the signature but are not repeated in the returned dict.

        Args:
            url: The absolute request URL.
            method: HTTP method (GET or POST).
            params: Additional request parameters, in the order they should be sent.
            nonce: Fixed nonce, for reproducible signatures.
            timestamp: Fixed timestamp, for reproducible signatures.

        Returns:
            Dictionary of the extra parameters, the OAuth protocol parameters
            and ``oauth_signature``.
        """
        require_absolute_url(url)
        params = dict(params or {})

        oauth_params = {
            "oauth_consumer_key": self._consumer_key,
            "oauth_nonce": nonce or self._generate_nonce(),
            "oauth_signature_method": "HMAC-SHA1",
            "oauth_timestamp": timestamp or str(int(time.time())),
            "oauth_version": "1.0",
        }

        # Callers may pass the token explicitly in params (access-token step)
        if self._token and "oauth_token" not in params:
            oauth_params["oauth_token"] = self._token

        query_params = decode(urllib.parse.urlsplit(url).query)
        all_params = {**query_params, **params, **oauth_params}

        signature = self._generate_signature(url, method, all_params)
        oauth_params["oauth_signature"] = signature

        return {**params, **oauth_params}

    def _generate_nonce(self) -> str:
        """Generate a unique nonce for the request.

        Returns:
            A random 32-character hex string.
        """
        return secrets.token_hex(16)

    def _generate_signature(
        self,
        url: str,
        method: str,
        params: Mapping[str, str],
    ) -> str:
        """Generate HMAC-SHA1 signature for OAuth1 request.

        Args:
            url: The request URL.
            method: HTTP method.
            params: All parameters to sign.

        Returns:
            Base64-encoded HMAC-SHA1 signature.
        """
        base_string = self._create_signature_base_string(url, method, params)

        # consumer_secret&token_secret, token secret empty before a token exists
        signing_key = (
            f"{percent_encode(self._consumer_secret)}&"
            f"{percent_encode(self._token_secret)}"
        )

        hashed = hmac.new(
            signing_key.encode("utf-8"),
            base_string.encode("utf-8"),
            hashlib.sha1,
        )

        return base64.b64encode(hashed.digest()).decode("utf-8")

    def _create_signature_base_string(
        self,
        url: str,
        method: str,
        params: Mapping[str, str],
    ) -> str:
        """Create the OAuth1 signature base string.

        Args:
            url: The request URL.
            method: HTTP method.
            params: All parameters to include.

        Returns:
            The signature base string.
        """
        # Sort on the encoded pairs, as the signature is computed over them
        encoded = sorted(
            (percent_encode(k), percent_encode(str(v))) for k, v in params.items()
        )
        param_string = "&".join(f"{k}={v}" for k, v in encoded)

        base_string = "&".join(
            [
                method.upper(),
                percent_encode(self._normalize_url(url)),
                percent_encode(param_string),
            ]
        )

        return base_string

    @staticmethod
    def _normalize_url(url: str) -> str:
        """Return the base string URI: lower-case scheme and host, no query.

        Args:
            url: The request URL.

        Returns:
            The normalized URL.
        """
        parts = urllib.parse.urlsplit(url)
        scheme = parts.scheme.lower()
        host = (parts.hostname or "").lower()
        if parts.port and parts.port != _DEFAULT_PORTS.get(scheme):
            host = f"{host}:{parts.port}"
        return f"{scheme}://{host}{parts.path or '/'}"


def create_request(
    method: str,
    url: str,
    extra_params: Mapping[str, str] | None,
    consumer_key: str,
    consumer_secret: str,
    token_secret: str = "",
    token: str | None = None,
) -> httpx.Request:
    """Build a signed request ready to be sent with an ``httpx.AsyncClient``.

    For GET the parameters are appended to the query string, for any other
    method they are sent as a form-encoded body.

    Args:
        method: HTTP method.
        url: Absolute target URL, possibly with its own query string.
        extra_params: Protocol or custom parameters, e.g. ``oauth_callback``.
        consumer_key: The client application's consumer key.
        consumer_secret: The client application's consumer secret.
        token_secret: Secret of the token being exchanged, empty for the
            request-token step.
        token: Optional token to add as ``oauth_token``.

    Returns:
        The unsent signed request.

    Raises:
        InvalidArgumentError: If credentials are empty or the URL is not absolute.
    """
    parts = require_absolute_url(url)
    signer = OAuth1Signer(consumer_key, consumer_secret, token, token_secret)
    signed_params = signer.sign_request(url, method, extra_params)

    method = method.upper()
    if method == "GET":
        separator = "&" if parts.query else "?"
        return httpx.Request(method, f"{url}{separator}{encode(signed_params)}")

    return httpx.Request(
        method,
        url,
        content=encode(signed_params).encode("utf-8"),
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )


async def execute_request(
    client: httpx.AsyncClient,
    request: httpx.Request,
    step: str,
    timeout: float | None = None,
) -> httpx.Response:
    """Send a signed request and map transport failures to NetworkError.

    Args:
        client: HTTP client to send with.
        request: The signed request from :func:`create_request`.
        step: Short description of the call, used in error messages.
        timeout: Optional per-request timeout in seconds.

    Returns:
        The successful (2xx) response.

    Raises:
        NetworkError: On transport errors, timeouts and non-2xx responses.
    """
    if timeout is not None:
        request.extensions["timeout"] = httpx.Timeout(timeout).as_dict()

    try:
        response = await client.send(request)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise NetworkError(
            f"Failed to get {step}: HTTP {e.response.status_code}",
            status_code=e.response.status_code,
        ) from e
    except httpx.RequestError as e:
        raise NetworkError(f"Failed to get {step}: {str(e)}") from e

    return response
