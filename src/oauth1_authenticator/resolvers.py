"""Username resolvers run after a successful access-token exchange.

A resolver receives the account properties (access-token response plus the
consumer credentials) and returns the username to attach to the account.
"""

from collections.abc import Awaitable, Callable

import httpx

from .auth import create_request, execute_request
from .exceptions import ProtocolError

UsernameResolver = Callable[[dict[str, str]], Awaitable[str]]


def property_username_resolver(field: str = "screen_name") -> UsernameResolver:
    """Read the username straight from the access-token response.

    Providers such as Twitter return ``screen_name`` alongside the token.

    Args:
        field: Name of the property holding the username.

    Returns:
        A resolver failing with ProtocolError when the field is missing.
    """

    async def resolve(properties: dict[str, str]) -> str:
        username = properties.get(field)
        if not username:
            raise ProtocolError(f"Access token response has no {field!r} field")
        return username

    return resolve


def identity_username_resolver(
    identity_url: str,
    field: str = "screen_name",
    *,
    timeout: float | None = 30.0,
    client: httpx.AsyncClient | None = None,
) -> UsernameResolver:
    """Fetch the username from a JSON identity endpoint.

    The endpoint is called with a GET signed by the freshly issued access
    token, e.g. ``https://api.twitter.com/1.1/account/verify_credentials.json``.

    Args:
        identity_url: Absolute URL of the identity endpoint.
        field: Top-level JSON field holding the username.
        timeout: Request timeout in seconds.
        client: Optional HTTP client; a short-lived one is used otherwise.

    Returns:
        A resolver failing with NetworkError or ProtocolError.
    """

    async def resolve(properties: dict[str, str]) -> str:
        request = create_request(
            "GET",
            identity_url,
            None,
            properties.get("oauth_consumer_key", ""),
            properties.get("oauth_consumer_secret", ""),
            token_secret=properties.get("oauth_token_secret", ""),
            token=properties.get("oauth_token"),
        )

        if client is not None:
            response = await execute_request(client, request, "identity", timeout)
        else:
            async with httpx.AsyncClient() as http:
                response = await execute_request(http, request, "identity", timeout)

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(
                "Identity endpoint did not return JSON", response_text=response.text
            ) from e

        username = data.get(field) if isinstance(data, dict) else None
        if not username:
            raise ProtocolError(
                f"Identity response has no {field!r} field", response_text=response.text
            )
        return str(username)

    return resolve
